import aiohttp
import asyncio
import logging
import random
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from branch_reconciler.domain.exceptions import GitHubApiError

logger = logging.getLogger(__name__)

API_URL = "https://api.github.com"
PULLS_PAGE_SIZE = 100
MAX_RETRIES = 7
RETRYABLE_STATUSES = {500, 502, 503, 504}


class GitHubRestClient:
    """
    Client for the parts of the GitHub REST API needed to move a repository's default branch.
    Handles authentication, request execution and rate limit back-off.
    """

    def __init__(self, token: Optional[str] = None):
        self.headers = {
            "Accept": "application/vnd.github+json",
            "User-Agent": "branch-reconciler",
            "X-GitHub-Api-Version": "2022-11-28",
        }
        if token:
            self.headers["Authorization"] = f"Bearer {token}"
        self.api_url = API_URL

    @staticmethod
    def _is_rate_limited(response) -> bool:
        return (
            response.headers.get('Retry-After') is not None
            or response.headers.get('X-RateLimit-Remaining') == "0"
        )

    async def _request(
        self,
        session: aiohttp.ClientSession,
        method: str,
        path: str,
        *,
        json: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
        allow_missing: bool = False,
    ) -> Any:
        """
        Executes one REST call, retrying on rate limits, server errors and connection failures.

        Returns:
            The decoded JSON body, or None for 204 responses and for 404 when `allow_missing` is set.
        """
        url = f"{self.api_url}{path}"

        for attempt in range(MAX_RETRIES):
          try:
            async with session.request(method, url, json=json, params=params, headers=self.headers) as response:
                # Primary or secondary rate limit
                if response.status in {403, 429} and self._is_rate_limited(response):
                  retry_after = response.headers.get('Retry-After')
                  sleep_time = int(retry_after) if retry_after else 60
                  logger.warning(f"Rate limited ({response.status}) on {method} {path}. Sleeping {sleep_time}s...")
                  await asyncio.sleep(sleep_time)
                  continue

                if response.status in RETRYABLE_STATUSES:
                  sleep_time = (2 ** attempt) + random.uniform(0, 2)
                  logger.warning(
                      f"Server error ({response.status}) on {method} {path}, "
                      f"retrying in {sleep_time:.1f}s (attempt {attempt + 1}/{MAX_RETRIES})..."
                  )
                  await asyncio.sleep(sleep_time)
                  continue

                if response.status == 404 and allow_missing:
                    return None

                if response.status >= 400:
                    body = await response.text()
                    raise GitHubApiError(response.status, url, body)

                if response.status == 204:
                    return None
                return await response.json()

          except (aiohttp.ClientError, asyncio.TimeoutError) as e:
              sleep_time = (2 ** attempt) + random.uniform(0, 2)
              logger.warning(
                  f"Request {method} {path} failed (attempt {attempt + 1}/{MAX_RETRIES}): {e}. "
                  f"Retrying in {sleep_time:.1f}s..."
              )
              await asyncio.sleep(sleep_time)

        raise GitHubApiError(0, url, f"no successful response after {MAX_RETRIES} attempts")

    async def get_default_branch(self, session: aiohttp.ClientSession, org: str, name: str) -> str:
        data = await self._request(session, "GET", f"/repos/{org}/{name}")
        return data["default_branch"]

    async def branch_exists(self, session: aiohttp.ClientSession, org: str, name: str, branch: str) -> bool:
        data = await self._request(
            session, "GET", f"/repos/{org}/{name}/git/ref/heads/{branch}", allow_missing=True
        )
        return data is not None

    async def create_branch(
        self,
        session: aiohttp.ClientSession,
        org: str,
        name: str,
        base_branch: str,
        new_branch: str,
    ) -> bool:
        """
        Creates `new_branch` at the tip of `base_branch`.

        Returns:
            False when the branch already existed and nothing was created.
        """
        if await self.branch_exists(session, org, name, new_branch):
            logger.debug(f"{org}/{name} already has a branch {new_branch}")
            return False

        base_ref = await self._request(session, "GET", f"/repos/{org}/{name}/git/ref/heads/{base_branch}")
        await self._request(
            session,
            "POST",
            f"/repos/{org}/{name}/git/refs",
            json={"ref": f"refs/heads/{new_branch}", "sha": base_ref["object"]["sha"]},
        )
        return True

    async def set_default_branch(self, session: aiohttp.ClientSession, org: str, name: str, branch: str) -> None:
        await self._request(session, "PATCH", f"/repos/{org}/{name}", json={"default_branch": branch})

    async def list_open_pull_requests(
        self, session: aiohttp.ClientSession, org: str, name: str, base_branch: str
    ) -> List[Dict[str, Any]]:
        """Lists every open pull request whose base is `base_branch`, following pagination."""
        pulls: List[Dict[str, Any]] = []
        page = 1
        while True:
            batch = await self._request(
                session,
                "GET",
                f"/repos/{org}/{name}/pulls",
                params={"state": "open", "base": base_branch, "per_page": PULLS_PAGE_SIZE, "page": page},
            )
            pulls.extend(batch or [])
            if not batch or len(batch) < PULLS_PAGE_SIZE:
                return pulls
            page += 1

    async def retarget_pull_requests(
        self,
        session: aiohttp.ClientSession,
        org: str,
        name: str,
        from_branch: str,
        to_branch: str,
    ) -> int:
        """Moves every open pull request based on `from_branch` onto `to_branch`. Returns how many moved."""
        pulls = await self.list_open_pull_requests(session, org, name, from_branch)
        for pull in pulls:
            await self._request(
                session,
                "PATCH",
                f"/repos/{org}/{name}/pulls/{pull['number']}",
                json={"base": to_branch},
            )
        return len(pulls)

    async def download_file(self, session: aiohttp.ClientSession, url: str, path: Union[Path, str]) -> Path:
        """Downloads `url` to `path`. Raw file hosts don't need the API headers."""
        async with session.get(url) as response:
            response.raise_for_status()
            content = await response.text()

        path_obj = Path(path)
        path_obj.parent.mkdir(parents=True, exist_ok=True)
        path_obj.write_text(content, encoding="utf-8")
        logger.debug(f"Downloaded {url} to {path_obj}")
        return path_obj

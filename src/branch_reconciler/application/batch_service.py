import logging
import shutil
from pathlib import Path
from typing import List

import aiohttp

from branch_reconciler.application.reconciliation_service import (
    BranchReconciliationService,
    log_sub_item,
)
from branch_reconciler.domain.exceptions import FatalSetupError, RepositoryPhaseError
from branch_reconciler.domain.models import RunConfig, RunSummary
from branch_reconciler.infrastructure.git_transport import GitTransport
from branch_reconciler.infrastructure.github_client import GitHubRestClient
from branch_reconciler.infrastructure.manifests import DistributionManifest, ReposManifest

logger = logging.getLogger(__name__)

REPOS_FILE_URL = "https://raw.githubusercontent.com/ros2/ros2/{repos_branch}/ros2.repos"
DISTRIBUTION_FILE_URL = "https://raw.githubusercontent.com/ros/rosdistro/master/{directory}/distribution.yaml"


class BatchReconciliationService:
    """
    Runs the reconciliation over every repository of the repos manifest, one at a time,
    then writes both updated manifests next to their inputs in the cache directory.

    Only setup failures (cache, download, parsing) raise; per-repository failures
    are collected in the returned RunSummary.
    """

    def __init__(
            self,
            config: RunConfig,
            github_client: GitHubRestClient,
            git_transport: GitTransport,
    ):
        self.config = config
        self.github_client = github_client
        self.git_transport = git_transport
        self.cache_dir = Path(config.cache_dir)

    @property
    def repos_path(self) -> Path:
        return self.cache_dir / f"ros2.repos.{self.config.repos_branch}.yaml"

    @property
    def output_repos_path(self) -> Path:
        return self.cache_dir / f"ros2.repos.{self.config.repos_branch}.output.yaml"

    @property
    def distribution_path(self) -> Path:
        return self.cache_dir / f"distribution.{self.config.rosdistro_directory}.yaml"

    @property
    def output_distribution_path(self) -> Path:
        return self.cache_dir / f"distribution.{self.config.rosdistro_directory}.output.yaml"

    def _prepare_cache(self) -> None:
        try:
            if self.config.is_force_refresh and self.cache_dir.exists():
                logger.info(f"Clearing cache directory {self.cache_dir}")
                shutil.rmtree(self.cache_dir)
            self.cache_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise FatalSetupError(f"Could not prepare cache directory {self.cache_dir}: {e}") from e

    async def _download(self, session: aiohttp.ClientSession, url: str, path: Path) -> None:
        try:
            await self.github_client.download_file(session, url, path)
        except Exception as e:
            raise FatalSetupError(f"Could not download {url}: {e}") from e

    async def run(self) -> RunSummary:
        self._prepare_cache()
        mode = "dry run" if self.config.is_dry_run else "live run"
        logger.info(f"Reconciling default branches to '{self.config.new_branch}' ({mode}).")

        errors: List[RepositoryPhaseError] = []
        summary = RunSummary()

        async with aiohttp.ClientSession() as session:
            await self._download(
                session, REPOS_FILE_URL.format(repos_branch=self.config.repos_branch), self.repos_path
            )
            repos = ReposManifest.load(self.repos_path)

            await self._download(
                session,
                DISTRIBUTION_FILE_URL.format(directory=self.config.rosdistro_directory),
                self.distribution_path,
            )
            distribution = DistributionManifest.load(self.distribution_path)

            engine = BranchReconciliationService(
                github_client=self.github_client,
                git_transport=self.git_transport,
                new_branch=self.config.new_branch,
                checkout_root=self.cache_dir / self.config.repos_branch,
                repos_to_exclude=self.config.repos_to_exclude,
                is_dry_run=self.config.is_dry_run,
            )

            for repo in repos.repositories:
                summary.outcomes[repo.full_name] = await engine.reconcile(session, repo, distribution, errors)

        repos.save(self.output_repos_path)
        distribution.save(self.output_distribution_path)
        logger.info(f"Wrote {self.output_repos_path} and {self.output_distribution_path}")

        summary.errors = errors
        if errors:
            logger.info("Finished with errors:")
            for error in errors:
                log_sub_item(str(error))
        else:
            logger.info("Done! - No errors")

        return summary

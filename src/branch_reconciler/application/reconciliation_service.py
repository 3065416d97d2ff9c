import logging
from pathlib import Path
from typing import Awaitable, Callable, Iterable, List, Optional, Type

import aiohttp

from branch_reconciler.domain.exceptions import (
    BranchChangeError,
    CheckoutError,
    ManifestEntryMissingError,
    MirrorWorkflowError,
    RepositoryPhaseError,
)
from branch_reconciler.domain.models import MigrationOutcome, RepositoryRecord
from branch_reconciler.domain.workflows import (
    mirror_commit_message,
    mirror_workflow_path,
    render_mirror_workflow,
)
from branch_reconciler.infrastructure.git_transport import GitTransport
from branch_reconciler.infrastructure.github_client import GitHubRestClient
from branch_reconciler.infrastructure.manifests import DistributionManifest

logger = logging.getLogger(__name__)


def log_sub_item(message: str) -> None:
    logger.info(f" - {message}")


def log_sub_item_error(message: str) -> None:
    logger.error(f" - ERROR: {message}")


class BranchReconciliationService:
    """
    Moves a single repository onto the target default branch.

    The two remote phases (mirror workflow, default branch change) are attempted
    independently: a failure in one is recorded and the other still runs. No
    exception escapes `reconcile`; failures land in the caller's error list.
    """

    def __init__(
        self,
        github_client: GitHubRestClient,
        git_transport: GitTransport,
        new_branch: str,
        checkout_root: Path,
        repos_to_exclude: Iterable[str] = (),
        is_dry_run: bool = True,
    ):
        self.github_client = github_client
        self.git_transport = git_transport
        self.new_branch = new_branch
        self.checkout_root = Path(checkout_root)
        self.repos_to_exclude = set(repos_to_exclude)
        self.is_dry_run = is_dry_run

    async def reconcile(
        self,
        session: aiohttp.ClientSession,
        repo: RepositoryRecord,
        distribution: DistributionManifest,
        errors: List[RepositoryPhaseError],
    ) -> MigrationOutcome:
        if repo.full_name in self.repos_to_exclude:
            logger.info(f"Skipping {repo.full_name} since it is on the exclude list")
            return MigrationOutcome.SKIPPED_EXCLUDED

        try:
            old_branch = await self.github_client.get_default_branch(session, repo.org, repo.name)
        except Exception as e:
            self._record(errors, BranchChangeError(repo.org, repo.name, e))
            return MigrationOutcome.FAILED

        if old_branch == self.new_branch:
            log_sub_item(f"Doing nothing - {repo.full_name} already has the default branch {self.new_branch}")
            return MigrationOutcome.ALREADY_TARGET

        logger.info(f"Processing {repo.full_name}")
        repo_path = self.checkout_root / repo.org / repo.name

        # Later phases read the checkout, so a failed clone ends this repository.
        try:
            log_sub_item(self.git_transport.clone_or_update(repo.url, repo_path, repo.version))
        except Exception as e:
            self._record(errors, CheckoutError(repo.org, repo.name, e))
            return MigrationOutcome.FAILED

        failures = []
        steps = (
            (MirrorWorkflowError, lambda: self._push_mirror_workflow(old_branch, repo_path)),
            (BranchChangeError, lambda: self._change_default_branch_and_retarget_prs(session, repo, old_branch)),
        )
        for error_type, step in steps:
            failure = await self._attempt(error_type, repo, step)
            if failure is not None:
                self._record(errors, failure)
                failures.append(failure)

        repo.version = self.new_branch
        try:
            previous_version = distribution.get_version(repo.name)
            distribution.set_version(repo.name, self.new_branch)
            log_sub_item(
                f"Pinned {repo.name} to {self.new_branch} in the distribution manifest (was {previous_version})"
            )
        except ManifestEntryMissingError:
            log_sub_item(
                f"Could not update distribution.yaml, since {repo.full_name} is not in the distribution.yaml"
            )

        return MigrationOutcome.MIGRATED_WITH_ERRORS if failures else MigrationOutcome.MIGRATED

    @staticmethod
    async def _attempt(
        error_type: Type[RepositoryPhaseError],
        repo: RepositoryRecord,
        step: Callable[[], Awaitable[None]],
    ) -> Optional[RepositoryPhaseError]:
        try:
            await step()
        except Exception as e:
            return error_type(repo.org, repo.name, e)
        return None

    @staticmethod
    def _record(errors: List[RepositoryPhaseError], error: RepositoryPhaseError) -> None:
        log_sub_item_error(str(error))
        errors.append(error)

    async def _push_mirror_workflow(self, old_branch: str, repo_path: Path) -> None:
        workflow_path = mirror_workflow_path(old_branch, self.new_branch)
        if (repo_path / workflow_path).exists():
            message = f"Doing nothing - Workflow file already exists: {repo_path / workflow_path}"
        else:
            message = self.git_transport.commit_and_push_file(
                repo_path,
                workflow_path,
                render_mirror_workflow(old_branch, self.new_branch),
                mirror_commit_message(old_branch, self.new_branch),
                self.is_dry_run,
            )
        log_sub_item(message)

    async def _change_default_branch_and_retarget_prs(
        self, session: aiohttp.ClientSession, repo: RepositoryRecord, old_branch: str
    ) -> None:
        if self.is_dry_run:
            log_sub_item(f"Would create a new branch {self.new_branch} from {old_branch} and retarget PRs")
            return

        created = await self.github_client.create_branch(session, repo.org, repo.name, old_branch, self.new_branch)
        await self.github_client.set_default_branch(session, repo.org, repo.name, self.new_branch)
        moved = await self.github_client.retarget_pull_requests(
            session, repo.org, repo.name, old_branch, self.new_branch
        )
        if created:
            branch_message = f"Created a new branch {self.new_branch} from {old_branch}"
        else:
            branch_message = f"Found existing branch {self.new_branch}"
        log_sub_item(f"{branch_message}, made it the default of {repo.full_name} and retargeted {moved} PRs")

from typing import Optional

from branch_reconciler.domain.models import Phase


class BranchReconcilerException(Exception):
    """Base exception for all branch-reconciler errors."""
    pass

class FatalSetupError(BranchReconcilerException):
    """Raised when the cache or the manifests cannot be prepared. Aborts the run."""
    pass

class ManifestEntryMissingError(BranchReconcilerException):
    """Raised when the distribution manifest has no entry for a repository."""
    def __init__(self, name: str):
        self.name = name
        super().__init__(f"'{name}' is not in the distribution manifest")

class GitHubApiError(BranchReconcilerException):
    """Raised when the GitHub REST API answers with a non-retryable error."""
    def __init__(self, status: int, url: str, message: str = ""):
        self.status = status
        self.url = url
        detail = f": {message}" if message else ""
        super().__init__(f"GitHub API returned {status} for {url}{detail}")


class RepositoryPhaseError(BranchReconcilerException):
    """
    A failure of one reconciliation phase for one repository.
    Recorded in the run's error list; never aborts the batch.
    """
    phase: Phase
    description: str = "processing"

    def __init__(self, org: str, name: str, cause: Optional[BaseException] = None):
        self.org = org
        self.name = name
        self.cause = cause
        detail = str(cause) if cause is not None else "unknown error"
        super().__init__(f"Error {self.description} on {org}/{name}: {detail}")

class CheckoutError(RepositoryPhaseError):
    phase = Phase.CHECKOUT
    description = "cloning or updating the local checkout"

class MirrorWorkflowError(RepositoryPhaseError):
    phase = Phase.MIRROR_WORKFLOW
    description = "pushing the mirror workflow"

class BranchChangeError(RepositoryPhaseError):
    phase = Phase.BRANCH_CHANGE
    description = "changing default branch and retargeting PRs"

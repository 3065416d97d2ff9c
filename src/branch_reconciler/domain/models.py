from enum import Enum
from typing import Dict, List

from pydantic import BaseModel, ConfigDict, Field, field_validator


class RepositoryRecord(BaseModel):
    """
    Domain model for one entry of the repository-list manifest.
    Mutable: the reconciliation engine moves `version` to the target branch in place.
    """
    org: str = Field(..., description="Organisation that owns the repository")
    name: str = Field(..., description="Name of the repository")
    url: str = Field(..., description="Clone URL")
    version: str = Field(..., description="Branch or tag the repository is pinned at")
    type: str = Field("git", description="VCS type declared in the manifest")

    @property
    def full_name(self) -> str:
        return f"{self.org}/{self.name}"


class MigrationOutcome(str, Enum):
    SKIPPED_EXCLUDED = "skipped-excluded"
    ALREADY_TARGET = "already-target"
    MIGRATED = "migrated"
    MIGRATED_WITH_ERRORS = "migrated-with-errors"
    FAILED = "failed"


class Phase(str, Enum):
    CHECKOUT = "checkout"
    MIRROR_WORKFLOW = "mirror-workflow"
    BRANCH_CHANGE = "branch-change"


class RunConfig(BaseModel):
    """Validated run configuration, built from the command line."""
    model_config = ConfigDict(frozen=True)

    new_branch: str
    repos_branch: str
    rosdistro_directory: str
    repos_to_exclude: List[str] = Field(default_factory=list)
    cache_dir: str = ".cache"
    is_dry_run: bool = True
    is_force_refresh: bool = False

    @field_validator("new_branch", "repos_branch", "rosdistro_directory")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("must not be empty")
        return value.strip()


class RunSummary(BaseModel):
    """Result of a whole batch: one outcome per repository plus every recorded error."""
    model_config = ConfigDict(arbitrary_types_allowed=True)

    outcomes: Dict[str, MigrationOutcome] = Field(default_factory=dict)
    errors: List[Exception] = Field(default_factory=list)

    @property
    def has_errors(self) -> bool:
        return bool(self.errors)

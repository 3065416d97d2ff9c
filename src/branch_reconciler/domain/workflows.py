from pathlib import PurePosixPath

WORKFLOWS_DIR = PurePosixPath(".github", "workflows")
MIRROR_ACTION = "zofrex/mirror-branch@v1"

MIRROR_WORKFLOW_TEMPLATE = """\
name: Mirror {new_branch} to {old_branch}

on:
  push:
    branches: [ {new_branch} ]

jobs:
  mirror-to-{old_branch}:
    runs-on: ubuntu-latest
    steps:
    - uses: {action}
      with:
        target-branch: {old_branch}
"""


def mirror_workflow_path(old_branch: str, new_branch: str) -> PurePosixPath:
    """Path of the mirror workflow, relative to the repository root."""
    return WORKFLOWS_DIR / f"mirror-{new_branch}-to-{old_branch}.yaml"


def render_mirror_workflow(old_branch: str, new_branch: str) -> str:
    """
    Renders a GitHub Actions workflow that mirrors every push on `new_branch`
    back onto `old_branch`. The output depends only on the two branch names.
    """
    return MIRROR_WORKFLOW_TEMPLATE.format(
        new_branch=new_branch,
        old_branch=old_branch,
        action=MIRROR_ACTION,
    )


def mirror_commit_message(old_branch: str, new_branch: str) -> str:
    return f"Mirror {new_branch} to {old_branch}"

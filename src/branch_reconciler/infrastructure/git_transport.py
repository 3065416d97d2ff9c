import logging
from pathlib import Path, PurePath
from typing import Union

from git import GitCommandError, Repo

logger = logging.getLogger(__name__)


class GitTransport:
    """
    Local git operations on working copies kept in the cache directory.
    GitCommandError from GitPython propagates to the caller.

    A cached working copy only ever mirrors the remote: updating it discards local
    commits and stray files, so existence checks on it reflect what was pushed.
    """

    def clone_or_update(self, url: str, destination: Union[Path, str], version: str) -> str:
        """
        Clones `url` into `destination` at `version`, or resets an existing clone to the remote's `version`.

        Returns:
            A human-readable description of what was done.
        """
        destination = Path(destination)

        if (destination / ".git").exists():
            repo = Repo(destination)
            repo.git.reset("--hard")
            repo.git.clean("-fd")
            repo.git.fetch("origin", "--tags", "--force")
            repo.git.checkout(version)
            # Tags leave HEAD detached and already match the remote.
            if not repo.head.is_detached:
                repo.git.reset("--hard", f"origin/{version}")
            return f"Updated {destination} to {version}"

        destination.parent.mkdir(parents=True, exist_ok=True)
        Repo.clone_from(url, destination, branch=version)
        return f"Cloned {url} at {version} into {destination}"

    def commit_and_push_file(
        self,
        repo_path: Union[Path, str],
        file_path: Union[PurePath, str],
        file_content: str,
        commit_message: str,
        is_dry_run: bool,
    ) -> str:
        """
        Writes one file into the working copy, commits it alone and pushes the current branch.
        A rejected push drops the local commit again.

        Args:
            repo_path: Root of the working copy.
            file_path: Path of the file, relative to `repo_path`.
        """
        if is_dry_run:
            return f"Would commit and push {file_path} to {repo_path} with message '{commit_message}'"

        repo_path = Path(repo_path)
        full_path = repo_path / file_path
        full_path.parent.mkdir(parents=True, exist_ok=True)
        full_path.write_text(file_content, encoding="utf-8")

        repo = Repo(repo_path)
        repo.index.add([str(PurePath(file_path).as_posix())])
        repo.index.commit(commit_message)
        try:
            repo.git.push("origin", "HEAD")
        except GitCommandError:
            logger.debug(f"Push of {file_path} from {repo_path} failed, dropping the local commit")
            repo.git.reset("--hard", "HEAD~1")
            raise
        logger.debug(f"Pushed {file_path} from {repo_path}")

        return f"Committed and pushed {file_path} to {repo_path} with message '{commit_message}'"

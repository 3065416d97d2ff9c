import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from ruamel.yaml import YAML
from ruamel.yaml.error import YAMLError

from branch_reconciler.domain.exceptions import FatalSetupError, ManifestEntryMissingError
from branch_reconciler.domain.models import RepositoryRecord
from branch_reconciler.infrastructure.acl import ReposFileTranslator

logger = logging.getLogger(__name__)

# Sections of a distribution entry that pin a branch.
VERSIONED_SECTIONS = ("doc", "source")


def _yaml() -> YAML:
    # Round-trip mode keeps key order, comments and unrelated fields intact.
    yaml = YAML(typ="rt")
    yaml.preserve_quotes = True
    yaml.default_flow_style = False
    yaml.width = 4096
    return yaml


def _load_document(path: Union[Path, str]) -> Any:
    path_obj = Path(path)
    try:
        document = _yaml().load(path_obj.read_text(encoding="utf-8"))
    except (OSError, YAMLError) as exc:
        raise FatalSetupError(f"Failed to parse {path_obj}: {exc}") from exc

    if not isinstance(document, dict) or not isinstance(document.get("repositories"), dict):
        raise FatalSetupError(f"{path_obj} has no 'repositories' mapping.")
    return document


def _dump_document(document: Any, path: Union[Path, str]) -> None:
    path_obj = Path(path)
    path_obj.parent.mkdir(parents=True, exist_ok=True)
    with path_obj.open("w", encoding="utf-8") as stream:
        _yaml().dump(document, stream)


class ReposManifest:
    """
    The repository-list manifest (`ros2.repos`), loaded as ordered RepositoryRecord instances.
    Saving writes the records back over the original document.
    """

    def __init__(self, document: Any, repositories: List[RepositoryRecord]):
        self._document = document
        self.repositories = repositories

    @classmethod
    def load(cls, path: Union[Path, str]) -> "ReposManifest":
        document = _load_document(path)
        try:
            repositories = [
                ReposFileTranslator.to_domain(str(key), entry)
                for key, entry in document["repositories"].items()
            ]
        except (ValueError, AttributeError) as exc:
            raise FatalSetupError(f"Invalid repository entry in {path}: {exc}") from exc

        logger.debug(f"Loaded {len(repositories)} repositories from {path}")
        return cls(document, repositories)

    def save(self, path: Union[Path, str]) -> None:
        entries = self._document["repositories"]
        for record in self.repositories:
            ReposFileTranslator.to_entry(record, entries[record.full_name])
        _dump_document(self._document, path)


class DistributionManifest:
    """
    The distribution manifest (`distribution.yaml`). Only the pinned versions of
    known repositories are ever changed; everything else is written back as read.
    """

    def __init__(self, document: Any):
        self._document = document

    @classmethod
    def load(cls, path: Union[Path, str]) -> "DistributionManifest":
        return cls(_load_document(path))

    @property
    def repositories(self) -> Dict[str, Any]:
        return self._document["repositories"]

    def get_version(self, name: str) -> Optional[str]:
        """Returns the source version pinned for `name`, falling back to the doc version."""
        entry = self.repositories.get(name)
        if entry is None:
            raise ManifestEntryMissingError(name)
        for section in reversed(VERSIONED_SECTIONS):
            if isinstance(entry.get(section), dict) and "version" in entry[section]:
                return entry[section]["version"]
        return None

    def set_version(self, name: str, version: str) -> None:
        """
        Pins `version` in every versioned section of the entry for `name`.

        Raises:
            ManifestEntryMissingError: if `name` has no entry.
        """
        entry = self.repositories.get(name)
        if entry is None:
            raise ManifestEntryMissingError(name)

        for section in VERSIONED_SECTIONS:
            if isinstance(entry.get(section), dict):
                entry[section]["version"] = version

    def save(self, path: Union[Path, str]) -> None:
        _dump_document(self._document, path)

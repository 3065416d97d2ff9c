from typing import Any, Dict, Tuple
from branch_reconciler.domain.models import RepositoryRecord

class ReposFileTranslator:
    """
    Anti-corruption layer between raw `ros2.repos` entries and RepositoryRecord instances.
    """

    @staticmethod
    def split_key(key: str) -> Tuple[str, str]:
        """
        Splits an `org/name` manifest key.

        Raises:
            ValueError: if the key has no organisation part.
        """
        org, sep, name = key.partition('/')
        if not sep or not org or not name:
            raise ValueError(f"Repository key '{key}' is not of the form org/name.")
        return org, name

    @staticmethod
    def to_domain(key: str, raw_entry: Dict[str, Any]) -> RepositoryRecord:
        """
        Transforms one `repositories` entry of a repos file into a RepositoryRecord.

        Args:
            key (str): The `org/name` key of the entry.
            raw_entry (Dict[str, Any]): The mapping holding `type`, `url` and `version`.

        Returns:
            RepositoryRecord: The domain model instance for the repository.
        """
        org, name = ReposFileTranslator.split_key(key)

        url = raw_entry.get('url')
        version = raw_entry.get('version')
        if not url or not version:
            raise ValueError(f"Repository '{key}' needs both a url and a version.")

        return RepositoryRecord(
            org=org,
            name=name,
            url=str(url),
            version=str(version),
            type=str(raw_entry.get('type', 'git')),
        )

    @staticmethod
    def to_entry(record: RepositoryRecord, raw_entry: Dict[str, Any]) -> Dict[str, Any]:
        """Writes the record's fields back onto its raw entry, keeping any extra keys."""
        raw_entry['type'] = record.type
        raw_entry['url'] = record.url
        raw_entry['version'] = record.version
        return raw_entry

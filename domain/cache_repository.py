from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional

from .cache_key import CacheKey


class CacheRepository(ABC):
    """
    Abstract contract for the local cache tier.

    Entries are addressed by CacheKey. A changed manifest always yields a
    new key, so an existing entry is never rewritten with other content.
    """

    @abstractmethod
    def exists(self, key: CacheKey) -> bool:
        """
        Check if an entry exists for the key.

        Args:
            key: Cache key of the entry

        Returns:
            True if the entry exists, False otherwise
        """
        pass

    @abstractmethod
    def entry_path(self, key: CacheKey) -> Path:
        """
        Absolute path where the entry for the key lives (or would live).
        """
        pass

    @abstractmethod
    def fetch(self, key: CacheKey, destination: Path, root: Optional[Path] = None) -> None:
        """
        Restore the entry into destination, replacing whatever is there.

        Links inside the entry may point anywhere below root.

        Raises:
            ArchiveFailed: If the entry cannot be extracted
        """
        pass

    @abstractmethod
    def store(self, key: CacheKey, source_directory: Path) -> bool:
        """
        Archive source_directory as the entry for the key.

        Returns:
            False if source_directory does not exist (nothing stored)

        Raises:
            ArchiveFailed: If the archive cannot be written
        """
        pass

    @abstractmethod
    def clean(self) -> int:
        """
        Delete every cache entry under the cache root.

        Returns:
            Number of deleted entries
        """
        pass

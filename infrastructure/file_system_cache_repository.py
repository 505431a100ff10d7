import logging
import re
from pathlib import Path
from typing import Optional

from domain.archive_codec import TarGzCodec
from domain.cache_key import CacheKey
from domain.cache_repository import CacheRepository
from domain.hash_constants import ARCHIVE_SUFFIX, CACHE_ENTRY_PATTERN

logger = logging.getLogger(__name__)


class FileSystemCacheRepository(CacheRepository):
    """Local cache tier: <cache_dir>/<backend>/<project>/<toolchain...>/<fingerprint>.tar.gz"""

    def __init__(self, cache_dir: Path, codec: Optional[TarGzCodec] = None):
        self.cache_dir = Path(cache_dir)
        self.codec = codec or TarGzCodec()

    def prepare(self) -> None:
        """Create the cache root if it doesn't exist yet."""
        logger.info("using %s as cache directory", self.cache_dir)
        if not self.cache_dir.exists():
            self.cache_dir.mkdir(parents=True, exist_ok=True)
            logger.info("creating cache directory")

    def entry_path(self, key: CacheKey) -> Path:
        return key.local_path(self.cache_dir)

    def exists(self, key: CacheKey) -> bool:
        return self.entry_path(key).is_file()

    def entry_size(self, key: CacheKey) -> Optional[int]:
        path = self.entry_path(key)
        if not path.is_file():
            return None
        return path.stat().st_size

    def fetch(self, key: CacheKey, destination: Path, root: Optional[Path] = None) -> None:
        self.codec.decompress(self.entry_path(key), destination, root)

    def store(self, key: CacheKey, source_directory: Path) -> bool:
        # The codec creates intermediate directories and writes atomically
        return self.codec.compress(source_directory, self.entry_path(key))

    def clean(self) -> int:
        """Remove every cached archive whose name is a fingerprint."""
        entry_pattern = re.compile(CACHE_ENTRY_PATTERN, re.IGNORECASE)
        removed = 0
        if not self.cache_dir.exists():
            return removed

        for archive in self.cache_dir.rglob(f"*{ARCHIVE_SUFFIX}"):
            if archive.is_file() and entry_pattern.match(archive.name):
                archive.unlink()
                removed += 1
        return removed

import asyncio
import logging
from pathlib import Path
from typing import Optional

from application.dtos import TransferOutcome
from domain.cache_key import CacheKey
from domain.hash_constants import PARTIAL_SUFFIX
from infrastructure.file_system_cache_repository import FileSystemCacheRepository
from infrastructure.progress_reporter import ProgressReporter
from infrastructure.remote_object_store import RemoteObjectStore, Transfer

logger = logging.getLogger(__name__)


class TieredCacheStore:
    """
    Local cache tier plus an optional remote object store tier.

    Local operations run in worker threads so concurrent backends keep
    making progress. A successful remote download lands at the local entry
    path, so the entry is a local hit from then on.
    """

    def __init__(
        self,
        local: FileSystemCacheRepository,
        remote: Optional[RemoteObjectStore] = None,
        bucket_name: Optional[str] = None,
        progress: Optional[ProgressReporter] = None,
    ):
        if remote is not None and not bucket_name:
            raise ValueError("a remote tier needs a bucket name")
        self.local = local
        self.remote = remote
        self.bucket_name = bucket_name
        self.progress = progress or ProgressReporter(enabled=False)

    @classmethod
    def from_settings(
        cls,
        cache_dir: Path,
        remote_settings=None,
        progress: Optional[ProgressReporter] = None,
    ) -> "TieredCacheStore":
        local = FileSystemCacheRepository(cache_dir)
        if remote_settings is None:
            return cls(local, progress=progress)
        remote = RemoteObjectStore(
            remote_settings.endpoint_url,
            remote_settings.api_key,
            timeout=remote_settings.timeout_seconds,
        )
        return cls(local, remote, remote_settings.bucket_name, progress)

    @property
    def remote_enabled(self) -> bool:
        return self.remote is not None

    def entry_path(self, key: CacheKey) -> Path:
        return self.local.entry_path(key)

    def exists(self, key: CacheKey) -> bool:
        return self.local.exists(key)

    async def fetch(self, key: CacheKey, destination: Path, root: Optional[Path] = None) -> None:
        await asyncio.to_thread(self.local.fetch, key, destination, root)

    async def store(self, key: CacheKey, source_directory: Path) -> bool:
        return await asyncio.to_thread(self.local.store, key, source_directory)

    async def fetch_remote(self, key: CacheKey) -> TransferOutcome:
        """Download the remote entry into the local tier."""
        if self.remote is None:
            raise RuntimeError("remote tier is not enabled")

        entry_path = self.entry_path(key)
        partial_path = entry_path.with_name(entry_path.name + PARTIAL_SUFFIX)
        transfer = self.remote.download(self.bucket_name, key.remote_key, partial_path)
        outcome = await self._follow(transfer, f"[{key.backend}] Downloading from remote store")

        if outcome.ok:
            partial_path.replace(entry_path)
        else:
            partial_path.unlink(missing_ok=True)
        return outcome

    async def publish(self, key: CacheKey) -> TransferOutcome:
        """Upload the local entry to the remote tier."""
        if self.remote is None:
            raise RuntimeError("remote tier is not enabled")

        transfer = self.remote.upload(self.entry_path(key), self.bucket_name, key.remote_key)
        return await self._follow(transfer, f"[{key.backend}] Uploading to remote store")

    async def _follow(self, transfer: Transfer, message: str) -> TransferOutcome:
        with self.progress.bar(message) as bar:
            async for update in transfer:
                self.progress.advance(bar, update)
        return await transfer.outcome()

import asyncio
import io

import httpx
import pytest
from tqdm import tqdm

from application.dtos import TransferOutcome, TransferProgress
from domain.archive_codec import TarGzCodec
from domain.cache_key import CacheKey
from infrastructure.file_system_cache_repository import FileSystemCacheRepository
from infrastructure.object_storage import ObjectStorage
from infrastructure.progress_reporter import ProgressReporter
from infrastructure.remote_object_store import RemoteObjectStore
from infrastructure.settings import RemoteStoreSettings
from infrastructure.tiered_cache_store import TieredCacheStore
from interfaces.api import app, initialize_app

from conftest import FakeRemote

BUCKET = "team-cache"


class TestTieredCacheStore:
    @pytest.fixture
    def key(self):
        return CacheKey("npm", "demo-app", ("1.0",), "a" * 32)

    @pytest.fixture
    def install_dir(self, tmp_path):
        directory = tmp_path / "node_modules"
        (directory / "pkg").mkdir(parents=True)
        (directory / "pkg" / "index.js").write_bytes(b"content")
        return directory

    def test_local_only_store(self, cache_dir, key, install_dir, tmp_path):
        store = TieredCacheStore(FileSystemCacheRepository(cache_dir))

        async def scenario():
            stored = await store.store(key, install_dir)
            await store.fetch(key, tmp_path / "restored")
            return stored

        assert store.remote_enabled is False
        assert asyncio.run(scenario()) is True
        assert store.exists(key)
        assert (tmp_path / "restored" / "pkg" / "index.js").read_bytes() == b"content"

    def test_remote_requires_bucket(self, cache_dir):
        with pytest.raises(ValueError):
            TieredCacheStore(FileSystemCacheRepository(cache_dir), FakeRemote(TransferOutcome.succeeded()))

    def test_remote_operations_need_remote_tier(self, cache_dir, key):
        store = TieredCacheStore(FileSystemCacheRepository(cache_dir))

        with pytest.raises(RuntimeError):
            asyncio.run(store.fetch_remote(key))

    def test_from_settings(self, cache_dir):
        settings = RemoteStoreSettings(endpointUrl="http://cache.local", apiKey="k", bucketName=BUCKET)

        assert TieredCacheStore.from_settings(cache_dir).remote_enabled is False
        store = TieredCacheStore.from_settings(cache_dir, settings)
        assert store.remote_enabled is True
        assert store.bucket_name == BUCKET
        assert store.remote.timeout is None

    def test_remote_fetch_populates_local_tier(self, cache_dir, key, install_dir, tmp_path):
        initialize_app(storage_dir=str(tmp_path / "objects"), is_public=True)
        object_path = ObjectStorage(tmp_path / "objects").object_path(BUCKET, key.remote_key)
        TarGzCodec.compress(install_dir, object_path)

        remote = RemoteObjectStore("http://testserver", "unused", transport=httpx.ASGITransport(app=app))
        stream = io.StringIO()
        store = TieredCacheStore(FileSystemCacheRepository(cache_dir), remote, BUCKET, ProgressReporter(stream))

        outcome = asyncio.run(store.fetch_remote(key))

        assert outcome.ok
        assert store.exists(key)
        assert not store.entry_path(key).with_name(key.archive_name + ".part").exists()
        assert "Downloading from remote store" in stream.getvalue()

    def test_failed_remote_fetch_leaves_no_entry(self, cache_dir, key):
        remote = FakeRemote(TransferOutcome.failed(404, "404 Object not found"))
        store = TieredCacheStore(FileSystemCacheRepository(cache_dir), remote, BUCKET)

        outcome = asyncio.run(store.fetch_remote(key))

        assert outcome.status_code == 404
        assert not store.exists(key)
        assert remote.downloads == [key.remote_key]

    def test_publish_uploads_local_entry(self, cache_dir, key, install_dir, tmp_path):
        storage_dir = tmp_path / "objects"
        initialize_app(storage_dir=str(storage_dir), is_public=True)
        remote = RemoteObjectStore("http://testserver", "unused", transport=httpx.ASGITransport(app=app))
        store = TieredCacheStore(FileSystemCacheRepository(cache_dir), remote, BUCKET)

        async def scenario():
            await store.store(key, install_dir)
            return await store.publish(key)

        outcome = asyncio.run(scenario())

        assert outcome.ok
        assert (storage_dir / BUCKET / key.remote_key).read_bytes() == store.entry_path(key).read_bytes()


class TestProgressReporter:
    def test_bar_follows_transfer_progress(self):
        stream = io.StringIO()
        reporter = ProgressReporter(stream)

        with reporter.bar("[npm] Downloading") as bar:
            reporter.advance(bar, TransferProgress(512, 1024))
            reporter.advance(bar, TransferProgress(1024, 1024))
            assert bar.n == 1024
            assert bar.total == 1024

        output = stream.getvalue()
        assert "[npm] Downloading" in output
        assert "100%" in output

    def test_disabled_reporter_writes_nothing(self):
        stream = io.StringIO()
        reporter = ProgressReporter(stream, enabled=False)

        with reporter.bar("x") as bar:
            reporter.advance(bar, TransferProgress(1, 1))

        assert stream.getvalue() == ""

    def test_size_formatting(self):
        assert tqdm.format_sizeof(1536, "B", 1024) == "1.50kB"
        assert tqdm.format_sizeof(5 * 1024 * 1024, "B", 1024) == "5.00MB"

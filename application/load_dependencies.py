import asyncio
import logging
from typing import Optional

from tqdm import tqdm

from application.dtos import BackendConfig, InstallOutcome, OutcomeKind
from domain.cache_key import CacheKey, CacheKeyResolver
from domain.errors import (
    ArchiveFailed,
    CacheWriteFailed,
    DependencyCacheError,
    InstallFailed,
    RemoteForbidden,
    ToolMissing,
)
from domain.manifest import read_manifest
from domain.remote_error_policy import RemoteTierErrorPolicy
from infrastructure.command_runner import CommandRunner
from infrastructure.tiered_cache_store import TieredCacheStore

logger = logging.getLogger(__name__)


class BackendLogAdapter(logging.LoggerAdapter):
    """Prefixes every message with the backend name."""

    def process(self, msg, kwargs):
        return f"[{self.extra['backend']}] {msg}", kwargs


class DependencyInstallOrchestrator:
    """
    Loads the dependencies of one backend, from cache when possible.

    check manifest -> check cache -> restore, or
    install -> archive -> publish
    """

    def __init__(
        self,
        config: BackendConfig,
        cache_store: TieredCacheStore,
        force_refresh: bool = False,
        command_runner: Optional[CommandRunner] = None,
        key_resolver: Optional[CacheKeyResolver] = None,
        error_policy: Optional[RemoteTierErrorPolicy] = None,
    ):
        self.config = config
        self.cache_store = cache_store
        self.force_refresh = force_refresh
        self.command_runner = command_runner or CommandRunner()
        self.key_resolver = key_resolver or CacheKeyResolver()
        self.error_policy = error_policy or RemoteTierErrorPolicy()
        self.log = BackendLogAdapter(logger, {"backend": config.name})

    async def load_dependencies(self) -> InstallOutcome:
        """Run the backend to completion; failures become a FATAL outcome."""
        try:
            return await self._load()
        except DependencyCacheError as e:
            if e.backend is None:
                e.backend = self.config.name
            self.log.error("%s", e.args[0] if e.args else e)
            return InstallOutcome(self.config.name, OutcomeKind.FATAL, error=e)

    async def _load(self) -> InstallOutcome:
        config = self.config

        if not config.manifest_path.exists():
            self.log.info(
                "Dependency config file %s does not exist. Skipping install", config.manifest_path
            )
            return InstallOutcome(config.name, OutcomeKind.SKIPPED)
        self.log.info("config file exists")

        if not self.command_runner.which(config.cli_name):
            raise ToolMissing(f"Command line tool {config.cli_name} not installed", config.name)
        self.log.info("cli exists")

        key = await self._resolve_key()

        if self.force_refresh:
            self.log.info("force refresh, ignoring cached dependencies")
            return await self._install_then_archive(key, publish=self.cache_store.remote_enabled)

        if self.cache_store.exists(key):
            self.log.info("local cache exists")
            size = self.cache_store.local.entry_size(key)
            if size is not None:
                self.log.info("cache size %s", tqdm.format_sizeof(size, "B", 1024))
            await self._restore(key)
            return InstallOutcome(config.name, OutcomeKind.CACHE_HIT, key)

        if self.cache_store.remote_enabled:
            return await self._restore_from_remote(key)

        return await self._install_then_archive(key, publish=False)

    async def _resolve_key(self) -> CacheKey:
        config = self.config
        manifest = await asyncio.to_thread(read_manifest, config.manifest_path, config.manifest_fields)
        fingerprint = manifest.fingerprint()
        self.log.info("hash of %s: %s", config.manifest_path, fingerprint)
        toolchain_version = await asyncio.to_thread(config.version_probe)
        return self.key_resolver.resolve(config.name, manifest.project_name, toolchain_version, fingerprint)

    async def _restore(self, key: CacheKey) -> None:
        install_directory = self.config.install_directory
        self.log.info("clearing installed dependencies at %s", install_directory)
        self.log.info("extracting dependencies from %s", self.cache_store.entry_path(key))
        await self.cache_store.fetch(key, install_directory, self.config.working_directory)
        self.log.info("done extracting")

    async def _restore_from_remote(self, key: CacheKey) -> InstallOutcome:
        outcome = await self.cache_store.fetch_remote(key)
        if outcome.ok:
            self.log.info("done downloading from remote store")
            self.log.info("cachePath %s", self.cache_store.entry_path(key))
            await self._restore(key)
            return InstallOutcome(self.config.name, OutcomeKind.CACHE_HIT, key)

        error = self.error_policy.to_error(outcome, self.config.name)
        if error.fatal:
            raise error

        if isinstance(error, RemoteForbidden):
            self.log.error("%s", error.args[0])
        else:
            self.log.info("%s", error.args[0])
        self.log.info("Continuing to install and archive locally")
        return await self._install_then_archive(key, publish=not isinstance(error, RemoteForbidden))

    async def _install_then_archive(self, key: CacheKey, publish: bool) -> InstallOutcome:
        await self._install()

        try:
            archived = await self._archive(key)
        except CacheWriteFailed as e:
            self.log.warning("%s", e.args[0])
            return InstallOutcome(self.config.name, OutcomeKind.INSTALLED_CACHE_FAILED, key, e)

        if not archived:
            return InstallOutcome(self.config.name, OutcomeKind.INSTALLED_CACHE_FAILED, key)

        if publish:
            await self._publish(key)
        return InstallOutcome(self.config.name, OutcomeKind.INSTALLED_AND_CACHED, key)

    async def _install(self) -> None:
        command = self.config.full_install_command
        self.log.info("running [%s]...", command)
        exit_code = await self.command_runner.run(command, cwd=self.config.working_directory)
        if exit_code != 0:
            raise InstallFailed(f"error running {command}", self.config.name, exit_code)
        self.log.info("installed %s dependencies, now archiving", self.config.cli_name)

    async def _archive(self, key: CacheKey) -> bool:
        install_directory = self.config.install_directory
        self.log.info("archiving dependencies from %s", install_directory)
        try:
            archived = await self.cache_store.store(key, install_directory)
        except ArchiveFailed as e:
            raise CacheWriteFailed(
                f"{e.args[0]}; dependencies were installed but not cached", self.config.name
            ) from e

        if not archived:
            self.log.info("skipping archive. Install directory does not exist.")
            return False
        self.log.info("installed and archived dependencies")
        return True

    async def _publish(self, key: CacheKey) -> None:
        self.log.info("remote store enabled, uploading the archive")
        outcome = await self.cache_store.publish(key)
        if outcome.ok:
            self.log.info("done uploading to remote store")
            self.log.info("remote key %s", key.remote_key)
        else:
            self.log.error("%s", outcome.error or f"HTTP {outcome.status_code}")
            self.log.info("Could not upload to remote store, but local installation worked.")

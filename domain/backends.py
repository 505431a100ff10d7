import json
import logging
import platform
import re
import subprocess
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from application.dtos import BackendConfig
from .cache_key import ToolchainVersion
from .errors import ToolMissing

logger = logging.getLogger(__name__)


def probe_version(command: List[str], backend: str) -> str:
    """Run a version command and return its trimmed output."""
    try:
        result = subprocess.run(command, capture_output=True, text=True)
    except OSError as e:
        raise ToolMissing(f"Command line tool {command[0]} not installed: {e}", backend) from e

    if result.returncode != 0:
        raise ToolMissing(f"'{' '.join(command)}' failed: {result.stderr.strip()}", backend)
    return result.stdout.strip()


def os_identifier() -> str:
    """Host OS name and release with whitespace replaced, e.g. ``Linux-6.1.0``."""
    return re.sub(r"\s", "-", f"{platform.system()} {platform.release()}".strip())


def _read_json(path: Path) -> Optional[Dict[str, Any]]:
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError):
        return None
    return data if isinstance(data, dict) else None


class DependencyBackend(ABC):
    """Abstract base class for package manager backends."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Backend identifier; outermost cache key component."""
        pass

    @property
    def cli_name(self) -> str:
        return self.name

    @property
    @abstractmethod
    def install_command(self) -> str:
        pass

    @property
    @abstractmethod
    def manifest_fields(self) -> Tuple[Optional[str], Optional[str], Optional[str]]:
        """Names of the primary, development and override dependency mappings."""
        pass

    @abstractmethod
    def manifest_path(self, working_directory: Path) -> Path:
        pass

    @abstractmethod
    def install_directory(self, working_directory: Path) -> Path:
        pass

    @abstractmethod
    def toolchain_version(self) -> ToolchainVersion:
        pass

    def create_config(
        self,
        working_directory: Path,
        install_options: str = "",
        remote: Optional[Any] = None,
    ) -> BackendConfig:
        working_directory = Path(working_directory).resolve()
        return BackendConfig(
            name=self.name,
            cli_name=self.cli_name,
            manifest_path=self.manifest_path(working_directory),
            install_directory=self.install_directory(working_directory),
            install_command=self.install_command,
            manifest_fields=self.manifest_fields,
            version_probe=self.toolchain_version,
            working_directory=working_directory,
            install_options=install_options,
            remote=remote,
        )


class NpmBackend(DependencyBackend):
    """npm: keys are also separated by OS and node version."""

    @property
    def name(self) -> str:
        return "npm"

    @property
    def install_command(self) -> str:
        return "npm install"

    @property
    def manifest_fields(self) -> Tuple[Optional[str], Optional[str], Optional[str]]:
        return ("dependencies", "devDependencies", "overrides")

    def manifest_path(self, working_directory: Path) -> Path:
        shrinkwrap_path = working_directory / "npm-shrinkwrap.json"
        if shrinkwrap_path.exists():
            logger.info("[npm] using npm-shrinkwrap.json instead of package.json")
            return shrinkwrap_path
        return working_directory / "package.json"

    def install_directory(self, working_directory: Path) -> Path:
        return working_directory / "node_modules"

    def toolchain_version(self) -> ToolchainVersion:
        node_version = probe_version(["node", "-v"], self.name)
        npm_version = probe_version(["npm", "--version"], self.name)
        return ToolchainVersion.of(os_identifier(), f"node-{node_version}", f"npm-{npm_version}")


class BowerBackend(DependencyBackend):

    @property
    def name(self) -> str:
        return "bower"

    @property
    def install_command(self) -> str:
        return "bower install"

    @property
    def manifest_fields(self) -> Tuple[Optional[str], Optional[str], Optional[str]]:
        return ("dependencies", "devDependencies", "overrides")

    def manifest_path(self, working_directory: Path) -> Path:
        return working_directory / "bower.json"

    def install_directory(self, working_directory: Path) -> Path:
        bowerrc = _read_json(working_directory / ".bowerrc")
        if bowerrc and isinstance(bowerrc.get("directory"), str):
            logger.info("[bower] bower_components located at %s per .bowerrc", bowerrc["directory"])
            return working_directory / bowerrc["directory"]
        return working_directory / "bower_components"

    def toolchain_version(self) -> ToolchainVersion:
        return ToolchainVersion.of(probe_version(["bower", "--version"], self.name))


class ComposerBackend(DependencyBackend):

    @property
    def name(self) -> str:
        return "composer"

    @property
    def install_command(self) -> str:
        return "composer install"

    @property
    def manifest_fields(self) -> Tuple[Optional[str], Optional[str], Optional[str]]:
        return ("require", "require-dev", None)

    def manifest_path(self, working_directory: Path) -> Path:
        return working_directory / "composer.json"

    def install_directory(self, working_directory: Path) -> Path:
        composer_json = _read_json(working_directory / "composer.json") or {}
        config = composer_json.get("config")
        if isinstance(config, dict) and isinstance(config.get("vendor-dir"), str):
            return working_directory / config["vendor-dir"]
        return working_directory / "vendor"

    def toolchain_version(self) -> ToolchainVersion:
        output = probe_version(["composer", "--version", "--no-ansi"], self.name)
        # "Composer version 2.6.5 2023-10-06 10:11:52"
        match = re.search(r"\d+\.\d+(\.\d+)?\S*", output)
        return ToolchainVersion.of(match.group(0) if match else output.replace(" ", "-"))


class BackendRegistry:
    """Maps backend identifiers to their definitions."""

    def __init__(self):
        self._backends: Dict[str, DependencyBackend] = {}

    def register(self, backend: DependencyBackend) -> None:
        if backend.name in self._backends:
            raise ValueError(f"Backend already registered: {backend.name}")
        self._backends[backend.name] = backend

    def names(self) -> List[str]:
        return list(self._backends)

    def __contains__(self, name: str) -> bool:
        return name in self._backends

    def get(self, name: str) -> DependencyBackend:
        try:
            return self._backends[name]
        except KeyError:
            raise ValueError(f"Unsupported manager: {name}") from None

    def create_config(
        self,
        name: str,
        working_directory: Path,
        install_options: str = "",
        remote: Optional[Any] = None,
    ) -> BackendConfig:
        return self.get(name).create_config(working_directory, install_options, remote)


def default_registry() -> BackendRegistry:
    registry = BackendRegistry()
    registry.register(NpmBackend())
    registry.register(BowerBackend())
    registry.register(ComposerBackend())
    return registry

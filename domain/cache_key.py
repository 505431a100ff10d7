"""Cache key resolution shared by the local and remote tiers."""

from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Tuple

from .hash_constants import ARCHIVE_SUFFIX


@dataclass(frozen=True)
class ToolchainVersion:
    """Ordered version components that separate cache namespaces."""
    components: Tuple[str, ...]

    @classmethod
    def of(cls, *components: str) -> "ToolchainVersion":
        return cls(tuple(components))


@dataclass(frozen=True)
class CacheKey:
    backend: str
    project: str
    toolchain: Tuple[str, ...]
    fingerprint: str

    @property
    def components(self) -> Tuple[str, ...]:
        """Key components in storage order; the backend is always outermost."""
        return (self.backend, self.project) + self.toolchain + (self.archive_name,)

    @property
    def archive_name(self) -> str:
        return f"{self.fingerprint}{ARCHIVE_SUFFIX}"

    @property
    def remote_key(self) -> str:
        # Remote keys are always slash separated, whatever the host platform
        return "/".join(self.components)

    def local_path(self, cache_root: Path) -> Path:
        return Path(cache_root).joinpath(*self.components)


def _check_component(component: str) -> str:
    if not isinstance(component, str) or not component:
        raise ValueError("cache key components must be non-empty strings")
    if "/" in component or "\\" in component or component in (".", ".."):
        raise ValueError(f"invalid cache key component: {component!r}")
    return component


class CacheKeyResolver:
    """Builds cache keys from backend, project, toolchain and fingerprint."""

    def resolve(
        self,
        backend_name: str,
        project_name: str,
        toolchain_version: ToolchainVersion,
        fingerprint: str,
    ) -> CacheKey:
        toolchain = tuple(_check_component(c) for c in _as_components(toolchain_version))
        return CacheKey(
            backend=_check_component(backend_name),
            project=_check_component(project_name),
            toolchain=toolchain,
            fingerprint=_check_component(fingerprint),
        )


def _as_components(toolchain_version) -> Iterable[str]:
    if isinstance(toolchain_version, ToolchainVersion):
        return toolchain_version.components
    return tuple(toolchain_version)

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Optional, Tuple

from domain.cache_key import CacheKey, ToolchainVersion


@dataclass(frozen=True)
class BackendConfig:
    name: str
    cli_name: str
    manifest_path: Path
    install_directory: Path
    install_command: str
    manifest_fields: Tuple[Optional[str], Optional[str], Optional[str]]
    version_probe: Callable[[], ToolchainVersion]
    working_directory: Path
    install_options: str = ""
    remote: Optional[Any] = None

    @property
    def full_install_command(self) -> str:
        return f"{self.install_command} {self.install_options}".strip()


class OutcomeKind(str, Enum):
    CACHE_HIT = "cache_hit"
    INSTALLED_AND_CACHED = "installed_and_cached"
    INSTALLED_CACHE_FAILED = "installed_cache_failed"
    SKIPPED = "skipped"
    FATAL = "fatal"


@dataclass
class InstallOutcome:
    backend: str
    kind: OutcomeKind
    cache_key: Optional[CacheKey] = None
    error: Optional[BaseException] = None

    @property
    def is_fatal(self) -> bool:
        return self.kind is OutcomeKind.FATAL


@dataclass(frozen=True)
class TransferProgress:
    transferred: int
    total: int


@dataclass(frozen=True)
class TransferOutcome:
    ok: bool
    status_code: Optional[int] = None
    error: Optional[str] = None

    @classmethod
    def succeeded(cls, status_code: Optional[int] = None) -> "TransferOutcome":
        return cls(ok=True, status_code=status_code)

    @classmethod
    def failed(cls, status_code: Optional[int] = None, error: Optional[str] = None) -> "TransferOutcome":
        return cls(ok=False, status_code=status_code, error=error)

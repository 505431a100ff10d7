"""Error taxonomy for dependency cache runs.

Every error carries a ``fatal`` flag. Fatal errors end the orchestration of
the backend that raised them; non-fatal ones are logged and the run carries
on (usually by installing from scratch).
"""

from typing import Optional


class DependencyCacheError(Exception):
    """Base class for errors raised while loading dependencies."""

    fatal = True

    def __init__(self, message: str, backend: Optional[str] = None):
        super().__init__(message)
        self.backend = backend

    def __str__(self) -> str:
        message = super().__str__()
        if self.backend:
            return f"[{self.backend}] {message}"
        return message


class ManifestUnreadable(DependencyCacheError):
    """The dependency manifest could not be parsed as structured data."""


class ToolMissing(DependencyCacheError):
    """The package manager's command line tool is not available."""


class InstallFailed(DependencyCacheError):
    """The install command exited with a non-zero status."""

    def __init__(self, message: str, backend: Optional[str] = None, exit_code: Optional[int] = None):
        super().__init__(message, backend)
        self.exit_code = exit_code


class ArchiveFailed(DependencyCacheError):
    """An archive could not be created or extracted."""


class CacheWriteFailed(DependencyCacheError):
    """The install worked but its output could not be written to the cache."""

    fatal = False


class RemoteTransferError(DependencyCacheError):
    """Base class for remote tier transfer failures."""

    def __init__(self, message: str, backend: Optional[str] = None, status_code: Optional[int] = None):
        super().__init__(message, backend)
        self.status_code = status_code


class RemoteNotFound(RemoteTransferError):
    """The entry is not present in the remote store."""

    fatal = False


class RemoteForbidden(RemoteTransferError):
    """The remote store rejected the configured credentials."""

    fatal = False


class RemoteUnknown(RemoteTransferError):
    """Any other remote transfer failure."""


class SettingsError(DependencyCacheError):
    """A configuration file is present but invalid."""

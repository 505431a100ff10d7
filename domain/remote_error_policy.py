"""Classification of remote tier download failures."""

from enum import Enum
from typing import Optional

from application.dtos import TransferOutcome
from .errors import RemoteForbidden, RemoteNotFound, RemoteTransferError, RemoteUnknown


class RemoteFailureKind(str, Enum):
    NOT_FOUND = "not_found"
    FORBIDDEN = "forbidden"
    UNKNOWN = "unknown"


FORBIDDEN_STATUS_CODES = frozenset({401, 403})


class RemoteTierErrorPolicy:
    """
    Decides what a failed remote download means for the run.

    Absent entries and rejected credentials fall back to a local install;
    everything else is fatal for the backend. Only structured status codes
    are looked at, never the error text.
    """

    def classify(self, outcome: TransferOutcome) -> RemoteFailureKind:
        if outcome.ok:
            raise RuntimeError("cannot classify a successful transfer")
        if outcome.status_code is None and not outcome.error:
            raise RuntimeError("transfer failed without a status code or an error message")

        if outcome.status_code == 404:
            return RemoteFailureKind.NOT_FOUND
        if outcome.status_code in FORBIDDEN_STATUS_CODES:
            return RemoteFailureKind.FORBIDDEN
        return RemoteFailureKind.UNKNOWN

    def to_error(self, outcome: TransferOutcome, backend: Optional[str] = None) -> RemoteTransferError:
        """Build the typed error for a failed download."""
        kind = self.classify(outcome)
        detail = outcome.error or f"HTTP {outcome.status_code}"
        if kind is RemoteFailureKind.NOT_FOUND:
            return RemoteNotFound(
                f"archive not found in remote store ({detail})", backend, outcome.status_code
            )
        if kind is RemoteFailureKind.FORBIDDEN:
            return RemoteForbidden(
                f"remote store rejected the credentials ({detail}), check your remote store settings",
                backend,
                outcome.status_code,
            )
        return RemoteUnknown(f"remote download failed: {detail}", backend, outcome.status_code)

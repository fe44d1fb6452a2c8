"""Custom exceptions for fx-sync."""

from __future__ import annotations

from fxsync.domain.enums import RemoteErrorCode


class FxSyncError(Exception):
    """Base exception for all fx-sync errors."""

    def __init__(self, message: str, details: dict | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ConfigurationError(FxSyncError):
    """Raised when there's a configuration problem."""

    pass


class RemoteError(FxSyncError):
    """Raised by the remote client for any failed request.

    ``code`` is the stable classification the engine branches on; the raw
    server text stays in ``message``.
    """

    def __init__(
        self,
        message: str,
        code: RemoteErrorCode = RemoteErrorCode.REJECTED,
        status_code: int | None = None,
        details: dict | None = None,
    ) -> None:
        super().__init__(message, details)
        self.code = code
        self.status_code = status_code


class AnalysisRejected(FxSyncError):
    """Static analysis reported a serious (priority >= 9) violation."""

    pass


class CompileRejected(FxSyncError):
    """The server-side compile check failed."""

    pass


class UploadRejected(FxSyncError):
    """Upload failed for a reason that is not a recoverable conflict."""

    pass


class VersionConflict(UploadRejected):
    """Upload failed on an optimistic-concurrency check."""

    def __init__(
        self,
        message: str,
        update_time: int,
        details: dict | None = None,
    ) -> None:
        super().__init__(message, details)
        self.update_time = update_time


class StaleVersionConflict(VersionConflict):
    """The server holds a newer version than the submitted update time."""

    pass


class DuplicateNameConflict(VersionConflict):
    """A create collided with an artifact that already exists."""

    pass


class IncompleteArtifact(FxSyncError):
    """A fetched or local record lacks a required field."""

    pass


class LedgerError(FxSyncError):
    """The ledger file could not be read or written."""

    pass

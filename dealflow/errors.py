"""
DealFlow — Error taxonomy for the sync pipeline.

AuthExchangeError and RemoteApiError come out of the marketplace client,
TransformError out of the transformer (isolated per record), SyncRunError
and SyncInProgressError out of the orchestrator.
"""

from __future__ import annotations

from dealflow.config import settings


class DealFlowError(Exception):
    """Base class for every error raised by this package."""


class AuthExchangeError(DealFlowError):
    """
    Token exchange or refresh failed.

    requires_reauth=True means the grant itself is invalid or expired and the
    seller must go through the authorization redirect again.
    """

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        body: str = "",
        requires_reauth: bool = False,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body
        self.requires_reauth = requires_reauth

    @property
    def retryable(self) -> bool:
        return False


class RemoteApiError(DealFlowError):
    """Non-2xx transport response, or an error envelope inside an HTTP 200."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        error_codes: list[str] | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.error_codes = error_codes or []

    @property
    def retryable(self) -> bool:
        return self.status_code not in settings.SYNC_NON_RETRYABLE_STATUSES


class TransformError(DealFlowError):
    """A raw record has no usable transaction id or sold price."""

    def __init__(self, message: str, external_id: str | None = None) -> None:
        super().__init__(message)
        self.external_id = external_id


class SyncRunError(DealFlowError):
    """A failure outside the per-record loop that aborts the whole run."""


class SyncInProgressError(DealFlowError):
    """A sync is already active and the caller did not pass force=True."""

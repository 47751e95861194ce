"""Error taxonomy shared by services and adapters.

Row validation problems are values (`RowValidationError`), not exceptions, and
missing expiry timestamps are normalized silently; only the classes below are
ever raised, and the orchestrator/submission layers turn them back into values.
"""

from __future__ import annotations


class BulkPayoutError(Exception):
    """Base class for every error raised by this package."""


class ConfigError(BulkPayoutError):
    """Configuration is missing or inconsistent (base URL, token...)."""


class TransportError(BulkPayoutError):
    """Network failure, timeout or non-2xx response on a single call."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code

    @property
    def retryable(self) -> bool:
        if self.status_code is None:
            return True
        return self.status_code == 429 or self.status_code >= 500


class StreamProtocolError(BulkPayoutError):
    """The event stream could not be opened or was malformed."""


class StreamFailed(BulkPayoutError):
    """The server terminated the stream with an `error` frame."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

"""Error taxonomy shared by the gateway and the playback core."""

from typing import Optional


class DreamweaverError(Exception):
    """Base class for all Dreamweaver errors."""


class UpstreamError(DreamweaverError):
    """The generation service failed, timed out or returned an unusable reply."""

    def __init__(self, message: str, status_code: Optional[int] = None, retryable: bool = True):
        super().__init__(message)
        self.status_code = status_code
        self.retryable = retryable


class ValidationError(DreamweaverError):
    """Malformed input to a generation call. Never retried."""


class SessionExpired(DreamweaverError):
    """The session clock reached zero."""

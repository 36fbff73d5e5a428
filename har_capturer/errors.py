"""Error taxonomy for HAR capture.

Every failure that aborts a page capture derives from ``CaptureError`` so that
callers can handle the whole family with a single ``except`` clause. Only
``ContentFetchFailure`` is absorbed inside a session; it is still a proper
exception type so it can be logged and inspected.
"""

from typing import Any, Iterable, List, Optional


class CaptureError(Exception):
    """Base class for page capture failures."""

    def __init__(self, message: str, url: Optional[str] = None):
        super().__init__(message)
        self.url = url

    def __str__(self) -> str:
        message = super().__str__()
        if self.url:
            return f"{message} ({self.url})"
        return message


class IncompleteCapture(CaptureError):
    """Event stream ended before every tracked request reached a terminal state."""

    def __init__(
        self,
        message: str = "Incomplete capture",
        url: Optional[str] = None,
        pending: Optional[Iterable[str]] = None,
    ):
        super().__init__(message, url)
        self.pending: List[str] = list(pending or [])


class Disconnected(CaptureError):
    """Remote peer connection lost mid-session."""

    def __init__(self, message: str = "Disconnected", url: Optional[str] = None):
        super().__init__(message, url)


class TimedOut(CaptureError):
    """Configured session deadline elapsed before the page completed."""

    def __init__(
        self,
        message: str = "Timed out",
        url: Optional[str] = None,
        timeout_ms: Optional[float] = None,
    ):
        super().__init__(message, url)
        self.timeout_ms = timeout_ms


class HookFailure(CaptureError):
    """A user-supplied pre or post hook raised."""

    def __init__(self, hook_name: str, cause: BaseException, url: Optional[str] = None):
        super().__init__(f"{hook_name} failed: {cause}", url)
        self.hook_name = hook_name
        self.cause = cause


class ContentFetchFailure(CaptureError):
    """The body of a single response could not be retrieved."""

    def __init__(self, request_id: str, cause: Any = None, url: Optional[str] = None):
        super().__init__(f"Unable to fetch body for request {request_id}: {cause}", url)
        self.request_id = request_id
        self.cause = cause


class CaptureCancelled(CaptureError):
    """The event stream was cancelled before completion."""

    def __init__(self, message: str = "Capture cancelled", url: Optional[str] = None):
        super().__init__(message, url)


class ConfigLoadError(Exception):
    """Exception raised when configuration loading fails."""
    pass

"""HAR capture from Chrome DevTools Protocol events.

Converts CDP event streams, either recorded or captured live from a
Chromium tab driven by Playwright, into HAR 1.2 documents.

Usage:
    from har_capturer import from_log, load_event_log

    document = from_log("https://example.com", load_event_log("events.json"))
    print(document.to_json())
"""

__version__ = "1.0.0"

from .errors import (
    CaptureError,
    IncompleteCapture,
    Disconnected,
    TimedOut,
    HookFailure,
    ContentFetchFailure,
    CaptureCancelled,
    ConfigLoadError,
)
from .models import HarDocument, ProtocolEvent, SessionOutcome
from .capture import (
    StatsEngine,
    LogReplayer,
    from_log,
    load_event_log,
    LiveSession,
    LiveSessionConfig,
    BrowserConfig,
    BrowserFactory,
    CaptureRunner,
    RunnerConfig,
)
from .config import CaptureConfig, load_config

__all__ = [
    '__version__',

    # Errors
    'CaptureError',
    'IncompleteCapture',
    'Disconnected',
    'TimedOut',
    'HookFailure',
    'ContentFetchFailure',
    'CaptureCancelled',
    'ConfigLoadError',

    # Models
    'HarDocument',
    'ProtocolEvent',
    'SessionOutcome',

    # Capture
    'StatsEngine',
    'LogReplayer',
    'from_log',
    'load_event_log',
    'LiveSession',
    'LiveSessionConfig',
    'BrowserConfig',
    'BrowserFactory',
    'CaptureRunner',
    'RunnerConfig',

    # Configuration
    'CaptureConfig',
    'load_config',
]

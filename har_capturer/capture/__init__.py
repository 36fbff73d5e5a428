"""Capture components: event folding, HAR assembly and live sessions.

Main Components:
- StatsEngine: folds CDP events into per-request state and decides completion
- HAR builder: turns folded state into HAR 1.2 pages and entries
- LogReplayer: offline conversion of recorded event logs
- LiveSession: single-URL capture racing load, disconnection and timeout
- CaptureRunner: multi-URL capture with parallelism and retries

Usage:
    from har_capturer.capture import from_log

    document = from_log("https://example.com", events)
"""

__all__ = [
    # Engine
    "StatsEngine",
    "PendingRequest",
    "EngineOutcome",
    "HeaderSet",
    "build_document",
    "merge_documents",

    # Offline
    "LogReplayer",
    "from_log",
    "load_event_log",

    # Live
    "LiveSession",
    "LiveSessionConfig",
    "SessionArbiter",
    "SessionTimer",
    "ScrollSimulator",
    "InteractionConfig",
    "ProtocolClient",
    "BrowsingContext",
    "BrowserConfig",
    "BrowserFactory",
    "PlaywrightProtocolClient",
    "PlaywrightBrowsingContext",

    # Runner
    "CaptureRunner",
    "RunnerConfig",
]

from .headers import HeaderSet
from .har_builder import build_document, merge_documents
from .stats import StatsEngine, PendingRequest, EngineOutcome
from .replay import LogReplayer, from_log, load_event_log
from .timer import SessionTimer
from .context import (
    ProtocolClient,
    BrowsingContext,
    BrowserConfig,
    BrowserFactory,
    PlaywrightProtocolClient,
    PlaywrightBrowsingContext,
)
from .interaction import ScrollSimulator, InteractionConfig
from .live import LiveSession, LiveSessionConfig, SessionArbiter
from .runner import CaptureRunner, RunnerConfig

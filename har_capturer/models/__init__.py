"""HAR capture data models package."""

from .har import (
    HAR_VERSION,
    HeaderEntry,
    QueryParam,
    PostData,
    HarRequest,
    HarResponse,
    Content,
    Timings,
    HarEntry,
    PageTimings,
    HarPage,
    Creator,
    HarLog,
    HarDocument,
)

from .events import (
    ProtocolEvent,
    EngineStatus,
    RequestPhase,
    SessionOutcome,
)

__all__ = [
    # HAR models
    'HAR_VERSION',
    'HeaderEntry',
    'QueryParam',
    'PostData',
    'HarRequest',
    'HarResponse',
    'Content',
    'Timings',
    'HarEntry',
    'PageTimings',
    'HarPage',
    'Creator',
    'HarLog',
    'HarDocument',

    # Event models
    'ProtocolEvent',
    'EngineStatus',
    'RequestPhase',
    'SessionOutcome',
]

"""Protocol event and outcome models shared by the replay and live drivers."""

from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, ValidationError


class ProtocolEvent(BaseModel):
    """A CDP notification: ``{"method": ..., "params": {...}}``."""

    method: str = Field(description="Fully qualified protocol method, e.g. Network.loadingFinished")
    params: Dict[str, Any] = Field(default_factory=dict, description="Event payload")

    @classmethod
    def coerce(cls, raw: Any) -> Optional["ProtocolEvent"]:
        """Build an event from a raw mapping, returning None for unusable shapes."""
        if isinstance(raw, cls):
            return raw
        if not isinstance(raw, dict):
            return None
        params = raw.get('params')
        if params is None:
            params = {}
        try:
            return cls(method=raw.get('method'), params=params)
        except ValidationError:
            return None


class EngineStatus(str, Enum):
    """State reported by the stats engine after each event."""
    CONTINUING = "continuing"
    COMPLETE = "complete"
    FAILED = "failed"


class RequestPhase(str, Enum):
    """Lifecycle phase of a single request hop."""
    PENDING = "pending"
    FINISHED = "finished"
    FAILED = "failed"
    REDIRECTED = "redirected"
    CACHED = "cached"           # served from cache, not tracked further


class SessionOutcome(str, Enum):
    """Which branch of a live session settled first."""
    LOADED = "loaded"
    DISCONNECTED = "disconnected"
    TIMED_OUT = "timed_out"
    FAILED = "failed"

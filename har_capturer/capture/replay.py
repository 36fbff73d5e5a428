"""Offline conversion of recorded CDP event logs into HAR documents."""

import json
import logging
from pathlib import Path
from typing import Any, Iterable, List, Union

from ..errors import CaptureError, IncompleteCapture
from ..models.har import HarDocument
from .stats import StatsEngine

logger = logging.getLogger(__name__)


class LogReplayer:
    """Feeds a finite, ordered event sequence through a StatsEngine."""

    def __init__(self, url: str, content: bool = False):
        self.url = url
        self.content = content

    def convert(self, events: Iterable[Any]) -> HarDocument:
        """Fold every event in order and build the document.

        Args:
            events: Recorded ``{method, params}`` notifications

        Returns:
            HarDocument for the page

        Raises:
            IncompleteCapture: If the log ends before the page load completed
        """
        engine = StatsEngine(self.url, content=self.content)
        count = 0
        for event in events:
            outcome = engine.process_event(event)
            count += 1
            if outcome.is_failed:
                raise outcome.error

        outcome = engine.finish(strict=True)
        if outcome.is_failed:
            logger.debug(f"Replay of {count} events for {self.url} failed: {outcome.error}")
            raise outcome.error

        logger.debug(f"Replayed {count} events for {self.url}")
        return outcome.document


def from_log(url: str, events: Iterable[Any], content: bool = False) -> HarDocument:
    """Convert a recorded event log for ``url`` into a HAR document."""
    return LogReplayer(url, content=content).convert(events)


def load_event_log(path: Union[str, Path]) -> List[Any]:
    """Read a JSON array of ``{method, params}`` events from disk.

    Raises:
        CaptureError: If the file cannot be read or is not a JSON array
    """
    log_path = Path(path)
    try:
        with open(log_path, 'r', encoding='utf-8') as f:
            events = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise CaptureError(f"Cannot read event log {log_path}: {e}") from e

    if not isinstance(events, list):
        raise CaptureError(f"Event log {log_path} must contain a JSON array")
    return events


__all__ = ['LogReplayer', 'from_log', 'load_event_log', 'IncompleteCapture']

"""Simulated user interaction performed after the page load completed.

Scrolling triggers lazily loaded resources and analytics beacons that a
static load would never request, so the capture reflects a real visit.
"""

import asyncio
import logging
import math
import random
from typing import Any, Awaitable, Callable, Dict, Optional

from .context import ProtocolClient

logger = logging.getLogger(__name__)

SleepFunc = Callable[[float], Awaitable[Any]]


class InteractionConfig:
    """Pacing parameters of the scroll simulation (all durations in ms)."""

    def __init__(
        self,
        min_scroll_px: int = 100,
        max_scroll_px: int = 300,
        min_pause_ms: int = 50,
        max_pause_ms: int = 150,
        min_dwell_ms: int = 550,
        max_dwell_ms: int = 2150,
        max_steps: int = 200,
    ):
        """Initialize interaction pacing.

        Args:
            min_scroll_px: Smallest wheel delta
            max_scroll_px: Largest wheel delta
            min_pause_ms: Shortest pause between wheel events
            max_pause_ms: Longest pause between wheel events
            min_dwell_ms: Shortest wait after the last wheel event
            max_dwell_ms: Longest wait after the last wheel event
            max_steps: Upper bound on wheel events for endless pages
        """
        self.min_scroll_px = min_scroll_px
        self.max_scroll_px = max_scroll_px
        self.min_pause_ms = min_pause_ms
        self.max_pause_ms = max_pause_ms
        self.min_dwell_ms = min_dwell_ms
        self.max_dwell_ms = max_dwell_ms
        self.max_steps = max_steps


def random_int(rng: random.Random, low: float, high: float) -> int:
    """Uniform integer in ``[ceil(low), floor(high)]``, tolerating an empty range."""
    low_i = math.ceil(low)
    high_i = math.floor(high)
    if high_i < low_i:
        return low_i
    return rng.randint(low_i, high_i)


class ScrollSimulator:
    """Scrolls the page down with mouse-wheel events at a human pace."""

    def __init__(
        self,
        config: Optional[InteractionConfig] = None,
        rng: Optional[random.Random] = None,
        sleep: Optional[SleepFunc] = None,
    ):
        self.config = config or InteractionConfig()
        self.rng = rng or random.Random()
        self.sleep = sleep or asyncio.sleep
        self.steps = 0

    async def run(self, client: ProtocolClient) -> bool:
        """Run the simulation against ``client``.

        Protocol failures end the simulation early; they never fail the
        capture.

        Returns:
            True if the simulation ran to the end
        """
        try:
            await self._scroll(client)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning(f"Interaction simulation aborted: {e}")
            return False
        return True

    async def _scroll(self, client: ProtocolClient) -> None:
        cfg = self.config
        layout = await client.send('Page.getLayoutMetrics')
        height = _content_height(layout)
        viewport = layout['visualViewport']
        viewport_height = viewport['clientHeight']
        viewport_width = viewport['clientWidth']

        x = random_int(self.rng, 0, viewport_width - 1)
        y = random_int(self.rng, 0, viewport_height - 1)
        target = random_int(self.rng, height / 2.5, height / 1.5)
        logger.debug(f"Scrolling towards {target}px from ({x}, {y})")

        last_page_y = 0
        self.steps = 0
        while self.steps < cfg.max_steps:
            distance = random_int(self.rng, cfg.min_scroll_px, cfg.max_scroll_px)
            await client.send('Input.dispatchMouseEvent', {
                'type': 'mouseWheel',
                'x': x,
                'y': y,
                'deltaX': 0,
                'deltaY': distance,
            })
            self.steps += 1

            layout = await client.send('Page.getLayoutMetrics')
            page_y = layout['visualViewport']['pageY']
            if page_y + viewport_height >= target or page_y <= last_page_y:
                break
            last_page_y = page_y
            await self.sleep(random_int(self.rng, cfg.min_pause_ms, cfg.max_pause_ms) / 1000)

        await self.sleep(random_int(self.rng, cfg.min_dwell_ms, cfg.max_dwell_ms) / 1000)
        logger.debug(f"Interaction finished after {self.steps} wheel events")


def _content_height(layout: Dict[str, Any]) -> float:
    # cssContentSize replaces contentSize on recent Chrome versions
    size = layout.get('cssContentSize') or layout['contentSize']
    return size['height']

"""Multi-URL capture runner.

Captures every URL in its own fresh browsing context, with bounded
parallelism and retries, and merges the successful pages into one HAR log.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, AsyncGenerator, Callable, Dict, List, Optional

from ..errors import CaptureError
from ..models.har import HarDocument
from .context import BrowsingContext
from .har_builder import merge_documents
from .live import LiveSession, LiveSessionConfig

logger = logging.getLogger(__name__)

UrlCallback = Callable[[str, int, List[str]], None]
FailCallback = Callable[[str, BaseException, int, List[str]], None]


class RunnerConfig:
    """Configuration for the capture runner."""

    def __init__(
        self,
        parallel: int = 1,
        retry: int = 0,
        retry_delay_ms: int = 0,
        abort_on_failure: bool = False,
    ):
        """Initialize runner configuration.

        Args:
            parallel: Maximum number of pages loaded concurrently
            retry: Extra attempts for a failed page
            retry_delay_ms: Delay between two attempts of the same page
            abort_on_failure: Stop the whole run at the first failed page
        """
        if parallel < 1:
            raise ValueError("parallel must be at least 1")
        if retry < 0:
            raise ValueError("retry must not be negative")
        self.parallel = parallel
        self.retry = retry
        self.retry_delay_ms = retry_delay_ms
        self.abort_on_failure = abort_on_failure


class CaptureRunner:
    """Runs live sessions for a list of URLs."""

    def __init__(
        self,
        factory: Any,
        config: Optional[RunnerConfig] = None,
        session_config: Optional[LiveSessionConfig] = None,
        on_load: Optional[UrlCallback] = None,
        on_done: Optional[UrlCallback] = None,
        on_fail: Optional[FailCallback] = None,
    ):
        """Initialize capture runner.

        Args:
            factory: Provider of fresh contexts (``new_context()``), e.g. a BrowserFactory
            config: Runner configuration (uses defaults if None)
            session_config: Configuration applied to every live session
            on_load: Called with ``(url, index, urls)`` when a page starts loading
            on_done: Called with ``(url, index, urls)`` when a page was captured
            on_fail: Called with ``(url, error, index, urls)`` when a page finally failed
        """
        self.factory = factory
        self.config = config or RunnerConfig()
        self.session_config = session_config or LiveSessionConfig()
        self.on_load = on_load
        self.on_done = on_done
        self.on_fail = on_fail
        self.errors: Dict[str, BaseException] = {}

        self.stats = {
            'pages_attempted': 0,
            'pages_succeeded': 0,
            'pages_failed': 0,
            'retries': 0,
            'start_time': None,
        }

    async def run(self, urls: List[str]) -> HarDocument:
        """Capture ``urls`` and merge the successful pages in input order.

        Failed pages are reported through ``on_fail`` and ``errors`` and are
        left out of the document.
        """
        urls = list(urls)
        self.stats['start_time'] = datetime.now(timezone.utc)
        self.errors = {}
        logger.info(f"Capturing {len(urls)} pages (parallel={self.config.parallel})")

        semaphore = asyncio.Semaphore(self.config.parallel)
        results: List[Optional[HarDocument]] = [None] * len(urls)

        async def capture(index: int, url: str) -> None:
            async with semaphore:
                results[index] = await self._capture_with_retry(url, index, urls)

        tasks = [asyncio.create_task(capture(index, url)) for index, url in enumerate(urls)]
        try:
            await asyncio.gather(*tasks)
        finally:
            for task in tasks:
                if not task.done():
                    task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)

        documents = [document for document in results if document is not None]
        logger.info(f"Capture completed: {len(documents)}/{len(urls)} pages")
        return merge_documents(documents)

    async def capture_page(self, url: str, index: int = 0, urls: Optional[List[str]] = None) -> HarDocument:
        """Capture a single page in a fresh context (one attempt)."""
        context: BrowsingContext = self.factory.new_context()
        session = LiveSession(
            url,
            context,
            config=self.session_config,
            index=index,
            urls=urls if urls is not None else [url],
        )
        return await session.load()

    async def _capture_with_retry(self, url: str, index: int, urls: List[str]) -> Optional[HarDocument]:
        last_error: Optional[BaseException] = None

        for attempt in range(self.config.retry + 1):
            if attempt > 0:
                self.stats['retries'] += 1
                if self.config.retry_delay_ms:
                    await asyncio.sleep(self.config.retry_delay_ms / 1000.0)

            self.stats['pages_attempted'] += 1
            self._call(self.on_load, url, index, urls)
            try:
                document = await self.capture_page(url, index, urls)
            except CaptureError as e:
                last_error = e
                logger.warning(f"Capture attempt {attempt + 1} failed for {url}: {e}")
                continue

            self.stats['pages_succeeded'] += 1
            self._call(self.on_done, url, index, urls)
            return document

        logger.error(f"All capture attempts failed for {url}: {last_error}")
        self.stats['pages_failed'] += 1
        self.errors[url] = last_error
        self._call(self.on_fail, url, last_error, index, urls)
        if self.config.abort_on_failure:
            raise last_error
        return None

    def _call(self, callback: Optional[Callable], *args) -> None:
        if callback is None:
            return
        try:
            callback(*args)
        except Exception as e:
            logger.error(f"Error in capture runner callback: {e}")

    @asynccontextmanager
    async def session(self) -> AsyncGenerator["CaptureRunner", None]:
        """Context manager starting and stopping the browser factory."""
        await self.factory.start()
        try:
            yield self
        finally:
            await self.factory.stop()

    def get_stats(self) -> Dict[str, Any]:
        """Get runner statistics."""
        stats = self.stats.copy()
        attempted = stats['pages_succeeded'] + stats['pages_failed']
        if attempted > 0:
            stats['success_rate'] = (stats['pages_succeeded'] / attempted) * 100
        else:
            stats['success_rate'] = 0
        if stats['start_time']:
            stats['runtime_seconds'] = (datetime.now(timezone.utc) - stats['start_time']).total_seconds()
        return stats

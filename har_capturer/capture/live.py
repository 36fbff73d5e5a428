"""Live capture of a single URL in a fresh browsing context.

A session races three branches: the page load itself, the loss of the
remote peer and the session deadline. ``SessionArbiter`` records the first
branch to settle; the others are cancelled and the context is torn down
exactly once whatever the winner.
"""

import asyncio
import inspect
import logging
from typing import Any, Callable, Dict, List, Optional, Set

from ..errors import (
    CaptureCancelled,
    CaptureError,
    ContentFetchFailure,
    Disconnected,
    HookFailure,
    TimedOut,
)
from ..models.events import SessionOutcome
from ..models.har import HarDocument
from .context import BrowsingContext, ProtocolClient
from .interaction import InteractionConfig, ScrollSimulator
from .stats import BODY_EVENT, StatsEngine
from .timer import SessionTimer

logger = logging.getLogger(__name__)

Hook = Callable[[str, ProtocolClient, int, List[str]], Any]


class LiveSessionConfig:
    """Configuration for live capture sessions."""

    def __init__(
        self,
        timeout_ms: Optional[float] = None,
        content: bool = False,
        pre_hook: Optional[Hook] = None,
        post_hook: Optional[Hook] = None,
        simulate_interaction: bool = True,
        interaction: Optional[InteractionConfig] = None,
    ):
        """Initialize live session configuration.

        Args:
            timeout_ms: Session deadline in milliseconds (None waits forever)
            content: Whether response bodies are fetched and embedded
            pre_hook: Called with ``(url, client, index, urls)`` before navigation
            post_hook: Called likewise after the load; its result becomes ``document.user``
            simulate_interaction: Whether to scroll the page once it loaded
            interaction: Pacing of the scroll simulation
        """
        self.timeout_ms = timeout_ms
        self.content = content
        self.pre_hook = pre_hook
        self.post_hook = post_hook
        self.simulate_interaction = simulate_interaction
        self.interaction = interaction or InteractionConfig()


class SessionArbiter:
    """Records the single winning branch of a session race."""

    def __init__(self):
        self.outcome: Optional[SessionOutcome] = None
        self.document: Optional[HarDocument] = None
        self.error: Optional[BaseException] = None
        self._settled = asyncio.Event()

    def settle(
        self,
        outcome: SessionOutcome,
        document: Optional[HarDocument] = None,
        error: Optional[BaseException] = None,
    ) -> bool:
        """Record ``outcome`` unless another branch already won.

        Returns:
            True if this call decided the race
        """
        if self._settled.is_set():
            logger.debug(f"Ignoring late {outcome.value} outcome (winner: {self.outcome.value})")
            return False
        self.outcome = outcome
        self.document = document
        self.error = error
        self._settled.set()
        return True

    @property
    def settled(self) -> bool:
        return self._settled.is_set()

    async def wait(self) -> SessionOutcome:
        await self._settled.wait()
        return self.outcome


class LiveSession:
    """Captures one URL, as page ``index`` of ``urls``, in ``context``."""

    def __init__(
        self,
        url: str,
        context: BrowsingContext,
        config: Optional[LiveSessionConfig] = None,
        index: int = 0,
        urls: Optional[List[str]] = None,
        simulator: Optional[ScrollSimulator] = None,
    ):
        self.url = url
        self.index = index
        self.urls = urls if urls is not None else [url]
        self.context = context
        self.config = config or LiveSessionConfig()
        self.simulator = simulator or ScrollSimulator(self.config.interaction)
        self.engine: Optional[StatsEngine] = None
        self.arbiter: Optional[SessionArbiter] = None
        self._body_tasks: Set[asyncio.Task] = set()

    async def load(self) -> HarDocument:
        """Load the page and return its HAR document.

        Raises:
            HookFailure: If the pre or post hook raised
            Disconnected: If the remote peer went away first
            TimedOut: If the deadline elapsed first
            CaptureError: If the context could not be created or the load failed otherwise
        """
        try:
            client = await self._create_client()
            await self._run_hook('pre_hook', self.config.pre_hook, client)
        except BaseException:
            await self.context.destroy()
            raise

        timer = SessionTimer(self.config.timeout_ms)
        arbiter = SessionArbiter()
        self.arbiter = arbiter
        tasks = [
            asyncio.create_task(self._page_load(client, timer, arbiter)),
            asyncio.create_task(self._disconnection(client, timer, arbiter)),
            asyncio.create_task(self._timeout(timer, arbiter)),
        ]

        try:
            outcome = await arbiter.wait()
        finally:
            for task in tasks:
                if not task.done():
                    task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            timer.cancel()
            await self.context.destroy()

        if arbiter.error is not None:
            logger.info(f"Session for {self.url} ended: {outcome.value} ({arbiter.error})")
            raise arbiter.error
        logger.info(f"Session for {self.url} ended: {outcome.value}")
        return arbiter.document

    async def _create_client(self) -> ProtocolClient:
        try:
            return await self.context.create()
        except (CaptureError, asyncio.CancelledError):
            raise
        except Exception as e:
            logger.error(f"Failed to create browsing context for {self.url}: {e}")
            raise CaptureError(f"Failed to create browsing context: {e}", url=self.url) from e

    async def _page_load(self, client: ProtocolClient, timer: SessionTimer, arbiter: SessionArbiter) -> None:
        try:
            document = await self._load_page(client)
            user = await self._run_hook('post_hook', self.config.post_hook, client)
            if self.config.post_hook is not None:
                document.attach_user(user)
        except asyncio.CancelledError:
            if self.engine is not None:
                self.engine.abort(CaptureCancelled(url=self.url))
            raise
        except CaptureError as e:
            arbiter.settle(SessionOutcome.FAILED, error=e)
        except Exception as e:
            logger.error(f"Page load failed for {self.url}: {e}")
            error = CaptureError(f"Page load failed: {e}", url=self.url)
            error.__cause__ = e
            arbiter.settle(SessionOutcome.FAILED, error=error)
        else:
            arbiter.settle(SessionOutcome.LOADED, document=document)
        finally:
            timer.cancel()
            await self.context.destroy()

    async def _disconnection(self, client: ProtocolClient, timer: SessionTimer, arbiter: SessionArbiter) -> None:
        await client.wait_for_disconnect()
        timer.cancel()
        arbiter.settle(SessionOutcome.DISCONNECTED, error=Disconnected(url=self.url))

    async def _timeout(self, timer: SessionTimer, arbiter: SessionArbiter) -> None:
        await timer.start()
        arbiter.settle(
            SessionOutcome.TIMED_OUT,
            error=TimedOut(url=self.url, timeout_ms=self.config.timeout_ms),
        )
        await self.context.destroy()

    async def _load_page(self, client: ProtocolClient) -> HarDocument:
        engine = StatsEngine(self.url, content=self.config.content)
        self.engine = engine
        completed = asyncio.get_running_loop().create_future()

        def feed(method: str, params: Dict[str, Any]) -> None:
            outcome = engine.process_event({'method': method, 'params': params})
            if completed.done():
                return
            if outcome.is_failed:
                completed.set_exception(outcome.error)
            elif outcome.is_complete:
                completed.set_result(None)

        for method in StatsEngine.SUBSCRIBED_EVENTS:
            client.on(method, lambda params, _method=method: feed(_method, params))

        if self.config.content:
            def on_loading_finished(params: Dict[str, Any]) -> None:
                request_id = params.get('requestId')
                # cached or untracked requests have no body to fetch
                if request_id is None or not engine.is_tracked(request_id):
                    return
                task = asyncio.create_task(self._fetch_body(client, request_id, feed))
                self._body_tasks.add(task)
                task.add_done_callback(self._body_tasks.discard)

            client.on('Network.loadingFinished', on_loading_finished)

        try:
            await client.send('Network.enable')
            await client.send('Page.enable')

            logger.info(f"Navigating to {self.url}")
            result = await client.send('Page.navigate', {'url': self.url})
            if result and result.get('errorText'):
                logger.warning(f"Navigation to {self.url} reported {result['errorText']}")

            await completed
            logger.debug(f"Page load complete for {self.url}")

            if self.config.simulate_interaction:
                await self.simulator.run(client)

            while self._body_tasks:
                await asyncio.gather(*list(self._body_tasks), return_exceptions=True)
        finally:
            for task in list(self._body_tasks):
                task.cancel()

        outcome = engine.finish(strict=False)
        if outcome.is_failed:
            raise outcome.error
        return outcome.document

    async def _fetch_body(self, client: ProtocolClient, request_id: str, feed: Callable) -> None:
        params: Dict[str, Any] = {'requestId': request_id}
        try:
            result = await client.send('Network.getResponseBody', {'requestId': request_id})
            params['body'] = result.get('body')
            params['base64Encoded'] = result.get('base64Encoded', False)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            failure = ContentFetchFailure(request_id, cause=e, url=self.url)
            logger.warning(str(failure))
        feed(BODY_EVENT, params)

    async def _run_hook(self, name: str, hook: Optional[Hook], client: ProtocolClient) -> Any:
        if hook is None:
            return None
        try:
            result = hook(self.url, client, self.index, self.urls)
            if inspect.isawaitable(result):
                result = await result
            return result
        except asyncio.CancelledError:
            raise
        except Exception as e:
            raise HookFailure(name, e, url=self.url) from e

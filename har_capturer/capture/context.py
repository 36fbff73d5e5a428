"""Browsing contexts and protocol clients for live capture.

This module provides the small interfaces live sessions depend on
(``ProtocolClient`` to talk CDP, ``BrowsingContext`` to provision a fresh
tab) together with their Playwright-backed implementations and the
``BrowserFactory`` that owns the browser process.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from collections import defaultdict
from typing import Any, Callable, Dict, List, Optional

from playwright.async_api import (
    Browser,
    BrowserContext,
    CDPSession,
    Page,
    Playwright,
    async_playwright,
)

from ..errors import CaptureError

logger = logging.getLogger(__name__)

EventListener = Callable[[Dict[str, Any]], Any]


class ProtocolClient(ABC):
    """CDP transport used by a live session.

    Listener bookkeeping is shared; implementations provide ``send`` and
    the disconnect signal, and call ``emit`` for every received event.
    """

    def __init__(self):
        self._listeners: Dict[str, List[EventListener]] = defaultdict(list)

    @abstractmethod
    async def send(self, method: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Invoke a protocol method and return its result."""
        pass

    @abstractmethod
    async def wait_for_disconnect(self) -> None:
        """Resolve when the remote peer goes away."""
        pass

    def on(self, method: str, listener: EventListener) -> None:
        """Register ``listener`` for events named ``method``."""
        self._listeners[method].append(listener)

    def off(self, method: str, listener: EventListener) -> None:
        listeners = self._listeners.get(method, [])
        if listener in listeners:
            listeners.remove(listener)

    def emit(self, method: str, params: Optional[Dict[str, Any]] = None) -> None:
        """Deliver an event to the registered listeners in registration order."""
        for listener in list(self._listeners.get(method, [])):
            try:
                listener(params or {})
            except Exception as e:
                logger.error(f"Error in {method} listener: {e}")

    def remove_all_listeners(self) -> None:
        self._listeners.clear()


class BrowsingContext(ABC):
    """A fresh, isolated browsing context (one tab) per captured URL."""

    @abstractmethod
    async def create(self) -> ProtocolClient:
        """Provision the context and return a client attached to its tab."""
        pass

    @abstractmethod
    async def destroy(self) -> None:
        """Tear the context down; calling it more than once is a no-op."""
        pass


class BrowserConfig:
    """Configuration for browser launch and context setup."""

    def __init__(
        self,
        headless: bool = True,
        viewport: Optional[Dict[str, int]] = None,
        user_agent: Optional[str] = None,
        extra_headers: Optional[Dict[str, str]] = None,
        ignore_https_errors: bool = False,
        disable_cache: bool = True,
        block_urls: Optional[List[str]] = None,
        slow_mo: int = 0,
        executable_path: Optional[str] = None,
        args: Optional[List[str]] = None,
    ):
        """Initialize browser configuration.

        Args:
            headless: Run Chromium in headless mode
            viewport: Viewport size dict with 'width' and 'height'
            user_agent: Custom User-Agent string
            extra_headers: Additional HTTP headers for all requests
            ignore_https_errors: Ignore TLS certificate errors
            disable_cache: Bypass the browser cache (Network.setCacheDisabled)
            block_urls: URL patterns to block (Network.setBlockedURLs)
            slow_mo: Slow down Playwright operations by this many milliseconds
            executable_path: Chromium binary to launch instead of the bundled one
            args: Extra command line switches for Chromium
        """
        self.headless = headless
        self.viewport = viewport or {'width': 1920, 'height': 1080}
        self.user_agent = user_agent
        self.extra_headers = extra_headers or {}
        self.ignore_https_errors = ignore_https_errors
        self.disable_cache = disable_cache
        self.block_urls = block_urls or []
        self.slow_mo = slow_mo
        self.executable_path = executable_path
        self.args = args or []

    def to_browser_options(self) -> Dict[str, Any]:
        """Convert to Playwright browser launch options."""
        options = {
            'headless': self.headless,
            'slow_mo': self.slow_mo,
        }
        if self.executable_path:
            options['executable_path'] = self.executable_path
        if self.args:
            options['args'] = list(self.args)
        return options

    def to_context_options(self) -> Dict[str, Any]:
        """Convert to Playwright browser context options."""
        options = {}
        if self.viewport:
            options['viewport'] = self.viewport
        if self.user_agent:
            options['user_agent'] = self.user_agent
        if self.extra_headers:
            options['extra_http_headers'] = self.extra_headers
        if self.ignore_https_errors:
            options['ignore_https_errors'] = True
        return options


class PlaywrightProtocolClient(ProtocolClient):
    """ProtocolClient over a Playwright CDP session attached to one page.

    Playwright has no catch-all event hook, so each event method is
    subscribed on the CDP session the first time a listener asks for it.
    """

    def __init__(self, session: CDPSession, page: Page, browser: Optional[Browser] = None):
        super().__init__()
        self.session = session
        self.page = page
        self._subscribed = set()
        self._closing = False
        self._disconnected = asyncio.get_running_loop().create_future()

        page.on('crash', lambda _: self._signal_disconnect("page crashed"))
        page.on('close', lambda _: self._signal_disconnect("page closed"))
        if browser is not None:
            browser.on('disconnected', lambda _: self._signal_disconnect("browser disconnected"))

    async def send(self, method: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        return await self.session.send(method, params or {})

    def on(self, method: str, listener: EventListener) -> None:
        super().on(method, listener)
        if method not in self._subscribed:
            self._subscribed.add(method)
            self.session.on(method, lambda params, _method=method: self.emit(_method, params))

    async def wait_for_disconnect(self) -> None:
        await asyncio.shield(self._disconnected)

    def mark_closing(self) -> None:
        """Ignore disconnect signals caused by our own teardown."""
        self._closing = True

    def _signal_disconnect(self, reason: str) -> None:
        if self._closing or self._disconnected.done():
            return
        logger.warning(f"Protocol client disconnected: {reason}")
        self._disconnected.set_result(reason)


class PlaywrightBrowsingContext(BrowsingContext):
    """Incognito-like Playwright context with a single CDP-attached page."""

    def __init__(self, browser: Browser, config: BrowserConfig):
        self.browser = browser
        self.config = config
        self.context: Optional[BrowserContext] = None
        self.page: Optional[Page] = None
        self.client: Optional[PlaywrightProtocolClient] = None
        self._teardown: Optional[asyncio.Future] = None

    async def create(self) -> ProtocolClient:
        if self.client is not None:
            return self.client
        self.context = await self.browser.new_context(**self.config.to_context_options())
        self.page = await self.context.new_page()
        session = await self.context.new_cdp_session(self.page)
        self.client = PlaywrightProtocolClient(session, self.page, self.browser)

        await self.client.send('Network.enable')
        if self.config.disable_cache:
            await self.client.send('Network.setCacheDisabled', {'cacheDisabled': True})
        if self.config.block_urls:
            await self.client.send('Network.setBlockedURLs', {'urls': list(self.config.block_urls)})

        logger.debug("Browsing context created")
        return self.client

    async def destroy(self) -> None:
        # Every caller waits for the same teardown, which survives their cancellation
        if self._teardown is None:
            if self.client is not None:
                self.client.mark_closing()
                self.client.remove_all_listeners()
            self._teardown = asyncio.ensure_future(self._close())
        await asyncio.shield(self._teardown)

    async def _close(self) -> None:
        if self.context is not None:
            try:
                await self.context.close()
            except Exception as e:
                logger.warning(f"Error closing browsing context: {e}")
        logger.debug("Browsing context destroyed")

    @property
    def is_destroyed(self) -> bool:
        return self._teardown is not None


class BrowserFactory:
    """Owns the Playwright driver and the Chromium process."""

    def __init__(self, config: Optional[BrowserConfig] = None):
        """Initialize browser factory.

        Args:
            config: Browser configuration object
        """
        self.config = config or BrowserConfig()
        self.playwright: Optional[Playwright] = None
        self.browser: Optional[Browser] = None
        self._context_count = 0

    async def start(self) -> None:
        """Start Playwright and launch Chromium."""
        if self.playwright is not None:
            logger.warning("Browser factory already started")
            return

        logger.info("Starting browser factory")
        try:
            self.playwright = await async_playwright().start()
            self.browser = await self.playwright.chromium.launch(**self.config.to_browser_options())
            logger.info(f"Browser launched successfully (headless={self.config.headless})")
        except Exception as e:
            logger.error(f"Failed to start browser: {e}")
            await self.stop()
            raise CaptureError(f"Failed to start browser: {e}") from e

    async def stop(self) -> None:
        """Close the browser and stop Playwright."""
        logger.info("Stopping browser factory")
        try:
            if self.browser:
                await self.browser.close()
                self.browser = None
            if self.playwright:
                await self.playwright.stop()
                self.playwright = None
            self._context_count = 0
        except Exception as e:
            logger.error(f"Error stopping browser factory: {e}")

    def new_context(self) -> PlaywrightBrowsingContext:
        """Create a (not yet provisioned) browsing context.

        Raises:
            RuntimeError: If the factory was not started
        """
        if not self.browser:
            raise RuntimeError("Browser factory not started. Call start() first.")
        self._context_count += 1
        return PlaywrightBrowsingContext(self.browser, self.config)

    async def __aenter__(self) -> "BrowserFactory":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.stop()

    @property
    def is_running(self) -> bool:
        return self.browser is not None and self.browser.is_connected()

    @property
    def context_count(self) -> int:
        return self._context_count

    def __repr__(self) -> str:
        return (
            f"BrowserFactory(headless={self.config.headless}, "
            f"running={self.is_running}, "
            f"contexts={self.context_count})"
        )

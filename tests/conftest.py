"""Shared test fixtures and configuration for har-capturer tests."""

import asyncio
import inspect
import sys
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import pytest

# Add project root to Python path
sys.path.insert(0, str(Path(__file__).parent.parent))

from har_capturer.capture.context import BrowsingContext, ProtocolClient


PAGE_URL = "http://example.com/"
WALL_TIME = 1700000000.0


def response_timing(request_time: float, **overrides) -> Dict[str, float]:
    """Chrome-like ResourceTiming, offsets in ms relative to ``request_time``."""
    timing = {
        'requestTime': request_time,
        'proxyStart': -1,
        'proxyEnd': -1,
        'dnsStart': 1,
        'dnsEnd': 2,
        'connectStart': 2,
        'connectEnd': 10,
        'sslStart': 5,
        'sslEnd': 9,
        'sendStart': 10,
        'sendEnd': 11,
        'receiveHeadersEnd': 31,
    }
    timing.update(overrides)
    return timing


class EventLog:
    """Builder for synthetic CDP event logs.

    Timestamps are monotonic seconds; ``wallTime`` is derived from them so
    that both clocks stay consistent.
    """

    def __init__(self, wall_offset: float = WALL_TIME):
        self.events: List[Dict[str, Any]] = []
        self.wall_offset = wall_offset

    def add(self, method: str, **params) -> "EventLog":
        self.events.append({'method': method, 'params': params})
        return self

    def request(
        self,
        request_id: str,
        url: str,
        timestamp: float,
        initiator: str = 'parser',
        resource_type: str = 'Script',
        method: str = 'GET',
        headers: Optional[Dict[str, str]] = None,
        redirect_response: Optional[Dict[str, Any]] = None,
        **request_fields,
    ) -> "EventLog":
        request = {
            'url': url,
            'method': method,
            'headers': headers if headers is not None else {'Accept': '*/*'},
            'initialPriority': 'High',
        }
        request.update(request_fields)
        params = {
            'requestId': request_id,
            'loaderId': 'L1',
            'documentURL': PAGE_URL,
            'request': request,
            'timestamp': timestamp,
            'wallTime': self.wall_offset + timestamp,
            'initiator': {'type': initiator},
            'type': resource_type,
        }
        if redirect_response is not None:
            params['redirectResponse'] = redirect_response
        return self.add('Network.requestWillBeSent', **params)

    def main_request(self, request_id: str = 'main', url: str = PAGE_URL, timestamp: float = 100.0, **kwargs) -> "EventLog":
        return self.request(request_id, url, timestamp, initiator='other', resource_type='Document', **kwargs)

    def response_payload(
        self,
        url: str,
        request_time: float,
        status: int = 200,
        headers: Optional[Dict[str, str]] = None,
        protocol: str = 'http/1.1',
        mime_type: str = 'text/html',
        timing: Optional[Dict[str, float]] = None,
        **fields,
    ) -> Dict[str, Any]:
        response = {
            'url': url,
            'status': status,
            'statusText': 'OK' if status == 200 else 'Found',
            'headers': headers if headers is not None else {'Content-Type': mime_type},
            'mimeType': mime_type,
            'protocol': protocol,
            'remoteIPAddress': '93.184.216.34',
            'remotePort': 80,
            'connectionId': 12,
            'encodedDataLength': 120,
            'timing': timing if timing is not None else response_timing(request_time),
        }
        response.update(fields)
        return response

    def response(self, request_id: str, url: str, request_time: float, timestamp: Optional[float] = None, **kwargs) -> "EventLog":
        payload = self.response_payload(url, request_time, **kwargs)
        return self.add(
            'Network.responseReceived',
            requestId=request_id,
            timestamp=timestamp if timestamp is not None else request_time + 0.031,
            type='Document',
            response=payload,
        )

    def data(self, request_id: str, length: int, timestamp: float = 0.0) -> "EventLog":
        return self.add('Network.dataReceived', requestId=request_id, timestamp=timestamp,
                        dataLength=length, encodedDataLength=length)

    def finished(self, request_id: str, timestamp: float, encoded: int = 600) -> "EventLog":
        return self.add('Network.loadingFinished', requestId=request_id, timestamp=timestamp,
                        encodedDataLength=encoded)

    def failed(self, request_id: str, timestamp: float, error: str = 'net::ERR_FAILED') -> "EventLog":
        return self.add('Network.loadingFailed', requestId=request_id, timestamp=timestamp,
                        type='Script', errorText=error, canceled=False)

    def extra_request(self, request_id: str, headers: Dict[str, str]) -> "EventLog":
        return self.add('Network.requestWillBeSentExtraInfo', requestId=request_id,
                        headers=headers, associatedCookies=[])

    def extra_response(self, request_id: str, headers: Dict[str, str], headers_text: Optional[str] = None) -> "EventLog":
        params = {'requestId': request_id, 'headers': headers, 'blockedCookies': [], 'resourceIPAddressSpace': 'Public'}
        if headers_text is not None:
            params['headersText'] = headers_text
        return self.add('Network.responseReceivedExtraInfo', **params)

    def body(self, request_id: str, body: Optional[str] = None, base64: bool = False) -> "EventLog":
        params = {'requestId': request_id}
        if body is not None:
            params['body'] = body
            params['base64Encoded'] = base64
        return self.add('Network.getResponseBody', **params)

    def continued(self, request_id: str, timestamp: float, wall_time: Optional[float] = None) -> "EventLog":
        params = {'requestId': request_id, 'timestamp': timestamp}
        if wall_time is not None:
            params['wallTime'] = wall_time
        return self.add('Custom.requestContinued', **params)

    def dom_content(self, timestamp: float) -> "EventLog":
        return self.add('Page.domContentEventFired', timestamp=timestamp)

    def load(self, timestamp: float) -> "EventLog":
        return self.add('Page.loadEventFired', timestamp=timestamp)

    def complete_request(
        self,
        request_id: str,
        url: str,
        start: float,
        duration: float = 0.05,
        size: int = 500,
        main: bool = False,
        body: Optional[str] = None,
        **response_kwargs,
    ) -> "EventLog":
        """Request, response, data and finish for one request."""
        if main:
            self.main_request(request_id, url, start)
        else:
            self.request(request_id, url, start)
        self.response(request_id, url, start, **response_kwargs)
        self.data(request_id, size, start + duration / 2)
        self.finished(request_id, start + duration)
        if body is not None:
            self.body(request_id, body)
        return self

    def filtered(self, method: str) -> List[Dict[str, Any]]:
        return [event for event in self.events if event['method'] != method]

    def __iter__(self):
        return iter(self.events)

    def __len__(self):
        return len(self.events)


def build_page_log(content: bool = False) -> EventLog:
    """A complete page: main document, one script, one image, page events."""
    log = EventLog()
    log.complete_request('main', PAGE_URL, 100.0, duration=0.05, main=True,
                         body='<html></html>' if content else None)
    log.complete_request('2', PAGE_URL + 'app.js', 100.06, duration=0.04, mime_type='application/javascript',
                         body='console.log(1)' if content else None)
    log.complete_request('3', PAGE_URL + 'logo.png', 100.07, duration=0.03, mime_type='image/png',
                         body='iVBORw0KGgo=' if content else None)
    if content:
        # base64 flag on the image body
        log.events[-1]['params']['base64Encoded'] = True
    log.dom_content(100.2)
    log.load(100.3)
    return log


@pytest.fixture
def event_log():
    """Empty synthetic event log builder."""
    return EventLog()


@pytest.fixture
def page_log():
    """Complete page log without bodies."""
    return build_page_log()


@pytest.fixture
def page_log_with_content():
    """Complete page log with body companion events."""
    return build_page_log(content=True)


class FakeProtocolClient(ProtocolClient):
    """In-memory ProtocolClient replaying a scripted event sequence on navigation."""

    def __init__(self, script: Optional[List[Dict[str, Any]]] = None):
        super().__init__()
        self.script = list(script or [])
        self.sent: List[tuple] = []
        self.handlers: Dict[str, Callable[[Dict[str, Any]], Any]] = {}
        self.failures: Dict[str, BaseException] = {}
        self.navigate_result: Dict[str, Any] = {'frameId': 'F1', 'loaderId': 'L1'}
        self.closing = False
        self._disconnected = asyncio.Event()
        self._player: Optional[asyncio.Task] = None

    async def send(self, method: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        params = params or {}
        self.sent.append((method, params))
        if method in self.failures:
            raise self.failures[method]
        if method == 'Page.navigate':
            self._player = asyncio.create_task(self._play())
            return self.navigate_result
        handler = self.handlers.get(method)
        if handler is None:
            return {}
        result = handler(params)
        if inspect.isawaitable(result):
            result = await result
        return result or {}

    async def wait_for_disconnect(self) -> None:
        await self._disconnected.wait()

    def disconnect(self) -> None:
        if not self.closing:
            self._disconnected.set()

    def methods_sent(self) -> List[str]:
        return [method for method, _ in self.sent]

    async def _play(self) -> None:
        for event in self.script:
            await asyncio.sleep(0)
            self.emit(event['method'], event.get('params'))


class FakeBrowsingContext(BrowsingContext):
    """BrowsingContext counting real teardowns."""

    def __init__(self, client: Optional[FakeProtocolClient] = None):
        self.client = client or FakeProtocolClient()
        self.create_calls = 0
        self.destroy_calls = 0
        self.teardowns = 0
        self._destroyed = False

    async def create(self) -> ProtocolClient:
        self.create_calls += 1
        return self.client

    async def destroy(self) -> None:
        self.destroy_calls += 1
        if self._destroyed:
            return
        self._destroyed = True
        self.client.closing = True
        self.teardowns += 1
        # yield like a real teardown would
        await asyncio.sleep(0)


class FailingBrowsingContext(FakeBrowsingContext):
    """FakeBrowsingContext whose creation fails with ``error``."""

    def __init__(self, error: BaseException, client: Optional[FakeProtocolClient] = None):
        super().__init__(client)
        self.error = error

    async def create(self) -> ProtocolClient:
        self.create_calls += 1
        raise self.error


class FakeFactory:
    """Context provider handing out one FakeBrowsingContext per page."""

    def __init__(self, client_factory: Callable[[], FakeProtocolClient]):
        self.client_factory = client_factory
        self.contexts: List[FakeBrowsingContext] = []
        self.started = False
        self.stopped = False

    def new_context(self) -> FakeBrowsingContext:
        context = FakeBrowsingContext(self.client_factory())
        self.contexts.append(context)
        return context

    async def start(self) -> None:
        self.started = True

    async def stop(self) -> None:
        self.stopped = True


@pytest.fixture
def fake_client():
    """Fake protocol client replaying a complete page load."""
    return FakeProtocolClient(build_page_log().events)


@pytest.fixture
def fake_context(fake_client):
    """Fake browsing context around ``fake_client``."""
    return FakeBrowsingContext(fake_client)


def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests"
    )
    config.addinivalue_line(
        "markers", "unit: marks tests as unit tests"
    )

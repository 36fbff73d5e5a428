"""Event-correlation engine folding CDP events into a HAR document.

The engine keeps one ``PendingRequest`` per request hop (a redirect reuses the
CDP request identifier, but every hop becomes a distinct HAR entry) and
decides, from the events alone, when the stream represents a complete page
load: the first ``Page.loadEventFired`` has been observed and every tracked
hop reached a terminal state.

Events of a single request are not guaranteed to arrive in causal order.
Extra-info payloads and continuation markers are therefore accumulated per
request identifier and claimed by hops independently of arrival order;
headers are merged only when the document is built.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass
from functools import cached_property
from typing import Any, Callable, Dict, List, Optional

from ..errors import CaptureCancelled, CaptureError, IncompleteCapture
from ..models.events import EngineStatus, ProtocolEvent, RequestPhase
from ..models.har import HarDocument
from . import har_builder

logger = logging.getLogger(__name__)

BODY_EVENT = 'Network.getResponseBody'
CONTINUATION_EVENT = 'Custom.requestContinued'


@dataclass
class PendingRequest:
    """Accumulated state of one request hop."""

    request_id: str
    sequence: int
    request_params: Dict[str, Any]
    phase: RequestPhase = RequestPhase.PENDING
    response: Optional[Dict[str, Any]] = None
    extra_request: Optional[Dict[str, Any]] = None
    extra_response: Optional[Dict[str, Any]] = None
    continuation: Optional[Dict[str, Any]] = None
    from_cache: bool = False
    data_length: int = 0
    encoded_length: Optional[int] = None
    finished_s: Optional[float] = None
    failed_s: Optional[float] = None
    error_text: Optional[str] = None
    body: Optional[str] = None
    body_base64: bool = False
    body_received: bool = False
    priority: Optional[str] = None

    @property
    def request(self) -> Dict[str, Any]:
        return self.request_params.get('request') or {}

    @property
    def url(self) -> str:
        return self.request.get('url', '')

    @property
    def timestamp_s(self) -> float:
        return self.request_params.get('timestamp', 0.0)

    @property
    def continued_s(self) -> Optional[float]:
        if self.continuation is None:
            return None
        return self.continuation.get('timestamp')

    @property
    def start_reference_s(self) -> float:
        """Start of the request: continuation marker if any, else request-sent time."""
        if self.continued_s is not None:
            return self.continued_s
        return self.timestamp_s

    @property
    def start_wall_time_s(self) -> float:
        """Wall-clock start, corrected by the continuation marker when present."""
        wall_time = self.request_params.get('wallTime', 0.0)
        if self.continuation is not None:
            if self.continuation.get('wallTime') is not None:
                return self.continuation['wallTime']
            if self.continued_s is not None:
                return wall_time + (self.continued_s - self.timestamp_s)
        return wall_time

    def is_terminal(self, content: bool) -> bool:
        """Whether the hop needs no further events.

        With content capture a finished hop additionally waits for its
        body-retrieval companion event (successful or not). Cache hits are
        terminal as soon as they are marked and never wait for a body.
        """
        if self.phase == RequestPhase.PENDING:
            return False
        if content and self.phase == RequestPhase.FINISHED:
            return self.body_received
        return True

    @property
    def is_trackable(self) -> bool:
        """Whether the hop finished loading over the network (a body can be fetched)."""
        return self.phase == RequestPhase.FINISHED and not self.from_cache


class PageMetric:
    """A page timing that can be recorded exactly once."""

    def __init__(self, name: str):
        self.name = name
        self.value: Optional[float] = None

    @property
    def is_set(self) -> bool:
        return self.value is not None

    def record(self, timestamp: float) -> bool:
        """Record the first occurrence; later ones are ignored.

        Returns:
            True if this call set the metric
        """
        if self.is_set:
            logger.debug(f"Ignoring repeated {self.name} at {timestamp}")
            return False
        self.value = timestamp
        return True


class EngineOutcome:
    """Result of folding an event: continuing, complete or failed."""

    def __init__(
        self,
        status: EngineStatus,
        builder: Optional[Callable[[], HarDocument]] = None,
        error: Optional[CaptureError] = None,
    ):
        self.status = status
        self._builder = builder
        self.error = error

    @classmethod
    def continuing(cls) -> "EngineOutcome":
        return cls(EngineStatus.CONTINUING)

    @classmethod
    def complete(cls, builder: Callable[[], HarDocument]) -> "EngineOutcome":
        return cls(EngineStatus.COMPLETE, builder=builder)

    @classmethod
    def failed(cls, error: CaptureError) -> "EngineOutcome":
        return cls(EngineStatus.FAILED, error=error)

    @property
    def is_complete(self) -> bool:
        return self.status == EngineStatus.COMPLETE

    @property
    def is_failed(self) -> bool:
        return self.status == EngineStatus.FAILED

    @cached_property
    def document(self) -> Optional[HarDocument]:
        """Finished document, built on first access (None unless complete)."""
        if self._builder is None:
            return None
        return self._builder()

    def __repr__(self) -> str:
        return f"EngineOutcome(status={self.status.value}, error={self.error!r})"


class StatsEngine:
    """Folds a stream of protocol events into a HAR document for one page."""

    # Claimable per-request payloads that may arrive before or after their hop
    _CLAIMABLE = ('extra_request', 'extra_response', 'continuation')

    # Events (other than the synthetic ones) a live feed must subscribe to
    SUBSCRIBED_EVENTS = (
        'Network.requestWillBeSent',
        'Network.requestWillBeSentExtraInfo',
        'Network.responseReceived',
        'Network.responseReceivedExtraInfo',
        'Network.dataReceived',
        'Network.loadingFinished',
        'Network.loadingFailed',
        'Network.requestServedFromCache',
        'Network.resourceChangedPriority',
        'Page.domContentEventFired',
        'Page.loadEventFired',
    )

    def __init__(self, url: str, content: bool = False):
        """Initialize the engine.

        Args:
            url: URL of the page being loaded
            content: Whether response bodies are captured (and awaited)
        """
        self.url = url
        self.content = content

        self._hops: Dict[str, List[PendingRequest]] = {}
        self._ordered: List[PendingRequest] = []
        self._pending: Dict[int, PendingRequest] = {}
        self._unclaimed: Dict[str, Dict[str, List[Dict[str, Any]]]] = {
            name: defaultdict(list) for name in self._CLAIMABLE
        }
        self._orphans: Dict[str, List[ProtocolEvent]] = defaultdict(list)
        self._sequence = 0
        self._main_hop: Optional[PendingRequest] = None
        self._failure: Optional[CaptureError] = None

        self.dom_content_loaded = PageMetric('Page.domContentEventFired')
        self.load_fired = PageMetric('Page.loadEventFired')

        self._handlers: Dict[str, Callable[[Dict[str, Any]], None]] = {
            'Network.requestWillBeSent': self._on_request_will_be_sent,
            'Network.requestWillBeSentExtraInfo': self._on_request_extra_info,
            'Network.responseReceived': self._on_response_received,
            'Network.responseReceivedExtraInfo': self._on_response_extra_info,
            'Network.dataReceived': self._on_data_received,
            'Network.loadingFinished': self._on_loading_finished,
            'Network.loadingFailed': self._on_loading_failed,
            'Network.requestServedFromCache': self._on_served_from_cache,
            'Network.resourceChangedPriority': self._on_priority_changed,
            BODY_EVENT: self._on_response_body,
            CONTINUATION_EVENT: self._on_request_continued,
            'Page.domContentEventFired': self._on_dom_content_event_fired,
            'Page.loadEventFired': self._on_load_event_fired,
        }

    def process_event(self, event: Any) -> EngineOutcome:
        """Fold one event and report the resulting engine state.

        Unknown methods and malformed payloads are ignored.

        Args:
            event: ``{"method": ..., "params": ...}`` mapping or ProtocolEvent

        Returns:
            EngineOutcome reflecting the state after this event
        """
        if self._failure is not None:
            return EngineOutcome.failed(self._failure)

        parsed = ProtocolEvent.coerce(event)
        if parsed is None:
            logger.debug(f"Ignoring malformed event: {event!r}")
        else:
            self._dispatch(parsed)

        return self._evaluate()

    def finish(self, strict: bool = True) -> EngineOutcome:
        """Evaluate the engine at the end of the event stream.

        Args:
            strict: Fail when any tracked request is still pending; when
                False, pending requests are dropped from the document

        Returns:
            COMPLETE or FAILED outcome
        """
        if self._failure is not None:
            return EngineOutcome.failed(self._failure)
        if not self.load_fired.is_set:
            return EngineOutcome.failed(
                IncompleteCapture("Page load event never fired", url=self.url)
            )
        if self._main_hop is None and not self._ordered:
            return EngineOutcome.failed(
                IncompleteCapture("No request was observed for the page", url=self.url)
            )
        if self._pending:
            pending_ids = [hop.request_id for hop in self._pending.values()]
            if strict:
                return EngineOutcome.failed(IncompleteCapture(
                    f"{len(pending_ids)} request(s) still pending at end of stream",
                    url=self.url,
                    pending=pending_ids,
                ))
            logger.debug(f"Dropping {len(pending_ids)} pending request(s): {pending_ids}")
        return EngineOutcome.complete(self.build_document)

    def abort(self, error: Optional[CaptureError] = None) -> EngineOutcome:
        """Seal the engine in the failed state."""
        if self._failure is None:
            self._failure = error or CaptureCancelled(url=self.url)
            logger.debug(f"Engine aborted: {self._failure}")
        return EngineOutcome.failed(self._failure)

    def build_document(self) -> HarDocument:
        """Build the HAR document from the current state."""
        return har_builder.build_document(
            url=self.url,
            hops=self._ordered,
            main_hop=self.main_hop,
            dom_content_s=self.dom_content_loaded.value,
            load_s=self.load_fired.value,
            content=self.content,
        )

    def is_tracked(self, request_id: str) -> bool:
        """Whether the current hop of ``request_id`` finished loading and awaits its body."""
        hop = self._current_hop(request_id)
        return hop is not None and hop.is_trackable

    @property
    def main_hop(self) -> Optional[PendingRequest]:
        if self._main_hop is not None:
            return self._main_hop
        return self._ordered[0] if self._ordered else None

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    @property
    def hops(self) -> List[PendingRequest]:
        return list(self._ordered)

    def _dispatch(self, event: ProtocolEvent) -> None:
        handler = self._handlers.get(event.method)
        if handler is None:
            return
        try:
            handler(event.params)
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            logger.debug(f"Ignoring malformed {event.method} event: {e}")

    def _evaluate(self) -> EngineOutcome:
        if not self.load_fired.is_set or self.main_hop is None:
            return EngineOutcome.continuing()
        if self._pending:
            return EngineOutcome.continuing()
        return EngineOutcome.complete(self.build_document)

    def _current_hop(self, request_id: Any) -> Optional[PendingRequest]:
        hops = self._hops.get(request_id)
        return hops[-1] if hops else None

    def _refresh(self, hop: PendingRequest) -> None:
        if hop.is_terminal(self.content):
            self._pending.pop(hop.sequence, None)
        else:
            self._pending[hop.sequence] = hop

    def _hop_or_defer(self, method: str, params: Dict[str, Any]) -> Optional[PendingRequest]:
        """Current hop for the event's request; events preceding the request are deferred."""
        request_id = params['requestId']
        hop = self._current_hop(request_id)
        if hop is None:
            self._orphans[request_id].append(ProtocolEvent(method=method, params=params))
        return hop

    def _claim(self, name: str, request_id: str, payload: Dict[str, Any]) -> None:
        for hop in self._hops.get(request_id, []):
            if getattr(hop, name) is None:
                setattr(hop, name, payload)
                return
        self._unclaimed[name][request_id].append(payload)

    # Network domain

    def _on_request_will_be_sent(self, params: Dict[str, Any]) -> None:
        request_id = params['requestId']
        url = params['request']['url']
        if url.startswith('data:'):
            return

        current = self._current_hop(request_id)
        redirect_response = params.get('redirectResponse')
        if current is not None:
            if redirect_response is not None:
                current.response = redirect_response
                current.finished_s = params.get('timestamp')
                current.encoded_length = redirect_response.get('encodedDataLength')
                current.phase = RequestPhase.REDIRECTED
                self._refresh(current)
            elif current.phase == RequestPhase.PENDING and current.response is None:
                logger.debug(f"Replacing unanswered request {request_id}")
                self._hops[request_id].pop()
                self._ordered.remove(current)
                self._pending.pop(current.sequence, None)

        self._sequence += 1
        hop = PendingRequest(request_id=request_id, sequence=self._sequence, request_params=params)
        self._hops.setdefault(request_id, []).append(hop)
        self._ordered.append(hop)

        for name in self._CLAIMABLE:
            queued = self._unclaimed[name].get(request_id)
            if queued:
                setattr(hop, name, queued.pop(0))

        initiator_type = (params.get('initiator') or {}).get('type')
        if self._main_hop is None and initiator_type == 'other':
            self._main_hop = hop
            logger.debug(f"Main request: {request_id} {url}")

        self._refresh(hop)

        for orphan in self._orphans.pop(request_id, []):
            self._dispatch(orphan)

    def _on_request_extra_info(self, params: Dict[str, Any]) -> None:
        self._claim('extra_request', params['requestId'], params)

    def _on_response_extra_info(self, params: Dict[str, Any]) -> None:
        self._claim('extra_response', params['requestId'], params)

    def _on_request_continued(self, params: Dict[str, Any]) -> None:
        request_id = params.get('requestId') or params.get('networkId')
        if request_id is None or params.get('timestamp') is None:
            return
        self._claim('continuation', request_id, params)

    def _on_response_received(self, params: Dict[str, Any]) -> None:
        hop = self._hop_or_defer('Network.responseReceived', params)
        if hop is None:
            return
        hop.response = params['response']

    def _on_data_received(self, params: Dict[str, Any]) -> None:
        hop = self._hop_or_defer('Network.dataReceived', params)
        if hop is None:
            return
        hop.data_length += int(params.get('dataLength', 0))

    def _on_loading_finished(self, params: Dict[str, Any]) -> None:
        hop = self._hop_or_defer('Network.loadingFinished', params)
        if hop is None:
            return
        hop.encoded_length = params.get('encodedDataLength')
        hop.finished_s = params['timestamp']
        if hop.phase != RequestPhase.CACHED:
            hop.phase = RequestPhase.FINISHED
        self._refresh(hop)

    def _on_loading_failed(self, params: Dict[str, Any]) -> None:
        hop = self._hop_or_defer('Network.loadingFailed', params)
        if hop is None:
            return
        hop.failed_s = params.get('timestamp')
        hop.error_text = params.get('errorText')
        hop.phase = RequestPhase.FAILED
        self._refresh(hop)
        logger.debug(f"Request failed: {hop.request_id} {hop.url} ({hop.error_text})")

    def _on_served_from_cache(self, params: Dict[str, Any]) -> None:
        hop = self._hop_or_defer('Network.requestServedFromCache', params)
        if hop is None:
            return
        hop.from_cache = True
        if hop.phase in (RequestPhase.PENDING, RequestPhase.FINISHED):
            hop.phase = RequestPhase.CACHED
            self._refresh(hop)
            logger.debug(f"Request served from cache: {hop.request_id} {hop.url}")

    def _on_priority_changed(self, params: Dict[str, Any]) -> None:
        hop = self._hop_or_defer('Network.resourceChangedPriority', params)
        if hop is None:
            return
        hop.priority = params['newPriority']

    def _on_response_body(self, params: Dict[str, Any]) -> None:
        hop = self._hop_or_defer(BODY_EVENT, params)
        if hop is None:
            return
        hop.body = params.get('body')
        hop.body_base64 = bool(params.get('base64Encoded', False))
        hop.body_received = True
        self._refresh(hop)

    # Page domain

    def _on_dom_content_event_fired(self, params: Dict[str, Any]) -> None:
        self.dom_content_loaded.record(params['timestamp'])

    def _on_load_event_fired(self, params: Dict[str, Any]) -> None:
        if self.load_fired.record(params['timestamp']):
            logger.debug(f"Page load event fired for {self.url}")

    def __repr__(self) -> str:
        return (
            f"StatsEngine(url={self.url}, requests={len(self._ordered)}, "
            f"pending={len(self._pending)}, loaded={self.load_fired.is_set})"
        )

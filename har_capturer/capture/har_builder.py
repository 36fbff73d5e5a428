"""Assembly of HAR pages and entries from folded request state.

The stats engine accumulates raw CDP payloads per request hop; this module
turns that state into HAR 1.2 records. Timing and size computations follow
the conventions of Chrome DevTools' own HAR export.
"""

import base64
import logging
import re
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Dict, Iterable, List, Optional, Tuple
from urllib.parse import parse_qsl, urlsplit

from .. import __version__
from ..models.events import RequestPhase
from ..models.har import (
    Content,
    Creator,
    HarDocument,
    HarEntry,
    HarLog,
    HarPage,
    HarRequest,
    HarResponse,
    PageTimings,
    PostData,
    QueryParam,
    Timings,
)
from .headers import HeaderSet

if TYPE_CHECKING:
    from .stats import PendingRequest

logger = logging.getLogger(__name__)

CREATOR_NAME = "har-capturer"

_HTTP1_RE = re.compile(r'^http/[01]\.[01]$', re.IGNORECASE)
_FORM_MIME = 'application/x-www-form-urlencoded'


def default_creator() -> Creator:
    return Creator(name=CREATOR_NAME, version=__version__)


def to_iso(wall_time_s: float) -> str:
    """Format epoch seconds like JavaScript's ``Date.toISOString``."""
    moment = datetime.fromtimestamp(wall_time_s, tz=timezone.utc)
    return moment.isoformat(timespec='milliseconds').replace('+00:00', 'Z')


def build_document(
    url: str,
    hops: Iterable["PendingRequest"],
    main_hop: Optional["PendingRequest"],
    dom_content_s: Optional[float],
    load_s: Optional[float],
    content: bool = False,
    page_id: str = "page_1",
) -> HarDocument:
    """Build a single-page HAR document.

    Args:
        url: Page URL, used as the page title
        hops: Request hops in first-seen order
        main_hop: Hop of the main document request (page start reference)
        dom_content_s: First ``Page.domContentEventFired`` timestamp
        load_s: First ``Page.loadEventFired`` timestamp
        content: Whether response bodies are included
        page_id: Identifier used for the page and entry ``pageref``

    Returns:
        HarDocument with one page and every terminal hop that has a response
    """
    pages = []
    if main_hop is not None:
        pages.append(build_page(page_id, url, main_hop, dom_content_s, load_s))

    entries = []
    for hop in hops:
        entry = build_entry(hop, page_id if pages else None, content)
        if entry is not None:
            entries.append(entry)

    return HarDocument(log=HarLog(creator=default_creator(), pages=pages, entries=entries))


def build_page(
    page_id: str,
    url: str,
    main_hop: "PendingRequest",
    dom_content_s: Optional[float],
    load_s: Optional[float],
) -> HarPage:
    start_s = main_hop.start_reference_s
    timings = PageTimings(
        on_content_load=_elapsed_ms(start_s, dom_content_s),
        on_load=_elapsed_ms(start_s, load_s),
    )
    return HarPage(
        id=page_id,
        title=url,
        started_date_time=to_iso(main_hop.start_wall_time_s),
        page_timings=timings,
    )


def build_entry(hop: "PendingRequest", pageref: Optional[str], content: bool = False) -> Optional[HarEntry]:
    """Build the HAR entry of one hop, or None when it cannot be represented.

    Hops that never received a response (or never reached a terminal
    phase) are skipped, except cache hits; hops without timing information
    are kept with ``time == -1``.
    """
    response = hop.response
    if hop.phase == RequestPhase.PENDING or (response is None and hop.phase != RequestPhase.CACHED):
        logger.debug(f"Skipping request without response: {hop.request_id} {hop.url}")
        return None
    if response is None:
        response = {}

    request = hop.request
    http_version = response.get('protocol') or 'unknown'
    method = request.get('method', 'GET')
    url = request.get('url', hop.url)
    status = int(response.get('status') or 0)
    status_text = response.get('statusText') or ''

    request_headers = HeaderSet.from_mapping(request.get('headers'))
    if hop.extra_request is not None:
        request_headers.merge_all(hop.extra_request.get('headers'))
    request_headers.merge_all(response.get('requestHeaders'))

    response_headers = HeaderSet.from_mapping(response.get('headers'))
    if hop.extra_response is not None:
        response_headers.merge_all(hop.extra_response.get('headers'))

    request_headers_size = -1
    response_headers_size = -1
    if _HTTP1_RE.match(http_version):
        version = http_version.upper()
        request_headers_size = request_headers.raw_size(f"{method} {_request_target(url)} {version}")
        headers_text = response.get('headersText')
        if not headers_text and hop.extra_response is not None:
            headers_text = hop.extra_response.get('headersText')
        if headers_text:
            response_headers_size = len(headers_text.encode('utf-8'))
        else:
            response_headers_size = response_headers.raw_size(f"{version} {status} {status_text}")

    time, timings = compute_timings(hop)
    body_size, transfer_size, compression = compute_payload(hop, response_headers_size)

    text = None
    encoding = None
    if content and hop.body is not None:
        text = hop.body
        encoding = 'base64' if hop.body_base64 else None

    server_ip = response.get('remoteIPAddress')
    if server_ip:
        server_ip = re.sub(r'^\[(.*)\]$', r'\1', server_ip)
    connection_id = response.get('connectionId')

    from_disk_cache = response.get('fromDiskCache')
    if hop.from_cache:
        from_disk_cache = True

    return HarEntry(
        pageref=pageref,
        started_date_time=to_iso(hop.start_wall_time_s),
        time=time,
        request=HarRequest(
            method=method,
            url=url,
            http_version=http_version,
            headers=request_headers.to_har(),
            query_string=parse_query_string(url),
            post_data=parse_post_data(request, request_headers),
            headers_size=request_headers_size,
            body_size=_int_or(request_headers.get('content-length'), -1),
        ),
        response=HarResponse(
            status=status,
            status_text=status_text,
            http_version=http_version,
            headers=response_headers.to_har(),
            redirect_url=response_headers.get('location', ''),
            headers_size=response_headers_size,
            body_size=body_size,
            transfer_size=transfer_size,
            content=Content(
                size=hop.data_length,
                mime_type=response.get('mimeType') or '',
                compression=compression,
                text=text,
                encoding=encoding,
            ),
        ),
        timings=timings,
        server_ip_address=server_ip or None,
        connection=str(connection_id) if connection_id is not None else None,
        initiator=hop.request_params.get('initiator'),
        priority=hop.priority or request.get('initialPriority'),
        resource_type=hop.request_params.get('type'),
        from_disk_cache=from_disk_cache,
    )


def compute_timings(hop: "PendingRequest") -> Tuple[float, Timings]:
    """Total time and phase breakdown of a hop.

    The start reference is the continuation marker when one was recorded,
    otherwise the ``requestTime`` of the response timing. The phases are
    offsets relative to ``requestTime``, so the gap between the two
    references is accounted as ``blocked`` and ``receive`` absorbs the
    remainder, keeping the phases summed to ``time``.
    """
    timing = hop.response.get('timing') if hop.response else None
    finish_s = hop.finished_s if hop.finished_s is not None else hop.failed_s
    if not timing or finish_s is None or timing.get('requestTime') is None:
        return -1, Timings.unavailable()

    request_time = timing['requestTime']
    start_s = hop.continued_s if hop.continued_s is not None else request_time
    time = max(0.0, _to_ms(finish_s - start_s))
    shift = _to_ms(request_time - start_s)

    dns_start = timing.get('dnsStart', -1)
    connect_start = timing.get('connectStart', -1)
    send_start = timing.get('sendStart', -1)
    send_end = timing.get('sendEnd', -1)
    ssl_start = timing.get('sslStart', -1)
    ssl_end = timing.get('sslEnd', -1)
    receive_headers_end = timing.get('receiveHeadersEnd', -1)

    blocked = first_non_negative([dns_start, connect_start, send_start])
    dns = -1
    if dns_start >= 0:
        dns = first_non_negative([connect_start, send_start]) - dns_start
    connect = -1
    if connect_start >= 0:
        connect = send_start - connect_start
    send = max(0.0, send_end - send_start)
    wait = max(0.0, receive_headers_end - send_end)
    ssl = -1
    if ssl_start >= 0 and ssl_end >= 0:
        ssl = ssl_end - ssl_start

    blocked = max(0.0, max(blocked, 0) + shift)
    accounted = blocked + max(dns, 0) + max(connect, 0) + send + wait
    receive = max(0.0, time - accounted)

    return time, Timings(
        blocked=blocked,
        dns=dns,
        connect=connect,
        send=send,
        wait=wait,
        receive=receive,
        ssl=ssl,
    )


def compute_payload(hop: "PendingRequest", response_headers_size: int) -> Tuple[int, Optional[int], Optional[int]]:
    """Response ``bodySize``, ``_transferSize`` and ``content.compression``.

    Chrome reports the decoded body length (``dataReceived``) and the total
    on-the-wire length (``loadingFinished``); the encoded body size can only
    be derived when the header block size is known (HTTP/1.x).
    """
    transfer_size = hop.encoded_length
    if response_headers_size == -1:
        return -1, transfer_size, None
    if hop.phase == RequestPhase.FAILED:
        # loadingFailed carries no length, only the headers went through
        return 0, response_headers_size, 0
    if hop.from_cache:
        # served locally, no body crossed the wire
        return 0, transfer_size, None
    if transfer_size is None:
        return -1, None, None
    body_size = transfer_size - response_headers_size
    return body_size, transfer_size, hop.data_length - body_size


def parse_query_string(url: str) -> List[QueryParam]:
    query = urlsplit(url).query
    return [QueryParam(name=name, value=value) for name, value in parse_qsl(query, keep_blank_values=True)]


def parse_post_data(request: Dict[str, Any], headers: HeaderSet) -> Optional[PostData]:
    text = request.get('postData')
    if text is None and request.get('postDataEntries'):
        text = _join_post_data_entries(request['postDataEntries'])
    if not text:
        return None
    mime_type = headers.get('content-type', '')
    params = []
    if mime_type.split(';', 1)[0].strip().lower() == _FORM_MIME:
        params = [QueryParam(name=name, value=value) for name, value in parse_qsl(text, keep_blank_values=True)]
    return PostData(mime_type=mime_type, params=params, text=text)


def merge_documents(documents: Iterable[HarDocument], creator: Optional[Creator] = None) -> HarDocument:
    """Combine single-capture documents into one log.

    Pages are renumbered ``page_1..page_n`` in input order and the entries
    of each page are re-pointed to the new identifier.
    """
    pages: List[HarPage] = []
    entries: List[HarEntry] = []
    for document in documents:
        renamed = {}
        for page in document.log.pages:
            new_id = f"page_{len(pages) + 1}"
            renamed[page.id] = new_id
            pages.append(page.model_copy(update={'id': new_id}))
        for entry in document.log.entries:
            pageref = renamed.get(entry.pageref, entry.pageref)
            entries.append(entry.model_copy(update={'pageref': pageref}))
    return HarDocument(log=HarLog(creator=creator or default_creator(), pages=pages, entries=entries))


def first_non_negative(values: Iterable[float]) -> float:
    for value in values:
        if value is not None and value >= 0:
            return value
    return -1


def _elapsed_ms(start_s: float, event_s: Optional[float]) -> float:
    if event_s is None:
        return -1
    return _to_ms(event_s - start_s)


def _to_ms(seconds: float) -> float:
    return seconds * 1000


def _int_or(value: Any, default: int) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _request_target(url: str) -> str:
    parts = urlsplit(url)
    target = parts.path or '/'
    if parts.query:
        target = f"{target}?{parts.query}"
    return target


def _join_post_data_entries(entries: List[Dict[str, Any]]) -> str:
    chunks = []
    for entry in entries:
        encoded = entry.get('bytes')
        if encoded:
            chunks.append(base64.b64decode(encoded))
    return b''.join(chunks).decode('utf-8', errors='replace')

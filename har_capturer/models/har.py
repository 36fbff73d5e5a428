"""Pydantic models for HAR 1.2 documents.

Field names are snake_case in Python and serialize to the camelCase names of
the HAR 1.2 format. Chrome-specific extensions use the underscore
prefix reserved by the format for custom fields (``_transferSize``,
``_initiator``...).
"""

import json
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

HAR_VERSION = "1.2"


class HarModel(BaseModel):
    """Base model serializing to HAR field names."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to a plain HAR-shaped dictionary."""
        return self.model_dump(by_alias=True, exclude_none=True)


class HeaderEntry(HarModel):
    """Single HTTP header; names may repeat within a collection."""

    name: str = Field(description="Header name as observed on the wire")
    value: str = Field(description="Header value")


class QueryParam(HarModel):
    """Query string or form parameter."""

    name: str
    value: str


class PostData(HarModel):
    """Request payload."""

    mime_type: str = Field(default="", description="MIME type of the posted data")
    params: List[QueryParam] = Field(default_factory=list)
    text: str = Field(default="", description="Plain text posted data")


class HarRequest(HarModel):
    """Request line, headers and payload of an entry."""

    method: str
    url: str
    http_version: str = Field(default="unknown")
    cookies: List[Dict[str, Any]] = Field(default_factory=list)
    headers: List[HeaderEntry] = Field(default_factory=list)
    query_string: List[QueryParam] = Field(default_factory=list)
    post_data: Optional[PostData] = None
    headers_size: int = Field(default=-1)
    body_size: int = Field(default=-1)


class Content(HarModel):
    """Response body description."""

    size: int = Field(default=0, description="Decoded body length in bytes")
    mime_type: str = Field(default="")
    compression: Optional[int] = None
    text: Optional[str] = None
    encoding: Optional[str] = None


class HarResponse(HarModel):
    """Status, headers and content of an entry."""

    status: int = 0
    status_text: str = ""
    http_version: str = Field(default="unknown")
    cookies: List[Dict[str, Any]] = Field(default_factory=list)
    headers: List[HeaderEntry] = Field(default_factory=list)
    content: Content = Field(default_factory=Content)
    redirect_url: str = Field(default="", alias="redirectURL")
    headers_size: int = Field(default=-1)
    body_size: int = Field(default=-1)
    transfer_size: Optional[int] = Field(default=None, alias="_transferSize")


class Timings(HarModel):
    """Phase breakdown of an entry, in milliseconds (-1 when not applicable)."""

    blocked: float = -1
    dns: float = -1
    connect: float = -1
    send: float = 0
    wait: float = 0
    receive: float = 0
    ssl: float = -1

    @classmethod
    def unavailable(cls) -> "Timings":
        """Timings for entries without attributable timing information."""
        return cls()


class HarEntry(HarModel):
    """One request/response exchange (a single redirect hop)."""

    pageref: Optional[str] = None
    started_date_time: str = Field(description="ISO 8601 start of the request")
    time: float = Field(description="Total elapsed time in ms, -1 when unavailable")
    request: HarRequest
    response: HarResponse
    cache: Dict[str, Any] = Field(default_factory=dict)
    timings: Timings = Field(default_factory=Timings)
    server_ip_address: Optional[str] = Field(default=None, alias="serverIPAddress")
    connection: Optional[str] = None
    initiator: Optional[Dict[str, Any]] = Field(default=None, alias="_initiator")
    priority: Optional[str] = Field(default=None, alias="_priority")
    resource_type: Optional[str] = Field(default=None, alias="_resourceType")
    from_disk_cache: Optional[bool] = Field(default=None, alias="_fromDiskCache")

    @property
    def has_timing(self) -> bool:
        """Whether this entry carries attributable timing."""
        return self.time != -1


class PageTimings(HarModel):
    """Page-level milestones relative to the page start, in ms."""

    on_content_load: float = -1
    on_load: float = -1


class HarPage(HarModel):
    """Page record for one captured URL."""

    id: str
    title: str = ""
    started_date_time: str
    page_timings: PageTimings = Field(default_factory=PageTimings)
    user: Optional[Any] = Field(default=None, alias="_user")


class Creator(HarModel):
    """Application that produced the log."""

    name: str
    version: str


class HarLog(HarModel):
    version: str = HAR_VERSION
    creator: Creator
    pages: List[HarPage] = Field(default_factory=list)
    entries: List[HarEntry] = Field(default_factory=list)


class HarDocument(HarModel):
    """Top-level HAR document: ``{"log": {...}}``."""

    log: HarLog

    @property
    def user(self) -> Optional[Any]:
        """Post-hook result attached to the (first) page, if any."""
        if self.log.pages:
            return self.log.pages[0].user
        return None

    def attach_user(self, value: Any) -> None:
        """Store a post-hook result in the pages' ``_user`` field."""
        for page in self.log.pages:
            page.user = value

    def entries_with_timing(self) -> List[HarEntry]:
        """Entries that can take part in duration thresholds."""
        return [entry for entry in self.log.entries if entry.has_timing]

    def to_json(self, indent: Optional[int] = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent, ensure_ascii=False)

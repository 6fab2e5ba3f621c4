"""Typed values passed between the Otter client layers.

WHY: The Otter API returns loosely shaped JSON, and the client threads its
identity through every call. Small dataclasses make the response envelope,
the auth state, and the aggregation results explicit instead of leaving
them as ad-hoc dicts.

HOW: Envelope is the uniform result of every remote call. AuthState bundles
the user id with the CookieJar and is replaced as a whole on login.
SpeechPage and AggregationResult hold the results of the "get everything"
helpers; to_dict() reproduces the JSON shape served by the proxy.

RULES:
- Envelope.data is parsed JSON, text, or raw bytes depending on the call
- AuthState is frozen; login builds a new one, it is never mutated
- AggregationResult.merged lists owned records before shared records
- SpeechSummary.source is the source the record was fetched from
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any

from otter_proxy.api.cookies import CookieJar

SOURCES = ("owned", "shared")
"""Speech sources queried by the aggregation helpers, in merge order."""

MAX_PAGE_SIZE = 200
"""Largest page the Otter speeches endpoint is assumed to honour."""


class ResponseKind(str, enum.Enum):
    """How a response body is decoded into Envelope.data."""

    JSON = "json"
    BYTES = "bytes"


@dataclass(frozen=True)
class Envelope:
    """Status code and decoded body of a remote call."""

    status_code: int
    data: Any = None

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300


@dataclass(frozen=True)
class AuthState:
    """Identity and cookies of one login.

    An AuthState without a user_id is the unauthenticated state.
    """

    user_id: str | None = None
    cookies: CookieJar = field(default_factory=CookieJar)

    @property
    def authenticated(self) -> bool:
        return bool(self.user_id)


@dataclass(frozen=True)
class SpeechSummary:
    """Normalized projection of a remote speech record."""

    id: str | None
    title: str
    created_at: Any
    duration: float
    source: str

    @classmethod
    def from_record(cls, record: dict, source: str) -> SpeechSummary:
        speech_id = record.get("id") or record.get("otid")
        return cls(
            id=str(speech_id) if speech_id is not None else None,
            title=record.get("title") or "Untitled",
            created_at=record.get("created_at"),
            duration=record.get("duration") or 0,
            source=source,
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "created_at": self.created_at,
            "duration": self.duration,
            "source": self.source,
        }


@dataclass
class SpeechPage:
    """Result of a single-request "get all speeches" call.

    ``truncated`` is a best-effort signal: the API has no cursor, so a page
    that comes back exactly full may or may not be the whole list.
    """

    speeches: list[dict]
    page_size: int

    @property
    def total_count(self) -> int:
        return len(self.speeches)

    @property
    def truncated(self) -> bool:
        return len(self.speeches) == self.page_size

    @property
    def note(self) -> str:
        if self.truncated:
            return "Max page size reached - there may be more speeches"
        return "All available speeches retrieved"

    def to_dict(self) -> dict:
        return {
            "status": "OK",
            "speeches": self.speeches,
            "total_count": self.total_count,
            "truncated": self.truncated,
            "note": self.note,
        }


@dataclass
class AggregationResult:
    """Speeches gathered from every source, keyed by source."""

    by_source: dict[str, list[dict]] = field(
        default_factory=lambda: {source: [] for source in SOURCES}
    )

    @property
    def owned_count(self) -> int:
        return len(self.by_source.get("owned", []))

    @property
    def shared_count(self) -> int:
        return len(self.by_source.get("shared", []))

    @property
    def total_count(self) -> int:
        return sum(len(records) for records in self.by_source.values())

    @property
    def merged(self) -> list[dict]:
        merged: list[dict] = []
        for source in SOURCES:
            merged.extend(self.by_source.get(source, []))
        return merged

    def summaries(self) -> list[SpeechSummary]:
        return [
            SpeechSummary.from_record(record, source)
            for source in SOURCES
            for record in self.by_source.get(source, [])
        ]

    def to_dict(self) -> dict:
        return {
            "status": "OK",
            "speeches_by_source": {
                **{source: list(self.by_source.get(source, [])) for source in SOURCES},
                "total": self.total_count,
            },
            "all_speeches": self.merged,
            "summary": {
                "owned_count": self.owned_count,
                "shared_count": self.shared_count,
                "total_count": self.total_count,
            },
        }

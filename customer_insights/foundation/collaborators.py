"""Contracts for the platform services the analytics core reads from.

Sessions, campaigns and people are owned by the surrounding commerce
platform and referenced here by id only. The in-memory implementations back
the CLI, the MCP server and the tests.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Iterable, Mapping, Optional, Protocol, Sequence

from customer_insights.foundation.records import ensure_utc, parse_datetime


@dataclass(frozen=True)
class Session:
    """An analytics session with its landing UTM parameters."""

    id: str
    visitor_id: str
    started_at: datetime
    website_id: Optional[str] = None
    utm_source: Optional[str] = None
    utm_medium: Optional[str] = None
    utm_campaign: Optional[str] = None
    utm_term: Optional[str] = None
    utm_content: Optional[str] = None
    pageviews: int = 0
    entry_page: Optional[str] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "started_at", ensure_utc(self.started_at))

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Session":
        payload = dict(data)
        payload["started_at"] = parse_datetime(payload["started_at"])
        return cls(**payload)


@dataclass(frozen=True)
class Campaign:
    id: str
    name: str
    platform_campaign_id: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Campaign":
        return cls(**dict(data))


@dataclass(frozen=True)
class Person:
    id: str
    created_at: datetime
    email: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    tags: tuple[str, ...] = ()
    metadata: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "created_at", ensure_utc(self.created_at))
        object.__setattr__(self, "tags", tuple(self.tags))

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Person":
        payload = dict(data)
        payload["created_at"] = parse_datetime(payload["created_at"])
        return cls(**payload)


class SessionStore(Protocol):
    def get_session(self, session_id: str) -> Optional[Session]: ...

    def list_sessions(self) -> Sequence[Session]: ...


class CampaignDirectory(Protocol):
    def list_campaigns(self) -> Sequence[Campaign]: ...


class PersonDirectory(Protocol):
    def get_person(self, person_id: str) -> Optional[Person]: ...

    def list_people(self) -> Sequence[Person]: ...


class InMemorySessionStore:
    def __init__(self, sessions: Iterable[Session] = ()) -> None:
        self._sessions = {s.id: s for s in sessions}

    def add(self, session: Session) -> None:
        self._sessions[session.id] = session

    def get_session(self, session_id: str) -> Optional[Session]:
        return self._sessions.get(session_id)

    def list_sessions(self) -> list[Session]:
        return list(self._sessions.values())


class InMemoryCampaignDirectory:
    def __init__(self, campaigns: Iterable[Campaign] = ()) -> None:
        self._campaigns = list(campaigns)

    def add(self, campaign: Campaign) -> None:
        self._campaigns.append(campaign)

    def list_campaigns(self) -> list[Campaign]:
        return list(self._campaigns)


class InMemoryPersonDirectory:
    def __init__(self, people: Iterable[Person] = ()) -> None:
        self._people = {p.id: p for p in people}

    def add(self, person: Person) -> None:
        self._people[person.id] = person

    def get_person(self, person_id: str) -> Optional[Person]:
        return self._people.get(person_id)

    def list_people(self) -> list[Person]:
        return list(self._people.values())

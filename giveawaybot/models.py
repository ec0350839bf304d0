"""Data models used for giveaway persistence and lifecycle outcomes."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Iterable, List, Optional

MIN_WINNERS = 1
MAX_WINNERS = 10


class GiveawayStatus(str, enum.Enum):
    ACTIVE = "active"
    ENDED = "ended"
    REROLLED = "rerolled"


def unique_ids(values: Iterable[object]) -> List[str]:
    """Return string ids with duplicates removed, keeping first occurrence."""
    seen: set[str] = set()
    result: List[str] = []
    for value in values:
        if value is None:
            continue
        key = str(value)
        if key in seen:
            continue
        seen.add(key)
        result.append(key)
    return result


@dataclass(slots=True)
class Giveaway:
    """A single drawing announced in a tenant channel.

    ``id`` is the announcement message id. Timestamps are milliseconds since
    the epoch.
    """
    tenant_id: str
    id: str
    channel_id: str
    host_id: str
    prize: str
    winner_count: int
    end_time: int
    created_at: int
    participants: List[str] = field(default_factory=list)
    status: GiveawayStatus = GiveawayStatus.ACTIVE
    winners: List[str] = field(default_factory=list)
    ended_at: Optional[int] = None
    rerolled_at: Optional[int] = None

    @property
    def is_active(self) -> bool:
        return self.status is GiveawayStatus.ACTIVE

    def accepts_entries(self, now_ms: int) -> bool:
        """Entries close on status or on time, whichever comes first."""
        return self.is_active and self.end_time > now_ms

    def is_due(self, now_ms: int, buffer_ms: int = 0) -> bool:
        """Whether a sweep at ``now_ms`` should end this giveaway."""
        return self.is_active and self.end_time <= now_ms + buffer_ms

    def add_participant(self, user_id: str) -> bool:
        """Add a participant if they are not already in the list."""
        if user_id in self.participants:
            return False
        self.participants.append(user_id)
        return True

    def to_payload(self) -> dict:
        """Serialize the giveaway to a JSON-serialisable structure."""
        return {
            "tenant_id": self.tenant_id,
            "id": self.id,
            "channel_id": self.channel_id,
            "host_id": self.host_id,
            "prize": self.prize,
            "winner_count": self.winner_count,
            "end_time": self.end_time,
            "created_at": self.created_at,
            "participants": list(self.participants),
            "status": self.status.value,
            "winners": list(self.winners),
            "ended_at": self.ended_at,
            "rerolled_at": self.rerolled_at,
        }

    @classmethod
    def from_payload(cls, payload: dict, *, tenant_id: Optional[str] = None) -> "Giveaway":
        """Reconstruct a Giveaway from serialized payload data."""
        ended_at = payload.get("ended_at")
        rerolled_at = payload.get("rerolled_at")
        return cls(
            tenant_id=str(tenant_id if tenant_id is not None else payload["tenant_id"]),
            id=str(payload["id"]),
            channel_id=str(payload["channel_id"]),
            host_id=str(payload.get("host_id", "")),
            prize=str(payload.get("prize", "")),
            winner_count=int(payload["winner_count"]),
            end_time=int(payload["end_time"]),
            created_at=int(payload.get("created_at", 0)),
            participants=unique_ids(payload.get("participants", [])),
            status=GiveawayStatus(payload.get("status", GiveawayStatus.ACTIVE.value)),
            winners=unique_ids(payload.get("winners", [])),
            ended_at=int(ended_at) if ended_at is not None else None,
            rerolled_at=int(rerolled_at) if rerolled_at is not None else None,
        )


@dataclass(slots=True)
class EndOutcome:
    """Result of ending a giveaway, handed to notification."""
    giveaway: Giveaway
    winners: List[str]


@dataclass(slots=True)
class RerollOutcome:
    giveaway: Giveaway
    winners: List[str]


class JoinStatus(str, enum.Enum):
    JOINED = "joined"
    NOT_FOUND = "not_found"
    ALREADY_CLOSED = "already_closed"
    ALREADY_ENTERED = "already_entered"
    RATE_LIMITED = "rate_limited"


@dataclass(slots=True)
class JoinResult:
    status: JoinStatus
    total_entries: int = 0

    @property
    def accepted(self) -> bool:
        return self.status is JoinStatus.JOINED


@dataclass(slots=True)
class SweepReport:
    """Summary of one sweep across all tenants."""
    tenants: int = 0
    ended: List[str] = field(default_factory=list)
    failures: int = 0

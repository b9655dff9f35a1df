"""Data models for the conversation memory."""

import math
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Union

from .text import norm

STORE_VERSION = 2

DEFAULT_CONFIDENCE = 0.5

PersonaId = Union[str, int]


class FactType(str, Enum):
    """Closed set of fact categories."""

    PREFERENCE_LIKE = "preference_like"
    PREFERENCE_DISLIKE = "preference_dislike"
    INTEREST = "interest"
    WANT = "want"
    GOAL_PLAN = "goal_plan"
    HABIT = "habit"
    SKILL_ROLE = "skill_role"
    RELATIONSHIP = "relationship"
    BOUNDARY = "boundary"
    EXPERIENCE = "experience"
    IDENTITY_NAME = "identity_name"
    OTHER = "other"

    @classmethod
    def coerce(cls, value: Any) -> "FactType":
        """Parse a raw value, falling back to OTHER for anything unknown."""
        if isinstance(value, cls):
            return value
        try:
            return cls(norm(value))
        except ValueError:
            return cls.OTHER


class FactStatus(str, Enum):
    """Only active facts are eligible for injection."""

    ACTIVE = "active"
    INACTIVE = "inactive"

    @classmethod
    def coerce(cls, value: Any) -> "FactStatus":
        if isinstance(value, cls):
            return value
        try:
            return cls(norm(value))
        except ValueError:
            return cls.ACTIVE


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def now_ms() -> int:
    return int(time.time() * 1000)


def new_fact_id() -> str:
    """Generate an opaque fact id like ``m_1700000000000_3f9a1c0b2d4e``."""
    return f"m_{now_ms()}_{uuid.uuid4().hex[:12]}"


def clamp_confidence(value: Any, default: float = DEFAULT_CONFIDENCE) -> float:
    """Coerce a confidence into [0, 1]; unparseable values become the default."""
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    if math.isnan(number):
        return default
    return min(1.0, max(0.0, number))


def normalize_tags(tags: Any) -> list[str]:
    """Normalize tags, dropping empties and collapsing duplicates.

    Accepts a list or a comma-separated string.
    """
    if tags is None:
        return []
    if isinstance(tags, str):
        tags = tags.split(",")
    elif not isinstance(tags, (list, tuple, set, frozenset)):
        return []
    seen: dict[str, None] = {}
    for tag in tags:
        cleaned = norm(tag)
        if cleaned:
            seen.setdefault(cleaned, None)
    return list(seen)


def format_timestamp(value: datetime) -> str:
    """ISO-8601 with millisecond precision and a ``Z`` suffix."""
    value = value.astimezone(timezone.utc)
    return value.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_timestamp(value: Any, default: datetime | None = None) -> datetime:
    """Parse an ISO-8601 string (or datetime); invalid input yields the default."""
    fallback = default or utcnow()
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value.strip():
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return fallback
    else:
        return fallback
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def fact_key(fact_type: Any, value: Any) -> tuple[str, str]:
    """The merge identity: (type, lowercased normalized value)."""
    return FactType.coerce(fact_type).value, norm(value).lower()


@dataclass
class Fact:
    """A single typed statement about the user.

    Attributes:
        id: Opaque identifier, stable for the fact's lifetime.
        type: Category of the fact.
        value: Normalized text shown to the character.
        status: Active facts are eligible for injection.
        confidence: Score in [0, 1].
        tags: Free-form labels without duplicates.
        source: Provenance note ('auto', 'manual', 'import' or empty).
        created_at: When the fact was first created.
        last_seen_at: When the fact was last observed or edited.
    """

    type: FactType
    value: str
    id: str = field(default_factory=new_fact_id)
    status: FactStatus = FactStatus.ACTIVE
    confidence: float = DEFAULT_CONFIDENCE
    tags: list[str] = field(default_factory=list)
    source: str = ""
    created_at: datetime = field(default_factory=utcnow)
    last_seen_at: datetime = field(default_factory=utcnow)

    def __post_init__(self) -> None:
        self.type = FactType.coerce(self.type)
        self.status = FactStatus.coerce(self.status)
        self.value = norm(self.value)
        self.confidence = clamp_confidence(self.confidence)
        self.tags = normalize_tags(self.tags)
        self.source = norm(self.source)
        if not norm(self.id):
            self.id = new_fact_id()

    @property
    def key(self) -> tuple[str, str]:
        return fact_key(self.type, self.value)

    @property
    def is_active(self) -> bool:
        return self.status is FactStatus.ACTIVE

    def touch(self, now: datetime | None = None) -> None:
        """Mark the fact as seen."""
        self.last_seen_at = now or utcnow()

    def to_dict(self) -> dict[str, Any]:
        """Serialize using the exchange field names."""
        return {
            "id": self.id,
            "type": self.type.value,
            "value": self.value,
            "status": self.status.value,
            "confidence": self.confidence,
            "tags": list(self.tags),
            "source": self.source,
            "createdAt": format_timestamp(self.created_at),
            "lastSeenAt": format_timestamp(self.last_seen_at),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Fact":
        """Build a fact from exchange data, defaulting anything missing."""
        now = utcnow()
        return cls(
            id=norm(data.get("id")),
            type=FactType.coerce(data.get("type")),
            value=norm(data.get("value")),
            status=FactStatus.coerce(data.get("status")),
            confidence=clamp_confidence(data.get("confidence")),
            tags=normalize_tags(data.get("tags")),
            source=norm(data.get("source")),
            created_at=parse_timestamp(data.get("createdAt"), now),
            last_seen_at=parse_timestamp(data.get("lastSeenAt"), now),
        )


def make_fact(
    fact_type: FactType | str,
    value: str,
    confidence: float = DEFAULT_CONFIDENCE,
    tags: list[str] | tuple[str, ...] | None = None,
    source: str = "",
) -> Fact:
    """Create a fresh active fact with a new id and both timestamps at now."""
    now = utcnow()
    return Fact(
        type=FactType.coerce(fact_type),
        value=value,
        confidence=confidence,
        tags=list(tags or []),
        source=source,
        created_at=now,
        last_seen_at=now,
    )


@dataclass
class ConversationMemoryStore:
    """The per-conversation record: owner lock plus the fact list.

    ``facts`` is kept in creation order; that order is the recency fallback
    and the tie-break for ranking. ``updated_at`` is epoch milliseconds.
    """

    version: int = STORE_VERSION
    owner_char_id: PersonaId | None = None
    facts: list[Fact] = field(default_factory=list)
    updated_at: int = field(default_factory=now_ms)

    @property
    def is_locked(self) -> bool:
        return self.owner_char_id is not None

    def find(self, key: tuple[str, str]) -> Fact | None:
        """Find the fact holding a merge key."""
        for fact in self.facts:
            if fact.key == key:
                return fact
        return None

    def get(self, fact_id: str) -> Fact | None:
        for fact in self.facts:
            if fact.id == fact_id:
                return fact
        return None

    def remove(self, fact_id: str) -> bool:
        """Delete a fact by id. Returns True if something was removed."""
        before = len(self.facts)
        self.facts = [f for f in self.facts if f.id != fact_id]
        return len(self.facts) < before

    def clear(self) -> int:
        """Delete every fact. Returns how many were removed."""
        count = len(self.facts)
        self.facts = []
        return count

    def active_facts(self) -> list[Fact]:
        return [f for f in self.facts if f.is_active and f.value]

    def touch(self) -> None:
        self.updated_at = now_ms()

    def to_dict(self) -> dict[str, Any]:
        return {
            "version": self.version,
            "ownerCharId": self.owner_char_id,
            "facts": [f.to_dict() for f in self.facts],
            "updatedAt": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ConversationMemoryStore":
        """Rebuild a persisted record.

        Malformed parts are defaulted rather than rejected; facts sharing a
        merge key are collapsed into the first one.
        """
        from .merge import collapse_duplicates

        store = cls()
        version = data.get("version")
        if isinstance(version, int) and not isinstance(version, bool):
            store.version = version
        owner = data.get("ownerCharId")
        if isinstance(owner, (str, int)) and not isinstance(owner, bool):
            store.owner_char_id = owner
        updated_at = data.get("updatedAt")
        if isinstance(updated_at, (int, float)) and not isinstance(updated_at, bool):
            store.updated_at = int(updated_at)

        raw_facts = data.get("facts")
        if isinstance(raw_facts, list):
            facts = [Fact.from_dict(item) for item in raw_facts if isinstance(item, dict)]
            collapse_duplicates(store, facts)
        return store

"""
Fact ledger and conflict detection.

Facts are append-only observations about exactly one entity (person,
organization, deal or conversation). A fact is "current" while valid_until
is NULL; at most one current fact exists per (entity, fact_type, key),
which the store enforces with partial unique indexes.

Rows are never deleted. Superseding a fact sets valid_until and
replaced_by_fact; the value itself is immutable.
"""
import logging
import sqlite3
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional

from config.conflict_strategies import CONFLICT_STRATEGIES, DEFAULT_CONFLICT_STRATEGY
from relgraph.services.errors import ValidationError
from relgraph.services.graph_store import GraphStore, get_graph_store
from relgraph.utils.datetime_utils import parse_timestamp, to_utc_iso, utc_now

logger = logging.getLogger(__name__)

DEFAULT_CONFIDENCE = 1.0


class EntityKind(str, Enum):
    """Entity types a fact can describe."""
    PERSON = "person"
    ORGANIZATION = "organization"
    DEAL = "deal"
    CONVERSATION = "conversation"

    @property
    def column(self) -> str:
        """Column in the facts table holding this kind's id."""
        return f"{self.value}_id"


@dataclass(frozen=True)
class EntityRef:
    """Reference to the single entity a fact is about."""
    kind: EntityKind
    id: str

    def __post_init__(self):
        if not isinstance(self.kind, EntityKind):
            try:
                object.__setattr__(self, "kind", EntityKind(self.kind))
            except ValueError:
                raise ValidationError(f"Unknown entity kind: {self.kind}", field="entity")

    @property
    def column(self) -> str:
        return self.kind.column

    def to_dict(self) -> dict:
        return {"kind": self.kind.value, "id": self.id}


@dataclass
class FactInput:
    """A candidate fact from a caller, not yet written."""
    entity: EntityRef
    fact_type: str
    key: str
    value: str
    source_type: str
    source_id: Optional[str] = None
    source_url: Optional[str] = None
    confidence: Optional[float] = None
    created_by: Optional[str] = None

    @property
    def effective_confidence(self) -> float:
        return DEFAULT_CONFIDENCE if self.confidence is None else self.confidence

    def validate(self) -> None:
        """
        Check required fields and ranges.

        Raises:
            ValidationError: On the first invalid field
        """
        if not isinstance(self.entity, EntityRef) or not self.entity.id:
            raise ValidationError("Fact requires exactly one entity reference", field="entity")
        for name in ("fact_type", "key", "source_type"):
            value = getattr(self, name)
            if not isinstance(value, str) or not value.strip():
                raise ValidationError(f"Fact requires {name}", field=name)
        if not isinstance(self.value, str):
            raise ValidationError("Fact value must be a string", field="value")
        confidence = self.effective_confidence
        if not 0.0 <= confidence <= 1.0:
            raise ValidationError(f"Confidence must be within [0, 1], got {confidence}", field="confidence")

    def to_dict(self) -> dict:
        return {
            "entity": self.entity.to_dict(),
            "fact_type": self.fact_type,
            "key": self.key,
            "value": self.value,
            "source_type": self.source_type,
            "source_id": self.source_id,
            "source_url": self.source_url,
            "confidence": self.confidence,
            "created_by": self.created_by,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "FactInput":
        entity = data["entity"]
        return cls(
            entity=EntityRef(EntityKind(entity["kind"]), entity["id"]),
            fact_type=data["fact_type"],
            key=data["key"],
            value=data["value"],
            source_type=data["source_type"],
            source_id=data.get("source_id"),
            source_url=data.get("source_url"),
            confidence=data.get("confidence"),
            created_by=data.get("created_by"),
        )


@dataclass
class Fact:
    """A stored fact row."""
    id: str
    entity: EntityRef
    fact_type: str
    key: str
    value: str
    source_type: str
    confidence: float
    valid_from: datetime
    source_id: Optional[str] = None
    source_url: Optional[str] = None
    valid_until: Optional[datetime] = None
    replaced_by_fact: Optional[str] = None
    created_by: Optional[str] = None
    created_at: Optional[datetime] = None

    @property
    def is_current(self) -> bool:
        return self.valid_until is None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "entity": self.entity.to_dict(),
            "fact_type": self.fact_type,
            "key": self.key,
            "value": self.value,
            "source_type": self.source_type,
            "source_id": self.source_id,
            "source_url": self.source_url,
            "confidence": self.confidence,
            "valid_from": to_utc_iso(self.valid_from),
            "valid_until": to_utc_iso(self.valid_until),
            "replaced_by_fact": self.replaced_by_fact,
            "created_by": self.created_by,
            "created_at": to_utc_iso(self.created_at),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Fact":
        entity = data["entity"]
        return cls(
            id=data["id"],
            entity=EntityRef(EntityKind(entity["kind"]), entity["id"]),
            fact_type=data["fact_type"],
            key=data["key"],
            value=data["value"],
            source_type=data["source_type"],
            source_id=data.get("source_id"),
            source_url=data.get("source_url"),
            confidence=data["confidence"],
            valid_from=parse_timestamp(data["valid_from"]),
            valid_until=parse_timestamp(data.get("valid_until")),
            replaced_by_fact=data.get("replaced_by_fact"),
            created_by=data.get("created_by"),
            created_at=parse_timestamp(data.get("created_at")),
        )

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "Fact":
        """Create a Fact from a database row."""
        entity = None
        for kind in EntityKind:
            if row[kind.column] is not None:
                entity = EntityRef(kind, row[kind.column])
                break
        return cls(
            id=row["id"],
            entity=entity,
            fact_type=row["fact_type"],
            key=row["key"],
            value=row["value"],
            source_type=row["source_type"],
            source_id=row["source_id"],
            source_url=row["source_url"],
            confidence=row["confidence"],
            valid_from=parse_timestamp(row["valid_from"]),
            valid_until=parse_timestamp(row["valid_until"]),
            replaced_by_fact=row["replaced_by_fact"],
            created_by=row["created_by"],
            created_at=parse_timestamp(row["created_at"]),
        )


@dataclass
class Conflict:
    """Current facts that disagree with an incoming observation."""
    new_fact: FactInput
    existing_facts: list[Fact] = field(default_factory=list)
    suggested_strategy: str = DEFAULT_CONFLICT_STRATEGY
    reason: str = ""

    @property
    def max_existing_confidence(self) -> float:
        return max((f.confidence for f in self.existing_facts), default=0.0)

    def to_dict(self) -> dict:
        return {
            "new_fact": self.new_fact.to_dict(),
            "existing_facts": [f.to_dict() for f in self.existing_facts],
            "suggested_strategy": self.suggested_strategy,
            "reason": self.reason,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Conflict":
        return cls(
            new_fact=FactInput.from_dict(data["new_fact"]),
            existing_facts=[Fact.from_dict(f) for f in data.get("existing_facts", [])],
            suggested_strategy=data.get("suggested_strategy", DEFAULT_CONFLICT_STRATEGY),
            reason=data.get("reason", ""),
        )


class FactStore:
    """
    Read access to the fact ledger, plus connection-level write helpers.

    The write helpers take an open connection so the resolver can run
    detection and resolution in one transaction.
    """

    def __init__(self, store: Optional[GraphStore] = None):
        self.store = store or get_graph_store()

    # --- reads ---

    def get(self, fact_id: str) -> Optional[Fact]:
        with self.store.read() as conn:
            row = conn.execute("SELECT * FROM facts WHERE id = ?", (fact_id,)).fetchone()
        return Fact.from_row(row) if row else None

    def get_current(self, entity: EntityRef, fact_type: str, key: str) -> Optional[Fact]:
        """Get the current fact for (entity, fact_type, key), if any."""
        with self.store.read() as conn:
            facts = self.fetch_current(conn, entity, fact_type, key)
        return facts[0] if facts else None

    def list_current(self, entity: EntityRef) -> list[Fact]:
        """All current facts about an entity."""
        with self.store.read() as conn:
            rows = conn.execute(
                f"SELECT * FROM facts WHERE {entity.column} = ? AND valid_until IS NULL "
                "ORDER BY fact_type, key",
                (entity.id,),
            ).fetchall()
        return [Fact.from_row(r) for r in rows]

    def get_history(self, entity: EntityRef, fact_type: str, key: str) -> list[Fact]:
        """Every fact ever recorded for (entity, fact_type, key), oldest first."""
        with self.store.read() as conn:
            rows = conn.execute(
                f"SELECT * FROM facts WHERE {entity.column} = ? AND fact_type = ? AND key = ? "
                "ORDER BY valid_from, created_at",
                (entity.id, fact_type, key),
            ).fetchall()
        return [Fact.from_row(r) for r in rows]

    # --- connection-level helpers ---

    def fetch_current(
        self, conn: sqlite3.Connection, entity: EntityRef, fact_type: str, key: str
    ) -> list[Fact]:
        rows = conn.execute(
            f"SELECT * FROM facts WHERE {entity.column} = ? AND fact_type = ? AND key = ? "
            "AND valid_until IS NULL",
            (entity.id, fact_type, key),
        ).fetchall()
        return [Fact.from_row(r) for r in rows]

    def insert(
        self,
        conn: sqlite3.Connection,
        fact_input: FactInput,
        now: datetime,
        value: Optional[str] = None,
        source_type: Optional[str] = None,
        source_id: Optional[str] = None,
        confidence: Optional[float] = None,
    ) -> Fact:
        """
        Insert a fact as current.

        value/source_type/source_id/confidence override the input's fields
        (used when synthesizing merged facts).
        """
        fact = Fact(
            id=str(uuid.uuid4()),
            entity=fact_input.entity,
            fact_type=fact_input.fact_type,
            key=fact_input.key,
            value=fact_input.value if value is None else value,
            source_type=source_type or fact_input.source_type,
            source_id=source_id if source_type else fact_input.source_id,
            source_url=None if source_type else fact_input.source_url,
            confidence=fact_input.effective_confidence if confidence is None else confidence,
            valid_from=now,
            created_by=fact_input.created_by,
            created_at=now,
        )
        conn.execute(
            f"""
            INSERT INTO facts (
                id, {fact.entity.column}, fact_type, key, value, source_type,
                source_id, source_url, confidence, valid_from, valid_until,
                replaced_by_fact, created_by, created_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, NULL, NULL, ?, ?)
            """,
            (
                fact.id, fact.entity.id, fact.fact_type, fact.key, fact.value,
                fact.source_type, fact.source_id, fact.source_url, fact.confidence,
                to_utc_iso(now), fact.created_by, to_utc_iso(now),
            ),
        )
        return fact

    def close(self, conn: sqlite3.Connection, fact_ids: list[str], now: datetime) -> None:
        """Mark facts historical. Must run before inserting their replacement."""
        conn.executemany(
            "UPDATE facts SET valid_until = ? WHERE id = ? AND valid_until IS NULL",
            [(to_utc_iso(now), fact_id) for fact_id in fact_ids],
        )

    def link_replacement(self, conn: sqlite3.Connection, fact_ids: list[str], replacement_id: str) -> None:
        conn.executemany(
            "UPDATE facts SET replaced_by_fact = ? WHERE id = ?",
            [(replacement_id, fact_id) for fact_id in fact_ids],
        )


class ConflictDetector:
    """Finds current facts that disagree with an incoming fact."""

    def __init__(
        self,
        fact_store: Optional[FactStore] = None,
        strategies: Optional[dict[str, str]] = None,
        default_strategy: Optional[str] = None,
    ):
        self.fact_store = fact_store or FactStore()
        self.strategies = CONFLICT_STRATEGIES if strategies is None else strategies
        self.default_strategy = default_strategy or DEFAULT_CONFLICT_STRATEGY

    def get_strategy_for_fact_type(self, fact_type: str) -> str:
        """Strategy for a fact type, or the default for unmapped types."""
        return self.strategies.get(fact_type, self.default_strategy)

    def detect_conflict(
        self, fact_input: FactInput, conn: Optional[sqlite3.Connection] = None
    ) -> Optional[Conflict]:
        """
        Compare an incoming fact with the current facts for its key.

        Args:
            fact_input: Incoming observation
            conn: Open connection to read through (default: a fresh read)

        Returns:
            Conflict when a current fact holds a different value, else None
        """
        if conn is None:
            with self.fact_store.store.read() as read_conn:
                current = self.fact_store.fetch_current(
                    read_conn, fact_input.entity, fact_input.fact_type, fact_input.key
                )
        else:
            current = self.fact_store.fetch_current(
                conn, fact_input.entity, fact_input.fact_type, fact_input.key
            )

        disagreeing = [f for f in current if f.value != fact_input.value]
        if not disagreeing:
            return None

        conflict = Conflict(
            new_fact=fact_input,
            existing_facts=disagreeing,
            suggested_strategy=self.get_strategy_for_fact_type(fact_input.fact_type),
            reason=(
                f"{len(disagreeing)} current fact(s) for {fact_input.fact_type}/{fact_input.key} "
                f"disagree with the incoming value"
            ),
        )
        logger.debug(f"Conflict detected: {conflict.reason}")
        return conflict

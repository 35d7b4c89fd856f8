"""
Interaction Store for relgraph.

Lightweight records of individual touchpoints (mostly email messages) with
a person. Ingestion pipelines write here; the relationship strength
calculator only reads the aggregated InteractionStats.

One row per (person, message): a message with three recipients produces
three interactions sharing message_id and thread_id.
"""
import logging
import sqlite3
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Iterable, Optional

from config.relationship_weights import FREQUENCY_WINDOW_DAYS
from relgraph.services.errors import ValidationError
from relgraph.services.graph_store import GraphStore, get_graph_store
from relgraph.utils.datetime_utils import make_aware, parse_timestamp, to_utc_iso, utc_now

logger = logging.getLogger(__name__)

DIRECTION_OUTBOUND = "outbound"  # We sent it, person is a recipient
DIRECTION_INBOUND = "inbound"  # Person sent it to us
DIRECTIONS = {DIRECTION_OUTBOUND, DIRECTION_INBOUND}


@dataclass
class Interaction:
    """A single touchpoint with a person."""

    person_id: str
    occurred_at: datetime
    direction: str
    thread_id: Optional[str] = None
    message_id: Optional[str] = None
    role: Optional[str] = None  # from, to, cc
    source_type: str = "email"
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    created_at: datetime = field(default_factory=utc_now)

    def __post_init__(self):
        self.occurred_at = make_aware(self.occurred_at)

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "Interaction":
        return cls(
            id=row["id"],
            person_id=row["person_id"],
            occurred_at=parse_timestamp(row["occurred_at"]),
            direction=row["direction"],
            thread_id=row["thread_id"],
            message_id=row["message_id"],
            role=row["role"],
            source_type=row["source_type"],
            created_at=parse_timestamp(row["created_at"]),
        )


@dataclass
class InteractionStats:
    """Aggregated interaction history for one person."""
    total_count: int = 0
    count_last_90_days: int = 0
    last_interaction_at: Optional[datetime] = None
    sent_count: int = 0
    received_count: int = 0
    avg_thread_depth: float = 0.0


class InteractionStore:
    """Storage and aggregation for interaction records."""

    def __init__(self, store: Optional[GraphStore] = None):
        self.store = store or get_graph_store()

    def add(self, interaction: Interaction) -> Interaction:
        """
        Add an interaction.

        Raises:
            ValidationError: Unknown direction or missing person_id
        """
        return self.add_many([interaction])[0]

    def add_many(self, interactions: Iterable[Interaction]) -> list[Interaction]:
        """Add a batch of interactions in one transaction."""
        interactions = list(interactions)
        for interaction in interactions:
            if not interaction.person_id:
                raise ValidationError("Interaction requires person_id", field="person_id")
            if interaction.direction not in DIRECTIONS:
                raise ValidationError(
                    f"Invalid direction: {interaction.direction}", field="direction"
                )

        with self.store.transaction() as conn:
            conn.executemany(
                """
                INSERT INTO interactions (
                    id, person_id, occurred_at, direction, thread_id,
                    message_id, role, source_type, created_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                [
                    (
                        i.id, i.person_id, to_utc_iso(i.occurred_at), i.direction,
                        i.thread_id, i.message_id, i.role, i.source_type,
                        to_utc_iso(i.created_at),
                    )
                    for i in interactions
                ],
            )
        logger.debug(f"Added {len(interactions)} interactions")
        return interactions

    def get_for_person(self, person_id: str, limit: int = 100) -> list[Interaction]:
        """Most recent interactions for a person."""
        with self.store.read() as conn:
            rows = conn.execute(
                "SELECT * FROM interactions WHERE person_id = ? ORDER BY occurred_at DESC LIMIT ?",
                (person_id, limit),
            ).fetchall()
        return [Interaction.from_row(r) for r in rows]

    def get_stats(self, person_id: str, now: Optional[datetime] = None) -> InteractionStats:
        """
        Aggregate a person's interaction history.

        Thread depth counts every distinct message in each thread the
        person took part in, not only the person's own messages.

        Args:
            person_id: Person to aggregate
            now: Reference time for the trailing window (default: now)
        """
        now = make_aware(now) if now else utc_now()
        window_start = to_utc_iso(now - timedelta(days=FREQUENCY_WINDOW_DAYS))

        with self.store.read() as conn:
            row = conn.execute(
                """
                SELECT
                    COUNT(*) AS total_count,
                    SUM(CASE WHEN occurred_at >= ? THEN 1 ELSE 0 END) AS recent_count,
                    MAX(occurred_at) AS last_at,
                    SUM(CASE WHEN direction = ? THEN 1 ELSE 0 END) AS sent_count,
                    SUM(CASE WHEN direction = ? THEN 1 ELSE 0 END) AS received_count
                FROM interactions
                WHERE person_id = ?
                """,
                (window_start, DIRECTION_OUTBOUND, DIRECTION_INBOUND, person_id),
            ).fetchone()

            depth_rows = conn.execute(
                """
                SELECT thread_id, COUNT(DISTINCT COALESCE(message_id, id)) AS depth
                FROM interactions
                WHERE thread_id IN (
                    SELECT DISTINCT thread_id FROM interactions
                    WHERE person_id = ? AND thread_id IS NOT NULL
                )
                GROUP BY thread_id
                """,
                (person_id,),
            ).fetchall()

        total = row["total_count"] or 0
        if total == 0:
            return InteractionStats()

        avg_depth = 0.0
        if depth_rows:
            avg_depth = sum(r["depth"] for r in depth_rows) / len(depth_rows)

        return InteractionStats(
            total_count=total,
            count_last_90_days=row["recent_count"] or 0,
            last_interaction_at=parse_timestamp(row["last_at"]),
            sent_count=row["sent_count"] or 0,
            received_count=row["received_count"] or 0,
            avg_thread_depth=avg_depth,
        )

    def list_person_ids(self) -> list[str]:
        """Every person with at least one interaction."""
        with self.store.read() as conn:
            rows = conn.execute(
                "SELECT DISTINCT person_id FROM interactions ORDER BY person_id"
            ).fetchall()
        return [r["person_id"] for r in rows]

"""
Fact Review Queue Service.

Holds conflicts that the user_confirm strategy refused to resolve on its
own (contact details, deal terms). Nothing is written to the fact ledger
until a reviewer resolves the item with an explicit strategy, which
re-runs the incoming fact through the ConflictResolver.
"""
import json
import logging
import sqlite3
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Optional

from config.conflict_strategies import USER_CONFIRM, VALID_STRATEGIES
from relgraph.services.errors import NotFoundError, ValidationError
from relgraph.services.fact_store import Conflict
from relgraph.services.graph_store import GraphStore, get_graph_store
from relgraph.utils.datetime_utils import parse_timestamp, to_utc_iso, utc_now

if TYPE_CHECKING:
    from relgraph.services.conflict_resolver import ConflictResolver, FactAdditionResult

logger = logging.getLogger(__name__)


class ReviewStatus(str, Enum):
    """Status of a review item."""
    PENDING = "pending"
    RESOLVED = "resolved"  # Re-run with an explicit strategy
    DISMISSED = "dismissed"  # Incoming fact dropped


@dataclass
class FactReviewItem:
    """A conflict waiting for a human decision."""
    conflict: Conflict
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    status: str = ReviewStatus.PENDING.value
    resolution_strategy: Optional[str] = None
    resulting_fact_id: Optional[str] = None
    created_at: datetime = field(default_factory=utc_now)
    reviewed_at: Optional[datetime] = None

    @property
    def reason(self) -> str:
        return self.conflict.reason

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "id": self.id,
            "conflict": self.conflict.to_dict(),
            "reason": self.reason,
            "status": self.status,
            "resolution_strategy": self.resolution_strategy,
            "resulting_fact_id": self.resulting_fact_id,
            "created_at": to_utc_iso(self.created_at),
            "reviewed_at": to_utc_iso(self.reviewed_at),
        }

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "FactReviewItem":
        return cls(
            id=row["id"],
            conflict=Conflict.from_dict(json.loads(row["conflict_payload"])),
            status=row["status"],
            resolution_strategy=row["resolution_strategy"],
            resulting_fact_id=row["resulting_fact_id"],
            created_at=parse_timestamp(row["created_at"]),
            reviewed_at=parse_timestamp(row["reviewed_at"]),
        )


class FactReviewQueue:
    """Persisted queue of fact conflicts awaiting manual review."""

    def __init__(self, store: Optional[GraphStore] = None):
        self.store = store or get_graph_store()

    def enqueue(self, conflict: Conflict, conn: Optional[sqlite3.Connection] = None) -> str:
        """
        Queue a conflict for review.

        An identical incoming fact that is already pending is not queued
        again; its existing review id is returned.

        Args:
            conflict: The unresolved conflict
            conn: Open transaction to write through (default: a new transaction)

        Returns:
            Review item ID
        """
        if conn is None:
            with self.store.transaction() as tx:
                return self._enqueue(tx, conflict)
        return self._enqueue(conn, conflict)

    def _enqueue(self, conn: sqlite3.Connection, conflict: Conflict) -> str:
        fact_payload = json.dumps(conflict.new_fact.to_dict())
        row = conn.execute(
            "SELECT id FROM fact_review_queue WHERE status = ? AND fact_payload = ?",
            (ReviewStatus.PENDING.value, fact_payload),
        ).fetchone()
        if row is not None:
            logger.debug(f"Conflict already pending review as {row['id']}")
            return row["id"]

        item = FactReviewItem(conflict=conflict)
        self._insert(conn, item, fact_payload)
        logger.info(f"Queued fact conflict for review: {item.reason}")
        return item.id

    def _insert(self, conn: sqlite3.Connection, item: FactReviewItem, fact_payload: str) -> None:
        conn.execute(
            """
            INSERT INTO fact_review_queue (
                id, fact_payload, conflict_payload, reason, status, created_at
            ) VALUES (?, ?, ?, ?, ?, ?)
            """,
            (
                item.id,
                fact_payload,
                json.dumps(item.conflict.to_dict()),
                item.reason,
                item.status,
                to_utc_iso(item.created_at),
            ),
        )

    def get(self, review_id: str) -> Optional[FactReviewItem]:
        with self.store.read() as conn:
            return self._fetch(conn, review_id)

    def _fetch(self, conn: sqlite3.Connection, review_id: str) -> Optional[FactReviewItem]:
        row = conn.execute(
            "SELECT * FROM fact_review_queue WHERE id = ?", (review_id,)
        ).fetchone()
        return FactReviewItem.from_row(row) if row else None

    def list_pending(self, limit: int = 100) -> list[FactReviewItem]:
        """Pending items, oldest first."""
        with self.store.read() as conn:
            rows = conn.execute(
                "SELECT * FROM fact_review_queue WHERE status = ? ORDER BY created_at LIMIT ?",
                (ReviewStatus.PENDING.value, limit),
            ).fetchall()
        return [FactReviewItem.from_row(r) for r in rows]

    def resolve(
        self, review_id: str, strategy: str, resolver: "ConflictResolver"
    ) -> "FactAdditionResult":
        """
        Resolve a pending item by re-running its fact with an explicit strategy.

        The resolution sees the ledger as it is now, not as it was when the
        item was queued. The fact write and the status change commit together.

        Raises:
            NotFoundError: Unknown review id
            ValidationError: Item not pending, or strategy is user_confirm / unknown
        """
        strategy = getattr(strategy, "value", strategy)
        if strategy == USER_CONFIRM or strategy not in VALID_STRATEGIES:
            raise ValidationError(
                f"Review must be resolved with an automatic strategy, got {strategy}",
                field="strategy",
            )

        with self.store.transaction() as conn:
            item = self._get_pending(conn, review_id)
            result = resolver.add_fact_with_conflict_detection(
                item.conflict.new_fact, force_strategy=strategy, conn=conn
            )
            self._mark(conn, review_id, ReviewStatus.RESOLVED, strategy, result.fact_id)
        logger.info(f"Resolved review {review_id} with {strategy}")
        return result

    def dismiss(self, review_id: str) -> None:
        """Drop the incoming fact without writing it."""
        with self.store.transaction() as conn:
            self._get_pending(conn, review_id)
            self._mark(conn, review_id, ReviewStatus.DISMISSED, None, None)
        logger.info(f"Dismissed review {review_id}")

    def _get_pending(self, conn: sqlite3.Connection, review_id: str) -> FactReviewItem:
        item = self._fetch(conn, review_id)
        if item is None:
            raise NotFoundError("fact_review", review_id)
        if item.status != ReviewStatus.PENDING.value:
            raise ValidationError(f"Review {review_id} is already {item.status}", field="status")
        return item

    def _mark(
        self,
        conn: sqlite3.Connection,
        review_id: str,
        status: ReviewStatus,
        strategy: Optional[str],
        resulting_fact_id: Optional[str],
    ) -> None:
        conn.execute(
            """
            UPDATE fact_review_queue
            SET status = ?, resolution_strategy = ?, resulting_fact_id = ?, reviewed_at = ?
            WHERE id = ?
            """,
            (status.value, strategy, resulting_fact_id, to_utc_iso(utc_now()), review_id),
        )

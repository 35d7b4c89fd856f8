"""
Conflict Resolver - the single write path for facts.

add_fact_with_conflict_detection() runs detection and resolution inside one
transaction, so the current fact for a key can't change between the two:

    VALID -> CONFLICT_DETECTED -> RESOLVED_AUTOMATIC -> VALID
                               -> PENDING_MANUAL_REVIEW

Strategies:
- latest_wins: close the current fact(s), insert the new fact, link them
- highest_confidence: latest_wins if the new fact is strictly more confident,
  otherwise keep the existing fact (ties keep existing)
- merge: synthesize one fact holding every value with its source, confidence 1.0
- user_confirm: write nothing; the conflict goes to manual review
"""
import dataclasses
import logging
import sqlite3
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional

from config.conflict_strategies import (
    HIGHEST_CONFIDENCE,
    LATEST_WINS,
    MERGE,
    USER_CONFIRM,
    VALID_STRATEGIES,
)
from relgraph.services.entity_merger import resolve_canonical_id
from relgraph.services.errors import ConflictPendingReview, ValidationError
from relgraph.services.fact_store import (
    Conflict,
    ConflictDetector,
    EntityKind,
    EntityRef,
    FactInput,
    FactStore,
)
from relgraph.services.graph_store import GraphStore, get_graph_store
from relgraph.utils.datetime_utils import utc_now

logger = logging.getLogger(__name__)

MERGED_SOURCE_TYPE = "merged"
MERGED_CONFIDENCE = 1.0
MERGE_SEPARATOR = "\n\n"


class ResolutionStrategy(str, Enum):
    LATEST_WINS = "latest_wins"
    HIGHEST_CONFIDENCE = "highest_confidence"
    MERGE = "merge"
    USER_CONFIRM = "user_confirm"


class ResolutionAction(str, Enum):
    USE_NEW = "use_new"
    KEEP_EXISTING = "keep_existing"
    MERGE = "merge"
    MANUAL_REVIEW = "manual_review"


@dataclass
class ConflictResolution:
    """What the resolver did about a conflict."""
    action: ResolutionAction
    resulting_fact_id: Optional[str] = None
    invalidated_fact_ids: list[str] = field(default_factory=list)


@dataclass
class FactAdditionResult:
    """
    Outcome of add_fact_with_conflict_detection.

    fact_id is the current fact after the call: the new fact, the merged
    fact, or the existing fact that was kept or corroborated. It is None
    while a conflict waits for manual review.
    """
    fact_id: Optional[str]
    conflict: Optional[Conflict] = None
    resolution: Optional[ConflictResolution] = None
    requires_manual_review: bool = False
    created: bool = False
    review_id: Optional[str] = None

    def raise_for_review(self) -> None:
        """Raise ConflictPendingReview if this result is waiting on a person."""
        if self.requires_manual_review:
            raise ConflictPendingReview(self.conflict, self.review_id)


def build_merged_value(conflict: Conflict) -> str:
    """Join every conflicting value with its source attribution, existing first."""
    entries = [f"[{f.source_type}]: {f.value}" for f in conflict.existing_facts]
    entries.append(f"[{conflict.new_fact.source_type}]: {conflict.new_fact.value}")
    return MERGE_SEPARATOR.join(entries)


def _check_strategy(strategy: str) -> str:
    value = strategy.value if isinstance(strategy, ResolutionStrategy) else strategy
    if value not in VALID_STRATEGIES:
        raise ValidationError(f"Unknown resolution strategy: {strategy}", field="strategy")
    return value


class ConflictResolver:
    """Adds facts, resolving conflicts with the configured strategies."""

    def __init__(
        self,
        store: Optional[GraphStore] = None,
        fact_store: Optional[FactStore] = None,
        detector: Optional[ConflictDetector] = None,
        review_queue=None,
    ):
        """
        Initialize the resolver.

        Args:
            store: GraphStore to write to (default: process singleton)
            fact_store: Fact ledger access (default: built on store)
            detector: Conflict detector (default: built on fact_store)
            review_queue: FactReviewQueue for user_confirm conflicts (optional)
        """
        self.store = store or get_graph_store()
        self.fact_store = fact_store or FactStore(self.store)
        self.detector = detector or ConflictDetector(self.fact_store)
        self.review_queue = review_queue

    def add_fact_with_conflict_detection(
        self,
        fact: FactInput,
        force_strategy: Optional[str] = None,
        conn: Optional[sqlite3.Connection] = None,
    ) -> FactAdditionResult:
        """
        Add a fact, resolving any conflict with the current value.

        Args:
            fact: Incoming observation
            force_strategy: Strategy to use instead of the fact type's configured one
            conn: Open transaction to write through (default: a new transaction)

        Returns:
            FactAdditionResult describing the write (if any)

        Raises:
            ValidationError: Invalid fact fields or unknown strategy
            TransactionFailure: The store aborted; nothing was written
        """
        fact.validate()
        if force_strategy is not None:
            force_strategy = _check_strategy(force_strategy)

        if conn is not None:
            return self._add(conn, fact, force_strategy)
        with self.store.transaction() as tx:
            return self._add(tx, fact, force_strategy)

    def _add(
        self, conn: sqlite3.Connection, fact: FactInput, force_strategy: Optional[str]
    ) -> FactAdditionResult:
        now = utc_now()
        fact = self._redirect_merged_entity(conn, fact)

        current = self.fact_store.fetch_current(conn, fact.entity, fact.fact_type, fact.key)
        for existing in current:
            if existing.value == fact.value:
                logger.debug(f"Fact {existing.id} corroborated by {fact.source_type}")
                return FactAdditionResult(fact_id=existing.id, created=False)

        conflict = self.detector.detect_conflict(fact, conn=conn)
        if conflict is None:
            new_fact = self.fact_store.insert(conn, fact, now)
            return FactAdditionResult(fact_id=new_fact.id, created=True)

        strategy = force_strategy or conflict.suggested_strategy
        resolution = self._apply(conn, conflict, strategy, now)

        review_id = None
        if resolution.action == ResolutionAction.MANUAL_REVIEW and self.review_queue is not None:
            review_id = self.review_queue.enqueue(conflict, conn=conn)

        logger.info(
            f"Resolved {fact.fact_type}/{fact.key} conflict on {fact.entity.kind.value} "
            f"{fact.entity.id} with {strategy}: {resolution.action.value}"
        )
        return FactAdditionResult(
            fact_id=resolution.resulting_fact_id,
            conflict=conflict,
            resolution=resolution,
            requires_manual_review=resolution.action == ResolutionAction.MANUAL_REVIEW,
            created=resolution.action in (ResolutionAction.USE_NEW, ResolutionAction.MERGE),
            review_id=review_id,
        )

    def _redirect_merged_entity(self, conn: sqlite3.Connection, fact: FactInput) -> FactInput:
        """Point facts about merged-away people/organizations at the survivor."""
        if fact.entity.kind not in (EntityKind.PERSON, EntityKind.ORGANIZATION):
            return fact
        canonical_id = resolve_canonical_id(conn, fact.entity.kind.value, fact.entity.id)
        if canonical_id == fact.entity.id:
            return fact
        logger.debug(f"Redirecting fact from merged {fact.entity.kind.value} {fact.entity.id} to {canonical_id}")
        return dataclasses.replace(fact, entity=EntityRef(fact.entity.kind, canonical_id))

    def _apply(
        self, conn: sqlite3.Connection, conflict: Conflict, strategy: str, now: datetime
    ) -> ConflictResolution:
        strategy = _check_strategy(strategy)

        if strategy == LATEST_WINS:
            return self._use_new(conn, conflict, now)

        if strategy == HIGHEST_CONFIDENCE:
            if conflict.new_fact.effective_confidence > conflict.max_existing_confidence:
                return self._use_new(conn, conflict, now)
            kept = max(conflict.existing_facts, key=lambda f: f.confidence)
            return ConflictResolution(action=ResolutionAction.KEEP_EXISTING, resulting_fact_id=kept.id)

        if strategy == MERGE:
            invalidated = [f.id for f in conflict.existing_facts]
            self.fact_store.close(conn, invalidated, now)
            merged = self.fact_store.insert(
                conn,
                conflict.new_fact,
                now,
                value=build_merged_value(conflict),
                source_type=MERGED_SOURCE_TYPE,
                source_id=None,
                confidence=MERGED_CONFIDENCE,
            )
            self.fact_store.link_replacement(conn, invalidated, merged.id)
            return ConflictResolution(
                action=ResolutionAction.MERGE,
                resulting_fact_id=merged.id,
                invalidated_fact_ids=invalidated,
            )

        # user_confirm
        return ConflictResolution(action=ResolutionAction.MANUAL_REVIEW)

    def _use_new(self, conn: sqlite3.Connection, conflict: Conflict, now: datetime) -> ConflictResolution:
        invalidated = [f.id for f in conflict.existing_facts]
        # Close first: the partial unique index allows one current fact per key
        self.fact_store.close(conn, invalidated, now)
        new_fact = self.fact_store.insert(conn, conflict.new_fact, now)
        self.fact_store.link_replacement(conn, invalidated, new_fact.id)
        return ConflictResolution(
            action=ResolutionAction.USE_NEW,
            resulting_fact_id=new_fact.id,
            invalidated_fact_ids=invalidated,
        )

"""
Relationship Metrics - Compute relationship strength scores.

Relationship strength is computed using the formula:
    strength = (recency × RECENCY_WEIGHT) + (frequency × FREQUENCY_WEIGHT)
             + (engagement × ENGAGEMENT_WEIGHT) + (reciprocity × RECIPROCITY_WEIGHT)

Where each component is a step function over interaction statistics:
- recency: days since the last interaction
- frequency: interactions per month over the trailing 90 days
- engagement: average thread depth
- reciprocity: min/max ratio of sent vs received

See config/relationship_weights.py for the weights and step tables.
Scores are overwritten on every recomputation, not versioned.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from config.relationship_weights import (
    ENGAGEMENT_FLOOR,
    ENGAGEMENT_STEPS,
    ENGAGEMENT_WEIGHT,
    FREQUENCY_FLOOR,
    FREQUENCY_STEPS,
    FREQUENCY_WEIGHT,
    FREQUENCY_WINDOW_MONTHS,
    RECENCY_FLOOR,
    RECENCY_STEPS,
    RECENCY_WEIGHT,
    RECIPROCITY_FLOOR,
    RECIPROCITY_STEPS,
    RECIPROCITY_WEIGHT,
    TREND_THRESHOLD,
)
from relgraph.services.graph_store import GraphStore, get_graph_store
from relgraph.services.interaction_store import InteractionStats, InteractionStore
from relgraph.utils.datetime_utils import make_aware, parse_timestamp, to_utc_iso, utc_now

logger = logging.getLogger(__name__)

TREND_STRENGTHENING = "strengthening"
TREND_STABLE = "stable"
TREND_WEAKENING = "weakening"


def compute_recency_score(last_interaction: Optional[datetime], now: Optional[datetime] = None) -> float:
    """
    Compute recency score (0.0-1.0).

    Args:
        last_interaction: Last interaction timestamp
        now: Reference time (default: now)

    Returns:
        Step score by whole days elapsed; 0.0 when there is no interaction
    """
    if last_interaction is None:
        return 0.0
    now = make_aware(now) if now else utc_now()
    days_since = (now - make_aware(last_interaction)).days

    for max_days, score in RECENCY_STEPS:
        if days_since <= max_days:
            return score
    return RECENCY_FLOOR


def compute_frequency_score(count_last_90_days: int) -> float:
    """Compute frequency score from interactions in the trailing 90 days."""
    per_month = count_last_90_days / FREQUENCY_WINDOW_MONTHS
    for min_per_month, score in FREQUENCY_STEPS:
        if per_month >= min_per_month:
            return score
    return FREQUENCY_FLOOR


def compute_engagement_score(avg_thread_depth: float) -> float:
    """Compute engagement score from average thread depth."""
    for min_depth, score in ENGAGEMENT_STEPS:
        if avg_thread_depth >= min_depth:
            return score
    return ENGAGEMENT_FLOOR


def compute_reciprocity_score(sent: int, received: int) -> float:
    """
    Compute reciprocity score (0.0-1.0).

    Perfect reciprocity is 1:1. Returns 0.0 when nothing was exchanged.
    """
    if sent == 0 and received == 0:
        return 0.0
    ratio = min(sent, received) / max(sent, received)
    for min_ratio, score in RECIPROCITY_STEPS:
        if ratio >= min_ratio:
            return score
    return RECIPROCITY_FLOOR


def compute_combined_strength(recency: float, frequency: float, engagement: float, reciprocity: float) -> float:
    """Weighted sum of the four component scores."""
    return (
        recency * RECENCY_WEIGHT
        + frequency * FREQUENCY_WEIGHT
        + engagement * ENGAGEMENT_WEIGHT
        + reciprocity * RECIPROCITY_WEIGHT
    )


def determine_trend(current: float, previous: Optional[float]) -> str:
    """Compare to the previously stored strength; no prior value is stable."""
    if previous is None:
        return TREND_STABLE
    diff = current - previous
    if diff > TREND_THRESHOLD:
        return TREND_STRENGTHENING
    if diff < -TREND_THRESHOLD:
        return TREND_WEAKENING
    return TREND_STABLE


@dataclass
class RelationshipStrength:
    """Computed closeness score for one person."""
    person_id: str
    strength: float = 0.0
    trend: str = TREND_STABLE
    recency_score: float = 0.0
    frequency_score: float = 0.0
    engagement_score: float = 0.0
    reciprocity_score: float = 0.0
    total_emails: int = 0
    last_email_at: Optional[datetime] = None
    calculated_at: datetime = field(default_factory=utc_now)

    def to_dict(self) -> dict:
        return {
            "person_id": self.person_id,
            "strength": self.strength,
            "trend": self.trend,
            "factors": {
                "recency": self.recency_score,
                "frequency": self.frequency_score,
                "engagement": self.engagement_score,
                "reciprocity": self.reciprocity_score,
            },
            "total_emails": self.total_emails,
            "last_email_at": to_utc_iso(self.last_email_at),
            "calculated_at": to_utc_iso(self.calculated_at),
        }

    @classmethod
    def from_row(cls, row) -> "RelationshipStrength":
        return cls(
            person_id=row["person_id"],
            strength=row["strength"],
            trend=row["trend"],
            recency_score=row["recency_score"],
            frequency_score=row["frequency_score"],
            engagement_score=row["engagement_score"],
            reciprocity_score=row["reciprocity_score"],
            total_emails=row["total_emails"],
            last_email_at=parse_timestamp(row["last_email_at"]),
            calculated_at=parse_timestamp(row["calculated_at"]),
        )


class RelationshipStrengthCalculator:
    """Derives and persists relationship strength from interaction stats."""

    def __init__(
        self,
        store: Optional[GraphStore] = None,
        interactions: Optional[InteractionStore] = None,
    ):
        self.store = store or get_graph_store()
        self.interactions = interactions or InteractionStore(self.store)

    def get_relationship_strength(self, person_id: str) -> Optional[RelationshipStrength]:
        """Get the stored score for a person, if one was computed."""
        with self.store.read() as conn:
            row = conn.execute(
                "SELECT * FROM relationship_strengths WHERE person_id = ?", (person_id,)
            ).fetchone()
        return RelationshipStrength.from_row(row) if row else None

    def calculate_relationship_strength(
        self, person_id: str, now: Optional[datetime] = None
    ) -> RelationshipStrength:
        """
        Compute (but don't store) the strength for a person.

        A person with no interactions scores 0 on everything with a stable trend.
        """
        now = make_aware(now) if now else utc_now()
        stats = self.interactions.get_stats(person_id, now=now)
        if stats.total_count == 0:
            return RelationshipStrength(person_id=person_id, calculated_at=now)

        result = self._score(person_id, stats, now)
        previous = self.get_relationship_strength(person_id)
        result.trend = determine_trend(result.strength, previous.strength if previous else None)
        return result

    def _score(self, person_id: str, stats: InteractionStats, now: datetime) -> RelationshipStrength:
        recency = compute_recency_score(stats.last_interaction_at, now)
        frequency = compute_frequency_score(stats.count_last_90_days)
        engagement = compute_engagement_score(stats.avg_thread_depth)
        reciprocity = compute_reciprocity_score(stats.sent_count, stats.received_count)
        return RelationshipStrength(
            person_id=person_id,
            strength=compute_combined_strength(recency, frequency, engagement, reciprocity),
            recency_score=recency,
            frequency_score=frequency,
            engagement_score=engagement,
            reciprocity_score=reciprocity,
            total_emails=stats.total_count,
            last_email_at=stats.last_interaction_at,
            calculated_at=now,
        )

    def update_relationship_strength(
        self, person_id: str, now: Optional[datetime] = None
    ) -> RelationshipStrength:
        """Recompute and upsert the strength for a person."""
        result = self.calculate_relationship_strength(person_id, now=now)
        with self.store.transaction() as conn:
            conn.execute(
                """
                INSERT INTO relationship_strengths (
                    person_id, strength, trend, recency_score, frequency_score,
                    engagement_score, reciprocity_score, total_emails,
                    last_email_at, calculated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(person_id) DO UPDATE SET
                    strength = excluded.strength,
                    trend = excluded.trend,
                    recency_score = excluded.recency_score,
                    frequency_score = excluded.frequency_score,
                    engagement_score = excluded.engagement_score,
                    reciprocity_score = excluded.reciprocity_score,
                    total_emails = excluded.total_emails,
                    last_email_at = excluded.last_email_at,
                    calculated_at = excluded.calculated_at
                """,
                (
                    result.person_id, result.strength, result.trend,
                    result.recency_score, result.frequency_score,
                    result.engagement_score, result.reciprocity_score,
                    result.total_emails, to_utc_iso(result.last_email_at),
                    to_utc_iso(result.calculated_at),
                ),
            )
        logger.debug(f"Updated strength for {person_id}: {result.strength:.2f} ({result.trend})")
        return result

    def update_all_relationship_strengths(self, now: Optional[datetime] = None) -> dict:
        """
        Recompute strength for every person with interactions.

        Returns:
            {"updated": n, "errors": m}
        """
        updated = 0
        errors = 0
        for person_id in self.interactions.list_person_ids():
            try:
                self.update_relationship_strength(person_id, now=now)
                updated += 1
            except Exception as e:
                logger.error(f"Failed to update strength for {person_id}: {e}")
                errors += 1

        logger.info(f"Updated relationship strength for {updated} people ({errors} errors)")
        return {"updated": updated, "errors": errors}

"""
Tests for relationship strength scoring.
"""
from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import pytest

from relgraph.services.interaction_store import (
    DIRECTION_INBOUND,
    DIRECTION_OUTBOUND,
    Interaction,
    InteractionStats,
    InteractionStore,
)
from relgraph.services.relationship_metrics import (
    RelationshipStrengthCalculator,
    compute_combined_strength,
    compute_engagement_score,
    compute_frequency_score,
    compute_recency_score,
    compute_reciprocity_score,
    determine_trend,
)

pytestmark = pytest.mark.unit

NOW = datetime(2026, 6, 1, 12, 0, tzinfo=timezone.utc)


class TestRecencyScore:
    """Tests for compute_recency_score."""

    @pytest.mark.parametrize("days,expected", [
        (0, 1.0),
        (7, 1.0),
        (8, 0.9),
        (14, 0.9),
        (30, 0.8),
        (45, 0.6),
        (90, 0.4),
        (180, 0.2),
        (181, 0.1),
        (1000, 0.1),
    ])
    def test_steps(self, days, expected):
        assert compute_recency_score(NOW - timedelta(days=days), NOW) == expected

    def test_partial_days_floor(self):
        """7 days and 23 hours is still 7 whole days."""
        assert compute_recency_score(NOW - timedelta(days=7, hours=23), NOW) == 1.0

    def test_no_interaction(self):
        assert compute_recency_score(None, NOW) == 0.0

    def test_naive_datetime(self):
        naive = (NOW - timedelta(days=2)).replace(tzinfo=None)
        assert compute_recency_score(naive, NOW) == 1.0


class TestFrequencyScore:
    @pytest.mark.parametrize("count,expected", [
        (60, 1.0),
        (30, 0.9),
        (15, 0.8),
        (9, 0.6),
        (3, 0.4),
        (2, 0.2),
        (1, 0.1),
        (0, 0.1),
    ])
    def test_steps(self, count, expected):
        assert compute_frequency_score(count) == expected


class TestEngagementScore:
    @pytest.mark.parametrize("depth,expected", [
        (12, 1.0),
        (6, 0.8),
        (5, 0.6),
        (2, 0.4),
        (1, 0.2),
        (0, 0.2),
    ])
    def test_steps(self, depth, expected):
        assert compute_engagement_score(depth) == expected


class TestReciprocityScore:
    @pytest.mark.parametrize("sent,received,expected", [
        (8, 8, 1.0),
        (10, 7, 0.8),
        (10, 5, 0.6),
        (10, 2, 0.4),
        (10, 1, 0.2),
        (10, 0, 0.2),
        (0, 0, 0.0),
    ])
    def test_steps(self, sent, received, expected):
        assert compute_reciprocity_score(sent, received) == expected


class TestCombinedStrength:
    def test_worked_example(self):
        """Last email 3 days ago, 15 in 90 days, depth 5, 8 sent / 8 received."""
        recency = compute_recency_score(NOW - timedelta(days=3), NOW)
        frequency = compute_frequency_score(15)
        engagement = compute_engagement_score(5)
        reciprocity = compute_reciprocity_score(8, 8)

        assert (recency, frequency, engagement, reciprocity) == (1.0, 0.8, 0.6, 1.0)
        assert compute_combined_strength(recency, frequency, engagement, reciprocity) == pytest.approx(0.87)

    def test_bounds(self):
        assert compute_combined_strength(1.0, 1.0, 1.0, 1.0) == pytest.approx(1.0)
        assert compute_combined_strength(0.0, 0.0, 0.0, 0.0) == 0.0


class TestTrend:
    @pytest.mark.parametrize("current,previous,expected", [
        (0.8, None, "stable"),
        (0.8, 0.6, "strengthening"),
        (0.4, 0.6, "weakening"),
        (0.65, 0.6, "stable"),
        (0.55, 0.6, "stable"),
    ])
    def test_trend(self, current, previous, expected):
        assert determine_trend(current, previous) == expected


@pytest.fixture
def calculator(graph_store):
    return RelationshipStrengthCalculator(graph_store)


def _add_emails(graph_store, person_id, days_ago_list, direction=DIRECTION_INBOUND):
    InteractionStore(graph_store).add_many([
        Interaction(person_id, NOW - timedelta(days=d), direction) for d in days_ago_list
    ])


class TestCalculator:
    """Tests for RelationshipStrengthCalculator."""

    def test_worked_example_from_stats(self, calculator):
        stats = InteractionStats(
            total_count=16,
            count_last_90_days=15,
            last_interaction_at=NOW - timedelta(days=3),
            sent_count=8,
            received_count=8,
            avg_thread_depth=5,
        )
        with patch.object(InteractionStore, "get_stats", return_value=stats):
            result = calculator.calculate_relationship_strength("p1", now=NOW)

        assert result.strength == pytest.approx(0.87)
        assert result.trend == "stable"
        assert result.total_emails == 16
        assert result.last_email_at == NOW - timedelta(days=3)

    def test_no_interactions_scores_zero(self, calculator):
        result = calculator.calculate_relationship_strength("nobody", now=NOW)

        assert result.strength == 0.0
        assert result.recency_score == 0.0
        assert result.reciprocity_score == 0.0
        assert result.trend == "stable"
        assert result.total_emails == 0

    def test_calculate_does_not_store(self, graph_store, calculator):
        _add_emails(graph_store, "p1", [1])
        calculator.calculate_relationship_strength("p1", now=NOW)
        assert calculator.get_relationship_strength("p1") is None

    def test_update_stores_and_overwrites(self, graph_store, calculator):
        """Recomputation replaces the row and derives the trend from it."""
        _add_emails(graph_store, "p1", [200])
        first = calculator.update_relationship_strength("p1", now=NOW)
        assert first.trend == "stable"

        _add_emails(graph_store, "p1", range(1, 40), direction=DIRECTION_OUTBOUND)
        second = calculator.update_relationship_strength("p1", now=NOW)

        assert second.strength > first.strength + 0.1
        assert second.trend == "strengthening"

        stored = calculator.get_relationship_strength("p1")
        assert stored.strength == pytest.approx(second.strength)
        assert stored.trend == "strengthening"
        assert stored.total_emails == 40

        with graph_store.read() as conn:
            count = conn.execute(
                "SELECT COUNT(*) FROM relationship_strengths WHERE person_id = ?", ("p1",)
            ).fetchone()[0]
        assert count == 1

    def test_to_dict(self, graph_store, calculator):
        _add_emails(graph_store, "p1", [1])
        data = calculator.update_relationship_strength("p1", now=NOW).to_dict()
        assert set(data["factors"]) == {"recency", "frequency", "engagement", "reciprocity"}
        assert data["person_id"] == "p1"


class TestUpdateAll:
    def test_updates_everyone_with_interactions(self, graph_store, calculator):
        _add_emails(graph_store, "p1", [1, 2])
        _add_emails(graph_store, "p2", [30])

        result = calculator.update_all_relationship_strengths(now=NOW)

        assert result == {"updated": 2, "errors": 0}
        assert calculator.get_relationship_strength("p1") is not None
        assert calculator.get_relationship_strength("p2") is not None

    def test_one_failure_does_not_stop_the_batch(self, graph_store, calculator):
        _add_emails(graph_store, "p1", [1])
        _add_emails(graph_store, "p2", [1])

        real = RelationshipStrengthCalculator.calculate_relationship_strength

        def flaky(self, person_id, now=None):
            if person_id == "p1":
                raise RuntimeError("boom")
            return real(self, person_id, now=now)

        with patch.object(RelationshipStrengthCalculator, "calculate_relationship_strength", flaky):
            result = calculator.update_all_relationship_strengths(now=NOW)

        assert result == {"updated": 1, "errors": 1}
        assert calculator.get_relationship_strength("p2") is not None

"""
Tests for the fact review queue.
"""
import pytest
from unittest.mock import patch

from relgraph.services.conflict_resolver import ConflictResolver, ResolutionStrategy
from relgraph.services.errors import NotFoundError, ValidationError
from relgraph.services.fact_review_queue import FactReviewQueue, ReviewStatus
from relgraph.services.fact_store import EntityKind, EntityRef, FactInput, FactStore

pytestmark = pytest.mark.unit

PERSON = EntityRef(EntityKind.PERSON, "person-1")


def email_fact(value, source_type="manual"):
    return FactInput(PERSON, "email", "primary", value, source_type)


@pytest.fixture
def queue(graph_store):
    return FactReviewQueue(graph_store)


@pytest.fixture
def resolver(graph_store, queue):
    return ConflictResolver(graph_store, review_queue=queue)


@pytest.fixture
def pending(resolver):
    """One user_confirm conflict waiting in the queue."""
    resolver.add_fact_with_conflict_detection(email_fact("ada@old.com"))
    result = resolver.add_fact_with_conflict_detection(email_fact("ada@new.com", source_type="email"))
    return result


class TestEnqueue:
    """user_confirm conflicts land in the queue."""

    def test_conflict_is_queued(self, pending, queue):
        assert pending.requires_manual_review is True
        assert pending.review_id is not None

        items = queue.list_pending()
        assert [i.id for i in items] == [pending.review_id]
        item = items[0]
        assert item.status == ReviewStatus.PENDING.value
        assert item.conflict.new_fact.value == "ada@new.com"
        assert item.conflict.existing_facts[0].value == "ada@old.com"
        assert "email/primary" in item.reason

    def test_no_queue_without_review_queue(self, graph_store, queue):
        """A resolver with no queue attached only flags the result."""
        resolver = ConflictResolver(graph_store)
        resolver.add_fact_with_conflict_detection(email_fact("ada@old.com"))
        result = resolver.add_fact_with_conflict_detection(email_fact("ada@new.com"))

        assert result.requires_manual_review is True
        assert result.review_id is None
        assert queue.list_pending() == []

    def test_to_dict(self, pending, queue):
        data = queue.get(pending.review_id).to_dict()
        assert data["status"] == "pending"
        assert data["conflict"]["new_fact"]["value"] == "ada@new.com"
        assert data["reviewed_at"] is None


class TestResolve:
    """Resolving re-runs the fact with an explicit strategy."""

    def test_resolve_latest_wins(self, pending, queue, resolver, graph_store):
        result = queue.resolve(pending.review_id, "latest_wins", resolver)

        current = FactStore(graph_store).get_current(PERSON, "email", "primary")
        assert current.value == "ada@new.com"
        assert result.fact_id == current.id

        item = queue.get(pending.review_id)
        assert item.status == ReviewStatus.RESOLVED.value
        assert item.resolution_strategy == "latest_wins"
        assert item.resulting_fact_id == current.id
        assert item.reviewed_at is not None
        assert queue.list_pending() == []

    def test_resolve_accepts_enum(self, pending, queue, resolver):
        result = queue.resolve(pending.review_id, ResolutionStrategy.MERGE, resolver)
        assert result.created is True
        assert queue.get(pending.review_id).resolution_strategy == "merge"

    def test_user_confirm_rejected(self, pending, queue, resolver):
        with pytest.raises(ValidationError):
            queue.resolve(pending.review_id, "user_confirm", resolver)
        assert queue.get(pending.review_id).status == ReviewStatus.PENDING.value

    def test_unknown_strategy_rejected(self, pending, queue, resolver):
        with pytest.raises(ValidationError):
            queue.resolve(pending.review_id, "coin_flip", resolver)

    def test_unknown_review_id(self, queue, resolver):
        with pytest.raises(NotFoundError):
            queue.resolve("missing", "latest_wins", resolver)

    def test_cannot_resolve_twice(self, pending, queue, resolver):
        queue.resolve(pending.review_id, "latest_wins", resolver)
        with pytest.raises(ValidationError):
            queue.resolve(pending.review_id, "latest_wins", resolver)


class TestDismiss:
    def test_dismiss_writes_nothing(self, pending, queue, graph_store):
        queue.dismiss(pending.review_id)

        assert queue.get(pending.review_id).status == ReviewStatus.DISMISSED.value
        current = FactStore(graph_store).get_current(PERSON, "email", "primary")
        assert current.value == "ada@old.com"

    def test_dismiss_unknown(self, queue):
        with pytest.raises(NotFoundError):
            queue.dismiss("missing")


class TestAtomicity:
    """Queue state and the fact ledger never disagree."""

    def test_same_conflict_queued_once(self, pending, resolver, queue):
        again = resolver.add_fact_with_conflict_detection(email_fact("ada@new.com", source_type="email"))

        assert again.requires_manual_review is True
        assert again.review_id == pending.review_id
        assert len(queue.list_pending()) == 1

    def test_different_value_queued_separately(self, pending, resolver, queue):
        other = resolver.add_fact_with_conflict_detection(email_fact("ada@third.com"))
        assert other.review_id != pending.review_id
        assert len(queue.list_pending()) == 2

    def test_failed_mark_rolls_back_fact(self, pending, queue, resolver, graph_store):
        """If the status update fails, the resolved fact is not written either."""
        with patch.object(FactReviewQueue, "_mark", side_effect=RuntimeError("boom")):
            with pytest.raises(RuntimeError):
                queue.resolve(pending.review_id, "latest_wins", resolver)

        current = FactStore(graph_store).get_current(PERSON, "email", "primary")
        assert current.value == "ada@old.com"
        assert len(FactStore(graph_store).get_history(PERSON, "email", "primary")) == 1
        assert queue.get(pending.review_id).status == ReviewStatus.PENDING.value

"""
Tests for the merge_entities command-line script.
"""
from unittest.mock import patch

import pytest

from relgraph.services.entities import PersonInput
from relgraph.services.entity_resolver import EntityResolver

pytestmark = pytest.mark.unit


@pytest.fixture
def two_people():
    """Two people in the default (per-test) store."""
    resolver = EntityResolver()
    primary = resolver.resolve_or_create_person(PersonInput("Jonathan", "Smith")).entity
    duplicate = resolver.resolve_or_create_person(PersonInput("Jonathon", "Smith")).entity
    return resolver, primary, duplicate


def run(*argv):
    from scripts.merge_entities import main
    with patch("sys.argv", ["merge_entities.py", *argv]):
        main()


class TestMergeEntitiesScript:
    def test_dry_run_by_default(self, two_people):
        resolver, primary, duplicate = two_people
        run("--primary", primary.id, "--duplicate", duplicate.id)
        assert resolver.get_person(duplicate.id) is not None

    def test_execute_merges(self, two_people):
        resolver, primary, duplicate = two_people
        run("--primary", primary.id, "--duplicate", duplicate.id, "--execute")
        assert resolver.get_person(duplicate.id) is None
        assert resolver.get_person(primary.id) is not None

    def test_unknown_id_exits_nonzero(self, two_people):
        _, primary, _ = two_people
        with pytest.raises(SystemExit) as exc:
            run("--primary", primary.id, "--duplicate", "missing", "--execute")
        assert exc.value.code == 1

    def test_find_duplicates(self, two_people, caplog):
        caplog.set_level("INFO")
        run("--find-duplicates", "Jonathan Smith")
        assert "Jonathon Smith" in caplog.text

    def test_ids_required(self):
        with pytest.raises(SystemExit):
            run("--execute")

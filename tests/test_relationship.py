"""
Tests for relationship edges and their typed properties.
"""
import json

import pytest

from relgraph.services.errors import ValidationError
from relgraph.services.relationship import (
    TYPE_FOUNDED,
    TYPE_INVESTED_IN,
    TYPE_KNOWS,
    TYPE_WORKS_AT,
    AcquaintanceProperties,
    EmploymentProperties,
    FounderProperties,
    GenericProperties,
    InvestmentProperties,
    Relationship,
    RelationshipStore,
    parse_properties,
    properties_to_dict,
)

pytestmark = pytest.mark.unit


def works_at(person_id="p1", org_id="o1", **props):
    return Relationship(
        source_type="person",
        source_id=person_id,
        target_type="organization",
        target_id=org_id,
        relationship_type=TYPE_WORKS_AT,
        properties=props,
    )


class TestParseProperties:
    """Tests for the properties tagged union."""

    def test_known_types(self):
        assert parse_properties(TYPE_WORKS_AT, {"title": "CTO"}) == EmploymentProperties(title="CTO")
        assert parse_properties(TYPE_FOUNDED, {"founded_year": 2019}) == FounderProperties(founded_year=2019)
        assert isinstance(parse_properties(TYPE_INVESTED_IN, {"amount": 1e6, "is_lead": True}), InvestmentProperties)
        assert isinstance(parse_properties(TYPE_KNOWS, {}), AcquaintanceProperties)

    def test_unknown_type_is_generic(self):
        props = parse_properties("MENTORS", {"since": "2020"})
        assert props == GenericProperties(attributes={"since": "2020"})

    def test_extra_keys_fall_back_to_generic(self):
        """Payloads that don't fit the variant keep every key."""
        props = parse_properties(TYPE_WORKS_AT, {"title": "CTO", "desk": "4B"})
        assert isinstance(props, GenericProperties)
        assert props.attributes == {"title": "CTO", "desk": "4B"}

    def test_none_payload(self):
        assert parse_properties(TYPE_WORKS_AT, None) == EmploymentProperties()

    def test_to_dict(self):
        assert properties_to_dict(EmploymentProperties(title="CTO"))["title"] == "CTO"
        assert properties_to_dict(GenericProperties({"a": 1})) == {"a": 1}

    def test_dict_properties_parsed_on_construction(self):
        assert works_at(title="CTO").properties == EmploymentProperties(title="CTO")


class TestRelationshipStore:
    """Tests for RelationshipStore."""

    @pytest.fixture
    def relationships(self, graph_store):
        return RelationshipStore(graph_store)

    def test_add_and_get(self, relationships, graph_store):
        rel = relationships.add(works_at(title="CTO", is_current=True))

        fetched = relationships.get(rel.id)
        assert fetched.properties == EmploymentProperties(title="CTO", is_current=True)
        assert fetched.strength == 0.5
        assert fetched.is_active is True

        with graph_store.read() as conn:
            stored = conn.execute("SELECT properties FROM relationships WHERE id = ?", (rel.id,)).fetchone()
        assert json.loads(stored["properties"])["title"] == "CTO"

    def test_generic_round_trip(self, relationships):
        rel = relationships.add(Relationship(
            "person", "p1", "person", "p2", "MENTORS", properties={"since": "2020"},
        ))
        assert relationships.get(rel.id).properties == GenericProperties({"since": "2020"})

    def test_get_for_entity_either_direction(self, relationships):
        outgoing = relationships.add(works_at("p1", "o1"))
        incoming = relationships.add(Relationship("person", "p2", "person", "p1", TYPE_KNOWS))
        relationships.add(works_at("p3", "o1"))

        found = {r.id for r in relationships.get_for_entity("person", "p1")}
        assert found == {outgoing.id, incoming.id}

    def test_get_for_entity_filters(self, relationships):
        relationships.add(works_at("p1", "o1"))
        knows = relationships.add(Relationship("person", "p1", "person", "p2", TYPE_KNOWS))
        inactive = works_at("p1", "o2")
        inactive.is_active = False
        relationships.add(inactive)

        assert [r.id for r in relationships.get_for_entity("person", "p1", TYPE_KNOWS)] == [knows.id]
        assert len(relationships.get_for_entity("person", "p1")) == 2
        assert len(relationships.get_for_entity("person", "p1", active_only=False)) == 3

    def test_involves(self):
        rel = works_at("p1", "o1")
        assert rel.involves("organization", "o1")
        assert not rel.involves("person", "o1")

    def test_delete(self, relationships):
        rel = relationships.add(works_at())
        assert relationships.delete(rel.id) is True
        assert relationships.get(rel.id) is None
        assert relationships.delete(rel.id) is False

    @pytest.mark.parametrize("overrides", [
        {"source_type": "deal"},
        {"target_type": "spaceship"},
        {"strength": 1.5},
        {"confidence": -0.1},
        {"relationship_type": ""},
    ])
    def test_validation(self, relationships, overrides):
        rel = works_at()
        for name, value in overrides.items():
            setattr(rel, name, value)
        with pytest.raises(ValidationError):
            relationships.add(rel)

"""
Relationship - typed edges between people and organizations.

Each edge carries properties whose shape depends on its relationship type.
Known types map to a dataclass variant; anything else (or a payload that
doesn't fit the variant) is kept as GenericProperties with an open dict.

    WORKS_AT        -> EmploymentProperties
    FOUNDED         -> FounderProperties
    INVESTED_IN     -> InvestmentProperties
    KNOWS           -> AcquaintanceProperties
    WORKED_WITH     -> AcquaintanceProperties
    INTRODUCED_BY   -> IntroductionProperties
"""
import json
import logging
import sqlite3
import uuid
from dataclasses import dataclass, field, asdict, fields
from datetime import datetime
from typing import Any, Optional, Union

from relgraph.services.errors import ValidationError
from relgraph.services.graph_store import GraphStore, get_graph_store
from relgraph.utils.datetime_utils import parse_timestamp, to_utc_iso, utc_now

logger = logging.getLogger(__name__)

# Relationship types
TYPE_WORKS_AT = "WORKS_AT"
TYPE_FOUNDED = "FOUNDED"
TYPE_INVESTED_IN = "INVESTED_IN"
TYPE_KNOWS = "KNOWS"
TYPE_WORKED_WITH = "WORKED_WITH"
TYPE_INTRODUCED_BY = "INTRODUCED_BY"

ENDPOINT_TYPES = {"person", "organization"}


@dataclass
class EmploymentProperties:
    title: Optional[str] = None
    department: Optional[str] = None
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    is_current: bool = True


@dataclass
class FounderProperties:
    role: Optional[str] = None
    founded_year: Optional[int] = None


@dataclass
class InvestmentProperties:
    amount: Optional[float] = None
    round: Optional[str] = None
    invested_at: Optional[str] = None
    is_lead: bool = False


@dataclass
class AcquaintanceProperties:
    context: Optional[str] = None
    since: Optional[str] = None


@dataclass
class IntroductionProperties:
    context: Optional[str] = None
    introduced_at: Optional[str] = None


@dataclass
class GenericProperties:
    """Fallback for unknown relationship types or non-conforming payloads."""
    attributes: dict[str, Any] = field(default_factory=dict)


RelationshipProperties = Union[
    EmploymentProperties,
    FounderProperties,
    InvestmentProperties,
    AcquaintanceProperties,
    IntroductionProperties,
    GenericProperties,
]

PROPERTY_VARIANTS = {
    TYPE_WORKS_AT: EmploymentProperties,
    TYPE_FOUNDED: FounderProperties,
    TYPE_INVESTED_IN: InvestmentProperties,
    TYPE_KNOWS: AcquaintanceProperties,
    TYPE_WORKED_WITH: AcquaintanceProperties,
    TYPE_INTRODUCED_BY: IntroductionProperties,
}


def parse_properties(relationship_type: str, payload: Optional[dict]) -> RelationshipProperties:
    """
    Build the properties variant for a relationship type.

    Unknown types and payloads with keys outside the variant's fields
    become GenericProperties holding the payload unchanged.
    """
    payload = payload or {}
    variant = PROPERTY_VARIANTS.get(relationship_type)
    if variant is None:
        return GenericProperties(attributes=dict(payload))

    allowed = {f.name for f in fields(variant)}
    if not set(payload).issubset(allowed):
        logger.debug(f"Properties for {relationship_type} don't match {variant.__name__}, keeping generic")
        return GenericProperties(attributes=dict(payload))
    return variant(**payload)


def properties_to_dict(properties: RelationshipProperties) -> dict:
    """Serialize a properties variant to the stored JSON shape."""
    if isinstance(properties, GenericProperties):
        return dict(properties.attributes)
    return asdict(properties)


@dataclass
class Relationship:
    """A directed edge between two entities."""

    source_type: str
    source_id: str
    target_type: str
    target_id: str
    relationship_type: str
    properties: RelationshipProperties = field(default_factory=GenericProperties)
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    strength: float = 0.5
    confidence: float = 1.0
    source_of_truth: Optional[str] = None
    is_active: bool = True
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)

    def __post_init__(self):
        if isinstance(self.properties, dict):
            self.properties = parse_properties(self.relationship_type, self.properties)

    def involves(self, entity_type: str, entity_id: str) -> bool:
        """Check if this edge touches the given entity."""
        return (self.source_type, self.source_id) == (entity_type, entity_id) or \
            (self.target_type, self.target_id) == (entity_type, entity_id)

    def to_dict(self) -> dict:
        """Convert to dict for JSON serialization."""
        return {
            "id": self.id,
            "source_type": self.source_type,
            "source_id": self.source_id,
            "target_type": self.target_type,
            "target_id": self.target_id,
            "relationship_type": self.relationship_type,
            "properties": properties_to_dict(self.properties),
            "strength": self.strength,
            "confidence": self.confidence,
            "source_of_truth": self.source_of_truth,
            "is_active": self.is_active,
            "created_at": to_utc_iso(self.created_at),
            "updated_at": to_utc_iso(self.updated_at),
        }

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "Relationship":
        """Create Relationship from a database row."""
        payload = json.loads(row["properties"]) if row["properties"] else {}
        return cls(
            id=row["id"],
            source_type=row["source_type"],
            source_id=row["source_id"],
            target_type=row["target_type"],
            target_id=row["target_id"],
            relationship_type=row["relationship_type"],
            properties=parse_properties(row["relationship_type"], payload),
            strength=row["strength"],
            confidence=row["confidence"],
            source_of_truth=row["source_of_truth"],
            is_active=bool(row["is_active"]),
            created_at=parse_timestamp(row["created_at"]),
            updated_at=parse_timestamp(row["updated_at"]),
        )


def _validate(relationship: Relationship) -> None:
    for side in ("source", "target"):
        endpoint_type = getattr(relationship, f"{side}_type")
        if endpoint_type not in ENDPOINT_TYPES:
            raise ValidationError(f"Invalid {side} type: {endpoint_type}", field=f"{side}_type")
    if not relationship.relationship_type:
        raise ValidationError("Relationship type is required", field="relationship_type")
    for name in ("strength", "confidence"):
        value = getattr(relationship, name)
        if not 0.0 <= value <= 1.0:
            raise ValidationError(f"{name} must be within [0, 1], got {value}", field=name)


class RelationshipStore:
    """Storage for relationship edges."""

    def __init__(self, store: Optional[GraphStore] = None):
        self.store = store or get_graph_store()

    def add(self, relationship: Relationship) -> Relationship:
        """
        Add a new relationship.

        Raises:
            ValidationError: Bad endpoint type or score outside [0, 1]
        """
        _validate(relationship)
        data = relationship.to_dict()
        with self.store.transaction() as conn:
            conn.execute(
                """
                INSERT INTO relationships (
                    id, source_type, source_id, target_type, target_id,
                    relationship_type, properties, strength, confidence,
                    source_of_truth, is_active, created_at, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    data["id"], data["source_type"], data["source_id"],
                    data["target_type"], data["target_id"], data["relationship_type"],
                    json.dumps(data["properties"]), data["strength"], data["confidence"],
                    data["source_of_truth"], int(data["is_active"]),
                    data["created_at"], data["updated_at"],
                ),
            )
        logger.debug(
            f"Added {relationship.relationship_type} edge "
            f"{relationship.source_id} -> {relationship.target_id}"
        )
        return relationship

    def get(self, relationship_id: str) -> Optional[Relationship]:
        with self.store.read() as conn:
            row = conn.execute(
                "SELECT * FROM relationships WHERE id = ?", (relationship_id,)
            ).fetchone()
        return Relationship.from_row(row) if row else None

    def get_for_entity(
        self,
        entity_type: str,
        entity_id: str,
        relationship_type: Optional[str] = None,
        active_only: bool = True,
    ) -> list[Relationship]:
        """
        Get all edges where the entity is source or target.

        Args:
            entity_type: "person" or "organization"
            entity_id: Entity ID
            relationship_type: Optional type filter
            active_only: Skip inactive edges
        """
        query = """
            SELECT * FROM relationships
            WHERE ((source_type = ? AND source_id = ?) OR (target_type = ? AND target_id = ?))
        """
        params: list = [entity_type, entity_id, entity_type, entity_id]
        if relationship_type:
            query += " AND relationship_type = ?"
            params.append(relationship_type)
        if active_only:
            query += " AND is_active = 1"
        query += " ORDER BY strength DESC, created_at"

        with self.store.read() as conn:
            rows = conn.execute(query, params).fetchall()
        return [Relationship.from_row(r) for r in rows]

    def delete(self, relationship_id: str) -> bool:
        """Delete a relationship. Returns True if a row was removed."""
        with self.store.transaction() as conn:
            cursor = conn.execute("DELETE FROM relationships WHERE id = ?", (relationship_id,))
            return cursor.rowcount > 0

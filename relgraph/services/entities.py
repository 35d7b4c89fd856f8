"""
Person and Organization records and their SQLite store.

Rows are created on first encounter and field-merged on later encounters.
They are only removed by the merger; there is no direct delete.

All EntityStore methods take an open connection so callers can compose
them inside one GraphStore transaction.
"""
import logging
import sqlite3
import uuid
from dataclasses import dataclass, field, asdict, fields
from datetime import datetime
from enum import Enum
from typing import Optional

from relgraph.utils.datetime_utils import parse_timestamp, to_utc_iso, utc_now

logger = logging.getLogger(__name__)


class PrivacyTier(str, Enum):
    """Visibility tier of an entity."""
    PUBLIC = "PUBLIC"
    INTERNAL = "INTERNAL"
    SENSITIVE = "SENSITIVE"
    HIGHLY_SENSITIVE = "HIGHLY_SENSITIVE"


class OrganizationType(str, Enum):
    """Role an organization plays in the graph."""
    PROSPECT = "PROSPECT"
    PORTFOLIO = "PORTFOLIO"
    LP = "LP"
    FUND = "FUND"
    SERVICE_PROVIDER = "SERVICE_PROVIDER"
    OTHER = "OTHER"


@dataclass
class PersonInput:
    """Identity fields for a person as supplied by a caller."""
    first_name: str
    last_name: str
    email: Optional[str] = None
    linkedin_url: Optional[str] = None
    twitter_handle: Optional[str] = None
    phone: Optional[str] = None
    privacy_tier: Optional[str] = None


@dataclass
class OrganizationInput:
    """Identity fields for an organization as supplied by a caller."""
    name: str
    domain: Optional[str] = None
    legal_name: Optional[str] = None
    description: Optional[str] = None
    website: Optional[str] = None
    logo_url: Optional[str] = None
    organization_type: Optional[str] = None
    industry: Optional[str] = None
    stage: Optional[str] = None
    privacy_tier: Optional[str] = None


@dataclass
class Person:
    """A person in the graph, keyed by canonical_key."""

    canonical_key: str
    first_name: str
    last_name: str
    full_name: str = ""
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    email: Optional[str] = None
    linkedin_url: Optional[str] = None
    twitter_handle: Optional[str] = None
    phone: Optional[str] = None
    privacy_tier: str = PrivacyTier.INTERNAL.value
    last_contacted_at: Optional[datetime] = None
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)

    def __post_init__(self):
        if not self.full_name:
            self.full_name = f"{self.first_name} {self.last_name}".strip()

    # Fields the merger fills from a duplicate record
    MERGEABLE_FIELDS = ("email", "linkedin_url", "twitter_handle", "phone")
    # Fields a later encounter overwrites with non-blank input
    UPDATABLE_FIELDS = ("first_name", "last_name", "full_name") + MERGEABLE_FIELDS

    def to_dict(self) -> dict:
        """Convert to dict for JSON serialization."""
        data = asdict(self)
        for ts in ("last_contacted_at", "created_at", "updated_at"):
            data[ts] = to_utc_iso(data[ts])
        return data

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "Person":
        """Create a Person from a database row."""
        return cls(
            id=row["id"],
            canonical_key=row["canonical_key"],
            first_name=row["first_name"],
            last_name=row["last_name"],
            full_name=row["full_name"],
            email=row["email"],
            linkedin_url=row["linkedin_url"],
            twitter_handle=row["twitter_handle"],
            phone=row["phone"],
            privacy_tier=row["privacy_tier"],
            last_contacted_at=parse_timestamp(row["last_contacted_at"]),
            created_at=parse_timestamp(row["created_at"]),
            updated_at=parse_timestamp(row["updated_at"]),
        )


@dataclass
class Organization:
    """An organization in the graph, keyed by canonical_key."""

    canonical_key: str
    name: str
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    legal_name: Optional[str] = None
    domain: Optional[str] = None
    website: Optional[str] = None
    description: Optional[str] = None
    logo_url: Optional[str] = None
    organization_type: str = OrganizationType.PROSPECT.value
    industry: Optional[str] = None
    stage: Optional[str] = None
    privacy_tier: str = PrivacyTier.INTERNAL.value
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)

    MERGEABLE_FIELDS = (
        "legal_name", "domain", "website", "description",
        "logo_url", "industry", "stage",
    )
    UPDATABLE_FIELDS = ("name",) + MERGEABLE_FIELDS

    def to_dict(self) -> dict:
        """Convert to dict for JSON serialization."""
        data = asdict(self)
        data["created_at"] = to_utc_iso(self.created_at)
        data["updated_at"] = to_utc_iso(self.updated_at)
        return data

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "Organization":
        """Create an Organization from a database row."""
        return cls(
            id=row["id"],
            canonical_key=row["canonical_key"],
            name=row["name"],
            legal_name=row["legal_name"],
            domain=row["domain"],
            website=row["website"],
            description=row["description"],
            logo_url=row["logo_url"],
            organization_type=row["organization_type"],
            industry=row["industry"],
            stage=row["stage"],
            privacy_tier=row["privacy_tier"],
            created_at=parse_timestamp(row["created_at"]),
            updated_at=parse_timestamp(row["updated_at"]),
        )


def _is_blank(value) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def fill_empty_fields(target, source, field_names) -> list[str]:
    """
    Copy populated values from source into empty fields of target.

    Populated fields on target are never overwritten or cleared.

    Returns:
        Names of the fields that changed
    """
    changed = []
    for name in field_names:
        incoming = getattr(source, name, None)
        if _is_blank(incoming):
            continue
        if _is_blank(getattr(target, name)):
            setattr(target, name, incoming)
            changed.append(name)
    return changed


def overwrite_fields(target, source, field_names) -> list[str]:
    """
    Copy every populated value from source onto target.

    Blank source values leave the target field alone, so fields are never
    cleared.

    Returns:
        Names of the fields whose value changed
    """
    changed = []
    for name in field_names:
        incoming = getattr(source, name, None)
        if _is_blank(incoming):
            continue
        if getattr(target, name) != incoming:
            setattr(target, name, incoming)
            changed.append(name)
    return changed


_PERSON_COLUMNS = [f.name for f in fields(Person)]
_ORGANIZATION_COLUMNS = [f.name for f in fields(Organization)]


def _row_values(entity, columns: list[str]) -> list:
    values = []
    for column in columns:
        value = getattr(entity, column)
        if isinstance(value, datetime):
            value = to_utc_iso(value)
        values.append(value)
    return values


class EntityStore:
    """Row-level access to the people and organizations tables."""

    # --- people ---

    def get_person(self, conn: sqlite3.Connection, person_id: str) -> Optional[Person]:
        row = conn.execute("SELECT * FROM people WHERE id = ?", (person_id,)).fetchone()
        return Person.from_row(row) if row else None

    def get_person_by_key(self, conn: sqlite3.Connection, canonical_key: str) -> Optional[Person]:
        row = conn.execute(
            "SELECT * FROM people WHERE canonical_key = ?", (canonical_key,)
        ).fetchone()
        return Person.from_row(row) if row else None

    def insert_person(self, conn: sqlite3.Connection, person: Person) -> Person:
        """Insert a person. Raises sqlite3.IntegrityError on a duplicate canonical key."""
        placeholders = ", ".join("?" for _ in _PERSON_COLUMNS)
        conn.execute(
            f"INSERT INTO people ({', '.join(_PERSON_COLUMNS)}) VALUES ({placeholders})",
            _row_values(person, _PERSON_COLUMNS),
        )
        logger.info(f"Created person {person.full_name} ({person.canonical_key})")
        return person

    def update_person(self, conn: sqlite3.Connection, person: Person) -> Person:
        person.updated_at = utc_now()
        columns = [c for c in _PERSON_COLUMNS if c != "id"]
        conn.execute(
            f"UPDATE people SET {', '.join(f'{c} = ?' for c in columns)} WHERE id = ?",
            _row_values(person, columns) + [person.id],
        )
        return person

    def delete_person(self, conn: sqlite3.Connection, person_id: str) -> None:
        conn.execute("DELETE FROM people WHERE id = ?", (person_id,))

    def iter_people(self, conn: sqlite3.Connection, limit: int) -> list[Person]:
        """Return up to `limit` people, oldest first."""
        rows = conn.execute(
            "SELECT * FROM people ORDER BY created_at, id LIMIT ?", (limit,)
        ).fetchall()
        return [Person.from_row(r) for r in rows]

    def count_people(self, conn: sqlite3.Connection) -> int:
        return conn.execute("SELECT COUNT(*) FROM people").fetchone()[0]

    # --- organizations ---

    def get_organization(self, conn: sqlite3.Connection, org_id: str) -> Optional[Organization]:
        row = conn.execute("SELECT * FROM organizations WHERE id = ?", (org_id,)).fetchone()
        return Organization.from_row(row) if row else None

    def get_organization_by_key(
        self, conn: sqlite3.Connection, canonical_key: str
    ) -> Optional[Organization]:
        row = conn.execute(
            "SELECT * FROM organizations WHERE canonical_key = ?", (canonical_key,)
        ).fetchone()
        return Organization.from_row(row) if row else None

    def insert_organization(self, conn: sqlite3.Connection, org: Organization) -> Organization:
        """Insert an organization. Raises sqlite3.IntegrityError on a duplicate canonical key."""
        placeholders = ", ".join("?" for _ in _ORGANIZATION_COLUMNS)
        conn.execute(
            f"INSERT INTO organizations ({', '.join(_ORGANIZATION_COLUMNS)}) VALUES ({placeholders})",
            _row_values(org, _ORGANIZATION_COLUMNS),
        )
        logger.info(f"Created organization {org.name} ({org.canonical_key})")
        return org

    def update_organization(self, conn: sqlite3.Connection, org: Organization) -> Organization:
        org.updated_at = utc_now()
        columns = [c for c in _ORGANIZATION_COLUMNS if c != "id"]
        conn.execute(
            f"UPDATE organizations SET {', '.join(f'{c} = ?' for c in columns)} WHERE id = ?",
            _row_values(org, columns) + [org.id],
        )
        return org

    def delete_organization(self, conn: sqlite3.Connection, org_id: str) -> None:
        conn.execute("DELETE FROM organizations WHERE id = ?", (org_id,))

    def iter_organizations(self, conn: sqlite3.Connection, limit: int) -> list[Organization]:
        """Return up to `limit` organizations, oldest first."""
        rows = conn.execute(
            "SELECT * FROM organizations ORDER BY created_at, id LIMIT ?", (limit,)
        ).fetchall()
        return [Organization.from_row(r) for r in rows]

    def count_organizations(self, conn: sqlite3.Connection) -> int:
        return conn.execute("SELECT COUNT(*) FROM organizations").fetchone()[0]

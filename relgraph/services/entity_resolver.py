"""
Entity Resolver - resolve-or-create for people and organizations.

Resolution is exact-match on canonical key only:
1. Compute the canonical key from the input
2. Look up an existing row by key
3. Found: overwrite stored fields with non-blank input (blank input never clears)
4. Not found: insert a new row with defaults

Concurrent resolvers racing on the same key are backstopped by the unique
index on canonical_key. A losing insert re-reads the row and takes the
update path; one retry is enough since the row now exists.
"""
import logging
from dataclasses import dataclass
from typing import Optional, Union

from config.settings import settings
from relgraph.services.canonical_keys import (
    extract_domain,
    generate_org_key,
    generate_person_key,
    normalize_email,
)
from relgraph.services.entities import (
    EntityStore,
    Organization,
    OrganizationInput,
    OrganizationType,
    Person,
    PersonInput,
    PrivacyTier,
    overwrite_fields,
)
from relgraph.services.errors import ConstraintViolation, ValidationError
from relgraph.services.graph_store import GraphStore, get_graph_store
from relgraph.utils.datetime_utils import utc_now

logger = logging.getLogger(__name__)


@dataclass
class ResolutionResult:
    """Result of a resolve-or-create call."""
    entity: Union[Person, Organization]
    is_new: bool
    was_updated: bool


def _require(value: Optional[str], field_name: str, entity_type: str) -> str:
    if value is None or not value.strip():
        raise ValidationError(f"{entity_type} requires {field_name}", field=field_name)
    return value.strip()


def _coerce_enum(enum_cls, value: Optional[str], default: str, field_name: str) -> str:
    raw = value or default
    try:
        return enum_cls(raw).value
    except ValueError:
        raise ValidationError(f"Invalid {field_name}: {raw}", field=field_name)


class EntityResolver:
    """
    Resolves inputs to existing entities or creates new ones.

    Usage:
        resolver = EntityResolver(store)
        result = resolver.resolve_or_create_person(PersonInput("Ada", "Lovelace"))
    """

    def __init__(self, store: Optional[GraphStore] = None, entities: Optional[EntityStore] = None):
        """
        Initialize the resolver.

        Args:
            store: GraphStore to write to (default: process singleton)
            entities: Row access helper (default: new EntityStore)
        """
        self.store = store or get_graph_store()
        self.entities = entities or EntityStore()

    # ------------------------------------------------------------------
    # People
    # ------------------------------------------------------------------

    def resolve_or_create_person(
        self, person_input: PersonInput, update_if_exists: bool = True
    ) -> ResolutionResult:
        """
        Resolve a person by canonical key, creating them on first encounter.

        Raises:
            ValidationError: First or last name missing, or invalid privacy tier
            TransactionFailure: The store aborted the write
        """
        first_name = _require(person_input.first_name, "first_name", "Person")
        last_name = _require(person_input.last_name, "last_name", "Person")
        privacy_tier = _coerce_enum(
            PrivacyTier, person_input.privacy_tier, settings.default_privacy_tier, "privacy_tier"
        )
        canonical_key = generate_person_key(person_input.email, first_name, last_name)
        update_fields = Person.UPDATABLE_FIELDS
        if person_input.privacy_tier:
            update_fields += ("privacy_tier",)

        candidate = Person(
            canonical_key=canonical_key,
            first_name=first_name,
            last_name=last_name,
            email=normalize_email(person_input.email),
            linkedin_url=person_input.linkedin_url,
            twitter_handle=person_input.twitter_handle,
            phone=person_input.phone,
            privacy_tier=privacy_tier,
        )

        try:
            return self._resolve_person(candidate, update_if_exists, update_fields)
        except ConstraintViolation:
            logger.info(f"Canonical key race on {canonical_key}, retrying as update")
            return self._resolve_person(candidate, update_if_exists, update_fields)

    def _resolve_person(
        self, candidate: Person, update_if_exists: bool, update_fields: tuple
    ) -> ResolutionResult:
        now = utc_now()
        with self.store.transaction() as conn:
            existing = self.entities.get_person_by_key(conn, candidate.canonical_key)

            if existing is None:
                candidate.last_contacted_at = now
                self.entities.insert_person(conn, candidate)
                return ResolutionResult(entity=candidate, is_new=True, was_updated=False)

            existing.last_contacted_at = now
            if update_if_exists:
                changed = overwrite_fields(existing, candidate, update_fields)
                if changed:
                    logger.debug(f"Updated {changed} on person {existing.id}")
            self.entities.update_person(conn, existing)
            return ResolutionResult(entity=existing, is_new=False, was_updated=update_if_exists)

    # ------------------------------------------------------------------
    # Organizations
    # ------------------------------------------------------------------

    def resolve_or_create_organization(
        self, org_input: OrganizationInput, update_if_exists: bool = True
    ) -> ResolutionResult:
        """
        Resolve an organization by canonical key, creating it on first encounter.

        A supplied domain is used as given (trimmed, lowercased); otherwise
        it is derived from the website.

        Raises:
            ValidationError: Name missing, or invalid type/privacy tier
            TransactionFailure: The store aborted the write
        """
        name = _require(org_input.name, "name", "Organization")
        if org_input.domain and org_input.domain.strip():
            domain = org_input.domain.strip().lower()
        else:
            domain = extract_domain(org_input.website)
        canonical_key = generate_org_key(domain, name)
        update_fields = Organization.UPDATABLE_FIELDS + tuple(
            f for f in ("organization_type", "privacy_tier") if getattr(org_input, f)
        )

        candidate = Organization(
            canonical_key=canonical_key,
            name=name,
            legal_name=org_input.legal_name,
            domain=domain,
            website=org_input.website,
            description=org_input.description,
            logo_url=org_input.logo_url,
            organization_type=_coerce_enum(
                OrganizationType,
                org_input.organization_type,
                settings.default_organization_type,
                "organization_type",
            ),
            industry=org_input.industry,
            stage=org_input.stage,
            privacy_tier=_coerce_enum(
                PrivacyTier, org_input.privacy_tier, settings.default_privacy_tier, "privacy_tier"
            ),
        )

        try:
            return self._resolve_organization(candidate, update_if_exists, update_fields)
        except ConstraintViolation:
            logger.info(f"Canonical key race on {canonical_key}, retrying as update")
            return self._resolve_organization(candidate, update_if_exists, update_fields)

    def _resolve_organization(
        self, candidate: Organization, update_if_exists: bool, update_fields: tuple
    ) -> ResolutionResult:
        with self.store.transaction() as conn:
            existing = self.entities.get_organization_by_key(conn, candidate.canonical_key)

            if existing is None:
                self.entities.insert_organization(conn, candidate)
                return ResolutionResult(entity=candidate, is_new=True, was_updated=False)

            if not update_if_exists:
                return ResolutionResult(entity=existing, is_new=False, was_updated=False)

            changed = overwrite_fields(existing, candidate, update_fields)
            if changed:
                logger.debug(f"Updated {changed} on organization {existing.id}")
            self.entities.update_organization(conn, existing)
            return ResolutionResult(entity=existing, is_new=False, was_updated=True)

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def get_person(self, person_id: str) -> Optional[Person]:
        with self.store.read() as conn:
            return self.entities.get_person(conn, person_id)

    def get_organization(self, org_id: str) -> Optional[Organization]:
        with self.store.read() as conn:
            return self.entities.get_organization(conn, org_id)

    def find_person_by_key(self, canonical_key: str) -> Optional[Person]:
        with self.store.read() as conn:
            return self.entities.get_person_by_key(conn, canonical_key)

    def find_organization_by_key(self, canonical_key: str) -> Optional[Organization]:
        with self.store.read() as conn:
            return self.entities.get_organization_by_key(conn, canonical_key)

"""
Fuzzy duplicate search over people and organizations.

This is a bounded linear scan scored with calculate_similarity. It is fine
for registries of a few thousand rows; past settings.duplicate_scan_limit
the scan is truncated and returns partial results with a warning.
"""
import logging
from dataclasses import dataclass
from typing import Optional

from config.settings import settings
from relgraph.services.canonical_keys import calculate_similarity
from relgraph.services.entities import EntityStore, OrganizationInput, PersonInput
from relgraph.services.graph_store import GraphStore, get_graph_store

logger = logging.getLogger(__name__)


@dataclass
class DuplicateCandidate:
    """An existing entity that looks like the searched one."""
    id: str
    name: str
    email: Optional[str]  # domain for organizations
    similarity: float


class DuplicateDetector:
    """Finds likely duplicates by name similarity."""

    def __init__(
        self,
        store: Optional[GraphStore] = None,
        entities: Optional[EntityStore] = None,
        scan_limit: Optional[int] = None,
    ):
        self.store = store or get_graph_store()
        self.entities = entities or EntityStore()
        self.scan_limit = scan_limit or settings.duplicate_scan_limit

    def find_duplicate_people(
        self,
        candidate: PersonInput,
        threshold: Optional[float] = None,
        exclude_id: Optional[str] = None,
    ) -> list[DuplicateCandidate]:
        """
        Find people whose full name is similar to the candidate's.

        Args:
            candidate: Person to search for (first and last name are compared)
            threshold: Minimum similarity (default 0.85)
            exclude_id: Person id to leave out (usually the candidate itself)

        Returns:
            Matches at or above threshold, most similar first
        """
        if threshold is None:
            threshold = settings.person_duplicate_threshold
        full_name = f"{candidate.first_name or ''} {candidate.last_name or ''}".strip()

        with self.store.read() as conn:
            total = self.entities.count_people(conn)
            people = self.entities.iter_people(conn, self.scan_limit)
        self._warn_if_truncated("people", total)

        matches = []
        for person in people:
            if person.id == exclude_id:
                continue
            score = calculate_similarity(full_name, person.full_name)
            if score >= threshold:
                matches.append(DuplicateCandidate(
                    id=person.id,
                    name=person.full_name,
                    email=person.email,
                    similarity=score,
                ))

        matches.sort(key=lambda m: m.similarity, reverse=True)
        logger.debug(f"Found {len(matches)} possible duplicate people for '{full_name}'")
        return matches

    def find_duplicate_organizations(
        self,
        candidate: OrganizationInput,
        threshold: Optional[float] = None,
        exclude_id: Optional[str] = None,
    ) -> list[DuplicateCandidate]:
        """Find organizations whose name is similar to the candidate's (default threshold 0.80)."""
        if threshold is None:
            threshold = settings.organization_duplicate_threshold

        with self.store.read() as conn:
            total = self.entities.count_organizations(conn)
            organizations = self.entities.iter_organizations(conn, self.scan_limit)
        self._warn_if_truncated("organizations", total)

        matches = []
        for org in organizations:
            if org.id == exclude_id:
                continue
            score = calculate_similarity(candidate.name, org.name)
            if score >= threshold:
                matches.append(DuplicateCandidate(
                    id=org.id,
                    name=org.name,
                    email=org.domain,
                    similarity=score,
                ))

        matches.sort(key=lambda m: m.similarity, reverse=True)
        logger.debug(f"Found {len(matches)} possible duplicate organizations for '{candidate.name}'")
        return matches

    def _warn_if_truncated(self, table: str, total: int) -> None:
        if total > self.scan_limit:
            logger.warning(
                f"Duplicate scan of {table} truncated at {self.scan_limit} of {total} rows; "
                f"results may be incomplete"
            )

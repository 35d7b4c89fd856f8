"""
Merge duplicate people and organizations.

A merge folds the duplicate into the primary inside one transaction:
1. Fill empty primary fields from the duplicate
2. Reassign every reference (facts, tasks, commitments, deals, ...) to the primary
3. Delete the duplicate row
4. Record the merge in merge_history

Readers never see a half-migrated state; the merge commits or rolls back as a
whole. merge_history lets callers follow a stale id to its surviving entity,
and is checked before every merge so the merge graph stays acyclic.
"""
import json
import logging
import sqlite3
import uuid
from dataclasses import dataclass, field
from typing import Optional, Union

from relgraph.services.entities import EntityStore, Organization, Person, fill_empty_fields
from relgraph.services.errors import MergeCycleError, NotFoundError, ValidationError
from relgraph.services.graph_store import GraphStore, get_graph_store
from relgraph.utils.datetime_utils import to_utc_iso, utc_now

logger = logging.getLogger(__name__)

PERSON = "person"
ORGANIZATION = "organization"

# (table, column) pairs holding a reference to each entity type.
# Relationship edges are handled separately since they reference by (type, id).
REFERENCE_COLUMNS = {
    PERSON: [
        ("tasks", "assigned_to_person_id"),
        ("lp_commitments", "person_id"),
        ("interactions", "person_id"),
    ],
    ORGANIZATION: [
        ("tasks", "related_organization_id"),
        ("deals", "organization_id"),
        ("investments", "organization_id"),
        ("lp_commitments", "organization_id"),
        ("organization_metrics", "organization_id"),
    ],
}

FACT_COLUMN = {
    PERSON: "person_id",
    ORGANIZATION: "organization_id",
}


@dataclass
class MergeResult:
    """Outcome of a merge (or of a dry run)."""
    entity: Union[Person, Organization]
    stats: dict = field(default_factory=dict)
    dry_run: bool = False


def resolve_canonical_id(conn: sqlite3.Connection, entity_type: str, entity_id: str) -> str:
    """
    Follow merge_history from entity_id to the entity it was merged into.

    Returns entity_id itself when it was never merged.
    """
    visited = set()
    current = entity_id
    while current not in visited:
        visited.add(current)
        row = conn.execute(
            "SELECT primary_id FROM merge_history WHERE entity_type = ? AND duplicate_id = ? "
            "ORDER BY merged_at DESC LIMIT 1",
            (entity_type, current),
        ).fetchone()
        if row is None:
            return current
        current = row["primary_id"]
    logger.warning(f"Merge chain for {entity_type} {entity_id} loops back to {current}")
    return current


def _ancestors(conn: sqlite3.Connection, entity_type: str, entity_id: str) -> set[str]:
    """Every id on the merge chain starting at entity_id, itself included."""
    chain = {entity_id}
    current = entity_id
    while True:
        row = conn.execute(
            "SELECT primary_id FROM merge_history WHERE entity_type = ? AND duplicate_id = ? "
            "ORDER BY merged_at DESC LIMIT 1",
            (entity_type, current),
        ).fetchone()
        if row is None or row["primary_id"] in chain:
            return chain
        current = row["primary_id"]
        chain.add(current)


class EntityMerger:
    """Transactional entity consolidation."""

    def __init__(self, store: Optional[GraphStore] = None, entities: Optional[EntityStore] = None):
        self.store = store or get_graph_store()
        self.entities = entities or EntityStore()

    def merge_people(self, primary_id: str, duplicate_id: str, dry_run: bool = False) -> MergeResult:
        """
        Merge duplicate person into primary person.

        Args:
            primary_id: ID of the person to keep
            duplicate_id: ID of the person to fold in and delete
            dry_run: Run the whole merge, then roll it back

        Raises:
            ValidationError: primary and duplicate are the same id
            MergeCycleError: the merge would make merge history cyclic
            NotFoundError: either person does not exist
        """
        return self._merge(PERSON, primary_id, duplicate_id, dry_run)

    def merge_organizations(
        self, primary_id: str, duplicate_id: str, dry_run: bool = False
    ) -> MergeResult:
        """Merge duplicate organization into primary organization. See merge_people."""
        return self._merge(ORGANIZATION, primary_id, duplicate_id, dry_run)

    def get_canonical_id(self, entity_type: str, entity_id: str) -> str:
        """Get the surviving id for entity_id, following merge chains."""
        with self.store.read() as conn:
            return resolve_canonical_id(conn, entity_type, entity_id)

    def get_merge_history(self, entity_type: str, primary_id: str) -> list[dict]:
        """List the merges folded into primary_id, newest first."""
        with self.store.read() as conn:
            rows = conn.execute(
                "SELECT * FROM merge_history WHERE entity_type = ? AND primary_id = ? "
                "ORDER BY merged_at DESC",
                (entity_type, primary_id),
            ).fetchall()
        return [
            {**dict(row), "stats": json.loads(row["stats"]) if row["stats"] else {}}
            for row in rows
        ]

    # ------------------------------------------------------------------

    def _merge(
        self, entity_type: str, primary_id: str, duplicate_id: str, dry_run: bool
    ) -> MergeResult:
        if primary_id == duplicate_id:
            raise ValidationError(f"Cannot merge {entity_type} {primary_id} into itself")

        with self.store.transaction(dry_run=dry_run) as conn:
            primary, duplicate = self._load_pair(conn, entity_type, primary_id, duplicate_id)

            if duplicate_id in _ancestors(conn, entity_type, primary_id):
                raise MergeCycleError(
                    f"Merging {entity_type} {duplicate_id} into {primary_id} would create a merge cycle"
                )

            label = getattr(duplicate, "full_name", None) or duplicate.name
            target = getattr(primary, "full_name", None) or primary.name
            logger.info(f"Merging {entity_type} '{label}' -> '{target}'" + (" (dry run)" if dry_run else ""))

            stats = {}
            stats["fields_filled"] = fill_empty_fields(
                primary, duplicate, type(primary).MERGEABLE_FIELDS
            )

            stats.update(self._reassign_facts(conn, entity_type, primary_id, duplicate_id))

            for table, column in REFERENCE_COLUMNS[entity_type]:
                cursor = conn.execute(
                    f"UPDATE {table} SET {column} = ? WHERE {column} = ?",
                    (primary_id, duplicate_id),
                )
                key = f"{table}_updated"
                stats[key] = stats.get(key, 0) + cursor.rowcount

            stats.update(self._reassign_relationships(conn, entity_type, primary_id, duplicate_id))

            if entity_type == PERSON:
                cursor = conn.execute(
                    "DELETE FROM relationship_strengths WHERE person_id = ?", (duplicate_id,)
                )
                stats["strength_rows_deleted"] = cursor.rowcount
                self.entities.update_person(conn, primary)
                self.entities.delete_person(conn, duplicate_id)
            else:
                self.entities.update_organization(conn, primary)
                self.entities.delete_organization(conn, duplicate_id)

            conn.execute(
                "INSERT INTO merge_history (id, entity_type, primary_id, duplicate_id, stats, merged_at) "
                "VALUES (?, ?, ?, ?, ?, ?)",
                (str(uuid.uuid4()), entity_type, primary_id, duplicate_id,
                 json.dumps(stats), to_utc_iso(utc_now())),
            )

        if dry_run:
            logger.info(f"Dry run complete, rolled back: {stats}")
        else:
            logger.info(f"Merged {entity_type} {duplicate_id} into {primary_id}: {stats}")
        return MergeResult(entity=primary, stats=stats, dry_run=dry_run)

    def _load_pair(self, conn, entity_type: str, primary_id: str, duplicate_id: str):
        if entity_type == PERSON:
            getter = self.entities.get_person
        else:
            getter = self.entities.get_organization

        primary = getter(conn, primary_id)
        if primary is None:
            raise NotFoundError(entity_type, primary_id)
        duplicate = getter(conn, duplicate_id)
        if duplicate is None:
            raise NotFoundError(entity_type, duplicate_id)
        return primary, duplicate

    def _reassign_facts(self, conn, entity_type: str, primary_id: str, duplicate_id: str) -> dict:
        """
        Move facts to the primary without breaking fact currency.

        A current duplicate fact whose (fact_type, key) already has a current
        primary fact is closed and pointed at the primary's fact.
        """
        column = FACT_COLUMN[entity_type]
        now = to_utc_iso(utc_now())

        collisions = conn.execute(
            f"""
            SELECT d.id AS duplicate_fact_id, p.id AS primary_fact_id
            FROM facts d
            JOIN facts p
              ON p.{column} = ? AND p.fact_type = d.fact_type AND p.key = d.key
             AND p.valid_until IS NULL
            WHERE d.{column} = ? AND d.valid_until IS NULL
            """,
            (primary_id, duplicate_id),
        ).fetchall()

        for row in collisions:
            conn.execute(
                "UPDATE facts SET valid_until = ?, replaced_by_fact = ? WHERE id = ?",
                (now, row["primary_fact_id"], row["duplicate_fact_id"]),
            )

        cursor = conn.execute(
            f"UPDATE facts SET {column} = ? WHERE {column} = ?",
            (primary_id, duplicate_id),
        )
        return {"facts_updated": cursor.rowcount, "facts_superseded": len(collisions)}

    def _reassign_relationships(
        self, conn, entity_type: str, primary_id: str, duplicate_id: str
    ) -> dict:
        updated = 0
        for side in ("source", "target"):
            cursor = conn.execute(
                f"UPDATE relationships SET {side}_id = ? WHERE {side}_type = ? AND {side}_id = ?",
                (primary_id, entity_type, duplicate_id),
            )
            updated += cursor.rowcount

        # Edges between primary and duplicate are now self-loops
        cursor = conn.execute(
            "DELETE FROM relationships WHERE source_type = ? AND target_type = ? "
            "AND source_id = ? AND target_id = ?",
            (entity_type, entity_type, primary_id, primary_id),
        )
        return {"relationships_updated": updated, "relationships_deleted": cursor.rowcount}


# Singleton instance
_entity_merger: Optional[EntityMerger] = None


def get_entity_merger() -> EntityMerger:
    """Get or create the singleton EntityMerger."""
    global _entity_merger
    if _entity_merger is None:
        _entity_merger = EntityMerger()
    return _entity_merger


def reset_entity_merger() -> None:
    """Drop the singleton so the next call picks up the current store."""
    global _entity_merger
    _entity_merger = None

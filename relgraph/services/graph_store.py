"""
Graph Store for relgraph.

SQLite-backed durable store shared by every component. Provides the two
guarantees the core depends on:
- unique canonical keys for people and organizations
- atomic multi-statement transactions (BEGIN IMMEDIATE ... COMMIT)

Fact currency is enforced by partial unique indexes: for each entity column
at most one fact per (entity, fact_type, key) may have valid_until = NULL.
"""
import logging
import sqlite3
from contextlib import contextmanager
from typing import Iterator, Optional

from config.settings import settings
from relgraph.services.errors import ConstraintViolation, TransactionFailure
from relgraph.utils.db_paths import get_graph_db_path

logger = logging.getLogger(__name__)

# Columns a fact may reference; exactly one is set per row
FACT_ENTITY_COLUMNS = ("person_id", "organization_id", "deal_id", "conversation_id")

SCHEMA = """
CREATE TABLE IF NOT EXISTS people (
    id TEXT PRIMARY KEY,
    canonical_key TEXT NOT NULL UNIQUE,
    first_name TEXT NOT NULL,
    last_name TEXT NOT NULL,
    full_name TEXT NOT NULL,
    email TEXT,
    linkedin_url TEXT,
    twitter_handle TEXT,
    phone TEXT,
    privacy_tier TEXT NOT NULL,
    last_contacted_at TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS organizations (
    id TEXT PRIMARY KEY,
    canonical_key TEXT NOT NULL UNIQUE,
    name TEXT NOT NULL,
    legal_name TEXT,
    domain TEXT,
    website TEXT,
    description TEXT,
    logo_url TEXT,
    organization_type TEXT NOT NULL,
    industry TEXT,
    stage TEXT,
    privacy_tier TEXT NOT NULL,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS facts (
    id TEXT PRIMARY KEY,
    person_id TEXT,
    organization_id TEXT,
    deal_id TEXT,
    conversation_id TEXT,
    fact_type TEXT NOT NULL,
    key TEXT NOT NULL,
    value TEXT NOT NULL,
    source_type TEXT NOT NULL,
    source_id TEXT,
    source_url TEXT,
    confidence REAL NOT NULL CHECK (confidence >= 0.0 AND confidence <= 1.0),
    valid_from TEXT NOT NULL,
    valid_until TEXT,
    replaced_by_fact TEXT,
    created_by TEXT,
    created_at TEXT NOT NULL,
    CHECK (
        (person_id IS NOT NULL) + (organization_id IS NOT NULL)
        + (deal_id IS NOT NULL) + (conversation_id IS NOT NULL) = 1
    )
);

CREATE UNIQUE INDEX IF NOT EXISTS idx_facts_current_person
    ON facts(person_id, fact_type, key)
    WHERE valid_until IS NULL AND person_id IS NOT NULL;
CREATE UNIQUE INDEX IF NOT EXISTS idx_facts_current_organization
    ON facts(organization_id, fact_type, key)
    WHERE valid_until IS NULL AND organization_id IS NOT NULL;
CREATE UNIQUE INDEX IF NOT EXISTS idx_facts_current_deal
    ON facts(deal_id, fact_type, key)
    WHERE valid_until IS NULL AND deal_id IS NOT NULL;
CREATE UNIQUE INDEX IF NOT EXISTS idx_facts_current_conversation
    ON facts(conversation_id, fact_type, key)
    WHERE valid_until IS NULL AND conversation_id IS NOT NULL;
CREATE INDEX IF NOT EXISTS idx_facts_replaced_by ON facts(replaced_by_fact);

CREATE TABLE IF NOT EXISTS relationships (
    id TEXT PRIMARY KEY,
    source_type TEXT NOT NULL,
    source_id TEXT NOT NULL,
    target_type TEXT NOT NULL,
    target_id TEXT NOT NULL,
    relationship_type TEXT NOT NULL,
    properties TEXT,
    strength REAL DEFAULT 0.5,
    confidence REAL DEFAULT 1.0,
    source_of_truth TEXT,
    is_active INTEGER DEFAULT 1,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_relationships_source ON relationships(source_type, source_id);
CREATE INDEX IF NOT EXISTS idx_relationships_target ON relationships(target_type, target_id);

CREATE TABLE IF NOT EXISTS tasks (
    id TEXT PRIMARY KEY,
    title TEXT NOT NULL,
    status TEXT DEFAULT 'open',
    assigned_to_person_id TEXT,
    related_organization_id TEXT,
    created_at TEXT
);

CREATE TABLE IF NOT EXISTS deals (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    organization_id TEXT,
    stage TEXT,
    created_at TEXT
);

CREATE TABLE IF NOT EXISTS investments (
    id TEXT PRIMARY KEY,
    organization_id TEXT,
    amount REAL,
    invested_at TEXT,
    created_at TEXT
);

CREATE TABLE IF NOT EXISTS lp_commitments (
    id TEXT PRIMARY KEY,
    person_id TEXT,
    organization_id TEXT,
    amount REAL,
    created_at TEXT
);

CREATE TABLE IF NOT EXISTS organization_metrics (
    id TEXT PRIMARY KEY,
    organization_id TEXT NOT NULL,
    metric TEXT NOT NULL,
    value TEXT,
    period TEXT,
    created_at TEXT
);

CREATE TABLE IF NOT EXISTS interactions (
    id TEXT PRIMARY KEY,
    person_id TEXT NOT NULL,
    occurred_at TEXT NOT NULL,
    direction TEXT NOT NULL,
    thread_id TEXT,
    message_id TEXT,
    role TEXT,
    source_type TEXT DEFAULT 'email',
    created_at TEXT
);
CREATE INDEX IF NOT EXISTS idx_interactions_person ON interactions(person_id, occurred_at);
CREATE INDEX IF NOT EXISTS idx_interactions_thread ON interactions(thread_id);

CREATE TABLE IF NOT EXISTS relationship_strengths (
    person_id TEXT PRIMARY KEY,
    strength REAL NOT NULL,
    trend TEXT NOT NULL,
    recency_score REAL NOT NULL,
    frequency_score REAL NOT NULL,
    engagement_score REAL NOT NULL,
    reciprocity_score REAL NOT NULL,
    total_emails INTEGER NOT NULL,
    last_email_at TEXT,
    calculated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS merge_history (
    id TEXT PRIMARY KEY,
    entity_type TEXT NOT NULL,
    primary_id TEXT NOT NULL,
    duplicate_id TEXT NOT NULL,
    stats TEXT,
    merged_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_merge_history_duplicate ON merge_history(entity_type, duplicate_id);

CREATE TABLE IF NOT EXISTS fact_review_queue (
    id TEXT PRIMARY KEY,
    fact_payload TEXT NOT NULL,
    conflict_payload TEXT NOT NULL,
    reason TEXT NOT NULL,
    status TEXT DEFAULT 'pending',
    resolution_strategy TEXT,
    resulting_fact_id TEXT,
    created_at TEXT NOT NULL,
    reviewed_at TEXT
);
CREATE INDEX IF NOT EXISTS idx_fact_review_status ON fact_review_queue(status);
"""


class GraphStore:
    """
    SQLite-backed storage for the knowledge graph.

    Every write that must be atomic goes through transaction(); reads use read().
    """

    def __init__(self, db_path: Optional[str] = None, timeout: Optional[float] = None):
        """
        Initialize the graph store.

        Args:
            db_path: Path to SQLite database (default from settings)
            timeout: Seconds to wait for the write lock (default from settings)
        """
        self.db_path = db_path or get_graph_db_path()
        self.timeout = timeout if timeout is not None else settings.sqlite_timeout
        self._init_db()

    def _init_db(self):
        """Create database tables if they don't exist."""
        conn = sqlite3.connect(self.db_path)
        try:
            conn.execute("PRAGMA journal_mode=WAL")
            conn.executescript(SCHEMA)
            conn.commit()
            logger.info(f"Initialized graph store in {self.db_path}")
        finally:
            conn.close()

    def _get_connection(self) -> sqlite3.Connection:
        """Get a database connection with explicit transaction control."""
        conn = sqlite3.connect(self.db_path, timeout=self.timeout, isolation_level=None)
        conn.row_factory = sqlite3.Row
        return conn

    @contextmanager
    def read(self) -> Iterator[sqlite3.Connection]:
        """Read-only connection; sees only committed state."""
        conn = self._get_connection()
        try:
            yield conn
        finally:
            conn.close()

    @contextmanager
    def transaction(self, dry_run: bool = False) -> Iterator[sqlite3.Connection]:
        """
        Run a block of statements atomically.

        The write lock is taken up front (BEGIN IMMEDIATE) so that
        read-then-write sequences inside the block cannot interleave with
        another writer. Any exception rolls back every statement in the block.

        Args:
            dry_run: Roll back instead of committing when the block succeeds

        Raises:
            ConstraintViolation: A unique or check constraint rejected a write
            TransactionFailure: The store aborted for any other reason
        """
        conn = self._get_connection()
        try:
            conn.execute("BEGIN IMMEDIATE")
            yield conn
            if dry_run:
                conn.execute("ROLLBACK")
            else:
                conn.execute("COMMIT")
        except sqlite3.IntegrityError as e:
            self._rollback(conn)
            raise ConstraintViolation(str(e)) from e
        except sqlite3.Error as e:
            self._rollback(conn)
            logger.error(f"Transaction aborted: {e}")
            raise TransactionFailure(str(e)) from e
        except BaseException:
            self._rollback(conn)
            raise
        finally:
            conn.close()

    @staticmethod
    def _rollback(conn: sqlite3.Connection) -> None:
        if conn.in_transaction:
            conn.execute("ROLLBACK")


# Singleton instance
_graph_store: Optional[GraphStore] = None


def get_graph_store(db_path: Optional[str] = None) -> GraphStore:
    """
    Get or create the singleton GraphStore.

    Args:
        db_path: Path to SQLite database

    Returns:
        GraphStore instance
    """
    global _graph_store
    if _graph_store is None:
        _graph_store = GraphStore(db_path)
    return _graph_store


def reset_graph_store() -> None:
    """Drop the singleton so the next call re-reads settings."""
    global _graph_store
    _graph_store = None

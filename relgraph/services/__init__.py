"""
relgraph Services Package.

Identity resolution and temporal fact-consistency for the relationship graph.
Every service takes an optional GraphStore; omit it to use the process-wide
store from get_graph_store().

Example:
    from relgraph.services import (
        GraphStore,
        EntityResolver,
        ConflictResolver,
    )

Key service modules:
- graph_store: SQLite store, schema and transactions
- canonical_keys: deterministic identity keys and name similarity
- entity_resolver: resolve-or-create for people and organizations
- duplicate_detector: fuzzy duplicate search
- entity_merger: transactional merges with merge history
- relationship: typed relationship edges
- fact_store: fact ledger and conflict detection
- conflict_resolver: the fact write path and resolution strategies
- fact_review_queue: conflicts awaiting manual review
- interaction_store: interaction records and stats
- relationship_metrics: relationship strength scoring
"""

# ============================================================================
# Storage
# ============================================================================

from relgraph.services.graph_store import (
    GraphStore,
    get_graph_store,
    reset_graph_store,
)
from relgraph.services.errors import (
    ConflictPendingReview,
    ConstraintViolation,
    GraphError,
    MergeCycleError,
    NotFoundError,
    TransactionFailure,
    ValidationError,
)

# ============================================================================
# Entities
# ============================================================================

from relgraph.services.entities import (
    Organization,
    OrganizationInput,
    Person,
    PersonInput,
)
from relgraph.services.entity_resolver import EntityResolver, ResolutionResult
from relgraph.services.duplicate_detector import DuplicateCandidate, DuplicateDetector
from relgraph.services.entity_merger import EntityMerger, MergeResult, get_entity_merger
from relgraph.services.relationship import Relationship, RelationshipStore

# ============================================================================
# Facts
# ============================================================================

from relgraph.services.fact_store import (
    Conflict,
    ConflictDetector,
    EntityKind,
    EntityRef,
    Fact,
    FactInput,
    FactStore,
)
from relgraph.services.conflict_resolver import (
    ConflictResolution,
    ConflictResolver,
    FactAdditionResult,
    ResolutionAction,
    ResolutionStrategy,
)
from relgraph.services.fact_review_queue import FactReviewQueue

# ============================================================================
# Relationship strength
# ============================================================================

from relgraph.services.interaction_store import Interaction, InteractionStore
from relgraph.services.relationship_metrics import (
    RelationshipStrength,
    RelationshipStrengthCalculator,
)

__all__ = [
    "GraphStore", "get_graph_store", "reset_graph_store",
    "GraphError", "ValidationError", "MergeCycleError", "NotFoundError",
    "ConflictPendingReview", "ConstraintViolation", "TransactionFailure",
    "Person", "PersonInput", "Organization", "OrganizationInput",
    "EntityResolver", "ResolutionResult",
    "DuplicateDetector", "DuplicateCandidate",
    "EntityMerger", "MergeResult", "get_entity_merger",
    "Relationship", "RelationshipStore",
    "EntityKind", "EntityRef", "Fact", "FactInput", "FactStore",
    "Conflict", "ConflictDetector",
    "ConflictResolver", "ConflictResolution", "FactAdditionResult",
    "ResolutionAction", "ResolutionStrategy",
    "FactReviewQueue",
    "Interaction", "InteractionStore",
    "RelationshipStrength", "RelationshipStrengthCalculator",
]

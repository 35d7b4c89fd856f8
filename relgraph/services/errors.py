"""
Error taxonomy for the relgraph core.

- ValidationError: missing identity fields, out-of-range values, bad references
- NotFoundError: merge/update/review against an unknown id
- ConflictPendingReview: a conflict is waiting for manual review (signalled, not a failure)
- ConstraintViolation: a unique or check constraint rejected a write
- TransactionFailure: any other store-level abort; partial writes were rolled back
"""
from typing import Any, Optional


class GraphError(Exception):
    """Base class for relgraph errors."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class ValidationError(GraphError):
    """Raised when input is missing required fields or holds invalid values."""

    def __init__(self, message: str, field: Optional[str] = None):
        self.field = field
        super().__init__(message)


class MergeCycleError(ValidationError):
    """Raised when a merge would make the merge history cyclic."""
    pass


class NotFoundError(GraphError):
    """Raised when an operation targets an unknown id."""

    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(f"{entity_type} not found: {entity_id}")


class ConflictPendingReview(GraphError):
    """Raised on request when a fact conflict needs a manual decision."""

    def __init__(self, conflict: Any, review_id: Optional[str] = None):
        self.conflict = conflict
        self.review_id = review_id
        super().__init__(f"Conflict pending manual review: {conflict.reason}")


class ConstraintViolation(GraphError):
    """Raised when the store rejects a write on a unique or check constraint."""
    pass


class TransactionFailure(GraphError):
    """Raised when the store aborts a transaction; all partial writes are rolled back."""
    pass

"""
Exception hierarchy shared by the scheduling and rule engines.

Validation errors are raised before anything is written. Computation errors
fail a single computation (a schedule, a trigger) instead of yielding NaN or
silently wrong numbers. Store errors wrap I/O failures of the record store.
"""

from typing import Any, Dict, List, Optional, Sequence


class FactoryOpsError(Exception):
    """Base exception for factory_ops errors."""
    pass


# ============ Validation ============

class ValidationError(FactoryOpsError):
    """Raised when a write would violate an invariant; nothing is written."""
    pass


class CyclicDependencyError(ValidationError):
    """Raised when adding a dependency edge would close a cycle."""

    def __init__(self, order_id: str, dependency_id: str, path: Optional[Sequence[str]] = None):
        self.order_id = order_id
        self.dependency_id = dependency_id
        self.path = list(path) if path else [order_id, dependency_id, order_id]
        super().__init__(
            f"Adding dependency {order_id} -> {dependency_id} would create a cycle: "
            f"{' -> '.join(self.path)}"
        )


class UnknownOrderError(ValidationError):
    """Raised when an order id is not present in the store."""

    def __init__(self, order_id: str):
        self.order_id = order_id
        super().__init__(f"Order {order_id} not found")


class DanglingDependencyError(ValidationError):
    """Raised when a dependency points at an order that does not exist."""

    def __init__(self, order_id: str, dependency_id: str):
        self.order_id = order_id
        self.dependency_id = dependency_id
        super().__init__(
            f"Order {order_id} cannot depend on unknown order {dependency_id}"
        )


class RuleValidationError(ValidationError):
    """Raised for unknown trigger/action kinds or malformed parameters."""

    def __init__(self, message: str, errors: Optional[List[Dict[str, Any]]] = None):
        self.errors = errors or []
        super().__init__(message)


# ============ Computation ============

class ComputationError(FactoryOpsError):
    """Raised when a computation cannot produce a meaningful number."""
    pass


class NotADagError(ComputationError):
    """Raised when the dependency relation contains a cycle."""

    def __init__(self, cycle: Sequence[str]):
        self.cycle = list(cycle)
        super().__init__(f"Dependency graph is not a DAG: {' -> '.join(self.cycle)}")


# ============ Store ============

class RecordStoreError(FactoryOpsError):
    """Raised when reading from or writing to the record store fails."""
    pass


class RecordNotFoundError(RecordStoreError):
    """Raised when a write targets a record that does not exist."""
    pass


class ConcurrentUpdateError(RecordStoreError):
    """Raised when a conditional write lost a race against another writer."""
    pass

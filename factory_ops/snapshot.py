"""
Read-only views of the record store that the scheduling and rule engines
operate on. Engines never see ORM rows, only these snapshots.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional, Tuple

from .errors import ComputationError
from .utils.helpers import utcnow


class OrderStatus(str, Enum):
    """Lifecycle stages of a production order."""
    PLANNED = "planned"
    IN_PRODUCTION = "in_production"
    QUALITY_CHECK = "quality_check"
    READY_TO_SHIP = "ready_to_ship"
    SHIPPED = "shipped"


# "completed" is still written by older station terminals
TERMINAL_STATUSES = frozenset({OrderStatus.SHIPPED.value, "completed"})

TEMPORARY_REJECT = "temporary_reject"


def is_terminal(status: Optional[str]) -> bool:
    return status in TERMINAL_STATUSES


@dataclass(frozen=True)
class OrderSnapshot:
    order_id: str
    dependencies: Tuple[str, ...] = ()
    estimated_hours: Optional[float] = None
    actual_hours: Optional[float] = None
    status: str = OrderStatus.PLANNED.value
    planned_date: Optional[datetime] = None
    machine: Optional[str] = None
    operator_name: Optional[str] = None

    def duration(self, default: float) -> float:
        """Scheduling duration in hours; missing or zero estimates use ``default``."""
        if self.estimated_hours is None or self.estimated_hours == 0:
            return default
        if self.estimated_hours < 0:
            raise ComputationError(
                f"Order {self.order_id} has negative estimated hours ({self.estimated_hours})"
            )
        return float(self.estimated_hours)

    @property
    def is_terminal(self) -> bool:
        return is_terminal(self.status)


@dataclass(frozen=True)
class MachineLoad:
    machine_id: str
    station: Optional[str] = None
    operator_name: Optional[str] = None
    hours_per_week: float = 0.0
    production_hours: float = 0.0
    actual_hours: float = 0.0

    @property
    def has_operator(self) -> bool:
        return bool(self.operator_name and self.operator_name.strip())


@dataclass(frozen=True)
class TrackedProduct:
    lot_number: str
    item_code: str
    origin_machine: Optional[str] = None
    current_station: Optional[str] = None
    status: str = "in_progress"
    inspection_status: Optional[str] = None
    inspection_timestamp: Optional[datetime] = None
    reminder_sent: bool = False
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None


@dataclass(frozen=True)
class ProductionStandard:
    item_code: str
    machine: str
    standard_minutes: float


@dataclass(frozen=True)
class OperationalSnapshot:
    """Everything the trigger evaluators look at during one pass."""
    orders: Tuple[OrderSnapshot, ...] = ()
    machines: Tuple[MachineLoad, ...] = ()
    products: Tuple[TrackedProduct, ...] = ()
    standards: Tuple[ProductionStandard, ...] = ()
    taken_at: datetime = field(default_factory=utcnow)

"""
Critical Path Method over the order dependency graph.

Forward pass gives each order its earliest start, the backward pass its
latest start against the project horizon; orders whose slack is zero (within
a tolerance, durations are fractional hours) form the critical path.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List

from ..snapshot import OrderSnapshot
from .graph import DependencyGraph

logger = logging.getLogger(__name__)

DEFAULT_DURATION_HOURS = 8.0
SLACK_TOLERANCE = 0.01


@dataclass
class ScheduleEntry:
    order_id: str
    duration: float
    earliest_start: float
    latest_start: float
    slack: float
    is_critical: bool

    @property
    def earliest_finish(self) -> float:
        return self.earliest_start + self.duration

    def to_dict(self) -> Dict[str, float | bool | str]:
        return {
            "order_id": self.order_id,
            "duration": round(self.duration, 4),
            "earliest_start": round(self.earliest_start, 4),
            "latest_start": round(self.latest_start, 4),
            "slack": round(self.slack, 4),
            "is_critical": self.is_critical,
        }


@dataclass
class ScheduleResult:
    entries: Dict[str, ScheduleEntry] = field(default_factory=dict)
    critical_path: List[str] = field(default_factory=list)
    project_end: float = 0.0

    def __getitem__(self, order_id: str) -> ScheduleEntry:
        return self.entries[order_id]

    def to_dict(self) -> Dict:
        return {
            "project_end": round(self.project_end, 4),
            "critical_path": list(self.critical_path),
            "orders": {oid: e.to_dict() for oid, e in self.entries.items()},
        }


def compute_schedule(
    orders: Iterable[OrderSnapshot],
    default_duration: float = DEFAULT_DURATION_HOURS,
    tolerance: float = SLACK_TOLERANCE,
) -> ScheduleResult:
    """
    Compute earliest/latest start and slack for every order.

    Dependency ids missing from the snapshot are ignored. A cyclic snapshot
    raises NotADagError instead of producing numbers.
    """
    orders = list(orders)
    if not orders:
        return ScheduleResult()

    graph = DependencyGraph.from_orders(orders)
    dangling = graph.dangling_dependencies()
    if dangling:
        logger.warning("Ignoring dangling dependencies in schedule: %s", dangling)

    topo = graph.topological_order()
    position = {oid: i for i, oid in enumerate(topo)}
    duration = {o.order_id: o.duration(default_duration) for o in orders}

    # Forward pass
    earliest: Dict[str, float] = {}
    for oid in topo:
        earliest[oid] = max(
            (earliest[d] + duration[d] for d in graph.dependencies_of(oid) if d in earliest),
            default=0.0,
        )

    project_end = max(earliest[oid] + duration[oid] for oid in topo)

    # Backward pass
    latest: Dict[str, float] = {}
    for oid in reversed(topo):
        successors = graph.successors_of(oid)
        if successors:
            latest[oid] = min(latest[s] for s in successors) - duration[oid]
        else:
            latest[oid] = project_end - duration[oid]

    entries: Dict[str, ScheduleEntry] = {}
    for order in orders:
        oid = order.order_id
        slack = latest[oid] - earliest[oid]
        entries[oid] = ScheduleEntry(
            order_id=oid,
            duration=duration[oid],
            earliest_start=earliest[oid],
            latest_start=latest[oid],
            slack=slack,
            is_critical=abs(slack) < tolerance,
        )

    critical_path = sorted(
        (oid for oid, e in entries.items() if e.is_critical),
        key=lambda oid: (entries[oid].earliest_start, position[oid]),
    )

    logger.debug(
        "Schedule computed: %d orders, project end %.2fh, %d critical",
        len(entries), project_end, len(critical_path),
    )
    return ScheduleResult(entries=entries, critical_path=critical_path, project_end=project_end)

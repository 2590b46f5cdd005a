"""
Dependency graph and critical-path scheduling for production orders.
"""

from .graph import DependencyGraph, blocked_orders, would_create_cycle
from .cpm import ScheduleEntry, ScheduleResult, compute_schedule

__all__ = [
    "DependencyGraph",
    "blocked_orders",
    "would_create_cycle",
    "ScheduleEntry",
    "ScheduleResult",
    "compute_schedule",
]

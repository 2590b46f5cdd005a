"""
Trigger evaluators.

Each evaluator is a pure function of its typed conditions and an operational
snapshot; it returns a TriggerResult whose ``data`` names the records an
action may act on. Evaluators are registered per TriggerType.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from statistics import mean, median_high
from typing import Callable, Dict

from ..config import DelayPolicy
from ..errors import ComputationError, RuleValidationError
from ..scheduling.graph import blocked_orders
from ..snapshot import OperationalSnapshot, TEMPORARY_REJECT, is_terminal
from ..utils.helpers import is_past_due, utcnow, whole_days_between
from .models import (
    CapacityShortageConditions,
    DependencyBlockedConditions,
    InspectionOverdueConditions,
    LowEfficiencyConditions,
    MissingOperatorConditions,
    OrderDelayConditions,
    OrderStatusChangeConditions,
    RuleSchema,
    Severity,
    StandardDeviationConditions,
    TriggerResult,
    TriggerType,
)

logger = logging.getLogger(__name__)


@dataclass
class EvaluationContext:
    now: datetime = field(default_factory=utcnow)
    delay_policy: DelayPolicy = field(default_factory=DelayPolicy)


TriggerEvaluator = Callable[[RuleSchema, OperationalSnapshot, EvaluationContext], TriggerResult]

TRIGGER_REGISTRY: Dict[TriggerType, TriggerEvaluator] = {}


def register_trigger(kind: TriggerType):
    def decorator(func: TriggerEvaluator) -> TriggerEvaluator:
        TRIGGER_REGISTRY[kind] = func
        return func
    return decorator


def evaluate_trigger(
    kind: TriggerType,
    conditions: RuleSchema,
    snapshot: OperationalSnapshot,
    context: EvaluationContext,
) -> TriggerResult:
    evaluator = TRIGGER_REGISTRY.get(kind)
    if evaluator is None:
        raise RuleValidationError(f"No evaluator registered for trigger {kind}")
    result = evaluator(conditions, snapshot, context)
    logger.debug("Trigger %s evaluated: triggered=%s (%s)", kind.value, result.triggered, result.message)
    return result


@register_trigger(TriggerType.CAPACITY_SHORTAGE)
def capacity_shortage(c: CapacityShortageConditions, snapshot, context) -> TriggerResult:
    total_capacity = sum(m.hours_per_week or 0.0 for m in snapshot.machines)
    total_demand = sum(
        o.estimated_hours or 0.0 for o in snapshot.orders if not is_terminal(o.status)
    )
    shortage = total_demand - total_capacity
    triggered = shortage > c.threshold
    return TriggerResult(
        triggered=triggered,
        message=(
            f"Capacity shortage: {round(shortage)}h short (threshold: {c.threshold:g}h)"
            if triggered
            else f"Capacity sufficient: shortage {round(shortage)}h within {c.threshold:g}h"
        ),
        severity=Severity.WARNING,
        data={
            "total_capacity": total_capacity,
            "total_demand": total_demand,
            "shortage": shortage,
        },
    )


@register_trigger(TriggerType.LOW_EFFICIENCY)
def low_efficiency(c: LowEfficiencyConditions, snapshot, context) -> TriggerResult:
    planned = [m for m in snapshot.machines if (m.production_hours or 0) > 0]
    if not planned:
        raise ComputationError("No machine has planned production hours; efficiency is undefined")

    avg_efficiency = mean((m.actual_hours or 0.0) / m.production_hours for m in planned)
    efficiency_pct = round(avg_efficiency * 100)
    triggered = avg_efficiency < c.threshold / 100.0
    return TriggerResult(
        triggered=triggered,
        message=(
            f"Low efficiency: {efficiency_pct}% (threshold: {c.threshold:g}%)"
            if triggered
            else f"Efficiency {efficiency_pct}% meets threshold {c.threshold:g}%"
        ),
        severity=Severity.WARNING,
        data={"avg_efficiency": efficiency_pct, "threshold": c.threshold, "machines": len(planned)},
    )


@register_trigger(TriggerType.ORDER_DELAY)
def order_delay(c: OrderDelayConditions, snapshot, context) -> TriggerResult:
    delayed = [
        o for o in snapshot.orders
        if not is_terminal(o.status) and is_past_due(o.planned_date, context.now, context.delay_policy)
    ]
    triggered = len(delayed) >= c.min_delayed_orders
    return TriggerResult(
        triggered=triggered,
        message=f"{len(delayed)} order(s) are delayed",
        severity=Severity.CRITICAL,
        data={
            "delayed_count": len(delayed),
            "order_ids": [o.order_id for o in delayed],
        },
    )


@register_trigger(TriggerType.MISSING_OPERATOR)
def missing_operator(c: MissingOperatorConditions, snapshot, context) -> TriggerResult:
    unassigned = [m for m in snapshot.machines if not m.has_operator]
    triggered = len(unassigned) >= c.threshold
    return TriggerResult(
        triggered=triggered,
        message=f"{len(unassigned)} machine(s) without operator",
        severity=Severity.WARNING,
        data={
            "count": len(unassigned),
            "machines": [m.machine_id for m in unassigned],
        },
    )


@register_trigger(TriggerType.DEPENDENCY_BLOCKED)
def dependency_blocked(c: DependencyBlockedConditions, snapshot, context) -> TriggerResult:
    blocked = blocked_orders(snapshot.orders)
    triggered = len(blocked) >= c.threshold
    return TriggerResult(
        triggered=triggered,
        message=f"{len(blocked)} order(s) blocked by dependencies",
        severity=Severity.INFO,
        data={
            "blocked_count": len(blocked),
            "order_ids": [o.order_id for o in blocked],
        },
    )


@register_trigger(TriggerType.INSPECTION_OVERDUE)
def inspection_overdue(c: InspectionOverdueConditions, snapshot, context) -> TriggerResult:
    overdue = []
    for p in snapshot.products:
        if c.station and p.current_station != c.station:
            continue
        if p.inspection_status != TEMPORARY_REJECT or p.inspection_timestamp is None:
            continue
        if p.reminder_sent:
            continue
        days_since = whole_days_between(p.inspection_timestamp, context.now)
        if days_since >= c.days_overdue:
            overdue.append({
                "lot_number": p.lot_number,
                "station": p.current_station,
                "days_since": days_since,
            })

    return TriggerResult(
        triggered=bool(overdue),
        message=f"{len(overdue)} product(s) {c.days_overdue}+ days in temporary rejection",
        severity=Severity.ALERT,
        data={"overdue_count": len(overdue), "products": overdue},
    )


@register_trigger(TriggerType.STANDARD_DEVIATION)
def standard_deviation(c: StandardDeviationConditions, snapshot, context) -> TriggerResult:
    deviating = []
    for std in snapshot.standards:
        durations = []
        for p in snapshot.products:
            if p.item_code != std.item_code or p.origin_machine != std.machine:
                continue
            if not is_terminal(p.status) or p.started_at is None or p.completed_at is None:
                continue
            minutes = round((p.completed_at - p.started_at).total_seconds() / 60)
            if minutes > 0:
                durations.append(minutes)

        if len(durations) < c.min_samples:
            continue
        if std.standard_minutes <= 0:
            raise ComputationError(
                f"Standard for {std.item_code}/{std.machine} is {std.standard_minutes} minutes; "
                f"deviation is undefined"
            )

        observed = median_high(durations)
        deviation = (observed - std.standard_minutes) / std.standard_minutes * 100
        if abs(deviation) >= c.min_deviation:
            deviating.append({
                "item_code": std.item_code,
                "machine": std.machine,
                "current_standard": std.standard_minutes,
                "observed_median": observed,
                "deviation": round(deviation, 1),
                "sample_count": len(durations),
            })

    return TriggerResult(
        triggered=bool(deviating),
        message=f"{len(deviating)} standard(s) deviate significantly",
        severity=Severity.INFO,
        data={"deviating_count": len(deviating), "standards": deviating},
    )


@register_trigger(TriggerType.ORDER_STATUS_CHANGE)
def order_status_change(c: OrderStatusChangeConditions, snapshot, context) -> TriggerResult:
    matching = [
        o for o in snapshot.orders
        if o.status == c.target_status and (c.order_id is None or o.order_id == c.order_id)
    ]
    return TriggerResult(
        triggered=bool(matching),
        message=f'{len(matching)} order(s) have status "{c.target_status}"',
        severity=Severity.INFO,
        data={"count": len(matching), "order_ids": [o.order_id for o in matching]},
    )


def check_registry() -> None:
    """Every TriggerType must have an evaluator."""
    missing = set(TriggerType) - set(TRIGGER_REGISTRY)
    if missing:
        raise RuleValidationError(f"Triggers without evaluator: {sorted(m.value for m in missing)}")


check_registry()

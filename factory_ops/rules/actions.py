"""
Action dispatcher - maps an ActionType to the handler that performs it.

Handlers receive their typed params, the TriggerResult that fired them and
an ActionContext, and report one of three outcomes (noop / applied /
failed). Record mutations are set-to-value so a retried firing converges on
the same state.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional

from ..config import DelayPolicy
from ..errors import RecordNotFoundError, RuleValidationError
from ..snapshot import OperationalSnapshot
from ..utils.helpers import to_local, utcnow
from .models import (
    ActionOutcome,
    ActionResult,
    ActionType,
    AssignOperatorParams,
    AutoLearningUpdateParams,
    CreateLogParams,
    InspectionReminderParams,
    RescheduleOrderParams,
    RuleSchema,
    SendNotificationParams,
    Severity,
    TriggerResult,
    UpdateStatusParams,
)
from .store import RecordStore

logger = logging.getLogger(__name__)

URGENT_SEVERITIES = {Severity.CRITICAL, Severity.ALERT}


@dataclass
class ActionContext:
    store: RecordStore
    snapshot: OperationalSnapshot = field(default_factory=OperationalSnapshot)
    now: datetime = field(default_factory=utcnow)
    rule_name: str = ""
    write_enabled: bool = True
    delay_policy: DelayPolicy = field(default_factory=DelayPolicy)


ActionHandler = Callable[[RuleSchema, TriggerResult, ActionContext], ActionResult]

ACTION_REGISTRY: Dict[ActionType, ActionHandler] = {}


def register_action(kind: ActionType):
    def decorator(func: ActionHandler) -> ActionHandler:
        ACTION_REGISTRY[kind] = func
        return func
    return decorator


def dispatch_action(
    kind: ActionType,
    params: RuleSchema,
    trigger: TriggerResult,
    context: ActionContext,
) -> ActionResult:
    handler = ACTION_REGISTRY.get(kind)
    if handler is None:
        raise RuleValidationError(f"No handler registered for action {kind}")
    result = handler(params, trigger, context)
    logger.info("Action %s for rule '%s': %s - %s", kind.value, context.rule_name, result.outcome.value, result.message)
    return result


def _target_orders(order_id: Optional[str], trigger: TriggerResult) -> List[str]:
    if order_id:
        return [order_id]
    return list(trigger.data.get("order_ids", []))


# ============ Messaging ============

@register_action(ActionType.SEND_NOTIFICATION)
def send_notification(p: SendNotificationParams, trigger: TriggerResult, ctx: ActionContext) -> ActionResult:
    message = p.message or trigger.message
    severity = p.severity or trigger.severity

    notification_id = ctx.store.add_notification(
        message=message,
        severity=severity.value,
        recipients=p.recipients,
        data=trigger.data,
    )
    ctx.store.add_inbox_message(
        subject=f"Automation: {trigger.message or 'System alert'}",
        content=message,
        kind="automation_alert",
        priority="urgent" if severity in URGENT_SEVERITIES else "normal",
    )
    return ActionResult(ActionOutcome.APPLIED, "Notification sent", {"notification_id": notification_id})


@register_action(ActionType.CREATE_LOG)
def create_log(p: CreateLogParams, trigger: TriggerResult, ctx: ActionContext) -> ActionResult:
    event_id = ctx.store.add_log_entry(
        "AUTOMATION_LOG",
        p.log_message or trigger.message,
        data={"rule": ctx.rule_name, **trigger.data},
    )
    return ActionResult(ActionOutcome.APPLIED, "Log entry created", {"event_id": event_id})


@register_action(ActionType.INSPECTION_REMINDER)
def inspection_reminder(p: InspectionReminderParams, trigger: TriggerResult, ctx: ActionContext) -> ActionResult:
    products = trigger.data.get("products") or []
    if not products:
        return ActionResult(ActionOutcome.NOOP, "No products found in trigger data")
    if not ctx.write_enabled:
        return ActionResult(ActionOutcome.NOOP, f"Dry run: {len(products)} reminder(s) would be sent")

    reminded = 0
    for product in products:
        lot = product["lot_number"]
        ctx.store.add_inbox_message(
            subject="Reminder: temporary rejection",
            content=(
                f"Product {lot} has been at {product.get('station') or 'its station'} for "
                f"{product.get('days_since')}+ days awaiting repair. Please take action."
            ),
            kind="alert",
            priority="urgent",
            related_lot=lot,
        )
        if ctx.store.mark_reminder_sent(lot):
            reminded += 1

    return ActionResult(ActionOutcome.APPLIED, f"{reminded} reminder(s) sent", {"reminded": reminded})


# ============ Record mutations ============

@register_action(ActionType.UPDATE_STATUS)
def update_status(p: UpdateStatusParams, trigger: TriggerResult, ctx: ActionContext) -> ActionResult:
    order_ids = _target_orders(p.order_id, trigger)
    status = p.target_status.value
    if not order_ids:
        return ActionResult(ActionOutcome.NOOP, "No orders to update")
    if not ctx.write_enabled:
        return ActionResult(ActionOutcome.NOOP, f"Dry run: {len(order_ids)} order(s) would be set to {status}")

    changed, missing = [], []
    for order_id in order_ids:
        try:
            if ctx.store.set_order_status(order_id, status):
                changed.append(order_id)
        except RecordNotFoundError:
            missing.append(order_id)

    data = {"changed": changed, "missing": missing}
    if missing:
        return ActionResult(ActionOutcome.FAILED, f"Order(s) not found: {', '.join(missing)}", data)
    if not changed:
        return ActionResult(ActionOutcome.NOOP, f"All order(s) already {status}", data)
    return ActionResult(ActionOutcome.APPLIED, f"{len(changed)} order(s) set to {status}", data)


@register_action(ActionType.ASSIGN_OPERATOR)
def assign_operator(p: AssignOperatorParams, trigger: TriggerResult, ctx: ActionContext) -> ActionResult:
    if p.machine:
        machines = [p.machine]
    elif p.order_id:
        order = next((o for o in ctx.snapshot.orders if o.order_id == p.order_id), None)
        if order is None or not order.machine:
            return ActionResult(ActionOutcome.FAILED, f"Order {p.order_id} has no machine to staff")
        machines = [order.machine]
    else:
        machines = list(trigger.data.get("machines", []))

    if not machines:
        return ActionResult(ActionOutcome.NOOP, "No machines to assign")
    if not ctx.write_enabled:
        return ActionResult(ActionOutcome.NOOP, f"Dry run: {p.operator_name} would staff {len(machines)} machine(s)")

    changed, missing = [], []
    for machine_id in machines:
        try:
            if ctx.store.assign_operator(machine_id, p.operator_name):
                changed.append(machine_id)
        except RecordNotFoundError:
            missing.append(machine_id)

    data = {"changed": changed, "missing": missing}
    if missing:
        return ActionResult(ActionOutcome.FAILED, f"Machine(s) not found: {', '.join(missing)}", data)
    if not changed:
        return ActionResult(ActionOutcome.NOOP, f"{p.operator_name} already assigned", data)
    return ActionResult(ActionOutcome.APPLIED, f"{p.operator_name} assigned to {len(changed)} machine(s)", data)


@register_action(ActionType.RESCHEDULE_ORDER)
def reschedule_order(p: RescheduleOrderParams, trigger: TriggerResult, ctx: ActionContext) -> ActionResult:
    order_ids = _target_orders(p.order_id, trigger)
    if not order_ids:
        return ActionResult(ActionOutcome.NOOP, "No orders to reschedule")

    # Absolute target, so a retry lands on the same date. Planned dates are
    # stored as wall-clock time in the delay policy zone.
    zone = ctx.delay_policy.timezone
    if p.planned_date is None:
        new_date = to_local(ctx.now + timedelta(hours=p.delay_hours), zone)
    elif p.planned_date.tzinfo is not None:
        new_date = to_local(p.planned_date, zone)
    else:
        new_date = p.planned_date

    if not ctx.write_enabled:
        return ActionResult(
            ActionOutcome.NOOP,
            f"Dry run: {len(order_ids)} order(s) would move to {new_date.isoformat()}",
        )

    changed, missing = [], []
    for order_id in order_ids:
        try:
            if ctx.store.set_planned_date(order_id, new_date):
                changed.append(order_id)
        except RecordNotFoundError:
            missing.append(order_id)

    data = {"changed": changed, "missing": missing, "planned_date": new_date.isoformat()}
    if missing:
        return ActionResult(ActionOutcome.FAILED, f"Order(s) not found: {', '.join(missing)}", data)
    if not changed:
        return ActionResult(ActionOutcome.NOOP, "Order(s) already on that date", data)
    return ActionResult(ActionOutcome.APPLIED, f"{len(changed)} order(s) rescheduled to {new_date.isoformat()}", data)


@register_action(ActionType.AUTO_LEARNING_UPDATE)
def auto_learning_update(p: AutoLearningUpdateParams, trigger: TriggerResult, ctx: ActionContext) -> ActionResult:
    standards = trigger.data.get("standards") or []
    if not standards:
        return ActionResult(ActionOutcome.NOOP, "No standards found in trigger data")

    proposals = []
    for std in standards:
        current = std["current_standard"]
        change = (std["observed_median"] - current) * p.learning_rate
        proposals.append({**std, "new_standard": round(current + change)})

    if p.dry_run or not ctx.write_enabled:
        return ActionResult(
            ActionOutcome.NOOP,
            f"{len(proposals)} standard(s) would be updated",
            {"proposals": proposals},
        )

    updated = 0
    for prop in proposals:
        learning = {
            "last_update": ctx.now.isoformat(),
            "sample_count": prop["sample_count"],
            "previous_standard": prop["current_standard"],
            "observed_median": prop["observed_median"],
            "deviation": prop["deviation"],
        }
        try:
            if ctx.store.set_standard_minutes(prop["item_code"], prop["machine"], prop["new_standard"], learning):
                updated += 1
        except RecordNotFoundError:
            logger.warning("Standard %s/%s disappeared before update", prop["item_code"], prop["machine"])

    outcome = ActionOutcome.APPLIED if updated else ActionOutcome.NOOP
    return ActionResult(outcome, f"{updated} standard(s) updated", {"proposals": proposals})


def check_registry() -> None:
    """Every ActionType must have a handler."""
    missing = set(ActionType) - set(ACTION_REGISTRY)
    if missing:
        raise RuleValidationError(f"Actions without handler: {sorted(m.value for m in missing)}")


check_registry()

# factory_ops/services/record_store.py

"""
SQL-backed RecordStore for the rule engine.

Each write commits on its own so an action that fails halfway leaves the
earlier writes in place; every write is set-to-value, so the retry after a
released claim converges.
"""

import json
import logging
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from ..errors import RecordNotFoundError, RecordStoreError
from ..models.automation import AutomationRule, InboxMessage, Notification, RuleExecution
from ..models.master import MachineLoad as MachineRow
from ..models.master import Order
from ..models.quality import ProductionStandard as StandardRow
from ..models.quality import TrackedProduct as ProductRow
from ..rules.models import ExecutionRecord
from ..rules.store import RecordStore
from ..snapshot import (
    MachineLoad,
    OperationalSnapshot,
    OrderSnapshot,
    ProductionStandard,
    TrackedProduct,
)
from ..utils.helpers import utcnow
from .event_logger import log_event

logger = logging.getLogger(__name__)


def parse_dependencies(order: Order) -> List[str]:
    try:
        deps = json.loads(order.dependencies_json or "[]")
    except json.JSONDecodeError as e:
        raise RecordStoreError(f"Order {order.order_id} has corrupt dependencies: {e}") from e
    if not isinstance(deps, list):
        raise RecordStoreError(f"Order {order.order_id} dependencies must be a list")
    return [str(d) for d in deps]


def to_order_snapshot(order: Order) -> OrderSnapshot:
    return OrderSnapshot(
        order_id=order.order_id,
        dependencies=tuple(parse_dependencies(order)),
        estimated_hours=order.estimated_hours,
        actual_hours=order.actual_hours,
        status=order.status,
        planned_date=order.planned_date,
        machine=order.machine,
        operator_name=order.operator_name,
    )


def load_order_snapshots(session: Session) -> Tuple[OrderSnapshot, ...]:
    try:
        orders = session.exec(select(Order).order_by(Order.order_id)).all()
    except SQLAlchemyError as e:
        raise RecordStoreError(f"Failed to load orders: {e}") from e
    return tuple(to_order_snapshot(o) for o in orders)


class SqlRecordStore(RecordStore):

    def __init__(self, session: Session):
        self.session = session

    def _commit(self, what: str) -> None:
        try:
            self.session.commit()
        except SQLAlchemyError as e:
            self.session.rollback()
            raise RecordStoreError(f"Failed to {what}: {e}") from e

    def _get(self, model, key, label: str):
        try:
            row = self.session.get(model, key)
        except SQLAlchemyError as e:
            raise RecordStoreError(f"Failed to load {label} {key}: {e}") from e
        if row is None:
            raise RecordNotFoundError(f"{label} {key} not found")
        return row

    # ---------- snapshot ----------

    def load_operational_snapshot(self) -> OperationalSnapshot:
        orders = load_order_snapshots(self.session)
        try:
            machines = self.session.exec(select(MachineRow).order_by(MachineRow.machine_id)).all()
            products = self.session.exec(select(ProductRow).order_by(ProductRow.lot_number)).all()
            standards = self.session.exec(select(StandardRow).order_by(StandardRow.id)).all()
        except SQLAlchemyError as e:
            raise RecordStoreError(f"Failed to load snapshot: {e}") from e

        return OperationalSnapshot(
            orders=orders,
            machines=tuple(
                MachineLoad(
                    machine_id=m.machine_id,
                    station=m.station,
                    operator_name=m.operator_name,
                    hours_per_week=m.hours_per_week or 0.0,
                    production_hours=m.production_hours or 0.0,
                    actual_hours=m.actual_hours or 0.0,
                )
                for m in machines
            ),
            products=tuple(
                TrackedProduct(
                    lot_number=p.lot_number,
                    item_code=p.item_code,
                    origin_machine=p.origin_machine,
                    current_station=p.current_station,
                    status=p.status,
                    inspection_status=p.inspection_status,
                    inspection_timestamp=p.inspection_timestamp,
                    reminder_sent=p.reminder_sent,
                    started_at=p.started_at,
                    completed_at=p.completed_at,
                )
                for p in products
            ),
            standards=tuple(
                ProductionStandard(item_code=s.item_code, machine=s.machine, standard_minutes=s.standard_minutes)
                for s in standards
            ),
            taken_at=utcnow(),
        )

    # ---------- audit / bookkeeping ----------

    def append_execution(self, record: ExecutionRecord) -> None:
        self.session.add(RuleExecution(
            execution_id=f"EXE-{uuid.uuid4().hex}",
            rule_id=record.rule_id,
            rule_name=record.rule_name,
            status=record.status.value,
            message=record.message,
            data_json=json.dumps(record.data, default=str) if record.data is not None else None,
            executed_at=record.executed_at,
        ))
        self._commit("append execution record")

    def record_firing(self, rule_id: str, fired_at: datetime) -> None:
        rule = self._get(AutomationRule, rule_id, "Rule")
        rule.execution_count = (rule.execution_count or 0) + 1
        # The ledger already holds fired_at; writing it again is idempotent
        rule.last_executed = fired_at
        self.session.add(rule)
        self._commit("record rule firing")

    # ---------- messaging ----------

    def add_notification(self, message, severity, recipients, data=None) -> str:
        nid = f"NTF-{uuid.uuid4().hex}"
        self.session.add(Notification(
            notification_id=nid,
            message=message,
            severity=severity,
            recipients_json=json.dumps(list(recipients)),
            data_json=json.dumps(data, default=str) if data else None,
        ))
        self._commit("add notification")
        return nid

    def add_inbox_message(self, subject, content, kind, priority="normal", related_lot=None) -> str:
        mid = f"MSG-{uuid.uuid4().hex}"
        self.session.add(InboxMessage(
            message_id=mid,
            subject=subject,
            content=content,
            kind=kind,
            priority=priority,
            related_lot=related_lot,
        ))
        self._commit("add inbox message")
        return mid

    def add_log_entry(self, event_type, message, data=None) -> str:
        eid = log_event(self.session, event_type, message, data)
        self._commit("add log entry")
        return eid

    # ---------- record mutations ----------

    def set_order_status(self, order_id: str, status: str) -> bool:
        order = self._get(Order, order_id, "Order")
        if order.status == status:
            return False
        order.status = status
        self.session.add(order)
        self._commit(f"update order {order_id}")
        return True

    def set_planned_date(self, order_id: str, planned_date: datetime) -> bool:
        order = self._get(Order, order_id, "Order")
        if order.planned_date == planned_date:
            return False
        order.planned_date = planned_date
        self.session.add(order)
        self._commit(f"reschedule order {order_id}")
        return True

    def assign_operator(self, machine_id: str, operator_name: str) -> bool:
        machine = self._get(MachineRow, machine_id, "Machine")
        if machine.operator_name == operator_name:
            return False
        machine.operator_name = operator_name
        self.session.add(machine)
        self._commit(f"assign operator to {machine_id}")
        return True

    def mark_reminder_sent(self, lot_number: str) -> bool:
        product = self._get(ProductRow, lot_number, "Product")
        if product.reminder_sent:
            return False
        product.reminder_sent = True
        self.session.add(product)
        self._commit(f"mark reminder for {lot_number}")
        return True

    def set_standard_minutes(self, item_code, machine, standard_minutes, learning=None) -> bool:
        try:
            std = self.session.exec(
                select(StandardRow)
                .where(StandardRow.item_code == item_code, StandardRow.machine == machine)
            ).first()
        except SQLAlchemyError as e:
            raise RecordStoreError(f"Failed to load standard {item_code}/{machine}: {e}") from e
        if std is None:
            raise RecordNotFoundError(f"Standard {item_code}/{machine} not found")
        if std.standard_minutes == standard_minutes:
            return False
        std.standard_minutes = standard_minutes
        std.updated_at = utcnow()
        if learning is not None:
            std.auto_learning_json = json.dumps(learning, default=str)
        self.session.add(std)
        self._commit(f"update standard {item_code}/{machine}")
        logger.info("Standard %s/%s set to %s min", item_code, machine, standard_minutes)
        return True

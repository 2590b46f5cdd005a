"""
Shared fixtures: in-memory SQLite store, sample shop floor and a FastAPI
test client wired to the same session.
"""
import os

# Must be set before factory_ops.database creates its engine
os.environ.setdefault("DATABASE_URL", "sqlite://")

import json
from datetime import datetime, timedelta
from typing import Dict, List, Optional

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

from factory_ops import config as config_module
from factory_ops import models  # noqa: F401  (registers tables)
from factory_ops.database import get_session
from factory_ops.errors import RecordNotFoundError
from factory_ops.main import app
from factory_ops.models.master import MachineLoad as MachineRow
from factory_ops.models.master import Order
from factory_ops.rules.models import ExecutionRecord
from factory_ops.rules.store import RecordStore
from factory_ops.snapshot import OperationalSnapshot, OrderSnapshot


NOW = datetime(2024, 3, 13, 12, 0, 0)  # a Wednesday


@pytest.fixture
def now():
    return NOW


@pytest.fixture(autouse=True)
def reset_config():
    """Each test starts from a fresh AutomationConfig (write enabled)."""
    config_module._config = None
    yield
    config_module._config = None


# ============ Database ============

@pytest.fixture
def db_engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session(db_engine):
    with Session(db_engine) as session:
        yield session


def make_order(order_id: str, deps=(), hours: Optional[float] = 8, status: str = "planned", **kwargs) -> Order:
    return Order(
        order_id=order_id,
        estimated_hours=hours,
        status=status,
        dependencies_json=json.dumps(list(deps)),
        **kwargs,
    )


@pytest.fixture
def seeded_orders(session):
    """
    A -> (none), B -> A, C -> A, D -> B, C.
    Durations A=4, B=6, C=2, D=3: critical path A, B, D (13h).
    """
    orders = [
        make_order("A", hours=4, status="in_production"),
        make_order("B", deps=["A"], hours=6),
        make_order("C", deps=["A"], hours=2),
        make_order("D", deps=["B", "C"], hours=3),
    ]
    session.add_all(orders)
    session.add_all([
        MachineRow(machine_id="M1", station="Cutting", operator_name="Ana", hours_per_week=40, production_hours=30, actual_hours=27),
        MachineRow(machine_id="M2", station="Welding", operator_name=None, hours_per_week=40, production_hours=30, actual_hours=18),
    ])
    session.commit()
    return orders


@pytest.fixture
def client(session):
    """FastAPI test client using the test session. Startup hooks are not run."""
    def override():
        yield session

    app.dependency_overrides[get_session] = override
    yield TestClient(app)
    app.dependency_overrides.clear()


# ============ In-memory record store ============

class InMemoryRecordStore(RecordStore):
    """Dict-backed RecordStore capturing every write for assertions."""

    def __init__(self, snapshot: Optional[OperationalSnapshot] = None):
        self.snapshot = snapshot or OperationalSnapshot()
        self.executions: List[ExecutionRecord] = []
        self.firings: Dict[str, int] = {}
        self.last_fired: Dict[str, datetime] = {}
        self.notifications: List[dict] = []
        self.inbox: List[dict] = []
        self.log_entries: List[dict] = []
        self.order_status = {o.order_id: o.status for o in self.snapshot.orders}
        self.planned_dates = {o.order_id: o.planned_date for o in self.snapshot.orders}
        self.operators = {m.machine_id: m.operator_name for m in self.snapshot.machines}
        self.reminders = {p.lot_number: p.reminder_sent for p in self.snapshot.products}
        self.standards = {(s.item_code, s.machine): s.standard_minutes for s in self.snapshot.standards}
        self.learning: Dict[tuple, dict] = {}

    def load_operational_snapshot(self):
        return self.snapshot

    def append_execution(self, record):
        self.executions.append(record)

    def record_firing(self, rule_id, fired_at):
        self.firings[rule_id] = self.firings.get(rule_id, 0) + 1
        self.last_fired[rule_id] = fired_at

    def add_notification(self, message, severity, recipients, data=None):
        self.notifications.append({"message": message, "severity": severity, "recipients": recipients, "data": data})
        return f"NTF-{len(self.notifications)}"

    def add_inbox_message(self, subject, content, kind, priority="normal", related_lot=None):
        self.inbox.append({
            "subject": subject, "content": content, "kind": kind,
            "priority": priority, "related_lot": related_lot,
        })
        return f"MSG-{len(self.inbox)}"

    def add_log_entry(self, event_type, message, data=None):
        self.log_entries.append({"event_type": event_type, "message": message, "data": data})
        return f"EVT-{len(self.log_entries)}"

    def _set(self, table, key, value, label):
        if key not in table:
            raise RecordNotFoundError(f"{label} {key} not found")
        if table[key] == value:
            return False
        table[key] = value
        return True

    def set_order_status(self, order_id, status):
        return self._set(self.order_status, order_id, status, "Order")

    def set_planned_date(self, order_id, planned_date):
        return self._set(self.planned_dates, order_id, planned_date, "Order")

    def assign_operator(self, machine_id, operator_name):
        return self._set(self.operators, machine_id, operator_name, "Machine")

    def mark_reminder_sent(self, lot_number):
        return self._set(self.reminders, lot_number, True, "Product")

    def set_standard_minutes(self, item_code, machine, standard_minutes, learning=None):
        changed = self._set(self.standards, (item_code, machine), standard_minutes, "Standard")
        if changed and learning is not None:
            self.learning[(item_code, machine)] = learning
        return changed


def snapshot_of(*orders: OrderSnapshot, **kwargs) -> OperationalSnapshot:
    return OperationalSnapshot(orders=tuple(orders), taken_at=NOW, **kwargs)


def order(order_id: str, *deps: str, hours: Optional[float] = 8, status: str = "planned", **kwargs) -> OrderSnapshot:
    return OrderSnapshot(order_id=order_id, dependencies=tuple(deps), estimated_hours=hours, status=status, **kwargs)


def hours_ago(n: float) -> datetime:
    return NOW - timedelta(hours=n)

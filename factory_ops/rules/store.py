"""
Contract between the rule engine and the record store that holds orders,
machines, rules and audit logs.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, List, Optional

from ..snapshot import OperationalSnapshot
from .models import ExecutionRecord


class RecordStore(ABC):
    """
    Point reads/writes the engine and its action handlers need.

    Every mutating method is set-to-value and returns whether the record
    actually changed, so handlers can report a no-op and are safe to retry.
    Implementations raise RecordStoreError on I/O failures and
    RecordNotFoundError for missing targets.
    """

    @abstractmethod
    def load_operational_snapshot(self) -> OperationalSnapshot:
        pass

    # ---------- audit / bookkeeping ----------

    @abstractmethod
    def append_execution(self, record: ExecutionRecord) -> None:
        pass

    @abstractmethod
    def record_firing(self, rule_id: str, fired_at: datetime) -> None:
        """executionCount += 1, lastExecuted = fired_at."""
        pass

    # ---------- messaging ----------

    @abstractmethod
    def add_notification(
        self,
        message: str,
        severity: str,
        recipients: List[str],
        data: Optional[Dict[str, Any]] = None,
    ) -> str:
        pass

    @abstractmethod
    def add_inbox_message(
        self,
        subject: str,
        content: str,
        kind: str,
        priority: str = "normal",
        related_lot: Optional[str] = None,
    ) -> str:
        pass

    @abstractmethod
    def add_log_entry(self, event_type: str, message: str, data: Optional[Dict[str, Any]] = None) -> str:
        pass

    # ---------- record mutations ----------

    @abstractmethod
    def set_order_status(self, order_id: str, status: str) -> bool:
        pass

    @abstractmethod
    def set_planned_date(self, order_id: str, planned_date: datetime) -> bool:
        pass

    @abstractmethod
    def assign_operator(self, machine_id: str, operator_name: str) -> bool:
        pass

    @abstractmethod
    def mark_reminder_sent(self, lot_number: str) -> bool:
        pass

    @abstractmethod
    def set_standard_minutes(
        self,
        item_code: str,
        machine: str,
        standard_minutes: float,
        learning: Optional[Dict[str, Any]] = None,
    ) -> bool:
        pass

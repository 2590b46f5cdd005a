from typing import Optional
from datetime import datetime
from sqlmodel import SQLModel, Field

from ..utils.helpers import utcnow


class AutomationRule(SQLModel, table=True):
    """
    Operator-configured "when X happens, then Y" rule.

    Fields:
        trigger_type / conditions_json: trigger kind and its JSON conditions
        action_type / params_json:      action kind and its JSON parameters
        debounce_minutes:               minimum spacing between two firings
        execution_count, last_executed: bookkeeping written after a firing;
                                        last_executed doubles as the debounce
                                        ledger (conditional updates only)
    """
    rule_id: str = Field(primary_key=True)
    name: str
    description: Optional[str] = None
    enabled: bool = True

    trigger_type: str
    conditions_json: str = "{}"
    action_type: str
    params_json: str = "{}"

    debounce_minutes: int = 60
    execution_count: int = 0
    last_executed: Optional[datetime] = None

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: Optional[datetime] = None


class RuleExecution(SQLModel, table=True):
    """Append-only audit entry for one rule firing (success) or failure (error)."""
    execution_id: str = Field(primary_key=True)
    rule_id: str = Field(index=True)
    rule_name: str
    status: str  # success | error
    message: str
    data_json: Optional[str] = None
    executed_at: datetime


class Notification(SQLModel, table=True):
    notification_id: str = Field(primary_key=True)
    message: str
    severity: str = "info"  # info, warning, critical, alert
    recipients_json: str = "[]"
    kind: str = "automation"
    status: str = "unread"
    data_json: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)


class InboxMessage(SQLModel, table=True):
    message_id: str = Field(primary_key=True)
    recipient: str = "admin"
    subject: str
    content: str
    sender: str = "Automation Engine"
    kind: str = "automation_alert"  # automation_alert, alert
    priority: str = "normal"  # normal | urgent
    related_lot: Optional[str] = None
    read: bool = False
    created_at: datetime = Field(default_factory=utcnow)

"""
Rule data models - trigger/action kinds, their typed parameter schemas and
evaluation results.
"""

import json
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Type

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel

from ..errors import RuleValidationError
from ..snapshot import OrderStatus


class TriggerType(str, Enum):
    """Condition kinds a rule can watch."""
    CAPACITY_SHORTAGE = "capacity_shortage"
    LOW_EFFICIENCY = "low_efficiency"
    ORDER_DELAY = "order_delay"
    MISSING_OPERATOR = "missing_operator"
    DEPENDENCY_BLOCKED = "dependency_blocked"
    INSPECTION_OVERDUE = "inspection_overdue"
    STANDARD_DEVIATION = "standard_deviation"
    ORDER_STATUS_CHANGE = "order_status_change"


class ActionType(str, Enum):
    """Side-effecting operations a rule can fire."""
    SEND_NOTIFICATION = "send_notification"
    CREATE_LOG = "create_log"
    UPDATE_STATUS = "update_status"
    ASSIGN_OPERATOR = "assign_operator"
    RESCHEDULE_ORDER = "reschedule_order"
    INSPECTION_REMINDER = "inspection_reminder"
    AUTO_LEARNING_UPDATE = "auto_learning_update"


class Severity(str, Enum):
    INFO = "info"
    WARNING = "warning"
    CRITICAL = "critical"
    ALERT = "alert"


# ============ Condition / parameter schemas ============

class RuleSchema(BaseModel):
    """Stored as camelCase JSON; unknown keys are rejected."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")

    def to_json_dict(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class CapacityShortageConditions(RuleSchema):
    threshold: float = Field(default=0, ge=0)  # hours


class LowEfficiencyConditions(RuleSchema):
    threshold: float = Field(default=80, ge=0, le=1000)  # percent


class OrderDelayConditions(RuleSchema):
    min_delayed_orders: int = Field(default=1, ge=1)


class MissingOperatorConditions(RuleSchema):
    threshold: int = Field(default=1, ge=1)


class DependencyBlockedConditions(RuleSchema):
    threshold: int = Field(default=1, ge=1)


class InspectionOverdueConditions(RuleSchema):
    days_overdue: int = Field(default=7, ge=0)
    station: Optional[str] = None


class StandardDeviationConditions(RuleSchema):
    min_samples: int = Field(default=5, ge=1)
    min_deviation: float = Field(default=5, ge=0)  # percent


class OrderStatusChangeConditions(RuleSchema):
    target_status: str = "in_production"
    order_id: Optional[str] = None


class SendNotificationParams(RuleSchema):
    message: Optional[str] = None
    severity: Optional[Severity] = None
    recipients: List[str] = Field(default_factory=list)


class CreateLogParams(RuleSchema):
    log_message: Optional[str] = None


class UpdateStatusParams(RuleSchema):
    target_status: OrderStatus = OrderStatus.IN_PRODUCTION
    order_id: Optional[str] = None


class AssignOperatorParams(RuleSchema):
    operator_name: str = Field(min_length=1)
    machine: Optional[str] = None
    order_id: Optional[str] = None


# One year ahead is the furthest a rule may push an order
MAX_DELAY_HOURS = 24 * 366


class RescheduleOrderParams(RuleSchema):
    order_id: Optional[str] = None
    planned_date: Optional[datetime] = None
    delay_hours: Optional[float] = Field(default=None, gt=0, le=MAX_DELAY_HOURS)

    @model_validator(mode="after")
    def _one_target(self) -> "RescheduleOrderParams":
        if (self.planned_date is None) == (self.delay_hours is None):
            raise ValueError("exactly one of plannedDate or delayHours is required")
        return self


class InspectionReminderParams(RuleSchema):
    pass


class AutoLearningUpdateParams(RuleSchema):
    learning_rate: float = Field(default=0.3, gt=0, le=1)
    dry_run: bool = True


TRIGGER_SCHEMAS: Dict[TriggerType, Type[RuleSchema]] = {
    TriggerType.CAPACITY_SHORTAGE: CapacityShortageConditions,
    TriggerType.LOW_EFFICIENCY: LowEfficiencyConditions,
    TriggerType.ORDER_DELAY: OrderDelayConditions,
    TriggerType.MISSING_OPERATOR: MissingOperatorConditions,
    TriggerType.DEPENDENCY_BLOCKED: DependencyBlockedConditions,
    TriggerType.INSPECTION_OVERDUE: InspectionOverdueConditions,
    TriggerType.STANDARD_DEVIATION: StandardDeviationConditions,
    TriggerType.ORDER_STATUS_CHANGE: OrderStatusChangeConditions,
}

ACTION_SCHEMAS: Dict[ActionType, Type[RuleSchema]] = {
    ActionType.SEND_NOTIFICATION: SendNotificationParams,
    ActionType.CREATE_LOG: CreateLogParams,
    ActionType.UPDATE_STATUS: UpdateStatusParams,
    ActionType.ASSIGN_OPERATOR: AssignOperatorParams,
    ActionType.RESCHEDULE_ORDER: RescheduleOrderParams,
    ActionType.INSPECTION_REMINDER: InspectionReminderParams,
    ActionType.AUTO_LEARNING_UPDATE: AutoLearningUpdateParams,
}


def _validate(schema: Type[RuleSchema], raw: Optional[Dict[str, Any]], label: str) -> RuleSchema:
    try:
        return schema.model_validate(raw or {})
    except PydanticValidationError as e:
        errors = [
            {"loc": list(err["loc"]), "msg": err["msg"], "type": err["type"]}
            for err in e.errors()
        ]
        raise RuleValidationError(f"Invalid {label}: {errors}", errors) from e


def parse_trigger_type(value: str) -> TriggerType:
    try:
        return TriggerType(value)
    except ValueError:
        raise RuleValidationError(f"Unknown trigger type: {value}") from None


def parse_action_type(value: str) -> ActionType:
    try:
        return ActionType(value)
    except ValueError:
        raise RuleValidationError(f"Unknown action type: {value}") from None


def parse_conditions(trigger_type: str, raw: Optional[Dict[str, Any]]) -> RuleSchema:
    kind = parse_trigger_type(trigger_type)
    return _validate(TRIGGER_SCHEMAS[kind], raw, f"conditions for {kind.value}")


def parse_params(action_type: str, raw: Optional[Dict[str, Any]]) -> RuleSchema:
    kind = parse_action_type(action_type)
    return _validate(ACTION_SCHEMAS[kind], raw, f"params for {kind.value}")


# ============ Rule definition ============

@dataclass
class RuleDefinition:
    """
    A validated automation rule.

    Built from a stored row (``from_record``) or an API payload
    (``from_payload``); both paths reject unknown kinds and malformed
    parameters with RuleValidationError.
    """
    rule_id: str
    name: str
    trigger_type: TriggerType
    conditions: RuleSchema
    action_type: ActionType
    params: RuleSchema
    enabled: bool = True
    debounce_minutes: int = 60
    execution_count: int = 0
    last_executed: Optional[datetime] = None
    description: Optional[str] = None

    @classmethod
    def from_payload(cls, rule_id: str, data: Dict[str, Any]) -> "RuleDefinition":
        trigger = data.get("trigger") or {}
        action = data.get("action") or {}
        if not data.get("name"):
            raise RuleValidationError("Rule name is required")
        debounce = data.get("debounceMinutes", data.get("debounce_minutes", 60))
        if isinstance(debounce, bool) or not isinstance(debounce, int) or debounce < 0:
            raise RuleValidationError("debounceMinutes must be a non-negative integer")
        trigger_type = parse_trigger_type(trigger.get("type", ""))
        action_type = parse_action_type(action.get("type", ""))
        return cls(
            rule_id=rule_id,
            name=data["name"],
            description=data.get("description"),
            trigger_type=trigger_type,
            conditions=parse_conditions(trigger_type.value, trigger.get("conditions")),
            action_type=action_type,
            params=parse_params(action_type.value, action.get("params")),
            enabled=bool(data.get("enabled", True)),
            debounce_minutes=debounce,
        )

    @classmethod
    def from_record(cls, record) -> "RuleDefinition":
        """Build from an AutomationRule row."""
        try:
            conditions = json.loads(record.conditions_json or "{}")
            params = json.loads(record.params_json or "{}")
        except json.JSONDecodeError as e:
            raise RuleValidationError(f"Rule {record.rule_id} has corrupt JSON: {e}") from e
        return cls(
            rule_id=record.rule_id,
            name=record.name,
            description=record.description,
            trigger_type=parse_trigger_type(record.trigger_type),
            conditions=parse_conditions(record.trigger_type, conditions),
            action_type=parse_action_type(record.action_type),
            params=parse_params(record.action_type, params),
            enabled=record.enabled,
            debounce_minutes=record.debounce_minutes,
            execution_count=record.execution_count,
            last_executed=record.last_executed,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.rule_id,
            "name": self.name,
            "description": self.description,
            "enabled": self.enabled,
            "trigger": {"type": self.trigger_type.value, "conditions": self.conditions.to_json_dict()},
            "action": {"type": self.action_type.value, "params": self.params.to_json_dict()},
            "debounceMinutes": self.debounce_minutes,
            "executionCount": self.execution_count,
            "lastExecuted": self.last_executed.isoformat() if self.last_executed else None,
        }


# ============ Results ============

@dataclass
class TriggerResult:
    triggered: bool
    message: str
    severity: Severity = Severity.INFO
    data: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "triggered": self.triggered,
            "message": self.message,
            "severity": self.severity.value,
            "data": self.data,
        }


class ActionOutcome(str, Enum):
    NOOP = "noop"        # nothing to do / already in the target state
    APPLIED = "applied"
    FAILED = "failed"


@dataclass
class ActionResult:
    outcome: ActionOutcome
    message: str
    data: Dict[str, Any] = field(default_factory=dict)

    @property
    def succeeded(self) -> bool:
        return self.outcome != ActionOutcome.FAILED

    def to_dict(self) -> Dict[str, Any]:
        return {"outcome": self.outcome.value, "message": self.message, "data": self.data}


class EvaluationOutcome(str, Enum):
    """What a rule test reports back to the operator."""
    SKIPPED = "skipped"              # condition held, suppressed by debounce
    NOT_TRIGGERED = "not_triggered"  # condition false
    TRIGGERED = "triggered"          # action ran, see action result
    ERROR = "error"


@dataclass
class RuleEvaluation:
    rule_id: str
    rule_name: str
    outcome: EvaluationOutcome
    message: str
    evaluated_at: datetime
    trigger: Optional[TriggerResult] = None
    action: Optional[ActionResult] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "rule_id": self.rule_id,
            "rule_name": self.rule_name,
            "outcome": self.outcome.value,
            "message": self.message,
            "evaluated_at": self.evaluated_at.isoformat(),
            "trigger": self.trigger.to_dict() if self.trigger else None,
            "action": self.action.to_dict() if self.action else None,
        }


class ExecutionStatus(str, Enum):
    SUCCESS = "success"
    ERROR = "error"


@dataclass(frozen=True)
class ExecutionRecord:
    """Immutable audit entry; appended, never updated."""
    rule_id: str
    rule_name: str
    status: ExecutionStatus
    message: str
    executed_at: datetime
    data: Optional[Dict[str, Any]] = None

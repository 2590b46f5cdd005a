"""
Automation rules: "when X happens, then do Y".
"""

from .models import (
    ActionOutcome,
    ActionResult,
    ActionType,
    EvaluationOutcome,
    ExecutionRecord,
    ExecutionStatus,
    RuleDefinition,
    RuleEvaluation,
    Severity,
    TriggerResult,
    TriggerType,
)
from .store import RecordStore
from .ledger import Claim, DebounceLedger, InMemoryDebounceLedger, SqlDebounceLedger
from .triggers import EvaluationContext, evaluate_trigger
from .actions import ActionContext, dispatch_action
from .engine import RuleEngine

__all__ = [
    "ActionOutcome",
    "ActionResult",
    "ActionType",
    "EvaluationOutcome",
    "ExecutionRecord",
    "ExecutionStatus",
    "RuleDefinition",
    "RuleEvaluation",
    "Severity",
    "TriggerResult",
    "TriggerType",
    "RecordStore",
    "Claim",
    "DebounceLedger",
    "InMemoryDebounceLedger",
    "SqlDebounceLedger",
    "EvaluationContext",
    "evaluate_trigger",
    "ActionContext",
    "dispatch_action",
    "RuleEngine",
]

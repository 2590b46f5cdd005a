# factory_ops/services/automation.py

"""
Automation rule management and evaluation passes over the SQL store.
"""

import json
import logging
import uuid
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from ..config import get_config
from ..errors import RecordNotFoundError, RecordStoreError, RuleValidationError
from ..models.automation import AutomationRule, RuleExecution
from ..rules import (
    EvaluationOutcome,
    RuleDefinition,
    RuleEngine,
    RuleEvaluation,
    SqlDebounceLedger,
)
from ..rules.engine import summarize
from ..utils.helpers import utcnow
from .event_logger import log_event
from .record_store import SqlRecordStore

logger = logging.getLogger(__name__)


# ---------- CRUD ----------

def _apply(record: AutomationRule, rule: RuleDefinition) -> AutomationRule:
    record.name = rule.name
    record.description = rule.description
    record.enabled = rule.enabled
    record.trigger_type = rule.trigger_type.value
    record.conditions_json = json.dumps(rule.conditions.to_json_dict())
    record.action_type = rule.action_type.value
    record.params_json = json.dumps(rule.params.to_json_dict())
    record.debounce_minutes = rule.debounce_minutes
    return record


def _get_record(session: Session, rule_id: str) -> AutomationRule:
    record = session.get(AutomationRule, rule_id)
    if record is None:
        raise RecordNotFoundError(f"Rule {rule_id} not found")
    return record


def list_rules(session: Session) -> List[Dict[str, Any]]:
    records = session.exec(select(AutomationRule).order_by(AutomationRule.created_at)).all()
    return [RuleDefinition.from_record(r).to_dict() for r in records]


def get_rule(session: Session, rule_id: str) -> RuleDefinition:
    return RuleDefinition.from_record(_get_record(session, rule_id))


def create_rule(session: Session, payload: Dict[str, Any]) -> Dict[str, Any]:
    """Validate and store a new rule. Raises RuleValidationError before writing."""
    payload = dict(payload)
    payload.setdefault("debounceMinutes", get_config().DEFAULT_DEBOUNCE_MINUTES)
    rule_id = payload.get("id") or f"RULE-{uuid.uuid4().hex[:12]}"
    if session.get(AutomationRule, rule_id) is not None:
        raise RuleValidationError(f"Rule {rule_id} already exists")
    rule = RuleDefinition.from_payload(rule_id, payload)

    record = _apply(AutomationRule(rule_id=rule_id, name=rule.name, trigger_type="", action_type=""), rule)
    session.add(record)
    log_event(session, "RULE_CREATED", f"Automation rule '{rule.name}' created")
    session.commit()
    logger.info("Rule created: %s (%s -> %s)", rule.name, rule.trigger_type.value, rule.action_type.value)
    return RuleDefinition.from_record(record).to_dict()


def update_rule(session: Session, rule_id: str, payload: Dict[str, Any]) -> Dict[str, Any]:
    """
    Replace a rule's definition. Fields missing from ``payload`` keep their
    stored value; bookkeeping (count, last execution) is never touched.
    """
    record = _get_record(session, rule_id)
    merged = RuleDefinition.from_record(record).to_dict()
    merged.update({k: v for k, v in payload.items() if k in merged})
    rule = RuleDefinition.from_payload(rule_id, merged)

    _apply(record, rule)
    record.updated_at = utcnow()
    session.add(record)
    session.commit()
    session.refresh(record)
    return RuleDefinition.from_record(record).to_dict()


def toggle_rule(session: Session, rule_id: str) -> Dict[str, Any]:
    record = _get_record(session, rule_id)
    record.enabled = not record.enabled
    record.updated_at = utcnow()
    session.add(record)
    session.commit()
    session.refresh(record)
    logger.info("Rule %s %s", rule_id, "enabled" if record.enabled else "disabled")
    return RuleDefinition.from_record(record).to_dict()


def delete_rule(session: Session, rule_id: str) -> None:
    record = _get_record(session, rule_id)
    session.delete(record)
    log_event(session, "RULE_DELETED", f"Automation rule '{record.name}' deleted")
    session.commit()


def import_default_rules(session: Session) -> Dict[str, Any]:
    """Store the built-in rule set, skipping rules whose name already exists."""
    from ..seed_data import DEFAULT_RULES

    existing = set(session.exec(select(AutomationRule.name)).all())
    created = []
    for payload in DEFAULT_RULES:
        if payload["name"] in existing:
            continue
        created.append(create_rule(session, payload)["id"])
    return {"imported": len(created), "rule_ids": created}


# ---------- evaluation ----------

def load_rules(session: Session) -> List[RuleDefinition]:
    """All stored rules; rows that no longer validate are logged and skipped."""
    rules = []
    try:
        records = session.exec(select(AutomationRule).order_by(AutomationRule.created_at)).all()
    except SQLAlchemyError as e:
        raise RecordStoreError(f"Failed to load rules: {e}") from e
    for record in records:
        try:
            rules.append(RuleDefinition.from_record(record))
        except RuleValidationError as e:
            logger.error("Skipping invalid rule %s: %s", record.rule_id, e)
    return rules


def build_engine(session: Session) -> RuleEngine:
    return RuleEngine(
        store=SqlRecordStore(session),
        ledger=SqlDebounceLedger(session),
        delay_policy=get_config().delay_policy,
    )


def evaluate_enabled_rules(session: Session, engine: Optional[RuleEngine] = None) -> Dict[str, Any]:
    """One evaluation pass over every enabled rule."""
    engine = engine or build_engine(session)
    rules = [r for r in load_rules(session) if r.enabled]

    try:
        snapshot = engine.store.load_operational_snapshot()
    except RecordStoreError as e:
        logger.error("Evaluation pass aborted, snapshot unavailable: %s", e)
        evaluations = engine.fail_pass(rules, e)
    else:
        evaluations = engine.evaluate_all(rules, snapshot)

    summary = summarize(evaluations)
    logger.info("Evaluation pass: %s", summary)
    return {
        "evaluated": len(evaluations),
        "summary": summary,
        "results": [ev.to_dict() for ev in evaluations],
    }


def test_rule(session: Session, rule_id: str, engine: Optional[RuleEngine] = None) -> Dict[str, Any]:
    """
    Evaluate one rule now, regardless of its enabled flag, through the same
    debounce path as a scheduled pass.
    """
    engine = engine or build_engine(session)
    rule = get_rule(session, rule_id)
    try:
        snapshot = engine.store.load_operational_snapshot()
    except RecordStoreError as e:
        logger.error("Rule test aborted, snapshot unavailable: %s", e)
        evaluation: RuleEvaluation = engine.fail(rule, e)
    else:
        evaluation = engine.evaluate(rule, snapshot)

    response = evaluation.to_dict()
    response["display"] = _display_message(evaluation)
    return response


def _display_message(evaluation: RuleEvaluation) -> str:
    if evaluation.outcome == EvaluationOutcome.SKIPPED:
        return f"Rule skipped: {evaluation.message}"
    if evaluation.outcome == EvaluationOutcome.NOT_TRIGGERED:
        return "Rule conditions not met"
    if evaluation.outcome == EvaluationOutcome.TRIGGERED:
        return f"Rule triggered: {evaluation.message}"
    return f"Rule failed: {evaluation.message}"


def list_executions(session: Session, rule_id: Optional[str] = None, limit: int = 50) -> List[Dict[str, Any]]:
    stmt = select(RuleExecution).order_by(RuleExecution.executed_at.desc())
    if rule_id:
        stmt = stmt.where(RuleExecution.rule_id == rule_id)
    rows = session.exec(stmt.limit(limit)).all()
    return [
        {
            "execution_id": r.execution_id,
            "rule_id": r.rule_id,
            "rule_name": r.rule_name,
            "status": r.status,
            "message": r.message,
            "data": json.loads(r.data_json) if r.data_json else None,
            "executed_at": r.executed_at.isoformat(),
        }
        for r in rows
    ]

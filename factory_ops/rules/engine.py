"""
Rule engine - evaluates rules against a snapshot and fires their actions.

Per rule and pass:

    trigger false               -> NOT_TRIGGERED, nothing written
    trigger true, debounced     -> SKIPPED, nothing written
    trigger true, claim won     -> dispatch action
        action ok / noop        -> TRIGGERED, success record, count + 1
        action failed / raised  -> ERROR, claim released, error record
        bookkeeping failed      -> ERROR, claim kept, error record

Rules are independent: one rule's failure never stops the others.
"""

import logging
from datetime import datetime, timedelta
from typing import Callable, Iterable, List, Optional

from ..config import DelayPolicy, is_write_enabled
from ..errors import ComputationError, FactoryOpsError, RecordStoreError
from ..snapshot import OperationalSnapshot
from ..utils.helpers import utcnow
from .actions import ActionContext, dispatch_action
from .ledger import DebounceLedger
from .models import (
    EvaluationOutcome,
    ExecutionRecord,
    ExecutionStatus,
    RuleDefinition,
    RuleEvaluation,
)
from .store import RecordStore
from .triggers import EvaluationContext, evaluate_trigger

logger = logging.getLogger(__name__)

DEBOUNCE_MESSAGE = "Skipped due to recent execution (debounce)"


class RuleEngine:

    def __init__(
        self,
        store: RecordStore,
        ledger: DebounceLedger,
        clock: Callable[[], datetime] = utcnow,
        delay_policy: Optional[DelayPolicy] = None,
        write_enabled: Optional[Callable[[], bool]] = None,
    ):
        self.store = store
        self.ledger = ledger
        self.clock = clock
        self.delay_policy = delay_policy or DelayPolicy()
        self.write_enabled = write_enabled or is_write_enabled

    def evaluate(
        self,
        rule: RuleDefinition,
        snapshot: OperationalSnapshot,
        now: Optional[datetime] = None,
    ) -> RuleEvaluation:
        now = now or self.clock()

        def result(outcome, message, trigger=None, action=None) -> RuleEvaluation:
            return RuleEvaluation(rule.rule_id, rule.name, outcome, message, now, trigger, action)

        context = EvaluationContext(now=now, delay_policy=self.delay_policy)
        try:
            trigger = evaluate_trigger(rule.trigger_type, rule.conditions, snapshot, context)
        except (ComputationError, ValueError) as e:
            logger.warning("Rule '%s' trigger failed: %s", rule.name, e)
            self._write_error(rule, f"Trigger evaluation failed: {e}", now)
            return result(EvaluationOutcome.ERROR, str(e))
        except Exception as e:
            logger.exception("Rule '%s' trigger raised", rule.name)
            self._write_error(rule, f"Trigger evaluation failed: {e}", now)
            return result(EvaluationOutcome.ERROR, str(e))

        if not trigger.triggered:
            return result(EvaluationOutcome.NOT_TRIGGERED, trigger.message, trigger)

        try:
            claim = self.ledger.claim(rule.rule_id, now, timedelta(minutes=rule.debounce_minutes))
        except FactoryOpsError as e:
            logger.error("Rule '%s' ledger unavailable: %s", rule.name, e)
            self._write_error(rule, f"Debounce ledger unavailable: {e}", now, trigger.data)
            return result(EvaluationOutcome.ERROR, f"Debounce ledger unavailable: {e}", trigger)
        if claim is None:
            logger.debug("Rule '%s' suppressed by debounce", rule.name)
            return result(EvaluationOutcome.SKIPPED, DEBOUNCE_MESSAGE, trigger)

        action_ctx = ActionContext(
            store=self.store,
            snapshot=snapshot,
            now=now,
            rule_name=rule.name,
            write_enabled=self.write_enabled(),
            delay_policy=self.delay_policy,
        )
        try:
            action = dispatch_action(rule.action_type, rule.params, trigger, action_ctx)
        except Exception as e:
            logger.exception("Rule '%s' action raised", rule.name)
            action = None
            failure = str(e) or type(e).__name__
        else:
            failure = None if action.succeeded else action.message

        if failure is not None:
            try:
                self.ledger.release(claim)
            except RecordStoreError as e:
                logger.error("Rule '%s' claim could not be released: %s", rule.name, e)
            self._write_error(rule, f"Action failed: {failure}", now, trigger.data)
            return result(EvaluationOutcome.ERROR, failure, trigger, action)

        # The action took effect, so the claim is kept even if bookkeeping fails
        try:
            self.store.append_execution(ExecutionRecord(
                rule_id=rule.rule_id,
                rule_name=rule.name,
                status=ExecutionStatus.SUCCESS,
                message=trigger.message,
                executed_at=now,
                data={"trigger": trigger.data, "action": action.to_dict()},
            ))
            self.store.record_firing(rule.rule_id, now)
        except RecordStoreError as e:
            logger.error("Rule '%s' fired but bookkeeping failed: %s", rule.name, e)
            self._write_error(rule, f"Bookkeeping failed: {e}", now, {"action": action.to_dict()})
            return result(EvaluationOutcome.ERROR, f"Bookkeeping failed: {e}", trigger, action)

        logger.info("Rule '%s' triggered: %s", rule.name, trigger.message)
        return result(EvaluationOutcome.TRIGGERED, action.message, trigger, action)

    def evaluate_all(
        self,
        rules: Iterable[RuleDefinition],
        snapshot: OperationalSnapshot,
    ) -> List[RuleEvaluation]:
        now = self.clock()
        return [self.evaluate(rule, snapshot, now) for rule in rules if rule.enabled]

    def fail_pass(self, rules: Iterable[RuleDefinition], error: Exception) -> List[RuleEvaluation]:
        """Record an error for every enabled rule when the snapshot could not be loaded."""
        now = self.clock()
        return [self.fail(rule, error, now) for rule in rules if rule.enabled]

    def fail(self, rule: RuleDefinition, error: Exception, now: Optional[datetime] = None) -> RuleEvaluation:
        """Record an error for one rule whose snapshot could not be loaded."""
        now = now or self.clock()
        self._write_error(rule, f"Snapshot unavailable: {error}", now)
        return RuleEvaluation(rule.rule_id, rule.name, EvaluationOutcome.ERROR, str(error), now)

    def _write_error(self, rule: RuleDefinition, message: str, now: datetime, data=None) -> None:
        try:
            self.store.append_execution(ExecutionRecord(
                rule_id=rule.rule_id,
                rule_name=rule.name,
                status=ExecutionStatus.ERROR,
                message=message,
                executed_at=now,
                data=data,
            ))
        except RecordStoreError as e:
            logger.error("Could not record error for rule '%s': %s", rule.name, e)


def summarize(evaluations: Iterable[RuleEvaluation]) -> dict:
    counts = {outcome.value: 0 for outcome in EvaluationOutcome}
    for ev in evaluations:
        counts[ev.outcome.value] += 1
    return counts

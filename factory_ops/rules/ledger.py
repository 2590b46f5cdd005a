"""
Debounce ledger - per-rule "last fired" timestamps with compare-and-swap.

A firing first *claims* the ledger (last_fired: previous -> now). Only one of
several concurrent evaluators can win the claim for a given previous value,
so a rule never fires twice inside its debounce window. A failed action
*releases* the claim (now -> previous) so the next pass may retry.
"""

import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Dict, Optional

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session

from ..errors import RecordNotFoundError, RecordStoreError
from ..models.automation import AutomationRule

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Claim:
    rule_id: str
    previous: Optional[datetime]
    claimed_at: datetime


def within_window(last_fired: Optional[datetime], now: datetime, window: timedelta) -> bool:
    """True if a firing at ``last_fired`` still suppresses a firing at ``now``."""
    if last_fired is None:
        return False
    return now - last_fired < window


class DebounceLedger(ABC):

    @abstractmethod
    def last_fired(self, rule_id: str) -> Optional[datetime]:
        pass

    @abstractmethod
    def compare_and_set(self, rule_id: str, expected: Optional[datetime], new: Optional[datetime]) -> bool:
        """Atomically set last_fired to ``new`` iff it currently equals ``expected``."""
        pass

    def claim(self, rule_id: str, now: datetime, window: timedelta) -> Optional[Claim]:
        """
        Reserve a firing slot for ``rule_id``.

        Returns None if the rule fired within ``window`` of ``now`` or another
        evaluator claimed it first.
        """
        previous = self.last_fired(rule_id)
        if within_window(previous, now, window):
            return None
        if not self.compare_and_set(rule_id, previous, now):
            logger.info("Rule %s claimed concurrently; suppressing this firing", rule_id)
            return None
        return Claim(rule_id=rule_id, previous=previous, claimed_at=now)

    def release(self, claim: Claim) -> bool:
        """Undo a claim whose action failed. No-op if someone fired since."""
        released = self.compare_and_set(claim.rule_id, claim.claimed_at, claim.previous)
        if not released:
            logger.warning("Could not release debounce claim for rule %s; ledger moved on", claim.rule_id)
        return released


class InMemoryDebounceLedger(DebounceLedger):
    """Process-local ledger, used by tests and single-process hosts."""

    def __init__(self, initial: Optional[Dict[str, datetime]] = None):
        self._last: Dict[str, Optional[datetime]] = dict(initial or {})
        self._lock = threading.Lock()

    def last_fired(self, rule_id: str) -> Optional[datetime]:
        with self._lock:
            return self._last.get(rule_id)

    def compare_and_set(self, rule_id, expected, new) -> bool:
        with self._lock:
            if self._last.get(rule_id) != expected:
                return False
            self._last[rule_id] = new
            return True


class SqlDebounceLedger(DebounceLedger):
    """
    Ledger backed by ``AutomationRule.last_executed``.

    The CAS is a single conditional UPDATE committed on its own, so it holds
    across processes sharing the database.
    """

    def __init__(self, session: Session):
        self.session = session

    def last_fired(self, rule_id: str) -> Optional[datetime]:
        try:
            rule = self.session.get(AutomationRule, rule_id)
            if rule is None:
                raise RecordNotFoundError(f"Rule {rule_id} not found")
            self.session.refresh(rule)
            return rule.last_executed
        except SQLAlchemyError as e:
            raise RecordStoreError(f"Failed to read ledger for rule {rule_id}: {e}") from e

    def compare_and_set(self, rule_id, expected, new) -> bool:
        if expected is None:
            matches = AutomationRule.last_executed.is_(None)
        else:
            matches = AutomationRule.last_executed == expected
        stmt = (
            update(AutomationRule)
            .where(AutomationRule.rule_id == rule_id, matches)
            .values(last_executed=new)
        )
        try:
            result = self.session.execute(stmt)
            self.session.commit()
        except SQLAlchemyError as e:
            self.session.rollback()
            raise RecordStoreError(f"Failed to update ledger for rule {rule_id}: {e}") from e
        self.session.expire_all()
        return result.rowcount == 1

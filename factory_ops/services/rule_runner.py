# factory_ops/services/rule_runner.py
"""
Background runner that evaluates enabled automation rules on an interval.
"""

import logging
import threading
from typing import Any, Dict, List, Optional

from sqlmodel import Session

from ..config import get_config
from ..database import engine
from ..utils.helpers import utcnow
from .automation import evaluate_enabled_rules

logger = logging.getLogger(__name__)

_thread: Optional[threading.Thread] = None
_stop_event = threading.Event()
_state: Dict[str, Any] = {"passes": 0, "last_pass": None, "interval_seconds": None}
_pass_log: List[Dict[str, Any]] = []  # In-memory log (limited size)
MAX_LOG_SIZE = 100


def run_pass() -> Dict[str, Any]:
    """Run one evaluation pass in its own session."""
    with Session(engine) as session:
        result = evaluate_enabled_rules(session)
    _record({"timestamp": utcnow().isoformat(), "summary": result["summary"]})
    return result


def _loop(interval_seconds: int):
    logger.info("Rule runner started with %ss interval", interval_seconds)
    while not _stop_event.is_set():
        try:
            run_pass()
        except Exception as e:
            logger.exception("Rule runner pass failed: %s", e)
            _record({"timestamp": utcnow().isoformat(), "error": str(e)})
        _stop_event.wait(interval_seconds)
    logger.info("Rule runner stopped after %s passes", _state["passes"])


def _record(entry: Dict[str, Any]):
    global _pass_log
    _state["passes"] += 1
    _state["last_pass"] = entry["timestamp"]
    _pass_log.append(entry)
    if len(_pass_log) > MAX_LOG_SIZE:
        _pass_log = _pass_log[-MAX_LOG_SIZE:]


def is_running() -> bool:
    return _thread is not None and _thread.is_alive()


def start_runner(interval: Optional[int] = None) -> Dict[str, Any]:
    global _thread

    if is_running():
        return {"status": "already_running", "interval_seconds": _state["interval_seconds"]}

    interval = interval or get_config().EVALUATION_INTERVAL_SECONDS
    _stop_event.clear()
    _state["interval_seconds"] = interval
    _thread = threading.Thread(target=_loop, args=(interval,), daemon=True, name="rule-runner")
    _thread.start()
    return {"status": "started", "interval_seconds": interval}


def stop_runner() -> Dict[str, Any]:
    if not is_running():
        return {"status": "not_running"}
    # Thread exits at its next wake-up
    _stop_event.set()
    return {"status": "stopped", "passes_completed": _state["passes"]}


def get_status() -> Dict[str, Any]:
    return {
        "running": is_running(),
        "interval_seconds": _state["interval_seconds"],
        "passes_completed": _state["passes"],
        "last_pass": _state["last_pass"],
        "recent": list(reversed(_pass_log[-10:])),
    }

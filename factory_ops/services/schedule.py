# factory_ops/services/schedule.py

import json
import logging
import threading
from typing import Any, Dict, List

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session

from ..config import get_config
from ..errors import (
    ConcurrentUpdateError,
    DanglingDependencyError,
    RecordStoreError,
    UnknownOrderError,
)
from ..models.master import Order
from ..scheduling import DependencyGraph, blocked_orders, compute_schedule
from .event_logger import log_event
from .record_store import load_order_snapshots, parse_dependencies

logger = logging.getLogger(__name__)

# Serializes check-then-write of dependency edges inside this process;
# the version column catches writers in other processes.
_dependency_lock = threading.Lock()


def compute_order_schedule(session: Session) -> Dict[str, Any]:
    """
    Critical-path schedule over all orders in the store.
    Raises NotADagError if the stored dependencies contain a cycle.
    """
    config = get_config()
    orders = load_order_snapshots(session)
    result = compute_schedule(
        orders,
        default_duration=config.DEFAULT_DURATION_HOURS,
        tolerance=config.CRITICAL_SLACK_TOLERANCE,
    )
    return result.to_dict()


def get_blocked_orders(session: Session) -> List[Dict[str, Any]]:
    orders = load_order_snapshots(session)
    return [
        {"order_id": o.order_id, "status": o.status, "dependencies": list(o.dependencies)}
        for o in blocked_orders(orders)
    ]


def _write_dependencies(session: Session, order: Order, deps: List[str]) -> None:
    """Conditional write on ``version``; a concurrent writer makes rowcount 0."""
    stmt = (
        update(Order)
        .where(Order.order_id == order.order_id, Order.version == order.version)
        .values(dependencies_json=json.dumps(deps), version=order.version + 1)
    )
    try:
        result = session.execute(stmt)
        if result.rowcount != 1:
            session.rollback()
            raise ConcurrentUpdateError(
                f"Order {order.order_id} was modified concurrently; retry the request"
            )
        session.commit()
    except SQLAlchemyError as e:
        session.rollback()
        raise RecordStoreError(f"Failed to update dependencies of {order.order_id}: {e}") from e
    session.expire_all()


def add_order_dependency(session: Session, order_id: str, dependency_id: str) -> Dict[str, Any]:
    """
    Make ``order_id`` wait on ``dependency_id``.

    Rejects unknown orders, dangling ids and any edge that would close a
    cycle; nothing is written in those cases. Adding an existing edge is a
    no-op.
    """
    with _dependency_lock:
        order = session.get(Order, order_id)
        if order is None:
            raise UnknownOrderError(order_id)
        if session.get(Order, dependency_id) is None:
            raise DanglingDependencyError(order_id, dependency_id)

        deps = parse_dependencies(order)
        if dependency_id in deps:
            return {"order_id": order_id, "dependencies": deps, "changed": False}

        graph = DependencyGraph.from_orders(load_order_snapshots(session))
        graph.add_dependency(order_id, dependency_id)  # raises CyclicDependencyError

        new_deps = deps + [dependency_id]
        _write_dependencies(session, order, new_deps)
        log_event(session, "DEPENDENCY_ADDED", f"{order_id} now depends on {dependency_id}")
        session.commit()

    logger.info("Dependency added: %s -> %s", order_id, dependency_id)
    return {"order_id": order_id, "dependencies": new_deps, "changed": True}


def remove_order_dependency(session: Session, order_id: str, dependency_id: str) -> Dict[str, Any]:
    with _dependency_lock:
        order = session.get(Order, order_id)
        if order is None:
            raise UnknownOrderError(order_id)

        deps = parse_dependencies(order)
        if dependency_id not in deps:
            return {"order_id": order_id, "dependencies": deps, "changed": False}

        new_deps = [d for d in deps if d != dependency_id]
        _write_dependencies(session, order, new_deps)
        log_event(session, "DEPENDENCY_REMOVED", f"{order_id} no longer depends on {dependency_id}")
        session.commit()

    logger.info("Dependency removed: %s -> %s", order_id, dependency_id)
    return {"order_id": order_id, "dependencies": new_deps, "changed": True}

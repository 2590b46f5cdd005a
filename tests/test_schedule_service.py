"""
Tests for the dependency/schedule service over the SQL store.
"""

import json
import threading

import pytest
from sqlmodel import Session, SQLModel, create_engine, select

from factory_ops.errors import (
    ConcurrentUpdateError,
    CyclicDependencyError,
    DanglingDependencyError,
    NotADagError,
    UnknownOrderError,
)
from factory_ops.models.master import Order
from factory_ops.models.planning import Event
from factory_ops.scheduling import DependencyGraph
from factory_ops.services import schedule as schedule_service
from factory_ops.services.record_store import load_order_snapshots

from conftest import make_order


def deps_of(session, order_id):
    session.expire_all()
    return json.loads(session.get(Order, order_id).dependencies_json)


class TestComputeOrderSchedule:

    def test_schedule_from_store(self, session, seeded_orders):
        result = schedule_service.compute_order_schedule(session)
        assert result["critical_path"] == ["A", "B", "D"]
        assert result["project_end"] == 13
        assert result["orders"]["C"]["slack"] == 4

    def test_cyclic_store_raises(self, session):
        session.add_all([make_order("A", deps=["B"]), make_order("B", deps=["A"])])
        session.commit()
        with pytest.raises(NotADagError):
            schedule_service.compute_order_schedule(session)


class TestAddDependency:

    def test_adds_edge_and_bumps_version(self, session, seeded_orders):
        result = schedule_service.add_order_dependency(session, "C", "B")
        assert result["changed"] is True
        assert deps_of(session, "C") == ["A", "B"]
        assert session.get(Order, "C").version == 1

    def test_logs_event(self, session, seeded_orders):
        schedule_service.add_order_dependency(session, "C", "B")
        events = session.exec(select(Event)).all()
        assert any(e.event_type == "DEPENDENCY_ADDED" for e in events)

    def test_existing_edge_is_noop(self, session, seeded_orders):
        result = schedule_service.add_order_dependency(session, "B", "A")
        assert result["changed"] is False
        assert session.get(Order, "B").version == 0

    def test_cycle_rejected_nothing_written(self, session, seeded_orders):
        with pytest.raises(CyclicDependencyError) as exc:
            schedule_service.add_order_dependency(session, "A", "D")
        assert exc.value.path[0] == "A" and exc.value.path[-1] == "A"
        assert deps_of(session, "A") == []

    def test_self_dependency_rejected(self, session, seeded_orders):
        with pytest.raises(CyclicDependencyError):
            schedule_service.add_order_dependency(session, "B", "B")

    def test_unknown_order(self, session, seeded_orders):
        with pytest.raises(UnknownOrderError):
            schedule_service.add_order_dependency(session, "GHOST", "A")

    def test_dangling_dependency(self, session, seeded_orders):
        with pytest.raises(DanglingDependencyError):
            schedule_service.add_order_dependency(session, "A", "GHOST")
        assert deps_of(session, "A") == []


class TestRemoveDependency:

    def test_removes_edge(self, session, seeded_orders):
        result = schedule_service.remove_order_dependency(session, "D", "C")
        assert result["changed"] is True
        assert deps_of(session, "D") == ["B"]

    def test_missing_edge_is_noop(self, session, seeded_orders):
        assert schedule_service.remove_order_dependency(session, "A", "B")["changed"] is False


class TestBlockedOrders:

    def test_blocked_orders(self, session, seeded_orders):
        blocked = {b["order_id"] for b in schedule_service.get_blocked_orders(session)}
        # A is in production (not terminal), so B and C wait; D waits on B and C
        assert blocked == {"B", "C", "D"}


class TestConcurrentWrites:

    def test_stale_version_is_rejected(self, session, seeded_orders):
        schedule_service.add_order_dependency(session, "C", "B")
        # A writer that read C before the edge above was added
        stale = make_order("C", deps=["A"])
        with pytest.raises(ConcurrentUpdateError):
            schedule_service._write_dependencies(session, stale, ["A", "D"])
        assert deps_of(session, "C") == ["A", "B"]
        assert session.get(Order, "C").version == 1

    def test_opposite_edges_in_parallel_never_both_commit(self, tmp_path):
        engine = create_engine(
            f"sqlite:///{tmp_path / 'orders.db'}",
            connect_args={"check_same_thread": False},
        )
        SQLModel.metadata.create_all(engine)
        with Session(engine) as setup:
            setup.add_all([make_order("P"), make_order("Q")])
            setup.commit()

        barrier = threading.Barrier(2)
        outcomes = {}

        def add(order_id, dependency_id):
            with Session(engine) as worker:
                barrier.wait()
                try:
                    schedule_service.add_order_dependency(worker, order_id, dependency_id)
                    outcomes[order_id] = "added"
                except (CyclicDependencyError, ConcurrentUpdateError):
                    outcomes[order_id] = "rejected"

        threads = [
            threading.Thread(target=add, args=("P", "Q")),
            threading.Thread(target=add, args=("Q", "P")),
        ]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=10)

        assert sorted(outcomes.values()) == ["added", "rejected"]
        with Session(engine) as check:
            graph = DependencyGraph.from_orders(load_order_snapshots(check))
            assert graph.find_cycle() is None
        engine.dispose()

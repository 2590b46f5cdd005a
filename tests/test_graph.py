"""
Tests for the order dependency graph.
"""

import random

import pytest

from factory_ops.errors import CyclicDependencyError, NotADagError
from factory_ops.scheduling import DependencyGraph, blocked_orders, would_create_cycle

from conftest import order


class TestWouldCreateCycle:

    def test_self_dependency_is_always_a_cycle(self):
        orders = [order("A"), order("B", "A")]
        assert would_create_cycle(orders, "A", "A") is True
        assert would_create_cycle(orders, "B", "B") is True
        # Also for an order the graph has never seen
        assert would_create_cycle(orders, "Z", "Z") is True

    def test_direct_back_edge(self):
        orders = [order("A"), order("B", "A")]
        assert would_create_cycle(orders, "A", "B") is True

    def test_transitive_back_edge(self):
        orders = [order("A"), order("B", "A"), order("C", "B")]
        assert would_create_cycle(orders, "A", "C") is True

    def test_forward_and_parallel_edges_are_fine(self):
        orders = [order("A"), order("B", "A"), order("C", "B")]
        assert would_create_cycle(orders, "C", "A") is False
        assert would_create_cycle(orders, "D", "C") is False

    def test_unknown_dependency_does_not_cycle(self):
        orders = [order("A")]
        assert would_create_cycle(orders, "A", "GHOST") is False

    def test_terminates_on_already_cyclic_data(self):
        # Stored data that skipped write-time validation
        orders = [order("A", "B"), order("B", "A"), order("C")]
        assert would_create_cycle(orders, "C", "A") is False
        assert would_create_cycle(orders, "A", "C") is False

    def test_deep_chain_has_no_recursion_limit(self):
        n = 5000
        orders = [order("O0")] + [order(f"O{i}", f"O{i - 1}") for i in range(1, n)]
        assert would_create_cycle(orders, "O0", f"O{n - 1}") is True


class TestAddRemoveDependency:

    def test_add_dependency_links_both_directions(self):
        graph = DependencyGraph.from_orders([order("A"), order("B")])
        graph.add_dependency("B", "A")
        assert graph.dependencies_of("B") == ["A"]
        assert graph.successors_of("A") == {"B"}

    def test_cycle_is_rejected_with_path_and_graph_unchanged(self):
        graph = DependencyGraph.from_orders([order("A"), order("B", "A"), order("C", "B")])
        with pytest.raises(CyclicDependencyError) as exc:
            graph.add_dependency("A", "C")
        assert exc.value.path == ["A", "C", "B", "A"]
        assert graph.dependencies_of("A") == []

    def test_existing_edge_is_a_noop(self):
        graph = DependencyGraph.from_orders([order("A"), order("B", "A")])
        graph.add_dependency("B", "A")
        assert graph.dependencies_of("B") == ["A"]

    def test_remove_dependency(self):
        graph = DependencyGraph.from_orders([order("A"), order("B", "A")])
        graph.remove_dependency("B", "A")
        assert graph.dependencies_of("B") == []
        assert graph.successors_of("A") == set()
        # Removing again is harmless
        graph.remove_dependency("B", "A")


class TestAcyclicity:

    @pytest.mark.parametrize("seed", range(25))
    def test_guarded_random_insertions_never_commit_a_cycle(self, seed):
        rng = random.Random(seed)
        ids = [f"O{i}" for i in range(12)]
        graph = DependencyGraph.from_orders(order(i) for i in ids)

        for _ in range(80):
            a, b = rng.choice(ids), rng.choice(ids)
            if graph.would_create_cycle(a, b):
                with pytest.raises(CyclicDependencyError):
                    graph.add_dependency(a, b)
            else:
                graph.add_dependency(a, b)
            assert graph.find_cycle() is None

        # Still schedulable
        assert len(graph.topological_order()) == len(ids)


class TestTopology:

    def test_topological_order_puts_dependencies_first(self):
        graph = DependencyGraph.from_orders([order("D", "B", "C"), order("B", "A"), order("C", "A"), order("A")])
        topo = graph.topological_order()
        assert topo.index("A") < topo.index("B") < topo.index("D")
        assert topo.index("C") < topo.index("D")

    def test_cycle_raises_not_a_dag(self):
        graph = DependencyGraph.from_orders([order("A", "C"), order("B", "A"), order("C", "B"), order("X")])
        with pytest.raises(NotADagError) as exc:
            graph.topological_order()
        cycle = exc.value.cycle
        assert cycle[0] == cycle[-1]
        assert set(cycle) == {"A", "B", "C"}

    def test_dangling_dependencies_are_reported(self):
        graph = DependencyGraph.from_orders([order("A", "GHOST"), order("B", "A")])
        assert graph.dangling_dependencies() == {"A": ["GHOST"]}
        assert graph.topological_order() == ["A", "B"]


class TestBlockedOrders:

    def test_blocked_until_dependency_is_terminal(self):
        orders = [order("X", "Y"), order("Y", status="planned"), order("Z")]
        assert [o.order_id for o in blocked_orders(orders)] == ["X"]

        orders = [order("X", "Y"), order("Y", status="shipped"), order("Z")]
        assert blocked_orders(orders) == []

    def test_terminal_orders_are_never_blocked(self):
        orders = [order("X", "Y", status="shipped"), order("Y")]
        assert blocked_orders(orders) == []

    def test_missing_dependency_blocks(self):
        orders = [order("X", "GHOST")]
        assert [o.order_id for o in blocked_orders(orders)] == ["X"]

    def test_legacy_completed_status_counts_as_terminal(self):
        orders = [order("X", "Y"), order("Y", status="completed")]
        assert blocked_orders(orders) == []

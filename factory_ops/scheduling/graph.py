"""
Precedence graph over production orders.

An edge ``A -> B`` means "order A depends on order B": B must reach a
terminal status before A may start. The graph is built from a snapshot and
never trusts that write-time validation ran, so every traversal carries a
visited set and is iterative.
"""

import logging
from collections import deque
from typing import Dict, Iterable, List, Optional, Set

from ..errors import CyclicDependencyError, NotADagError
from ..snapshot import OrderSnapshot, is_terminal

logger = logging.getLogger(__name__)


class DependencyGraph:
    """Directed graph of order dependencies."""

    def __init__(self):
        self._depends_on: Dict[str, List[str]] = {}
        self._depended_by: Dict[str, Set[str]] = {}

    @classmethod
    def from_orders(cls, orders: Iterable[OrderSnapshot]) -> "DependencyGraph":
        graph = cls()
        orders = list(orders)
        for order in orders:
            graph.add_order(order.order_id)
        for order in orders:
            for dep in order.dependencies:
                graph._link(order.order_id, dep)
        return graph

    # ---------- structure ----------

    def add_order(self, order_id: str) -> None:
        self._depends_on.setdefault(order_id, [])
        self._depended_by.setdefault(order_id, set())

    def _link(self, order_id: str, dependency_id: str) -> None:
        deps = self._depends_on.setdefault(order_id, [])
        if dependency_id not in deps:
            deps.append(dependency_id)
        self._depended_by.setdefault(dependency_id, set()).add(order_id)

    def contains(self, order_id: str) -> bool:
        return order_id in self._depends_on

    @property
    def order_ids(self) -> List[str]:
        return list(self._depends_on)

    def dependencies_of(self, order_id: str) -> List[str]:
        """Orders this order directly waits on (may include unknown ids)."""
        return list(self._depends_on.get(order_id, []))

    def successors_of(self, order_id: str) -> Set[str]:
        """Known orders that directly depend on this order."""
        return {s for s in self._depended_by.get(order_id, set()) if s in self._depends_on}

    def dangling_dependencies(self) -> Dict[str, List[str]]:
        """Dependency ids that point at orders missing from the snapshot."""
        dangling: Dict[str, List[str]] = {}
        for order_id, deps in self._depends_on.items():
            missing = [d for d in deps if d not in self._depends_on]
            if missing:
                dangling[order_id] = missing
        return dangling

    # ---------- cycle checks ----------

    def find_path(self, start: str, target: str) -> Optional[List[str]]:
        """
        Follow dependency edges from ``start`` looking for ``target``.
        Returns the path ``[start, ..., target]`` or None.
        """
        if start == target:
            return [start]
        parents: Dict[str, str] = {}
        visited = {start}
        stack = [start]
        while stack:
            current = stack.pop()
            for dep in self._depends_on.get(current, []):
                if dep in visited:
                    continue
                visited.add(dep)
                parents[dep] = current
                if dep == target:
                    path = [dep]
                    while path[-1] != start:
                        path.append(parents[path[-1]])
                    return list(reversed(path))
                stack.append(dep)
        return None

    def would_create_cycle(self, order_id: str, new_dependency_id: str) -> bool:
        """
        True iff adding ``order_id -> new_dependency_id`` makes the graph
        cyclic, i.e. ``order_id`` is reachable from ``new_dependency_id``.

        An unknown ``new_dependency_id`` has nothing to traverse and yields
        False; rejecting dangling references is the writer's job.
        """
        if order_id == new_dependency_id:
            return True
        return self.find_path(new_dependency_id, order_id) is not None

    def add_dependency(self, order_id: str, dependency_id: str) -> None:
        """Add an edge after certifying it keeps the graph acyclic."""
        if dependency_id in self._depends_on.get(order_id, []):
            return
        path = self.find_path(dependency_id, order_id)
        if order_id == dependency_id or path is not None:
            raise CyclicDependencyError(order_id, dependency_id, [order_id] + (path or [order_id]))
        self.add_order(order_id)
        self._link(order_id, dependency_id)

    def remove_dependency(self, order_id: str, dependency_id: str) -> None:
        deps = self._depends_on.get(order_id)
        if deps and dependency_id in deps:
            deps.remove(dependency_id)
            self._depended_by.get(dependency_id, set()).discard(order_id)

    def find_cycle(self) -> Optional[List[str]]:
        """Return one cycle as a path ``[a, b, ..., a]``, or None for a DAG."""
        WHITE, GREY, BLACK = 0, 1, 2
        color = {node: WHITE for node in self._depends_on}

        for root in self._depends_on:
            if color[root] != WHITE:
                continue
            stack = [(root, iter(self._depends_on[root]))]
            path = [root]
            color[root] = GREY
            while stack:
                node, children = stack[-1]
                advanced = False
                for dep in children:
                    if dep not in color:
                        continue  # dangling
                    if color[dep] == GREY:
                        return path[path.index(dep):] + [dep]
                    if color[dep] == WHITE:
                        color[dep] = GREY
                        stack.append((dep, iter(self._depends_on[dep])))
                        path.append(dep)
                        advanced = True
                        break
                if not advanced:
                    color[node] = BLACK
                    stack.pop()
                    path.pop()
        return None

    def topological_order(self) -> List[str]:
        """Dependencies first (Kahn). Raises NotADagError on a cycle."""
        in_degree = {
            node: sum(1 for d in deps if d in self._depends_on)
            for node, deps in self._depends_on.items()
        }
        queue = deque(node for node, degree in in_degree.items() if degree == 0)
        order: List[str] = []

        while queue:
            node = queue.popleft()
            order.append(node)
            for successor in sorted(self.successors_of(node)):
                in_degree[successor] -= 1
                if in_degree[successor] == 0:
                    queue.append(successor)

        if len(order) != len(self._depends_on):
            cycle = self.find_cycle() or sorted(n for n, d in in_degree.items() if d > 0)
            raise NotADagError(cycle)
        return order


def would_create_cycle(orders: Iterable[OrderSnapshot], order_id: str, new_dependency_id: str) -> bool:
    """Convenience wrapper over a freshly built graph."""
    return DependencyGraph.from_orders(orders).would_create_cycle(order_id, new_dependency_id)


def blocked_orders(orders: Iterable[OrderSnapshot]) -> List[OrderSnapshot]:
    """
    Non-terminal orders with at least one dependency that is missing from the
    snapshot or not yet terminal.
    """
    orders = list(orders)
    by_id = {o.order_id: o for o in orders}
    blocked = []
    for order in orders:
        if not order.dependencies or order.is_terminal:
            continue
        all_done = all(
            dep in by_id and is_terminal(by_id[dep].status) for dep in order.dependencies
        )
        if not all_done:
            blocked.append(order)
    return blocked

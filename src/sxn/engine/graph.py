"""RuleGraph: dependency DAG over the rules of one config.

Built fresh for each validate/apply call and never persisted. Edges run
from a dependency to its dependent, so waves are the topological
generations of the graph.
"""

from __future__ import annotations

from collections.abc import Iterable

import networkx as nx

from sxn.domain.specs import RuleSpec

# DFS colours for cycle detection.
_WHITE, _GRAY, _BLACK = 0, 1, 2


class RuleGraph:
    """Directed graph of rule specs keyed by rule name.

    Dependencies naming rules that are not in *specs* are kept on the spec
    but produce no edge; :meth:`unknown_dependencies` reports them.
    """

    def __init__(self, specs: Iterable[RuleSpec]) -> None:
        self._specs = sorted(specs, key=lambda s: s.position)
        self._by_name = {spec.name: spec for spec in self._specs}
        self._position = {spec.name: i for i, spec in enumerate(self._specs)}

        self._graph: nx.DiGraph = nx.DiGraph()
        for spec in self._specs:
            self._graph.add_node(spec.name, spec=spec)
        for spec in self._specs:
            for dep in spec.dependencies:
                if dep in self._by_name:
                    self._graph.add_edge(dep, spec.name)

    @property
    def specs(self) -> list[RuleSpec]:
        """Specs in config insertion order."""
        return list(self._specs)

    def __contains__(self, name: object) -> bool:
        return name in self._by_name

    def __len__(self) -> int:
        return len(self._specs)

    def spec(self, name: str) -> RuleSpec:
        return self._by_name[name]

    def dependencies(self, name: str) -> list[str]:
        """Known dependencies of *name*, in declared order, without duplicates."""
        return [d for d in dict.fromkeys(self._by_name[name].dependencies) if d in self._by_name]

    def dependents(self, name: str) -> list[str]:
        return sorted(self._graph.successors(name), key=self._position.__getitem__)

    def unknown_dependencies(self) -> list[tuple[str, str]]:
        """``(rule, dependency)`` pairs naming rules that do not exist."""
        return [
            (spec.name, dep)
            for spec in self._specs
            for dep in spec.dependencies
            if dep not in self._by_name
        ]

    def find_cycle(self) -> list[str] | None:
        """Return a dependency cycle as a closed path, or None.

        Iterative DFS with an explicit stack and one colour per rule
        position. The path follows dependencies: ``["a", "b", "a"]`` means
        a depends on b, which depends on a.
        """
        deps = [[self._position[d] for d in self.dependencies(s.name)] for s in self._specs]
        color = [_WHITE] * len(self._specs)

        for root in range(len(self._specs)):
            if color[root] != _WHITE:
                continue
            color[root] = _GRAY
            path = [root]
            stack = [iter(deps[root])]
            while stack:
                nxt = next(stack[-1], None)
                if nxt is None:
                    color[path.pop()] = _BLACK
                    stack.pop()
                elif color[nxt] == _GRAY:
                    cycle = [*path[path.index(nxt) :], nxt]
                    return [self._specs[i].name for i in cycle]
                elif color[nxt] == _WHITE:
                    color[nxt] = _GRAY
                    path.append(nxt)
                    stack.append(iter(deps[nxt]))
        return None

    def compute_waves(self) -> list[list[str]]:
        """Group rules into maximal waves, each ordered by config position.

        Every dependency of a rule in wave *k* is in a wave before *k*.

        Raises:
            ValueError: If the graph has a cycle.
        """
        try:
            generations = list(nx.topological_generations(self._graph))
        except nx.NetworkXUnfeasible as exc:
            msg = "Cannot compute waves for a cyclic rule graph"
            raise ValueError(msg) from exc
        return [sorted(wave, key=self._position.__getitem__) for wave in generations]

    def execution_order(self) -> list[str]:
        """Flattened waves: the order a sequential run applies rules in."""
        return [name for wave in self.compute_waves() for name in wave]


def format_cycle(cycle: list[str]) -> str:
    return "Circular dependency detected: " + " -> ".join(cycle)

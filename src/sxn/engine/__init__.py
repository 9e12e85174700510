"""Rules engine: dependency graph, wave executor, rollback and facade."""

from sxn.engine.engine import RulesEngine
from sxn.engine.graph import RuleGraph

__all__ = ["RuleGraph", "RulesEngine"]

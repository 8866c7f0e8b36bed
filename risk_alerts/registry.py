"""Registry for discovering and executing risk rules."""
from __future__ import annotations

from collections.abc import Callable, Iterable
from typing import Dict, Type

from .features import PreparedSignals
from .models import AnalysisContext, RiskFinding
from .rule_base import RiskRule


class RuleRegistry:
    """Keeps track of available rules by id."""

    def __init__(self) -> None:
        self._rules: Dict[str, RiskRule] = {}

    def register(self, rule_cls: Type[RiskRule]) -> Type[RiskRule]:
        if rule_cls.id in self._rules:
            raise ValueError(f"Rule '{rule_cls.id}' already registered")
        self._rules[rule_cls.id] = rule_cls()
        return rule_cls

    def clear(self) -> None:
        """Remove all registered rules."""

        self._rules.clear()

    def get(self, rule_id: str) -> RiskRule:
        return self._rules[rule_id]

    def items(self) -> Iterable[tuple[str, RiskRule]]:
        return self._rules.items()

    def __len__(self) -> int:
        return len(self._rules)

    def evaluate_all(
        self,
        signals: PreparedSignals,
        context: AnalysisContext,
        predicate: Callable[[RiskRule], bool] | None = None,
    ) -> list[RiskFinding]:
        """Run every registered rule in id order, optionally filtering."""

        outputs: list[RiskFinding] = []
        for rule_id in sorted(self._rules):
            rule = self._rules[rule_id]
            if predicate is not None and not predicate(rule):
                continue
            if not rule.applies_to(context):
                continue
            outputs.extend(rule.evaluate(signals, context))
        return outputs


registry = RuleRegistry()


def register_rule(rule_cls: Type[RiskRule]) -> Type[RiskRule]:
    """Decorator for registering a rule at definition time."""

    return registry.register(rule_cls)

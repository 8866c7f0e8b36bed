"""Pure risk analysis over a signal snapshot."""
from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any, Mapping

from . import rules as _rules  # noqa: F401 - ensure rule registration side-effects
from .config import thresholds_from_env
from .features import prepare_signals
from .models import AnalysisContext, PatientProfile, RiskFinding, SignalHistory
from .registry import RuleRegistry, registry as default_registry
from .rule_base import RiskRule

logger = logging.getLogger(__name__)

_CONTAINERS = ("readings", "meals", "activities", "insulin_doses")


def finding_sort_key(finding: RiskFinding) -> tuple[int, float, str]:
    """Critical first, then most recent evidence, then kind name."""

    return (-finding.severity.rank, -finding.observed_at.timestamp(), finding.kind.value)


class RiskAnalyzer:
    """Derives candidate findings from ``(history, profile)``.

    The analyzer holds no per-patient state: the same inputs always produce the
    same ordered list. Usage::

        analyzer = RiskAnalyzer()
        findings = analyzer.analyze(history, profile)
    """

    def __init__(
        self,
        registry: RuleRegistry | None = None,
        *,
        thresholds: Mapping[str, Any] | None = None,
        rule_settings: Mapping[str, Mapping[str, Any]] | None = None,
        rule_filter: Callable[[RiskRule], bool] | None = None,
    ) -> None:
        self._registry = registry or default_registry
        self._thresholds = {**thresholds_from_env(), **(thresholds or {})}
        self._rule_settings = dict(rule_settings or {})
        self._rule_filter = rule_filter

    @property
    def thresholds(self) -> Mapping[str, Any]:
        return self._thresholds

    def analyze(self, history: SignalHistory, profile: PatientProfile) -> list[RiskFinding]:
        """Return findings ordered critical → low, newest first within a severity."""

        if profile is None:
            raise TypeError("profile is required for risk analysis")
        if history is None:
            raise TypeError("history is required for risk analysis")
        for name in _CONTAINERS:
            if getattr(history, name) is None:
                raise TypeError(f"history.{name} must be a sequence, not None")

        signals = prepare_signals(history, self._thresholds)
        if signals.empty:
            if history.readings:
                logger.info("All %d readings were unusable; no findings produced", len(history.readings))
            return []

        context = AnalysisContext(
            profile=profile,
            thresholds=self._thresholds,
            rule_settings=self._rule_settings,
        )
        findings = self._registry.evaluate_all(signals, context, predicate=self._rule_filter)
        findings.sort(key=finding_sort_key)
        logger.debug("Analysis produced %d findings from %d readings", len(findings), len(signals.readings))
        return findings

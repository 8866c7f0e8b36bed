"""Base class and utilities for risk rules."""
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Mapping

import pandas as pd

from .features import PreparedSignals
from .models import AnalysisContext, FindingKind, RiskFinding, Severity


class RiskRule(ABC):
    """Abstract risk rule producing zero or more findings of one kind."""

    id: str = ""
    kind: FindingKind | None = None
    description: str = ""
    version: str = "1.0.0"

    def __init_subclass__(cls, **kwargs: Any) -> None:
        super().__init_subclass__(**kwargs)
        if not cls.id:
            raise ValueError(f"Rule {cls.__name__} must define a non-empty id")
        if cls.kind is None:
            raise ValueError(f"Rule {cls.__name__} must define a finding kind")

    def applies_to(self, context: AnalysisContext) -> bool:
        """Return False to skip the rule for this patient."""

        return True

    @abstractmethod
    def evaluate(self, signals: PreparedSignals, context: AnalysisContext) -> list[RiskFinding]:
        """Run the rule on prepared signals."""

    def resolved_threshold(self, context: AnalysisContext, key: str, default: Any) -> Any:
        """Helper to fetch rule-specific threshold overrides."""

        return context.rule_threshold(self.id, key, default)

    def finding(
        self,
        severity: Severity,
        observed_at: pd.Timestamp,
        *,
        metrics: Mapping[str, float] | None = None,
        evidence: Mapping[str, Any] | None = None,
    ) -> RiskFinding:
        """Build a finding stamped with this rule's identity."""

        assert self.kind is not None
        return RiskFinding(
            kind=self.kind,
            severity=severity,
            observed_at=pd.Timestamp(observed_at).to_pydatetime(),
            rule_id=self.id,
            metrics=dict(metrics or {}),
            evidence=dict(evidence or {}),
            version=self.version,
        )

    def __repr__(self) -> str:  # pragma: no cover - convenience only
        return f"<{self.__class__.__name__} id={self.id!r} version={self.version!r}>"

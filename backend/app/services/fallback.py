"""
Ordered fallback chains.

A chain is a list of (name, callable) strategies tried in order; the first
one that returns without raising wins. Failures are collected rather than
raised so the caller can turn each one into a warning.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)

Strategy = tuple[str, Callable[[], Any]]


@dataclass
class StageFailure:
    strategy: str
    error: Exception

    @property
    def message(self) -> str:
        return getattr(self.error, "message", None) or str(self.error) or type(self.error).__name__


@dataclass
class StageOutcome:
    """Result of run_strategies(): the winning value plus every failure before it."""
    value: Any = None
    strategy: Optional[str] = None
    failures: list[StageFailure] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return self.strategy is not None


def run_strategies(stage: str, strategies: list[Strategy]) -> StageOutcome:
    """
    Try each strategy in order until one succeeds.

    When every strategy fails the outcome has succeeded == False and one
    failure per strategy; the caller decides on the substitute.
    """
    outcome = StageOutcome()
    for name, strategy in strategies:
        try:
            outcome.value = strategy()
        except Exception as e:
            logger.warning("%s: strategy '%s' failed: %s", stage, name, e)
            outcome.failures.append(StageFailure(strategy=name, error=e))
            continue
        outcome.strategy = name
        return outcome
    return outcome

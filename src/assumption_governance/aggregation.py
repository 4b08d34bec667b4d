# assumption_governance/aggregation.py
from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass

from assumption_governance.config import KernelConfig
from assumption_governance.contracts import AssumptionCategory

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ConfidenceTerm:
    key: str
    confidence: float
    category: AssumptionCategory


@dataclass(frozen=True)
class AggregateScore:
    value: float
    weighted_mean: float
    weakest: ConfidenceTerm | None
    capped_by: ConfidenceTerm | None = None


def aggregate_confidence(terms: Sequence[ConfidenceTerm], config: KernelConfig) -> AggregateScore:
    """
    Category-weighted, minimum-biased mean of confidence terms.

    The weighted mean is blended with the weakest term by
    ``evaluation.min_bias``. A CRITICAL term under ``evaluation.critical_floor``
    caps the result at its own value, so healthy supporting terms cannot
    average a broken critical one away.

    No terms aggregates to 1.0.
    """
    if not terms:
        return AggregateScore(value=1.0, weighted_mean=1.0, weakest=None)

    policy = config.evaluation
    total_weight = 0.0
    weighted_sum = 0.0
    for term in terms:
        w = config.category(term.category).weight
        total_weight += w
        weighted_sum += w * term.confidence
    weighted_mean = weighted_sum / total_weight

    weakest = min(terms, key=lambda t: (t.confidence, t.key))
    value = (1.0 - policy.min_bias) * weighted_mean + policy.min_bias * weakest.confidence

    broken = [
        t for t in terms if t.category == AssumptionCategory.CRITICAL and t.confidence < policy.critical_floor
    ]
    capped_by = None
    if broken:
        capped_by = min(broken, key=lambda t: (t.confidence, t.key))
        value = min(value, capped_by.confidence)

    value = max(0.0, min(1.0, value))
    logger.debug(
        "aggregate=%.4f weighted_mean=%.4f weakest=%s capped_by=%s",
        value,
        weighted_mean,
        weakest.key,
        capped_by.key if capped_by else None,
    )
    return AggregateScore(value=value, weighted_mean=weighted_mean, weakest=weakest, capped_by=capped_by)


__all__ = ["AggregateScore", "ConfidenceTerm", "aggregate_confidence"]

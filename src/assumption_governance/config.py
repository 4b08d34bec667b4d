# assumption_governance/config.py
from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from pathlib import Path
from typing import Any, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator

from assumption_governance._compat import Self
from assumption_governance.contracts import AssumptionCategory, SystemState

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]

_POLICY_CONFIG = ConfigDict(
    extra="forbid",
    use_enum_values=False,
    frozen=True,
)


class CategoryPolicy(BaseModel):
    """Decay and weighting policy for one assumption category.

    Effective confidence is ``confidence * decay_rate ** (elapsed / half_life_minutes)``,
    never lower than ``floor``.
    """

    model_config = _POLICY_CONFIG
    decay_rate: float = Field(gt=0.0, le=1.0)
    half_life_minutes: float = Field(gt=0.0)
    floor: float = Field(default=0.05, ge=0.0, le=1.0)
    weight: float = Field(gt=0.0)


def _default_categories() -> dict[AssumptionCategory, CategoryPolicy]:
    return {
        AssumptionCategory.CRITICAL: CategoryPolicy(decay_rate=0.5, half_life_minutes=60.0, floor=0.05, weight=3.0),
        AssumptionCategory.IMPORTANT: CategoryPolicy(decay_rate=0.6, half_life_minutes=240.0, floor=0.05, weight=2.0),
        AssumptionCategory.SUPPORTING: CategoryPolicy(decay_rate=0.7, half_life_minutes=720.0, floor=0.05, weight=1.0),
    }


class EvaluationPolicy(BaseModel):
    model_config = _POLICY_CONFIG
    base_threshold: float = Field(default=0.5, ge=0.0, le=1.0)
    criticality_factor: float = Field(default=0.08, ge=0.0)
    state_factor: float = Field(default=0.07, ge=0.0)
    max_threshold: float = Field(default=0.99, gt=0.0, le=0.99)
    # Share of the aggregate taken by the weakest dependency.
    min_bias: float = Field(default=0.5, ge=0.0, le=1.0)
    critical_floor: float = Field(default=0.3, ge=0.0, le=1.0)
    auto_approve_ceiling: int = Field(default=2, ge=0, le=5)
    safe_mode_criticality_ceiling: int = Field(default=3, ge=1, le=6)
    restricted_margin: float = Field(default=0.1, ge=0.0, le=1.0)


class FeedbackPolicy(BaseModel):
    model_config = _POLICY_CONFIG
    success_boost: float = Field(default=0.02, ge=0.0, le=1.0)
    failure_penalty: float = Field(default=0.10, gt=0.0, le=1.0)

    @model_validator(mode="after")
    def _validate_asymmetry(self) -> Self:
        if self.failure_penalty <= self.success_boost:
            raise ValueError("failure_penalty must be larger than success_boost")
        return self


def _default_escalation_thresholds() -> dict[SystemState, float]:
    return {
        SystemState.NORMAL: 0.5,
        SystemState.DEGRADED: 0.7,
        SystemState.CRITICAL: 0.85,
    }


class StatePolicy(BaseModel):
    """Rolling-window policy for the system state tracker.

    ``escalation_thresholds`` is keyed by the state being escalated *from*.
    """

    model_config = _POLICY_CONFIG
    window_size: int = Field(default=10, ge=1)
    min_samples: int = Field(default=3, ge=1)
    escalation_thresholds: dict[SystemState, float] = Field(default_factory=_default_escalation_thresholds)
    recovery_run: int = Field(default=5, ge=1)
    dwell_outcomes: int | None = Field(default=None, ge=0)

    @model_validator(mode="after")
    def _validate_window(self) -> Self:
        if self.min_samples > self.window_size:
            raise ValueError("min_samples cannot exceed window_size")
        if self.recovery_run > self.window_size:
            raise ValueError("recovery_run cannot exceed window_size")

        expected = {SystemState.NORMAL, SystemState.DEGRADED, SystemState.CRITICAL}
        if set(self.escalation_thresholds) != expected:
            raise ValueError("escalation_thresholds must define normal, degraded and critical")
        ordered = [self.escalation_thresholds[s] for s in (SystemState.NORMAL, SystemState.DEGRADED, SystemState.CRITICAL)]
        if any(not 0.0 <= v <= 1.0 for v in ordered):
            raise ValueError("escalation thresholds must be within [0, 1]")
        if not ordered[0] < ordered[1] < ordered[2]:
            raise ValueError("escalation thresholds must rise with severity")
        return self

    @property
    def effective_dwell(self) -> int:
        return self.min_samples if self.dwell_outcomes is None else self.dwell_outcomes


class KernelConfig(BaseModel):
    model_config = _POLICY_CONFIG
    categories: dict[AssumptionCategory, CategoryPolicy] = Field(default_factory=_default_categories)
    evaluation: EvaluationPolicy = Field(default_factory=EvaluationPolicy)
    feedback: FeedbackPolicy = Field(default_factory=FeedbackPolicy)
    state: StatePolicy = Field(default_factory=StatePolicy)

    @model_validator(mode="after")
    def _validate_categories(self) -> Self:
        missing = [c.value for c in AssumptionCategory if c not in self.categories]
        if missing:
            raise ValueError(f"categories missing policy for: {', '.join(missing)}")
        return self

    def category(self, category: AssumptionCategory) -> CategoryPolicy:
        return self.categories[category]


def default_config() -> KernelConfig:
    return KernelConfig()


def merge_config(overrides: Mapping[str, Any], *, base: KernelConfig | None = None) -> KernelConfig:
    """Merge a partial config document over ``base`` (defaults when omitted).

    Sections merge key by key; ``categories`` merges per category.
    """
    merged: dict[str, Any] = (base or default_config()).model_dump(mode="json")
    for section, value in overrides.items():
        current = merged.get(section)
        if section == "categories" and isinstance(value, Mapping) and isinstance(current, dict):
            for name, policy in value.items():
                key = str(name).lower()
                existing = current.get(key)
                if isinstance(policy, Mapping) and isinstance(existing, dict):
                    current[key] = {**existing, **policy}
                else:
                    current[key] = policy
        elif isinstance(value, Mapping) and isinstance(current, dict):
            merged[section] = {**current, **value}
        else:
            merged[section] = value
    return KernelConfig.model_validate(merged)


def load_config(path: PathLike) -> KernelConfig:
    p = Path(path)
    raw = json.loads(p.read_text(encoding="utf-8"))
    if not isinstance(raw, dict):
        raise ValueError(f"Expected JSON object in {p}, got {type(raw).__name__}")
    config = merge_config(raw)
    logger.info("loaded kernel config from %s", p)
    return config


__all__ = [
    "CategoryPolicy",
    "EvaluationPolicy",
    "FeedbackPolicy",
    "KernelConfig",
    "StatePolicy",
    "default_config",
    "load_config",
    "merge_config",
]

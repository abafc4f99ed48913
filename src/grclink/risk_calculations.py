"""Risk score arithmetic: inherent and residual risk, and risk levels."""

from __future__ import annotations

import math
from collections.abc import Iterable, Mapping
from typing import TYPE_CHECKING, Any

import requests
from pydantic import ValidationError

from grclink.models import ControlEffect, RiskLevelRanges
from grclink.query_keys import QueryKeys
from grclink.utils.logger import get_logger

if TYPE_CHECKING:
    from grclink.api_client import ApiClient

logger = get_logger(__name__)

MIN_FACTOR = 0.1
MAX_FACTOR = 5.0
MIN_RESIDUAL_RISK = 0.1

RISK_LEVEL_LOW = 1
RISK_LEVEL_MEDIUM = 2
RISK_LEVEL_HIGH = 3
RISK_LEVEL_CRITICAL = 4

RISK_LEVEL_TEXT = {
    RISK_LEVEL_LOW: "Bajo",
    RISK_LEVEL_MEDIUM: "Medio",
    RISK_LEVEL_HIGH: "Alto",
    RISK_LEVEL_CRITICAL: "Crítico",
}

_PROBABILITY_TARGETS = frozenset({"probability", "both"})
_IMPACT_TARGETS = frozenset({"impact", "both"})


def _round_1dp(value: float) -> float:
    # Half-up, so 2.25 -> 2.3.
    return math.floor(value * 10 + 0.5) / 10


def _coerce_controls(
    controls: Iterable[ControlEffect | Mapping[str, Any]],
) -> list[ControlEffect]:
    return [
        control if isinstance(control, ControlEffect) else ControlEffect.model_validate(control)
        for control in controls
    ]


def calculate_inherent_risk(probability: float, impact: float) -> float:
    return probability * impact


def calculate_residual_risk(inherent_risk: float, control_effectiveness: float) -> float:
    """Apply one overall effectiveness percentage to an inherent risk."""
    return _round_1dp(inherent_risk * (1 - control_effectiveness / 100))


def _apply_controls(
    value: float, controls: Iterable[ControlEffect | Mapping[str, Any]], targets: frozenset[str]
) -> float:
    matching = [control for control in _coerce_controls(controls) if control.effect_target in targets]
    if not matching:
        return value
    residual = value
    for control in matching:
        residual *= 1 - control.effectiveness / 100
    return max(MIN_FACTOR, min(MAX_FACTOR, _round_1dp(residual)))


def calculate_residual_probability(
    inherent_probability: float, controls: Iterable[ControlEffect | Mapping[str, Any]]
) -> float:
    """Reduce probability by every control targeting it, multiplicatively.

    The result is clamped to [0.1, 5] and rounded to one decimal. Without
    matching controls the input is returned unchanged.
    """

    return _apply_controls(inherent_probability, controls, _PROBABILITY_TARGETS)


def calculate_residual_impact(
    inherent_impact: float, controls: Iterable[ControlEffect | Mapping[str, Any]]
) -> float:
    """Reduce impact by every control targeting it; see residual probability."""

    return _apply_controls(inherent_impact, controls, _IMPACT_TARGETS)


def calculate_residual_risk_from_controls(
    inherent_probability: float,
    inherent_impact: float,
    controls: Iterable[ControlEffect | Mapping[str, Any]],
) -> float:
    effects = _coerce_controls(controls)
    probability = calculate_residual_probability(inherent_probability, effects)
    impact = calculate_residual_impact(inherent_impact, effects)
    return max(MIN_RESIDUAL_RISK, _round_1dp(probability * impact))


def get_risk_level(risk_value: float, ranges: RiskLevelRanges | None = None) -> int:
    """Map a risk value to a level from 1 (low) to 4 (critical)."""

    bands = ranges or RiskLevelRanges()
    if risk_value <= bands.low_max:
        return RISK_LEVEL_LOW
    if risk_value <= bands.medium_max:
        return RISK_LEVEL_MEDIUM
    if risk_value <= bands.high_max:
        return RISK_LEVEL_HIGH
    return RISK_LEVEL_CRITICAL


def get_risk_level_text(risk_value: float, ranges: RiskLevelRanges | None = None) -> str:
    return RISK_LEVEL_TEXT.get(get_risk_level(risk_value, ranges), "Desconocido")


def fetch_risk_level_ranges(api_client: ApiClient) -> RiskLevelRanges:
    """Load the configured risk bands, falling back to the defaults.

    Args:
        api_client: Client used for the request.

    Returns:
        Configured ranges, or defaults when the request fails.
    """

    try:
        payload = api_client.get_json(QueryKeys.system_config.risk_level_ranges())
        return RiskLevelRanges.model_validate(payload)
    except (requests.RequestException, ValidationError) as exc:
        logger.warning("Using default risk level ranges: %s", exc)
        return RiskLevelRanges()

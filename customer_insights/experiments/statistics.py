"""Frequentist statistics for two-proportion A/B tests.

Pure functions, no state:

- z_score: pooled two-proportion z-test statistic
- p_value: two-tailed p-value from the Abramowitz-Stegun normal CDF
- significance_level: bucket a p-value into high/medium/low/none
- confidence_interval: Wilson score interval for one variant's rate
- lift: relative change of treatment over control
- required_sample_size: per-variant sample size to detect a relative effect

Zero samples never raise; they produce neutral values (z of 0, an empty
interval) so that a freshly started experiment can be reported on.

References:
- Abramowitz, M. & Stegun, I. (1964). Handbook of Mathematical Functions, 7.1.26
- Wilson, E. B. (1927). "Probable inference, the law of succession, and
  statistical inference"
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Literal

from scipy import stats

# Abramowitz-Stegun 7.1.26 coefficients
_A1 = 0.254829592
_A2 = -0.284496736
_A3 = 1.421413741
_A4 = -1.453152027
_A5 = 1.061405429
_P = 0.3275911

_CONFIDENCE_Z = {0.90: 1.645, 0.95: 1.96, 0.99: 2.576}
_ALPHA_Z = {0.05: 1.96, 0.01: 2.576, 0.10: 1.645}
_POWER_Z = {0.80: 0.84, 0.90: 1.28}

LIFT_NEUTRAL_BAND = 0.01


@dataclass(frozen=True)
class Significance:
    """Significance bucket for a p-value.

    Attributes
    ----------
    level:
        "high" (p <= 0.01), "medium" (p <= 0.05), "low" (p <= 0.1) or "none"
    confident:
        True only for high and medium; a winner may be declared only then
    description:
        Human-readable confidence statement
    """

    level: Literal["high", "medium", "low", "none"]
    confident: bool
    description: str


@dataclass(frozen=True)
class ConfidenceInterval:
    rate: float
    lower: float
    upper: float


@dataclass(frozen=True)
class Lift:
    """Relative change of the treatment rate over the control rate.

    ``lift`` is ``inf`` when the control rate is zero and the treatment
    converted at all.
    """

    lift: float
    lift_percent: float
    direction: Literal["positive", "negative", "neutral"]


def z_value_for_confidence(level: float) -> float:
    """Two-sided critical z for a confidence level (table first, then ppf)."""
    if level in _CONFIDENCE_Z:
        return _CONFIDENCE_Z[level]
    if not 0 < level < 1:
        raise ValueError(f"Confidence level must be in (0, 1), got {level}")
    return float(stats.norm.ppf(1 - (1 - level) / 2))


def z_score(
    conversions_a: int, samples_a: int, conversions_b: int, samples_b: int
) -> float:
    """Pooled-proportion z statistic for ``rate_a - rate_b``.

    Returns 0.0 when either arm has no samples or the pooled standard
    error is zero.
    """
    if samples_a <= 0 or samples_b <= 0:
        return 0.0
    rate_a = conversions_a / samples_a
    rate_b = conversions_b / samples_b
    pooled = (conversions_a + conversions_b) / (samples_a + samples_b)
    se = math.sqrt(pooled * (1 - pooled) * (1 / samples_a + 1 / samples_b))
    if se == 0:
        return 0.0
    return (rate_a - rate_b) / se


def p_value(z: float) -> float:
    """Two-tailed p-value for a z statistic."""
    x = abs(z) / math.sqrt(2)
    t = 1.0 / (1.0 + _P * x)
    y = 1.0 - (((((_A5 * t + _A4) * t) + _A3) * t + _A2) * t + _A1) * t * math.exp(
        -x * x
    )
    cdf = 0.5 * (1.0 + y)
    return min(1.0, max(0.0, 2.0 * (1.0 - cdf)))


def significance_level(p: float) -> Significance:
    if p <= 0.01:
        return Significance("high", True, "99% confident - Highly significant result")
    if p <= 0.05:
        return Significance("medium", True, "95% confident - Statistically significant")
    if p <= 0.1:
        return Significance("low", False, "90% confident - Marginally significant")
    return Significance("none", False, "Not statistically significant yet")


def confidence_interval(
    conversions: int, samples: int, level: float = 0.95
) -> ConfidenceInterval:
    """Wilson score interval for a conversion rate, clamped to [0, 1]."""
    if samples <= 0:
        return ConfidenceInterval(rate=0.0, lower=0.0, upper=0.0)

    rate = conversions / samples
    z = z_value_for_confidence(level)
    z2 = z * z
    denominator = 1 + z2 / samples
    center = (rate + z2 / (2 * samples)) / denominator
    margin = (
        z * math.sqrt(rate * (1 - rate) / samples + z2 / (4 * samples * samples))
    ) / denominator
    lower = max(0.0, center - margin)
    upper = min(1.0, center + margin)
    # float error can push a bound past the rate at the extremes
    return ConfidenceInterval(rate=rate, lower=min(lower, rate), upper=max(upper, rate))


def lift(control_rate: float, treatment_rate: float) -> Lift:
    if control_rate == 0:
        if treatment_rate > 0:
            return Lift(lift=math.inf, lift_percent=100.0, direction="positive")
        return Lift(lift=0.0, lift_percent=0.0, direction="neutral")

    value = (treatment_rate - control_rate) / control_rate
    if value > LIFT_NEUTRAL_BAND:
        direction = "positive"
    elif value < -LIFT_NEUTRAL_BAND:
        direction = "negative"
    else:
        direction = "neutral"
    return Lift(lift=value, lift_percent=round(value * 100, 2), direction=direction)


def required_sample_size(
    baseline_rate: float,
    minimum_detectable_effect: float,
    alpha: float = 0.05,
    power: float = 0.8,
) -> int:
    """Samples needed per variant to detect a relative lift.

    Parameters
    ----------
    baseline_rate:
        Control conversion rate, strictly between 0 and 1
    minimum_detectable_effect:
        Relative change to detect (0.1 = +10%)
    alpha:
        Two-sided significance level
    power:
        Probability of detecting the effect when it exists

    Returns
    -------
    int
        Per-variant sample size, rounded up
    """
    if not 0 < baseline_rate < 1:
        raise ValueError(f"Baseline rate must be in (0, 1), got {baseline_rate}")
    if minimum_detectable_effect <= 0:
        raise ValueError(
            f"Minimum detectable effect must be positive, got {minimum_detectable_effect}"
        )
    if not 0 < alpha < 1 or not 0 < power < 1:
        raise ValueError(f"alpha and power must be in (0, 1), got {alpha}, {power}")

    treatment_rate = baseline_rate * (1 + minimum_detectable_effect)
    if treatment_rate >= 1:
        raise ValueError(
            f"Effect of {minimum_detectable_effect} on baseline {baseline_rate} "
            "exceeds a 100% conversion rate"
        )

    z_alpha = _ALPHA_Z.get(alpha) or float(stats.norm.ppf(1 - alpha / 2))
    z_beta = _POWER_Z.get(power) or float(stats.norm.ppf(power))
    pooled = (baseline_rate + treatment_rate) / 2
    numerator = 2 * pooled * (1 - pooled) * (z_alpha + z_beta) ** 2
    return math.ceil(numerator / (baseline_rate - treatment_rate) ** 2)

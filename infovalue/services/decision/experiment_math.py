"""
Shared A/B test arithmetic used by the EVSI and net value engines.

- Lift feasibility bounds from the baseline conversion rate
- Standard error of the relative lift estimator (delta method)
- Box-Muller standard normal draws from an injected random source
- Normal density helpers in linear and log space
- The rare-events advisory
"""

import math
from dataclasses import dataclass
from typing import Optional

from infovalue.config import get_settings
from infovalue.core.random import RandomSource
from infovalue.models.schemas import CalculationWarning, WarningCodeEnum
from infovalue.services.decision.statistics import SQRT_2_PI, standard_normal_pdf

# Floor for the first Box-Muller uniform so log(0) never happens
MIN_UNIFORM = 1e-16

LOG_SQRT_2_PI = math.log(SQRT_2_PI)


@dataclass(frozen=True)
class FeasibilityBounds:
    l_min: float
    l_max: float

    def contains(self, lift: float) -> bool:
        return self.l_min <= lift <= self.l_max


def lift_feasibility_bounds(cr0: float) -> FeasibilityBounds:
    # CR1 = CR0 * (1 + L) must stay in [0, 1]
    if cr0 <= 0:
        return FeasibilityBounds(l_min=-1.0, l_max=math.inf)
    return FeasibilityBounds(l_min=-1.0, l_max=1.0 / cr0 - 1.0)


def se_of_relative_lift(cr0: float, n_control: float, n_variant: float) -> float:
    """SE(L) = sqrt((1 - CR0) / CR0 * (1/n_control + 1/n_variant)).

    Callers guard CR0 in (0, 1) and positive arm sizes first.
    """
    variance_factor = (1 - cr0) / cr0
    sample_factor = 1 / n_control + 1 / n_variant
    return math.sqrt(variance_factor * sample_factor)


def sample_standard_normal(rng: RandomSource) -> float:
    u1 = max(rng.random(), MIN_UNIFORM)
    u2 = rng.random()
    return math.sqrt(-2 * math.log(u1)) * math.cos(2 * math.pi * u2)


def normal_pdf(x: float, mean: float, sd: float) -> float:
    return standard_normal_pdf((x - mean) / sd) / sd


def normal_log_pdf(x, mean, sd: float):
    """Log density of N(mean, sd^2); works on floats and numpy arrays alike."""
    z = (x - mean) / sd
    return -0.5 * z * z - LOG_SQRT_2_PI - math.log(sd)


def rare_events_warning(
    cr0: float, n_control: float, n_variant: float, min_conversions: Optional[float] = None
) -> Optional[CalculationWarning]:
    if min_conversions is None:
        min_conversions = get_settings().RARE_EVENTS_MIN_CONVERSIONS

    expected_conversions = min(n_control * cr0, n_variant * cr0)
    if expected_conversions >= min_conversions:
        return None

    return CalculationWarning(
        code=WarningCodeEnum.RARE_EVENTS,
        message=(
            f"Expected conversions per group are low (<{min_conversions:g}). "
            "The normal approximation for lift may be less accurate. "
            "Consider increasing test duration or traffic."
        ),
    )


def is_valid_cr0(cr0: float) -> bool:
    return 0 < cr0 < 1


def invalid_cr0_warning(cr0: float) -> CalculationWarning:
    return CalculationWarning(
        code=WarningCodeEnum.INVALID_CR0,
        message=(
            f"Baseline conversion rate {cr0:g} is outside (0, 1); "
            "test information cannot be valued, so results fall back to the prior."
        ),
    )

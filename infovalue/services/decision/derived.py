from typing import Optional, Union

from infovalue.config import get_settings
from infovalue.models.schemas import DecisionEnum, EdgeCaseFlags, ThresholdUnitEnum
from infovalue.services.decision.statistics import standard_normal_cdf

# Lift at which the variant converts nobody (CR1 = 0)
MIN_LIFT = -1.0

NEAR_ZERO_SIGMA = 0.001
ONE_SIDED_LOW = 0.0001
ONE_SIDED_HIGH = 0.9999


def derive_k(annual_visitors: float, baseline_conversion_rate: float, value_per_conversion: float) -> float:
    # K = N_year * CR0 * V, annual dollars per unit of relative lift
    return annual_visitors * baseline_conversion_rate * value_per_conversion


def normalize_threshold_to_lift(
    threshold_value: float, threshold_unit: Union[ThresholdUnitEnum, str], k: float
) -> float:
    """Convert a raw threshold to T_L in decimal lift.

    Dollar thresholds divide by K (0 when K <= 0); lift thresholds arrive as a
    percentage and divide by 100.
    """
    unit = ThresholdUnitEnum(threshold_unit)
    if unit == ThresholdUnitEnum.DOLLARS:
        return threshold_value / k if k > 0 else 0.0
    return threshold_value / 100


def determine_default_decision(mu: float, threshold_lift: float) -> DecisionEnum:
    # Tie goes to ship
    return DecisionEnum.SHIP if mu >= threshold_lift else DecisionEnum.DONT_SHIP


def probability_below_min_lift(mu: float, sigma: float) -> float:
    """P(L < -1) under N(mu, sigma^2), treating sigma <= 0 as a point mass."""
    if sigma <= 0:
        return 1.0 if mu < MIN_LIFT else 0.0
    return standard_normal_cdf((MIN_LIFT - mu) / sigma)


def detect_edge_cases(
    sigma: float, mu: float, cdf_at_z: float, truncation_probability: Optional[float] = None
) -> EdgeCaseFlags:
    if truncation_probability is None:
        truncation_probability = get_settings().TRUNCATION_PROBABILITY

    return EdgeCaseFlags(
        near_zero_sigma=sigma < NEAR_ZERO_SIGMA,
        prior_one_sided=cdf_at_z > ONE_SIDED_HIGH or cdf_at_z < ONE_SIDED_LOW,
        truncation_applied=probability_below_min_lift(mu, sigma) > truncation_probability,
    )

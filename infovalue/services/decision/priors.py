"""Normal priors from a 90% credible interval on relative lift."""

from typing import Tuple

from infovalue.models.schemas import NormalPrior

# 95th percentile of the standard normal; a 90% central interval spans mu +/- Z_95 * sigma
Z_95 = 1.6448536

DEFAULT_PRIOR = NormalPrior(mu=0.0, sigma=0.05)

# Percent bounds that reproduce DEFAULT_PRIOR
DEFAULT_INTERVAL: Tuple[float, float] = (-8.22, 8.22)

INTERVAL_TOLERANCE = 0.01


def compute_prior_from_interval(low_pct: float, high_pct: float) -> NormalPrior:
    """Build N(mu, sigma) whose 5th/95th percentiles are ``low_pct``/``high_pct`` percent.

    Example: (-5, 15) gives mu = 0.05, sigma ~= 0.0608.
    """
    low = low_pct / 100
    high = high_pct / 100
    return NormalPrior(mu=(low + high) / 2, sigma=(high - low) / (2 * Z_95))


def is_default_interval(low_pct: float, high_pct: float) -> bool:
    default_low, default_high = DEFAULT_INTERVAL
    return (
        abs(low_pct - default_low) < INTERVAL_TOLERANCE
        and abs(high_pct - default_high) < INTERVAL_TOLERANCE
    )

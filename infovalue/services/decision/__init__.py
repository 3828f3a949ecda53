"""
Decision-economics engine for A/B tests.

This module provides:
- EVPI: the value of perfect information about the true lift
- EVSI: the value of the information a concrete test would produce
- Net value of testing and the closed-form cost of delay
- Prior distribution primitives (pdf, cdf, sample, mean) shared with chart code
"""

from infovalue.services.decision.cost_of_delay import calculate_cost_of_delay
from infovalue.services.decision.derived import (
    derive_k,
    determine_default_decision,
    normalize_threshold_to_lift,
)
from infovalue.services.decision.distributions import cdf, get_prior_mean, pdf, sample
from infovalue.services.decision.evpi import calculate_evpi
from infovalue.services.decision.evsi import (
    calculate_evsi,
    calculate_evsi_monte_carlo,
    calculate_evsi_normal_fast_path,
    compute_posterior_mean,
)
from infovalue.services.decision.exceptions import DecisionEngineError, UnsupportedPriorError
from infovalue.services.decision.net_value import calculate_net_value
from infovalue.services.decision.priors import compute_prior_from_interval

__all__ = [
    "calculate_evpi",
    "calculate_evsi",
    "calculate_evsi_monte_carlo",
    "calculate_evsi_normal_fast_path",
    "calculate_net_value",
    "calculate_cost_of_delay",
    "compute_posterior_mean",
    "compute_prior_from_interval",
    "derive_k",
    "normalize_threshold_to_lift",
    "determine_default_decision",
    "pdf",
    "cdf",
    "sample",
    "get_prior_mean",
    "DecisionEngineError",
    "UnsupportedPriorError",
]

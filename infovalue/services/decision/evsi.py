"""
EVSI: expected value of sample information from one concrete A/B test.

The test is modelled as a noisy reading of the true lift,
L_hat | L ~ N(L, SE^2), and the post-test decision is Bayes-optimal:
ship iff E[L | L_hat] >= T. Deciding on the raw L_hat instead would ignore
shrinkage toward the prior and overstate the test's value.

Two paths:
- Monte Carlo (all prior families): draw L from the prior, reject draws
  outside the feasibility bounds, simulate L_hat, decide on the posterior mean
  and compare threshold-relative payoffs with and without the test.
- Normal fast path: conjugate pre-posterior analysis reuses the EVPI closed
  form with the pre-posterior sigma in place of the prior sigma.
"""

import math
from dataclasses import dataclass
from typing import Callable, Iterator, List, Optional, Tuple

import numpy as np
import structlog
from scipy import stats as scipy_stats

from infovalue.config import get_settings
from infovalue.core.logging import log_calculation_warnings
from infovalue.core.random import RandomSource, resolve_rng
from infovalue.models.schemas import (
    CalculationWarning,
    DecisionEnum,
    EVSIInputs,
    EVSIResult,
    PriorDistribution,
    WarningCodeEnum,
)
from infovalue.services.decision.derived import (
    MIN_LIFT,
    determine_default_decision,
    probability_below_min_lift,
)
from infovalue.services.decision.distributions import (
    cdf,
    get_prior_mean,
    point_mass_location,
    sample,
)
from infovalue.services.decision.evpi import normal_opportunity_loss
from infovalue.services.decision.exceptions import UnsupportedPriorError
from infovalue.services.decision.experiment_math import (
    invalid_cr0_warning,
    is_valid_cr0,
    lift_feasibility_bounds,
    normal_log_pdf,
    rare_events_warning,
    sample_standard_normal,
    se_of_relative_lift,
)
from infovalue.services.decision.statistics import standard_normal_cdf
from infovalue.services.decision.truncated_normal import truncated_normal_mean_two_sided

logger = structlog.get_logger(__name__)

# P(clears threshold) reported when CR0 makes the question meaningless
INDETERMINATE_PROBABILITY = 0.5


@dataclass(frozen=True)
class EffectivePriorMetrics:
    mean: float
    probability_clears_threshold: float
    accepted: int


@dataclass
class SimulationTally:
    accepted: int = 0
    rejected: int = 0

    @property
    def rejection_rate(self) -> float:
        attempted = self.accepted + self.rejected
        if attempted == 0:
            return 0.0
        return self.rejected / attempted


def compute_effective_prior_metrics(
    prior: PriorDistribution,
    threshold_lift: float,
    cr0: float,
    num_samples: Optional[int] = None,
    rng: Optional[RandomSource] = None,
) -> EffectivePriorMetrics:
    """Prior mean and P(L >= T) under the same feasibility rejection the simulation uses.

    Falls back to the untruncated values when every draw is rejected.
    """
    settings = get_settings()
    if num_samples is None:
        num_samples = settings.EFFECTIVE_PRIOR_SAMPLES
    rng = resolve_rng(rng)
    bounds = lift_feasibility_bounds(cr0)

    total = 0.0
    clears = 0
    accepted = 0
    iterations = 0
    max_iterations = num_samples * settings.MAX_ITERATION_MULTIPLIER

    while accepted < num_samples and iterations < max_iterations:
        iterations += 1
        lift = sample(prior, rng)
        if not bounds.contains(lift):
            continue
        accepted += 1
        total += lift
        if lift >= threshold_lift:
            clears += 1

    if accepted == 0:
        return EffectivePriorMetrics(
            mean=get_prior_mean(prior),
            probability_clears_threshold=1 - cdf(threshold_lift, prior),
            accepted=0,
        )

    return EffectivePriorMetrics(
        mean=total / accepted,
        probability_clears_threshold=clears / accepted,
        accepted=accepted,
    )


def build_posterior_mean(
    prior: PriorDistribution,
    se: float,
    cr0: float = 0.5,
    grid_size: Optional[int] = None,
) -> Callable[[float], float]:
    """Return a function L_hat -> E[L | L_hat] for a fixed prior, SE and CR0.

    Everything that does not depend on L_hat (Student-t grid, prior log
    density) is computed once here so the Monte Carlo loop stays cheap.
    """
    atom = point_mass_location(prior)
    if atom is not None:
        return lambda l_hat: atom

    if prior.type == "normal":
        # Normal-Normal conjugate shrinkage toward the prior mean
        prior_variance = prior.sigma * prior.sigma
        w = prior_variance / (prior_variance + se * se)
        mu = prior.mu
        return lambda l_hat: w * l_hat + (1 - w) * mu

    feasible_max = lift_feasibility_bounds(cr0).l_max

    if prior.type == "uniform":
        a = max(MIN_LIFT, prior.low)
        b = min(prior.high, feasible_max)
        return lambda l_hat: truncated_normal_mean_two_sided(l_hat, se, a, b)

    return _student_t_posterior_mean(prior, se, feasible_max, grid_size)


def _student_t_posterior_mean(
    prior: PriorDistribution, se: float, feasible_max: float, grid_size: Optional[int]
) -> Callable[[float], float]:
    settings = get_settings()
    if grid_size is None:
        grid_size = settings.POSTERIOR_GRID_SIZE
    width = settings.POSTERIOR_GRID_WIDTH_SIGMAS * prior.sigma

    lower = max(MIN_LIFT, prior.mu - width)
    upper = min(prior.mu + width, feasible_max)

    # Feasibility clamping can invert the window
    if not upper > lower:
        fallback = max(MIN_LIFT, min(feasible_max, get_prior_mean(prior)))
        return lambda l_hat: fallback

    grid = np.linspace(lower, upper, grid_size + 1)
    log_prior = scipy_stats.t.logpdf((grid - prior.mu) / prior.sigma, prior.df) - math.log(prior.sigma)

    def posterior_mean(l_hat: float) -> float:
        # Log space: linear weights underflow to zero when SE is small
        log_weights = log_prior + normal_log_pdf(l_hat, grid, se)
        finite = np.isfinite(log_weights)
        if not finite.any():
            return max(lower, min(feasible_max, l_hat))

        log_weights = log_weights[finite]
        weights = np.exp(log_weights - log_weights.max())
        return float(np.dot(grid[finite], weights) / weights.sum())

    return posterior_mean


def compute_posterior_mean(
    l_hat: float,
    se: float,
    prior: PriorDistribution,
    cr0: float = 0.5,
    grid_size: Optional[int] = None,
) -> float:
    if not (math.isfinite(l_hat) and math.isfinite(se)):
        return get_prior_mean(prior)
    return build_posterior_mean(prior, se, cr0, grid_size)(l_hat)


def no_information_reason(cr0: float, n_control: float, n_variant: float) -> Optional[str]:
    if n_control <= 0 or n_variant <= 0:
        return "empty_arm"
    if not is_valid_cr0(cr0):
        return "invalid_cr0"
    return None


def no_information_probability(reason: str, prior: PriorDistribution, threshold_lift: float) -> float:
    if reason == "invalid_cr0":
        return INDETERMINATE_PROBABILITY
    return 1 - cdf(threshold_lift, prior)


def guard_warnings(cr0: float) -> List[CalculationWarning]:
    if is_valid_cr0(cr0):
        return []
    return [invalid_cr0_warning(cr0)]


def high_rejection_warning(
    tally: SimulationTally, max_rate: Optional[float] = None
) -> Optional[CalculationWarning]:
    if max_rate is None:
        max_rate = get_settings().HIGH_REJECTION_RATE

    rate = tally.rejection_rate
    if rate <= max_rate:
        return None

    return CalculationWarning(
        code=WarningCodeEnum.HIGH_REJECTION,
        message=(
            f"High rejection rate ({round(rate * 100)}%) due to prior mass outside feasible "
            "conversion bounds. Consider narrowing the prior or adjusting the baseline rate."
        ),
    )


def simulate_posterior_decisions(
    prior: PriorDistribution,
    threshold_lift: float,
    cr0: float,
    se: float,
    num_samples: int,
    rng: RandomSource,
    tally: SimulationTally,
) -> Iterator[Tuple[float, DecisionEnum]]:
    """Yield (L_true, posterior decision) for each feasible prior draw.

    Draws outside [L_min, L_max] are counted on ``tally`` and retried, up to
    ``num_samples * MAX_ITERATION_MULTIPLIER`` attempts in total.
    """
    bounds = lift_feasibility_bounds(cr0)
    posterior_mean = build_posterior_mean(prior, se, cr0)
    max_iterations = num_samples * get_settings().MAX_ITERATION_MULTIPLIER
    iterations = 0

    while tally.accepted < num_samples and iterations < max_iterations:
        iterations += 1
        l_true = sample(prior, rng)
        if not bounds.contains(l_true):
            tally.rejected += 1
            continue

        tally.accepted += 1
        l_hat = l_true + se * sample_standard_normal(rng)
        yield l_true, determine_default_decision(posterior_mean(l_hat), threshold_lift)


def calculate_evsi_monte_carlo(
    inputs: EVSIInputs,
    num_samples: Optional[int] = None,
    rng: Optional[RandomSource] = None,
) -> EVSIResult:
    if num_samples is None:
        num_samples = inputs.num_samples or get_settings().DEFAULT_NUM_SAMPLES
    rng = resolve_rng(rng)

    prior = inputs.prior
    cr0 = inputs.baseline_conversion_rate
    threshold_lift = inputs.threshold_lift
    k = inputs.k

    default_decision = determine_default_decision(get_prior_mean(prior), threshold_lift)

    reason = no_information_reason(cr0, inputs.n_control, inputs.n_variant)
    if reason is not None:
        warnings = guard_warnings(cr0)
        log_calculation_warnings(logger, warnings, engine="evsi")
        logger.debug("evsi_no_information", reason=reason)
        return EVSIResult(
            evsi_dollars=0.0,
            default_decision=default_decision,
            probability_clears_threshold=no_information_probability(reason, prior, threshold_lift),
            probability_test_changes_decision=0.0,
            num_samples=0,
            num_rejected=0,
            warnings=warnings,
        )

    se = se_of_relative_lift(cr0, inputs.n_control, inputs.n_variant)

    warnings: List[CalculationWarning] = []
    rare_events = rare_events_warning(cr0, inputs.n_control, inputs.n_variant)
    if rare_events is not None:
        warnings.append(rare_events)

    effective = compute_effective_prior_metrics(prior, threshold_lift, cr0, rng=rng)

    tally = SimulationTally()
    sum_without_test = 0.0
    sum_with_test = 0.0
    decision_changes = 0

    for l_true, posterior_decision in simulate_posterior_decisions(
        prior, threshold_lift, cr0, se, num_samples, rng, tally
    ):
        # Payoffs are relative to the threshold; not shipping is worth 0
        payoff = k * (l_true - threshold_lift)
        if default_decision == DecisionEnum.SHIP:
            sum_without_test += payoff
        if posterior_decision == DecisionEnum.SHIP:
            sum_with_test += payoff
        if posterior_decision != default_decision:
            decision_changes += 1

    high_rejection = high_rejection_warning(tally)
    if high_rejection is not None:
        warnings.append(high_rejection)
    log_calculation_warnings(logger, warnings, engine="evsi")

    if tally.accepted == 0:
        logger.debug("evsi_no_information", reason="all_samples_rejected", rejected=tally.rejected)
        return EVSIResult(
            evsi_dollars=0.0,
            default_decision=default_decision,
            probability_clears_threshold=effective.probability_clears_threshold,
            probability_test_changes_decision=0.0,
            num_samples=0,
            num_rejected=tally.rejected,
            standard_error=se,
            effective_prior_mean=effective.mean,
            warnings=warnings,
        )

    # Monte Carlo noise can dip slightly below zero
    evsi_dollars = max(0.0, (sum_with_test - sum_without_test) / tally.accepted)

    logger.debug(
        "evsi_monte_carlo_completed",
        prior_type=prior.type,
        accepted=tally.accepted,
        rejected=tally.rejected,
        evsi_dollars=evsi_dollars,
    )

    return EVSIResult(
        evsi_dollars=evsi_dollars,
        default_decision=default_decision,
        probability_clears_threshold=effective.probability_clears_threshold,
        probability_test_changes_decision=decision_changes / tally.accepted,
        num_samples=tally.accepted,
        num_rejected=tally.rejected,
        standard_error=se,
        effective_prior_mean=effective.mean,
        warnings=warnings,
    )


def calculate_evsi_normal_fast_path(inputs: EVSIInputs) -> EVSIResult:
    prior = inputs.prior
    if prior.type != "normal":
        raise UnsupportedPriorError(
            f"Normal fast path requires a normal prior, got '{prior.type}'", prior.type
        )

    mu = prior.mu
    sigma = prior.sigma
    cr0 = inputs.baseline_conversion_rate
    threshold_lift = inputs.threshold_lift
    default_decision = determine_default_decision(mu, threshold_lift)

    # Point-mass prior: nothing to learn; checked before any division by sigma
    if sigma == 0:
        return EVSIResult(
            evsi_dollars=0.0,
            default_decision=default_decision,
            probability_clears_threshold=1.0 if mu >= threshold_lift else 0.0,
            probability_test_changes_decision=0.0,
            warnings=guard_warnings(cr0),
        )

    reason = no_information_reason(cr0, inputs.n_control, inputs.n_variant)
    if reason is not None:
        warnings = guard_warnings(cr0)
        log_calculation_warnings(logger, warnings, engine="evsi_fast_path")
        logger.debug("evsi_no_information", reason=reason)
        return EVSIResult(
            evsi_dollars=0.0,
            default_decision=default_decision,
            probability_clears_threshold=no_information_probability(reason, prior, threshold_lift),
            probability_test_changes_decision=0.0,
            warnings=warnings,
        )

    se = se_of_relative_lift(cr0, inputs.n_control, inputs.n_variant)

    warnings: List[CalculationWarning] = []
    rare_events = rare_events_warning(cr0, inputs.n_control, inputs.n_variant)
    if rare_events is not None:
        warnings.append(rare_events)
    log_calculation_warnings(logger, warnings, engine="evsi_fast_path")

    data_precision = 1 / (se * se)
    prior_precision = 1 / (sigma * sigma)
    posterior_precision = prior_precision + data_precision

    # Spread of the posterior mean before the data arrive
    sigma_preposterior = sigma * math.sqrt(data_precision / posterior_precision)

    loss, _, _, cdf_z = normal_opportunity_loss(mu, sigma_preposterior, threshold_lift, default_decision)
    evsi_dollars = max(0.0, inputs.k * loss)

    if default_decision == DecisionEnum.SHIP:
        probability_test_changes_decision = cdf_z
    else:
        probability_test_changes_decision = 1 - cdf_z

    logger.debug(
        "evsi_fast_path_calculated",
        evsi_dollars=evsi_dollars,
        sigma_preposterior=sigma_preposterior,
    )

    return EVSIResult(
        evsi_dollars=evsi_dollars,
        default_decision=default_decision,
        probability_clears_threshold=1 - standard_normal_cdf((threshold_lift - mu) / sigma),
        probability_test_changes_decision=probability_test_changes_decision,
        standard_error=se,
        effective_prior_mean=mu,
        warnings=warnings,
    )


def normal_prior_within_bounds(
    prior: PriorDistribution, cr0: float, truncation_probability: Optional[float] = None
) -> bool:
    """True when a Normal prior puts negligible mass outside [L_min, L_max].

    Only then does the closed form price the same distribution the Monte Carlo
    engine and the truncation-aware EVPI see.
    """
    if truncation_probability is None:
        truncation_probability = get_settings().TRUNCATION_PROBABILITY

    if prior.sigma == 0:
        return True

    l_max = lift_feasibility_bounds(cr0).l_max
    below = probability_below_min_lift(prior.mu, prior.sigma)
    above = 1 - standard_normal_cdf((l_max - prior.mu) / prior.sigma)
    return below <= truncation_probability and above <= truncation_probability


def calculate_evsi(
    inputs: EVSIInputs,
    num_samples: Optional[int] = None,
    rng: Optional[RandomSource] = None,
) -> EVSIResult:
    """Closed form for Normal priors that fit the feasible range, Monte Carlo otherwise."""
    prior = inputs.prior
    if prior.type == "normal" and normal_prior_within_bounds(prior, inputs.baseline_conversion_rate):
        return calculate_evsi_normal_fast_path(inputs)

    if prior.type == "normal":
        logger.debug("evsi_fast_path_skipped", reason="prior_outside_feasible_bounds")
    return calculate_evsi_monte_carlo(inputs, num_samples=num_samples, rng=rng)

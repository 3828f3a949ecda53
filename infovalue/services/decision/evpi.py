"""
EVPI: expected value of perfect information about the true lift.

Closed form for a Normal prior N(mu, sigma^2) and threshold T, with
z = (T - mu) / sigma:

    ship:       EVPI = K * [(T - mu) * Phi(z) + sigma * phi(z)]
    dont-ship:  EVPI = K * [(mu - T) * (1 - Phi(z)) + sigma * phi(z)]

When the prior puts more than TRUNCATION_PROBABILITY of its mass below
L = -1, the Monte Carlo engines reject those draws, so EVPI switches to the
same truncated distribution and integrates the opportunity loss on a grid
instead of using the closed form.
"""

import math
from typing import List, Optional

import structlog

from infovalue.config import get_settings
from infovalue.core.logging import log_calculation_warnings
from infovalue.models.schemas import (
    CalculationWarning,
    DecisionEnum,
    EdgeCaseFlags,
    EVPIInputs,
    EVPIResult,
    TruncationDiagnostics,
)
from infovalue.services.decision.derived import (
    MIN_LIFT,
    derive_k,
    detect_edge_cases,
    determine_default_decision,
    probability_below_min_lift,
)
from infovalue.services.decision.experiment_math import invalid_cr0_warning, is_valid_cr0
from infovalue.services.decision.statistics import standard_normal_cdf, standard_normal_pdf
from infovalue.services.decision.truncated_normal import (
    truncated_normal_cdf,
    truncated_normal_mean,
    truncated_normal_pdf,
    truncated_normal_variance,
)

logger = structlog.get_logger(__name__)

# Upper edge of the truncated integration grid, in prior sigmas above mu
GRID_WIDTH_SIGMAS = 6.0
GRID_EPSILON = 1e-6


def normal_opportunity_loss(mu: float, sigma: float, threshold_lift: float, decision: DecisionEnum):
    """Expected loss per unit lift of acting on ``decision`` under N(mu, sigma^2).

    Returns (loss, z, phi(z), Phi(z)); sigma must be positive.
    """
    z = (threshold_lift - mu) / sigma
    pdf_z = standard_normal_pdf(z)
    cdf_z = standard_normal_cdf(z)

    if decision == DecisionEnum.SHIP:
        loss = (threshold_lift - mu) * cdf_z + sigma * pdf_z
    else:
        loss = (mu - threshold_lift) * (1 - cdf_z) + sigma * pdf_z

    return loss, z, pdf_z, cdf_z


def calculate_evpi(inputs: EVPIInputs, num_bins: Optional[int] = None) -> EVPIResult:
    settings = get_settings()
    if num_bins is None:
        num_bins = settings.EVPI_INTEGRATION_BINS

    mu = inputs.prior.mu
    sigma = inputs.prior.sigma
    threshold_lift = inputs.threshold_lift

    k = derive_k(inputs.annual_visitors, inputs.baseline_conversion_rate, inputs.value_per_conversion)
    threshold_dollars = k * threshold_lift

    warnings: List[CalculationWarning] = []
    if not is_valid_cr0(inputs.baseline_conversion_rate):
        warnings.append(invalid_cr0_warning(inputs.baseline_conversion_rate))
    log_calculation_warnings(logger, warnings, engine="evpi")

    if sigma == 0:
        result = _point_mass_evpi(k, mu, threshold_lift, threshold_dollars, warnings)
    elif probability_below_min_lift(mu, sigma) > settings.TRUNCATION_PROBABILITY:
        result = _truncated_evpi(k, mu, sigma, threshold_lift, threshold_dollars, num_bins, warnings)
    else:
        result = _closed_form_evpi(k, mu, sigma, threshold_lift, threshold_dollars, warnings)

    logger.debug(
        "evpi_calculated",
        evpi_dollars=result.evpi_dollars,
        default_decision=result.default_decision.value,
        truncated=result.truncation is not None,
    )
    return result


def _point_mass_evpi(
    k: float,
    mu: float,
    threshold_lift: float,
    threshold_dollars: float,
    warnings: List[CalculationWarning],
) -> EVPIResult:
    # No uncertainty, so information is worthless and the decision is never wrong
    clears = mu >= threshold_lift
    if mu == threshold_lift:
        z_score = 0.0
    else:
        z_score = math.inf if threshold_lift > mu else -math.inf

    return EVPIResult(
        evpi_dollars=0.0,
        default_decision=determine_default_decision(mu, threshold_lift),
        probability_clears_threshold=1.0 if clears else 0.0,
        chance_of_being_wrong=0.0,
        k=k,
        threshold_lift=threshold_lift,
        threshold_dollars=threshold_dollars,
        z_score=z_score,
        pdf_at_z=0.0,
        cdf_at_z=0.0 if clears else 1.0,
        edge_cases=EdgeCaseFlags(
            truncation_applied=False,
            near_zero_sigma=True,
            prior_one_sided=mu != threshold_lift,
        ),
        warnings=warnings,
    )


def _closed_form_evpi(
    k: float,
    mu: float,
    sigma: float,
    threshold_lift: float,
    threshold_dollars: float,
    warnings: List[CalculationWarning],
) -> EVPIResult:
    default_decision = determine_default_decision(mu, threshold_lift)
    loss, z_score, pdf_z, cdf_z = normal_opportunity_loss(mu, sigma, threshold_lift, default_decision)

    # Non-negative in exact arithmetic
    evpi_dollars = max(0.0, k * loss)

    probability_clears_threshold = 1 - cdf_z
    if default_decision == DecisionEnum.SHIP:
        chance_of_being_wrong = cdf_z
    else:
        chance_of_being_wrong = probability_clears_threshold

    return EVPIResult(
        evpi_dollars=evpi_dollars,
        default_decision=default_decision,
        probability_clears_threshold=probability_clears_threshold,
        chance_of_being_wrong=chance_of_being_wrong,
        k=k,
        threshold_lift=threshold_lift,
        threshold_dollars=threshold_dollars,
        z_score=z_score,
        pdf_at_z=pdf_z,
        cdf_at_z=cdf_z,
        edge_cases=detect_edge_cases(sigma, mu, cdf_z),
        warnings=warnings,
    )


def _truncated_evpi(
    k: float,
    mu: float,
    sigma: float,
    threshold_lift: float,
    threshold_dollars: float,
    num_bins: int,
    warnings: List[CalculationWarning],
) -> EVPIResult:
    truncated_mean = truncated_normal_mean(mu, sigma, MIN_LIFT)
    truncated_sigma = math.sqrt(truncated_normal_variance(mu, sigma, MIN_LIFT))

    # The decision follows the distribution the simulation actually samples
    default_decision = determine_default_decision(truncated_mean, threshold_lift)

    upper = max(mu + GRID_WIDTH_SIGMAS * sigma, MIN_LIFT + GRID_EPSILON)
    bin_width = (upper - MIN_LIFT) / num_bins

    expected_loss = 0.0
    left_cdf = 0.0
    for i in range(num_bins):
        right = MIN_LIFT + (i + 1) * bin_width
        right_cdf = truncated_normal_cdf(right, mu, sigma, MIN_LIFT)
        midpoint = right - bin_width / 2

        if default_decision == DecisionEnum.SHIP:
            loss = max(0.0, threshold_lift - midpoint)
        else:
            loss = max(0.0, midpoint - threshold_lift)

        expected_loss += (right_cdf - left_cdf) * loss
        left_cdf = right_cdf

    evpi_dollars = max(0.0, k * expected_loss)

    cdf_at_threshold = truncated_normal_cdf(threshold_lift, mu, sigma, MIN_LIFT)
    pdf_at_threshold = truncated_normal_pdf(threshold_lift, mu, sigma, MIN_LIFT)
    probability_clears_threshold = 1 - cdf_at_threshold
    if default_decision == DecisionEnum.SHIP:
        chance_of_being_wrong = cdf_at_threshold
    else:
        chance_of_being_wrong = probability_clears_threshold

    edge_cases = detect_edge_cases(sigma, mu, cdf_at_threshold).model_copy(
        update={"truncation_applied": True}
    )

    return EVPIResult(
        evpi_dollars=evpi_dollars,
        default_decision=default_decision,
        probability_clears_threshold=probability_clears_threshold,
        chance_of_being_wrong=chance_of_being_wrong,
        k=k,
        threshold_lift=threshold_lift,
        threshold_dollars=threshold_dollars,
        z_score=math.nan,
        pdf_at_z=math.nan,
        cdf_at_z=math.nan,
        edge_cases=edge_cases,
        truncation=TruncationDiagnostics(
            truncated_mean=truncated_mean,
            truncated_sigma=truncated_sigma,
            pdf_at_threshold=pdf_at_threshold,
            cdf_at_threshold=cdf_at_threshold,
        ),
        warnings=warnings,
    )

"""
Net value of running a test, i.e. EVSI minus the cost of delay.

Each prior draw plays out a year split into three periods:

1. Test period (duration / 365): only ``variant_fraction`` of traffic sees
   the variant, earning variant_fraction * K * (L - T) * test_fraction.
2. Decision latency: neither arm is rolled out; contributes nothing.
3. Remaining year: full rollout iff the posterior decision is ship.

The no-test baseline applies the default decision for the whole year. The
net value is the mean difference and is NOT clamped at zero: a negative
value means the test costs more than it is worth.
"""

from typing import List, Optional

import structlog

from infovalue.config import get_settings
from infovalue.core.logging import log_calculation_warnings
from infovalue.core.random import RandomSource, resolve_rng
from infovalue.models.schemas import (
    CalculationWarning,
    DecisionEnum,
    NetValueInputs,
    NetValueResult,
)
from infovalue.services.decision.derived import determine_default_decision
from infovalue.services.decision.distributions import get_prior_mean
from infovalue.services.decision.evsi import (
    SimulationTally,
    compute_effective_prior_metrics,
    guard_warnings,
    high_rejection_warning,
    no_information_probability,
    no_information_reason,
    simulate_posterior_decisions,
)
from infovalue.services.decision.experiment_math import rare_events_warning, se_of_relative_lift

logger = structlog.get_logger(__name__)

DAYS_PER_YEAR = 365


def calculate_net_value(
    inputs: NetValueInputs,
    num_samples: Optional[int] = None,
    rng: Optional[RandomSource] = None,
) -> NetValueResult:
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
        log_calculation_warnings(logger, warnings, engine="net_value")
        logger.debug("net_value_no_information", reason=reason)
        return NetValueResult(
            net_value_dollars=0.0,
            max_test_budget_dollars=0.0,
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

    effective = compute_effective_prior_metrics(prior, threshold_lift, cr0, rng=rng)

    test_fraction = inputs.test_duration_days / DAYS_PER_YEAR
    latency_fraction = inputs.decision_latency_days / DAYS_PER_YEAR
    remaining_fraction = max(0.0, 1 - test_fraction - latency_fraction)

    tally = SimulationTally()
    sum_during_test = 0.0
    sum_after_decision = 0.0
    sum_without_test = 0.0
    decision_changes = 0

    for l_true, posterior_decision in simulate_posterior_decisions(
        prior, threshold_lift, cr0, se, num_samples, rng, tally
    ):
        annual_value = k * (l_true - threshold_lift)

        sum_during_test += inputs.variant_fraction * annual_value * test_fraction
        if posterior_decision == DecisionEnum.SHIP:
            sum_after_decision += annual_value * remaining_fraction
        if default_decision == DecisionEnum.SHIP:
            sum_without_test += annual_value
        if posterior_decision != default_decision:
            decision_changes += 1

    high_rejection = high_rejection_warning(tally)
    if high_rejection is not None:
        warnings.append(high_rejection)
    log_calculation_warnings(logger, warnings, engine="net_value")

    if tally.accepted == 0:
        logger.debug("net_value_no_information", reason="all_samples_rejected", rejected=tally.rejected)
        return NetValueResult(
            net_value_dollars=0.0,
            max_test_budget_dollars=0.0,
            default_decision=default_decision,
            probability_clears_threshold=effective.probability_clears_threshold,
            probability_test_changes_decision=0.0,
            num_rejected=tally.rejected,
            standard_error=se,
            effective_prior_mean=effective.mean,
            warnings=warnings,
        )

    avg_during_test = sum_during_test / tally.accepted
    avg_after_decision = sum_after_decision / tally.accepted
    avg_without_test = sum_without_test / tally.accepted
    net_value_dollars = avg_during_test + avg_after_decision - avg_without_test

    logger.debug(
        "net_value_calculated",
        prior_type=prior.type,
        accepted=tally.accepted,
        rejected=tally.rejected,
        net_value_dollars=net_value_dollars,
    )

    return NetValueResult(
        net_value_dollars=net_value_dollars,
        max_test_budget_dollars=max(0.0, net_value_dollars),
        default_decision=default_decision,
        probability_clears_threshold=effective.probability_clears_threshold,
        probability_test_changes_decision=decision_changes / tally.accepted,
        num_samples=tally.accepted,
        num_rejected=tally.rejected,
        standard_error=se,
        effective_prior_mean=effective.mean,
        avg_value_during_test=avg_during_test,
        avg_value_after_decision=avg_after_decision,
        avg_value_without_test=avg_without_test,
        warnings=warnings,
    )

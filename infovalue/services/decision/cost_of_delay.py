"""
Cost of delay: value forgone while a test runs and a decision is pending.

Deterministic special case of the net value simulation with a point-mass
prior at mu. Only applies when the default decision is ship (mu >= T):

    EV_day = K * (mu - T) / 365
    CoD    = (1 - variant_fraction) * EV_day * test_days + EV_day * latency_days

During the test only the control group misses the benefit; during decision
latency everyone does.
"""

import structlog

from infovalue.models.schemas import CostOfDelayInputs, CostOfDelayResult
from infovalue.services.decision.net_value import DAYS_PER_YEAR

logger = structlog.get_logger(__name__)


def calculate_cost_of_delay(inputs: CostOfDelayInputs) -> CostOfDelayResult:
    if inputs.mu < inputs.threshold_lift:
        return CostOfDelayResult(cod_dollars=0.0, daily_opportunity_cost=0.0, cod_applies=False)

    daily_value = inputs.k * (inputs.mu - inputs.threshold_lift) / DAYS_PER_YEAR

    control_fraction = 1 - inputs.variant_fraction
    cod_during_test = control_fraction * daily_value * inputs.test_duration_days
    cod_during_latency = daily_value * inputs.decision_latency_days
    cod_dollars = cod_during_test + cod_during_latency

    logger.debug("cost_of_delay_calculated", cod_dollars=cod_dollars, daily_value=daily_value)

    return CostOfDelayResult(
        cod_dollars=cod_dollars,
        daily_opportunity_cost=daily_value,
        cod_applies=True,
    )

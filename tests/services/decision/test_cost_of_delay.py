import pytest
from pydantic import ValidationError

from infovalue.models.schemas import CostOfDelayInputs
from infovalue.services.decision.cost_of_delay import calculate_cost_of_delay


def make_inputs(**overrides):
    params = dict(
        k=5_000_000,
        mu=0.02,
        threshold_lift=0.0,
        test_duration_days=30,
        variant_fraction=0.5,
        decision_latency_days=7,
    )
    params.update(overrides)
    return CostOfDelayInputs(**params)


class TestCostOfDelay:
    def test_control_and_latency_components(self):
        result = calculate_cost_of_delay(make_inputs())

        daily = 5_000_000 * 0.02 / 365
        assert result.cod_applies
        assert result.daily_opportunity_cost == pytest.approx(daily)
        assert result.cod_dollars == pytest.approx(0.5 * daily * 30 + daily * 7)

    def test_dont_ship_has_no_delay_cost(self):
        result = calculate_cost_of_delay(make_inputs(mu=-0.01))
        assert not result.cod_applies
        assert result.cod_dollars == 0.0
        assert result.daily_opportunity_cost == 0.0

    def test_all_traffic_on_variant(self):
        result = calculate_cost_of_delay(make_inputs(variant_fraction=1.0, decision_latency_days=0))
        assert result.cod_dollars == 0.0

    def test_tie_applies_with_zero_cost(self):
        result = calculate_cost_of_delay(make_inputs(mu=0.01, threshold_lift=0.01))
        assert result.cod_applies
        assert result.cod_dollars == 0.0

    def test_variant_fraction_validated(self):
        with pytest.raises(ValidationError):
            make_inputs(variant_fraction=1.5)

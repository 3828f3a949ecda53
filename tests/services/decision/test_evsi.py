import math

import numpy as np
import pytest
from structlog.testing import capture_logs

from infovalue.models.schemas import (
    DecisionEnum,
    EVPIInputs,
    EVSIInputs,
    NormalPrior,
    StudentTPrior,
    UniformPrior,
    WarningCodeEnum,
)
from infovalue.services.decision.evpi import calculate_evpi
from infovalue.services.decision.evsi import (
    build_posterior_mean,
    calculate_evsi,
    calculate_evsi_monte_carlo,
    calculate_evsi_normal_fast_path,
    compute_effective_prior_metrics,
    compute_posterior_mean,
)
from infovalue.services.decision.exceptions import DecisionEngineError, UnsupportedPriorError

K = 5_000_000


def make_inputs(
    prior=None, baseline_conversion_rate=0.05, n_control=10000, n_variant=10000, threshold_lift=0.0, **kwargs
):
    return EVSIInputs(
        k=K,
        baseline_conversion_rate=baseline_conversion_rate,
        threshold_lift=threshold_lift,
        prior=prior or NormalPrior(mu=0.0, sigma=0.05),
        n_control=n_control,
        n_variant=n_variant,
        **kwargs,
    )


class TestPosteriorMean:
    """Tests for E[L | L_hat] across prior families."""

    def test_normal_shrinkage(self):
        # Equal prior and sampling variance: halfway between l_hat and mu
        prior = NormalPrior(mu=0.0, sigma=0.05)
        assert compute_posterior_mean(0.04, 0.05, prior) == pytest.approx(0.02)

    def test_normal_point_mass_ignores_data(self):
        prior = NormalPrior(mu=0.03, sigma=0.0)
        assert compute_posterior_mean(0.5, 0.01, prior) == 0.03

    def test_non_finite_inputs_return_prior_mean(self):
        prior = UniformPrior(low=-0.1, high=0.3)
        assert compute_posterior_mean(math.nan, 0.01, prior) == pytest.approx(0.1)
        assert compute_posterior_mean(0.05, math.inf, prior) == pytest.approx(0.1)

    def test_uniform_inside_support(self):
        prior = UniformPrior(low=-0.1, high=0.1)
        assert compute_posterior_mean(0.05, 1e-4, prior) == pytest.approx(0.05, abs=1e-3)

    def test_uniform_clamps_to_support(self):
        prior = UniformPrior(low=-0.1, high=0.1)
        assert compute_posterior_mean(0.5, 1e-4, prior) == pytest.approx(0.1, abs=1e-3)

    def test_student_t_shrinks_toward_location(self):
        prior = StudentTPrior(mu=0.0, sigma=0.05, df=5)
        value = compute_posterior_mean(0.1, 0.05, prior, cr0=0.05)
        assert 0.0 < value < 0.1

    def test_student_t_small_se_tracks_observation(self):
        # Linear-space weights would all underflow to zero here
        prior = StudentTPrior(mu=0.0, sigma=0.05, df=5)
        value = compute_posterior_mean(0.02, 1e-5, prior, cr0=0.05)
        assert math.isfinite(value)
        grid_step = 12 * 0.05 / 200
        assert abs(value - 0.02) <= grid_step

    def test_student_t_inverted_grid_falls_back(self):
        # Window [1.4, 2.6] lies entirely above L_max = 1 for CR0 = 0.5
        prior = StudentTPrior(mu=2.0, sigma=0.1, df=5)
        assert compute_posterior_mean(0.3, 0.05, prior, cr0=0.5) == 1.0

    def test_builder_is_reusable(self):
        posterior_mean = build_posterior_mean(StudentTPrior(mu=0.0, sigma=0.05, df=5), 0.03, 0.05)
        assert posterior_mean(-0.05) < posterior_mean(0.0) < posterior_mean(0.05)


class TestEffectivePriorMetrics:
    def test_untruncated_prior(self):
        metrics = compute_effective_prior_metrics(
            NormalPrior(mu=0.0, sigma=0.05), 0.0, 0.05, rng=np.random.default_rng(1)
        )
        assert metrics.accepted == 2000
        assert metrics.mean == pytest.approx(0.0, abs=0.01)
        assert metrics.probability_clears_threshold == pytest.approx(0.5, abs=0.05)

    def test_truncation_raises_mean(self):
        metrics = compute_effective_prior_metrics(
            NormalPrior(mu=-0.9, sigma=0.3), 0.0, 0.05, num_samples=1000, rng=np.random.default_rng(2)
        )
        assert metrics.mean > -0.9

    def test_all_rejected_falls_back(self):
        prior = UniformPrior(low=2.0, high=3.0)
        metrics = compute_effective_prior_metrics(prior, 0.0, 0.5, num_samples=50, rng=np.random.default_rng(3))
        assert metrics.accepted == 0
        assert metrics.mean == pytest.approx(2.5)
        assert metrics.probability_clears_threshold == 1.0


class TestMonteCarlo:
    """Tests for the Monte Carlo pre-posterior engine."""

    def test_agrees_with_fast_path(self):
        inputs = make_inputs()
        monte_carlo = calculate_evsi_monte_carlo(inputs, num_samples=10000, rng=np.random.default_rng(12345))
        fast_path = calculate_evsi_normal_fast_path(inputs)

        assert monte_carlo.evsi_dollars == pytest.approx(fast_path.evsi_dollars, rel=0.15)
        assert monte_carlo.probability_test_changes_decision == pytest.approx(
            fast_path.probability_test_changes_decision, abs=0.05
        )
        assert monte_carlo.num_samples == 10000
        assert monte_carlo.num_rejected == 0

    def test_reports_standard_error(self):
        result = calculate_evsi_monte_carlo(make_inputs(), num_samples=500, rng=np.random.default_rng(4))
        assert result.standard_error == pytest.approx(math.sqrt(19 * 2e-4))
        assert result.effective_prior_mean is not None

    def test_student_t_prior(self):
        prior = StudentTPrior(mu=0.0, sigma=0.05, df=5)
        result = calculate_evsi_monte_carlo(
            make_inputs(prior=prior), num_samples=2000, rng=np.random.default_rng(5)
        )
        assert result.evsi_dollars > 0
        assert result.num_samples == 2000
        assert 0 <= result.probability_test_changes_decision <= 1

    def test_uniform_prior(self):
        prior = UniformPrior(low=-0.1, high=0.1)
        result = calculate_evsi_monte_carlo(
            make_inputs(prior=prior), num_samples=2000, rng=np.random.default_rng(6)
        )
        assert result.evsi_dollars > 0
        assert result.default_decision == DecisionEnum.SHIP

    def test_num_samples_from_inputs(self):
        result = calculate_evsi_monte_carlo(make_inputs(num_samples=300), rng=np.random.default_rng(7))
        assert result.num_samples == 300

    def test_seeded_runs_are_reproducible(self):
        inputs = make_inputs(prior=UniformPrior(low=-0.1, high=0.1))
        first = calculate_evsi_monte_carlo(inputs, num_samples=500, rng=np.random.default_rng(8))
        second = calculate_evsi_monte_carlo(inputs, num_samples=500, rng=np.random.default_rng(8))
        assert first == second

    def test_high_rejection_warning(self):
        # About a third of N(-0.9, 0.3) lies below -100% lift
        prior = NormalPrior(mu=-0.9, sigma=0.3)
        result = calculate_evsi_monte_carlo(
            make_inputs(prior=prior), num_samples=1000, rng=np.random.default_rng(9)
        )
        codes = [w.code for w in result.warnings]
        assert WarningCodeEnum.HIGH_REJECTION in codes
        assert result.num_rejected > 0

    def test_rare_events_warning(self):
        result = calculate_evsi_monte_carlo(
            make_inputs(baseline_conversion_rate=0.001, n_control=1000, n_variant=1000),
            num_samples=200,
            rng=np.random.default_rng(10),
        )
        assert WarningCodeEnum.RARE_EVENTS in [w.code for w in result.warnings]

    def test_all_draws_rejected(self):
        prior = UniformPrior(low=2.0, high=3.0)
        result = calculate_evsi_monte_carlo(
            make_inputs(prior=prior, baseline_conversion_rate=0.5),
            num_samples=20,
            rng=np.random.default_rng(11),
        )
        assert result.evsi_dollars == 0.0
        assert result.num_samples == 0
        assert result.num_rejected == 200


class TestNoInformationGuards:
    @pytest.mark.parametrize("n_control,n_variant", [(0, 10000), (10000, 0)])
    def test_empty_arm(self, n_control, n_variant):
        result = calculate_evsi_monte_carlo(make_inputs(n_control=n_control, n_variant=n_variant))
        assert result.evsi_dollars == 0.0
        assert result.num_samples == 0
        assert result.num_rejected == 0
        assert result.probability_clears_threshold == pytest.approx(0.5, abs=1e-6)

    @pytest.mark.parametrize("cr0", [0.0, 1.0])
    def test_invalid_baseline(self, cr0):
        result = calculate_evsi_monte_carlo(make_inputs(baseline_conversion_rate=cr0))
        assert result.evsi_dollars == 0.0
        assert result.probability_clears_threshold == 0.5
        assert [w.code for w in result.warnings] == [WarningCodeEnum.INVALID_CR0]

    def test_invalid_baseline_is_logged(self):
        with capture_logs() as logs:
            calculate_evsi_monte_carlo(make_inputs(baseline_conversion_rate=0.0))
        warnings = [entry for entry in logs if entry["event"] == "calculation_warning"]
        assert [entry["code"] for entry in warnings] == ["invalid_cr0"]


class TestNormalFastPath:
    def test_matches_preposterior_formula(self):
        result = calculate_evsi_normal_fast_path(make_inputs())
        se_squared = 19 * 2e-4
        sigma_preposterior = 0.05 * math.sqrt((1 / se_squared) / (1 / 0.05**2 + 1 / se_squared))
        expected = K * sigma_preposterior / math.sqrt(2 * math.pi)
        assert result.evsi_dollars == pytest.approx(expected, rel=1e-6)
        assert result.probability_test_changes_decision == pytest.approx(0.5, abs=1e-6)

    def test_bounded_by_evpi(self):
        evpi = calculate_evpi(
            EVPIInputs(
                baseline_conversion_rate=0.05,
                annual_visitors=1_000_000,
                value_per_conversion=100,
                prior=NormalPrior(mu=0.01, sigma=0.05),
                threshold_lift=0.0,
            )
        )
        inputs = make_inputs(prior=NormalPrior(mu=0.01, sigma=0.05))
        fast_path = calculate_evsi_normal_fast_path(inputs)
        monte_carlo = calculate_evsi_monte_carlo(inputs, num_samples=5000, rng=np.random.default_rng(13))

        assert fast_path.evsi_dollars <= evpi.evpi_dollars
        assert monte_carlo.evsi_dollars <= evpi.evpi_dollars

    def test_more_traffic_is_worth_more(self):
        small = calculate_evsi_normal_fast_path(make_inputs(n_control=1000, n_variant=1000))
        large = calculate_evsi_normal_fast_path(make_inputs(n_control=100000, n_variant=100000))
        assert large.evsi_dollars > small.evsi_dollars

    def test_zero_sigma_short_circuits(self):
        result = calculate_evsi_normal_fast_path(make_inputs(prior=NormalPrior(mu=0.02, sigma=0.0)))
        assert result.evsi_dollars == 0.0
        assert result.probability_clears_threshold == 1.0

    def test_empty_arm_short_circuits(self):
        result = calculate_evsi_normal_fast_path(make_inputs(n_variant=0))
        assert result.evsi_dollars == 0.0
        assert not math.isnan(result.probability_test_changes_decision)

    def test_invalid_baseline(self):
        result = calculate_evsi_normal_fast_path(make_inputs(baseline_conversion_rate=1.0))
        assert result.evsi_dollars == 0.0
        assert result.probability_clears_threshold == 0.5

    def test_rejects_non_normal_prior(self):
        with pytest.raises(UnsupportedPriorError) as exc_info:
            calculate_evsi_normal_fast_path(make_inputs(prior=UniformPrior(low=-0.1, high=0.1)))
        assert exc_info.value.prior_type == "uniform"
        assert isinstance(exc_info.value, DecisionEngineError)
        assert isinstance(exc_info.value, ValueError)


class TestDispatcher:
    def test_normal_uses_closed_form(self):
        result = calculate_evsi(make_inputs())
        assert result.num_samples is None

    def test_other_families_use_monte_carlo(self):
        result = calculate_evsi(
            make_inputs(prior=UniformPrior(low=-0.1, high=0.1)),
            num_samples=200,
            rng=np.random.default_rng(14),
        )
        assert result.num_samples == 200

    def test_wide_normal_routes_to_monte_carlo(self):
        # N(0, 0.5) puts ~2.3% of its mass below L = -1
        prior = NormalPrior(mu=0.0, sigma=0.5)
        result = calculate_evsi(
            make_inputs(prior=prior, n_control=10_000_000, n_variant=10_000_000),
            num_samples=5000,
            rng=np.random.default_rng(21),
        )
        evpi = calculate_evpi(
            EVPIInputs(
                baseline_conversion_rate=0.05,
                annual_visitors=1_000_000,
                value_per_conversion=100,
                prior=prior,
                threshold_lift=0.0,
            )
        )
        assert result.num_samples == 5000
        assert result.evsi_dollars <= evpi.evpi_dollars * 1.1

    def test_mass_above_feasible_max_routes_to_monte_carlo(self):
        # CR0 = 0.5 caps lift at 1.0, about 16% of N(0.9, 0.1) lies above it
        result = calculate_evsi(
            make_inputs(prior=NormalPrior(mu=0.9, sigma=0.1), baseline_conversion_rate=0.5),
            num_samples=200,
            rng=np.random.default_rng(22),
        )
        assert result.num_samples == 200

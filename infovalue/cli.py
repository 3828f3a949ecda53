"""
CLI for the decision-economics engine.

Usage:
    infovalue evpi --annual-visitors 1000000 --baseline-rate 0.05 --value-per-conversion 100
    infovalue evsi --annual-visitors 1000000 --baseline-rate 0.05 --value-per-conversion 100 \\
        --prior student-t --mu 0 --sigma 0.05 --df 5 --n-control 10000 --n-variant 10000
    infovalue net-value ... --test-days 30 --variant-fraction 0.5 --latency-days 7
    infovalue cost-of-delay ... --mu 0.02 --test-days 30 --variant-fraction 0.5
"""

import argparse
import sys
from typing import List, Optional

from pydantic import ValidationError

from infovalue.core.logging import configure_logging
from infovalue.core.random import get_rng
from infovalue.models.schemas import (
    CostOfDelayInputs,
    EVPIInputs,
    EVSIInputs,
    NetValueInputs,
    NormalPrior,
    PriorDistribution,
    StudentTPrior,
    ThresholdUnitEnum,
    UniformPrior,
)
from infovalue.services.decision import (
    DecisionEngineError,
    calculate_cost_of_delay,
    calculate_evpi,
    calculate_evsi,
    calculate_net_value,
    compute_prior_from_interval,
    derive_k,
    normalize_threshold_to_lift,
)
from infovalue.services.decision.priors import DEFAULT_PRIOR

EXIT_USAGE = 2


def build_prior(args: argparse.Namespace) -> PriorDistribution:
    """Prior from --interval (percent) or the explicit family parameters."""
    if args.interval is not None:
        return compute_prior_from_interval(*args.interval)

    prior_type = getattr(args, "prior", "normal")
    if prior_type == "student-t":
        return StudentTPrior(mu=args.mu, sigma=args.sigma, df=args.df)
    if prior_type == "uniform":
        return UniformPrior(low=args.low, high=args.high)

    if args.mu is None and args.sigma is None:
        return DEFAULT_PRIOR
    return NormalPrior(mu=args.mu, sigma=args.sigma)


def resolve_economics(args: argparse.Namespace):
    """Return (K, T_L) from the shared economics flags."""
    k = derive_k(args.annual_visitors, args.baseline_rate, args.value_per_conversion)
    threshold_lift = normalize_threshold_to_lift(args.threshold, args.threshold_unit, k)
    return k, threshold_lift


def cmd_evpi(args: argparse.Namespace) -> str:
    _, threshold_lift = resolve_economics(args)
    inputs = EVPIInputs(
        baseline_conversion_rate=args.baseline_rate,
        annual_visitors=args.annual_visitors,
        value_per_conversion=args.value_per_conversion,
        prior=build_prior(args),
        threshold_lift=threshold_lift,
    )
    return calculate_evpi(inputs).model_dump_json(indent=2)


def cmd_evsi(args: argparse.Namespace) -> str:
    k, threshold_lift = resolve_economics(args)
    inputs = EVSIInputs(
        k=k,
        baseline_conversion_rate=args.baseline_rate,
        threshold_lift=threshold_lift,
        prior=build_prior(args),
        n_control=args.n_control,
        n_variant=args.n_variant,
        num_samples=args.samples,
    )
    return calculate_evsi(inputs, rng=get_rng(args.seed)).model_dump_json(indent=2)


def cmd_net_value(args: argparse.Namespace) -> str:
    k, threshold_lift = resolve_economics(args)
    inputs = NetValueInputs(
        k=k,
        baseline_conversion_rate=args.baseline_rate,
        threshold_lift=threshold_lift,
        prior=build_prior(args),
        n_control=args.n_control,
        n_variant=args.n_variant,
        num_samples=args.samples,
        test_duration_days=args.test_days,
        variant_fraction=args.variant_fraction,
        decision_latency_days=args.latency_days,
    )
    return calculate_net_value(inputs, rng=get_rng(args.seed)).model_dump_json(indent=2)


def cmd_cost_of_delay(args: argparse.Namespace) -> str:
    k, threshold_lift = resolve_economics(args)
    # Only the prior mean matters here, so --mu alone is enough
    mu = args.mu if args.interval is None and args.mu is not None else build_prior(args).mu
    inputs = CostOfDelayInputs(
        k=k,
        mu=mu,
        threshold_lift=threshold_lift,
        test_duration_days=args.test_days,
        variant_fraction=args.variant_fraction,
        decision_latency_days=args.latency_days,
    )
    return calculate_cost_of_delay(inputs).model_dump_json(indent=2)


def add_economics_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--annual-visitors", type=float, required=True, help="Visitors per year")
    parser.add_argument(
        "--baseline-rate",
        type=float,
        required=True,
        help="Baseline conversion rate as a decimal (e.g. 0.032)",
    )
    parser.add_argument(
        "--value-per-conversion", type=float, required=True, help="Dollars per conversion"
    )
    parser.add_argument(
        "--threshold",
        type=float,
        default=0.0,
        help="Decision threshold; percent lift or annual dollars (default: 0)",
    )
    parser.add_argument(
        "--threshold-unit",
        choices=[unit.value for unit in ThresholdUnitEnum],
        default=ThresholdUnitEnum.LIFT.value,
        help="Unit of --threshold (default: lift)",
    )


def add_normal_prior_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--mu", type=float, help="Prior mean lift as a decimal")
    parser.add_argument("--sigma", type=float, help="Prior standard deviation as a decimal")
    parser.add_argument(
        "--interval",
        type=float,
        nargs=2,
        metavar=("LOW", "HIGH"),
        help="90%% credible interval for lift in percent; overrides --mu/--sigma",
    )


def add_test_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--prior",
        choices=["normal", "student-t", "uniform"],
        default="normal",
        help="Prior family (default: normal)",
    )
    add_normal_prior_arguments(parser)
    parser.add_argument("--df", type=float, help="Student-t degrees of freedom")
    parser.add_argument("--low", type=float, help="Uniform lower bound as a decimal")
    parser.add_argument("--high", type=float, help="Uniform upper bound as a decimal")
    parser.add_argument("--n-control", type=int, required=True, help="Visitors in control")
    parser.add_argument("--n-variant", type=int, required=True, help="Visitors in variant")
    parser.add_argument("--samples", type=int, help="Monte Carlo draws (default: from settings)")
    parser.add_argument("--seed", type=int, help="Random seed for reproducibility")


def add_timing_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--test-days", type=float, required=True, help="Test duration in days")
    parser.add_argument(
        "--variant-fraction",
        type=float,
        default=0.5,
        help="Share of traffic in the variant (default: 0.5)",
    )
    parser.add_argument(
        "--latency-days",
        type=float,
        default=0.0,
        help="Days between test end and the ship decision (default: 0)",
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="infovalue",
        description="Value of information for A/B test decisions",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  EVPI with the default N(0, 5%) prior:
    infovalue evpi --annual-visitors 1000000 --baseline-rate 0.05 --value-per-conversion 100

  EVSI with a prior from a 90% interval of -5%..15%:
    infovalue evsi --annual-visitors 1000000 --baseline-rate 0.05 --value-per-conversion 100 \\
        --interval -5 15 --n-control 10000 --n-variant 10000
        """,
    )
    parser.add_argument("--log-level", help="Override INFOVALUE_LOG_LEVEL")

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    evpi_parser = subparsers.add_parser("evpi", help="Expected value of perfect information")
    add_economics_arguments(evpi_parser)
    add_normal_prior_arguments(evpi_parser)
    evpi_parser.set_defaults(func=cmd_evpi)

    evsi_parser = subparsers.add_parser("evsi", help="Expected value of sample information")
    add_economics_arguments(evsi_parser)
    add_test_arguments(evsi_parser)
    evsi_parser.set_defaults(func=cmd_evsi)

    net_parser = subparsers.add_parser("net-value", help="Net value of running the test")
    add_economics_arguments(net_parser)
    add_test_arguments(net_parser)
    add_timing_arguments(net_parser)
    net_parser.set_defaults(func=cmd_net_value)

    cod_parser = subparsers.add_parser("cost-of-delay", help="Closed-form cost of delay")
    add_economics_arguments(cod_parser)
    add_normal_prior_arguments(cod_parser)
    add_timing_arguments(cod_parser)
    cod_parser.set_defaults(func=cmd_cost_of_delay)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return EXIT_USAGE

    configure_logging(args.log_level)

    try:
        output = args.func(args)
    except (ValidationError, DecisionEngineError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_USAGE

    print(output)
    return 0


if __name__ == "__main__":
    sys.exit(main())

"""
Prior distribution primitives over relative lift.

One functional interface (pdf, cdf, sample, mean) over the three prior
families. Each function branches on the prior's ``type`` tag so the
per-family formulas sit side by side:

- normal: location-scale transform of the standard normal
- student-t: location-scale transform of scipy's standardized t(df)
- uniform: constant density on [low, high]

Degenerate parameters (sigma == 0, df <= 0, high <= low) collapse to a point
mass and never produce NaN or infinity. These functions are also the stable
surface used to draw prior density curves.
"""

import math
from typing import Optional

from scipy import stats as scipy_stats

from infovalue.core.random import RandomSource, resolve_rng
from infovalue.models.schemas import PriorDistribution
from infovalue.services.decision.experiment_math import sample_standard_normal
from infovalue.services.decision.statistics import standard_normal_cdf, standard_normal_pdf

# Density reported exactly at a point mass (a finite spike)
POINT_MASS_DENSITY = 1.0


def point_mass_location(prior: PriorDistribution) -> Optional[float]:
    """Return the atom's location if the prior is degenerate, else None."""
    if prior.type == "normal":
        return prior.mu if prior.sigma == 0 else None
    if prior.type == "student-t":
        return prior.mu if prior.sigma == 0 or prior.df <= 0 else None
    if prior.type == "uniform":
        return prior.low if not prior.high > prior.low else None
    raise ValueError(f"Unknown prior type: {prior.type}")


def pdf(lift: float, prior: PriorDistribution) -> float:
    atom = point_mass_location(prior)
    if atom is not None:
        return POINT_MASS_DENSITY if lift == atom else 0.0

    if prior.type == "normal":
        z = (lift - prior.mu) / prior.sigma
        return standard_normal_pdf(z) / prior.sigma

    if prior.type == "student-t":
        # scipy's t is the standardized form, so rescale the density by 1/sigma
        z = (lift - prior.mu) / prior.sigma
        return float(scipy_stats.t.pdf(z, prior.df)) / prior.sigma

    if lift < prior.low or lift > prior.high:
        return 0.0
    return 1.0 / (prior.high - prior.low)


def cdf(lift: float, prior: PriorDistribution) -> float:
    atom = point_mass_location(prior)
    if atom is not None:
        return 1.0 if lift >= atom else 0.0

    if prior.type == "normal":
        return standard_normal_cdf((lift - prior.mu) / prior.sigma)

    if prior.type == "student-t":
        return float(scipy_stats.t.cdf((lift - prior.mu) / prior.sigma, prior.df))

    if lift <= prior.low:
        return 0.0
    if lift >= prior.high:
        return 1.0
    return (lift - prior.low) / (prior.high - prior.low)


def sample(prior: PriorDistribution, rng: Optional[RandomSource] = None) -> float:
    atom = point_mass_location(prior)
    if atom is not None:
        return atom

    rng = resolve_rng(rng)

    if prior.type == "normal":
        return prior.mu + prior.sigma * sample_standard_normal(rng)

    if prior.type == "student-t":
        # Inverse CDF; the quantile is infinite at u == 0, so draw again
        while True:
            z = float(scipy_stats.t.ppf(rng.random(), prior.df))
            if math.isfinite(z):
                return prior.mu + prior.sigma * z

    return prior.low + rng.random() * (prior.high - prior.low)


def get_prior_mean(prior: PriorDistribution) -> float:
    if prior.type in ("normal", "student-t"):
        return prior.mu
    atom = point_mass_location(prior)
    if atom is not None:
        return atom
    return (prior.low + prior.high) / 2

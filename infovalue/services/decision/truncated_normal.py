"""
Truncated normal moments for N(mu, sigma^2) restricted to L >= lower or to [a, b].

With alpha = (lower - mu) / sigma, survival Z = 1 - Phi(alpha) and inverse
Mills ratio lambda = phi(alpha) / Z:

    E[L | L >= lower]   = mu + sigma * lambda
    Var[L | L >= lower] = sigma^2 * (1 + alpha * lambda - lambda^2)

When Z drops below MIN_SURVIVAL the distribution is treated as a point mass
at the bound. A non-positive sigma is a point mass at mu (moved onto the
support if mu lies outside it).
"""

from infovalue.services.decision.statistics import standard_normal_cdf, standard_normal_pdf

MIN_SURVIVAL = 1e-10


def _survival(mu: float, sigma: float, lower: float):
    alpha = (lower - mu) / sigma
    return alpha, 1 - standard_normal_cdf(alpha)


def truncated_normal_mean(mu: float, sigma: float, lower: float) -> float:
    if sigma <= 0:
        return max(mu, lower)

    alpha, z = _survival(mu, sigma, lower)
    if z < MIN_SURVIVAL:
        return lower

    inverse_mills = standard_normal_pdf(alpha) / z
    return max(lower, mu + sigma * inverse_mills)


def truncated_normal_variance(mu: float, sigma: float, lower: float) -> float:
    if sigma <= 0:
        return 0.0

    alpha, z = _survival(mu, sigma, lower)
    if z < MIN_SURVIVAL:
        return 0.0

    inverse_mills = standard_normal_pdf(alpha) / z
    multiplier = 1 + alpha * inverse_mills - inverse_mills * inverse_mills
    return max(0.0, sigma * sigma * multiplier)


def truncated_normal_cdf(x: float, mu: float, sigma: float, lower: float) -> float:
    """P(L <= x | L >= lower); 0 at and below the bound."""
    if x <= lower:
        return 0.0

    if sigma <= 0:
        return 1.0 if x >= max(mu, lower) else 0.0

    alpha, z = _survival(mu, sigma, lower)
    if z < MIN_SURVIVAL:
        return 1.0

    beta = (x - mu) / sigma
    value = (standard_normal_cdf(beta) - standard_normal_cdf(alpha)) / z
    return max(0.0, min(1.0, value))


def truncated_normal_pdf(x: float, mu: float, sigma: float, lower: float) -> float:
    if x < lower:
        return 0.0

    if sigma <= 0:
        return 0.0

    alpha, z = _survival(mu, sigma, lower)
    if z < MIN_SURVIVAL:
        # Approximate the Dirac spike at the bound with a large finite value
        return 1 / MIN_SURVIVAL if x == lower else 0.0

    beta = (x - mu) / sigma
    return standard_normal_pdf(beta) / (sigma * z)


def truncated_normal_mean_two_sided(mu: float, sigma: float, a: float, b: float) -> float:
    """E[X | a <= X <= b] for X ~ N(mu, sigma^2).

    Degenerate bounds or sigma clamp mu into [a, b]. If almost no mass lies in
    the interval the mean collapses to the nearer bound, or to mu when mu is
    already inside.
    """
    if not b > a or sigma <= 0:
        return max(a, min(b, mu))

    alpha = (a - mu) / sigma
    beta = (b - mu) / sigma
    mass = standard_normal_cdf(beta) - standard_normal_cdf(alpha)

    if mass < MIN_SURVIVAL:
        if mu <= a:
            return a
        if mu >= b:
            return b
        return mu

    mean = mu + sigma * (standard_normal_pdf(alpha) - standard_normal_pdf(beta)) / mass
    # Tail error in Phi can push the ratio past a bound
    return max(a, min(b, mean))

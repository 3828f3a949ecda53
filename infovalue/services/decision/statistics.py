import math

SQRT_2_PI = math.sqrt(2 * math.pi)

# Abramowitz & Stegun 7.1.26 coefficients for erfc, max abs error 7.5e-8
_AS_P = 0.3275911
_AS_A1 = 0.254829592
_AS_A2 = -0.284496736
_AS_A3 = 1.421413741
_AS_A4 = -1.453152027
_AS_A5 = 1.061405429


def standard_normal_pdf(z: float) -> float:
    return math.exp(-0.5 * z * z) / SQRT_2_PI


def standard_normal_cdf(z: float) -> float:
    """Phi(z) = 0.5 * erfc(-z / sqrt(2)) via the A&S rational approximation.

    Exactly 0 and 1 at -inf and +inf; NaN in, NaN out.
    """
    if math.isnan(z):
        return math.nan
    if math.isinf(z):
        return 0.0 if z < 0 else 1.0

    x = abs(z) / math.sqrt(2)
    t = 1.0 / (1.0 + _AS_P * x)
    erfc = ((((_AS_A5 * t + _AS_A4) * t + _AS_A3) * t + _AS_A2) * t + _AS_A1) * t * math.exp(-x * x)

    if z >= 0:
        return 1.0 - 0.5 * erfc
    return 0.5 * erfc

from typing import Optional, Protocol

import numpy as np

from infovalue.config import get_settings


class RandomSource(Protocol):
    """Anything that yields uniform floats in [0, 1) from ``random()``.

    ``numpy.random.Generator`` and ``random.Random`` both qualify, as does any
    deterministic generator a test wants to substitute.
    """

    def random(self) -> float: ...


def get_rng(seed: Optional[int] = None) -> np.random.Generator:
    if seed is None:
        seed = get_settings().RANDOM_SEED
    return np.random.default_rng(seed)


def resolve_rng(rng: Optional[RandomSource]) -> RandomSource:
    if rng is None:
        return get_rng()
    return rng

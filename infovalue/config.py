from functools import lru_cache
from typing import Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Application
    APP_NAME: str = "infovalue"
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = False

    # Monte Carlo
    DEFAULT_NUM_SAMPLES: int = 5000
    EFFECTIVE_PRIOR_SAMPLES: int = 2000
    MAX_ITERATION_MULTIPLIER: int = 10  # hard cap on rejection-sampling attempts
    RANDOM_SEED: Optional[int] = None

    # Numerical integration
    POSTERIOR_GRID_SIZE: int = 200
    POSTERIOR_GRID_WIDTH_SIGMAS: float = 6.0
    EVPI_INTEGRATION_BINS: int = 200

    # Advisory thresholds
    RARE_EVENTS_MIN_CONVERSIONS: float = 20.0
    HIGH_REJECTION_RATE: float = 0.10
    TRUNCATION_PROBABILITY: float = 0.001

    @field_validator("LOG_LEVEL", mode="before")
    @classmethod
    def normalize_log_level(cls, v):
        if isinstance(v, str):
            return v.strip().upper()
        return v

    class Config:
        env_file = ".env"
        env_prefix = "INFOVALUE_"
        case_sensitive = True


@lru_cache()
def get_settings() -> Settings:
    return Settings()

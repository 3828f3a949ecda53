from enum import Enum
from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, Field


class DecisionEnum(str, Enum):
    SHIP = "ship"
    DONT_SHIP = "dont-ship"


class ThresholdUnitEnum(str, Enum):
    DOLLARS = "dollars"
    LIFT = "lift"


class WarningCodeEnum(str, Enum):
    RARE_EVENTS = "rare_events"
    HIGH_REJECTION = "high_rejection"
    INVALID_CR0 = "invalid_cr0"


# Priors over relative lift (decimal units: 0.05 = 5%)


class NormalPrior(BaseModel):
    type: Literal["normal"] = "normal"
    mu: float = Field(..., description="Prior mean of relative lift")
    sigma: float = Field(..., ge=0, description="Prior standard deviation of relative lift")

    class Config:
        frozen = True
        allow_inf_nan = False


class StudentTPrior(BaseModel):
    type: Literal["student-t"] = "student-t"
    mu: float = Field(..., description="Location of the lift distribution")
    sigma: float = Field(..., ge=0, description="Scale of the lift distribution")
    df: float = Field(..., description="Degrees of freedom; df <= 0 collapses to a point mass")

    class Config:
        frozen = True
        allow_inf_nan = False


class UniformPrior(BaseModel):
    type: Literal["uniform"] = "uniform"
    low: float
    high: float

    class Config:
        frozen = True
        allow_inf_nan = False


PriorDistribution = Annotated[
    Union[NormalPrior, StudentTPrior, UniformPrior], Field(discriminator="type")
]


# Inputs


class EVPIInputs(BaseModel):
    baseline_conversion_rate: float = Field(..., description="CR0 as a decimal, e.g. 0.032")
    annual_visitors: float = Field(..., ge=0)
    value_per_conversion: float
    prior: NormalPrior
    threshold_lift: float = Field(..., description="T_L: decision threshold in lift units")

    class Config:
        frozen = True


class EVSIInputs(BaseModel):
    k: float = Field(..., description="Annual dollars per unit lift")
    baseline_conversion_rate: float
    threshold_lift: float
    prior: PriorDistribution
    n_control: int
    n_variant: int
    num_samples: Optional[int] = Field(None, gt=0, description="Monte Carlo draw override")

    class Config:
        frozen = True


class NetValueInputs(EVSIInputs):
    test_duration_days: float = Field(..., ge=0)
    variant_fraction: float = Field(..., ge=0, le=1)
    decision_latency_days: float = Field(0.0, ge=0)


class CostOfDelayInputs(BaseModel):
    k: float
    mu: float = Field(..., description="Prior mean lift used as the point-mass belief")
    threshold_lift: float
    test_duration_days: float = Field(..., ge=0)
    variant_fraction: float = Field(..., ge=0, le=1)
    decision_latency_days: float = Field(0.0, ge=0)

    class Config:
        frozen = True


# Results


class CalculationWarning(BaseModel):
    code: WarningCodeEnum
    message: str

    class Config:
        frozen = True


class EdgeCaseFlags(BaseModel):
    truncation_applied: bool
    near_zero_sigma: bool
    prior_one_sided: bool

    class Config:
        frozen = True


class TruncationDiagnostics(BaseModel):
    truncated_mean: float
    truncated_sigma: float
    pdf_at_threshold: float
    cdf_at_threshold: float

    class Config:
        frozen = True


class EVPIResult(BaseModel):
    evpi_dollars: float
    default_decision: DecisionEnum
    probability_clears_threshold: float
    chance_of_being_wrong: float
    k: float
    threshold_lift: float
    threshold_dollars: float
    # Standard-normal diagnostics; NaN when the truncation-aware path ran
    z_score: float
    pdf_at_z: float
    cdf_at_z: float
    edge_cases: EdgeCaseFlags
    truncation: Optional[TruncationDiagnostics] = None
    warnings: List[CalculationWarning] = Field(default_factory=list)

    class Config:
        frozen = True


class EVSIResult(BaseModel):
    evsi_dollars: float
    default_decision: DecisionEnum
    probability_clears_threshold: float
    probability_test_changes_decision: float
    num_samples: Optional[int] = None
    num_rejected: Optional[int] = None
    standard_error: Optional[float] = None
    effective_prior_mean: Optional[float] = None
    warnings: List[CalculationWarning] = Field(default_factory=list)

    class Config:
        frozen = True


class NetValueResult(BaseModel):
    net_value_dollars: float = Field(..., description="Can be negative")
    max_test_budget_dollars: float
    default_decision: DecisionEnum
    probability_clears_threshold: float
    probability_test_changes_decision: float
    num_samples: int = 0
    num_rejected: int = 0
    standard_error: Optional[float] = None
    effective_prior_mean: Optional[float] = None
    avg_value_during_test: float = 0.0
    avg_value_after_decision: float = 0.0
    avg_value_without_test: float = 0.0
    warnings: List[CalculationWarning] = Field(default_factory=list)

    class Config:
        frozen = True


class CostOfDelayResult(BaseModel):
    cod_dollars: float
    daily_opportunity_cost: float
    cod_applies: bool

    class Config:
        frozen = True

from infovalue.models.schemas import (  # noqa: F401
    CalculationWarning,
    CostOfDelayInputs,
    CostOfDelayResult,
    DecisionEnum,
    EdgeCaseFlags,
    EVPIInputs,
    EVPIResult,
    EVSIInputs,
    EVSIResult,
    NetValueInputs,
    NetValueResult,
    NormalPrior,
    PriorDistribution,
    StudentTPrior,
    ThresholdUnitEnum,
    TruncationDiagnostics,
    UniformPrior,
    WarningCodeEnum,
)

class DecisionEngineError(Exception):
    """Base class for contract violations raised by the decision engines."""


class UnsupportedPriorError(DecisionEngineError, ValueError):
    """Raised when an engine is handed a prior family it cannot evaluate."""

    def __init__(self, message: str, prior_type: str):
        super().__init__(message)
        self.prior_type = prior_type

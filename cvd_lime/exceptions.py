"""Errors raised when a pipeline stage receives input it cannot use."""


class CVDPipelineError(ValueError):
    """Base class for reportable pipeline failures."""


class SchemaError(CVDPipelineError):
    """Input table is empty, mis-shaped, or has unusable columns."""


class ZeroVarianceError(CVDPipelineError):
    """A feature column is constant, so min-max scaling is undefined."""

    def __init__(self, columns):
        self.columns = list(columns)
        super().__init__(
            f"Cannot min-max scale constant column(s): {', '.join(self.columns)}"
        )


class EmptyClassError(CVDPipelineError):
    """Class balancing found a label class with no records."""


class EvaluationError(CVDPipelineError):
    """Metrics cannot be computed from the given predictions."""


class OutOfRangeError(CVDPipelineError):
    """A record to explain lies outside the training feature range."""

    def __init__(self, violations):
        self.violations = dict(violations)
        details = ', '.join(
            f"{name}={value:.4g} not in [{low:.4g}, {high:.4g}]"
            for name, (value, low, high) in self.violations.items()
        )
        super().__init__(f"Record outside training distribution: {details}")

class ChangeEvaluationError(ValueError):
    """Base class for every error raised while evaluating an index time series."""


class InvalidDateError(ChangeEvaluationError):
    """A sample date could not be parsed. Aborts the whole evaluation."""


class InvalidSampleError(ChangeEvaluationError):
    """A sample is structurally malformed (missing key, non-numeric value)."""


class EmptySeriesError(ChangeEvaluationError):
    """
    No valid (non-null, finite) samples remain after normalization.
    Callers must report this as 'no data', never as 'no change'.
    """


class InvalidParameterError(ChangeEvaluationError):
    """Threshold, scale factor or statistic name is out of range / unknown."""

"""
Error taxonomy for the sales analytics pipeline.

Load-time errors (DateParseError) abort the whole run. The rest are raised
per series or per model and captured by the pipeline so sibling work carries on.
"""


class SalesAnalyticsError(Exception):
    """Base class for every error raised by the pipeline."""


class DateParseError(SalesAnalyticsError, ValueError):
    def __init__(self, column, value):
        self.column = column
        self.value = value
        super().__init__(f"Could not parse value {value!r} in date column '{column}'")


class EmptyRangeError(SalesAnalyticsError, ValueError):
    def __init__(self, start, end):
        self.start = start
        self.end = end
        super().__init__(f"End period {end} is before start period {start}")


class InsufficientHistoryError(SalesAnalyticsError):
    """Series too short for a seasonal model or a decomposition."""

    def __init__(self, name, length, required):
        self.name = name
        self.length = length
        self.required = required
        super().__init__(f"{name}: {length} periods available, {required} required")


class InsufficientSeriesError(SalesAnalyticsError):
    def __init__(self, n_series, required=2):
        self.n_series = n_series
        self.required = required
        super().__init__(f"Clustering needs at least {required} series, got {n_series}")


class ModelUnavailableError(SalesAnalyticsError):
    """No model family produced a usable fit for a series."""


class FitTimeoutError(SalesAnalyticsError, TimeoutError):
    def __init__(self, label, timeout):
        self.label = label
        self.timeout = timeout
        super().__init__(f"{label} did not finish within {timeout}s")

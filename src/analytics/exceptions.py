"""
Error taxonomy for the analytics engine.

Every error except ConfigurationError and UnknownModelError is fatal to the
current training call: no partial model is produced and the caller keeps the
previous model (if any) as authoritative.
"""


class AnalyticsError(ValueError):
    """Base class for all analytics engine errors"""


class ConfigurationError(AnalyticsError):
    """Tuning or endpoint configuration is invalid"""


class UnknownModelError(AnalyticsError):
    """Requested model type is not registered"""


class EmptyInputError(AnalyticsError):
    """The row batch handed to the feature builder is empty"""


class NoValidFieldsError(AnalyticsError):
    """No field produced a usable feature processor"""


class InconsistentDimensionError(AnalyticsError):
    """A feature row does not have the expected dimension"""

    def __init__(self, expected: int, actual: int, row_index: int | None = None):
        self.expected = expected
        self.actual = actual
        self.row_index = row_index
        location = f" at row {row_index}" if row_index is not None else ""
        super().__init__(
            f"Inconsistent feature dimensions detected{location}. "
            f"Expected {expected} features, got {actual}."
        )


class InsufficientDataError(AnalyticsError):
    """Not enough points to build the requested clusters"""

    def __init__(self, num_points: int, minimum: int):
        self.num_points = num_points
        self.minimum = minimum
        super().__init__(
            f"Insufficient data points ({num_points}) for clustering. "
            f"Minimum required: {minimum}"
        )


class EmptyBatchError(AnalyticsError):
    """An incremental update was requested with an empty batch"""

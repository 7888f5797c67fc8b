"""Exception classes for the histomorph core module."""


class MorphometryError(Exception):
    """Base exception for all analysis errors."""


class InvalidInputError(MorphometryError):
    """Raised when an image is malformed or below the minimum resolution."""

    def __init__(self, reason: str | None = None) -> None:
        msg = f"Invalid input image: {reason}" if reason else "Invalid input image"
        super().__init__(msg)
        self.reason = reason


class InvalidConfigurationError(MorphometryError):
    """Raised when an analysis configuration fails validation."""

    def __init__(self, reason: str | None = None) -> None:
        msg = f"Invalid configuration: {reason}" if reason else "Invalid configuration"
        super().__init__(msg)
        self.reason = reason


class UnknownFeatureError(InvalidConfigurationError):
    """Raised when a weight table references a feature no extractor produces."""

    def __init__(self, feature: str | None = None, table: str | None = None) -> None:
        if feature and table:
            reason = f"weight table {table!r} references unknown feature {feature!r}"
        elif feature:
            reason = f"unknown feature {feature!r}"
        else:
            reason = "unknown feature"
        super().__init__(reason)
        self.feature = feature
        self.table = table


class AnalysisTimeoutError(MorphometryError):
    """Raised when the wall-clock budget runs out between pipeline stages."""

    def __init__(self, stage: str, elapsed_seconds: float) -> None:
        super().__init__(
            f"Analysis deadline exceeded before stage {stage!r} "
            f"({elapsed_seconds:.3f}s elapsed)"
        )
        self.stage = stage
        self.elapsed_seconds = elapsed_seconds

"""
errors.py — Error taxonomy for the flood risk engine.

  LoadError              a category's source could not be fetched or parsed
  ProjectionConfigError  an EPSG-like CRS has no usable definition
  DataQualityWarning     non-fatal; features were skipped during annotation

None of these abort the process: the engine records load failures per
category and keeps serving the categories that did load.
"""


class FloodRiskError(Exception):
    """Base class for engine errors."""


class LoadError(FloodRiskError):
    """Raised when a category's raw collection cannot be loaded."""

    def __init__(self, category: str, message: str):
        super().__init__(f"{category}: {message}")
        self.category = category
        self.message = message


class ProjectionConfigError(FloodRiskError):
    """Raised when a CRS code is recognised but cannot be resolved."""

    def __init__(self, code: str, reason: str = ""):
        detail = f"No projection definition registered for {code}"
        if reason:
            detail += f" ({reason})"
        super().__init__(detail)
        self.code = code


class DataQualityWarning(UserWarning):
    """Emitted once per collection when malformed features were skipped."""

"""
Error classes for coordinate and geometry construction.
"""


class GeometryError(Exception):
    """Unrecoverable fault while building or validating geometry."""

    def __init__(self, message: str, location=None):
        self.message = message
        self.location = location
        if location is not None:
            super().__init__(f"{message} (location={location.value})")
        else:
            super().__init__(message)


class MetricValidationError(GeometryError):
    """Metric component, Jacobian or field magnitude is non-finite or non-positive."""
    pass


class SingularMetricError(GeometryError):
    """3x3 metric tensor could not be inverted at a grid point."""

    def __init__(self, x: int, y: int, det: float, location=None):
        self.x = x
        self.y = y
        self.det = det
        super().__init__(f"Metric tensor is singular at ({x}, {y}), det={det:.3e}", location)


class SpacingError(GeometryError):
    """Grid spacing magnitude below the allowed minimum."""
    pass


class GuardCellError(GeometryError):
    """Not enough guard cells or local points for the requested interpolation."""
    pass


class FieldLocationError(ValueError):
    """Field sample location inconsistent with the operation."""

    def __init__(self, message: str, expected=None, actual=None):
        self.expected = expected
        self.actual = actual
        super().__init__(message)

from .core_fields import calc_covariant, calc_contravariant
from .geometry import validate_metric, jacobian, christoffel_symbols, connection_vectors
from .staggered import interpolate_and_extrapolate, interp_xlow_to_xycorner
from .coordinates import (
    Coordinates,
    IdentityStrategy,
    StaggerStrategy,
    CornerStrategy,
    get_coordinates,
    get_coordinates_staggered,
    get_coordinates_xycorner,
)

__all__ = [
    'calc_covariant', 'calc_contravariant',
    'validate_metric', 'jacobian', 'christoffel_symbols', 'connection_vectors',
    'interpolate_and_extrapolate', 'interp_xlow_to_xycorner',
    'Coordinates', 'IdentityStrategy', 'StaggerStrategy', 'CornerStrategy',
    'get_coordinates', 'get_coordinates_staggered', 'get_coordinates_xycorner',
]

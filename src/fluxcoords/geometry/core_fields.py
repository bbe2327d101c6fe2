"""
Metric tensor storage helpers and covariant/contravariant inversion.

Symmetric 3x3 tensors are handled in sym6 form (xx, xy, xz, yy, yz, zz). The
Coordinates object stores them as six separate Field2D components named
g11..g23 (contravariant) and g_11..g_23 (covariant).
"""

import logging

import numpy as np

from ..errors import SingularMetricError
from ..mesh.field import Field2D

logger = logging.getLogger('fluxcoords.metric')

CONTRAVARIANT_NAMES = ("g11", "g22", "g33", "g12", "g13", "g23")
COVARIANT_NAMES = ("g_11", "g_22", "g_33", "g_12", "g_13", "g_23")

# positions of (11, 22, 33, 12, 13, 23) inside sym6 storage
_SYM6_ORDER = (0, 3, 5, 1, 2, 4)


def sym6_to_mat33(sym6: np.ndarray) -> np.ndarray:
    """(..., 6) sym6 -> (..., 3, 3) full matrix."""
    assert sym6.shape[-1] == 6
    rows = (0, 1, 2, 1, 3, 4, 2, 4, 5)
    return sym6[..., rows].reshape(sym6.shape[:-1] + (3, 3))


def components_to_sym6(c11, c22, c33, c12, c13, c23) -> np.ndarray:
    """Stack six (nx, ny) component arrays into (nx, ny, 6) sym6 form."""
    return np.stack([c11, c12, c13, c22, c23, c33], axis=-1).astype(float)


def sym6_to_components(sym6: np.ndarray):
    """Inverse of components_to_sym6, returns (c11, c22, c33, c12, c13, c23)."""
    return tuple(sym6[..., k] for k in _SYM6_ORDER)


def cofactors_sym6(sym6: np.ndarray) -> np.ndarray:
    """Cofactor tensor of a sym6 field, itself symmetric and in sym6 order."""
    xx, xy, xz, yy, yz, zz = np.moveaxis(sym6, -1, 0)
    return np.stack([
        yy * zz - yz * yz,
        xz * yz - xy * zz,
        xy * yz - xz * yy,
        xx * zz - xz * xz,
        xy * xz - xx * yz,
        xx * yy - xy * xy,
    ], axis=-1)


def det_sym6(sym6: np.ndarray, cof: np.ndarray = None) -> np.ndarray:
    """Determinant by expansion along the first row."""
    if cof is None:
        cof = cofactors_sym6(sym6)
    return sym6[..., 0] * cof[..., 0] + sym6[..., 1] * cof[..., 1] + sym6[..., 2] * cof[..., 2]


def inv_sym6(sym6: np.ndarray, det_floor: float = 1e-15, location=None) -> np.ndarray:
    """
    Inverse of a sym6 tensor field.

    Raises SingularMetricError at the first point (in (x, y) scan order) with
    |det| < det_floor. Points with a NaN determinant are not singular; their
    inverse is NaN.
    """
    cof = cofactors_sym6(sym6)
    det = det_sym6(sym6, cof)

    bad = np.abs(det) < det_floor
    if np.any(bad):
        idx = np.unravel_index(np.argmax(bad), bad.shape)
        x = int(idx[0]) if len(idx) > 0 else 0
        y = int(idx[1]) if len(idx) > 1 else 0
        raise SingularMetricError(x, y, float(det[idx]), location)

    return cof / det[..., None]


def orthogonality_residuals(upper, lower):
    """
    Max |g^ik g_kj - delta_ij| split into diagonal and off-diagonal parts.

    upper, lower: sequences of six component arrays in (11, 22, 33, 12, 13, 23) order.
    Non-finite points are ignored.
    """
    a = sym6_to_mat33(components_to_sym6(*upper))
    b = sym6_to_mat33(components_to_sym6(*lower))
    residual = np.einsum('...ik,...kj->...ij', a, b) - np.eye(3)
    finite = np.all(np.isfinite(residual), axis=(-2, -1))
    if not np.any(finite):
        return 0.0, 0.0
    residual = np.abs(residual[finite])
    diag = float(np.max(residual[:, [0, 1, 2], [0, 1, 2]]))
    off = float(np.max(residual[:, [0, 0, 1, 1, 2, 2], [1, 2, 0, 2, 0, 1]]))
    return diag, off


def log_orthogonality(coords, message, level=logging.INFO):
    """Log how far the stored covariant and contravariant tensors are from inverses."""
    upper = [getattr(coords, name).data for name in CONTRAVARIANT_NAMES]
    lower = [getattr(coords, name).data for name in COVARIANT_NAMES]
    diag, off = orthogonality_residuals(upper, lower)
    logger.log(level, message, extra={"extra_data": {
        "max_diagonal_residual": diag,
        "max_off_diagonal_residual": off,
        "location": coords.location.value,
    }})
    return diag, off


def _invert(coords, source_names, target_names, label):
    sym6 = components_to_sym6(*[getattr(coords, name).data for name in source_names])
    try:
        inv = inv_sym6(sym6, coords.options.singular_threshold, coords.location)
    except SingularMetricError as exc:
        logger.error("Metric inversion failed", extra={"extra_data": {
            "target": label, "x": exc.x, "y": exc.y, "det": exc.det,
            "location": coords.location.value,
        }})
        raise

    mesh = coords.mesh
    for name, component in zip(target_names, sym6_to_components(inv)):
        setattr(coords, name, Field2D(component.copy(), mesh, coords.location))

    log_orthogonality(coords, f"Calculated {label} metric tensor")


def calc_covariant(coords):
    """Fill g_ij from g^ij at every point, halo included."""
    _invert(coords, CONTRAVARIANT_NAMES, COVARIANT_NAMES, "covariant")


def calc_contravariant(coords):
    """Fill g^ij from g_ij at every point, halo included."""
    _invert(coords, COVARIANT_NAMES, CONTRAVARIANT_NAMES, "contravariant")

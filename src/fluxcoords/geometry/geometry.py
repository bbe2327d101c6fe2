# =============================================================================
# Differential geometry of the mesh: validity checks, Jacobian, Christoffel
# symbols, connection vectors and non-uniform spacing corrections.
# =============================================================================

import logging
from typing import TYPE_CHECKING, Dict, Optional, Tuple

import numpy as np
from numba import jit

from ..errors import MetricValidationError, SpacingError
from ..mesh.field import CellLoc, Field2D, Region
from .core_fields import CONTRAVARIANT_NAMES, COVARIANT_NAMES, components_to_sym6

if TYPE_CHECKING:
    from .coordinates import Coordinates

logger = logging.getLogger('fluxcoords.geometry')

# (j, k) index pairs of the six stored Christoffel components per upper index
CHRISTOFFEL_PAIRS = (("11", 0, 0), ("22", 1, 1), ("33", 2, 2), ("12", 0, 1), ("13", 0, 2), ("23", 1, 2))
CHRISTOFFEL_NAMES = tuple(f"G{i}_{jk}" for i in (1, 2, 3) for jk, _, _ in CHRISTOFFEL_PAIRS)
CONNECTION_NAMES = ("G1", "G2", "G3")


def _interior(coords, arr):
    mesh = coords.mesh
    return arr[mesh.xstart:mesh.xend + 1, mesh.ystart:mesh.yend + 1]


# ============================================================================
# VALIDATION
# ============================================================================

def validate_metric(coords: "Coordinates", include_covariant: bool = True) -> None:
    """
    Check metric components and spacings on the interior.

    Raises:
        MetricValidationError: non-finite component, or non-positive diagonal
        SpacingError: |dx|, |dy| or |dz| not above options.min_spacing
    """
    names = CONTRAVARIANT_NAMES + (COVARIANT_NAMES if include_covariant else ())
    for name in names:
        values = _interior(coords, getattr(coords, name).data)
        if not np.all(np.isfinite(values)):
            raise MetricValidationError(f"Metric component {name} is not finite", coords.location)
        if name in ("g11", "g22", "g33", "g_11", "g_22", "g_33") and np.any(values <= 0.0):
            raise MetricValidationError(
                f"Diagonal metric component {name} is not positive (min {float(values.min()):.3e})",
                coords.location)

    min_spacing = coords.options.min_spacing
    for name in ("dx", "dy"):
        values = _interior(coords, getattr(coords, name).data)
        if not np.all(np.isfinite(values)):
            raise SpacingError(f"Grid spacing {name} is not finite", coords.location)
        if np.min(np.abs(values)) <= min_spacing:
            raise SpacingError(
                f"Grid spacing {name} magnitude below {min_spacing:g} "
                f"(min {float(np.min(np.abs(values))):.3e})", coords.location)
    if not np.isfinite(coords.dz) or abs(coords.dz) <= min_spacing:
        raise SpacingError(f"Grid spacing dz={coords.dz!r} magnitude below {min_spacing:g}",
                           coords.location)


# ============================================================================
# JACOBIAN
# ============================================================================

def jacobian(coords: "Coordinates") -> Tuple[Field2D, Field2D]:
    """
    J = 1/sqrt(det g^ij) and Bxy = sqrt(g_22)/J.

    Returns (J, Bxy) as Field2D at the Coordinates location.
    """
    g11, g22, g33 = coords.g11.data, coords.g22.data, coords.g33.data
    g12, g13, g23 = coords.g12.data, coords.g13.data, coords.g23.data

    det = (g11 * g22 * g33 + 2.0 * g12 * g13 * g23
           - g11 * g23 * g23 - g22 * g13 * g13 - g33 * g12 * g12)

    det_interior = _interior(coords, det)
    if np.any(det_interior < 0.0):
        raise MetricValidationError(
            f"Metric determinant is negative (min {float(np.nanmin(det_interior)):.3e})",
            coords.location)

    with np.errstate(divide='ignore', invalid='ignore'):
        J = 1.0 / np.sqrt(det)

    J_interior = _interior(coords, J)
    if not np.all(np.isfinite(J_interior)):
        raise MetricValidationError("Jacobian is not finite", coords.location)
    min_abs = float(np.min(np.abs(J_interior)))
    if min_abs < coords.options.min_jacobian:
        raise MetricValidationError(f"Jacobian magnitude too small ({min_abs:.3e})", coords.location)

    g_22 = coords.g_22.data
    if np.any(_interior(coords, g_22) < 0.0):
        raise MetricValidationError("g_22 is negative", coords.location)

    with np.errstate(invalid='ignore'):
        Bxy = np.sqrt(g_22) / J

    mesh = coords.mesh
    return Field2D(J, mesh, coords.location), Field2D(Bxy, mesh, coords.location)


# ============================================================================
# CHRISTOFFEL SYMBOLS
# ============================================================================

@jit(nopython=True)
def _sym6_to_mat33_jit(sym6):
    mat = np.zeros((3, 3), dtype=sym6.dtype)
    mat[0, 0] = sym6[0]
    mat[0, 1] = sym6[1]
    mat[0, 2] = sym6[2]
    mat[1, 0] = sym6[1]
    mat[1, 1] = sym6[3]
    mat[1, 2] = sym6[4]
    mat[2, 0] = sym6[2]
    mat[2, 1] = sym6[4]
    mat[2, 2] = sym6[5]
    return mat


@jit(nopython=True)
def _compute_christoffels_jit(ginv_sym6, dg_dx_sym6, dg_dy_sym6):
    """Gamma^i_jk on an (x, y) plane; z derivatives of the metric vanish."""
    nx, ny = ginv_sym6.shape[:2]
    christoffels = np.zeros((nx, ny, 3, 3, 3))

    for i in range(nx):
        for j in range(ny):
            ginv = _sym6_to_mat33_jit(ginv_sym6[i, j])

            # dg[l, m, n] = d_l g_mn, each independent derivative evaluated once
            dg = np.zeros((3, 3, 3))
            dg[0] = _sym6_to_mat33_jit(dg_dx_sym6[i, j])
            dg[1] = _sym6_to_mat33_jit(dg_dy_sym6[i, j])

            # Gamma^a_bc = 0.5 * g^al * (d_b g_lc + d_c g_bl - d_l g_bc)
            for a in range(3):
                for b in range(3):
                    for c in range(b, 3):
                        total = 0.0
                        for l in range(3):
                            total += ginv[a, l] * (dg[b, l, c] + dg[c, b, l] - dg[l, b, c])
                        christoffels[i, j, a, b, c] = 0.5 * total
                        christoffels[i, j, a, c, b] = 0.5 * total

    return christoffels


def _stencil_location(coords):
    # Corner values are differenced as plain cell-centred arrays
    return CellLoc.CENTRE if coords.location is CellLoc.XYCORNER else coords.location


def _ddx(coords, arr):
    mesh = coords.mesh
    loc = _stencil_location(coords)
    return mesh.index_ddx(Field2D(arr, mesh, loc), loc, region=Region.NOBNDRY).data / coords.dx.data


def _ddy(coords, arr):
    mesh = coords.mesh
    loc = _stencil_location(coords)
    return mesh.index_ddy(Field2D(arr, mesh, loc), loc, region=Region.NOBNDRY).data / coords.dy.data


def christoffel_symbols(coords: "Coordinates") -> Dict[str, Field2D]:
    """
    The 18 independent Christoffel symbols, keyed G1_11 ... G3_23.

    Derivatives use the first-derivative method of the mesh options on the
    interior; guard values are left at zero for the halo exchange to fill.
    """
    lower = [getattr(coords, name).data for name in COVARIANT_NAMES]
    upper = [getattr(coords, name).data for name in CONTRAVARIANT_NAMES]

    dg_dx = components_to_sym6(*[_ddx(coords, c) for c in lower])
    dg_dy = components_to_sym6(*[_ddy(coords, c) for c in lower])
    ginv = components_to_sym6(*upper)

    with np.errstate(invalid='ignore'):
        christoffels = _compute_christoffels_jit(ginv, dg_dx, dg_dy)

    mesh = coords.mesh
    result = {}
    for i in range(3):
        for jk, j, k in CHRISTOFFEL_PAIRS:
            result[f"G{i + 1}_{jk}"] = Field2D(christoffels[:, :, i, j, k].copy(), mesh, coords.location)
    return result


def connection_vectors(coords: "Coordinates") -> Dict[str, Field2D]:
    """G^i = J^-1 d_j (J g^ij), z-independent metric."""
    J = coords.J.data
    mesh = coords.mesh
    result = {}
    for name, (cx, cy) in zip(CONNECTION_NAMES, (("g11", "g12"), ("g12", "g22"), ("g13", "g23"))):
        gx = getattr(coords, cx).data
        gy = getattr(coords, cy).data
        with np.errstate(divide='ignore', invalid='ignore'):
            value = (_ddx(coords, J * gx) + _ddy(coords, J * gy)) / J
        result[name] = Field2D(value, mesh, coords.location)
    return result


# ============================================================================
# NON-UNIFORM SPACING
# ============================================================================

def non_uniform_terms(coords: "Coordinates", d2x: Optional[Field2D] = None,
                      d2y: Optional[Field2D] = None) -> Tuple[Field2D, Field2D]:
    """
    d1_dx = d(1/dx)/di and d1_dy = d(1/dy)/dj.

    Uses the grid's second derivative of x (y) with respect to index when
    supplied, otherwise differences 1/dx (1/dy) in index space.
    """
    mesh = coords.mesh
    dx, dy = coords.dx.data, coords.dy.data
    with np.errstate(divide='ignore', invalid='ignore'):
        if d2x is not None:
            d1_dx = -d2x.data / dx**2
        else:
            d1_dx = mesh.index_ddx(Field2D(1.0 / dx, mesh, _stencil_location(coords))).data
        if d2y is not None:
            d1_dy = -d2y.data / dy**2
        else:
            d1_dy = mesh.index_ddy(Field2D(1.0 / dy, mesh, _stencil_location(coords))).data
    return Field2D(d1_dx, mesh, coords.location), Field2D(d1_dy, mesh, coords.location)


def geometry(coords: "Coordinates", d2x: Optional[Field2D] = None,
             d2y: Optional[Field2D] = None) -> None:
    """
    Validate the metric pair then fill Christoffel symbols, connection vectors
    and non-uniform spacing terms on the Coordinates under construction.
    """
    validate_metric(coords, include_covariant=True)

    derived = christoffel_symbols(coords)
    derived.update(connection_vectors(coords))
    for name, value in derived.items():
        setattr(coords, name, value)

    # Neighbouring points are read by later derivative stencils
    coords.mesh.communicate(*derived.values())

    coords.d1_dx, coords.d1_dy = non_uniform_terms(coords, d2x, d2y)

    logger.debug("Geometry computed", extra={"extra_data": {
        "location": coords.location.value,
        "max_abs_christoffel": float(max(np.max(np.abs(f.data[np.isfinite(f.data)]), initial=0.0)
                                         for f in derived.values())),
    }})

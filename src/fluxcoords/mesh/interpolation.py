"""
Generic staggered interpolation between cell centres and cell faces.

Uses the symmetric 4-point stencil (-1, 9, 9, -1)/16. Points where the stencil
does not fit, or that lie outside the requested region, are NaN in the result.
"""

import numpy as np

from ..errors import GuardCellError, FieldLocationError
from .field import CellLoc, Region, Field2D, Field3D, FieldPerp
from .index_derivs import apply_stencil

# result[i] = (9*(f[i-1] + f[i]) - f[i-2] - f[i+1]) / 16
TO_LOW_STENCIL = {-2: -1.0 / 16.0, -1: 9.0 / 16.0, 0: 9.0 / 16.0, 1: -1.0 / 16.0}
# result[i] = (9*(f[i] + f[i+1]) - f[i-1] - f[i+2]) / 16
TO_CENTRE_STENCIL = {-1: -1.0 / 16.0, 0: 9.0 / 16.0, 1: 9.0 / 16.0, 2: -1.0 / 16.0}

_SHIFT_DIRECTION = {CellLoc.XLOW: "x", CellLoc.YLOW: "y", CellLoc.ZLOW: "z"}


def interp_point(fm2, fm1, fp1, fp2):
    """Midpoint value between fm1 and fp1 from four equally spaced samples."""
    return (9.0 * (fm1 + fp1) - fm2 - fp2) / 16.0


def _shift_axis(f, direction):
    if direction == "x":
        return 0
    if direction == "y":
        if isinstance(f, FieldPerp):
            raise FieldLocationError("FieldPerp cannot be shifted in y", actual=f.location)
        return 1
    if isinstance(f, Field3D):
        return 2
    if isinstance(f, FieldPerp):
        return 1
    return None


def _shift(f, direction, to_low):
    axis = _shift_axis(f, direction)
    mesh = f.mesh
    stencil = TO_LOW_STENCIL if to_low else TO_CENTRE_STENCIL
    if direction == "z":
        return apply_stencil(f.data, axis, stencil, periodic=True)

    guards = mesh.mxg if direction == "x" else mesh.myg
    if guards < 2:
        raise GuardCellError(
            f"Interpolation in {direction} needs at least 2 guard cells, mesh has {guards}")

    result = apply_stencil(f.data, axis, stencil)
    n = result.shape[axis]
    lo, hi = (2, n - 1) if to_low else (1, n - 2)
    idx = [slice(None)] * result.ndim
    idx[axis] = slice(0, lo)
    result[tuple(idx)] = np.nan
    idx[axis] = slice(hi, n)
    result[tuple(idx)] = np.nan
    return result


def _mask_region(f, data, region):
    if region is Region.ALL:
        return data
    x0, x1, y0, y1 = f.mesh.region_bounds(region)
    out = np.full(data.shape, np.nan)
    if isinstance(f, FieldPerp):
        out[x0:x1] = data[x0:x1]
    else:
        out[x0:x1, y0:y1] = data[x0:x1, y0:y1]
    return out


def interp_to(f, location, region=Region.ALL):
    """Interpolate a field to another cell location; always returns new storage."""
    if location is CellLoc.DEFAULT:
        location = CellLoc.CENTRE
    if CellLoc.XYCORNER in (location, f.location):
        raise FieldLocationError("interp_to does not handle XY-corner values",
                                 expected=location, actual=f.location)
    if f.location is location:
        return f.copy()

    if f.location is not CellLoc.CENTRE and location is not CellLoc.CENTRE:
        # Two different staggered locations: go through the cell centre
        centre = interp_to(f, CellLoc.CENTRE, Region.NOX if f.location is CellLoc.XLOW else Region.NOY)
        return interp_to(centre, location, region)

    if isinstance(f, Field2D) and CellLoc.ZLOW in (f.location, location):
        # Field2D does not depend on z: the values are unchanged
        return f._new(f.data.astype(float, copy=True), location)

    if f.location is CellLoc.CENTRE:
        direction = _SHIFT_DIRECTION[location]
        data = _shift(f, direction, to_low=True)
    else:
        direction = _SHIFT_DIRECTION[f.location]
        data = _shift(f, direction, to_low=False)

    return f._new(_mask_region(f, data, region), location)
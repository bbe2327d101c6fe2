"""
Shift geometric Field2D quantities between cell locations.

The generic 4-point interpolation only reaches points whose stencil lies inside
the local array. The routines here also fill physical-boundary guard cells by
third-order extrapolation, optionally re-extrapolate guard cells across branch
cuts, and mark corner guard cells as NaN since no sensible value exists there.
"""

import logging

import numpy as np

from ..errors import GuardCellError, FieldLocationError
from ..mesh.field import CellLoc, Region, Field2D
from ..mesh.interpolation import interp_point

logger = logging.getLogger('fluxcoords.interpolation')


def _extrapolate(r, x, y, bx, by):
    """Third-order one-sided extrapolation into (x, y) from the (bx, by) side."""
    return 3.0 * r[x - bx, y - by] - 3.0 * r[x - 2 * bx, y - 2 * by] + r[x - 3 * bx, y - 3 * by]


def _fill_boundaries(f, result, location):
    mesh = f.mesh
    src = f.data
    r = result.data

    for bndry in mesh.boundaries():
        bx, by, width = bndry.bx, bndry.by, bndry.width
        extrap_start = 1 if ((location is CellLoc.XLOW and bx > 0)
                             or (location is CellLoc.YLOW and by > 0)) else 0

        if bx != 0:
            interior, global_n, direction = mesh.xend - mesh.xstart + 1, mesh.global_nx, "x"
        else:
            interior, global_n, direction = mesh.yend - mesh.ystart + 1, mesh.global_ny, "y"

        if width == 1 and interior == 1:
            raise GuardCellError(
                f"Not enough points in the {direction}-direction for the extrapolation needed "
                f"by staggered grids: increase the {direction}-guard width", location)
        enough = global_n - 2 * width >= 3

        for x, y in bndry.points:
            if extrap_start > 0:
                # The first guard point lies on the boundary itself: interpolate it
                r[x, y] = interp_point(src[x - 2 * bx, y - 2 * by], src[x - bx, y - by],
                                       src[x, y], src[x + bx, y + by])
            for i in range(extrap_start, width):
                xi, yi = x + i * bx, y + i * by
                if enough:
                    r[xi, yi] = _extrapolate(r, xi, yi, bx, by)
                else:
                    r[xi, yi] = r[x - bx, y - by]

        if not enough:
            logger.debug("Too few points to extrapolate, copying nearest value", extra={"extra_data": {
                "boundary": bndry.name, "width": width, "global_n": global_n,
                "location": location.value,
            }})


def _fill_branch_cuts(f, result, location):
    mesh = f.mesh
    src = f.data
    r = result.data

    for i in range(mesh.xstart, mesh.xend + 1):
        if mesh.has_branch_cut_down(i):
            for j in range(mesh.ystart - 1, -1, -1):
                r[i, j] = 3.0 * r[i, j + 1] - 3.0 * r[i, j + 2] + r[i, j + 3]
        if mesh.has_branch_cut_up(i):
            if location is CellLoc.YLOW:
                # keep the seam symmetric with the lower side
                j = mesh.yend
                r[i, j] = interp_point(src[i, j - 2], src[i, j - 1], src[i, j], src[i, j + 1])
            for j in range(mesh.yend + 1, mesh.local_ny):
                r[i, j] = 3.0 * r[i, j - 1] - 3.0 * r[i, j - 2] + r[i, j - 3]


def _mark_corners(mesh, r):
    nx, ny = r.shape[:2]
    for i in range(mesh.xstart):
        for j in range(mesh.ystart):
            r[i, j] = np.nan
            r[i, ny - 1 - j] = np.nan
            r[nx - 1 - i, j] = np.nan
            r[nx - 1 - i, ny - 1 - j] = np.nan


def interpolate_and_extrapolate(f: Field2D, location: CellLoc,
                                extrap_at_branch_cut: bool = False) -> Field2D:
    """
    Interpolate a Field2D to `location`, filling guard cells.

    Interior points come from the generic interpolation, communicated guard
    cells from the halo exchange, physical-boundary guard cells from
    extrapolation and, when requested, branch-cut guard cells are
    re-extrapolated along y. Corner guard cells are NaN.

    The input field is never modified and the result owns its storage.
    """
    if not isinstance(f, Field2D):
        raise TypeError(f"interpolate_and_extrapolate expects a Field2D, got {type(f).__name__}")
    mesh = f.mesh

    result = mesh.interp_to(f, location, Region.NOBNDRY)
    # interp_to can hand back f's values unchanged (z shifts); keep our own copy
    result = Field2D(np.array(result.data, dtype=float, copy=True), mesh, result.location)
    mesh.communicate(result)

    _fill_boundaries(f, result, location)

    if extrap_at_branch_cut:
        _fill_branch_cuts(f, result, location)

    _mark_corners(mesh, result.data)
    return result


def interp_xlow_to_xycorner(f: Field2D, extrap_at_branch_cut: bool = False) -> Field2D:
    """
    Values at the intersection of the XLOW and YLOW locations.

    The result is tagged XYCORNER: it may only be read point-wise, for example
    when setting a y-boundary condition on an XLOW field.
    """
    mesh = f.mesh
    if not (mesh.xstart > 1 and mesh.ystart > 1):
        raise GuardCellError("Corner interpolation needs at least 2 guard cells in x and y")
    if f.location is not CellLoc.XLOW:
        raise FieldLocationError("Corner interpolation needs an XLOW field",
                                 expected=CellLoc.XLOW, actual=f.location)

    result = f.copy()

    # Outer x-boundary values shifted one point inward, so that they are
    # interpolated and extrapolated as ordinary points
    temp = Field2D(np.zeros(f.shape), mesh, CellLoc.CENTRE)
    t = temp.data
    outer = [b for b in mesh.boundaries() if b.bx > 0]
    for bndry in outer:
        for _, y in bndry.points:
            for i in range(mesh.xend - 1, mesh.local_nx):
                t[i - 1, y] = result.data[i, y]

        # y guards by extrapolation, replaced by communicate() away from y boundaries
        for i in range(mesh.xend - 2, mesh.xend + 1):
            for j in range(mesh.ystart - 1, -1, -1):
                t[i, j] = 3.0 * t[i, j + 1] - 3.0 * t[i, j + 2] + t[i, j + 3]
            for j in range(mesh.yend + 1, mesh.local_ny):
                t[i, j] = 3.0 * t[i, j - 1] - 3.0 * t[i, j - 2] + t[i, j - 3]
    mesh.communicate(temp)

    # Treat the XLOW values as cell centred to shift them in y
    result = interpolate_and_extrapolate(result.with_location(CellLoc.CENTRE), CellLoc.YLOW,
                                         extrap_at_branch_cut)
    temp = interpolate_and_extrapolate(temp, CellLoc.YLOW, extrap_at_branch_cut)

    for bndry in outer:
        for _, y in bndry.points:
            for i in range(mesh.xend - 1, mesh.local_nx):
                result.data[i, y] = temp.data[i - 1, y]

    return result.with_location(CellLoc.XYCORNER)

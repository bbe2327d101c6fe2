"""
Differential operators on a Coordinates snapshot.

Every operator takes the Coordinates explicitly, resolves the output location
(default: the operand's location), requires it to match the Coordinates
location, and returns a new field tagged with that location. None of them
communicate: operands must already have valid guard cells.
"""

import logging
from typing import TYPE_CHECKING, Optional

import numpy as np

from ..errors import FieldLocationError
from ..mesh.field import CellLoc, Region, Field, Field2D, Field3D

if TYPE_CHECKING:
    from ..geometry.coordinates import Coordinates

logger = logging.getLogger('fluxcoords.operators')


def resolve_outloc(coords: "Coordinates", f: Field, outloc: Optional[CellLoc] = None) -> CellLoc:
    """Output location for an operator applied to f, checked against coords."""
    if not isinstance(f, Field):
        raise TypeError(f"Expected a Field, got {type(f).__name__}")
    if f.location is CellLoc.XYCORNER:
        raise FieldLocationError("XY-corner values cannot be differentiated", actual=f.location)
    if outloc is None or outloc is CellLoc.DEFAULT:
        outloc = f.location
    if coords.location is not outloc:
        raise FieldLocationError(
            f"Coordinates at {coords.location.value} cannot produce a result at {outloc.value}",
            expected=coords.location, actual=outloc)
    return outloc


# ============================================================================
# FIRST AND SECOND DERIVATIVES
# ============================================================================

def ddx(coords: "Coordinates", f: Field, outloc: Optional[CellLoc] = None, method: Optional[str] = None,
        region: Region = Region.NOBNDRY) -> Field:
    outloc = resolve_outloc(coords, f, outloc)
    return f.mesh.index_ddx(f, outloc, method, region) / coords.dx


def ddy(coords: "Coordinates", f: Field, outloc: Optional[CellLoc] = None, method: Optional[str] = None,
        region: Region = Region.NOBNDRY) -> Field:
    outloc = resolve_outloc(coords, f, outloc)
    return f.mesh.index_ddy(f, outloc, method, region) / coords.dy


def ddz(coords: "Coordinates", f: Field, outloc: Optional[CellLoc] = None, method: Optional[str] = None,
        region: Region = Region.NOBNDRY) -> Field:
    outloc = resolve_outloc(coords, f, outloc)
    return f.mesh.index_ddz(f, outloc, method, region) / coords.dz


def d2dx2(coords: "Coordinates", f: Field, outloc: Optional[CellLoc] = None, method: Optional[str] = None,
          region: Region = Region.NOBNDRY) -> Field:
    """d2f/dx2 including the non-uniform spacing correction when enabled."""
    outloc = resolve_outloc(coords, f, outloc)
    mesh = f.mesh
    result = mesh.index_d2dx2(f, outloc, method, region) / coords.dx**2
    if coords.options.non_uniform:
        result = result + coords.d1_dx * mesh.index_ddx(f, outloc, None, region) / coords.dx
    return result


def d2dy2(coords: "Coordinates", f: Field, outloc: Optional[CellLoc] = None, method: Optional[str] = None,
          region: Region = Region.NOBNDRY) -> Field:
    outloc = resolve_outloc(coords, f, outloc)
    mesh = f.mesh
    result = mesh.index_d2dy2(f, outloc, method, region) / coords.dy**2
    if coords.options.non_uniform:
        result = result + coords.d1_dy * mesh.index_ddy(f, outloc, None, region) / coords.dy
    return result


def d2dz2(coords: "Coordinates", f: Field, outloc: Optional[CellLoc] = None, method: Optional[str] = None,
          region: Region = Region.NOBNDRY) -> Field:
    outloc = resolve_outloc(coords, f, outloc)
    return f.mesh.index_d2dz2(f, outloc, method, region) / coords.dz**2


# Mixed derivatives: the inner derivative covers the guard cells the outer
# stencil reads, so no halo exchange is needed in between.

def d2dxdy(coords: "Coordinates", f: Field, outloc: Optional[CellLoc] = None, method: Optional[str] = None,
           region: Region = Region.NOBNDRY) -> Field:
    outloc = resolve_outloc(coords, f, outloc)
    dfdy = ddy(coords, f, outloc, method, Region.NOY)
    return ddx(coords, dfdy, outloc, method, region)


def d2dydx(coords: "Coordinates", f: Field, outloc: Optional[CellLoc] = None, method: Optional[str] = None,
           region: Region = Region.NOBNDRY) -> Field:
    outloc = resolve_outloc(coords, f, outloc)
    dfdx = ddx(coords, f, outloc, method, Region.NOX)
    return ddy(coords, dfdx, outloc, method, region)


def d2dxdz(coords: "Coordinates", f: Field, outloc: Optional[CellLoc] = None, method: Optional[str] = None,
           region: Region = Region.NOBNDRY) -> Field:
    outloc = resolve_outloc(coords, f, outloc)
    dfdx = ddx(coords, f, outloc, method, region)
    return ddz(coords, dfdx, outloc, None, region)


def d2dzdx(coords: "Coordinates", f: Field, outloc: Optional[CellLoc] = None, method: Optional[str] = None,
           region: Region = Region.NOBNDRY) -> Field:
    outloc = resolve_outloc(coords, f, outloc)
    dfdz = ddz(coords, f, outloc, None, Region.NOY)
    return ddx(coords, dfdz, outloc, method, region)


def d2dydz(coords: "Coordinates", f: Field, outloc: Optional[CellLoc] = None, method: Optional[str] = None,
           region: Region = Region.NOBNDRY) -> Field:
    outloc = resolve_outloc(coords, f, outloc)
    dfdy = ddy(coords, f, outloc, method, region)
    return ddz(coords, dfdy, outloc, None, region)


def d2dzdy(coords: "Coordinates", f: Field, outloc: Optional[CellLoc] = None, method: Optional[str] = None,
           region: Region = Region.NOBNDRY) -> Field:
    outloc = resolve_outloc(coords, f, outloc)
    dfdz = ddz(coords, f, outloc, None, Region.NOX)
    return ddy(coords, dfdz, outloc, method, region)


def vddy(coords: "Coordinates", v: Field, f: Field, outloc: Optional[CellLoc] = None,
         method: Optional[str] = None, region: Region = Region.NOBNDRY) -> Field:
    """Upwinded v * df/dy."""
    outloc = resolve_outloc(coords, f, outloc)
    return f.mesh.index_vddy(v, f, outloc, method, region) / coords.dy


# ============================================================================
# PARALLEL OPERATORS
# ============================================================================

def grad_par(coords: "Coordinates", f: Field, outloc: Optional[CellLoc] = None,
             method: Optional[str] = None) -> Field:
    """Parallel gradient df/dy / sqrt(g_22)."""
    outloc = resolve_outloc(coords, f, outloc)
    return ddy(coords, f, outloc, method) / np.sqrt(coords.g_22)


def vpar_grad_par(coords: "Coordinates", v: Field, f: Field, outloc: Optional[CellLoc] = None,
                  method: Optional[str] = None) -> Field:
    """v times the parallel gradient of f, upwinded on the sign of v."""
    outloc = resolve_outloc(coords, f, outloc)
    return vddy(coords, v, f, outloc, method) / np.sqrt(coords.g_22)


def div_par(coords: "Coordinates", f: Field, outloc: Optional[CellLoc] = None,
            method: Optional[str] = None, Bxy: Optional[Field2D] = None) -> Field:
    """
    Parallel divergence Bxy * Grad_par(f / Bxy).

    The inner Bxy is taken at the location of f: the `Bxy` argument when
    given, coords.Bxy when f already sits at the Coordinates location, and
    otherwise the mesh's cached Coordinates at f's location, which are built
    with the mesh's own options. When f carries distinct yup/ydown companions
    they are divided by Bxy as well.
    """
    outloc = resolve_outloc(coords, f, outloc)
    if Bxy is not None:
        Bxy_floc = Bxy
    elif f.location is coords.location:
        Bxy_floc = coords.Bxy
    else:
        Bxy_floc = f.mesh.get_coordinates(f.location).Bxy

    if not (isinstance(f, Field3D) and f.has_yup_ydown()):
        return coords.Bxy * grad_par(coords, f / Bxy_floc, outloc, method)

    f_B = f / Bxy_floc
    if f.yup is f:
        f_B.merge_yup_ydown()
    else:
        f_B.split_yup_ydown(f.yup / Bxy_floc, f.ydown / Bxy_floc)
    return coords.Bxy * grad_par(coords, f_B, outloc, method)


def grad2_par2(coords: "Coordinates", f: Field, outloc: Optional[CellLoc] = None,
               method: Optional[str] = None) -> Field:
    """Second parallel derivative (b.Grad)(b.Grad) f."""
    outloc = resolve_outloc(coords, f, outloc)
    sg = np.sqrt(coords.g_22)
    return (ddy(coords, 1.0 / sg, outloc, method) * ddy(coords, f, outloc, method) / sg
            + d2dy2(coords, f, outloc, method) / coords.g_22)


def laplace_par(coords: "Coordinates", f: Field, outloc: Optional[CellLoc] = None) -> Field:
    """Parallel Laplacian d2f/dy2 / g_22 + d(J/g_22)/dy * df/dy / J."""
    outloc = resolve_outloc(coords, f, outloc)
    return (d2dy2(coords, f, outloc) / coords.g_22
            + ddy(coords, coords.J / coords.g_22, outloc) * ddy(coords, f, outloc) / coords.J)


# ============================================================================
# FULL LAPLACIAN
# ============================================================================

def laplace(coords: "Coordinates", f: Field, outloc: Optional[CellLoc] = None) -> Field:
    """Full scalar Laplacian from all metric components and connection vectors."""
    outloc = resolve_outloc(coords, f, outloc)
    c = coords
    return (c.G1 * ddx(c, f, outloc) + c.G2 * ddy(c, f, outloc) + c.G3 * ddz(c, f, outloc)
            + c.g11 * d2dx2(c, f, outloc) + c.g22 * d2dy2(c, f, outloc) + c.g33 * d2dz2(c, f, outloc)
            + c.g12 * (d2dxdy(c, f, outloc) + d2dydx(c, f, outloc))
            + c.g13 * (d2dxdz(c, f, outloc) + d2dzdx(c, f, outloc))
            + c.g23 * (d2dydz(c, f, outloc) + d2dzdy(c, f, outloc)))

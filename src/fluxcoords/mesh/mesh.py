"""
Structured mesh interface consumed by the geometry engine.

`Mesh` is the abstract contract: extents, grid-source reads, halo exchange,
boundary regions and branch-cut queries. Index-space derivatives,
interpolation and the per-location Coordinates cache are shared
implementations on the base class. `StructuredMesh` is the single-process
concrete mesh used in-process and in the test suite.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

import numpy as np

from ..config import GeometryOptions
from ..errors import FieldLocationError
from .field import CellLoc, Region, Field, Field2D, Field3D, FieldPerp
from . import index_derivs
from .interpolation import interp_to

logger = logging.getLogger('fluxcoords.mesh')

_LOW = {"x": CellLoc.XLOW, "y": CellLoc.YLOW, "z": CellLoc.ZLOW}


@dataclass
class BoundaryRegion:
    """Physical boundary: (bx, by) points outward, points are the first guard cells."""
    name: str
    bx: int
    by: int
    width: int
    points: List[Tuple[int, int]] = field(default_factory=list)


class Mesh(ABC):
    """Abstract structured mesh with guard cells."""

    local_nx: int
    local_ny: int
    local_nz: int
    global_nx: int
    global_ny: int
    global_nz: int
    xstart: int
    xend: int
    ystart: int
    yend: int
    mxg: int
    myg: int
    periodic_x: bool
    options: GeometryOptions

    # ---- grid source ----

    @abstractmethod
    def get(self, name: str, default=None) -> Optional[Field2D]:
        """Read a 2D quantity from the grid source."""

    @abstractmethod
    def get_1d(self, name: str) -> Optional[np.ndarray]:
        """Read an x profile from the grid source."""

    @abstractmethod
    def get_scalar(self, name: str, default=None) -> Optional[float]:
        """Read a scalar from the grid source."""

    @abstractmethod
    def source_has_var(self, name: str) -> bool:
        pass

    # ---- topology ----

    @abstractmethod
    def communicate(self, *fields):
        """Blocking in-place halo exchange."""

    @abstractmethod
    def boundaries(self) -> List[BoundaryRegion]:
        pass

    @abstractmethod
    def has_branch_cut_down(self, x: int) -> bool:
        pass

    @abstractmethod
    def has_branch_cut_up(self, x: int) -> bool:
        pass

    def has_branch_cut(self) -> bool:
        return any(self.has_branch_cut_down(x) or self.has_branch_cut_up(x)
                   for x in range(self.local_nx))

    def region_bounds(self, region: Region):
        """Half-open (x0, x1, y0, y1) index bounds of an iteration region."""
        if region in (Region.ALL, Region.NOY):
            x0, x1 = 0, self.local_nx
        else:
            x0, x1 = self.xstart, self.xend + 1
        if region in (Region.ALL, Region.NOX):
            y0, y1 = 0, self.local_ny
        else:
            y0, y1 = self.ystart, self.yend + 1
        return x0, x1, y0, y1

    # ---- field factories ----

    def field2d(self, value=0.0, location=CellLoc.CENTRE):
        return Field2D(np.full((self.local_nx, self.local_ny), value, dtype=float), self, location)

    def field3d(self, value=0.0, location=CellLoc.CENTRE):
        return Field3D(np.full((self.local_nx, self.local_ny, self.local_nz), value, dtype=float),
                       self, location)

    def field_perp(self, y_index, value=0.0, location=CellLoc.CENTRE):
        return FieldPerp(np.full((self.local_nx, self.local_nz), value, dtype=float),
                         self, location, y_index)

    # ---- coordinates cache ----

    def get_coordinates(self, location=CellLoc.CENTRE):
        """Coordinates for a cell location, built on first use and cached."""
        if location is CellLoc.DEFAULT:
            location = CellLoc.CENTRE
        cache = self.__dict__.setdefault('_coordinates', {})
        if location in cache:
            return cache[location]

        from ..geometry import coordinates

        if location is CellLoc.CENTRE:
            coords = coordinates.get_coordinates(self, self.options)
        elif location is CellLoc.XYCORNER:
            coords = coordinates.get_coordinates_xycorner(
                self, self.get_coordinates(CellLoc.XLOW), self.options)
        else:
            coords = coordinates.get_coordinates_staggered(
                self, location, self.get_coordinates(CellLoc.CENTRE), self.options)
        cache[location] = coords
        return coords

    # ---- interpolation ----

    def interp_to(self, f, location, region=Region.ALL):
        return interp_to(f, location, region)

    # ---- index-space derivatives ----

    def _axis(self, f, direction):
        if direction == "x":
            return 0
        if direction == "y":
            if isinstance(f, FieldPerp):
                raise FieldLocationError("FieldPerp has no y direction", actual=f.location)
            return 1
        if isinstance(f, Field3D):
            return 2
        if isinstance(f, FieldPerp):
            return 1
        return None

    def _zero_outside(self, f, data, region):
        if region is Region.ALL:
            return data
        x0, x1, y0, y1 = self.region_bounds(region)
        out = np.zeros(data.shape)
        if isinstance(f, FieldPerp):
            out[x0:x1] = data[x0:x1]
        else:
            out[x0:x1, y0:y1] = data[x0:x1, y0:y1]
        return out

    def _resolve(self, f, outloc):
        if not isinstance(f, Field):
            raise TypeError(f"Expected a Field, got {type(f).__name__}")
        if f.location is CellLoc.XYCORNER:
            raise FieldLocationError("Cannot differentiate XY-corner values", actual=f.location)
        if outloc is None or outloc is CellLoc.DEFAULT:
            return f.location
        return outloc

    def _index_derivative(self, f, direction, outloc, method, region, order):
        outloc = self._resolve(f, outloc)
        axis = self._axis(f, direction)
        if axis is None:
            return f._new(np.zeros(f.shape), outloc)

        periodic = direction == "z"
        if method is None:
            if direction == "z":
                method = self.options.z_method
            else:
                method = self.options.first_method if order == 1 else self.options.second_method

        low = _LOW[direction]
        staggered = (order == 1 and outloc is not f.location
                     and {f.location, outloc} == {CellLoc.CENTRE, low})

        if staggered:
            data = index_derivs.staggered_first_derivative(
                f.data, axis, to_low=(outloc is low), periodic=periodic)
        else:
            if method == "FFT":
                if not periodic:
                    raise ValueError("FFT derivatives are only available in z")
                data = index_derivs.fft_derivative(f.data, axis, order)
            elif order == 1:
                data = index_derivs.first_derivative(f.data, axis, method, periodic)
                if (direction == "y" and method == "C2" and isinstance(f, Field3D)
                        and f.has_yup_ydown() and f.yup is not f):
                    data = np.zeros(f.shape)
                    data[:, 1:-1] = 0.5 * (f.yup.data[:, 2:] - f.ydown.data[:, :-2])
            else:
                data = index_derivs.second_derivative(f.data, axis, method, periodic)

            if outloc is not f.location:
                result = interp_to(f._new(data), outloc, region)
                return f._new(self._zero_outside(f, np.nan_to_num(result.data, nan=0.0), region),
                              outloc)

        return f._new(self._zero_outside(f, data, region), outloc)

    def index_ddx(self, f, outloc=None, method=None, region=Region.NOBNDRY):
        return self._index_derivative(f, "x", outloc, method, region, 1)

    def index_ddy(self, f, outloc=None, method=None, region=Region.NOBNDRY):
        return self._index_derivative(f, "y", outloc, method, region, 1)

    def index_ddz(self, f, outloc=None, method=None, region=Region.NOBNDRY):
        return self._index_derivative(f, "z", outloc, method, region, 1)

    def index_d2dx2(self, f, outloc=None, method=None, region=Region.NOBNDRY):
        return self._index_derivative(f, "x", outloc, method, region, 2)

    def index_d2dy2(self, f, outloc=None, method=None, region=Region.NOBNDRY):
        return self._index_derivative(f, "y", outloc, method, region, 2)

    def index_d2dz2(self, f, outloc=None, method=None, region=Region.NOBNDRY):
        return self._index_derivative(f, "z", outloc, method, region, 2)

    def _index_upwind(self, v, f, direction, outloc, method, region):
        outloc = self._resolve(f, outloc)
        if isinstance(v, Field):
            if v.location is not f.location:
                raise FieldLocationError(
                    f"Advecting velocity at {v.location.value} but field at {f.location.value}",
                    expected=f.location, actual=v.location)
            vdata = v.broadcast_data(f)
        else:
            vdata = v
        axis = self._axis(f, direction)
        if axis is None:
            return f._new(np.zeros(f.shape), outloc)
        method = method or self.options.upwind_method
        data = index_derivs.upwind_derivative(vdata, f.data, axis, method, periodic=(direction == "z"))
        if outloc is not f.location:
            result = interp_to(f._new(data), outloc, region)
            data = np.nan_to_num(result.data, nan=0.0)
        return f._new(self._zero_outside(f, data, region), outloc)

    def index_vddx(self, v, f, outloc=None, method=None, region=Region.NOBNDRY):
        return self._index_upwind(v, f, "x", outloc, method, region)

    def index_vddy(self, v, f, outloc=None, method=None, region=Region.NOBNDRY):
        return self._index_upwind(v, f, "y", outloc, method, region)

    def index_vddz(self, v, f, outloc=None, method=None, region=Region.NOBNDRY):
        return self._index_upwind(v, f, "z", outloc, method, region)


class StructuredMesh(Mesh):
    """
    Single-process logically rectangular mesh.

    Columns with local x index below `ixseps` lie on closed field lines: y is
    periodic there, with a branch cut at both y ends. Remaining columns end on
    physical y boundaries.
    """

    def __init__(self, nx, ny, nz=1, mxg=2, myg=2, source=None, periodic_x=False,
                 ixseps=0, options=None):
        if nx < 1 or ny < 1 or nz < 1:
            raise ValueError(f"Mesh sizes must be positive, got nx={nx} ny={ny} nz={nz}")
        if mxg < 0 or myg < 0:
            raise ValueError("Guard cell widths must be non-negative")
        if periodic_x and nx < mxg:
            raise ValueError(f"Periodic x needs nx >= mxg ({nx} < {mxg})")
        if ixseps > 0 and ny < myg:
            raise ValueError(f"Closed field lines need ny >= myg ({ny} < {myg})")

        self.nx, self.ny, self.nz = nx, ny, nz
        self.mxg, self.myg = mxg, myg
        self.local_nx = nx + 2 * mxg
        self.local_ny = ny + 2 * myg
        self.local_nz = nz
        self.global_nx = self.local_nx
        self.global_ny = self.local_ny
        self.global_nz = nz
        self.xstart, self.xend = mxg, mxg + nx - 1
        self.ystart, self.yend = myg, myg + ny - 1
        self.periodic_x = periodic_x
        self.ixseps = ixseps
        self.source = dict(source or {})
        self.options = options if options is not None else GeometryOptions()
        self.options.validate()

        logger.debug("Mesh created", extra={"extra_data": {
            "local_nx": self.local_nx, "local_ny": self.local_ny, "local_nz": self.local_nz,
            "mxg": mxg, "myg": myg, "periodic_x": periodic_x, "ixseps": ixseps,
        }})

    def __repr__(self):
        return (f"StructuredMesh(nx={self.nx}, ny={self.ny}, nz={self.nz}, "
                f"mxg={self.mxg}, myg={self.myg}, ixseps={self.ixseps})")

    # ---- grid source ----

    def source_has_var(self, name):
        return name in self.source

    def get(self, name, default=None):
        if name in self.source:
            value = self.source[name]
        elif default is None:
            return None
        else:
            value = default

        arr = np.asarray(value, dtype=float)
        if arr.ndim == 0:
            data = np.full((self.local_nx, self.local_ny), float(arr))
        elif arr.ndim == 1 and arr.shape[0] == self.local_nx:
            data = np.repeat(arr[:, np.newaxis], self.local_ny, axis=1)
        elif arr.shape == (self.local_nx, self.local_ny):
            data = arr.copy()
        else:
            raise ValueError(f"Grid variable '{name}' has shape {arr.shape}, "
                             f"expected scalar, ({self.local_nx},) or ({self.local_nx}, {self.local_ny})")
        return Field2D(data, self, CellLoc.CENTRE)

    def get_1d(self, name):
        if name not in self.source:
            return None
        arr = np.asarray(self.source[name], dtype=float)
        if arr.ndim == 0:
            return np.full(self.local_nx, float(arr))
        if arr.shape != (self.local_nx,):
            raise ValueError(f"Grid variable '{name}' has shape {arr.shape}, expected ({self.local_nx},)")
        return arr.copy()

    def get_scalar(self, name, default=None):
        if name not in self.source:
            return default
        arr = np.asarray(self.source[name], dtype=float)
        if arr.ndim != 0:
            raise ValueError(f"Grid variable '{name}' is not a scalar")
        return float(arr)

    # ---- topology ----

    def has_branch_cut_down(self, x):
        return 0 <= x < min(self.ixseps, self.local_nx)

    def has_branch_cut_up(self, x):
        return 0 <= x < min(self.ixseps, self.local_nx)

    def _communicate_data(self, data, perp):
        mxg, myg = self.mxg, self.myg
        if self.periodic_x and mxg > 0:
            data[:mxg] = data[self.xend - mxg + 1:self.xend + 1]
            data[self.xend + 1:] = data[self.xstart:self.xstart + mxg]
        if perp:
            return
        ncol = min(self.ixseps, self.local_nx)
        if ncol > 0 and myg > 0:
            data[:ncol, :myg] = data[:ncol, self.yend - myg + 1:self.yend + 1]
            data[:ncol, self.yend + 1:] = data[:ncol, self.ystart:self.ystart + myg]

    def communicate(self, *fields):
        for f in fields:
            if f is None:
                continue
            self._communicate_data(f.data, isinstance(f, FieldPerp))
            if isinstance(f, Field3D) and f.has_yup_ydown() and f.yup is not f:
                self._communicate_data(f.yup.data, False)
                self._communicate_data(f.ydown.data, False)

    def boundaries(self):
        regions = []
        interior_y = range(self.ystart, self.yend + 1)
        if not self.periodic_x and self.mxg > 0:
            regions.append(BoundaryRegion("xin", -1, 0, self.mxg,
                                          [(self.xstart - 1, y) for y in interior_y]))
            regions.append(BoundaryRegion("xout", 1, 0, self.mxg,
                                          [(self.xend + 1, y) for y in interior_y]))

        open_x = [x for x in range(self.xstart, self.xend + 1) if x >= self.ixseps]
        if open_x and self.myg > 0:
            regions.append(BoundaryRegion("ydown", 0, -1, self.myg,
                                          [(x, self.ystart - 1) for x in open_x]))
            regions.append(BoundaryRegion("yup", 0, 1, self.myg,
                                          [(x, self.yend + 1) for x in open_x]))
        return regions

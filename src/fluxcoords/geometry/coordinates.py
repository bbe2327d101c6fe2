"""
Coordinates: the geometry snapshot of one mesh at one cell location.

Three construction paths share one finalize sequence and differ only in how
the spacing, metric and shift data are obtained:

- IdentityStrategy: read from the mesh's grid source (cell centres)
- StaggerStrategy: interpolate a cell-centred Coordinates to XLOW/YLOW/ZLOW
- CornerStrategy: interpolate an XLOW Coordinates to the XY corner

The finalize sequence is validate -> missing metric tensor by inversion ->
Jacobian and Bxy -> Christoffel symbols and connection vectors -> shift data
with branch-cut correction -> freeze.
"""

import logging
import weakref
from abc import ABC, abstractmethod

import numpy as np

from ..config import GeometryOptions
from ..errors import MetricValidationError, FieldLocationError
from ..logging_config import Timer, array_stats
from ..mesh.field import CellLoc, Region, Field2D, STAGGERED_LOCATIONS
from ..mesh.interpolation import interp_point
from ..operators import differential, spectral
from .core_fields import (
    CONTRAVARIANT_NAMES, COVARIANT_NAMES, calc_covariant, calc_contravariant, log_orthogonality,
)
from .geometry import CHRISTOFFEL_NAMES, CONNECTION_NAMES, geometry, jacobian, validate_metric
from .staggered import interpolate_and_extrapolate, interp_xlow_to_xycorner

logger = logging.getLogger('fluxcoords.coordinates')

SHIFT_NAMES = ("z_shift", "shift_torsion", "int_shift_torsion")

FIELD_NAMES = (("dx", "dy") + CONTRAVARIANT_NAMES + COVARIANT_NAMES + CHRISTOFFEL_NAMES
               + CONNECTION_NAMES + ("J", "Bxy", "d1_dx", "d1_dy") + SHIFT_NAMES)

# attribute -> name used in output files and grid sources
OUTPUT_NAMES = (
    [("dx", "dx"), ("dy", "dy"), ("dz", "dz"), ("d1_dx", "d1_dx"), ("d1_dy", "d1_dy")]
    + [(n, n) for n in CONTRAVARIANT_NAMES + COVARIANT_NAMES + CHRISTOFFEL_NAMES + CONNECTION_NAMES]
    + [("J", "J"), ("Bxy", "Bxy"), ("z_shift", "zShift"),
       ("shift_torsion", "ShiftTorsion"), ("int_shift_torsion", "IntShiftTorsion")]
)


class Coordinates:
    """
    Spacing, metric, Christoffel symbols, Jacobian and shift data for one
    (mesh, location) pair.

    Read-only once built: arrays are not writeable and attribute assignment
    raises AttributeError. Each instance owns its storage.
    """

    def __init__(self, mesh, location=CellLoc.CENTRE, options=None):
        object.__setattr__(self, '_frozen', False)
        self._mesh_ref = weakref.ref(mesh)
        self.location = location
        self.options = options if options is not None else mesh.options
        self.nz = mesh.local_nz
        self.dz = None
        self.shift_angle = None
        for name in FIELD_NAMES:
            setattr(self, name, None)

    def __setattr__(self, name, value):
        if self._frozen:
            raise AttributeError(f"Coordinates are read-only, cannot set '{name}'")
        object.__setattr__(self, name, value)

    def __repr__(self):
        return f"Coordinates(location={self.location.value}, nz={self.nz}, dz={self.dz})"

    @property
    def mesh(self):
        mesh = self._mesh_ref()
        if mesh is None:
            raise ReferenceError("The mesh owning these Coordinates no longer exists")
        return mesh

    @property
    def zlength(self):
        return self.dz * self.nz

    @property
    def frozen(self):
        return self._frozen

    def freeze(self):
        for name in FIELD_NAMES:
            value = getattr(self, name)
            if value is not None:
                value.data.setflags(write=False)
        if self.shift_angle is not None:
            self.shift_angle.setflags(write=False)
        object.__setattr__(self, '_frozen', True)

    def output_vars(self, datafile):
        """Add spacing, metric, Christoffel, Jacobian and shift fields to a Datafile."""
        for attr, name in OUTPUT_NAMES:
            datafile.add(getattr(self, attr), name, save_repeat=False)

    # ---- operators ----

    def DDX(self, f, outloc=None, method=None, region=Region.NOBNDRY):
        return differential.ddx(self, f, outloc, method, region)

    def DDY(self, f, outloc=None, method=None, region=Region.NOBNDRY):
        return differential.ddy(self, f, outloc, method, region)

    def DDZ(self, f, outloc=None, method=None, region=Region.NOBNDRY):
        return differential.ddz(self, f, outloc, method, region)

    def D2DX2(self, f, outloc=None, method=None, region=Region.NOBNDRY):
        return differential.d2dx2(self, f, outloc, method, region)

    def D2DY2(self, f, outloc=None, method=None, region=Region.NOBNDRY):
        return differential.d2dy2(self, f, outloc, method, region)

    def D2DZ2(self, f, outloc=None, method=None, region=Region.NOBNDRY):
        return differential.d2dz2(self, f, outloc, method, region)

    def D2DXDY(self, f, outloc=None, method=None, region=Region.NOBNDRY):
        return differential.d2dxdy(self, f, outloc, method, region)

    def D2DYDX(self, f, outloc=None, method=None, region=Region.NOBNDRY):
        return differential.d2dydx(self, f, outloc, method, region)

    def D2DXDZ(self, f, outloc=None, method=None, region=Region.NOBNDRY):
        return differential.d2dxdz(self, f, outloc, method, region)

    def D2DZDX(self, f, outloc=None, method=None, region=Region.NOBNDRY):
        return differential.d2dzdx(self, f, outloc, method, region)

    def D2DYDZ(self, f, outloc=None, method=None, region=Region.NOBNDRY):
        return differential.d2dydz(self, f, outloc, method, region)

    def D2DZDY(self, f, outloc=None, method=None, region=Region.NOBNDRY):
        return differential.d2dzdy(self, f, outloc, method, region)

    def VDDY(self, v, f, outloc=None, method=None, region=Region.NOBNDRY):
        return differential.vddy(self, v, f, outloc, method, region)

    def Grad_par(self, f, outloc=None, method=None):
        return differential.grad_par(self, f, outloc, method)

    def Vpar_Grad_par(self, v, f, outloc=None, method=None):
        return differential.vpar_grad_par(self, v, f, outloc, method)

    def Div_par(self, f, outloc=None, method=None, Bxy=None):
        return differential.div_par(self, f, outloc, method, Bxy)

    def Grad2_par2(self, f, outloc=None, method=None):
        return differential.grad2_par2(self, f, outloc, method)

    def Delp2(self, f, outloc=None):
        return spectral.delp2(self, f, outloc)

    def Laplace_par(self, f, outloc=None):
        return differential.laplace_par(self, f, outloc)

    def Laplace(self, f, outloc=None):
        return differential.laplace(self, f, outloc)


# ============================================================================
# CONSTRUCTION STRATEGIES
# ============================================================================

class CoordinateStrategy(ABC):
    """Where a Coordinates gets its spacing, metric and shift data from."""

    kind = None
    location = CellLoc.CENTRE
    covariant_supplied = False
    contravariant_supplied = True

    def __init__(self, mesh, options):
        self.mesh = mesh
        self.options = options

    @abstractmethod
    def load_metric(self, coords):
        """Set dx, dy, dz and the contravariant (optionally covariant) metric."""

    def load_jacobian(self, coords):
        """Optionally replace the computed J / Bxy."""

    def second_derivatives(self):
        """Grid-supplied d2x, d2y, or None to difference the spacing."""
        return None, None

    @abstractmethod
    def load_shift(self, coords):
        """Set z_shift, shift_angle, shift_torsion and int_shift_torsion."""


class IdentityStrategy(CoordinateStrategy):
    """Cell-centred values read from the grid source, with defaults."""

    kind = "identity"

    def _read(self, name, default, warn=True):
        value = self.mesh.get(name)
        if value is None:
            if warn:
                logger.warning(f"Grid quantity '{name}' not found, set to {default}",
                               extra={"extra_data": {"variable": name, "default": default}})
            value = self.mesh.get(name, default)
        return value

    def load_metric(self, coords):
        mesh = self.mesh
        coords.dx = self._read("dx", 1.0)
        if mesh.periodic_x:
            mesh.communicate(coords.dx)
        coords.dy = self._read("dy", 1.0)

        dz = mesh.get_scalar("dz")
        if dz is None:
            dz = self.options.z_extent() * 2.0 * np.pi / coords.nz
            logger.debug("dz computed from z extent", extra={"extra_data": {
                "dz": dz, "nz": coords.nz, "z_extent": self.options.z_extent()}})
        coords.dz = float(dz)

        for name in ("g11", "g22", "g33"):
            setattr(coords, name, self._read(name, 1.0, warn=False))
        for name in ("g12", "g13", "g23"):
            setattr(coords, name, self._read(name, 0.0, warn=False))

        present = [name for name in COVARIANT_NAMES if mesh.source_has_var(name)]
        if len(present) == len(COVARIANT_NAMES):
            for name in COVARIANT_NAMES:
                setattr(coords, name, mesh.get(name))
            self.covariant_supplied = True
            if any(mesh.source_has_var(name) for name in CONTRAVARIANT_NAMES):
                logger.warning("Covariant metric read from grid, contravariant metric not recalculated")
            else:
                # the identity defaults above are placeholders until inversion
                self.contravariant_supplied = False
                logger.info("Only the covariant metric found, calculating the contravariant metric")
        elif present:
            logger.warning("Not all covariant metric components found, calculating all from "
                           "the contravariant metric", extra={"extra_data": {"found": present}})

    def load_jacobian(self, coords):
        mesh = self.mesh
        J = mesh.get("J")
        if J is not None:
            diff = float(np.nanmax(np.abs(J.data - coords.J.data)))
            logger.warning(f"Maximum difference in J is {diff:e}",
                           extra={"extra_data": {"max_difference": diff, "variable": "J"}})
            coords.J = J
            # Bxy follows the loaded Jacobian
            with np.errstate(invalid='ignore', divide='ignore'):
                coords.Bxy = Field2D(np.sqrt(coords.g_22.data) / J.data, mesh, coords.location)

        Bxy = mesh.get("Bxy")
        if Bxy is not None:
            diff = float(np.nanmax(np.abs(Bxy.data - coords.Bxy.data)))
            logger.warning(f"Maximum difference in Bxy is {diff:e}",
                           extra={"extra_data": {"max_difference": diff, "variable": "Bxy"}})
            if not np.all(np.isfinite(Bxy.data)):
                raise MetricValidationError("Bxy not finite everywhere", coords.location)
            coords.Bxy = Bxy

    def second_derivatives(self):
        d2x = self.mesh.get("d2x")
        d2y = self.mesh.get("d2y")
        for name, value in (("d2x", d2x), ("d2y", d2y)):
            if value is None:
                logger.info(f"Grid quantity '{name}' not found, differencing the spacing instead")
        return d2x, d2y

    def load_shift(self, coords):
        mesh = self.mesh
        torsion = mesh.get("ShiftTorsion")
        if torsion is None:
            logger.warning("No torsion specified for zShift, derivatives may not be correct")
            torsion = mesh.field2d(0.0)
        coords.shift_torsion = torsion

        coords.shift_angle = mesh.get_1d("ShiftAngle")
        if coords.shift_angle is None:
            logger.warning("Twist-shift angle 'ShiftAngle' not found")

        z_shift = mesh.get("zShift")
        if z_shift is None:
            z_shift = mesh.get("qinty", 0.0)
        mesh.communicate(z_shift)
        coords.z_shift = z_shift

        if self.options.inc_int_shear:
            coords.int_shift_torsion = self._read("IntShiftTorsion", 0.0)
        else:
            coords.int_shift_torsion = mesh.field2d(0.0)


class StaggerStrategy(CoordinateStrategy):
    """Single half-cell shift of a cell-centred Coordinates."""

    kind = "shift"

    def __init__(self, mesh, options, location, base):
        super().__init__(mesh, options)
        if location not in STAGGERED_LOCATIONS:
            raise FieldLocationError(f"Staggered Coordinates need XLOW, YLOW or ZLOW, got {location.value}",
                                     actual=location)
        if base.location is not CellLoc.CENTRE:
            raise FieldLocationError("Staggered Coordinates are built from cell-centred Coordinates",
                                     expected=CellLoc.CENTRE, actual=base.location)
        self.location = location
        self.base = base

    def _interp(self, f, extrap_at_branch_cut):
        return interpolate_and_extrapolate(f, self.location, extrap_at_branch_cut)

    def load_metric(self, coords):
        base = self.base
        coords.dx = self._interp(base.dx, False)
        coords.dy = self._interp(base.dy, False)
        coords.dz = base.dz

        cut = self.mesh.has_branch_cut()
        for name in CONTRAVARIANT_NAMES:
            setattr(coords, name, self._interp(getattr(base, name), cut))

    def load_shift(self, coords):
        mesh = self.mesh
        base = self.base

        if base.shift_angle is not None:
            angle = base.shift_angle.copy()
            if self.location is CellLoc.XLOW:
                src = base.shift_angle
                for x in range(mesh.xstart, mesh.xend + 1):
                    angle[x] = interp_point(src[x - 2], src[x - 1], src[x], src[x + 1])
            coords.shift_angle = angle

        # zShift is not extrapolated across branch cuts: ShiftAngle handles the seam
        coords.z_shift = self._interp(base.z_shift, False)
        mesh.communicate(coords.z_shift)

        coords.shift_torsion = self._interp(base.shift_torsion, False)
        if self.options.inc_int_shear:
            coords.int_shift_torsion = self._interp(base.int_shift_torsion, True)
        else:
            coords.int_shift_torsion = mesh.field2d(0.0, self.location)


class CornerStrategy(CoordinateStrategy):
    """Composed x then y shift of an XLOW Coordinates."""

    kind = "composed"
    location = CellLoc.XYCORNER

    def __init__(self, mesh, options, base_xlow):
        super().__init__(mesh, options)
        if base_xlow.location is not CellLoc.XLOW:
            raise FieldLocationError("Corner Coordinates are built from XLOW Coordinates",
                                     expected=CellLoc.XLOW, actual=base_xlow.location)
        self.base = base_xlow

    def load_metric(self, coords):
        base = self.base
        coords.dx = interp_xlow_to_xycorner(base.dx, False)
        coords.dy = interp_xlow_to_xycorner(base.dy, False)
        coords.dz = base.dz

        cut = self.mesh.has_branch_cut()
        for name in CONTRAVARIANT_NAMES:
            setattr(coords, name, interp_xlow_to_xycorner(getattr(base, name), cut))

    def load_shift(self, coords):
        mesh = self.mesh
        base = self.base
        if base.shift_angle is not None:
            coords.shift_angle = base.shift_angle.copy()

        coords.z_shift = interp_xlow_to_xycorner(base.z_shift, False)
        mesh.communicate(coords.z_shift)

        coords.shift_torsion = interp_xlow_to_xycorner(base.shift_torsion, mesh.has_branch_cut())
        if self.options.inc_int_shear:
            coords.int_shift_torsion = interp_xlow_to_xycorner(base.int_shift_torsion, False)
        else:
            coords.int_shift_torsion = Field2D(np.zeros((mesh.local_nx, mesh.local_ny)), mesh,
                                               CellLoc.XYCORNER)


# ============================================================================
# FINALIZE
# ============================================================================

def correct_branch_cut_shift(coords):
    """zShift jumps by ShiftAngle across the branch cut."""
    if coords.shift_angle is None:
        return
    mesh = coords.mesh
    z = coords.z_shift.data
    for x in range(mesh.local_nx):
        if mesh.has_branch_cut_down(x):
            z[x, :mesh.ystart] -= coords.shift_angle[x]
        if mesh.has_branch_cut_up(x):
            z[x, mesh.yend + 1:] += coords.shift_angle[x]


def build_coordinates(strategy):
    """Run the shared finalize sequence for a construction strategy."""
    mesh = strategy.mesh
    coords = Coordinates(mesh, strategy.location, strategy.options)

    with Timer("coordinates") as timer:
        strategy.load_metric(coords)
        validate_metric(coords, include_covariant=strategy.covariant_supplied)

        if not strategy.covariant_supplied:
            calc_covariant(coords)
        elif not strategy.contravariant_supplied:
            calc_contravariant(coords)
        else:
            log_orthogonality(coords, "Metric tensors both read from grid", logging.WARNING)

        coords.J, coords.Bxy = jacobian(coords)
        strategy.load_jacobian(coords)

        d2x, d2y = strategy.second_derivatives()
        geometry(coords, d2x, d2y)

        strategy.load_shift(coords)
        correct_branch_cut_shift(coords)

    coords.freeze()

    logger.info("Coordinates built", extra={"extra_data": {
        "location": coords.location.value,
        "strategy": strategy.kind,
        "elapsed_ms": timer.elapsed_ms(),
        "J": array_stats(coords.J.data, "J"),
        "Bxy": array_stats(coords.Bxy.data, "Bxy"),
    }})
    return coords


def _options(mesh, options):
    if options is None:
        options = mesh.options
    if not isinstance(options, GeometryOptions):
        raise TypeError(f"options must be GeometryOptions, got {type(options).__name__}")
    options.validate()
    return options


def get_coordinates(mesh, options=None):
    """Cell-centred Coordinates read from the mesh's grid source."""
    return build_coordinates(IdentityStrategy(mesh, _options(mesh, options)))


def get_coordinates_staggered(mesh, location, base, options=None):
    """Coordinates at XLOW, YLOW or ZLOW interpolated from cell-centred `base`."""
    return build_coordinates(StaggerStrategy(mesh, _options(mesh, options), location, base))


def get_coordinates_xycorner(mesh, base_xlow=None, options=None):
    """
    Coordinates at the XY corner, for point-wise use in boundary conditions.

    `base_xlow` defaults to the mesh's cached XLOW Coordinates.
    """
    if base_xlow is None:
        base_xlow = mesh.get_coordinates(CellLoc.XLOW)
    return build_coordinates(CornerStrategy(mesh, _options(mesh, options), base_xlow))


"""
Location-tagged scalar fields on a structured mesh.

Field2D holds axisymmetric (x, y) data such as metric components, Field3D adds
the periodic z direction, and FieldPerp is a single (x, z) plane at fixed y.
Arithmetic goes through numpy ufuncs; every operand must share the same cell
location, and values tagged XYCORNER refuse arithmetic entirely since they are
only meaningful point-wise inside boundary-condition loops.
"""

from enum import Enum

import numpy as np
from numpy.lib.mixins import NDArrayOperatorsMixin

from ..errors import FieldLocationError


class CellLoc(Enum):
    CENTRE = "CELL_CENTRE"
    XLOW = "CELL_XLOW"
    YLOW = "CELL_YLOW"
    ZLOW = "CELL_ZLOW"
    DEFAULT = "CELL_DEFAULT"
    XYCORNER = "CELL_XYCORNER"


STAGGERED_LOCATIONS = (CellLoc.XLOW, CellLoc.YLOW, CellLoc.ZLOW)


class Region(Enum):
    ALL = "RGN_ALL"
    NOBNDRY = "RGN_NOBNDRY"
    NOX = "RGN_NOX"
    NOY = "RGN_NOY"


def check_arithmetic_locations(operands):
    """Return the common location of the Field operands, or raise."""
    location = None
    for f in operands:
        if not isinstance(f, Field):
            continue
        if f.location is CellLoc.XYCORNER:
            raise FieldLocationError(
                "XY-corner values may only be read point-wise, not used in field arithmetic",
                expected=None, actual=f.location)
        if location is None:
            location = f.location
        elif f.location is not location:
            raise FieldLocationError(
                f"Field locations differ: {location.value} vs {f.location.value}",
                expected=location, actual=f.location)
    return location


class Field(NDArrayOperatorsMixin):
    """Base class: numpy data, owning mesh, cell location."""

    expected_ndim = None

    def __init__(self, data, mesh, location=CellLoc.CENTRE):
        data = np.asarray(data)
        if data.dtype.kind in "iub":
            data = data.astype(float)
        if self.expected_ndim is not None and data.ndim != self.expected_ndim:
            raise ValueError(f"{type(self).__name__} needs {self.expected_ndim}D data, got shape {data.shape}")
        if location is CellLoc.DEFAULT:
            location = CellLoc.CENTRE
        self.data = data
        self.mesh = mesh
        self.location = location

    @property
    def shape(self):
        return self.data.shape

    @property
    def ndim(self):
        return self.data.ndim

    def __getitem__(self, idx):
        return self.data[idx]

    def __setitem__(self, idx, value):
        self.data[idx] = value

    def __array__(self, dtype=None, copy=None):
        if dtype is not None:
            return self.data.astype(dtype)
        return self.data

    def __repr__(self):
        return f"{type(self).__name__}(shape={self.data.shape}, location={self.location.value})"

    def _new(self, data, location=None):
        return type(self)(data, self.mesh, self.location if location is None else location)

    def copy(self):
        return self._new(self.data.copy())

    def with_location(self, location):
        """Copy of this field re-tagged at another location (data unchanged)."""
        return self._new(self.data.copy(), location)

    def broadcast_data(self, template):
        """Data shaped to combine with the template field."""
        return self.data

    @property
    def coordinates(self):
        return self.mesh.get_coordinates(self.location)

    def __array_ufunc__(self, ufunc, method, *inputs, **kwargs):
        if method != "__call__" or "out" in kwargs:
            return NotImplemented

        location = check_arithmetic_locations(inputs)

        # Result takes the type of the highest-dimensional field operand
        template = max((x for x in inputs if isinstance(x, Field)),
                       key=lambda f: (f.ndim, isinstance(f, FieldPerp)))
        arrays = [x.broadcast_data(template) if isinstance(x, Field) else x for x in inputs]
        result = ufunc(*arrays, **kwargs)

        if isinstance(result, tuple):
            return tuple(template._new(r, location) for r in result)
        return template._new(result, location)


class Field2D(Field):
    """(x, y) field, independent of z."""

    expected_ndim = 2

    def broadcast_data(self, template):
        if isinstance(template, Field3D):
            return self.data[:, :, np.newaxis]
        if isinstance(template, FieldPerp):
            return self.data[:, template.y_index, np.newaxis]
        return self.data


class Field3D(Field):
    """(x, y, z) field with optional along-field-line companions."""

    expected_ndim = 3

    def __init__(self, data, mesh, location=CellLoc.CENTRE, yup=None, ydown=None):
        super().__init__(data, mesh, location)
        self._yup = None
        self._ydown = None
        if yup is not None or ydown is not None:
            self.split_yup_ydown(yup, ydown)

    @property
    def yup(self):
        return self._yup

    @property
    def ydown(self):
        return self._ydown

    def has_yup_ydown(self):
        return self._yup is not None and self._ydown is not None

    def merge_yup_ydown(self):
        """Companions become the field itself."""
        self._yup = self
        self._ydown = self

    def split_yup_ydown(self, yup, ydown):
        """Attach distinct companion values along the field line."""
        if yup is None or ydown is None:
            raise ValueError("Both yup and ydown must be given")
        self._yup = self._as_companion(yup)
        self._ydown = self._as_companion(ydown)

    def _as_companion(self, value):
        if isinstance(value, Field):
            check_arithmetic_locations((self, value))
            data = value.data
        else:
            data = np.asarray(value, dtype=float)
        if data.shape != self.data.shape:
            raise ValueError(f"Companion shape {data.shape} does not match {self.data.shape}")
        return Field3D(data, self.mesh, self.location)

    def copy(self):
        result = Field3D(self.data.copy(), self.mesh, self.location)
        if self._yup is self:
            result.merge_yup_ydown()
        elif self.has_yup_ydown():
            result.split_yup_ydown(self._yup.data.copy(), self._ydown.data.copy())
        return result

    def slice_y(self, y_index):
        """Perpendicular plane at a fixed y index."""
        return FieldPerp(self.data[:, y_index, :].copy(), self.mesh, self.location, y_index)


class FieldPerp(Field):
    """(x, z) plane at a fixed y index."""

    expected_ndim = 2

    def __init__(self, data, mesh, location=CellLoc.CENTRE, y_index=0):
        super().__init__(data, mesh, location)
        self.y_index = int(y_index)

    def _new(self, data, location=None):
        return FieldPerp(data, self.mesh, self.location if location is None else location, self.y_index)

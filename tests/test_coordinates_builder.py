"""
Coordinates construction from grid sources, staggered and corner coordinates,
read-only snapshots and diagnostic output.
"""

import logging

import numpy as np
import pytest

from fluxcoords import (
    StructuredMesh, CellLoc, Datafile, GeometryOptions, MetricValidationError, FieldLocationError,
    get_coordinates, get_coordinates_staggered, get_coordinates_xycorner,
)
from fluxcoords.geometry.coordinates import FIELD_NAMES, OUTPUT_NAMES
from geom_test_utils import interior, index_grids, corner_mask, flat_mesh


class TestDefaults:
    def test_missing_spacing_defaults_with_warning(self, caplog):
        mesh = StructuredMesh(4, 4, 8)
        with caplog.at_level(logging.WARNING, logger='fluxcoords.coordinates'):
            coords = mesh.get_coordinates()

        assert np.allclose(coords.dx.data, 1.0)
        assert np.allclose(coords.dy.data, 1.0)
        messages = [r.getMessage() for r in caplog.records]
        assert any("'dx' not found" in m for m in messages)
        assert any("'dy' not found" in m for m in messages)

    def test_dz_from_z_extent(self):
        mesh = StructuredMesh(4, 4, 8)
        coords = mesh.get_coordinates()
        assert coords.dz == pytest.approx(2.0 * np.pi / 8)
        assert coords.zlength == pytest.approx(2.0 * np.pi)

    def test_dz_from_zperiod(self):
        mesh = StructuredMesh(4, 4, 8, options=GeometryOptions(zperiod=4))
        coords = mesh.get_coordinates()
        assert coords.zlength == pytest.approx(2.0 * np.pi / 4)

    def test_dz_from_grid(self):
        mesh = StructuredMesh(4, 4, 8, source={"dz": 0.3})
        coords = mesh.get_coordinates()
        assert coords.dz == pytest.approx(0.3)

    def test_shift_defaults(self, coords):
        assert np.all(coords.z_shift.data == 0.0)
        assert np.all(coords.shift_torsion.data == 0.0)
        assert np.all(coords.int_shift_torsion.data == 0.0)
        assert coords.shift_angle is None

    def test_zshift_falls_back_to_qinty(self):
        mesh = flat_mesh()
        mesh.source["qinty"] = 0.7
        coords = mesh.get_coordinates()
        assert np.allclose(coords.z_shift.data, 0.7)


def test_covariant_metric_read_verbatim(caplog):
    mesh = flat_mesh()
    mesh.source.update({"g11": 4.0, "g22": 4.0, "g33": 4.0,
                        "g_11": 0.25, "g_22": 0.25, "g_33": 0.25,
                        "g_12": 0.0, "g_13": 0.0, "g_23": 0.0})
    with caplog.at_level(logging.WARNING, logger='fluxcoords.coordinates'):
        coords = mesh.get_coordinates()

    assert np.allclose(coords.g_22.data, 0.25)
    assert any("not recalculated" in r.getMessage() for r in caplog.records)


def test_covariant_only_metric_is_inverted():
    mesh = flat_mesh()
    mesh.source.update({"g_11": 0.25, "g_22": 0.25, "g_33": 0.25,
                        "g_12": 0.0, "g_13": 0.0, "g_23": 0.0})
    coords = mesh.get_coordinates()

    for name in ("g11", "g22", "g33"):
        assert np.allclose(getattr(coords, name).data, 4.0)
    assert np.allclose(coords.g12.data, 0.0)
    assert np.allclose(coords.g11.data * coords.g_11.data, 1.0)
    assert np.allclose(coords.J.data, 0.125)
    assert np.allclose(coords.Bxy.data, 4.0)


def test_covariant_only_non_diagonal_metric_is_inverted():
    mesh = flat_mesh()
    lower = np.array([[2.0, 0.3, 0.1], [0.3, 1.5, 0.2], [0.1, 0.2, 1.0]])
    mesh.source.update({"g_11": lower[0, 0], "g_22": lower[1, 1], "g_33": lower[2, 2],
                        "g_12": lower[0, 1], "g_13": lower[0, 2], "g_23": lower[1, 2]})
    coords = mesh.get_coordinates()

    upper = np.linalg.inv(lower)
    for name, (i, j) in (("g11", (0, 0)), ("g22", (1, 1)), ("g33", (2, 2)),
                         ("g12", (0, 1)), ("g13", (0, 2)), ("g23", (1, 2))):
        assert np.allclose(getattr(coords, name).data, upper[i, j])
    assert np.allclose(coords.J.data, np.sqrt(np.linalg.det(lower)))


def test_both_metrics_from_grid_log_residuals(caplog):
    mesh = flat_mesh()
    mesh.source.update({"g11": 2.0, "g_11": 0.25, "g_22": 1.0, "g_33": 1.0,
                        "g_12": 0.0, "g_13": 0.0, "g_23": 0.0})
    with caplog.at_level(logging.WARNING, logger='fluxcoords.metric'):
        coords = mesh.get_coordinates()

    assert np.allclose(coords.g11.data, 2.0)
    assert np.allclose(coords.g_11.data, 0.25)
    records = [r for r in caplog.records if r.name == 'fluxcoords.metric']
    assert records
    assert records[-1].extra_data["max_diagonal_residual"] == pytest.approx(0.5)


def test_partial_covariant_metric_ignored(caplog):
    mesh = flat_mesh()
    mesh.source.update({"g11": 4.0, "g_11": 123.0})
    with caplog.at_level(logging.WARNING, logger='fluxcoords.coordinates'):
        coords = mesh.get_coordinates()

    assert np.allclose(coords.g_11.data, 0.25)
    assert any("Not all covariant" in r.getMessage() for r in caplog.records)


def test_loaded_jacobian_recomputes_bxy():
    mesh = flat_mesh()
    mesh.source["J"] = 2.0
    coords = mesh.get_coordinates()
    assert np.allclose(coords.J.data, 2.0)
    assert np.allclose(coords.Bxy.data, 0.5)


def test_loaded_bxy_must_be_finite():
    mesh = flat_mesh()
    Bxy = np.ones((mesh.local_nx, mesh.local_ny))
    Bxy[0, 0] = np.inf
    mesh.source["Bxy"] = Bxy
    with pytest.raises(MetricValidationError):
        mesh.get_coordinates()


def test_branch_cut_shift_correction():
    mesh = StructuredMesh(4, 6, 2, ixseps=8, source={"dx": 1.0, "dy": 1.0})
    _, Y = index_grids(mesh)
    mesh.source.update({"zShift": Y, "ShiftAngle": 0.3})
    coords = mesh.get_coordinates()

    z = coords.z_shift.data
    assert np.allclose(z[:, 0], (mesh.yend - 1) - 0.3)
    assert np.allclose(z[:, mesh.ystart - 1], mesh.yend - 0.3)
    assert np.allclose(z[:, mesh.yend + 1], mesh.ystart + 0.3)
    assert np.allclose(interior(mesh, z), interior(mesh, Y))


def test_int_shift_torsion_read_when_enabled():
    mesh = StructuredMesh(4, 4, 2, source={"dx": 1.0, "dy": 1.0, "IntShiftTorsion": 0.2},
                          options=GeometryOptions(inc_int_shear=True))
    coords = mesh.get_coordinates()
    assert np.allclose(coords.int_shift_torsion.data, 0.2)


# ============================================================================
# SNAPSHOT PROPERTIES
# ============================================================================

class TestSnapshot:
    def test_arrays_read_only(self, coords):
        with pytest.raises(ValueError):
            coords.J.data[0, 0] = 5.0
        with pytest.raises(ValueError):
            coords.g11[2, 2] = 5.0

    def test_attributes_read_only(self, coords):
        assert coords.frozen
        with pytest.raises(AttributeError):
            coords.dx = None

    def test_independent_storage(self, mesh):
        first = get_coordinates(mesh)
        second = get_coordinates(mesh)
        assert first is not second
        for name in FIELD_NAMES:
            assert not np.shares_memory(getattr(first, name).data, getattr(second, name).data), name

    def test_mesh_cache(self, mesh):
        assert mesh.get_coordinates() is mesh.get_coordinates(CellLoc.CENTRE)
        assert mesh.get_coordinates(CellLoc.DEFAULT) is mesh.get_coordinates()

    def test_explicit_builders_bypass_cache(self, mesh):
        cached = mesh.get_coordinates(CellLoc.XYCORNER)
        explicit = get_coordinates_xycorner(mesh)
        assert explicit is not cached
        assert explicit.location is CellLoc.XYCORNER


def test_output_vars():
    mesh = flat_mesh()
    coords = mesh.get_coordinates()
    datafile = Datafile()
    coords.output_vars(datafile)

    assert len(datafile) == len(OUTPUT_NAMES)
    for name in ("dx", "dz", "g11", "g_23", "G2_22", "G3", "J", "Bxy", "zShift", "ShiftTorsion",
                 "IntShiftTorsion"):
        assert name in datafile
    with pytest.raises(ValueError):
        coords.output_vars(datafile)


def test_datafile_write(tmp_path):
    mesh = flat_mesh()
    coords = mesh.get_coordinates()
    datafile = Datafile()
    coords.output_vars(datafile)
    path = tmp_path / "geometry.npz"
    datafile.write(path)

    with np.load(path) as archive:
        assert np.allclose(archive["J"], 1.0)
        assert float(archive["dz"]) == pytest.approx(coords.dz)
        assert "CELL_CENTRE" in str(archive["__index__"])


# ============================================================================
# STAGGERED AND CORNER COORDINATES
# ============================================================================

def _sheared_mesh(**kwargs):
    mesh = StructuredMesh(6, 6, 4, **kwargs)
    X, Y = index_grids(mesh)
    mesh.source.update({
        "dx": 1.0, "dy": 1.0,
        "g11": 1.0 + 0.05 * X, "g22": 1.0 + 0.02 * Y, "g33": 1.0,
        "g12": 0.01 * X, "g13": 0.0, "g23": 0.0,
        "zShift": 0.1 * Y, "ShiftTorsion": 0.01 * X,
    })
    return mesh


@pytest.mark.parametrize("location", [CellLoc.XLOW, CellLoc.YLOW, CellLoc.ZLOW])
def test_staggered_coordinates(location):
    mesh = _sheared_mesh()
    base = mesh.get_coordinates()
    coords = mesh.get_coordinates(location)

    assert coords.location is location
    assert coords.dz == base.dz
    for name in FIELD_NAMES:
        assert getattr(coords, name).location is location, name
        assert not np.shares_memory(getattr(coords, name).data, getattr(base, name).data), name
    assert np.all(np.isfinite(interior(mesh, coords.J.data)))
    assert np.all(np.isnan(coords.g11.data[corner_mask(mesh)]))


def test_xlow_metric_is_interpolated():
    mesh = _sheared_mesh()
    coords = mesh.get_coordinates(CellLoc.XLOW)
    X, _ = index_grids(mesh)
    expected = 1.0 + 0.05 * (X - 0.5)
    assert np.allclose(interior(mesh, coords.g11.data), interior(mesh, expected))


def test_staggered_base_must_be_centred():
    mesh = _sheared_mesh()
    xlow = mesh.get_coordinates(CellLoc.XLOW)
    with pytest.raises(FieldLocationError):
        get_coordinates_staggered(mesh, CellLoc.YLOW, xlow)
    with pytest.raises(FieldLocationError):
        get_coordinates_staggered(mesh, CellLoc.XYCORNER, mesh.get_coordinates())


def test_xlow_shift_angle_interpolated():
    mesh = _sheared_mesh(ixseps=2)
    x = np.arange(mesh.local_nx, dtype=float)
    mesh.source["ShiftAngle"] = 0.1 * x
    coords = mesh.get_coordinates(CellLoc.XLOW)
    xs = slice(mesh.xstart, mesh.xend + 1)
    assert np.allclose(coords.shift_angle[xs], 0.1 * (x[xs] - 0.5))
    assert np.allclose(coords.shift_angle[:mesh.xstart], 0.1 * x[:mesh.xstart])


def test_xycorner_coordinates():
    mesh = _sheared_mesh()
    coords = mesh.get_coordinates(CellLoc.XYCORNER)
    assert coords.location is CellLoc.XYCORNER

    _, Y = index_grids(mesh)
    ys = slice(mesh.ystart, mesh.yend + 1)
    assert np.allclose(coords.g22.data[:, ys], (1.0 + 0.02 * (Y - 0.5))[:, ys])
    with pytest.raises(FieldLocationError):
        coords.J + 1.0

"""
Finite difference operators on Coordinates: derivatives, parallel operators
and the full Laplacian.
"""

import numpy as np
import pytest

from fluxcoords import StructuredMesh, CellLoc, Field3D, FieldLocationError, get_coordinates
from geom_test_utils import interior, index_grids, field3d_from_xy, flat_mesh


def _interior3d(mesh, field):
    return interior(mesh, field.data)


class TestDerivatives:
    def test_ddx_linear(self, mesh, coords):
        X, _ = index_grids(mesh)
        result = coords.DDX(field3d_from_xy(mesh, 3.0 * X))
        assert isinstance(result, Field3D)
        assert np.allclose(_interior3d(mesh, result), 3.0)
        assert np.all(result.data[:mesh.xstart] == 0.0)

    def test_ddx_uses_spacing(self):
        mesh = StructuredMesh(6, 4, 2, source={"dx": 0.5, "dy": 1.0})
        coords = mesh.get_coordinates()
        X, _ = index_grids(mesh)
        result = coords.DDX(mesh.field2d() + 0.5 * X)
        assert np.allclose(interior(mesh, result.data), 1.0)

    def test_second_derivatives(self, mesh, coords):
        X, Y = index_grids(mesh)
        f = field3d_from_xy(mesh, X**2 + 2.0 * Y**2)
        assert np.allclose(_interior3d(mesh, coords.D2DX2(f)), 2.0)
        assert np.allclose(_interior3d(mesh, coords.D2DY2(f)), 4.0)
        assert np.allclose(_interior3d(mesh, coords.D2DZ2(f)), 0.0)

    def test_fft_z_derivative(self):
        mesh = StructuredMesh(4, 4, 8, source={"dx": 1.0, "dy": 1.0})
        coords = mesh.get_coordinates()
        z = np.arange(8) * coords.dz
        f = mesh.field3d() + np.sin(2.0 * z)
        result = coords.DDZ(f, method="FFT")
        assert np.allclose(_interior3d(mesh, result), np.broadcast_to(2.0 * np.cos(2.0 * z),
                                                                       _interior3d(mesh, result).shape))

    def test_fft_rejected_outside_z(self, mesh, coords):
        with pytest.raises(ValueError):
            coords.DDX(mesh.field3d(1.0), method="FFT")

    def test_mixed_derivatives(self, mesh, coords):
        X, Y = index_grids(mesh)
        f = field3d_from_xy(mesh, X * Y)
        assert np.allclose(_interior3d(mesh, coords.D2DXDY(f)), 1.0)
        assert np.allclose(_interior3d(mesh, coords.D2DYDX(f)), 1.0)

    def test_mixed_z_derivatives_commute(self, mesh, coords):
        X, _ = index_grids(mesh)
        z = np.arange(mesh.local_nz) * coords.dz
        f = Field3D(X[:, :, np.newaxis] * np.sin(z), mesh)
        assert np.allclose(_interior3d(mesh, coords.D2DXDZ(f)), _interior3d(mesh, coords.D2DZDX(f)))
        assert np.allclose(_interior3d(mesh, coords.D2DYDZ(f)), _interior3d(mesh, coords.D2DZDY(f)))

    def test_staggered_output(self, mesh):
        X, _ = index_grids(mesh)
        f = mesh.field2d() + X**2
        coords_x = mesh.get_coordinates(CellLoc.XLOW)
        result = coords_x.DDX(f, outloc=CellLoc.XLOW)
        assert result.location is CellLoc.XLOW
        assert np.allclose(interior(mesh, result.data), interior(mesh, 2.0 * X - 1.0))

    def test_interpolated_output(self, mesh):
        X, _ = index_grids(mesh)
        coords_y = mesh.get_coordinates(CellLoc.YLOW)
        result = coords_y.DDX(mesh.field2d() + X**2, outloc=CellLoc.YLOW)
        assert result.location is CellLoc.YLOW
        assert np.allclose(interior(mesh, result.data), interior(mesh, 2.0 * X))


class TestLocationChecks:
    def test_operand_location_must_match(self, mesh, coords):
        with pytest.raises(FieldLocationError):
            coords.DDX(mesh.field3d(1.0, CellLoc.XLOW))

    def test_outloc_must_match(self, mesh, coords):
        with pytest.raises(FieldLocationError):
            coords.DDY(mesh.field3d(1.0), outloc=CellLoc.YLOW)

    def test_corner_values_rejected(self, mesh, coords):
        with pytest.raises(FieldLocationError):
            coords.DDX(mesh.field2d(1.0, CellLoc.XYCORNER))

    def test_velocity_location_must_match(self, mesh, coords):
        with pytest.raises(FieldLocationError):
            coords.VDDY(mesh.field3d(1.0, CellLoc.XLOW), mesh.field3d(1.0))


# ============================================================================
# PARALLEL OPERATORS
# ============================================================================

class TestParallel:
    def test_upwind_follows_velocity_sign(self, mesh, coords):
        _, Y = index_grids(mesh)
        f = field3d_from_xy(mesh, Y**2)

        forward = coords.VDDY(mesh.field3d(1.0), f)
        backward = coords.Vpar_Grad_par(mesh.field3d(-1.0), f)
        assert np.allclose(_interior3d(mesh, forward), interior(mesh, 2.0 * Y - 1.0)[..., np.newaxis])
        assert np.allclose(_interior3d(mesh, backward), interior(mesh, -(2.0 * Y + 1.0))[..., np.newaxis])

    def test_grad_par_scales_with_metric(self):
        mesh = StructuredMesh(4, 6, 2, source={"dx": 1.0, "dy": 1.0, "g22": 4.0})
        coords = mesh.get_coordinates()
        _, Y = index_grids(mesh)
        f = field3d_from_xy(mesh, Y)
        assert np.allclose(_interior3d(mesh, coords.Grad_par(f)), 2.0)
        assert np.allclose(_interior3d(mesh, coords.Grad2_par2(field3d_from_xy(mesh, Y**2))), 8.0)

    def test_grad2_par2_and_laplace_par_flat(self, mesh, coords):
        _, Y = index_grids(mesh)
        f = field3d_from_xy(mesh, Y**2)
        assert np.allclose(_interior3d(mesh, coords.Grad2_par2(f)), 2.0)
        assert np.allclose(_interior3d(mesh, coords.Laplace_par(f)), 2.0)


class TestDivPar:
    def setup_method(self):
        self.mesh = StructuredMesh(4, 6, 2)
        _, Y = index_grids(self.mesh)
        self.B = 1.0 + 0.1 * Y
        self.mesh.source.update({"dx": 1.0, "dy": 1.0, "g11": self.B**2})
        self.coords = self.mesh.get_coordinates()
        self.f = field3d_from_xy(self.mesh, Y**2)

    def _expected(self, up, down):
        B = self.B
        out = np.zeros_like(B)
        out[:, 1:-1] = B[:, 1:-1] * 0.5 * (up[:, 2:] / B[:, 2:] - down[:, :-2] / B[:, :-2])
        return interior(self.mesh, out)[..., np.newaxis]

    def test_bxy_follows_metric(self):
        assert np.allclose(self.coords.Bxy.data, self.B)

    def test_without_companions(self):
        fxy = self.f.data[:, :, 0]
        result = self.coords.Div_par(self.f)
        assert np.allclose(_interior3d(self.mesh, result), self._expected(fxy, fxy))

    def test_merged_companions(self):
        fxy = self.f.data[:, :, 0]
        self.f.merge_yup_ydown()
        result = self.coords.Div_par(self.f)
        assert np.allclose(_interior3d(self.mesh, result), self._expected(fxy, fxy))

    def test_split_companions(self):
        fxy = self.f.data[:, :, 0]
        self.f.split_yup_ydown(2.0 * self.f.data, 3.0 * self.f.data)
        result = self.coords.Div_par(self.f)
        assert np.allclose(_interior3d(self.mesh, result), self._expected(2.0 * fxy, 3.0 * fxy))

    def test_uses_own_bxy_not_mesh_cache(self):
        mesh = StructuredMesh(4, 6, 2, source=dict(self.mesh.source))
        f = field3d_from_xy(mesh, self.f.data[:, :, 0])
        # explicitly built Coordinates; the mesh cache would now see a flat metric
        coords = get_coordinates(mesh)
        mesh.source["g11"] = 1.0
        fxy = f.data[:, :, 0]
        result = coords.Div_par(f)
        assert np.allclose(_interior3d(mesh, result), self._expected(fxy, fxy))
        assert np.allclose(mesh.get_coordinates().Bxy.data, 1.0)

    def test_explicit_bxy(self):
        mesh = flat_mesh()
        coords = mesh.get_coordinates()
        _, Y = index_grids(mesh)
        B = mesh.field2d(0.0) + (1.0 + 0.1 * Y)
        f = mesh.field3d(1.0)

        result = coords.Div_par(f, Bxy=B)
        # d(1/B)/dy by central differences, times the flat Bxy = 1
        inv_b = 1.0 / B.data
        expected = np.zeros_like(inv_b)
        expected[:, 1:-1] = 0.5 * (inv_b[:, 2:] - inv_b[:, :-2])
        assert np.allclose(_interior3d(mesh, result), interior(mesh, expected)[..., np.newaxis])


# ============================================================================
# FULL LAPLACIAN
# ============================================================================

def test_laplace_flat():
    mesh = flat_mesh()
    coords = mesh.get_coordinates()
    X, Y = index_grids(mesh)
    result = coords.Laplace(field3d_from_xy(mesh, X**2 + Y**2))
    assert np.allclose(_interior3d(mesh, result), 4.0)


def test_laplace_off_diagonal_metric():
    mesh = flat_mesh()
    mesh.source["g12"] = 0.5
    coords = mesh.get_coordinates()
    X, Y = index_grids(mesh)
    result = coords.Laplace(field3d_from_xy(mesh, X * Y))
    assert np.allclose(_interior3d(mesh, result), 1.0)

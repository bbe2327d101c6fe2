"""
Spectral perpendicular Laplacian.

Fields are Fourier transformed along the periodic z direction; for each mode
the x direction is a three-point (tridiagonal) stencil whose coefficients are
shared between the forward operator Delp2 and LaplacePerpInversion.
"""

import logging

import numpy as np
from numba import jit

from ..errors import GuardCellError
from ..logging_config import Timer
from ..mesh.field import Field2D, Field3D, FieldPerp
from .differential import resolve_outloc, ddx, d2dx2

logger = logging.getLogger('fluxcoords.spectral')

DIRICHLET = "dirichlet"
ZERO_GRADIENT = "zero_gradient"
BOUNDARY_CONDITIONS = (DIRICHLET, ZERO_GRADIENT)


def laplace_tridag_coefs(coords, jx, jy, kz, c=None, d=None):
    """
    Tridiagonal coefficients (a, b, c) of the perpendicular Laplacian for mode kz.

    a*f[jx-1] + b*f[jx] + c*f[jx+1] approximates Delp2 f at (jx, jy) for the
    Fourier mode with wavenumber 2*pi*kz/zlength. jx and kz may be arrays
    (broadcast together); jy is a single y index.

    c: optional Field2D, adds the first derivative term g11 * dc/dx / c
    d: optional Field2D scale factor applied to every term
    """
    jx = np.asarray(jx)
    kwave = np.asarray(kz, dtype=float) * 2.0 * np.pi / coords.zlength
    options = coords.options
    nx = coords.mesh.local_nx

    g11 = coords.g11.data[jx, jy]
    dx = coords.dx.data[jx, jy]

    coef1 = g11                             # x second derivative
    coef2 = coords.g33.data[jx, jy]         # z second derivative
    coef3 = 2.0 * coords.g13.data[jx, jy]   # x-z mixed derivative
    if options.laplace_all_terms:
        coef4 = coords.G1.data[jx, jy]      # x first derivative
        coef5 = coords.G3.data[jx, jy]      # z first derivative
    else:
        coef4 = np.zeros_like(coef1)
        coef5 = np.zeros_like(coef1)

    if d is not None:
        scale = d.data[jx, jy]
        coef1, coef2, coef3, coef4, coef5 = (v * scale for v in (coef1, coef2, coef3, coef4, coef5))

    inner = (jx > 0) & (jx < nx - 1)
    xp = np.clip(jx + 1, 0, nx - 1)
    xm = np.clip(jx - 1, 0, nx - 1)

    if options.laplace_nonuniform:
        correction = 0.5 * (coords.dx.data[xp, jy] - coords.dx.data[xm, jy]) / dx**2 * coef1
        coef4 = coef4 - np.where(inner, correction, 0.0)

    if c is not None:
        cdata = c.data
        term = g11 * (cdata[xp, jy] - cdata[xm, jy]) / (2.0 * dx * cdata[jx, jy])
        coef4 = coef4 + np.where(inner, term, 0.0)

    if options.inc_int_shear:
        ist = coords.int_shift_torsion.data[jx, jy]
        coef2 = coef2 + g11 * ist * ist
        coef3 = np.zeros_like(coef3)

    coef1 = coef1 / dx**2
    coef3 = coef3 / (2.0 * dx)
    coef4 = coef4 / (2.0 * dx)

    a = (coef1 - coef4) - 1j * kwave * coef3
    b = (-2.0 * coef1 - kwave**2 * coef2) + 1j * kwave * coef5
    c_ = (coef1 + coef4) + 1j * kwave * coef3
    return a, b, c_


# ============================================================================
# DELP2
# ============================================================================

def _apply_modes(coords, ft, jy, rows):
    """Apply the tridiagonal stencil on the given x rows of transformed data ft (x, k)."""
    kz = np.arange(ft.shape[1])
    a, b, c = laplace_tridag_coefs(coords, rows[:, np.newaxis], jy, kz[np.newaxis, :])
    return a * ft[rows - 1] + b * ft[rows] + c * ft[rows + 1]


def delp2(coords, f, outloc=None):
    """Perpendicular Laplacian of a Field3D, Field2D or FieldPerp."""
    if isinstance(f, Field2D):
        outloc = resolve_outloc(coords, f, outloc)
        return coords.G1 * ddx(coords, f, outloc) + coords.g11 * d2dx2(coords, f, outloc)
    if isinstance(f, FieldPerp):
        return delp2_perp(coords, f, outloc)

    outloc = resolve_outloc(coords, f, outloc)
    if outloc is not f.location:
        raise ValueError("Delp2 cannot change the location of a Field3D")
    mesh = f.mesh

    if mesh.global_nx == 1 and mesh.global_nz == 1:
        return f * 0.0
    if mesh.xstart < 1:
        raise GuardCellError("Delp2 needs at least one x guard cell")

    nz = mesh.local_nz
    rows = np.arange(mesh.xstart, mesh.xend + 1)
    result = np.zeros(f.shape)

    with Timer("delp2") as timer:
        for jy in range(mesh.local_ny):
            ft = np.fft.rfft(f.data[:, jy, :], axis=-1)
            delft = _apply_modes(coords, ft, jy, rows)
            result[mesh.xstart:mesh.xend + 1, jy, :] = np.fft.irfft(delft, n=nz, axis=-1)

    logger.debug("Delp2 applied", extra={"extra_data": {
        "elapsed_ms": timer.elapsed_ms(), "nmodes": nz // 2 + 1}})
    return Field3D(result, mesh, outloc)


def delp2_perp(coords, f, outloc=None):
    """
    Delp2 on a single (x, z) plane.

    No halo exchange takes place, so only rows 2 .. local_nx-3 are computed;
    all other rows are zero.
    """
    outloc = resolve_outloc(coords, f, outloc)
    mesh = f.mesh
    nx, nz = mesh.local_nx, mesh.local_nz
    result = np.zeros(f.shape)

    rows = np.arange(2, nx - 2)
    if rows.size > 0:
        ft = np.fft.rfft(f.data, axis=-1)
        delft = _apply_modes(coords, ft, f.y_index, rows)
        result[2:nx - 2] = np.fft.irfft(delft, n=nz, axis=-1)

    return FieldPerp(result, mesh, outloc, f.y_index)


# ============================================================================
# INVERSION
# ============================================================================

@jit(nopython=True)
def _solve_tridiagonal_complex_jit(a, b, c, rhs):
    """
    Thomas algorithm for a[i]*x[i-1] + b[i]*x[i] + c[i]*x[i+1] = rhs[i].
    a[0] and c[n-1] are ignored.
    """
    n = rhs.shape[0]
    cp = np.zeros(n, dtype=np.complex128)
    dp = np.zeros(n, dtype=np.complex128)

    cp[0] = c[0] / b[0]
    dp[0] = rhs[0] / b[0]

    for i in range(1, n):
        denom = b[i] - a[i] * cp[i-1]
        if i < n - 1:
            cp[i] = c[i] / denom
        dp[i] = (rhs[i] - a[i] * dp[i-1]) / denom

    x = np.zeros(n, dtype=np.complex128)
    x[n-1] = dp[n-1]
    for i in range(n-2, -1, -1):
        x[i] = dp[i] - cp[i] * x[i+1]
    return x


class LaplacePerpInversion:
    """
    Solve Delp2(x) = rhs for x, mode by mode in z.

    The x guard cells of the solution satisfy the chosen boundary condition:
    'dirichlet' sets them to zero, 'zero_gradient' copies the nearest
    interior value. Applying Delp2 to the solution reproduces rhs on the
    interior rows.
    """

    def __init__(self, coords, inner_boundary=DIRICHLET, outer_boundary=DIRICHLET, c=None, d=None):
        for bc in (inner_boundary, outer_boundary):
            if bc not in BOUNDARY_CONDITIONS:
                raise ValueError(f"Unknown boundary condition {bc}, allowed {BOUNDARY_CONDITIONS}")
        if inner_boundary == ZERO_GRADIENT and outer_boundary == ZERO_GRADIENT:
            raise ValueError("Zero-gradient on both x boundaries leaves the kz=0 mode undetermined")
        self.coords = coords
        self.inner_boundary = inner_boundary
        self.outer_boundary = outer_boundary
        self.c = c
        self.d = d

    def _solve_plane(self, plane, jy):
        mesh = self.coords.mesh
        nz = mesh.local_nz
        rows = np.arange(mesh.xstart, mesh.xend + 1)
        kz = np.arange(nz // 2 + 1)

        rhs_t = np.fft.rfft(plane, axis=-1)
        a, b, c = laplace_tridag_coefs(self.coords, rows[:, np.newaxis], jy, kz[np.newaxis, :],
                                       self.c, self.d)
        a = np.array(a, dtype=np.complex128)
        b = np.array(b, dtype=np.complex128)
        c = np.array(c, dtype=np.complex128)
        if self.inner_boundary == ZERO_GRADIENT:
            b[0] += a[0]
        if self.outer_boundary == ZERO_GRADIENT:
            b[-1] += c[-1]

        solution_t = np.zeros((rows.size, kz.size), dtype=np.complex128)
        for k in range(kz.size):
            solution_t[:, k] = _solve_tridiagonal_complex_jit(
                np.ascontiguousarray(a[:, k]), np.ascontiguousarray(b[:, k]),
                np.ascontiguousarray(c[:, k]), np.ascontiguousarray(rhs_t[rows, k]))

        result = np.zeros(plane.shape)
        result[mesh.xstart:mesh.xend + 1] = np.fft.irfft(solution_t, n=nz, axis=-1)
        if self.inner_boundary == ZERO_GRADIENT:
            result[:mesh.xstart] = result[mesh.xstart]
        if self.outer_boundary == ZERO_GRADIENT:
            result[mesh.xend + 1:] = result[mesh.xend]
        return result

    def solve(self, rhs):
        """Return the solution as a field of the same type as rhs."""
        resolve_outloc(self.coords, rhs)
        mesh = rhs.mesh
        if isinstance(rhs, FieldPerp):
            return FieldPerp(self._solve_plane(rhs.data, rhs.y_index), mesh, rhs.location, rhs.y_index)
        if not isinstance(rhs, Field3D):
            raise TypeError(f"LaplacePerpInversion solves Field3D or FieldPerp, got {type(rhs).__name__}")

        result = np.zeros(rhs.shape)
        for jy in range(mesh.local_ny):
            result[:, jy, :] = self._solve_plane(rhs.data[:, jy, :], jy)
        logger.debug("Perpendicular Laplacian inverted", extra={"extra_data": {
            "inner_boundary": self.inner_boundary, "outer_boundary": self.outer_boundary}})
        return Field3D(result, mesh, rhs.location)

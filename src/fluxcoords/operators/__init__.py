from .differential import (
    ddx, ddy, ddz,
    d2dx2, d2dy2, d2dz2,
    d2dxdy, d2dydx, d2dxdz, d2dzdx, d2dydz, d2dzdy,
    vddy,
    grad_par, vpar_grad_par, div_par, grad2_par2,
    laplace_par, laplace,
)
from .spectral import delp2, delp2_perp, laplace_tridag_coefs, LaplacePerpInversion

__all__ = [
    'ddx', 'ddy', 'ddz',
    'd2dx2', 'd2dy2', 'd2dz2',
    'd2dxdy', 'd2dydx', 'd2dxdz', 'd2dzdx', 'd2dydz', 'd2dzdy',
    'vddy',
    'grad_par', 'vpar_grad_par', 'div_par', 'grad2_par2',
    'laplace_par', 'laplace',
    'delp2', 'delp2_perp', 'laplace_tridag_coefs', 'LaplacePerpInversion',
]

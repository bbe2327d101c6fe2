"""
Index-space finite difference stencils.

All routines work on plain numpy arrays with unit spacing along `axis`.
Non-periodic stencils leave zeros where the stencil does not fit inside the
array; periodic stencils wrap with np.roll.
"""

import numpy as np

FIRST_STENCILS = {
    "C2": {-1: -0.5, 1: 0.5},
    "C4": {-2: 1.0 / 12.0, -1: -8.0 / 12.0, 1: 8.0 / 12.0, 2: -1.0 / 12.0},
}

SECOND_STENCILS = {
    "C2": {-1: 1.0, 0: -2.0, 1: 1.0},
    "C4": {-2: -1.0 / 12.0, -1: 16.0 / 12.0, 0: -30.0 / 12.0, 1: 16.0 / 12.0, 2: -1.0 / 12.0},
}

# CENTRE -> LOW: result[i] = f[i] - f[i-1]
STAGGER_TO_LOW = {-1: -1.0, 0: 1.0}
# LOW -> CENTRE: result[i] = f[i+1] - f[i]
STAGGER_TO_CENTRE = {0: -1.0, 1: 1.0}

UPWIND_STENCILS = {
    # (backward, forward) one-sided differences
    "U1": ({-1: -1.0, 0: 1.0}, {0: -1.0, 1: 1.0}),
    "U2": ({-2: 0.5, -1: -2.0, 0: 1.5}, {0: -1.5, 1: 2.0, 2: -0.5}),
}


def _axis_slice(ndim, axis, start, stop):
    idx = [slice(None)] * ndim
    idx[axis] = slice(start, stop)
    return tuple(idx)


def stencil_halfwidth(stencil):
    return max(abs(k) for k in stencil)


def apply_stencil(arr, axis, stencil, periodic=False):
    """sum_k w_k f[i+k] along axis."""
    arr = np.asarray(arr, dtype=float)
    out = np.zeros(arr.shape)
    if periodic:
        for k, w in stencil.items():
            out += w * np.roll(arr, -k, axis=axis)
        return out

    n = arr.shape[axis]
    lo = max(0, -min(stencil))
    hi = n - max(0, max(stencil))
    if hi <= lo:
        return out
    acc = np.zeros(arr[_axis_slice(arr.ndim, axis, lo, hi)].shape)
    for k, w in stencil.items():
        acc += w * arr[_axis_slice(arr.ndim, axis, lo + k, hi + k)]
    out[_axis_slice(arr.ndim, axis, lo, hi)] = acc
    return out


def first_derivative(arr, axis, method="C2", periodic=False):
    try:
        stencil = FIRST_STENCILS[method]
    except KeyError:
        raise ValueError(f"Unknown first derivative method {method}")
    return apply_stencil(arr, axis, stencil, periodic)


def second_derivative(arr, axis, method="C2", periodic=False):
    try:
        stencil = SECOND_STENCILS[method]
    except KeyError:
        raise ValueError(f"Unknown second derivative method {method}")
    return apply_stencil(arr, axis, stencil, periodic)


def staggered_first_derivative(arr, axis, to_low, periodic=False):
    """Two-point derivative between cell centres and cell faces."""
    stencil = STAGGER_TO_LOW if to_low else STAGGER_TO_CENTRE
    return apply_stencil(arr, axis, stencil, periodic)


def fft_derivative(arr, axis, order=1):
    """Spectral derivative along a periodic axis with unit spacing."""
    arr = np.asarray(arr, dtype=float)
    n = arr.shape[axis]
    k = 2 * np.pi * np.fft.rfftfreq(n)
    shape = [1] * arr.ndim
    shape[axis] = k.size
    k = k.reshape(shape)

    coeffs = np.fft.rfft(arr, axis=axis)
    coeffs = coeffs * (1j * k) ** order
    if n % 2 == 0 and order % 2 == 1:
        # Nyquist mode has no well-defined odd derivative
        coeffs[_axis_slice(arr.ndim, axis, k.size - 1, k.size)] = 0.0
    return np.fft.irfft(coeffs, n=n, axis=axis)


def upwind_derivative(v, f, axis, method="U1", periodic=False):
    """v * df/di with the one-sided difference chosen by the sign of v."""
    v = np.broadcast_to(np.asarray(v, dtype=float), np.shape(f))
    if method == "C2":
        return v * first_derivative(f, axis, "C2", periodic)
    try:
        backward, forward = UPWIND_STENCILS[method]
    except KeyError:
        raise ValueError(f"Unknown upwind method {method}")

    result = v * np.where(v >= 0.0,
                          apply_stencil(f, axis, backward, periodic),
                          apply_stencil(f, axis, forward, periodic))
    if not periodic:
        h = stencil_halfwidth(backward)
        n = result.shape[axis]
        result[_axis_slice(result.ndim, axis, 0, h)] = 0.0
        result[_axis_slice(result.ndim, axis, n - h, n)] = 0.0
    return result

# src/offspring_risk/fitting/likelihood.py
# Maximum-likelihood helpers shared by every offspring family:
# sample checks, optimiser wrapper, observed Fisher information.

from __future__ import annotations

import logging
from typing import Callable, Sequence

import numpy as np
from scipy.optimize import minimize

from ..errors import InvalidSampleError

logger = logging.getLogger(__name__)

# Relative finite-difference step for Hessians and gradients
REL_STEP = 1e-4


def validate_sample(sample) -> np.ndarray:
    """Check a secondary-case sample and return it as an int64 array.

    Args:
        sample: sequence of per-case secondary-case counts
    Returns:
        x (np.ndarray): 1D int64 array
    Raises:
        InvalidSampleError
    """
    try:
        arr = np.asarray(sample, dtype=float)
    except (TypeError, ValueError) as exc:
        raise InvalidSampleError(f"sample is not numeric: {exc}", sample=sample) from exc

    if arr.ndim != 1:
        raise InvalidSampleError("sample must be a 1D sequence of counts", sample=sample)
    if arr.size == 0:
        raise InvalidSampleError("sample must contain at least one observation", sample=sample)
    if not np.all(np.isfinite(arr)):
        raise InvalidSampleError("sample contains non-finite values", sample=sample)
    if np.any(arr < 0):
        raise InvalidSampleError("sample contains negative counts", sample=sample)
    if np.any(arr != np.floor(arr)):
        raise InvalidSampleError("sample contains non-integer counts", sample=sample)

    return arr.astype(np.int64)


def _steps(x: np.ndarray) -> np.ndarray:
    return REL_STEP * np.maximum(np.abs(x), 1e-2)


def numerical_hessian(f: Callable[[np.ndarray], float], x: Sequence[float]) -> np.ndarray:
    """Central-difference Hessian of a scalar function at x."""
    x = np.asarray(x, dtype=float)
    n = x.size
    h = _steps(x)
    f0 = f(x)
    H = np.empty((n, n), dtype=float)

    for i in range(n):
        ei = np.zeros(n)
        ei[i] = h[i]
        H[i, i] = (f(x + ei) - 2.0 * f0 + f(x - ei)) / h[i] ** 2
        for j in range(i + 1, n):
            ej = np.zeros(n)
            ej[j] = h[j]
            H[i, j] = (
                f(x + ei + ej) - f(x + ei - ej) - f(x - ei + ej) + f(x - ei - ej)
            ) / (4.0 * h[i] * h[j])
            H[j, i] = H[i, j]
    return H


def numerical_gradient(f: Callable[[np.ndarray], float], x: Sequence[float]) -> np.ndarray:
    x = np.asarray(x, dtype=float)
    h = _steps(x)
    g = np.empty(x.size, dtype=float)
    for i in range(x.size):
        ei = np.zeros(x.size)
        ei[i] = h[i]
        g[i] = (f(x + ei) - f(x - ei)) / (2.0 * h[i])
    return g


def delta_method_se(f: Callable[[np.ndarray], float], x: Sequence[float], cov: np.ndarray) -> float:
    """Standard error of f(x) given the covariance of x (delta method)."""
    g = numerical_gradient(f, x)
    var = float(g @ np.asarray(cov, dtype=float) @ g)
    # rounding can leave a tiny negative variance for exact linear maps
    return float(np.sqrt(max(var, 0.0)))


def minimise_nll(nll_free: Callable[[np.ndarray], float], x0: np.ndarray):
    """Minimise a negative log-likelihood over unconstrained parameters.

    Returns the scipy OptimizeResult.
    """
    res = minimize(
        nll_free,
        np.asarray(x0, dtype=float),
        method="Nelder-Mead",
        options={"maxiter": 5000, "xatol": 1e-8, "fatol": 1e-10},
    )
    logger.debug("optimiser: success=%s nfev=%s fun=%s", res.success, res.nfev, res.fun)
    return res

#!/usr/bin/env python3
# src/offspring_risk/analytic/branching.py
"""
Superspreading risk metrics for a negative binomial offspring distribution.

All three metrics are closed-form or root-finding results for a branching
process with mean R and dispersion k; k = inf gives the Poisson process.
"""

# Store type annotations as strings instead of evaluating them immediately.
from __future__ import annotations

import math
from typing import Sequence

import numpy as np
from scipy.optimize import brentq, minimize_scalar
from scipy.special import lambertw
from scipy.stats import gamma as scipy_gamma
from scipy.stats import nbinom, poisson

from ..errors import InvalidParameterError


def _check_R(R: float, strictly_positive: bool = False) -> float:
    R = float(R)
    if not math.isfinite(R) or R < 0.0 or (strictly_positive and R == 0.0):
        bound = "> 0" if strictly_positive else ">= 0"
        raise InvalidParameterError(f"R must be finite and {bound}, got {R}", R=R)
    return R


def _check_k(k: float) -> float:
    k = float(k)
    if math.isnan(k) or k <= 0.0:
        raise InvalidParameterError(f"k must be > 0 (inf allowed), got {k}", k=k)
    return k


def _check_fraction(name: str, value: float) -> float:
    value = float(value)
    if not 0.0 <= value < 1.0:
        raise InvalidParameterError(f"{name} must lie in [0, 1), got {value}", **{name: value})
    return value


def proportion_cluster_size(R: float, k: float, cluster_size: Sequence[int]) -> np.ndarray:
    """Probability that a new case sits in a cluster of at least each size.

    A cluster is the set of secondary cases of one infector. For each s this is
    sum_{x>=s} x P(x) / R, which for the negative binomial equals P(Y >= s-1)
    with Y ~ NB(k+1, k/(k+R)), and P(Y >= s-1) with Y ~ Poisson(R) when k = inf.

    Returns an array aligned with cluster_size.
    """
    R = _check_R(R, strictly_positive=True)
    k = _check_k(k)

    sizes = np.atleast_1d(np.asarray(cluster_size, dtype=float))
    if sizes.size == 0 or np.any(~np.isfinite(sizes)) or np.any(sizes < 1) \
            or np.any(sizes != np.floor(sizes)):
        raise InvalidParameterError("cluster_size values must be integers >= 1",
                                    cluster_size=list(np.atleast_1d(cluster_size)))

    # sf(s - 2) == P(Y >= s - 1)
    if math.isinf(k):
        return poisson.sf(sizes - 2, R)
    return nbinom.sf(sizes - 2, k + 1.0, k / (k + R))


def proportion_transmission(R: float, k: float, percent_transmission: float = 0.8) -> float:
    """Smallest proportion of cases that causes `percent_transmission` of infections.

    Individual reproduction numbers are Gamma(k, R/k). Ranking cases by it,
    the top fraction p with threshold x gives
        P(nu > x)                     = p
        E[nu; nu > x] / R = P(nu* > x) = percent_transmission
    where nu* ~ Gamma(k+1, R/k) is the size-biased rate.
    """
    R = _check_R(R, strictly_positive=True)
    k = _check_k(k)
    f = float(percent_transmission)
    if not 0.0 < f <= 1.0:
        raise InvalidParameterError(f"percent_transmission must lie in (0, 1], got {f}",
                                    percent_transmission=f)

    # homogeneous transmission: every case contributes equally
    if math.isinf(k):
        return f

    scale = R / k
    x = scipy_gamma.isf(f, a=k + 1.0, scale=scale)
    return float(scipy_gamma.sf(x, a=k, scale=scale))


def extinction_q(R: float) -> float:
    """Extinction probability of a Poisson branching process from one case."""
    if R <= 1.0:
        return 1.0
    z = -R * math.exp(-R)
    q = -lambertw(z).real / R
    return float(max(0.0, min(1.0, q)))


def offspring_pgf(s, R: float, k: float, ind_control: float = 0.0):
    """Probability generating function of the offspring distribution.

    A fraction ind_control of cases transmits to nobody; the rest follow
    NB(R, k), or Poisson(R) when k = inf.
    """
    s = np.asarray(s, dtype=float)
    if math.isinf(k):
        g = np.exp(-R * (1.0 - s))
    else:
        g = np.exp(-k * np.log1p(R * (1.0 - s) / k))
    return ind_control + (1.0 - ind_control) * g


def probability_extinct(
    R: float,
    k: float,
    num_init_infect: int = 1,
    ind_control: float = 0.0,
    pop_control: float = 0.0,
) -> float:
    """Probability that an outbreak seeded by num_init_infect cases dies out.

    pop_control scales everyone's transmission by (1 - pop_control);
    ind_control removes all transmission from that fraction of cases.
    The result is q ** num_init_infect where q is the smallest root of
    G(s) = s in [0, 1].
    """
    R = _check_R(R)
    k = _check_k(k)
    n = num_init_infect
    if isinstance(n, bool) or float(n) != math.floor(float(n)) or n < 1:
        raise InvalidParameterError(f"num_init_infect must be an integer >= 1, got {n}",
                                    num_init_infect=n)
    n = int(n)
    c = _check_fraction("ind_control", ind_control)
    pop = _check_fraction("pop_control", pop_control)

    R_pop = R * (1.0 - pop)

    # subcritical or critical: certain extinction
    if (1.0 - c) * R_pop <= 1.0:
        return 1.0

    if math.isinf(k) and c == 0.0:
        q = extinction_q(R_pop)
    else:
        def h(s):
            return float(offspring_pgf(s, R_pop, k, c)) - s

        # h is convex with h(0) > 0 and h(1) = 0; its minimum sits between the two roots
        res = minimize_scalar(h, bounds=(0.0, 1.0), method="bounded",
                              options={"xatol": 1e-12})
        if h(res.x) >= 0.0:
            return 1.0
        q = brentq(h, 0.0, res.x, xtol=1e-14)

    return float(min(1.0, max(0.0, q)) ** n)

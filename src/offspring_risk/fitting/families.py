# src/offspring_risk/fitting/families.py
"""
Candidate offspring distributions for secondary-case counts.

Each family exposes the same interface (start, logpmf, mean, dispersion, fit)
so the comparison step can loop over them without caring which one it has.
The two compound families integrate the Poisson likelihood over the rate
distribution with adaptive quadrature on the log-rate scale, centred and
scaled on the mode of each count's integrand.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from types import MappingProxyType
from typing import Dict, Mapping, Optional, Sequence, Tuple

import numpy as np
from scipy.integrate import quad_vec
from scipy.special import gammaln, wrightomega
from scipy.stats import nbinom, poisson

from ..errors import FitConvergenceError, InvalidParameterError
from .likelihood import (
    delta_method_se,
    minimise_nll,
    numerical_hessian,
    validate_sample,
)

logger = logging.getLogger(__name__)

# Absolute and relative tolerance of the rate integral
QUAD_TOL = 1e-12

# Newton iterations for the Poisson-Weibull integrand mode
MAX_NEWTON = 200

# Beyond this the NB size is treated as diverged (sample is not overdispersed)
MAX_NB_SIZE = 1e6


@dataclass(frozen=True)
class FitResult:
    """Maximum-likelihood fit of one family to a secondary-case sample."""

    family: str
    estimate: Mapping[str, float]
    sd: Mapping[str, float]
    loglik: float
    n: int
    R: float
    R_sd: float
    k: float

    def __post_init__(self):
        object.__setattr__(self, "estimate", MappingProxyType(dict(self.estimate)))
        object.__setattr__(self, "sd", MappingProxyType(dict(self.sd)))

    @property
    def n_params(self) -> int:
        return len(self.estimate)

    @property
    def aic(self) -> float:
        return 2.0 * self.n_params - 2.0 * self.loglik

    @property
    def aicc(self) -> float:
        p = self.n_params
        denom = self.n - p - 1
        if denom <= 0:
            return math.inf
        return self.aic + 2.0 * p * (p + 1) / denom

    @property
    def bic(self) -> float:
        return self.n_params * math.log(self.n) - 2.0 * self.loglik


def _moments(x: np.ndarray) -> Tuple[float, float]:
    m = float(x.mean())
    v = float(x.var(ddof=1)) if x.size > 1 else 0.0
    return m, v


def _rate_mixture_logpmf(log_peak, sigma, log_ratio) -> np.ndarray:
    """log of a Poisson rate mixture, integrated over t with z = mode + sigma * t.

    log_peak is the log integrand at the mode of each count, sigma its local
    scale in log-rate and log_ratio(t) the log integrand relative to the peak.
    """
    def integrand(t):
        with np.errstate(over="ignore", invalid="ignore"):
            d = log_ratio(t)
        # inf - inf far in the tails carries no mass
        return np.exp(np.where(np.isnan(d), -np.inf, d))

    area, _ = quad_vec(integrand, -np.inf, np.inf, epsabs=QUAD_TOL, epsrel=QUAD_TOL,
                       norm="max", limit=2000)
    return log_peak + np.log(sigma) + np.log(area)


class OffspringFamily:
    """Base class; subclasses set the parameter names and the pmf."""

    name: str = ""
    param_names: Tuple[str, ...] = ()
    # per parameter: optimise on the log scale
    positive: Tuple[bool, ...] = ()

    @property
    def n_params(self) -> int:
        return len(self.param_names)

    def start(self, x: np.ndarray) -> np.ndarray:
        """Starting values for families fit numerically."""
        raise NotImplementedError

    def logpmf(self, x: np.ndarray, theta: np.ndarray) -> np.ndarray:
        raise NotImplementedError

    def mean(self, theta: np.ndarray) -> float:
        raise NotImplementedError

    def dispersion(self, theta: np.ndarray) -> float:
        raise NotImplementedError

    def closed_form(self, x: np.ndarray) -> Optional[Tuple[np.ndarray, np.ndarray]]:
        """Return (theta, covariance) when the MLE has a closed form."""
        return None

    def check(self, theta: np.ndarray, x: np.ndarray) -> None:
        """Reject fitted values that sit on a degenerate boundary."""

    def loglik(self, x: np.ndarray, theta: np.ndarray) -> float:
        # evaluate the pmf once per distinct count
        values, counts = np.unique(x, return_counts=True)
        return float(np.sum(counts * self.logpmf(values, np.asarray(theta, dtype=float))))

    def _to_free(self, theta: np.ndarray) -> np.ndarray:
        pos = np.asarray(self.positive)
        return np.where(pos, np.log(np.where(pos, theta, 1.0)), theta)

    def _from_free(self, z: np.ndarray) -> np.ndarray:
        pos = np.asarray(self.positive)
        return np.where(pos, np.exp(np.where(pos, z, 0.0)), z)

    def _fit_numeric(self, x: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
        def nll_free(z):
            val = -self.loglik(x, self._from_free(z))
            return val if np.isfinite(val) else np.inf

        theta0 = self.start(x)
        res = minimise_nll(nll_free, self._to_free(theta0))
        if not res.success or not np.isfinite(res.fun):
            raise FitConvergenceError(self.name, f"optimiser did not converge ({res.message})",
                                      start=theta0.tolist())

        theta = self._from_free(res.x)
        self.check(theta, x)

        H = numerical_hessian(lambda t: -self.loglik(x, t), theta)
        if not np.all(np.isfinite(H)):
            raise FitConvergenceError(self.name, "Hessian is not finite at the MLE",
                                      estimate=theta.tolist())
        try:
            cov = np.linalg.inv(H)
        except np.linalg.LinAlgError as exc:
            raise FitConvergenceError(self.name, "Hessian is singular at the MLE",
                                      estimate=theta.tolist()) from exc

        diag = np.diag(cov)
        if not np.all(np.isfinite(diag)) or np.any(diag < 0):
            raise FitConvergenceError(self.name, "observed information is not positive definite",
                                      estimate=theta.tolist())
        return theta, cov

    def fit(self, sample: Sequence[int]) -> FitResult:
        """Fit the family by maximum likelihood.

        Raises:
            InvalidSampleError: sample is malformed
            FitConvergenceError: this family cannot be fit to the sample
        """
        x = validate_sample(sample)

        cf = self.closed_form(x)
        if cf is not None:
            theta, cov = cf
        else:
            if x.sum() == 0:
                raise FitConvergenceError(self.name, "all-zero sample has no positive rate to fit",
                                          n=int(x.size))
            theta, cov = self._fit_numeric(x)

        ll = self.loglik(x, theta)
        if not np.isfinite(ll):
            raise FitConvergenceError(self.name, "log-likelihood is not finite",
                                      estimate=np.asarray(theta).tolist())

        sd = np.sqrt(np.diag(cov))
        R = float(self.mean(theta))
        R_sd = delta_method_se(self.mean, theta, cov)
        k = float(self.dispersion(theta))
        if not (np.isfinite(R) and np.isfinite(R_sd)) or np.isnan(k) or k <= 0.0:
            raise FitConvergenceError(self.name, "fitted mean or dispersion is not usable",
                                      estimate=np.asarray(theta).tolist(), R=R, R_sd=R_sd, k=k)

        result = FitResult(
            family=self.name,
            estimate={p: float(v) for p, v in zip(self.param_names, theta)},
            sd={p: float(s) for p, s in zip(self.param_names, sd)},
            loglik=ll,
            n=int(x.size),
            R=R,
            R_sd=R_sd,
            k=k,
        )
        logger.debug("fit %s: %s loglik=%.4f", self.name, dict(result.estimate), ll)
        return result


class Poisson(OffspringFamily):
    name = "pois"
    param_names = ("lambda",)

    def logpmf(self, x, theta):
        return poisson.logpmf(x, theta[0])

    def mean(self, theta):
        return theta[0]

    def dispersion(self, theta):
        return math.inf

    def closed_form(self, x):
        lam = float(x.mean())
        return np.array([lam]), np.array([[lam / x.size]])


class Geometric(OffspringFamily):
    """Number of failures before the first success, support 0, 1, 2, ..."""

    name = "geom"
    param_names = ("prob",)

    def logpmf(self, x, theta):
        return nbinom.logpmf(x, 1, theta[0])

    def mean(self, theta):
        return (1.0 - theta[0]) / theta[0]

    def dispersion(self, theta):
        return 1.0

    def closed_form(self, x):
        p = 1.0 / (1.0 + float(x.mean()))
        return np.array([p]), np.array([[p ** 2 * (1.0 - p) / x.size]])


class NegBinomial(OffspringFamily):
    """Negative binomial in the (size, mu) parameterisation."""

    name = "nbinom"
    param_names = ("size", "mu")
    positive = (True, True)

    def start(self, x):
        m, v = _moments(x)
        size = m ** 2 / (v - m) if v > m else 100.0
        return np.array([size, m])

    def logpmf(self, x, theta):
        size, mu = theta
        return nbinom.logpmf(x, size, size / (size + mu))

    def mean(self, theta):
        return theta[1]

    def dispersion(self, theta):
        return theta[0]

    def check(self, theta, x):
        if theta[0] > MAX_NB_SIZE:
            raise FitConvergenceError(self.name, "size diverged, sample shows no overdispersion",
                                      estimate=theta.tolist())


class PoissonLogNormal(OffspringFamily):
    """Poisson with a log-normally distributed rate."""

    name = "poislnorm"
    param_names = ("meanlog", "sdlog")
    positive = (False, True)

    def start(self, x):
        m, v = _moments(x)
        if v > m:
            s2 = math.log(1.0 + (v - m) / m ** 2)
            return np.array([math.log(m) - 0.5 * s2, math.sqrt(s2)])
        return np.array([math.log(m), 1.0])

    def logpmf(self, x, theta):
        meanlog, sdlog = theta
        x = np.atleast_1d(np.asarray(x, dtype=float))
        s2 = sdlog ** 2
        # the mode solves x - e^z - (z - meanlog) / s2 = 0, i.e. a Wright omega
        omega = np.real(wrightomega(2.0 * math.log(sdlog) + meanlog + s2 * x))
        mode = meanlog + s2 * x - omega
        rate = np.exp(mode)
        sigma = 1.0 / np.sqrt(rate + 1.0 / s2)
        log_peak = (x * mode - rate - gammaln(x + 1.0)
                    - 0.5 * math.log(2.0 * math.pi) - math.log(sdlog)
                    - 0.5 * (mode - meanlog) ** 2 / s2)

        def log_ratio(t):
            u = sigma * t
            return x * u - rate * np.expm1(u) - (mode - meanlog) * u / s2 - 0.5 * u ** 2 / s2

        return _rate_mixture_logpmf(log_peak, sigma, log_ratio)

    def mean(self, theta):
        with np.errstate(over="ignore"):
            return float(np.exp(theta[0] + 0.5 * theta[1] ** 2))

    def dispersion(self, theta):
        with np.errstate(over="ignore"):
            ex = float(np.expm1(theta[1] ** 2))
        return math.inf if ex == 0.0 else 1.0 / ex


class PoissonWeibull(OffspringFamily):
    """Poisson with a Weibull distributed rate."""

    name = "poisweibull"
    param_names = ("shape", "scale")
    positive = (True, True)

    def start(self, x):
        return np.array([1.0, float(x.mean())])

    def _mode(self, x, shape, log_scale):
        """Root of x + shape - e^z - shape * e^(shape * (z - log_scale)).

        The start sits right of the root, where Newton on this decreasing
        concave function descends monotonically.
        """
        z = np.minimum(np.log(x + shape), log_scale + np.log((x + shape) / shape) / shape)
        for _ in range(MAX_NEWTON):
            a = np.exp(z)
            b = shape * np.exp(shape * (z - log_scale))
            step = (x + shape - a - b) / (a + shape * b)
            z = z + step
            if np.max(np.abs(step)) < 1e-12:
                break
        return z

    def logpmf(self, x, theta):
        shape, scale = theta
        x = np.atleast_1d(np.asarray(x, dtype=float))
        log_scale = math.log(scale)
        mode = self._mode(x, shape, log_scale)
        rate = np.exp(mode)
        # (rate / scale) ** shape at the mode
        w = np.exp(shape * (mode - log_scale))
        sigma = 1.0 / np.sqrt(rate + shape ** 2 * w)
        log_peak = (x * mode - rate - gammaln(x + 1.0)
                    + math.log(shape) + shape * (mode - log_scale) - w)

        def log_ratio(t):
            u = sigma * t
            return x * u - rate * np.expm1(u) + shape * u - w * np.expm1(shape * u)

        return _rate_mixture_logpmf(log_peak, sigma, log_ratio)

    def mean(self, theta):
        shape, scale = theta
        with np.errstate(over="ignore"):
            return float(np.exp(math.log(scale) + gammaln(1.0 + 1.0 / shape)))

    def dispersion(self, theta):
        shape = theta[0]
        # squared coefficient of variation of the rate
        with np.errstate(over="ignore"):
            cv2 = float(np.expm1(gammaln(1.0 + 2.0 / shape) - 2.0 * gammaln(1.0 + 1.0 / shape)))
        return math.inf if cv2 <= 0.0 else 1.0 / cv2


# Fixed order; also the last-resort tie-break in model selection
FAMILIES: Dict[str, OffspringFamily] = {
    f.name: f for f in (Poisson(), Geometric(), NegBinomial(), PoissonLogNormal(), PoissonWeibull())
}
FAMILY_ORDER: Tuple[str, ...] = tuple(FAMILIES)


def get_family(name: str) -> OffspringFamily:
    try:
        return FAMILIES[name]
    except KeyError:
        raise InvalidParameterError(
            f"Unknown offspring family '{name}', expected one of {FAMILY_ORDER}", family=name
        ) from None

# src/offspring_risk/estimator.py
"""
End-to-end offspring-distribution risk estimate.

    sample -> fit candidate families -> select best -> (R, k, R_upper)
           -> cluster-size, transmission and extinction metrics
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

import pandas as pd
from scipy.stats import norm

from .analytic.branching import (
    probability_extinct,
    proportion_cluster_size,
    proportion_transmission,
)
from .errors import InvalidParameterError
from .fitting.compare import (
    DEFAULT_CRITERION,
    DEFAULT_TIE_TOLERANCE,
    fit_all,
    ic_table,
    select_best,
)
from .fitting.families import FAMILY_ORDER, FitResult
from .fitting.likelihood import validate_sample

logger = logging.getLogger(__name__)


@dataclass
class RiskConfig:
    families: Tuple[str, ...] = FAMILY_ORDER
    criterion: str = DEFAULT_CRITERION
    tie_tolerance: float = DEFAULT_TIE_TOLERANCE
    confidence_level: float = 0.975
    cluster_size: Tuple[int, ...] = (2, 5, 10)
    percent_transmission: float = 0.8
    num_init_infect: int = 1
    ind_control: float = 0.0
    pop_control: float = 0.0


@dataclass
class RiskEstimate:
    best: FitResult
    fits: List[FitResult]
    failures: Dict[str, str]
    table: pd.DataFrame
    R: float
    k: float
    R_upper: float
    cluster_size: Dict[int, float]
    proportion_transmission: float
    probability_extinct: float
    probability_extinct_upper: float
    config: RiskConfig = field(default_factory=RiskConfig)

    def summary(self) -> Dict:
        """Plain-python view for printing or JSON output."""
        return {
            "best_model": self.best.family,
            "R": self.R,
            # Poisson k as the string "inf"
            "k": "inf" if math.isinf(self.k) else self.k,
            "R_upper": self.R_upper,
            "cluster_size": {str(s): p for s, p in self.cluster_size.items()},
            "proportion_transmission": self.proportion_transmission,
            "probability_extinct": self.probability_extinct,
            "probability_extinct_upper": self.probability_extinct_upper,
            "failed_models": dict(self.failures),
        }


def upper_bound_R(fit: FitResult, confidence_level: float = 0.975) -> float:
    """Normal-approximation upper bound R + z * SE(R)."""
    cl = float(confidence_level)
    if not 0.0 < cl < 1.0:
        raise InvalidParameterError(f"confidence_level must lie in (0, 1), got {cl}",
                                    confidence_level=cl)
    return fit.R + float(norm.ppf(cl)) * fit.R_sd


def estimate_risk(sample: Sequence[int], config: Optional[RiskConfig] = None) -> RiskEstimate:
    """Fit, select, and compute superspreading risk metrics for a sample.

    Raises:
        InvalidSampleError: malformed sample
        NoConvergedModelError: no family could be fit
        InvalidParameterError: a config value is out of range
    """
    cfg = config if config is not None else RiskConfig()
    x = validate_sample(sample)
    logger.info("Estimating offspring distribution from %d cases", x.size)

    # Step 1: per-family fits, failures are recoverable
    fits, failures = fit_all(x, cfg.families)

    # Step 2: selection
    best = select_best(fits, criterion=cfg.criterion, tie_tolerance=cfg.tie_tolerance)
    table = ic_table(fits, sort_by=cfg.criterion)

    # Step 3: (R, k) and upper bound for R
    R, k = best.R, best.k
    R_upper = upper_bound_R(best, cfg.confidence_level)
    logger.info("R = %.4g, k = %.4g, R upper = %.4g", R, k, R_upper)

    # Step 4: risk metrics
    cluster = proportion_cluster_size(R, k, cfg.cluster_size)
    p_trans = proportion_transmission(R, k, cfg.percent_transmission)
    p_ext = probability_extinct(R, k, cfg.num_init_infect, cfg.ind_control, cfg.pop_control)
    p_ext_upper = probability_extinct(R_upper, k, cfg.num_init_infect,
                                      cfg.ind_control, cfg.pop_control)

    return RiskEstimate(
        best=best,
        fits=fits,
        failures=failures,
        table=table,
        R=R,
        k=k,
        R_upper=R_upper,
        cluster_size={int(s): float(p) for s, p in zip(cfg.cluster_size, cluster)},
        proportion_transmission=p_trans,
        probability_extinct=p_ext,
        probability_extinct_upper=p_ext_upper,
        config=cfg,
    )

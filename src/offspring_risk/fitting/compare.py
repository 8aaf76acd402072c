# src/offspring_risk/fitting/compare.py
"""
Fit every candidate family, tabulate information criteria, pick the best model.
"""

from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from ..errors import FitConvergenceError, InvalidParameterError, NoConvergedModelError
from .families import FAMILY_ORDER, FitResult, get_family
from .likelihood import validate_sample

logger = logging.getLogger(__name__)

CRITERIA = ("aicc", "aic", "bic")
DEFAULT_CRITERION = "aicc"
DEFAULT_TIE_TOLERANCE = 1e-6


def fit_all(
    sample: Sequence[int],
    families: Optional[Iterable[str]] = None,
) -> Tuple[List[FitResult], Dict[str, str]]:
    """Fit each family independently.

    A family that fails is logged as a warning and left out of the fits.

    Returns:
        fits     : list of FitResult in family order
        failures : dict family name -> failure message
    """
    x = validate_sample(sample)
    names = FAMILY_ORDER if families is None else tuple(families)

    fits = []
    failures = {}
    for name in names:
        family = get_family(name)
        try:
            fits.append(family.fit(x))
        except FitConvergenceError as exc:
            logger.warning("Excluding %s from model comparison: %s", name, exc)
            failures[name] = str(exc)

    logger.info("Fitted %d of %d offspring families", len(fits), len(names))
    return fits, failures


def _check_criterion(criterion: str) -> None:
    if criterion not in CRITERIA:
        raise InvalidParameterError(
            f"criterion must be one of {CRITERIA}, got '{criterion}'", criterion=criterion
        )


def _akaike_weights(scores: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    delta = scores - np.min(scores)
    rel = np.exp(-0.5 * delta)
    return delta, rel / rel.sum()


def ic_table(fits: Sequence[FitResult], sort_by: str = DEFAULT_CRITERION) -> pd.DataFrame:
    """Information-criterion table for a set of fits, best first."""
    _check_criterion(sort_by)
    if not fits:
        raise NoConvergedModelError("No fitted models to compare", n_fits=0)

    df = pd.DataFrame(
        {
            "distribution": [f.family for f in fits],
            "n_params": [f.n_params for f in fits],
            "loglik": [f.loglik for f in fits],
            "aic": [f.aic for f in fits],
            "aicc": [f.aicc for f in fits],
            "bic": [f.bic for f in fits],
            "R": [f.R for f in fits],
            "k": [f.k for f in fits],
        }
    )
    for crit in CRITERIA:
        with np.errstate(invalid="ignore"):
            delta, weight = _akaike_weights(df[crit].to_numpy(dtype=float))
        df[f"delta_{crit}"] = delta
        df[f"w_{crit}"] = weight

    cols = ["distribution", "n_params", "loglik"]
    for crit in CRITERIA:
        cols += [crit, f"delta_{crit}", f"w_{crit}"]
    cols += ["R", "k"]

    return df[cols].sort_values(sort_by, kind="mergesort").reset_index(drop=True)


def select_best(
    fits: Sequence[FitResult],
    criterion: str = DEFAULT_CRITERION,
    tie_tolerance: float = DEFAULT_TIE_TOLERANCE,
) -> FitResult:
    """Pick the lowest-scoring fit.

    Scores within tie_tolerance of the minimum count as tied; the tied model
    with fewer parameters wins, then the earlier family in FAMILY_ORDER.
    """
    _check_criterion(criterion)
    if not fits:
        raise NoConvergedModelError("No offspring family converged", criterion=criterion)

    scores = [getattr(f, criterion) for f in fits]
    best_score = min(scores)
    tied = [f for f, s in zip(fits, scores) if s <= best_score + tie_tolerance]

    def order(f):
        rank = FAMILY_ORDER.index(f.family) if f.family in FAMILY_ORDER else len(FAMILY_ORDER)
        return (f.n_params, rank)

    best = min(tied, key=order)
    logger.info("Selected %s by %s (%.4f)", best.family, criterion, getattr(best, criterion))
    return best

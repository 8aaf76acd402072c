# src/offspring_risk/simulate/secondary_cases.py
# Turn a transmission edge list into a secondary-case-count sample.

from typing import Iterable, Optional

import numpy as np
import pandas as pd

from ..errors import InvalidSampleError

TRUE_FLAGS = {"Y", "YES", "TRUE", "T", "1"}


def _as_bool(flags: pd.Series) -> pd.Series:
    if flags.dtype == bool:
        return flags
    if pd.api.types.is_numeric_dtype(flags):
        return flags.fillna(0).astype(bool)
    return flags.astype(str).str.strip().str.upper().isin(TRUE_FLAGS)


def secondary_case_counts(
    contacts: pd.DataFrame,
    case_ids: Optional[Iterable] = None,
    from_col: str = "from",
    to_col: str = "to",
    was_case_col: str = "was_case",
) -> np.ndarray:
    """Number of onward infections for every case in an outbreak.

    Parameters
    ----------
    contacts :
        Edge list, one row per infector -> contact pair.
    case_ids :
        Optional ids of all cases (e.g. from a line list). Cases that appear
        nowhere in the edge list are counted with zero onward infections.

    Returns
    -------
    Sorted int64 array with one entry per case.
    """
    missing = [c for c in (from_col, to_col, was_case_col) if c not in contacts.columns]
    if missing:
        raise InvalidSampleError(f"contacts is missing columns: {missing}", columns=list(contacts.columns))

    infections = contacts[_as_bool(contacts[was_case_col])]

    # every infector listed in the contacts is a case, as is every infectee
    cases = set(contacts[from_col].dropna()) | set(infections[to_col].dropna())
    if case_ids is not None:
        cases |= set(case_ids)

    onward = infections.groupby(from_col).size()
    counts = np.array([int(onward.get(c, 0)) for c in cases], dtype=np.int64)
    return np.sort(counts)

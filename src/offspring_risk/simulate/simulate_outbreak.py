# src/offspring_risk/simulate/simulate_outbreak.py
"""
Seeded branching-process outbreak with an explicit contact network.

Every case draws a number of contacts from a negative binomial contact
distribution; each contact becomes a case with probability prob_infection.
Outbreaks are redrawn until the final size falls inside outbreak_size.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Tuple
import logging

import pandas as pd
from numpy.random import default_rng

logger = logging.getLogger(__name__)

CONTACT_COLUMNS = ["from", "to", "was_case"]


@dataclass
class OutbreakConfig:
    contact_mu: float = 1.2
    contact_size: float = 0.4
    prob_infection: float = 0.5
    outbreak_size: Tuple[int, int] = (50, 100)
    max_attempts: int = 10000
    seed: Optional[int] = 1
    out_path: str = "data/contacts.csv"


def _check_config(cfg: OutbreakConfig):
    lo, hi = int(cfg.outbreak_size[0]), int(cfg.outbreak_size[1])
    if lo < 1 or lo > hi:
        raise ValueError("outbreak_size must satisfy 1 <= min <= max")
    if cfg.contact_mu < 0 or cfg.contact_size <= 0:
        raise ValueError("contact_mu must be >= 0 and contact_size > 0")
    if not 0.0 <= cfg.prob_infection <= 1.0:
        raise ValueError("prob_infection must lie in [0, 1]")
    if cfg.max_attempts < 1:
        raise ValueError("max_attempts must be >= 1")
    return lo, hi


def simulate_chain(cfg: OutbreakConfig, rng, max_cases: int):
    """Grow one outbreak from a single index case.

    Returns (linelist rows, contact rows), or None when the outbreak passes
    max_cases before dying out.
    """
    # numpy parameterises the NB by (n, p) with mean n(1-p)/p
    p_contact = cfg.contact_size / (cfg.contact_size + cfg.contact_mu)

    linelist = [(1, 0, None)]
    contacts = []
    next_id = 2
    generation = [1]
    gen_num = 0

    while generation:
        gen_num += 1
        new_generation = []
        for case_id in generation:
            n_contacts = int(rng.negative_binomial(cfg.contact_size, p_contact))
            if n_contacts == 0:
                continue
            infected = rng.random(n_contacts) < cfg.prob_infection
            for was_case in infected:
                contacts.append((case_id, next_id, "Y" if was_case else "N"))
                if was_case:
                    linelist.append((next_id, gen_num, case_id))
                    new_generation.append(next_id)
                next_id += 1

        if len(linelist) > max_cases:
            return None
        generation = new_generation

    return linelist, contacts


def simulate_outbreak(cfg: Optional[OutbreakConfig] = None) -> Tuple[pd.DataFrame, pd.DataFrame]:
    """Simulate an outbreak whose size lies within cfg.outbreak_size.

    result : (linelist, contacts)
        - linelist : DataFrame with case_id, generation, infector
        - contacts : DataFrame with from, to, was_case ("Y"/"N")
    """
    cfg = cfg if cfg is not None else OutbreakConfig()
    lo, hi = _check_config(cfg)
    rng = default_rng(cfg.seed)

    for attempt in range(1, cfg.max_attempts + 1):
        chain = simulate_chain(cfg, rng, max_cases=hi)
        if chain is None:
            continue
        linelist, contacts = chain
        if lo <= len(linelist) <= hi:
            logger.info("Simulated outbreak of %d cases after %d attempt(s)", len(linelist), attempt)
            ll_df = pd.DataFrame(linelist, columns=["case_id", "generation", "infector"])
            ll_df["infector"] = ll_df["infector"].astype("Int64")
            ct_df = pd.DataFrame(contacts, columns=CONTACT_COLUMNS)
            return ll_df, ct_df

    raise RuntimeError(
        f"No outbreak with size in [{lo}, {hi}] after {cfg.max_attempts} attempts"
    )


def write_contacts_csv(contacts: pd.DataFrame, out_path) -> Path:
    csv_path = Path(out_path)
    csv_path.parent.mkdir(parents=True, exist_ok=True)
    contacts[CONTACT_COLUMNS].to_csv(csv_path, index=False)
    logger.info("Contacts written to: %s", csv_path)
    return csv_path


def load_contacts_csv(path) -> pd.DataFrame:
    csv_path = Path(path)
    if not csv_path.exists():
        raise FileNotFoundError(f"Contacts CSV not found: {path}")
    return pd.read_csv(csv_path)

#!/usr/bin/env python3
# src/offspring_risk/runner.py — command line entry point

import argparse
import json
import logging
import re
import sys
import time
from typing import List, Optional

import numpy as np

from .analytic import branching
from .errors import OffspringRiskError
from .estimator import RiskConfig, estimate_risk
from .fitting.compare import CRITERIA, fit_all, ic_table, select_best
from .fitting.families import FAMILY_ORDER
from .simulate import simulate_outbreak as sim
from .simulate.secondary_cases import secondary_case_counts

logger = logging.getLogger(__name__)


# Parser for counts like 0,0,1,3
def parse_int_list(s: Optional[str]) -> List[int]:
    if not s:
        return []
    try:
        return [int(x) for x in re.split(r"[,\s;]+", s.strip()) if x]
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected comma separated integers, got '{s}'") from None


def parse_str_list(s: Optional[str]) -> List[str]:
    if not s:
        return []
    return [x for x in re.split(r"[,\s;]+", s.strip()) if x]


def load_sample(args) -> np.ndarray:
    if args.sample:
        return np.asarray(args.sample, dtype=int)
    contacts = sim.load_contacts_csv(args.contacts)
    return secondary_case_counts(contacts)


def add_sample_args(p):
    src = p.add_mutually_exclusive_group()
    src.add_argument("--contacts", default="data/contacts.csv", metavar="PATH",
                     help="Contacts CSV with from,to,was_case columns (default: data/contacts.csv)")
    src.add_argument("--sample", type=parse_int_list, default=None, metavar="LIST",
                     help="Secondary case counts (comma/space separated)")
    p.add_argument("--families", type=parse_str_list, default=",".join(FAMILY_ORDER), metavar="LIST",
                   help="Offspring families to fit (default: all)")
    p.add_argument("--criterion", choices=CRITERIA, default="aicc",
                   help="Information criterion for model selection (default: aicc)")


def add_metric_args(p):
    p.add_argument("--cluster-size", type=parse_int_list, default="2,5,10", metavar="LIST",
                   help="Cluster sizes for the tail probability (default: 2,5,10)")
    p.add_argument("--percent-transmission", type=float, default=0.8, metavar="F",
                   help="Fraction of transmission to attribute (default: 0.8)")
    p.add_argument("--num-init-infect", type=int, default=1, metavar="N",
                   help="Initial infections seeding the outbreak (default: 1)")
    p.add_argument("--ind-control", type=float, default=0.0, metavar="C",
                   help="Individual-level control effectiveness in [0,1) (default: 0)")
    p.add_argument("--pop-control", type=float, default=0.0, metavar="C",
                   help="Population-level control effectiveness in [0,1) (default: 0)")


def main(argv=None):
    p = argparse.ArgumentParser(description="Offspring distribution and superspreading risk runner")
    p.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    sub = p.add_subparsers(dest="cmd", required=True)

    # ---------- simulate ----------
    sim_p = sub.add_parser("simulate", help="Simulate an outbreak and write its contacts CSV")
    sim_p.add_argument("--seed", type=int, default=1, metavar="SEED",
                       help="RNG seed for reproducibility (default: 1)")
    sim_p.add_argument("--out", default="data/contacts.csv", metavar="PATH",
                       help="Output CSV path (default: data/contacts.csv)")
    sim_p.add_argument("--contact-mu", type=float, default=1.2, metavar="MU",
                       help="Mean number of contacts per case (default: 1.2)")
    sim_p.add_argument("--contact-size", type=float, default=0.4, metavar="SIZE",
                       help="Dispersion of the contact distribution (default: 0.4)")
    sim_p.add_argument("--prob-infection", type=float, default=0.5, metavar="P",
                       help="Probability a contact becomes a case (default: 0.5)")
    sim_p.add_argument("--outbreak-size", type=parse_int_list, default="50,100", metavar="MIN,MAX",
                       help="Accepted outbreak size range (default: 50,100)")

    # ---------- fit ----------
    fit_p = sub.add_parser("fit", help="Fit and compare offspring distributions")
    add_sample_args(fit_p)

    # ---------- risk ----------
    risk_p = sub.add_parser("risk", help="Risk metrics for given R and k")
    risk_p.add_argument("--R", dest="R", type=float, required=True)
    risk_p.add_argument("--k", dest="k", type=float, required=True,
                        help="Dispersion; 'inf' for Poisson")
    add_metric_args(risk_p)

    # ---------- run ----------
    run_p = sub.add_parser("run", help="Fit, select and compute all risk metrics")
    add_sample_args(run_p)
    add_metric_args(run_p)
    run_p.add_argument("--confidence-level", type=float, default=0.975, metavar="Q",
                       help="Quantile for the upper bound of R (default: 0.975)")
    run_p.add_argument("--json", action="store_true", help="Print the summary as JSON")

    args = p.parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO,
                        format="%(levelname)s %(name)s: %(message)s")
    t0 = time.perf_counter()

    try:
        if args.cmd == "simulate":
            size = args.outbreak_size
            if len(size) != 2:
                p.error("--outbreak-size expects MIN,MAX")
            cfg = sim.OutbreakConfig(
                contact_mu=args.contact_mu,
                contact_size=args.contact_size,
                prob_infection=args.prob_infection,
                outbreak_size=(size[0], size[1]),
                seed=args.seed,
                out_path=args.out,
            )
            _, contacts = sim.simulate_outbreak(cfg)
            sim.write_contacts_csv(contacts, cfg.out_path)
            print("Simulation done ->", args.out)

        elif args.cmd == "fit":
            sample = load_sample(args)
            fits, failures = fit_all(sample, args.families)
            best = select_best(fits, criterion=args.criterion)
            print(ic_table(fits, sort_by=args.criterion).to_string(index=False))
            for msg in failures.values():
                print(f"failed: {msg}")
            print(f"best = {best.family}\nR = {best.R:.4g}\nk = {best.k:.4g}")

        elif args.cmd == "risk":
            sizes = args.cluster_size
            cluster = branching.proportion_cluster_size(args.R, args.k, sizes)
            for s, prop in zip(sizes, cluster):
                print(f"P(cluster >= {s}): {prop:.6f}")
            p_t = branching.proportion_transmission(args.R, args.k, args.percent_transmission)
            print(f"Proportion of cases causing {args.percent_transmission:.0%} of transmission: {p_t:.6f}")
            p_e = branching.probability_extinct(args.R, args.k, args.num_init_infect,
                                                args.ind_control, args.pop_control)
            print(f"Extinction probability: {p_e:.6f}")

        elif args.cmd == "run":
            cfg = RiskConfig(
                families=tuple(args.families),
                criterion=args.criterion,
                confidence_level=args.confidence_level,
                cluster_size=tuple(args.cluster_size),
                percent_transmission=args.percent_transmission,
                num_init_infect=args.num_init_infect,
                ind_control=args.ind_control,
                pop_control=args.pop_control,
            )
            result = estimate_risk(load_sample(args), cfg)
            if args.json:
                print(json.dumps(result.summary(), indent=2, allow_nan=False))
            else:
                print(result.table.to_string(index=False))
                for k, v in result.summary().items():
                    print(f"{k}: {v}")

    except (OffspringRiskError, FileNotFoundError) as exc:
        inputs = getattr(exc, "inputs", None)
        print(f"Error: {exc}" + (f" (inputs: {inputs})" if inputs else ""), file=sys.stderr)
        sys.exit(2)

    logger.info("Done in %.2fs", time.perf_counter() - t0)


if __name__ == "__main__":
    main()

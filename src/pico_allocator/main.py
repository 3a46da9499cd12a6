#!/usr/bin/env python3
"""
Comparison-group allocator – greedy baseline and exact 0/1 programs

• Candidate groups need ≥2 distinct items and ≥1 randomized item to be eligible.
• Every item ends up in at most one selected group.

Objectives (--objective):
  - uniform        → keep as many items as possible
  - size_tier      → favour groups whose size is in --preferred_sizes (weight --preferred_weight)
  - heterogeneity  → size_tier + a·s'Qs, a calibrated from --exchange_rate / --exchange_groups
  - group_count    → maximise the number of groups (many 2-item groups; known trade-off)

Solvers (--solver):
  - ortools  CP-SAT (native indicators, warm start from greedy)
  - pulp     CBC (linearised indicators)
  - both     solve with both and keep the better design (cross-check)
  - greedy   heuristic only
"""

from __future__ import annotations
import argparse, sys, time, logging
from dataclasses import dataclass, replace
from typing import Optional, Sequence

import pandas as pd

from .candidates import CandidateModel, build_candidate_model, derive_all_designs
from .config import OBJECTIVES, SOLVERS, AllocatorConfig
from .errors import SolverError
from .extract import extract_assignments, summarize_groups, with_realized_stats
from .greedy import greedy, hint_indices
from .model import CompiledModel, compile_model
from .objectives import exchange_rate_for_groups
from .solvers import assignment_vector, solve
from .utils import print_summary, validate_design

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AllocationResult:
    assignments: pd.DataFrame     # one row per (item, group) kept
    groups: pd.DataFrame          # per-group realized size and composition
    candidates: CandidateModel
    label: str
    status: str
    objective: float
    wall_time: float


def _greedy_design(candidates: CandidateModel, compiled: CompiledModel):
    design = greedy(candidates)
    idx = hint_indices(candidates, design)
    obj = compiled.objective_value(assignment_vector(compiled, idx))
    return design, idx, obj


def _result(candidates, design, label, status, objective, t0) -> AllocationResult:
    design = design.reset_index(drop=True)
    if 'realized_size' not in design.columns:
        design = with_realized_stats(design, candidates.group_col, candidates.randomized_col)
    groups = summarize_groups(design, candidates.group_col, candidates.randomized_col, candidates.attribute_cols)
    return AllocationResult(assignments=design, groups=groups, candidates=candidates, label=label,
                            status=status, objective=float(objective), wall_time=time.time() - t0)


def allocate(records: pd.DataFrame, config: Optional[AllocatorConfig] = None) -> AllocationResult:
    """Build the candidate model, then run the greedy or exact path named by ``config.solver``."""
    t0 = time.time()
    cfg = (config or AllocatorConfig()).validate()
    candidates = build_candidate_model(records, cfg)
    compiled = compile_model(candidates, cfg)

    if cfg.solver == "greedy":
        logger.info("→ Greedy mode")
        design, _, obj = _greedy_design(candidates, compiled)
        return _result(candidates, design, "Greedy", "HEURISTIC", obj, t0)

    hint = None
    if cfg.warm_start and cfg.solver in ("ortools", "both"):
        t_ws = time.time()
        _, hint, _ = _greedy_design(candidates, compiled)
        logger.info(f"[warm-start] built in {time.time() - t_ws:.1f}s")

    backends = ("pulp", "ortools") if cfg.solver == "both" else (cfg.solver,)
    best = None
    try:
        for backend in backends:
            res = solve(compiled, backend=backend, timeout=cfg.timeout, workers=cfg.workers,
                        log=cfg.solver_log, hint=hint if backend == "ortools" else None)
            if best is not None and abs(best.objective - res.objective) > 1e-6:
                logger.warning(f"[both] objectives differ: {best.backend}={best.objective:.6f} "
                               f"{res.backend}={res.objective:.6f}")
            if best is None or res.objective > best.objective:
                best = res
    except SolverError as e:
        if not cfg.fallback_greedy:
            raise
        logger.warning(f"→ {type(e).__name__}: {e}; falling back to greedy design")
        design, _, obj = _greedy_design(candidates, compiled)
        return _result(candidates, design, "Greedy (fallback)", "HEURISTIC", obj, t0)

    design = extract_assignments(candidates, best.values)
    label = {"ortools": "CP-SAT", "pulp": "PuLP"}[best.backend]
    return _result(candidates, design, label, best.status, best.objective, t0)


def compare_objectives(records: pd.DataFrame, objectives: Sequence[str] = OBJECTIVES,
                       config: Optional[AllocatorConfig] = None) -> pd.DataFrame:
    """Run each objective as an independent allocation and tabulate the designs side by side."""
    cfg = config or AllocatorConfig()
    lo, hi = cfg.preferred_sizes
    rows = []
    for name in objectives:
        run_cfg = replace(cfg, objective=name,
                          exchange_rate=cfg.exchange_rate if name == "heterogeneity" else 0.0)
        res = allocate(records, run_cfg)
        sizes = res.groups['size'] if not res.groups.empty else pd.Series(dtype=int)
        rows.append({'objective': name,
                     'label': res.label,
                     'items_retained': int(len(res.assignments)),
                     'groups': int(len(res.groups)),
                     'groups_size_2': int((sizes == 2).sum()),
                     'groups_preferred': int(((sizes >= lo) & (sizes <= hi)).sum()),
                     'objective_value': res.objective,
                     'wall_time': res.wall_time})
    table = pd.DataFrame(rows)
    logger.info(f"Objective comparison:\n{table.round(3).to_string(index=False)}")
    return table


# =====================================================================
# Driver
# =====================================================================
def main(cfg):
    t0 = time.time()
    if cfg.compare:
        cfg.objective = "heterogeneity"  # compare_objectives sets the objective per run
    config = AllocatorConfig.from_args(cfg)
    records = (pd.read_csv(cfg.input, dtype={config.item_col: str, config.group_col: str})
                 .rename(columns=str.strip))
    if cfg.derive_all_designs:
        records = derive_all_designs(records, (config.randomized_col, *config.heterogeneity_cols))
    logger.info(f"records: {len(records):,}   items: {records[config.item_col].nunique():,}   "
                f"groups: {records[config.group_col].nunique():,}")

    if cfg.compare:
        table = compare_objectives(records, OBJECTIVES, config)
        table.to_csv(cfg.out, index=False)
        logger.info(f"✅ wrote {cfg.out}   (total wall time {time.time()-t0:.1f}s)")
        return

    res = allocate(records, config)
    print_summary(res.assignments, res.candidates, res.label, res.wall_time, res.objective)
    validate_design(res.assignments, config.item_col, config.group_col, config.randomized_col)
    res.assignments.drop(columns=['var'], errors='ignore').to_csv(cfg.out, index=False)
    if cfg.groups_out:
        res.groups.to_csv(cfg.groups_out, index=False)
    logger.info(f"✅ wrote {cfg.out}   (total wall time {time.time()-t0:.1f}s)")


def cli(argv=None):
    ap = argparse.ArgumentParser(description="Select disjoint comparison groups from candidate item/group rows.")
    ap.add_argument("--input", required=True, help="CSV with one row per (item, candidate group)")
    ap.add_argument("--out", required=True, help="assignment CSV (or comparison table with --compare)")
    ap.add_argument("--groups_out", default=None, help="optional per-group summary CSV")

    # input columns
    ap.add_argument("--item_col", default="item_id")
    ap.add_argument("--group_col", default="group_id")
    ap.add_argument("--randomized_col", default="randomized")
    ap.add_argument("--heterogeneity_cols", nargs="+", default=["controlled", "before_after"])
    ap.add_argument("--derive_all_designs", action="store_true", help="add an all_designs conjunction column")

    # objective knobs
    ap.add_argument("--objective", choices=OBJECTIVES, default="uniform")
    ap.add_argument("--preferred_sizes", nargs=2, type=int, default=[3, 5], metavar=("LOW", "HIGH"))
    ap.add_argument("--preferred_weight", type=float, default=8.0)
    ap.add_argument("--base_weight", type=float, default=1.0)
    ap.add_argument("--exchange_rate", type=float, default=0.0,
                    help="linear utility traded for full heterogeneity (heterogeneity objective)")
    ap.add_argument("--exchange_groups", type=float, default=None,
                    help="same, expressed as preferred-size groups of LOW items; overrides --exchange_rate")

    # solver knobs
    ap.add_argument("--solver", choices=SOLVERS, default="ortools")
    ap.add_argument("--timeout", type=float, default=None, help="solver time budget in seconds")
    ap.add_argument("--workers", type=int, default=8)
    ap.add_argument("--solver_log", action="store_true")
    ap.add_argument("--warm_start", dest="warm_start", action="store_true", default=True,
                    help="hint CP-SAT with the greedy design (default)")
    ap.add_argument("--no_warm_start", dest="warm_start", action="store_false")
    ap.add_argument("--fallback_greedy", action="store_true",
                    help="use the greedy design when the exact solve fails")
    ap.add_argument("--compare", action="store_true", help="run every objective and write a comparison table")

    ap.add_argument("--log_level", choices=("DEBUG", "INFO", "WARNING", "ERROR"), default="INFO", help="logging level")
    cfg = ap.parse_args(argv)
    if cfg.exchange_groups is not None:
        cfg.exchange_rate = exchange_rate_for_groups(cfg.exchange_groups, cfg.preferred_weight, cfg.preferred_sizes[0])

    logging.basicConfig(
        level=getattr(logging, cfg.log_level),
        format='%(asctime)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    try:
        main(cfg)
    except Exception:
        logger.exception("Unhandled error during allocation run")
        sys.exit(1)


if __name__ == "__main__":
    cli()

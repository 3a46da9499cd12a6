"""
Solution extractor: map a solution vector back onto (item, group) assignments.
"""

from __future__ import annotations
import logging

import numpy as np
import pandas as pd

from .candidates import CandidateModel
from .errors import InvalidInputError, SolverError

logger = logging.getLogger(__name__)


def with_realized_stats(design: pd.DataFrame, group_col: str, randomized_col: str) -> pd.DataFrame:
    """Add realized per-group size and randomized count to an assignment table."""
    out = design.copy()
    grp = out.groupby(group_col)
    out['realized_size'] = grp[group_col].transform('size').astype(int)
    out['realized_randomized'] = grp[randomized_col].transform('sum').astype(int)
    return out


def extract_assignments(candidates: CandidateModel, values) -> pd.DataFrame:
    values = np.asarray(values)
    if len(values) < candidates.n_vars:
        raise SolverError(f"solution has {len(values)} values for {candidates.n_vars} assignment vars")
    picked = np.flatnonzero(values[:candidates.n_vars] > 0.5)
    keep = [candidates.item_col, candidates.group_col, candidates.randomized_col, *candidates.attribute_cols]
    design = candidates.pairs.iloc[picked][['var', *keep]].reset_index(drop=True)
    design = with_realized_stats(design, candidates.group_col, candidates.randomized_col)
    logger.info(f"[extract] {len(design):,} items in {design[candidates.group_col].nunique():,} groups")
    return design


def summarize_groups(design: pd.DataFrame, group_col: str = "group_id", randomized_col: str = "randomized",
                     attribute_cols=("controlled", "before_after")) -> pd.DataFrame:
    """One row per selected group: realized size and design-attribute counts."""
    if (m := {group_col, randomized_col} - set(design.columns)):
        raise InvalidInputError(f"design missing {m}")
    cols = [c for c in (randomized_col, *attribute_cols) if c in design.columns]
    if design.empty:
        return pd.DataFrame(columns=[group_col, 'size', *[f"n_{c}" for c in cols], 'has_randomized'])
    agg = {'size': (group_col, 'size')}
    agg.update({f"n_{c}": (c, 'sum') for c in cols})
    out = design.groupby(group_col).agg(**agg).reset_index()
    for c in cols:
        out[f"n_{c}"] = out[f"n_{c}"].astype(int)
    out['has_randomized'] = out[f"n_{randomized_col}"] > 0
    return out.sort_values(['size', group_col], kind='mergesort').reset_index(drop=True)

"""
Greedy baseline: accept whole groups in pool order, smallest randomized groups first.

Fast and always feasible, but not optimal: taking a small group early can
consume an item that a larger group needed for its randomized member.
"""

from __future__ import annotations
import logging
import time
from typing import Optional, Union

import numpy as np
import pandas as pd

from .candidates import MIN_GROUP_SIZE, CandidateModel, _as_bool
from .config import AllocatorConfig
from .errors import InvalidInputError

logger = logging.getLogger(__name__)


def _sorted_pool(df: pd.DataFrame, item: str, group: str, rand: str) -> pd.DataFrame:
    """Randomized-containing groups first, then ascending size, then group id, then item id."""
    stats = df.groupby(group).agg(_size=(item, 'nunique'), _has_rand=(rand, 'any'))
    out = df.join(stats, on=group)
    return out.sort_values(['_has_rand', '_size', group, item],
                           ascending=[False, True, True, True], kind='mergesort')


def greedy(pool: Union[CandidateModel, pd.DataFrame], config: Optional[AllocatorConfig] = None) -> pd.DataFrame:
    """Run the greedy allocator over a candidate model or a raw pool of (item, group) rows.

    The returned design keeps the pool's columns and lists accepted rows in
    acceptance order. Running ``greedy`` on its own output returns the same rows.
    """
    t0 = time.time()
    if isinstance(pool, CandidateModel):
        item, group, rand = pool.item_col, pool.group_col, pool.randomized_col
        df = pool.pairs
    else:
        cfg = config or AllocatorConfig()
        item, group, rand = cfg.item_col, cfg.group_col, cfg.randomized_col
        if (m := {item, group, rand} - set(pool.columns)):
            raise InvalidInputError(f"pool missing {m}")
        df = pool.drop_duplicates([item, group]).copy()
        df[rand] = _as_bool(df[rand], rand)

    columns = list(df.columns)
    if df.empty:
        logger.info("[greedy] empty pool, nothing to allocate")
        return df.iloc[0:0].copy()

    logger.info(f"[greedy] Pre-processing {len(df):,} pool rows in {df[group].nunique():,} groups...")
    ordered = _sorted_pool(df, item, group, rand)

    row_items = ordered[item].to_numpy()
    row_rand = ordered[rand].to_numpy(dtype=bool)
    rows_by_group = {}
    for pos, gid in enumerate(ordered[group].to_numpy()):
        rows_by_group.setdefault(gid, []).append(pos)

    taken = set()      # items already placed in an accepted group
    accepted = []      # positions in ``ordered``
    n_groups = n_discarded = 0

    # groups stay contiguous and in order while rows are removed, so walking
    # them once is the same as repeatedly inspecting the head of the pool
    for gid, rows in rows_by_group.items():
        live = [p for p in rows if row_items[p] not in taken]
        members = {row_items[p] for p in live}
        if len(members) >= MIN_GROUP_SIZE and row_rand[live].any():
            accepted.extend(live)
            taken.update(members)
            n_groups += 1
            logger.debug(f"[greedy] accept group {gid!r} ({len(members)} items)")
        else:
            n_discarded += 1
            logger.debug(f"[greedy] discard group {gid!r} ({len(members)} live items)")

    design = ordered.iloc[accepted][columns].copy()
    logger.info(f"[greedy] Completed: {len(design):,} assignments in {n_groups:,} groups "
                f"({n_discarded:,} discarded) in {time.time() - t0:.1f}s")
    return design


def hint_indices(model: CandidateModel, design: pd.DataFrame) -> np.ndarray:
    """Canonical variable indices of the (item, group) rows in ``design``."""
    if design is None or design.empty:
        return np.empty(0, dtype=np.int64)
    keys = set(zip(design[model.item_col], design[model.group_col]))
    mask = [k in keys for k in zip(model.pairs[model.item_col], model.pairs[model.group_col])]
    return model.pairs.loc[mask, 'var'].to_numpy(dtype=np.int64)

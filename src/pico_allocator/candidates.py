"""
Candidate model: eligible (item, group) pairs and their canonical variable order.

Every other component refers to an assignment variable by the integer in the
``var`` column of ``CandidateModel.pairs``. The order is fixed here, once:
eligible groups by ascending size (ties by group id), then items by id.
"""

from __future__ import annotations
import logging
from dataclasses import dataclass
from functools import cached_property
from typing import Dict, List, Optional, Sequence

import numpy as np
import pandas as pd

from .config import AllocatorConfig
from .errors import InvalidInputError

logger = logging.getLogger(__name__)

_TRUE_STR = {"1", "true", "t", "yes", "y"}
_FALSE_STR = {"0", "false", "f", "no", "n"}

MIN_GROUP_SIZE = 2


def _as_bool(col: pd.Series, name: str) -> pd.Series:
    missing = col.isna()
    if missing.any():
        raise InvalidInputError(f"{int(missing.sum())} rows missing '{name}'")

    def conv(v):
        if isinstance(v, str):
            key = v.strip().lower()
            if key in _TRUE_STR:
                return True
            if key in _FALSE_STR:
                return False
        elif v in (True, 1):
            return True
        elif v in (False, 0):
            return False
        raise InvalidInputError(f"column '{name}' has non-boolean value {v!r}")

    return col.map(conv).astype(bool)


def derive_all_designs(records: pd.DataFrame,
                       cols: Sequence[str] = ("randomized", "controlled", "before_after"),
                       name: str = "all_designs") -> pd.DataFrame:
    """Return a copy of ``records`` with a column flagging items that have every design in ``cols``."""
    if (m := set(cols) - set(records.columns)):
        raise InvalidInputError(f"records missing {m}")
    out = records.copy()
    flags = [_as_bool(out[c], c) for c in cols]
    out[name] = np.logical_and.reduce(flags) if flags else True
    return out


@dataclass(frozen=True)
class CandidateModel:
    pairs: pd.DataFrame           # one row per assignment variable, sorted by ``var``
    groups: pd.DataFrame          # eligible groups, sorted by ``group_order``
    dropped_groups: pd.DataFrame  # groups removed by the eligibility rule
    item_col: str
    group_col: str
    randomized_col: str
    attribute_cols: tuple

    @property
    def n_vars(self) -> int:
        return len(self.pairs)

    @property
    def n_groups(self) -> int:
        return len(self.groups)

    @cached_property
    def items(self) -> List:
        return sorted(self.pairs[self.item_col].unique().tolist())

    @cached_property
    def item_vars(self) -> Dict[object, np.ndarray]:
        return {k: np.asarray(v, dtype=np.int64)
                for k, v in self.pairs.groupby(self.item_col, sort=True)['var'].apply(list).items()}

    @cached_property
    def group_vars(self) -> Dict[object, np.ndarray]:
        """Group id -> its variable indices, in group order."""
        by_group = self.pairs.groupby(self.group_col, sort=False)['var'].apply(list)
        return {gid: np.asarray(by_group[gid], dtype=np.int64) for gid in self.groups[self.group_col]}

    @cached_property
    def _index(self) -> Dict[tuple, int]:
        keys = zip(self.pairs[self.item_col], self.pairs[self.group_col])
        return dict(zip(keys, self.pairs['var'].tolist()))

    def var_index(self, item, group) -> int:
        return self._index[(item, group)]

    def incidence_matrix(self) -> np.ndarray:
        """Items x assignment variables 0/1 matrix; rows follow ``self.items``."""
        A = np.zeros((len(self.items), self.n_vars), dtype=np.int8)
        if self.n_vars:
            codes = pd.Categorical(self.pairs[self.item_col], categories=self.items).codes
            A[codes, self.pairs['var'].to_numpy()] = 1
        return A


def build_candidate_model(records: pd.DataFrame, config: Optional[AllocatorConfig] = None) -> CandidateModel:
    cfg = config or AllocatorConfig()
    item, group, rand = cfg.item_col, cfg.group_col, cfg.randomized_col
    attrs = tuple(c for c in cfg.heterogeneity_cols if c != rand)

    if not isinstance(records, pd.DataFrame):
        raise InvalidInputError(f"records must be a pandas DataFrame, got {type(records).__name__}")
    need = {item, group, rand, *attrs}
    if (m := need - set(records.columns)):
        raise InvalidInputError(f"records missing {m}")

    df = records[[item, group, rand, *attrs]].copy()
    for col in (item, group):
        if df[col].isna().any():
            raise InvalidInputError(f"{int(df[col].isna().sum())} rows missing '{col}'")
    for col in (rand, *attrs):
        df[col] = _as_bool(df[col], col)

    # attributes describe the item, so every row of an item must agree
    conflicting = df.groupby(item)[[rand, *attrs]].nunique().gt(1).any(axis=1)
    if conflicting.any():
        bad = conflicting[conflicting].index.tolist()
        raise InvalidInputError(f"{len(bad)} items have conflicting attributes across rows, e.g. {bad[:5]}")

    n_raw = len(df)
    df = df.drop_duplicates([item, group]).reset_index(drop=True)

    stats = (df.groupby(group)
               .agg(size=(item, 'nunique'), n_randomized=(rand, 'sum'))
               .reset_index())
    stats['n_randomized'] = stats['n_randomized'].astype(int)
    stats['has_randomized'] = stats['n_randomized'] > 0
    eligible = (stats['size'] >= MIN_GROUP_SIZE) & stats['has_randomized']

    groups = (stats[eligible]
                .sort_values(['size', group], kind='mergesort')
                .reset_index(drop=True))
    groups['group_order'] = np.arange(len(groups), dtype=np.int64)
    dropped = stats[~eligible].sort_values(group).reset_index(drop=True)

    pairs = df.merge(groups[[group, 'size', 'group_order']], on=group, how='inner')
    pairs = (pairs.rename(columns={'size': 'group_size'})
                  .sort_values(['group_order', item], kind='mergesort')
                  .reset_index(drop=True))
    pairs.insert(0, 'var', np.arange(len(pairs), dtype=np.int64))

    logger.info(f"[candidates] {n_raw:,} rows → {len(df):,} distinct pairs in {len(stats):,} groups; "
                f"{len(groups):,} eligible, {len(dropped):,} dropped, {len(pairs):,} assignment vars")
    if not dropped.empty:
        logger.debug(f"[candidates] dropped groups:\n{dropped.head(10).to_string()}")

    return CandidateModel(pairs=pairs, groups=groups, dropped_groups=dropped,
                          item_col=item, group_col=group, randomized_col=rand,
                          attribute_cols=attrs)

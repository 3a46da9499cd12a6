"""
Objective composer.

Strategies (all maximised):

  uniform        every assignment variable weighs 1: keep as many items as possible
  size_tier      pairs whose group has a preferred pre-optimisation size weigh more
  heterogeneity  size_tier + a * s'Qs, Q = within-group dissimilarity
  group_count    Σ_j s[j] over group indicators; assignment weights are 0

``group_count`` tends to produce many 2-item groups: one indicator is worth the
same whether its group keeps 2 items or 20. That is the mode's known trade-off.

Q is symmetric with a zero diagonal and only links pairs of the same group, so
it is stored as its upper triangle (rows < cols); s'Qs = 2 * Σ w * s_r * s_c
and 1'Q1 = 2 * Σ w.
"""

from __future__ import annotations
import logging
from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

import numpy as np

from .candidates import CandidateModel
from .config import AllocatorConfig
from .errors import ConfigurationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Objective:
    name: str
    linear: np.ndarray
    quad_rows: np.ndarray
    quad_cols: np.ndarray
    quad_weights: np.ndarray
    scale: float = 0.0
    total_heterogeneity: float = 0.0
    uses_group_indicators: bool = False

    @property
    def has_quadratic(self) -> bool:
        return self.scale != 0.0 and len(self.quad_weights) > 0

    def value(self, s) -> float:
        """Objective value of a dense 0/1 vector."""
        s = np.asarray(s, dtype=float)
        val = float(self.linear @ s[:len(self.linear)])
        if self.has_quadratic:
            val += self.scale * 2.0 * float(np.sum(self.quad_weights * s[self.quad_rows] * s[self.quad_cols]))
        return val


def uniform_weights(model: CandidateModel) -> np.ndarray:
    return np.ones(model.n_vars, dtype=float)


def size_tier_weights(model: CandidateModel, preferred_sizes: Tuple[int, int] = (3, 5),
                      preferred_weight: float = 8.0, base_weight: float = 1.0) -> np.ndarray:
    lo, hi = preferred_sizes
    size = model.pairs['group_size'].to_numpy()
    return np.where((size >= lo) & (size <= hi), float(preferred_weight), float(base_weight))


def group_count_weights(model: CandidateModel) -> np.ndarray:
    return np.concatenate([np.zeros(model.n_vars), np.ones(model.n_groups)])


def dissimilarity_pairs(model: CandidateModel, attributes: Optional[Sequence[str]] = None):
    """Upper triangle of Q as (rows, cols, weights); zero weights are left out."""
    attrs = list(attributes if attributes is not None else model.attribute_cols)
    if (m := set(attrs) - set(model.pairs.columns)):
        raise ConfigurationError(f"heterogeneity attributes not in candidate data: {m}")
    X = model.pairs[attrs].to_numpy(dtype=bool) if attrs else np.zeros((model.n_vars, 0), dtype=bool)

    rows, cols, weights = [], [], []
    for idx in model.group_vars.values():
        G = X[idx]
        D = (G[:, None, :] != G[None, :, :]).sum(axis=-1)
        r, c = np.triu_indices(len(idx), k=1)
        w = D[r, c]
        keep = w > 0
        rows.append(idx[r[keep]]); cols.append(idx[c[keep]]); weights.append(w[keep])

    if not rows:
        empty = np.empty(0, dtype=np.int64)
        return empty, empty.copy(), np.empty(0, dtype=float)
    return (np.concatenate(rows).astype(np.int64),
            np.concatenate(cols).astype(np.int64),
            np.concatenate(weights).astype(float))


def dissimilarity_matrix(model: CandidateModel, attributes: Optional[Sequence[str]] = None) -> np.ndarray:
    """Dense symmetric Q; meant for small problems and inspection."""
    r, c, w = dissimilarity_pairs(model, attributes)
    Q = np.zeros((model.n_vars, model.n_vars), dtype=float)
    Q[r, c] = w
    Q[c, r] = w
    return Q


def total_heterogeneity(weights: np.ndarray) -> float:
    """1'Q1 for a Q given by its upper-triangle weights."""
    return 2.0 * float(np.sum(weights))


def exchange_rate_for_groups(n_groups: float, preferred_weight: float, group_size: int) -> float:
    """Linear utility of ``n_groups`` preferred-size groups of ``group_size`` items."""
    return float(n_groups) * float(preferred_weight) * int(group_size)


def heterogeneity_scale(total: float, exchange_rate: float) -> float:
    """Scalar a such that a * 1'Q1 equals the exchange rate."""
    if exchange_rate < 0:
        raise ConfigurationError(f"exchange_rate must be >= 0, got {exchange_rate}")
    if total <= 0:
        logger.warning("[objective] candidate groups carry no heterogeneity (1'Q1 = 0); quadratic term dropped")
        return 0.0
    return float(exchange_rate) / float(total)


def compose_objective(model: CandidateModel, config: Optional[AllocatorConfig] = None) -> Objective:
    cfg = (config or AllocatorConfig()).validate()
    empty_i = np.empty(0, dtype=np.int64)
    empty_w = np.empty(0, dtype=float)

    if cfg.objective == "uniform":
        obj = Objective("uniform", uniform_weights(model), empty_i, empty_i.copy(), empty_w)
    elif cfg.objective == "size_tier":
        w = size_tier_weights(model, cfg.preferred_sizes, cfg.preferred_weight, cfg.base_weight)
        obj = Objective("size_tier", w, empty_i, empty_i.copy(), empty_w)
    elif cfg.objective == "group_count":
        obj = Objective("group_count", group_count_weights(model), empty_i, empty_i.copy(), empty_w,
                        uses_group_indicators=True)
    else:
        w = size_tier_weights(model, cfg.preferred_sizes, cfg.preferred_weight, cfg.base_weight)
        r, c, q = dissimilarity_pairs(model, [a for a in cfg.heterogeneity_cols if a != model.randomized_col])
        total = total_heterogeneity(q)
        if cfg.exchange_rate == 0:
            logger.warning("[objective] heterogeneity objective with exchange_rate=0 reduces to size_tier")
        a = heterogeneity_scale(total, cfg.exchange_rate)
        obj = Objective("heterogeneity", w, r, c, q, scale=a, total_heterogeneity=total)
        logger.info(f"[objective] 1'Q1={total:,.0f}  exchange_rate={cfg.exchange_rate:g}  a={a:.6g}  "
                    f"({len(q):,} dissimilar pairs)")

    for arr in (obj.linear, obj.quad_rows, obj.quad_cols, obj.quad_weights):
        arr.setflags(write=False)
    logger.info(f"[objective] {obj.name}: {len(obj.linear):,} linear terms, "
                f"{len(obj.quad_weights) if obj.has_quadratic else 0:,} quadratic terms")
    return obj

"""
Constraint compiler: feasibility rules as solver-neutral constraint records.

Three kinds, each carrying only what it needs:

* ``Capacity``           Σ s[v] (sense) rhs over one item's variables
* ``ConditionalLinear``  when s[trigger] == trigger_value: Σ c·s[v] (sense) rhs
* ``MaxIndicator``       s[result] == max(s[v] for v in vars)

Indices are the canonical ones from ``CandidateModel.pairs['var']``; group
indicator variables, when requested, follow at ``n_vars + group_order``.
"""

from __future__ import annotations
import logging
from dataclasses import dataclass
from typing import Tuple, Union

import numpy as np

from .candidates import MIN_GROUP_SIZE, CandidateModel

logger = logging.getLogger(__name__)

SENSES = ("<=", ">=", "==")


@dataclass(frozen=True)
class Capacity:
    vars: Tuple[int, ...]
    rhs: int = 1
    sense: str = "<="
    name: str = ""


@dataclass(frozen=True)
class ConditionalLinear:
    trigger: int
    vars: Tuple[int, ...]
    coeffs: Tuple[float, ...]
    sense: str
    rhs: float
    trigger_value: int = 1
    name: str = ""


@dataclass(frozen=True)
class MaxIndicator:
    result: int
    vars: Tuple[int, ...]
    name: str = ""


Constraint = Union[Capacity, ConditionalLinear, MaxIndicator]


def capacity_constraints(model: CandidateModel) -> Tuple[Capacity, ...]:
    """One ``<= 1`` row per item: an item joins at most one selected group."""
    return tuple(Capacity(vars=tuple(int(v) for v in idx), rhs=1, sense="<=", name=f"cap_{item}")
                 for item, idx in model.item_vars.items())


def conditional_group_constraints(model: CandidateModel) -> Tuple[ConditionalLinear, ...]:
    """Size and randomization rules, bound to each assignment variable of the group."""
    out = []
    rand = model.pairs[model.randomized_col].to_numpy(dtype=bool)
    for gid, idx in model.group_vars.items():
        members = tuple(int(v) for v in idx)
        rand_members = tuple(int(v) for v in idx if rand[v])
        for v in members:
            out.append(ConditionalLinear(trigger=v, vars=members, coeffs=(1.0,) * len(members),
                                         sense=">=", rhs=MIN_GROUP_SIZE, name=f"size_{gid}_{v}"))
            out.append(ConditionalLinear(trigger=v, vars=rand_members, coeffs=(1.0,) * len(rand_members),
                                         sense=">=", rhs=1, name=f"rand_{gid}_{v}"))
    return tuple(out)


def group_indicator_constraints(model: CandidateModel) -> Tuple[MaxIndicator, ...]:
    orders = model.groups['group_order'].to_numpy(dtype=np.int64)
    return tuple(MaxIndicator(result=model.n_vars + int(order),
                              vars=tuple(int(v) for v in model.group_vars[gid]),
                              name=f"any_{gid}")
                 for gid, order in zip(model.groups[model.group_col], orders))


def compile_constraints(model: CandidateModel, group_indicators: bool = False) -> Tuple[Constraint, ...]:
    cons = capacity_constraints(model) + conditional_group_constraints(model)
    if group_indicators:
        cons += group_indicator_constraints(model)
    logger.info(f"[constraints] {len(model.item_vars):,} capacity rows, "
                f"{2 * model.n_vars:,} conditional rows"
                + (f", {model.n_groups:,} max-indicator rows" if group_indicators else ""))
    return cons

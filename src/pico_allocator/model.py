"""
Compiled model: everything a solver backend needs, frozen at compile time.

A fresh ``CompiledModel`` is produced for every run and handed to
``solvers.solve``; nothing mutates it afterwards.
"""

from __future__ import annotations
import logging
import time
from dataclasses import dataclass
from typing import Optional, Tuple

import numpy as np

from .candidates import CandidateModel
from .config import AllocatorConfig
from .constraints import Constraint, compile_constraints
from .errors import ConfigurationError
from .objectives import Objective, compose_objective

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CompiledModel:
    n_vars: int                         # assignment vars + group indicators
    n_assign: int                       # assignment vars occupy [0, n_assign)
    labels: Tuple[str, ...]
    constraints: Tuple[Constraint, ...]
    objective: Objective
    sense: str = "maximize"
    vtype: str = "binary"               # every variable is 0/1

    @property
    def linear(self) -> np.ndarray:
        return self.objective.linear

    def objective_value(self, values) -> float:
        return self.objective.value(values)


def compile_model(candidates: CandidateModel, config: Optional[AllocatorConfig] = None) -> CompiledModel:
    t0 = time.time()
    cfg = (config or AllocatorConfig()).validate()
    objective = compose_objective(candidates, cfg)
    constraints = compile_constraints(candidates, group_indicators=objective.uses_group_indicators)

    item, group = candidates.item_col, candidates.group_col
    labels = [f"s[{i},{g}]" for i, g in zip(candidates.pairs[item], candidates.pairs[group])]
    if objective.uses_group_indicators:
        labels += [f"s[{g}]" for g in candidates.groups[group]]
    if len(labels) != len(objective.linear):
        raise ConfigurationError(
            f"objective has {len(objective.linear)} terms but the model has {len(labels)} variables")

    compiled = CompiledModel(n_vars=len(labels), n_assign=candidates.n_vars, labels=tuple(labels),
                             constraints=constraints, objective=objective)
    logger.info(f"[compile] {compiled.n_vars:,} binary vars, {len(constraints):,} constraints, "
                f"objective={objective.name} in {time.time() - t0:.2f}s")
    return compiled

"""
Run configuration shared by the library entry points and the CLI.
"""

from __future__ import annotations
from dataclasses import dataclass, fields
from typing import Optional, Tuple

from .errors import ConfigurationError

OBJECTIVES = ("uniform", "size_tier", "heterogeneity", "group_count")
SOLVERS = ("ortools", "pulp", "greedy", "both")


@dataclass(frozen=True)
class AllocatorConfig:
    # input columns
    item_col: str = "item_id"
    group_col: str = "group_id"
    randomized_col: str = "randomized"
    heterogeneity_cols: Tuple[str, ...] = ("controlled", "before_after")

    # objective
    objective: str = "uniform"
    preferred_sizes: Tuple[int, int] = (3, 5)
    preferred_weight: float = 8.0
    base_weight: float = 1.0
    exchange_rate: float = 0.0   # linear utility traded for full heterogeneity

    # solver
    solver: str = "ortools"
    timeout: Optional[float] = None
    workers: int = 8
    solver_log: bool = False
    warm_start: bool = True
    fallback_greedy: bool = False

    def validate(self) -> "AllocatorConfig":
        if self.objective not in OBJECTIVES:
            raise ConfigurationError(f"unknown objective {self.objective!r}; expected one of {OBJECTIVES}")
        if self.solver not in SOLVERS:
            raise ConfigurationError(f"unknown solver {self.solver!r}; expected one of {SOLVERS}")
        lo, hi = self.preferred_sizes
        if lo > hi:
            raise ConfigurationError(f"preferred_sizes must be (low, high) with low <= high, got {self.preferred_sizes}")
        if self.preferred_weight < 0 or self.base_weight < 0:
            raise ConfigurationError("size-tier weights must be non-negative")
        if self.exchange_rate < 0:
            raise ConfigurationError(f"exchange_rate must be >= 0, got {self.exchange_rate}")
        if self.objective == "group_count" and self.exchange_rate > 0:
            raise ConfigurationError(
                "group_count objective cannot carry a heterogeneity term: it scores group indicators, "
                "not assignment variables")
        if self.objective in ("uniform", "size_tier") and self.exchange_rate > 0:
            raise ConfigurationError(
                f"exchange_rate only applies to the heterogeneity objective, not {self.objective!r}")
        if self.timeout is not None and self.timeout <= 0:
            raise ConfigurationError(f"timeout must be positive, got {self.timeout}")
        if self.workers < 1:
            raise ConfigurationError(f"workers must be >= 1, got {self.workers}")
        return self

    @classmethod
    def from_args(cls, args) -> "AllocatorConfig":
        """Build a config from an argparse namespace; unknown attributes are ignored."""
        known = {f.name for f in fields(cls)}
        kw = {k: v for k, v in vars(args).items() if k in known and v is not None}
        if "heterogeneity_cols" in kw:
            kw["heterogeneity_cols"] = tuple(kw["heterogeneity_cols"])
        if "preferred_sizes" in kw:
            kw["preferred_sizes"] = tuple(int(x) for x in kw["preferred_sizes"])
        return cls(**kw).validate()

"""
Comparison-group allocator

Selects disjoint comparison groups of items (publications) that keep at least
two members and one randomized member each, via a greedy baseline or exact
0/1 programs solved with OR-Tools CP-SAT or PuLP/CBC.
"""

__version__ = "0.1.0"

from .candidates import CandidateModel, build_candidate_model, derive_all_designs
from .config import AllocatorConfig
from .constraints import Capacity, ConditionalLinear, MaxIndicator, compile_constraints
from .errors import (AllocatorError, ConfigurationError, InfeasibleModelError, InvalidInputError,
                     SolverError, SolverTimeoutError)
from .extract import extract_assignments, summarize_groups
from .greedy import greedy
from .main import AllocationResult, allocate, compare_objectives
from .model import CompiledModel, compile_model
from .objectives import compose_objective, heterogeneity_scale
from .solvers import SolveResult, solve

__all__ = [
    "AllocatorConfig",
    "AllocationResult",
    "CandidateModel",
    "CompiledModel",
    "SolveResult",
    "Capacity",
    "ConditionalLinear",
    "MaxIndicator",
    "AllocatorError",
    "ConfigurationError",
    "InfeasibleModelError",
    "InvalidInputError",
    "SolverError",
    "SolverTimeoutError",
    "allocate",
    "build_candidate_model",
    "compare_objectives",
    "compile_constraints",
    "compile_model",
    "compose_objective",
    "derive_all_designs",
    "extract_assignments",
    "greedy",
    "heterogeneity_scale",
    "solve",
    "summarize_groups",
]

"""
Solver adapter: hand a ``CompiledModel`` to an external 0/1 solver and read back
a dense solution vector in canonical variable order.

Backends
  ortools  CP-SAT. Indicator rows use ``only_enforce_if``; max rows use
           ``add_max_equality``; each quadratic term s_r*s_c becomes a reified
           boolean. Objective coefficients are scaled to integers by OBJ_SCALE.
  pulp     CBC through PuLP. Indicator rows are linearised with a big-M built
           from the row's own bounds; max rows become s_j >= s_ij, s_j <= Σ s_ij;
           products use the three-inequality linearisation.

Failures raise ``InfeasibleModelError``, ``SolverTimeoutError`` or
``SolverError``; nothing is retried here.
"""

from __future__ import annotations
import logging
import time
from dataclasses import dataclass
from typing import Optional, Sequence

import numpy as np

from .constraints import Capacity, ConditionalLinear, MaxIndicator
from .errors import InfeasibleModelError, SolverError, SolverTimeoutError
from .model import CompiledModel

logger = logging.getLogger(__name__)

# Optional solvers
try:
    import pulp
    HAVE_PULP = True
except Exception:
    HAVE_PULP = False

try:
    from ortools.sat.python import cp_model
    HAVE_OR = True
except Exception:
    HAVE_OR = False

OBJ_SCALE = 1_000_000
MAX_CP_SAT_VARS = 6_000_000  # guard (assignment vars + indicators + products)


@dataclass(frozen=True)
class SolveResult:
    values: np.ndarray      # dense 0/1, aligned with CompiledModel.labels
    status: str
    objective: float
    wall_time: float
    backend: str


def _finish(compiled: CompiledModel, values: np.ndarray, status: str, t0: float, backend: str) -> SolveResult:
    values = np.asarray(values, dtype=np.int8)
    values.setflags(write=False)
    obj = compiled.objective_value(values)
    t = time.time() - t0
    logger.info(f"→ {backend} …status={status}  time={t:.1f}s  objective={obj:.6f}")
    return SolveResult(values=values, status=status, objective=obj, wall_time=t, backend=backend)


def assignment_vector(compiled: CompiledModel, indices: Optional[Sequence[int]]) -> Optional[np.ndarray]:
    """Full 0/1 vector with ``indices`` set, group indicators derived from their members."""
    if indices is None:
        return None
    vec = np.zeros(compiled.n_vars, dtype=np.int8)
    idx = np.asarray(indices, dtype=np.int64)
    if len(idx):
        vec[idx] = 1
    for c in compiled.constraints:
        if isinstance(c, MaxIndicator):
            vec[c.result] = int(vec[list(c.vars)].max()) if c.vars else 0
    return vec


def _int_coeffs(coeffs, name):
    out = []
    for c in coeffs:
        if float(c) != int(c):
            raise SolverError(f"CP-SAT needs integer constraint coefficients; row {name!r} has {c}",
                              backend="ortools")
        out.append(int(c))
    return out


# =====================================================================
# OR-Tools CP-SAT
# =====================================================================
def _add_linear_cp(m, expr, sense, rhs):
    if sense == "<=":
        return m.add(expr <= rhs)
    if sense == ">=":
        return m.add(expr >= rhs)
    return m.add(expr == rhs)


def solve_ortools(compiled: CompiledModel, timeout: Optional[float] = None, workers: int = 8,
                  log: bool = False, hint: Optional[Sequence[int]] = None) -> SolveResult:
    if not HAVE_OR:
        raise SolverError("OR-Tools is not installed; install 'ortools' or use the pulp backend",
                          backend="ortools")
    obj = compiled.objective
    n_products = len(obj.quad_weights) if obj.has_quadratic else 0
    if compiled.n_vars + n_products > MAX_CP_SAT_VARS:
        raise SolverError(f"model has {compiled.n_vars + n_products:,} vars > {MAX_CP_SAT_VARS:,}",
                          backend="ortools")

    t0 = time.time()
    m = cp_model.CpModel()
    x = [m.new_bool_var(label) for label in compiled.labels]

    for c in compiled.constraints:
        if isinstance(c, Capacity):
            _add_linear_cp(m, sum(x[v] for v in c.vars), c.sense, int(c.rhs))
        elif isinstance(c, ConditionalLinear):
            coeffs = _int_coeffs(c.coeffs, c.name)
            lit = x[c.trigger] if c.trigger_value else x[c.trigger].negated()
            expr = sum(k * x[v] for k, v in zip(coeffs, c.vars))
            _add_linear_cp(m, expr, c.sense, int(c.rhs)).only_enforce_if(lit)
        elif isinstance(c, MaxIndicator):
            m.add_max_equality(x[c.result], [x[v] for v in c.vars])
        else:
            raise SolverError(f"unsupported constraint {type(c).__name__}", backend="ortools")

    # objective terms
    lin = np.rint(obj.linear * OBJ_SCALE).astype(np.int64)
    terms = [int(lin[i]) * x[i] for i in np.flatnonzero(lin)]
    if n_products:
        coef = np.rint(2.0 * obj.scale * obj.quad_weights * OBJ_SCALE).astype(np.int64)
        if not coef.any():
            logger.warning("[ortools] heterogeneity coefficients round to zero at this scale; term ignored")
        for r, cc, k in zip(obj.quad_rows, obj.quad_cols, coef):
            if k == 0:
                continue
            y = m.new_bool_var(f"p[{r},{cc}]")
            m.add_bool_and([x[r], x[cc]]).only_enforce_if(y)
            m.add_bool_or([x[r].negated(), x[cc].negated()]).only_enforce_if(y.negated())
            terms.append(int(k) * y)
    if compiled.sense == "maximize":
        m.maximize(sum(terms))
    else:
        m.minimize(sum(terms))

    hvec = assignment_vector(compiled, hint)
    if hvec is not None:
        for v, val in zip(x, hvec):
            m.add_hint(v, int(val))
        logger.info(f"[warm-start] hinted {int(hvec.sum()):,} of {len(x):,} vars at 1")

    solver = cp_model.CpSolver()
    if timeout is not None:
        solver.parameters.max_time_in_seconds = float(timeout)
    solver.parameters.num_workers = max(1, int(workers))
    solver.parameters.log_search_progress = bool(log)

    status = solver.solve(m)
    status_str = solver.status_name(status)
    if status == cp_model.INFEASIBLE:
        raise InfeasibleModelError("CP-SAT proved the model infeasible", status=status_str, backend="ortools")
    if status == cp_model.UNKNOWN and timeout is not None:
        raise SolverTimeoutError(f"CP-SAT found no solution within {timeout}s", timeout=timeout,
                                 status=status_str, backend="ortools")
    if status not in (cp_model.OPTIMAL, cp_model.FEASIBLE):
        detail = m.validate() if status == cp_model.MODEL_INVALID else ""
        raise SolverError(f"CP-SAT returned {status_str} {detail}".strip(), status=status_str, backend="ortools")
    if status == cp_model.FEASIBLE:
        logger.warning("[ortools] stopped before proving optimality; returning best incumbent")

    values = np.fromiter((solver.value(xi) for xi in x), np.int8, len(x))
    return _finish(compiled, values, status_str, t0, "ortools")


# =====================================================================
# PuLP / CBC
# =====================================================================
def _add_linear_pulp(prob, expr, sense, rhs, name):
    if sense == "<=":
        prob += expr <= rhs, name
    elif sense == ">=":
        prob += expr >= rhs, name
    else:
        prob += expr == rhs, name


def _add_indicator_pulp(prob, x, c: ConditionalLinear):
    """Big-M rows that bind only while x[trigger] == trigger_value."""
    expr = pulp.lpSum(k * x[v] for k, v in zip(c.coeffs, c.vars))
    lo = sum(k for k in c.coeffs if k < 0)
    hi = sum(k for k in c.coeffs if k > 0)
    off = (1 - x[c.trigger]) if c.trigger_value else x[c.trigger]   # 0 when active
    if c.sense in (">=", "=="):
        prob += expr >= c.rhs - (c.rhs - lo) * off, f"{c.name}_ge"
    if c.sense in ("<=", "=="):
        prob += expr <= c.rhs + (hi - c.rhs) * off, f"{c.name}_le"


def solve_pulp(compiled: CompiledModel, timeout: Optional[float] = None, workers: int = 8,
               log: bool = False, hint: Optional[Sequence[int]] = None) -> SolveResult:
    if not HAVE_PULP:
        raise SolverError("PuLP is not installed; install 'pulp' or use the ortools backend", backend="pulp")
    t0 = time.time()
    sense = pulp.LpMaximize if compiled.sense == "maximize" else pulp.LpMinimize
    prob = pulp.LpProblem("comparison_groups", sense)
    x = [pulp.LpVariable(f"s_{i}", cat="Binary") for i in range(compiled.n_vars)]

    obj = compiled.objective
    terms = [float(obj.linear[i]) * x[i] for i in np.flatnonzero(obj.linear)]
    if obj.has_quadratic:
        for n, (r, c, w) in enumerate(zip(obj.quad_rows, obj.quad_cols, obj.quad_weights)):
            y = pulp.LpVariable(f"p_{n}", cat="Binary")
            prob += y <= x[r], f"p_{n}_r"
            prob += y <= x[c], f"p_{n}_c"
            prob += y >= x[r] + x[c] - 1, f"p_{n}_rc"
            terms.append(2.0 * obj.scale * float(w) * y)
    prob += pulp.lpSum(terms)

    for n, c in enumerate(compiled.constraints):
        if isinstance(c, Capacity):
            _add_linear_pulp(prob, pulp.lpSum(x[v] for v in c.vars), c.sense, c.rhs, f"cap_{n}")
        elif isinstance(c, ConditionalLinear):
            _add_indicator_pulp(prob, x, ConditionalLinear(
                trigger=c.trigger, vars=c.vars, coeffs=c.coeffs, sense=c.sense, rhs=c.rhs,
                trigger_value=c.trigger_value, name=f"ind_{n}"))
        elif isinstance(c, MaxIndicator):
            for k, v in enumerate(c.vars):
                prob += x[c.result] >= x[v], f"max_{n}_{k}"
            prob += x[c.result] <= pulp.lpSum(x[v] for v in c.vars), f"max_{n}_sum"
        else:
            raise SolverError(f"unsupported constraint {type(c).__name__}", backend="pulp")

    hvec = assignment_vector(compiled, hint)
    if hvec is not None:
        for v, val in zip(x, hvec):
            v.setInitialValue(int(val))

    solver = pulp.PULP_CBC_CMD(msg=bool(log), timeLimit=timeout, threads=max(1, int(workers)),
                               warmStart=hvec is not None)
    prob.solve(solver)
    status = pulp.LpStatus.get(prob.status, "Unknown")
    if prob.status == pulp.LpStatusInfeasible:
        raise InfeasibleModelError("CBC proved the model infeasible", status=status, backend="pulp")
    if prob.status == pulp.LpStatusNotSolved and timeout is not None:
        raise SolverTimeoutError(f"CBC found no solution within {timeout}s", timeout=timeout,
                                 status=status, backend="pulp")
    if prob.status != pulp.LpStatusOptimal:
        raise SolverError(f"CBC returned {status}", status=status, backend="pulp")
    if getattr(prob, "sol_status", pulp.LpSolutionOptimal) == pulp.LpSolutionIntegerFeasible:
        logger.warning("[pulp] stopped before proving optimality; returning best incumbent")
        status = "Feasible"

    values = np.array([1 if (v.value() or 0) > 0.5 else 0 for v in x], dtype=np.int8)
    return _finish(compiled, values, status, t0, "pulp")


BACKENDS = {"ortools": solve_ortools, "pulp": solve_pulp}


def solve(compiled: CompiledModel, backend: str = "ortools", timeout: Optional[float] = None,
          workers: int = 8, log: bool = False, hint: Optional[Sequence[int]] = None) -> SolveResult:
    """Solve ``compiled`` synchronously with the named backend."""
    if backend not in BACKENDS:
        raise SolverError(f"unknown backend {backend!r}; expected one of {tuple(BACKENDS)}", backend=backend)
    if compiled.n_vars == 0:
        logger.info("→ empty model, nothing to solve")
        return _finish(compiled, np.zeros(0, dtype=np.int8), "OPTIMAL", time.time(), backend)
    return BACKENDS[backend](compiled, timeout=timeout, workers=workers, log=log, hint=hint)

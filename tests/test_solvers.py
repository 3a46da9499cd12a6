"""
Tests for the exact path: solver adapter and solution extraction
"""

import numpy as np
import pytest

from pico_allocator import (AllocatorConfig, Capacity, CompiledModel, InfeasibleModelError, InvalidInputError,
                            SolverError, SolverTimeoutError, build_candidate_model, compile_model,
                            extract_assignments, greedy, solve, summarize_groups)
from pico_allocator.greedy import hint_indices
from pico_allocator.objectives import Objective
from pico_allocator.solvers import assignment_vector
from pico_allocator.utils import validate_design

from conftest import random_records


def _solve(records, backend, **cfg):
    model = build_candidate_model(records)
    compiled = compile_model(model, AllocatorConfig(**cfg))
    res = solve(compiled, backend=backend, workers=1)
    return model, compiled, res, extract_assignments(model, res.values)


class TestScenarios:

    def test_disjoint_groups_uniform(self, three_disjoint, backend):
        """Sizes {2,2,5} with no overlap: every group and item is kept"""
        _, _, res, design = _solve(three_disjoint, backend, objective="uniform")

        assert len(design) == 9
        assert set(design['group_id']) == {'G1', 'G2', 'G3'}
        assert res.objective == pytest.approx(9)

    def test_disjoint_groups_group_count(self, three_disjoint, backend):
        model, compiled, res, design = _solve(three_disjoint, backend, objective="group_count")

        assert set(design['group_id']) == {'G1', 'G2', 'G3'}
        assert res.objective == pytest.approx(3)
        assert validate_design(design) == []
        # indicators agree with their members
        for gid, idx in model.group_vars.items():
            order = int(model.groups.set_index('group_id').loc[gid, 'group_order'])
            assert res.values[model.n_vars + order] == res.values[idx].max()

    def test_shared_item_exact_beats_greedy(self, shared_item, backend):
        """Exactly one group survives; the exact path keeps the larger one, greedy the smaller"""
        model, compiled, res, design = _solve(shared_item, backend, objective="uniform")

        assert set(design['group_id']) == {'big'}
        assert set(design['item_id']) == {'a', 'b', 'c'}

        g = greedy(model)
        assert set(g['group_id']) == {'small'}
        g_obj = compiled.objective_value(assignment_vector(compiled, hint_indices(model, g)))
        assert res.objective > g_obj

    def test_heterogeneity_breaks_ties(self, make_records, backend):
        """Equal-size groups competing for r1: the more heterogeneous one wins"""
        records = make_records({
            'same': [('r1', True, False, False), ('h1', False, False, False)],
            'mixed': [('r1', True, False, False), ('h2', False, True, True)],
        })
        _, compiled, res, design = _solve(records, backend, objective="heterogeneity", exchange_rate=1.0)

        assert compiled.objective.scale == pytest.approx(0.25)
        assert set(design['group_id']) == {'mixed'}
        assert res.objective == pytest.approx(3.0)

    def test_group_count_prefers_more_groups(self, make_records, backend):
        records = make_records({
            'big': [('a', True, False, False), ('b', False, False, False),
                    ('c', True, False, False), ('d', False, False, False)],
            'x': [('a', True, False, False), ('b', False, False, False)],
            'y': [('c', True, False, False), ('d', False, False, False)],
        })
        _, _, res, design = _solve(records, backend, objective="group_count")
        assert design['group_id'].nunique() == 2
        assert res.objective == pytest.approx(2)

    @pytest.mark.parametrize("weight, chosen", [
        (1.0, {'A', 'B', 'C'}),
        (4.0, {'pref'}),
        (8.0, {'pref'}),
    ])
    def test_size_tier_weight_changes_choice(self, make_records, backend, weight, chosen):
        """Three 2-groups are worth 6; the preferred 3-group is worth 3 * weight"""
        records = _tier_records(make_records)
        _, _, _, design = _solve(records, backend, objective="size_tier", preferred_weight=weight)
        assert set(design['group_id']) == chosen
        assert validate_design(design) == []


def _tier_records(make_records):
    """A preferred 3-group competing with three 2-groups for its members"""
    return make_records({
        'pref': [('a', True, False, False), ('b', True, False, False), ('c', True, False, False)],
        'A': [('a', True, False, False), ('d', False, False, False)],
        'B': [('b', True, False, False), ('e', False, False, False)],
        'C': [('c', True, False, False), ('f', False, False, False)],
    })


class TestProperties:

    @pytest.mark.parametrize("seed", range(6))
    def test_exact_invariants(self, seed, backend):
        """Every selected group keeps >=2 items and a randomized one; items are used once"""
        records = random_records(seed)
        model, _, res, design = _solve(records, backend, objective="size_tier")

        assert validate_design(design) == []
        assert design['item_id'].is_unique
        A = model.incidence_matrix()
        assert (A @ res.values[:model.n_vars].astype(int) <= 1).all()
        assert (design['realized_size'] >= 2).all()
        assert (design['realized_randomized'] >= 1).all()

    @pytest.mark.parametrize("seed", range(6))
    def test_exact_at_least_greedy(self, seed, backend):
        records = random_records(seed)
        model, compiled, res, _ = _solve(records, backend, objective="uniform")
        g = greedy(model)
        assert res.objective >= len(g) - 1e-6

    def test_preferred_groups_monotone_in_weight(self, make_records):
        pytest.importorskip("ortools.sat.python.cp_model")
        records = _tier_records(make_records)
        counts = []
        for weight in (1.0, 2.0, 4.0, 8.0, 16.0):
            _, _, _, design = _solve(records, "ortools", objective="size_tier", preferred_weight=weight)
            pre_sizes = design.groupby('group_id').size().index.map(
                {'pref': 3, 'A': 2, 'B': 2, 'C': 2}.get)
            counts.append(int(((pre_sizes >= 3) & (pre_sizes <= 5)).sum()))
        assert counts == sorted(counts)
        assert counts[0] == 0 and counts[-1] == 1

    def test_warm_start_hint(self, three_disjoint):
        pytest.importorskip("ortools.sat.python.cp_model")
        model = build_candidate_model(three_disjoint)
        compiled = compile_model(model)
        res = solve(compiled, backend="ortools", hint=hint_indices(model, greedy(model)), workers=1)
        assert res.objective == pytest.approx(9)


class TestSolverErrors:

    def _infeasible(self):
        empty_i = np.empty(0, dtype=np.int64)
        obj = Objective("uniform", np.ones(1), empty_i, empty_i, np.empty(0))
        cons = (Capacity(vars=(0,), rhs=1, sense=">="), Capacity(vars=(0,), rhs=0, sense="<="))
        return CompiledModel(n_vars=1, n_assign=1, labels=("s[x,G]",), constraints=cons, objective=obj)

    def test_infeasible_model(self, backend):
        with pytest.raises(InfeasibleModelError):
            solve(self._infeasible(), backend=backend)

    def test_unknown_backend(self, shared_item):
        compiled = compile_model(build_candidate_model(shared_item))
        with pytest.raises(SolverError, match="unknown backend"):
            solve(compiled, backend="gurobi")

    def test_empty_model(self, make_records):
        compiled = compile_model(build_candidate_model(make_records({})))
        res = solve(compiled)
        assert len(res.values) == 0
        assert res.objective == 0.0

    def test_values_are_read_only(self, three_disjoint, backend):
        _, _, res, _ = _solve(three_disjoint, backend)
        with pytest.raises(ValueError):
            res.values[0] = 0

    def test_extract_rejects_short_vector(self, three_disjoint):
        model = build_candidate_model(three_disjoint)
        with pytest.raises(SolverError):
            extract_assignments(model, np.zeros(3))

    def test_time_limit(self, backend):
        """A tiny budget either times out or hands back a valid incumbent"""
        records = random_records(0, n_items=3000, n_groups=1500, max_groups_per_item=4)
        model = build_candidate_model(records)
        compiled = compile_model(model, AllocatorConfig(objective="heterogeneity", exchange_rate=50))
        try:
            res = solve(compiled, backend=backend, timeout=0.01, workers=1)
        except SolverTimeoutError as e:
            assert e.timeout == 0.01
            assert e.backend == backend
        else:
            assert res.status in ("OPTIMAL", "FEASIBLE", "Optimal", "Feasible")
            assert validate_design(extract_assignments(model, res.values)) == []

    def test_summarize_groups_missing_column(self, three_disjoint):
        design = extract_assignments(build_candidate_model(three_disjoint), np.ones(9))
        with pytest.raises(InvalidInputError, match="randomized"):
            summarize_groups(design.drop(columns=['randomized']))
        assert summarize_groups(design)['has_randomized'].all()

"""
Tests for the greedy allocator and the design summaries
"""

import pandas as pd
import pytest

from pico_allocator import build_candidate_model, greedy
from pico_allocator.greedy import hint_indices
from pico_allocator.utils import summarize, validate_design

from conftest import random_records


def _pairs(df):
    return set(zip(df['item_id'], df['group_id']))


class TestGreedy:
    """Test cases for the greedy allocator"""

    def test_greedy_basic(self, three_disjoint):
        """Disjoint eligible groups are all accepted"""
        model = build_candidate_model(three_disjoint)
        result = greedy(model)

        assert not result.empty
        assert len(result) == 9
        assert set(result['group_id']) == {'G1', 'G2', 'G3'}
        assert 'item_id' in result.columns
        assert 'group_id' in result.columns

    def test_greedy_takes_smaller_group_first(self, shared_item):
        """Known limitation: the 2-group wins the shared item and the 3-group is lost"""
        result = greedy(build_candidate_model(shared_item))

        assert _pairs(result) == {('c', 'small'), ('d', 'small')}

    def test_group_keeps_remaining_items_when_still_valid(self, make_records):
        records = make_records({
            'small': [('c', True, False, False), ('d', False, False, False)],
            'big': [('a', True, False, False), ('b', False, False, False), ('c', True, False, False)],
        })
        result = greedy(build_candidate_model(records))

        assert _pairs(result) == {('c', 'small'), ('d', 'small'), ('a', 'big'), ('b', 'big')}

    def test_randomized_groups_come_first_in_raw_pool(self, make_records):
        """On a raw pool, a non-randomized group never blocks a randomized one"""
        pool = make_records({
            'A_norand': [('x', False, False, False), ('y', False, False, False)],
            'B_rand': [('x', False, False, False), ('z', True, False, False), ('w', False, False, False)],
        })
        result = greedy(pool)
        assert set(result['group_id']) == {'B_rand'}

    def test_empty_pool(self, make_records):
        result = greedy(make_records({}))
        assert result.empty

    def test_raw_pool_missing_column(self, three_disjoint):
        with pytest.raises(ValueError):
            greedy(three_disjoint.drop(columns=['group_id']))

    @pytest.mark.parametrize("seed", [0, 1, 2, 3, 4])
    def test_output_satisfies_invariants(self, seed):
        design = greedy(build_candidate_model(random_records(seed)))
        assert validate_design(design) == []

    @pytest.mark.parametrize("seed", [0, 1, 2, 3, 4])
    def test_idempotent_on_own_output(self, seed):
        """Re-running on the accepted design changes nothing"""
        first = greedy(build_candidate_model(random_records(seed)))
        pool = first[['item_id', 'group_id', 'randomized', 'controlled', 'before_after']]
        second = greedy(pool)
        assert _pairs(second) == _pairs(first)

    def test_hint_indices_match_design(self, three_disjoint):
        model = build_candidate_model(three_disjoint)
        idx = hint_indices(model, greedy(model))
        assert sorted(idx.tolist()) == list(range(9))
        assert len(hint_indices(model, pd.DataFrame())) == 0


class TestSummary:
    """Test summary statistics"""

    def test_summarize(self, shared_item):
        model = build_candidate_model(shared_item)
        design = greedy(model)

        summary = summarize(design, model)

        assert summary['n_items'] == 4
        assert summary['n_retained'] == 2
        assert summary['n_groups'] == 1
        assert summary['dist'] == {2: 1}
        assert 0 <= summary['retention_rate'] <= 1

    def test_summarize_empty_design(self, shared_item):
        model = build_candidate_model(shared_item)
        summary = summarize(model.pairs.iloc[0:0], model)
        assert summary['n_groups'] == 0
        assert summary['dist'] == {}


class TestValidateDesign:
    """Invariant checks on finished designs"""

    def test_flags_every_violation(self):
        design = pd.DataFrame({
            'item_id': ['a', 'a', 'b', 'c', 'd'],
            'group_id': ['G1', 'G2', 'G1', 'G3', 'G3'],
            'randomized': [True, True, False, False, False],
        })
        violations = validate_design(design)
        assert len(violations) == 3

    def test_missing_columns(self):
        with pytest.raises(ValueError):
            validate_design(pd.DataFrame({'item_id': ['a']}))


if __name__ == "__main__":
    pytest.main([__file__])

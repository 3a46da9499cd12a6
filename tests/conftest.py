import numpy as np
import pandas as pd
import pytest


def build_records(groups):
    """groups: {group_id: [(item_id, randomized, controlled, before_after), ...]}"""
    rows = []
    for gid, members in groups.items():
        for item, rand, ctrl, ba in members:
            rows.append({'item_id': item, 'group_id': gid, 'randomized': rand,
                         'controlled': ctrl, 'before_after': ba})
    return pd.DataFrame(rows, columns=['item_id', 'group_id', 'randomized', 'controlled', 'before_after'])


def random_records(seed, n_items=14, n_groups=6, max_groups_per_item=2):
    """Overlapping pool; item attributes are fixed per item."""
    rng = np.random.default_rng(seed)
    attrs = {f"p{i:02d}": tuple(bool(x) for x in rng.random(3) < (0.4, 0.5, 0.5)) for i in range(n_items)}
    rows = []
    for item, (rand, ctrl, ba) in attrs.items():
        k = int(rng.integers(1, max_groups_per_item + 1))
        for g in rng.choice(n_groups, size=k, replace=False):
            rows.append({'item_id': item, 'group_id': f"g{int(g)}", 'randomized': rand,
                         'controlled': ctrl, 'before_after': ba})
    return pd.DataFrame(rows)


@pytest.fixture
def make_records():
    return build_records


@pytest.fixture
def three_disjoint(make_records):
    """Eligible groups of sizes 2, 2 and 5, no shared items, each with a randomized item."""
    return make_records({
        'G1': [('a1', True, False, False), ('a2', False, True, False)],
        'G2': [('b1', True, True, True), ('b2', False, False, True)],
        'G3': [('c1', True, False, False), ('c2', False, False, False), ('c3', False, True, False),
               ('c4', True, True, True), ('c5', False, False, True)],
    })


@pytest.fixture
def shared_item(make_records):
    """A 2-group and a 3-group sharing item c, their only randomized member."""
    return make_records({
        'small': [('c', True, False, False), ('d', False, False, False)],
        'big': [('a', False, True, False), ('b', False, False, True), ('c', True, False, False)],
    })


@pytest.fixture(params=["ortools", "pulp"])
def backend(request):
    pytest.importorskip("ortools.sat.python.cp_model" if request.param == "ortools" else "pulp")
    return request.param

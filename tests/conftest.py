import os as _os
import sys

import pytest

# Ensure project root is importable (so `import rsc` works without installing)
_project_root = _os.path.dirname(_os.path.dirname(__file__))
if _project_root not in sys.path:
    sys.path.insert(0, _project_root)

from rsc.events import EventLog  # noqa: E402
from rsc.tree import LoadBalancingTree  # noqa: E402


def set_loads(tree: LoadBalancingTree, loads: dict) -> None:
    """Place load directly on nodes, bypassing routing."""
    for node_id, load in loads.items():
        tree._nodes[node_id].load = float(load)


@pytest.fixture
def events():
    return EventLog(max_events=50)


@pytest.fixture
def flat_tree(events):
    # root(0) -> 1, 2, 3, 4 each with capacity 10
    return LoadBalancingTree(default_node_capacity=10.0, capacities=(10, 10, 10, 10), events=events)

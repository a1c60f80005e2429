import pytest

from bayalign.core.alignment import Alignment, add_internal
from bayalign.core.trees import Tree


@pytest.fixture
def star_tree():
    """Centre node 0 joined to leaves 1, 2, 3."""
    return Tree(4, [(0, 1), (0, 2), (0, 3)], lengths=[0.1, 0.2, 0.3])


@pytest.fixture
def star_alignment():
    # columns: all, {1}, {0,2}, {3}, {0,1,3}
    return Alignment.from_strings(
        [
            "A-C-G",
            "AT--G",
            "A-C--",
            "A--TG",
        ]
    )


@pytest.fixture
def quartet_tree():
    # A0 B1 C2 D3, internal 4 (A,B) and 5 (C,D); edges (4,0) (4,1) (5,2) (5,3) (4,5)
    return Tree.from_newick("((A:0.1,B:0.2):0.05,(C:0.3,D:0.4):0.05);")


@pytest.fixture
def quartet_alignment(quartet_tree):
    leaves = Alignment.from_strings(
        [
            "ACGT-",
            "AC-TT",
            "A-GT-",
            "ACG--",
        ],
        names=["A", "B", "C", "D"],
    )
    return add_internal(leaves, quartet_tree)

import numpy as np
import pytest

from bayalign.core.alignment import (
    Alignment,
    add_internal,
    all_gaps,
    column_lookup,
    n_characters,
    remove_empty_columns,
    same_homologies,
    valid,
)
from bayalign.core.alphabet import DNA, GAP, UNKNOWN, Alphabet
from bayalign.core.trees import Tree


def test_from_strings(star_alignment):
    A = star_alignment
    assert A.length == 5
    assert A.n_sequences == 4
    assert A.to_strings() == ["A-C-G", "AT--G", "A-C--", "A--TG"]
    assert A(1, 1) == DNA.index("T")
    assert A.gap(1, 0)
    assert A.character(0, 3)
    assert [A.seqlength(s) for s in range(4)] == [3, 3, 2, 3]
    assert DNA.decode(A.sequence(3)) == "ATG"


def test_from_strings_rejects_ragged_rows():
    with pytest.raises(ValueError, match="different lengths"):
        Alignment.from_strings(["AC", "A"])


def test_unknown_characters():
    A = Alignment.from_strings(["AN?", "A-C"])
    assert A.unknown(1, 0)
    assert A.unknown(2, 0)
    assert A.to_strings() == ["A??", "A-C"]


def test_invalid_letter():
    with pytest.raises(ValueError):
        Alignment.from_strings(["AXC"])


def test_column_helpers(star_alignment):
    A = star_alignment
    assert column_lookup(A) == [[0, 2, 4], [0, 1, 4], [0, 2], [0, 3, 4]]
    assert column_lookup(A, 2) == [[0, 2, 4], [0, 1, 4]]
    assert n_characters(A, 0) == 4
    assert n_characters(A, 3) == 1
    assert all_gaps(A, 1, [True, False, True, True])
    assert not all_gaps(A, 1)


def test_insert_delete_and_changelength(star_alignment):
    A = star_alignment.copy()
    A.insert_column(1)
    assert A.length == 6
    assert not valid(A)
    assert remove_empty_columns(A) == 1
    assert A == star_alignment

    A.delete_column(0)
    assert A.to_strings() == ["-C-G", "T--G", "-C--", "--TG"]
    A.changelength(6)
    assert A.length == 6
    assert np.all(A.array[4:] == GAP)
    A.changelength(2)
    assert A.to_strings() == ["-C", "T-", "-C", "--"]


def test_copy_is_independent(star_alignment):
    A = star_alignment.copy()
    A.array[0, 0] = GAP
    assert star_alignment(0, 0) != GAP


def test_add_internal(quartet_tree, quartet_alignment):
    A = quartet_alignment
    assert A.n_sequences == 6
    assert A.names[:4] == ["A", "B", "C", "D"]
    assert A.to_strings()[4:] == ["????-", "????-"]
    assert np.all(A.array[:4, 4:] == UNKNOWN)
    assert valid(A)
    for c in range(A.length):
        assert quartet_tree.all_characters_connected(A.present()[c])


def test_add_internal_only_bridges_between_leaves():
    tree = Tree(5, [(3, 0), (3, 1), (3, 4), (4, 2)])
    leaves = Alignment.from_strings(["A-", "AC", "-G"])
    A = add_internal(leaves, tree)
    # Column 0: leaves 0 and 1 meet at 3; column 1: leaves 1 and 2 join through 3 and 4
    assert A.to_strings() == ["A-", "AC", "-G", "??", "-?"]


def test_add_internal_checks_leaf_count(quartet_tree):
    with pytest.raises(ValueError, match="leaf rows"):
        add_internal(Alignment.from_strings(["A", "C"]), quartet_tree)


def test_same_homologies_ignores_empty_columns():
    A = Alignment.from_strings(["AC", "A-"])
    padded = Alignment.from_strings(["A-C-", "A---", "---T"])
    assert same_homologies(A, padded, [0, 1])

    swapped = Alignment.from_strings(["A-C", "AG-"])
    assert not same_homologies(Alignment.from_strings(["AC-", "A-G"]), swapped, [0, 1])


def test_custom_alphabet():
    binary = Alphabet("01", name="binary")
    A = Alignment.from_strings(["01-", "1?0"], alphabet=binary)
    assert A.to_strings() == ["01-", "1?0"]
    np.testing.assert_array_equal(binary.likelihood_vector(1), [0.0, 1.0])
    np.testing.assert_array_equal(binary.likelihood_vector(GAP), [1.0, 1.0])

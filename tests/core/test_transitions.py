import numpy as np
import pytest

from bayalign.core.errors import MalformedAlignmentError
from bayalign.core.indel import SimpleIndelModel
from bayalign.core.numerics import LOG_0
from bayalign.core.paths import get_path, get_path_2way, get_path_3way
from bayalign.core.states import E, G1, G2, M, get_state_space
from bayalign.core.transitions import (
    CompositeHMM,
    branch_hmms,
    create_q,
    get_start_p,
    path_log_probability,
)


IMODEL = SimpleIndelModel(rate=0.5, mean_length=3.0, tau=0.05)


def test_pairwise_q_is_the_pair_hmm():
    space = get_state_space(2)
    hmm = IMODEL.get_branch_hmm(0.4)
    Q = create_q(space, [hmm])
    start = get_start_p(space, [hmm])

    assert Q.shape == (4, 4)
    np.testing.assert_allclose(Q[:3, :3], hmm.transitions[:3, :3])
    np.testing.assert_allclose(Q[:3, 3], hmm.transitions[:3, E])
    np.testing.assert_allclose(Q[3], 0.0)
    np.testing.assert_allclose(start, hmm.start)


def test_end_row_is_zero_and_entries_are_probabilities():
    for n_way in (3, 5):
        space = get_state_space(n_way)
        hmms = [IMODEL.get_branch_hmm(0.1 * (e + 1)) for e in range(space.n_edges)]
        Q = create_q(space, hmms)
        start = get_start_p(space, hmms)
        assert Q.shape == (space.nstates + 1, space.nstates + 1)
        np.testing.assert_allclose(Q[space.endstate], 0.0)
        assert np.all((Q >= 0) & (Q <= 1))
        assert np.all((start >= 0) & (start <= 1))


def test_pairwise_g2_to_g1_is_dropped():
    space = get_state_space(2)
    hmm = IMODEL.get_branch_hmm(0.4)
    hmm.transitions[G2, G1] = 0.1
    Q = create_q(space, [hmm])
    assert Q[G2, G1] == 0.0


def test_wrong_number_of_pair_hmms():
    space = get_state_space(3)
    with pytest.raises(ValueError):
        create_q(space, [IMODEL.get_branch_hmm(0.1)])
    with pytest.raises(ValueError):
        get_start_p(space, [])


def test_path_log_probability_2way():
    space = get_state_space(2)
    hmm = IMODEL.get_branch_hmm(0.2)
    composite = CompositeHMM.from_pair_hmms(space, [hmm])
    for path in ([M, M, G2], [G1, G1, M, G2], [], [G2]):
        assert composite.path_log_probability(path) == pytest.approx(hmm.path_log_probability(path))


def test_impossible_path_is_log_zero():
    space = get_state_space(2)
    composite = CompositeHMM.from_pair_hmms(space, [IMODEL.get_branch_hmm(0.2)])
    assert composite.path_log_probability([G2, G1]) == LOG_0


def test_path_state_out_of_range():
    space = get_state_space(2)
    hmm = IMODEL.get_branch_hmm(0.2)
    Q, start = create_q(space, [hmm]), get_start_p(space, [hmm])
    with pytest.raises(MalformedAlignmentError, match="outside"):
        path_log_probability([0, 3], Q, start)
    with pytest.raises(MalformedAlignmentError):
        path_log_probability([-1], Q, start)


def test_three_way_path_is_product_of_pairwise_paths(star_tree, star_alignment):
    nodes = star_tree.get_nodes_3way(0)
    assert nodes == [0, 1, 2, 3]
    space = get_state_space(3)
    composite = CompositeHMM.for_nodes(star_tree, nodes, space, IMODEL)

    path = get_path_3way(star_alignment, *nodes)
    expected = 0.0
    for leaf in (1, 2, 3):
        hmm = IMODEL.get_branch_hmm(star_tree.branch_length(star_tree.find_branch(0, leaf)))
        expected += hmm.path_log_probability(get_path_2way(star_alignment, 0, leaf))

    assert composite.path_log_probability(path) == pytest.approx(expected)
    assert expected > LOG_0


def test_five_way_path_is_product_of_pairwise_paths(quartet_tree, quartet_alignment):
    nodes = quartet_tree.get_nodes_5way(4)
    assert nodes == [0, 1, 2, 3, 4, 5]
    space = get_state_space(5)
    hmms = branch_hmms(quartet_tree, nodes, space, IMODEL)
    composite = CompositeHMM.from_pair_hmms(space, hmms)

    path = get_path(quartet_alignment, nodes, space)
    expected = 0.0
    for (a, b), hmm in zip(space.edges, hmms):
        expected += hmm.path_log_probability(get_path_2way(quartet_alignment, nodes[a], nodes[b]))

    assert composite.path_log_probability(path) == pytest.approx(expected)


def test_branch_hmms_follow_tree_lengths(quartet_tree):
    space = get_state_space(5)
    hmms = branch_hmms(quartet_tree, quartet_tree.get_nodes_5way(4), space, IMODEL)
    for (a, b), hmm in zip(space.edges, hmms):
        t = quartet_tree.branch_length(quartet_tree.find_branch(a, b))
        np.testing.assert_allclose(hmm.transitions, IMODEL.get_branch_hmm(t).transitions)
    with pytest.raises(ValueError):
        branch_hmms(quartet_tree, [0, 1], space, IMODEL)

import logging

import numpy as np
import pytest

from bayalign.core.errors import MalformedAlignmentError
from bayalign.core.indel import PairHMM, SimpleIndelModel
from bayalign.core.numerics import LOG_0
from bayalign.core.states import E, G1, G2, M


def test_simple_indel_rows_are_distributions():
    model = SimpleIndelModel(rate=0.3, mean_length=4.0, tau=0.02)
    for t in (0.0, 0.1, 1.0, 10.0):
        hmm = model.get_branch_hmm(t)
        hmm.check()
        np.testing.assert_allclose(hmm.transitions[:E].sum(axis=1), 1.0)
        np.testing.assert_allclose(hmm.start, hmm.transitions[M])
        assert hmm.transitions[G2, G1] == 0.0


def test_gap_opening_grows_with_branch_length():
    model = SimpleIndelModel(rate=1.0)
    short = model.get_branch_hmm(0.01).transitions[M, G1]
    long = model.get_branch_hmm(2.0).transitions[M, G1]
    assert 0 < short < long
    assert model.get_branch_hmm(0.0).transitions[M, G1] == 0.0


def test_gap_extension_matches_mean_length():
    model = SimpleIndelModel(mean_length=5.0)
    hmm = model.get_branch_hmm(0.5)
    assert hmm.transitions[G1, G1] == pytest.approx(0.8)
    assert hmm.transitions[G2, G2] == pytest.approx(0.8)


def test_pair_path_log_probability():
    hmm = SimpleIndelModel().get_branch_hmm(0.3)
    T, start = hmm.transitions, hmm.start
    expected = np.log(start[M]) + np.log(T[M, M]) + np.log(T[M, G2]) + np.log(T[G2, E])
    assert hmm.path_log_probability([M, M, G2]) == pytest.approx(expected)
    assert hmm.path_log_probability([]) == pytest.approx(np.log(start[E]))


def test_pair_path_rejects_unknown_states():
    hmm = SimpleIndelModel().get_branch_hmm(0.3)
    with pytest.raises(MalformedAlignmentError, match="step 0"):
        hmm.path_log_probability([-1])
    with pytest.raises(MalformedAlignmentError, match="step 1"):
        hmm.path_log_probability([M, E])
    with pytest.raises(MalformedAlignmentError):
        hmm.path_log_probability([M, 7])


def test_forbidden_pair_path_is_log_zero():
    hmm = SimpleIndelModel().get_branch_hmm(0.3)
    assert hmm.path_log_probability([G2, G1]) <= LOG_0


def test_pair_hmm_validation():
    with pytest.raises(ValueError):
        PairHMM(np.ones((3, 3)))
    with pytest.raises(ValueError):
        PairHMM(np.full((4, 4), 0.25), start=np.ones(3))
    with pytest.raises(ValueError):
        PairHMM(-np.ones((4, 4)))
    with pytest.raises(ValueError):
        PairHMM(np.ones((4, 4))).check()


def test_pair_hmm_check_warns_about_g2_to_g1(caplog):
    hmm = PairHMM(np.full((4, 4), 0.25))
    with caplog.at_level(logging.WARNING):
        hmm.check()
    assert "G2->G1" in caplog.text


def test_simple_indel_validation():
    with pytest.raises(ValueError):
        SimpleIndelModel(tau=0.0)
    with pytest.raises(ValueError):
        SimpleIndelModel(mean_length=0.5)
    with pytest.raises(ValueError):
        SimpleIndelModel(rate=-1.0)
    with pytest.raises(ValueError):
        SimpleIndelModel().get_branch_hmm(-0.1)


def test_length_distribution():
    model = SimpleIndelModel(tau=0.1)
    assert model.lengthp(0) == pytest.approx(0.1)
    assert model.lengthp(3) == pytest.approx(0.1 * 0.9**3)
    assert model.lengthp(-1) == 0.0

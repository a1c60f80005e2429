import numpy as np
import pytest

from bayalign.core.indel import SimpleIndelModel
from bayalign.core.likelihood_cache import MultiLikelihoodCache
from bayalign.core.parameters import Parameters
from bayalign.core.sampler import (
    MoveStats,
    SamplerSettings,
    accept_mh,
    change_branch_length,
    run_chain,
)
from bayalign.core.substitution import jukes_cantor


def _params(tree, A, cache=None):
    return Parameters(A, tree, jukes_cantor(), SimpleIndelModel(), cache=cache)


def test_accept_mh():
    rng = np.random.default_rng(0)
    assert accept_mh(0.0, rng)
    assert accept_mh(3.0, rng)
    assert not accept_mh(-1e6, rng)


def test_move_stats():
    stats = MoveStats()
    stats.record("branch-length", True)
    stats.record("branch-length", False)
    assert stats.acceptance_rate("branch-length") == 0.5
    assert stats.acceptance_rate("other") == 0.0
    assert stats.summary() == "branch-length: 1/2 (50.0%)"


def test_settings_validation():
    with pytest.raises(ValueError):
        SamplerSettings(n_iterations=-1)
    with pytest.raises(ValueError):
        SamplerSettings(branch_sigma=0.0)


def test_change_branch_length_releases_the_loser(quartet_tree, quartet_alignment):
    cache = MultiLikelihoodCache(1, 4)
    P = _params(quartet_tree, quartet_alignment, cache)
    rng = np.random.default_rng(3)
    stats = MoveStats()
    for b in range(quartet_tree.n_branches):
        P, accepted = change_branch_length(P, b, rng, 0.3, stats)
        assert cache.active_tokens() == [P.cache.token]
    assert sum(stats.proposed.values()) == quartet_tree.n_branches
    P.release()


def test_run_chain_is_reproducible(quartet_tree, quartet_alignment):
    settings = SamplerSettings(n_iterations=4, branch_sigma=0.3, seed=11, log_every=2)

    cache = MultiLikelihoodCache(1, 4)
    calls = []
    P, stats, trace = run_chain(
        _params(quartet_tree, quartet_alignment, cache),
        settings,
        callback=lambda it, state: calls.append(it),
    )
    assert calls == [0, 1, 2, 3]
    assert len(trace) == 4
    assert all(np.isfinite(trace))
    assert stats.proposed["branch-length"] == 4 * quartet_tree.n_branches
    assert np.all(P.tree.lengths > 0)
    assert cache.active_tokens() == [P.cache.token]
    assert trace[-1] == pytest.approx(P.log_probability())

    P2, _, trace2 = run_chain(_params(quartet_tree, quartet_alignment), settings)
    assert trace2 == pytest.approx(trace)
    np.testing.assert_allclose(P2.tree.lengths, P.tree.lengths)
    P.release()
    P2.release()


def test_chain_moves_away_from_bad_branch_lengths(quartet_tree, quartet_alignment):
    tree = quartet_tree.copy()
    for b in range(tree.n_branches):
        tree.set_branch_length(b, 5.0)
    P = _params(tree, quartet_alignment)
    start = P.log_probability()
    P, stats, trace = run_chain(P, SamplerSettings(n_iterations=30, seed=2, log_every=0))
    assert max(trace) > start
    assert stats.acceptance_rate("branch-length") > 0
    P.release()

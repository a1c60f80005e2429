import numpy as np
import pytest

from bayalign.core.alignment import Alignment, add_internal
from bayalign.core.likelihood_cache import LikelihoodCache, MultiLikelihoodCache
from bayalign.core.pruning import PruningResult, compute_likelihood, peel
from bayalign.core.substitution import MultiRateModel, jukes_cantor
from bayalign.core.trees import Tree


def _view(tree, A, smodel, root=None):
    cache = MultiLikelihoodCache(smodel.n_components, smodel.alphabet_size)
    return LikelihoodCache(tree, A.length, cache, root=root)


def test_two_leaf_jukes_cantor():
    tree = Tree(2, [(0, 1)], lengths=[0.3])
    A = Alignment.from_strings(["AAG", "AC-"])
    jc = jukes_cantor()
    same = 0.25 + 0.75 * np.exp(-0.4)
    diff = (1.0 - same) / 3.0

    result = compute_likelihood(A, tree, jc, _view(tree, A, jc))
    assert isinstance(result, PruningResult)
    np.testing.assert_allclose(
        result.column_log_likelihoods, np.log([0.25 * same, 0.25 * diff, 0.25])
    )
    assert result.log_likelihood == pytest.approx(result.column_log_likelihoods.sum())
    assert result.root == 1
    assert result.n_peeled == 1


def test_cached_evaluation_peels_nothing(quartet_tree, quartet_alignment):
    jc = jukes_cantor()
    lc = _view(quartet_tree, quartet_alignment, jc)
    first = compute_likelihood(quartet_alignment, quartet_tree, jc, lc)
    assert first.n_peeled == 5
    second = compute_likelihood(quartet_alignment, quartet_tree, jc, lc)
    assert second.n_peeled == 0
    assert second.log_likelihood == first.log_likelihood


def test_invalidation_recomputes_only_affected_branches(quartet_tree, quartet_alignment):
    jc = jukes_cantor()
    lc = _view(quartet_tree, quartet_alignment, jc)
    compute_likelihood(quartet_alignment, quartet_tree, jc, lc)

    tree = quartet_tree.copy()
    tree.set_branch_length(0, 0.7)
    lc.invalidate_branch(tree, 0)
    cached = compute_likelihood(quartet_alignment, tree, jc, lc)
    # 0 -> 4 and 4 -> 5 point toward the root
    assert cached.n_peeled == 2

    fresh = compute_likelihood(quartet_alignment, tree, jc, _view(tree, quartet_alignment, jc))
    assert cached.log_likelihood == pytest.approx(fresh.log_likelihood)


@pytest.mark.parametrize("root", [0, 3, 4, 5])
def test_likelihood_does_not_depend_on_root(quartet_tree, quartet_alignment, root):
    model = MultiRateModel.gamma(jukes_cantor(), alpha=0.5, n_bins=4)
    reference = compute_likelihood(
        quartet_alignment, quartet_tree, model, _view(quartet_tree, quartet_alignment, model)
    )
    result = compute_likelihood(
        quartet_alignment, quartet_tree, model, _view(quartet_tree, quartet_alignment, model, root)
    )
    assert result.root == root
    np.testing.assert_allclose(result.column_log_likelihoods, reference.column_log_likelihoods)


def test_rate_heterogeneity_changes_likelihood(quartet_tree, quartet_alignment):
    jc = jukes_cantor()
    gamma = MultiRateModel.gamma(jc, alpha=0.3)
    plain = compute_likelihood(quartet_alignment, quartet_tree, jc, _view(quartet_tree, quartet_alignment, jc))
    mixed = compute_likelihood(
        quartet_alignment, quartet_tree, gamma, _view(quartet_tree, quartet_alignment, gamma)
    )
    assert np.isfinite(mixed.log_likelihood)
    assert mixed.log_likelihood != pytest.approx(plain.log_likelihood)


def test_many_columns_stay_finite():
    tree = Tree.from_newick("((A:2,B:2):2,(C:2,D:2):2);")
    rng = np.random.default_rng(0)
    rows = ["".join(rng.choice(list("ACGT"), size=3000)) for _ in range(4)]
    A = add_internal(Alignment.from_strings(rows, names=["A", "B", "C", "D"]), tree)
    jc = jukes_cantor()
    result = compute_likelihood(A, tree, jc, _view(tree, A, jc))
    assert np.isfinite(result.log_likelihood)
    assert np.all(result.column_log_likelihoods < 0)


def test_shape_checks(quartet_tree, quartet_alignment):
    jc = jukes_cantor()
    short = LikelihoodCache(quartet_tree, 2, MultiLikelihoodCache(1, 4))
    with pytest.raises(ValueError, match="sized for 2 columns"):
        peel(quartet_alignment, quartet_tree, jc, short)

    wrong = LikelihoodCache(quartet_tree, quartet_alignment.length, MultiLikelihoodCache(4, 4))
    with pytest.raises(ValueError, match="cache shape"):
        peel(quartet_alignment, quartet_tree, jc, wrong)

    with pytest.raises(ValueError, match="rows"):
        peel(quartet_alignment, Tree(2, [(0, 1)]), jc, short)

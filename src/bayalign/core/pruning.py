"""
Felsenstein pruning over directed branches, backed by the likelihood cache.

The cache entry for directed branch d = s -> t holds, per column and rate
component, the likelihood of the data on s's side of d given each letter
at t:

    entry[d] = P_d(t) . (leaf(s) * prod(entry[x] for x in branches_before(d)))

so it depends on the length of d, every branch behind d, and the
alignment. Entries are rescaled per column; the log scale is carried with
them. Gaps and unknown characters contribute an all-ones vector, which
marginalizes over the node's letter.
"""

from dataclasses import dataclass
import logging
from typing import Optional
import numpy as np
from scipy.special import logsumexp

from .alignment import Alignment
from .likelihood_cache import LikelihoodCache
from .numerics import safe_log
from .substitution import SubstitutionModel
from .trees import Tree

logger = logging.getLogger(__name__)


@dataclass
class PruningResult:
    """
    Result of pruning algorithm.

    Attributes:
        log_likelihood: Total log-likelihood
        column_log_likelihoods: Per-column log-likelihoods
        n_peeled: Directed branches recomputed for this evaluation
        root: Node the likelihood was evaluated at
    """

    log_likelihood: float
    column_log_likelihoods: Optional[np.ndarray] = None
    n_peeled: int = 0
    root: int = -1


def leaf_conditionals(A: Alignment, node: int) -> np.ndarray:
    """(columns, A) observation likelihoods of one node's cells."""
    return A.alphabet.likelihood_matrix(A.array[:, node])


def _check_shapes(A: Alignment, tree: Tree, smodel: SubstitutionModel, lc: LikelihoodCache) -> None:
    if A.n_sequences != tree.n_nodes:
        raise ValueError(f"Alignment has {A.n_sequences} rows but the tree has {tree.n_nodes} nodes")
    if A.alphabet.size != smodel.alphabet_size:
        raise ValueError(
            f"Alphabet {A.alphabet.name} has {A.alphabet.size} letters, "
            f"substitution model has {smodel.alphabet_size}"
        )
    if lc.cache.n_components != smodel.n_components or lc.cache.alphabet_size != smodel.alphabet_size:
        raise ValueError("Likelihood cache shape does not match the substitution model")
    if lc.length != A.length:
        raise ValueError(f"Likelihood cache sized for {lc.length} columns, alignment has {A.length}")


def compute_branch(
    A: Alignment, tree: Tree, smodel: SubstitutionModel, lc: LikelihoodCache, d: int
) -> None:
    """Recompute and validate the cache entry of directed branch d."""
    s = tree.source(d)
    inner = np.repeat(leaf_conditionals(A, s)[:, None, :], smodel.n_components, axis=1)
    scale = np.zeros(A.length)
    for x in tree.branches_before(d):
        likelihoods, log_scale = lc.read(x)
        inner = inner * likelihoods
        scale = scale + log_scale

    P = smodel.transition_p(tree.branch_length(d >> 1))
    # out[c, k, i] = sum_j P[k, i, j] * inner[c, k, j]
    out = np.einsum("kij,ckj->cki", P, inner)

    peak = out.max(axis=(1, 2))
    peak = np.where(peak > 0, peak, 1.0)
    out /= peak[:, None, None]
    scale += np.log(peak)

    likelihoods, log_scale = lc.writable(d)
    likelihoods[...] = out
    log_scale[...] = scale
    lc.validate_branch(d)


def peel(A: Alignment, tree: Tree, smodel: SubstitutionModel, lc: LikelihoodCache) -> int:
    """
    Bring every branch pointing toward lc.root up to date.

    Returns:
        Number of branches recomputed
    """
    _check_shapes(A, tree, smodel, lc)
    n_peeled = 0
    for d in tree.branches_toward(lc.root):
        if not lc.up_to_date(d):
            compute_branch(A, tree, smodel, lc, d)
            n_peeled += 1
    logger.debug(f"Peeled {n_peeled} of {tree.n_directed_branches} directed branches")
    return n_peeled


def compute_likelihood(
    A: Alignment, tree: Tree, smodel: SubstitutionModel, lc: LikelihoodCache
) -> PruningResult:
    """
    Log-likelihood of the alignment, reusing every up-to-date cache entry.

    Args:
        A: Alignment with one row per tree node
        tree: Tree with branch lengths
        smodel: Substitution model
        lc: Cache view sized for A

    Returns:
        PruningResult with per-column log-likelihoods
    """
    n_peeled = peel(A, tree, smodel, lc)
    root = lc.root

    conditionals = np.repeat(leaf_conditionals(A, root)[:, None, :], smodel.n_components, axis=1)
    scale = np.zeros(A.length)
    for d in tree.branches_out(root):
        likelihoods, log_scale = lc.read(tree.reverse(d))
        conditionals = conditionals * likelihoods
        scale = scale + log_scale

    # (columns, components): sum over root letters
    per_component = conditionals @ smodel.frequencies
    log_weights = safe_log(smodel.component_weights)
    column_ll = logsumexp(safe_log(per_component) + log_weights[None, :], axis=1) + scale

    return PruningResult(
        log_likelihood=float(np.sum(column_ll)),
        column_log_likelihoods=column_ll,
        n_peeled=n_peeled,
        root=root,
    )

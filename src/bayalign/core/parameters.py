"""
The MCMC state: alignment, tree, models and one likelihood-cache token.

Parameters objects are cheap to copy. The alignment and tree are shared
between copies and replaced, never modified, when a copy changes them;
the cache token is shared through copy_token and forked branch by branch
on invalidation. Every mutation goes through a setter that also
invalidates the affected cache entries, so no change can leave a stale
entry marked up to date.
"""

import logging
from typing import List, Optional, Sequence
import numpy as np

from .alignment import Alignment
from .indel import IndelModel
from .likelihood_cache import LikelihoodCache, MultiLikelihoodCache
from .paths import construct, get_path, get_path_2way
from .pruning import PruningResult, compute_likelihood
from .states import StateSpace
from .substitution import SubstitutionModel
from .trees import Tree

logger = logging.getLogger(__name__)


class Parameters:
    """
    One copy of the full model state.

    Attributes:
        smodel: Substitution model
        imodel: Indel model supplying per-branch PairHMMs
        branch_mean: Mean of the exponential prior on branch lengths
        cache: View into the shared likelihood cache

    Usage:
        P = Parameters(A, tree, jukes_cantor(), SimpleIndelModel())
        proposal = P.copy()
        proposal.set_branch_length(2, 0.15)
        if accept(proposal.log_probability() - P.log_probability()):
            P.release()
            P = proposal
        else:
            proposal.release()
    """

    def __init__(
        self,
        alignment: Alignment,
        tree: Tree,
        smodel: SubstitutionModel,
        imodel: IndelModel,
        cache: Optional[MultiLikelihoodCache] = None,
        branch_mean: float = 0.1,
    ):
        if alignment.n_sequences != tree.n_nodes:
            raise ValueError(
                f"Alignment has {alignment.n_sequences} rows but the tree has {tree.n_nodes} nodes"
            )
        if branch_mean <= 0:
            raise ValueError(f"Branch length prior mean must be positive, got {branch_mean}")
        self._alignment = alignment.copy()
        self._tree = tree.copy()
        self.smodel = smodel
        self.imodel = imodel
        self.branch_mean = branch_mean
        if cache is None:
            cache = MultiLikelihoodCache(smodel.n_components, smodel.alphabet_size)
        self.cache = LikelihoodCache(self._tree, alignment.length, cache)
        self.last_result: Optional[PruningResult] = None

    # ------------------------------------------------------------------
    # Copy / release
    # ------------------------------------------------------------------

    def copy(self) -> "Parameters":
        """A copy sharing alignment, tree and every cache location."""
        other = Parameters.__new__(Parameters)
        other._alignment = self._alignment
        other._tree = self._tree
        other.smodel = self.smodel
        other.imodel = self.imodel
        other.branch_mean = self.branch_mean
        other.cache = self.cache.copy()
        other.last_result = self.last_result
        return other

    def release(self) -> None:
        """Give the cache token back; the object must not be used afterwards."""
        self.cache.release()

    def __enter__(self) -> "Parameters":
        return self

    def __exit__(self, *exc) -> None:
        self.release()

    # ------------------------------------------------------------------
    # Read access
    # ------------------------------------------------------------------

    @property
    def alignment(self) -> Alignment:
        """The current alignment (shared with copies: do not modify)."""
        return self._alignment

    @property
    def tree(self) -> Tree:
        """The current tree (shared with copies: do not modify)."""
        return self._tree

    def branch_length(self, b: int) -> float:
        return self._tree.branch_length(b)

    def path(self, nodes: Sequence[int], space: Optional[StateSpace] = None) -> List[int]:
        """Composite path of the current alignment over a node subset."""
        return get_path(self._alignment, nodes, space)

    # ------------------------------------------------------------------
    # Mutators
    # ------------------------------------------------------------------

    def set_branch_length(self, b: int, length: float) -> None:
        """Change one branch length and invalidate what depends on it."""
        tree = self._tree.copy()
        tree.set_branch_length(b, length)
        self._tree = tree
        self.cache.invalidate_branch(tree, b)
        self.last_result = None

    def set_alignment(self, alignment: Alignment) -> None:
        """
        Replace the alignment.

        Cache rows are indexed by alignment column, so every entry is
        invalidated.
        """
        if alignment.n_sequences != self._tree.n_nodes:
            raise ValueError(
                f"Alignment has {alignment.n_sequences} rows but the tree has {self._tree.n_nodes} nodes"
            )
        self._alignment = alignment.copy()
        self.cache.set_length(alignment.length)
        self.cache.invalidate_all()
        self.last_result = None

    def set_subalignment(
        self,
        nodes: Sequence[int],
        path: Sequence[int],
        space: Optional[StateSpace] = None,
    ) -> Alignment:
        """
        Realign a node subset to follow `path`, keeping all other homologies.

        Returns:
            The new alignment
        """
        new = construct(self._alignment, path, nodes, self._tree, space=space)
        logger.debug(
            f"Sub-alignment over nodes {list(nodes)}: {self._alignment.length} -> {new.length} columns"
        )
        self.set_alignment(new)
        return self._alignment

    def select_root(self, b: int) -> None:
        """Evaluate the likelihood at an endpoint of branch b."""
        self.cache.select_root(self._tree, b)

    # ------------------------------------------------------------------
    # Probabilities (log scale)
    # ------------------------------------------------------------------

    def log_prior_alignment(self) -> float:
        """Sum over branches of the pairwise alignment log-probability."""
        total = 0.0
        for b, (u, v) in enumerate(self._tree.edges):
            hmm = self.imodel.get_branch_hmm(self._tree.branch_length(b))
            total += hmm.path_log_probability(get_path_2way(self._alignment, u, v))
        return total

    def log_prior_branch_lengths(self) -> float:
        """Independent exponential priors with mean branch_mean."""
        t = self._tree.lengths
        return float(np.sum(-t / self.branch_mean - np.log(self.branch_mean)))

    def log_prior(self) -> float:
        return self.log_prior_alignment() + self.log_prior_branch_lengths()

    def likelihood(self) -> PruningResult:
        """Pruning result, recomputing only stale cache entries."""
        self.last_result = compute_likelihood(self._alignment, self._tree, self.smodel, self.cache)
        return self.last_result

    def log_likelihood(self) -> float:
        return self.likelihood().log_likelihood

    def log_probability(self) -> float:
        """Unnormalized log posterior: log prior + log likelihood."""
        return self.log_prior() + self.log_likelihood()

    def __repr__(self) -> str:
        return (
            f"Parameters({self._alignment!r}, {self._tree!r}, "
            f"token={self.cache.token}, root={self.cache.root})"
        )

"""
Composite alignment HMMs built from per-branch pairwise HMMs.

Each sub-alignment edge of a StateSpace carries its own PairHMM. A
composite state advances every edge touching one of its present positions;
the remaining edges keep the state they were last in. The probability of a
composite path is therefore the product of the pairwise path probabilities
along every edge, which is what makes the composite HMM usable for
resampling a sub-alignment while keeping the pairwise alignment prior.
"""

from dataclasses import dataclass
import logging
from typing import List, Sequence
import numpy as np

from .indel import IndelModel, PairHMM
from .errors import MalformedAlignmentError
from .numerics import LOG_0, safe_log
from .states import StateSpace, M, G1, G2, E
from .trees import Tree

logger = logging.getLogger(__name__)


def _edge_matrix(hmm: PairHMM) -> np.ndarray:
    """Pairwise transitions with G2 -> G1 removed."""
    T = hmm.transitions.copy()
    T[G2, G1] = 0.0
    return T


def _state_table(space: StateSpace):
    """(nstates, n_edges) arrays of sub-states and advance flags."""
    n = space.nstates
    sub = np.zeros((n, space.n_edges), dtype=int)
    adv = np.zeros((n, space.n_edges), dtype=bool)
    for S in range(n):
        for e in range(space.n_edges):
            sub[S, e] = space.substate(S, e)
            adv[S, e] = space.advances(S, e)
    return sub, adv


def _check_hmms(space: StateSpace, pair_hmms: Sequence[PairHMM]) -> None:
    if len(pair_hmms) != space.n_edges:
        raise ValueError(
            f"{space.name} alignment HMM needs {space.n_edges} pairwise HMMs, got {len(pair_hmms)}"
        )


def create_q(space: StateSpace, pair_hmms: Sequence[PairHMM]) -> np.ndarray:
    """
    Transition matrix of the composite alignment HMM.

    Q[S1, S2] is the product, over the edges S2 advances, of that edge's
    transition from its state in S1 (current or remembered) to its state in
    S2. An edge S2 does not advance must remember the state it had in S1,
    or the transition is impossible. Adjacent columns with disjoint
    presence are only allowed in canonical column order.

    Args:
        space: Composite state space
        pair_hmms: One PairHMM per sub-alignment edge, in edge order

    Returns:
        (nstates + 1, nstates + 1) matrix; the last row/column is End.
        Rows are not normalized: the mass of non-canonical orderings is
        dropped.
    """
    _check_hmms(space, pair_hmms)
    n = space.nstates
    sub, adv = _state_table(space)

    Q = np.ones((n + 1, n + 1))
    Q[n, :] = 0.0
    for e, hmm in enumerate(pair_hmms):
        T = _edge_matrix(hmm)
        s = sub[:, e]
        advance = T[s[:, None], s[None, :]]
        keep = (s[:, None] == s[None, :]).astype(float)
        Q[:n, :n] *= np.where(adv[None, :, e], advance, keep)
        Q[:n, n] *= T[s, E]

    presence = np.array([space.presence_mask(S) for S in range(n)])
    keys = [space.order_key(p) for p in presence]
    rank = np.empty(n, dtype=int)
    for r, S in enumerate(sorted(range(n), key=lambda S: keys[S])):
        rank[S] = r
    disjoint = (presence[:, None] & presence[None, :]) == 0
    backwards = rank[None, :] < rank[:, None]
    Q[:n, :n][disjoint & backwards] = 0.0

    logger.debug(f"Built {space.name} transition matrix over {n} states + End")
    return Q


def get_start_p(space: StateSpace, pair_hmms: Sequence[PairHMM]) -> np.ndarray:
    """
    Start distribution of the composite HMM.

    Every edge begins in a virtual Match state: edges the first column
    advances use their start vector, and edges it does not advance must
    remember Match.
    """
    _check_hmms(space, pair_hmms)
    n = space.nstates
    sub, adv = _state_table(space)

    start = np.ones(n + 1)
    for e, hmm in enumerate(pair_hmms):
        s = sub[:, e]
        start[:n] *= np.where(adv[:, e], hmm.start[s], (s == M).astype(float))
        start[n] *= hmm.start[E]
    return start


def path_log_probability(path: Sequence[int], Q: np.ndarray, start: np.ndarray) -> float:
    """
    log P(path) under a composite HMM, including the transition to End.

    Returns LOG_0 for impossible paths.
    """
    end = Q.shape[0] - 1
    states = [int(S) for S in path]
    for S in states:
        if not 0 <= S < end:
            raise MalformedAlignmentError(f"State index {S} outside 0..{end - 1}")
    if not states:
        return float(safe_log(start[end]))
    total = float(safe_log(start[states[0]]))
    for a, b in zip(states[:-1], states[1:]):
        total += float(safe_log(Q[a, b]))
    total += float(safe_log(Q[states[-1], end]))
    return max(total, LOG_0)


def branch_hmms(
    tree: Tree, nodes: Sequence[int], space: StateSpace, imodel: IndelModel
) -> List[PairHMM]:
    """
    PairHMMs for the tree branches behind each sub-alignment edge.

    Edge (a, b) of the state space is the branch between nodes[a] and
    nodes[b]; G1 on that edge means nodes[a] has the character.
    """
    if len(nodes) != space.n_positions:
        raise ValueError(f"{space.name} alignment HMM needs {space.n_positions} nodes, got {len(nodes)}")
    hmms = []
    for a, b in space.edges:
        branch = tree.find_branch(nodes[a], nodes[b])
        hmms.append(imodel.get_branch_hmm(tree.branch_length(branch)))
    return hmms


@dataclass
class CompositeHMM:
    """
    A composite alignment HMM for one node subset.

    Attributes:
        space: Composite state space
        Q: Transition matrix from create_q
        start: Start distribution from get_start_p
    """

    space: StateSpace
    Q: np.ndarray
    start: np.ndarray

    @classmethod
    def from_pair_hmms(cls, space: StateSpace, pair_hmms: Sequence[PairHMM]) -> "CompositeHMM":
        return cls(space, create_q(space, pair_hmms), get_start_p(space, pair_hmms))

    @classmethod
    def for_nodes(
        cls, tree: Tree, nodes: Sequence[int], space: StateSpace, imodel: IndelModel
    ) -> "CompositeHMM":
        return cls.from_pair_hmms(space, branch_hmms(tree, nodes, space, imodel))

    def path_log_probability(self, path: Sequence[int]) -> float:
        return path_log_probability(path, self.Q, self.start)

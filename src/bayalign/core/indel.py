"""
Insertion/deletion models and the pairwise alignment HMMs they supply.

The alignment core only needs one thing from an indel model: a PairHMM
for a branch of length t. Everything else about the model stays behind
the IndelModel protocol.
"""

from dataclasses import dataclass
import logging
from typing import Optional, Protocol
import numpy as np

from .errors import MalformedAlignmentError
from .numerics import safe_log
from .states import M, G1, G2, E

logger = logging.getLogger(__name__)


@dataclass
class PairHMM:
    """
    Transition model of a pairwise alignment over {M, G1, G2, E}.

    Attributes:
        transitions: (4, 4) matrix; row = from-state, column = to-state.
            The E row is ignored (End is absorbing).
        start: (4,) probabilities of the first state (E = empty alignment)
    """

    transitions: np.ndarray
    start: Optional[np.ndarray] = None

    def __post_init__(self):
        self.transitions = np.asarray(self.transitions, dtype=float)
        if self.transitions.shape != (4, 4):
            raise ValueError(f"PairHMM transitions must be 4x4, got {self.transitions.shape}")
        if self.start is None:
            self.start = self.transitions[M].copy()
        self.start = np.asarray(self.start, dtype=float)
        if self.start.shape != (4,):
            raise ValueError(f"PairHMM start vector must have 4 entries, got {self.start.shape}")
        if np.any(self.transitions < 0) or np.any(self.start < 0):
            raise ValueError("PairHMM probabilities must be non-negative")

    @property
    def n_states(self) -> int:
        """Number of states, not counting End."""
        return self.transitions.shape[0] - 1

    def check(self, atol: float = 1e-10) -> None:
        """
        Validate row sums and warn about probability the composite HMMs drop.

        Composite HMMs order G1 columns before adjacent G2 columns, so any
        G2 -> G1 mass is discarded there.
        """
        rows = self.transitions[:E].sum(axis=1)
        if not np.allclose(rows, 1.0, atol=atol):
            raise ValueError(f"PairHMM rows must sum to 1, got {rows}")
        if not np.isclose(self.start.sum(), 1.0, atol=atol):
            raise ValueError(f"PairHMM start vector must sum to 1, got {self.start.sum()}")
        if self.transitions[G2, G1] > 0:
            logger.warning(
                f"PairHMM has G2->G1 probability {self.transitions[G2, G1]:.3g}; "
                "composite alignment HMMs treat this transition as forbidden"
            )

    def path_log_probability(self, path) -> float:
        """log P(path) for a sequence of pairwise states, including the End step."""
        states = [int(s) for s in path]
        for step, s in enumerate(states):
            if not 0 <= s < E:
                raise MalformedAlignmentError(
                    f"Path step {step} is pairwise state {s}, outside 0..{E - 1}"
                )
        if not states:
            return float(safe_log(self.start[E]))
        total = safe_log(self.start[states[0]])
        for a, b in zip(states[:-1], states[1:]):
            total = total + safe_log(self.transitions[a, b])
        total = total + safe_log(self.transitions[states[-1], E])
        return float(total)


class IndelModel(Protocol):
    """Anything that can supply a pairwise alignment HMM per branch length."""

    def get_branch_hmm(self, t: float) -> PairHMM:
        """Alignment distribution for a branch of length t."""
        ...

    def lengthp(self, length: int) -> float:
        """Probability that a sequence has the given length."""
        ...


@dataclass
class SimpleIndelModel:
    """
    Geometric-gap indel model.

    The gap-opening probability grows with branch length,
    delta(t) = (1 - tau) * (1 - exp(-rate * t)) / 2, and gaps are extended
    with probability epsilon = 1 - 1/mean_length. A G2 run may not be
    followed directly by G1, so each gap configuration has a single path.
    The start vector equals the Match row.

    Attributes:
        rate: Indel rate per unit branch length
        mean_length: Mean gap length (>= 1)
        tau: Per-column probability of ending the alignment
    """

    rate: float = 0.1
    mean_length: float = 2.0
    tau: float = 0.01

    def __post_init__(self):
        if self.rate < 0:
            raise ValueError(f"Indel rate must be non-negative, got {self.rate}")
        if self.mean_length < 1:
            raise ValueError(f"Mean gap length must be >= 1, got {self.mean_length}")
        if not 0 < self.tau < 1:
            raise ValueError(f"tau must be in (0, 1), got {self.tau}")

    @property
    def epsilon(self) -> float:
        return 1.0 - 1.0 / self.mean_length

    def delta(self, t: float) -> float:
        return (1.0 - self.tau) * (1.0 - np.exp(-self.rate * t)) / 2.0

    def get_branch_hmm(self, t: float) -> PairHMM:
        if t < 0:
            raise ValueError(f"Branch length must be non-negative, got {t}")
        delta, eps, tau = self.delta(t), self.epsilon, self.tau
        Q = np.zeros((4, 4))

        Q[M, M] = 1.0 - 2.0 * delta - tau
        Q[M, G1] = delta
        Q[M, G2] = delta
        Q[M, E] = tau

        # Leaving G1: anything but G1, in proportion to the Match row
        Q[G1, G1] = eps
        Q[G1, M] = (1.0 - eps) * (1.0 - 2.0 * delta - tau) / (1.0 - delta)
        Q[G1, G2] = (1.0 - eps) * delta / (1.0 - delta)
        Q[G1, E] = (1.0 - eps) * tau / (1.0 - delta)

        # Leaving G2: only M or E
        Q[G2, G2] = eps
        Q[G2, M] = (1.0 - eps) * (1.0 - 2.0 * delta - tau) / (1.0 - 2.0 * delta)
        Q[G2, E] = (1.0 - eps) * tau / (1.0 - 2.0 * delta)

        Q[E, E] = 1.0
        return PairHMM(Q, Q[M].copy())

    def lengthp(self, length: int) -> float:
        """Geometric length distribution implied by tau."""
        if length < 0:
            return 0.0
        return float(self.tau * (1.0 - self.tau) ** length)

"""
Substitution models: the per-branch transition matrices the likelihood needs.

The likelihood code only asks a model for P(t) per rate component, the
equilibrium frequencies, and the component weights (SubstitutionModel).
Reversible Markov models are built from exchangeabilities and
frequencies; rate heterogeneity is a mixture of scaled copies of one base
model.
"""

from dataclasses import dataclass, field
import logging
from typing import Optional, Protocol, Sequence
import numpy as np
from scipy import stats
from scipy.special import gammainc

from .transition_cache import get_transition_matrix

logger = logging.getLogger(__name__)


class SubstitutionModel(Protocol):
    """
    Protocol for models that supply per-component transition matrices.
    """

    @property
    def alphabet_size(self) -> int:
        ...

    @property
    def n_components(self) -> int:
        """Number of rate/mixture components."""
        ...

    @property
    def frequencies(self) -> np.ndarray:
        """Equilibrium letter frequencies (root prior)."""
        ...

    @property
    def component_weights(self) -> np.ndarray:
        """Prior probability of each component; sums to 1."""
        ...

    def transition_p(self, t: float) -> np.ndarray:
        """
        Transition probabilities for a branch of length t.

        Returns:
            (n_components, A, A) array; [k, i, j] = P(j at the end | i at the start)
        """
        ...


def _normalize_frequencies(frequencies) -> np.ndarray:
    pi = np.asarray(frequencies, dtype=float)
    if pi.ndim != 1 or np.any(pi < 0) or pi.sum() <= 0:
        raise ValueError(f"Invalid equilibrium frequencies: {frequencies}")
    return pi / pi.sum()


@dataclass
class ReversibleMarkovModel:
    """
    Time-reversible continuous-time Markov model.

    Q[i, j] = S[i, j] * pi[j] for i != j, rows summing to zero, scaled so
    that the expected number of substitutions per unit time is 1.

    Attributes:
        exchangeabilities: Symmetric (A, A) matrix S (diagonal ignored)
        frequencies: Equilibrium frequencies pi
        name: Label for logs
    """

    exchangeabilities: np.ndarray
    frequencies: np.ndarray
    name: str = "reversible"
    rate_matrix: np.ndarray = field(init=False, repr=False)

    def __post_init__(self):
        S = np.asarray(self.exchangeabilities, dtype=float)
        pi = _normalize_frequencies(self.frequencies)
        if S.shape != (pi.size, pi.size):
            raise ValueError(f"Exchangeabilities must be {pi.size}x{pi.size}, got {S.shape}")
        if not np.allclose(S, S.T):
            raise ValueError("Exchangeabilities must be symmetric")
        if np.any(S < 0):
            raise ValueError("Exchangeabilities must be non-negative")

        Q = S * pi[None, :]
        np.fill_diagonal(Q, 0.0)
        np.fill_diagonal(Q, -Q.sum(axis=1))
        mean_rate = -np.dot(pi, np.diag(Q))
        if mean_rate <= 0:
            raise ValueError("Rate matrix has no substitutions")
        self.exchangeabilities = S
        self.frequencies = pi
        self.rate_matrix = Q / mean_rate

    @property
    def alphabet_size(self) -> int:
        return self.frequencies.size

    @property
    def n_components(self) -> int:
        return 1

    @property
    def component_weights(self) -> np.ndarray:
        return np.ones(1)

    def transition_matrix(self, t: float) -> np.ndarray:
        """(A, A) matrix P(t) = expm(Q t)."""
        if t < 0:
            raise ValueError(f"Branch length must be non-negative, got {t}")
        return get_transition_matrix(self.rate_matrix, t)

    def transition_p(self, t: float) -> np.ndarray:
        return self.transition_matrix(t)[None, :, :]


def jukes_cantor(alphabet_size: int = 4) -> ReversibleMarkovModel:
    """Equal rates, equal frequencies."""
    return ReversibleMarkovModel(
        np.ones((alphabet_size, alphabet_size)), np.ones(alphabet_size), name="JC"
    )


def f81(frequencies: Sequence[float]) -> ReversibleMarkovModel:
    """Equal exchangeabilities, arbitrary frequencies."""
    n = len(frequencies)
    return ReversibleMarkovModel(np.ones((n, n)), np.asarray(frequencies), name="F81")


def hky85(kappa: float, frequencies: Sequence[float] = (0.25, 0.25, 0.25, 0.25)) -> ReversibleMarkovModel:
    """
    Nucleotide model with transition/transversion ratio kappa (ACGT order).
    """
    if kappa <= 0:
        raise ValueError(f"kappa must be positive, got {kappa}")
    S = np.ones((4, 4))
    # A<->G and C<->T are transitions
    S[0, 2] = S[2, 0] = kappa
    S[1, 3] = S[3, 1] = kappa
    return ReversibleMarkovModel(S, np.asarray(frequencies), name=f"HKY(kappa={kappa:g})")


def gtr(rates: Sequence[float], frequencies: Sequence[float]) -> ReversibleMarkovModel:
    """
    General time-reversible model from the upper-triangle exchangeabilities
    (AC, AG, AT, CG, CT, GT for DNA).
    """
    n = len(frequencies)
    iu = np.triu_indices(n, k=1)
    if len(rates) != len(iu[0]):
        raise ValueError(f"GTR on {n} letters needs {len(iu[0])} rates, got {len(rates)}")
    S = np.zeros((n, n))
    S[iu] = rates
    S = S + S.T
    return ReversibleMarkovModel(S, np.asarray(frequencies), name="GTR")


def gamma_rates(alpha: float, n_bins: int) -> np.ndarray:
    """
    Mean rates of n_bins equal-probability categories of Gamma(alpha, 1/alpha).

    The rates average to 1.
    """
    if alpha <= 0:
        raise ValueError(f"Gamma shape must be positive, got {alpha}")
    if n_bins < 1:
        raise ValueError(f"Need at least one rate category, got {n_bins}")
    if n_bins == 1:
        return np.ones(1)
    cuts = stats.gamma.ppf(np.arange(n_bins + 1) / n_bins, alpha, scale=1.0 / alpha)
    # Partial means of the gamma through the regularized incomplete gamma of shape alpha+1
    cdf = gammainc(alpha + 1.0, cuts * alpha)
    rates = n_bins * np.diff(cdf)
    return rates / np.mean(rates)


@dataclass
class MultiRateModel:
    """
    Mixture of rate-scaled copies of a base model.

    Attributes:
        base: Base reversible model
        rates: Rate multiplier per component
        weights: Component probabilities (uniform if omitted)
    """

    base: ReversibleMarkovModel
    rates: np.ndarray
    weights: Optional[np.ndarray] = None

    def __post_init__(self):
        self.rates = np.asarray(self.rates, dtype=float)
        if self.rates.ndim != 1 or self.rates.size == 0 or np.any(self.rates < 0):
            raise ValueError(f"Invalid component rates: {self.rates}")
        if self.weights is None:
            self.weights = np.full(self.rates.size, 1.0 / self.rates.size)
        self.weights = np.asarray(self.weights, dtype=float)
        if self.weights.shape != self.rates.shape or not np.isclose(self.weights.sum(), 1.0):
            raise ValueError("Component weights must match the rates and sum to 1")

    @classmethod
    def gamma(
        cls,
        base: ReversibleMarkovModel,
        alpha: float,
        n_bins: int = 4,
        p_invariant: float = 0.0,
    ) -> "MultiRateModel":
        """
        Discrete-gamma rate heterogeneity, optionally with invariant sites.

        Invariant sites get rate 0 and probability p_invariant; the other
        rates are inflated by 1/(1 - p_invariant) to keep the mean rate at 1.
        """
        if not 0.0 <= p_invariant < 1.0:
            raise ValueError(f"p_invariant must be in [0, 1), got {p_invariant}")
        rates = gamma_rates(alpha, n_bins)
        weights = np.full(n_bins, 1.0 / n_bins)
        if p_invariant > 0:
            rates = np.insert(rates / (1.0 - p_invariant), 0, 0.0)
            weights = np.insert(weights * (1.0 - p_invariant), 0, p_invariant)
        logger.debug(f"Gamma rates (alpha={alpha:g}): {np.round(rates, 4)}")
        return cls(base, rates, weights)

    @property
    def alphabet_size(self) -> int:
        return self.base.alphabet_size

    @property
    def n_components(self) -> int:
        return self.rates.size

    @property
    def frequencies(self) -> np.ndarray:
        return self.base.frequencies

    @property
    def component_weights(self) -> np.ndarray:
        return self.weights

    def transition_p(self, t: float) -> np.ndarray:
        if t < 0:
            raise ValueError(f"Branch length must be non-negative, got {t}")
        return np.stack([self.base.transition_matrix(r * t) for r in self.rates])

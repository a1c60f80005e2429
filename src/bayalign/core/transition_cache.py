"""
Global transition matrix cache for substitution models.

MCMC revisits the same branch lengths constantly (every rejected proposal
puts the old length back), so P(t) = expm(Q t) is memoized by the rate
matrix and branch length across all models sharing a Q.
"""

from functools import lru_cache
import numpy as np
from scipy.linalg import expm


@lru_cache(maxsize=10000)
def compute_transition_matrix_cached(
    rate_matrix: bytes,
    n_states: int,
    branch_length: float,
) -> tuple:
    """
    Compute P(t) = expm(Q t) with LRU caching.

    Args:
        rate_matrix: Raw float64 bytes of the (n_states, n_states) rate matrix
        n_states: Number of states
        branch_length: Branch length (time)

    Returns:
        Tuple of matrix elements in row-major order (for hashability)
    """
    Q = np.frombuffer(rate_matrix, dtype=np.float64).reshape(n_states, n_states)
    P = expm(Q * branch_length)
    # Round-off can leave tiny negative entries
    P = np.clip(P, 0.0, None)
    return tuple(P.ravel())


def get_transition_matrix(
    rate_matrix: np.ndarray,
    branch_length: float,
    use_cache: bool = True,
) -> np.ndarray:
    """
    Get the transition probability matrix for a rate matrix.

    Args:
        rate_matrix: (n, n) rate matrix Q with rows summing to zero
        branch_length: Branch length (time)
        use_cache: Whether to use the global LRU cache

    Returns:
        (n, n) transition probability matrix
    """
    Q = np.ascontiguousarray(rate_matrix, dtype=np.float64)
    n = Q.shape[0]
    if use_cache:
        values = compute_transition_matrix_cached(Q.tobytes(), n, float(branch_length))
        return np.array(values).reshape(n, n)
    return np.clip(expm(Q * branch_length), 0.0, None)


def clear_transition_cache():
    """Clear the global transition matrix cache."""
    compute_transition_matrix_cached.cache_clear()


def get_cache_info():
    """Get cache statistics."""
    return compute_transition_matrix_cached.cache_info()

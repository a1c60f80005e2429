"""
Metropolis-Hastings branch-length sampling.

Each move copies the current Parameters (sharing every cache location),
mutates the copy through its setters, and either keeps the copy and
releases the old state or releases the copy. Rejection needs no rollback:
the current state was never modified.
"""

from dataclasses import dataclass, field
import logging
from typing import Callable, Dict, List, Optional, Tuple
import numpy as np

from .parameters import Parameters

logger = logging.getLogger(__name__)


@dataclass
class SamplerSettings:
    """
    Settings for run_chain.

    Attributes:
        n_iterations: Number of sweeps; each sweep proposes a new length for
            every branch once
        branch_sigma: Standard deviation of the log-scale branch proposal
        seed: Seed for the random generator (None for fresh entropy)
        log_every: Log progress every this many sweeps (0 disables)
        min_branch_length: Lower bound; smaller proposals are rejected
    """

    n_iterations: int = 100
    branch_sigma: float = 0.5
    seed: Optional[int] = None
    log_every: int = 10
    min_branch_length: float = 1e-8

    def __post_init__(self):
        if self.n_iterations < 0:
            raise ValueError(f"n_iterations must be non-negative, got {self.n_iterations}")
        if self.branch_sigma <= 0:
            raise ValueError(f"branch_sigma must be positive, got {self.branch_sigma}")


@dataclass
class MoveStats:
    """Proposal and acceptance counts per move name."""

    proposed: Dict[str, int] = field(default_factory=dict)
    accepted: Dict[str, int] = field(default_factory=dict)

    def record(self, move: str, accepted: bool) -> None:
        self.proposed[move] = self.proposed.get(move, 0) + 1
        self.accepted[move] = self.accepted.get(move, 0) + int(accepted)

    def acceptance_rate(self, move: str) -> float:
        n = self.proposed.get(move, 0)
        return self.accepted.get(move, 0) / n if n else 0.0

    def summary(self) -> str:
        return ", ".join(
            f"{m}: {self.accepted.get(m, 0)}/{n} ({self.acceptance_rate(m):.1%})"
            for m, n in sorted(self.proposed.items())
        )


def accept_mh(log_ratio: float, rng: np.random.Generator) -> bool:
    """Metropolis-Hastings acceptance for a log acceptance ratio."""
    if log_ratio >= 0:
        return True
    return bool(np.log(rng.random()) < log_ratio)


def change_branch_length(
    P: Parameters,
    b: int,
    rng: np.random.Generator,
    sigma: float = 0.5,
    stats: Optional[MoveStats] = None,
    min_length: float = 1e-8,
) -> Tuple[Parameters, bool]:
    """
    Propose t' = t * exp(sigma * N(0, 1)) for branch b.

    Args:
        P: Current state
        b: Undirected branch
        rng: Random generator
        sigma: Log-scale proposal standard deviation
        stats: Counters to update
        min_length: Proposals below this length are rejected

    Returns:
        (state, accepted): the proposal if accepted (P is released),
        otherwise P (the proposal is released)
    """
    t = P.branch_length(b)
    t_new = max(t, min_length) * float(np.exp(sigma * rng.standard_normal()))

    accepted = False
    if t_new >= min_length:
        P.select_root(b)
        old = P.log_probability()
        proposal = P.copy()
        proposal.set_branch_length(b, t_new)
        new = proposal.log_probability()
        # Hastings term of the multiplicative proposal
        log_ratio = new - old + np.log(t_new / max(t, min_length))
        accepted = accept_mh(log_ratio, rng)
        logger.debug(
            f"Branch {b}: {t:.5f} -> {t_new:.5f}, log ratio {log_ratio:.4f}, "
            f"{'accepted' if accepted else 'rejected'}"
        )
        if accepted:
            P.release()
            P = proposal
        else:
            proposal.release()

    if stats is not None:
        stats.record("branch-length", accepted)
    return P, accepted


def run_chain(
    P: Parameters,
    settings: SamplerSettings,
    rng: Optional[np.random.Generator] = None,
    callback: Optional[Callable[[int, Parameters], None]] = None,
) -> Tuple[Parameters, MoveStats, List[float]]:
    """
    Run branch-length MCMC.

    Args:
        P: Starting state (ownership passes to the chain)
        settings: Sampler settings
        rng: Random generator (default: seeded from settings.seed)
        callback: Called as callback(iteration, state) after every sweep

    Returns:
        (final state, move statistics, log-probability trace per sweep)
    """
    if rng is None:
        rng = np.random.default_rng(settings.seed)
    stats = MoveStats()
    trace: List[float] = []

    logger.info(
        f"Starting {settings.n_iterations} sweeps over {P.tree.n_branches} branches "
        f"(initial log probability {P.log_probability():.4f})"
    )
    for it in range(settings.n_iterations):
        for b in rng.permutation(P.tree.n_branches):
            P, _ = change_branch_length(
                P, int(b), rng, settings.branch_sigma, stats, settings.min_branch_length
            )
        lp = P.log_probability()
        trace.append(lp)
        if callback is not None:
            callback(it, P)
        if settings.log_every and (it + 1) % settings.log_every == 0:
            logger.info(f"Sweep {it + 1}/{settings.n_iterations}: log probability {lp:.4f}; {stats.summary()}")

    logger.info(f"Finished: {stats.summary()}")
    return P, stats, trace

"""
Token-based, reference-counted cache of conditional likelihoods.

Every live copy of the MCMC state (current, proposed, ...) holds a token.
A token maps each directed branch to a cache location: a
(columns, components, alphabet) matrix of conditional likelihoods plus a
per-column log scale. Copying a token shares all of its locations;
invalidating a shared location forks it, so a proposal never disturbs the
values cached for the state it was copied from.

Locations are allocated when a token id is first created and recycled
through a free pool for the lifetime of the cache. A location with zero
uses is always on the free pool.
"""

from dataclasses import dataclass
import logging
from typing import List, Optional, Tuple
import numpy as np

from .errors import CacheInvariantError
from .trees import Tree

logger = logging.getLogger(__name__)


@dataclass
class CacheConfig:
    """
    Allocation settings for a MultiLikelihoodCache.

    Attributes:
        initial_columns: Column capacity reserved up front
        extra_locations: Additional locations allocated each time a new
            token id is created
        dtype: Floating point type of the stored likelihoods
    """

    initial_columns: int = 0
    extra_locations: int = 0
    dtype: type = np.float64

    def __post_init__(self):
        if self.initial_columns < 0 or self.extra_locations < 0:
            raise ValueError("Cache sizes must be non-negative")


class MultiLikelihoodCache:
    """
    Shared pool of cache locations and the token -> location mappings.

    Usage:
        cache = MultiLikelihoodCache(n_components=4, alphabet_size=4)
        t1 = cache.claim_token(columns=100, branch_count=2 * tree.n_branches)
        cache.init_token(t1)
        t2 = cache.claim_token(100, 2 * tree.n_branches)
        cache.copy_token(t2, t1)        # t2 shares every location of t1
        cache.invalidate_one_branch(t2, 3)  # t2 now owns a fresh location
    """

    def __init__(
        self,
        n_components: int,
        alphabet_size: int,
        config: Optional[CacheConfig] = None,
    ):
        if n_components < 1 or alphabet_size < 1:
            raise ValueError("Cache needs at least one component and one letter")
        self.n_components = n_components
        self.alphabet_size = alphabet_size
        self.config = config or CacheConfig()
        self.columns = self.config.initial_columns

        # Per location
        self._likelihoods: List[np.ndarray] = []
        self._log_scale: List[np.ndarray] = []
        self._n_uses: List[int] = []
        self._up_to_date: List[bool] = []
        self._unused: List[int] = []

        # Per token
        self._mapping: List[List[int]] = []
        self._branch_count: List[int] = []
        self._length: List[int] = []
        self._active: List[bool] = []

    # ------------------------------------------------------------------
    # Locations
    # ------------------------------------------------------------------

    @property
    def n_locations(self) -> int:
        return len(self._n_uses)

    @property
    def n_free_locations(self) -> int:
        return len(self._unused)

    def n_uses(self, loc: int) -> int:
        """Number of (token, branch) slots mapped to a location."""
        return self._n_uses[loc]

    def allocate(self, n: int) -> None:
        """Add n empty locations to the free pool."""
        shape = (self.columns, self.n_components, self.alphabet_size)
        start = self.n_locations
        for i in range(n):
            self._likelihoods.append(np.zeros(shape, dtype=self.config.dtype))
            self._log_scale.append(np.zeros(self.columns))
            self._n_uses.append(0)
            self._up_to_date.append(False)
            self._unused.append(start + i)
        logger.debug(f"Allocated {n} cache locations ({self.n_locations} total)")

    def get_unused_location(self) -> int:
        """Take a location off the free pool: one use, stale."""
        if not self._unused:
            raise CacheInvariantError(
                f"No free cache location ({self.n_locations} allocated, all in use)"
            )
        loc = self._unused.pop()
        if self._n_uses[loc] != 0:
            raise CacheInvariantError(f"Free location {loc} has {self._n_uses[loc]} uses")
        self._n_uses[loc] = 1
        self._up_to_date[loc] = False
        return loc

    def release_location(self, loc: int) -> None:
        """Drop one use of a location, returning it to the pool at zero."""
        if self._n_uses[loc] <= 0:
            raise CacheInvariantError(f"Releasing location {loc}, which has no uses")
        self._n_uses[loc] -= 1
        if self._n_uses[loc] == 0:
            self._up_to_date[loc] = False
            self._unused.append(loc)

    # ------------------------------------------------------------------
    # Tokens
    # ------------------------------------------------------------------

    @property
    def n_tokens(self) -> int:
        return len(self._active)

    def active_tokens(self) -> List[int]:
        return [t for t, a in enumerate(self._active) if a]

    def is_active(self, token: int) -> bool:
        return 0 <= token < self.n_tokens and self._active[token]

    def _check_token(self, token: int) -> None:
        if not self.is_active(token):
            raise CacheInvariantError(f"Token {token} is not active")

    def _check_branch(self, token: int, b: int) -> int:
        self._check_token(token)
        if not 0 <= b < self._branch_count[token]:
            raise IndexError(f"Branch {b} outside 0..{self._branch_count[token] - 1} of token {token}")
        loc = self._mapping[token][b]
        if loc < 0:
            raise CacheInvariantError(f"Token {token} has no location for branch {b}")
        return loc

    def add_token(self, branch_count: int) -> int:
        """Create a new (inactive) token id and the locations it may need."""
        token = self.n_tokens
        self._active.append(False)
        self._length.append(0)
        self._branch_count.append(branch_count)
        self._mapping.append([-1] * branch_count)
        self.allocate(branch_count + self.config.extra_locations)
        return token

    def claim_token(self, columns: int, branch_count: int) -> int:
        """
        Get an active token for `branch_count` branches and `columns` columns.

        A released token id is reused when there is one. The token has no
        locations until init_token or copy_token is called.
        """
        if branch_count < 0 or columns < 0:
            raise ValueError("Token sizes must be non-negative")
        free = [t for t, a in enumerate(self._active) if not a]
        if free:
            token = free[0]
            self._branch_count[token] = branch_count
            self._mapping[token] = [-1] * branch_count
        else:
            token = self.add_token(branch_count)

        needed = sum(self._branch_count[t] for t in self.active_tokens()) + branch_count
        if needed > self.n_locations:
            self.allocate(needed - self.n_locations)

        self._active[token] = True
        self.set_length(token, columns)
        return token

    def init_token(self, token: int) -> None:
        """Give every branch of the token its own stale location."""
        self._check_token(token)
        self._drop_mapping(token)
        self._mapping[token] = [self.get_unused_location() for _ in range(self._branch_count[token])]

    def copy_token(self, dst: int, src: int) -> None:
        """Map dst's branches to the same locations as src's; no data is copied."""
        self._check_token(dst)
        self._check_token(src)
        if self._branch_count[dst] != self._branch_count[src]:
            raise ValueError(
                f"Cannot copy token {src} ({self._branch_count[src]} branches) "
                f"onto token {dst} ({self._branch_count[dst]} branches)"
            )
        if dst == src:
            return
        self._drop_mapping(dst)
        self._mapping[dst] = list(self._mapping[src])
        for loc in self._mapping[dst]:
            if loc >= 0:
                self._n_uses[loc] += 1
        self.set_length(dst, self._length[src])

    def release_token(self, token: int) -> None:
        """Release every location of the token and deactivate it."""
        self._check_token(token)
        self._drop_mapping(token)
        self._active[token] = False

    def _drop_mapping(self, token: int) -> None:
        mapping = self._mapping[token]
        for b, loc in enumerate(mapping):
            if loc >= 0:
                self.release_location(loc)
                mapping[b] = -1

    def location(self, token: int, b: int) -> int:
        return self._check_branch(token, b)

    def length(self, token: int) -> int:
        self._check_token(token)
        return self._length[token]

    def branch_count(self, token: int) -> int:
        self._check_token(token)
        return self._branch_count[token]

    def set_length(self, token: int, columns: int) -> None:
        """
        Set a token's column count, growing every location if needed.

        Capacity never shrinks.
        """
        self._check_token(token)
        if columns > self.columns:
            grow = columns - self.columns
            for loc in range(self.n_locations):
                pad = np.zeros((grow, self.n_components, self.alphabet_size), dtype=self.config.dtype)
                self._likelihoods[loc] = np.concatenate([self._likelihoods[loc], pad])
                self._log_scale[loc] = np.concatenate([self._log_scale[loc], np.zeros(grow)])
            logger.debug(f"Grew cache capacity from {self.columns} to {columns} columns")
            self.columns = columns
        self._length[token] = columns

    # ------------------------------------------------------------------
    # Validity
    # ------------------------------------------------------------------

    def is_up_to_date(self, token: int, b: int) -> bool:
        return self._up_to_date[self._check_branch(token, b)]

    def validate_branch(self, token: int, b: int) -> None:
        """Mark (token, b) up to date after its values were recomputed."""
        self._up_to_date[self._check_branch(token, b)] = True

    def invalidate_one_branch(self, token: int, b: int) -> None:
        """
        Mark (token, b) stale.

        A location shared with other tokens is left untouched for them:
        this token moves to a fresh location of its own instead.
        """
        loc = self._check_branch(token, b)
        if self._n_uses[loc] > 1:
            self._mapping[token][b] = self.get_unused_location()
            self.release_location(loc)
        else:
            self._up_to_date[loc] = False

    def invalidate_all(self, token: int) -> None:
        self._check_token(token)
        for b in range(self._branch_count[token]):
            self.invalidate_one_branch(token, b)

    # ------------------------------------------------------------------
    # Data access
    # ------------------------------------------------------------------

    def read(self, token: int, b: int) -> Tuple[np.ndarray, np.ndarray]:
        """
        Read-only (likelihoods, log_scale) of an up-to-date branch.

        Raises:
            CacheInvariantError: If the location is stale
        """
        loc = self._check_branch(token, b)
        if not self._up_to_date[loc]:
            raise CacheInvariantError(f"Reading stale cache entry for token {token}, branch {b}")
        n = self._length[token]
        likelihoods = self._likelihoods[loc][:n].view()
        log_scale = self._log_scale[loc][:n].view()
        likelihoods.flags.writeable = False
        log_scale.flags.writeable = False
        return likelihoods, log_scale

    def writable(self, token: int, b: int) -> Tuple[np.ndarray, np.ndarray]:
        """
        Exclusive (likelihoods, log_scale) buffers for (token, b).

        A shared location is forked first. The entry is stale until
        validate_branch is called.
        """
        loc = self._check_branch(token, b)
        if self._n_uses[loc] > 1:
            self.invalidate_one_branch(token, b)
            loc = self._mapping[token][b]
        self._up_to_date[loc] = False
        n = self._length[token]
        return self._likelihoods[loc][:n], self._log_scale[loc][:n]

    def __repr__(self) -> str:
        return (
            f"MultiLikelihoodCache(tokens={len(self.active_tokens())}/{self.n_tokens}, "
            f"locations={self.n_locations - self.n_free_locations}/{self.n_locations}, "
            f"columns={self.columns})"
        )


class LikelihoodCache:
    """
    One token's view of a MultiLikelihoodCache.

    Slots are directed branches (2 * tree.n_branches). The invalidate_*
    helpers apply invalidate_one_branch to the directed branches whose
    conditional likelihoods depend on the changed part of the tree.

    Attributes:
        cache: Shared location pool
        token: This view's token
        root: Node at which the likelihood is evaluated
    """

    def __init__(
        self,
        tree: Tree,
        columns: int,
        cache: MultiLikelihoodCache,
        root: Optional[int] = None,
    ):
        self.cache = cache
        self.n_slots = tree.n_directed_branches
        self.token: Optional[int] = cache.claim_token(columns, self.n_slots)
        cache.init_token(self.token)
        self.root = tree.n_nodes - 1 if root is None else root

    @classmethod
    def _shared(cls, other: "LikelihoodCache") -> "LikelihoodCache":
        view = cls.__new__(cls)
        view.cache = other.cache
        view.n_slots = other.n_slots
        view.token = other.cache.claim_token(other.length, other.n_slots)
        view.cache.copy_token(view.token, other._token())
        view.root = other.root
        return view

    def _token(self) -> int:
        if self.token is None:
            raise CacheInvariantError("Likelihood cache view used after release")
        return self.token

    def copy(self) -> "LikelihoodCache":
        """New view sharing every location with this one."""
        return LikelihoodCache._shared(self)

    def release(self) -> None:
        """Return the token to the cache. Safe to call more than once."""
        if self.token is not None:
            self.cache.release_token(self.token)
            self.token = None

    @property
    def released(self) -> bool:
        return self.token is None

    @property
    def length(self) -> int:
        return self.cache.length(self._token())

    def set_length(self, columns: int) -> None:
        self.cache.set_length(self._token(), columns)

    def up_to_date(self, d: int) -> bool:
        return self.cache.is_up_to_date(self._token(), d)

    def validate_branch(self, d: int) -> None:
        self.cache.validate_branch(self._token(), d)

    def read(self, d: int) -> Tuple[np.ndarray, np.ndarray]:
        return self.cache.read(self._token(), d)

    def writable(self, d: int) -> Tuple[np.ndarray, np.ndarray]:
        return self.cache.writable(self._token(), d)

    def location(self, d: int) -> int:
        return self.cache.location(self._token(), d)

    def invalidate_all(self) -> None:
        self.cache.invalidate_all(self._token())

    def _invalidate(self, branches) -> None:
        token = self._token()
        for d in branches:
            self.cache.invalidate_one_branch(token, d)

    def invalidate_directed_branch(self, tree: Tree, d: int) -> None:
        """Directed branch d and everything downstream of it."""
        self._invalidate(tree.branches_after(d))

    def invalidate_branch(self, tree: Tree, b: int) -> None:
        """Both directions of undirected branch b, and everything downstream."""
        self.invalidate_directed_branch(tree, 2 * b)
        self.invalidate_directed_branch(tree, 2 * b + 1)

    def invalidate_node(self, tree: Tree, n: int) -> None:
        """Every directed branch whose likelihood includes node n's data."""
        self._invalidate(tree.branches_from_node(n))

    def invalidate_branch_alignment(self, tree: Tree, b: int) -> None:
        """
        After the alignment along branch b changed: everything downstream of
        either direction of b, but not b itself.
        """
        self._invalidate(tree.branches_after(2 * b)[1:])
        self._invalidate(tree.branches_after(2 * b + 1)[1:])

    def select_root(self, tree: Tree, b: int) -> None:
        """Move the root to the endpoint of branch b on the old root's side."""
        d = 2 * b
        if tree.subtree_contains(tree.reverse(d), self.root):
            d = tree.reverse(d)
        self.root = tree.target(d)

    def __enter__(self) -> "LikelihoodCache":
        return self

    def __exit__(self, *exc) -> None:
        self.release()

    def __repr__(self) -> str:
        return f"LikelihoodCache(token={self.token}, slots={self.n_slots}, root={self.root})"

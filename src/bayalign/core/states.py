"""
Composite state spaces for n-way alignment HMMs.

A composite state describes one alignment column restricted to a small
connected set of tree nodes (positions) joined by sub-alignment edges:

- 2-way: positions 0-1, one edge (the pairwise HMM itself)
- 3-way: centre 0 with neighbors 1, 2, 3; edges (0,1), (0,2), (0,3)
- 5-way: internal branch 4-5, with 0, 1 hanging off 4 and 2, 3 off 5;
  edges (4,0), (4,1), (5,2), (5,3), (4,5)

States are bit-packed integer codes:

- bits 0..k-1: presence mask, which positions hold a character
- bits k+2e, k+2e+1: pairwise state of edge e (M, G1, G2; never E)
- bit k+2E+e: edge e is not present in this column (neither endpoint has
  a character); its state field then remembers the edge's last state

With k=4, E=3 this is the familiar 3-way layout (presence in bits 3..0,
sub-states in bits 9..4, not-present mask in bits 12..10).
"""

from dataclasses import dataclass, field
from functools import lru_cache
from itertools import product
from typing import Dict, List, Sequence, Tuple

from .trees import all_characters_connected


# Pairwise HMM states
M = 0
G1 = 1  # only the first endpoint of the edge has a character
G2 = 2  # only the second endpoint has a character
E = 3

PAIR_STATE_NAMES = {M: "M", G1: "G1", G2: "G2", E: "E"}


def pair_state(first_present: bool, second_present: bool) -> int:
    """Pairwise state implied by the presence of an edge's two endpoints (-1 if neither)."""
    if first_present and second_present:
        return M
    if first_present:
        return G1
    if second_present:
        return G2
    return -1


@dataclass
class StateSpace:
    """
    The legal composite states over a small tree of alignment positions.

    Attributes:
        n_positions: Number of positions (tree nodes) k
        edges: Sub-alignment edges as (first, second) position pairs
        states_list: Legal state codes in ascending order; a state's index
            in this list is the value stored in a Path
        name: Short label for logs and tables
    """

    n_positions: int
    edges: List[Tuple[int, int]]
    name: str = "custom"
    states_list: List[int] = field(init=False, repr=False)

    def __post_init__(self):
        for a, b in self.edges:
            if not (0 <= a < self.n_positions and 0 <= b < self.n_positions) or a == b:
                raise ValueError(f"Invalid sub-alignment edge ({a}, {b})")
        self._adjacency: List[List[int]] = [[] for _ in range(self.n_positions)]
        for a, b in self.edges:
            self._adjacency[a].append(b)
            self._adjacency[b].append(a)
        if len(self.edges) != self.n_positions - 1 or not all_characters_connected(
            self._adjacency, [True] * self.n_positions
        ):
            raise ValueError("Sub-alignment edges must form a tree over every position")

        # Edges point away from the root position: (parent, child)
        self.root = self.edges[0][0]
        self.depth = [-1] * self.n_positions
        self.depth[self.root] = 0
        frontier = [self.root]
        while frontier:
            n = frontier.pop()
            for m in self._adjacency[n]:
                if self.depth[m] < 0:
                    self.depth[m] = self.depth[n] + 1
                    frontier.append(m)
        for a, b in self.edges:
            if self.depth[b] != self.depth[a] + 1:
                raise ValueError(f"Edge ({a}, {b}) does not point away from position {self.root}")

        self.states_list = self.construct_states()
        self._index: Dict[int, int] = {code: i for i, code in enumerate(self.states_list)}

    # ------------------------------------------------------------------
    # Bit layout
    # ------------------------------------------------------------------

    @property
    def n_edges(self) -> int:
        return len(self.edges)

    @property
    def presence_bits(self) -> int:
        return (1 << self.n_positions) - 1

    def _substate_shift(self, e: int) -> int:
        return self.n_positions + 2 * e

    def _not_present_shift(self, e: int) -> int:
        return self.n_positions + 2 * self.n_edges + e

    def encode(self, presence: int, substates: Sequence[int]) -> int:
        """
        Pack a presence mask and per-edge states into a raw code.

        Edges with neither endpoint present get their not-present bit set.
        """
        code = presence
        for e, (a, b) in enumerate(self.edges):
            code |= (substates[e] & 3) << self._substate_shift(e)
            if not (presence >> a) & 1 and not (presence >> b) & 1:
                code |= 1 << self._not_present_shift(e)
        return code

    # ------------------------------------------------------------------
    # Enumeration
    # ------------------------------------------------------------------

    def construct_states(self) -> List[int]:
        """
        Enumerate legal composite codes.

        A presence mask is legal if it is non-empty and its characters are
        connected through the edges. Edges touching a present position take
        the pairwise state that presence implies; each not-present edge may
        remember any of M, G1, G2.
        """
        codes = []
        for presence in range(1, 1 << self.n_positions):
            present = [bool((presence >> i) & 1) for i in range(self.n_positions)]
            if not all_characters_connected(self._adjacency, present):
                continue
            fixed = [pair_state(present[a], present[b]) for a, b in self.edges]
            free = [e for e, s in enumerate(fixed) if s < 0]
            for remembered in product((M, G1, G2), repeat=len(free)):
                substates = list(fixed)
                for e, s in zip(free, remembered):
                    substates[e] = s
                codes.append(self.encode(presence, substates))
        return sorted(codes)

    def get_state_emit(self) -> List[int]:
        """The ordered list of legal (emitting) state codes."""
        return list(self.states_list)

    @property
    def nstates(self) -> int:
        """Number of legal states, not counting End."""
        return len(self.states_list)

    @property
    def endstate(self) -> int:
        """Index of the End state."""
        return len(self.states_list)

    def __len__(self) -> int:
        return len(self.states_list)

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def findstate(self, code: int) -> int:
        """Index of an exact state code, or -1 if it is not legal."""
        return self._index.get(code, -1)

    def bits_to_states(self, bits: int) -> int:
        """
        Canonical state index for a raw bit pattern, or -1.

        Only the presence bits and the remembered states of not-present
        edges are read; everything the presence mask implies is rebuilt.
        """
        presence = bits & self.presence_bits
        if presence == 0:
            return -1
        substates = []
        for e, (a, b) in enumerate(self.edges):
            s = pair_state(bool((presence >> a) & 1), bool((presence >> b) & 1))
            if s < 0:
                s = (bits >> self._substate_shift(e)) & 3
                if s == E:
                    return -1
            substates.append(s)
        return self.findstate(self.encode(presence, substates))

    def order_key(self, presence: int) -> Tuple[int, int, int]:
        """
        Sort key of a column in canonical column order.

        Columns are keyed by their top position (the present position
        nearest the root): shallower tops first, then by position, then by
        mask. For two presence-disjoint columns joined by an edge this puts
        the G1 column of that edge before its G2 column.
        """
        present = [i for i in range(self.n_positions) if (presence >> i) & 1]
        if not present:
            raise ValueError("Empty presence mask has no column order")
        top = min(present, key=lambda i: (self.depth[i], i))
        return (self.depth[top], top, presence)

    def code(self, S: int) -> int:
        """State code for state index S (End has code 0)."""
        if S == self.endstate:
            return 0
        if not 0 <= S < len(self.states_list):
            raise IndexError(f"State index {S} outside 0..{self.endstate}")
        return self.states_list[S]

    # ------------------------------------------------------------------
    # Named accessors
    # ------------------------------------------------------------------

    def presence_mask(self, S: int) -> int:
        return self.code(S) & self.presence_bits

    def substate(self, S: int, e: int) -> int:
        """State of edge e in state S (E for the End state)."""
        if S == self.endstate:
            return E
        return (self.code(S) >> self._substate_shift(e)) & 3

    def substates(self, S: int) -> List[int]:
        return [self.substate(S, e) for e in range(self.n_edges)]

    def not_present_mask(self, S: int) -> int:
        return (self.code(S) >> self._not_present_shift(0)) & ((1 << self.n_edges) - 1)

    def advances(self, S: int, e: int) -> bool:
        """Does edge e emit a pairwise column in state S?"""
        return S != self.endstate and not (self.not_present_mask(S) >> e) & 1

    def emits(self, S: int, position: int) -> bool:
        """Does state S consume a character of the sequence at `position`?"""
        return bool((self.presence_mask(S) >> position) & 1)

    def dl(self, S: int) -> bool:
        """Does S emit in sequence 0?"""
        return self.emits(S, 0)

    def di(self, S: int) -> bool:
        """Does S emit in sequence 1?"""
        return self.emits(S, 1)

    def dj(self, S: int) -> bool:
        """Does S emit in sequence 2?"""
        return self.emits(S, 2)

    def dk(self, S: int) -> bool:
        """Does S emit in sequence 3?"""
        return self.emits(S, 3)

    def state_name(self, S: int) -> str:
        """Readable label, e.g. '1011/M,G1,-G2' (leading '-' marks remembered states)."""
        if S == self.endstate:
            return "E"
        presence = format(self.presence_mask(S), f"0{self.n_positions}b")
        parts = []
        for e in range(self.n_edges):
            prefix = "" if self.advances(S, e) else "-"
            parts.append(prefix + PAIR_STATE_NAMES[self.substate(S, e)])
        return f"{presence}/{','.join(parts)}"

    def __repr__(self) -> str:
        return f"StateSpace({self.name}, positions={self.n_positions}, states={self.nstates}+E)"


TWO_WAY_EDGES = [(0, 1)]
THREE_WAY_EDGES = [(0, 1), (0, 2), (0, 3)]
FIVE_WAY_EDGES = [(4, 0), (4, 1), (5, 2), (5, 3), (4, 5)]


@lru_cache(maxsize=None)
def get_state_space(n_way: int) -> StateSpace:
    """
    Shared state space for the 2-, 3- or 5-way alignment HMM.

    The node subsets are a branch, a node with its three neighbors, or an
    internal branch with its four neighbors.
    """
    if n_way == 2:
        return StateSpace(2, list(TWO_WAY_EDGES), name="2-way")
    if n_way == 3:
        return StateSpace(4, list(THREE_WAY_EDGES), name="3-way")
    if n_way == 5:
        return StateSpace(6, list(FIVE_WAY_EDGES), name="5-way")
    raise ValueError(f"Unsupported alignment HMM: {n_way}-way (expected 2, 3 or 5)")


def state_space_for_nodes(nodes: Sequence[int]) -> StateSpace:
    """State space matching a node subset from Tree.get_nodes_*way."""
    by_size = {2: 2, 4: 3, 6: 5}
    if len(nodes) not in by_size:
        raise ValueError(f"No alignment HMM for a subset of {len(nodes)} nodes")
    return get_state_space(by_size[len(nodes)])

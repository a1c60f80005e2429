"""
Restricting an alignment to a node subset in canonical column order.

Many column orders describe the same set of pairwise alignments along the
branches of a node subset: two adjacent columns that share no character
can be swapped freely. getorder picks one representative order, the same
one the composite HMMs in transitions.py allow, so that walking getorder
columns always yields a path the HMM can score.
"""

import heapq
from typing import Dict, List, Optional, Sequence
import numpy as np

from .alignment import Alignment
from .alphabet import GAP
from .errors import MalformedAlignmentError
from .states import StateSpace, pair_state, M, G1, G2, state_space_for_nodes


def presence_masks(A: Alignment, nodes: Sequence[int]) -> List[int]:
    """Per-column bit mask of which subset nodes hold a character."""
    present = A.array[:, list(nodes)] != GAP
    weights = 1 << np.arange(len(nodes), dtype=np.int64)
    return [int(x) for x in (present * weights).sum(axis=1)]


def _order_constraints(
    columns: List[int], masks: Dict[int, int], space: StateSpace
) -> Dict[int, List[int]]:
    """Successor lists of the column order constraints."""
    after: Dict[int, List[int]] = {c: [] for c in columns}

    # Characters of one node stay in sequence order
    for i in range(space.n_positions):
        holding = [c for c in columns if (masks[c] >> i) & 1]
        for c1, c2 in zip(holding[:-1], holding[1:]):
            after[c1].append(c2)

    # Between two Match columns of an edge, its G1 columns come first
    for a, b in space.edges:
        last_g1: Optional[int] = None
        first_g2: Optional[int] = None
        for c in columns:
            s = pair_state(bool((masks[c] >> a) & 1), bool((masks[c] >> b) & 1))
            if s == M:
                if last_g1 is not None and first_g2 is not None:
                    after[last_g1].append(first_g2)
                last_g1 = first_g2 = None
            elif s == G1:
                last_g1 = c
            elif s == G2 and first_g2 is None:
                first_g2 = c
        if last_g1 is not None and first_g2 is not None:
            after[last_g1].append(first_g2)
    return after


def getorder(
    A: Alignment, nodes: Sequence[int], space: Optional[StateSpace] = None
) -> List[int]:
    """
    Columns of A holding a character for some subset node, in canonical order.

    The order is a topological sort of the non-empty columns. Columns that
    share a node keep their order, and for every sub-alignment edge all
    G1 columns between two Match columns precede the G2 columns there.
    Among the columns free to go next, the one with the smallest column
    key (StateSpace.order_key) is taken.

    Args:
        A: Alignment
        nodes: Tree nodes, one per state-space position
        space: State space of the node subset (looked up from len(nodes)
            if omitted)

    Returns:
        Column indices of A

    Raises:
        MalformedAlignmentError: If the constraints cannot be satisfied
    """
    if space is None:
        space = state_space_for_nodes(nodes)
    if len(nodes) != space.n_positions:
        raise ValueError(f"{space.name} state space needs {space.n_positions} nodes, got {len(nodes)}")

    all_masks = presence_masks(A, nodes)
    columns = [c for c, mask in enumerate(all_masks) if mask]
    masks = {c: all_masks[c] for c in columns}
    after = _order_constraints(columns, masks, space)

    n_before = {c: 0 for c in columns}
    for c in columns:
        for c2 in after[c]:
            n_before[c2] += 1

    heap = [(space.order_key(masks[c]), c) for c in columns if n_before[c] == 0]
    heapq.heapify(heap)
    order: List[int] = []
    while heap:
        _, c = heapq.heappop(heap)
        order.append(c)
        for c2 in after[c]:
            n_before[c2] -= 1
            if n_before[c2] == 0:
                heapq.heappush(heap, (space.order_key(masks[c2]), c2))

    if len(order) != len(columns):
        stuck = sorted(set(columns) - set(order))
        raise MalformedAlignmentError(
            f"Columns {stuck} cannot be put in a consistent {space.name} order"
        )
    return order


def project(A: Alignment, nodes: Sequence[int], space: Optional[StateSpace] = None) -> Alignment:
    """
    The alignment of just `nodes`, in getorder column order.

    Columns empty for the subset are dropped. A is not modified.
    """
    order = getorder(A, nodes, space)
    array = A.array[np.asarray(order, dtype=int)][:, list(nodes)]
    return Alignment(array, A.alphabet, [A.names[n] for n in nodes])

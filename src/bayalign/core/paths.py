"""
Conversion between explicit alignments and composite HMM paths.

A path is the list of composite state indices visited by an alignment
restricted to a node subset, one per column in getorder order; End is
implicit. get_path reads a path off an alignment and construct rebuilds an
alignment from a path, keeping every character of the old alignment.
"""

import logging
from typing import List, Optional, Sequence

import numpy as np

from .alignment import Alignment, column_lookup
from .alphabet import GAP
from .errors import MalformedAlignmentError
from .projection import getorder, presence_masks
from .states import StateSpace, M, get_state_space, state_space_for_nodes
from .trees import Tree

logger = logging.getLogger(__name__)


def sequence_columns(A: Alignment, nodes: Sequence[int]) -> List[List[int]]:
    """For each subset node, the ordered columns of A holding its characters."""
    lookup = column_lookup(A)
    return [lookup[n] for n in nodes]


def get_path(
    A: Alignment,
    nodes: Sequence[int],
    space: Optional[StateSpace] = None,
    columns: Optional[Sequence[int]] = None,
) -> List[int]:
    """
    Composite state path of A restricted to `nodes`.

    Edges with no character at either end remember the state they were last
    in (Match before the first column).

    construct inverts this only for paths with nonzero probability
    under create_q and get_start_p: a pairwise [G2, G1] reads back as
    [G1, G2].

    Args:
        A: Alignment over all tree nodes
        nodes: Tree nodes, one per state-space position
        space: State space of the node subset (looked up from len(nodes)
            if omitted)
        columns: Columns to walk (default: getorder(A, nodes))

    Returns:
        State indices, one per walked column

    Raises:
        MalformedAlignmentError: If a column's presence pattern has no
            legal state
    """
    if space is None:
        space = state_space_for_nodes(nodes)
    if columns is None:
        columns = getorder(A, nodes, space)
    masks = presence_masks(A, nodes)

    remembered = [M] * space.n_edges
    path = []
    for c in columns:
        presence = masks[c]
        S = space.bits_to_states(space.encode(presence, remembered))
        if S < 0:
            pattern = format(presence, f"0{space.n_positions}b")[::-1]
            raise MalformedAlignmentError(
                f"Column {c} has presence pattern {pattern} over nodes {list(nodes)}, "
                f"which is not a legal {space.name} state"
            )
        path.append(S)
        remembered = space.substates(S)
    return path


def get_path_2way(A: Alignment, n0: int, n1: int) -> List[int]:
    """Pairwise path (M, G1, G2) between nodes n0 and n1."""
    return get_path(A, [n0, n1], get_state_space(2))


def get_path_3way(A: Alignment, n0: int, n1: int, n2: int, n3: int) -> List[int]:
    """3-way path around centre node n0 with neighbors n1, n2, n3."""
    return get_path(A, [n0, n1, n2, n3], get_state_space(3))


def node_groups(tree: Tree, nodes: Sequence[int]) -> List[List[int]]:
    """
    Tree nodes owned by each subset node.

    A subset node owns itself and every node reachable from it without
    passing through another subset node.
    """
    owner = [-1] * tree.n_nodes
    for i, n in enumerate(nodes):
        if owner[n] >= 0:
            raise ValueError(f"Node {n} appears twice in subset {list(nodes)}")
        owner[n] = i
    groups = [[n] for n in nodes]
    for i, n in enumerate(nodes):
        frontier = [n]
        while frontier:
            x = frontier.pop()
            for y in tree.neighbors(x):
                if owner[y] < 0:
                    owner[y] = i
                    groups[i].append(y)
                    frontier.append(y)
    return groups


def construct(
    old: Alignment,
    path: Sequence[int],
    nodes: Sequence[int],
    tree: Tree,
    seqs: Optional[Sequence[Sequence[int]]] = None,
    space: Optional[StateSpace] = None,
) -> Alignment:
    """
    Build the alignment whose restriction to `nodes` follows `path`.

    Each path step becomes one column. When state S emits at position i,
    the next character of nodes[i] is placed there together with the cells
    of the nodes nodes[i] owns (see node_groups), copied from the old column
    that held that character. Subset nodes that do not emit get GAP. Old
    columns with characters only outside the subset are kept unchanged and
    placed just before the next column of the group they belong to.

    get_path recovers `path` only when it is canonical, i.e. has nonzero
    probability under create_q and get_start_p.

    Args:
        old: Alignment supplying every character
        path: Composite state indices
        nodes: Tree nodes, one per state-space position
        tree: Tree the alignment rows belong to
        seqs: seqs[i] lists the columns of `old` holding nodes[i]'s
            characters (default: sequence_columns(old, nodes))
        space: State space of the node subset

    Returns:
        New alignment; `old` is not modified

    Raises:
        MalformedAlignmentError: If a state index is out of range, a
            sequence runs out before the path does, or characters are left
            over when the path ends
    """
    if space is None:
        space = state_space_for_nodes(nodes)
    if len(nodes) != space.n_positions:
        raise ValueError(f"{space.name} state space needs {space.n_positions} nodes, got {len(nodes)}")
    if seqs is None:
        seqs = sequence_columns(old, nodes)

    groups = node_groups(tree, nodes)
    owner = np.full(old.n_sequences, -1, dtype=int)
    for i, group in enumerate(groups):
        owner[group] = i

    # Old columns with no subset character, per owning group
    subset_present = np.any(old.array[:, list(nodes)] != GAP, axis=1)
    pending: List[List[int]] = [[] for _ in nodes]
    for c in range(old.length):
        if subset_present[c]:
            continue
        holders = np.nonzero(old.array[c] != GAP)[0]
        if len(holders):
            pending[owner[holders[0]]].append(c)
    flushed = [0] * len(nodes)

    next_char = [0] * len(nodes)
    out: List[np.ndarray] = []

    def flush(before: List[Optional[int]]) -> None:
        """Emit pending columns of each group with old index below before[g]."""
        ready = []
        for g, limit in enumerate(before):
            if limit is None:
                continue
            while flushed[g] < len(pending[g]) and pending[g][flushed[g]] < limit:
                ready.append(pending[g][flushed[g]])
                flushed[g] += 1
        for c in sorted(ready):
            out.append(old.array[c].copy())

    for step, S in enumerate(path):
        S = int(S)
        if not 0 <= S < space.nstates:
            raise MalformedAlignmentError(
                f"Path step {step} is state {S}, outside 0..{space.nstates - 1} of the {space.name} states"
            )
        emitting = [i for i in range(space.n_positions) if space.emits(S, i)]
        for i in emitting:
            if next_char[i] >= len(seqs[i]):
                raise MalformedAlignmentError(
                    f"Sequence of node {nodes[i]} ran out at path step {step} "
                    f"({len(seqs[i])} characters)"
                )

        flush([seqs[i][next_char[i]] if i in emitting else None for i in range(len(nodes))])

        column = np.full(old.n_sequences, GAP, dtype=np.int64)
        for i in emitting:
            source = seqs[i][next_char[i]]
            column[groups[i]] = old.array[source, groups[i]]
            next_char[i] += 1
        out.append(column)

    for i in range(len(nodes)):
        if next_char[i] != len(seqs[i]):
            raise MalformedAlignmentError(
                f"Path ended with {len(seqs[i]) - next_char[i]} characters of node {nodes[i]} unused"
            )
    flush([old.length] * len(nodes))

    if out:
        array = np.vstack(out)
    else:
        array = np.empty((0, old.n_sequences), dtype=np.int64)
    logger.debug(f"Constructed {array.shape[0]} columns from a {space.name} path of {len(path)} steps")
    return Alignment(array, old.alphabet, old.names)

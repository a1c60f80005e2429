"""
Unrooted phylogenetic trees with directed-branch bookkeeping.

Each undirected branch b joins two nodes and owns a length. It has two
directed versions, 2b and 2b+1, so the reverse of directed branch d is
d ^ 1. Conditional likelihoods are cached per directed branch, which is
why traversal helpers here speak in directed branches.

Leaves are numbered first (0..n_leaves-1) so that alignment rows for the
observed sequences come before internal-node rows.
"""

from collections import deque
from pathlib import Path
from typing import Iterable, List, Optional, Sequence, Tuple, Union
import numpy as np


def all_characters_connected(
    adjacency: Sequence[Sequence[int]],
    present: Sequence[bool],
    ignore: Iterable[int] = (),
) -> bool:
    """
    Are all present, un-ignored nodes connected through present nodes?

    Characters in one alignment column must form a connected subtree: two
    characters cannot be homologous through a node that lacks one.

    Args:
        adjacency: Neighbor lists, one per node
        present: Presence flag per node
        ignore: Nodes excluded from the check

    Returns:
        True if the present nodes form one connected component (or none)
    """
    ignored = set(ignore)
    nodes = [n for n, p in enumerate(present) if p and n not in ignored]
    if not nodes:
        return True
    wanted = set(nodes)
    seen = {nodes[0]}
    queue = deque([nodes[0]])
    while queue:
        n = queue.popleft()
        for m in adjacency[n]:
            if m in wanted and m not in seen:
                seen.add(m)
                queue.append(m)
    return len(seen) == len(wanted)


class Tree:
    """
    Unrooted tree with per-branch lengths.

    Attributes:
        n_nodes: Total number of nodes
        edges: (node, node) pairs, indexed by undirected branch
        lengths: Branch lengths indexed by undirected branch
        names: Node names (leaves first)
    """

    def __init__(
        self,
        n_nodes: int,
        edges: Sequence[Tuple[int, int]],
        lengths: Optional[Sequence[float]] = None,
        names: Optional[Sequence[str]] = None,
    ):
        self.n_nodes = n_nodes
        self.edges: List[Tuple[int, int]] = [(int(a), int(b)) for a, b in edges]
        if lengths is None:
            lengths = np.ones(len(self.edges))
        self.lengths = np.asarray(lengths, dtype=float).copy()
        if self.lengths.shape != (len(self.edges),):
            raise ValueError(f"Expected {len(self.edges)} branch lengths, got {self.lengths.shape}")
        if np.any(self.lengths < 0):
            raise ValueError("Branch lengths must be non-negative")
        self.names: List[str] = list(names) if names is not None else [f"node{i}" for i in range(n_nodes)]

        self._out: List[List[int]] = [[] for _ in range(n_nodes)]
        for b, (u, v) in enumerate(self.edges):
            if u == v or not (0 <= u < n_nodes and 0 <= v < n_nodes):
                raise ValueError(f"Invalid branch {b}: ({u}, {v})")
            self._out[u].append(2 * b)
            self._out[v].append(2 * b + 1)

        if len(self.edges) != max(n_nodes - 1, 0):
            raise ValueError(f"A tree on {n_nodes} nodes needs {n_nodes - 1} branches, got {len(self.edges)}")
        if not all_characters_connected(self.adjacency, [True] * n_nodes):
            raise ValueError("Tree is not connected")

    # ------------------------------------------------------------------
    # Parsing
    # ------------------------------------------------------------------

    @classmethod
    def from_newick(cls, newick: str) -> "Tree":
        """
        Parse a Newick string into an unrooted tree.

        A bifurcating root is removed by joining its two children with a
        single branch whose length is the sum of the two root branches.
        """
        text = newick.strip().rstrip(";").strip()
        if not text:
            raise ValueError("Empty Newick string")

        # Temporary rooted representation: (name, length, children)
        parsed: List[list] = []
        pos = [0]

        def read_label() -> str:
            start = pos[0]
            while pos[0] < len(text) and text[pos[0]] not in ":,()":
                pos[0] += 1
            return text[start:pos[0]].strip().strip("'\"")

        def read_length() -> float:
            if pos[0] < len(text) and text[pos[0]] == ":":
                pos[0] += 1
                start = pos[0]
                while pos[0] < len(text) and text[pos[0]] not in ",()":
                    pos[0] += 1
                return float(text[start:pos[0]])
            return 0.0

        def parse_node() -> int:
            children: List[int] = []
            if pos[0] < len(text) and text[pos[0]] == "(":
                pos[0] += 1
                children.append(parse_node())
                while text[pos[0]] == ",":
                    pos[0] += 1
                    children.append(parse_node())
                if text[pos[0]] != ")":
                    raise ValueError(f"Expected ')' at position {pos[0]} in Newick string")
                pos[0] += 1
            name = read_label()
            length = read_length()
            parsed.append([name, length, children])
            return len(parsed) - 1

        try:
            root = parse_node()
        except IndexError:
            raise ValueError("Unbalanced parentheses in Newick string")
        if pos[0] != len(text):
            raise ValueError(f"Unexpected text after tree: '{text[pos[0]:]}'")

        # Unroot a bifurcating root
        edges: List[Tuple[int, int, float]] = []
        for p, (_, _, children) in enumerate(parsed):
            if p == root and len(children) == 2:
                (a, b) = children
                edges.append((a, b, parsed[a][1] + parsed[b][1]))
                continue
            for c in children:
                edges.append((p, c, parsed[c][1]))
        dropped = root if len(parsed[root][2]) == 2 else None

        # Renumber: leaves first, in order of appearance
        old_nodes = [i for i in range(len(parsed)) if i != dropped]
        leaves = [i for i in old_nodes if not parsed[i][2]]
        internal = [i for i in old_nodes if parsed[i][2]]
        new_index = {old: new for new, old in enumerate(leaves + internal)}
        names = []
        for old in leaves + internal:
            name = parsed[old][0]
            names.append(name if name else f"A{new_index[old]}")

        return cls(
            n_nodes=len(old_nodes),
            edges=[(new_index[a], new_index[b]) for a, b, _ in edges],
            lengths=[t for _, _, t in edges],
            names=names,
        )

    @classmethod
    def from_file(cls, filepath: Union[str, Path]) -> "Tree":
        """Load a tree from a Newick file."""
        with open(filepath, "r") as f:
            return cls.from_newick(f.read())

    def to_newick(self, root: Optional[int] = None) -> str:
        """Write the tree in Newick format, rooted at an internal node."""
        if self.n_nodes == 1:
            return f"{self.names[0]};"
        if root is None:
            root = self.n_nodes - 1

        def write(d: int) -> str:
            n = self.target(d)
            children = [x for x in self._out[n] if x != self.reverse(d)]
            label = self.names[n] if not children else ""
            inner = "(" + ",".join(write(x) for x in children) + ")" if children else ""
            return f"{inner}{label}:{self.lengths[d >> 1]:.6f}"

        body = ",".join(write(d) for d in self._out[root])
        label = self.names[root] if self.is_leaf(root) else ""
        return f"({body}){label};"

    # ------------------------------------------------------------------
    # Structure
    # ------------------------------------------------------------------

    @property
    def adjacency(self) -> List[List[int]]:
        return [[self.target(d) for d in out] for out in self._out]

    @property
    def n_branches(self) -> int:
        return len(self.edges)

    @property
    def n_directed_branches(self) -> int:
        return 2 * len(self.edges)

    @property
    def n_leaves(self) -> int:
        return sum(1 for n in range(self.n_nodes) if self.is_leaf(n))

    def leaves(self) -> List[int]:
        return [n for n in range(self.n_nodes) if self.is_leaf(n)]

    def is_leaf(self, n: int) -> bool:
        return len(self._out[n]) <= 1

    def degree(self, n: int) -> int:
        return len(self._out[n])

    def neighbors(self, n: int) -> List[int]:
        return [self.target(d) for d in self._out[n]]

    def source(self, d: int) -> int:
        u, v = self.edges[d >> 1]
        return u if d % 2 == 0 else v

    def target(self, d: int) -> int:
        u, v = self.edges[d >> 1]
        return v if d % 2 == 0 else u

    @staticmethod
    def reverse(d: int) -> int:
        return d ^ 1

    @staticmethod
    def undirected(d: int) -> int:
        return d >> 1

    def find_branch(self, n0: int, n1: int) -> int:
        """Undirected branch joining n0 and n1, or -1."""
        d = self.directed_branch(n0, n1)
        return -1 if d < 0 else d >> 1

    def directed_branch(self, n0: int, n1: int) -> int:
        """Directed branch n0 -> n1, or -1 if they are not adjacent."""
        for d in self._out[n0]:
            if self.target(d) == n1:
                return d
        return -1

    def branches_out(self, n: int) -> List[int]:
        """Directed branches leaving node n."""
        return list(self._out[n])

    def branches_before(self, d: int) -> List[int]:
        """Directed branches pointing into source(d), other than reverse(d)."""
        return [x ^ 1 for x in self._out[self.source(d)] if x != d]

    def branches_after(self, d: int) -> List[int]:
        """
        d followed by every directed branch pointing away from it.

        Breadth-first from target(d); these are the branches whose
        conditional likelihoods include the data carried along d.
        """
        result = [d]
        i = 0
        while i < len(result):
            x = result[i]
            for y in self._out[self.target(x)]:
                if y != (x ^ 1):
                    result.append(y)
            i += 1
        return result

    def branches_from_node(self, n: int) -> List[int]:
        """branches_after for every branch leaving n, concatenated."""
        result: List[int] = []
        for d in self._out[n]:
            result.extend(self.branches_after(d))
        return result

    def branches_toward(self, root: int) -> List[int]:
        """
        Directed branches pointing toward `root`, ordered so that every
        branch comes after the branches feeding into its source.
        """
        away = self.branches_from_node(root)
        return [d ^ 1 for d in reversed(away)]

    def partition(self, n0: int, n1: int) -> np.ndarray:
        """Boolean mask of the nodes on n1's side of branch n0-n1."""
        d = self.directed_branch(n0, n1)
        if d < 0:
            raise ValueError(f"Nodes {n0} and {n1} are not adjacent")
        mask = np.zeros(self.n_nodes, dtype=bool)
        mask[n1] = True
        for x in self.branches_after(d):
            mask[self.target(x)] = True
        return mask

    def subtree_contains(self, d: int, n: int) -> bool:
        """Is node n on the target side of directed branch d?"""
        return bool(self.partition(self.source(d), self.target(d))[n])

    def all_characters_connected(self, present: Sequence[bool], ignore: Iterable[int] = ()) -> bool:
        return all_characters_connected(self.adjacency, present, ignore)

    # ------------------------------------------------------------------
    # Branch lengths
    # ------------------------------------------------------------------

    def branch_length(self, b: int) -> float:
        return float(self.lengths[b])

    def set_branch_length(self, b: int, length: float) -> None:
        if length < 0:
            raise ValueError(f"Branch length must be non-negative, got {length}")
        self.lengths[b] = length

    def copy(self) -> "Tree":
        return Tree(self.n_nodes, self.edges, self.lengths, self.names)

    # ------------------------------------------------------------------
    # Node subsets for the alignment HMMs
    # ------------------------------------------------------------------

    def get_nodes_2way(self, b: int) -> List[int]:
        """[n0, n1] for branch b."""
        return list(self.edges[b])

    def get_nodes_3way(self, n0: int) -> List[int]:
        """[n0, n1, n2, n3]: internal node n0 followed by its neighbors."""
        if self.degree(n0) != 3:
            raise ValueError(f"3-way nodes need a degree-3 node, node {n0} has degree {self.degree(n0)}")
        return [n0] + self.neighbors(n0)

    def get_nodes_5way(self, b: int) -> List[int]:
        """
        [n0, n1, n2, n3, n4, n5] around internal branch b = (n4, n5):
        n0, n1 are the other neighbors of n4 and n2, n3 those of n5.
        """
        n4, n5 = self.edges[b]
        if self.degree(n4) != 3 or self.degree(n5) != 3:
            raise ValueError(f"5-way nodes need an internal branch, branch {b} is not")
        left = [n for n in self.neighbors(n4) if n != n5]
        right = [n for n in self.neighbors(n5) if n != n4]
        return left + right + [n4, n5]

    def get_nodes_3way_random(self, n0: int, rng: np.random.Generator) -> List[int]:
        nodes = self.get_nodes_3way(n0)
        return [n0] + [nodes[1 + i] for i in rng.permutation(3)]

    def get_nodes_5way_random(self, b: int, rng: np.random.Generator) -> List[int]:
        n0, n1, n2, n3, n4, n5 = self.get_nodes_5way(b)
        if rng.random() < 0.5:
            n0, n1 = n1, n0
        if rng.random() < 0.5:
            n2, n3 = n3, n2
        return [n0, n1, n2, n3, n4, n5]

    def __repr__(self) -> str:
        return f"Tree({self.n_leaves} leaves, {self.n_nodes} nodes)"


def load_tree(filepath: Union[str, Path]) -> Tree:
    """Load a phylogenetic tree from a Newick file."""
    return Tree.from_file(filepath)

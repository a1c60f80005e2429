"""
Explicit multiple sequence alignments.

An Alignment is a column-major table of integer cell codes: one row per
alignment column, one column per sequence (tree node). A cell holds a letter
code, GAP, or UNKNOWN (a character whose identity is not observed, as for
internal tree nodes).
"""

from typing import TYPE_CHECKING, List, Optional, Sequence
import numpy as np

from .alphabet import Alphabet, DNA, GAP, UNKNOWN

if TYPE_CHECKING:
    from .trees import Tree


class Alignment:
    """
    Homology table over a fixed set of sequences.

    Attributes:
        array: (length, n_sequences) integer array of cell codes
        alphabet: Alphabet that translates codes back to letters
        names: Sequence names, one per row of the tree
    """

    def __init__(
        self,
        array: np.ndarray,
        alphabet: Alphabet = DNA,
        names: Optional[Sequence[str]] = None,
    ):
        array = np.asarray(array, dtype=np.int64)
        if array.ndim != 2:
            raise ValueError(f"Alignment array must be 2-dimensional, got shape {array.shape}")
        self.array = array
        self.alphabet = alphabet
        if names is None:
            names = [f"seq{i}" for i in range(array.shape[1])]
        if len(names) != array.shape[1]:
            raise ValueError(
                f"Alignment has {array.shape[1]} sequences but {len(names)} names"
            )
        self.names: List[str] = list(names)

    @classmethod
    def from_strings(
        cls,
        rows: Sequence[str],
        alphabet: Alphabet = DNA,
        names: Optional[Sequence[str]] = None,
    ) -> "Alignment":
        """
        Build an alignment from gapped row strings, one per sequence.

        Args:
            rows: Equal-length strings; '-' is a gap, '?' an unknown character
            alphabet: Alphabet for the letters
            names: Optional sequence names

        Returns:
            Alignment with len(rows) sequences
        """
        lengths = {len(r) for r in rows}
        if len(lengths) > 1:
            raise ValueError(f"Alignment rows have different lengths: {sorted(lengths)}")
        length = lengths.pop() if lengths else 0
        array = np.full((length, len(rows)), GAP, dtype=np.int64)
        for s, row in enumerate(rows):
            array[:, s] = alphabet.encode(row)
        return cls(array, alphabet, names)

    @classmethod
    def blank(
        cls,
        n_sequences: int,
        length: int = 0,
        alphabet: Alphabet = DNA,
        names: Optional[Sequence[str]] = None,
    ) -> "Alignment":
        """An all-gap alignment of the given shape."""
        return cls(np.full((length, n_sequences), GAP, dtype=np.int64), alphabet, names)

    @property
    def length(self) -> int:
        """Number of columns."""
        return self.array.shape[0]

    @property
    def n_sequences(self) -> int:
        return self.array.shape[1]

    def __call__(self, column: int, seq: int) -> int:
        return int(self.array[column, seq])

    def column(self, c: int) -> np.ndarray:
        return self.array[c]

    def gap(self, column: int, seq: int) -> bool:
        return self.array[column, seq] == GAP

    def unknown(self, column: int, seq: int) -> bool:
        return self.array[column, seq] == UNKNOWN

    def character(self, column: int, seq: int) -> bool:
        """Is there a character (letter or unknown) for seq in this column?"""
        return self.array[column, seq] != GAP

    def present(self) -> np.ndarray:
        """(length, n_sequences) boolean mask of non-gap cells."""
        return self.array != GAP

    def seqlength(self, seq: int) -> int:
        return int(np.count_nonzero(self.array[:, seq] != GAP))

    def sequence(self, seq: int) -> np.ndarray:
        """The ungapped cell codes of one sequence."""
        row = self.array[:, seq]
        return row[row != GAP]

    def copy(self) -> "Alignment":
        return Alignment(self.array.copy(), self.alphabet, self.names)

    def insert_column(self, position: int, values=None) -> None:
        """Insert a column before `position` (all gaps by default)."""
        if values is None:
            values = np.full(self.n_sequences, GAP, dtype=np.int64)
        self.array = np.insert(self.array, position, np.asarray(values, dtype=np.int64), axis=0)

    def delete_column(self, position: int) -> None:
        self.array = np.delete(self.array, position, axis=0)

    def changelength(self, length: int) -> None:
        """Truncate or pad with all-gap columns to exactly `length` columns."""
        if length <= self.length:
            self.array = self.array[:length].copy()
        else:
            pad = np.full((length - self.length, self.n_sequences), GAP, dtype=np.int64)
            self.array = np.vstack([self.array, pad])

    def to_strings(self) -> List[str]:
        """Gapped row strings, one per sequence."""
        return [self.alphabet.decode(self.array[:, s]) for s in range(self.n_sequences)]

    def __eq__(self, other) -> bool:
        return (
            isinstance(other, Alignment)
            and self.array.shape == other.array.shape
            and bool(np.all(self.array == other.array))
        )

    def __repr__(self) -> str:
        return f"Alignment({self.n_sequences} sequences, {self.length} columns)"

    def __str__(self) -> str:
        width = max((len(n) for n in self.names), default=0)
        return "\n".join(f"{n:<{width}}  {row}" for n, row in zip(self.names, self.to_strings()))


def all_gaps(A: Alignment, column: int, mask: Optional[Sequence[bool]] = None) -> bool:
    """Does the column contain only gaps (for the sequences in mask)?"""
    cells = A.array[column]
    if mask is not None:
        cells = cells[np.asarray(mask, dtype=bool)]
    return bool(np.all(cells == GAP))


def n_characters(A: Alignment, column: int) -> int:
    """Number of non-gap cells in a column."""
    return int(np.count_nonzero(A.array[column] != GAP))


def remove_empty_columns(A: Alignment) -> int:
    """Drop all-gap columns in place; returns how many were removed."""
    keep = np.any(A.array != GAP, axis=1)
    removed = int(A.length - np.count_nonzero(keep))
    if removed:
        A.array = A.array[keep].copy()
    return removed


def valid(A: Alignment) -> bool:
    """True if the alignment has no empty columns."""
    return bool(np.all(np.any(A.array != GAP, axis=1))) if A.length else True


def column_lookup(A: Alignment, n_sequences: Optional[int] = None) -> List[List[int]]:
    """
    For each sequence, the ordered list of columns holding its characters.

    Args:
        A: Alignment
        n_sequences: Only look at the first n sequences (default: all)
    """
    if n_sequences is None:
        n_sequences = A.n_sequences
    present = A.array[:, :n_sequences] != GAP
    return [np.nonzero(present[:, s])[0].tolist() for s in range(n_sequences)]


def add_internal(leaves: Alignment, tree: "Tree") -> Alignment:
    """
    Extend a leaf alignment with rows for the tree's internal nodes.

    Leaf rows must come first, in tree node order. Internal cells are filled
    by connect_leaf_characters.
    """
    if leaves.n_sequences != tree.n_leaves:
        raise ValueError(f"Expected {tree.n_leaves} leaf rows, got {leaves.n_sequences}")
    if tree.leaves() != list(range(tree.n_leaves)):
        raise ValueError("Tree leaves must be numbered before internal nodes")
    array = np.full((leaves.length, tree.n_nodes), GAP, dtype=np.int64)
    array[:, : leaves.n_sequences] = leaves.array
    A = Alignment(array, leaves.alphabet, list(leaves.names) + tree.names[leaves.n_sequences:])
    connect_leaf_characters(A, tree)
    return A


def connect_leaf_characters(A: Alignment, tree: "Tree") -> None:
    """
    Give internal nodes the minimal characters that connect each column.

    An internal node gets UNKNOWN where it lies between two leaves with a
    character in that column, and GAP otherwise.
    """
    leaves = tree.leaves()
    present = A.array[:, leaves] != GAP
    for n in range(tree.n_nodes):
        if tree.is_leaf(n):
            continue
        sides = np.zeros(A.length, dtype=int)
        for d in tree.branches_out(n):
            below = tree.partition(n, tree.target(d))[leaves]
            sides += np.any(present[:, below], axis=1)
        A.array[:, n] = np.where(sides >= 2, UNKNOWN, GAP)


def same_homologies(A1: Alignment, A2: Alignment, sequences: Sequence[int]) -> bool:
    """
    Do A1 and A2 align the given sequences identically?

    Columns empty for those sequences are ignored, and cells are compared by
    which character of each sequence they hold.
    """
    def positions(A: Alignment) -> np.ndarray:
        rows = A.array[:, list(sequences)]
        present = rows != GAP
        index = np.where(present, np.cumsum(present, axis=0) - 1, -1)
        return index[np.any(present, axis=1)]

    p1, p2 = positions(A1), positions(A2)
    return p1.shape == p2.shape and bool(np.all(p1 == p2))

"""Alphabets: translation between letters and integer cell codes."""

from typing import Dict, List, Optional, Sequence
import numpy as np


# Cell codes shared by every alignment. Letters are 0..size-1.
GAP = -1
UNKNOWN = -2

GAP_CHARS = "-."
UNKNOWN_CHAR = "?"


class Alphabet:
    """
    Ordered set of letters used by an alignment.

    Attributes:
        name: Human-readable alphabet name
        letters: Letters in code order
        wildcards: Extra characters read as UNKNOWN (e.g. 'N' for DNA)
    """

    def __init__(self, letters: Sequence[str], name: str = "custom", wildcards: str = ""):
        if len(set(letters)) != len(letters):
            raise ValueError(f"Duplicate letters in alphabet {name}: {letters}")
        self.name = name
        self.letters: List[str] = [l.upper() for l in letters]
        self.wildcards = wildcards.upper()
        self.letter_to_index: Dict[str, int] = {l: i for i, l in enumerate(self.letters)}

    @property
    def size(self) -> int:
        """Number of real letters."""
        return len(self.letters)

    def __len__(self) -> int:
        return self.size

    def index(self, ch: str) -> int:
        """Cell code for a single character."""
        c = ch.upper()
        if c in self.letter_to_index:
            return self.letter_to_index[c]
        if c in GAP_CHARS:
            return GAP
        if c == UNKNOWN_CHAR or c in self.wildcards:
            return UNKNOWN
        raise ValueError(f"Character '{ch}' is not in alphabet {self.name}")

    def letter(self, code: int) -> str:
        """Character for a cell code."""
        if code == GAP:
            return "-"
        if code == UNKNOWN:
            return UNKNOWN_CHAR
        return self.letters[code]

    def encode(self, text: str) -> List[int]:
        """Encode a (possibly gapped) string into cell codes."""
        return [self.index(ch) for ch in text]

    def decode(self, codes) -> str:
        """Decode cell codes into a string."""
        return "".join(self.letter(int(c)) for c in codes)

    def likelihood_vector(self, code: int) -> np.ndarray:
        """
        Observation likelihood over letters for one cell.

        Letters give a one-hot vector; gaps and unknowns carry no
        information and give all ones.
        """
        if code >= 0:
            if code >= self.size:
                raise ValueError(f"code must be within [0, {self.size - 1}], got {code}")
            vec = np.zeros(self.size)
            vec[code] = 1.0
            return vec
        return np.ones(self.size)

    def likelihood_matrix(self, codes) -> np.ndarray:
        """Stack likelihood_vector over a row of codes: (n_codes, size)."""
        codes = np.asarray(codes, dtype=int)
        out = np.ones((codes.shape[0], self.size))
        letters = codes >= 0
        out[letters] = 0.0
        out[np.nonzero(letters)[0], codes[letters]] = 1.0
        return out

    def __eq__(self, other) -> bool:
        return isinstance(other, Alphabet) and self.letters == other.letters

    def __hash__(self) -> int:
        return hash(tuple(self.letters))

    def __repr__(self) -> str:
        return f"Alphabet({self.name}, {''.join(self.letters)})"


DNA = Alphabet("ACGT", name="DNA", wildcards="N")
RNA = Alphabet("ACGU", name="RNA", wildcards="N")
AMINO_ACIDS = Alphabet("ACDEFGHIKLMNPQRSTVWY", name="amino-acids", wildcards="X")


def get_alphabet(name: Optional[str]) -> Alphabet:
    """Look up a built-in alphabet by name (case-insensitive)."""
    table = {"dna": DNA, "rna": RNA, "amino-acids": AMINO_ACIDS, "protein": AMINO_ACIDS}
    key = (name or "dna").lower()
    if key not in table:
        raise ValueError(f"Unknown alphabet: {name}")
    return table[key]

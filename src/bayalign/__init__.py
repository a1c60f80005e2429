"""
bayalign: Bayesian joint alignment and phylogeny sampling.

Alignment HMMs over 2, 3 and 5 tree nodes at once, and an incremental,
copy-on-write likelihood cache for MCMC over alignments and trees.
"""

__version__ = "0.1.0"

from bayalign.core.alphabet import Alphabet, DNA, RNA, AMINO_ACIDS, GAP, UNKNOWN
from bayalign.core.alignment import Alignment
from bayalign.core.trees import Tree, load_tree
from bayalign.core.states import StateSpace, get_state_space
from bayalign.core.indel import PairHMM, SimpleIndelModel
from bayalign.core.transitions import CompositeHMM, create_q, get_start_p
from bayalign.core.paths import construct, get_path, get_path_2way, get_path_3way
from bayalign.core.projection import getorder, project
from bayalign.core.likelihood_cache import CacheConfig, LikelihoodCache, MultiLikelihoodCache
from bayalign.core.substitution import MultiRateModel, ReversibleMarkovModel, jukes_cantor
from bayalign.core.parameters import Parameters
from bayalign.core.sampler import SamplerSettings, run_chain
from bayalign.core.errors import CacheInvariantError, MalformedAlignmentError

__all__ = [
    "Alphabet",
    "DNA",
    "RNA",
    "AMINO_ACIDS",
    "GAP",
    "UNKNOWN",
    "Alignment",
    "Tree",
    "load_tree",
    "StateSpace",
    "get_state_space",
    "PairHMM",
    "SimpleIndelModel",
    "CompositeHMM",
    "create_q",
    "get_start_p",
    "construct",
    "get_path",
    "get_path_2way",
    "get_path_3way",
    "getorder",
    "project",
    "CacheConfig",
    "LikelihoodCache",
    "MultiLikelihoodCache",
    "MultiRateModel",
    "ReversibleMarkovModel",
    "jukes_cantor",
    "Parameters",
    "SamplerSettings",
    "run_chain",
    "CacheInvariantError",
    "MalformedAlignmentError",
    "__version__",
]

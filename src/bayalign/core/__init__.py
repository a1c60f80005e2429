"""Core data structures: state spaces, alignment HMMs, paths and the likelihood cache."""

from bayalign.core.errors import CacheInvariantError, MalformedAlignmentError
from bayalign.core.numerics import LOG_0, logdiff, logsum, logsum_all, safe_log
from bayalign.core.alphabet import Alphabet, DNA, RNA, AMINO_ACIDS, GAP, UNKNOWN, get_alphabet
from bayalign.core.alignment import (
    add_internal,
    connect_leaf_characters,
    same_homologies,
    Alignment,
    all_gaps,
    column_lookup,
    n_characters,
    remove_empty_columns,
    valid,
)
from bayalign.core.trees import Tree, all_characters_connected, load_tree
from bayalign.core.states import M, G1, G2, E, StateSpace, get_state_space, state_space_for_nodes
from bayalign.core.indel import IndelModel, PairHMM, SimpleIndelModel
from bayalign.core.transitions import (
    CompositeHMM,
    branch_hmms,
    create_q,
    get_start_p,
    path_log_probability,
)
from bayalign.core.projection import getorder, project
from bayalign.core.paths import (
    construct,
    get_path,
    get_path_2way,
    get_path_3way,
    node_groups,
    sequence_columns,
)
from bayalign.core.likelihood_cache import CacheConfig, LikelihoodCache, MultiLikelihoodCache
from bayalign.core.substitution import (
    MultiRateModel,
    ReversibleMarkovModel,
    SubstitutionModel,
    f81,
    gamma_rates,
    gtr,
    hky85,
    jukes_cantor,
)
from bayalign.core.pruning import PruningResult, compute_likelihood, peel
from bayalign.core.parameters import Parameters
from bayalign.core.sampler import MoveStats, SamplerSettings, change_branch_length, run_chain

__all__ = [
    "CacheInvariantError",
    "MalformedAlignmentError",
    "LOG_0",
    "logdiff",
    "logsum",
    "logsum_all",
    "safe_log",
    "Alphabet",
    "DNA",
    "RNA",
    "AMINO_ACIDS",
    "GAP",
    "UNKNOWN",
    "get_alphabet",
    "Alignment",
    "add_internal",
    "connect_leaf_characters",
    "same_homologies",
    "all_gaps",
    "column_lookup",
    "n_characters",
    "remove_empty_columns",
    "valid",
    "Tree",
    "all_characters_connected",
    "load_tree",
    "M",
    "G1",
    "G2",
    "E",
    "StateSpace",
    "get_state_space",
    "state_space_for_nodes",
    "IndelModel",
    "PairHMM",
    "SimpleIndelModel",
    "CompositeHMM",
    "branch_hmms",
    "create_q",
    "get_start_p",
    "path_log_probability",
    "getorder",
    "project",
    "construct",
    "get_path",
    "get_path_2way",
    "get_path_3way",
    "node_groups",
    "sequence_columns",
    "CacheConfig",
    "LikelihoodCache",
    "MultiLikelihoodCache",
    "MultiRateModel",
    "ReversibleMarkovModel",
    "SubstitutionModel",
    "f81",
    "gamma_rates",
    "gtr",
    "hky85",
    "jukes_cantor",
    "PruningResult",
    "compute_likelihood",
    "peel",
    "Parameters",
    "MoveStats",
    "SamplerSettings",
    "change_branch_length",
    "run_chain",
]

"""Exception types raised by the alignment and cache core."""


class MalformedAlignmentError(ValueError):
    """
    An alignment or path does not fit the alignment HMM for a node subset.

    Raised when a column's presence pattern has no legal composite state,
    when a path step indexes outside the state list, or when a path and the
    sequences it is decoded against have inconsistent lengths.
    """


class CacheInvariantError(RuntimeError):
    """
    A likelihood-cache reference-count or staleness invariant was violated.

    These always indicate a programming error upstream: returning a number
    computed from stale or shared storage would silently corrupt inference.
    """

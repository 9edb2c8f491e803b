"""Error taxonomy for retrieval and deduplication.

Callers need to tell "nothing matched" apart from "search degraded" and
"search failed", so each infrastructure failure has its own type.
"""


class ProfileKBError(Exception):
    """Base class for engine errors."""


class InvalidInput(ProfileKBError, ValueError):
    """Rejected before any external call: empty query, unknown filter, bad weight."""


class EmbeddingUnavailable(ProfileKBError):
    """The embedding call failed, timed out, or returned an unusable vector."""


class StoreUnavailable(ProfileKBError):
    """A vector or fuzzy-text lookup (or any other store call) failed or timed out."""


class EnrichmentFailed(ProfileKBError):
    """Source entity lookup failed for one result."""

"""
Distribution errors: failure taxonomy for one distribution cycle.

Expected outcomes (already processed, no funds, randomness failure) are not
exceptions; they are returned as outcome values by the orchestrator.
"""


class DistributionError(Exception):
    """Base class for all distribution failures"""


class ConfigurationError(DistributionError):
    """Raised when a required identity (asset, operating account) is missing or malformed"""


class ClaimFailure(DistributionError):
    """Raised when the fee claim or the surrounding balance reads fail"""


class SelectionFailure(DistributionError):
    """Raised when no winner could be selected for the cycle"""


class HolderDirectoryError(SelectionFailure):
    """Raised when the holder directory cannot be queried"""


class NoEligibleHolders(SelectionFailure):
    """Raised when no holder remains after exclusions"""


class SelectionExhausted(SelectionFailure):
    """Raised when no cumulative weight reaches the random scalar"""


class RandomnessFailure(SelectionFailure):
    """Raised when the randomness service errors or returns unusable bytes"""


class RandomnessTimeout(RandomnessFailure):
    """Raised when randomness is not fulfilled within the bounded wait"""


class PayoutFailure(DistributionError):
    """Raised when the payout cannot be computed, submitted or confirmed"""


class PersistenceFailure(DistributionError):
    """Raised when the winner ledger cannot be read or written"""

"""
Holder Selection: weighted random choice of one eligible asset holder.

Weights are proportional to holding size and kept as fixed-point integers
over WEIGHT_SCALE. The random scalar comes from the randomness source, so a
selection is reproducible from its recorded provenance.
"""

import logging
from typing import List, Optional
from dataclasses import dataclass

from distribution.clients import HolderDirectory
from distribution.errors import HolderDirectoryError, NoEligibleHolders, SelectionExhausted
from distribution.models import Holder, WeightedHolder, RandomnessRequest, WEIGHT_SCALE
from distribution.randomness import RandomnessSource

logger = logging.getLogger(__name__)


@dataclass
class SelectionResult:
    """Selected winner with the randomness that chose it"""
    winner: WeightedHolder
    provenance: RandomnessRequest
    eligible_count: int


def filter_eligible(holders: List[Holder], excluded_address: Optional[str] = None) -> List[Holder]:
    """
    Apply the eligibility policy to a raw holder set.

    - Drop zero-balance accounts and the excluded (operational) address
    - Order by balance descending (stable)
    - Drop the largest holder, which is treated as the liquidity pool

    Args:
        holders: Raw holder set from the directory
        excluded_address: Address that never participates

    Returns:
        Eligible holders, largest first

    Raises:
        NoEligibleHolders: If nothing remains
    """
    funded = [h for h in holders if h.balance > 0 and h.address != excluded_address]
    if not funded:
        raise NoEligibleHolders("No holders with positive balance found (excluding excluded address)")

    ordered = sorted(funded, key=lambda h: h.balance, reverse=True)
    eligible = ordered[1:]

    if not eligible:
        raise NoEligibleHolders("No eligible holders found (only liquidity pool and/or excluded address)")

    return eligible


def build_weights(holders: List[Holder]) -> List[WeightedHolder]:
    """
    Compute fixed-point weights and cumulative weights in the given order.

    cumulative_i = floor(prefix_balance_i * WEIGHT_SCALE / total), so the last
    cumulative weight is exactly WEIGHT_SCALE and weights sum to it.
    """
    total = sum(h.balance for h in holders)
    if total <= 0:
        raise NoEligibleHolders("Eligible holders have no balance")

    weighted = []
    prefix = 0
    previous = 0
    for holder in holders:
        prefix += holder.balance
        cumulative = prefix * WEIGHT_SCALE // total
        weighted.append(
            WeightedHolder(
                address=holder.address,
                balance=holder.balance,
                weight=cumulative - previous,
                cumulative_weight=cumulative,
            )
        )
        previous = cumulative
    return weighted


def pick_weighted(weighted: List[WeightedHolder], scalar_numerator: int) -> WeightedHolder:
    """
    Return the first holder whose cumulative weight is >= the scalar.

    Raises:
        SelectionExhausted: If no cumulative weight reaches the scalar
    """
    for holder in weighted:
        if holder.cumulative_weight >= scalar_numerator:
            return holder
    raise SelectionExhausted(
        f"Failed to select weighted random holder (scalar {scalar_numerator / WEIGHT_SCALE})"
    )


class HolderSelector:
    """
    Select one winner per cycle, weighted by holding size.

    The directory is queried fresh on every call; nothing is cached between
    cycles.
    """

    def __init__(
        self,
        directory: HolderDirectory,
        randomness: RandomnessSource,
        asset: str,
        randomness_owner: str,
        excluded_address: Optional[str] = None,
    ):
        """
        Initialize holder selector.

        Args:
            directory: HolderDirectory listing holders of the asset
            randomness: RandomnessSource providing the random scalar
            asset: Asset (mint) whose holders participate
            randomness_owner: Account the randomness request is tied to
            excluded_address: Address that never participates
        """
        self.directory = directory
        self.randomness = randomness
        self.asset = asset
        self.randomness_owner = randomness_owner
        self.excluded_address = excluded_address

    async def eligible_holders(self) -> List[WeightedHolder]:
        """Fetch holders and compute the weighted eligible set"""
        try:
            holders = await self.directory.list_holders(self.asset)
        except Exception as e:
            raise HolderDirectoryError(f"Failed to fetch holders of {self.asset}: {e}") from e

        eligible = filter_eligible(holders, self.excluded_address)
        return build_weights(eligible)

    async def select(self) -> SelectionResult:
        """
        Select the winner for the current cycle.

        Returns:
            SelectionResult with winner and randomness provenance

        Raises:
            SelectionFailure: If holders cannot be fetched, none are eligible,
                randomness fails, or no holder matches the scalar
        """
        weighted = await self.eligible_holders()

        logger.info(f"Requesting randomness for selection among {len(weighted)} eligible holders")
        provenance = await self.randomness.request_randomness(self.randomness_owner)

        winner = pick_weighted(weighted, provenance.scalar_numerator)
        logger.info(
            f"Selected holder {winner.address} with {winner.balance} tokens "
            f"({winner.weight_fraction * 100:.2f}% of eligible supply) "
            f"using {provenance.source} value {provenance.derived_scalar}"
        )

        return SelectionResult(winner=winner, provenance=provenance, eligible_count=len(weighted))

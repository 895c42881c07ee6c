"""
Payout Execution: split claimed funds between the winner and the secondary pool.

Distribution rules:
- distributable = total - fee_buffer (the buffer stays behind for network fees)
- No secondary pool: 100% to winner
- With secondary pool: floor(distributable * split_ratio) to winner, the
  remainder to the pool, both in one transfer
"""

import logging
from fractions import Fraction
from typing import List, Optional

from distribution.clients import TransferGateway
from distribution.errors import PayoutFailure
from distribution.models import (
    PayoutShare,
    PayoutResult,
    SecondaryAllocation,
    ShareType,
    lamports_to_sol,
)

logger = logging.getLogger(__name__)


class PayoutExecutor:
    """
    Calculate and execute per-cycle payouts.

    Failures are raised as PayoutFailure and never retried here.
    """

    DEFAULT_FEE_BUFFER = 5_000_000  # 0.005 SOL kept for transaction fees
    DEFAULT_SPLIT_RATIO = 0.9

    def __init__(
        self,
        gateway: TransferGateway,
        fee_buffer: int = DEFAULT_FEE_BUFFER,
        secondary_address: Optional[str] = None,
        split_ratio: float = DEFAULT_SPLIT_RATIO,
    ):
        """
        Initialize payout executor.

        Args:
            gateway: TransferGateway submitting the transfer
            fee_buffer: Lamports withheld from every payout
            secondary_address: Optional secondary (jackpot) pool address
            split_ratio: Winner's share when a secondary pool is configured

        Raises:
            ValueError: If fee_buffer is negative or split_ratio is outside (0, 1]
        """
        if fee_buffer < 0:
            raise ValueError(f"Fee buffer cannot be negative: {fee_buffer}")
        ratio = Fraction(str(split_ratio))
        if not 0 < ratio <= 1:
            raise ValueError(f"Split ratio must be in (0, 1], got {split_ratio}")

        self.gateway = gateway
        self.fee_buffer = fee_buffer
        self.secondary_address = secondary_address or None
        self.split_ratio = ratio

    def distributable(self, total_amount: int) -> int:
        return total_amount - self.fee_buffer

    def calculate_shares(self, total_amount: int, winner_address: str) -> List[PayoutShare]:
        """
        Calculate payout shares without side effects.

        Args:
            total_amount: Claimed lamports
            winner_address: Selected winner

        Returns:
            Winner share first, then the secondary share if any; zero-amount
            shares are omitted

        Raises:
            PayoutFailure: If nothing is left after the fee buffer
        """
        distributable = self.distributable(total_amount)
        if distributable <= 0:
            raise PayoutFailure(
                f"Nothing to distribute: {total_amount} claimed, {self.fee_buffer} fee buffer"
            )

        if not self.secondary_address:
            return [PayoutShare(recipient=winner_address, amount=distributable, share_type=ShareType.WINNER)]

        winner_amount = distributable * self.split_ratio.numerator // self.split_ratio.denominator
        secondary_amount = distributable - winner_amount

        shares = []
        if winner_amount > 0:
            shares.append(PayoutShare(recipient=winner_address, amount=winner_amount, share_type=ShareType.WINNER))
        if secondary_amount > 0:
            shares.append(
                PayoutShare(recipient=self.secondary_address, amount=secondary_amount, share_type=ShareType.SECONDARY)
            )
        return shares

    async def payout(self, total_amount: int, winner_address: str) -> PayoutResult:
        """
        Execute the payout as one all-or-nothing transfer.

        Args:
            total_amount: Claimed lamports
            winner_address: Selected winner

        Returns:
            PayoutResult with amounts and transfer reference

        Raises:
            PayoutFailure: If there is nothing to distribute or the transfer fails
        """
        shares = self.calculate_shares(total_amount, winner_address)

        try:
            signature = await self.gateway.send(shares)
        except Exception as e:
            raise PayoutFailure(f"Transfer failed: {e}") from e

        winner_amount = sum(s.amount for s in shares if s.share_type == ShareType.WINNER)
        secondary = None
        for share in shares:
            if share.share_type == ShareType.SECONDARY:
                secondary = SecondaryAllocation(
                    address=share.recipient,
                    amount=share.amount,
                    transfer_reference=signature,
                )
                logger.info(f"Sent {lamports_to_sol(share.amount)} SOL to secondary pool {share.recipient}")

        logger.info(f"Sent {lamports_to_sol(winner_amount)} SOL to winner {winner_address} ({signature})")

        return PayoutResult(
            winner_address=winner_address,
            winner_amount=winner_amount,
            distributable=self.distributable(total_amount),
            transfer_reference=signature,
            secondary=secondary,
        )

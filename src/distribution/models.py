"""
Distribution models: record types, transient cycle entities and validation rules.
"""

from enum import Enum
from dataclasses import dataclass
from typing import Dict, Any, List, Optional

from solders.pubkey import Pubkey


LAMPORTS_PER_SOL = 1_000_000_000
WEIGHT_SCALE = 2**64  # Fixed-point denominator for weights and random scalars
SCALAR_BYTES = 8  # Randomness bytes consumed per draw


class RecordStatus(Enum):
    """Outcome stored in a winner record"""
    DISTRIBUTED = "DISTRIBUTED"
    NO_FUNDS_TO_DISTRIBUTE = "NO_FUNDS_TO_DISTRIBUTE"
    RANDOMNESS_FAILED = "RANDOMNESS_FAILED"


class ShareType(Enum):
    """Recipient role in a payout"""
    WINNER = "WINNER"
    SECONDARY = "SECONDARY"


@dataclass
class Holder:
    """Asset holder as reported by the holder directory"""
    address: str
    balance: int  # Raw asset units


@dataclass
class WeightedHolder:
    """Eligible holder with fixed-point selection weights (over WEIGHT_SCALE)"""
    address: str
    balance: int
    weight: int
    cumulative_weight: int

    @property
    def weight_fraction(self) -> float:
        return self.weight / WEIGHT_SCALE

    def to_dict(self) -> Dict[str, Any]:
        return {
            "address": self.address,
            "balance": self.balance,
            "weight": self.weight_fraction,
        }


@dataclass(frozen=True)
class RandomnessTicket:
    """Pending randomness request issued by the randomness service"""
    seed: str
    source_reference: str


@dataclass(frozen=True)
class RandomnessRequest:
    """Fulfilled randomness with its provenance"""
    seed: str
    source_reference: str
    raw_bytes: bytes
    scalar_numerator: int  # derived scalar = scalar_numerator / WEIGHT_SCALE
    source: str = "orao_vrf"

    @property
    def derived_scalar(self) -> float:
        return self.scalar_numerator / WEIGHT_SCALE

    def to_provenance(self) -> Dict[str, Any]:
        """Serialize provenance for the audit record"""
        return {
            "seed": self.seed,
            "source_reference": self.source_reference,
            "randomness": list(self.raw_bytes),
            "random_value": self.derived_scalar,
            "source": self.source,
        }


@dataclass
class ClaimAcknowledgment:
    """Response of the fee-claim service; carries no amount"""
    success: bool
    reference: Optional[str] = None
    message: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {"success": self.success, "reference": self.reference, "message": self.message}


@dataclass
class ClaimMeasurement:
    """Claimed amount measured as the operating account balance delta"""
    balance_before: int
    balance_after: int
    acknowledgment: ClaimAcknowledgment

    @property
    def claimed_amount(self) -> int:
        return self.balance_after - self.balance_before

    def to_dict(self) -> Dict[str, Any]:
        return {
            "balance_before": lamports_to_sol(self.balance_before),
            "balance_after": lamports_to_sol(self.balance_after),
            "claimed_lamports": self.claimed_amount,
            "claimed_sol": lamports_to_sol(self.claimed_amount),
            "claim_result": self.acknowledgment.to_dict(),
        }


@dataclass
class PayoutShare:
    """Single recipient of a payout transfer"""
    recipient: str
    amount: int  # Lamports
    share_type: ShareType


@dataclass
class SecondaryAllocation:
    """Portion of a payout sent to the secondary (jackpot) pool"""
    address: str
    amount: int
    transfer_reference: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "address": self.address,
            "amount": self.amount,
            "amount_sol": lamports_to_sol(self.amount),
            "signature": self.transfer_reference,
        }


@dataclass
class PayoutResult:
    """Executed payout"""
    winner_address: str
    winner_amount: int
    distributable: int
    transfer_reference: str
    secondary: Optional[SecondaryAllocation] = None


@dataclass
class WinnerRecord:
    """Immutable audit entry, one per cycle"""
    cycle_id: int
    status: RecordStatus
    winner_address: Optional[str] = None
    amount_distributed: int = 0  # Winner's portion, lamports
    claimed_amount: int = 0
    transfer_reference: Optional[str] = None
    randomness_provenance: Optional[Dict[str, Any]] = None
    secondary_allocation: Optional[SecondaryAllocation] = None
    created_at: int = 0  # Milliseconds since epoch

    def to_dict(self) -> Dict[str, Any]:
        return {
            "cycle_id": self.cycle_id,
            "status": self.status.value,
            "wallet": self.winner_address,
            "amount_lamports": self.amount_distributed,
            "amount": lamports_to_sol(self.amount_distributed),
            "claimed_lamports": self.claimed_amount,
            "signature": self.transfer_reference,
            "randomness": self.randomness_provenance,
            "jackpot": self.secondary_allocation.to_dict() if self.secondary_allocation else None,
            "created_at": self.created_at,
        }


def lamports_to_sol(amount: int) -> float:
    """Human-readable native amount"""
    return amount / LAMPORTS_PER_SOL


def scalar_from_bytes(raw: bytes) -> int:
    """
    Map the first SCALAR_BYTES bytes to a fixed-point scalar in [0, WEIGHT_SCALE).

    Equivalent to sum(byte[i] * 256^-(i+1)) scaled by 2^64, without float
    accumulation.
    """
    if len(raw) < SCALAR_BYTES:
        raise ValueError(f"Need at least {SCALAR_BYTES} random bytes, got {len(raw)}")
    return int.from_bytes(bytes(raw[:SCALAR_BYTES]), "big")


def validate_amount(amount: int) -> None:
    """Validate that amount is a positive integer"""
    if not isinstance(amount, int) or isinstance(amount, bool):
        raise ValueError(f"Amount must be integer, got {type(amount)}")
    if amount <= 0:
        raise ValueError(f"Amount must be positive, got {amount}")


def validate_address(address: str) -> None:
    """Validate a base58-encoded ledger public key"""
    if not isinstance(address, str):
        raise ValueError(f"Address must be string, got {type(address)}")
    if not address or not address.strip():
        raise ValueError("Address cannot be empty")
    try:
        Pubkey.from_string(address.strip())
    except ValueError as e:
        raise ValueError(f"Address is not a valid public key: {address} ({e})") from e


def validate_shares(shares: List[PayoutShare]) -> None:
    """Validate a transfer batch before submission"""
    if not shares:
        raise ValueError("Transfer batch cannot be empty")
    for share in shares:
        validate_amount(share.amount)
        if not share.recipient:
            raise ValueError("Share recipient cannot be empty")

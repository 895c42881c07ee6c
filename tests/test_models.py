"""
Unit tests for distribution models and validation helpers.
"""

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import pytest

from distribution.models import (
    ClaimAcknowledgment,
    ClaimMeasurement,
    PayoutShare,
    RecordStatus,
    SecondaryAllocation,
    ShareType,
    WinnerRecord,
    lamports_to_sol,
    validate_address,
    validate_amount,
    validate_shares,
)


class TestValidation:
    """Test address, amount and batch validation"""

    def test_valid_addresses(self):
        validate_address("So11111111111111111111111111111111111111112")
        validate_address("TokenkegQfeZyiNwAJbNbGKPFXCWuBvf9Ss623VQ5DA")

    def test_invalid_addresses(self):
        for address in ("", "   ", "0OIl", "abc", "So1111111111111111111111111111111111111111211"):
            with pytest.raises(ValueError):
                validate_address(address)

    def test_amounts(self):
        validate_amount(1)
        for amount in (0, -5, 1.5, True):
            with pytest.raises(ValueError):
                validate_amount(amount)

    def test_shares(self):
        validate_shares([PayoutShare("carol", 10, ShareType.WINNER)])
        with pytest.raises(ValueError):
            validate_shares([])
        with pytest.raises(ValueError):
            validate_shares([PayoutShare("", 10, ShareType.WINNER)])
        with pytest.raises(ValueError):
            validate_shares([PayoutShare("carol", 0, ShareType.WINNER)])


class TestSerialization:
    """Test public dictionaries"""

    def test_claim_measurement(self):
        claim = ClaimMeasurement(
            balance_before=2_000_000_000,
            balance_after=2_010_000_000,
            acknowledgment=ClaimAcknowledgment(success=True, reference="claim-1"),
        )

        data = claim.to_dict()

        assert claim.claimed_amount == 10_000_000
        assert data["claimed_lamports"] == 10_000_000
        assert data["claimed_sol"] == pytest.approx(0.01)
        assert data["balance_before"] == pytest.approx(2.0)
        assert data["claim_result"]["reference"] == "claim-1"

    def test_winner_record(self):
        record = WinnerRecord(
            cycle_id=9,
            status=RecordStatus.DISTRIBUTED,
            winner_address="carol",
            amount_distributed=4_500_000,
            claimed_amount=10_000_000,
            transfer_reference="sig-1",
            secondary_allocation=SecondaryAllocation("jackpot", 500_000, "sig-1"),
            created_at=1_700_000_000_000,
        )

        data = record.to_dict()

        assert data["status"] == "DISTRIBUTED"
        assert data["wallet"] == "carol"
        assert data["amount"] == pytest.approx(0.0045)
        assert data["jackpot"] == {
            "address": "jackpot",
            "amount": 500_000,
            "amount_sol": pytest.approx(0.0005),
            "signature": "sig-1",
        }

    def test_lamports_to_sol(self):
        assert lamports_to_sol(1_000_000_000) == 1.0

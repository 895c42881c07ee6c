"""
Pytest configuration and shared fakes for the distribution tests.

The fakes stand in for the external collaborators (fee claim service,
ledger RPC, randomness oracle, transfer signer) so the orchestrator can be
driven end to end without a network.
"""

import sys
from pathlib import Path
from typing import Dict, List, Optional

sys.path.insert(0, str(Path(__file__).parent / "src"))

import pytest

from distribution.clients import (
    BalanceReader,
    FeeClaimer,
    HolderDirectory,
    RandomnessService,
    TransferGateway,
)
from distribution.cycles import CycleClock
from distribution.ledger import WinnerLedger
from distribution.models import ClaimAcknowledgment, Holder, PayoutShare, RandomnessTicket
from distribution.orchestrator import DistributionOrchestrator
from distribution.payout import PayoutExecutor
from distribution.randomness import RandomnessSource
from distribution.selection import HolderSelector


OPERATING_ACCOUNT = "11111111111111111111111111111111"
TOKEN_MINT = "So11111111111111111111111111111111111111112"
SECONDARY_POOL = "jackpot"
FIXED_NOW_MS = 1_700_000_123_456


class FakeLedgerAccount(BalanceReader, FeeClaimer):
    """Operating account whose balance grows by `claim_amount` on each claim"""

    def __init__(self, balance: int = 1_000_000_000, claim_amount: int = 0):
        self.balance = balance
        self.claim_amount = claim_amount
        self.claims = 0
        self.fail_claim: Optional[Exception] = None
        self.reject_claim = False

    async def get_balance(self, address: str) -> int:
        return self.balance

    async def claim_fees(self, account: str) -> ClaimAcknowledgment:
        self.claims += 1
        if self.fail_claim is not None:
            raise self.fail_claim
        if self.reject_claim:
            return ClaimAcknowledgment(success=False, message="Failed to collect fees: 500")
        self.balance += self.claim_amount
        return ClaimAcknowledgment(success=True, reference=f"claim-{self.claims}")


class FakeHolderDirectory(HolderDirectory):
    def __init__(self, holders: List[Holder]):
        self.holders = holders
        self.fail: Optional[Exception] = None
        self.calls = 0

    async def list_holders(self, asset: str) -> List[Holder]:
        self.calls += 1
        if self.fail is not None:
            raise self.fail
        return list(self.holders)


class FakeRandomnessService(RandomnessService):
    """Fulfills after `pending_polls` polls; never fulfills when `never_fulfill` is set"""

    def __init__(self, randomness: bytes = bytes(range(64)), pending_polls: int = 0):
        self.randomness = randomness
        self.pending_polls = pending_polls
        self.never_fulfill = False
        self.fail_submit: Optional[Exception] = None
        self.submitted: List[str] = []
        self.polls: Dict[str, int] = {}

    async def submit(self, owner: str) -> RandomnessTicket:
        if self.fail_submit is not None:
            raise self.fail_submit
        seed = f"seed-{len(self.submitted) + 1}"
        self.submitted.append(owner)
        return RandomnessTicket(seed=seed, source_reference=f"tx-{seed}")

    async def poll(self, seed: str) -> Optional[bytes]:
        self.polls[seed] = self.polls.get(seed, 0) + 1
        if self.never_fulfill or self.polls[seed] <= self.pending_polls:
            return None
        return self.randomness


class FakeTransferGateway(TransferGateway):
    def __init__(self):
        self.batches: List[List[PayoutShare]] = []
        self.fail: Optional[Exception] = None

    async def send(self, shares: List[PayoutShare]) -> str:
        if self.fail is not None:
            raise self.fail
        self.batches.append(list(shares))
        return f"sig-{len(self.batches)}"


def default_holders() -> List[Holder]:
    return [
        Holder(address="pool", balance=1_000_000),
        Holder(address="alice", balance=300),
        Holder(address="bob", balance=100),
        Holder(address="carol", balance=600),
        Holder(address="empty", balance=0),
    ]


@pytest.fixture
def ledger(tmp_path):
    """Winner ledger on a temporary database"""
    return WinnerLedger(tmp_path / "winners.db")


@pytest.fixture
def clock():
    """Clock frozen at FIXED_NOW_MS"""
    return CycleClock(time_source=lambda: FIXED_NOW_MS)


@pytest.fixture
def account():
    return FakeLedgerAccount()


@pytest.fixture
def directory():
    return FakeHolderDirectory(default_holders())


@pytest.fixture
def randomness_service():
    return FakeRandomnessService()


@pytest.fixture
def gateway():
    return FakeTransferGateway()


@pytest.fixture
def randomness_source(randomness_service):
    return RandomnessSource(randomness_service, settle_seconds=0, poll_interval=0, timeout=0.5)


@pytest.fixture
def selector(directory, randomness_source):
    return HolderSelector(
        directory=directory,
        randomness=randomness_source,
        asset=TOKEN_MINT,
        randomness_owner=OPERATING_ACCOUNT,
    )


@pytest.fixture
def make_orchestrator(clock, ledger, account, selector, gateway):
    """Factory for orchestrators sharing the fakes above"""

    def _make(secondary_address: Optional[str] = None, fee_buffer: int = 5_000_000):
        return DistributionOrchestrator(
            clock=clock,
            ledger=ledger,
            fee_claimer=account,
            balance_reader=account,
            selector=selector,
            payout_executor=PayoutExecutor(
                gateway, fee_buffer=fee_buffer, secondary_address=secondary_address
            ),
            operating_account=OPERATING_ACCOUNT,
            claim_settle_seconds=0,
        )

    return _make

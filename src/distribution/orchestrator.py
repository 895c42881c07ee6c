"""
Distribution Orchestrator: one idempotent fee-claim → selection → payout →
persistence run per cycle.

State machine (per invocation):

    START → CHECK_IDEMPOTENCY
        record exists / cycle reserved      → ALREADY_PROCESSED
        otherwise (cycle reserved by us)    → CLAIM_FEES
    CLAIM_FEES
        claim errors                        → ClaimFailure raised, reservation released
        claimed <= threshold                → PERSIST_NO_FUNDS
        claimed > threshold                 → SELECT_HOLDER
    SELECT_HOLDER
        SelectionFailure                    → PERSIST_RANDOMNESS_FAILURE
        winner selected                     → COMPUTE_PAYOUT → EXECUTE_PAYOUT
    EXECUTE_PAYOUT
        PayoutFailure                       → FATAL (raised, no record, reservation kept)
        success                             → PERSIST_DISTRIBUTED

Every terminal state except FATAL writes exactly one WinnerRecord.
"""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, ClassVar, Dict, Optional

from distribution.clients import BalanceReader, FeeClaimer
from distribution.cycles import CycleClock, CycleInfo
from distribution.errors import ClaimFailure, ConfigurationError, DistributionError, SelectionFailure
from distribution.ledger import InsertResult, WinnerLedger
from distribution.models import (
    ClaimMeasurement,
    PayoutResult,
    RecordStatus,
    WinnerRecord,
    lamports_to_sol,
)
from distribution.payout import PayoutExecutor
from distribution.selection import HolderSelector, SelectionResult
from observability.metrics import MetricsContext, cycle_latency, metrics_collector
from observability.tracing import create_span

logger = logging.getLogger(__name__)


class CycleState(Enum):
    START = "START"
    CHECK_IDEMPOTENCY = "CHECK_IDEMPOTENCY"
    CLAIM_FEES = "CLAIM_FEES"
    SELECT_HOLDER = "SELECT_HOLDER"
    COMPUTE_PAYOUT = "COMPUTE_PAYOUT"
    EXECUTE_PAYOUT = "EXECUTE_PAYOUT"
    ALREADY_PROCESSED = "ALREADY_PROCESSED"
    PERSIST_NO_FUNDS = "PERSIST_NO_FUNDS"
    PERSIST_RANDOMNESS_FAILURE = "PERSIST_RANDOMNESS_FAILURE"
    PERSIST_DISTRIBUTED = "PERSIST_DISTRIBUTED"
    FATAL = "FATAL"


# ============================================================================
# OUTCOMES (one per terminal state)
# ============================================================================


@dataclass
class CycleOutcome:
    """Result of one invocation"""

    kind: ClassVar[str] = ""
    success: ClassVar[bool] = False

    cycle: CycleInfo

    def to_dict(self) -> Dict[str, Any]:
        return {"success": self.success, "outcome": self.kind, "cycle_id": self.cycle.id}


@dataclass
class AlreadyProcessedOutcome(CycleOutcome):
    """The cycle already has a record, or another invocation holds it"""

    kind: ClassVar[str] = "already_processed"

    record: Optional[WinnerRecord]

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["error"] = f"Distribution already completed for cycle {self.cycle.id}"
        data["existing_distribution"] = self.record.to_dict() if self.record else None
        return data


@dataclass
class NoFundsOutcome(CycleOutcome):
    """Claimed amount did not exceed the threshold; nothing was sent"""

    kind: ClassVar[str] = "no_funds_to_distribute"
    success: ClassVar[bool] = True

    claim: ClaimMeasurement
    record: WinnerRecord

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data.update(self.claim.to_dict())
        data.update(
            {
                "recipient": None,
                "forwarded_lamports": 0,
                "forwarded_sol": 0.0,
                "tx_signature": None,
                "jackpot": None,
                "randomness": None,
                "winner": self.record.to_dict(),
            }
        )
        return data


@dataclass
class RandomnessFailedOutcome(CycleOutcome):
    """Selection failed after fees were claimed; the distribution is cancelled"""

    kind: ClassVar[str] = "randomness_failed"

    claim: ClaimMeasurement
    error: str
    record: WinnerRecord

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data.update(self.claim.to_dict())
        data.update(
            {
                "error": "Randomness failed - distribution cancelled for this cycle",
                "randomness_error": self.error,
                "forwarded_sol": 0.0,
                "message": "Fees collected but not distributed. They stay in the operating account for the next cycle.",
                "failed_attempt": self.record.to_dict(),
            }
        )
        return data


@dataclass
class DistributedOutcome(CycleOutcome):
    """Winner paid and recorded"""

    kind: ClassVar[str] = "distributed"
    success: ClassVar[bool] = True

    claim: ClaimMeasurement
    selection: SelectionResult
    payout: PayoutResult
    record: WinnerRecord

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data.update(self.claim.to_dict())
        provenance = self.selection.provenance
        data.update(
            {
                "recipient": self.payout.winner_address,
                "forwarded_lamports": self.payout.winner_amount,
                "forwarded_sol": lamports_to_sol(self.payout.winner_amount),
                "tx_signature": self.payout.transfer_reference,
                "jackpot": self.payout.secondary.to_dict() if self.payout.secondary else None,
                "randomness": {
                    "seed": provenance.seed,
                    "randomness_tx": provenance.source_reference,
                    "random_value": provenance.derived_scalar,
                    "randomness_source": provenance.source,
                },
                "winner": self.record.to_dict(),
            }
        )
        return data


# ============================================================================
# ORCHESTRATOR
# ============================================================================


class DistributionOrchestrator:
    """
    Run one distribution cycle.

    All collaborators are injected; the orchestrator holds no module-level
    state. Nothing is retried here: the next scheduled trigger is the retry.
    """

    def __init__(
        self,
        clock: CycleClock,
        ledger: WinnerLedger,
        fee_claimer: FeeClaimer,
        balance_reader: BalanceReader,
        selector: HolderSelector,
        payout_executor: PayoutExecutor,
        operating_account: str,
        min_claim_threshold: Optional[int] = None,
        claim_settle_seconds: float = 10.0,
    ):
        """
        Initialize distribution orchestrator.

        Args:
            clock: CycleClock deriving the current cycle
            ledger: WinnerLedger for idempotency and audit records
            fee_claimer: FeeClaimer sweeping fees into the operating account
            balance_reader: BalanceReader measuring the claim
            selector: HolderSelector choosing the winner
            payout_executor: PayoutExecutor sending the funds
            operating_account: Account receiving fees and paying winners
            min_claim_threshold: Claims at or below this are not distributed
                (defaults to the payout fee buffer)
            claim_settle_seconds: Wait between the claim and the second balance read

        Raises:
            ValueError: If the threshold is below the payout fee buffer
        """
        if min_claim_threshold is None:
            min_claim_threshold = payout_executor.fee_buffer
        if min_claim_threshold < payout_executor.fee_buffer:
            raise ValueError(
                f"Minimum claim threshold {min_claim_threshold} is below the fee buffer "
                f"{payout_executor.fee_buffer}"
            )

        self.clock = clock
        self.ledger = ledger
        self.fee_claimer = fee_claimer
        self.balance_reader = balance_reader
        self.selector = selector
        self.payout_executor = payout_executor
        self.operating_account = operating_account
        self.min_claim_threshold = min_claim_threshold
        self.claim_settle_seconds = claim_settle_seconds

    async def run(self, now_ms: Optional[int] = None) -> CycleOutcome:
        """
        Run the distribution for the current cycle.

        Args:
            now_ms: Wall-clock override (defaults to the clock's time source)

        Returns:
            One CycleOutcome subclass per terminal state

        Raises:
            ConfigurationError: If the operating account is not configured
            ClaimFailure: If the fee claim fails (no record written)
            PayoutFailure: If the transfer fails (no record written)
            PersistenceFailure: If the ledger cannot be read or written
        """
        if not self.operating_account:
            raise ConfigurationError("Operating account not configured")

        cycle = self.clock.current_cycle(now_ms)
        logger.info(f"[CYCLE {cycle.id}] Starting distribution check")

        with MetricsContext(cycle_latency), create_span("distribution.cycle", {"cycle.id": cycle.id}):
            try:
                outcome = await self._run_cycle(cycle)
            except DistributionError as e:
                self._enter(cycle, CycleState.FATAL)
                logger.error(f"[CYCLE {cycle.id}] {type(e).__name__}: {e}")
                metrics_collector.record_cycle_error(type(e).__name__)
                raise

        metrics_collector.record_cycle(cycle.id, outcome.kind)
        return outcome

    def _enter(self, cycle: CycleInfo, state: CycleState) -> None:
        logger.debug(f"[CYCLE {cycle.id}] -> {state.value}")

    async def _run_cycle(self, cycle: CycleInfo) -> CycleOutcome:
        self._enter(cycle, CycleState.CHECK_IDEMPOTENCY)
        existing = self.ledger.get(cycle.id)
        if existing is not None:
            self._enter(cycle, CycleState.ALREADY_PROCESSED)
            logger.info(f"[CYCLE {cycle.id}] Distribution already completed")
            return AlreadyProcessedOutcome(cycle=cycle, record=existing)

        if not self.ledger.reserve_cycle(cycle.id):
            self._enter(cycle, CycleState.ALREADY_PROCESSED)
            logger.info(f"[CYCLE {cycle.id}] Cycle is held by another invocation")
            return AlreadyProcessedOutcome(cycle=cycle, record=self.ledger.get(cycle.id))

        self._enter(cycle, CycleState.CLAIM_FEES)
        try:
            with create_span("distribution.claim_fees", {"cycle.id": cycle.id}):
                claim = await self._measure_claim(cycle)
        except ClaimFailure:
            self.ledger.release_cycle(cycle.id)
            raise

        metrics_collector.record_claimed(claim.claimed_amount)

        if claim.claimed_amount <= self.min_claim_threshold:
            self._enter(cycle, CycleState.PERSIST_NO_FUNDS)
            logger.info(
                f"[CYCLE {cycle.id}] No meaningful fees to distribute "
                f"({lamports_to_sol(claim.claimed_amount)} SOL)"
            )
            record = WinnerRecord(
                cycle_id=cycle.id,
                status=RecordStatus.NO_FUNDS_TO_DISTRIBUTE,
                claimed_amount=claim.claimed_amount,
            )
            return self._persist(
                cycle, record, lambda r: NoFundsOutcome(cycle=cycle, claim=claim, record=r)
            )

        self._enter(cycle, CycleState.SELECT_HOLDER)
        try:
            with create_span("distribution.select_holder", {"cycle.id": cycle.id}):
                selection = await self.selector.select()
        except SelectionFailure as e:
            self._enter(cycle, CycleState.PERSIST_RANDOMNESS_FAILURE)
            logger.error(f"[CYCLE {cycle.id}] Selection failed, cancelling distribution: {e}")
            record = WinnerRecord(
                cycle_id=cycle.id,
                status=RecordStatus.RANDOMNESS_FAILED,
                claimed_amount=claim.claimed_amount,
                randomness_provenance={
                    "seed": None,
                    "source_reference": None,
                    "randomness": None,
                    "random_value": None,
                    "source": "randomness_failed",
                    "error": str(e),
                },
            )
            return self._persist(
                cycle,
                record,
                lambda r: RandomnessFailedOutcome(cycle=cycle, claim=claim, error=str(e), record=r),
            )

        metrics_collector.set_eligible_holders(selection.eligible_count)

        self._enter(cycle, CycleState.COMPUTE_PAYOUT)
        self._enter(cycle, CycleState.EXECUTE_PAYOUT)
        with create_span(
            "distribution.payout", {"cycle.id": cycle.id, "winner": selection.winner.address}
        ):
            payout = await self.payout_executor.payout(
                claim.claimed_amount, selection.winner.address
            )

        metrics_collector.record_distributed("WINNER", payout.winner_amount)
        if payout.secondary:
            metrics_collector.record_distributed("SECONDARY", payout.secondary.amount)

        self._enter(cycle, CycleState.PERSIST_DISTRIBUTED)
        record = WinnerRecord(
            cycle_id=cycle.id,
            status=RecordStatus.DISTRIBUTED,
            winner_address=payout.winner_address,
            amount_distributed=payout.winner_amount,
            claimed_amount=claim.claimed_amount,
            transfer_reference=payout.transfer_reference,
            randomness_provenance=selection.provenance.to_provenance(),
            secondary_allocation=payout.secondary,
        )
        return self._persist(
            cycle,
            record,
            lambda r: DistributedOutcome(
                cycle=cycle, claim=claim, selection=selection, payout=payout, record=r
            ),
        )

    async def _measure_claim(self, cycle: CycleInfo) -> ClaimMeasurement:
        """Claim fees and measure the balance delta of the operating account"""
        try:
            balance_before = await self.balance_reader.get_balance(self.operating_account)
        except Exception as e:
            raise ClaimFailure(f"Failed to read balance before claim: {e}") from e

        try:
            acknowledgment = await self.fee_claimer.claim_fees(self.operating_account)
        except Exception as e:
            raise ClaimFailure(f"Fee claim failed: {e}") from e

        if not acknowledgment.success:
            raise ClaimFailure(f"Fee claim rejected: {acknowledgment.message}")

        await asyncio.sleep(self.claim_settle_seconds)

        try:
            balance_after = await self.balance_reader.get_balance(self.operating_account)
        except Exception as e:
            raise ClaimFailure(f"Failed to read balance after claim: {e}") from e

        claim = ClaimMeasurement(
            balance_before=balance_before,
            balance_after=balance_after,
            acknowledgment=acknowledgment,
        )
        logger.info(f"[CYCLE {cycle.id}] Balance before: {lamports_to_sol(balance_before)} SOL")
        logger.info(f"[CYCLE {cycle.id}] Balance after: {lamports_to_sol(balance_after)} SOL")
        logger.info(f"[CYCLE {cycle.id}] Claimed from fees: {lamports_to_sol(claim.claimed_amount)} SOL")
        return claim

    def _persist(
        self,
        cycle: CycleInfo,
        record: WinnerRecord,
        make_outcome: Callable[[WinnerRecord], CycleOutcome],
    ) -> CycleOutcome:
        """Write the cycle's record; a conflicting record wins and is reported"""
        with create_span("distribution.persist", {"cycle.id": cycle.id, "status": record.status.value}):
            result = self.ledger.insert_if_absent(record)

        if result == InsertResult.ALREADY_EXISTS:
            self._enter(cycle, CycleState.ALREADY_PROCESSED)
            logger.warning(f"[CYCLE {cycle.id}] Record already present, keeping the stored one")
            return AlreadyProcessedOutcome(cycle=cycle, record=self.ledger.get(cycle.id))

        logger.info(f"[CYCLE {cycle.id}] Saved {record.status.value} record")
        return make_outcome(record)

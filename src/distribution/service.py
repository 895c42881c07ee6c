"""
Service wiring: builds the orchestrator and its collaborators from settings.
"""

import logging
from dataclasses import dataclass
from typing import Optional

import httpx

from distribution.clients import (
    HttpFeeClaimer,
    HttpRandomnessService,
    HttpTransferGateway,
    SolanaLedgerClient,
)
from distribution.config import DistributionSettings
from distribution.cycles import CycleClock
from distribution.errors import ConfigurationError
from distribution.ledger import WinnerLedger
from distribution.orchestrator import DistributionOrchestrator
from distribution.payout import PayoutExecutor
from distribution.randomness import RandomnessSource
from distribution.selection import HolderSelector

logger = logging.getLogger(__name__)


@dataclass
class DistributionService:
    """Handles shared by the HTTP endpoints"""

    settings: DistributionSettings
    clock: CycleClock
    ledger: WinnerLedger
    orchestrator: Optional[DistributionOrchestrator] = None
    http_client: Optional[httpx.AsyncClient] = None
    ledger_client: Optional[SolanaLedgerClient] = None

    async def aclose(self) -> None:
        """Close the network sessions opened for the collaborators"""
        if self.ledger_client is not None:
            await self.ledger_client.close()
        if self.http_client is not None:
            await self.http_client.aclose()


def build_orchestrator(
    settings: DistributionSettings,
    clock: CycleClock,
    ledger: WinnerLedger,
    http_client: httpx.AsyncClient,
    ledger_client: SolanaLedgerClient,
) -> DistributionOrchestrator:
    """Wire the network collaborators into an orchestrator; HTTP services share one client"""
    timeout = settings.http_timeout_seconds

    randomness = RandomnessSource(
        HttpRandomnessService(settings.randomness_url, timeout=timeout, client=http_client),
        settle_seconds=settings.randomness_settle_seconds,
        poll_interval=settings.randomness_poll_seconds,
        timeout=settings.randomness_timeout_seconds,
    )

    selector = HolderSelector(
        directory=ledger_client,
        randomness=randomness,
        asset=settings.token_mint,
        randomness_owner=settings.operating_account,
        excluded_address=settings.excluded_address,
    )

    payout_executor = PayoutExecutor(
        HttpTransferGateway(settings.signer_url, settings.operating_account, client=http_client),
        fee_buffer=settings.fee_buffer,
        secondary_address=settings.secondary_pool_address,
        split_ratio=settings.split_ratio,
    )

    return DistributionOrchestrator(
        clock=clock,
        ledger=ledger,
        fee_claimer=HttpFeeClaimer(settings.fee_claim_url, timeout=timeout, client=http_client),
        balance_reader=ledger_client,
        selector=selector,
        payout_executor=payout_executor,
        operating_account=settings.operating_account,
        min_claim_threshold=settings.min_claim_threshold,
        claim_settle_seconds=settings.claim_settle_seconds,
    )


def build_service(settings: DistributionSettings) -> DistributionService:
    """
    Build the service from settings.

    The ledger and clock are always available so the read endpoint works; the
    orchestrator and its network clients are only built when the settings
    validate. Call `aclose()` on shutdown.
    """
    clock = CycleClock(settings.cycle_length_ms)
    settings.db_path.parent.mkdir(parents=True, exist_ok=True)
    ledger = WinnerLedger(settings.db_path)
    service = DistributionService(settings=settings, clock=clock, ledger=ledger)

    try:
        settings.validate()
    except ConfigurationError as e:
        logger.error(f"Distribution disabled: {e}")
        return service

    service.http_client = httpx.AsyncClient(timeout=settings.http_timeout_seconds)
    service.ledger_client = SolanaLedgerClient(settings.rpc_url, timeout=settings.http_timeout_seconds)
    service.orchestrator = build_orchestrator(
        settings, clock, ledger, service.http_client, service.ledger_client
    )
    return service

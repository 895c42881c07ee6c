"""
Randomness Source: bounded wait on an external verifiable-randomness service.

A request is submitted, left to settle, then polled until fulfilled. The
whole poll is bounded; on timeout or service error the draw fails. There is
no fallback to local pseudo-randomness.
"""

import asyncio
import logging
import time

from distribution.clients import RandomnessService
from distribution.errors import RandomnessFailure, RandomnessTimeout
from distribution.models import RandomnessRequest, scalar_from_bytes
from observability.metrics import metrics_collector

logger = logging.getLogger(__name__)


class RandomnessSource:
    """
    Adapter that turns the oracle's request/poll protocol into one awaitable call.
    """

    def __init__(
        self,
        service: RandomnessService,
        settle_seconds: float = 5.0,
        poll_interval: float = 1.0,
        timeout: float = 60.0,
        source_name: str = "orao_vrf",
    ):
        """
        Initialize randomness source.

        Args:
            service: RandomnessService to submit requests to
            settle_seconds: Wait between submission and the first poll
            poll_interval: Wait between polls
            timeout: Upper bound on the total polling time
            source_name: Label recorded in the provenance
        """
        self.service = service
        self.settle_seconds = settle_seconds
        self.poll_interval = poll_interval
        self.timeout = timeout
        self.source_name = source_name

    async def _wait_fulfilled(self, seed: str) -> bytes:
        while True:
            raw = await self.service.poll(seed)
            if raw is not None:
                return raw
            await asyncio.sleep(self.poll_interval)

    async def request_randomness(self, owner: str) -> RandomnessRequest:
        """
        Request randomness and wait for fulfillment.

        Args:
            owner: Account the request is tied to

        Returns:
            Fulfilled RandomnessRequest

        Raises:
            RandomnessTimeout: If fulfillment is not observed within the timeout
            RandomnessFailure: If the service errors or returns too few bytes
        """
        logger.info(f"Requesting randomness for {owner}")
        start_time = time.time()

        try:
            ticket = await self.service.submit(owner)
        except Exception as e:
            raise RandomnessFailure(f"Randomness request failed: {e}") from e

        logger.info(f"Randomness request submitted. Seed: {ticket.seed}, TX: {ticket.source_reference}")

        await asyncio.sleep(self.settle_seconds)

        try:
            raw = await asyncio.wait_for(self._wait_fulfilled(ticket.seed), timeout=self.timeout)
        except asyncio.TimeoutError:
            elapsed = time.time() - start_time
            logger.warning(f"Randomness for seed {ticket.seed} not fulfilled after {elapsed:.1f}s")
            raise RandomnessTimeout(
                f"Randomness not fulfilled within {self.timeout}s (seed {ticket.seed})"
            )
        except Exception as e:
            raise RandomnessFailure(f"Randomness polling failed: {e}") from e

        try:
            scalar = scalar_from_bytes(raw)
        except ValueError as e:
            raise RandomnessFailure(str(e)) from e

        metrics_collector.record_randomness_wait(time.time() - start_time)
        logger.info(f"Randomness received for seed {ticket.seed}: {list(raw[:8])}")

        return RandomnessRequest(
            seed=ticket.seed,
            source_reference=ticket.source_reference,
            raw_bytes=bytes(raw),
            scalar_numerator=scalar,
            source=self.source_name,
        )

"""
External collaborators: interfaces used by the distribution core and their
network implementations.

The core only depends on the abstract classes; tests substitute in-memory
fakes. Ledger reads go through solana-py; the fee-claim, randomness and
signer services are plain HTTP/JSON. Transaction construction and signing
live behind the fee-claim and signer services, never in this process.
"""

import logging
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from typing import Dict, List, Optional

import httpx
from solana.rpc.async_api import AsyncClient
from solana.rpc.commitment import Confirmed
from solana.rpc.types import MemcmpOpts
from solders.pubkey import Pubkey

from distribution.models import (
    Holder,
    ClaimAcknowledgment,
    RandomnessTicket,
    PayoutShare,
    validate_shares,
)

logger = logging.getLogger(__name__)

SPL_TOKEN_PROGRAM_ID = Pubkey.from_string("TokenkegQfeZyiNwAJbNbGKPFXCWuBvf9Ss623VQ5DA")
TOKEN_ACCOUNT_DATA_SIZE = 165


class FeeClaimer(ABC):
    """Triggers the external fee sweep into the operating account"""

    @abstractmethod
    async def claim_fees(self, account: str) -> ClaimAcknowledgment:
        ...


class BalanceReader(ABC):
    """Reads native balances in lamports"""

    @abstractmethod
    async def get_balance(self, address: str) -> int:
        ...


class HolderDirectory(ABC):
    """Lists every account holding an asset"""

    @abstractmethod
    async def list_holders(self, asset: str) -> List[Holder]:
        ...


class RandomnessService(ABC):
    """Verifiable randomness oracle: submit a request, then poll for fulfillment"""

    @abstractmethod
    async def submit(self, owner: str) -> RandomnessTicket:
        ...

    @abstractmethod
    async def poll(self, seed: str) -> Optional[bytes]:
        """Return the random bytes once fulfilled, None while pending"""


class TransferGateway(ABC):
    """Submits one multi-recipient transfer; all recipients land or none do"""

    @abstractmethod
    async def send(self, shares: List[PayoutShare]) -> str:
        """Submit and confirm the transfer, returning its reference (signature)"""


class SolanaLedgerClient(BalanceReader, HolderDirectory):
    """
    Ledger client for balances and token holders over solana-py.

    Holders are read with getProgramAccounts on the token program, filtered by
    account size and mint; token accounts of the same owner are summed.
    """

    def __init__(self, rpc_url: str, timeout: float = 30.0, rpc: Optional[AsyncClient] = None):
        self.rpc_url = rpc_url
        self.rpc = rpc or AsyncClient(rpc_url, commitment=Confirmed, timeout=timeout)

    async def get_balance(self, address: str) -> int:
        response = await self.rpc.get_balance(Pubkey.from_string(address), commitment=Confirmed)
        return int(response.value)

    async def list_holders(self, asset: str) -> List[Holder]:
        response = await self.rpc.get_program_accounts_json_parsed(
            SPL_TOKEN_PROGRAM_ID,
            commitment=Confirmed,
            filters=[TOKEN_ACCOUNT_DATA_SIZE, MemcmpOpts(offset=0, bytes=asset)],
        )
        accounts = response.value or []

        balances: Dict[str, int] = {}
        for account in accounts:
            info = (account.account.data.parsed or {}).get("info", {})
            owner = info.get("owner")
            if not owner:
                continue
            amount = int(info.get("tokenAmount", {}).get("amount", "0"))
            balances[owner] = balances.get(owner, 0) + amount

        logger.info(f"Fetched {len(accounts)} token accounts for {asset} ({len(balances)} owners)")
        return [Holder(address=owner, balance=balance) for owner, balance in balances.items()]

    async def close(self) -> None:
        await self.rpc.close()


class _HttpCollaborator:
    """Shared httpx session handling; a client passed in is reused for every call"""

    def __init__(self, timeout: float = 30.0, client: Optional[httpx.AsyncClient] = None):
        self.timeout = timeout
        self._client = client

    @asynccontextmanager
    async def _session(self):
        if self._client is not None:
            yield self._client
        else:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                yield client


class HttpFeeClaimer(_HttpCollaborator, FeeClaimer):
    """
    Asks the fee-claim service to collect creator fees into the account.

    The service signs and submits the collection itself; a claim only counts
    when it answers with the transaction signature.
    """

    def __init__(
        self,
        claim_url: str,
        priority_fee: float = 0.000001,
        timeout: float = 30.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        super().__init__(timeout=timeout, client=client)
        self.claim_url = claim_url
        self.priority_fee = priority_fee

    async def claim_fees(self, account: str) -> ClaimAcknowledgment:
        logger.info(f"Requesting fee collection for {account}")
        async with self._session() as client:
            response = await client.post(
                self.claim_url,
                json={
                    "publicKey": account,
                    "action": "collectCreatorFee",
                    "priorityFee": self.priority_fee,
                },
            )

        if response.status_code != 200:
            logger.error(f"Fee collection rejected: {response.status_code} {response.text}")
            return ClaimAcknowledgment(
                success=False,
                message=f"Failed to collect fees: {response.status_code} {response.text}",
            )

        reference = None
        if response.headers.get("content-type", "").startswith("application/json"):
            reference = response.json().get("signature")

        if not reference:
            logger.error("Fee-claim service answered without a transaction signature")
            return ClaimAcknowledgment(
                success=False,
                message="Fee-claim service returned no transaction signature",
            )

        logger.info(f"Fee collection submitted: {reference}")
        return ClaimAcknowledgment(
            success=True,
            reference=reference,
            message="Fee collection transaction sent successfully",
        )


class HttpRandomnessService(_HttpCollaborator, RandomnessService):
    """Request/poll client for the randomness oracle gateway"""

    def __init__(self, base_url: str, timeout: float = 30.0, client: Optional[httpx.AsyncClient] = None):
        super().__init__(timeout=timeout, client=client)
        self.base_url = base_url.rstrip("/")

    async def submit(self, owner: str) -> RandomnessTicket:
        async with self._session() as client:
            response = await client.post(f"{self.base_url}/requests", json={"owner": owner})
        response.raise_for_status()
        data = response.json()
        return RandomnessTicket(seed=str(data["seed"]), source_reference=str(data["tx"]))

    async def poll(self, seed: str) -> Optional[bytes]:
        async with self._session() as client:
            response = await client.get(f"{self.base_url}/requests/{seed}")
        response.raise_for_status()
        data = response.json()
        if not data.get("fulfilled"):
            return None
        return bytes(data["randomness"])


class HttpTransferGateway(_HttpCollaborator, TransferGateway):
    """Hands a multi-recipient transfer to the signer service"""

    def __init__(
        self,
        base_url: str,
        source_account: str,
        timeout: float = 60.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        super().__init__(timeout=timeout, client=client)
        self.base_url = base_url.rstrip("/")
        self.source_account = source_account

    async def send(self, shares: List[PayoutShare]) -> str:
        validate_shares(shares)
        payload = {
            "from": self.source_account,
            "transfers": [{"recipient": s.recipient, "lamports": s.amount} for s in shares],
        }
        async with self._session() as client:
            response = await client.post(f"{self.base_url}/transfers", json=payload, timeout=self.timeout)
        response.raise_for_status()
        signature = response.json().get("signature")
        if not signature:
            raise RuntimeError("Signer returned no transfer signature")
        return signature

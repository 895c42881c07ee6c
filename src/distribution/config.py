"""
Distribution Configuration

Settings for the fee distribution job, loaded from environment variables.
"""

import os
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, Optional

from distribution.cycles import DEFAULT_CYCLE_LENGTH_MS
from distribution.errors import ConfigurationError
from distribution.models import validate_address

logger = logging.getLogger(__name__)


DEFAULT_FEE_CLAIM_URL = "http://127.0.0.1:8092/claim"


def _optional(name: str) -> Optional[str]:
    value = os.getenv(name, "").strip()
    return value or None


def _number(kind: Callable[[str], Any], name: str, default: str) -> Any:
    """Parse a numeric variable; blank values fall back to the default"""
    raw = os.getenv(name, "").strip() or default
    try:
        return kind(raw)
    except ValueError as e:
        raise ConfigurationError(f"{name} must be a {kind.__name__}, got {raw!r}") from e


@dataclass
class DistributionSettings:
    """
    Distribution job settings.

    Attributes:
        token_mint: Asset whose holders participate (required)
        operating_account: Account that receives fees and pays winners (required)
        excluded_address: Operational/treasury address that never participates
        secondary_pool_address: Jackpot address; enables the split payout
        cron_secret: Bearer token expected on the trigger endpoint
        fee_buffer: Lamports kept back from each payout for transaction fees
        min_claim_threshold: Claims at or below this amount are not distributed
        split_ratio: Winner's share when a secondary pool is configured
    """

    token_mint: str = ""
    operating_account: str = ""
    excluded_address: Optional[str] = None
    secondary_pool_address: Optional[str] = None
    cron_secret: str = ""
    rpc_url: str = "https://api.mainnet-beta.solana.com"
    fee_claim_url: str = DEFAULT_FEE_CLAIM_URL
    randomness_url: str = "http://127.0.0.1:8090"
    signer_url: str = "http://127.0.0.1:8091"
    db_path: Path = Path(".state/winners.db")
    cycle_length_ms: int = DEFAULT_CYCLE_LENGTH_MS
    fee_buffer: int = 5_000_000
    min_claim_threshold: Optional[int] = None  # Defaults to fee_buffer
    split_ratio: float = 0.9
    recent_limit: int = 20
    claim_settle_seconds: float = 10.0
    randomness_settle_seconds: float = 5.0
    randomness_poll_seconds: float = 1.0
    randomness_timeout_seconds: float = 60.0
    http_timeout_seconds: float = 30.0
    otlp_endpoint: Optional[str] = None
    log_level: str = "INFO"

    def __post_init__(self):
        if self.min_claim_threshold is None:
            self.min_claim_threshold = self.fee_buffer

    @property
    def token_mint_empty(self) -> bool:
        return not self.token_mint or not self.token_mint.strip()

    @property
    def operating_account_missing(self) -> bool:
        return not self.operating_account or not self.operating_account.strip()

    def validate(self) -> None:
        """
        Check required identities before any external service is touched.

        Raises:
            ConfigurationError: If the asset or operating account is missing,
                or any configured address is malformed
        """
        if self.token_mint_empty or self.operating_account_missing:
            raise ConfigurationError("TOKEN_MINT or OPERATING_ACCOUNT not configured")

        addresses = {
            "TOKEN_MINT": self.token_mint,
            "OPERATING_ACCOUNT": self.operating_account,
            "EXCLUDED_ADDRESS": self.excluded_address,
            "SECONDARY_POOL_ADDRESS": self.secondary_pool_address,
        }
        for name, address in addresses.items():
            if address is None:
                continue
            try:
                validate_address(address)
            except ValueError as e:
                raise ConfigurationError(f"{name} is invalid: {e}") from e

        if not self.fee_claim_url or not self.fee_claim_url.strip():
            raise ConfigurationError("FEE_CLAIM_URL not configured")
        if not 0 < self.split_ratio <= 1:
            raise ConfigurationError(f"SPLIT_RATIO must be in (0, 1], got {self.split_ratio}")
        if self.fee_buffer < 0:
            raise ConfigurationError(f"FEE_BUFFER cannot be negative: {self.fee_buffer}")
        if self.min_claim_threshold < self.fee_buffer:
            raise ConfigurationError(
                f"MIN_CLAIM_THRESHOLD ({self.min_claim_threshold}) must not be below FEE_BUFFER ({self.fee_buffer})"
            )

    def status(self) -> Dict[str, Any]:
        """Configuration flags reported by the API"""
        return {
            "token_mint_empty": self.token_mint_empty,
            "operating_account_missing": self.operating_account_missing,
            "secondary_pool_configured": bool(self.secondary_pool_address),
        }

    @classmethod
    def from_env(cls) -> "DistributionSettings":
        """Create settings from environment variables"""
        fee_buffer = _number(int, "FEE_BUFFER", "5000000")
        if not _optional("SECONDARY_POOL_ADDRESS"):
            logger.warning("SECONDARY_POOL_ADDRESS not configured, winners receive 100% of payouts")
        return cls(
            token_mint=os.getenv("TOKEN_MINT", "").strip(),
            operating_account=os.getenv("OPERATING_ACCOUNT", "").strip(),
            excluded_address=_optional("EXCLUDED_ADDRESS"),
            secondary_pool_address=_optional("SECONDARY_POOL_ADDRESS"),
            cron_secret=os.getenv("CRON_SECRET", ""),
            rpc_url=os.getenv("RPC_URL", "https://api.mainnet-beta.solana.com"),
            fee_claim_url=_optional("FEE_CLAIM_URL") or DEFAULT_FEE_CLAIM_URL,
            randomness_url=os.getenv("RANDOMNESS_URL", "http://127.0.0.1:8090"),
            signer_url=os.getenv("SIGNER_URL", "http://127.0.0.1:8091"),
            db_path=Path(os.getenv("WINNER_DB_PATH", ".state/winners.db")),
            cycle_length_ms=_number(int, "CYCLE_LENGTH_MS", str(DEFAULT_CYCLE_LENGTH_MS)),
            fee_buffer=fee_buffer,
            min_claim_threshold=_number(int, "MIN_CLAIM_THRESHOLD", str(fee_buffer)),
            split_ratio=_number(float, "SPLIT_RATIO", "0.9"),
            recent_limit=_number(int, "RECENT_RECORDS_LIMIT", "20"),
            claim_settle_seconds=_number(float, "CLAIM_SETTLE_SECONDS", "10"),
            randomness_settle_seconds=_number(float, "RANDOMNESS_SETTLE_SECONDS", "5"),
            randomness_poll_seconds=_number(float, "RANDOMNESS_POLL_SECONDS", "1"),
            randomness_timeout_seconds=_number(float, "RANDOMNESS_TIMEOUT_SECONDS", "60"),
            http_timeout_seconds=_number(float, "HTTP_TIMEOUT_SECONDS", "30"),
            otlp_endpoint=_optional("OTEL_EXPORTER_OTLP_ENDPOINT"),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        )

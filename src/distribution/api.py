"""
FastAPI endpoints for the distribution job.

- GET /api/random: authenticated trigger, runs one distribution cycle
- GET /api/stats: recent winners and cycle timing, no side effects
- GET /health, GET /metrics
"""

import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, Header
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from distribution.config import DistributionSettings
from distribution.errors import ConfigurationError
from distribution.service import DistributionService, build_service
from observability.metrics import setup_metrics_endpoint_fastapi

logger = logging.getLogger(__name__)


# Response models


class CycleTiming(BaseModel):
    """Cycle timing merged into every response"""

    server_time: str
    current_cycle: int
    seconds_until_next: int
    next_distribution_time: str
    last_distribution_time: str


class WinnerRecordModel(BaseModel):
    """Audit record as exposed publicly"""

    cycle_id: int
    status: str
    wallet: Optional[str] = None
    amount_lamports: int = Field(..., ge=0, description="Winner's portion in lamports")
    amount: float = Field(..., ge=0, description="Winner's portion in SOL")
    claimed_lamports: int
    signature: Optional[str] = None
    randomness: Optional[Dict[str, Any]] = None
    jackpot: Optional[Dict[str, Any]] = None
    created_at: int


class StatsResponse(CycleTiming):
    """Read endpoint response"""

    success: bool
    winners: List[WinnerRecordModel]
    error: Optional[str] = None
    token_mint_empty: Optional[bool] = None
    operating_account_missing: Optional[bool] = None


def _recent_winners(service: DistributionService) -> List[Dict[str, Any]]:
    return [r.to_dict() for r in service.ledger.list_recent(service.settings.recent_limit)]


def create_app(service: Optional[DistributionService] = None) -> FastAPI:
    """
    Create the API application.

    Args:
        service: Prebuilt service (defaults to one built from the environment)
    """
    if service is None:
        service = build_service(DistributionSettings.from_env())

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        await service.aclose()

    app = FastAPI(title="Holder Distribution API", version="1.0.0", lifespan=lifespan)
    app.state.service = service

    @app.get("/api/random")
    async def trigger_distribution(authorization: Optional[str] = Header(None)):
        """
        Run the distribution for the current cycle.

        Requires `Authorization: Bearer <CRON_SECRET>`. Expected outcomes
        (already processed, no funds, randomness failure) answer 200 with a
        success flag; unexpected failures answer 500.
        """
        settings = service.settings
        if not settings.cron_secret or authorization != f"Bearer {settings.cron_secret}":
            return JSONResponse({"success": False, "error": "Unauthorized"}, status_code=401)

        try:
            settings.validate()
            if service.orchestrator is None:
                raise ConfigurationError("Distribution service not initialized")
        except ConfigurationError as e:
            logger.error(f"Trigger rejected: {e}")
            return {
                "success": False,
                "error": str(e),
                **settings.status(),
                "winners": [],
                **service.clock.current_cycle().to_dict(),
            }

        try:
            outcome = await service.orchestrator.run()
            response = outcome.to_dict()
            response["winners"] = _recent_winners(service)
            response.update(service.clock.current_cycle().to_dict())
            return response
        except Exception as e:
            cycle = service.clock.current_cycle()
            logger.exception(f"Error in trigger handler for cycle {cycle.id}: {e}")
            return JSONResponse(
                {"success": False, "error": str(e), **cycle.to_dict()}, status_code=500
            )

    @app.get(
        "/api/stats", response_model=StatsResponse, response_model_exclude_unset=True
    )
    async def get_stats():
        """Recent winners plus time until the next cycle"""
        settings = service.settings
        timing = service.clock.current_cycle().to_dict()

        if settings.token_mint_empty or settings.operating_account_missing:
            return StatsResponse(
                success=False,
                error="TOKEN_MINT or OPERATING_ACCOUNT not configured. Please check your environment variables.",
                token_mint_empty=settings.token_mint_empty,
                operating_account_missing=settings.operating_account_missing,
                winners=[],
                **timing,
            )

        try:
            winners = _recent_winners(service)
        except Exception as e:
            logger.error(f"Error fetching winners: {e}")
            return JSONResponse({"success": False, "error": str(e), **timing}, status_code=500)

        return StatsResponse(success=True, winners=winners, **timing)

    @app.get("/health")
    async def health_check():
        """Health check endpoint"""
        return {
            "status": "healthy",
            "service": "holder-distribution",
            "distribution_enabled": service.orchestrator is not None,
        }

    setup_metrics_endpoint_fastapi(app)

    return app


def main():
    """Run the API server"""
    import os
    import uvicorn

    from observability.tracing import setup_tracing, shutdown_tracing

    settings = DistributionSettings.from_env()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    setup_tracing("holder-distribution", otlp_endpoint=settings.otlp_endpoint)

    service = build_service(settings)
    try:
        uvicorn.run(
            create_app(service),
            host=os.getenv("HOST", "0.0.0.0"),
            port=int(os.getenv("PORT", "8000")),
        )
    finally:
        service.ledger.close()
        shutdown_tracing()


if __name__ == "__main__":
    main()

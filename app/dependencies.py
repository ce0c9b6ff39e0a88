# =============================================================================
# app/dependencies.py - Shared Dependencies
# =============================================================================
# FastAPI dependency injection for shared resources.
# These are injected into route handlers using Depends().
#
# Tests override get_orchestrator / get_store via app.dependency_overrides.
# =============================================================================

import logging
import secrets
from typing import Annotated

from fastapi import Depends, Header, HTTPException, status

from app.config import settings
from core.services.interfaces import SettlementStore
from core.services.settlement_service import CampaignOrchestrator

logger = logging.getLogger(__name__)


def get_store() -> SettlementStore:
    """
    Get the Supabase-backed settlement store.

    The underlying client is a singleton, so this is cheap per request.
    """
    from lib.supabase_client import SupabaseSettlementStore

    return SupabaseSettlementStore()


def get_orchestrator() -> CampaignOrchestrator:
    """Get a fully wired CampaignOrchestrator."""
    return CampaignOrchestrator.from_settings()


async def verify_settlement_secret(
    x_settlement_secret: Annotated[str | None, Header(alias="X-Settlement-Secret")] = None,
) -> None:
    """
    Require the scheduler's shared secret on settlement endpoints.

    Raises:
        HTTPException: 401 if the header is missing or wrong
    """
    if not x_settlement_secret or not secrets.compare_digest(
        x_settlement_secret, settings.SETTLEMENT_SECRET
    ):
        logger.warning("Rejected settlement request with missing or invalid secret")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing or invalid X-Settlement-Secret header",
        )


# Type aliases for dependency injection
StoreDep = Annotated[SettlementStore, Depends(get_store)]
OrchestratorDep = Annotated[CampaignOrchestrator, Depends(get_orchestrator)]

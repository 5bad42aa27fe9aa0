"""
Health check endpoint.
"""
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from datetime import datetime, timezone
import logging

from contract_ai.config import settings
from contract_ai.database import check_database_health, get_db
from contract_ai.models.schemas import HealthCheckResponse

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/", response_model=HealthCheckResponse)
async def health_check(db: AsyncSession = Depends(get_db)):
    """
    Health check endpoint to verify system status.

    The AI check only reports whether an Anthropic key is configured; it
    does not call the API.

    Returns:
        HealthCheckResponse with status of database and AI configuration
    """
    db_health = await check_database_health(db)
    db_status = "ok" if db_health["status"] == "healthy" else "error"

    ai_status = "configured" if settings.ANTHROPIC_API_KEY else "missing"

    overall_status = "healthy" if db_status == "ok" and ai_status == "configured" else "degraded"

    return HealthCheckResponse(
        status=overall_status,
        database=db_status,
        ai=ai_status,
        timestamp=datetime.now(timezone.utc),
    )

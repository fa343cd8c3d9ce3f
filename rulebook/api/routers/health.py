"""Liveness and readiness checks."""

from datetime import datetime, timezone

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from rulebook.config import Settings, get_settings
from rulebook.database import DbSession
from rulebook.logging_config import get_logger
from rulebook.search import ACTIVE_RULE_INDEX, RULE_INDEX, SearchIndex, get_search_index

router = APIRouter(tags=["health"])
logger = get_logger(__name__)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class HealthResponse(BaseModel):
    status: str
    timestamp: str
    version: str
    environment: str


class ReadinessResponse(BaseModel):
    status: str
    timestamp: str
    checks: dict[str, str]
    indexed: dict[str, int] = {}


@router.get("/health", response_model=HealthResponse)
async def health_check(settings: Settings = Depends(get_settings)) -> HealthResponse:
    return HealthResponse(
        status="healthy",
        timestamp=_now(),
        version=settings.api_version,
        environment=settings.environment,
    )


@router.get("/health/ready", response_model=ReadinessResponse)
async def readiness_check(
    db: DbSession,
    index: SearchIndex = Depends(get_search_index),
) -> ReadinessResponse:
    """Ready once the database answers.

    Search index document counts are reported for information only; the index
    is rebuilt from the database and never blocks readiness.
    """
    checks: dict[str, str] = {}
    try:
        await db.execute(text("SELECT 1"))
        checks["database"] = "ok"
    except SQLAlchemyError as e:
        logger.warning("Readiness database check failed", error=str(e))
        checks["database"] = f"error: {e}"

    indexed = {name: await index.count(name) for name in (RULE_INDEX, ACTIVE_RULE_INDEX)}
    checks["search_index"] = "ok"

    return ReadinessResponse(
        status="ready" if checks["database"] == "ok" else "not_ready",
        timestamp=_now(),
        checks=checks,
        indexed=indexed,
    )


@router.get("/health/live")
async def liveness_check() -> dict[str, str]:
    return {"status": "alive", "timestamp": _now()}

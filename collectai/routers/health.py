import logging

from fastapi import APIRouter
from collectai.models.schemas import HealthResponse
from collectai.database import get_db

logger = logging.getLogger(__name__)
router = APIRouter(tags=["health"])


@router.get("/health", response_model=HealthResponse)
async def health_check():
    """Return service health, or status="starting" while the DB is not ready."""
    try:
        async with get_db() as db:
            interactions = await db.execute("SELECT COUNT(*) FROM ai_interactions")
            interaction_count = (await interactions.fetchone())[0]
            comms = await db.execute("SELECT COUNT(*) FROM communication_logs")
            communication_count = (await comms.fetchone())[0]
        return HealthResponse(
            status="healthy",
            interaction_count=interaction_count,
            communication_count=communication_count,
        )
    except Exception as exc:
        logger.warning("Health check: DB not ready yet (%s)", exc)
        return HealthResponse(status="starting")

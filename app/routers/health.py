import logging

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.session import get_session

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/health", tags=["health"])


@router.get("", name="health")
async def health_check(session: AsyncSession = Depends(get_session)):
    """Процесс жив и база отвечает; без базы отдаём 503."""
    try:
        await session.execute(text("SELECT 1"))
    except (SQLAlchemyError, OSError) as exc:
        logger.error("Database health check failed: %s", exc)
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={
                "success": False,
                "message": "Database unavailable",
                "code": "SERVICE_UNAVAILABLE",
                "status": "unhealthy",
            },
        )
    return {"success": True, "status": "healthy", "database": "connected"}

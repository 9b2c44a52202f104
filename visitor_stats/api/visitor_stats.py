# /api/visitor-stats/*

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession
from visitor_stats.core.config import settings
from visitor_stats.core.database import get_db
from visitor_stats.core.errors import error_detail
from visitor_stats.core.i18n import get_t
from visitor_stats.middleware.admin import require_admin
from visitor_stats.schemas.visit import (
    MessageResponse,
    SessionResponse,
    StatsData,
    StatsResponse,
    TrackVisitRequest,
)
from visitor_stats.services.sessions import issue_session_id
from visitor_stats.services.visits import CounterIntegrityError, VisitService
import structlog

logger = structlog.get_logger()
router = APIRouter(prefix=settings.api_prefix, tags=["visitor-stats"])


@router.post("/track", response_model=MessageResponse)
async def track_visit(
        request: Request,
        body: TrackVisitRequest | None = None,
        db: AsyncSession = Depends(get_db)
):
    """
    Track a page visit.

    - **sessionId**: id obtained from GET /session (required)
    - **pagePath**: visited path, defaults to "/"

    Repeat visits of the same page by the same session are accepted and ignored.
    """
    t = get_t(request)

    if body is None or not body.session_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=error_detail(t("session_id_required"))
        )

    try:
        service = VisitService(db)
        await service.record_visit(body.session_id, body.page_path)

    except CounterIntegrityError as e:
        # Logged as critical by the service
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=error_detail(t("failed_to_track"), e)
        )
    except Exception as e:
        logger.error("track_visit_failed", error=str(e))
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=error_detail(t("failed_to_track"), e)
        )

    return MessageResponse(message=t("visit_tracked"))


@router.get("/stats", response_model=StatsResponse)
async def get_stats(request: Request, db: AsyncSession = Depends(get_db)):
    """Site-wide visit counters"""
    try:
        service = VisitService(db)
        stats = await service.get_stats()

    except Exception as e:
        logger.error("stats_query_failed", error=str(e))
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=error_detail(get_t(request)("failed_to_get_stats"), e)
        )

    return StatsResponse(data=StatsData(**stats))


@router.get("/session", response_model=SessionResponse)
async def new_session(request: Request):
    """Issue a new opaque session id for a client"""
    try:
        session_id = issue_session_id()

    except Exception as e:
        logger.error("session_id_generation_failed", error=str(e))
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=error_detail(get_t(request)("failed_to_generate_session"), e)
        )

    return SessionResponse(session_id=session_id)


@router.post("/reset", response_model=MessageResponse, dependencies=[Depends(require_admin)])
async def reset_counter(request: Request, db: AsyncSession = Depends(get_db)):
    """
    Clear the visit log and zero the counters.

    Requires the admin key in the X-API-Key header.
    """
    t = get_t(request)

    try:
        service = VisitService(db)
        await service.reset_counters()

    except Exception as e:
        logger.error("counter_reset_failed", error=str(e))
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=error_detail(t("failed_to_reset"), e)
        )

    return MessageResponse(message=t("counter_reset"))

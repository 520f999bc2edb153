"""
Read-only endpoints: access checks, target stats, the demand
leaderboard and a subject's unlock history.
"""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from unlock_service.config import get_settings
from unlock_service.models.base import get_db
from unlock_service.models.enums import TargetType
from unlock_service.schemas.demand import (
    AccessResponse,
    LeaderboardRowResponse,
    TargetStatsResponse,
)
from unlock_service.schemas.unlock import LedgerEntryResponse
from unlock_service.services.access_service import AccessService
from unlock_service.services.ranking_service import RankingService

router = APIRouter(tags=["Demand"])

settings = get_settings()


@router.get("/access", response_model=AccessResponse)
def get_access(
    subject_id: str,
    target_id: str,
    target_type: TargetType,
    db: Session = Depends(get_db),
):
    """Whether the subject holds a grant for the target."""
    service = AccessService(db)
    return AccessResponse(
        subject_id=subject_id,
        target_id=target_id,
        target_type=target_type,
        unlocked=service.has_grant(subject_id, target_id, target_type),
    )


@router.get("/targets/stats", response_model=TargetStatsResponse)
def get_target_stats(
    target_id: str,
    target_type: TargetType,
    window_days: int = Query(default=settings.DEMAND_WINDOW_DAYS, ge=1, le=365),
    db: Session = Depends(get_db),
):
    """Requests, top category, average score and rank over the window."""
    service = AccessService(db)
    return service.stats_for(target_id, target_type, window_days)


@router.get("/leaderboard", response_model=list[LeaderboardRowResponse])
def get_leaderboard(
    n: int = Query(default=settings.LEADERBOARD_SIZE, ge=1, le=100),
    window_days: int = Query(default=settings.DEMAND_WINDOW_DAYS, ge=1, le=365),
    db: Session = Depends(get_db),
):
    """
    Top targets by unlock demand over the trailing window.

    Recomputed from the ledger on every request.
    """
    service = RankingService(db)
    return service.top_n(n, window_days)


@router.get(
    "/subjects/{subject_id}/unlocks",
    response_model=list[LedgerEntryResponse],
)
def get_subject_history(
    subject_id: str,
    db: Session = Depends(get_db),
):
    """Every ledger entry for the subject, newest first."""
    service = AccessService(db)
    return service.history_for(subject_id)

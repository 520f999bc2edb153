"""
Ranking service for the investor demand leaderboard.

The leaderboard is a pure function of the ledger: every read
recomputes it from the investor UNLOCK entries in the trailing
window. Project-visibility grants are paid for but never ranked.
Nothing is cached between calls, so the ranking can never
drift from the ledger it is derived from.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy.orm import Session

from unlock_service.config import get_settings
from unlock_service.models.base import utcnow
from unlock_service.models.enums import TargetType
from unlock_service.services.ledger_store import DemandRow, LedgerStore

RANKED_TARGET_TYPES = tuple(t for t in TargetType if t.is_investor)


@dataclass(frozen=True)
class LeaderboardRow:
    target_id: str
    target_type: TargetType
    request_count: int
    avg_score: float
    position: int


def window_bounds(
    window_days: int, now: datetime | None = None
) -> tuple[datetime, datetime]:
    """Return (since, until) for a trailing window ending at now."""
    if window_days < 1:
        raise ValueError("window_days must be at least 1")
    until = now or utcnow()
    return until - timedelta(days=window_days), until


def rank_key(row: DemandRow):
    """
    Sort key for demand rows.

    More requests first, then higher average score, then the target
    whose most recent unlock is older. Target identity breaks any
    remaining tie so the order never depends on query order.
    """
    return (
        -row.request_count,
        -row.avg_score,
        row.latest_at,
        row.target_type.value,
        row.target_id,
    )


class RankingService:

    def __init__(self, db: Session):
        self.db = db
        self.store = LedgerStore(db)
        self.neutral_score = get_settings().NEUTRAL_SCORE

    def ranking(
        self, window_days: int = 30, now: datetime | None = None
    ) -> list[LeaderboardRow]:
        """Rank every investor with at least one unlock in the window."""
        since, until = window_bounds(window_days, now)
        rows = sorted(
            self.store.demand_by_target(
                since, until, self.neutral_score, RANKED_TARGET_TYPES
            ),
            key=rank_key,
        )
        return [
            LeaderboardRow(
                target_id=row.target_id,
                target_type=row.target_type,
                request_count=row.request_count,
                avg_score=row.avg_score,
                position=position,
            )
            for position, row in enumerate(rows, start=1)
        ]

    def top_n(
        self, n: int, window_days: int = 30, now: datetime | None = None
    ) -> list[LeaderboardRow]:
        if n < 1:
            raise ValueError("n must be at least 1")
        return self.ranking(window_days, now)[:n]

    def position_of(
        self,
        target_id: str,
        target_type: TargetType,
        window_days: int = 30,
        now: datetime | None = None,
    ) -> int | None:
        """1-based position, or None when the target is unranked."""
        for row in self.ranking(window_days, now):
            if row.target_id == target_id and row.target_type == target_type:
                return row.position
        return None

"""
Access query service. Read-only answers from the ledger.

"Is X unlocked for Y" is an existence query for an UNLOCK entry;
there is no separate flag to fall out of sync. Every committed
grant is visible to the next query.
"""

from collections import Counter
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy.orm import Session

from unlock_service.config import get_settings
from unlock_service.models.enums import TargetType
from unlock_service.models.ledger_entry import LedgerEntry
from unlock_service.services.ledger_store import LedgerStore
from unlock_service.services.ranking_service import RankingService, window_bounds


@dataclass(frozen=True)
class TargetStats:
    target_id: str
    target_type: TargetType
    window_days: int
    total_requests: int
    top_tag: str | None
    avg_score: float | None
    position: int | None


def top_tag(entries: list[LedgerEntry]) -> str | None:
    """Most frequent tag; ties go to the alphabetically first tag."""
    counts = Counter(e.tag for e in entries if e.tag)
    if not counts:
        return None
    return min(counts.items(), key=lambda item: (-item[1], item[0]))[0]


class AccessService:

    def __init__(self, db: Session):
        self.db = db
        self.store = LedgerStore(db)
        self.ranking = RankingService(db)
        self.neutral_score = get_settings().NEUTRAL_SCORE

    def has_grant(
        self, subject_id: str, target_id: str, target_type: TargetType
    ) -> bool:
        return self.store.get_grant(subject_id, target_id, target_type) is not None

    def stats_for(
        self,
        target_id: str,
        target_type: TargetType,
        window_days: int = 30,
        now: datetime | None = None,
    ) -> TargetStats:
        """
        Demand statistics for one target over the trailing window,
        across all subjects.

        The counts and the leaderboard position come from two reads.
        Under READ COMMITTED the position may reflect a grant committed
        after total_requests was read. A target with no unlocks in
        the window is never given a position. Project-visibility
        targets are never ranked.
        """
        since, until = window_bounds(window_days, now)
        entries = self.store.unlocks_for_target(target_id, target_type, since, until)

        avg_score = None
        position = None
        if entries:
            scores = [
                e.score if e.score is not None else self.neutral_score
                for e in entries
            ]
            avg_score = round(sum(scores) / len(scores), 4)
            position = self.ranking.position_of(
                target_id, target_type, window_days, until
            )

        return TargetStats(
            target_id=target_id,
            target_type=target_type,
            window_days=window_days,
            total_requests=len(entries),
            top_tag=top_tag(entries),
            avg_score=avg_score,
            position=position,
        )

    def history_for(self, subject_id: str) -> list[LedgerEntry]:
        """Every ledger entry for a subject, newest first."""
        return self.store.entries_for_subject(subject_id)

"""
Pydantic schemas for access checks, target stats and the leaderboard.
"""

from pydantic import BaseModel

from unlock_service.models.enums import TargetType


class AccessResponse(BaseModel):
    subject_id: str
    target_id: str
    target_type: TargetType
    unlocked: bool


class TargetStatsResponse(BaseModel):
    target_id: str
    target_type: TargetType
    window_days: int
    total_requests: int
    top_tag: str | None
    avg_score: float | None
    position: int | None

    model_config = {"from_attributes": True}


class LeaderboardRowResponse(BaseModel):
    target_id: str
    target_type: TargetType
    request_count: int
    avg_score: float
    position: int

    model_config = {"from_attributes": True}

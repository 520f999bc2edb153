"""
Database models package.

All models must be imported here so that Alembic can discover
them through Base.metadata when generating migrations.
"""

from unlock_service.models.base import Base
from unlock_service.models.enums import (
    TargetType,
    EntryKind,
    IntentKind,
    IntentStatus,
    OnboardingStage,
)
from unlock_service.models.ledger_entry import LedgerEntry

__all__ = [
    "Base",
    "TargetType",
    "EntryKind",
    "IntentKind",
    "IntentStatus",
    "OnboardingStage",
    "LedgerEntry",
]

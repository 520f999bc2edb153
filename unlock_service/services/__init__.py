"""Business logic services."""

from unlock_service.services.ledger_store import LedgerStore
from unlock_service.services.unlock_engine import UnlockEngine
from unlock_service.services.access_service import AccessService
from unlock_service.services.ranking_service import RankingService

__all__ = ["LedgerStore", "UnlockEngine", "AccessService", "RankingService"]

"""
Ledger store: the durable, append-only record of unlock payments.

This is the only module that talks to the ledger_entries table.
The Unlock Engine is its only writer; the ranking and access
services only read.

Rules enforced here:
1. Entries are appended, never updated or deleted
2. A unique-key collision surfaces as LedgerConflict, naming the key
3. Connectivity failures surface as StoreUnavailable
"""

import logging
from collections.abc import Iterable
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import select, func
from sqlalchemy.exc import IntegrityError, InterfaceError, OperationalError
from sqlalchemy.orm import Session

from unlock_service.exceptions import LedgerConflict, StoreUnavailable
from unlock_service.models.enums import EntryKind, TargetType
from unlock_service.models.ledger_entry import LedgerEntry

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DemandRow:
    """Aggregated UNLOCK activity for one target inside a window."""
    target_id: str
    target_type: TargetType
    request_count: int
    avg_score: float
    latest_at: datetime


class LedgerStore:
    """
    All ledger persistence passes through this class.

    The store takes a database session as a constructor
    argument, so the caller controls the transaction boundary.
    append() flushes but does not commit.
    """

    def __init__(self, db: Session):
        self.db = db

    @contextmanager
    def _guard(self):
        try:
            yield
        except (OperationalError, InterfaceError) as e:
            self.db.rollback()
            logger.error("ledger_store_unavailable", extra={"error": str(e)})
            raise StoreUnavailable("Ledger store is unavailable") from e

    # --- Writes ---

    def append(
        self,
        *,
        kind: EntryKind,
        subject_id: str,
        target_id: str,
        target_type: TargetType,
        payment_reference: str,
        amount: int,
        currency: str,
        tag: str | None = None,
        score: int | None = None,
        reverses_entry_id: int | None = None,
    ) -> LedgerEntry:
        """
        Insert a single entry as one atomic statement.

        On a unique-key collision the session is rolled back and
        LedgerConflict names the key that collided, so this must be
        the only pending write in the session.
        """
        grant_key = None
        if kind == EntryKind.UNLOCK:
            grant_key = LedgerEntry.make_grant_key(
                subject_id, target_id, target_type
            )

        entry = LedgerEntry(
            kind=kind,
            subject_id=subject_id,
            target_id=target_id,
            target_type=target_type,
            payment_reference=payment_reference,
            amount=amount,
            currency=currency,
            tag=tag,
            score=score,
            grant_key=grant_key,
            reverses_entry_id=reverses_entry_id,
        )

        with self._guard():
            try:
                self.db.add(entry)
                self.db.flush()
            except IntegrityError:
                self.db.rollback()
                constraint = self._conflicting_key(
                    payment_reference, grant_key, reverses_entry_id
                )
                if constraint is None:
                    raise
                raise LedgerConflict(payment_reference, constraint)

        return entry

    def _conflicting_key(
        self,
        payment_reference: str,
        grant_key: str | None,
        reverses_entry_id: int | None,
    ) -> str | None:
        """Work out which unique key a failed insert collided with."""
        if self.get_by_reference(payment_reference) is not None:
            return "payment_reference"
        if grant_key is not None and self.db.execute(
            select(LedgerEntry.id).where(LedgerEntry.grant_key == grant_key)
        ).first():
            return "grant_key"
        if reverses_entry_id is not None and self.get_refund_for(
            reverses_entry_id
        ) is not None:
            return "reverses_entry_id"
        return None

    # --- Point lookups ---

    def get_by_reference(self, payment_reference: str) -> LedgerEntry | None:
        with self._guard():
            return self.db.execute(
                select(LedgerEntry).where(
                    LedgerEntry.payment_reference == payment_reference
                )
            ).scalar_one_or_none()

    def get_grant(
        self, subject_id: str, target_id: str, target_type: TargetType
    ) -> LedgerEntry | None:
        """Return the UNLOCK entry for (subject, target), if any."""
        with self._guard():
            return self.db.execute(
                select(LedgerEntry).where(
                    LedgerEntry.subject_id == subject_id,
                    LedgerEntry.target_id == target_id,
                    LedgerEntry.target_type == target_type,
                    LedgerEntry.kind == EntryKind.UNLOCK,
                ).limit(1)
            ).scalar_one_or_none()

    def get_refund_for(self, entry_id: int) -> LedgerEntry | None:
        with self._guard():
            return self.db.execute(
                select(LedgerEntry).where(
                    LedgerEntry.reverses_entry_id == entry_id
                )
            ).scalar_one_or_none()

    # --- Range reads ---

    def entries_for_subject(self, subject_id: str) -> list[LedgerEntry]:
        """Return every entry a subject paid for or was refunded, newest first."""
        with self._guard():
            entries = self.db.execute(
                select(LedgerEntry)
                .where(LedgerEntry.subject_id == subject_id)
                .order_by(LedgerEntry.created_at.desc(), LedgerEntry.id.desc())
            ).scalars().all()
        return list(entries)

    def unlocks_for_target(
        self,
        target_id: str,
        target_type: TargetType,
        since: datetime,
        until: datetime,
    ) -> list[LedgerEntry]:
        """UNLOCK entries for one target with since <= created_at <= until."""
        with self._guard():
            entries = self.db.execute(
                select(LedgerEntry).where(
                    LedgerEntry.target_id == target_id,
                    LedgerEntry.target_type == target_type,
                    LedgerEntry.kind == EntryKind.UNLOCK,
                    LedgerEntry.created_at >= since,
                    LedgerEntry.created_at <= until,
                )
            ).scalars().all()
        return list(entries)

    def demand_by_target(
        self,
        since: datetime,
        until: datetime,
        neutral_score: int,
        target_types: Iterable[TargetType] | None = None,
    ) -> list[DemandRow]:
        """
        Aggregate UNLOCK entries in the window per target.

        A single grouped query, so every row reflects the same
        snapshot of the ledger. Unscored entries count as
        neutral_score in the average. target_types, when given,
        limits the rows to those kinds of target.
        """
        stmt = (
            select(
                LedgerEntry.target_id,
                LedgerEntry.target_type,
                func.count(LedgerEntry.id),
                func.avg(func.coalesce(LedgerEntry.score, neutral_score)),
                func.max(LedgerEntry.created_at),
            )
            .where(
                LedgerEntry.kind == EntryKind.UNLOCK,
                LedgerEntry.created_at >= since,
                LedgerEntry.created_at <= until,
            )
            .group_by(LedgerEntry.target_id, LedgerEntry.target_type)
        )
        if target_types is not None:
            stmt = stmt.where(LedgerEntry.target_type.in_(list(target_types)))
        with self._guard():
            rows = self.db.execute(stmt).all()

        return [
            DemandRow(
                target_id=target_id,
                target_type=target_type,
                request_count=int(count),
                avg_score=round(float(avg_score), 4),
                latest_at=latest_at,
            )
            for target_id, target_type, count, avg_score, latest_at in rows
        ]

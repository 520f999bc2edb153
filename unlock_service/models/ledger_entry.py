"""
Ledger entry model.

The ledger is the single source of truth for access and
demand. An UNLOCK entry for (subject, target) *is* the grant;
there is no separate "unlocked" flag. Entries are immutable:
once flushed they are never updated or deleted.
"""

from datetime import datetime

from sqlalchemy import (
    String, DateTime, Integer, ForeignKey, Index,
    Enum as SAEnum, event,
)
from sqlalchemy.orm import Mapped, mapped_column

from unlock_service.models.base import Base, utcnow
from unlock_service.models.enums import EntryKind, TargetType


class LedgerEntry(Base):
    """
    An immutable unlock, duplicate-payment or refund record.

    Three unique keys carry all of the concurrency control:
    - payment_reference: one entry per provider payment/refund id
    - grant_key: one UNLOCK per (subject, target); NULL on other kinds
    - reverses_entry_id: an entry is refunded at most once
    """

    __tablename__ = "ledger_entries"
    __table_args__ = (
        Index(
            "ix_ledger_entries_grant_lookup",
            "subject_id", "target_id", "target_type",
        ),
        Index(
            "ix_ledger_entries_target_window",
            "target_type", "target_id", "created_at",
        ),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    kind: Mapped[EntryKind] = mapped_column(
        SAEnum(EntryKind, name="entry_kind_enum"),
        nullable=False,
        default=EntryKind.UNLOCK,
    )
    subject_id: Mapped[str] = mapped_column(
        String(100), nullable=False, index=True
    )
    target_id: Mapped[str] = mapped_column(String(100), nullable=False)
    target_type: Mapped[TargetType] = mapped_column(
        SAEnum(TargetType, name="target_type_enum"),
        nullable=False,
    )
    payment_reference: Mapped[str] = mapped_column(
        String(255), unique=True, nullable=False
    )
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    tag: Mapped[str | None] = mapped_column(String(100), nullable=True)
    score: Mapped[int | None] = mapped_column(Integer, nullable=True)
    grant_key: Mapped[str | None] = mapped_column(
        String(255), unique=True, nullable=True
    )
    reverses_entry_id: Mapped[int | None] = mapped_column(
        ForeignKey("ledger_entries.id"), unique=True, nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=utcnow, index=True
    )

    @staticmethod
    def make_grant_key(
        subject_id: str, target_id: str, target_type: TargetType
    ) -> str:
        return f"{subject_id}|{target_type.value}|{target_id}"

    def names(
        self, subject_id: str, target_id: str, target_type: TargetType
    ) -> bool:
        """True if this entry is for the given subject and target."""
        return (
            self.subject_id == subject_id
            and self.target_id == target_id
            and self.target_type == target_type
        )

    def __repr__(self) -> str:
        return (
            f"<LedgerEntry {self.kind.value} {self.subject_id} -> "
            f"{self.target_type.value}:{self.target_id} "
            f"({self.payment_reference})>"
        )


@event.listens_for(LedgerEntry, "before_update")
def _reject_update(mapper, connection, target):
    raise ValueError(f"Ledger entry {target.id} is immutable")


@event.listens_for(LedgerEntry, "before_delete")
def _reject_delete(mapper, connection, target):
    raise ValueError(f"Ledger entry {target.id} cannot be deleted")

"""create ledger_entries

Revision ID: 0001_ledger_entries
Revises:
Create Date: 2026-10-19
"""

import sqlalchemy as sa
from alembic import op


revision = "0001_ledger_entries"
down_revision = None
branch_labels = None
depends_on = None

entry_kind = sa.Enum(
    "UNLOCK", "DUPLICATE_PAYMENT", "REFUND", name="entry_kind_enum"
)
target_type = sa.Enum(
    "PLATFORM_INVESTOR", "DIRECTORY_INVESTOR", "PROJECT_VISIBILITY",
    name="target_type_enum",
)


def upgrade() -> None:
    op.create_table(
        "ledger_entries",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("kind", entry_kind, nullable=False),
        sa.Column("subject_id", sa.String(100), nullable=False),
        sa.Column("target_id", sa.String(100), nullable=False),
        sa.Column("target_type", target_type, nullable=False),
        sa.Column("payment_reference", sa.String(255), nullable=False),
        sa.Column("amount", sa.Integer(), nullable=False),
        sa.Column("currency", sa.String(3), nullable=False),
        sa.Column("tag", sa.String(100), nullable=True),
        sa.Column("score", sa.Integer(), nullable=True),
        sa.Column("grant_key", sa.String(255), nullable=True),
        sa.Column(
            "reverses_entry_id",
            sa.Integer(),
            sa.ForeignKey("ledger_entries.id"),
            nullable=True,
        ),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("payment_reference"),
        sa.UniqueConstraint("grant_key"),
        sa.UniqueConstraint("reverses_entry_id"),
    )
    op.create_index(
        "ix_ledger_entries_subject_id", "ledger_entries", ["subject_id"]
    )
    op.create_index(
        "ix_ledger_entries_created_at", "ledger_entries", ["created_at"]
    )
    op.create_index(
        "ix_ledger_entries_grant_lookup",
        "ledger_entries",
        ["subject_id", "target_id", "target_type"],
    )
    op.create_index(
        "ix_ledger_entries_target_window",
        "ledger_entries",
        ["target_type", "target_id", "created_at"],
    )


def downgrade() -> None:
    op.drop_index("ix_ledger_entries_target_window", table_name="ledger_entries")
    op.drop_index("ix_ledger_entries_grant_lookup", table_name="ledger_entries")
    op.drop_index("ix_ledger_entries_created_at", table_name="ledger_entries")
    op.drop_index("ix_ledger_entries_subject_id", table_name="ledger_entries")
    op.drop_table("ledger_entries")
    target_type.drop(op.get_bind(), checkfirst=True)
    entry_kind.drop(op.get_bind(), checkfirst=True)

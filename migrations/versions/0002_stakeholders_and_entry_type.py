"""stakeholders and accounting entry type

Revision ID: 0002
Revises: 0001
Create Date: 2026-10-19 14:30:00

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


revision: str = "0002"
down_revision: Union[str, None] = "0001"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "stakeholders",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "company_id",
            sa.Integer(),
            sa.ForeignKey("companies.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("category", sa.String(), nullable=False),
        sa.Column("influence_level", sa.String(), server_default="medium"),
        sa.Column("contact_email", sa.String()),
        sa.Column(
            "created_at",
            sa.TIMESTAMP(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
    )
    op.create_index("ix_stakeholders_company_id", "stakeholders", ["company_id"])

    # batch mode so SQLite can alter the table
    with op.batch_alter_table("accounting_entries") as batch_op:
        batch_op.add_column(sa.Column("entry_type", sa.String(), nullable=True))
        batch_op.create_index("ix_accounting_entries_entry_type", ["entry_type"])


def downgrade() -> None:
    with op.batch_alter_table("accounting_entries") as batch_op:
        batch_op.drop_index("ix_accounting_entries_entry_type")
        batch_op.drop_column("entry_type")

    op.drop_index("ix_stakeholders_company_id", table_name="stakeholders")
    op.drop_table("stakeholders")

"""initial schema

Revision ID: 0001
Revises:
Create Date: 2026-10-19 10:00:00

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


revision: str = "0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def id_column():
    return sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True)


def company_column():
    return sa.Column(
        "company_id",
        sa.Integer(),
        sa.ForeignKey("companies.id", ondelete="CASCADE"),
        nullable=False,
    )


def created_at_column():
    return sa.Column(
        "created_at",
        sa.TIMESTAMP(timezone=True),
        server_default=sa.func.now(),
        nullable=False,
    )


# Tables that carry a company_id, indexed on it
COMPANY_TABLES = [
    "users_table",
    "activity_logs",
    "emission_sources",
    "calculated_emissions",
    "goals",
    "licenses",
    "data_collection_tasks",
    "esg_risks",
    "non_conformities",
    "employees",
    "waste_logs",
    "documents",
    "gri_reports",
    "accounting_entries",
    "accounts_payable",
    "accounts_receivable",
]


def upgrade() -> None:
    op.create_table(
        "companies",
        id_column(),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("sector", sa.String()),
        sa.Column("cnpj", sa.String(), unique=True),
        created_at_column(),
    )

    op.create_table(
        "users_table",
        id_column(),
        sa.Column("email", sa.String(), nullable=False),
        sa.Column("password", sa.String(), nullable=False),
        sa.Column("role", sa.String(), server_default="user", nullable=False),
        sa.Column("full_name", sa.String()),
        company_column(),
        created_at_column(),
    )
    op.create_index("ix_users_table_email", "users_table", ["email"], unique=True)

    op.create_table(
        "activity_logs",
        id_column(),
        company_column(),
        sa.Column(
            "user_id",
            sa.Integer(),
            sa.ForeignKey("users_table.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("action_type", sa.String(), nullable=False),
        sa.Column("target_id", sa.String()),
        sa.Column("description", sa.Text()),
        sa.Column("details", sa.JSON(), nullable=True),
        created_at_column(),
    )
    op.create_index("ix_activity_logs_user_id", "activity_logs", ["user_id"])
    op.create_index("ix_activity_logs_action_type", "activity_logs", ["action_type"])

    # GHG inventory
    op.create_table(
        "emission_sources",
        id_column(),
        company_column(),
        sa.Column("source_name", sa.String(), nullable=False),
        sa.Column("scope", sa.Integer(), nullable=False),
        sa.Column("category", sa.String()),
        sa.Column("unit", sa.String()),
        created_at_column(),
    )
    op.create_index("ix_emission_sources_scope", "emission_sources", ["scope"])

    op.create_table(
        "activity_data",
        id_column(),
        sa.Column(
            "emission_source_id",
            sa.Integer(),
            sa.ForeignKey("emission_sources.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("quantity", sa.Float(), nullable=False),
        sa.Column("unit", sa.String()),
        sa.Column("period_start_date", sa.Date(), nullable=False),
        sa.Column("period_end_date", sa.Date(), nullable=False),
        created_at_column(),
    )
    op.create_index(
        "ix_activity_data_emission_source_id", "activity_data", ["emission_source_id"]
    )

    op.create_table(
        "calculated_emissions",
        id_column(),
        company_column(),
        sa.Column(
            "activity_data_id",
            sa.Integer(),
            sa.ForeignKey("activity_data.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("total_co2e", sa.Float(), nullable=False),
        sa.Column("co2_kg", sa.Float()),
        sa.Column("ch4_kg", sa.Float()),
        sa.Column("n2o_kg", sa.Float()),
        sa.Column("calculation_date", sa.Date(), nullable=False),
    )
    op.create_index(
        "ix_calculated_emissions_activity_data_id", "calculated_emissions", ["activity_data_id"]
    )
    op.create_index(
        "ix_calculated_emissions_calculation_date", "calculated_emissions", ["calculation_date"]
    )

    # Goals
    op.create_table(
        "goals",
        id_column(),
        company_column(),
        sa.Column("goal_name", sa.String(), nullable=False),
        sa.Column("category", sa.String()),
        sa.Column("description", sa.Text()),
        sa.Column("baseline_value", sa.Float()),
        sa.Column("target_value", sa.Float(), nullable=False),
        sa.Column("current_value", sa.Float()),
        sa.Column("progress_percentage", sa.Float()),
        sa.Column("unit", sa.String()),
        sa.Column("start_date", sa.Date()),
        sa.Column("target_date", sa.Date(), nullable=False),
        sa.Column("status", sa.String(), server_default="active", nullable=False),
        created_at_column(),
    )
    op.create_index("ix_goals_category", "goals", ["category"])
    op.create_index("ix_goals_status", "goals", ["status"])

    op.create_table(
        "goal_progress_updates",
        id_column(),
        sa.Column(
            "goal_id",
            sa.Integer(),
            sa.ForeignKey("goals.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("update_date", sa.Date(), nullable=False),
        sa.Column("current_value", sa.Float(), nullable=False),
        sa.Column("progress_percentage", sa.Float(), nullable=False),
        sa.Column("notes", sa.Text()),
    )
    op.create_index("ix_goal_progress_updates_goal_id", "goal_progress_updates", ["goal_id"])

    # Compliance
    op.create_table(
        "licenses",
        id_column(),
        company_column(),
        sa.Column("license_name", sa.String(), nullable=False),
        sa.Column("license_number", sa.String()),
        sa.Column("license_type", sa.String()),
        sa.Column("issuing_body", sa.String()),
        sa.Column("issue_date", sa.Date()),
        sa.Column("expiration_date", sa.Date(), nullable=False),
        sa.Column("status", sa.String(), server_default="active", nullable=False),
        created_at_column(),
    )
    op.create_index("ix_licenses_expiration_date", "licenses", ["expiration_date"])

    op.create_table(
        "data_collection_tasks",
        id_column(),
        company_column(),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("task_type", sa.String()),
        sa.Column("description", sa.Text()),
        sa.Column("status", sa.String(), server_default="pending", nullable=False),
        sa.Column("due_date", sa.Date(), nullable=False),
        sa.Column("completed_date", sa.Date()),
        sa.Column(
            "assigned_to",
            sa.Integer(),
            sa.ForeignKey("users_table.id", ondelete="SET NULL"),
            nullable=True,
        ),
        created_at_column(),
    )
    op.create_index("ix_data_collection_tasks_status", "data_collection_tasks", ["status"])

    op.create_table(
        "esg_risks",
        id_column(),
        company_column(),
        sa.Column("risk_title", sa.String(), nullable=False),
        sa.Column("category", sa.String()),
        sa.Column("risk_level", sa.String(), server_default="medium", nullable=False),
        sa.Column("status", sa.String(), server_default="active", nullable=False),
        sa.Column("mitigation_plan", sa.Text()),
        sa.Column("identified_date", sa.Date()),
        created_at_column(),
    )

    op.create_table(
        "non_conformities",
        id_column(),
        company_column(),
        sa.Column("title", sa.String(), nullable=False),
        sa.Column("description", sa.Text()),
        sa.Column("severity", sa.String(), server_default="minor", nullable=False),
        sa.Column("status", sa.String(), server_default="open", nullable=False),
        sa.Column("detected_date", sa.Date()),
        created_at_column(),
    )
    op.create_index("ix_non_conformities_status", "non_conformities", ["status"])

    # Social and waste
    op.create_table(
        "employees",
        id_column(),
        company_column(),
        sa.Column("full_name", sa.String(), nullable=False),
        sa.Column("email", sa.String()),
        sa.Column("department", sa.String()),
        sa.Column("position", sa.String()),
        sa.Column("gender", sa.String()),
        sa.Column("status", sa.String(), server_default="active", nullable=False),
        sa.Column("hire_date", sa.Date()),
        created_at_column(),
    )

    op.create_table(
        "waste_logs",
        id_column(),
        company_column(),
        sa.Column("waste_type", sa.String(), nullable=False),
        sa.Column("waste_class", sa.String()),
        sa.Column("quantity", sa.Float(), nullable=False),
        sa.Column("unit", sa.String()),
        sa.Column("final_destination", sa.String()),
        sa.Column("log_date", sa.Date(), nullable=False),
        created_at_column(),
    )

    # Documents and GRI reporting
    op.create_table(
        "documents",
        id_column(),
        company_column(),
        sa.Column("file_name", sa.String(), nullable=False),
        sa.Column("document_type", sa.String()),
        sa.Column("tags", sa.JSON()),
        sa.Column("file_path", sa.String()),
        created_at_column(),
    )

    op.create_table(
        "gri_reports",
        id_column(),
        company_column(),
        sa.Column("title", sa.String(), nullable=False),
        sa.Column("report_year", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(), server_default="draft", nullable=False),
        sa.Column("completion_percentage", sa.Float()),
        created_at_column(),
    )

    op.create_table(
        "gri_indicator_data",
        id_column(),
        sa.Column(
            "report_id",
            sa.Integer(),
            sa.ForeignKey("gri_reports.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("indicator_code", sa.String(), nullable=False),
        sa.Column("value", sa.Text()),
        sa.Column("is_complete", sa.Boolean()),
    )
    op.create_index("ix_gri_indicator_data_report_id", "gri_indicator_data", ["report_id"])

    # Financial ledgers
    op.create_table(
        "accounting_entries",
        id_column(),
        company_column(),
        sa.Column("entry_date", sa.Date(), nullable=False),
        sa.Column("description", sa.Text()),
        sa.Column("total_amount", sa.Numeric(14, 2), nullable=False),
        sa.Column("status", sa.String(), server_default="draft", nullable=False),
        sa.Column("esg_category", sa.String()),
        created_at_column(),
    )
    op.create_index("ix_accounting_entries_entry_date", "accounting_entries", ["entry_date"])

    for table, name_column in (
        ("accounts_payable", "supplier_name"),
        ("accounts_receivable", "customer_name"),
    ):
        op.create_table(
            table,
            id_column(),
            company_column(),
            sa.Column(name_column, sa.String(), nullable=False),
            sa.Column("amount", sa.Numeric(14, 2), nullable=False),
            sa.Column("due_date", sa.Date(), nullable=False),
            sa.Column("status", sa.String(), server_default="pending", nullable=False),
            sa.Column("esg_category", sa.String()),
            created_at_column(),
        )

    for table in COMPANY_TABLES:
        op.create_index(f"ix_{table}_company_id", table, ["company_id"])


def downgrade() -> None:
    for table in reversed(
        [
            "companies",
            "users_table",
            "activity_logs",
            "emission_sources",
            "activity_data",
            "calculated_emissions",
            "goals",
            "goal_progress_updates",
            "licenses",
            "data_collection_tasks",
            "esg_risks",
            "non_conformities",
            "employees",
            "waste_logs",
            "documents",
            "gri_reports",
            "gri_indicator_data",
            "accounting_entries",
            "accounts_payable",
            "accounts_receivable",
        ]
    ):
        op.drop_table(table)

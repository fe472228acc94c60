from sqlalchemy import (
    Column,
    ForeignKey,
    Integer,
    String,
    Numeric,
    Float,
    Boolean,
    Date,
    TIMESTAMP,
    Text,
    JSON,
)
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship

from esg_hub.core.database import Base


def company_fk():
    return Column(
        Integer,
        ForeignKey("companies.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )


def created_at_column():
    return Column(
        TIMESTAMP(timezone=True),
        nullable=False,
        server_default=func.now(),
    )


# =========================
# Tenancy
# =========================
class Company(Base):
    """Tenant. Every domain row hangs off a company."""

    __tablename__ = "companies"

    id = Column(Integer, primary_key=True, autoincrement=True)

    name = Column(String, nullable=False)
    sector = Column(String)
    cnpj = Column(String, unique=True)

    created_at = created_at_column()

    users = relationship(
        "User",
        back_populates="company",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


class User(Base):
    __tablename__ = "users_table"

    id = Column(Integer, primary_key=True, autoincrement=True)

    email = Column(String, nullable=False, unique=True, index=True)
    password = Column(String, nullable=False)
    role = Column(String, nullable=False, server_default="user")
    full_name = Column(String)

    company_id = company_fk()

    created_at = created_at_column()

    company = relationship("Company", back_populates="users")


class ActivityLog(Base):
    """
    Audit trail. The assistant writes one row per write-tool call
    before the tool itself runs.
    """

    __tablename__ = "activity_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)

    company_id = company_fk()
    user_id = Column(
        Integer,
        ForeignKey("users_table.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    action_type = Column(String, nullable=False, index=True)  # "ai_create_goal"
    target_id = Column(String)
    description = Column(Text)
    details = Column(JSON, nullable=True)

    created_at = created_at_column()


# =========================
# GHG inventory
# =========================
class EmissionSource(Base):
    __tablename__ = "emission_sources"

    id = Column(Integer, primary_key=True, autoincrement=True)
    company_id = company_fk()

    source_name = Column(String, nullable=False)
    scope = Column(Integer, nullable=False, index=True)  # 1, 2 or 3
    category = Column(String)  # "Stationary combustion", "Purchased electricity"
    unit = Column(String)

    created_at = created_at_column()

    activity_data = relationship(
        "ActivityData",
        back_populates="emission_source",
        cascade="all, delete-orphan",
    )


class ActivityData(Base):
    __tablename__ = "activity_data"

    id = Column(Integer, primary_key=True, autoincrement=True)

    emission_source_id = Column(
        Integer,
        ForeignKey("emission_sources.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    quantity = Column(Float, nullable=False)
    unit = Column(String)
    period_start_date = Column(Date, nullable=False)
    period_end_date = Column(Date, nullable=False)

    created_at = created_at_column()

    emission_source = relationship("EmissionSource", back_populates="activity_data")
    calculated_emissions = relationship(
        "CalculatedEmission",
        back_populates="activity_data",
        cascade="all, delete-orphan",
    )


class CalculatedEmission(Base):
    """Result of applying an emission factor to an activity data row (tCO2e)."""

    __tablename__ = "calculated_emissions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    company_id = company_fk()

    activity_data_id = Column(
        Integer,
        ForeignKey("activity_data.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    total_co2e = Column(Float, nullable=False)
    co2_kg = Column(Float)
    ch4_kg = Column(Float)
    n2o_kg = Column(Float)
    calculation_date = Column(Date, nullable=False, index=True)

    activity_data = relationship("ActivityData", back_populates="calculated_emissions")


# =========================
# Goals
# =========================
class Goal(Base):
    __tablename__ = "goals"

    id = Column(Integer, primary_key=True, autoincrement=True)
    company_id = company_fk()

    goal_name = Column(String, nullable=False)
    category = Column(String, index=True)  # environmental / social / governance
    description = Column(Text)

    baseline_value = Column(Float, default=0)
    target_value = Column(Float, nullable=False)
    current_value = Column(Float, default=0)
    progress_percentage = Column(Float, default=0)
    unit = Column(String)

    start_date = Column(Date)
    target_date = Column(Date, nullable=False)
    status = Column(String, nullable=False, server_default="active", index=True)

    created_at = created_at_column()

    progress_updates = relationship(
        "GoalProgressUpdate",
        back_populates="goal",
        cascade="all, delete-orphan",
        order_by="GoalProgressUpdate.update_date",
    )


class GoalProgressUpdate(Base):
    __tablename__ = "goal_progress_updates"

    id = Column(Integer, primary_key=True, autoincrement=True)

    goal_id = Column(
        Integer,
        ForeignKey("goals.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    update_date = Column(Date, nullable=False)
    current_value = Column(Float, nullable=False)
    progress_percentage = Column(Float, nullable=False)
    notes = Column(Text)

    goal = relationship("Goal", back_populates="progress_updates")


# =========================
# Compliance
# =========================
class License(Base):
    __tablename__ = "licenses"

    id = Column(Integer, primary_key=True, autoincrement=True)
    company_id = company_fk()

    license_name = Column(String, nullable=False)
    license_number = Column(String)
    license_type = Column(String)  # LP, LI, LO...
    issuing_body = Column(String)
    issue_date = Column(Date)
    expiration_date = Column(Date, nullable=False, index=True)
    status = Column(String, nullable=False, server_default="active")

    created_at = created_at_column()


class DataCollectionTask(Base):
    __tablename__ = "data_collection_tasks"

    id = Column(Integer, primary_key=True, autoincrement=True)
    company_id = company_fk()

    name = Column(String, nullable=False)
    task_type = Column(String)  # emissions, waste, ...
    description = Column(Text)
    status = Column(String, nullable=False, server_default="pending", index=True)
    due_date = Column(Date, nullable=False)
    completed_date = Column(Date)

    assigned_to = Column(
        Integer,
        ForeignKey("users_table.id", ondelete="SET NULL"),
        nullable=True,
    )

    created_at = created_at_column()


class EsgRisk(Base):
    __tablename__ = "esg_risks"

    id = Column(Integer, primary_key=True, autoincrement=True)
    company_id = company_fk()

    risk_title = Column(String, nullable=False)
    category = Column(String)
    risk_level = Column(String, nullable=False, server_default="medium")
    status = Column(String, nullable=False, server_default="active")
    mitigation_plan = Column(Text)
    identified_date = Column(Date)

    created_at = created_at_column()


class NonConformity(Base):
    __tablename__ = "non_conformities"

    id = Column(Integer, primary_key=True, autoincrement=True)
    company_id = company_fk()

    title = Column(String, nullable=False)
    description = Column(Text)
    severity = Column(String, nullable=False, server_default="minor")
    status = Column(String, nullable=False, server_default="open", index=True)
    detected_date = Column(Date)

    created_at = created_at_column()


# =========================
# Social
# =========================
class Employee(Base):
    __tablename__ = "employees"

    id = Column(Integer, primary_key=True, autoincrement=True)
    company_id = company_fk()

    full_name = Column(String, nullable=False)
    email = Column(String)
    department = Column(String)
    position = Column(String)
    gender = Column(String)
    status = Column(String, nullable=False, server_default="active")
    hire_date = Column(Date)

    created_at = created_at_column()


class Stakeholder(Base):
    __tablename__ = "stakeholders"

    id = Column(Integer, primary_key=True, autoincrement=True)
    company_id = company_fk()

    name = Column(String, nullable=False)
    category = Column(String, nullable=False)  # employees, community, investors, ...
    influence_level = Column(String, server_default="medium")
    contact_email = Column(String)

    created_at = created_at_column()


# =========================
# Waste
# =========================
class WasteLog(Base):
    __tablename__ = "waste_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    company_id = company_fk()

    waste_type = Column(String, nullable=False)
    waste_class = Column(String)  # I (hazardous), IIA, IIB
    quantity = Column(Float, nullable=False)
    unit = Column(String, default="kg")
    final_destination = Column(String)  # recycling, landfill, ...
    log_date = Column(Date, nullable=False)

    created_at = created_at_column()


# =========================
# Documents and GRI reporting
# =========================
class Document(Base):
    __tablename__ = "documents"

    id = Column(Integer, primary_key=True, autoincrement=True)
    company_id = company_fk()

    file_name = Column(String, nullable=False)
    document_type = Column(String)  # policy, report, certificate, evidence, procedure
    tags = Column(JSON, default=list)
    file_path = Column(String)

    created_at = created_at_column()


class GRIReport(Base):
    __tablename__ = "gri_reports"

    id = Column(Integer, primary_key=True, autoincrement=True)
    company_id = company_fk()

    title = Column(String, nullable=False)
    report_year = Column(Integer, nullable=False)
    status = Column(String, nullable=False, server_default="draft")
    completion_percentage = Column(Float, default=0)

    created_at = created_at_column()

    indicators = relationship(
        "GRIIndicatorData",
        back_populates="report",
        cascade="all, delete-orphan",
    )


class GRIIndicatorData(Base):
    __tablename__ = "gri_indicator_data"

    id = Column(Integer, primary_key=True, autoincrement=True)

    report_id = Column(
        Integer,
        ForeignKey("gri_reports.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    indicator_code = Column(String, nullable=False)  # "305-1"
    value = Column(Text)
    is_complete = Column(Boolean, default=False)

    report = relationship("GRIReport", back_populates="indicators")


# =========================
# Financial ledgers
# =========================
class AccountingEntry(Base):
    __tablename__ = "accounting_entries"

    id = Column(Integer, primary_key=True, autoincrement=True)
    company_id = company_fk()

    entry_date = Column(Date, nullable=False, index=True)
    description = Column(Text)
    total_amount = Column(Numeric(14, 2), nullable=False)
    entry_type = Column(String, index=True)  # revenue or expense
    status = Column(String, nullable=False, server_default="draft")
    esg_category = Column(String)

    created_at = created_at_column()


class AccountPayable(Base):
    __tablename__ = "accounts_payable"

    id = Column(Integer, primary_key=True, autoincrement=True)
    company_id = company_fk()

    supplier_name = Column(String, nullable=False)
    amount = Column(Numeric(14, 2), nullable=False)
    due_date = Column(Date, nullable=False)
    status = Column(String, nullable=False, server_default="pending")
    esg_category = Column(String)

    created_at = created_at_column()


class AccountReceivable(Base):
    __tablename__ = "accounts_receivable"

    id = Column(Integer, primary_key=True, autoincrement=True)
    company_id = company_fk()

    customer_name = Column(String, nullable=False)
    amount = Column(Numeric(14, 2), nullable=False)
    due_date = Column(Date, nullable=False)
    status = Column(String, nullable=False, server_default="pending")
    esg_category = Column(String)

    created_at = created_at_column()

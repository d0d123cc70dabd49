from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship as orm_relationship

from ..config import Base
from ..constants import MANAGEMENT_ROLES


def utcnow():
    return datetime.now(timezone.utc)


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String, unique=True, index=True, nullable=False)
    name = Column(String, nullable=False)
    phone = Column(String, nullable=True)
    hashed_password = Column(String, nullable=False)
    role = Column(String, nullable=False, default="OWNER")
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)
    # Directory listing only (JMB or COMMUNITY); grants no permissions.
    committee_type = Column(String, nullable=True)
    committee_position = Column(String, nullable=True)

    # Manual eligibility decision by the committee; NULL means "follow arrears".
    voting_eligibility_override = Column(Boolean, nullable=True)
    voting_override_reason = Column(Text, nullable=True)
    voting_override_set_by_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    voting_override_set_at = Column(DateTime, nullable=True)

    owned_units = orm_relationship("Unit", back_populates="owner", foreign_keys="Unit.owner_id")
    rented_units = orm_relationship("Unit", back_populates="tenant", foreign_keys="Unit.tenant_id")
    audit_logs = orm_relationship("AuditLog", back_populates="actor")
    voting_override_set_by = orm_relationship("User", remote_side=[id])

    @property
    def is_management(self) -> bool:
        return self.role in MANAGEMENT_ROLES


class Unit(Base):
    __tablename__ = "units"

    id = Column(Integer, primary_key=True, index=True)
    unit_number = Column(String, unique=True, index=True, nullable=False)
    type = Column(String, nullable=False, default="BAWAH")
    owner_id = Column(Integer, ForeignKey("users.id"), nullable=True, index=True)
    tenant_id = Column(Integer, ForeignKey("users.id"), nullable=True, index=True)
    manual_arrears_amount = Column(Numeric(10, 2), nullable=False, default=0)
    monthly_adjustment_amount = Column(Numeric(10, 2), nullable=False, default=0)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)
    deleted_at = Column(DateTime, nullable=True)

    owner = orm_relationship("User", back_populates="owned_units", foreign_keys=[owner_id])
    tenant = orm_relationship("User", back_populates="rented_units", foreign_keys=[tenant_id])
    bills = orm_relationship("Bill", back_populates="unit", order_by="Bill.id")


class Bill(Base):
    __tablename__ = "bills"
    __table_args__ = (
        UniqueConstraint("unit_id", "month", "year", "type", name="uq_bills_unit_period_type"),
    )

    id = Column(Integer, primary_key=True, index=True)
    unit_id = Column(Integer, ForeignKey("units.id"), nullable=False, index=True)
    amount = Column(Numeric(10, 2), nullable=False)
    month = Column(Integer, nullable=False)
    year = Column(Integer, nullable=False)
    type = Column(String, nullable=False, default="MAINTENANCE")
    status = Column(String, nullable=False, default="PENDING", index=True)
    receipt_url = Column(String, nullable=True)
    reference = Column(String, nullable=True)
    verified_by_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    verified_at = Column(DateTime, nullable=True)

    refund_reference = Column(String, nullable=True)
    refund_checklist = Column(JSON, nullable=True)
    refund_proof_url = Column(String, nullable=True)
    refund_payout_url = Column(String, nullable=True)
    refund_requested_at = Column(DateTime, nullable=True)
    refunded_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    unit = orm_relationship("Unit", back_populates="bills")
    income = orm_relationship("IncomeCollection", back_populates="bill")

    @property
    def is_refunded(self) -> bool:
        return self.type == "DEPOSIT" and self.status == "APPROVED" and self.refunded_at is not None


class Fund(Base):
    __tablename__ = "funds"

    id = Column(Integer, primary_key=True, index=True)
    code = Column(String, unique=True, nullable=False)
    name = Column(String, nullable=False)
    description = Column(Text, nullable=True)

    income = orm_relationship("IncomeCollection", back_populates="fund")
    expenses = orm_relationship("Expense", back_populates="fund")


class IncomeCollection(Base):
    __tablename__ = "income_collections"

    id = Column(Integer, primary_key=True, index=True)
    fund_id = Column(Integer, ForeignKey("funds.id"), nullable=False, index=True)
    unit_id = Column(Integer, ForeignKey("units.id"), nullable=True, index=True)
    bill_id = Column(Integer, ForeignKey("bills.id"), nullable=True, unique=True)
    amount = Column(Numeric(10, 2), nullable=False)
    date = Column(Date, nullable=False)
    source = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    recorded_by_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    fund = orm_relationship("Fund", back_populates="income")
    unit = orm_relationship("Unit")
    bill = orm_relationship("Bill", back_populates="income")


class ExpenseCategory(Base):
    __tablename__ = "expense_categories"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, unique=True, nullable=False)

    expenses = orm_relationship("Expense", back_populates="category")


class Expense(Base):
    __tablename__ = "expenses"

    id = Column(Integer, primary_key=True, index=True)
    fund_id = Column(Integer, ForeignKey("funds.id"), nullable=False, index=True)
    category_id = Column(Integer, ForeignKey("expense_categories.id"), nullable=False)
    description = Column(Text, nullable=False)
    amount = Column(Numeric(10, 2), nullable=False)
    expense_date = Column(Date, nullable=False)
    attachment_url = Column(String, nullable=True)
    status = Column(String, nullable=False, default="PENDING")
    requested_by_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    approved_by_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    decided_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    fund = orm_relationship("Fund", back_populates="expenses")
    category = orm_relationship("ExpenseCategory", back_populates="expenses")


class AGM(Base):
    __tablename__ = "agms"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    meeting_date = Column(DateTime, nullable=False)
    status = Column(String, nullable=False, default="DRAFT")
    created_by_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    resolutions = orm_relationship(
        "AGMResolution",
        back_populates="agm",
        cascade="all, delete-orphan",
        order_by="AGMResolution.order",
    )


class AGMResolution(Base):
    __tablename__ = "agm_resolutions"

    id = Column(Integer, primary_key=True, index=True)
    agm_id = Column(Integer, ForeignKey("agms.id", ondelete="CASCADE"), nullable=False, index=True)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    order = Column(Integer, nullable=False, default=1)

    agm = orm_relationship("AGM", back_populates="resolutions")
    votes = orm_relationship("Vote", back_populates="resolution", cascade="all, delete-orphan")


class Vote(Base):
    __tablename__ = "votes"
    __table_args__ = (UniqueConstraint("resolution_id", "user_id", name="uq_votes_resolution_user"),)

    id = Column(Integer, primary_key=True, index=True)
    resolution_id = Column(Integer, ForeignKey("agm_resolutions.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    unit_id = Column(Integer, ForeignKey("units.id"), nullable=True)
    choice = Column(String, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    resolution = orm_relationship("AGMResolution", back_populates="votes")
    user = orm_relationship("User")


class AuditLog(Base):
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, index=True)
    timestamp = Column(DateTime, default=utcnow, index=True, nullable=False)
    actor_user_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    action = Column(String, nullable=False, index=True)
    target_entity_type = Column(String, nullable=True)
    target_entity_id = Column(String, nullable=True)
    details = Column(Text, nullable=True)

    actor = orm_relationship("User", back_populates="audit_logs")


class SystemSetting(Base):
    __tablename__ = "system_settings"

    key = Column(String, primary_key=True)
    value = Column(Text, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)


class Notice(Base):
    __tablename__ = "notices"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String, nullable=False)
    content = Column(Text, nullable=False)
    target = Column(String, nullable=False, default="ALL")
    created_by_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    created_by = orm_relationship("User")


class Complaint(Base):
    __tablename__ = "complaints"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=False)
    type = Column(String, nullable=False)
    status = Column(String, nullable=False, default="OPEN")
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    user = orm_relationship("User")


class ActivityRequest(Base):
    __tablename__ = "activity_requests"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=False)
    date = Column(DateTime, nullable=False)
    location = Column(String, nullable=True)
    status = Column(String, nullable=False, default="PENDING")
    unit_id = Column(Integer, ForeignKey("units.id"), nullable=True)
    created_by_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    approved_by_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    created_by = orm_relationship("User", foreign_keys=[created_by_id])
    unit = orm_relationship("Unit")

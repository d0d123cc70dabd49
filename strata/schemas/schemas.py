from datetime import date, datetime
from decimal import Decimal
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field
from pydantic.alias_generators import to_camel

RoleName = Literal["SUPER_ADMIN", "JMB", "STAFF", "FINANCE", "OWNER", "TENANT"]
UnitType = Literal["ATAS", "BAWAH"]
BillType = Literal["MAINTENANCE", "SINKING", "DEPOSIT"]
BillStatus = Literal["PENDING", "PAID", "APPROVED", "REJECTED", "REFUND_PROCESSING"]
VoteChoice = Literal["SETUJU", "TIDAK_SETUJU", "BERKECUALI"]
CommitteeType = Literal["JMB", "COMMUNITY"]


class ORMModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)


class CamelModel(BaseModel):
    """Public (v1 and cron) payloads use camelCase keys."""

    model_config = ConfigDict(from_attributes=True, alias_generator=to_camel, populate_by_name=True)


# --- auth / users ---


class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"
    role: RoleName


class UserSummary(ORMModel):
    id: int
    name: str
    email: EmailStr
    phone: Optional[str] = None
    role: str


class UserRead(UserSummary):
    is_active: bool
    created_at: datetime
    committee_type: Optional[str] = None
    committee_position: Optional[str] = None
    voting_eligibility_override: Optional[bool] = None
    voting_override_reason: Optional[str] = None
    voting_override_set_at: Optional[datetime] = None


class CurrentUserRead(UserRead):
    permissions: List[str] = []


class UserCreate(BaseModel):
    email: EmailStr
    name: str = Field(min_length=1)
    password: str = Field(min_length=8)
    role: RoleName = "OWNER"
    phone: Optional[str] = None
    committee_type: Optional[CommitteeType] = None
    committee_position: Optional[str] = None


class UserUpdate(BaseModel):
    email: Optional[EmailStr] = None
    name: Optional[str] = None
    phone: Optional[str] = None
    role: Optional[RoleName] = None
    password: Optional[str] = Field(default=None, min_length=8)
    # An explicit null removes the user from the committee directory.
    committee_type: Optional[CommitteeType] = None
    committee_position: Optional[str] = None


class RegisterRequest(BaseModel):
    name: str = Field(min_length=1)
    email: EmailStr
    phone: str = Field(min_length=10)
    password: str = Field(min_length=8)
    confirm_password: str
    role: Literal["OWNER", "TENANT"] = "OWNER"


class CommitteeMember(ORMModel):
    id: int
    name: str
    phone: Optional[str] = None
    email: EmailStr
    committee_type: str
    committee_position: Optional[str] = None
    unit_numbers: List[str] = []


class CommitteeDirectory(BaseModel):
    jmb: List[CommitteeMember]
    community: List[CommitteeMember]


class ProfileUpdate(BaseModel):
    name: Optional[str] = None
    phone: Optional[str] = None
    current_password: Optional[str] = None
    new_password: Optional[str] = Field(default=None, min_length=8)


# --- arrears / units ---


class UnitArrearsRead(ORMModel):
    unit_id: int
    unit_number: str
    manual: Decimal
    system: Decimal
    total: Decimal
    pending_bill_count: int


class ArrearsRead(ORMModel):
    manual: Decimal
    system: Decimal
    total: Decimal
    bill_count: int
    per_unit: List[UnitArrearsRead] = []


class UnitCreate(BaseModel):
    unit_number: str = Field(min_length=1)
    type: UnitType = "BAWAH"
    owner_id: Optional[int] = None
    tenant_id: Optional[int] = None
    manual_arrears_amount: Decimal = Field(default=Decimal("0"), ge=0)
    monthly_adjustment_amount: Decimal = Decimal("0")


class UnitUpdate(BaseModel):
    type: Optional[UnitType] = None
    owner_id: Optional[int] = None
    tenant_id: Optional[int] = None
    manual_arrears_amount: Optional[Decimal] = Field(default=None, ge=0)
    monthly_adjustment_amount: Optional[Decimal] = None


class UnitRead(ORMModel):
    id: int
    unit_number: str
    type: str
    owner: Optional[UserSummary] = None
    tenant: Optional[UserSummary] = None
    manual_arrears_amount: Decimal
    monthly_adjustment_amount: Decimal
    is_active: bool
    deleted_at: Optional[datetime] = None


class UnitDetail(UnitRead):
    arrears: UnitArrearsRead


class ManualArrearsPayment(BaseModel):
    amount: Decimal
    reference: Optional[str] = None
    paid_on: Optional[date] = Field(default=None, alias="date")


# --- billing ---


class BillRead(ORMModel):
    id: int
    unit_id: int
    unit_number: Optional[str] = None
    amount: Decimal
    month: int
    year: int
    type: str
    status: str
    receipt_url: Optional[str] = None
    reference: Optional[str] = None
    refund_reference: Optional[str] = None
    refund_checklist: Optional[List[str]] = None
    refund_proof_url: Optional[str] = None
    refund_payout_url: Optional[str] = None
    refunded_at: Optional[datetime] = None
    is_refunded: bool = False
    created_at: datetime


class BillCreate(BaseModel):
    unit_id: int
    amount: Decimal = Field(gt=0)
    month: int = Field(ge=1, le=12)
    year: int = Field(ge=2000, le=2100)
    type: BillType = "MAINTENANCE"


class GenerateBillsRequest(BaseModel):
    month: int = Field(ge=1, le=12)
    year: int = Field(ge=2000, le=2100)


class GenerateBillsResult(BaseModel):
    count: int
    month: int
    year: int
    bill_ids: List[int] = []


class VerifyPaymentRequest(BaseModel):
    approved: bool


class BillStatusUpdate(BaseModel):
    status: Literal["PENDING", "PAID", "APPROVED", "REJECTED"]


class FPXResult(BaseModel):
    message: str
    bill: BillRead


# --- settings ---


class BillingSettingsRead(BaseModel):
    base_monthly_bill_atas: Decimal
    base_monthly_bill_bawah: Decimal


class BillingSettingsUpdate(BaseModel):
    base_monthly_bill_atas: Decimal
    base_monthly_bill_bawah: Decimal


class BillingSettingsSaved(BillingSettingsRead):
    saved: bool


# --- finance ---


class FundBalance(BaseModel):
    id: int
    code: str
    name: str
    total_income: Decimal
    total_expense: Decimal
    balance: Decimal


class FundsSummary(BaseModel):
    funds: List[FundBalance]
    total_income: Decimal
    total_expense: Decimal
    balance: Decimal


class ExpenseCategoryRead(ORMModel):
    id: int
    name: str


class ExpenseRead(ORMModel):
    id: int
    fund_id: int
    category: ExpenseCategoryRead
    description: str
    amount: Decimal
    expense_date: date
    attachment_url: Optional[str] = None
    status: str
    requested_by_id: Optional[int] = None
    approved_by_id: Optional[int] = None


class IncomeCreate(BaseModel):
    fund_code: Literal["MAINTENANCE", "SINKING"]
    amount: Decimal = Field(gt=0)
    date: date
    source: str = Field(min_length=1)
    description: Optional[str] = None
    unit_id: Optional[int] = None


class IncomeRead(ORMModel):
    id: int
    fund_id: int
    unit_id: Optional[int] = None
    bill_id: Optional[int] = None
    amount: Decimal
    date: date
    source: str
    description: Optional[str] = None


class FundIncomeRow(BaseModel):
    fund_id: int
    fund_name: str
    total_income: Decimal


class FundExpenseRow(BaseModel):
    fund_id: int
    fund_name: str
    total_expense: Decimal


class CategoryExpenseRow(BaseModel):
    category_name: str
    total: Decimal


class FinancialReport(BaseModel):
    year: int
    income_by_fund: List[FundIncomeRow]
    expense_by_fund: List[FundExpenseRow]
    expense_by_category: List[CategoryExpenseRow]
    total_income: Decimal
    total_expense: Decimal
    net: Decimal


# --- AGM ---


class ResolutionCreate(BaseModel):
    title: str = Field(min_length=1)
    description: Optional[str] = None


class ResolutionRead(ORMModel):
    id: int
    title: str
    description: Optional[str] = None
    order: int


class AGMCreate(BaseModel):
    title: str = Field(min_length=1)
    description: Optional[str] = None
    meeting_date: datetime
    resolutions: List[ResolutionCreate] = []


class AGMUpdate(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    meeting_date: Optional[datetime] = None


class AGMStatusUpdate(BaseModel):
    status: Literal["DRAFT", "ACTIVE", "CLOSED"]


class AGMRead(ORMModel):
    id: int
    title: str
    description: Optional[str] = None
    meeting_date: datetime
    status: str
    resolutions: List[ResolutionRead] = []
    my_votes: Dict[int, str] = {}


class VoteCast(BaseModel):
    choice: VoteChoice


class VoteRead(ORMModel):
    id: int
    resolution_id: int
    user_id: int
    unit_id: Optional[int] = None
    choice: str


class ResolutionResult(BaseModel):
    resolution_id: int
    title: str
    order: int
    counts: Dict[str, int]
    total: int


class EligibilityRead(ORMModel):
    eligible: bool
    reason: Optional[str] = None
    arrears: Decimal
    overridden: bool


class EligibilityOverride(BaseModel):
    eligible: Optional[bool] = None
    reason: Optional[str] = None


class UserDetail(UserRead):
    units: List[UnitRead] = []
    arrears: ArrearsRead
    eligibility: EligibilityRead


# --- community ---


class NoticeCreate(BaseModel):
    title: str
    content: str
    target: Literal["ALL", "MANAGEMENT", "RESIDENTS"] = "ALL"


class NoticeRead(ORMModel):
    id: int
    title: str
    content: str
    target: str
    created_at: datetime


class ComplaintCreate(BaseModel):
    title: str
    description: str
    type: str


class ComplaintStatusUpdate(BaseModel):
    status: Literal["OPEN", "IN_PROGRESS", "RESOLVED", "CLOSED"]


class ComplaintRead(ORMModel):
    id: int
    title: str
    description: str
    type: str
    status: str
    user_id: int
    created_at: datetime


class ActivityCreate(BaseModel):
    title: str
    description: str
    date: datetime
    location: Optional[str] = None
    unit_id: Optional[int] = None


class ActivityStatusUpdate(BaseModel):
    status: Literal["PENDING", "APPROVED", "REJECTED", "CANCELLED"]


class ActivityRead(ORMModel):
    id: int
    title: str
    description: str
    date: datetime
    location: Optional[str] = None
    status: str
    unit_id: Optional[int] = None
    created_by_id: int
    approved_by_id: Optional[int] = None


# --- oversight ---


class AuditLogRead(ORMModel):
    id: int
    timestamp: datetime
    actor_user_id: Optional[int] = None
    action: str
    target_entity_type: Optional[str] = None
    target_entity_id: Optional[str] = None
    details: Optional[str] = None


class AuditLogList(BaseModel):
    items: List[AuditLogRead]
    total: int
    limit: int
    offset: int


class DashboardArrears(BaseModel):
    manual: Decimal
    system: Decimal
    total: Decimal
    pending_bill_count: int
    units_in_arrears: int


class DashboardSummary(BaseModel):
    unit_count: int
    arrears: DashboardArrears
    top_debtors: List[UnitArrearsRead]
    bills_awaiting_verification: int
    refunds_in_progress: int
    pending_expenses: int
    open_complaints: int
    finance: FundsSummary


# --- cron / v1 ---


class CronBillingResult(CamelModel):
    success: bool
    count: int
    month: int
    year: int


class CronReminderResult(CamelModel):
    success: bool
    sent_count: int
    total_pending: int
    month: int
    year: int


class NotificationItem(CamelModel):
    id: str
    title: str
    message: str
    type: Literal["notice", "activity", "bill", "complaint"]
    is_read: bool = False
    created_at: datetime
    link: Optional[str] = None


class NotificationFeed(CamelModel):
    notifications: List[NotificationItem]


class SuccessResponse(CamelModel):
    success: bool = True


class SearchResult(CamelModel):
    type: Literal["user", "unit"]
    id: int
    label: str
    subtitle: Optional[str] = None


class SearchResults(CamelModel):
    results: List[SearchResult]


class V1Bill(CamelModel):
    id: int
    unit_id: int
    unit_number: str
    amount: Decimal
    month: int
    year: int
    type: str
    status: str
    receipt_url: Optional[str] = None
    refund_proof_url: Optional[str] = None
    created_at: datetime


class V1FundBalance(CamelModel):
    id: int
    code: str
    name: str
    total_income: Decimal
    total_expense: Decimal
    balance: Decimal


class V1Finance(CamelModel):
    funds: List[V1FundBalance]
    total_income: Decimal
    total_expense: Decimal
    balance: Decimal


class V1UnitArrears(CamelModel):
    id: int
    unit_number: str
    manual_arrears_amount: Decimal
    system_arrears_amount: Decimal
    total_arrears_amount: Decimal
    pending_bill_count: int


class V1ArrearsTotals(CamelModel):
    total_amount: Decimal
    bill_count: int


class V1UserMe(CamelModel):
    id: int
    name: str
    email: str
    role: str
    phone: Optional[str] = None
    units: List[V1UnitArrears]
    arrears: V1ArrearsTotals

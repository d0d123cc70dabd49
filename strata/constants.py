from decimal import Decimal

DEFAULT_ROLES = [
    ("SUPER_ADMIN", "System administrator with full access"),
    ("JMB", "Joint Management Body committee member"),
    ("STAFF", "Management office staff"),
    ("FINANCE", "Finance officer responsible for refunds and payouts"),
    ("OWNER", "Registered unit owner"),
    ("TENANT", "Registered unit tenant"),
]
ROLE_NAMES = [name for name, _ in DEFAULT_ROLES]

MANAGEMENT_ROLES = ("SUPER_ADMIN", "JMB", "STAFF")
COMMITTEE_ROLES = ("SUPER_ADMIN", "JMB")
REFUND_APPROVER_ROLES = ("SUPER_ADMIN", "FINANCE")
RESIDENT_ROLES = ("OWNER", "TENANT")
COMMITTEE_TYPES = ("JMB", "COMMUNITY")

UNIT_TYPES = ("ATAS", "BAWAH")

BILL_TYPES = ("MAINTENANCE", "SINKING", "DEPOSIT")
BILL_STATUSES = ("PENDING", "PAID", "APPROVED", "REJECTED", "REFUND_PROCESSING")
# Statuses an operator may set directly; the refund states only move through the refund flow.
MANUAL_BILL_STATUSES = ("PENDING", "PAID", "APPROVED", "REJECTED")

EXPENSE_STATUSES = ("PENDING", "APPROVED", "REJECTED")
AGM_STATUSES = ("DRAFT", "ACTIVE", "CLOSED")
AGM_STATUS_TRANSITIONS = {
    "DRAFT": {"ACTIVE"},
    "ACTIVE": {"CLOSED"},
    "CLOSED": set(),
}
VOTE_CHOICES = ("SETUJU", "TIDAK_SETUJU", "BERKECUALI")

NOTICE_TARGETS = ("ALL", "MANAGEMENT", "RESIDENTS")
COMPLAINT_TYPES = ("KEROSAKAN", "KEBERSIHAN", "KESELAMATAN", "BISING", "LAIN-LAIN")
COMPLAINT_STATUSES = ("OPEN", "IN_PROGRESS", "RESOLVED", "CLOSED")
ACTIVITY_STATUSES = ("PENDING", "APPROVED", "REJECTED", "CANCELLED")

SETTING_BASE_BILL_ATAS = "BASE_MONTHLY_BILL_ATAS"
SETTING_BASE_BILL_BAWAH = "BASE_MONTHLY_BILL_BAWAH"
SETTING_BASE_BILL_LEGACY = "BASE_MONTHLY_BILL"
DEFAULT_SETTING_AMOUNTS = {
    SETTING_BASE_BILL_ATAS: Decimal("95"),
    SETTING_BASE_BILL_BAWAH: Decimal("88"),
    SETTING_BASE_BILL_LEGACY: Decimal("88"),
}
GENERIC_DEFAULT_AMOUNT = Decimal("88")
UNIT_TYPE_SETTING_KEYS = {
    "ATAS": SETTING_BASE_BILL_ATAS,
    "BAWAH": SETTING_BASE_BILL_BAWAH,
}

DEFAULT_FUNDS = [
    ("MAINTENANCE", "Maintenance Fund", "Dana penyelenggaraan bulanan"),
    ("SINKING", "Sinking Fund", "Kumpulan wang penjelas"),
]
# Deposits are held in the maintenance fund until refunded.
BILL_TYPE_FUND_CODES = {
    "MAINTENANCE": "MAINTENANCE",
    "SINKING": "SINKING",
    "DEPOSIT": "MAINTENANCE",
}

DEFAULT_EXPENSE_CATEGORIES = [
    "TNB",
    "AIR",
    "TELEFON / INTERNET",
    "INDAH WATER",
    "PENGURUSAN",
    "PENYELENGGARAAN",
    "INSURANS",
    "LAIN-LAIN",
]

REFUND_CHECKLIST_ITEMS = (
    "KUNCI_DIPULANGKAN",
    "KAD_AKSES_DIPULANGKAN",
    "UNIT_DIPERIKSA",
    "TIADA_KEROSAKAN",
    "TIADA_TUNGGAKAN",
)

ALLOWED_UPLOAD_TYPES = {
    "image/jpeg": "jpg",
    "image/png": "png",
    "application/pdf": "pdf",
}
MAX_UPLOAD_BYTES = 5 * 1024 * 1024

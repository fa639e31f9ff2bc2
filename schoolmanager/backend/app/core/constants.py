# backend/app/core/constants.py
from datetime import timedelta
from enum import Enum
from typing import Dict, FrozenSet, Tuple


class TenantStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"


class PlanType(str, Enum):
    FREE = "free"
    TRIAL = "trial"
    MONTHLY = "monthly"
    TERMLY = "termly"
    YEARLY = "yearly"


# Plans a tenant can pay for through the gateway
PAID_PLANS = frozenset({PlanType.MONTHLY, PlanType.TERMLY, PlanType.YEARLY})


class UserRole(str, Enum):
    SUPER_ADMIN = "super_admin"
    TENANT_ADMIN = "tenant_admin"
    STAFF = "staff"


TENANT_BOUND_ROLES = frozenset({UserRole.TENANT_ADMIN, UserRole.STAFF})


class AccountStatus(str, Enum):
    ACTIVE = "active"
    DISABLED = "disabled"


class BillingStatus(str, Enum):
    NONE = "none"
    PENDING = "pending"
    ACTIVE = "active"
    PAST_DUE = "past_due"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    SUCCESS = "success"
    FAILED = "failed"
    ABANDONED = "abandoned"
    PAST_DUE = "past_due"


class ReconciliationSource(str, Enum):
    PULL = "pull"
    PUSH = "push"


# PaymentRecord state machine. failed and abandoned are terminal.
PAYMENT_TRANSITIONS: Dict[PaymentStatus, FrozenSet[PaymentStatus]] = {
    PaymentStatus.PENDING: frozenset({
        PaymentStatus.SUCCESS, PaymentStatus.FAILED, PaymentStatus.ABANDONED,
    }),
    PaymentStatus.SUCCESS: frozenset({PaymentStatus.PAST_DUE}),
    PaymentStatus.PAST_DUE: frozenset({PaymentStatus.SUCCESS}),
    PaymentStatus.FAILED: frozenset(),
    PaymentStatus.ABANDONED: frozenset(),
}

# (current tenant billing status, new payment status) -> new tenant billing status
TENANT_BILLING_EFFECTS: Dict[Tuple[BillingStatus, PaymentStatus], BillingStatus] = {
    (BillingStatus.NONE, PaymentStatus.SUCCESS): BillingStatus.ACTIVE,
    (BillingStatus.PENDING, PaymentStatus.SUCCESS): BillingStatus.ACTIVE,
    (BillingStatus.PAST_DUE, PaymentStatus.SUCCESS): BillingStatus.ACTIVE,
    (BillingStatus.ACTIVE, PaymentStatus.SUCCESS): BillingStatus.ACTIVE,
    (BillingStatus.PENDING, PaymentStatus.FAILED): BillingStatus.PAST_DUE,
    (BillingStatus.PENDING, PaymentStatus.ABANDONED): BillingStatus.PAST_DUE,
    (BillingStatus.ACTIVE, PaymentStatus.FAILED): BillingStatus.PAST_DUE,
    (BillingStatus.ACTIVE, PaymentStatus.PAST_DUE): BillingStatus.PAST_DUE,
    (BillingStatus.PAST_DUE, PaymentStatus.FAILED): BillingStatus.PAST_DUE,
    (BillingStatus.PAST_DUE, PaymentStatus.PAST_DUE): BillingStatus.PAST_DUE,
}

# Tenant billing status after a new checkout is initiated
BILLING_ON_INITIATE: Dict[BillingStatus, BillingStatus] = {
    BillingStatus.NONE: BillingStatus.PENDING,
    BillingStatus.PENDING: BillingStatus.PENDING,
    BillingStatus.PAST_DUE: BillingStatus.PENDING,
    BillingStatus.ACTIVE: BillingStatus.ACTIVE,
}

# Paystack transaction statuses
GATEWAY_STATUS_MAP: Dict[str, PaymentStatus] = {
    "success": PaymentStatus.SUCCESS,
    "failed": PaymentStatus.FAILED,
    "reversed": PaymentStatus.FAILED,
    "abandoned": PaymentStatus.ABANDONED,
    "pending": PaymentStatus.PENDING,
    "ongoing": PaymentStatus.PENDING,
    "processing": PaymentStatus.PENDING,
    "queued": PaymentStatus.PENDING,
}

# Paystack webhook events we reconcile; anything else is acknowledged and dropped
WEBHOOK_EVENT_MAP: Dict[str, PaymentStatus] = {
    "charge.success": PaymentStatus.SUCCESS,
    "charge.failed": PaymentStatus.FAILED,
    "invoice.payment_failed": PaymentStatus.FAILED,
    "subscription.disable": PaymentStatus.FAILED,
}

WEBHOOK_SIGNATURE_HEADER = "x-paystack-signature"

# Tenant code generation
TENANT_CODE_LENGTH = 6
TENANT_CODE_FALLBACK_BASE = "SCHOOL"
TENANT_CODE_SEQUENTIAL_ATTEMPTS = 99
TENANT_CODE_RANDOM_ATTEMPTS = 10

TRIAL_PERIOD = timedelta(days=30)

# Storage layer limits
STORAGE_BATCH_CEILING = 500
MAX_DELETE_CONCURRENCY = 8

DEFAULT_TENANT_SETTINGS = {
    "academicYear": "",
    "currentTerm": "Term 1",
    "schoolReopenDate": "",
    "vacationDate": "",
    "nextTermBegins": "",
    "termTransitionProcessed": False,
    "headTeacherRemark": "An outstanding performance. The school is proud of you.",
    "termEndDate": "",
    "holidayDates": [],
    "gradingScale": {"A": 80, "B": 70, "C": 60, "D": 45},
    "positionRule": "total",
}

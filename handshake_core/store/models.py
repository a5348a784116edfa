"""
Type models for store operations.

Query/scan parameters, result pages, status enums and the per-entity patch
types accepted by repository ``update`` methods.
"""

from dataclasses import dataclass, field, fields
from enum import Enum
from typing import Any, Literal

SortOperator = Literal["eq", "begins_with", "between", "lt", "lte", "gt", "gte"]


@dataclass(frozen=True)
class SortCondition:
    """Condition on the sort key of the table or of an index."""

    operator: SortOperator
    value: str
    upper: str | None = None

    @classmethod
    def eq(cls, value: str) -> "SortCondition":
        return cls("eq", value)

    @classmethod
    def begins_with(cls, prefix: str) -> "SortCondition":
        return cls("begins_with", prefix)

    @classmethod
    def between(cls, lower: str, upper: str) -> "SortCondition":
        return cls("between", lower, upper)

    def matches(self, candidate: str | None) -> bool:
        """Evaluate the condition against a sort key value."""
        if candidate is None:
            return False
        if self.operator == "eq":
            return candidate == self.value
        if self.operator == "begins_with":
            return candidate.startswith(self.value)
        if self.operator == "between":
            return self.value <= candidate <= (self.upper or "")
        if self.operator == "lt":
            return candidate < self.value
        if self.operator == "lte":
            return candidate <= self.value
        if self.operator == "gt":
            return candidate > self.value
        return candidate >= self.value


@dataclass
class QueryParams:
    """Parameters for a key-condition query against the table or an index."""

    partition_value: str
    sort: SortCondition | None = None
    index_name: str | None = None
    filters: dict[str, Any] = field(default_factory=dict)
    limit: int | None = None
    scan_forward: bool = True
    start_token: str | None = None


@dataclass
class ScanParams:
    """Parameters for a full-table scan. Ops and admin paths only."""

    pk_prefix: str | None = None
    sk_prefix: str | None = None
    filters: dict[str, Any] = field(default_factory=dict)
    require_attributes: tuple[str, ...] = ()
    limit: int | None = None
    start_token: str | None = None


@dataclass
class Page:
    """One page of results plus the opaque continuation token."""

    items: list[dict[str, Any]]
    next_token: str | None = None


class OrderStatus(str, Enum):
    DRAFT = "DRAFT"
    ACTIVE = "ACTIVE"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class ApplicationStatus(str, Enum):
    PENDING = "PENDING"
    ACCEPTED = "ACCEPTED"
    REJECTED = "REJECTED"
    WITHDRAWN = "WITHDRAWN"


class ProjectStatus(str, Enum):
    NEW = "NEW"
    IN_PROGRESS = "IN_PROGRESS"
    REVIEW = "REVIEW"
    REVISION = "REVISION"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    ARCHIVED = "ARCHIVED"
    DISPUTED = "DISPUTED"


class MilestoneStatus(str, Enum):
    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class MessageType(str, Enum):
    TEXT = "TEXT"
    IMAGE = "IMAGE"
    FILE = "FILE"
    VOICE = "VOICE"


class TransactionType(str, Enum):
    DEPOSIT = "DEPOSIT"
    WITHDRAWAL = "WITHDRAWAL"
    PAYMENT = "PAYMENT"
    REFUND = "REFUND"
    FEE = "FEE"
    RESERVE = "RESERVE"
    COMMISSION = "COMMISSION"


class TransactionStatus(str, Enum):
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"


class ScheduleType(str, Enum):
    WEEKLY = "WEEKLY"
    SPECIFIC_DATE = "SPECIFIC_DATE"


class BackgroundCheckStatus(str, Enum):
    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    DISPUTED = "DISPUTED"


class DisputeStatus(str, Enum):
    OPEN = "OPEN"
    UNDER_REVIEW = "UNDER_REVIEW"
    RESOLVED = "RESOLVED"
    REJECTED = "REJECTED"


class VerificationStatus(str, Enum):
    PENDING = "PENDING"
    IN_REVIEW = "IN_REVIEW"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    SUSPENDED = "SUSPENDED"


class DocumentStatus(str, Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


IDENTITY_DOCUMENT_TYPES = frozenset({"PASSPORT", "ID_CARD", "DRIVER_LICENSE"})


def attribute_name(field_name: str) -> str:
    """Map a snake_case field name onto its camelCase attribute name."""
    head, *rest = field_name.split("_")
    return head + "".join(part.capitalize() for part in rest)


@dataclass
class Patch:
    """
    Partial update for an entity.

    Fields left as None are not supplied and keep their stored value.
    """

    def changes(self) -> dict[str, Any]:
        result: dict[str, Any] = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if value is None:
                continue
            if isinstance(value, Enum):
                value = value.value
            result[attribute_name(f.name)] = value
        return result


@dataclass
class UserPatch(Patch):
    first_name: str | None = None
    last_name: str | None = None
    phone: str | None = None
    email: str | None = None
    telegram_id: str | None = None
    avatar: str | None = None
    role: str | None = None
    city: str | None = None
    is_verified: bool | None = None
    is_active: bool | None = None


@dataclass
class OrderPatch(Patch):
    title: str | None = None
    description: str | None = None
    category_id: str | None = None
    budget: float | None = None
    currency: str | None = None
    location: str | None = None
    deadline: str | None = None
    status: OrderStatus | str | None = None
    master_id: str | None = None
    accepted_application_id: str | None = None


@dataclass
class ApplicationPatch(Patch):
    cover_letter: str | None = None
    proposed_price: float | None = None
    proposed_deadline: str | None = None
    status: ApplicationStatus | str | None = None
    response_message: str | None = None


@dataclass
class ProjectPatch(Patch):
    title: str | None = None
    description: str | None = None
    deadline: str | None = None
    budget: float | None = None
    agreed_price: float | None = None
    status: ProjectStatus | str | None = None
    progress: int | None = None
    started_at: str | None = None
    completed_at: str | None = None
    cancelled_at: str | None = None
    notes: str | None = None


@dataclass
class MilestonePatch(Patch):
    title: str | None = None
    description: str | None = None
    amount: float | None = None
    due_date: str | None = None
    order_num: int | None = None
    status: MilestoneStatus | str | None = None
    completed_at: str | None = None


@dataclass
class RoomPatch(Patch):
    last_message: str | None = None
    last_message_at: str | None = None
    last_message_sender_id: str | None = None
    is_active: bool | None = None


@dataclass
class TransactionPatch(Patch):
    status: TransactionStatus | str | None = None
    description: str | None = None
    commission: float | None = None
    provider_payment_id: str | None = None
    failure_reason: str | None = None
    metadata: dict[str, Any] | None = None


@dataclass
class CardPatch(Patch):
    cardholder_name: str | None = None
    expiry_month: int | None = None
    expiry_year: int | None = None
    is_default: bool | None = None
    is_active: bool | None = None


@dataclass
class AvailabilityPatch(Patch):
    schedule_type: ScheduleType | str | None = None
    day_of_week: int | None = None
    specific_date: str | None = None
    start_time: str | None = None
    end_time: str | None = None
    is_available: bool | None = None


@dataclass
class CalendarIntegrationPatch(Patch):
    calendar_id: str | None = None
    access_token_ref: str | None = None
    sync_enabled: bool | None = None
    last_synced_at: str | None = None
    is_active: bool | None = None


@dataclass
class BackgroundCheckPatch(Patch):
    status: BackgroundCheckStatus | str | None = None
    provider_reference: str | None = None
    result: str | None = None
    score: int | None = None
    completed_at: str | None = None
    expires_at: str | None = None
    notes: str | None = None


@dataclass
class DisputePatch(Patch):
    status: DisputeStatus | str | None = None
    resolution: str | None = None
    resolved_at: str | None = None
    assigned_to: str | None = None


@dataclass
class BadgePatch(Patch):
    expires_at: str | None = None
    is_active: bool | None = None


@dataclass
class VerificationPatch(Patch):
    status: VerificationStatus | str | None = None
    documents: list[dict[str, Any]] | None = None
    notes: str | None = None
    reviewed_by: str | None = None
    reviewed_at: str | None = None
    verified_at: str | None = None
    rejection_reason: str | None = None


@dataclass
class NotificationSettingsPatch(Patch):
    push_enabled: bool | None = None
    email_enabled: bool | None = None
    sms_enabled: bool | None = None
    telegram_enabled: bool | None = None
    quiet_hours_start: str | None = None
    quiet_hours_end: str | None = None
    muted_types: list[str] | None = None

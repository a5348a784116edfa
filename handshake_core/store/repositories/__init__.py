"""Per-entity repositories over the single table."""

from ..core.indexing import EntitySchema
from .background_check import (
    BACKGROUND_CHECK_SCHEMA,
    BADGE_SCHEMA,
    DISPUTE_SCHEMA,
    TIMELINE_SCHEMA,
    BackgroundCheckRepository,
)
from .calendar import AVAILABILITY_SCHEMA, CALENDAR_INTEGRATION_SCHEMA, CalendarRepository
from .chat import MESSAGE_SCHEMA, PARTICIPANT_SCHEMA, ROOM_SCHEMA, ChatRepository
from .notification import NOTIFICATION_SCHEMA, SETTINGS_SCHEMA, NotificationRepository
from .order import APPLICATION_SCHEMA, ORDER_SCHEMA, OrderRepository
from .payment import CARD_SCHEMA, PaymentRepository
from .project import MILESTONE_SCHEMA, PROJECT_SCHEMA, ProjectRepository
from .transaction import TRANSACTION_SCHEMA, WALLET_SCHEMA, TransactionRepository
from .user import USER_SCHEMA, UserRepository
from .verification import VERIFICATION_SCHEMA, VerificationRepository

# Entity families the repair tool can reindex, by name
SCHEMAS: dict[str, EntitySchema] = {
    schema.name: schema
    for schema in (
        USER_SCHEMA,
        ORDER_SCHEMA,
        APPLICATION_SCHEMA,
        PROJECT_SCHEMA,
        MILESTONE_SCHEMA,
        ROOM_SCHEMA,
        PARTICIPANT_SCHEMA,
        MESSAGE_SCHEMA,
        NOTIFICATION_SCHEMA,
        SETTINGS_SCHEMA,
        WALLET_SCHEMA,
        TRANSACTION_SCHEMA,
        CARD_SCHEMA,
        AVAILABILITY_SCHEMA,
        CALENDAR_INTEGRATION_SCHEMA,
        BACKGROUND_CHECK_SCHEMA,
        DISPUTE_SCHEMA,
        TIMELINE_SCHEMA,
        BADGE_SCHEMA,
        VERIFICATION_SCHEMA,
    )
}

__all__ = [
    "SCHEMAS",
    "BackgroundCheckRepository",
    "CalendarRepository",
    "ChatRepository",
    "NotificationRepository",
    "OrderRepository",
    "PaymentRepository",
    "ProjectRepository",
    "TransactionRepository",
    "UserRepository",
    "VerificationRepository",
]

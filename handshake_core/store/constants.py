"""
Constants for the single-table store.

Key prefixes and attribute names below are the on-disk contract shared with
existing data. Do not change them without a migration.
"""

# Default table name
DEFAULT_TABLE_NAME = "handshake-table"

# Connection lifetime (in seconds)
DEFAULT_CONNECTION_TTL = 1800  # 30 minutes

# Primary key attribute names
ATTR_PK = "PK"
ATTR_SK = "SK"

# Common attribute names
ATTR_ID = "id"
ATTR_TTL = "ttl"
ATTR_CREATED_AT = "createdAt"
ATTR_UPDATED_AT = "updatedAt"

# Secondary indexes: index name -> (partition attribute, sort attribute)
INDEX_GSI1 = "GSI1"
INDEX_GSI2 = "GSI2"
INDEX_GSI3 = "GSI3"
INDEX_KEYS = {
    INDEX_GSI1: ("GSI1PK", "GSI1SK"),
    INDEX_GSI2: ("GSI2PK", "GSI2SK"),
    INDEX_GSI3: ("GSI3PK", "GSI3SK"),
}
INDEX_ATTRIBUTES = frozenset(attr for pair in INDEX_KEYS.values() for attr in pair)
KEY_ATTRIBUTES = frozenset({ATTR_PK, ATTR_SK}) | INDEX_ATTRIBUTES

# Partition key prefixes
PREFIX_USER = "USER"
PREFIX_ORDER = "ORDER"
PREFIX_PROJECT = "PROJECT"
PREFIX_ROOM = "ROOM"
PREFIX_WS_CONNECTION = "WS_CONNECTION"
PREFIX_BACKGROUND_CHECK = "BACKGROUND_CHECK"
PREFIX_DISPUTE = "DISPUTE"

# Sort key prefixes and fixed sort keys
SK_PROFILE = "PROFILE"
SK_METADATA = "METADATA"
SK_DETAILS = "DETAILS"
SK_WALLET = "WALLET"
SK_VERIFICATION = "VERIFICATION"
SK_NOTIFICATION_SETTINGS = "NOTIFICATION_SETTINGS"
PREFIX_APPLICATION = "APPLICATION"
PREFIX_MILESTONE = "MILESTONE"
PREFIX_MESSAGE = "MSG"
PREFIX_NOTIFICATION = "NOTIFICATION"
PREFIX_TRANSACTION = "TRANSACTION"
PREFIX_CARD = "CARD"
PREFIX_AVAILABILITY = "AVAILABILITY"
PREFIX_CALENDAR_INTEGRATION = "CALENDAR_INTEGRATION"
PREFIX_TIMELINE = "TIMELINE"
PREFIX_BADGE = "BADGE"

# Index partition prefixes
PREFIX_PHONE = "PHONE"
PREFIX_TELEGRAM = "TELEGRAM"
PREFIX_ORDER_STATUS = "ORDER_STATUS"
PREFIX_CATEGORY = "CATEGORY"
PREFIX_MASTER = "MASTER"
PREFIX_NOTIFICATION_TYPE = "NOTIFICATION_TYPE"
PREFIX_TRANSACTION_STATUS = "TRANSACTION_STATUS"
PREFIX_TRANSACTION_TYPE = "TRANSACTION_TYPE"
PREFIX_IDEMPOTENCY = "IDEMPOTENCY"
PREFIX_BACKGROUND_CHECK_TYPE = "BACKGROUND_CHECK_TYPE"
PREFIX_VERIFICATION_STATUS = "VERIFICATION_STATUS"
PREFIX_STATUS = "STATUS"

# Placeholder due date so undated milestones sort last
OPEN_DUE_DATE = "9999-12-31"

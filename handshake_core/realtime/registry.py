"""
Registry of live WebSocket connections.

One row per connection (``WS_CONNECTION#<id>`` / ``DETAILS``), reachable per
user through GSI1 (``USER#<userId>`` / ``WS_CONNECTION#<id>``). Each row
carries ``ttl = now + ttl_seconds``, refreshed on every inbound message.
DynamoDB drops expired rows on its own schedule, so reads check the expiry
explicitly and treat an expired row as gone.
"""

from collections.abc import Callable, Iterable
from datetime import timedelta
from typing import Any

from ..logging_config import get_logger
from ..store.constants import (
    ATTR_TTL,
    DEFAULT_CONNECTION_TTL,
    INDEX_GSI1,
    PREFIX_USER,
    PREFIX_WS_CONNECTION,
    SK_DETAILS,
)
from ..store.core.client import DynamoDBClient
from ..store.core.indexing import EntitySchema, IndexProjection, build_item, compose, constant
from ..store.exceptions import ConflictError, ItemNotFoundError
from ..store.keys import connection_key, user_pk
from ..store.models import QueryParams, ScanParams, SortCondition
from ..store.utils import epoch_seconds, isoformat, utc_now

logger = get_logger(__name__)

CONNECTION_SCHEMA = EntitySchema(
    name="connection",
    key=IndexProjection(None, compose(PREFIX_WS_CONNECTION, "connectionId"), constant(SK_DETAILS)),
    indexes=(
        IndexProjection(
            INDEX_GSI1,
            compose(PREFIX_USER, "userId"),
            compose(PREFIX_WS_CONNECTION, "connectionId"),
        ),
    ),
    immutable=frozenset({"connectionId", "userId"}),
    key_prefixes=(f"{PREFIX_WS_CONNECTION}#", SK_DETAILS),
)


class ConnectionRegistry:
    """Tracks which users have open connections, with expiry."""

    def __init__(
        self,
        client: DynamoDBClient,
        ttl_seconds: int = DEFAULT_CONNECTION_TTL,
        clock: Callable = utc_now,
        on_offline: Callable[[str], Any] | None = None,
    ):
        """
        Initialize the registry.

        Args:
            client: Store client
            ttl_seconds: Connection lifetime without inbound traffic
            clock: Source of the current time
            on_offline: Called with a user id when their last connection closes
        """
        self.client = client
        self.ttl_seconds = ttl_seconds
        self.clock = clock
        self.on_offline = on_offline

    def register(self, connection_id: str, user_id: str, **metadata: Any) -> dict[str, Any]:
        """
        Record an open connection. A user may hold any number of them.

        Args:
            connection_id: API Gateway connection id
            user_id: Authenticated user
            metadata: Extra attributes to keep on the row (e.g. userAgent)

        Returns:
            The connection row
        """
        now = self.clock()
        item = build_item(
            CONNECTION_SCHEMA,
            {
                **metadata,
                "connectionId": connection_id,
                "userId": user_id,
                "connectedAt": isoformat(now),
                "lastPingAt": isoformat(now),
                ATTR_TTL: self._expiry(now),
            },
        )
        self.client.put_item(item)
        logger.info(f"Registered connection {connection_id} for user {user_id}")
        return item

    def touch(self, connection_id: str) -> dict[str, Any] | None:
        """
        Push the connection's expiry out to now + ttl_seconds.

        An expired row is not revived, whether or not DynamoDB has removed it.

        Returns:
            The refreshed row, or None if the connection is unknown or expired
        """
        now = self.clock()
        try:
            return self.client.update_item(
                connection_key(connection_id),
                {"lastPingAt": isoformat(now), ATTR_TTL: self._expiry(now)},
                must_exist=True,
                greater_than={ATTR_TTL: epoch_seconds(now)},
            )
        except ItemNotFoundError:
            logger.warning(f"Touch on unknown connection {connection_id}")
            return None
        except ConflictError:
            logger.info(f"Touch on expired connection {connection_id}")
            return None

    def unregister(self, connection_id: str) -> bool:
        """
        Delete a connection row.

        If it was the user's last live connection, on_offline is called.
        That notification is best-effort: its failure is logged only.

        Returns:
            True if the user went offline
        """
        removed = self.client.delete_item(connection_key(connection_id))
        if removed is None:
            logger.debug(f"Connection {connection_id} already gone")
            return False

        user_id = removed["userId"]
        logger.info(f"Unregistered connection {connection_id} for user {user_id}")
        if self.user_connections(user_id):
            return False

        if self.on_offline is not None:
            try:
                self.on_offline(user_id)
            except Exception as e:
                logger.warning(f"Offline notification for user {user_id} failed: {e}")
        return True

    def find(self, connection_id: str) -> dict[str, Any] | None:
        """Live connection row, or None if absent or expired."""
        item = self.client.get_item(connection_key(connection_id))
        if item is None or not self._is_live(item):
            return None
        return item

    def user_connections(self, user_id: str) -> list[dict[str, Any]]:
        """Live connection rows of one user."""
        items = self.client.query_all(
            QueryParams(
                partition_value=user_pk(user_id),
                sort=SortCondition.begins_with(f"{PREFIX_WS_CONNECTION}#"),
                index_name=INDEX_GSI1,
            )
        )
        return [item for item in items if self._is_live(item)]

    def resolve_connections(self, user_ids: Iterable[str]) -> list[str]:
        """
        Live connection ids across users. Users without connections add nothing.
        """
        connection_ids: dict[str, None] = {}
        for user_id in dict.fromkeys(user_ids):
            for item in self.user_connections(user_id):
                connection_ids[item["connectionId"]] = None
        return list(connection_ids)

    def purge_expired(self) -> int:
        """
        Delete expired rows DynamoDB has not removed yet.

        Full-table scan: only for the operations CLI.

        Returns:
            Number of rows deleted
        """
        cutoff = epoch_seconds(self.clock())
        purged = 0
        token = None
        while True:
            page = self.client.scan(
                ScanParams(
                    pk_prefix=f"{PREFIX_WS_CONNECTION}#", sk_prefix=SK_DETAILS, start_token=token
                )
            )
            for item in page.items:
                if item.get(ATTR_TTL, 0) > cutoff:
                    continue
                try:
                    self.client.delete_item(
                        connection_key(item["connectionId"]), at_most={ATTR_TTL: cutoff}
                    )
                except ConflictError:
                    # Touched or removed since the scan
                    continue
                purged += 1
            if not page.next_token:
                break
            token = page.next_token
        logger.info(f"Purged {purged} expired connections")
        return purged

    def _expiry(self, now) -> int:
        return epoch_seconds(now + timedelta(seconds=self.ttl_seconds))

    def _is_live(self, item: dict[str, Any]) -> bool:
        return item.get(ATTR_TTL, 0) > epoch_seconds(self.clock())

"""
Fan-out of one payload to every live connection of a set of users.

Delivery is at-most-once and best-effort: all sends are issued concurrently
and settled as a batch, failed sends are not retried, and connections found
gone are unregistered after the batch completes.
"""

import json
from collections.abc import Iterable
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any

from ..config import DEFAULT_BROADCAST_WORKERS
from ..logging_config import get_logger
from ..store.exceptions import ConnectionGoneError, DeliveryError, StoreError
from .registry import ConnectionRegistry
from .transport import Transport

logger = get_logger(__name__)


@dataclass
class BroadcastResult:
    """Per-connection outcome of one broadcast."""

    attempted: int = 0
    delivered: list[str] = field(default_factory=list)
    gone: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)


def encode_payload(payload: Any) -> bytes:
    if isinstance(payload, bytes):
        return payload
    if isinstance(payload, str):
        return payload.encode()
    return json.dumps(payload, default=str).encode()


class Broadcaster:
    def __init__(
        self,
        registry: ConnectionRegistry,
        transport: Transport,
        max_workers: int = DEFAULT_BROADCAST_WORKERS,
    ):
        self.registry = registry
        self.transport = transport
        self.max_workers = max_workers

    def broadcast(self, user_ids: Iterable[str], payload: Any) -> BroadcastResult:
        """
        Deliver a payload to all live connections of the given users.

        Store failures while resolving recipients are logged and yield an empty
        result. Individual delivery failures are recorded, never raised.

        Args:
            user_ids: Recipients
            payload: bytes, str, or a JSON-serializable object

        Returns:
            BroadcastResult
        """
        try:
            connection_ids = self.registry.resolve_connections(user_ids)
        except StoreError as e:
            logger.warning(f"Could not resolve broadcast recipients: {e}")
            return BroadcastResult()
        result = BroadcastResult(attempted=len(connection_ids))
        if not connection_ids:
            logger.info("No live connections to broadcast to")
            return result

        data = encode_payload(payload)
        workers = max(1, min(self.max_workers, len(connection_ids)))
        with ThreadPoolExecutor(max_workers=workers) as pool:
            futures = {
                connection_id: pool.submit(self.transport.post, connection_id, data)
                for connection_id in connection_ids
            }

        for connection_id, future in futures.items():
            error = future.exception()
            if error is None:
                result.delivered.append(connection_id)
            elif isinstance(error, ConnectionGoneError):
                result.gone.append(connection_id)
            elif isinstance(error, DeliveryError):
                result.failed.append(connection_id)
                logger.warning(f"Delivery to {connection_id} failed: {error}")
            else:
                result.failed.append(connection_id)
                logger.error(f"Unexpected error delivering to {connection_id}: {error!r}")

        for connection_id in result.gone:
            self._reap(connection_id)

        logger.info(
            f"Broadcast to {result.attempted} connections: {len(result.delivered)} delivered, "
            f"{len(result.gone)} gone, {len(result.failed)} failed"
        )
        return result

    def _reap(self, connection_id: str) -> None:
        logger.info(f"Reaping stale connection {connection_id}")
        try:
            self.registry.unregister(connection_id)
        except StoreError as e:
            logger.warning(f"Could not unregister stale connection {connection_id}: {e}")

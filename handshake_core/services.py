"""
Process bootstrap: builds the store client, repositories, connection
registry and broadcaster from Settings and wires them together.
"""

from dataclasses import dataclass

from .config import Settings
from .logging_config import get_logger
from .realtime.broadcaster import Broadcaster
from .realtime.presence import PresenceNotifier
from .realtime.registry import ConnectionRegistry
from .realtime.transport import ApiGatewayTransport, Transport
from .store.core.client import DynamoDBClient
from .store.repositories.base import Clock
from .store.repositories.chat import ChatRepository
from .store.utils import utc_now

logger = get_logger(__name__)


@dataclass
class Services:
    client: DynamoDBClient
    chat: ChatRepository
    registry: ConnectionRegistry
    broadcaster: Broadcaster


def wire_services(
    client: DynamoDBClient,
    transport: Transport,
    ttl_seconds: int,
    max_workers: int,
    clock: Clock = utc_now,
) -> Services:
    """
    Wire services over an existing client and transport.

    Args:
        client: Store client
        transport: Connection transport
        ttl_seconds: Connection lifetime
        max_workers: Broadcast thread pool size
        clock: Source of the current time for repositories and the registry
    """
    chat = ChatRepository(client, clock=clock)
    registry = ConnectionRegistry(client, ttl_seconds=ttl_seconds, clock=clock)
    broadcaster = Broadcaster(registry, transport, max_workers=max_workers)
    registry.on_offline = PresenceNotifier(chat, broadcaster)
    return Services(client=client, chat=chat, registry=registry, broadcaster=broadcaster)


def build_services(settings: Settings) -> Services:
    """
    Build services from settings.

    Raises:
        ValueError: If no WebSocket endpoint is configured
    """
    if not settings.websocket_endpoint:
        raise ValueError("WEBSOCKET_ENDPOINT must be set")
    logger.debug(f"Building services for table '{settings.table_name}'")
    client = DynamoDBClient(
        settings.table_name, region=settings.region, endpoint_url=settings.dynamodb_endpoint
    )
    transport = ApiGatewayTransport(settings.websocket_endpoint, region=settings.region)
    return wire_services(
        client, transport, settings.connection_ttl_seconds, settings.broadcast_workers
    )

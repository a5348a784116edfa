"""
Delivery of payloads to live WebSocket connections through the API Gateway
management API.
"""

from typing import Protocol

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from ..logging_config import get_logger
from ..store.exceptions import ConnectionGoneError, TransientDeliveryError

logger = get_logger(__name__)

GONE_CODES = frozenset({"GoneException", "410"})


class Transport(Protocol):
    def post(self, connection_id: str, payload: bytes) -> None:
        """
        Deliver a payload to one connection.

        Raises:
            ConnectionGoneError: If the remote endpoint no longer exists
            TransientDeliveryError: For any other delivery failure
        """
        ...


class ApiGatewayTransport:
    """post_to_connection over boto3's apigatewaymanagementapi client."""

    def __init__(
        self, endpoint_url: str, region: str | None = None, profile: str | None = None
    ):
        """
        Initialize the transport.

        Args:
            endpoint_url: WebSocket API management endpoint
                (https://<api-id>.execute-api.<region>.amazonaws.com/<stage>)
            region: AWS region (optional, uses SDK default)
            profile: AWS profile (optional, uses SDK default)
        """
        session = boto3.Session(profile_name=profile, region_name=region)
        self.client = session.client("apigatewaymanagementapi", endpoint_url=endpoint_url)
        self.endpoint_url = endpoint_url

    def post(self, connection_id: str, payload: bytes) -> None:
        try:
            self.client.post_to_connection(ConnectionId=connection_id, Data=payload)
        except ClientError as e:
            code = e.response.get("Error", {}).get("Code", "")
            status = e.response.get("ResponseMetadata", {}).get("HTTPStatusCode")
            if code in GONE_CODES or status == 410:
                raise ConnectionGoneError(connection_id, f"Connection {connection_id} is gone") from e
            raise TransientDeliveryError(
                connection_id, f"Delivery to {connection_id} failed: {code or e}"
            ) from e
        except BotoCoreError as e:
            raise TransientDeliveryError(
                connection_id, f"Delivery to {connection_id} failed: {e}"
            ) from e

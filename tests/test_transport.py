"""Tests for the API Gateway transport's error classification."""

from unittest.mock import patch

import pytest
from botocore.exceptions import ClientError, EndpointConnectionError

from handshake_core.realtime.transport import ApiGatewayTransport
from handshake_core.store.exceptions import ConnectionGoneError, TransientDeliveryError


@pytest.fixture
def transport():
    with patch("handshake_core.realtime.transport.boto3.Session"):
        yield ApiGatewayTransport("https://abc.execute-api.us-east-1.amazonaws.com/prod")


def post_error(code: str, status: int) -> ClientError:
    return ClientError(
        {"Error": {"Code": code}, "ResponseMetadata": {"HTTPStatusCode": status}},
        "PostToConnection",
    )


class TestApiGatewayTransport:
    def test_post(self, transport):
        transport.post("c1", b"{}")
        transport.client.post_to_connection.assert_called_once_with(ConnectionId="c1", Data=b"{}")

    @pytest.mark.parametrize("code,status", [("GoneException", 410), ("", 410)])
    def test_gone(self, transport, code, status):
        transport.client.post_to_connection.side_effect = post_error(code, status)
        with pytest.raises(ConnectionGoneError) as exc_info:
            transport.post("c1", b"{}")
        assert exc_info.value.connection_id == "c1"

    @pytest.mark.parametrize("code,status", [("LimitExceededException", 429), ("InternalServerError", 500)])
    def test_other_client_errors_are_transient(self, transport, code, status):
        transport.client.post_to_connection.side_effect = post_error(code, status)
        with pytest.raises(TransientDeliveryError):
            transport.post("c1", b"{}")

    def test_network_errors_are_transient(self, transport):
        transport.client.post_to_connection.side_effect = EndpointConnectionError(endpoint_url="x")
        with pytest.raises(TransientDeliveryError):
            transport.post("c1", b"{}")

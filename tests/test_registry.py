"""Tests for the connection registry."""

from unittest.mock import MagicMock

from handshake_core.realtime.registry import ConnectionRegistry
from handshake_core.store.keys import connection_key
from handshake_core.store.utils import epoch_seconds
from tests.fakes import START


class TestConnectionRegistry:
    def test_register_sets_expiry(self, registry, store):
        row = registry.register("c1", "u1", userAgent="ios")
        assert row["PK"] == "WS_CONNECTION#c1"
        assert row["SK"] == "DETAILS"
        assert row["GSI1PK"] == "USER#u1"
        assert row["ttl"] == epoch_seconds(START) + 1800
        assert store.get_item(connection_key("c1"))["userAgent"] == "ios"

    def test_user_may_hold_many_connections(self, registry):
        registry.register("c1", "u1")
        registry.register("c2", "u1")
        registry.register("c3", "u2")
        assert registry.resolve_connections(["u1", "u2", "u1", "nobody"]) == ["c1", "c2", "c3"]

    def test_expired_connection_not_resolved(self, registry, clock):
        """Test that an expired row is treated as gone before DynamoDB removes it."""
        registry.register("c1", "u1")
        clock.advance(1801)
        assert registry.resolve_connections(["u1"]) == []
        assert registry.find("c1") is None

    def test_touch_extends_expiry(self, registry, clock):
        registry.register("c1", "u1")
        clock.advance(1500)
        assert registry.touch("c1") is not None
        clock.advance(1500)
        assert registry.resolve_connections(["u1"]) == ["c1"]

    def test_touch_unknown_connection(self, registry):
        assert registry.touch("ghost") is None

    def test_touch_does_not_revive_expired_connection(self, registry, clock, store):
        """Test that an expired row stays dead even while DynamoDB still holds it."""
        registry.register("c1", "u1")
        clock.advance(1801)
        assert registry.touch("c1") is None
        assert registry.resolve_connections(["u1"]) == []
        assert store.get_item(connection_key("c1"))["ttl"] == epoch_seconds(START) + 1800

    def test_unregister_last_connection_notifies(self, store, clock):
        on_offline = MagicMock()
        registry = ConnectionRegistry(store, ttl_seconds=60, clock=clock, on_offline=on_offline)
        registry.register("c1", "u1")
        registry.register("c2", "u1")

        assert registry.unregister("c1") is False
        on_offline.assert_not_called()
        assert registry.unregister("c2") is True
        on_offline.assert_called_once_with("u1")
        assert registry.unregister("c2") is False

    def test_offline_notification_failure_is_contained(self, store, clock):
        registry = ConnectionRegistry(
            store, clock=clock, on_offline=MagicMock(side_effect=RuntimeError("boom"))
        )
        registry.register("c1", "u1")
        assert registry.unregister("c1") is True
        assert store.get_item(connection_key("c1")) is None

    def test_purge_expired(self, registry, clock, store):
        registry.register("old", "u1")
        clock.advance(1000)
        registry.register("fresh", "u2")
        clock.advance(900)
        assert registry.purge_expired() == 1
        assert store.get_item(connection_key("old")) is None
        assert store.get_item(connection_key("fresh")) is not None

    def test_purge_skips_connection_touched_after_scan(self, registry, clock, store, monkeypatch):
        registry.register("c1", "u1")
        clock.advance(1801)
        scan = store.scan

        def scan_then_refresh(params):
            page = scan(params)
            key = connection_key("c1")
            store.items[(key["PK"], key["SK"])]["ttl"] = epoch_seconds(clock.now) + 1800
            return page

        monkeypatch.setattr(store, "scan", scan_then_refresh)
        assert registry.purge_expired() == 0
        assert registry.find("c1") is not None

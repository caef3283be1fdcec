"""Tests for keyguard/bindings/models.py — DeviceBinding serialization."""

from datetime import timezone

from keyguard.bindings.models import DeviceBinding


class TestDeviceBinding:

    def test_defaults(self, clock):
        b = DeviceBinding(device_id="10.0.0.1", type="ip", first_seen=clock.now, last_seen=clock.now)
        assert b.last_ip == ""
        assert b.banned is False
        assert b.ban_reason == ""
        assert b.banned_at is None

    def test_to_dict_unbanned(self, clock):
        b = DeviceBinding(device_id="10.0.0.1", type="ip", first_seen=clock.now, last_seen=clock.now)
        data = b.to_dict()
        assert data["first_seen"] == "2026-01-01T12:00:00+00:00"
        assert data["banned_at"] is None

    def test_from_dict_naive_timestamps_are_utc(self):
        b = DeviceBinding.from_dict({
            "device_id": "10.0.0.1",
            "first_seen": "2026-01-01T10:00:00",
            "last_seen": "2026-01-01T10:05:00",
        })
        assert b.first_seen.tzinfo == timezone.utc
        assert b.type == "ip"
        assert b.last_ip == ""

    def test_from_dict_ignores_extra_fields(self):
        b = DeviceBinding.from_dict({
            "api_key": "stored-alongside",
            "device_id": "phone-1",
            "type": "client_id",
            "first_seen": "2026-01-01T10:00:00+00:00",
            "last_seen": "2026-01-01T10:00:00+00:00",
            "banned": True,
            "ban_reason": "manual",
            "banned_at": "2026-01-01T10:01:00+00:00",
        })
        assert b.banned is True
        assert b.banned_at is not None

"""Tests for keyguard/security/identity.py — device identity extraction."""

from types import SimpleNamespace

from starlette.datastructures import Headers

from keyguard.security.identity import DeviceIdentity, extract_device_identity, resolve_client_ip


class TestExtractDeviceIdentity:

    def test_declared_header_wins(self):
        headers = Headers({"X-Device-ID": "laptop-1"})
        identity = extract_device_identity(headers, "10.0.0.1", "X-Device-ID")
        assert identity == DeviceIdentity("laptop-1", "client_id")

    def test_header_lookup_is_case_insensitive(self):
        headers = Headers({"x-device-id": "laptop-1"})
        identity = extract_device_identity(headers, "10.0.0.1", "X-Device-ID")
        assert identity.device_id == "laptop-1"

    def test_value_is_trimmed(self):
        headers = Headers({"X-Device-ID": "  laptop-1  "})
        identity = extract_device_identity(headers, "10.0.0.1", "X-Device-ID")
        assert identity.device_id == "laptop-1"

    def test_blank_header_falls_back_to_ip(self):
        headers = Headers({"X-Device-ID": "   "})
        identity = extract_device_identity(headers, "10.0.0.1", "X-Device-ID")
        assert identity == DeviceIdentity("10.0.0.1", "ip")

    def test_missing_header_falls_back_to_ip(self):
        identity = extract_device_identity(Headers({}), "10.0.0.1", "X-Device-ID")
        assert identity == DeviceIdentity("10.0.0.1", "ip")

    def test_custom_header_name(self):
        headers = Headers({"X-Device-ID": "ignored", "X-Client-Device": "phone-9"})
        identity = extract_device_identity(headers, "10.0.0.1", "X-Client-Device")
        assert identity.device_id == "phone-9"

    def test_deterministic(self):
        headers = Headers({"X-Device-ID": "laptop-1"})
        first = extract_device_identity(headers, "10.0.0.1", "X-Device-ID")
        second = extract_device_identity(headers, "10.0.0.1", "X-Device-ID")
        assert first == second


def fake_request(headers: dict, host: str | None = "192.168.1.10"):
    client = SimpleNamespace(host=host) if host else None
    return SimpleNamespace(headers=Headers(headers), client=client)


class TestResolveClientIp:

    def test_peer_address(self):
        assert resolve_client_ip(fake_request({})) == "192.168.1.10"

    def test_forwarded_for_ignored_by_default(self):
        request = fake_request({"X-Forwarded-For": "203.0.113.5"})
        assert resolve_client_ip(request) == "192.168.1.10"

    def test_forwarded_for_first_hop_when_trusted(self):
        request = fake_request({"X-Forwarded-For": "203.0.113.5, 10.0.0.1"})
        assert resolve_client_ip(request, trust_forwarded_for=True) == "203.0.113.5"

    def test_trusted_but_header_missing(self):
        assert resolve_client_ip(fake_request({}), trust_forwarded_for=True) == "192.168.1.10"

    def test_no_client(self):
        assert resolve_client_ip(fake_request({}, host=None)) == "unknown"

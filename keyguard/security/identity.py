"""Device identity extraction from request metadata."""

from collections.abc import Mapping
from dataclasses import dataclass

from fastapi import Request

from keyguard.bindings.models import DEVICE_TYPE_CLIENT_ID, DEVICE_TYPE_IP


@dataclass(frozen=True)
class DeviceIdentity:
    device_id: str
    type: str  # "ip" | "client_id"


def extract_device_identity(headers: Mapping[str, str], client_ip: str, header_name: str) -> DeviceIdentity:
    """Prefer a client-declared device ID header, fall back to the client IP.

    ``headers`` must do case-insensitive lookups (Starlette Headers do).
    """
    declared = (headers.get(header_name) or "").strip()
    if declared:
        return DeviceIdentity(device_id=declared, type=DEVICE_TYPE_CLIENT_ID)
    return DeviceIdentity(device_id=client_ip, type=DEVICE_TYPE_IP)


def resolve_client_ip(request: Request, trust_forwarded_for: bool = False) -> str:
    """Client IP of the request, optionally taken from X-Forwarded-For.

    Only enable trust_forwarded_for behind a proxy that overwrites the header.
    """
    if trust_forwarded_for:
        forwarded = request.headers.get("x-forwarded-for", "")
        first_hop = forwarded.split(",")[0].strip()
        if first_hop:
            return first_hop
    return request.client.host if request.client else "unknown"

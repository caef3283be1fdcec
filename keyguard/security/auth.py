"""API key authentication for gateway clients and the management API.

Validates the X-API-Key header (or an Authorization bearer token) against
the configured gateway keys. The validated key is handed to the device
binding guard as an explicit argument.
"""

import hmac

from fastapi import HTTPException, Security
from fastapi.security import APIKeyHeader, HTTPAuthorizationCredentials, HTTPBearer

from keyguard.config.settings import get_settings

api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)
bearer_scheme = HTTPBearer(auto_error=False)
management_key_header = APIKeyHeader(name="X-Management-Key", auto_error=False)


async def verify_api_key(
    api_key: str | None = Security(api_key_header),
    bearer: HTTPAuthorizationCredentials | None = Security(bearer_scheme),
) -> str:
    """FastAPI dependency that validates the client's API key and returns it."""
    if api_key is None and bearer is not None:
        api_key = bearer.credentials
    if not api_key:
        raise HTTPException(status_code=401, detail="Missing API key")

    settings = get_settings()
    match = False
    for valid_key in settings.api_keys_list:
        # Always iterate all keys to maintain constant-time behavior
        if hmac.compare_digest(api_key.encode(), valid_key.encode()):
            match = True

    if not match:
        raise HTTPException(status_code=403, detail="Invalid API key")
    return api_key


async def verify_management_key(key: str | None = Security(management_key_header)) -> None:
    """FastAPI dependency guarding the device binding admin routes."""
    settings = get_settings()
    if not settings.management_key:
        raise HTTPException(status_code=403, detail="Management API disabled")
    if key is None:
        raise HTTPException(status_code=401, detail="Missing management key")
    if not hmac.compare_digest(key.encode(), settings.management_key.encode()):
        raise HTTPException(status_code=403, detail="Invalid management key")

"""Tests for keyguard/security/auth.py — API key and management key checks."""

import pytest
from fastapi import HTTPException
from fastapi.security import HTTPAuthorizationCredentials

from keyguard.security.auth import verify_api_key, verify_management_key


class TestVerifyApiKey:

    async def test_missing_key_returns_401(self):
        with pytest.raises(HTTPException) as exc_info:
            await verify_api_key(api_key=None, bearer=None)
        assert exc_info.value.status_code == 401

    async def test_invalid_key_returns_403(self, override_settings):
        override_settings(GATEWAY_API_KEYS="valid-key")
        with pytest.raises(HTTPException) as exc_info:
            await verify_api_key(api_key="wrong-key", bearer=None)
        assert exc_info.value.status_code == 403

    async def test_valid_key_returned(self, override_settings):
        override_settings(GATEWAY_API_KEYS="key-a,key-b")
        assert await verify_api_key(api_key="key-b", bearer=None) == "key-b"

    async def test_bearer_token_accepted(self, override_settings):
        override_settings(GATEWAY_API_KEYS="key-a")
        creds = HTTPAuthorizationCredentials(scheme="Bearer", credentials="key-a")
        assert await verify_api_key(api_key=None, bearer=creds) == "key-a"

    async def test_header_takes_precedence_over_bearer(self, override_settings):
        override_settings(GATEWAY_API_KEYS="key-a")
        creds = HTTPAuthorizationCredentials(scheme="Bearer", credentials="key-a")
        with pytest.raises(HTTPException) as exc_info:
            await verify_api_key(api_key="wrong", bearer=creds)
        assert exc_info.value.status_code == 403


class TestVerifyManagementKey:

    async def test_disabled_when_unset(self, override_settings):
        override_settings(MANAGEMENT_KEY="")
        with pytest.raises(HTTPException) as exc_info:
            await verify_management_key(key="anything")
        assert exc_info.value.status_code == 403

    async def test_missing_key_returns_401(self, override_settings):
        override_settings(MANAGEMENT_KEY="mgmt-secret")
        with pytest.raises(HTTPException) as exc_info:
            await verify_management_key(key=None)
        assert exc_info.value.status_code == 401

    async def test_wrong_key_returns_403(self, override_settings):
        override_settings(MANAGEMENT_KEY="mgmt-secret")
        with pytest.raises(HTTPException) as exc_info:
            await verify_management_key(key="nope")
        assert exc_info.value.status_code == 403

    async def test_valid_key(self, override_settings):
        override_settings(MANAGEMENT_KEY="mgmt-secret")
        assert await verify_management_key(key="mgmt-secret") is None

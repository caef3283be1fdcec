"""Device binding enforcement.

Binds each API key to the device (declared ID or client IP) that first
used it and bans keys that show up from two different IPs within a short
window:

- first request for a key: register the device and allow
- banned key: reject until an admin unbans it
- different IP than the last accepted request, within the concurrency
  threshold: ban the key and reject
- anything else: record last_seen / last_ip and allow

evaluate() is the pure decision; DeviceBindingGuard applies it against a
BindingStore. Store failures on this path are logged and the request is
allowed (fail-open).
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum

from fastapi import Depends, Request

from keyguard.bindings.models import DeviceBinding, utcnow
from keyguard.bindings.store import BindingStore, Clock
from keyguard.config.settings import Settings, get_settings
from keyguard.errors import DeviceBindingRejected, StoreError
from keyguard.logging.audit import get_audit_logger
from keyguard.security.auth import verify_api_key
from keyguard.security.identity import DeviceIdentity, extract_device_identity, resolve_client_ip
from keyguard.security.masking import mask_key, redact_headers, redact_secret

DEFAULT_HEADER_NAME = "X-Device-ID"
DEFAULT_CONCURRENT_THRESHOLD = timedelta(seconds=60)

BANNED_MESSAGE = "This API key has been banned: {reason}"
CONCURRENT_MESSAGE = (
    "Suspicious concurrent usage detected. API key has been banned. Contact admin to unban."
)


@dataclass(frozen=True)
class DeviceBindingConfig:
    enabled: bool = False
    header_name: str = DEFAULT_HEADER_NAME
    concurrent_threshold: timedelta = DEFAULT_CONCURRENT_THRESHOLD
    max_devices: int = 1  # single-device tracking only; higher values are ignored

    def __post_init__(self):
        if self.max_devices <= 0:
            object.__setattr__(self, "max_devices", 1)
        if not self.header_name:
            object.__setattr__(self, "header_name", DEFAULT_HEADER_NAME)
        if self.concurrent_threshold <= timedelta(0):
            object.__setattr__(self, "concurrent_threshold", DEFAULT_CONCURRENT_THRESHOLD)

    @classmethod
    def from_settings(cls, settings: Settings) -> "DeviceBindingConfig":
        return cls(
            enabled=settings.device_binding_enabled,
            header_name=settings.device_binding_header,
            concurrent_threshold=timedelta(seconds=settings.device_binding_concurrent_threshold),
            max_devices=settings.device_binding_max_devices,
        )


class Outcome(str, Enum):
    ALLOWED = "allowed"
    REGISTERED = "registered"
    REJECTED_BANNED = "rejected_banned"
    REJECTED_CONCURRENT = "rejected_concurrent"


@dataclass(frozen=True)
class Decision:
    outcome: Outcome
    reason: str = ""
    elapsed: timedelta | None = None

    @property
    def allowed(self) -> bool:
        return self.outcome in (Outcome.ALLOWED, Outcome.REGISTERED)

    @property
    def error_code(self) -> str:
        if self.outcome == Outcome.REJECTED_BANNED:
            return "api_key_banned"
        if self.outcome == Outcome.REJECTED_CONCURRENT:
            return "concurrent_usage_detected"
        return ""

    @property
    def message(self) -> str:
        if self.outcome == Outcome.REJECTED_BANNED:
            return BANNED_MESSAGE.format(reason=self.reason)
        if self.outcome == Outcome.REJECTED_CONCURRENT:
            return CONCURRENT_MESSAGE
        return ""


def format_elapsed(elapsed: timedelta) -> str:
    seconds = elapsed.total_seconds()
    if abs(seconds) < 1:
        return f"{seconds * 1000:.0f}ms"
    return f"{seconds:.1f}s"


def evaluate(
    binding: DeviceBinding | None,
    current_ip: str,
    now: datetime,
    config: DeviceBindingConfig,
) -> Decision:
    """Decide what to do with a request given the key's current binding."""
    if binding is None:
        return Decision(Outcome.REGISTERED)

    if binding.banned:
        return Decision(Outcome.REJECTED_BANNED, reason=binding.ban_reason)

    elapsed = now - binding.last_seen
    if binding.last_ip and binding.last_ip != current_ip and elapsed < config.concurrent_threshold:
        reason = f"Concurrent usage detected: different IP within {format_elapsed(elapsed)}"
        return Decision(Outcome.REJECTED_CONCURRENT, reason=reason, elapsed=elapsed)

    return Decision(Outcome.ALLOWED, elapsed=elapsed)


class DeviceBindingGuard:
    """Applies evaluate() to live requests and records the result in the store."""

    def __init__(self, store: BindingStore, config: DeviceBindingConfig, clock: Clock = utcnow):
        self.store = store
        self.config = config
        self._clock = clock

    async def check(self, api_key: str | None, identity: DeviceIdentity, current_ip: str) -> Decision:
        if not self.config.enabled:
            return Decision(Outcome.ALLOWED)

        # No key: upstream auth is responsible for rejecting
        if not api_key:
            return Decision(Outcome.ALLOWED)

        logger = get_audit_logger()
        masked = mask_key(api_key)

        if not identity.device_id:
            logger.warning(
                "Device binding skipped: no device identity",
                extra={"audit_data": {"api_key": masked, "client_ip": current_ip}},
            )
            return Decision(Outcome.ALLOWED)

        try:
            binding = await self.store.get(api_key)
        except StoreError as e:
            logger.error(
                "Device binding lookup failed, allowing request",
                extra={"audit_data": {"api_key": masked, "error": str(e)}},
            )
            return Decision(Outcome.ALLOWED)

        decision = evaluate(binding, current_ip, self._clock(), self.config)

        if decision.outcome == Outcome.REGISTERED:
            await self._register(api_key, identity, current_ip)
        elif decision.outcome == Outcome.REJECTED_BANNED:
            logger.warning(
                "Rejected banned API key",
                extra={"audit_data": {
                    "api_key": masked,
                    "client_ip": current_ip,
                    "ban_reason": decision.reason,
                }},
            )
        elif decision.outcome == Outcome.REJECTED_CONCURRENT:
            await self._ban(api_key, binding, current_ip, decision)
        else:
            try:
                await self.store.update_last_seen(api_key, current_ip)
            except StoreError as e:
                logger.warning(
                    "Failed to update last_seen",
                    extra={"audit_data": {"api_key": masked, "error": str(e)}},
                )

        return decision

    async def _register(self, api_key: str, identity: DeviceIdentity, current_ip: str) -> None:
        logger = get_audit_logger()
        audit = {
            "api_key": mask_key(api_key),
            "device_id": redact_secret(identity.device_id, [api_key]),
            "device_type": identity.type,
            "client_ip": current_ip,
        }
        try:
            await self.store.save(api_key, identity.device_id, identity.type, ip=current_ip)
        except StoreError as e:
            # Registration failure must not block the request
            logger.error(
                "Failed to save device binding",
                extra={"audit_data": {**audit, "error": str(e)}},
            )
            return
        logger.info("New device registered", extra={"audit_data": audit})

    async def _ban(self, api_key: str, binding: DeviceBinding, current_ip: str, decision: Decision) -> None:
        logger = get_audit_logger()
        audit = {
            "api_key": mask_key(api_key),
            "reason": decision.reason,
            "last_ip": binding.last_ip,
            "client_ip": current_ip,
            "elapsed_seconds": decision.elapsed.total_seconds() if decision.elapsed else None,
        }
        logger.warning("API key banned for concurrent usage", extra={"audit_data": audit})
        try:
            await self.store.ban(api_key, decision.reason)
        except StoreError as e:
            # The request is still rejected; the key stays unbanned for later requests
            logger.error(
                "Failed to persist ban",
                extra={"audit_data": {**audit, "error": str(e)}},
            )


def build_guard(store: BindingStore, settings: Settings | None = None, clock: Clock = utcnow) -> DeviceBindingGuard:
    settings = settings or get_settings()
    return DeviceBindingGuard(store, DeviceBindingConfig.from_settings(settings), clock=clock)


async def enforce_device_binding(request: Request, api_key: str = Depends(verify_api_key)) -> str:
    """FastAPI dependency: run the device binding guard for an authenticated key.

    Returns the API key so routes can depend on this instead of verify_api_key.
    """
    guard: DeviceBindingGuard = request.app.state.device_guard
    settings = get_settings()

    client_ip = resolve_client_ip(request, settings.trust_forwarded_for)
    identity = extract_device_identity(request.headers, client_ip, guard.config.header_name)

    logger = get_audit_logger()
    if guard.config.enabled:
        logger.debug(
            "Device binding check",
            extra={"audit_data": {
                "api_key": mask_key(api_key),
                "device_id": redact_secret(identity.device_id, [api_key]),
                "device_type": identity.type,
                "client_ip": client_ip,
                "method": request.method,
                "path": request.url.path,
                "headers": redact_headers(request.headers.items(), secrets=[api_key]),
            }},
        )

    decision = await guard.check(api_key, identity, client_ip)
    if not decision.allowed:
        raise DeviceBindingRejected(decision.message, code=decision.error_code)
    return api_key

"""Administrative operations over the binding store.

Admins can inspect, reset and unban bindings but never create them;
bindings only come from the device binding guard. Store failures here
are surfaced to the caller as StoreFailureError.
"""

from keyguard.bindings.models import DeviceBinding
from keyguard.bindings.store import BindingStore
from keyguard.errors import (
    MissingParameterError,
    NotBannedError,
    NotFoundError,
    StoreError,
    StoreFailureError,
)
from keyguard.logging.audit import get_audit_logger
from keyguard.security.masking import mask_key

NOT_FOUND_MESSAGE = "No device binding found for this API key"


class BindingAdmin:

    def __init__(self, store: BindingStore):
        self.store = store

    async def list(self, api_key: str | None = None) -> dict[str, DeviceBinding]:
        """All bindings, or just the one for api_key (NotFoundError if absent)."""
        api_key = (api_key or "").strip()
        try:
            if not api_key:
                return await self.store.get_all()
            binding = await self.store.get(api_key)
        except StoreError as e:
            self._log_failure("Failed to read device bindings", api_key, e)
            raise StoreFailureError("Failed to read device bindings") from e

        if binding is None:
            raise NotFoundError(NOT_FOUND_MESSAGE)
        return {api_key: binding}

    async def reset(self, api_key: str | None = None) -> None:
        """Delete one binding, or every binding when no key is given."""
        logger = get_audit_logger()
        api_key = (api_key or "").strip()

        if not api_key:
            try:
                await self.store.clear()
            except StoreError as e:
                self._log_failure("Failed to clear device bindings", None, e)
                raise StoreFailureError("Failed to clear device bindings") from e
            logger.info("All device bindings cleared by admin")
            return

        try:
            deleted = await self.store.delete(api_key)
        except StoreError as e:
            self._log_failure("Failed to delete device binding", api_key, e)
            raise StoreFailureError("Failed to delete device binding") from e
        if not deleted:
            raise NotFoundError(NOT_FOUND_MESSAGE)

        logger.info(
            "Device binding reset by admin",
            extra={"audit_data": {"api_key": mask_key(api_key)}},
        )

    async def unban(self, api_key: str | None) -> None:
        api_key = (api_key or "").strip()
        if not api_key:
            raise MissingParameterError("api-key parameter is required")

        try:
            binding = await self.store.get(api_key)
        except StoreError as e:
            self._log_failure("Failed to read device binding", api_key, e)
            raise StoreFailureError("Failed to unban API key") from e

        if binding is None:
            raise NotFoundError(NOT_FOUND_MESSAGE)
        if not binding.banned:
            raise NotBannedError("This API key is not banned")

        try:
            await self.store.unban(api_key)
        except StoreError as e:
            self._log_failure("Failed to unban API key", api_key, e)
            raise StoreFailureError("Failed to unban API key") from e

        get_audit_logger().info(
            "API key unbanned by admin",
            extra={"audit_data": {
                "api_key": mask_key(api_key),
                "previous_ban_reason": binding.ban_reason,
            }},
        )

    @staticmethod
    def _log_failure(message: str, api_key: str | None, error: Exception) -> None:
        audit = {"error": str(error)}
        if api_key:
            audit["api_key"] = mask_key(api_key)
        get_audit_logger().error(message, extra={"audit_data": audit})

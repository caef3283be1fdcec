"""Management routes for device bindings.

Mounted behind management-key authentication. API keys in responses are
always masked, and so is a device ID that equals its key.
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Query, Request

from keyguard.admin.service import BindingAdmin
from keyguard.bindings.models import DeviceBinding
from keyguard.security.auth import verify_management_key
from keyguard.security.masking import mask_key, redact_secret

router = APIRouter(
    prefix="/device-bindings",
    tags=["Device bindings"],
    dependencies=[Depends(verify_management_key)],
)

ApiKeyParam = Annotated[str | None, Query(alias="api-key")]


def get_binding_admin(request: Request) -> BindingAdmin:
    return BindingAdmin(request.app.state.binding_store)


def _binding_view(api_key: str, binding: DeviceBinding) -> dict:
    # A declared device ID may be the caller's own key
    view = binding.to_dict()
    view["device_id"] = redact_secret(binding.device_id, [api_key])
    return view


@router.get("")
async def list_bindings(
    admin: Annotated[BindingAdmin, Depends(get_binding_admin)],
    api_key: ApiKeyParam = None,
) -> dict:
    """Return all device bindings, or the binding for ?api-key=."""
    bindings = await admin.list(api_key)

    if api_key and api_key.strip():
        key, binding = next(iter(bindings.items()))
        return {"api_key": mask_key(key), "binding": _binding_view(key, binding)}

    return {
        "bindings": [
            {"api_key": mask_key(key), **_binding_view(key, binding)}
            for key, binding in bindings.items()
        ],
    }


@router.delete("")
async def reset_bindings(
    admin: Annotated[BindingAdmin, Depends(get_binding_admin)],
    api_key: ApiKeyParam = None,
) -> dict:
    """Reset the binding for ?api-key=, or clear every binding."""
    await admin.reset(api_key)

    if api_key and api_key.strip():
        return {
            "message": "Device binding reset successfully",
            "api_key": mask_key(api_key.strip()),
        }
    return {"message": "All device bindings cleared successfully"}


@router.post("/unban")
async def unban_key(
    admin: Annotated[BindingAdmin, Depends(get_binding_admin)],
    api_key: ApiKeyParam = None,
) -> dict:
    """Lift a ban on ?api-key=. The key must exist and be banned."""
    await admin.unban(api_key)
    return {
        "message": "API key unbanned successfully",
        "api_key": mask_key(api_key.strip()),
    }

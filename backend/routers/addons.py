# routers/addons.py - Tenant add-on lifecycle
from typing import Optional, Dict, Any

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from addon_lifecycle import (
    AddonLifecycleService, LifecycleErrorCode, LifecycleResult, get_lifecycle_service,
)
from auth import CurrentUser, UserRole, require_tenant_access

router = APIRouter(prefix="/api/v1/tenants/{tenant_id}/addons", tags=["Add-ons"])

tenant_member = require_tenant_access(UserRole.USER)
tenant_admin = require_tenant_access(UserRole.ORG_ADMIN)


# --- Schemas ---

class InstallRequest(BaseModel):
    addon_id: str = Field(..., min_length=1, max_length=100)
    pricing_id: Optional[str] = Field(default=None, max_length=100)
    config: Dict[str, Any] = Field(default_factory=dict)


class DependencyCheckRequest(BaseModel):
    addon_id: str = Field(..., min_length=1, max_length=100)
    version_id: Optional[str] = Field(default=None, max_length=100)


class UpgradeRequest(BaseModel):
    target_version_id: str = Field(..., min_length=1, max_length=100)


class ConfigUpdate(BaseModel):
    config: Dict[str, Any]


# --- Result mapping ---

STATUS_BY_CODE = {
    LifecycleErrorCode.ADDON_NOT_FOUND: 404,
    LifecycleErrorCode.NOT_INSTALLED: 404,
    LifecycleErrorCode.VERSION_NOT_FOUND: 404,
    LifecycleErrorCode.ALREADY_INSTALLED: 409,
    LifecycleErrorCode.ALREADY_DISABLED: 409,
    LifecycleErrorCode.NOT_DISABLED: 409,
    LifecycleErrorCode.INVALID_STATE: 409,
    LifecycleErrorCode.MISSING_DEPENDENCIES: 422,
    LifecycleErrorCode.HAS_DEPENDENTS: 422,
    LifecycleErrorCode.NO_VERSION: 400,
    LifecycleErrorCode.INVALID_PRICING: 400,
}


def _unwrap(result: LifecycleResult) -> Dict[str, Any]:
    if result.success:
        return result.data
    raise HTTPException(
        status_code=STATUS_BY_CODE.get(result.code, 500),
        detail={
            "error": result.error,
            "code": result.code.value,
            "details": result.data or None,
            "rollback_performed": result.rollback_performed,
        },
    )


# ============================================================
# INSTALLED ADD-ONS
# ============================================================

@router.get("")
async def list_installed(
    tenant_id: str,
    service: AddonLifecycleService = Depends(get_lifecycle_service),
    user: CurrentUser = Depends(tenant_member),
):
    return {"installed_addons": await service.list_installed(tenant_id)}


@router.post("", status_code=201)
async def install_addon(
    tenant_id: str,
    data: InstallRequest,
    service: AddonLifecycleService = Depends(get_lifecycle_service),
    user: CurrentUser = Depends(tenant_admin),
):
    result = await service.install(tenant_id, data.addon_id, data.pricing_id, data.config, user.id)
    return _unwrap(result)


@router.post("/check-dependencies")
async def check_dependencies(
    tenant_id: str,
    data: DependencyCheckRequest,
    service: AddonLifecycleService = Depends(get_lifecycle_service),
    user: CurrentUser = Depends(tenant_member),
):
    check = await service.check_dependencies(tenant_id, data.addon_id, data.version_id)
    return check.to_dict()


@router.get("/history")
async def get_history(
    tenant_id: str,
    addon_id: Optional[str] = None,
    service: AddonLifecycleService = Depends(get_lifecycle_service),
    user: CurrentUser = Depends(tenant_member),
):
    return {"history": await service.get_history(tenant_id, addon_id)}


@router.get("/{addon_id}/dependents")
async def get_dependents(
    tenant_id: str,
    addon_id: str,
    service: AddonLifecycleService = Depends(get_lifecycle_service),
    user: CurrentUser = Depends(tenant_member),
):
    check = await service.check_dependents(tenant_id, addon_id)
    return check.to_dict()


# ============================================================
# LIFECYCLE TRANSITIONS
# ============================================================

@router.patch("/{addon_id}")
async def update_config(
    tenant_id: str,
    addon_id: str,
    data: ConfigUpdate,
    service: AddonLifecycleService = Depends(get_lifecycle_service),
    user: CurrentUser = Depends(tenant_admin),
):
    return _unwrap(await service.configure(tenant_id, addon_id, data.config, user.id))


@router.post("/{addon_id}/upgrade")
async def upgrade_addon(
    tenant_id: str,
    addon_id: str,
    data: UpgradeRequest,
    service: AddonLifecycleService = Depends(get_lifecycle_service),
    user: CurrentUser = Depends(tenant_admin),
):
    result = await service.upgrade(tenant_id, addon_id, data.target_version_id, user.id)
    return {"success": True, **_unwrap(result)}


@router.post("/{addon_id}/disable")
async def disable_addon(
    tenant_id: str,
    addon_id: str,
    service: AddonLifecycleService = Depends(get_lifecycle_service),
    user: CurrentUser = Depends(tenant_admin),
):
    return {"success": True, **_unwrap(await service.disable(tenant_id, addon_id, user.id))}


@router.post("/{addon_id}/enable")
async def enable_addon(
    tenant_id: str,
    addon_id: str,
    service: AddonLifecycleService = Depends(get_lifecycle_service),
    user: CurrentUser = Depends(tenant_admin),
):
    return {"success": True, **_unwrap(await service.enable(tenant_id, addon_id, user.id))}


@router.delete("/{addon_id}")
async def uninstall_addon(
    tenant_id: str,
    addon_id: str,
    service: AddonLifecycleService = Depends(get_lifecycle_service),
    user: CurrentUser = Depends(tenant_admin),
):
    return {"success": True, **_unwrap(await service.uninstall(tenant_id, addon_id, user.id))}

"""
Gatekeeper API - Routes

Authentification (/auth), autorisation (/rbac) et administration (/admin).
"""

from typing import Any, Dict, List

from fastapi import APIRouter, Depends, Request

from .dependencies import client_ip, get_gatekeeper, get_principal, require_permission
from .schemas import (
    AssignRoleRequest,
    CheckPermissionRequest,
    CustomRoleRequest,
    CustomRoleUpdateRequest,
    EnableMFARequest,
    LoginRequest,
    OrganizationCatalogRequest,
    RefreshRequest,
    SwitchRoleRequest,
    UnlockRequest,
    VerifyMFARequest,
    assignment_view,
    custom_role_view,
    decision_view,
    effective_view,
    mfa_setup_view,
    session_view,
    tokens_view,
    user_roles_view,
    user_view,
)
from ..auth.interfaces import TerminationReason
from ..container import Gatekeeper
from ..core.errors import AuthenticationError, ErrorCode, PermissionDeniedError
from ..rbac.catalog import Action, Resource
from ..rbac.interfaces import Principal


auth_router = APIRouter(prefix="/auth", tags=["auth"])
rbac_router = APIRouter(prefix="/rbac", tags=["rbac"])
admin_router = APIRouter(prefix="/admin", tags=["admin"])


# ══════════════════════════════════════════════════════════════════════════════
# AUTH
# ══════════════════════════════════════════════════════════════════════════════


@auth_router.post("/login")
async def login(body: LoginRequest, request: Request, gatekeeper: Gatekeeper = Depends(get_gatekeeper)):
    result = await gatekeeper.auth.authenticate(
        body.email,
        body.password,
        mfa_code=body.mfa_code,
        ip_address=client_ip(request),
        user_agent=request.headers.get("user-agent"),
    )
    roles = await gatekeeper.engine.usable_professions(result.user.id)
    user = user_view(result.user, roles)
    user["activeRole"] = result.session.active_role.value
    user["organizationId"] = result.session.organization_id
    return {"user": user, "tokens": tokens_view(result.tokens)}


@auth_router.post("/refresh")
async def refresh(body: RefreshRequest, gatekeeper: Gatekeeper = Depends(get_gatekeeper)):
    _, tokens = await gatekeeper.sessions.refresh(body.refresh_token)
    return {"tokens": tokens_view(tokens)}


@auth_router.post("/logout")
async def logout(principal: Principal = Depends(get_principal), gatekeeper: Gatekeeper = Depends(get_gatekeeper)):
    await gatekeeper.sessions.logout(principal.session_id)
    return {"success": True}


@auth_router.post("/logout-all")
async def logout_all(principal: Principal = Depends(get_principal), gatekeeper: Gatekeeper = Depends(get_gatekeeper)):
    terminated = await gatekeeper.sessions.terminate_all_user_sessions(principal.user_id)
    return {"success": True, "terminated": terminated}


@auth_router.post("/switch-role")
async def switch_role(
    body: SwitchRoleRequest,
    principal: Principal = Depends(get_principal),
    gatekeeper: Gatekeeper = Depends(get_gatekeeper),
):
    session = await gatekeeper.sessions.switch_role(principal.session_id, body.new_role)
    return {"activeRole": session.active_role.value, "organizationId": session.organization_id}


@auth_router.post("/mfa/enable")
async def enable_mfa(
    body: EnableMFARequest,
    principal: Principal = Depends(get_principal),
    gatekeeper: Gatekeeper = Depends(get_gatekeeper),
):
    setup = await gatekeeper.auth.enable_mfa(principal.user_id, body.method)
    return mfa_setup_view(setup)


@auth_router.post("/mfa/verify")
async def verify_mfa(
    body: VerifyMFARequest,
    principal: Principal = Depends(get_principal),
    gatekeeper: Gatekeeper = Depends(get_gatekeeper),
):
    await gatekeeper.auth.verify_mfa_setup(principal.user_id, body.token)
    return {"mfaEnabled": True}


@auth_router.post("/mfa/disable")
async def disable_mfa(principal: Principal = Depends(get_principal), gatekeeper: Gatekeeper = Depends(get_gatekeeper)):
    await gatekeeper.auth.disable_mfa(principal.session_id)
    return {"mfaEnabled": False}


@auth_router.get("/me")
async def me(principal: Principal = Depends(get_principal), gatekeeper: Gatekeeper = Depends(get_gatekeeper)):
    user = await gatekeeper.auth.get_user(principal.user_id)
    if user is None:
        raise AuthenticationError(ErrorCode.UNAUTHENTICATED)
    view = user_view(user, await gatekeeper.engine.usable_professions(principal.user_id))
    view["activeRole"] = principal.active_role.value
    view["organizationId"] = principal.organization_id
    view["sessionId"] = principal.session_id
    return view


@auth_router.get("/sessions")
async def list_sessions(
    principal: Principal = Depends(get_principal), gatekeeper: Gatekeeper = Depends(get_gatekeeper)
) -> Dict[str, List[Any]]:
    sessions = await gatekeeper.sessions.get_user_sessions(principal.user_id)
    return {"sessions": [session_view(s, principal.session_id) for s in sessions]}


@auth_router.delete("/sessions/{session_id}")
async def terminate_session(
    session_id: str,
    principal: Principal = Depends(get_principal),
    gatekeeper: Gatekeeper = Depends(get_gatekeeper),
):
    session = await gatekeeper.sessions.get_session(session_id)
    if session is None or session.user_id != principal.user_id:
        raise PermissionDeniedError(Resource.USER.value, Action.UPDATE.value)
    terminated = await gatekeeper.sessions.terminate_session(session_id, TerminationReason.LOGOUT, principal.user_id)
    return {"success": terminated}


# ══════════════════════════════════════════════════════════════════════════════
# RBAC
# ══════════════════════════════════════════════════════════════════════════════


@rbac_router.post("/check-permission")
async def check_permission(
    body: CheckPermissionRequest,
    principal: Principal = Depends(get_principal),
    gatekeeper: Gatekeeper = Depends(get_gatekeeper),
):
    decision = await gatekeeper.engine.check_permission(principal, body.resource, body.action, body.context)
    return decision_view(decision)


@rbac_router.get("/user/permissions")
async def user_permissions(
    principal: Principal = Depends(get_principal), gatekeeper: Gatekeeper = Depends(get_gatekeeper)
):
    return effective_view(await gatekeeper.engine.effective_permissions(principal))


@rbac_router.get("/organizations/{organization_id}/roles")
async def list_custom_roles(
    organization_id: str,
    include_disabled: bool = False,
    principal: Principal = Depends(get_principal),
    gatekeeper: Gatekeeper = Depends(get_gatekeeper),
):
    roles = await gatekeeper.roles.list_custom_roles(principal, organization_id, include_disabled)
    return {"roles": [custom_role_view(r) for r in roles]}


@rbac_router.post("/organizations/{organization_id}/roles", status_code=201)
async def create_custom_role(
    organization_id: str,
    body: CustomRoleRequest,
    principal: Principal = Depends(get_principal),
    gatekeeper: Gatekeeper = Depends(get_gatekeeper),
):
    role = await gatekeeper.roles.create_custom_role(
        principal, organization_id, body.name, body.permissions, body.denied_permissions, body.description
    )
    return custom_role_view(role)


@rbac_router.put("/organizations/{organization_id}/catalog")
async def set_organization_catalog(
    organization_id: str,
    body: OrganizationCatalogRequest,
    principal: Principal = Depends(get_principal),
    gatekeeper: Gatekeeper = Depends(get_gatekeeper),
):
    catalog = await gatekeeper.roles.set_organization_catalog(principal, organization_id, body.permissions)
    return {"organizationId": organization_id, "permissions": sorted(p.key for p in catalog)}


@rbac_router.patch("/roles/{role_id}")
async def update_custom_role(
    role_id: str,
    body: CustomRoleUpdateRequest,
    principal: Principal = Depends(get_principal),
    gatekeeper: Gatekeeper = Depends(get_gatekeeper),
):
    role = await gatekeeper.roles.update_custom_role(
        principal, role_id, body.name, body.permissions, body.denied_permissions, body.description
    )
    return custom_role_view(role)


@rbac_router.delete("/roles/{role_id}")
async def disable_custom_role(
    role_id: str,
    principal: Principal = Depends(get_principal),
    gatekeeper: Gatekeeper = Depends(get_gatekeeper),
):
    return custom_role_view(await gatekeeper.roles.disable_custom_role(principal, role_id))


@rbac_router.post("/assignments", status_code=201)
async def assign_role(
    body: AssignRoleRequest,
    principal: Principal = Depends(get_principal),
    gatekeeper: Gatekeeper = Depends(get_gatekeeper),
):
    assignment = await gatekeeper.roles.assign_role(
        principal, body.user_id, body.role_id, body.organization_id, body.expires_at
    )
    return assignment_view(assignment)


@rbac_router.delete("/assignments/{assignment_id}")
async def revoke_assignment(
    assignment_id: str,
    principal: Principal = Depends(get_principal),
    gatekeeper: Gatekeeper = Depends(get_gatekeeper),
):
    return {"revoked": await gatekeeper.roles.revoke_assignment(principal, assignment_id)}


@rbac_router.get("/users/{user_id}/roles")
async def user_roles(
    user_id: str,
    include_inactive: bool = False,
    principal: Principal = Depends(get_principal),
    gatekeeper: Gatekeeper = Depends(get_gatekeeper),
):
    return user_roles_view(await gatekeeper.roles.get_user_roles(principal, user_id, include_inactive))


# ══════════════════════════════════════════════════════════════════════════════
# ADMIN
# ══════════════════════════════════════════════════════════════════════════════


@admin_router.get("/permission-cache/stats")
async def permission_cache_stats(
    principal: Principal = Depends(require_permission(Resource.SYSTEM, Action.MONITOR)),
    gatekeeper: Gatekeeper = Depends(get_gatekeeper),
):
    return gatekeeper.engine.stats()


@admin_router.post("/permission-cache/cleanup")
async def permission_cache_cleanup(
    principal: Principal = Depends(require_permission(Resource.SYSTEM, Action.CONFIGURE)),
    gatekeeper: Gatekeeper = Depends(get_gatekeeper),
):
    return {"removed": gatekeeper.engine.cache.cleanup_expired()}


@admin_router.post("/unlock")
async def unlock_account(
    body: UnlockRequest,
    principal: Principal = Depends(get_principal),
    gatekeeper: Gatekeeper = Depends(get_gatekeeper),
):
    unlocked = await gatekeeper.auth.unlock_account(principal, body.email)
    return {"unlocked": unlocked}


@admin_router.post("/sessions/sweep")
async def sweep_sessions(
    principal: Principal = Depends(require_permission(Resource.SYSTEM, Action.CONFIGURE)),
    gatekeeper: Gatekeeper = Depends(get_gatekeeper),
):
    return {"terminated": await gatekeeper.sessions.sweep_expired()}

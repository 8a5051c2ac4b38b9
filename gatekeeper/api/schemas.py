"""
Gatekeeper API - Schémas

Corps de requête (pydantic, clés camelCase) et vues de réponse.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from ..auth.interfaces import MFASetup, Session, TokenPair, User
from ..rbac.catalog import Profession
from ..rbac.interfaces import (
    CustomRole,
    CustomRoleAssignment,
    EffectivePermissions,
    PermissionDecision,
    ProfessionalRoleAssignment,
)
from ..rbac.role_admin import UserRoles


class CamelModel(BaseModel):
    """Corps JSON en camelCase, champs inconnus refusés."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")


# ══════════════════════════════════════════════════════════════════════════════
# REQUÊTES
# ══════════════════════════════════════════════════════════════════════════════


class LoginRequest(CamelModel):
    email: str = Field(min_length=3, max_length=320)
    password: str = Field(min_length=1, max_length=1024)
    mfa_code: Optional[str] = Field(None, max_length=32)


class RefreshRequest(CamelModel):
    refresh_token: str = Field(min_length=1, max_length=512)


class SwitchRoleRequest(CamelModel):
    new_role: str


class EnableMFARequest(CamelModel):
    method: str = "totp"


class VerifyMFARequest(CamelModel):
    token: str = Field(min_length=1, max_length=16)


class CheckPermissionRequest(CamelModel):
    resource: str
    action: str
    context: Dict[str, Any] = Field(default_factory=dict)


class CustomRoleRequest(CamelModel):
    name: str = Field(min_length=1, max_length=120)
    permissions: List[str] = Field(default_factory=list)
    denied_permissions: List[str] = Field(default_factory=list)
    description: str = ""


class CustomRoleUpdateRequest(CamelModel):
    name: Optional[str] = Field(None, min_length=1, max_length=120)
    permissions: Optional[List[str]] = None
    denied_permissions: Optional[List[str]] = None
    description: Optional[str] = None


class AssignRoleRequest(CamelModel):
    user_id: str
    role_id: str
    organization_id: Optional[str] = None
    expires_at: Optional[datetime] = None


class OrganizationCatalogRequest(CamelModel):
    permissions: List[str]


class UnlockRequest(CamelModel):
    email: str


# ══════════════════════════════════════════════════════════════════════════════
# VUES
# ══════════════════════════════════════════════════════════════════════════════


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def user_view(user: User, roles: Optional[List[Profession]] = None) -> Dict[str, Any]:
    view = {
        "id": user.id,
        "email": user.email,
        "displayName": user.display_name,
        "mfaEnabled": user.mfa_enabled,
        "createdAt": _iso(user.created_at),
    }
    if roles is not None:
        view["roles"] = [r.value for r in roles]
    return view


def tokens_view(tokens: TokenPair) -> Dict[str, Any]:
    return {
        "access": tokens.access_token,
        "refresh": tokens.refresh_token,
        "tokenType": tokens.token_type,
        "accessExpiresAt": _iso(tokens.access_expires_at),
        "refreshExpiresAt": _iso(tokens.refresh_expires_at),
    }


def session_view(session: Session, current_session_id: Optional[str] = None) -> Dict[str, Any]:
    return {
        "id": session.id,
        "activeRole": session.active_role.value,
        "organizationId": session.organization_id,
        "createdAt": _iso(session.created_at),
        "lastSeenAt": _iso(session.last_seen_at),
        "expiresAt": _iso(session.expires_at),
        "state": session.state.value,
        "ipAddress": session.ip_address,
        "userAgent": session.user_agent,
        "current": session.id == current_session_id,
    }


def mfa_setup_view(setup: MFASetup) -> Dict[str, Any]:
    return {"method": setup.method, "qrCode": setup.qr_code, "backupCodes": list(setup.backup_codes)}


def decision_view(decision: PermissionDecision) -> Dict[str, Any]:
    return {
        "allowed": decision.allow,
        "reason": decision.reason,
        "code": decision.code.value if decision.code else None,
        "permission": decision.permission_key,
        "organizationId": decision.organization_id,
        "ruleTrace": list(decision.rule_trace),
    }


def effective_view(effective: EffectivePermissions) -> Dict[str, Any]:
    return {
        "userId": effective.user_id,
        "activeRole": effective.active_role.value,
        "organizationId": effective.organization_id,
        "permissions": effective.keys(),
        "denied": sorted(p.key for p in effective.denied),
    }


def custom_role_view(role: CustomRole) -> Dict[str, Any]:
    return {
        "id": role.id,
        "organizationId": role.organization_id,
        "name": role.name,
        "description": role.description,
        "permissions": sorted(p.key for p in role.permissions),
        "deniedPermissions": sorted(p.key for p in role.denied_permissions),
        "disabled": role.disabled,
        "createdBy": role.created_by,
        "createdAt": _iso(role.created_at),
        "updatedAt": _iso(role.updated_at),
    }


def assignment_view(assignment: Any) -> Dict[str, Any]:
    view = {
        "id": assignment.id,
        "userId": assignment.user_id,
        "organizationId": assignment.organization_id,
        "grantedBy": assignment.granted_by,
        "grantedAt": _iso(assignment.granted_at),
        "expiresAt": _iso(assignment.expires_at),
        "revoked": assignment.revoked,
    }
    if isinstance(assignment, ProfessionalRoleAssignment):
        view["role"] = assignment.role.value
    elif isinstance(assignment, CustomRoleAssignment):
        view["customRoleId"] = assignment.custom_role_id
    return view


def user_roles_view(roles: UserRoles) -> Dict[str, Any]:
    return {
        "userId": roles.user_id,
        "professional": [assignment_view(a) for a in roles.professional],
        "custom": [assignment_view(a) for a in roles.custom],
    }

"""
Gatekeeper RBAC - Administration des rôles

Création / mise à jour / désactivation des rôles personnalisés et
affectation des rôles, sans escalade de privilèges: l'appelant doit
pouvoir exercer lui-même tout ce qu'il octroie (sauf platform-admin).
"""

import uuid
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any, FrozenSet, Iterable, List, Optional, Union

from .catalog import (
    ALL_PERMISSIONS,
    DEFAULT_ORGANIZATION_CATALOG,
    Action,
    Permission,
    Profession,
    Resource,
    base_permissions,
    parse_profession,
    permission_set,
)
from .interfaces import (
    CustomRole,
    CustomRoleAssignment,
    IRoleStore,
    Principal,
    ProfessionalRoleAssignment,
)
from .permission_engine import PermissionEngine
from ..audit.interfaces import AuditEventType, IAuditEmitter
from ..core.errors import InvalidRequestError, PermissionDeniedError, RoleEscalationError
from ..core.interfaces import Clock, utc_now
from ..core.timeout_manager import StoreKind, TimeoutManager
from ..logging import StructuredLogger


@dataclass
class UserRoles:
    """Vue des rôles d'un utilisateur."""

    user_id: str
    professional: List[ProfessionalRoleAssignment]
    custom: List[CustomRoleAssignment]


class RoleAdministrationService:
    """
    Administration des rôles d'une organisation.

    Example:
        admin = RoleAdministrationService(role_store, engine, timeouts, audit, logger)
        role = await admin.create_custom_role(caller, "org-1", "Associé", ["case:read", "case:update"])
        await admin.assign_role(caller, "user-42", role.id, organization_id="org-1")
    """

    def __init__(
        self,
        role_store: IRoleStore,
        engine: PermissionEngine,
        timeouts: TimeoutManager,
        audit_emitter: IAuditEmitter,
        logger: StructuredLogger,
        clock: Clock = utc_now,
    ) -> None:
        self._store = role_store
        self._engine = engine
        self._timeouts = timeouts
        self._audit = audit_emitter
        self._logger = logger
        self._clock = clock

    # ── Rôles personnalisés ───────────────────────────────────────────────

    async def create_custom_role(
        self,
        caller: Principal,
        organization_id: str,
        name: str,
        permissions: Iterable[Any],
        denied_permissions: Iterable[Any] = (),
        description: str = "",
    ) -> CustomRole:
        """
        Crée un rôle personnalisé dans une organisation.

        Raises:
            PermissionDeniedError: Appelant sans role:create dans l'organisation
            InvalidRequestError: Permission inconnue ou hors catalogue
            RoleEscalationError: Octroi au-delà des droits de l'appelant
        """
        if not name or not name.strip():
            raise InvalidRequestError("Role name is required")

        await self._require(caller, organization_id, Action.CREATE)
        granted = await self._validated(organization_id, permissions)
        denied, errors = permission_set(denied_permissions)
        if errors:
            raise InvalidRequestError("; ".join(errors))
        await self._ensure_no_escalation(caller, organization_id, granted, "create_custom_role")

        now = self._clock()
        role = CustomRole(
            id=str(uuid.uuid4()),
            organization_id=organization_id,
            name=name.strip(),
            permissions=granted,
            denied_permissions=denied,
            created_by=caller.user_id,
            created_at=now,
            updated_at=now,
            description=description,
        )
        await self._timeouts.run(StoreKind.ROLE, self._store.add_custom_role(role), shield=True)

        self._logger.info("Custom role created", custom_role_id=role.id, organization_id=organization_id)
        self._audit.emit(
            AuditEventType.CUSTOM_ROLE_CREATED,
            user_id=caller.user_id,
            action="create_custom_role",
            organization_id=organization_id,
            resource=role.id,
            metadata={"name": role.name, "permissions": sorted(p.key for p in granted)},
        )
        return role

    async def update_custom_role(
        self,
        caller: Principal,
        role_id: str,
        name: Optional[str] = None,
        permissions: Optional[Iterable[Any]] = None,
        denied_permissions: Optional[Iterable[Any]] = None,
        description: Optional[str] = None,
    ) -> CustomRole:
        """
        Met à jour un rôle personnalisé; invalide le cache de l'organisation.

        Raises:
            InvalidRequestError: Rôle inconnu ou désactivé, permission invalide
        """
        role = await self._get_role(role_id)
        if role.disabled:
            raise InvalidRequestError("Custom role is disabled")
        await self._require(caller, role.organization_id, Action.UPDATE)

        changes = {"updated_at": self._clock()}
        if name is not None:
            if not name.strip():
                raise InvalidRequestError("Role name is required")
            changes["name"] = name.strip()
        if permissions is not None:
            granted = await self._validated(role.organization_id, permissions)
            await self._ensure_no_escalation(caller, role.organization_id, granted, "update_custom_role")
            changes["permissions"] = granted
        if denied_permissions is not None:
            denied, errors = permission_set(denied_permissions)
            if errors:
                raise InvalidRequestError("; ".join(errors))
            changes["denied_permissions"] = denied
        if description is not None:
            changes["description"] = description

        updated = replace(role, **changes)
        await self._timeouts.run(StoreKind.ROLE, self._store.save_custom_role(updated), shield=True)
        self._engine.invalidate_organization(role.organization_id)

        self._audit.emit(
            AuditEventType.CUSTOM_ROLE_UPDATED,
            user_id=caller.user_id,
            action="update_custom_role",
            organization_id=role.organization_id,
            resource=role.id,
            metadata={"fields": sorted(k for k in changes if k != "updated_at")},
        )
        return updated

    async def disable_custom_role(self, caller: Principal, role_id: str) -> CustomRole:
        """Désactive (soft delete) un rôle personnalisé."""
        role = await self._get_role(role_id)
        await self._require(caller, role.organization_id, Action.UPDATE)
        if role.disabled:
            return role

        disabled = replace(role, disabled=True, updated_at=self._clock())
        await self._timeouts.run(StoreKind.ROLE, self._store.save_custom_role(disabled), shield=True)
        self._engine.invalidate_organization(role.organization_id)

        self._logger.info("Custom role disabled", custom_role_id=role.id)
        self._audit.emit(
            AuditEventType.CUSTOM_ROLE_DISABLED,
            user_id=caller.user_id,
            action="disable_custom_role",
            organization_id=role.organization_id,
            resource=role.id,
        )
        return disabled

    async def list_custom_roles(
        self, caller: Principal, organization_id: str, include_disabled: bool = False
    ) -> List[CustomRole]:
        await self._require(caller, organization_id, Action.READ)
        roles = await self._timeouts.run(StoreKind.ROLE, self._store.list_custom_roles(organization_id))
        return [r for r in roles if include_disabled or not r.disabled]

    # ── Affectations ───────────────────────────────────────────────────────

    async def assign_role(
        self,
        caller: Principal,
        user_id: str,
        role_id: Union[str, Profession],
        organization_id: Optional[str] = None,
        expires_at: Optional[datetime] = None,
    ) -> Union[ProfessionalRoleAssignment, CustomRoleAssignment]:
        """
        Affecte une profession ou un rôle personnalisé.

        Args:
            role_id: Profession ("lawyer", ...) ou identifiant de rôle personnalisé
            organization_id: Organisation de l'affectation (obligatoire pour
                un rôle personnalisé, déduite du rôle sinon)

        Raises:
            RoleEscalationError: L'appelant ne peut exercer toutes les
                permissions impliquées
        """
        now = self._clock()
        if expires_at is not None and expires_at <= now:
            raise InvalidRequestError("expires_at must be in the future")

        profession = parse_profession(role_id)
        if profession.ok:
            if organization_id is None:
                self._require_platform_scope(caller, Action.ASSIGN)
            await self._require(caller, organization_id, Action.ASSIGN)
            await self._ensure_no_escalation(
                caller, organization_id, base_permissions(profession.value), "assign_role"
            )
            assignment = ProfessionalRoleAssignment(
                id=str(uuid.uuid4()),
                user_id=user_id,
                role=profession.value,
                granted_by=caller.user_id,
                granted_at=now,
                organization_id=organization_id,
                expires_at=expires_at,
            )
            await self._timeouts.run(StoreKind.ROLE, self._store.add_professional_assignment(assignment), shield=True)
            role_label = profession.value.value
        else:
            role = await self._get_role(str(role_id))
            if role.disabled:
                raise InvalidRequestError("Custom role is disabled")
            if organization_id is not None and organization_id != role.organization_id:
                raise InvalidRequestError("Custom role belongs to another organization")
            organization_id = role.organization_id

            await self._require(caller, organization_id, Action.ASSIGN)
            catalog = await self._catalog(organization_id)
            await self._ensure_no_escalation(caller, organization_id, role.permissions & catalog, "assign_role")
            assignment = CustomRoleAssignment(
                id=str(uuid.uuid4()),
                user_id=user_id,
                custom_role_id=role.id,
                organization_id=organization_id,
                granted_by=caller.user_id,
                granted_at=now,
                expires_at=expires_at,
            )
            await self._timeouts.run(StoreKind.ROLE, self._store.add_custom_assignment(assignment), shield=True)
            role_label = role.id

        self._engine.invalidate_user(user_id)
        self._audit.emit(
            AuditEventType.ROLE_ASSIGNED,
            user_id=caller.user_id,
            action="assign_role",
            organization_id=organization_id,
            resource=user_id,
            metadata={"role": role_label, "assignment_id": assignment.id},
        )
        return assignment

    async def revoke_assignment(self, caller: Principal, assignment_id: str) -> bool:
        """
        Révoque une affectation (drapeau, jamais de suppression).

        Le cache de l'utilisateur est invalidé de façon synchrone.

        Returns:
            True si l'affectation était active
        """
        now = self._clock()
        assignment = await self._timeouts.run(StoreKind.ROLE, self._store.get_professional_assignment(assignment_id))
        save = self._store.save_professional_assignment
        if assignment is None:
            assignment = await self._timeouts.run(StoreKind.ROLE, self._store.get_custom_assignment(assignment_id))
            save = self._store.save_custom_assignment
        if assignment is None:
            raise InvalidRequestError("Unknown assignment")

        if assignment.organization_id is None:
            self._require_platform_scope(caller, Action.ASSIGN)
        await self._require(caller, assignment.organization_id, Action.ASSIGN)
        if assignment.revoked:
            return False

        revoked = replace(assignment, revoked=True, revoked_at=now, revoked_by=caller.user_id)
        await self._timeouts.run(StoreKind.ROLE, save(revoked), shield=True)
        self._engine.invalidate_user(assignment.user_id)

        self._logger.info("Role assignment revoked", assignment_id=assignment_id)
        self._audit.emit(
            AuditEventType.ROLE_REVOKED,
            user_id=caller.user_id,
            action="revoke_assignment",
            organization_id=assignment.organization_id,
            resource=assignment.user_id,
            metadata={"assignment_id": assignment_id},
        )
        return True

    async def get_user_roles(self, caller: Principal, user_id: str, include_inactive: bool = False) -> UserRoles:
        """
        Rôles d'un utilisateur (soi-même, ou user:read requis).
        """
        if caller.user_id != user_id:
            await self._require(caller, caller.organization_id, Action.READ, resource=Resource.USER)

        now = self._clock()
        professional = await self._timeouts.run(StoreKind.ROLE, self._store.get_professional_assignments(user_id))
        custom = await self._timeouts.run(StoreKind.ROLE, self._store.get_custom_assignments(user_id))
        if not include_inactive:
            professional = [a for a in professional if a.is_usable(now)]
            custom = [a for a in custom if a.is_usable(now)]
        return UserRoles(user_id=user_id, professional=professional, custom=custom)

    async def set_organization_catalog(
        self, caller: Principal, organization_id: str, permissions: Iterable[Any]
    ) -> FrozenSet[Permission]:
        """Définit le plafond des rôles personnalisés d'une organisation (platform-admin)."""
        self._require_platform_scope(caller, Action.UPDATE, Resource.PERMISSION)
        await self._require(caller, None, Action.UPDATE, resource=Resource.PERMISSION)

        catalog, errors = permission_set(permissions)
        if errors:
            raise InvalidRequestError("; ".join(errors))
        await self._timeouts.run(StoreKind.ROLE, self._store.set_organization_catalog(organization_id, catalog), shield=True)
        self._engine.invalidate_organization(organization_id)
        return catalog

    # ── Vérifications ──────────────────────────────────────────────────────

    def _require_platform_scope(
        self, caller: Principal, action: Action, resource: Resource = Resource.ROLE
    ) -> None:
        """Affectations sans organisation: platform-admin uniquement."""
        if not caller.is_platform_admin:
            self._logger.warn("Platform-scope role operation denied", user_id=caller.user_id, action=action.value)
            raise PermissionDeniedError(resource.value, action.value)

    async def _require(
        self,
        caller: Principal,
        organization_id: Optional[str],
        action: Action,
        resource: Resource = Resource.ROLE,
    ) -> None:
        """Vérifie que l'appelant peut exercer resource:action dans l'organisation."""
        scoped = caller.in_organization(organization_id or caller.organization_id)
        if organization_id and not caller.is_platform_admin:
            if not await self._engine.is_member(caller.user_id, organization_id):
                raise PermissionDeniedError(resource.value, action.value)

        context = {"organization_id": organization_id} if organization_id else {}
        decision = await self._engine.check_permission(scoped, resource, action, context)
        if not decision.allow:
            raise PermissionDeniedError(decision.resource, decision.action)

    async def _ensure_no_escalation(
        self,
        caller: Principal,
        organization_id: Optional[str],
        requested: FrozenSet[Permission],
        operation: str,
    ) -> None:
        if caller.is_platform_admin:
            return

        scoped = caller.in_organization(organization_id or caller.organization_id)
        effective = await self._engine.effective_permissions(scoped)
        missing = requested - effective.allowed()
        if missing:
            self._logger.warn(
                "Role escalation denied",
                user_id=caller.user_id,
                operation=operation,
                missing=sorted(p.key for p in missing),
            )
            self._audit.emit(
                AuditEventType.ROLE_ESCALATION_DENIED,
                user_id=caller.user_id,
                action=operation,
                outcome="denied",
                organization_id=organization_id,
                metadata={"missing": sorted(p.key for p in missing)},
            )
            raise RoleEscalationError()

    async def _validated(self, organization_id: str, permissions: Iterable[Any]) -> FrozenSet[Permission]:
        granted, errors = permission_set(permissions)
        if errors:
            raise InvalidRequestError("; ".join(errors))
        outside = granted - await self._catalog(organization_id)
        if outside:
            raise InvalidRequestError(
                f"Permissions outside organization catalog: {', '.join(sorted(p.key for p in outside))}"
            )
        return granted

    async def _catalog(self, organization_id: str) -> FrozenSet[Permission]:
        catalog = await self._timeouts.run(StoreKind.ROLE, self._store.get_organization_catalog(organization_id))
        return (catalog if catalog is not None else DEFAULT_ORGANIZATION_CATALOG) & ALL_PERMISSIONS

    async def _get_role(self, role_id: str) -> CustomRole:
        role = await self._timeouts.run(StoreKind.ROLE, self._store.get_custom_role(role_id))
        if role is None:
            raise InvalidRequestError("Unknown custom role")
        return role

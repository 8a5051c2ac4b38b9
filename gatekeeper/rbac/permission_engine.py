"""
Gatekeeper RBAC - Permission Engine

Moteur d'autorisation consulté par tous les modules de la plateforme.

Résolution, dans l'ordre:
    1. Permissions de base de la profession active (catalogue statique)
    2. Union des rôles personnalisés actifs dans l'organisation courante,
       bornée par le catalogue de l'organisation
    3. Raffinement par portée et prédicats de propriété (restreint seulement)
    4. Les refus explicites l'emportent sur tout octroi
    5. Ensemble effectif mis en cache (TTL court, invalidation immédiate)

Un refus d'autorisation n'est jamais levé: une décision explicite est
toujours retournée.
"""

from collections import defaultdict
from typing import Any, Dict, List, Mapping, Optional, Set

from .catalog import (
    CATALOG_VERSION,
    DEFAULT_ORGANIZATION_CATALOG,
    OWNERSHIP_RULES,
    PROFESSION_PERMISSIONS,
    Permission,
    PermissionScope,
    Profession,
    parse_permission,
)
from .interfaces import (
    EffectivePermissions,
    IRoleStore,
    PermissionDecision,
    Principal,
    ProfessionalRoleAssignment,
)
from .permission_cache import PermissionCache
from ..audit.interfaces import AuditEventType, IAuditEmitter
from ..core.errors import AuthenticationError, ErrorCode
from ..core.interfaces import Clock, utc_now
from ..core.timeout_manager import StoreKind, TimeoutManager
from ..logging import StructuredLogger


class PermissionEngine:
    """
    Moteur RBAC construit explicitement (store, cache et audit injectés).

    Example:
        engine = PermissionEngine(role_store, cache, timeouts, audit, logger)
        decision = await engine.check_permission(principal, "case", "read", {"organization_id": "org-1"})
        if not decision.allow:
            raise PermissionDeniedError(decision.resource, decision.action)
    """

    def __init__(
        self,
        role_store: IRoleStore,
        cache: PermissionCache,
        timeouts: TimeoutManager,
        audit_emitter: IAuditEmitter,
        logger: StructuredLogger,
        clock: Clock = utc_now,
    ) -> None:
        self._store = role_store
        self._cache = cache
        self._timeouts = timeouts
        self._audit = audit_emitter
        self._logger = logger
        self._clock = clock
        self._allowed_count = 0
        self._denied_count = 0

    @property
    def cache(self) -> PermissionCache:
        return self._cache

    async def check_permission(
        self,
        principal: Optional[Principal],
        resource: Any,
        action: Any,
        context: Optional[Mapping[str, Any]] = None,
    ) -> PermissionDecision:
        """
        Évalue une demande d'accès.

        Args:
            principal: Identité authentifiée (None = anonyme)
            resource: Ressource du catalogue ("case" ou Resource.CASE)
            action: Action du catalogue ("read" ou Action.READ)
            context: Attributs de la ressource (organization_id, owner_id,
                generated_by, ...)

        Returns:
            Décision explicite (allow, reason, rule_trace)
        """
        ctx = dict(context or {})
        resource_name = getattr(resource, "value", resource)
        action_name = getattr(action, "value", action)

        if not self._is_valid_principal(principal):
            return self._decide(
                None, str(resource_name), str(action_name), ctx, False,
                "unauthenticated", ["principal: absent or invalid"], ErrorCode.UNAUTHENTICATED,
            )

        parsed = parse_permission(resource, action)
        if not parsed.ok:
            return self._decide(
                principal, str(resource_name), str(action_name), ctx, False,
                "unknown permission", [f"catalog: {parsed.error}"], ErrorCode.PERMISSION_DENIED,
            )

        permission = parsed.value
        effective = await self._effective(principal)
        trace: List[str] = []

        # 1-2. Octroi RBAC (base + rôles personnalisés)
        scopes = effective.grants.get(permission)
        if not scopes:
            trace.append(f"rbac: no grant for {permission.key} (role={principal.active_role.value})")
            allow, reason = False, "not granted"
        else:
            trace.append(f"rbac: {permission.key} granted by {', '.join(effective.sources.get(permission, []))}")
            allow, reason = self._refine(permission, scopes, principal, ctx, trace)

        # 4. Refus explicite
        if permission in effective.denied:
            trace.append(f"deny: {permission.key} explicitly denied")
            allow, reason = False, "explicitly denied"

        return self._decide(
            principal, permission.resource.value, permission.action.value, ctx, allow,
            reason, trace, None if allow else ErrorCode.PERMISSION_DENIED,
        )

    async def effective_permissions(self, principal: Principal) -> EffectivePermissions:
        """
        Ensemble effectif du principal (avant raffinement contextuel).

        Raises:
            AuthenticationError: Principal absent ou invalide
        """
        if not self._is_valid_principal(principal):
            raise AuthenticationError(ErrorCode.UNAUTHENTICATED)
        return await self._effective(principal)

    async def usable_assignments(self, user_id: str) -> List[ProfessionalRoleAssignment]:
        """Affectations professionnelles ni expirées ni révoquées, par date d'octroi."""
        now = self._clock()
        assignments = await self._timeouts.run(StoreKind.ROLE, self._store.get_professional_assignments(user_id))
        return sorted((a for a in assignments if a.is_usable(now)), key=lambda a: a.granted_at)

    async def usable_professions(self, user_id: str) -> List[Profession]:
        professions: List[Profession] = []
        for assignment in await self.usable_assignments(user_id):
            if assignment.role not in professions:
                professions.append(assignment.role)
        return professions

    async def holds_profession(self, user_id: str, role: Profession) -> bool:
        return role in await self.usable_professions(user_id)

    async def is_member(self, user_id: str, organization_id: str) -> bool:
        """Vrai si l'utilisateur détient une affectation active dans l'organisation."""
        now = self._clock()
        professional = await self._timeouts.run(StoreKind.ROLE, self._store.get_professional_assignments(user_id))
        if any(a.organization_id == organization_id and a.is_usable(now) for a in professional):
            return True
        custom = await self._timeouts.run(
            StoreKind.ROLE, self._store.get_custom_assignments(user_id, organization_id)
        )
        return any(a.is_usable(now) for a in custom)

    def invalidate_principal(self, user_id: str, active_role: Profession, organization_id: Optional[str]) -> bool:
        """Invalidation immédiate d'une entrée (bascule de rôle)."""
        return self._cache.invalidate(PermissionCache.key_for(user_id, active_role, organization_id))

    def invalidate_user(self, user_id: str) -> int:
        """Invalidation immédiate (changement d'affectation)."""
        count = self._cache.invalidate_user(user_id)
        self._logger.debug("Permission cache invalidated for user", user_id=user_id, entries=count)
        return count

    def invalidate_organization(self, organization_id: str) -> int:
        """Invalidation immédiate (mise à jour de rôle personnalisé ou de catalogue)."""
        count = self._cache.invalidate_organization(organization_id)
        self._logger.debug(
            "Permission cache invalidated for organization", organization_id=organization_id, entries=count
        )
        return count

    def stats(self) -> Dict[str, Any]:
        """Introspection du moteur (remplace tout accès aux champs internes)."""
        return {
            "catalog_version": CATALOG_VERSION,
            "decisions": {"allowed": self._allowed_count, "denied": self._denied_count},
            "cache": self._cache.stats(),
        }

    async def _effective(self, principal: Principal) -> EffectivePermissions:
        key = PermissionCache.key_for(principal.user_id, principal.active_role, principal.organization_id)
        cached = self._cache.get(key)
        if cached is not None:
            return cached

        effective = await self._resolve(principal)
        self._cache.set(effective)
        return effective

    async def _resolve(self, principal: Principal) -> EffectivePermissions:
        now = self._clock()
        grants: Dict[Permission, Set[PermissionScope]] = defaultdict(set)
        sources: Dict[Permission, List[str]] = defaultdict(list)
        denied: Set[Permission] = set()
        clamped: Set[Permission] = set()

        # 1. Base: uniquement si la profession active est toujours détenue
        if await self.holds_profession(principal.user_id, principal.active_role):
            for grant in PROFESSION_PERMISSIONS[principal.active_role]:
                grants[grant.permission].add(grant.scope)
                sources[grant.permission].append(f"base:{principal.active_role.value}")
        else:
            self._logger.warn(
                "Active role no longer held",
                user_id=principal.user_id,
                active_role=principal.active_role.value,
            )

        # 2. Rôles personnalisés de l'organisation, bornés par son catalogue
        org_id = principal.organization_id
        if org_id:
            catalog = await self._timeouts.run(StoreKind.ROLE, self._store.get_organization_catalog(org_id))
            if catalog is None:
                catalog = DEFAULT_ORGANIZATION_CATALOG

            assignments = await self._timeouts.run(
                StoreKind.ROLE, self._store.get_custom_assignments(principal.user_id, org_id)
            )
            for assignment in assignments:
                if not assignment.is_usable(now):
                    continue
                role = await self._timeouts.run(StoreKind.ROLE, self._store.get_custom_role(assignment.custom_role_id))
                if role is None or role.disabled or role.organization_id != org_id:
                    continue

                outside = role.permissions - catalog
                if outside:
                    clamped |= outside
                    self._logger.warn(
                        "Custom role exceeds organization catalog, clamped",
                        custom_role_id=role.id,
                        organization_id=org_id,
                        clamped=sorted(p.key for p in outside),
                    )

                for permission in role.permissions & catalog:
                    grants[permission].add(PermissionScope.ORGANIZATION)
                    sources[permission].append(f"custom:{role.id}")
                denied |= role.denied_permissions

        return EffectivePermissions(
            user_id=principal.user_id,
            active_role=principal.active_role,
            organization_id=org_id,
            grants={p: frozenset(s) for p, s in grants.items()},
            denied=frozenset(denied),
            sources=dict(sources),
            clamped=frozenset(clamped),
        )

    def _refine(
        self,
        permission: Permission,
        scopes: frozenset,
        principal: Principal,
        ctx: Dict[str, Any],
        trace: List[str],
    ) -> tuple:
        """3. Portées et prédicats de propriété (restreint, n'élargit jamais)."""
        if not any(self._scope_allows(scope, principal, ctx, trace) for scope in scopes):
            return False, "out of scope"

        rule = OWNERSHIP_RULES.get(permission)
        if rule is None:
            return True, "granted"

        if principal.active_role in rule.exempt_roles:
            trace.append(f"ownership: {principal.active_role.value} exempt")
            return True, "granted"

        subject = {
            "user_id": principal.user_id,
            "organization_id": principal.organization_id,
            "active_role": principal.active_role.value,
        }
        for condition in rule.conditions:
            result = condition.evaluate(ctx, subject)
            if result is None:
                trace.append(f"ownership: {condition.field} missing from context")
                return False, "ownership context missing"
            if not result:
                trace.append(f"ownership: failed {condition.describe()}")
                return False, "ownership predicate failed"
            trace.append(f"ownership: {condition.describe()}")
        return True, "granted"

    def _scope_allows(
        self, scope: PermissionScope, principal: Principal, ctx: Dict[str, Any], trace: List[str]
    ) -> bool:
        if scope == PermissionScope.ORGANIZATION:
            if not principal.organization_id:
                trace.append("scope: organization grant without organization context")
                return False
            resource_org = ctx.get("organization_id")
            if resource_org is not None and resource_org != principal.organization_id:
                trace.append("scope: resource belongs to another organization")
                return False
            return True

        if scope == PermissionScope.PERSONAL:
            owner = ctx.get("owner_id")
            if owner is not None and owner != principal.user_id:
                trace.append("scope: personal grant on a resource owned by someone else")
                return False
            return True

        return True

    def _is_valid_principal(self, principal: Any) -> bool:
        return (
            isinstance(principal, Principal)
            and bool(principal.user_id)
            and isinstance(principal.active_role, Profession)
        )

    def _decide(
        self,
        principal: Optional[Principal],
        resource: str,
        action: str,
        ctx: Dict[str, Any],
        allow: bool,
        reason: str,
        trace: List[str],
        code: Optional[ErrorCode],
    ) -> PermissionDecision:
        decision = PermissionDecision(
            allow=allow,
            reason=reason,
            user_id=principal.user_id if principal else None,
            resource=resource,
            action=action,
            timestamp=self._clock(),
            organization_id=principal.organization_id if principal else None,
            code=code,
            rule_trace=trace,
            context=ctx,
        )

        if allow:
            self._allowed_count += 1
        else:
            self._denied_count += 1

        self._logger.debug(
            "Permission decision",
            user_id=decision.user_id,
            permission=decision.permission_key,
            allow=allow,
            reason=reason,
        )
        self._audit.emit(
            AuditEventType.PERMISSION_DECISION,
            user_id=decision.user_id or "anonymous",
            action=decision.permission_key,
            outcome="allow" if allow else "deny",
            organization_id=decision.organization_id,
            resource=resource,
            metadata={"reason": reason, "rule_trace": trace, "context": ctx},
        )
        return decision

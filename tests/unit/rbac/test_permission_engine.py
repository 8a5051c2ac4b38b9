"""
Tests unitaires PermissionEngine

Résolution: base de la profession active, rôles personnalisés bornés par
le catalogue de l'organisation, portées, propriété et refus explicites.
"""

import uuid
from datetime import timedelta

import pytest

from gatekeeper.audit.interfaces import AuditEventType
from gatekeeper.core.errors import AuthenticationError, ErrorCode
from gatekeeper.rbac import (
    CustomRole,
    CustomRoleAssignment,
    InMemoryRoleStore,
    Permission,
    PermissionCache,
    PermissionEngine,
    Principal,
    Profession,
    ProfessionalRoleAssignment,
    Resource,
    Action,
    base_permissions,
)

from conftest import FakeClock, RecordingAuditEmitter


# ══════════════════════════════════════════════════════════════════════════════
# FIXTURES
# ══════════════════════════════════════════════════════════════════════════════


@pytest.fixture
def store() -> InMemoryRoleStore:
    return InMemoryRoleStore()


@pytest.fixture
def engine(store, timeouts, audit, logger, clock) -> PermissionEngine:
    return PermissionEngine(store, PermissionCache(clock=clock), timeouts, audit, logger, clock)


async def grant(store, clock, user_id, role, org=None, **kwargs) -> ProfessionalRoleAssignment:
    assignment = ProfessionalRoleAssignment(
        id=str(uuid.uuid4()),
        user_id=user_id,
        role=role,
        granted_by="system",
        granted_at=clock(),
        organization_id=org,
        **kwargs,
    )
    await store.add_professional_assignment(assignment)
    return assignment


async def custom_role(store, clock, org, permissions, denied=(), user_id=None) -> CustomRole:
    """Rôle écrit directement dans le store (contourne la validation)."""
    role = CustomRole(
        id=str(uuid.uuid4()),
        organization_id=org,
        name="custom",
        permissions=frozenset(permissions),
        denied_permissions=frozenset(denied),
        created_by="system",
        created_at=clock(),
        updated_at=clock(),
    )
    await store.add_custom_role(role)
    if user_id:
        await store.add_custom_assignment(
            CustomRoleAssignment(
                id=str(uuid.uuid4()),
                user_id=user_id,
                custom_role_id=role.id,
                organization_id=org,
                granted_by="system",
                granted_at=clock(),
            )
        )
    return role


LAWYER = Principal("u-lawyer", Profession.LAWYER, "org-1", "s-1")


# ══════════════════════════════════════════════════════════════════════════════
# DÉCISIONS DE BASE
# ══════════════════════════════════════════════════════════════════════════════


class TestBaseDecisions:
    """Permissions de la profession active."""

    @pytest.mark.asyncio
    async def test_lawyer_reads_case(self, engine, store, clock):
        await grant(store, clock, LAWYER.user_id, Profession.LAWYER, "org-1")

        decision = await engine.check_permission(LAWYER, "case", "read")

        assert decision.allow is True
        assert decision.code is None
        assert any("base:lawyer" in line for line in decision.rule_trace)

    @pytest.mark.asyncio
    async def test_lawyer_cannot_approve_case(self, engine, store, clock):
        await grant(store, clock, LAWYER.user_id, Profession.LAWYER, "org-1")

        decision = await engine.check_permission(LAWYER, Resource.CASE, Action.APPROVE)

        assert decision.allow is False
        assert decision.code == ErrorCode.PERMISSION_DENIED
        assert decision.reason == "not granted"

    @pytest.mark.asyncio
    async def test_anonymous_denied(self, engine):
        decision = await engine.check_permission(None, "case", "read")

        assert decision.allow is False
        assert decision.code == ErrorCode.UNAUTHENTICATED

    @pytest.mark.asyncio
    async def test_unknown_permission_denied(self, engine, store, clock):
        await grant(store, clock, LAWYER.user_id, Profession.LAWYER, "org-1")

        decision = await engine.check_permission(LAWYER, "case", "teleport")

        assert decision.allow is False
        assert decision.reason == "unknown permission"

    @pytest.mark.asyncio
    async def test_role_not_held_grants_nothing(self, engine, store, clock):
        """Un jeton réclamant une profession non détenue n'octroie rien."""
        await grant(store, clock, LAWYER.user_id, Profession.STUDENT)

        decision = await engine.check_permission(LAWYER, "document", "read")

        assert decision.allow is False

    @pytest.mark.asyncio
    async def test_revoked_assignment_grants_nothing(self, engine, store, clock):
        await grant(store, clock, LAWYER.user_id, Profession.LAWYER, "org-1", revoked=True)

        assert (await engine.check_permission(LAWYER, "document", "read")).allow is False

    @pytest.mark.asyncio
    async def test_expired_assignment_grants_nothing(self, engine, store, clock: FakeClock):
        await grant(store, clock, LAWYER.user_id, Profession.LAWYER, "org-1", expires_at=clock() + timedelta(hours=1))
        clock.advance(hours=2)

        assert (await engine.check_permission(LAWYER, "document", "read")).allow is False

    @pytest.mark.asyncio
    async def test_decision_audited(self, engine, store, clock, audit: RecordingAuditEmitter):
        await grant(store, clock, LAWYER.user_id, Profession.LAWYER, "org-1")
        await engine.check_permission(LAWYER, "case", "read")

        events = audit.of_type(AuditEventType.PERMISSION_DECISION)
        assert events[-1]["outcome"] == "allow"
        assert events[-1]["action"] == "case:read"


# ══════════════════════════════════════════════════════════════════════════════
# PORTÉES ET PROPRIÉTÉ
# ══════════════════════════════════════════════════════════════════════════════


class TestScopes:
    """Raffinement contextuel (restreint, n'élargit jamais)."""

    @pytest.mark.asyncio
    async def test_personal_scope_other_owner(self, engine, store, clock):
        await grant(store, clock, LAWYER.user_id, Profession.LAWYER, "org-1")

        own = await engine.check_permission(LAWYER, "document", "read", {"owner_id": LAWYER.user_id})
        other = await engine.check_permission(LAWYER, "document", "read", {"owner_id": "someone-else"})

        assert own.allow is True
        assert other.allow is False
        assert other.reason == "out of scope"

    @pytest.mark.asyncio
    async def test_organization_scope_requires_org(self, engine, store, clock):
        await grant(store, clock, "u-cj", Profession.CORPORATE_JURIST, "org-1")

        without_org = await engine.check_permission(Principal("u-cj", Profession.CORPORATE_JURIST), "document", "read")
        in_org = await engine.check_permission(
            Principal("u-cj", Profession.CORPORATE_JURIST, "org-1"), "document", "read", {"organization_id": "org-1"}
        )
        other_org = await engine.check_permission(
            Principal("u-cj", Profession.CORPORATE_JURIST, "org-1"), "document", "read", {"organization_id": "org-2"}
        )

        assert without_org.allow is False
        assert in_org.allow is True
        assert other_org.allow is False

    @pytest.mark.asyncio
    async def test_ownership_predicate(self, engine, store, clock):
        await grant(store, clock, LAWYER.user_id, Profession.LAWYER, "org-1")

        own = await engine.check_permission(LAWYER, "report", "read", {"generated_by": LAWYER.user_id})
        other = await engine.check_permission(LAWYER, "report", "read", {"generated_by": "u-2"})

        assert own.allow is True
        assert other.allow is False
        assert other.reason == "ownership predicate failed"

    @pytest.mark.asyncio
    async def test_ownership_denied_without_field(self, engine, store, clock):
        await grant(store, clock, LAWYER.user_id, Profession.LAWYER, "org-1")

        decision = await engine.check_permission(LAWYER, "report", "read")
        unrelated = await engine.check_permission(LAWYER, "search", "read", {"generated_by": LAWYER.user_id})

        assert decision.allow is False
        assert decision.reason == "ownership context missing"
        assert any("generated_by missing from context" in line for line in decision.rule_trace)
        assert unrelated.allow is False

    @pytest.mark.asyncio
    async def test_platform_admin_exempt_from_ownership(self, engine, store, clock):
        await grant(store, clock, "u-admin", Profession.PLATFORM_ADMIN)
        admin = Principal("u-admin", Profession.PLATFORM_ADMIN)

        decision = await engine.check_permission(admin, "report", "read", {"generated_by": "u-2"})

        assert decision.allow is True


# ══════════════════════════════════════════════════════════════════════════════
# RÔLES PERSONNALISÉS
# ══════════════════════════════════════════════════════════════════════════════


class TestCustomRoles:
    """Union bornée par le catalogue de l'organisation."""

    @pytest.mark.asyncio
    async def test_zero_custom_grants_equals_base(self, engine, store, clock):
        """Sans rôle personnalisé, l'ensemble effectif est la base de la profession."""
        await grant(store, clock, LAWYER.user_id, Profession.LAWYER, "org-1")

        effective = await engine.effective_permissions(LAWYER)

        assert effective.allowed() == base_permissions(Profession.LAWYER)
        assert effective.clamped == frozenset()

    @pytest.mark.asyncio
    async def test_custom_role_adds_permission(self, engine, store, clock):
        await grant(store, clock, LAWYER.user_id, Profession.LAWYER, "org-1")
        await custom_role(store, clock, "org-1", {Permission(Resource.CASE, Action.APPROVE)}, user_id=LAWYER.user_id)

        decision = await engine.check_permission(LAWYER, "case", "approve", {"organization_id": "org-1"})

        assert decision.allow is True

    @pytest.mark.asyncio
    async def test_custom_role_only_in_its_organization(self, engine, store, clock):
        await grant(store, clock, LAWYER.user_id, Profession.LAWYER, "org-1")
        await custom_role(store, clock, "org-2", {Permission(Resource.CASE, Action.APPROVE)}, user_id=LAWYER.user_id)

        assert (await engine.check_permission(LAWYER, "case", "approve")).allow is False

    @pytest.mark.asyncio
    async def test_tampered_role_is_clamped(self, engine, store, clock):
        """Un rôle stocké au-delà du catalogue est borné à la résolution."""
        await grant(store, clock, LAWYER.user_id, Profession.LAWYER, "org-1")
        outside = Permission(Resource.SYSTEM, Action.CONFIGURE)
        await custom_role(
            store, clock, "org-1", {outside, Permission(Resource.CASE, Action.APPROVE)}, user_id=LAWYER.user_id
        )

        effective = await engine.effective_permissions(LAWYER)
        decision = await engine.check_permission(LAWYER, "system", "configure")

        assert outside not in effective.allowed()
        assert Permission(Resource.CASE, Action.APPROVE) in effective.allowed()
        assert effective.clamped == frozenset({outside})
        assert decision.allow is False

    @pytest.mark.asyncio
    async def test_organization_catalog_restricts(self, engine, store, clock):
        await grant(store, clock, LAWYER.user_id, Profession.LAWYER, "org-1")
        await store.set_organization_catalog("org-1", frozenset({Permission(Resource.CASE, Action.READ)}))
        await custom_role(store, clock, "org-1", {Permission(Resource.CASE, Action.APPROVE)}, user_id=LAWYER.user_id)

        assert (await engine.check_permission(LAWYER, "case", "approve")).allow is False

    @pytest.mark.asyncio
    async def test_explicit_deny_wins(self, engine, store, clock):
        """Un refus explicite l'emporte sur la base de la profession."""
        await grant(store, clock, LAWYER.user_id, Profession.LAWYER, "org-1")
        await custom_role(
            store, clock, "org-1", set(), denied={Permission(Resource.DOCUMENT, Action.DELETE)}, user_id=LAWYER.user_id
        )

        decision = await engine.check_permission(LAWYER, "document", "delete")

        assert decision.allow is False
        assert decision.reason == "explicitly denied"

    @pytest.mark.asyncio
    async def test_disabled_role_ignored(self, engine, store, clock):
        await grant(store, clock, LAWYER.user_id, Profession.LAWYER, "org-1")
        role = await custom_role(
            store, clock, "org-1", {Permission(Resource.CASE, Action.APPROVE)}, user_id=LAWYER.user_id
        )
        role.disabled = True
        await store.save_custom_role(role)

        assert (await engine.check_permission(LAWYER, "case", "approve")).allow is False


# ══════════════════════════════════════════════════════════════════════════════
# CACHE
# ══════════════════════════════════════════════════════════════════════════════


class TestCaching:
    """Cache et invalidation."""

    @pytest.mark.asyncio
    async def test_second_check_hits_cache(self, engine, store, clock):
        await grant(store, clock, LAWYER.user_id, Profession.LAWYER, "org-1")
        await engine.check_permission(LAWYER, "case", "read")
        await engine.check_permission(LAWYER, "case", "update")

        stats = engine.stats()
        assert stats["cache"]["hits"] == 1
        assert stats["decisions"]["allowed"] == 2

    @pytest.mark.asyncio
    async def test_revocation_visible_after_invalidation(self, engine, store, clock):
        assignment = await grant(store, clock, LAWYER.user_id, Profession.LAWYER, "org-1")
        assert (await engine.check_permission(LAWYER, "case", "read")).allow is True

        assignment.revoked = True
        await store.save_professional_assignment(assignment)
        engine.invalidate_user(LAWYER.user_id)

        assert (await engine.check_permission(LAWYER, "case", "read")).allow is False

    @pytest.mark.asyncio
    async def test_invalidate_principal(self, engine, store, clock):
        await grant(store, clock, LAWYER.user_id, Profession.LAWYER, "org-1")
        await engine.effective_permissions(LAWYER)

        assert engine.invalidate_principal(LAWYER.user_id, Profession.LAWYER, "org-1") is True


class TestMembership:
    """Appartenance et professions utilisables."""

    @pytest.mark.asyncio
    async def test_usable_assignments_sorted(self, engine, store, clock: FakeClock):
        await grant(store, clock, "u1", Profession.LAWYER, "org-1")
        clock.advance(minutes=1)
        await grant(store, clock, "u1", Profession.CORPORATE_JURIST, "org-2")

        assignments = await engine.usable_assignments("u1")

        assert [a.role for a in assignments] == [Profession.LAWYER, Profession.CORPORATE_JURIST]
        assert await engine.usable_professions("u1") == [Profession.LAWYER, Profession.CORPORATE_JURIST]

    @pytest.mark.asyncio
    async def test_is_member(self, engine, store, clock):
        await grant(store, clock, "u1", Profession.LAWYER, "org-1")
        await custom_role(store, clock, "org-3", set(), user_id="u1")

        assert await engine.is_member("u1", "org-1") is True
        assert await engine.is_member("u1", "org-3") is True
        assert await engine.is_member("u1", "org-2") is False

    @pytest.mark.asyncio
    async def test_effective_permissions_requires_principal(self, engine):
        with pytest.raises(AuthenticationError):
            await engine.effective_permissions(None)

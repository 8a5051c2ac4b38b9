"""
Tests unitaires du catalogue des permissions

Parsing à la frontière, table par profession et conditions de propriété.
"""

import pytest

from gatekeeper.rbac import (
    DEFAULT_ORGANIZATION_CATALOG,
    PROFESSION_PERMISSIONS,
    AccessCondition,
    Action,
    ConditionOperator,
    Permission,
    Profession,
    Resource,
    base_permissions,
    parse_permission,
    parse_profession,
)
from gatekeeper.rbac.catalog import permission_set


# ══════════════════════════════════════════════════════════════════════════════
# PARSING
# ══════════════════════════════════════════════════════════════════════════════


class TestParseProfession:
    """Professions entrantes."""

    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("lawyer", Profession.LAWYER),
            ("corporate-jurist", Profession.CORPORATE_JURIST),
            (" Magistrate ", Profession.MAGISTRATE),
            (Profession.NOTARY, Profession.NOTARY),
        ],
    )
    def test_known(self, raw, expected):
        result = parse_profession(raw)

        assert result.ok
        assert result.value == expected

    @pytest.mark.parametrize("raw", ["judge", "", None, 42, "corporate_jurist"])
    def test_unknown_rejected(self, raw):
        result = parse_profession(raw)

        assert not result.ok
        assert result.value is None


class TestParsePermission:
    """Permissions "ressource:action"."""

    def test_key_form(self):
        assert parse_permission("case:read").value == Permission(Resource.CASE, Action.READ)

    def test_pair_form(self):
        assert parse_permission("case", "read").value == Permission(Resource.CASE, Action.READ)

    def test_enum_pair(self):
        assert parse_permission(Resource.SYSTEM, Action.MONITOR).value.key == "system:monitor"

    @pytest.mark.parametrize("raw", ["case", "case:read:all", "spaceship:read", "case:fly", 7])
    def test_malformed_rejected(self, raw):
        assert not parse_permission(raw).ok

    def test_permission_set_collects_errors(self):
        permissions, errors = permission_set(["case:read", "case:fly", "document:read"])

        assert {p.key for p in permissions} == {"case:read", "document:read"}
        assert len(errors) == 1
        assert "fly" in errors[0]


# ══════════════════════════════════════════════════════════════════════════════
# TABLE
# ══════════════════════════════════════════════════════════════════════════════


class TestProfessionTable:
    """Permissions de base."""

    def test_every_profession_has_entry(self):
        for profession in Profession:
            assert PROFESSION_PERMISSIONS[profession]

    def test_notary_keeps_minutier(self):
        keys = {p.key for p in base_permissions(Profession.NOTARY)}

        assert {"minutier:archive", "acte_authentique:sign"} <= keys

    def test_student_cannot_manage_clients(self):
        assert Permission(Resource.CLIENT, Action.CREATE) not in base_permissions(Profession.STUDENT)

    def test_only_admin_configures_system(self):
        holders = [p for p in Profession if Permission(Resource.SYSTEM, Action.CONFIGURE) in base_permissions(p)]

        assert holders == [Profession.PLATFORM_ADMIN]

    def test_default_organization_catalog(self):
        """Le plafond par défaut exclut l'administration plateforme."""
        assert Permission(Resource.CASE, Action.APPROVE) in DEFAULT_ORGANIZATION_CATALOG
        assert Permission(Resource.ROLE, Action.ASSIGN) in DEFAULT_ORGANIZATION_CATALOG
        assert Permission(Resource.SYSTEM, Action.CONFIGURE) not in DEFAULT_ORGANIZATION_CATALOG
        assert Permission(Resource.ROLE, Action.DELETE) not in DEFAULT_ORGANIZATION_CATALOG


# ══════════════════════════════════════════════════════════════════════════════
# CONDITIONS
# ══════════════════════════════════════════════════════════════════════════════


class TestAccessCondition:
    """Évaluation sur le contexte."""

    def test_equals_from_subject(self):
        condition = AccessCondition("generated_by", ConditionOperator.EQUALS, value_from="user_id")

        assert condition.evaluate({"generated_by": "u1"}, {"user_id": "u1"}) is True
        assert condition.evaluate({"generated_by": "u2"}, {"user_id": "u1"}) is False

    def test_absent_field_not_evaluated(self):
        condition = AccessCondition("generated_by", ConditionOperator.EQUALS, value_from="user_id")

        assert condition.evaluate({}, {"user_id": "u1"}) is None

    @pytest.mark.parametrize(
        "operator, actual, expected, result",
        [
            (ConditionOperator.NOT_EQUALS, "a", "b", True),
            (ConditionOperator.IN, "a", ["a", "b"], True),
            (ConditionOperator.NOT_IN, "c", ["a", "b"], True),
            (ConditionOperator.CONTAINS, ["x", "y"], "y", True),
            (ConditionOperator.STARTS_WITH, "org-12", "org-", True),
            (ConditionOperator.ENDS_WITH, "file.pdf", ".doc", False),
        ],
    )
    def test_operators(self, operator, actual, expected, result):
        condition = AccessCondition("field", operator, value=expected)

        assert condition.evaluate({"field": actual}, {}) is result

    def test_type_error_is_false(self):
        condition = AccessCondition("field", ConditionOperator.IN, value=5)

        assert condition.evaluate({"field": "a"}, {}) is False

    def test_describe(self):
        condition = AccessCondition("student_id", ConditionOperator.EQUALS, value_from="user_id")

        assert condition.describe() == "student_id equals principal.user_id"

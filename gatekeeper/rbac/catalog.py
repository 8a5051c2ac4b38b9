"""
Gatekeeper RBAC - Catalogue des permissions

Taxonomie fermée et versionnée (ressource, action) consommée par tous les
modules de la plateforme, et table des permissions de base par profession.

La table est vérifiée à l'import: une profession sans entrée fait échouer
l'import du module, jamais une vérification à l'exécution.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, FrozenSet, Generic, Iterable, Mapping, Optional, Tuple, TypeVar


CATALOG_VERSION = "2024.2"

T = TypeVar("T")


class CatalogError(Exception):
    """Catalogue incomplet ou incohérent."""

    pass


class Profession(Enum):
    """Identités professionnelles (rôle RBAC de base)."""

    LAWYER = "lawyer"
    NOTARY = "notary"
    BAILIFF = "bailiff"
    MAGISTRATE = "magistrate"
    STUDENT = "student"
    CORPORATE_JURIST = "corporate-jurist"
    PLATFORM_ADMIN = "platform-admin"


class Resource(Enum):
    """Types de ressources de la plateforme."""

    # Documents
    DOCUMENT = "document"
    TEMPLATE = "template"
    SIGNATURE = "signature"

    # Clients et dossiers
    CLIENT = "client"
    DOSSIER = "dossier"
    CASE = "case"

    # Recherche juridique
    JURISPRUDENCE = "jurisprudence"
    LEGAL_TEXT = "legal_text"
    SEARCH = "search"

    # Formation
    LEARNING_MODULE = "learning_module"
    LEARNING_CONTENT = "learning_content"
    EXERCISE = "exercise"
    ASSESSMENT = "assessment"
    LEARNING_PROGRESS = "learning_progress"
    LEARNING_RECOMMENDATION = "learning_recommendation"
    LEARNING_STATISTICS = "learning_statistics"
    LEARNING_HELP = "learning_help"
    LEARNING_RESTRICTION = "learning_restriction"

    # Finances
    INVOICE = "invoice"
    BILLING = "billing"
    PAYMENT = "payment"

    # Notariat
    MINUTIER = "minutier"
    ACTE_AUTHENTIQUE = "acte_authentique"

    # Administration
    USER = "user"
    ORGANIZATION = "organization"
    ROLE = "role"
    PERMISSION = "permission"
    AUDIT = "audit"

    # Modération
    MODERATION = "moderation"
    MODERATION_ITEM = "moderation_item"
    MODERATION_REPORT = "moderation_report"
    MODERATION_WORKFLOW = "moderation_workflow"

    # Système
    SYSTEM = "system"
    CONFIGURATION = "configuration"
    REPORT = "report"


class Action(Enum):
    """Actions applicables aux ressources."""

    CREATE = "create"
    READ = "read"
    UPDATE = "update"
    DELETE = "delete"

    SIGN = "sign"
    VALIDATE = "validate"
    ARCHIVE = "archive"
    EXPORT = "export"
    PRINT = "print"

    SEARCH = "search"
    ANALYZE = "analyze"

    SUBMIT = "submit"
    ATTEMPT = "attempt"
    COMPLETE = "complete"
    PROGRESS = "progress"
    RECOMMEND = "recommend"
    RESTRICT = "restrict"
    HELP = "help"

    CALCULATE = "calculate"
    INVOICE = "invoice"
    PAYMENT = "payment"

    ASSIGN = "assign"
    APPROVE = "approve"
    REJECT = "reject"
    MODERATE = "moderate"
    REPORT = "report"

    CONFIGURE = "configure"
    MONITOR = "monitor"
    AUDIT = "audit"


class PermissionScope(Enum):
    """
    Portée d'un octroi.

    GLOBAL / ROLE_SPECIFIC: sans restriction de contexte.
    ORGANIZATION: exige une organisation courante; si le contexte nomme
        l'organisation de la ressource, elle doit être la même.
    PERSONAL: si le contexte nomme le propriétaire de la ressource,
        ce doit être l'utilisateur.
    """

    GLOBAL = "global"
    ORGANIZATION = "organization"
    PERSONAL = "personal"
    ROLE_SPECIFIC = "role_specific"


@dataclass(frozen=True)
class Permission:
    """Couple (ressource, action) du catalogue."""

    resource: Resource
    action: Action

    @property
    def key(self) -> str:
        return f"{self.resource.value}:{self.action.value}"

    def __str__(self) -> str:
        return self.key


@dataclass(frozen=True)
class PermissionGrant:
    """Octroi d'une permission avec sa portée."""

    permission: Permission
    scope: PermissionScope


@dataclass(frozen=True)
class ParseResult(Generic[T]):
    """Résultat de parsing à la frontière du système (succès ou erreur)."""

    value: Optional[T] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def parse_profession(raw: Any) -> ParseResult[Profession]:
    """
    Parse une profession entrante ("lawyer", "corporate-jurist", ...).

    Les variantes inconnues sont rejetées ici, avant toute logique métier.
    """
    if isinstance(raw, Profession):
        return ParseResult(value=raw)
    if not isinstance(raw, str):
        return ParseResult(error="profession must be a string")
    try:
        return ParseResult(value=Profession(raw.strip().lower()))
    except ValueError:
        return ParseResult(error=f"unknown profession: {raw!r}")


def parse_permission(raw: Any, action: Any = None) -> ParseResult[Permission]:
    """
    Parse une permission "ressource:action" (ou le couple séparé).

    Example:
        result = parse_permission("case:read")
        result = parse_permission("case", "read")
    """
    if isinstance(raw, Permission) and action is None:
        return ParseResult(value=raw)

    if action is None:
        if not isinstance(raw, str) or raw.count(":") != 1:
            return ParseResult(error=f"malformed permission: {raw!r}")
        raw, action = raw.split(":")

    resource_value = raw.value if isinstance(raw, Resource) else raw
    action_value = action.value if isinstance(action, Action) else action
    if not isinstance(resource_value, str) or not isinstance(action_value, str):
        return ParseResult(error="resource and action must be strings")

    try:
        resource = Resource(resource_value.strip().lower())
    except ValueError:
        return ParseResult(error=f"unknown resource: {resource_value!r}")
    try:
        parsed_action = Action(action_value.strip().lower())
    except ValueError:
        return ParseResult(error=f"unknown action: {action_value!r}")

    return ParseResult(value=Permission(resource, parsed_action))


def permission_set(raw_permissions: Iterable[Any]) -> Tuple[FrozenSet[Permission], Tuple[str, ...]]:
    """
    Parse une collection de permissions.

    Returns:
        (permissions valides, erreurs)
    """
    parsed = set()
    errors = []
    for raw in raw_permissions:
        result = parse_permission(raw)
        if result.ok:
            parsed.add(result.value)
        else:
            errors.append(result.error)
    return frozenset(parsed), tuple(errors)


# ══════════════════════════════════════════════════════════════════════════════
# TABLE DES PERMISSIONS PAR PROFESSION
# ══════════════════════════════════════════════════════════════════════════════


def _grants(resource: Resource, actions: Iterable[Action], scope: PermissionScope) -> Tuple[PermissionGrant, ...]:
    return tuple(PermissionGrant(Permission(resource, action), scope) for action in actions)


def _table(*groups: Tuple[PermissionGrant, ...]) -> FrozenSet[PermissionGrant]:
    return frozenset(grant for group in groups for grant in group)


R, A, S = Resource, Action, PermissionScope
CRUD = (A.CREATE, A.READ, A.UPDATE, A.DELETE)

_LEGAL_RESEARCH = (
    _grants(R.JURISPRUDENCE, (A.READ, A.SEARCH), S.GLOBAL),
    _grants(R.LEGAL_TEXT, (A.READ, A.SEARCH), S.GLOBAL),
)
_CONTENT_REPORTING = _grants(R.MODERATION_REPORT, (A.CREATE, A.READ), S.PERSONAL)
_PRACTICE_FINANCE = (
    _grants(R.INVOICE, (A.CREATE, A.READ, A.UPDATE), S.PERSONAL),
    _grants(R.BILLING, (A.CALCULATE, A.READ), S.PERSONAL),
)


PROFESSION_PERMISSIONS: Mapping[Profession, FrozenSet[PermissionGrant]] = {
    Profession.LAWYER: _table(
        _grants(R.DOCUMENT, CRUD, S.PERSONAL),
        _grants(R.TEMPLATE, (A.READ, A.CREATE), S.ROLE_SPECIFIC),
        _grants(R.SIGNATURE, (A.CREATE, A.READ), S.PERSONAL),
        _grants(R.CLIENT, (A.CREATE, A.READ, A.UPDATE), S.PERSONAL),
        _grants(R.DOSSIER, CRUD, S.PERSONAL),
        _grants(R.CASE, (A.CREATE, A.READ, A.UPDATE), S.PERSONAL),
        *_LEGAL_RESEARCH,
        _grants(R.SEARCH, (A.CREATE, A.READ), S.PERSONAL),
        *_PRACTICE_FINANCE,
        _CONTENT_REPORTING,
        _grants(R.REPORT, (A.CREATE, A.READ), S.PERSONAL),
    ),
    Profession.NOTARY: _table(
        _grants(R.DOCUMENT, CRUD, S.PERSONAL),
        _grants(R.TEMPLATE, (A.READ, A.CREATE), S.ROLE_SPECIFIC),
        _grants(R.SIGNATURE, (A.CREATE, A.READ), S.PERSONAL),
        _grants(R.ACTE_AUTHENTIQUE, (A.CREATE, A.READ, A.UPDATE, A.SIGN), S.PERSONAL),
        _grants(R.MINUTIER, (A.CREATE, A.READ, A.SEARCH, A.ARCHIVE, A.UPDATE), S.PERSONAL),
        _grants(R.CLIENT, (A.CREATE, A.READ, A.UPDATE), S.PERSONAL),
        *_LEGAL_RESEARCH,
        *_PRACTICE_FINANCE,
        _CONTENT_REPORTING,
        _grants(R.REPORT, (A.CREATE, A.READ), S.PERSONAL),
    ),
    Profession.BAILIFF: _table(
        _grants(R.DOCUMENT, CRUD, S.PERSONAL),
        _grants(R.TEMPLATE, (A.READ, A.CREATE), S.ROLE_SPECIFIC),
        _grants(R.SIGNATURE, (A.CREATE, A.READ), S.PERSONAL),
        _grants(R.CLIENT, (A.CREATE, A.READ, A.UPDATE), S.PERSONAL),
        *_LEGAL_RESEARCH,
        *_PRACTICE_FINANCE,
        _CONTENT_REPORTING,
        _grants(R.REPORT, (A.CREATE, A.READ), S.PERSONAL),
    ),
    Profession.MAGISTRATE: _table(
        _grants(R.DOCUMENT, (A.CREATE, A.READ, A.UPDATE), S.PERSONAL),
        _grants(R.TEMPLATE, (A.READ, A.CREATE), S.ROLE_SPECIFIC),
        _grants(R.JURISPRUDENCE, (A.READ, A.SEARCH, A.ANALYZE), S.GLOBAL),
        _grants(R.LEGAL_TEXT, (A.READ, A.SEARCH, A.ANALYZE), S.GLOBAL),
        _grants(R.SEARCH, (A.CREATE, A.READ), S.PERSONAL),
        _grants(R.CASE, (A.READ, A.UPDATE, A.APPROVE), S.ORGANIZATION),
        _CONTENT_REPORTING,
        _grants(R.MODERATION_ITEM, (A.READ, A.MODERATE), S.ORGANIZATION),
        _grants(R.REPORT, (A.CREATE, A.READ), S.ORGANIZATION),
    ),
    Profession.STUDENT: _table(
        _grants(R.DOCUMENT, (A.CREATE, A.READ), S.PERSONAL),
        _grants(R.TEMPLATE, (A.READ,), S.ROLE_SPECIFIC),
        *_LEGAL_RESEARCH,
        _grants(R.SEARCH, (A.CREATE, A.READ), S.PERSONAL),
        _grants(R.LEARNING_MODULE, (A.READ,), S.GLOBAL),
        _grants(R.LEARNING_CONTENT, (A.READ,), S.GLOBAL),
        _grants(R.EXERCISE, (A.READ, A.SUBMIT, A.ATTEMPT), S.PERSONAL),
        _grants(R.ASSESSMENT, (A.READ, A.SUBMIT), S.PERSONAL),
        _grants(R.LEARNING_PROGRESS, (A.READ, A.UPDATE, A.PROGRESS), S.PERSONAL),
        _grants(R.LEARNING_RECOMMENDATION, (A.READ,), S.PERSONAL),
        _grants(R.LEARNING_STATISTICS, (A.READ,), S.PERSONAL),
        _grants(R.LEARNING_HELP, (A.READ, A.HELP), S.GLOBAL),
        _CONTENT_REPORTING,
    ),
    Profession.CORPORATE_JURIST: _table(
        _grants(R.DOCUMENT, CRUD, S.ORGANIZATION),
        _grants(R.TEMPLATE, (A.READ, A.CREATE), S.ROLE_SPECIFIC),
        *_LEGAL_RESEARCH,
        _grants(R.SEARCH, (A.CREATE, A.READ), S.PERSONAL),
        _CONTENT_REPORTING,
        _grants(R.REPORT, (A.CREATE, A.READ), S.ORGANIZATION),
    ),
    Profession.PLATFORM_ADMIN: _table(
        _grants(R.USER, CRUD, S.GLOBAL),
        _grants(R.ORGANIZATION, CRUD, S.GLOBAL),
        _grants(R.ROLE, CRUD + (A.ASSIGN,), S.GLOBAL),
        _grants(R.PERMISSION, CRUD, S.GLOBAL),
        _grants(R.AUDIT, (A.READ, A.MONITOR), S.GLOBAL),
        _grants(R.SYSTEM, (A.CONFIGURE, A.MONITOR), S.GLOBAL),
        _grants(R.CONFIGURATION, (A.CREATE, A.READ, A.UPDATE), S.GLOBAL),
        _grants(R.REPORT, (A.CREATE, A.READ), S.GLOBAL),
        _grants(R.LEARNING_MODULE, CRUD, S.GLOBAL),
        _grants(R.LEARNING_CONTENT, CRUD, S.GLOBAL),
        _grants(R.EXERCISE, CRUD, S.GLOBAL),
        _grants(R.ASSESSMENT, CRUD, S.GLOBAL),
        _grants(R.LEARNING_PROGRESS, (A.READ, A.MONITOR), S.GLOBAL),
        _grants(R.LEARNING_RECOMMENDATION, (A.CREATE, A.READ, A.UPDATE), S.GLOBAL),
        _grants(R.LEARNING_STATISTICS, (A.READ, A.MONITOR), S.GLOBAL),
        _grants(R.LEARNING_HELP, CRUD, S.GLOBAL),
        _grants(R.LEARNING_RESTRICTION, CRUD + (A.RESTRICT,), S.GLOBAL),
        _grants(R.MODERATION, CRUD + (A.MODERATE,), S.GLOBAL),
        _grants(R.MODERATION_ITEM, CRUD + (A.MODERATE,), S.GLOBAL),
        _grants(R.MODERATION_REPORT, CRUD, S.GLOBAL),
        _grants(R.MODERATION_WORKFLOW, CRUD, S.GLOBAL),
    ),
}


def _verify_catalog() -> None:
    """Chaque profession a une entrée non vide."""
    missing = [p.value for p in Profession if not PROFESSION_PERMISSIONS.get(p)]
    if missing:
        raise CatalogError(f"Professions sans permissions de base: {', '.join(missing)}")


_verify_catalog()


def base_permissions(profession: Profession) -> FrozenSet[Permission]:
    """Permissions de base d'une profession (sans portée)."""
    return frozenset(grant.permission for grant in PROFESSION_PERMISSIONS[profession])


ALL_PERMISSIONS: FrozenSet[Permission] = frozenset(
    Permission(resource, action) for resource in Resource for action in Action
)

# Plafond par défaut des rôles personnalisés d'une organisation:
# permissions métier des professions + administration des rôles locale
DEFAULT_ORGANIZATION_CATALOG: FrozenSet[Permission] = frozenset(
    permission
    for profession in Profession
    if profession != Profession.PLATFORM_ADMIN
    for permission in base_permissions(profession)
) | frozenset(
    {
        Permission(R.ROLE, A.CREATE),
        Permission(R.ROLE, A.READ),
        Permission(R.ROLE, A.UPDATE),
        Permission(R.ROLE, A.ASSIGN),
        Permission(R.USER, A.READ),
    }
)


# ══════════════════════════════════════════════════════════════════════════════
# CONDITIONS D'ACCÈS (PRÉDICATS DE PROPRIÉTÉ)
# ══════════════════════════════════════════════════════════════════════════════


class ConditionOperator(Enum):
    EQUALS = "equals"
    NOT_EQUALS = "not_equals"
    IN = "in"
    NOT_IN = "not_in"
    CONTAINS = "contains"
    STARTS_WITH = "starts_with"
    ENDS_WITH = "ends_with"


@dataclass(frozen=True)
class AccessCondition:
    """
    Condition évaluée sur le contexte de la requête.

    La valeur attendue vient soit d'un attribut du principal (value_from,
    ex: "user_id"), soit d'une constante (value).
    """

    field: str
    operator: ConditionOperator
    value_from: Optional[str] = None
    value: Any = None

    def evaluate(self, context: Mapping[str, Any], subject: Mapping[str, Any]) -> Optional[bool]:
        """
        Returns:
            Résultat de la condition, None si le contexte ne porte pas le champ
            (l'appelant doit alors refuser)
        """
        if self.field not in context:
            return None

        actual = context[self.field]
        expected = subject.get(self.value_from) if self.value_from else self.value
        op = self.operator

        try:
            if op == ConditionOperator.EQUALS:
                return actual == expected
            if op == ConditionOperator.NOT_EQUALS:
                return actual != expected
            if op == ConditionOperator.IN:
                return actual in (expected or ())
            if op == ConditionOperator.NOT_IN:
                return actual not in (expected or ())
            if op == ConditionOperator.CONTAINS:
                return expected in (actual or ())
            if op == ConditionOperator.STARTS_WITH:
                return str(actual).startswith(str(expected))
            if op == ConditionOperator.ENDS_WITH:
                return str(actual).endswith(str(expected))
        except TypeError:
            return False
        return False

    def describe(self) -> str:
        expected = f"principal.{self.value_from}" if self.value_from else repr(self.value)
        return f"{self.field} {self.operator.value} {expected}"


@dataclass(frozen=True)
class OwnershipRule:
    """Prédicat de propriété attaché à une permission (restreint, n'élargit jamais)."""

    permission: Permission
    conditions: Tuple[AccessCondition, ...]
    exempt_roles: FrozenSet[Profession] = frozenset({Profession.PLATFORM_ADMIN})


OWNERSHIP_RULES: Dict[Permission, OwnershipRule] = {
    rule.permission: rule
    for rule in (
        OwnershipRule(
            Permission(R.REPORT, A.READ),
            (AccessCondition("generated_by", ConditionOperator.EQUALS, value_from="user_id"),),
        ),
        OwnershipRule(
            Permission(R.SEARCH, A.READ),
            (AccessCondition("created_by", ConditionOperator.EQUALS, value_from="user_id"),),
        ),
        OwnershipRule(
            Permission(R.LEARNING_PROGRESS, A.UPDATE),
            (AccessCondition("student_id", ConditionOperator.EQUALS, value_from="user_id"),),
        ),
    )
}

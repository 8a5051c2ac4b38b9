"""
Gatekeeper: RBAC

Catalogue versionné des permissions, moteur d'autorisation et
administration des rôles.
"""

from .catalog import (
    CATALOG_VERSION,
    DEFAULT_ORGANIZATION_CATALOG,
    OWNERSHIP_RULES,
    PROFESSION_PERMISSIONS,
    AccessCondition,
    Action,
    CatalogError,
    ConditionOperator,
    OwnershipRule,
    ParseResult,
    Permission,
    PermissionGrant,
    PermissionScope,
    Profession,
    Resource,
    base_permissions,
    parse_permission,
    parse_profession,
)
from .interfaces import (
    CustomRole,
    CustomRoleAssignment,
    EffectivePermissions,
    IRoleStore,
    PermissionDecision,
    Principal,
    ProfessionalRoleAssignment,
)
from .role_store import InMemoryRoleStore, RoleStoreError
from .permission_cache import PermissionCache, PermissionCacheError
from .permission_engine import PermissionEngine
from .role_admin import RoleAdministrationService, UserRoles

__all__ = [
    "CATALOG_VERSION",
    "DEFAULT_ORGANIZATION_CATALOG",
    "OWNERSHIP_RULES",
    "PROFESSION_PERMISSIONS",
    "AccessCondition",
    "Action",
    "CatalogError",
    "ConditionOperator",
    "OwnershipRule",
    "ParseResult",
    "Permission",
    "PermissionGrant",
    "PermissionScope",
    "Profession",
    "Resource",
    "base_permissions",
    "parse_permission",
    "parse_profession",
    "CustomRole",
    "CustomRoleAssignment",
    "EffectivePermissions",
    "IRoleStore",
    "PermissionDecision",
    "Principal",
    "ProfessionalRoleAssignment",
    "InMemoryRoleStore",
    "RoleStoreError",
    "PermissionCache",
    "PermissionCacheError",
    "PermissionEngine",
    "RoleAdministrationService",
    "UserRoles",
]

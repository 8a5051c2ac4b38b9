"""
Gatekeeper RBAC - Interfaces

Modèle des affectations de rôles, rôles personnalisés, principal et
décisions d'autorisation. Contrat du store des rôles.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, FrozenSet, List, Optional

from .catalog import Permission, PermissionScope, Profession
from ..core.errors import ErrorCode


@dataclass
class ProfessionalRoleAssignment:
    """
    Affectation d'une profession à un utilisateur.

    Jamais supprimée: la révocation pose un drapeau.
    """

    id: str
    user_id: str
    role: Profession
    granted_by: str
    granted_at: datetime
    organization_id: Optional[str] = None
    expires_at: Optional[datetime] = None
    revoked: bool = False
    revoked_at: Optional[datetime] = None
    revoked_by: Optional[str] = None

    def is_usable(self, now: datetime) -> bool:
        """Ni révoquée ni expirée."""
        if self.revoked:
            return False
        return self.expires_at is None or now < self.expires_at


@dataclass
class CustomRole:
    """
    Rôle personnalisé propre à une organisation.

    Désactivation uniquement (jamais de suppression physique) pour
    préserver le sens des traces d'audit.
    """

    id: str
    organization_id: str
    name: str
    permissions: FrozenSet[Permission]
    created_by: str
    created_at: datetime
    updated_at: datetime
    denied_permissions: FrozenSet[Permission] = frozenset()
    description: str = ""
    disabled: bool = False


@dataclass
class CustomRoleAssignment:
    """Affectation d'un rôle personnalisé dans une organisation."""

    id: str
    user_id: str
    custom_role_id: str
    organization_id: str
    granted_by: str
    granted_at: datetime
    expires_at: Optional[datetime] = None
    revoked: bool = False
    revoked_at: Optional[datetime] = None
    revoked_by: Optional[str] = None

    def is_usable(self, now: datetime) -> bool:
        if self.revoked:
            return False
        return self.expires_at is None or now < self.expires_at


@dataclass(frozen=True)
class Principal:
    """Identité authentifiée d'une requête."""

    user_id: str
    active_role: Profession
    organization_id: Optional[str] = None
    session_id: Optional[str] = None

    @property
    def is_platform_admin(self) -> bool:
        return self.active_role == Profession.PLATFORM_ADMIN

    def in_organization(self, organization_id: Optional[str]) -> "Principal":
        """Même principal, autre contexte d'organisation."""
        return Principal(self.user_id, self.active_role, organization_id, self.session_id)


@dataclass
class EffectivePermissions:
    """
    Ensemble effectif résolu pour (user_id, active_role, organization_id).

    Indépendant du contexte de requête: les portées et prédicats de
    propriété sont appliqués à chaque vérification.
    """

    user_id: str
    active_role: Profession
    organization_id: Optional[str]
    grants: Dict[Permission, FrozenSet[PermissionScope]]
    denied: FrozenSet[Permission]
    sources: Dict[Permission, List[str]] = field(default_factory=dict)
    clamped: FrozenSet[Permission] = frozenset()

    def allowed(self) -> FrozenSet[Permission]:
        """Permissions octroyées et non refusées explicitement."""
        return frozenset(p for p in self.grants if p not in self.denied)

    def keys(self) -> List[str]:
        return sorted(p.key for p in self.allowed())


@dataclass
class PermissionDecision:
    """Décision d'autorisation (toujours retournée, jamais levée)."""

    allow: bool
    reason: str
    user_id: Optional[str]
    resource: str
    action: str
    timestamp: datetime
    organization_id: Optional[str] = None
    code: Optional[ErrorCode] = None
    rule_trace: List[str] = field(default_factory=list)
    context: Dict[str, Any] = field(default_factory=dict)

    @property
    def permission_key(self) -> str:
        return f"{self.resource}:{self.action}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "allow": self.allow,
            "reason": self.reason,
            "code": self.code.value if self.code else None,
            "resource": self.resource,
            "action": self.action,
            "organization_id": self.organization_id,
            "rule_trace": list(self.rule_trace),
        }


class IRoleStore(ABC):
    """
    Store durable des affectations et rôles personnalisés.

    Les enregistrements retournés sont des copies: toute modification
    passe par save_*.
    """

    # Affectations professionnelles

    @abstractmethod
    async def add_professional_assignment(self, assignment: ProfessionalRoleAssignment) -> None:
        pass

    @abstractmethod
    async def get_professional_assignments(self, user_id: str) -> List[ProfessionalRoleAssignment]:
        pass

    @abstractmethod
    async def get_professional_assignment(self, assignment_id: str) -> Optional[ProfessionalRoleAssignment]:
        pass

    @abstractmethod
    async def save_professional_assignment(self, assignment: ProfessionalRoleAssignment) -> None:
        pass

    # Rôles personnalisés

    @abstractmethod
    async def add_custom_role(self, role: CustomRole) -> None:
        pass

    @abstractmethod
    async def get_custom_role(self, role_id: str) -> Optional[CustomRole]:
        pass

    @abstractmethod
    async def save_custom_role(self, role: CustomRole) -> None:
        pass

    @abstractmethod
    async def list_custom_roles(self, organization_id: str) -> List[CustomRole]:
        pass

    @abstractmethod
    async def add_custom_assignment(self, assignment: CustomRoleAssignment) -> None:
        pass

    @abstractmethod
    async def get_custom_assignments(
        self, user_id: str, organization_id: Optional[str] = None
    ) -> List[CustomRoleAssignment]:
        pass

    @abstractmethod
    async def get_custom_assignment(self, assignment_id: str) -> Optional[CustomRoleAssignment]:
        pass

    @abstractmethod
    async def save_custom_assignment(self, assignment: CustomRoleAssignment) -> None:
        pass

    # Catalogues d'organisation

    @abstractmethod
    async def get_organization_catalog(self, organization_id: str) -> Optional[FrozenSet[Permission]]:
        """Plafond des rôles personnalisés de l'organisation (None = défaut)."""
        pass

    @abstractmethod
    async def set_organization_catalog(self, organization_id: str, permissions: FrozenSet[Permission]) -> None:
        pass

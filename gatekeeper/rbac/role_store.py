"""
Gatekeeper RBAC - In-memory Role Store

Implémentation en mémoire du store des rôles. Un store durable
(PostgreSQL) implémente la même interface en production.
"""

import asyncio
from dataclasses import replace
from typing import Dict, FrozenSet, List, Optional

from .catalog import Permission
from .interfaces import (
    CustomRole,
    CustomRoleAssignment,
    IRoleStore,
    ProfessionalRoleAssignment,
)


class RoleStoreError(Exception):
    """Erreur du store des rôles."""

    pass


class InMemoryRoleStore(IRoleStore):
    """
    Store des rôles en mémoire, écritures sérialisées par un asyncio.Lock.

    Example:
        store = InMemoryRoleStore()
        await store.add_professional_assignment(assignment)
    """

    def __init__(self) -> None:
        self._professional: Dict[str, ProfessionalRoleAssignment] = {}
        self._custom_roles: Dict[str, CustomRole] = {}
        self._custom_assignments: Dict[str, CustomRoleAssignment] = {}
        self._catalogs: Dict[str, FrozenSet[Permission]] = {}
        self._lock = asyncio.Lock()

    async def add_professional_assignment(self, assignment: ProfessionalRoleAssignment) -> None:
        async with self._lock:
            if assignment.id in self._professional:
                raise RoleStoreError(f"Affectation déjà existante: {assignment.id}")
            self._professional[assignment.id] = replace(assignment)

    async def get_professional_assignments(self, user_id: str) -> List[ProfessionalRoleAssignment]:
        return [replace(a) for a in self._professional.values() if a.user_id == user_id]

    async def get_professional_assignment(self, assignment_id: str) -> Optional[ProfessionalRoleAssignment]:
        assignment = self._professional.get(assignment_id)
        return replace(assignment) if assignment else None

    async def save_professional_assignment(self, assignment: ProfessionalRoleAssignment) -> None:
        async with self._lock:
            if assignment.id not in self._professional:
                raise RoleStoreError(f"Affectation inconnue: {assignment.id}")
            self._professional[assignment.id] = replace(assignment)

    async def add_custom_role(self, role: CustomRole) -> None:
        async with self._lock:
            if role.id in self._custom_roles:
                raise RoleStoreError(f"Rôle déjà existant: {role.id}")
            self._custom_roles[role.id] = replace(role)

    async def get_custom_role(self, role_id: str) -> Optional[CustomRole]:
        role = self._custom_roles.get(role_id)
        return replace(role) if role else None

    async def save_custom_role(self, role: CustomRole) -> None:
        async with self._lock:
            if role.id not in self._custom_roles:
                raise RoleStoreError(f"Rôle inconnu: {role.id}")
            self._custom_roles[role.id] = replace(role)

    async def list_custom_roles(self, organization_id: str) -> List[CustomRole]:
        roles = [replace(r) for r in self._custom_roles.values() if r.organization_id == organization_id]
        return sorted(roles, key=lambda r: r.created_at)

    async def add_custom_assignment(self, assignment: CustomRoleAssignment) -> None:
        async with self._lock:
            if assignment.id in self._custom_assignments:
                raise RoleStoreError(f"Affectation déjà existante: {assignment.id}")
            self._custom_assignments[assignment.id] = replace(assignment)

    async def get_custom_assignments(
        self, user_id: str, organization_id: Optional[str] = None
    ) -> List[CustomRoleAssignment]:
        return [
            replace(a)
            for a in self._custom_assignments.values()
            if a.user_id == user_id and (organization_id is None or a.organization_id == organization_id)
        ]

    async def get_custom_assignment(self, assignment_id: str) -> Optional[CustomRoleAssignment]:
        assignment = self._custom_assignments.get(assignment_id)
        return replace(assignment) if assignment else None

    async def save_custom_assignment(self, assignment: CustomRoleAssignment) -> None:
        async with self._lock:
            if assignment.id not in self._custom_assignments:
                raise RoleStoreError(f"Affectation inconnue: {assignment.id}")
            self._custom_assignments[assignment.id] = replace(assignment)

    async def get_organization_catalog(self, organization_id: str) -> Optional[FrozenSet[Permission]]:
        return self._catalogs.get(organization_id)

    async def set_organization_catalog(self, organization_id: str, permissions: FrozenSet[Permission]) -> None:
        async with self._lock:
            self._catalogs[organization_id] = frozenset(permissions)


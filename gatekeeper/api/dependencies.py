"""
Gatekeeper API - Dépendances FastAPI

Résolution du principal (jeton Bearer + en-tête X-Organization-Id) avant
toute vérification de permission.
"""

from typing import Any, Callable, Optional

from fastapi import Depends, Header, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from ..container import Gatekeeper
from ..core.errors import AuthenticationError, ErrorCode, PermissionDeniedError
from ..logging import bind_organization
from ..rbac.interfaces import Principal


bearer_scheme = HTTPBearer(auto_error=False)


def get_gatekeeper(request: Request) -> Gatekeeper:
    return request.app.state.gatekeeper


def client_ip(request: Request) -> Optional[str]:
    return request.client.host if request.client else None


async def get_principal(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    x_organization_id: Optional[str] = Header(None, alias="X-Organization-Id"),
    gatekeeper: Gatekeeper = Depends(get_gatekeeper),
) -> Principal:
    """
    Principal de la requête.

    Raises:
        AuthenticationError: Jeton absent, invalide ou session close
        PermissionDeniedError: Organisation demandée hors de portée
    """
    if credentials is None or not credentials.credentials:
        raise AuthenticationError(ErrorCode.UNAUTHENTICATED)
    principal = await gatekeeper.auth.resolve_principal(credentials.credentials, x_organization_id or None)
    bind_organization(principal.organization_id)
    return principal


def require_permission(resource: Any, action: Any) -> Callable:
    """
    Dépendance: refuse la requête (403) si le principal ne peut exercer
    resource:action dans son organisation courante.

    Example:
        @router.get("/admin/permission-cache/stats")
        async def stats(principal: Principal = Depends(require_permission("system", "monitor"))):
            ...
    """

    async def dependency(
        principal: Principal = Depends(get_principal),
        gatekeeper: Gatekeeper = Depends(get_gatekeeper),
    ) -> Principal:
        context = {"organization_id": principal.organization_id} if principal.organization_id else {}
        decision = await gatekeeper.engine.check_permission(principal, resource, action, context)
        if not decision.allow:
            raise PermissionDeniedError(decision.resource, decision.action)
        return principal

    return dependency

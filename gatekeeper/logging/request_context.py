"""
Gatekeeper Logging - Request Context

Corrélation des logs d'une même requête HTTP.

Le middleware de l'API ouvre un request_context par requête: l'identifiant
reçu en X-Correlation-ID est repris s'il s'agit d'un UUID, sinon un nouveau
est généré. Toutes les entrées de log écrites pendant la requête (y compris
dans les tâches asyncio qu'elle lance) portent cet identifiant.
"""

import re
import uuid
from contextlib import contextmanager
from typing import Iterator, Optional

from .interfaces import correlation_id_var, organization_id_var


CORRELATION_HEADER = "X-Correlation-ID"

_UUID_RE = re.compile(r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", re.IGNORECASE)


def is_valid_correlation_id(value: Optional[str]) -> bool:
    return bool(value) and bool(_UUID_RE.match(value))


def current_correlation_id() -> Optional[str]:
    return correlation_id_var.get()


@contextmanager
def request_context(
    correlation_id: Optional[str] = None, organization_id: Optional[str] = None
) -> Iterator[str]:
    """
    Pose la corrélation (et l'organisation) le temps d'un bloc.

    Un identifiant absent ou mal formé est remplacé par un UUID neuf.

    Yields:
        correlation_id effectif
    """
    effective = correlation_id if is_valid_correlation_id(correlation_id) else str(uuid.uuid4())
    correlation_token = correlation_id_var.set(effective)
    organization_token = organization_id_var.set(organization_id)
    try:
        yield effective
    finally:
        organization_id_var.reset(organization_token)
        correlation_id_var.reset(correlation_token)


def bind_organization(organization_id: Optional[str]) -> None:
    """Précise l'organisation une fois le principal résolu."""
    organization_id_var.set(organization_id)

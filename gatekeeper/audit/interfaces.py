"""
Gatekeeper Audit - Interfaces

Contrats du système d'audit: événements signés, puits d'audit
(collaborateur externe) alimenté en mode fire-and-forget.
"""
from abc import ABC, abstractmethod
from collections import deque
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Deque, Dict, List, Optional


class AuditEventType(Enum):
    """Types d'événements d'audit."""
    # Authentification
    LOGIN_SUCCESS = "login_success"
    LOGIN_FAILURE = "login_failure"
    ACCOUNT_LOCKED = "account_locked"
    ACCOUNT_UNLOCKED = "account_unlocked"
    MFA_ENABLED = "mfa_enabled"
    MFA_DISABLED = "mfa_disabled"
    MFA_FAILURE = "mfa_failure"

    # Sessions et jetons
    SESSION_CREATED = "session_created"
    SESSION_TERMINATED = "session_terminated"
    TOKEN_REFRESHED = "token_refreshed"
    TOKEN_REUSE_DETECTED = "token_reuse_detected"
    ROLE_SWITCHED = "role_switched"

    # Autorisation
    PERMISSION_DECISION = "permission_decision"

    # Administration des rôles
    CUSTOM_ROLE_CREATED = "custom_role_created"
    CUSTOM_ROLE_UPDATED = "custom_role_updated"
    CUSTOM_ROLE_DISABLED = "custom_role_disabled"
    ROLE_ASSIGNED = "role_assigned"
    ROLE_REVOKED = "role_revoked"
    ROLE_ESCALATION_DENIED = "role_escalation_denied"


@dataclass(frozen=True)
class AuditEvent:
    """
    Événement d'audit signé.

    Immutable pour garantir intégrité après signature.
    """
    event_id: str
    event_type: AuditEventType
    timestamp: datetime
    user_id: str
    organization_id: Optional[str]
    action: str
    resource: Optional[str]
    outcome: str
    metadata: Dict[str, Any]
    ip_address: Optional[str] = None
    correlation_id: Optional[str] = None
    signature: Optional[str] = None  # ECDSA-P384 base64
    hash_value: Optional[str] = None  # SHA-384 hex


class IAuditSink(ABC):
    """
    Destination des événements d'audit (collaborateur externe).

    Les implémentations peuvent échouer: l'émetteur ne propage jamais
    leurs erreurs à la requête principale.
    """

    @abstractmethod
    async def record(self, event: AuditEvent) -> None:
        """Enregistre un événement."""
        pass


class IAuditEmitter(ABC):
    """
    Interface émetteur d'événements d'audit.

    Responsabilités:
        - Création événements (uuid, horodatage UTC, métadonnées nettoyées)
        - Hachage SHA-384 et signature ECDSA-P384
        - Remise fire-and-forget au puits d'audit
    """

    @abstractmethod
    def emit(
        self,
        event_type: AuditEventType,
        user_id: str,
        action: str,
        outcome: str = "success",
        organization_id: Optional[str] = None,
        resource: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
        ip_address: Optional[str] = None,
    ) -> Optional[AuditEvent]:
        """
        Construit, signe et remet un événement sans attendre le puits.

        Returns:
            Événement signé, ou None si sa construction a échoué
        """
        pass

    @abstractmethod
    def verify_event_signature(self, event: AuditEvent) -> bool:
        """Vérifie signature cryptographique d'un événement."""
        pass

    @abstractmethod
    def compute_event_hash(self, event: AuditEvent) -> str:
        """Calcule hash SHA-384 d'un événement."""
        pass

    @abstractmethod
    async def flush(self) -> None:
        """Attend la remise des événements en cours."""
        pass


class InMemoryAuditSink(IAuditSink):
    """
    Puits d'audit en mémoire (défaut, tests).

    Seuls les max_events derniers événements sont conservés.
    """

    def __init__(self, max_events: int = 10_000) -> None:
        if max_events < 1:
            raise ValueError("max_events must be positive")
        self.events: Deque[AuditEvent] = deque(maxlen=max_events)

    async def record(self, event: AuditEvent) -> None:
        self.events.append(event)

    def of_type(self, event_type: AuditEventType) -> List[AuditEvent]:
        """Événements d'un type donné."""
        return [e for e in self.events if e.event_type == event_type]

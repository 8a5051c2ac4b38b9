"""
Gatekeeper - Taxonomie des erreurs

Codes machine stables partagés par tous les services et par la couche HTTP.
Les échecs d'identification et de jeton exposent une forme de réponse
identique quelle que soit la cause interne.
"""

from enum import Enum
from typing import Optional


class ErrorCode(Enum):
    """Codes d'erreur stables (contrat externe)."""

    INVALID_CREDENTIALS = "INVALID_CREDENTIALS"
    ACCOUNT_LOCKED = "ACCOUNT_LOCKED"
    MFA_REQUIRED = "MFA_REQUIRED"
    MFA_INVALID = "MFA_INVALID"
    TOKEN_EXPIRED = "TOKEN_EXPIRED"
    TOKEN_REVOKED = "TOKEN_REVOKED"
    TOKEN_REUSE_DETECTED = "TOKEN_REUSE_DETECTED"
    UNAUTHENTICATED = "UNAUTHENTICATED"
    PERMISSION_DENIED = "PERMISSION_DENIED"
    ROLE_NOT_GRANTED = "ROLE_NOT_GRANTED"
    ROLE_ESCALATION_DENIED = "ROLE_ESCALATION_DENIED"
    DEADLINE_EXCEEDED = "DEADLINE_EXCEEDED"
    INVALID_REQUEST = "INVALID_REQUEST"


# Codes dont la cause réelle ne doit pas être visible côté client
_PUBLIC_ALIASES = {
    ErrorCode.TOKEN_REUSE_DETECTED: ErrorCode.TOKEN_EXPIRED,
}

# Messages publics constants (pas de fuite d'information)
_PUBLIC_MESSAGES = {
    ErrorCode.INVALID_CREDENTIALS: "Invalid credentials",
    ErrorCode.ACCOUNT_LOCKED: "Account temporarily locked",
    ErrorCode.MFA_REQUIRED: "MFA code required",
    ErrorCode.MFA_INVALID: "Invalid MFA code",
    ErrorCode.TOKEN_EXPIRED: "Token expired or invalid",
    ErrorCode.TOKEN_REVOKED: "Token revoked",
    ErrorCode.UNAUTHENTICATED: "Authentication required",
    ErrorCode.ROLE_NOT_GRANTED: "Role not granted",
    ErrorCode.ROLE_ESCALATION_DENIED: "Role escalation denied",
    ErrorCode.DEADLINE_EXCEEDED: "Service temporarily unavailable",
    ErrorCode.INVALID_REQUEST: "Invalid request",
}


class GatekeeperError(Exception):
    """
    Erreur de base du gatekeeper.

    Attributes:
        code: Code interne (peut être plus précis que le code public)
        http_status: Statut HTTP associé
    """

    http_status: int = 400

    def __init__(self, code: ErrorCode, message: Optional[str] = None):
        self.code = code
        super().__init__(message or code.value)

    @property
    def public_code(self) -> ErrorCode:
        """Code exposé au client (les causes sensibles sont aliasées)."""
        return _PUBLIC_ALIASES.get(self.code, self.code)

    @property
    def public_message(self) -> str:
        """Message exposé au client."""
        return _PUBLIC_MESSAGES.get(self.public_code, str(self))

    def to_response(self) -> dict:
        """Corps de réponse HTTP."""
        return {"code": self.public_code.value, "message": self.public_message}


class AuthenticationError(GatekeeperError):
    """Échec d'identification ou de jeton (401)."""

    http_status = 401


class PermissionDeniedError(GatekeeperError):
    """
    Accès refusé (403).

    Le message nomme uniquement le couple (ressource, action) refusé.
    """

    http_status = 403

    def __init__(self, resource: str, action: str):
        self.resource = resource
        self.action = action
        super().__init__(ErrorCode.PERMISSION_DENIED, f"Permission denied: {resource}:{action}")

    @property
    def public_message(self) -> str:
        return str(self)


class RoleNotGrantedError(GatekeeperError):
    """Bascule vers un rôle non détenu (400)."""

    http_status = 400

    def __init__(self, message: Optional[str] = None):
        super().__init__(ErrorCode.ROLE_NOT_GRANTED, message)


class RoleEscalationError(GatekeeperError):
    """Tentative d'octroi au-delà de ses propres droits (403)."""

    http_status = 403

    def __init__(self, message: Optional[str] = None):
        super().__init__(ErrorCode.ROLE_ESCALATION_DENIED, message)


class DeadlineExceededError(GatekeeperError):
    """Appel store au-delà de son échéance (503)."""

    http_status = 503

    def __init__(self, operation: str, timeout: float):
        self.operation = operation
        self.timeout = timeout
        super().__init__(ErrorCode.DEADLINE_EXCEEDED, f"{operation} deadline exceeded: {timeout}s")


class InvalidRequestError(GatekeeperError):
    """
    Entrée rejetée à la frontière (422): profession, permission ou méthode
    MFA inconnue.
    """

    http_status = 422

    def __init__(self, message: Optional[str] = None):
        super().__init__(ErrorCode.INVALID_REQUEST, message)

    @property
    def public_message(self) -> str:
        return str(self)

"""
Gatekeeper Auth - Interfaces

Modèle des utilisateurs, sessions et jetons; contrats des stores
(identifiants, jetons de rafraîchissement, sessions).
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from ..rbac.catalog import Profession


@dataclass
class BackupCode:
    """Code de secours haché (usage unique)."""

    salt: str
    digest: str
    used_at: Optional[datetime] = None


@dataclass
class User:
    """
    Compte utilisateur.

    Le secret MFA est chiffré au repos et ne quitte jamais le store
    d'identifiants; le hash du mot de passe non plus.
    """

    id: str
    email: str
    password_hash: str
    created_at: datetime
    mfa_enabled: bool = False
    mfa_secret: Optional[bytes] = None
    pending_mfa_secret: Optional[bytes] = None
    backup_codes: List[BackupCode] = field(default_factory=list)
    display_name: Optional[str] = None

    def to_public(self) -> Dict[str, Any]:
        """Vue exposable (aucun secret)."""
        return {
            "id": self.id,
            "email": self.email,
            "display_name": self.display_name,
            "mfa_enabled": self.mfa_enabled,
            "created_at": self.created_at.isoformat(),
        }


class SessionState(Enum):
    ACTIVE = "active"
    TERMINATED = "terminated"


class TerminationReason(Enum):
    LOGOUT = "logout"
    LOGOUT_ALL = "logout_all"
    EXPIRED = "expired"
    TOKEN_REUSE = "token_reuse"
    ADMIN = "admin"


@dataclass
class Session:
    """
    Session utilisateur.

    TERMINATED est terminal: aucune transition n'en sort.
    """

    id: str
    user_id: str
    active_role: Profession
    created_at: datetime
    last_seen_at: datetime
    expires_at: datetime
    organization_id: Optional[str] = None
    refresh_token_id: Optional[str] = None
    state: SessionState = SessionState.ACTIVE
    termination_reason: Optional[TerminationReason] = None
    terminated_at: Optional[datetime] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None

    def is_active(self, now: datetime) -> bool:
        return self.state == SessionState.ACTIVE and now < self.expires_at

    def to_public(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "active_role": self.active_role.value,
            "organization_id": self.organization_id,
            "created_at": self.created_at.isoformat(),
            "last_seen_at": self.last_seen_at.isoformat(),
            "expires_at": self.expires_at.isoformat(),
            "state": self.state.value,
            "ip_address": self.ip_address,
            "user_agent": self.user_agent,
        }


@dataclass
class RefreshTokenRecord:
    """
    Jeton de rafraîchissement persisté (hash salé uniquement).

    Format du jeton remis au client: "<token_id>.<secret>".
    """

    token_id: str
    session_id: str
    user_id: str
    salt: str
    token_hash: str
    issued_at: datetime
    expires_at: datetime
    parent_id: Optional[str] = None
    consumed_at: Optional[datetime] = None
    replaced_by: Optional[str] = None
    revoked_at: Optional[datetime] = None


@dataclass(frozen=True)
class TokenPair:
    """Paire de jetons remise au client."""

    access_token: str
    refresh_token: str
    access_expires_at: datetime
    refresh_expires_at: datetime
    refresh_token_id: str
    session_id: str
    token_type: str = "Bearer"

    def to_public(self) -> Dict[str, Any]:
        return {
            "access": self.access_token,
            "refresh": self.refresh_token,
            "token_type": self.token_type,
            "access_expires_at": self.access_expires_at.isoformat(),
            "refresh_expires_at": self.refresh_expires_at.isoformat(),
        }


@dataclass(frozen=True)
class AccessClaims:
    """Claims validés d'un jeton d'accès."""

    user_id: str
    session_id: str
    active_role: Profession
    organization_id: Optional[str]
    issued_at: datetime
    expires_at: datetime
    jti: str


@dataclass
class AuthResult:
    """Résultat d'une authentification réussie."""

    user: User
    session: Session
    tokens: TokenPair


@dataclass(frozen=True)
class MFASetup:
    """Enrôlement MFA en attente de confirmation."""

    method: str
    qr_code: str
    backup_codes: List[str]


class ICredentialStore(ABC):
    """
    Store des identifiants.

    Les secrets (hash mot de passe, secret TOTP, codes de secours) sont
    vérifiés à l'intérieur du store et n'en sortent jamais en clair.
    """

    @abstractmethod
    async def create_user(self, email: str, password: str, display_name: Optional[str] = None) -> User:
        pass

    @abstractmethod
    async def get_user(self, user_id: str) -> Optional[User]:
        pass

    @abstractmethod
    async def get_user_by_email(self, email: str) -> Optional[User]:
        pass

    @abstractmethod
    async def verify_credentials(self, email: str, password: str) -> Optional[User]:
        """
        Vérifie email + mot de passe en temps constant.

        Returns:
            Utilisateur si le mot de passe correspond, None sinon (email
            inconnu ou mot de passe faux, indistinguables)
        """
        pass

    @abstractmethod
    async def begin_mfa_enrollment(self, user_id: str, secret: str, backup_codes: List[str]) -> None:
        """Stocke un secret TOTP en attente (chiffré) et les codes de secours (hachés)."""
        pass

    @abstractmethod
    async def confirm_mfa_enrollment(self, user_id: str, code: str, valid_window: int) -> bool:
        """Active la MFA si le code correspond au secret en attente."""
        pass

    @abstractmethod
    async def verify_totp(self, user_id: str, code: str, valid_window: int) -> bool:
        pass

    @abstractmethod
    async def consume_backup_code(self, user_id: str, code: str) -> bool:
        """Accepte un code de secours une seule fois."""
        pass

    @abstractmethod
    async def clear_mfa(self, user_id: str) -> None:
        pass

    @abstractmethod
    async def provisioning_uri(self, user_id: str, issuer_name: str) -> Optional[str]:
        """URI otpauth:// du secret en attente (pour QR code)."""
        pass


class ITokenStore(ABC):
    """
    Store des jetons de rafraîchissement.

    consume() est un compare-and-swap: un seul appelant concurrent gagne.
    """

    @abstractmethod
    async def add(self, record: RefreshTokenRecord) -> None:
        pass

    @abstractmethod
    async def get(self, token_id: str) -> Optional[RefreshTokenRecord]:
        pass

    @abstractmethod
    async def consume(self, token_id: str, replaced_by: str, now: datetime) -> bool:
        """
        Marque le jeton consommé s'il ne l'est pas déjà et n'est pas révoqué.

        Returns:
            True si cet appel a gagné la rotation
        """
        pass

    @abstractmethod
    async def revoke_session(self, session_id: str, now: datetime) -> int:
        """Révoque tous les jetons d'une session. Returns: nombre révoqués."""
        pass

    @abstractmethod
    async def purge_expired(self, now: datetime) -> int:
        """Supprime les enregistrements échus. Returns: nombre supprimés."""
        pass


class ISessionStore(ABC):
    """Store partagé des sessions (aucune affinité d'instance)."""

    @abstractmethod
    async def add(self, session: Session) -> None:
        pass

    @abstractmethod
    async def get(self, session_id: str) -> Optional[Session]:
        pass

    @abstractmethod
    async def save(self, session: Session) -> None:
        pass

    @abstractmethod
    async def update(self, session_id: str, **changes: Any) -> Session:
        """
        Modifie les seuls champs donnés, sur l'état courant du store.

        Deux écritures concurrentes portant sur des champs distincts
        (bascule de rôle, rotation, activité) ne s'écrasent pas.
        """
        pass

    @abstractmethod
    async def list_for_user(self, user_id: str) -> List[Session]:
        pass

    @abstractmethod
    async def list_active(self) -> List[Session]:
        pass

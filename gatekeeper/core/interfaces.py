"""
Gatekeeper - Core Interfaces
Contrats et modèles de configuration du module Core.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Callable, ClassVar, List, Literal, Optional

from pydantic import BaseModel, Field, field_validator, model_validator


# ══════════════════════════════════════════════════════════════════════════════
# CONFIGURATION
# ══════════════════════════════════════════════════════════════════════════════


class LockoutPolicy(BaseModel):
    """Seuil d'échecs dans une fenêtre glissante avant verrouillage."""

    max_failures: int = Field(5, ge=1)
    window_seconds: int = Field(60, ge=1)
    lockout_seconds: int = Field(900, ge=1)


class LockoutConfig(BaseModel):
    """Politiques de verrouillage (compteurs séparés)."""

    password: LockoutPolicy = Field(default_factory=LockoutPolicy)
    mfa: LockoutPolicy = Field(
        default_factory=lambda: LockoutPolicy(max_failures=5, window_seconds=300, lockout_seconds=900)
    )
    source_ip: LockoutPolicy = Field(
        default_factory=lambda: LockoutPolicy(max_failures=50, window_seconds=300, lockout_seconds=900)
    )


class TokenConfig(BaseModel):
    """Durées de vie des jetons."""

    MAX_ACCESS_TOKEN_SECONDS: ClassVar[int] = 900
    MIN_REFRESH_TOKEN_DAYS: ClassVar[int] = 7
    MAX_REFRESH_TOKEN_DAYS: ClassVar[int] = 30

    access_token_seconds: int = 900
    refresh_token_days: int = 14
    issuer: str = "gatekeeper"
    algorithm: str = "ES384"
    signing_key_path: Optional[str] = None

    @field_validator("access_token_seconds")
    @classmethod
    def _check_access_lifetime(cls, value: int) -> int:
        if value <= 0 or value > cls.MAX_ACCESS_TOKEN_SECONDS:
            raise ValueError(f"access_token_seconds must be within 1..{cls.MAX_ACCESS_TOKEN_SECONDS}")
        return value

    @field_validator("refresh_token_days")
    @classmethod
    def _check_refresh_lifetime(cls, value: int) -> int:
        if value < cls.MIN_REFRESH_TOKEN_DAYS or value > cls.MAX_REFRESH_TOKEN_DAYS:
            raise ValueError(
                f"refresh_token_days must be within {cls.MIN_REFRESH_TOKEN_DAYS}..{cls.MAX_REFRESH_TOKEN_DAYS}"
            )
        return value


class SessionConfig(BaseModel):
    """Durée de vie absolue des sessions."""

    session_days: int = Field(30, ge=1)


class MFAConfig(BaseModel):
    """Paramètres TOTP."""

    issuer_name: str = "JuristDZ"
    valid_window: int = Field(1, ge=0, le=1)
    backup_code_count: int = Field(10, ge=1, le=20)
    encryption_key: Optional[str] = None


class PasswordConfig(BaseModel):
    """Hachage bcrypt des mots de passe."""

    bcrypt_rounds: int = Field(12, ge=4, le=31)
    min_length: int = Field(8, ge=1)


class PermissionCacheConfig(BaseModel):
    """Cache des permissions effectives."""

    ttl_seconds: int = Field(60, ge=1, le=900)


class TimeoutConfig(BaseModel):
    """Échéances des appels stores (secondes)."""

    credential_store: float = 5.0
    token_store: float = 5.0
    session_store: float = 5.0
    role_store: float = 5.0


class LoggingConfig(BaseModel):
    """Logs JSON des services."""

    level: Literal["DEBUG", "INFO", "WARN", "ERROR", "CRITICAL"] = "INFO"
    mask_sensitive: bool = True
    extra_sensitive_keys: List[str] = Field(default_factory=list)
    max_entries: int = Field(10_000, ge=100)


class GatekeeperConfig(BaseModel):
    """Configuration complète du gatekeeper."""

    version: str = "1"
    lockout: LockoutConfig = Field(default_factory=LockoutConfig)
    tokens: TokenConfig = Field(default_factory=TokenConfig)
    sessions: SessionConfig = Field(default_factory=SessionConfig)
    mfa: MFAConfig = Field(default_factory=MFAConfig)
    passwords: PasswordConfig = Field(default_factory=PasswordConfig)
    permission_cache: PermissionCacheConfig = Field(default_factory=PermissionCacheConfig)
    timeouts: TimeoutConfig = Field(default_factory=TimeoutConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @model_validator(mode="after")
    def _check_session_outlives_refresh(self) -> "GatekeeperConfig":
        if self.sessions.session_days < self.tokens.refresh_token_days:
            raise ValueError("sessions.session_days must be >= tokens.refresh_token_days")
        return self


# ══════════════════════════════════════════════════════════════════════════════
# INTERFACES
# ══════════════════════════════════════════════════════════════════════════════


class IConfigLoader(ABC):
    """Charge et valide la configuration."""

    @abstractmethod
    def load(self, path: Optional[str] = None) -> GatekeeperConfig:
        """
        Charge la configuration.

        Raises:
            ConfigIntegrityError: Fichier absent, YAML invalide ou valeurs hors limites
        """
        pass


class ICryptoProvider(ABC):
    """Opérations cryptographiques."""

    @abstractmethod
    def sign(self, data: bytes, key_id: str) -> bytes:
        """Signe des données avec ECDSA-P384."""
        pass

    @abstractmethod
    def verify_signature(self, data: bytes, signature: bytes, key_id: str) -> bool:
        """Vérifie une signature ECDSA-P384."""
        pass

    @abstractmethod
    def hash(self, data: bytes) -> str:
        """Calcule hash SHA-384 (hex, 96 caractères)."""
        pass

    @abstractmethod
    def hash_secret(self, secret: str, salt: Optional[str] = None) -> tuple[str, str]:
        """
        Hache un secret avec sel.

        Returns:
            (salt, digest hex)
        """
        pass

    @abstractmethod
    def verify_secret(self, secret: str, salt: str, digest: str) -> bool:
        """Compare un secret à son hash (temps constant)."""
        pass

    @abstractmethod
    def encrypt(self, plaintext: str) -> bytes:
        """Chiffre une donnée au repos."""
        pass

    @abstractmethod
    def decrypt(self, ciphertext: bytes) -> str:
        """Déchiffre une donnée au repos."""
        pass


# ══════════════════════════════════════════════════════════════════════════════
# HORLOGE
# ══════════════════════════════════════════════════════════════════════════════


Clock = Callable[[], datetime]


def utc_now() -> datetime:
    """Horloge par défaut (UTC, timezone-aware)."""
    return datetime.now(timezone.utc)

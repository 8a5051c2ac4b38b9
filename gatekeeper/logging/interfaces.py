"""
Gatekeeper Logging - Interfaces

Contrats du logging JSON des services.

Chaque entrée porte: timestamp (ISO 8601 UTC), level, correlation_id,
organization_id, logger, message. Le contexte de requête (corrélation,
organisation) est porté par des ContextVar posées par la couche HTTP, et
chaque tâche asyncio en hérite.
"""

import json
from abc import ABC, abstractmethod
from contextvars import ContextVar
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional


PLATFORM_SCOPE = "platform"

correlation_id_var: ContextVar[Optional[str]] = ContextVar("gatekeeper_correlation_id", default=None)
organization_id_var: ContextVar[Optional[str]] = ContextVar("gatekeeper_organization_id", default=None)


class LogLevel(Enum):
    """Niveaux, du moins au plus sévère."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARN = "WARN"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"

    @property
    def severity(self) -> int:
        return _SEVERITY.index(self)

    def enabled_for(self, threshold: "LogLevel") -> bool:
        return self.severity >= threshold.severity


_SEVERITY = list(LogLevel)


@dataclass
class LogEntry:
    """Entrée écrite (secrets déjà masqués dans fields)."""

    timestamp: str
    level: LogLevel
    correlation_id: str
    organization_id: str
    logger: str
    message: str
    fields: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "timestamp": self.timestamp,
            "level": self.level.value,
            "correlation_id": self.correlation_id,
            "organization_id": self.organization_id,
            "logger": self.logger,
            "message": self.message,
        }
        if self.fields:
            data["fields"] = self.fields
        return data

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), ensure_ascii=False, default=str)


@dataclass
class LogConfig:
    """
    Réglages d'un logger.

    Construit par le conteneur à partir de GatekeeperConfig.logging.
    """

    min_level: LogLevel = LogLevel.INFO
    mask_sensitive: bool = True
    max_entries: int = 10_000
    default_organization_id: str = PLATFORM_SCOPE


class IStructuredLogger(ABC):
    """Logger injecté dans chaque service."""

    @abstractmethod
    def log(self, level: LogLevel, message: str, **fields: Any) -> Optional[LogEntry]:
        """
        Écrit une entrée.

        Returns:
            L'entrée écrite, ou None si le niveau est filtré
        """
        pass

    @abstractmethod
    def debug(self, message: str, **fields: Any) -> Optional[LogEntry]:
        pass

    @abstractmethod
    def info(self, message: str, **fields: Any) -> Optional[LogEntry]:
        pass

    @abstractmethod
    def warn(self, message: str, **fields: Any) -> Optional[LogEntry]:
        pass

    @abstractmethod
    def error(self, message: str, **fields: Any) -> Optional[LogEntry]:
        pass

    @abstractmethod
    def critical(self, message: str, **fields: Any) -> Optional[LogEntry]:
        pass

    @abstractmethod
    def with_context(self, **bound: Any) -> "IStructuredLogger":
        """Logger enfant qui ajoute des champs fixes à chaque entrée."""
        pass

    @abstractmethod
    def get_entries(self) -> List[LogEntry]:
        pass


class ISensitiveMasker(ABC):
    """
    Masquage des secrets d'identification.

    Deux niveaux: par nom de champ (mot de passe, code MFA...) et par forme
    de valeur (JWT, jeton de rafraîchissement, en-tête Bearer, URI otpauth),
    pour les secrets glissés dans un champ anodin.
    """

    SENSITIVE_KEYS: FrozenSet[str] = frozenset(
        {
            "password",
            "passwd",
            "token",
            "secret",
            "mfa_code",
            "mfacode",
            "otp",
            "backup_code",
            "private_key",
            "authorization",
            "cookie",
            "qr_code",
            "provisioning_uri",
        }
    )

    MASK_VALUE: str = "***MASKED***"

    @abstractmethod
    def mask(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """Copie de data, secrets remplacés."""
        pass

    @abstractmethod
    def is_sensitive_key(self, key: str) -> bool:
        pass

    @abstractmethod
    def mask_value(self, value: str) -> str:
        """Remplace les secrets reconnaissables dans une chaîne."""
        pass

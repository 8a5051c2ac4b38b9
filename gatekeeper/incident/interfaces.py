"""
Gatekeeper Incident - Interfaces

Contrats du verrouillage de comptes après échecs d'authentification.

Les compteurs sont partagés (store injecté, jamais la mémoire d'une
instance) et indexés par email normalisé, et par adresse IP source.
Les échecs de mot de passe et les échecs MFA ont des compteurs distincts.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import List, Optional

from ..core.interfaces import LockoutPolicy


class AttemptKind(Enum):
    """Compteurs d'échecs indépendants."""

    PASSWORD = "password"
    MFA = "mfa"
    SOURCE_IP = "source_ip"


@dataclass
class AttemptCounter:
    """
    Compteur d'échecs sur une fenêtre glissante.

    failures garde l'horodatage des échecs encore dans la fenêtre (et tous
    ceux reçus pendant un verrou). Un verrou posé expire seul
    (locked_until), ce qui ouvre un nouveau cycle.
    """

    kind: AttemptKind
    key: str
    failures: List[datetime] = field(default_factory=list)
    locked_until: Optional[datetime] = None
    last_failure: Optional[datetime] = None

    @property
    def count(self) -> int:
        return len(self.failures)

    def is_locked(self, now: datetime) -> bool:
        return self.locked_until is not None and now < self.locked_until

    def lock_expired(self, now: datetime) -> bool:
        return self.locked_until is not None and now >= self.locked_until

    def live_count(self, now: datetime, policy: LockoutPolicy) -> int:
        """Échecs qui comptent encore à l'instant now."""
        if self.is_locked(now):
            return self.count
        if self.lock_expired(now):
            return 0
        window = timedelta(seconds=policy.window_seconds)
        return sum(1 for failed_at in self.failures if now - failed_at < window)


@dataclass
class AccountLockStatus:
    """Statut de verrouillage d'un compte."""

    email: str
    locked: bool
    locked_until: Optional[datetime]
    failure_count: int
    mfa_failure_count: int
    last_failure: Optional[datetime]


class ILockoutStore(ABC):
    """
    Store partagé des compteurs d'échecs.

    increment() est l'unité atomique: incrément, contrôle du seuil et pose
    du verrou sont appliqués ensemble ou pas du tout.
    """

    @abstractmethod
    async def increment(
        self, kind: AttemptKind, key: str, policy: LockoutPolicy, now: datetime
    ) -> AttemptCounter:
        """
        Enregistre un échec et verrouille si le seuil est atteint.

        Returns:
            Copie du compteur après mise à jour
        """
        pass

    @abstractmethod
    async def get(self, kind: AttemptKind, key: str) -> Optional[AttemptCounter]:
        """Copie du compteur courant (None si absent)."""
        pass

    @abstractmethod
    async def reset(self, kind: AttemptKind, key: str) -> None:
        """Remet le compteur à zéro et lève le verrou."""
        pass


class IAccountLocker(ABC):
    """
    Interface de verrouillage de comptes.

    Responsabilités:
        - Enregistrement des échecs mot de passe / MFA
        - Verrouillage automatique borné dans le temps
        - Déverrouillage automatique à expiration
        - Déverrouillage manuel par admin (accélérateur)
    """

    @abstractmethod
    async def is_locked(self, email: str, source_ip: Optional[str] = None) -> bool:
        """Vrai si un verrou (compte ou IP) est en vigueur."""
        pass

    @abstractmethod
    async def record_password_failure(
        self, email: str, source_ip: Optional[str] = None, user_id: Optional[str] = None
    ) -> AccountLockStatus:
        """Enregistre un échec de mot de passe."""
        pass

    @abstractmethod
    async def record_mfa_failure(
        self, email: str, source_ip: Optional[str] = None, user_id: Optional[str] = None
    ) -> AccountLockStatus:
        """Enregistre un échec MFA (compteur séparé)."""
        pass

    @abstractmethod
    async def reset(self, email: str) -> None:
        """Remet les compteurs du compte à zéro (après authentification réussie)."""
        pass

    @abstractmethod
    async def unlock(self, email: str, unlocked_by: str) -> bool:
        """Déverrouille manuellement un compte (action admin)."""
        pass

    @abstractmethod
    async def get_status(self, email: str) -> AccountLockStatus:
        """Statut détaillé d'un compte."""
        pass

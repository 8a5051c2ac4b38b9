"""
Gatekeeper - Timeout Manager

Échéances explicites sur les appels aux stores.

Un appel lent au store d'identifiants ne doit jamais bloquer une requête
indéfiniment : chaque appel est exécuté sous asyncio.wait_for.
"""

import asyncio
from enum import Enum
from typing import Awaitable, Dict, Optional, TypeVar

from .errors import DeadlineExceededError
from .interfaces import TimeoutConfig


T = TypeVar("T")


class StoreKind(Enum):
    """Stores soumis à échéance."""

    CREDENTIAL = "credential_store"
    TOKEN = "token_store"
    SESSION = "session_store"
    ROLE = "role_store"


class InvalidTimeoutError(Exception):
    """Configuration timeout invalide."""

    pass


class TimeoutManager:
    """
    Gestion centralisée des échéances d'appels stores.

    Example:
        timeouts = TimeoutManager(config.timeouts)
        user = await timeouts.run(StoreKind.CREDENTIAL, store.get_user_by_email(email))
    """

    MAX_STORE_TIMEOUT: float = 30.0

    def __init__(self, config: Optional[TimeoutConfig] = None) -> None:
        """
        Args:
            config: Échéances par store (défaut: 5s chacune)

        Raises:
            InvalidTimeoutError: Si une échéance est hors limites
        """
        config = config or TimeoutConfig()
        self._timeouts: Dict[StoreKind, float] = {}
        for kind in StoreKind:
            self.set_timeout(kind, getattr(config, kind.value))

    def get_timeout(self, kind: StoreKind) -> float:
        """Échéance configurée pour un store (secondes)."""
        return self._timeouts[kind]

    def set_timeout(self, kind: StoreKind, value: float) -> None:
        """
        Configure l'échéance d'un store.

        Raises:
            InvalidTimeoutError: Si valeur <= 0 ou > MAX_STORE_TIMEOUT
        """
        if not self.validate_timeout(value):
            raise InvalidTimeoutError(
                f"{kind.value} timeout ({value}s) must be within (0, {self.MAX_STORE_TIMEOUT}]"
            )
        self._timeouts[kind] = float(value)

    def validate_timeout(self, value: float) -> bool:
        """Vérifie qu'une échéance respecte les limites."""
        return 0 < value <= self.MAX_STORE_TIMEOUT

    async def run(self, kind: StoreKind, awaitable: Awaitable[T], shield: bool = False) -> T:
        """
        Exécute un appel store sous échéance.

        Args:
            kind: Store appelé
            awaitable: Appel à exécuter
            shield: Protège l'appel de l'annulation (écritures qui doivent
                aboutir même si le client se déconnecte)

        Returns:
            Résultat de l'appel

        Raises:
            DeadlineExceededError: Si l'échéance est dépassée
        """
        timeout = self._timeouts[kind]
        task = asyncio.ensure_future(awaitable)
        try:
            if shield:
                return await asyncio.wait_for(asyncio.shield(task), timeout=timeout)
            return await asyncio.wait_for(task, timeout=timeout)
        except asyncio.TimeoutError:
            raise DeadlineExceededError(kind.value, timeout)

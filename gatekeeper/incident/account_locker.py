"""
Gatekeeper Incident - Gestion du verrouillage de comptes

Verrouillage temporaire après échecs d'authentification répétés.
Les verrous sont toujours bornés dans le temps et se lèvent seuls.
"""

from datetime import datetime
from typing import Optional

from .interfaces import (
    AccountLockStatus,
    AttemptCounter,
    AttemptKind,
    IAccountLocker,
    ILockoutStore,
)
from ..audit.interfaces import AuditEventType, IAuditEmitter
from ..core.interfaces import Clock, LockoutConfig, LockoutPolicy, utc_now
from ..core.timeout_manager import StoreKind, TimeoutManager
from ..logging import StructuredLogger


class AccountLockerError(Exception):
    """Erreur du gestionnaire de verrouillage."""

    pass


def normalize_email(email: str) -> str:
    """Clé de compteur: email sans espaces, en minuscules."""
    return (email or "").strip().lower()


class AccountLocker(IAccountLocker):
    """
    Verrouillage de comptes après échecs d'authentification.

    Trois compteurs indépendants:
        - mot de passe, par email (5 échecs / 60 s -> 15 min)
        - MFA, par email (5 échecs / 5 min -> 15 min)
        - IP source (50 échecs / 5 min -> 15 min)

    Les emails inconnus sont comptés comme les autres: l'état de verrou ne
    révèle pas l'existence d'un compte.

    Example:
        locker = AccountLocker(store, timeouts, audit, logger)
        if await locker.is_locked("alice@example.com", "10.0.0.1"):
            ...
    """

    def __init__(
        self,
        store: ILockoutStore,
        timeouts: TimeoutManager,
        audit_emitter: IAuditEmitter,
        logger: StructuredLogger,
        config: Optional[LockoutConfig] = None,
        clock: Clock = utc_now,
    ) -> None:
        """
        Args:
            store: Store partagé des compteurs
            timeouts: Échéances des appels store
            audit_emitter: Émetteur pour les événements d'audit
            logger: Logger structuré
            config: Politiques de verrouillage (défaut: LockoutConfig())
            clock: Horloge injectable
        """
        self._store = store
        self._timeouts = timeouts
        self._audit = audit_emitter
        self._logger = logger
        self._config = config or LockoutConfig()
        self._clock = clock

    async def is_locked(self, email: str, source_ip: Optional[str] = None) -> bool:
        """
        Vérifie si un verrou est en vigueur pour ce compte ou cette IP.

        Auto-déverrouillage: un verrou expiré n'est plus pris en compte.
        """
        now = self._clock()
        key = normalize_email(email)

        for kind in (AttemptKind.PASSWORD, AttemptKind.MFA):
            counter = await self._get(kind, key)
            if counter and counter.is_locked(now):
                return True

        if source_ip:
            counter = await self._get(AttemptKind.SOURCE_IP, source_ip)
            if counter and counter.is_locked(now):
                return True

        return False

    async def record_password_failure(
        self, email: str, source_ip: Optional[str] = None, user_id: Optional[str] = None
    ) -> AccountLockStatus:
        """
        Enregistre un échec de mot de passe et verrouille si nécessaire.

        Returns:
            Statut du compte après enregistrement
        """
        return await self._record_failure(AttemptKind.PASSWORD, self._config.password, email, source_ip, user_id)

    async def record_mfa_failure(
        self, email: str, source_ip: Optional[str] = None, user_id: Optional[str] = None
    ) -> AccountLockStatus:
        """Enregistre un échec MFA (compteur séparé du mot de passe)."""
        return await self._record_failure(AttemptKind.MFA, self._config.mfa, email, source_ip, user_id)

    async def reset(self, email: str) -> None:
        """
        Réinitialise les compteurs du compte (après auth réussie).

        Le compteur IP n'est pas remis à zéro: il protège contre le
        balayage de plusieurs comptes depuis une même source.
        """
        key = normalize_email(email)
        for kind in (AttemptKind.PASSWORD, AttemptKind.MFA):
            await self._timeouts.run(StoreKind.CREDENTIAL, self._store.reset(kind, key), shield=True)

    async def unlock(self, email: str, unlocked_by: str) -> bool:
        """
        Déverrouille manuellement un compte (action admin).

        Returns:
            True si le compte était verrouillé
        """
        was_locked = await self.is_locked(email)
        await self.reset(email)

        if was_locked:
            self._logger.info("Account unlocked by admin", unlocked_by=unlocked_by)
            self._audit.emit(
                AuditEventType.ACCOUNT_UNLOCKED,
                user_id=unlocked_by,
                action="unlock_account",
                resource=normalize_email(email),
            )
        return was_locked

    async def get_status(self, email: str) -> AccountLockStatus:
        """Statut détaillé d'un compte (verrou, compteurs courants)."""
        now = self._clock()
        key = normalize_email(email)
        password = await self._get(AttemptKind.PASSWORD, key)
        mfa = await self._get(AttemptKind.MFA, key)
        return self._status(key, now, password, mfa)

    async def get_remaining_attempts(self, email: str) -> int:
        """Tentatives de mot de passe restantes avant verrouillage."""
        status = await self.get_status(email)
        if status.locked:
            return 0
        return max(0, self._config.password.max_failures - status.failure_count)

    async def _record_failure(
        self,
        kind: AttemptKind,
        policy: LockoutPolicy,
        email: str,
        source_ip: Optional[str],
        user_id: Optional[str],
    ) -> AccountLockStatus:
        now = self._clock()
        key = normalize_email(email)
        if not key:
            raise AccountLockerError("email obligatoire")

        # Incrément + seuil: unité atomique protégée de l'annulation
        counter = await self._timeouts.run(
            StoreKind.CREDENTIAL, self._store.increment(kind, key, policy, now), shield=True
        )
        if source_ip:
            ip_counter = await self._timeouts.run(
                StoreKind.CREDENTIAL,
                self._store.increment(AttemptKind.SOURCE_IP, source_ip, self._config.source_ip, now),
                shield=True,
            )
            if _crossed(ip_counter, self._config.source_ip, now):
                self._logger.warn("Source IP locked", source_ip=source_ip, failure_count=ip_counter.count)

        if _crossed(counter, policy, now):
            self._logger.warn(
                "Account locked",
                email=key,
                counter=kind.value,
                failure_count=counter.count,
                locked_until=counter.locked_until.isoformat(),
            )
            self._audit.emit(
                AuditEventType.ACCOUNT_LOCKED,
                user_id=user_id or "unknown",
                action="lock_account",
                outcome="locked",
                resource=key,
                metadata={"counter": kind.value, "failure_count": counter.count},
                ip_address=source_ip,
            )

        other_kind = AttemptKind.MFA if kind == AttemptKind.PASSWORD else AttemptKind.PASSWORD
        other = await self._get(other_kind, key)
        if kind == AttemptKind.PASSWORD:
            return self._status(key, now, counter, other)
        return self._status(key, now, other, counter)

    async def _get(self, kind: AttemptKind, key: str) -> Optional[AttemptCounter]:
        return await self._timeouts.run(StoreKind.CREDENTIAL, self._store.get(kind, key))

    def _status(
        self,
        key: str,
        now: datetime,
        password: Optional[AttemptCounter],
        mfa: Optional[AttemptCounter],
    ) -> AccountLockStatus:
        locks = [c.locked_until for c in (password, mfa) if c and c.is_locked(now)]
        failures = [c.last_failure for c in (password, mfa) if c and c.last_failure]
        return AccountLockStatus(
            email=key,
            locked=bool(locks),
            locked_until=max(locks) if locks else None,
            failure_count=password.live_count(now, self._config.password) if password else 0,
            mfa_failure_count=mfa.live_count(now, self._config.mfa) if mfa else 0,
            last_failure=max(failures) if failures else None,
        )


def _crossed(counter: AttemptCounter, policy: LockoutPolicy, now: datetime) -> bool:
    """Vrai si cet échec vient de franchir le seuil."""
    return counter.count == policy.max_failures and counter.is_locked(now)

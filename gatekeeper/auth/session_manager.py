"""
Gatekeeper Auth - Session Manager

Cycle de vie des sessions (multi-appareils, multi-rôles).

États:
    ACTIVE -> ACTIVE       (refresh, bascule de rôle, activité)
    ACTIVE -> TERMINATED   (logout, expiration, rejeu de jeton, admin)

TERMINATED est terminal. Toute terminaison révoque les jetons de la session.
"""

import uuid
from datetime import timedelta
from typing import Any, List, Optional, Tuple

from .interfaces import ISessionStore, Session, SessionState, TerminationReason, TokenPair
from .session_store import SessionStoreError
from .token_service import TokenReuseError, TokenService
from ..audit.interfaces import AuditEventType, IAuditEmitter
from ..core.errors import AuthenticationError, ErrorCode, RoleNotGrantedError
from ..core.interfaces import Clock, SessionConfig, utc_now
from ..core.timeout_manager import StoreKind, TimeoutManager
from ..logging import StructuredLogger
from ..rbac.catalog import Profession, parse_profession
from ..rbac.permission_engine import PermissionEngine


class SessionManagerError(Exception):
    """Erreur du gestionnaire de sessions."""

    pass


class SessionManager:
    """
    Gestionnaire de sessions sans état (tout l'état vit dans le store).

    Example:
        sessions = SessionManager(store, tokens, engine, timeouts, audit, logger)
        session, pair = await sessions.create_session(user.id, Profession.LAWYER)
        await sessions.switch_role(session.id, "notary")
    """

    def __init__(
        self,
        session_store: ISessionStore,
        token_service: TokenService,
        engine: PermissionEngine,
        timeouts: TimeoutManager,
        audit_emitter: IAuditEmitter,
        logger: StructuredLogger,
        config: Optional[SessionConfig] = None,
        clock: Clock = utc_now,
    ) -> None:
        self._store = session_store
        self._tokens = token_service
        self._engine = engine
        self._timeouts = timeouts
        self._audit = audit_emitter
        self._logger = logger
        self._config = config or SessionConfig()
        self._clock = clock

    async def create_session(
        self,
        user_id: str,
        active_role: Profession,
        organization_id: Optional[str] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> Tuple[Session, TokenPair]:
        """
        Ouvre une session et émet sa première paire de jetons.

        Returns:
            (session, jetons)
        """
        now = self._clock()
        session = Session(
            id=str(uuid.uuid4()),
            user_id=user_id,
            active_role=active_role,
            created_at=now,
            last_seen_at=now,
            expires_at=now + timedelta(days=self._config.session_days),
            organization_id=organization_id,
            ip_address=ip_address,
            user_agent=user_agent,
        )
        await self._timeouts.run(StoreKind.SESSION, self._store.add(session), shield=True)

        pair = await self._tokens.issue(user_id, session.id, active_role, organization_id)
        try:
            session = await self._update(session.id, refresh_token_id=pair.refresh_token_id)
        except SessionStoreError as e:
            await self._tokens.revoke(session.id)
            raise SessionManagerError(f"Session non enregistrée: {e}")

        self._logger.info(
            "Session created",
            user_id=user_id,
            session_id=session.id,
            active_role=active_role.value,
            organization_id=organization_id,
        )
        self._audit.emit(
            AuditEventType.SESSION_CREATED,
            user_id=user_id,
            action="create_session",
            organization_id=organization_id,
            metadata={"session_id": session.id, "active_role": active_role.value},
            ip_address=ip_address,
        )
        return session, pair

    async def get_session(self, session_id: str) -> Optional[Session]:
        return await self._timeouts.run(StoreKind.SESSION, self._store.get(session_id))

    async def get_active_session(self, session_id: str) -> Session:
        """
        Session ACTIVE et non expirée.

        Une session arrivée à échéance est terminée au passage.

        Raises:
            AuthenticationError: TOKEN_REVOKED (terminée ou inconnue),
                TOKEN_EXPIRED (échue)
        """
        session = await self.get_session(session_id)
        if session is None or session.state != SessionState.ACTIVE:
            raise AuthenticationError(ErrorCode.TOKEN_REVOKED)
        if not session.is_active(self._clock()):
            await self.terminate_session(session.id, TerminationReason.EXPIRED)
            raise AuthenticationError(ErrorCode.TOKEN_EXPIRED)
        return session

    async def refresh(self, refresh_token: str) -> Tuple[Session, TokenPair]:
        """
        Rotation du jeton de rafraîchissement.

        Un rejeu termine la session (raison TOKEN_REUSE) avant de remonter
        l'erreur.

        Raises:
            AuthenticationError: Jeton expiré, révoqué ou rejoué
        """
        try:
            pair = await self._tokens.refresh(refresh_token)
        except TokenReuseError as e:
            await self.terminate_session(e.session_id, TerminationReason.TOKEN_REUSE)
            raise

        try:
            record_session = await self._update(
                pair.session_id, refresh_token_id=pair.refresh_token_id, last_seen_at=self._clock()
            )
        except SessionStoreError:
            # Terminée entre la rotation et l'enregistrement
            await self._tokens.revoke(pair.session_id)
            raise AuthenticationError(ErrorCode.TOKEN_REVOKED)
        return record_session, pair

    async def terminate_session(
        self,
        session_id: str,
        reason: TerminationReason = TerminationReason.LOGOUT,
        terminated_by: Optional[str] = None,
    ) -> bool:
        """
        Termine une session et révoque ses jetons.

        Returns:
            True si la session était encore active
        """
        session = await self.get_session(session_id)
        if session is None:
            return False

        # Les jetons sont révoqués même si la session est déjà terminée
        await self._tokens.revoke(session_id)
        if session.state == SessionState.TERMINATED:
            return False

        try:
            session = await self._update(
                session_id,
                state=SessionState.TERMINATED,
                termination_reason=reason,
                terminated_at=self._clock(),
            )
        except SessionStoreError:
            # Terminée par un appel concurrent
            return False

        log = self._logger.warn if reason == TerminationReason.TOKEN_REUSE else self._logger.info
        log("Session terminated", user_id=session.user_id, session_id=session_id, reason=reason.value)
        self._audit.emit(
            AuditEventType.SESSION_TERMINATED,
            user_id=terminated_by or session.user_id,
            action="terminate_session",
            organization_id=session.organization_id,
            metadata={"session_id": session_id, "reason": reason.value, "owner_id": session.user_id},
        )
        return True

    async def logout(self, session_id: str) -> bool:
        return await self.terminate_session(session_id, TerminationReason.LOGOUT)

    async def terminate_all_user_sessions(
        self,
        user_id: str,
        reason: TerminationReason = TerminationReason.LOGOUT_ALL,
        except_session_id: Optional[str] = None,
    ) -> int:
        """
        Déconnexion de tous les appareils.

        Returns:
            Nombre de sessions terminées
        """
        count = 0
        for session in await self.get_user_sessions(user_id):
            if session.id == except_session_id:
                continue
            if await self.terminate_session(session.id, reason):
                count += 1
        return count

    async def get_user_sessions(self, user_id: str, include_terminated: bool = False) -> List[Session]:
        """Sessions d'un utilisateur (vue multi-appareils)."""
        sessions = await self._timeouts.run(StoreKind.SESSION, self._store.list_for_user(user_id))
        if include_terminated:
            return sessions
        now = self._clock()
        return [s for s in sessions if s.is_active(now)]

    async def sweep_expired(self) -> int:
        """
        Termine les sessions arrivées à échéance et purge les jetons de
        rafraîchissement échus.

        Returns:
            Nombre de sessions terminées
        """
        now = self._clock()
        count = 0
        for session in await self._timeouts.run(StoreKind.SESSION, self._store.list_active()):
            if session.expires_at <= now and await self.terminate_session(session.id, TerminationReason.EXPIRED):
                count += 1
        if count:
            self._logger.info("Expired sessions swept", terminated=count)
        await self._tokens.purge_expired()
        return count

    async def touch(self, session_id: str) -> Session:
        """
        Marque l'activité d'une session (chaque requête authentifiée).

        Raises:
            AuthenticationError: Session non active
        """
        await self.get_active_session(session_id)
        try:
            return await self._update(session_id, last_seen_at=self._clock())
        except SessionStoreError:
            raise AuthenticationError(ErrorCode.TOKEN_REVOKED)

    async def switch_role(self, session_id: str, new_role: Any) -> Session:
        """
        Bascule le rôle actif de la session.

        Réussit si et seulement si l'utilisateur détient une affectation
        non expirée et non révoquée du rôle cible. En cas d'échec la session
        est inchangée.

        Args:
            session_id: Session active
            new_role: Profession cible ("notary" ou Profession.NOTARY)

        Raises:
            RoleNotGrantedError: Rôle inconnu ou non détenu
            AuthenticationError: Session non active
        """
        session = await self.get_active_session(session_id)

        parsed = parse_profession(new_role)
        if not parsed.ok:
            raise RoleNotGrantedError(parsed.error)
        target = parsed.value

        assignments = [a for a in await self._engine.usable_assignments(session.user_id) if a.role == target]
        if not assignments:
            self._logger.warn(
                "Role switch refused",
                user_id=session.user_id,
                session_id=session_id,
                requested_role=target.value,
            )
            raise RoleNotGrantedError(f"Role not granted: {target.value}")

        previous_role = session.active_role
        previous_org = session.organization_id
        same_org = [a for a in assignments if a.organization_id == previous_org]
        try:
            session = await self._update(
                session_id,
                active_role=target,
                organization_id=(same_org or assignments)[0].organization_id,
                last_seen_at=self._clock(),
            )
        except SessionStoreError:
            raise AuthenticationError(ErrorCode.TOKEN_REVOKED)

        self._engine.invalidate_principal(session.user_id, previous_role, previous_org)
        self._engine.invalidate_principal(session.user_id, target, session.organization_id)

        self._logger.info(
            "Active role switched",
            user_id=session.user_id,
            session_id=session_id,
            previous_role=previous_role.value,
            active_role=target.value,
        )
        self._audit.emit(
            AuditEventType.ROLE_SWITCHED,
            user_id=session.user_id,
            action="switch_role",
            organization_id=session.organization_id,
            metadata={"session_id": session_id, "from": previous_role.value, "to": target.value},
        )
        return session

    async def _update(self, session_id: str, **changes: Any) -> Session:
        return await self._timeouts.run(StoreKind.SESSION, self._store.update(session_id, **changes), shield=True)

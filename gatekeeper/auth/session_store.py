"""
Gatekeeper Auth - In-memory Session Store

Store partagé des sessions: toute instance du service lit le même état.
"""

import asyncio
from dataclasses import fields, replace
from typing import Any, Dict, List, Optional

from .interfaces import ISessionStore, Session, SessionState


_FIELDS = frozenset(f.name for f in fields(Session)) - {"id", "user_id", "created_at"}


class SessionStoreError(Exception):
    """Erreur du store de sessions."""

    pass


class InMemorySessionStore(ISessionStore):
    """Sessions en mémoire, écritures sérialisées."""

    def __init__(self) -> None:
        self._sessions: Dict[str, Session] = {}
        self._lock = asyncio.Lock()

    async def add(self, session: Session) -> None:
        async with self._lock:
            if session.id in self._sessions:
                raise SessionStoreError(f"Session déjà existante: {session.id}")
            self._sessions[session.id] = replace(session)

    async def get(self, session_id: str) -> Optional[Session]:
        session = self._sessions.get(session_id)
        return replace(session) if session else None

    async def save(self, session: Session) -> None:
        async with self._lock:
            current = self._sessions.get(session.id)
            if current is None:
                raise SessionStoreError(f"Session inconnue: {session.id}")
            # TERMINATED est terminal
            if current.state == SessionState.TERMINATED and session.state != SessionState.TERMINATED:
                raise SessionStoreError(f"Session terminée: {session.id}")
            self._sessions[session.id] = replace(session)

    async def update(self, session_id: str, **changes: Any) -> Session:
        """
        Raises:
            SessionStoreError: Session inconnue ou déjà terminée, champ inconnu
        """
        unknown = set(changes) - _FIELDS
        if unknown:
            raise SessionStoreError(f"Champs inconnus: {', '.join(sorted(unknown))}")

        async with self._lock:
            current = self._sessions.get(session_id)
            if current is None:
                raise SessionStoreError(f"Session inconnue: {session_id}")
            if current.state == SessionState.TERMINATED:
                raise SessionStoreError(f"Session terminée: {session_id}")
            updated = replace(current, **changes)
            self._sessions[session_id] = updated
            return replace(updated)

    async def list_for_user(self, user_id: str) -> List[Session]:
        sessions = [replace(s) for s in self._sessions.values() if s.user_id == user_id]
        return sorted(sessions, key=lambda s: s.created_at)

    async def list_active(self) -> List[Session]:
        return [replace(s) for s in self._sessions.values() if s.state == SessionState.ACTIVE]

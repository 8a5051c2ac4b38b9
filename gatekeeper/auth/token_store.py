"""
Gatekeeper Auth - In-memory Refresh Token Store

Seul le hash salé de chaque jeton est conservé. La consommation est un
compare-and-swap sous verrou.
"""

import asyncio
from dataclasses import replace
from datetime import datetime
from typing import Dict, List, Optional

from .interfaces import ITokenStore, RefreshTokenRecord


class TokenStoreError(Exception):
    """Erreur du store de jetons."""

    pass


class InMemoryTokenStore(ITokenStore):
    """
    Store des jetons de rafraîchissement en mémoire.

    Example:
        store = InMemoryTokenStore()
        won = await store.consume(token_id, replaced_by=new_id, now=now)
    """

    def __init__(self) -> None:
        self._records: Dict[str, RefreshTokenRecord] = {}
        self._lock = asyncio.Lock()

    async def add(self, record: RefreshTokenRecord) -> None:
        async with self._lock:
            if record.token_id in self._records:
                raise TokenStoreError(f"Jeton déjà existant: {record.token_id}")
            self._records[record.token_id] = replace(record)

    async def get(self, token_id: str) -> Optional[RefreshTokenRecord]:
        record = self._records.get(token_id)
        return replace(record) if record else None

    async def consume(self, token_id: str, replaced_by: str, now: datetime) -> bool:
        async with self._lock:
            record = self._records.get(token_id)
            if record is None or record.consumed_at is not None or record.revoked_at is not None:
                return False
            record.consumed_at = now
            record.replaced_by = replaced_by
            return True

    async def revoke_session(self, session_id: str, now: datetime) -> int:
        async with self._lock:
            count = 0
            for record in self._records.values():
                if record.session_id == session_id and record.revoked_at is None:
                    record.revoked_at = now
                    count += 1
            return count

    async def list_for_session(self, session_id: str) -> List[RefreshTokenRecord]:
        records = [replace(r) for r in self._records.values() if r.session_id == session_id]
        return sorted(records, key=lambda r: r.issued_at)

    async def purge_expired(self, now: datetime) -> int:
        """Supprime les jetons expirés (plus aucune valeur de détection)."""
        async with self._lock:
            expired = [tid for tid, r in self._records.items() if r.expires_at <= now]
            for token_id in expired:
                del self._records[token_id]
            return len(expired)

"""
Gatekeeper Auth - In-memory Credential Store

Comptes utilisateurs, hash bcrypt, secrets TOTP chiffrés (Fernet) et
codes de secours hachés. Un store durable implémente la même interface
en production.
"""

import asyncio
import uuid
from dataclasses import replace
from typing import Dict, List, Optional

from .interfaces import BackupCode, ICredentialStore, User
from .mfa import TOTPService
from .password_hasher import PasswordHasher
from ..core.crypto_provider import CryptoProvider
from ..core.interfaces import Clock, utc_now
from ..incident.account_locker import normalize_email


class CredentialStoreError(Exception):
    """Erreur du store d'identifiants."""

    pass


class InMemoryCredentialStore(ICredentialStore):
    """
    Store d'identifiants en mémoire.

    Example:
        store = InMemoryCredentialStore(crypto, PasswordHasher(), TOTPService())
        user = await store.create_user("alice@example.com", "correct horse")
    """

    def __init__(
        self,
        crypto_provider: CryptoProvider,
        hasher: PasswordHasher,
        totp: TOTPService,
        clock: Clock = utc_now,
    ) -> None:
        self._crypto = crypto_provider
        self._hasher = hasher
        self._totp = totp
        self._clock = clock
        self._users: Dict[str, User] = {}
        self._by_email: Dict[str, str] = {}
        self._lock = asyncio.Lock()

    async def create_user(self, email: str, password: str, display_name: Optional[str] = None) -> User:
        key = normalize_email(email)
        if not key or "@" not in key:
            raise CredentialStoreError("Email invalide")

        password_hash = await self._hasher.hash(password)
        async with self._lock:
            if key in self._by_email:
                raise CredentialStoreError("Email déjà utilisé")
            user = User(
                id=str(uuid.uuid4()),
                email=key,
                password_hash=password_hash,
                created_at=self._clock(),
                display_name=display_name,
            )
            self._users[user.id] = user
            self._by_email[key] = user.id
        return replace(user)

    async def get_user(self, user_id: str) -> Optional[User]:
        user = self._users.get(user_id)
        return replace(user) if user else None

    async def get_user_by_email(self, email: str) -> Optional[User]:
        user_id = self._by_email.get(normalize_email(email))
        return await self.get_user(user_id) if user_id else None

    async def verify_credentials(self, email: str, password: str) -> Optional[User]:
        user = self._users.get(self._by_email.get(normalize_email(email), ""))
        if user is None:
            await self._hasher.dummy_verify(password)
            return None
        if not await self._hasher.verify(password, user.password_hash):
            return None
        return replace(user)

    async def begin_mfa_enrollment(self, user_id: str, secret: str, backup_codes: List[str]) -> None:
        hashed: List[BackupCode] = []
        for code in backup_codes:
            salt, digest = self._crypto.hash_secret(self._totp.normalize_backup_code(code))
            hashed.append(BackupCode(salt=salt, digest=digest))

        async with self._lock:
            user = self._require(user_id)
            user.pending_mfa_secret = self._crypto.encrypt(secret)
            user.backup_codes = hashed

    async def confirm_mfa_enrollment(self, user_id: str, code: str, valid_window: int) -> bool:
        async with self._lock:
            user = self._require(user_id)
            if user.pending_mfa_secret is None:
                return False
            secret = self._crypto.decrypt(user.pending_mfa_secret)
            if not self._totp.verify(secret, code, valid_window):
                return False
            user.mfa_secret = user.pending_mfa_secret
            user.pending_mfa_secret = None
            user.mfa_enabled = True
            return True

    async def verify_totp(self, user_id: str, code: str, valid_window: int) -> bool:
        user = self._require(user_id)
        if not user.mfa_enabled or user.mfa_secret is None:
            return False
        return self._totp.verify(self._crypto.decrypt(user.mfa_secret), code, valid_window)

    async def consume_backup_code(self, user_id: str, code: str) -> bool:
        normalized = self._totp.normalize_backup_code(code)
        if not normalized:
            return False

        async with self._lock:
            user = self._require(user_id)
            if not user.mfa_enabled:
                return False
            for backup in user.backup_codes:
                if backup.used_at is None and self._crypto.verify_secret(normalized, backup.salt, backup.digest):
                    backup.used_at = self._clock()
                    return True
        return False

    async def clear_mfa(self, user_id: str) -> None:
        async with self._lock:
            user = self._require(user_id)
            user.mfa_enabled = False
            user.mfa_secret = None
            user.pending_mfa_secret = None
            user.backup_codes = []

    async def provisioning_uri(self, user_id: str, issuer_name: str) -> Optional[str]:
        user = self._require(user_id)
        if user.pending_mfa_secret is None:
            return None
        secret = self._crypto.decrypt(user.pending_mfa_secret)
        return self._totp.provisioning_uri(secret, user.email)

    def remaining_backup_codes(self, user_id: str) -> int:
        return sum(1 for b in self._require(user_id).backup_codes if b.used_at is None)

    def _require(self, user_id: str) -> User:
        user = self._users.get(user_id)
        if user is None:
            raise CredentialStoreError(f"Utilisateur inconnu: {user_id}")
        return user

"""
Gatekeeper Auth - Token Service

Émission, rotation et révocation des jetons.

    - Jeton d'accès: JWT ES384 (PyJWT), durée courte (≤ 15 min)
    - Jeton de rafraîchissement: "<token_id>.<secret>" opaque, persisté
      uniquement sous forme de hash salé, à usage unique

Rotation: chaque refresh consomme le jeton présenté (compare-and-swap) et
émet une nouvelle paire pour la même session. Rejouer un jeton déjà
consommé révoque toute la session.
"""

import secrets
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional, Tuple

import jwt

from .interfaces import AccessClaims, ISessionStore, ITokenStore, RefreshTokenRecord, TokenPair
from ..audit.interfaces import AuditEventType, IAuditEmitter
from ..core.crypto_provider import CryptoProvider
from ..core.errors import AuthenticationError, ErrorCode
from ..core.interfaces import Clock, TokenConfig, utc_now
from ..core.timeout_manager import StoreKind, TimeoutManager
from ..logging import StructuredLogger
from ..rbac.catalog import Profession, parse_profession


ACCESS_TOKEN_KEY_ID = "access_token_key"


class TokenServiceError(Exception):
    """Erreur de configuration du service de jetons."""

    pass


class TokenReuseError(AuthenticationError):
    """
    Jeton de rafraîchissement rejoué.

    La session concernée a déjà vu ses jetons révoqués; l'appelant doit
    la terminer. Exposé au client comme TOKEN_EXPIRED.
    """

    def __init__(self, session_id: str):
        self.session_id = session_id
        super().__init__(ErrorCode.TOKEN_REUSE_DETECTED, "Refresh token reuse detected")


class TokenService:
    """
    Service de jetons.

    Example:
        tokens = TokenService(crypto, token_store, session_store, timeouts, audit, logger)
        pair = await tokens.issue(user.id, session.id, Profession.LAWYER)
        rotated = await tokens.refresh(pair.refresh_token)
    """

    SECRET_BYTES: int = 32

    def __init__(
        self,
        crypto_provider: CryptoProvider,
        token_store: ITokenStore,
        session_store: ISessionStore,
        timeouts: TimeoutManager,
        audit_emitter: IAuditEmitter,
        logger: StructuredLogger,
        config: Optional[TokenConfig] = None,
        clock: Clock = utc_now,
    ) -> None:
        self._crypto = crypto_provider
        self._tokens = token_store
        self._sessions = session_store
        self._timeouts = timeouts
        self._audit = audit_emitter
        self._logger = logger
        self._config = config or TokenConfig()
        self._clock = clock

        if self._config.algorithm != "ES384":
            raise TokenServiceError(f"Algorithme non supporté: {self._config.algorithm}")
        if self._config.signing_key_path:
            self._crypto.load_private_key_pem(ACCESS_TOKEN_KEY_ID, self._config.signing_key_path)

    @property
    def config(self) -> TokenConfig:
        return self._config

    async def issue(
        self,
        user_id: str,
        session_id: str,
        active_role: Profession,
        organization_id: Optional[str] = None,
        parent_id: Optional[str] = None,
        token_id: Optional[str] = None,
    ) -> TokenPair:
        """
        Émet une paire (accès + rafraîchissement) pour une session.

        Args:
            user_id: Utilisateur
            session_id: Session à laquelle les jetons sont liés
            active_role: Rôle actif porté par le jeton d'accès
            organization_id: Organisation courante
            parent_id: Jeton de rafraîchissement remplacé (rotation)
            token_id: ID imposé du nouveau jeton (réservé lors de la rotation)

        Returns:
            Paire de jetons; le secret de rafraîchissement n'est jamais stocké
        """
        now = self._clock()
        access_token, access_expires_at = self._encode_access(user_id, session_id, active_role, organization_id, now)

        token_id = token_id or uuid.uuid4().hex
        secret = secrets.token_urlsafe(self.SECRET_BYTES)
        salt, digest = self._crypto.hash_secret(secret)
        refresh_expires_at = now + timedelta(days=self._config.refresh_token_days)

        record = RefreshTokenRecord(
            token_id=token_id,
            session_id=session_id,
            user_id=user_id,
            salt=salt,
            token_hash=digest,
            issued_at=now,
            expires_at=refresh_expires_at,
            parent_id=parent_id,
        )
        await self._timeouts.run(StoreKind.TOKEN, self._tokens.add(record), shield=True)

        return TokenPair(
            access_token=access_token,
            refresh_token=f"{token_id}.{secret}",
            access_expires_at=access_expires_at,
            refresh_expires_at=refresh_expires_at,
            refresh_token_id=token_id,
            session_id=session_id,
        )

    async def refresh(self, refresh_token: str) -> TokenPair:
        """
        Rotation à usage unique.

        Raises:
            AuthenticationError: TOKEN_EXPIRED (inconnu, malformé, expiré ou
                session close), TOKEN_REVOKED (jeton révoqué)
            TokenReuseError: Jeton déjà consommé (session révoquée)
        """
        now = self._clock()
        parsed = self._split(refresh_token)
        if parsed is None:
            raise AuthenticationError(ErrorCode.TOKEN_EXPIRED)
        token_id, secret = parsed

        record = await self._timeouts.run(StoreKind.TOKEN, self._tokens.get(token_id))
        if record is None or not self._crypto.verify_secret(secret, record.salt, record.token_hash):
            raise AuthenticationError(ErrorCode.TOKEN_EXPIRED)

        if record.revoked_at is not None:
            raise AuthenticationError(ErrorCode.TOKEN_REVOKED)
        if record.consumed_at is not None:
            await self._reuse_detected(record, now)
        if record.expires_at <= now:
            raise AuthenticationError(ErrorCode.TOKEN_EXPIRED)

        session = await self._timeouts.run(StoreKind.SESSION, self._sessions.get(record.session_id))
        if session is None or not session.is_active(now):
            raise AuthenticationError(ErrorCode.TOKEN_REVOKED)

        new_id = uuid.uuid4().hex
        won = await self._timeouts.run(StoreKind.TOKEN, self._tokens.consume(token_id, new_id, now), shield=True)
        if not won:
            # Perdu la course: un autre appelant a consommé ou révoqué le jeton
            current = await self._timeouts.run(StoreKind.TOKEN, self._tokens.get(token_id))
            if current is not None and current.revoked_at is not None and current.consumed_at is None:
                raise AuthenticationError(ErrorCode.TOKEN_REVOKED)
            await self._reuse_detected(record, now)

        pair = await self.issue(
            record.user_id,
            record.session_id,
            session.active_role,
            session.organization_id,
            parent_id=token_id,
            token_id=new_id,
        )
        self._audit.emit(
            AuditEventType.TOKEN_REFRESHED,
            user_id=record.user_id,
            action="refresh_token",
            organization_id=session.organization_id,
            metadata={"session_id": record.session_id, "parent_id": token_id},
        )
        return pair

    async def revoke(self, session_id: str) -> int:
        """
        Révoque immédiatement tous les jetons de rafraîchissement d'une session.

        Les jetons d'accès déjà émis sont rejetés à la résolution du
        principal (session non ACTIVE).
        """
        count = await self._timeouts.run(
            StoreKind.TOKEN, self._tokens.revoke_session(session_id, self._clock()), shield=True
        )
        self._logger.info("Session tokens revoked", session_id=session_id, revoked=count)
        return count

    async def purge_expired(self) -> int:
        """Supprime les jetons de rafraîchissement échus du store."""
        count = await self._timeouts.run(StoreKind.TOKEN, self._tokens.purge_expired(self._clock()), shield=True)
        if count:
            self._logger.info("Expired refresh tokens purged", purged=count)
        return count

    def decode_access_token(self, access_token: str) -> AccessClaims:
        """
        Valide un jeton d'accès (signature, émetteur, expiration).

        L'expiration est évaluée avec l'horloge du service.

        Raises:
            AuthenticationError: TOKEN_EXPIRED si expiré, UNAUTHENTICATED sinon
        """
        if not access_token:
            raise AuthenticationError(ErrorCode.UNAUTHENTICATED)
        try:
            payload = jwt.decode(
                access_token,
                self._crypto.public_key(ACCESS_TOKEN_KEY_ID),
                algorithms=[self._config.algorithm],
                issuer=self._config.issuer,
                options={
                    "require": ["exp", "iat", "sub", "sid", "role", "jti"],
                    "verify_exp": False,
                    "verify_iat": False,
                },
            )
        except jwt.InvalidTokenError:
            raise AuthenticationError(ErrorCode.UNAUTHENTICATED)

        if not isinstance(payload["exp"], int) or payload["exp"] <= self._clock().timestamp():
            raise AuthenticationError(ErrorCode.TOKEN_EXPIRED)

        if payload.get("typ") != "access":
            raise AuthenticationError(ErrorCode.UNAUTHENTICATED)
        role = parse_profession(payload["role"])
        if not role.ok:
            raise AuthenticationError(ErrorCode.UNAUTHENTICATED)

        return AccessClaims(
            user_id=payload["sub"],
            session_id=payload["sid"],
            active_role=role.value,
            organization_id=payload.get("org"),
            issued_at=datetime.fromtimestamp(payload["iat"], tz=timezone.utc),
            expires_at=datetime.fromtimestamp(payload["exp"], tz=timezone.utc),
            jti=payload["jti"],
        )

    def _encode_access(
        self,
        user_id: str,
        session_id: str,
        active_role: Profession,
        organization_id: Optional[str],
        now: datetime,
    ) -> Tuple[str, datetime]:
        expires_at = now + timedelta(seconds=self._config.access_token_seconds)
        payload: Dict[str, Any] = {
            "iss": self._config.issuer,
            "sub": user_id,
            "sid": session_id,
            "role": active_role.value,
            "org": organization_id,
            "typ": "access",
            "iat": int(now.timestamp()),
            "exp": int(expires_at.timestamp()),
            "jti": uuid.uuid4().hex,
        }
        token = jwt.encode(payload, self._crypto.private_key(ACCESS_TOKEN_KEY_ID), algorithm=self._config.algorithm)
        return token, expires_at

    async def _reuse_detected(self, record: RefreshTokenRecord, now: datetime) -> None:
        revoked = await self._timeouts.run(
            StoreKind.TOKEN, self._tokens.revoke_session(record.session_id, now), shield=True
        )
        self._logger.critical(
            "Refresh token reuse detected, session revoked",
            user_id=record.user_id,
            session_id=record.session_id,
            token_id=record.token_id,
            revoked=revoked,
        )
        self._audit.emit(
            AuditEventType.TOKEN_REUSE_DETECTED,
            user_id=record.user_id,
            action="refresh_token",
            outcome="revoked",
            metadata={"session_id": record.session_id, "token_id": record.token_id},
        )
        raise TokenReuseError(record.session_id)

    @staticmethod
    def _split(refresh_token: str) -> Optional[Tuple[str, str]]:
        if not refresh_token or refresh_token.count(".") != 1:
            return None
        token_id, secret = refresh_token.split(".")
        if not token_id or not secret:
            return None
        return token_id, secret

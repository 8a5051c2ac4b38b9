"""
Gatekeeper Auth - Authentication Service

Vérification des identifiants, défi MFA et politique de verrouillage.

Flux de connexion:
    1. Verrou en vigueur (compte ou IP) -> ACCOUNT_LOCKED, aucun compteur touché
    2. Mot de passe faux ou email inconnu -> INVALID_CREDENTIALS (indistinguables)
    3. MFA active sans code -> MFA_REQUIRED; code faux -> MFA_INVALID
    4. Succès -> compteurs remis à zéro, session + jetons
"""

from typing import Any, Dict, Optional

from .credential_store import CredentialStoreError
from .interfaces import AuthResult, ICredentialStore, MFASetup, User
from .mfa import SUPPORTED_MFA_METHODS, TOTPService
from .session_manager import SessionManager
from .token_service import TokenService
from ..audit.interfaces import AuditEventType, IAuditEmitter
from ..core.errors import (
    AuthenticationError,
    ErrorCode,
    InvalidRequestError,
    PermissionDeniedError,
    RoleNotGrantedError,
)
from ..core.interfaces import MFAConfig, PasswordConfig
from ..core.timeout_manager import StoreKind, TimeoutManager
from ..incident.account_locker import normalize_email
from ..incident.interfaces import IAccountLocker
from ..logging import StructuredLogger
from ..rbac.catalog import Action, Resource
from ..rbac.interfaces import Principal
from ..rbac.permission_engine import PermissionEngine


class AuthenticationService:
    """
    Service d'authentification.

    Example:
        auth = AuthenticationService(credentials, locker, sessions, tokens, engine, totp, timeouts, audit, logger)
        result = await auth.authenticate("alice@example.com", "s3cret", mfa_code="123456")
        principal = await auth.resolve_principal(result.tokens.access_token)
    """

    def __init__(
        self,
        credential_store: ICredentialStore,
        account_locker: IAccountLocker,
        session_manager: SessionManager,
        token_service: TokenService,
        engine: PermissionEngine,
        totp: TOTPService,
        timeouts: TimeoutManager,
        audit_emitter: IAuditEmitter,
        logger: StructuredLogger,
        mfa_config: Optional[MFAConfig] = None,
        password_config: Optional[PasswordConfig] = None,
    ) -> None:
        self._credentials = credential_store
        self._locker = account_locker
        self._sessions = session_manager
        self._tokens = token_service
        self._engine = engine
        self._totp = totp
        self._timeouts = timeouts
        self._audit = audit_emitter
        self._logger = logger
        self._mfa = mfa_config or MFAConfig()
        self._passwords = password_config or PasswordConfig()

    # ── Comptes ────────────────────────────────────────────────────────────

    async def register_user(self, email: str, password: str, display_name: Optional[str] = None) -> User:
        """
        Crée un compte.

        Raises:
            InvalidRequestError: Mot de passe trop court, email invalide ou déjà utilisé
        """
        if len(password or "") < self._passwords.min_length:
            raise InvalidRequestError(f"Password must be at least {self._passwords.min_length} characters")
        try:
            user = await self._timeouts.run(
                StoreKind.CREDENTIAL, self._credentials.create_user(email, password, display_name), shield=True
            )
        except CredentialStoreError as e:
            raise InvalidRequestError(str(e))

        self._logger.info("User registered", user_id=user.id)
        return user

    async def get_user(self, user_id: str) -> Optional[User]:
        return await self._timeouts.run(StoreKind.CREDENTIAL, self._credentials.get_user(user_id))

    # ── Connexion ──────────────────────────────────────────────────────────

    async def authenticate(
        self,
        email: str,
        password: str,
        mfa_code: Optional[str] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> AuthResult:
        """
        Authentifie un utilisateur et ouvre une session.

        Args:
            email: Email (insensible à la casse)
            password: Mot de passe
            mfa_code: Code TOTP ou code de secours (si MFA active)
            ip_address: IP source (compteur IP)
            user_agent: Appareil (vue multi-appareils)

        Returns:
            Utilisateur, session et jetons

        Raises:
            AuthenticationError: ACCOUNT_LOCKED, INVALID_CREDENTIALS,
                MFA_REQUIRED, MFA_INVALID
            RoleNotGrantedError: Identifiants valides mais aucune profession active
        """
        key = normalize_email(email)

        if await self._locker.is_locked(key, ip_address):
            self._login_failed(None, key, "account_locked", ip_address)
            raise AuthenticationError(ErrorCode.ACCOUNT_LOCKED)

        user = await self._timeouts.run(StoreKind.CREDENTIAL, self._credentials.verify_credentials(key, password))
        if user is None:
            await self._locker.record_password_failure(key, ip_address)
            self._login_failed(None, key, "invalid_credentials", ip_address)
            raise AuthenticationError(ErrorCode.INVALID_CREDENTIALS)

        if user.mfa_enabled:
            if not mfa_code:
                self._logger.info("MFA code required", user_id=user.id)
                raise AuthenticationError(ErrorCode.MFA_REQUIRED)
            if not await self._verify_second_factor(user, mfa_code):
                await self._locker.record_mfa_failure(key, ip_address, user.id)
                self._login_failed(user.id, key, "mfa_invalid", ip_address)
                self._audit.emit(
                    AuditEventType.MFA_FAILURE,
                    user_id=user.id,
                    action="login",
                    outcome="failure",
                    ip_address=ip_address,
                )
                raise AuthenticationError(ErrorCode.MFA_INVALID)

        await self._locker.reset(key)

        assignments = await self._engine.usable_assignments(user.id)
        if not assignments:
            self._logger.warn("Login without any usable professional role", user_id=user.id)
            raise RoleNotGrantedError("No active professional role")
        primary = assignments[0]

        session, tokens = await self._sessions.create_session(
            user.id,
            primary.role,
            primary.organization_id,
            ip_address=ip_address,
            user_agent=user_agent,
        )

        self._logger.info("Login succeeded", user_id=user.id, session_id=session.id)
        self._audit.emit(
            AuditEventType.LOGIN_SUCCESS,
            user_id=user.id,
            action="login",
            organization_id=session.organization_id,
            metadata={"session_id": session.id, "mfa": user.mfa_enabled},
            ip_address=ip_address,
        )
        return AuthResult(user=user, session=session, tokens=tokens)

    async def resolve_principal(self, access_token: str, organization_id: Optional[str] = None) -> Principal:
        """
        Résout le principal d'une requête à partir du jeton d'accès.

        La session fait foi pour le rôle actif (une bascule de rôle prend
        effet sans réémission du jeton). L'organisation demandée par en-tête
        doit être une organisation dont l'utilisateur est membre.

        Raises:
            AuthenticationError: Jeton invalide, expiré ou session close
            PermissionDeniedError: Organisation demandée hors de portée
        """
        claims = self._tokens.decode_access_token(access_token)
        session = await self._sessions.touch(claims.session_id)
        if session.user_id != claims.user_id:
            raise AuthenticationError(ErrorCode.UNAUTHENTICATED)

        principal = Principal(
            user_id=session.user_id,
            active_role=session.active_role,
            organization_id=session.organization_id,
            session_id=session.id,
        )
        if organization_id and organization_id != session.organization_id:
            if not principal.is_platform_admin and not await self._engine.is_member(session.user_id, organization_id):
                raise PermissionDeniedError(Resource.ORGANIZATION.value, Action.READ.value)
            principal = principal.in_organization(organization_id)
        return principal

    # ── MFA ────────────────────────────────────────────────────────────────

    async def enable_mfa(self, user_id: str, method: str = "totp") -> MFASetup:
        """
        Démarre l'enrôlement MFA: secret en attente et codes de secours.

        La MFA n'est active qu'après verify_mfa_setup.

        Raises:
            InvalidRequestError: Méthode non supportée ou MFA déjà active
        """
        if method not in SUPPORTED_MFA_METHODS:
            raise InvalidRequestError(f"Unsupported MFA method: {method}")
        user = await self._require_user(user_id)
        if user.mfa_enabled:
            raise InvalidRequestError("MFA already enabled")

        secret = self._totp.generate_secret()
        backup_codes = self._totp.generate_backup_codes(self._mfa.backup_code_count)
        await self._timeouts.run(
            StoreKind.CREDENTIAL, self._credentials.begin_mfa_enrollment(user_id, secret, backup_codes), shield=True
        )
        uri = await self._timeouts.run(
            StoreKind.CREDENTIAL, self._credentials.provisioning_uri(user_id, self._mfa.issuer_name)
        )

        self._logger.info("MFA enrollment started", user_id=user_id, method=method)
        return MFASetup(method=method, qr_code=self._totp.qr_code(uri), backup_codes=backup_codes)

    async def verify_mfa_setup(self, user_id: str, code: str) -> bool:
        """
        Active la MFA après un premier code TOTP valide (±1 pas).

        Raises:
            AuthenticationError: MFA_INVALID
        """
        confirmed = await self._timeouts.run(
            StoreKind.CREDENTIAL,
            self._credentials.confirm_mfa_enrollment(user_id, code, self._mfa.valid_window),
            shield=True,
        )
        if not confirmed:
            self._logger.warn("MFA enrollment verification failed", user_id=user_id)
            raise AuthenticationError(ErrorCode.MFA_INVALID)

        self._logger.info("MFA enabled", user_id=user_id)
        self._audit.emit(AuditEventType.MFA_ENABLED, user_id=user_id, action="enable_mfa")
        return True

    async def disable_mfa(self, session_id: str) -> None:
        """
        Désactive la MFA (secret et codes de secours effacés).

        Raises:
            AuthenticationError: Session non active
        """
        session = await self._sessions.get_active_session(session_id)
        await self._timeouts.run(StoreKind.CREDENTIAL, self._credentials.clear_mfa(session.user_id), shield=True)

        self._logger.info("MFA disabled", user_id=session.user_id)
        self._audit.emit(
            AuditEventType.MFA_DISABLED,
            user_id=session.user_id,
            action="disable_mfa",
            metadata={"session_id": session_id},
        )

    # ── Administration ─────────────────────────────────────────────────────

    async def unlock_account(self, caller: Principal, email: str) -> bool:
        """
        Lève un verrou avant son échéance (accélérateur admin).

        Raises:
            PermissionDeniedError: Appelant sans user:update
        """
        decision = await self._engine.check_permission(caller, Resource.USER, Action.UPDATE)
        if not decision.allow:
            raise PermissionDeniedError(decision.resource, decision.action)
        return await self._locker.unlock(email, caller.user_id)

    async def lock_status(self, email: str) -> Dict[str, Any]:
        status = await self._locker.get_status(email)
        return {
            "email": status.email,
            "locked": status.locked,
            "locked_until": status.locked_until.isoformat() if status.locked_until else None,
            "failure_count": status.failure_count,
            "mfa_failure_count": status.mfa_failure_count,
        }

    # ── Interne ────────────────────────────────────────────────────────────

    async def _verify_second_factor(self, user: User, code: str) -> bool:
        totp_ok = await self._timeouts.run(
            StoreKind.CREDENTIAL, self._credentials.verify_totp(user.id, code, self._mfa.valid_window)
        )
        if totp_ok:
            return True

        backup_ok = await self._timeouts.run(
            StoreKind.CREDENTIAL, self._credentials.consume_backup_code(user.id, code), shield=True
        )
        if backup_ok:
            self._logger.info("Backup code used", user_id=user.id)
        return backup_ok

    async def _require_user(self, user_id: str) -> User:
        user = await self.get_user(user_id)
        if user is None:
            raise AuthenticationError(ErrorCode.UNAUTHENTICATED)
        return user

    def _login_failed(self, user_id: Optional[str], email: str, reason: str, ip_address: Optional[str]) -> None:
        self._logger.info("Login failed", reason=reason)
        self._audit.emit(
            AuditEventType.LOGIN_FAILURE,
            user_id=user_id or "unknown",
            action="login",
            outcome="failure",
            resource=email,
            metadata={"reason": reason},
            ip_address=ip_address,
        )

"""
Gatekeeper - Assemblage des services

Construction explicite de tous les services à partir de la configuration.
Aucun singleton: chaque conteneur possède ses propres stores et son cache.
"""

import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from .audit import AuditEmitter, IAuditSink, InMemoryAuditSink
from .auth import (
    AuthenticationService,
    InMemoryCredentialStore,
    InMemorySessionStore,
    InMemoryTokenStore,
    PasswordHasher,
    SessionManager,
    TokenService,
    TOTPService,
)
from .core import Clock, ConfigLoader, CryptoProvider, GatekeeperConfig, TimeoutManager, utc_now
from .core.timeout_manager import StoreKind
from .incident import AccountLocker, InMemoryLockoutStore
from .logging import LogConfig, LogLevel, SensitiveMasker, StructuredLogger, build_logger_factory
from .rbac import (
    InMemoryRoleStore,
    PermissionCache,
    PermissionEngine,
    Profession,
    ProfessionalRoleAssignment,
    RoleAdministrationService,
)


LoggerFactory = Callable[[str], StructuredLogger]


@dataclass
class Gatekeeper:
    """
    Services assemblés.

    Example:
        gk = Gatekeeper.build(ConfigLoader().load())
        user = await gk.auth.register_user("alice@example.com", "correct horse")
        await gk.grant_profession(user.id, Profession.LAWYER)
    """

    config: GatekeeperConfig
    crypto: CryptoProvider
    timeouts: TimeoutManager
    audit_sink: IAuditSink
    audit: AuditEmitter
    credential_store: InMemoryCredentialStore
    lockout_store: InMemoryLockoutStore
    role_store: InMemoryRoleStore
    token_store: InMemoryTokenStore
    session_store: InMemorySessionStore
    totp: TOTPService
    engine: PermissionEngine
    locker: AccountLocker
    tokens: TokenService
    sessions: SessionManager
    roles: RoleAdministrationService
    auth: AuthenticationService
    clock: Clock = utc_now

    @classmethod
    def build(
        cls,
        config: Optional[GatekeeperConfig] = None,
        clock: Clock = utc_now,
        audit_sink: Optional[IAuditSink] = None,
        logger_factory: Optional[LoggerFactory] = None,
    ) -> "Gatekeeper":
        """
        Assemble les services.

        Args:
            config: Configuration validée (défaut: GatekeeperConfig())
            clock: Horloge partagée par tous les services
            audit_sink: Destination des événements d'audit (défaut: mémoire)
            logger_factory: Fabrique de loggers par nom de module (défaut:
                réglages de config.logging, sortie stderr)
        """
        config = config or GatekeeperConfig()
        logger_factory = logger_factory or _default_logger_factory(config)
        crypto = CryptoProvider(config.mfa.encryption_key)
        timeouts = TimeoutManager(config.timeouts)
        sink = audit_sink or InMemoryAuditSink()
        audit = AuditEmitter(crypto, sink, logger_factory("gatekeeper.audit"), clock)

        totp = TOTPService(config.mfa.issuer_name)
        credential_store = InMemoryCredentialStore(crypto, PasswordHasher(config.passwords.bcrypt_rounds), totp, clock)
        lockout_store = InMemoryLockoutStore()
        role_store = InMemoryRoleStore()
        token_store = InMemoryTokenStore()
        session_store = InMemorySessionStore()

        engine = PermissionEngine(
            role_store,
            PermissionCache(config.permission_cache, clock),
            timeouts,
            audit,
            logger_factory("gatekeeper.rbac"),
            clock,
        )
        locker = AccountLocker(
            lockout_store, timeouts, audit, logger_factory("gatekeeper.incident"), config.lockout, clock
        )
        tokens = TokenService(
            crypto, token_store, session_store, timeouts, audit, logger_factory("gatekeeper.tokens"), config.tokens, clock
        )
        sessions = SessionManager(
            session_store, tokens, engine, timeouts, audit, logger_factory("gatekeeper.sessions"), config.sessions, clock
        )
        roles = RoleAdministrationService(role_store, engine, timeouts, audit, logger_factory("gatekeeper.roles"), clock)
        auth = AuthenticationService(
            credential_store,
            locker,
            sessions,
            tokens,
            engine,
            totp,
            timeouts,
            audit,
            logger_factory("gatekeeper.auth"),
            config.mfa,
            config.passwords,
        )

        return cls(
            config=config,
            crypto=crypto,
            timeouts=timeouts,
            audit_sink=sink,
            audit=audit,
            credential_store=credential_store,
            lockout_store=lockout_store,
            role_store=role_store,
            token_store=token_store,
            session_store=session_store,
            totp=totp,
            engine=engine,
            locker=locker,
            tokens=tokens,
            sessions=sessions,
            roles=roles,
            auth=auth,
            clock=clock,
        )

    @classmethod
    def from_file(cls, path: Optional[str] = None, **kwargs) -> "Gatekeeper":
        """Assemble à partir d'un fichier YAML (ou de GATEKEEPER_CONFIG)."""
        return cls.build(ConfigLoader().load(path), **kwargs)

    async def grant_profession(
        self,
        user_id: str,
        profession: Profession,
        organization_id: Optional[str] = None,
        expires_at: Optional[datetime] = None,
        granted_by: str = "system",
    ) -> ProfessionalRoleAssignment:
        """
        Octroi système d'une profession (amorçage, vérification d'identité
        professionnelle hors ligne). Les octrois entre utilisateurs passent
        par RoleAdministrationService.assign_role.
        """
        assignment = ProfessionalRoleAssignment(
            id=str(uuid.uuid4()),
            user_id=user_id,
            role=profession,
            granted_by=granted_by,
            granted_at=self.clock(),
            organization_id=organization_id,
            expires_at=expires_at,
        )
        await self.timeouts.run(StoreKind.ROLE, self.role_store.add_professional_assignment(assignment), shield=True)
        self.engine.invalidate_user(user_id)
        return assignment


def _default_logger_factory(config: GatekeeperConfig) -> LoggerFactory:
    settings = config.logging
    return build_logger_factory(
        LogConfig(
            min_level=LogLevel(settings.level),
            mask_sensitive=settings.mask_sensitive,
            max_entries=settings.max_entries,
        ),
        SensitiveMasker(settings.extra_sensitive_keys),
    )

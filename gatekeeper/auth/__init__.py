"""
Gatekeeper: Auth

Identifiants, MFA, jetons et sessions.
"""

from .interfaces import (
    AccessClaims,
    AuthResult,
    BackupCode,
    ICredentialStore,
    ISessionStore,
    ITokenStore,
    MFASetup,
    RefreshTokenRecord,
    Session,
    SessionState,
    TerminationReason,
    TokenPair,
    User,
)
from .password_hasher import PasswordHasher
from .mfa import SUPPORTED_MFA_METHODS, TOTPService
from .credential_store import CredentialStoreError, InMemoryCredentialStore
from .token_store import InMemoryTokenStore, TokenStoreError
from .session_store import InMemorySessionStore, SessionStoreError
from .token_service import ACCESS_TOKEN_KEY_ID, TokenReuseError, TokenService, TokenServiceError
from .session_manager import SessionManager, SessionManagerError
from .authentication_service import AuthenticationService

__all__ = [
    "AccessClaims",
    "AuthResult",
    "BackupCode",
    "ICredentialStore",
    "ISessionStore",
    "ITokenStore",
    "MFASetup",
    "RefreshTokenRecord",
    "Session",
    "SessionState",
    "TerminationReason",
    "TokenPair",
    "User",
    "PasswordHasher",
    "SUPPORTED_MFA_METHODS",
    "TOTPService",
    "CredentialStoreError",
    "InMemoryCredentialStore",
    "InMemoryTokenStore",
    "TokenStoreError",
    "InMemorySessionStore",
    "SessionStoreError",
    "ACCESS_TOKEN_KEY_ID",
    "TokenReuseError",
    "TokenService",
    "TokenServiceError",
    "SessionManager",
    "SessionManagerError",
    "AuthenticationService",
]

"""
Gatekeeper: Incident

Verrouillage temporaire des comptes après échecs d'authentification.
"""

from .interfaces import (
    AccountLockStatus,
    AttemptCounter,
    AttemptKind,
    IAccountLocker,
    ILockoutStore,
)
from .lockout_store import InMemoryLockoutStore
from .account_locker import AccountLocker, AccountLockerError, normalize_email

__all__ = [
    "AccountLockStatus",
    "AttemptCounter",
    "AttemptKind",
    "IAccountLocker",
    "ILockoutStore",
    "InMemoryLockoutStore",
    "AccountLocker",
    "AccountLockerError",
    "normalize_email",
]

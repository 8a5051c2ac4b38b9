"""
Tests unitaires pour AccountLocker.

Vérifie:
    - 5 échecs de mot de passe en 60 s = compte verrouillé 15 min
    - Compteur MFA séparé
    - Déverrouillage automatique et manuel
"""

from datetime import timedelta

import pytest

from gatekeeper.audit.interfaces import AuditEventType
from gatekeeper.core.interfaces import LockoutConfig, LockoutPolicy
from gatekeeper.incident import AccountLocker, AccountLockerError, InMemoryLockoutStore, normalize_email

from conftest import FakeClock, RecordingAuditEmitter


# =============================================================================
# FIXTURES
# =============================================================================


EMAIL = "alice@example.com"


@pytest.fixture
def store() -> InMemoryLockoutStore:
    return InMemoryLockoutStore()


@pytest.fixture
def locker(store, timeouts, audit, logger, clock) -> AccountLocker:
    return AccountLocker(store, timeouts, audit, logger, LockoutConfig(), clock)


async def fail(locker: AccountLocker, times: int, email: str = EMAIL, source_ip=None):
    status = None
    for _ in range(times):
        status = await locker.record_password_failure(email, source_ip)
    return status


# =============================================================================
# VERROUILLAGE
# =============================================================================


class TestPasswordLockout:
    """Seuil mot de passe."""

    @pytest.mark.asyncio
    async def test_four_failures_not_locked(self, locker):
        status = await fail(locker, 4)

        assert status.locked is False
        assert status.failure_count == 4
        assert await locker.get_remaining_attempts(EMAIL) == 1

    @pytest.mark.asyncio
    async def test_fifth_failure_locks_for_15_minutes(self, locker, clock: FakeClock):
        status = await fail(locker, 5)

        assert status.locked is True
        assert status.locked_until == clock.now + timedelta(minutes=15)
        assert await locker.is_locked(EMAIL) is True
        assert await locker.get_remaining_attempts(EMAIL) == 0

    @pytest.mark.asyncio
    async def test_lock_emits_audit_once(self, locker, audit: RecordingAuditEmitter):
        await fail(locker, 5)

        locked = audit.of_type(AuditEventType.ACCOUNT_LOCKED)
        assert len(locked) == 1
        assert locked[0]["resource"] == EMAIL
        assert locked[0]["metadata"]["counter"] == "password"

    @pytest.mark.asyncio
    async def test_failures_outside_window_do_not_accumulate(self, locker, clock: FakeClock):
        """Fenêtre glissante de 60 s."""
        await fail(locker, 4)
        clock.advance(seconds=61)
        status = await fail(locker, 1)

        assert status.failure_count == 1
        assert status.locked is False

    @pytest.mark.asyncio
    async def test_window_slides_across_first_failure(self, locker, clock: FakeClock):
        """Cinq échecs en 11 s verrouillent, même à cheval sur la première fenêtre."""
        await fail(locker, 1)
        clock.advance(seconds=50)
        await fail(locker, 1)
        clock.advance(seconds=11)
        status = None
        for _ in range(4):
            status = await fail(locker, 1)
            clock.advance(seconds=1)

        assert status.locked is True
        assert status.failure_count == 5

    @pytest.mark.asyncio
    async def test_remaining_attempts_restored_after_lock_expiry(self, locker, clock: FakeClock):
        await fail(locker, 5)
        clock.advance(minutes=15)

        assert await locker.get_remaining_attempts(EMAIL) == 5
        assert (await locker.get_status(EMAIL)).failure_count == 0

    @pytest.mark.asyncio
    async def test_remaining_attempts_ignore_stale_failures(self, locker, clock: FakeClock):
        await fail(locker, 3)
        clock.advance(seconds=30)
        await fail(locker, 1)
        clock.advance(seconds=31)

        assert await locker.get_remaining_attempts(EMAIL) == 4

    @pytest.mark.asyncio
    async def test_auto_unlock_after_lockout(self, locker, clock: FakeClock):
        await fail(locker, 5)
        clock.advance(minutes=15)

        assert await locker.is_locked(EMAIL) is False

    @pytest.mark.asyncio
    async def test_still_locked_before_expiry(self, locker, clock: FakeClock):
        await fail(locker, 5)
        clock.advance(minutes=14, seconds=59)

        assert await locker.is_locked(EMAIL) is True

    @pytest.mark.asyncio
    async def test_email_normalized(self, locker):
        await fail(locker, 5, email="  Alice@Example.COM ")

        assert await locker.is_locked(EMAIL) is True

    @pytest.mark.asyncio
    async def test_unknown_email_counted(self, locker):
        """Le verrou ne révèle pas l'existence du compte."""
        await fail(locker, 5, email="ghost@example.com")

        assert await locker.is_locked("ghost@example.com") is True

    @pytest.mark.asyncio
    async def test_empty_email_rejected(self, locker):
        with pytest.raises(AccountLockerError):
            await locker.record_password_failure("   ")


class TestMfaLockout:
    """Compteur MFA séparé."""

    @pytest.mark.asyncio
    async def test_mfa_failures_do_not_touch_password_counter(self, locker):
        status = await locker.record_mfa_failure(EMAIL)

        assert status.mfa_failure_count == 1
        assert status.failure_count == 0

    @pytest.mark.asyncio
    async def test_mfa_window_is_five_minutes(self, locker, clock: FakeClock):
        for _ in range(4):
            await locker.record_mfa_failure(EMAIL)
            clock.advance(seconds=70)
        status = await locker.record_mfa_failure(EMAIL)

        assert status.locked is True

    @pytest.mark.asyncio
    async def test_mfa_lock_audited_with_counter(self, locker, audit: RecordingAuditEmitter):
        for _ in range(5):
            await locker.record_mfa_failure(EMAIL, user_id="user-1")

        locked = audit.of_type(AuditEventType.ACCOUNT_LOCKED)
        assert locked[0]["metadata"]["counter"] == "mfa"
        assert locked[0]["user_id"] == "user-1"


class TestSourceIpLockout:
    """Compteur IP source."""

    @pytest.mark.asyncio
    async def test_ip_locked_across_accounts(self, store, timeouts, audit, logger, clock):
        config = LockoutConfig(source_ip=LockoutPolicy(max_failures=3, window_seconds=300, lockout_seconds=900))
        locker = AccountLocker(store, timeouts, audit, logger, config, clock)

        for i in range(3):
            await locker.record_password_failure(f"user{i}@example.com", "10.0.0.9")

        assert await locker.is_locked("fresh@example.com", "10.0.0.9") is True
        assert await locker.is_locked("fresh@example.com", "10.0.0.10") is False

    @pytest.mark.asyncio
    async def test_reset_keeps_ip_counter(self, store, timeouts, audit, logger, clock):
        config = LockoutConfig(source_ip=LockoutPolicy(max_failures=2, window_seconds=300, lockout_seconds=900))
        locker = AccountLocker(store, timeouts, audit, logger, config, clock)
        await fail(locker, 2, source_ip="10.0.0.9")

        await locker.reset(EMAIL)

        assert await locker.is_locked(EMAIL, "10.0.0.9") is True
        assert await locker.is_locked(EMAIL) is False


# =============================================================================
# DÉVERROUILLAGE
# =============================================================================


class TestUnlock:
    """Réinitialisation et déverrouillage manuel."""

    @pytest.mark.asyncio
    async def test_reset_clears_both_counters(self, locker):
        await fail(locker, 3)
        await locker.record_mfa_failure(EMAIL)

        await locker.reset(EMAIL)
        status = await locker.get_status(EMAIL)

        assert status.failure_count == 0
        assert status.mfa_failure_count == 0
        assert status.last_failure is None

    @pytest.mark.asyncio
    async def test_admin_unlock(self, locker, audit: RecordingAuditEmitter):
        await fail(locker, 5)

        assert await locker.unlock(EMAIL, unlocked_by="admin-1") is True
        assert await locker.is_locked(EMAIL) is False
        unlocked = audit.of_type(AuditEventType.ACCOUNT_UNLOCKED)
        assert unlocked[0]["user_id"] == "admin-1"

    @pytest.mark.asyncio
    async def test_unlock_not_locked_account(self, locker, audit: RecordingAuditEmitter):
        assert await locker.unlock(EMAIL, unlocked_by="admin-1") is False
        assert audit.of_type(AuditEventType.ACCOUNT_UNLOCKED) == []


def test_normalize_email():
    assert normalize_email(" Bob@Example.org ") == "bob@example.org"
    assert normalize_email(None) == ""
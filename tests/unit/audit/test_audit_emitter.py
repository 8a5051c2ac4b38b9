"""
Tests unitaires AuditEmitter

Signature ECDSA-P384, hash SHA-384 et remise fire-and-forget au puits.
"""

import base64
from unittest.mock import Mock

import pytest

from gatekeeper.audit.audit_emitter import AuditEmitter, AuditEmitterError
from gatekeeper.audit.interfaces import AuditEvent, AuditEventType, IAuditEmitter, IAuditSink, InMemoryAuditSink
from gatekeeper.core.crypto_provider import CryptoProvider
from gatekeeper.logging import LogLevel, request_context

from conftest import quiet_logger


# ══════════════════════════════════════════════════════════════════════════════
# FIXTURES
# ══════════════════════════════════════════════════════════════════════════════


class FailingSink(IAuditSink):
    """Puits indisponible."""

    async def record(self, event: AuditEvent) -> None:
        raise ConnectionError("audit sink unreachable")


@pytest.fixture
def sink() -> InMemoryAuditSink:
    return InMemoryAuditSink()


@pytest.fixture
def audit_emitter(sink: InMemoryAuditSink) -> AuditEmitter:
    """AuditEmitter réel (clés générées)."""
    return AuditEmitter(CryptoProvider(), sink, quiet_logger("gatekeeper.audit"))


@pytest.fixture
def sample_metadata():
    """Métadonnées échantillon."""
    return {"session_id": "sess-123", "source_ip": "192.168.1.1", "result": "success", "duration_ms": 234}


# ══════════════════════════════════════════════════════════════════════════════
# TESTS INTERFACE
# ══════════════════════════════════════════════════════════════════════════════


class TestAuditEmitterInterface:
    """Vérifie conformité interface."""

    def test_implements_interface(self, audit_emitter):
        """AuditEmitter implémente IAuditEmitter."""
        assert isinstance(audit_emitter, IAuditEmitter)


# ══════════════════════════════════════════════════════════════════════════════
# CONSTRUCTION
# ══════════════════════════════════════════════════════════════════════════════


class TestBuildEvent:
    """Construction des événements signés."""

    def test_event_fields(self, audit_emitter, sample_metadata):
        event = audit_emitter.build_event(
            AuditEventType.LOGIN_SUCCESS,
            "user-123",
            "login",
            organization_id="org-1",
            metadata=sample_metadata,
            ip_address="10.0.0.1",
        )

        assert event.event_type == AuditEventType.LOGIN_SUCCESS
        assert event.user_id == "user-123"
        assert event.organization_id == "org-1"
        assert event.outcome == "success"
        assert event.metadata == sample_metadata
        assert event.timestamp.tzinfo is not None

    def test_hash_is_sha384(self, audit_emitter):
        event = audit_emitter.build_event(AuditEventType.LOGIN_SUCCESS, "user-123", "login")

        assert len(event.hash_value) == 96
        assert event.hash_value == audit_emitter.compute_event_hash(event)

    def test_signature_verifies(self, audit_emitter):
        event = audit_emitter.build_event(AuditEventType.ROLE_SWITCHED, "user-123", "switch_role")

        assert audit_emitter.verify_event_signature(event) is True

    def test_tampered_event_rejected(self, audit_emitter):
        """Une modification après signature invalide l'événement."""
        event = audit_emitter.build_event(AuditEventType.ROLE_ASSIGNED, "user-123", "assign_role")
        tampered = AuditEvent(**{**event.__dict__, "user_id": "attacker"})

        assert audit_emitter.verify_event_signature(tampered) is False

    def test_unsigned_event_rejected(self, audit_emitter):
        event = audit_emitter.build_event(AuditEventType.LOGIN_SUCCESS, "user-123", "login")
        unsigned = AuditEvent(**{**event.__dict__, "signature": None})

        assert audit_emitter.verify_event_signature(unsigned) is False

    def test_mocked_crypto_signature_is_base64(self, sink):
        provider = Mock()
        provider.sign.return_value = b"mocked_signature"
        provider.hash.return_value = "h" * 96
        emitter = AuditEmitter(provider, sink, quiet_logger("gatekeeper.audit"))

        event = emitter.build_event(AuditEventType.LOGIN_SUCCESS, "user-123", "login")

        assert base64.b64decode(event.signature) == b"mocked_signature"

    @pytest.mark.parametrize("user_id, action", [("", "login"), ("user-123", "")])
    def test_required_fields(self, audit_emitter, user_id, action):
        with pytest.raises(AuditEmitterError):
            audit_emitter.build_event(AuditEventType.LOGIN_SUCCESS, user_id, action)

    def test_invalid_event_type(self, audit_emitter):
        with pytest.raises(AuditEmitterError):
            audit_emitter.build_event("login_success", "user-123", "login")


class TestMetadataSanitization:
    """Nettoyage des métadonnées."""

    def test_long_strings_truncated(self, audit_emitter):
        event = audit_emitter.build_event(AuditEventType.LOGIN_FAILURE, "u", "login", metadata={"note": "x" * 5000})

        assert len(event.metadata["note"]) == 1000

    def test_unsupported_values_dropped(self, audit_emitter):
        event = audit_emitter.build_event(
            AuditEventType.LOGIN_FAILURE, "u", "login", metadata={"obj": object(), "ok": 1, 42: "bad key"}
        )

        assert event.metadata == {"ok": 1}

    def test_lists_capped(self, audit_emitter):
        event = audit_emitter.build_event(
            AuditEventType.PERMISSION_DECISION, "u", "check", metadata={"trace": [str(i) for i in range(80)]}
        )

        assert len(event.metadata["trace"]) == 50


# ══════════════════════════════════════════════════════════════════════════════
# REMISE
# ══════════════════════════════════════════════════════════════════════════════


class TestDelivery:
    """Remise fire-and-forget."""

    @pytest.mark.asyncio
    async def test_emit_delivers_to_sink(self, audit_emitter, sink):
        event = audit_emitter.emit(AuditEventType.SESSION_CREATED, "user-123", "create_session")
        await audit_emitter.flush()

        assert list(sink.events) == [event]
        assert sink.of_type(AuditEventType.SESSION_CREATED) == [event]

    @pytest.mark.asyncio
    async def test_sink_failure_never_propagates(self):
        """Un puits indisponible n'échoue pas l'opération principale."""
        logger = quiet_logger("gatekeeper.audit")
        emitter = AuditEmitter(CryptoProvider(), FailingSink(), logger)

        event = emitter.emit(AuditEventType.LOGIN_SUCCESS, "user-123", "login")
        await emitter.flush()

        assert event is not None
        errors = [e for e in logger.get_entries() if e.message == "Audit sink delivery failed"]
        assert len(errors) == 1
        assert errors[0].level == LogLevel.ERROR

    @pytest.mark.asyncio
    async def test_invalid_event_logged_not_raised(self, audit_emitter, sink):
        assert audit_emitter.emit(AuditEventType.LOGIN_SUCCESS, "", "login") is None
        await audit_emitter.flush()

        assert list(sink.events) == []

    @pytest.mark.asyncio
    async def test_in_memory_sink_is_bounded(self):
        bounded = InMemoryAuditSink(max_events=3)
        emitter = AuditEmitter(CryptoProvider(), bounded, quiet_logger("gatekeeper.audit"))

        events = [emitter.emit(AuditEventType.PERMISSION_DECISION, "user-123", f"check-{i}") for i in range(5)]
        await emitter.flush()

        assert list(bounded.events) == events[2:]

    def test_in_memory_sink_rejects_zero_capacity(self):
        with pytest.raises(ValueError):
            InMemoryAuditSink(max_events=0)

    def test_no_running_loop_drops_event(self, audit_emitter, sink):
        event = audit_emitter.emit(AuditEventType.LOGIN_SUCCESS, "user-123", "login")

        assert event is not None
        assert list(sink.events) == []


class TestCorrelation:
    """Lien entre piste d'audit et logs."""

    def test_event_carries_request_correlation(self, audit_emitter):
        request_id = "9a1c4e2f-7b3d-4c5e-8f60-1a2b3c4d5e6f"

        with request_context(request_id):
            event = audit_emitter.build_event(AuditEventType.LOGIN_SUCCESS, "user-123", "login")

        assert event.correlation_id == request_id
        assert audit_emitter.verify_event_signature(event) is True

    def test_correlation_is_signed(self, audit_emitter):
        with request_context("9a1c4e2f-7b3d-4c5e-8f60-1a2b3c4d5e6f"):
            event = audit_emitter.build_event(AuditEventType.LOGIN_SUCCESS, "user-123", "login")
        relinked = AuditEvent(**{**event.__dict__, "correlation_id": "0b0b0b0b-0b0b-4b0b-8b0b-0b0b0b0b0b0b"})

        assert audit_emitter.verify_event_signature(relinked) is False

    def test_timestamp_from_clock(self, sink, clock):
        emitter = AuditEmitter(CryptoProvider(), sink, quiet_logger("gatekeeper.audit"), clock)

        assert emitter.build_event(AuditEventType.LOGIN_SUCCESS, "u", "login").timestamp == clock.now

"""
Gatekeeper - Pytest Configuration
Fixtures partagées pour tous les tests.
"""

from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

import pytest

from gatekeeper.audit.interfaces import AuditEvent, AuditEventType, IAuditEmitter
from gatekeeper.container import Gatekeeper
from gatekeeper.core.interfaces import GatekeeperConfig, PasswordConfig
from gatekeeper.core.timeout_manager import TimeoutManager
from gatekeeper.logging import StructuredLogger


class FakeClock:
    """Horloge contrôlée par le test (démarre à l'heure réelle)."""

    def __init__(self, start: Optional[datetime] = None) -> None:
        self.now = start or datetime.now(timezone.utc).replace(microsecond=0)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: Any) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


class RecordingAuditEmitter(IAuditEmitter):
    """Émetteur d'audit qui conserve les appels (synchrone)."""

    def __init__(self) -> None:
        self.events: List[Dict[str, Any]] = []

    def emit(
        self,
        event_type: AuditEventType,
        user_id: str,
        action: str,
        outcome: str = "success",
        organization_id: Optional[str] = None,
        resource: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
        ip_address: Optional[str] = None,
    ) -> Optional[AuditEvent]:
        self.events.append(
            {
                "event_type": event_type,
                "user_id": user_id,
                "action": action,
                "outcome": outcome,
                "organization_id": organization_id,
                "resource": resource,
                "metadata": metadata or {},
                "ip_address": ip_address,
            }
        )
        return None

    def of_type(self, event_type: AuditEventType) -> List[Dict[str, Any]]:
        return [e for e in self.events if e["event_type"] == event_type]

    def verify_event_signature(self, event: AuditEvent) -> bool:
        return True

    def compute_event_hash(self, event: AuditEvent) -> str:
        return "hash-123"

    async def flush(self) -> None:
        return None


def quiet_logger(name: str) -> StructuredLogger:
    """Logger en capture seule (aucune sortie stderr)."""
    return StructuredLogger(name, output_handler=None)


@pytest.fixture
def fixtures_path() -> Path:
    """Chemin vers le dossier fixtures."""
    return Path(__file__).parent.parent / "fixtures"


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def audit() -> RecordingAuditEmitter:
    return RecordingAuditEmitter()


@pytest.fixture
def logger() -> StructuredLogger:
    return quiet_logger("gatekeeper.tests")


@pytest.fixture
def timeouts() -> TimeoutManager:
    return TimeoutManager()


@pytest.fixture
def fast_config() -> GatekeeperConfig:
    """Configuration par défaut avec bcrypt rapide."""
    return GatekeeperConfig(passwords=PasswordConfig(bcrypt_rounds=4))


@pytest.fixture
def gatekeeper(fast_config: GatekeeperConfig, clock: FakeClock) -> Gatekeeper:
    """Services assemblés sur stores en mémoire."""
    return Gatekeeper.build(fast_config, clock=clock, logger_factory=quiet_logger)

"""
Gatekeeper Audit - Audit Emitter Implementation

Les événements de sécurité (connexions, verrous, rotations de jetons,
décisions d'autorisation, administration des rôles) sont hachés (SHA-384),
signés (ECDSA-P384) puis remis au puits sans être attendus: une défaillance
du puits est loggée, jamais propagée à la requête.
"""

import asyncio
import base64
import json
import uuid
from dataclasses import replace
from typing import Any, Dict, Optional, Set

from .interfaces import AuditEvent, AuditEventType, IAuditEmitter, IAuditSink
from ..core.crypto_provider import CryptoProvider
from ..core.interfaces import Clock, utc_now
from ..logging import StructuredLogger, current_correlation_id


AUDIT_KEY_ID = "audit_key"

MAX_KEY_LENGTH = 100
MAX_STRING_LENGTH = 1000
MAX_LIST_ITEMS = 50
MAX_DEPTH = 2

_SCALARS = (str, int, float, bool)


class AuditEmitterError(Exception):
    """Erreur émission événement audit."""

    pass


class AuditEmitter(IAuditEmitter):
    """
    Émetteur d'événements d'audit signés.

    Example:
        emitter = AuditEmitter(crypto_provider, sink, logger)
        emitter.emit(AuditEventType.LOGIN_SUCCESS, "user-123", "login")
        await emitter.flush()  # tests uniquement
    """

    def __init__(
        self,
        crypto_provider: CryptoProvider,
        sink: IAuditSink,
        logger: StructuredLogger,
        clock: Clock = utc_now,
    ) -> None:
        self.crypto_provider = crypto_provider
        self.sink = sink
        self._logger = logger
        self._clock = clock
        self._pending: Set[asyncio.Task] = set()

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
        try:
            event = self.build_event(
                event_type,
                user_id,
                action,
                outcome=outcome,
                organization_id=organization_id,
                resource=resource,
                metadata=metadata,
                ip_address=ip_address,
            )
        except AuditEmitterError as e:
            self._logger.error("Audit event not built", event_type=getattr(event_type, "value", None), error=str(e))
            return None

        self._dispatch(event)
        return event

    def build_event(
        self,
        event_type: AuditEventType,
        user_id: str,
        action: str,
        outcome: str = "success",
        organization_id: Optional[str] = None,
        resource: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
        ip_address: Optional[str] = None,
    ) -> AuditEvent:
        """
        Construit un événement haché et signé.

        L'événement porte l'identifiant de corrélation de la requête en
        cours, ce qui relie la piste d'audit aux logs.

        Raises:
            AuditEmitterError: Champs obligatoires manquants ou signature impossible
        """
        if not user_id or not action:
            raise AuditEmitterError("user_id et action sont obligatoires")
        if not isinstance(event_type, AuditEventType):
            raise AuditEmitterError(f"Type événement invalide: {event_type}")

        unsigned = AuditEvent(
            event_id=str(uuid.uuid4()),
            event_type=event_type,
            timestamp=self._clock(),
            user_id=user_id,
            organization_id=organization_id,
            action=action,
            resource=resource,
            outcome=outcome,
            metadata=_clean_mapping(metadata or {}, MAX_DEPTH),
            ip_address=ip_address,
            correlation_id=current_correlation_id(),
        )
        try:
            payload = _canonical(unsigned).encode("utf-8")
            signature = self.crypto_provider.sign(payload, AUDIT_KEY_ID)
            digest = self.crypto_provider.hash(payload)
        except Exception as e:
            raise AuditEmitterError(f"Signature impossible: {e}")

        return replace(unsigned, signature=base64.b64encode(signature).decode("ascii"), hash_value=digest)

    def verify_event_signature(self, event: AuditEvent) -> bool:
        if not event.signature:
            return False
        try:
            signature = base64.b64decode(event.signature)
            return self.crypto_provider.verify_signature(_canonical(event).encode("utf-8"), signature, AUDIT_KEY_ID)
        except Exception:
            return False

    def compute_event_hash(self, event: AuditEvent) -> str:
        try:
            return self.crypto_provider.hash(_canonical(event).encode("utf-8"))
        except Exception as e:
            raise AuditEmitterError(f"Erreur calcul hash: {e}")

    async def flush(self) -> None:
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    def _dispatch(self, event: AuditEvent) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self._logger.warn("No running loop, audit event dropped", event_id=event.event_id)
            return

        task = loop.create_task(self._deliver(event))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _deliver(self, event: AuditEvent) -> None:
        try:
            await self.sink.record(event)
        except Exception as e:
            self._logger.error(
                "Audit sink delivery failed",
                event_id=event.event_id,
                event_type=event.event_type.value,
                error=str(e),
            )


def _canonical(event: AuditEvent) -> str:
    """JSON à clés triées des champs signés (signature et hash exclus)."""
    return json.dumps(
        {
            "event_id": event.event_id,
            "event_type": event.event_type.value,
            "timestamp": event.timestamp.isoformat(),
            "user_id": event.user_id,
            "organization_id": event.organization_id,
            "action": event.action,
            "resource": event.resource,
            "outcome": event.outcome,
            "metadata": event.metadata,
            "ip_address": event.ip_address,
            "correlation_id": event.correlation_id,
        },
        sort_keys=True,
        separators=(",", ":"),
    )


def _clean_mapping(data: Dict[Any, Any], depth: int) -> Dict[str, Any]:
    """Métadonnées sérialisables et bornées; le reste est ignoré."""
    clean: Dict[str, Any] = {}
    for key, value in data.items():
        if not isinstance(key, str) or len(key) > MAX_KEY_LENGTH:
            continue
        if value is None or isinstance(value, _SCALARS):
            clean[key] = value[:MAX_STRING_LENGTH] if isinstance(value, str) else value
        elif isinstance(value, dict) and depth > 0:
            clean[key] = _clean_mapping(value, depth - 1)
        elif isinstance(value, (list, tuple, set, frozenset)):
            items = sorted(value, key=str) if isinstance(value, (set, frozenset)) else list(value)
            clean[key] = [item for item in items[:MAX_LIST_ITEMS] if isinstance(item, _SCALARS)]
    return clean

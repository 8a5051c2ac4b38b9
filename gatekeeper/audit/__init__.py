"""
Gatekeeper: Audit

Événements de sécurité signés (SHA-384 + ECDSA-P384), remis au puits
d'audit externe en fire-and-forget.
"""

from .interfaces import AuditEvent, AuditEventType, IAuditEmitter, IAuditSink, InMemoryAuditSink
from .audit_emitter import AuditEmitter, AuditEmitterError

__all__ = [
    "AuditEvent",
    "AuditEventType",
    "IAuditEmitter",
    "IAuditSink",
    "InMemoryAuditSink",
    "AuditEmitter",
    "AuditEmitterError",
]

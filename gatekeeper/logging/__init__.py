"""
Gatekeeper: Logging

Logs JSON des services:
- Champs: timestamp, level, correlation_id, organization_id, logger, message
- Corrélation par requête HTTP (ContextVar)
- Masquage des secrets d'identification
"""

from .interfaces import (
    PLATFORM_SCOPE,
    ISensitiveMasker,
    IStructuredLogger,
    LogConfig,
    LogEntry,
    LogLevel,
    correlation_id_var,
    organization_id_var,
)
from .sensitive_masker import SensitiveMasker, partial_email
from .structured_logger import StructuredLogger, build_logger_factory, stderr_handler
from .request_context import (
    CORRELATION_HEADER,
    bind_organization,
    current_correlation_id,
    is_valid_correlation_id,
    request_context,
)

__all__ = [
    "PLATFORM_SCOPE",
    "ISensitiveMasker",
    "IStructuredLogger",
    "LogConfig",
    "LogEntry",
    "LogLevel",
    "correlation_id_var",
    "organization_id_var",
    "SensitiveMasker",
    "partial_email",
    "StructuredLogger",
    "build_logger_factory",
    "stderr_handler",
    "CORRELATION_HEADER",
    "bind_organization",
    "current_correlation_id",
    "is_valid_correlation_id",
    "request_context",
]

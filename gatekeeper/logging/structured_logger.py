"""
Gatekeeper Logging - Structured Logger

Une ligne JSON par entrée, champs sensibles masqués. La corrélation et
l'organisation viennent du contexte de requête (request_context) sauf si
l'appelant les passe explicitement.
"""

import sys
import uuid
from collections import deque
from datetime import datetime, timezone
from typing import Any, Callable, Deque, Dict, List, Optional

from .interfaces import (
    IStructuredLogger,
    ISensitiveMasker,
    LogConfig,
    LogEntry,
    LogLevel,
    correlation_id_var,
    organization_id_var,
)
from .sensitive_masker import SensitiveMasker


OutputHandler = Callable[[str], None]


def stderr_handler(line: str) -> None:
    sys.stderr.write(line + "\n")


class StructuredLogger(IStructuredLogger):
    """
    Logger JSON structuré.

    Les entrées écrites sont aussi conservées (tampon borné par
    LogConfig.max_entries) et partagées avec les loggers enfants créés par
    with_context.

    Example:
        logger = StructuredLogger("gatekeeper.auth")
        logger.info("Login succeeded", user_id="u-789")
        sessions_log = logger.with_context(component="sessions")
    """

    def __init__(
        self,
        name: str,
        config: Optional[LogConfig] = None,
        masker: Optional[ISensitiveMasker] = None,
        output_handler: Optional[OutputHandler] = stderr_handler,
        _bound: Optional[Dict[str, Any]] = None,
        _buffer: Optional[Deque[LogEntry]] = None,
    ) -> None:
        """
        Args:
            name: Nom du logger (module émetteur)
            config: Niveau minimal, masquage, taille du tampon
            masker: Masquage des secrets (défaut: SensitiveMasker())
            output_handler: Destination des lignes JSON (None = tampon seul)

        Raises:
            ValueError: Nom vide
        """
        if not name or not name.strip():
            raise ValueError("Logger name cannot be empty")

        self._name = name.strip()
        self._config = config or LogConfig()
        self._masker = masker or SensitiveMasker()
        self._output = output_handler
        self._bound = dict(_bound or {})
        self._entries: Deque[LogEntry] = (
            _buffer if _buffer is not None else deque(maxlen=self._config.max_entries)
        )

    @property
    def name(self) -> str:
        return self._name

    @property
    def config(self) -> LogConfig:
        return self._config

    def log(
        self,
        level: LogLevel,
        message: str,
        correlation_id: Optional[str] = None,
        organization_id: Optional[str] = None,
        **fields: Any,
    ) -> Optional[LogEntry]:
        if not level.enabled_for(self._config.min_level):
            return None
        if not message:
            raise ValueError("Log message cannot be empty")

        merged = {**self._bound, **fields}
        if self._config.mask_sensitive:
            merged = self._masker.mask(merged)
            message = self._masker.mask_value(message)

        entry = LogEntry(
            timestamp=_timestamp(),
            level=level,
            correlation_id=correlation_id or correlation_id_var.get() or str(uuid.uuid4()),
            organization_id=(
                organization_id or organization_id_var.get() or self._config.default_organization_id
            ),
            logger=self._name,
            message=message,
            fields=merged,
        )
        self._entries.append(entry)
        if self._output is not None:
            self._output(entry.to_json())
        return entry

    def debug(self, message: str, **fields: Any) -> Optional[LogEntry]:
        return self.log(LogLevel.DEBUG, message, **fields)

    def info(self, message: str, **fields: Any) -> Optional[LogEntry]:
        return self.log(LogLevel.INFO, message, **fields)

    def warn(self, message: str, **fields: Any) -> Optional[LogEntry]:
        return self.log(LogLevel.WARN, message, **fields)

    def error(self, message: str, **fields: Any) -> Optional[LogEntry]:
        return self.log(LogLevel.ERROR, message, **fields)

    def critical(self, message: str, **fields: Any) -> Optional[LogEntry]:
        return self.log(LogLevel.CRITICAL, message, **fields)

    def with_context(self, **bound: Any) -> "StructuredLogger":
        return StructuredLogger(
            self._name,
            self._config,
            self._masker,
            self._output,
            _bound={**self._bound, **bound},
            _buffer=self._entries,
        )

    def get_entries(self, level: Optional[LogLevel] = None) -> List[LogEntry]:
        """Entrées conservées, éventuellement filtrées par niveau."""
        if level is None:
            return list(self._entries)
        return [e for e in self._entries if e.level == level]

    def clear(self) -> None:
        self._entries.clear()


def _timestamp() -> str:
    """2024-12-04T14:30:00.123Z"""
    now = datetime.now(timezone.utc)
    return now.strftime("%Y-%m-%dT%H:%M:%S.") + f"{now.microsecond // 1000:03d}Z"


def build_logger_factory(
    config: Optional[LogConfig] = None,
    masker: Optional[ISensitiveMasker] = None,
    output_handler: Optional[OutputHandler] = stderr_handler,
) -> Callable[[str], StructuredLogger]:
    """Fabrique de loggers partageant réglages et masquage (un par module)."""
    shared_masker = masker or SensitiveMasker()

    def build(name: str) -> StructuredLogger:
        return StructuredLogger(name, config, shared_masker, output_handler)

    return build

"""
Gatekeeper Logging - Sensitive Masker

Aucun secret d'identification n'atteint une ligne de log: mots de passe,
codes MFA, jetons, secrets TOTP. Les emails sont conservés sous forme
partielle (première lettre + domaine) pour rester exploitables.
"""

import re
from typing import Any, Iterable, Optional

from .interfaces import ISensitiveMasker


# Jeton d'accès (JWT compact)
_JWT_RE = re.compile(r"eyJ[\w-]+\.[\w-]+\.[\w-]+")
# Jeton de rafraîchissement: <id hex>.<secret url-safe>
_REFRESH_RE = re.compile(r"\b[0-9a-f]{32}\.[\w-]{20,}")
_BEARER_RE = re.compile(r"(?i)\bbearer\s+\S+")
_OTPAUTH_RE = re.compile(r"otpauth://\S+")
_EMAIL_RE = re.compile(r"^([^@\s])[^@\s]*@([^@\s]+)$")


def _normalize_key(key: str) -> str:
    return key.lower().replace("-", "_")


class SensitiveMasker(ISensitiveMasker):
    """
    Example:
        masker = SensitiveMasker(extra_keys=["national_id"])
        masker.mask({"password": "s3cret", "email": "alice@example.com"})
        # {"password": "***MASKED***", "email": "a***@example.com"}
    """

    def __init__(self, extra_keys: Optional[Iterable[str]] = None) -> None:
        keys = set(self.SENSITIVE_KEYS)
        for key in extra_keys or ():
            if not key or not key.strip():
                raise ValueError("Sensitive key cannot be empty")
            keys.add(_normalize_key(key.strip()))
        self._keys = frozenset(keys)

    @property
    def keys(self) -> frozenset:
        return self._keys

    def is_sensitive_key(self, key: str) -> bool:
        """Vrai si le nom de champ contient un motif sensible (refreshToken, mfa-code...)."""
        if not isinstance(key, str) or not key:
            return False
        normalized = _normalize_key(key)
        compact = normalized.replace("_", "")
        return any(k in normalized or k.replace("_", "") in compact for k in self._keys)

    def mask(self, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        return {key: self._mask_field(key, value) for key, value in data.items()}

    def mask_value(self, value: str) -> str:
        value = _JWT_RE.sub(self.MASK_VALUE, value)
        value = _REFRESH_RE.sub(self.MASK_VALUE, value)
        value = _BEARER_RE.sub(f"Bearer {self.MASK_VALUE}", value)
        return _OTPAUTH_RE.sub(self.MASK_VALUE, value)

    def _mask_field(self, key: Any, value: Any) -> Any:
        if isinstance(key, str) and self.is_sensitive_key(key):
            return self.MASK_VALUE
        if isinstance(key, str) and "email" in key.lower() and isinstance(value, str):
            return partial_email(value)
        return self._mask_any(value)

    def _mask_any(self, value: Any) -> Any:
        if isinstance(value, dict):
            return self.mask(value)
        if isinstance(value, (list, tuple)):
            return [self._mask_any(item) for item in value]
        if isinstance(value, str):
            return self.mask_value(value)
        return value


def partial_email(email: str) -> str:
    """alice@example.com -> a***@example.com (chaîne non-email: masquée)."""
    match = _EMAIL_RE.match(email.strip())
    if not match:
        return ISensitiveMasker.MASK_VALUE
    return f"{match.group(1)}***@{match.group(2)}"

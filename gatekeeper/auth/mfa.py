"""
Gatekeeper Auth - MFA (TOTP)

Secrets TOTP (RFC 6238), QR codes d'enrôlement et codes de secours.
"""

import base64
import io
import secrets
from typing import List

import pyotp
import qrcode
import qrcode.image.svg


SUPPORTED_MFA_METHODS = ("totp",)


class TOTPService:
    """
    Opérations TOTP sans état.

    Example:
        totp = TOTPService(issuer_name="JuristDZ")
        secret = totp.generate_secret()
        ok = totp.verify(secret, "123456", valid_window=1)
    """

    BACKUP_CODE_BYTES: int = 5

    def __init__(self, issuer_name: str = "JuristDZ"):
        self.issuer_name = issuer_name

    def generate_secret(self) -> str:
        """Secret TOTP base32."""
        return pyotp.random_base32()

    def provisioning_uri(self, secret: str, account_name: str) -> str:
        """URI otpauth:// pour applications d'authentification."""
        return pyotp.TOTP(secret).provisioning_uri(name=account_name, issuer_name=self.issuer_name)

    def qr_code(self, provisioning_uri: str) -> str:
        """
        QR code SVG encodé en data URI.

        Returns:
            "data:image/svg+xml;base64,..."
        """
        image = qrcode.make(provisioning_uri, image_factory=qrcode.image.svg.SvgPathImage)
        buffer = io.BytesIO()
        image.save(buffer)
        encoded = base64.b64encode(buffer.getvalue()).decode("ascii")
        return f"data:image/svg+xml;base64,{encoded}"

    def verify(self, secret: str, code: str, valid_window: int = 1) -> bool:
        """
        Vérifie un code TOTP (fenêtre ±valid_window pas de 30 s).
        """
        if not code:
            return False
        normalized = code.strip().replace(" ", "")
        if not normalized.isdigit():
            return False
        return pyotp.TOTP(secret).verify(normalized, valid_window=valid_window)

    def current_code(self, secret: str) -> str:
        return pyotp.TOTP(secret).now()

    def generate_backup_codes(self, count: int = 10) -> List[str]:
        """Codes de secours à usage unique (ex: "3F9A-1C7B2E")."""
        codes = []
        for _ in range(count):
            raw = secrets.token_hex(self.BACKUP_CODE_BYTES).upper()
            codes.append(f"{raw[:4]}-{raw[4:]}")
        return codes

    @staticmethod
    def normalize_backup_code(code: str) -> str:
        return (code or "").strip().upper().replace(" ", "")

"""
Gatekeeper - Crypto Provider Implementation
Signature ECDSA-P384, hachage salé des secrets et chiffrement au repos.
"""

import hashlib
import hmac
import secrets
from pathlib import Path
from typing import Dict, Optional

from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.asymmetric.ec import EllipticCurvePrivateKey, EllipticCurvePublicKey

from .interfaces import ICryptoProvider


class CryptoProviderError(Exception):
    """Erreur cryptographique."""

    pass


class CryptoProvider(ICryptoProvider):
    """
    Implémentation des opérations cryptographiques.

    Note:
        Les clés générées à la volée sont propres au processus. En déploiement
        multi-instances, charger la clé de signature des jetons via
        load_private_key_pem et la clé de chiffrement via encryption_key.
    """

    SALT_BYTES: int = 16

    def __init__(self, encryption_key: Optional[str] = None):
        """
        Args:
            encryption_key: Clé Fernet (base64 urlsafe). Générée si absente.
        """
        self._keys: Dict[str, EllipticCurvePrivateKey] = {}
        try:
            self._fernet = Fernet(encryption_key or Fernet.generate_key())
        except (ValueError, TypeError) as e:
            raise CryptoProviderError(f"Clé de chiffrement invalide: {e}")

    def _get_or_create_key(self, key_id: str) -> EllipticCurvePrivateKey:
        """Récupère ou crée une clé ECDSA-P384."""
        if key_id not in self._keys:
            self._keys[key_id] = ec.generate_private_key(ec.SECP384R1())
        return self._keys[key_id]

    def load_private_key_pem(self, key_id: str, path: str) -> None:
        """
        Charge une clé privée EC (PEM) partagée entre instances.

        Raises:
            CryptoProviderError: Fichier illisible ou clé non EC
        """
        try:
            key = serialization.load_pem_private_key(Path(path).read_bytes(), password=None)
        except (OSError, ValueError) as e:
            raise CryptoProviderError(f"Clé {key_id} illisible: {e}")
        if not isinstance(key, EllipticCurvePrivateKey):
            raise CryptoProviderError(f"Clé {key_id} n'est pas une clé EC")
        self._keys[key_id] = key

    def private_key(self, key_id: str) -> EllipticCurvePrivateKey:
        """Clé privée de signature (jetons d'accès)."""
        return self._get_or_create_key(key_id)

    def public_key(self, key_id: str) -> EllipticCurvePublicKey:
        """Clé publique de vérification."""
        return self._get_or_create_key(key_id).public_key()

    def sign(self, data: bytes, key_id: str) -> bytes:
        """
        Signe des données avec ECDSA-P384.

        Args:
            data: Données à signer
            key_id: ID de la clé

        Returns:
            Signature DER-encoded
        """
        private_key = self._get_or_create_key(key_id)
        return private_key.sign(data, ec.ECDSA(hashes.SHA384()))

    def verify_signature(self, data: bytes, signature: bytes, key_id: str) -> bool:
        """Vérifie une signature ECDSA-P384."""
        try:
            public_key = self._get_or_create_key(key_id).public_key()
            public_key.verify(signature, data, ec.ECDSA(hashes.SHA384()))
            return True
        except Exception:
            return False

    def hash(self, data: bytes) -> str:
        """
        Calcule hash SHA-384.

        Returns:
            Hash hex string (96 caractères)
        """
        return hashlib.sha384(data).hexdigest()

    def hash_secret(self, secret: str, salt: Optional[str] = None) -> tuple[str, str]:
        """
        Hache un secret avec un sel aléatoire (SHA-256).

        Args:
            secret: Secret en clair
            salt: Sel existant (sinon généré)

        Returns:
            (salt hex, digest hex)
        """
        salt = salt or secrets.token_hex(self.SALT_BYTES)
        digest = hashlib.sha256(f"{salt}:{secret}".encode("utf-8")).hexdigest()
        return salt, digest

    def verify_secret(self, secret: str, salt: str, digest: str) -> bool:
        """Compare un secret à son hash en temps constant."""
        _, candidate = self.hash_secret(secret, salt)
        return hmac.compare_digest(candidate, digest)

    def encrypt(self, plaintext: str) -> bytes:
        """Chiffre (Fernet) une donnée au repos."""
        return self._fernet.encrypt(plaintext.encode("utf-8"))

    def decrypt(self, ciphertext: bytes) -> str:
        """
        Déchiffre une donnée au repos.

        Raises:
            CryptoProviderError: Donnée altérée ou clé différente
        """
        try:
            return self._fernet.decrypt(ciphertext).decode("utf-8")
        except InvalidToken:
            raise CryptoProviderError("Déchiffrement impossible (donnée altérée ou clé invalide)")

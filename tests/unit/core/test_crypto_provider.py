"""
Tests unitaires CryptoProvider

Signature ECDSA-P384, hachage salé des secrets et chiffrement au repos.
"""

from pathlib import Path

import pytest
from cryptography.fernet import Fernet
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec

from gatekeeper.core import CryptoProvider, CryptoProviderError


@pytest.fixture
def crypto() -> CryptoProvider:
    return CryptoProvider()


class TestSignatures:
    """ECDSA-P384."""

    def test_sign_and_verify(self, crypto: CryptoProvider) -> None:
        signature = crypto.sign(b"payload", "audit_key")

        assert crypto.verify_signature(b"payload", signature, "audit_key") is True

    def test_tampered_data_rejected(self, crypto: CryptoProvider) -> None:
        signature = crypto.sign(b"payload", "audit_key")

        assert crypto.verify_signature(b"payload!", signature, "audit_key") is False

    def test_keys_are_separate(self, crypto: CryptoProvider) -> None:
        signature = crypto.sign(b"payload", "audit_key")

        assert crypto.verify_signature(b"payload", signature, "access_token_key") is False

    def test_public_key_matches_private(self, crypto: CryptoProvider) -> None:
        private = crypto.private_key("k")

        assert crypto.public_key("k").public_numbers() == private.public_key().public_numbers()
        assert isinstance(private.curve, ec.SECP384R1)

    def test_load_private_key_pem(self, crypto: CryptoProvider, tmp_path: Path) -> None:
        key = ec.generate_private_key(ec.SECP384R1())
        path = tmp_path / "signing.pem"
        path.write_bytes(
            key.private_bytes(
                serialization.Encoding.PEM,
                serialization.PrivateFormat.PKCS8,
                serialization.NoEncryption(),
            )
        )

        crypto.load_private_key_pem("access_token_key", str(path))

        assert crypto.public_key("access_token_key").public_numbers() == key.public_key().public_numbers()

    def test_load_missing_pem(self, crypto: CryptoProvider, tmp_path: Path) -> None:
        with pytest.raises(CryptoProviderError):
            crypto.load_private_key_pem("k", str(tmp_path / "absent.pem"))


class TestSecretHashing:
    """Hash salé (jetons de rafraîchissement, codes de secours)."""

    def test_hash_is_sha384_hex(self, crypto: CryptoProvider) -> None:
        assert len(crypto.hash(b"data")) == 96

    def test_salted_hash_verifies(self, crypto: CryptoProvider) -> None:
        salt, digest = crypto.hash_secret("refresh-secret")

        assert crypto.verify_secret("refresh-secret", salt, digest) is True
        assert crypto.verify_secret("other", salt, digest) is False

    def test_same_secret_different_salts(self, crypto: CryptoProvider) -> None:
        first = crypto.hash_secret("secret")
        second = crypto.hash_secret("secret")

        assert first[0] != second[0]
        assert first[1] != second[1]

    def test_digest_never_contains_secret(self, crypto: CryptoProvider) -> None:
        salt, digest = crypto.hash_secret("visible-secret")

        assert "visible-secret" not in digest
        assert "visible-secret" not in salt


class TestEncryption:
    """Fernet (secrets MFA au repos)."""

    def test_roundtrip(self, crypto: CryptoProvider) -> None:
        ciphertext = crypto.encrypt("JBSWY3DPEHPK3PXP")

        assert b"JBSWY3DPEHPK3PXP" not in ciphertext
        assert crypto.decrypt(ciphertext) == "JBSWY3DPEHPK3PXP"

    def test_shared_key_across_instances(self) -> None:
        key = Fernet.generate_key().decode()

        assert CryptoProvider(key).decrypt(CryptoProvider(key).encrypt("s")) == "s"

    def test_other_key_cannot_decrypt(self, crypto: CryptoProvider) -> None:
        ciphertext = crypto.encrypt("s")

        with pytest.raises(CryptoProviderError):
            CryptoProvider().decrypt(ciphertext)

    def test_invalid_key_rejected(self) -> None:
        with pytest.raises(CryptoProviderError):
            CryptoProvider("not-a-fernet-key")

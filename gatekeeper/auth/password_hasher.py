"""
Gatekeeper Auth - Password Hasher

Hachage bcrypt des mots de passe. Les appels bcrypt (coûteux en CPU)
sont exécutés hors de la boucle d'événements.
"""

import asyncio

import bcrypt


class PasswordHasher:
    """
    Hachage et vérification bcrypt.

    Example:
        hasher = PasswordHasher()
        stored = await hasher.hash("s3cret")
        ok = await hasher.verify("s3cret", stored)
    """

    DEFAULT_ROUNDS: int = 12
    # bcrypt ignore au-delà de 72 octets
    MAX_PASSWORD_BYTES: int = 72

    def __init__(self, rounds: int = DEFAULT_ROUNDS):
        if not 4 <= rounds <= 31:
            raise ValueError(f"bcrypt rounds must be within [4, 31], got {rounds}")
        self._rounds = rounds
        self._dummy_hash = bcrypt.hashpw(b"gatekeeper-dummy-password", bcrypt.gensalt(rounds=rounds))

    async def hash(self, password: str) -> str:
        """Hache un mot de passe (salt bcrypt intégré)."""
        if not password:
            raise ValueError("Password cannot be empty")
        digest = await asyncio.to_thread(bcrypt.hashpw, self._encode(password), bcrypt.gensalt(rounds=self._rounds))
        return digest.decode("utf-8")

    async def verify(self, password: str, password_hash: str) -> bool:
        """Compare un mot de passe à son hash (temps constant)."""
        try:
            return await asyncio.to_thread(bcrypt.checkpw, self._encode(password), password_hash.encode("utf-8"))
        except ValueError:
            return False

    async def dummy_verify(self, password: str) -> bool:
        """
        Vérification factice pour un email inconnu: même coût qu'une vraie
        vérification, résultat toujours False.
        """
        await asyncio.to_thread(bcrypt.checkpw, self._encode(password), self._dummy_hash)
        return False

    def _encode(self, password: str) -> bytes:
        return (password or "").encode("utf-8")[: self.MAX_PASSWORD_BYTES]

"""
Gatekeeper RBAC - Permission Cache

Cache des ensembles de permissions effectifs, clé (user_id, active_role,
organization_id), TTL court. Les octrois se propagent au plus en un TTL;
les révocations invalident immédiatement les entrées concernées.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple

from .catalog import Profession
from .interfaces import EffectivePermissions
from ..core.interfaces import Clock, PermissionCacheConfig, utc_now


CacheKey = Tuple[str, Profession, Optional[str]]


class PermissionCacheError(Exception):
    """Erreur cache permissions."""

    pass


@dataclass
class CachedPermissions:
    """Entrée de cache avec horodatage."""

    permissions: EffectivePermissions
    cached_at: datetime


class PermissionCache:
    """
    Cache TTL des permissions effectives.

    Note:
        Stockage en mémoire par instance. L'invalidation doit être diffusée
        à toutes les instances (bus de messages) en déploiement multi-nœuds.

    Example:
        cache = PermissionCache(config.permission_cache)
        cache.set(effective)
        cached = cache.get(("user-1", Profession.LAWYER, "org-1"))
    """

    MAX_TTL_SECONDS: int = 900

    def __init__(self, config: Optional[PermissionCacheConfig] = None, clock: Clock = utc_now):
        """
        Args:
            config: TTL du cache (défaut 60 s)
            clock: Horloge injectable

        Raises:
            PermissionCacheError: TTL hors limites
        """
        config = config or PermissionCacheConfig()
        if not 0 < config.ttl_seconds <= self.MAX_TTL_SECONDS:
            raise PermissionCacheError(f"TTL invalide: {config.ttl_seconds}s")

        self._ttl = timedelta(seconds=config.ttl_seconds)
        self._clock = clock
        self._cache: Dict[CacheKey, CachedPermissions] = {}
        self._hits = 0
        self._misses = 0
        self._invalidations = 0
        self._expirations = 0

    @staticmethod
    def key_for(user_id: str, active_role: Profession, organization_id: Optional[str]) -> CacheKey:
        return (user_id, active_role, organization_id)

    def get(self, key: CacheKey) -> Optional[EffectivePermissions]:
        """
        Récupère un ensemble effectif.

        Returns:
            Ensemble en cache si présent et dans le TTL
        """
        cached = self._cache.get(key)
        if cached is None:
            self._misses += 1
            return None

        if not self._is_within_ttl(cached):
            del self._cache[key]
            self._expirations += 1
            self._misses += 1
            return None

        self._hits += 1
        return cached.permissions

    def set(self, permissions: EffectivePermissions) -> None:
        """Stocke un ensemble effectif."""
        key = self.key_for(permissions.user_id, permissions.active_role, permissions.organization_id)
        self._cache[key] = CachedPermissions(permissions=permissions, cached_at=self._clock())

    def invalidate(self, key: CacheKey) -> bool:
        """
        Invalide une entrée.

        Returns:
            True si une entrée a été retirée
        """
        if key in self._cache:
            del self._cache[key]
            self._invalidations += 1
            return True
        return False

    def invalidate_user(self, user_id: str) -> int:
        """Invalide toutes les entrées d'un utilisateur (tous rôles, toutes organisations)."""
        return self._invalidate_where(lambda key: key[0] == user_id)

    def invalidate_organization(self, organization_id: str) -> int:
        """Invalide toutes les entrées d'une organisation (mise à jour de rôle personnalisé)."""
        return self._invalidate_where(lambda key: key[2] == organization_id)

    def invalidate_all(self) -> int:
        return self._invalidate_where(lambda key: True)

    def is_valid(self, key: CacheKey) -> bool:
        """Vrai si l'entrée existe et est dans le TTL."""
        cached = self._cache.get(key)
        return cached is not None and self._is_within_ttl(cached)

    def cleanup_expired(self) -> int:
        """
        Nettoie entrées expirées.

        Returns:
            Nombre d'entrées nettoyées
        """
        expired = [key for key, cached in self._cache.items() if not self._is_within_ttl(cached)]
        for key in expired:
            del self._cache[key]
        self._expirations += len(expired)
        return len(expired)

    def stats(self) -> Dict[str, Any]:
        """Statistiques cache pour monitoring."""
        lookups = self._hits + self._misses
        return {
            "entries": len(self._cache),
            "ttl_seconds": int(self._ttl.total_seconds()),
            "hits": self._hits,
            "misses": self._misses,
            "hit_ratio": round(self._hits / lookups, 4) if lookups else 0.0,
            "invalidations": self._invalidations,
            "expirations": self._expirations,
        }

    def _invalidate_where(self, predicate) -> int:
        keys: List[CacheKey] = [key for key in self._cache if predicate(key)]
        for key in keys:
            del self._cache[key]
        self._invalidations += len(keys)
        return len(keys)

    def _is_within_ttl(self, cached: CachedPermissions) -> bool:
        return self._clock() - cached.cached_at < self._ttl

"""
Gatekeeper - Config Loader Implementation
Charge la configuration depuis un fichier YAML et la valide.
"""

import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from pydantic import ValidationError

from .interfaces import GatekeeperConfig, IConfigLoader


CONFIG_ENV_VAR = "GATEKEEPER_CONFIG"


class ConfigIntegrityError(Exception):
    """Erreur d'intégrité de configuration."""

    pass


class ConfigLoader(IConfigLoader):
    """Chargement de la configuration depuis fichiers YAML."""

    def __init__(self, default_path: Optional[str] = None):
        self.default_path = default_path or os.environ.get(CONFIG_ENV_VAR)

    def load(self, path: Optional[str] = None) -> GatekeeperConfig:
        """
        Charge la configuration.

        Sans chemin (ni argument, ni variable GATEKEEPER_CONFIG), retourne
        la configuration par défaut.

        Args:
            path: Chemin du fichier YAML

        Returns:
            Configuration validée

        Raises:
            ConfigIntegrityError: Si fichier inexistant, YAML invalide ou valeurs hors limites
        """
        config_path = path or self.default_path
        if not config_path:
            return GatekeeperConfig()

        config_file = Path(config_path)
        if not config_file.exists():
            raise ConfigIntegrityError(f"Configuration non trouvée: {config_file}")

        try:
            with open(config_file, "r", encoding="utf-8") as f:
                raw = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigIntegrityError(f"Erreur de parsing YAML: {e}")
        except OSError as e:
            raise ConfigIntegrityError(f"Erreur de lecture fichier: {e}")

        return self.from_dict(raw)

    def from_dict(self, raw: Any) -> GatekeeperConfig:
        """
        Valide un dictionnaire de configuration.

        Raises:
            ConfigIntegrityError: Structure ou valeurs invalides
        """
        if not isinstance(raw, dict):
            raise ConfigIntegrityError("Configuration doit être un objet YAML")

        self._validate_basic_structure(raw)

        try:
            return GatekeeperConfig.model_validate(raw)
        except ValidationError as e:
            raise ConfigIntegrityError(f"Configuration invalide: {e}")

    def _validate_basic_structure(self, config: Dict[str, Any]) -> None:
        """Valide la structure de base de la configuration."""
        if "version" not in config:
            raise ConfigIntegrityError("Champ obligatoire manquant: version")

        if not isinstance(config["version"], str):
            raise ConfigIntegrityError("version doit être une chaîne")

        for section in ("lockout", "tokens", "sessions", "mfa", "passwords", "permission_cache", "timeouts", "logging"):
            if section in config and not isinstance(config[section], dict):
                raise ConfigIntegrityError(f"{section} doit être un objet")

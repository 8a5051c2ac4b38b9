"""
Tests unitaires ConfigLoader

Chargement YAML, valeurs par défaut et bornes de sécurité.
"""

from pathlib import Path

import pytest

from gatekeeper.core import (
    CONFIG_ENV_VAR,
    ConfigIntegrityError,
    ConfigLoader,
    GatekeeperConfig,
    TokenConfig,
)


# ══════════════════════════════════════════════════════════════════════════════
# VALEURS PAR DÉFAUT
# ══════════════════════════════════════════════════════════════════════════════


class TestDefaults:
    """Configuration sûre sans fichier."""

    def test_defaults_without_path(self, monkeypatch) -> None:
        monkeypatch.delenv(CONFIG_ENV_VAR, raising=False)
        config = ConfigLoader().load()

        assert isinstance(config, GatekeeperConfig)
        assert config.lockout.password.max_failures == 5
        assert config.lockout.password.window_seconds == 60
        assert config.lockout.password.lockout_seconds == 900
        assert config.lockout.mfa.window_seconds == 300
        assert config.lockout.source_ip.max_failures == 50
        assert config.tokens.access_token_seconds == 900
        assert config.tokens.refresh_token_days == 14
        assert config.sessions.session_days == 30
        assert config.mfa.valid_window == 1
        assert config.mfa.backup_code_count == 10
        assert config.permission_cache.ttl_seconds == 60
        assert config.timeouts.credential_store == 5.0

    def test_env_var_names_default_file(self, monkeypatch, fixtures_path: Path) -> None:
        monkeypatch.setenv(CONFIG_ENV_VAR, str(fixtures_path / "configs" / "gatekeeper.yaml"))

        assert ConfigLoader().load().mfa.issuer_name == "JuristDZ"


# ══════════════════════════════════════════════════════════════════════════════
# FICHIERS
# ══════════════════════════════════════════════════════════════════════════════


class TestLoadFile:
    """Chargement depuis YAML."""

    def test_load_valid_file(self, fixtures_path: Path) -> None:
        config = ConfigLoader().load(str(fixtures_path / "configs" / "gatekeeper.yaml"))

        assert config.version == "1"
        assert config.passwords.bcrypt_rounds == 12
        assert config.logging.extra_sensitive_keys == ["national_id"]

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigIntegrityError, match="non trouvée"):
            ConfigLoader().load(str(tmp_path / "absent.yaml"))

    def test_invalid_yaml(self, tmp_path: Path) -> None:
        path = tmp_path / "bad.yaml"
        path.write_text("version: [unclosed\n")

        with pytest.raises(ConfigIntegrityError, match="YAML"):
            ConfigLoader().load(str(path))

    def test_out_of_bounds_token_lifetimes(self, fixtures_path: Path) -> None:
        with pytest.raises(ConfigIntegrityError, match="invalide"):
            ConfigLoader().load(str(fixtures_path / "configs" / "invalid_tokens.yaml"))


# ══════════════════════════════════════════════════════════════════════════════
# VALIDATION
# ══════════════════════════════════════════════════════════════════════════════


class TestValidation:
    """Structure et bornes."""

    def test_version_required(self) -> None:
        with pytest.raises(ConfigIntegrityError, match="version"):
            ConfigLoader().from_dict({"tokens": {}})

    def test_version_must_be_string(self) -> None:
        with pytest.raises(ConfigIntegrityError, match="chaîne"):
            ConfigLoader().from_dict({"version": 1})

    def test_section_must_be_mapping(self) -> None:
        with pytest.raises(ConfigIntegrityError, match="lockout"):
            ConfigLoader().from_dict({"version": "1", "lockout": "strict"})

    def test_root_must_be_mapping(self) -> None:
        with pytest.raises(ConfigIntegrityError):
            ConfigLoader().from_dict(["version"])

    @pytest.mark.parametrize("seconds", [0, 901, 3600])
    def test_access_token_max_15_minutes(self, seconds: int) -> None:
        with pytest.raises(ConfigIntegrityError):
            ConfigLoader().from_dict({"version": "1", "tokens": {"access_token_seconds": seconds}})

    @pytest.mark.parametrize("days", [6, 31])
    def test_refresh_token_between_7_and_30_days(self, days: int) -> None:
        with pytest.raises(ConfigIntegrityError):
            ConfigLoader().from_dict({"version": "1", "tokens": {"refresh_token_days": days}})

    def test_refresh_bounds_inclusive(self) -> None:
        assert TokenConfig(refresh_token_days=7).refresh_token_days == 7
        assert TokenConfig(refresh_token_days=30).refresh_token_days == 30

    def test_session_must_outlive_refresh_token(self) -> None:
        with pytest.raises(ConfigIntegrityError):
            ConfigLoader().from_dict(
                {"version": "1", "tokens": {"refresh_token_days": 30}, "sessions": {"session_days": 10}}
            )

    def test_mfa_window_at_most_one_step(self) -> None:
        with pytest.raises(ConfigIntegrityError):
            ConfigLoader().from_dict({"version": "1", "mfa": {"valid_window": 2}})

    def test_bcrypt_rounds_bounds(self) -> None:
        with pytest.raises(ConfigIntegrityError):
            ConfigLoader().from_dict({"version": "1", "passwords": {"bcrypt_rounds": 3}})

    def test_unknown_log_level(self) -> None:
        with pytest.raises(ConfigIntegrityError):
            ConfigLoader().from_dict({"version": "1", "logging": {"level": "TRACE"}})

"""
Tests for configuration loading, environment overrides and validation.
"""

import pytest

from config.config import Config, DatabaseConfig, FeatureFlags, PersistenceSettings, StorageConfig
from config.environments import EnvironmentManager


class TestDefaults:
    def test_storage_defaults(self):
        storage = StorageConfig()
        assert storage.bucket_name == "study-data"
        assert storage.bucket_public is False

    def test_feature_flag_defaults(self):
        flags = FeatureFlags()
        assert flags.enforce_upload_path_prefix is False
        assert flags.derive_csv_row_count is True

    def test_persistence_defaults(self):
        settings = PersistenceSettings()
        assert settings.lock_pre_images is True
        assert settings.expire_on_commit is False

    def test_get_feature_flag(self, test_config):
        assert test_config.get_feature_flag("derive_csv_row_count") is True
        assert test_config.get_feature_flag("no_such_flag") is False


class TestEnvironmentVariables:
    def test_dsn_from_environment(self, monkeypatch):
        monkeypatch.setenv("POSTGRES_DSN", "postgresql://u:p@db:5432/studies")
        assert DatabaseConfig().dsn == "postgresql://u:p@db:5432/studies"

    def test_database_url_fallback(self, monkeypatch):
        monkeypatch.delenv("POSTGRES_DSN", raising=False)
        monkeypatch.setenv("DATABASE_URL", "sqlite:///studies.db")
        assert DatabaseConfig().dsn == "sqlite:///studies.db"

    def test_feature_flag_override(self, monkeypatch):
        monkeypatch.setenv("FEATURE_ENFORCE_UPLOAD_PATH_PREFIX", "true")
        assert FeatureFlags().enforce_upload_path_prefix is True

    def test_persistence_settings_prefix(self, monkeypatch):
        monkeypatch.setenv("PERSISTENCE__LOCK_PRE_IMAGES", "false")
        assert PersistenceSettings().lock_pre_images is False


class TestValidation:
    def test_public_bucket_rejected(self, test_config):
        test_config.storage.bucket_public = True
        with pytest.raises(ValueError, match="must not be public"):
            test_config.validate()

    @pytest.mark.parametrize("service_role_enabled", [True, False])
    def test_production_requires_dsn(self, monkeypatch, service_role_enabled):
        monkeypatch.delenv("POSTGRES_DSN", raising=False)
        monkeypatch.delenv("DATABASE_URL", raising=False)
        config = Config()
        config.environment = "production"
        config.security.service_role_enabled = service_role_enabled
        with pytest.raises(ValueError, match="POSTGRES_DSN"):
            config.validate()

    def test_production_minio_requires_secret(self, monkeypatch):
        monkeypatch.setenv("POSTGRES_DSN", "postgresql://u:p@db:5432/studies")
        monkeypatch.delenv("MINIO_SECRET_KEY", raising=False)
        config = Config()
        config.environment = "production"
        config.storage.use_minio = True
        with pytest.raises(ValueError, match="MINIO_SECRET_KEY"):
            config.validate()

    def test_valid_configuration(self, test_config):
        test_config.validate()


class TestEnvironmentManager:
    def test_bundled_environments(self):
        manager = EnvironmentManager()
        assert {"development", "testing", "production"} <= set(manager.list_environments())

    def test_testing_environment_uses_sqlite(self):
        config = EnvironmentManager().apply_environment(Config(), "testing")
        assert config.database.dsn == "sqlite://"
        assert config.storage.use_minio is False

    def test_overrides_from_directory(self, tmp_path):
        env_dir = tmp_path / "environments"
        env_dir.mkdir()
        (env_dir / "staging.yaml").write_text("log_level: ERROR\nstorage:\n  bucket_name: staging-data\n")
        (env_dir / "qa.json").write_text('{"security": {"policy_audit_logging": false}}')

        manager = EnvironmentManager(tmp_path)
        staging = manager.apply_environment(Config(), "staging")
        qa = manager.apply_environment(Config(), "qa")

        assert staging.log_level == "ERROR"
        assert staging.storage.bucket_name == "staging-data"
        assert qa.security.policy_audit_logging is False

    def test_unknown_environment_leaves_config(self):
        config = Config()
        assert EnvironmentManager().apply_environment(config, "nowhere") is config

    def test_testing_overrides(self):
        config = Config()
        config.environment = "testing"
        config.apply_environment_overrides()
        assert config.security.policy_audit_logging is False
        assert config.storage.use_minio is False

"""
Tests for environment-driven configuration.
"""

import pytest

from core.exceptions import ConfigurationError
from utils.config import Config
from conftest import ENV_VARS


@pytest.fixture
def config(monkeypatch, tmp_path):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    empty_env = tmp_path / ".env"
    empty_env.write_text("")
    return Config(str(empty_env))


def test_missing_vars_reported(config):
    missing = config.get_missing_vars()

    assert "AD_SERVER" in missing
    assert "ACCOUNT_PREFIXES" in missing
    assert "NOTIFICATION_SENDER" in missing
    assert config.validate() is False


def test_complete_environment_validates(config, monkeypatch):
    for name in ["AD_SERVER", "AD_USERNAME", "AD_PASSWORD", "BASE_DN", "GRAPH_TENANT_ID",
                 "GRAPH_CLIENT_ID", "GRAPH_CLIENT_SECRET", "NOTIFICATION_SENDER"]:
        monkeypatch.setenv(name, "value")
    monkeypatch.setenv("ACCOUNT_PREFIXES", "adm, t0,,")

    assert config.validate() is True
    assert config.account_prefixes == ["adm", "t0"]


def test_dotenv_file_is_loaded(monkeypatch, tmp_path):
    for name in ENV_VARS:
        # setenv first so teardown removes whatever load_dotenv writes
        monkeypatch.setenv(name, "")
        monkeypatch.delenv(name)
    env_file = tmp_path / ".env"
    env_file.write_text("AD_SERVER=ldaps://dc01.corp.example\nACCOUNT_PREFIXES=adm\n")

    config = Config(str(env_file))

    assert config.ad_server == "ldaps://dc01.corp.example"
    assert config.prefix_policy().matches("ADM-alice")


class TestRemediationSettings:

    def test_defaults(self, config):
        settings = config.remediation_settings()

        assert (settings.warn_days, settings.disable_days, settings.delete_days) == (90, 120, 180)
        assert settings.deletion_enabled is False
        assert settings.dry_run is False

    def test_environment_overrides(self, config, monkeypatch):
        monkeypatch.setenv("WARN_THRESHOLD_DAYS", "30")
        monkeypatch.setenv("DISABLE_THRESHOLD_DAYS", "60")
        monkeypatch.setenv("ENABLE_DELETION", "yes")

        settings = config.remediation_settings()

        assert settings.warn_days == 30
        assert settings.disable_days == 60
        assert settings.deletion_enabled is True

    def test_explicit_arguments_win(self, config, monkeypatch):
        monkeypatch.setenv("WARN_THRESHOLD_DAYS", "30")

        settings = config.remediation_settings(warn_days=45, dry_run=True)

        assert settings.warn_days == 45
        assert settings.dry_run is True

    def test_non_integer_threshold(self, config, monkeypatch):
        monkeypatch.setenv("DELETE_THRESHOLD_DAYS", "soon")

        with pytest.raises(ConfigurationError, match="DELETE_THRESHOLD_DAYS"):
            config.remediation_settings()

    def test_inconsistent_thresholds(self, config):
        with pytest.raises(ConfigurationError):
            config.remediation_settings(warn_days=200)


def test_owner_attribute_policy(config, monkeypatch):
    monkeypatch.setenv("OWNER_ATTRIBUTE_KEY", "manager")
    monkeypatch.setenv("OWNER_ATTRIBUTE_CASE_SENSITIVE", "false")

    policy = config.owner_attribute_policy()

    assert policy.key == "manager"
    assert policy.case_sensitive is False
    assert policy.parse("MANAGER=jdoe") == "jdoe"


def test_search_base_defaults_to_base_dn(config, monkeypatch):
    monkeypatch.setenv("BASE_DN", "DC=corp,DC=example")

    assert config.search_base == "DC=corp,DC=example"
    assert config.ad_owner_attribute == "extensionAttribute1"
    assert config.notification_override_recipient is None

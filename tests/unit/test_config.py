"""Test configuration module."""

import os
from unittest.mock import patch

import pytest

from scm_bitbucket.config import BitbucketConfig, FuseboxConfig, Settings, get_settings
from scm_bitbucket.scm.exceptions import ConfigurationError


def setup_module():
    """Clear settings cache before tests."""
    get_settings.cache_clear()


def teardown_module():
    """Clear settings cache after tests."""
    get_settings.cache_clear()


class TestBitbucketConfig:
    """Test plugin config validation."""

    def test_camel_case_keys(self):
        config = BitbucketConfig.load({
            "oauthClientId": "id",
            "oauthClientSecret": "secret",
            "https": True,
            "fusebox": {"maxRetries": 1, "resetTimeout": 5},
        })

        assert config.oauth_client_id == "id"
        assert config.oauth_client_secret == "secret"
        assert config.https is True
        assert config.fusebox.max_retries == 1
        assert config.fusebox.reset_timeout == 5.0
        assert config.fusebox.failure_threshold == 5

    def test_snake_case_keys_and_defaults(self):
        config = BitbucketConfig.load({"oauth_client_id": "id", "oauth_client_secret": "secret"})

        assert config.username == "sd-buildbot"
        assert config.email == "dev-null@screwdriver.cd"
        assert config.https is False
        assert config.fusebox == FuseboxConfig()

    @pytest.mark.parametrize(
        "raw",
        [
            None,
            {},
            {"oauthClientId": "id"},
            {"oauthClientId": "", "oauthClientSecret": "secret"},
            {"oauthClientId": "id", "oauthClientSecret": "secret", "fusebox": {"maxRetries": -1}},
        ],
    )
    def test_invalid(self, raw):
        with pytest.raises(ConfigurationError, match="Invalid config for Bitbucket"):
            BitbucketConfig.load(raw)

    def test_load_passes_through_instances(self):
        config = BitbucketConfig(oauth_client_id="id", oauth_client_secret="secret")

        assert BitbucketConfig.load(config) is config


class TestSettings:
    """Test Settings class."""

    def setup_method(self):
        get_settings.cache_clear()

    def teardown_method(self):
        get_settings.cache_clear()

    def test_default_settings(self):
        """Test default settings values."""
        with patch.dict(os.environ, {}, clear=True):
            settings = Settings()

        assert settings.app_name == "SCM Bitbucket"
        assert settings.app_version == "0.1.0"
        assert settings.debug is False
        assert settings.environment == "development"
        assert settings.port == 8000
        assert settings.bitbucket_oauth_client_id is None
        assert settings.http_max_retries == 3

    def test_environment_override(self):
        env = {
            "BITBUCKET_OAUTH_CLIENT_ID": "env-id",
            "BITBUCKET_OAUTH_CLIENT_SECRET": "env-secret",
            "BITBUCKET_HTTPS": "true",
            "HTTP_TIMEOUT": "2.5",
            "BREAKER_FAILURE_THRESHOLD": "9",
        }
        with patch.dict(os.environ, env, clear=True):
            settings = Settings()

        scm_config = BitbucketConfig.load(settings.to_scm_config())
        assert scm_config.oauth_client_id == "env-id"
        assert scm_config.oauth_client_secret == "env-secret"
        assert scm_config.https is True
        assert scm_config.fusebox.timeout == 2.5
        assert scm_config.fusebox.failure_threshold == 9

    def test_get_settings_cached(self):
        """Test settings are cached."""
        settings1 = get_settings()
        settings2 = get_settings()

        assert settings1 is settings2

from unittest.mock import patch

import pytest
from pydantic import ValidationError

from summaryq.config.settings import Settings, get_settings


def test_default_settings():
    """Test default settings values."""
    settings = Settings(_env_file=None)

    assert settings.app_name == "summaryq"
    assert settings.version == "0.1.0"
    assert settings.environment == "development"
    assert settings.debug is True
    assert settings.summary_prompt_version == "v1"
    assert settings.summary_provider == "glm"
    assert settings.summary_max_attempts == 5
    assert settings.summary_stale_lock_ms == 120_000
    assert settings.summary_worker_poll_interval_ms == 1500
    assert settings.summary_recovery_interval_ms == 30_000
    assert settings.summary_retry_schedule_s == [30, 120, 600, 3600, 21600]


def test_cache_ttl_in_milliseconds():
    """Test that the cache TTL is exposed in milliseconds."""
    settings = Settings(_env_file=None, summary_cache_ttl_s=60)
    assert settings.summary_cache_ttl_ms == 60_000


def test_production_validation_blocks_debug():
    """Test that production environment blocks DEBUG=true."""
    with pytest.raises(ValueError, match="DEBUG=true is not allowed in production"):
        Settings(_env_file=None, environment="production", debug=True)


def test_production_allows_debug_off():
    settings = Settings(_env_file=None, environment="production", debug=False)
    assert settings.environment == "production"


def test_retry_schedule_must_not_be_empty():
    with pytest.raises(ValidationError, match="must not be empty"):
        Settings(_env_file=None, summary_retry_schedule_s=[])


def test_retry_schedule_must_be_positive():
    with pytest.raises(ValidationError, match="must be positive"):
        Settings(_env_file=None, summary_retry_schedule_s=[30, 0])


def test_max_attempts_lower_bound():
    with pytest.raises(ValidationError):
        Settings(_env_file=None, summary_max_attempts=0)


def test_settings_dependency_injection():
    """Test the get_settings dependency function."""
    settings = get_settings()
    assert isinstance(settings, Settings)
    assert settings is get_settings()


@patch.dict(
    "os.environ",
    {
        "SUMMARY_MAX_ATTEMPTS": "3",
        "SUMMARY_STALE_LOCK_MS": "60000",
        "SUMMARY_RETRY_SCHEDULE_S": "[5, 10]",
        "ENVIRONMENT": "staging",
    },
)
def test_env_var_loading():
    """Test that environment variables are loaded correctly."""
    settings = Settings(_env_file=None)
    assert settings.summary_max_attempts == 3
    assert settings.summary_stale_lock_ms == 60_000
    assert settings.summary_retry_schedule_s == [5, 10]
    assert settings.environment == "staging"

"""Config and RunSettings tests"""

import os

import pytest
from pydantic import ValidationError

from estatespider.common.config import Config, RunSettings
from estatespider.common.exceptions import ConfigValidationError
from estatespider.common.types import RunMode

START_URL = "https://listings.example.com/search?type=land"


@pytest.fixture
def clean_env(monkeypatch):
    # private copy so values loaded from .env files do not leak between tests
    monkeypatch.setattr(os, "environ", os.environ.copy())
    for name in (
        "START_URL",
        "INITIAL_MAX_PAGES",
        "UPDATE_MAX_PAGES",
        "MIN_AREA_SQFT",
        "MAX_RETRIES",
        "BACKOFF_JITTER",
        "HEADLESS",
        "REDIS_ENABLED",
        "S3_BUCKET",
    ):
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


class TestConfig:
    """Environment sections"""

    def test_defaults(self, clean_env):
        config = Config()
        assert config.browser.headless is True
        assert config.crawl.min_area_sqft == 1500.0
        assert config.crawl.initial_max_pages == 15
        assert config.crawl.update_max_pages == 3
        assert config.redis.enabled is False
        assert config.storage.s3_bucket is None

    def test_environment_is_read(self, clean_env):
        clean_env.setenv("START_URL", START_URL)
        clean_env.setenv("MIN_AREA_SQFT", "2500")
        clean_env.setenv("HEADLESS", "false")
        clean_env.setenv("S3_BUCKET", "harvest-bucket")

        config = Config()

        assert config.crawl.start_url == START_URL
        assert config.crawl.min_area_sqft == 2500.0
        assert config.browser.headless is False
        assert config.storage.s3_bucket == "harvest-bucket"

    def test_load_reads_env_file(self, clean_env, tmp_path):
        env_file = tmp_path / ".env"
        env_file.write_text(f"START_URL={START_URL}\nUPDATE_MAX_PAGES=5\n", encoding="utf-8")

        config = Config.load(str(env_file))

        assert config.crawl.start_url == START_URL
        assert config.crawl.update_max_pages == 5


class TestRunSettings:
    """Frozen per-run settings"""

    def test_page_ceiling_depends_on_mode(self, clean_env):
        clean_env.setenv("START_URL", START_URL)
        config = Config()
        assert RunSettings.for_mode("initial", config).max_pages == 15
        assert RunSettings.for_mode("update", config).max_pages == 3
        assert RunSettings.for_mode(RunMode.DAILY, config).max_pages == 3

    def test_overrides_win_and_none_is_ignored(self, clean_env):
        config = Config()
        settings = RunSettings.for_mode("update", config, start_url=START_URL, max_pages=7, min_area_sqft=None)
        assert settings.start_url == START_URL
        assert settings.max_pages == 7
        assert settings.min_area_sqft == 1500.0

    def test_settings_are_frozen(self):
        settings = RunSettings(mode=RunMode.UPDATE, start_url=START_URL)
        with pytest.raises(ValidationError):
            settings.max_pages = 99

    def test_unknown_mode(self, clean_env):
        with pytest.raises(ConfigValidationError):
            RunSettings.for_mode("weekly", Config(), start_url=START_URL)

    def test_missing_start_url(self, clean_env):
        with pytest.raises(ConfigValidationError):
            RunSettings.for_mode("update", Config())

    def test_jitter_above_cap_is_rejected(self, clean_env):
        with pytest.raises(ConfigValidationError):
            RunSettings.for_mode("update", Config(), start_url=START_URL, backoff_jitter=0.5)

    def test_attempts_must_be_positive(self):
        with pytest.raises(ValidationError):
            RunSettings(mode=RunMode.UPDATE, start_url=START_URL, max_attempts=0)

"""Configuration management

Environment-level settings are read once by ``Config.load()`` and folded into
an immutable ``RunSettings`` at run start. Crawl components only ever receive
explicit values from ``RunSettings``; nothing below the orchestrator reads the
environment.
"""

from __future__ import annotations

import os

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, field_validator

from .constants import (
    DEFAULT_BACKOFF_BASE_S,
    DEFAULT_BACKOFF_JITTER,
    DEFAULT_CHECKPOINT_FILE,
    DEFAULT_DETAIL_CONCURRENCY,
    DEFAULT_INITIAL_MAX_PAGES,
    DEFAULT_LOOKBACK_MONTHS,
    DEFAULT_MAX_ATTEMPTS,
    DEFAULT_MIN_AREA_SQFT,
    DEFAULT_NAV_TIMEOUT_MS,
    DEFAULT_PAGE_PARAM,
    DEFAULT_RESULTS_FILE,
    DEFAULT_UPDATE_MAX_PAGES,
    MAX_BACKOFF_JITTER,
)
from .exceptions import ConfigValidationError
from .types import RunMode


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


def _env_optional_float(name: str) -> float | None:
    raw = os.getenv(name, "").strip()
    return float(raw) if raw else None


class BrowserConfig(BaseModel):
    """Browser settings"""

    headless: bool = Field(default_factory=lambda: _env_bool("HEADLESS", "true"))
    viewport_width: int = Field(default_factory=lambda: int(os.getenv("VIEWPORT_WIDTH", "1920")))
    viewport_height: int = Field(default_factory=lambda: int(os.getenv("VIEWPORT_HEIGHT", "1080")))
    nav_timeout_ms: int = Field(
        default_factory=lambda: int(os.getenv("NAV_TIMEOUT_MS", str(DEFAULT_NAV_TIMEOUT_MS)))
    )
    # skip images/fonts/stylesheets to speed up rendering
    block_resources: bool = Field(default_factory=lambda: _env_bool("BLOCK_RESOURCES", "true"))
    executable_path: str | None = Field(
        default_factory=lambda: os.getenv("BROWSER_EXECUTABLE_PATH") or None
    )
    # visited once before the first listing page to establish cookies
    warmup_url: str | None = Field(default_factory=lambda: os.getenv("WARMUP_URL") or None)
    debug_artifacts: bool = Field(default_factory=lambda: _env_bool("DEBUG_ARTIFACTS", "false"))


class CrawlConfig(BaseModel):
    """Pagination, filtering and retry settings"""

    start_url: str = Field(default_factory=lambda: os.getenv("START_URL", ""))
    page_param: str = Field(default_factory=lambda: os.getenv("PAGE_PARAM", DEFAULT_PAGE_PARAM))
    min_area_sqft: float = Field(
        default_factory=lambda: float(os.getenv("MIN_AREA_SQFT", str(DEFAULT_MIN_AREA_SQFT)))
    )
    lookback_months: int = Field(
        default_factory=lambda: int(os.getenv("LOOKBACK_MONTHS", str(DEFAULT_LOOKBACK_MONTHS)))
    )
    initial_max_pages: int = Field(
        default_factory=lambda: int(os.getenv("INITIAL_MAX_PAGES", str(DEFAULT_INITIAL_MAX_PAGES)))
    )
    update_max_pages: int = Field(
        default_factory=lambda: int(os.getenv("UPDATE_MAX_PAGES", str(DEFAULT_UPDATE_MAX_PAGES)))
    )
    max_attempts: int = Field(
        default_factory=lambda: int(os.getenv("MAX_RETRIES", str(DEFAULT_MAX_ATTEMPTS)))
    )
    backoff_base_s: float = Field(
        default_factory=lambda: float(os.getenv("BACKOFF_BASE", str(DEFAULT_BACKOFF_BASE_S)))
    )
    backoff_jitter: float = Field(
        default_factory=lambda: float(os.getenv("BACKOFF_JITTER", str(DEFAULT_BACKOFF_JITTER)))
    )
    # ===== inter-page pacing =====
    page_delay_base_s: float = Field(default_factory=lambda: float(os.getenv("PAGE_DELAY_BASE", "2.0")))
    page_delay_random_s: float = Field(default_factory=lambda: float(os.getenv("PAGE_DELAY_RANDOM", "1.0")))
    backoff_factor: float = Field(default_factory=lambda: float(os.getenv("BACKOFF_FACTOR", "1.5")))
    max_backoff_level: int = Field(default_factory=lambda: int(os.getenv("MAX_BACKOFF_LEVEL", "3")))
    credit_recovery_pages: int = Field(
        default_factory=lambda: int(os.getenv("CREDIT_RECOVERY_PAGES", "5"))
    )
    detail_concurrency: int = Field(
        default_factory=lambda: int(os.getenv("DETAIL_CONCURRENCY", str(DEFAULT_DETAIL_CONCURRENCY)))
    )
    run_deadline_s: float | None = Field(default_factory=lambda: _env_optional_float("RUN_DEADLINE_S"))
    sort_newest_first: bool = Field(default_factory=lambda: _env_bool("SORT_NEWEST_FIRST", "true"))
    seed_dedup: bool = Field(default_factory=lambda: _env_bool("SEED_DEDUP", "true"))


class StorageConfig(BaseModel):
    """Output and checkpoint locations"""

    output_dir: str = Field(default_factory=lambda: os.getenv("OUTPUT_DIR", "output"))
    results_file: str = Field(default_factory=lambda: os.getenv("RESULTS_FILE", DEFAULT_RESULTS_FILE))
    checkpoint_file: str = Field(
        default_factory=lambda: os.getenv("CHECKPOINT_FILE", DEFAULT_CHECKPOINT_FILE)
    )
    # optional object storage mirror
    s3_bucket: str | None = Field(default_factory=lambda: os.getenv("S3_BUCKET") or None)
    s3_prefix: str = Field(default_factory=lambda: os.getenv("S3_PREFIX", ""))


class RedisConfig(BaseModel):
    """Redis seen-key store (cross-run dedup)"""

    enabled: bool = Field(default_factory=lambda: _env_bool("REDIS_ENABLED", "false"))
    host: str = Field(default_factory=lambda: os.getenv("REDIS_HOST", "localhost"))
    port: int = Field(default_factory=lambda: int(os.getenv("REDIS_PORT", "6379")))
    password: str | None = Field(default_factory=lambda: os.getenv("REDIS_PASSWORD", None))
    db: int = Field(default_factory=lambda: int(os.getenv("REDIS_DB", "0")))
    key_prefix: str = Field(default_factory=lambda: os.getenv("REDIS_KEY_PREFIX", "estatespider:seen"))


class Config(BaseModel):
    """Environment configuration"""

    browser: BrowserConfig = Field(default_factory=BrowserConfig)
    crawl: CrawlConfig = Field(default_factory=CrawlConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    redis: RedisConfig = Field(default_factory=RedisConfig)

    @classmethod
    def load(cls, env_file: str | None = None) -> "Config":
        """Load ``.env`` and read the environment"""
        load_dotenv(env_file)
        return cls()


class RunSettings(BaseModel):
    """Immutable per-run settings handed to the orchestrator"""

    model_config = ConfigDict(frozen=True)

    mode: RunMode
    start_url: str
    page_param: str = DEFAULT_PAGE_PARAM
    min_area_sqft: float = DEFAULT_MIN_AREA_SQFT
    lookback_months: int = DEFAULT_LOOKBACK_MONTHS
    max_pages: int | None = None
    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    backoff_base_s: float = DEFAULT_BACKOFF_BASE_S
    backoff_jitter: float = DEFAULT_BACKOFF_JITTER
    page_delay_base_s: float = 2.0
    page_delay_random_s: float = 1.0
    backoff_factor: float = 1.5
    max_backoff_level: int = 3
    credit_recovery_pages: int = 5
    detail_concurrency: int = DEFAULT_DETAIL_CONCURRENCY
    deadline_s: float | None = None
    sort_newest_first: bool = True
    seed_dedup: bool = True

    @field_validator("start_url")
    @classmethod
    def _check_start_url(cls, value: str) -> str:
        value = value.strip()
        if not value.lower().startswith(("http://", "https://")):
            raise ValueError(f"start url must be http(s): {value!r}")
        return value

    @field_validator("max_attempts", "detail_concurrency")
    @classmethod
    def _check_positive(cls, value: int) -> int:
        if value < 1:
            raise ValueError("must be >= 1")
        return value

    @field_validator("backoff_jitter")
    @classmethod
    def _check_jitter(cls, value: float) -> float:
        if not 0 <= value <= MAX_BACKOFF_JITTER:
            raise ValueError(f"jitter ratio must be within [0, {MAX_BACKOFF_JITTER}]")
        return value

    @property
    def stop_when_no_new(self) -> bool:
        """Initial backfill keeps paginating up to the ceiling"""
        return self.mode.is_incremental

    @classmethod
    def for_mode(cls, mode: RunMode | str, config: Config, **overrides) -> "RunSettings":
        """Fold environment config and CLI overrides into frozen run settings

        Args:
            mode: ``initial``, ``update`` or ``daily``
            config: loaded environment configuration
            **overrides: explicit values that win over the environment (None is ignored)

        Raises:
            ConfigValidationError: unknown mode or invalid values
        """
        try:
            run_mode = RunMode(mode)
        except ValueError as exc:
            raise ConfigValidationError(f"unknown run mode: {mode!r}") from exc

        crawl = config.crawl
        values = {
            "mode": run_mode,
            "start_url": crawl.start_url,
            "page_param": crawl.page_param,
            "min_area_sqft": crawl.min_area_sqft,
            "lookback_months": crawl.lookback_months,
            "max_pages": crawl.update_max_pages if run_mode.is_incremental else crawl.initial_max_pages,
            "max_attempts": crawl.max_attempts,
            "backoff_base_s": crawl.backoff_base_s,
            "backoff_jitter": crawl.backoff_jitter,
            "page_delay_base_s": crawl.page_delay_base_s,
            "page_delay_random_s": crawl.page_delay_random_s,
            "backoff_factor": crawl.backoff_factor,
            "max_backoff_level": crawl.max_backoff_level,
            "credit_recovery_pages": crawl.credit_recovery_pages,
            "detail_concurrency": crawl.detail_concurrency,
            "deadline_s": crawl.run_deadline_s,
            "sort_newest_first": crawl.sort_newest_first,
            "seed_dedup": crawl.seed_dedup,
        }
        values.update({key: value for key, value in overrides.items() if value is not None})
        try:
            return cls(**values)
        except ValueError as exc:
            raise ConfigValidationError(str(exc)) from exc

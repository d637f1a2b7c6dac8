"""Configuration module for benchdiff."""

from .settings import (
    DEFAULT_ALLOWED_ASSOCIATIONS,
    DEFAULT_BENCH_COUNT,
    DEFAULT_BENCH_TIME,
    DEFAULT_BOT_NAME,
    DEFAULT_CONCURRENCY,
    DEFAULT_GIT_BASE,
    DEFAULT_PERCENTAGE_THRESHOLD,
    LOG_PATH,
    SHARE_BASE_URL,
    BenchdiffConfig,
    GitHubSettings,
    log_level_from_env,
    validate_bench_time,
)

__all__ = [
    "DEFAULT_ALLOWED_ASSOCIATIONS",
    "DEFAULT_BENCH_COUNT",
    "DEFAULT_BENCH_TIME",
    "DEFAULT_BOT_NAME",
    "DEFAULT_CONCURRENCY",
    "DEFAULT_GIT_BASE",
    "DEFAULT_PERCENTAGE_THRESHOLD",
    "LOG_PATH",
    "SHARE_BASE_URL",
    "BenchdiffConfig",
    "GitHubSettings",
    "log_level_from_env",
    "validate_bench_time",
]

import logging
import os
import re
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any

from platformdirs import user_state_dir

from .compat import env_bool, env_float, env_positive_int, env_url

logger = logging.getLogger(__name__)

__all__ = [
    "DEFAULT_BENCH_COUNT",
    "DEFAULT_BENCH_TIME",
    "DEFAULT_CONCURRENCY",
    "DEFAULT_GIT_BASE",
    "BenchdiffConfig",
]

# Comparison defaults; BENCHDIFF_* overrides are read by BenchdiffConfig.from_env()
DEFAULT_GIT_BASE = "HEAD~1"
DEFAULT_BENCH_TIME = "10s"
DEFAULT_BENCH_COUNT = 1
# Phase 1 (compile + list) worker limit
DEFAULT_CONCURRENCY = 4
# Overall deadline for a run (None: no deadline)
DEFAULT_TIMEOUT_SECONDS: float | None = None

# Profile sharing (flamegraph.com compatible upload API)
SHARE_BASE_URL = "https://flamegraph.com"
SHARE_UPLOAD_PATH = "/api/upload/v1"
SHARE_TIMEOUT_SECONDS = 30.0
SHARE_MAX_RETRIES = 2
SHARE_RETRY_BASE_DELAY = 1.0

# Diffs at or above this absolute percentage are flagged in rendered reports
DEFAULT_PERCENTAGE_THRESHOLD = 5.0

# GitHub
GITHUB_API_URL = "https://api.github.com"
GITHUB_SERVER_URL = "https://github.com"
GITHUB_TIMEOUT_SECONDS = 30.0
DEFAULT_BOT_NAME = "@benchdiff"
DEFAULT_ALLOWED_ASSOCIATIONS = ("collaborator", "contributor", "member", "owner")

# Structured event log (default: off, BENCHDIFF_EVENT_LOG=1 enables it at write time)
# - Linux: ~/.local/state/benchdiff
# - macOS: ~/Library/Application Support/benchdiff
# Note: Directory is created lazily in observability/events.py when writing
EVENT_LOG_ENABLED = False
LOG_DIR = Path(user_state_dir("benchdiff", appauthor=False))
LOG_PATH = LOG_DIR / "benchdiff.log"
MAX_LOG_SIZE_BYTES = 10 * 1024 * 1024

DEFAULT_LOG_LEVEL = "INFO"


def log_level_from_env() -> str:
    return os.getenv("BENCHDIFF_LOG_LEVEL", "").strip().upper() or DEFAULT_LOG_LEVEL

_BENCH_TIME_RE = re.compile(r"^(\d+x|\d+(\.\d+)?(ns|us|µs|ms|s|m|h))$")


def validate_bench_time(value: str) -> str:
    """Check a Go ``-test.benchtime`` value (``10s``, ``500ms``, ``100x``)."""
    text = (value or "").strip()
    if not _BENCH_TIME_RE.match(text):
        raise ValueError(f"invalid benchmark time {value!r} (expected e.g. 10s, 500ms or 100x)")
    return text


def _parse_github_pr(ref: str) -> int | None:
    prefix = "refs/pull/"
    suffix = "/merge"
    if not ref.startswith(prefix) or not ref.endswith(suffix):
        return None
    try:
        return int(ref[len(prefix) : len(ref) - len(suffix)])
    except ValueError:
        return None


@dataclass(frozen=True)
class GitHubSettings:
    token: str
    owner: str
    repo: str
    pr: int | None = None
    api_url: str = GITHUB_API_URL
    server_url: str = GITHUB_SERVER_URL

    @property
    def repository_url(self) -> str:
        return f"{self.server_url}/{self.owner}/{self.repo}"

    @classmethod
    def from_env(cls, pr: int | None = None) -> "GitHubSettings":
        token = os.getenv("GITHUB_TOKEN", "").strip()
        if not token:
            raise RuntimeError("GITHUB_TOKEN is required for GitHub reporting")

        repository = os.getenv("GITHUB_REPOSITORY", "").strip()
        if not repository:
            raise RuntimeError("GITHUB_REPOSITORY is required for GitHub reporting")
        owner, sep, repo = repository.partition("/")
        if not sep or not owner or not repo:
            raise RuntimeError("GITHUB_REPOSITORY must be in the format owner/repo")

        if pr is None:
            github_ref = os.getenv("GITHUB_REF", "").strip()
            pr = _parse_github_pr(github_ref)
            if pr is None and github_ref:
                logger.warning(
                    "GITHUB_REF %s is not a pull request ref; comments will not be posted",
                    github_ref,
                )

        return cls(
            token=token,
            owner=owner,
            repo=repo,
            pr=pr,
            api_url=env_url("GITHUB_API_URL", GITHUB_API_URL),
            server_url=env_url("GITHUB_SERVER_URL", GITHUB_SERVER_URL),
        )


@dataclass(frozen=True)
class BenchdiffConfig:
    git_base: str = DEFAULT_GIT_BASE
    bench_time: str = DEFAULT_BENCH_TIME
    bench_count: int = DEFAULT_BENCH_COUNT
    concurrency: int = DEFAULT_CONCURRENCY
    timeout_seconds: float | None = DEFAULT_TIMEOUT_SECONDS
    share_enabled: bool = True
    share_url: str = SHARE_BASE_URL
    share_timeout_seconds: float = SHARE_TIMEOUT_SECONDS
    percentage_threshold: float = DEFAULT_PERCENTAGE_THRESHOLD
    github_commenter: bool = False
    json_output: Path | None = None
    workdir: Path | None = None  # head working tree; defaults to the current directory

    def __post_init__(self) -> None:
        validate_bench_time(self.bench_time)
        if self.bench_count <= 0:
            raise ValueError(f"bench_count must be positive, got {self.bench_count}")
        if self.concurrency <= 0:
            raise ValueError(f"concurrency must be positive, got {self.concurrency}")
        if self.timeout_seconds is not None and self.timeout_seconds <= 0:
            raise ValueError(f"timeout_seconds must be positive, got {self.timeout_seconds}")

    @classmethod
    def from_env(cls) -> "BenchdiffConfig":
        """Build a config from ``BENCHDIFF_*`` variables, read at call time.

        Unset or unparsable numeric variables fall back to the defaults above.
        """
        return cls(
            git_base=os.getenv("BENCHDIFF_GIT_BASE", "").strip() or DEFAULT_GIT_BASE,
            bench_time=os.getenv("BENCHDIFF_BENCH_TIME", "").strip() or DEFAULT_BENCH_TIME,
            bench_count=env_positive_int("BENCHDIFF_BENCH_COUNT", DEFAULT_BENCH_COUNT),
            concurrency=env_positive_int("BENCHDIFF_CONCURRENCY", DEFAULT_CONCURRENCY),
            timeout_seconds=env_float("BENCHDIFF_TIMEOUT_SECONDS", DEFAULT_TIMEOUT_SECONDS),
            share_enabled=env_bool("BENCHDIFF_UPLOAD", default=True),
            share_url=env_url("BENCHDIFF_SHARE_URL", SHARE_BASE_URL),
            share_timeout_seconds=(
                env_float("BENCHDIFF_SHARE_TIMEOUT_SECONDS", SHARE_TIMEOUT_SECONDS)
                or SHARE_TIMEOUT_SECONDS
            ),
            percentage_threshold=(
                env_float("BENCHDIFF_PERCENTAGE_THRESHOLD", DEFAULT_PERCENTAGE_THRESHOLD)
                or DEFAULT_PERCENTAGE_THRESHOLD
            ),
        )

    def with_overrides(self, **overrides: Any) -> "BenchdiffConfig":
        """Return a copy with every non-None override applied."""
        changes = {k: v for k, v in overrides.items() if v is not None}
        return replace(self, **changes) if changes else self

import logging
import os
import signal
import sys
from pathlib import Path
from typing import Any

import click
from dotenv import load_dotenv

from . import __version__
from .bench.compare import Comparison
from .bench.matcher import BenchmarkSelection
from .config import BenchdiffConfig
from .config.settings import (
    DEFAULT_ALLOWED_ASSOCIATIONS,
    DEFAULT_BOT_NAME,
    log_level_from_env,
    validate_bench_time,
)
from .errors import BenchdiffError, CommentHookError, OperationCancelled
from .github import GitHubEventContext, run_comment_hook
from .report.factory import build_reporters
from .report.reporters import ReportPublisher
from .scope import CancelToken

logger = logging.getLogger(__name__)

EXIT_FAILURE = 1
EXIT_CANCELLED = 130


def _load_dotenv() -> None:
    dotenv_path = os.getenv("BENCHDIFF_DOTENV_PATH", "").strip()
    if not dotenv_path:
        load_dotenv()
        return
    path = Path(dotenv_path).expanduser()
    if path.exists():
        load_dotenv(path)
    else:
        click.echo(f"Warning: BENCHDIFF_DOTENV_PATH does not exist: {dotenv_path}", err=True)
        load_dotenv()


def _configure_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else getattr(logging, log_level_from_env(), logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s - %(message)s",
        stream=sys.stderr,
    )


def _install_signal_handlers(token: CancelToken) -> None:
    def _handler(signum: int, _frame: Any) -> None:
        logger.warning("Received signal %d, cancelling", signum)
        token.cancel(f"received signal {signum}")

    signal.signal(signal.SIGTERM, _handler)


def _bench_time_option(ctx: click.Context, param: click.Parameter, value: str | None) -> str | None:
    if value is None:
        return None
    try:
        return validate_bench_time(value)
    except ValueError as exc:
        raise click.BadParameter(str(exc)) from exc


def _run_guarded(token: CancelToken, func: Any, *args: Any, **kwargs: Any) -> Any:
    """Run ``func`` mapping failures to exit codes (1 fatal, 130 cancelled)."""
    try:
        return func(*args, **kwargs)
    except KeyboardInterrupt:
        token.cancel("interrupted")
        click.echo("Error: interrupted", err=True)
        sys.exit(EXIT_CANCELLED)
    except OperationCancelled as exc:
        click.echo(f"Error: cancelled: {exc}", err=True)
        sys.exit(EXIT_CANCELLED)
    except BenchdiffError as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(EXIT_FAILURE)


@click.group()
@click.version_option(__version__, prog_name="benchdiff")
def main() -> None:
    """Compare Go benchmark profiles between two git revisions."""
    _load_dotenv()


@main.command()
@click.option("--git-base", default=None, help="Base revision to compare against [default: HEAD~1]")
@click.option(
    "--bench-time",
    default=None,
    callback=_bench_time_option,
    help="Go -test.benchtime value, e.g. 10s or 100x [default: 10s]",
)
@click.option(
    "--bench-count", default=None, type=click.IntRange(min=1), help="Go -test.count [default: 1]"
)
@click.option(
    "--bench",
    "bench_patterns",
    multiple=True,
    help="Only run benchmarks whose name matches this regex (repeatable)",
)
@click.option(
    "--concurrency",
    default=None,
    type=click.IntRange(min=1),
    help="Packages compiled in parallel [default: 4]",
)
@click.option(
    "--timeout",
    "timeout_seconds",
    default=None,
    type=click.FloatRange(min=0, min_open=True),
    help="Overall deadline in seconds (default: none)",
)
@click.option("--github-commenter", is_flag=True, help="Post the report as a pull request comment")
@click.option(
    "--percentage-threshold",
    default=None,
    type=float,
    help="Flag diffs at or above this absolute percentage [default: 5]",
)
@click.option(
    "--json-output",
    default=None,
    type=click.Path(dir_okay=False, path_type=Path),
    help="Append every report snapshot as JSON lines to this file",
)
@click.option("--no-upload", is_flag=True, help="Do not upload profiles for sharing")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
def compare(
    git_base: str | None,
    bench_time: str | None,
    bench_count: int | None,
    bench_patterns: tuple[str, ...],
    concurrency: int | None,
    timeout_seconds: float | None,
    github_commenter: bool,
    percentage_threshold: float | None,
    json_output: Path | None,
    no_upload: bool,
    verbose: bool,
) -> None:
    """Run changed benchmarks on the base revision and the working tree."""
    _configure_logging(verbose)

    try:
        selection = BenchmarkSelection.from_patterns(bench_patterns)
    except ValueError as exc:
        raise click.BadParameter(str(exc), param_hint="--bench") from exc

    try:
        config = BenchdiffConfig.from_env().with_overrides(
            git_base=git_base,
            bench_time=bench_time,
            bench_count=bench_count,
            concurrency=concurrency,
            timeout_seconds=timeout_seconds,
            percentage_threshold=percentage_threshold,
            json_output=json_output,
            github_commenter=github_commenter or None,
            share_enabled=False if no_upload else None,
        )
    except ValueError as exc:
        raise click.UsageError(str(exc)) from exc

    token = CancelToken(timeout=config.timeout_seconds)
    _install_signal_handlers(token)

    def _compare() -> None:
        publisher = ReportPublisher(build_reporters(config))
        try:
            result = Comparison(config, publisher=publisher, selection=selection).run(token)
        finally:
            publisher.stop()
        if result.failures:
            logger.warning("%d benchmark measurement(s) failed", result.failures)

    _run_guarded(token, _compare)


@main.command("github-comment-hook")
@click.option(
    "--allowed-associations",
    multiple=True,
    default=DEFAULT_ALLOWED_ASSOCIATIONS,
    show_default=True,
    help="Author associations allowed to trigger benchmarks (repeatable)",
)
@click.option("--bot-name", default=DEFAULT_BOT_NAME, show_default=True, help="Name to respond to")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
def github_comment_hook(
    allowed_associations: tuple[str, ...], bot_name: str, verbose: bool
) -> None:
    """Run benchmarks requested in a pull request comment.

    Reads the event from GITHUB_CONTEXT. The comment body is read from stdin
    when it is piped, otherwise taken from the event payload.
    """
    _configure_logging(verbose)

    raw_context = os.getenv("GITHUB_CONTEXT", "")
    github_token = os.getenv("GITHUB_TOKEN", "").strip()
    try:
        config = BenchdiffConfig.from_env()
    except ValueError as exc:
        raise click.UsageError(str(exc)) from exc
    token = CancelToken(timeout=config.timeout_seconds)
    _install_signal_handlers(token)

    def _hook() -> None:
        if not raw_context:
            raise CommentHookError("GITHUB_CONTEXT is required for github comment hook")
        if not github_token:
            raise CommentHookError("GITHUB_TOKEN is required for github comment hook")
        context = GitHubEventContext.from_json(raw_context)
        piped = "" if sys.stdin.isatty() else sys.stdin.read()
        body = piped or context.comment_body
        run_comment_hook(
            context,
            body,
            config=config,
            github_token=github_token,
            bot_name=bot_name,
            allowed_associations=allowed_associations,
            token=token,
        )

    _run_guarded(token, _hook)


if __name__ == "__main__":
    main()

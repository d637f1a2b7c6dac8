import json
import logging
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any

from ..bench.compare import Comparison, ComparisonResult
from ..bench.matcher import BenchmarkSelection, BenchmarkSelector
from ..config import BenchdiffConfig
from ..config.compat import env_url
from ..config.settings import (
    DEFAULT_ALLOWED_ASSOCIATIONS,
    DEFAULT_BOT_NAME,
    GITHUB_API_URL,
    GITHUB_SERVER_URL,
    GitHubSettings,
    validate_bench_time,
)
from ..errors import BenchdiffError, CommentHookError
from ..report.reporters import ReportPublisher
from ..scope import CancelToken
from .client import GitHubClient
from .comment import GitHubCommentReporter

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GitHubEventContext:
    """The parts of the Actions ``github`` context the comment hook needs."""

    repository: str
    event_name: str
    action: str = ""
    comment_id: int = 0
    comment_body: str = ""
    author_association: str = ""
    issue_number: int = 0
    pull_request_url: str = ""

    @property
    def is_pull_request(self) -> bool:
        return bool(self.pull_request_url)

    @classmethod
    def from_json(cls, raw: str) -> "GitHubEventContext":
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise CommentHookError(f"failed to parse GITHUB_CONTEXT: {exc}") from exc
        if not isinstance(data, dict):
            raise CommentHookError("GITHUB_CONTEXT must be a JSON object")
        return cls.from_dict(data)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "GitHubEventContext":
        event = data.get("event") or {}
        comment = event.get("comment") or {}
        issue = event.get("issue") or {}
        pull_request = issue.get("pull_request") or {}
        try:
            return cls(
                repository=str(data.get("repository") or ""),
                event_name=str(data.get("event_name") or ""),
                action=str(event.get("action") or ""),
                comment_id=int(comment.get("id") or 0),
                comment_body=str(comment.get("body") or ""),
                author_association=str(comment.get("author_association") or ""),
                issue_number=int(issue.get("number") or 0),
                pull_request_url=str(pull_request.get("url") or ""),
            )
        except (TypeError, ValueError) as exc:
            raise CommentHookError(f"malformed GITHUB_CONTEXT: {exc}") from exc


def validate_context(
    context: GitHubEventContext,
    allowed_associations: Iterable[str] = DEFAULT_ALLOWED_ASSOCIATIONS,
) -> None:
    """Reject events the hook must not act on."""
    if context.event_name != "issue_comment":
        raise CommentHookError(
            f"unsupported event_name in github context: {context.event_name}, "
            "expected issue_comment"
        )
    if context.action != "created":
        raise CommentHookError(f"unsupported action in github context: {context.action}")

    allowed = [a.lower() for a in allowed_associations]
    if context.author_association.lower() not in allowed:
        raise CommentHookError(
            f"author association {context.author_association} is not allowed, "
            f"allowed are {', '.join(allowed)}"
        )
    if not context.is_pull_request or not context.issue_number:
        raise CommentHookError("comment is not on a pull request")

    owner, sep, repo = context.repository.partition("/")
    if not sep or not owner or not repo:
        raise CommentHookError(
            f"repository must be in the format owner/repo: {context.repository!r}"
        )


def parse_command_line(body: str, bot_name: str = DEFAULT_BOT_NAME) -> list[BenchmarkSelector]:
    """Extract benchmark selectors from the lines of a comment mentioning ``bot_name``.

    ``@benchdiff BenchmarkFoo time=1s count=3 BenchmarkBar`` yields two
    selectors; ``time=``/``count=`` apply to the selector before them.
    """
    selectors: list[BenchmarkSelector] = []
    for line in body.splitlines():
        pos = line.find(bot_name)
        if pos < 0:
            continue

        current: dict[str, Any] | None = None
        for field in line[pos + len(bot_name) :].split():
            key, sep, value = field.partition("=")
            if not sep:
                if current is not None:
                    selectors.append(BenchmarkSelector(**current))
                current = {"regex": field}
                continue
            if current is None:
                raise CommentHookError(f"{key}= given before any benchmark regex")
            if key == "count":
                try:
                    current["count"] = int(value)
                except ValueError as exc:
                    raise CommentHookError(f"failed to parse count: {value!r}") from exc
            elif key == "time":
                try:
                    current["time"] = validate_bench_time(value)
                except ValueError as exc:
                    raise CommentHookError(f"failed to parse time: {exc}") from exc
            else:
                logger.debug("Ignoring unknown comment option %s", field)
        if current is not None:
            selectors.append(BenchmarkSelector(**current))
    return selectors


def run_comment_hook(
    context: GitHubEventContext,
    body: str,
    *,
    config: BenchdiffConfig,
    github_token: str,
    bot_name: str = DEFAULT_BOT_NAME,
    allowed_associations: Iterable[str] = DEFAULT_ALLOWED_ASSOCIATIONS,
    token: CancelToken | None = None,
) -> ComparisonResult | None:
    """Run the benchmarks requested in a pull request comment.

    Returns None when the comment asks for nothing.

    Raises:
        CommentHookError: If the event is not one the hook acts on.
        BenchdiffError: If the comparison fails; the failure is also
            reported on the pull request.
    """
    validate_context(context, allowed_associations)

    selectors = parse_command_line(body, bot_name)
    if not selectors:
        logger.info("No benchmarks requested in comment %d", context.comment_id)
        return None
    try:
        selection = BenchmarkSelection(tuple(selectors))
    except ValueError as exc:
        raise CommentHookError(str(exc)) from exc

    owner, _, repo = context.repository.partition("/")
    settings = GitHubSettings(
        token=github_token,
        owner=owner,
        repo=repo,
        pr=context.issue_number,
        api_url=env_url("GITHUB_API_URL", GITHUB_API_URL),
        server_url=env_url("GITHUB_SERVER_URL", GITHUB_SERVER_URL),
    )
    client = GitHubClient(settings)

    pull = client.get_pull_request(context.issue_number)
    base_sha = str((pull.get("base") or {}).get("sha") or "")
    if not base_sha:
        raise CommentHookError(f"pull request #{context.issue_number} has no base sha")
    logger.info(
        "Running benchmarks repo=%s pr=%d base=%s selectors=%s",
        context.repository,
        context.issue_number,
        base_sha,
        ", ".join(s.regex for s in selectors),
    )

    reporter = GitHubCommentReporter(
        client,
        context.issue_number,
        event_comment_id=context.comment_id,
        share_url=config.share_url,
        threshold=config.percentage_threshold,
    )
    publisher = ReportPublisher([reporter])
    comparison = Comparison(
        config.with_overrides(git_base=base_sha), publisher=publisher, selection=selection
    )
    try:
        return comparison.run(token)
    except BenchdiffError as exc:
        reporter.handle_error(exc)
        raise
    finally:
        publisher.stop()

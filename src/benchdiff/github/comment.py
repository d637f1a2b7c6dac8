import logging

from ..config.settings import DEFAULT_PERCENTAGE_THRESHOLD, SHARE_BASE_URL
from ..errors import GitHubError
from ..report.markdown import render
from ..report.models import BenchmarkReport
from ..report.reporters import QueuedReporter
from .client import GitHubClient

logger = logging.getLogger(__name__)


class GitHubCommentReporter(QueuedReporter):
    """Keeps a single pull request comment up to date with the latest report."""

    name = "github-commenter"

    def __init__(
        self,
        client: GitHubClient,
        pr: int,
        *,
        event_comment_id: int = 0,
        share_url: str = SHARE_BASE_URL,
        threshold: float = DEFAULT_PERCENTAGE_THRESHOLD,
    ) -> None:
        super().__init__()
        self._client = client
        self._pr = pr
        self._event_comment_id = event_comment_id
        self._share_url = share_url
        self._threshold = threshold
        self._comment_id = 0
        self._reacted = False

    @property
    def comment_id(self) -> int:
        return self._comment_id

    def render(self, report: BenchmarkReport) -> str:
        return render(
            report,
            share_url=self._share_url,
            repository_url=self._client.settings.repository_url,
            threshold=self._threshold,
        )

    def _react(self, content: str) -> None:
        if not self._event_comment_id:
            return
        try:
            self._client.add_reaction(self._event_comment_id, content)
        except GitHubError as exc:
            logger.warning("Failed to add reaction to issue comment: %s", exc)

    def deliver(self, report: BenchmarkReport) -> None:
        if not self._reacted:
            self._react("eyes")
            self._reacted = True

        body = self.render(report)
        if self._comment_id:
            self._client.edit_comment(self._comment_id, body)
            return
        self._comment_id = self._client.create_comment(self._pr, body)

    def handle_error(self, exc: BaseException) -> None:
        self._react("confused")
        body = f"benchdiff error:\n```\n{exc}\n```\n"
        try:
            self._client.create_comment(self._pr, body)
        except GitHubError as post_exc:
            logger.warning("Failed to post error comment: %s", post_exc)

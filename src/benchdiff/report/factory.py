import logging

from ..config import BenchdiffConfig
from ..config.settings import GitHubSettings
from ..errors import GitHubError
from .reporters import ConsoleReporter, JsonLinesReporter, Reporter

logger = logging.getLogger(__name__)


def build_reporters(
    config: BenchdiffConfig, github_settings: GitHubSettings | None = None
) -> list[Reporter]:
    """Pick the reporters a ``compare`` run publishes to.

    The console reporter is always present. A GitHub commenter needs a pull
    request number; without one it is skipped with a warning.
    """
    reporters: list[Reporter] = [
        ConsoleReporter(share_url=config.share_url, threshold=config.percentage_threshold)
    ]
    if config.json_output is not None:
        reporters.append(JsonLinesReporter(config.json_output))

    if config.github_commenter:
        from ..github import GitHubClient, GitHubCommentReporter

        settings = github_settings
        if settings is None:
            try:
                settings = GitHubSettings.from_env()
            except RuntimeError as exc:
                raise GitHubError(str(exc)) from exc
        if settings.pr is None:
            logger.warning("No pull request number available; skipping GitHub commenter")
        else:
            reporters.append(
                GitHubCommentReporter(
                    GitHubClient(settings),
                    settings.pr,
                    share_url=config.share_url,
                    threshold=config.percentage_threshold,
                )
            )
    return reporters

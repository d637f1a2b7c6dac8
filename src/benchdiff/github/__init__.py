from .client import GitHubClient
from .comment import GitHubCommentReporter
from .hook import (
    GitHubEventContext,
    parse_command_line,
    run_comment_hook,
    validate_context,
)

__all__ = [
    "GitHubClient",
    "GitHubCommentReporter",
    "GitHubEventContext",
    "parse_command_line",
    "run_comment_hook",
    "validate_context",
]

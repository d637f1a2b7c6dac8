import logging
from pathlib import Path

from ..errors import CommandError, RevisionError
from ..process import check_command
from ..scope import CancelToken

logger = logging.getLogger(__name__)


def resolve_revision(repo_path: Path, ref: str, token: CancelToken) -> str:
    """Resolve a symbolic or relative revision to a full commit SHA.

    Raises:
        RevisionError: If git cannot resolve ``ref`` to a commit.
    """
    if not ref or ref.startswith("-"):
        raise RevisionError(f"invalid git revision: {ref!r}")
    try:
        result = check_command(
            ["git", "rev-parse", "--verify", "--quiet", f"{ref}^{{commit}}"],
            cwd=repo_path,
            token=token,
        )
    except CommandError as exc:
        raise RevisionError(f"error resolving git revision {ref}: {exc.detail}") from exc
    commit = result.stdout.strip()
    if not commit:
        raise RevisionError(f"error resolving git revision {ref}: empty output")
    return commit


def get_toplevel(path: Path, token: CancelToken) -> Path:
    """Return the root of the git working tree containing ``path``."""
    try:
        result = check_command(["git", "rev-parse", "--show-toplevel"], cwd=path, token=token)
    except CommandError as exc:
        raise RevisionError(f"{path} is not inside a git working tree: {exc.detail}") from exc
    return Path(result.stdout.strip()).resolve()


def add_worktree(repo_path: Path, target: Path, commit: str, token: CancelToken) -> None:
    """Check out ``commit`` into a detached worktree at ``target``."""
    try:
        check_command(
            ["git", "worktree", "add", "--detach", str(target), commit],
            cwd=repo_path,
            token=token,
        )
    except CommandError as exc:
        raise RevisionError(f"error checking out {commit} into {target}: {exc.detail}") from exc


def remove_worktree(repo_path: Path, target: Path) -> None:
    # Teardown runs after cancellation, so it gets a fresh token.
    try:
        check_command(
            ["git", "worktree", "remove", "--force", str(target)],
            cwd=repo_path,
            token=CancelToken(),
        )
    except CommandError as exc:
        raise RuntimeError(f"failed to cleanup git worktree {target}: {exc.detail}") from exc
    logger.debug("Removed git worktree %s", target)

import logging
import shutil
import tempfile
from dataclasses import dataclass, field
from pathlib import Path

from .bench.packages import PackageRecord
from .scope import CancelToken, ResourceScope
from .vcs import add_worktree, get_toplevel, remove_worktree, resolve_revision

logger = logging.getLogger(__name__)


@dataclass
class Revision:
    """One side of a comparison and the packages discovered in it."""

    ref: str
    commit: str
    workspace: Path
    is_base: bool = False
    packages: list[PackageRecord] = field(default_factory=list)


class RevisionWorkspaceManager:
    """Resolves revisions and owns the disposable base checkout.

    The head revision is the caller's working tree and is never modified.
    """

    def __init__(self, workdir: Path, scope: ResourceScope, token: CancelToken) -> None:
        self._scope = scope
        self._token = token
        self._workdir = workdir.resolve()
        self._repo_dir = get_toplevel(self._workdir, token)
        # same subdirectory is used inside the base checkout
        self._subdir = self._workdir.relative_to(self._repo_dir)

    def resolve(self, ref: str) -> str:
        return resolve_revision(self._repo_dir, ref, self._token)

    def head(self) -> Revision:
        commit = self.resolve("HEAD")
        return Revision(ref="HEAD", commit=commit, workspace=self._workdir)

    def checkout_base(self, ref: str) -> Revision:
        """Materialize ``ref`` in an isolated worktree removed at scope close."""
        commit = self.resolve(ref)
        target = Path(tempfile.mkdtemp(prefix="benchdiff-base-"))
        self._scope.add(lambda: shutil.rmtree(target, ignore_errors=True), f"remove {target}")

        add_worktree(self._repo_dir, target, commit, self._token)
        self._scope.add(lambda: remove_worktree(self._repo_dir, target), f"git worktree {target}")
        logger.debug("Checked out base %s (%s) into %s", ref, commit, target)
        return Revision(ref=ref, commit=commit, workspace=target / self._subdir, is_base=True)

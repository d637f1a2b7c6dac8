from .git import add_worktree, get_toplevel, remove_worktree, resolve_revision

__all__ = ["add_worktree", "get_toplevel", "remove_worktree", "resolve_revision"]

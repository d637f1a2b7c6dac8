class BenchdiffError(RuntimeError):
    """Base class for all benchdiff failures."""


class OperationCancelled(BenchdiffError):
    """Raised when a run is cancelled or its deadline expires."""


class PrerequisiteError(BenchdiffError):
    def __init__(self, missing: list[str]):
        super().__init__(f"required tools not found on PATH: {', '.join(missing)}")
        self.missing = missing


class CommandError(BenchdiffError):
    """Structured error for a failed external command.

    Attributes:
        command: Command line that failed.
        returncode: Exit code of the process.
        detail: Captured stderr (or stdout when stderr was empty).
    """

    def __init__(self, command: list[str], returncode: int, detail: str):
        super().__init__(f"{' '.join(command)} failed (exit {returncode}): {detail}")
        self.command = command
        self.returncode = returncode
        self.detail = detail


class RevisionError(BenchdiffError):
    pass


class DiscoveryError(BenchdiffError):
    pass


class CompileError(BenchdiffError):
    pass


class ListError(BenchdiffError):
    pass


class BenchmarkRunError(BenchdiffError):
    pass


class ProfileDecodeError(BenchdiffError):
    pass


class ShareError(BenchdiffError):
    def __init__(self, message: str, *, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class TeardownError(BenchdiffError):
    def __init__(self, errors: list[BaseException]):
        details = "; ".join(f"{type(e).__name__}: {e}" for e in errors)
        super().__init__(f"{len(errors)} teardown action(s) failed: {details}")
        self.errors = errors


class GitHubError(BenchdiffError):
    def __init__(self, message: str, *, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class CommentHookError(BenchdiffError):
    pass

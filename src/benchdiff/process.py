import logging
import shutil
import subprocess  # nosec B404 - required to drive git and the go toolchain
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from pathlib import Path

import psutil

from .errors import CommandError, OperationCancelled, PrerequisiteError
from .scope import CancelToken

logger = logging.getLogger(__name__)

# How often a running command checks for cancellation
POLL_INTERVAL_SECONDS = 0.2


@dataclass(frozen=True)
class CommandResult:
    command: list[str]
    returncode: int
    stdout: str
    stderr: str

    @property
    def detail(self) -> str:
        stdout_text = (self.stdout or "").strip()
        stderr_text = (self.stderr or "").strip()
        if stderr_text and stdout_text and stdout_text != stderr_text:
            return f"{stderr_text}\n{stdout_text}"
        if stderr_text:
            return stderr_text
        if stdout_text:
            return stdout_text
        return "unknown error"


def require_executables(names: Iterable[str]) -> dict[str, str]:
    """Resolve required tools on PATH.

    Raises:
        PrerequisiteError: Naming every tool that could not be found.
    """
    resolved: dict[str, str] = {}
    missing: list[str] = []
    for name in names:
        path = shutil.which(name)
        if path:
            resolved[name] = path
        else:
            missing.append(name)
    if missing:
        raise PrerequisiteError(missing)
    return resolved


def kill_process_tree(pid: int) -> None:
    try:
        parent = psutil.Process(pid)
    except psutil.Error:
        return

    for child in parent.children(recursive=True):
        try:
            child.kill()
        except psutil.Error:
            pass
    try:
        parent.kill()
    except psutil.Error:
        pass


def run_command(
    command: list[str],
    *,
    cwd: str | Path,
    token: CancelToken,
    env: Mapping[str, str] | None = None,
) -> CommandResult:
    """Run a command to completion, honoring cancellation.

    Output is collected with repeated ``communicate`` calls so nothing is lost
    while polling. On cancellation the whole process tree is killed.

    Raises:
        OperationCancelled: If the token is cancelled before the command exits.
        CommandError: If the executable cannot be started.
    """
    token.raise_if_cancelled()
    logger.debug("Running %s (cwd=%s)", " ".join(command), cwd)
    try:
        process = subprocess.Popen(  # nosec B603 - trusted command
            command,
            cwd=str(cwd),
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
            env=dict(env) if env is not None else None,
        )
    except OSError as exc:
        raise CommandError(command, -1, str(exc)) from exc

    try:
        while True:
            try:
                stdout, stderr = process.communicate(timeout=POLL_INTERVAL_SECONDS)
                break
            except subprocess.TimeoutExpired:
                if token.cancelled:
                    logger.debug("Killing %s: %s", command[0], token.reason)
                    kill_process_tree(process.pid)
                    process.communicate()
                    raise OperationCancelled(token.reason) from None
    except BaseException:
        # KeyboardInterrupt while waiting must not leak the child
        if process.poll() is None:
            kill_process_tree(process.pid)
            process.wait()
        raise

    return CommandResult(
        command=command,
        returncode=process.returncode,
        stdout=stdout or "",
        stderr=stderr or "",
    )


def check_command(
    command: list[str],
    *,
    cwd: str | Path,
    token: CancelToken,
    env: Mapping[str, str] | None = None,
) -> CommandResult:
    """Like :func:`run_command` but raise :class:`CommandError` on non-zero exit."""
    result = run_command(command, cwd=cwd, token=token, env=env)
    if result.returncode != 0:
        raise CommandError(command, result.returncode, result.detail)
    return result


__all__ = [
    "CommandResult",
    "check_command",
    "kill_process_tree",
    "require_executables",
    "run_command",
]

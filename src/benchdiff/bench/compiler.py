import hashlib
import logging
import os
import tempfile
from pathlib import Path

from ..errors import CommandError, CompileError
from ..process import check_command
from ..scope import CancelToken, ResourceScope
from .packages import PackageRecord

logger = logging.getLogger(__name__)

_HASH_CHUNK_SIZE = 1024 * 1024


def compute_binary_hash(path: Path) -> bytes:
    """Return the SHA-256 digest of a compiled binary.

    Raises:
        CompileError: If the file is empty.
    """
    if path.stat().st_size == 0:
        raise CompileError(f"test binary is empty: {path}")
    hasher = hashlib.sha256()
    with path.open("rb") as f:
        for chunk in iter(lambda: f.read(_HASH_CHUNK_SIZE), b""):
            hasher.update(chunk)
    return hasher.digest()


def _remove_file(path: Path) -> None:
    path.unlink(missing_ok=True)


def compile_test_binary(
    package: PackageRecord, scope: ResourceScope, token: CancelToken
) -> None:
    """Compile the package's test binary with reproducible flags and hash it.

    Packages without test files are skipped.

    Raises:
        CompileError: On compiler failure or an empty binary.
    """
    if not package.has_tests:
        logger.debug("Skipping %s: no test files", package.import_path)
        return

    fd, tmp_name = tempfile.mkstemp(prefix="benchdiff-test-bin-")
    os.close(fd)
    binary = Path(tmp_name)
    scope.add(lambda: _remove_file(binary), f"remove {binary}")
    package.binary_path = binary

    try:
        relative = package.directory.relative_to(package.module_root)
    except ValueError as exc:
        raise CompileError(
            f"package dir {package.directory} is outside module root {package.module_root}"
        ) from exc

    command = [
        "go",
        "test",
        "-trimpath",  # reproducible builds
        "-c",
        "-o",
        str(binary),
        f"./{relative.as_posix()}",
    ]
    try:
        check_command(command, cwd=package.module_root, token=token)
    except CommandError as exc:
        raise CompileError(f"failed to compile test for {package.import_path}: {exc}") from exc

    package.binary_hash = compute_binary_hash(binary)
    logger.debug(
        "Compiled test binary for %s path=%s hash=%s",
        package.import_path,
        binary,
        package.hash_hex,
    )

import json
import logging
from collections.abc import Iterator
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from ..errors import CommandError, DiscoveryError
from ..process import check_command
from ..scope import CancelToken

logger = logging.getLogger(__name__)


@dataclass
class PackageRecord:
    """A buildable Go package of one revision.

    Created by discovery; ``binary_path``/``binary_hash`` are filled in by the
    compiler and ``benchmark_names`` by the lister.
    """

    import_path: str
    directory: Path
    module_root: Path
    test_files: list[str] = field(default_factory=list)
    binary_path: Path | None = None
    binary_hash: bytes = b""
    benchmark_names: list[str] = field(default_factory=list)

    @property
    def has_tests(self) -> bool:
        return bool(self.test_files)

    @property
    def hash_hex(self) -> str:
        return self.binary_hash.hex()


def _iter_json_objects(payload: str) -> Iterator[dict[str, Any]]:
    # `go list -json` emits a stream of concatenated objects, not a JSON array
    decoder = json.JSONDecoder()
    pos = 0
    length = len(payload)
    while True:
        while pos < length and payload[pos].isspace():
            pos += 1
        if pos >= length:
            return
        obj, pos = decoder.raw_decode(payload, pos)
        if not isinstance(obj, dict):
            raise ValueError(f"expected a JSON object, got {type(obj).__name__}")
        yield obj


def parse_go_list(payload: str, workspace: Path) -> list[PackageRecord]:
    """Parse ``go list -json`` output into package records."""
    packages: list[PackageRecord] = []
    try:
        for meta in _iter_json_objects(payload):
            import_path = meta.get("ImportPath")
            directory = meta.get("Dir")
            if not import_path or not directory:
                raise ValueError("package entry without ImportPath or Dir")
            root = meta.get("Root") or (meta.get("Module") or {}).get("Dir") or str(workspace)
            packages.append(
                PackageRecord(
                    import_path=import_path,
                    directory=Path(directory),
                    module_root=Path(root),
                    test_files=list(meta.get("TestGoFiles") or []),
                )
            )
    except ValueError as exc:
        raise DiscoveryError(f"unable to decode go list output in {workspace}: {exc}") from exc
    return packages


def discover_packages(workspace: Path, token: CancelToken) -> list[PackageRecord]:
    """List every package of the Go module(s) below ``workspace``.

    Raises:
        DiscoveryError: If ``go list`` fails or its output cannot be decoded.
    """
    command = ["go", "list", "-json", "./..."]
    try:
        result = check_command(command, cwd=workspace, token=token)
    except CommandError as exc:
        raise DiscoveryError(f"error discovering packages in {workspace}: {exc}") from exc

    packages = parse_go_list(result.stdout, workspace)
    logger.debug(
        "Discovered %d packages in %s (%d with tests)",
        len(packages),
        workspace,
        count_packages_with_tests(packages),
    )
    return packages


def count_packages_with_tests(packages: list[PackageRecord]) -> int:
    return sum(1 for p in packages if p.has_tests)

import logging

from ..errors import CommandError, ListError
from ..process import check_command
from ..scope import CancelToken
from .packages import PackageRecord

logger = logging.getLogger(__name__)

BENCHMARK_PREFIX = "Benchmark"


def parse_benchmark_list(output: str) -> list[str]:
    names: list[str] = []
    for line in output.splitlines():
        name = line.strip()
        if name.startswith(BENCHMARK_PREFIX):
            names.append(name)
    return names


def list_benchmarks(package: PackageRecord, token: CancelToken) -> None:
    """Fill ``package.benchmark_names`` from its compiled test binary.

    Raises:
        ListError: If the binary is missing or the list invocation fails.
    """
    if not package.has_tests:
        return
    if package.binary_path is None:
        raise ListError(f"test binary not compiled for {package.import_path}")

    command = [str(package.binary_path), "-test.list", f"^{BENCHMARK_PREFIX}"]
    try:
        result = check_command(command, cwd=package.directory, token=token)
    except CommandError as exc:
        raise ListError(f"failed to list benchmarks of {package.import_path}: {exc}") from exc

    package.benchmark_names = parse_benchmark_list(result.stdout)
    logger.debug(
        "Found %d benchmarks in %s", len(package.benchmark_names), package.import_path
    )

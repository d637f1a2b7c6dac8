import logging
import re
import tempfile
from dataclasses import dataclass
from pathlib import Path

from ..errors import BenchmarkRunError, CommandError
from ..process import check_command
from ..scope import CancelToken
from .packages import PackageRecord

logger = logging.getLogger(__name__)

CPU_PROFILE_NAME = "cpu.pprof"
MEM_PROFILE_NAME = "mem.pprof"


@dataclass(frozen=True)
class BenchmarkExecution:
    """Raw outcome of one benchmark process."""

    output: str
    profiles: dict[str, bytes]  # artifact name -> raw pprof bytes


def benchmark_command(
    binary: Path, benchmark: str, bench_time: str, bench_count: int, profile_dir: Path
) -> list[str]:
    return [
        str(binary),
        "-test.run",
        "^$",
        "-test.count",
        str(bench_count),
        "-test.benchtime",
        bench_time,
        "-test.bench",
        f"^{re.escape(benchmark)}$",
        "-test.cpuprofile",
        str(profile_dir / CPU_PROFILE_NAME),
        "-test.memprofile",
        str(profile_dir / MEM_PROFILE_NAME),
        "-test.benchmem",
    ]


def run_benchmark(
    package: PackageRecord,
    benchmark: str,
    *,
    bench_time: str,
    bench_count: int,
    token: CancelToken,
) -> BenchmarkExecution:
    """Execute a single benchmark with CPU and memory profiling enabled.

    Raises:
        BenchmarkRunError: If the benchmark fails or produced no profiles.
        OperationCancelled: If the run is cancelled meanwhile.
    """
    if package.binary_path is None:
        raise BenchmarkRunError(f"test binary not compiled for {package.import_path}")

    with tempfile.TemporaryDirectory(prefix="benchdiff-pprof-out-") as tmp:
        profile_dir = Path(tmp)
        command = benchmark_command(
            package.binary_path, benchmark, bench_time, bench_count, profile_dir
        )
        try:
            result = check_command(command, cwd=package.directory, token=token)
        except CommandError as exc:
            raise BenchmarkRunError(
                f"failed to run benchmark {package.import_path}.{benchmark}: {exc}"
            ) from exc

        profiles: dict[str, bytes] = {}
        for name in (CPU_PROFILE_NAME, MEM_PROFILE_NAME):
            path = profile_dir / name
            if not path.is_file():
                raise BenchmarkRunError(
                    f"benchmark {package.import_path}.{benchmark} did not write {name}"
                )
            profiles[name] = path.read_bytes()

    return BenchmarkExecution(output=result.stdout, profiles=profiles)

import logging
import time
from collections.abc import Callable, Iterable
from concurrent.futures import FIRST_EXCEPTION, Future, ThreadPoolExecutor, wait

from ..errors import BenchdiffError, OperationCancelled
from ..observability import log_measurement, log_measurement_error
from ..profiles.collector import Measurement, ProfileCollector
from ..report.aggregator import ReportBuilder
from ..report.models import BenchmarkReport
from ..report.reporters import ReportPublisher
from ..scope import CancelToken, ResourceScope
from .compiler import compile_test_binary
from .lister import list_benchmarks
from .matcher import ComparisonEntry
from .packages import PackageRecord
from .runner import BenchmarkExecution, run_benchmark

logger = logging.getLogger(__name__)

RunBenchmarkFn = Callable[..., BenchmarkExecution]


def _prepare_package(package: PackageRecord, scope: ResourceScope, token: CancelToken) -> None:
    compile_test_binary(package, scope, token)
    token.raise_if_cancelled()
    list_benchmarks(package, token)


def prepare_packages(
    packages: Iterable[PackageRecord],
    *,
    scope: ResourceScope,
    token: CancelToken,
    concurrency: int,
) -> None:
    """Phase 1: compile and list every package, at most ``concurrency`` at a time.

    Fail-fast: the first error cancels the remaining work (in-flight processes
    are killed) and is re-raised.
    """
    group = token.child()
    pending = [p for p in packages if p.has_tests]
    if not pending:
        return

    with ThreadPoolExecutor(max_workers=concurrency, thread_name_prefix="benchdiff-prep") as pool:
        futures: dict[Future[None], PackageRecord] = {
            pool.submit(_prepare_package, package, scope, group): package for package in pending
        }
        done, not_done = wait(futures, return_when=FIRST_EXCEPTION)

        failures = [(f, exc) for f in done if (exc := f.exception()) is not None]
        if not failures:
            return

        # prefer a real failure over the cancellations it caused
        failures.sort(key=lambda item: isinstance(item[1], OperationCancelled))
        failed_future, first_error = failures[0]
        failed = futures[failed_future]
        logger.debug("Cancelling phase 1 after failure in %s", failed.import_path)
        group.cancel(f"{failed.import_path}: {first_error}")
        for future in not_done:
            future.cancel()
        wait(not_done)
        raise first_error


class PlanExecutor:
    """Phase 2: runs plan entries one at a time and publishes every update."""

    def __init__(
        self,
        *,
        collector: ProfileCollector,
        publisher: ReportPublisher,
        token: CancelToken,
        bench_time: str,
        bench_count: int,
        run_fn: RunBenchmarkFn | None = None,
    ) -> None:
        self._collector = collector
        self._publisher = publisher
        self._token = token
        self._bench_time = bench_time
        self._bench_count = bench_count
        self._run_fn = run_fn or run_benchmark
        self.failures = 0

    def _measure(
        self, entry: ComparisonEntry, package: PackageRecord, side: str
    ) -> Measurement | None:
        name = entry.key.name
        started_at = time.monotonic()
        try:
            execution = self._run_fn(
                package,
                entry.key.benchmark,
                bench_time=entry.bench_time or self._bench_time,
                bench_count=entry.bench_count or self._bench_count,
                token=self._token,
            )
            measurement = self._collector.collect(execution, name=f"{name}@{side}")
        except OperationCancelled:
            raise
        except BenchdiffError as exc:
            self.failures += 1
            logger.error(
                "Error running benchmark package=%s benchmark=%s side=%s: %s",
                entry.key.import_path,
                entry.key.benchmark,
                side,
                exc,
            )
            log_measurement_error(name, side, str(exc), type(exc).__name__)
            return None

        latency_ms = (time.monotonic() - started_at) * 1000
        totals = {k.value: v.total for k, v in measurement.values.items()}
        log_measurement(
            name, side, latency_ms, totals, output=measurement.output, urls=measurement.urls
        )
        logger.debug("Benchmark output %s (%s):\n%s", name, side, measurement.output)
        logger.info(
            "Benchmark result package=%s benchmark=%s side=%s %s",
            entry.key.import_path,
            entry.key.benchmark,
            side,
            " ".join(f"{k}={v}" for k, v in sorted(totals.items())),
        )
        return measurement

    def execute(self, plan: list[ComparisonEntry], builder: ReportBuilder) -> BenchmarkReport:
        """Measure every plan entry in order and return the finished report."""
        self._publisher.publish(builder.snapshot())

        for index, entry in enumerate(plan):
            self._token.raise_if_cancelled()
            for side, package in (("base", entry.base), ("head", entry.head)):
                if package is None:
                    continue
                measurement = self._measure(entry, package, side)
                if measurement is not None:
                    builder.record(index, **{side: measurement})
                else:
                    builder.mark_attempted(index)
                self._publisher.publish(builder.snapshot())

        final = builder.snapshot(finished=True)
        self._publisher.publish(final)
        return final

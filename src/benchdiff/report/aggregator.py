import logging
import threading

from ..bench.matcher import ComparisonEntry
from ..profiles.collector import Measurement
from ..profiles.kinds import ResourceKind
from .models import BenchmarkReport, BenchmarkResult, BenchmarkRun, BenchmarkValue

logger = logging.getLogger(__name__)


def _value(measurement: Measurement | None, kind: ResourceKind) -> BenchmarkValue:
    if measurement is None:
        return BenchmarkValue()
    profile = measurement.get(kind)
    if profile is None:
        return BenchmarkValue()
    return BenchmarkValue(profile_value=profile.total, flamegraph_key=profile.key)


def merge_results(base: Measurement | None, head: Measurement | None) -> list[BenchmarkResult]:
    """One result per tracked resource kind, sorted by resource name.

    A side that was not measured yields an empty value instead of being omitted.
    """
    results = [
        BenchmarkResult(
            name=kind.value,
            unit=kind.unit,
            base_value=_value(base, kind),
            head_value=_value(head, kind),
        )
        for kind in ResourceKind
    ]
    results.sort(key=lambda r: r.name)
    return results


class ReportBuilder:
    """Holds the report for a plan and the measurements collected so far."""

    def __init__(self, base_ref: str, head_ref: str, plan: list[ComparisonEntry]) -> None:
        self._lock = threading.Lock()
        self._report = BenchmarkReport(
            base_ref=base_ref,
            head_ref=head_ref,
            runs=[
                BenchmarkRun(name=e.key.name, reason=e.reason.value if e.reason else "")
                for e in plan
            ],
        )
        self._base: list[Measurement | None] = [None] * len(plan)
        self._head: list[Measurement | None] = [None] * len(plan)

    def record(
        self,
        index: int,
        *,
        base: Measurement | None = None,
        head: Measurement | None = None,
    ) -> None:
        """Store a side's measurement and rebuild that run's results."""
        with self._lock:
            if base is not None:
                self._base[index] = base
            if head is not None:
                self._head[index] = head
            self._report.runs[index].results = merge_results(self._base[index], self._head[index])

    def mark_attempted(self, index: int) -> None:
        """Fill a run whose measurements all failed with empty values."""
        with self._lock:
            run = self._report.runs[index]
            if not run.results:
                run.results = merge_results(self._base[index], self._head[index])

    def snapshot(self, *, finished: bool = False) -> BenchmarkReport:
        with self._lock:
            return self._report.snapshot(finished=finished)

import json
import logging
import queue
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Protocol, cast

import click

from ..config.settings import SHARE_BASE_URL
from .markdown import render
from .models import BenchmarkReport

logger = logging.getLogger(__name__)


class Reporter(Protocol):
    """Consumer of report snapshots. Each snapshot is complete, not a delta."""

    def submit(self, report: BenchmarkReport) -> None: ...

    def stop(self) -> None: ...


class NoopReporter:
    def submit(self, report: BenchmarkReport) -> None:
        return

    def stop(self) -> None:
        return


_STOP = object()


class QueuedReporter(ABC):
    """Base class for reporters that deliver snapshots from a worker thread.

    Snapshots travel over a one-slot queue; subclasses implement ``deliver``.

    ``submit`` blocks while the previous snapshot is still waiting, so a slow
    consumer throttles the producer. Delivery errors are logged, never raised.
    """

    name = "reporter"

    def __init__(self) -> None:
        self._queue: queue.Queue[object] = queue.Queue(maxsize=1)
        self._last: BenchmarkReport | None = None
        self._thread = threading.Thread(
            target=self._run, name=f"benchdiff-{self.name}", daemon=True
        )
        self._started = False
        self._stopped = False

    def start(self) -> None:
        if not self._started:
            self._started = True
            self._thread.start()

    @abstractmethod
    def deliver(self, report: BenchmarkReport) -> None:
        """Send one snapshot to its destination. Errors are logged by the caller."""

    def _deliver_safely(self, report: BenchmarkReport) -> None:
        try:
            self.deliver(report)
        except Exception as exc:
            logger.warning("%s failed to deliver report: %s", self.name, exc)

    def _run(self) -> None:
        while True:
            item = self._queue.get()
            if item is _STOP:
                break
            report = cast(BenchmarkReport, item)
            self._deliver_safely(report)
            self._last = report

        # the terminal state shown must be a finished report
        if self._last is not None and not self._last.finished:
            self._deliver_safely(self._last.snapshot(finished=True))

    def submit(self, report: BenchmarkReport) -> None:
        if self._stopped:
            raise RuntimeError(f"{self.name} is stopped")
        self.start()
        self._queue.put(report)

    def stop(self) -> None:
        if self._stopped:
            return
        self._stopped = True
        if not self._started:
            return
        self._queue.put(_STOP)
        self._thread.join()


class ConsoleReporter(QueuedReporter):
    """Logs progress and prints the finished report as markdown to stdout."""

    name = "console-reporter"

    def __init__(self, *, share_url: str = SHARE_BASE_URL, threshold: float | None = None):
        super().__init__()
        self._share_url = share_url
        self._threshold = threshold

    def deliver(self, report: BenchmarkReport) -> None:
        if not report.finished:
            measured = sum(1 for run in report.runs if run.results)
            logger.info("Benchmark progress: %d/%d runs measured", measured, len(report.runs))
            return
        click.echo(render(report, share_url=self._share_url, threshold=self._threshold))


class JsonLinesReporter(QueuedReporter):
    """Appends every snapshot as one JSON document per line."""

    name = "json-reporter"

    def __init__(self, path: Path):
        super().__init__()
        self._path = path

    def deliver(self, report: BenchmarkReport) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        with self._path.open("a", encoding="utf-8") as f:
            f.write(json.dumps(report.to_dict(), ensure_ascii=False) + "\n")


class ReportPublisher:
    """Fans every snapshot out to the configured reporters."""

    def __init__(self, reporters: list[Reporter] | None = None) -> None:
        self._reporters: list[Reporter] = list(reporters or []) or [NoopReporter()]

    @property
    def reporters(self) -> list[Reporter]:
        return list(self._reporters)

    def publish(self, report: BenchmarkReport) -> None:
        for reporter in self._reporters:
            try:
                reporter.submit(report)
            except Exception as exc:
                logger.warning("Failed to publish report to %s: %s", type(reporter).__name__, exc)

    def stop(self) -> None:
        for reporter in self._reporters:
            try:
                reporter.stop()
            except Exception as exc:
                logger.warning("Failed to stop %s: %s", type(reporter).__name__, exc)

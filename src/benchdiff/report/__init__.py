from .aggregator import ReportBuilder, merge_results
from .markdown import render
from .models import BenchmarkReport, BenchmarkResult, BenchmarkRun, BenchmarkValue
from .reporters import (
    ConsoleReporter,
    JsonLinesReporter,
    NoopReporter,
    QueuedReporter,
    Reporter,
    ReportPublisher,
)

__all__ = [
    "BenchmarkReport",
    "BenchmarkResult",
    "BenchmarkRun",
    "BenchmarkValue",
    "ConsoleReporter",
    "JsonLinesReporter",
    "NoopReporter",
    "QueuedReporter",
    "ReportBuilder",
    "ReportPublisher",
    "Reporter",
    "merge_results",
    "render",
]

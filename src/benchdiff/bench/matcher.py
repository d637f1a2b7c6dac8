import logging
import re
from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field
from enum import Enum

from .packages import PackageRecord

logger = logging.getLogger(__name__)


class Reason(str, Enum):
    CODE_CHANGED = "code change"
    MISSING_IN_BASE = "benchmark does not exist in base"
    MISSING_IN_HEAD = "benchmark does not exist in head"


@dataclass(frozen=True)
class BenchmarkKey:
    import_path: str
    benchmark: str

    @property
    def name(self) -> str:
        return f"{self.import_path}.{self.benchmark}"


@dataclass
class ComparisonEntry:
    """One plan entry. ``base``/``head`` are back-references, never owned."""

    key: BenchmarkKey
    base: PackageRecord | None = None
    head: PackageRecord | None = None
    reason: Reason | None = None
    bench_time: str | None = None
    bench_count: int | None = None


@dataclass(frozen=True)
class BenchmarkSelector:
    regex: str
    time: str | None = None
    count: int | None = None

    def matches(self, benchmark: str) -> bool:
        return re.search(self.regex, benchmark) is not None


@dataclass(frozen=True)
class BenchmarkSelection:
    """Restricts the plan to benchmarks matching any selector.

    An empty selection keeps every benchmark.
    """

    selectors: tuple[BenchmarkSelector, ...] = ()

    def __post_init__(self) -> None:
        for selector in self.selectors:
            try:
                re.compile(selector.regex)
            except re.error as exc:
                raise ValueError(f"invalid benchmark regex {selector.regex!r}: {exc}") from exc

    @classmethod
    def from_patterns(cls, patterns: Iterable[str]) -> "BenchmarkSelection":
        return cls(tuple(BenchmarkSelector(regex=p) for p in patterns))

    def __bool__(self) -> bool:
        return bool(self.selectors)

    def match(self, benchmark: str) -> BenchmarkSelector | None:
        for selector in self.selectors:
            if selector.matches(benchmark):
                return selector
        return None


@dataclass
class _EntryArena:
    """Append-only entry list plus a key index; iteration is first-seen order."""

    _entries: list[ComparisonEntry] = field(default_factory=list)
    _index: dict[BenchmarkKey, int] = field(default_factory=dict)

    def get(self, key: BenchmarkKey) -> ComparisonEntry:
        idx = self._index.get(key)
        if idx is None:
            idx = len(self._entries)
            self._index[key] = idx
            self._entries.append(ComparisonEntry(key=key))
        return self._entries[idx]

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[ComparisonEntry]:
        return iter(self._entries)


def _iter_keys(packages: Iterable[PackageRecord]) -> Iterator[tuple[BenchmarkKey, PackageRecord]]:
    for package in packages:
        for name in package.benchmark_names:
            yield BenchmarkKey(package.import_path, name), package


def classify(entry: ComparisonEntry) -> Reason | None:
    """Return why an entry must run, or None when it is unchanged."""
    if entry.base is None:
        return Reason.MISSING_IN_BASE
    if entry.head is None:
        return Reason.MISSING_IN_HEAD
    if entry.base.binary_hash == entry.head.binary_hash:
        return None
    return Reason.CODE_CHANGED


def build_plan(
    base_packages: Iterable[PackageRecord],
    head_packages: Iterable[PackageRecord],
    selection: BenchmarkSelection | None = None,
) -> list[ComparisonEntry]:
    """Merge both revisions by benchmark key and return the entries to execute.

    Head benchmarks are indexed first, so plan order follows head discovery
    order with base-only benchmarks appended.
    """
    arena = _EntryArena()
    for key, package in _iter_keys(head_packages):
        arena.get(key).head = package
    for key, package in _iter_keys(base_packages):
        arena.get(key).base = package

    plan: list[ComparisonEntry] = []
    for entry in arena:
        reason = classify(entry)
        if reason is None:
            continue
        if selection:
            selector = selection.match(entry.key.benchmark)
            if selector is None:
                continue
            entry.bench_time = selector.time
            entry.bench_count = selector.count
        entry.reason = reason
        plan.append(entry)
        logger.debug(
            "Benchmark will be run package=%s benchmark=%s reason=%s",
            entry.key.import_path,
            entry.key.benchmark,
            reason.value,
        )
    return plan

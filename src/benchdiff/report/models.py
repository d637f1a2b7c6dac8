import copy
from dataclasses import asdict, dataclass, field
from typing import Any


@dataclass
class BenchmarkValue:
    profile_value: int = 0
    flamegraph_key: str = ""

    @property
    def available(self) -> bool:
        return bool(self.flamegraph_key)


@dataclass
class BenchmarkResult:
    """Base/head values of one resource kind (cpu, alloc_space, ...)."""

    name: str
    unit: str
    base_value: BenchmarkValue = field(default_factory=BenchmarkValue)
    head_value: BenchmarkValue = field(default_factory=BenchmarkValue)

    def diff_percent(self) -> float | None:
        """Relative change from base to head, or None when it cannot be computed."""
        if not self.base_value.available or not self.head_value.available:
            return None
        if self.base_value.profile_value == 0:
            return None
        delta = self.head_value.profile_value - self.base_value.profile_value
        return delta / self.base_value.profile_value * 100


@dataclass
class BenchmarkRun:
    name: str
    reason: str = ""
    results: list[BenchmarkResult] = field(default_factory=list)


@dataclass
class BenchmarkReport:
    base_ref: str
    head_ref: str
    runs: list[BenchmarkRun] = field(default_factory=list)
    finished: bool = False

    def snapshot(self, *, finished: bool | None = None) -> "BenchmarkReport":
        """Return an independent copy, optionally overriding the finished marker."""
        clone = copy.deepcopy(self)
        if finished is not None:
            clone.finished = finished
        return clone

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

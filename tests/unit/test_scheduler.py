import threading
import time
from unittest.mock import MagicMock, patch

import pytest

from benchdiff.bench.matcher import build_plan
from benchdiff.bench.runner import BenchmarkExecution
from benchdiff.bench.scheduler import PlanExecutor, prepare_packages
from benchdiff.errors import BenchmarkRunError, CompileError, OperationCancelled
from benchdiff.profiles import ProfileCollector, ProfileShareClient
from benchdiff.report.aggregator import ReportBuilder
from benchdiff.scope import CancelToken, ResourceScope


class TestPreparePackages:
    def test_compiles_and_lists_packages_with_tests(self, make_package, token) -> None:
        packages = [
            make_package("example.com/a"),
            make_package("example.com/b", tests=False),
            make_package("example.com/c"),
        ]
        with (
            patch("benchdiff.bench.scheduler.compile_test_binary") as compile_,
            patch("benchdiff.bench.scheduler.list_benchmarks") as list_,
        ):
            prepare_packages(packages, scope=ResourceScope(), token=token, concurrency=2)

        compiled = sorted(call.args[0].import_path for call in compile_.call_args_list)
        assert compiled == ["example.com/a", "example.com/c"]
        assert list_.call_count == 2

    def test_concurrency_is_bounded(self, make_package, token) -> None:
        active = 0
        peak = 0
        lock = threading.Lock()

        def slow_compile(*args: object) -> None:
            nonlocal active, peak
            with lock:
                active += 1
                peak = max(peak, active)
            time.sleep(0.02)
            with lock:
                active -= 1

        packages = [make_package(f"example.com/p{i}") for i in range(10)]
        with (
            patch("benchdiff.bench.scheduler.compile_test_binary", side_effect=slow_compile),
            patch("benchdiff.bench.scheduler.list_benchmarks"),
        ):
            prepare_packages(packages, scope=ResourceScope(), token=token, concurrency=3)

        assert peak <= 3

    def test_first_failure_cancels_the_rest(self, make_package) -> None:
        token = CancelToken()
        seen_tokens: list[CancelToken] = []

        def compile_(package, scope, group_token) -> None:
            seen_tokens.append(group_token)
            if package.import_path == "example.com/broken":
                raise CompileError("syntax error")
            # other workers wait until the failure cancels them
            deadline = time.monotonic() + 5
            while time.monotonic() < deadline:
                group_token.raise_if_cancelled()
                time.sleep(0.01)

        packages = [
            make_package("example.com/slow1"),
            make_package("example.com/broken"),
            make_package("example.com/slow2"),
        ]
        with (
            patch("benchdiff.bench.scheduler.compile_test_binary", side_effect=compile_),
            patch("benchdiff.bench.scheduler.list_benchmarks"),
        ):
            with pytest.raises(CompileError, match="syntax error"):
                prepare_packages(packages, scope=ResourceScope(), token=token, concurrency=4)

        assert all(t.cancelled for t in seen_tokens)
        # the caller's token is untouched; only the phase group is cancelled
        assert not token.cancelled


class TestPlanExecutor:
    def _executor(self, run_fn, collector, publisher, token=None) -> PlanExecutor:
        return PlanExecutor(
            collector=collector,
            publisher=publisher,
            token=token or CancelToken(),
            bench_time="10s",
            bench_count=1,
            run_fn=run_fn,
        )

    def test_one_sided_entry_runs_only_present_side(
        self, make_package, make_measurement
    ) -> None:
        base = [make_package("example.com/p", ["BenchmarkA"], binary_hash=b"1")]
        head = [make_package("example.com/p", ["BenchmarkA", "BenchmarkB"], binary_hash=b"2")]
        plan = build_plan(base, head)

        run_fn = MagicMock(return_value=BenchmarkExecution(output="", profiles={}))
        collector = MagicMock()
        collector.collect.return_value = make_measurement(cpu=10)
        publisher = MagicMock()

        report = self._executor(run_fn, collector, publisher).execute(
            plan, ReportBuilder("base", "head", plan)
        )

        calls = [(c.args[0] is base[0], c.args[1]) for c in run_fn.call_args_list]
        assert calls == [(True, "BenchmarkA"), (False, "BenchmarkA"), (False, "BenchmarkB")]
        assert report.finished
        assert [r.name for r in report.runs[1].results] == ["alloc_objects", "alloc_space", "cpu"]
        cpu = next(r for r in report.runs[1].results if r.name == "cpu")
        assert not cpu.base_value.available
        assert cpu.head_value.profile_value == 10

    def test_publishes_after_every_measurement(self, make_package, make_measurement) -> None:
        head = [make_package("example.com/p", ["BenchmarkA", "BenchmarkB"], binary_hash=b"2")]
        base = [make_package("example.com/p", ["BenchmarkA", "BenchmarkB"], binary_hash=b"1")]
        plan = build_plan(base, head)

        collector = MagicMock()
        collector.collect.return_value = make_measurement(cpu=1)
        publisher = MagicMock()
        run_fn = MagicMock(return_value=BenchmarkExecution(output="", profiles={}))

        self._executor(run_fn, collector, publisher).execute(
            plan, ReportBuilder("base", "head", plan)
        )

        snapshots = [c.args[0] for c in publisher.publish.call_args_list]
        # initial + 2 entries * 2 sides + final
        assert len(snapshots) == 6
        assert all(not s.finished for s in snapshots[:-1])
        assert snapshots[-1].finished
        assert all(len(s.runs) == 2 for s in snapshots)
        assert snapshots[0].runs[0].results == []

    def test_failed_measurement_degrades_to_absent(self, make_package, make_measurement) -> None:
        base = [make_package("example.com/p", ["BenchmarkA"], binary_hash=b"1")]
        head = [make_package("example.com/p", ["BenchmarkA"], binary_hash=b"2")]
        plan = build_plan(base, head)

        def run_fn(package, benchmark, **kwargs) -> BenchmarkExecution:
            if package is base[0]:
                raise BenchmarkRunError("panic: boom")
            return BenchmarkExecution(output="", profiles={})

        collector = MagicMock()
        collector.collect.return_value = make_measurement(cpu=5)
        executor = self._executor(run_fn, collector, MagicMock())

        report = executor.execute(plan, ReportBuilder("base", "head", plan))

        assert executor.failures == 1
        cpu = next(r for r in report.runs[0].results if r.name == "cpu")
        assert not cpu.base_value.available
        assert cpu.head_value.profile_value == 5
        assert cpu.diff_percent() is None

    def test_selector_overrides_are_passed(self, make_package, make_measurement) -> None:
        head = [make_package("example.com/p", ["BenchmarkA"])]
        plan = build_plan([], head)
        plan[0].bench_time = "100x"
        plan[0].bench_count = 4
        run_fn = MagicMock(return_value=BenchmarkExecution(output="", profiles={}))
        collector = MagicMock()
        collector.collect.return_value = make_measurement()

        self._executor(run_fn, collector, MagicMock()).execute(
            plan, ReportBuilder("base", "head", plan)
        )

        assert run_fn.call_args.kwargs["bench_time"] == "100x"
        assert run_fn.call_args.kwargs["bench_count"] == 4

    def test_malformed_share_response_keeps_measurement(
        self, make_package, profile_bytes, http_response
    ) -> None:
        head = [make_package("example.com/p", ["BenchmarkA"])]
        plan = build_plan([], head)
        cpu = profile_bytes([("samples", "count"), ("cpu", "nanoseconds")], [[1, 7_000]])
        run_fn = MagicMock(return_value=BenchmarkExecution(output="", profiles={"cpu.pprof": cpu}))
        client = MagicMock()
        client.__enter__.return_value = client
        client.post.return_value = http_response(200, {"url": "u", "key": "k", "subProfiles": 5})
        collector = ProfileCollector(ProfileShareClient("https://flamegraph.com", 5))
        executor = self._executor(run_fn, collector, MagicMock())

        with patch("benchdiff.profiles.sharing.httpx.Client", return_value=client):
            report = executor.execute(plan, ReportBuilder("base", "head", plan))

        assert report.finished
        assert executor.failures == 0
        result = next(r for r in report.runs[0].results if r.name == "cpu")
        assert result.head_value.profile_value == 7_000
        assert result.head_value.flamegraph_key == ""

    def test_cancellation_stops_execution(self, make_package) -> None:
        head = [make_package("example.com/p", ["BenchmarkA", "BenchmarkB"])]
        plan = build_plan([], head)
        token = CancelToken()

        def run_fn(*args, **kwargs) -> BenchmarkExecution:
            token.cancel("interrupted")
            raise OperationCancelled("interrupted")

        with pytest.raises(OperationCancelled):
            self._executor(run_fn, MagicMock(), MagicMock(), token).execute(
                plan, ReportBuilder("base", "head", plan)
            )

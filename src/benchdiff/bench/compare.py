import logging
import time
from dataclasses import dataclass
from pathlib import Path

from ..config import BenchdiffConfig
from ..errors import TeardownError
from ..observability import log_plan_built, log_run_complete, log_run_start, new_run_id
from ..process import require_executables
from ..profiles.collector import ProfileCollector
from ..profiles.sharing import ProfileShareClient
from ..report.aggregator import ReportBuilder
from ..report.models import BenchmarkReport
from ..report.reporters import ReportPublisher
from ..scope import CancelToken, ResourceScope
from ..workspace import Revision, RevisionWorkspaceManager
from .matcher import BenchmarkSelection, ComparisonEntry, build_plan
from .packages import count_packages_with_tests, discover_packages
from .scheduler import PlanExecutor, prepare_packages

logger = logging.getLogger(__name__)

REQUIRED_TOOLS = ("go", "git")


@dataclass
class ComparisonResult:
    base: Revision
    head: Revision
    plan: list[ComparisonEntry]
    report: BenchmarkReport
    failures: int = 0


class Comparison:
    """A single base-vs-head benchmark comparison run."""

    def __init__(
        self,
        config: BenchdiffConfig,
        *,
        publisher: ReportPublisher | None = None,
        selection: BenchmarkSelection | None = None,
        share_client: ProfileShareClient | None = None,
    ) -> None:
        self.config = config
        self.publisher = publisher or ReportPublisher()
        self.selection = selection
        if share_client is None and config.share_enabled:
            share_client = ProfileShareClient(config.share_url, config.share_timeout_seconds)
        self.collector = ProfileCollector(share_client)

    def run(self, token: CancelToken | None = None) -> ComparisonResult:
        """Run the comparison; teardown always happens before returning.

        Raises:
            BenchdiffError: For any fatal failure (tools, revisions, phase 1).
            OperationCancelled: If ``token`` is cancelled or its deadline passes.
        """
        if token is None:
            token = CancelToken(timeout=self.config.timeout_seconds)
        new_run_id()
        started_at = time.monotonic()

        scope = ResourceScope()
        try:
            result = self._run(scope, token)
        finally:
            try:
                scope.close()
            except TeardownError as exc:
                logger.error("Error cleaning up: %s", exc)

        log_run_complete(len(result.plan), result.failures, (time.monotonic() - started_at) * 1000)
        return result

    def _run(self, scope: ResourceScope, token: CancelToken) -> ComparisonResult:
        require_executables(REQUIRED_TOOLS)

        workdir = self.config.workdir or Path.cwd()
        manager = RevisionWorkspaceManager(workdir, scope, token)
        head = manager.head()
        base = manager.checkout_base(self.config.git_base)
        logger.info("Comparing commits base=%s head=%s", base.commit, head.commit)
        log_run_start(base.ref, head.ref, base.commit, head.commit)

        head.packages = discover_packages(head.workspace, token)
        base.packages = discover_packages(base.workspace, token)

        logger.info(
            "Compiling packages with tests to figure out what changed base=%d head=%d",
            count_packages_with_tests(base.packages),
            count_packages_with_tests(head.packages),
        )
        prepare_packages(
            [*base.packages, *head.packages],
            scope=scope,
            token=token,
            concurrency=self.config.concurrency,
        )

        plan = build_plan(base.packages, head.packages, self.selection)
        log_plan_built(len(plan), len(base.packages), len(head.packages))
        if not plan:
            logger.info("No benchmarks to run")
        else:
            logger.info("Running %d benchmarks", len(plan))

        builder = ReportBuilder(base.commit, head.commit, plan)
        executor = PlanExecutor(
            collector=self.collector,
            publisher=self.publisher,
            token=token,
            bench_time=self.config.bench_time,
            bench_count=self.config.bench_count,
        )
        report = executor.execute(plan, builder)
        return ComparisonResult(
            base=base, head=head, plan=plan, report=report, failures=executor.failures
        )

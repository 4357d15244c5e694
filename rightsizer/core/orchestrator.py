"""
RightsizeOrchestrator -- one right-sizing run, end to end.

Lists the inventory, resolves group membership, then runs every targeted
resource through resolve -> evaluate -> (execute) on a bounded worker
pool, one group batch at a time, until done or until the run deadline
stops admission. Rows are collected by the ReportAggregator.

Only setup failures (inventory/grouping unreachable) propagate; anything
that goes wrong for a single resource ends up as a row in the report.
"""

import asyncio
import time
from typing import Awaitable, Callable, Dict, List, Optional, Sequence, Set, Tuple

from ..analysis.resolver import RecommendationResolver
from ..execution.executor import ResizeExecutor
from .aggregation import ReportAggregator
from .config import RightsizeConfig
from .interfaces import GroupingProvider, InventoryProvider, MonitoringProvider
from .logging import get_logger, set_run_id, TimedOperation
from .models import JobResult, JobStatus, Resource, RunReport
from .pool import Deadline, JobOrchestrator
from .workflow import ResourceWorkflow

logger = get_logger(__name__)

UNGROUPED = "all"

# (resource name, excluded)
WorkItem = Tuple[str, bool]


class RightsizeOrchestrator:

    def __init__(
        self,
        config: RightsizeConfig,
        inventory: InventoryProvider,
        monitoring: MonitoringProvider,
        grouping: Optional[GroupingProvider] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable] = asyncio.sleep,
    ):
        self.config = config
        self.inventory = inventory
        self.monitoring = monitoring
        self.grouping = grouping
        self._clock = clock
        self._sleep = sleep

    async def run(
        self,
        group_names: Optional[Sequence[str]] = None,
        resource_names: Optional[Sequence[str]] = None,
    ) -> RunReport:
        """
        Run one pass over the fleet.

        ``group_names`` restricts which group batches run (grouped mode);
        ``resource_names`` restricts which resources are considered at all.
        """
        cfg = self.config
        run_id = set_run_id()
        deadline = Deadline(cfg.max_run_minutes, clock=self._clock)
        mode = "read-only" if cfg.read_only else "read-write"

        with TimedOperation(logger, f"rightsize_run:{mode}"):
            resources = await self.inventory.list_resources()
            by_name: Dict[str, Resource] = {r.name: r for r in resources}
            scope = set(resource_names) if resource_names else None

            batches = await self._build_batches(by_name, group_names, scope)
            logger.info(
                f"Run {run_id}: {len(by_name)} resources in inventory, "
                f"{len(batches)} batch(es), mode={mode}, workers={cfg.max_concurrent_jobs}"
            )

            workflow = ResourceWorkflow(
                cfg,
                RecommendationResolver(self.monitoring, lookback_days=cfg.lookback_days),
                executor=None if cfg.read_only else self._build_executor(),
            )
            pool = JobOrchestrator(cfg.max_concurrent_jobs, deadline)
            aggregator = ReportAggregator(run_id, cfg.read_only)

            async def job(group: str, item: WorkItem) -> JobResult:
                name, excluded = item
                resource = by_name.get(name)
                if resource is None:
                    return _failed_row(name, group, "not found in inventory", None)
                return await workflow.run(resource, group=group, excluded=excluded)

            outcomes = await pool.run_groups(batches, job)
            for (label, items), outcome in zip(batches, outcomes):
                rows = list(outcome.results)
                rows.extend(
                    _failed_row(name, label, f"error: {type(exc).__name__}: {exc}", by_name.get(name))
                    for (name, _), exc in outcome.errors
                )
                aggregator.add_batch(
                    label,
                    rows,
                    submitted=len(items),
                    abandoned=[name for name, _ in outcome.abandoned],
                    deadline_reached=outcome.deadline_reached,
                    duration_ms=outcome.duration_ms,
                )

            return aggregator.finish()

    def _build_executor(self) -> ResizeExecutor:
        cfg = self.config
        return ResizeExecutor(
            self.inventory,
            shutdown_timeout=cfg.shutdown_timeout_seconds,
            startup_timeout=cfg.startup_timeout_seconds,
            poll_interval=cfg.poll_interval_seconds,
            sleep=self._sleep,
            clock=self._clock,
        )

    async def _build_batches(
        self,
        by_name: Dict[str, Resource],
        group_names: Optional[Sequence[str]],
        scope: Optional[Set[str]],
    ) -> List[Tuple[str, List[WorkItem]]]:
        if self.grouping is None:
            return [(UNGROUPED, [(name, False) for name in by_name if scope is None or name in scope])]

        groups = await self.grouping.list_group_membership(self.config.group_tag_category)
        if group_names:
            unknown = [g for g in group_names if g not in groups]
            if unknown:
                logger.warning(f"Requested group(s) not found: {unknown}")
            groups = {g: groups[g] for g in group_names if g in groups}

        # A VM tagged into several groups is processed with the first one only
        claimed: Set[str] = set()
        batches = []
        for group in groups.values():
            items: List[WorkItem] = [(name, False) for name in group.targeted]
            if self.config.report_excluded:
                items.extend((name, True) for name in group.excluded)

            kept = []
            for name, excluded in items:
                if scope is not None and name not in scope:
                    continue
                if name in claimed:
                    logger.info(f"{name} already scheduled with an earlier group", extra={"group": group.name})
                    continue
                claimed.add(name)
                kept.append((name, excluded))

            logger.info(
                f"Group {group.name}: {len(group.targeted)} targeted, {len(group.excluded)} excluded, "
                f"{len(kept)} scheduled",
                extra={"group": group.name},
            )
            batches.append((group.name, kept))
        return batches


def _failed_row(name: str, group: str, note: str, resource: Optional[Resource]) -> JobResult:
    """A FAILED row; sizes come from the inventory snapshot when the VM is known."""
    cpu = resource.cpu_count if resource is not None else 0
    memory_mb = resource.memory_mb if resource is not None else 0
    return JobResult(
        resource_name=name,
        original_cpu=cpu,
        new_cpu=cpu,
        original_memory_mb=memory_mb,
        new_memory_mb=memory_mb,
        status=JobStatus.FAILED,
        group=group,
        notes=(note,),
    )

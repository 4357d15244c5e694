"""
Per-resource workflow: resolve -> evaluate -> (execute) -> JobResult.

Never raises for a per-resource problem; every failure becomes a FAILED
row so the report accounts for the resource.
"""

from typing import Optional

from ..analysis.evaluator import evaluate
from ..analysis.resolver import RecommendationResolver
from ..execution.executor import ExecutionOutcome, ResizeExecutor, ResizeState
from .config import RightsizeConfig
from .errors import ResizeAborted
from .logging import get_logger, TimedOperation
from .models import JobResult, JobStatus, Resource, SizingDecision

logger = get_logger(__name__)

EXCLUDED_NOTE = "excluded from resize"


class ResourceWorkflow:

    def __init__(
        self,
        config: RightsizeConfig,
        resolver: RecommendationResolver,
        executor: Optional[ResizeExecutor] = None,
    ):
        self.config = config
        self.resolver = resolver
        self.executor = executor

    async def run(self, resource: Resource, group: str = "", excluded: bool = False) -> JobResult:
        with TimedOperation(logger, f"resource:{resource.name}", resource=resource.name, group=group):
            return await self._run(resource, group, excluded)

    async def _run(self, resource: Resource, group: str, excluded: bool) -> JobResult:
        decision: Optional[SizingDecision] = None
        try:
            decision = await self.decide(resource)
            if excluded or self.executor is None:
                return self._proposal(resource, decision, group, excluded)

            outcome = await self.executor.execute(resource, decision)
            return self._applied(resource, decision, outcome, group)

        except ResizeAborted as e:
            return self._failed(
                resource, group, f"error: {e}", decision,
                new_cpu=e.applied_cpu, new_memory_mb=e.applied_memory_mb, extra_notes=e.notes,
            )
        except Exception as e:
            logger.error(
                f"{resource.name}: workflow failed: {e}",
                extra={"resource": resource.name, "group": group, "error_type": type(e).__name__},
                exc_info=True,
            )
            return self._failed(resource, group, f"error: {type(e).__name__}: {e}", decision)

    async def decide(self, resource: Resource) -> SizingDecision:
        cfg = self.config
        values = await self.resolver.resolve(resource, [cfg.cpu_metric_key, cfg.mem_metric_key])

        rec_mem = values.get(cfg.mem_metric_key)
        if rec_mem is not None:
            rec_mem = rec_mem / cfg.memory_divisor

        decision = evaluate(
            resource.name,
            resource.cpu_count,
            resource.memory_mb,
            values.get(cfg.cpu_metric_key),
            rec_mem,
            tolerance=cfg.tolerance_fraction,
            buffer=cfg.buffer_fraction,
            power_state=resource.power_state,
        )
        logger.debug(
            f"{resource.name}: cpu {decision.current_cpu}->{decision.recommended_cpu} "
            f"mem {decision.current_memory_mb}->{decision.recommended_memory_mb}",
            extra={"resource": resource.name},
        )
        return decision

    # ─────────────────────────────────────────────────────────
    # Row builders
    # ─────────────────────────────────────────────────────────

    def _proposal(self, resource: Resource, decision: SizingDecision, group: str, excluded: bool) -> JobResult:
        notes = list(decision.notes)
        if excluded:
            notes.append(EXCLUDED_NOTE)
        changes = decision.cpu_changes or decision.memory_changes
        return JobResult(
            resource_name=resource.name,
            original_cpu=resource.cpu_count,
            new_cpu=decision.recommended_cpu,
            original_memory_mb=resource.memory_mb,
            new_memory_mb=decision.recommended_memory_mb,
            status=JobStatus.PROPOSED if changes else JobStatus.NO_ACTION,
            group=group,
            notes=tuple(notes),
        )

    def _applied(
        self,
        resource: Resource,
        decision: SizingDecision,
        outcome: ExecutionOutcome,
        group: str,
    ) -> JobResult:
        if outcome.state == ResizeState.SKIPPED:
            status = JobStatus.SKIPPED if decision.needs_resize else JobStatus.NO_ACTION
        elif outcome.state == ResizeState.DEGRADED_DONE:
            status = JobStatus.DEGRADED
        else:
            status = JobStatus.RESIZED

        return JobResult(
            resource_name=resource.name,
            original_cpu=resource.cpu_count,
            new_cpu=_first(outcome.applied_cpu, resource.cpu_count),
            original_memory_mb=resource.memory_mb,
            new_memory_mb=_first(outcome.applied_memory_mb, resource.memory_mb),
            status=status,
            group=group,
            notes=tuple(decision.notes) + tuple(outcome.notes),
        )

    def _failed(
        self,
        resource: Resource,
        group: str,
        note: str,
        decision: Optional[SizingDecision] = None,
        new_cpu=None,
        new_memory_mb=None,
        extra_notes=(),
    ) -> JobResult:
        notes = [note]
        if decision is not None:
            notes.extend(decision.notes)
        notes.extend(extra_notes)
        return JobResult(
            resource_name=resource.name,
            original_cpu=resource.cpu_count,
            new_cpu=_first(new_cpu, resource.cpu_count),
            original_memory_mb=resource.memory_mb,
            new_memory_mb=_first(new_memory_mb, resource.memory_mb),
            status=JobStatus.FAILED,
            group=group,
            notes=tuple(notes),
        )


def _first(value, fallback):
    return fallback if value is None else value

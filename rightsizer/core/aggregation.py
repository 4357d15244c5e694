"""
Rightsizer Report Aggregator.

Collects JobResult rows from every batch into one RunReport, in the order
they were processed. Each resource is recorded at most once.
"""

from typing import Iterable, List, Optional

from .logging import get_logger
from .models import BatchSummary, JobResult, JobStatus, RunReport
from ..utils.helpers import utc_now

logger = get_logger(__name__)


class ReportAggregator:

    def __init__(self, run_id: str, read_only: bool):
        self._report = RunReport(run_id=run_id, read_only=read_only, started_at=utc_now())
        self._seen = set()

    @property
    def rows(self) -> List[JobResult]:
        return list(self._report.rows)

    def add(self, row: JobResult) -> bool:
        """Record a row. Returns False (and keeps the first row) on a duplicate."""
        if row.resource_name in self._seen:
            logger.warning(
                f"Duplicate result for {row.resource_name} ignored",
                extra={"resource": row.resource_name, "group": row.group},
            )
            return False
        self._seen.add(row.resource_name)
        self._report.rows.append(row)
        return True

    def add_batch(
        self,
        group: str,
        rows: Iterable[JobResult],
        submitted: int,
        abandoned: Iterable[str] = (),
        deadline_reached: bool = False,
        duration_ms: Optional[float] = None,
    ) -> BatchSummary:
        summary = BatchSummary(group=group, submitted=submitted, duration_ms=duration_ms)
        for row in rows:
            if self.add(row):
                summary.completed += 1
                if row.status == JobStatus.FAILED:
                    summary.failed += 1
        summary.abandoned = list(abandoned)

        self._report.batches.append(summary)
        self._report.abandoned.extend(summary.abandoned)
        self._report.deadline_reached = self._report.deadline_reached or deadline_reached
        return summary

    def finish(self) -> RunReport:
        self._report.finished_at = utc_now()
        report = self._report
        logger.info(
            f"Report complete: {len(report.rows)} resources, {report.failed_count} failed, "
            f"{len(report.abandoned)} abandoned; cpu +{report.cpu_added}/-{report.cpu_reclaimed}, "
            f"memory +{report.memory_added_mb:g}MB/-{report.memory_reclaimed_mb:g}MB"
        )
        return report

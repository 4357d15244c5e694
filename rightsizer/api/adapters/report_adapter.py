"""
RunReport -> plain dict / report columns.

Shared by the HTTP API, the MCP tool and the report writers so every
output uses the same column names.
"""

from typing import Any, Dict, List

from ...core.models import BatchSummary, JobResult, RunReport

COLUMNS = [
    "Name",
    "Group",
    "Status",
    "Original CPU",
    "New CPU",
    "CPU Added",
    "CPU Reclaimed",
    "Original Memory MB",
    "New Memory MB",
    "Memory Added MB",
    "Memory Reclaimed MB",
    "Notes",
]


def adapt_row(row: JobResult) -> Dict[str, Any]:
    return {
        "Name": row.resource_name,
        "Group": row.group,
        "Status": row.status.value,
        "Original CPU": row.original_cpu,
        "New CPU": row.new_cpu,
        "CPU Added": row.cpu_added,
        "CPU Reclaimed": row.cpu_reclaimed,
        "Original Memory MB": _mb(row.original_memory_mb),
        "New Memory MB": _mb(row.new_memory_mb),
        "Memory Added MB": _mb(row.memory_added_mb),
        "Memory Reclaimed MB": _mb(row.memory_reclaimed_mb),
        "Notes": "; ".join(row.notes),
    }


def adapt_run_report(report: RunReport) -> Dict[str, Any]:
    return {
        "meta": {
            "run_id": report.run_id,
            "mode": "read-only" if report.read_only else "read-write",
            "started_at": report.started_at.isoformat(),
            "finished_at": report.finished_at.isoformat() if report.finished_at else None,
            "deadline_reached": report.deadline_reached,
        },
        "summary": {
            "resource_count": len(report.rows),
            "failed_count": report.failed_count,
            "abandoned_count": len(report.abandoned),
            "cpu_added": report.cpu_added,
            "cpu_reclaimed": report.cpu_reclaimed,
            "memory_added_mb": _mb(report.memory_added_mb),
            "memory_reclaimed_mb": _mb(report.memory_reclaimed_mb),
        },
        "batches": [_adapt_batch(b) for b in report.batches],
        "abandoned": list(report.abandoned),
        "rows": [adapt_row(r) for r in report.rows],
    }


def _adapt_batch(batch: BatchSummary) -> Dict[str, Any]:
    return {
        "group": batch.group,
        "submitted": batch.submitted,
        "completed": batch.completed,
        "failed": batch.failed,
        "abandoned": list(batch.abandoned),
        "duration_ms": batch.duration_ms,
    }


def _mb(value: float):
    value = float(value)
    return int(value) if value.is_integer() else round(value, 2)


def rows_as_dicts(report: RunReport) -> List[Dict[str, Any]]:
    return [adapt_row(r) for r in report.rows]

"""
Sizing evaluator -- turns current vs. recommended CPU/memory into a
SizingDecision.

Recommendations are approached, not hit: a dimension that deviates by more
than the tolerance moves only ``buffer`` of the way from the current
allocation toward the recommendation. CPU targets are kept even. A
missing, zero or collapsing value always falls back to the current
allocation.
"""

import math
from typing import List, Optional, Tuple

from ..core.models import PowerState, SizingDecision

POWERED_OFF_NO_STATS = "powered off, no stats available"


def evaluate(
    resource_name: str,
    current_cpu: int,
    current_memory_mb: float,
    recommended_cpu: Optional[float],
    recommended_memory_mb: Optional[float],
    tolerance: float,
    buffer: float,
    power_state: Optional[PowerState] = None,
) -> SizingDecision:
    notes: List[str] = []

    cpu_missing = _unavailable(recommended_cpu)
    mem_missing = _unavailable(recommended_memory_mb)

    if cpu_missing and mem_missing and power_state == PowerState.POWERED_OFF:
        notes.append(POWERED_OFF_NO_STATS)
    else:
        if cpu_missing:
            notes.append("cpu recommendation unavailable, defaulted to current")
        if mem_missing:
            notes.append("memory recommendation unavailable, defaulted to current")

    rec_cpu = current_cpu if cpu_missing else recommended_cpu
    rec_mem = current_memory_mb if mem_missing else recommended_memory_mb

    oversized = current_cpu > rec_cpu or current_memory_mb > rec_mem
    undersized = current_cpu < rec_cpu or current_memory_mb < rec_mem

    if not (oversized or undersized):
        return SizingDecision(
            resource_name=resource_name,
            current_cpu=current_cpu,
            current_memory_mb=current_memory_mb,
            recommended_cpu=current_cpu,
            recommended_memory_mb=current_memory_mb,
            notes=tuple(notes),
        )

    cpu_target, cpu_resize = _size_dimension("cpu", current_cpu, rec_cpu, tolerance, buffer, notes, even=True)
    mem_target, mem_resize = _size_dimension("memory", current_memory_mb, rec_mem, tolerance, buffer, notes)

    return SizingDecision(
        resource_name=resource_name,
        current_cpu=current_cpu,
        current_memory_mb=current_memory_mb,
        recommended_cpu=cpu_target,
        recommended_memory_mb=mem_target,
        cpu_needs_resize=cpu_resize,
        mem_needs_resize=mem_resize,
        is_oversized=oversized,
        is_undersized=undersized,
        notes=tuple(notes),
    )


def _unavailable(value: Optional[float]) -> bool:
    return value is None or value <= 0


def _size_dimension(
    label: str,
    current,
    recommended,
    tolerance: float,
    buffer: float,
    notes: List[str],
    even: bool = False,
) -> Tuple[object, bool]:
    """Return (target, needs_resize) for one dimension."""
    if recommended == current:
        return current, False
    if current <= 0:
        notes.append(f"{label} current allocation is zero, no action")
        return current, False

    diff = recommended - current
    if abs(diff) / current <= tolerance:
        return current, False

    target = math.floor(current + buffer * diff)
    if even and target % 2:
        target += 1
    if target <= 0:
        notes.append(f"{label} target collapsed to zero, kept current")
        return current, False
    return target, True

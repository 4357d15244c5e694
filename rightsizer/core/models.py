"""
Rightsizer domain models.

Plain dataclasses shared by the providers, the engine and the report
writers. Decisions and job results are frozen: once produced they are
only read.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional, Tuple


class PowerState(str, Enum):
    POWERED_ON = "PoweredOn"
    POWERED_OFF = "PoweredOff"
    SUSPENDED = "Suspended"


class ToolsState(str, Enum):
    RUNNING = "Running"
    NOT_RUNNING = "NotRunning"
    UNKNOWN = "Unknown"


class JobStatus(str, Enum):
    NO_ACTION = "no_action"
    PROPOSED = "proposed"
    RESIZED = "resized"
    DEGRADED = "degraded"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass
class Resource:
    """Read snapshot of one virtual machine as reported by the inventory."""

    id: str
    name: str
    cpu_count: int
    memory_mb: float
    power_state: PowerState = PowerState.POWERED_ON
    tools_state: ToolsState = ToolsState.UNKNOWN
    tags: Dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class MetricSample:
    key: str
    value: float
    timestamp: datetime


@dataclass(frozen=True)
class SizingDecision:
    """
    Outcome of evaluating one resource.

    ``recommended_cpu`` / ``recommended_memory_mb`` hold the buffered,
    rounded targets, equal to the current values for any dimension that
    is not being resized.
    """

    resource_name: str
    current_cpu: int
    current_memory_mb: float
    recommended_cpu: int
    recommended_memory_mb: float
    cpu_needs_resize: bool = False
    mem_needs_resize: bool = False
    is_oversized: bool = False
    is_undersized: bool = False
    notes: Tuple[str, ...] = ()

    @property
    def needs_resize(self) -> bool:
        return self.cpu_needs_resize or self.mem_needs_resize

    @property
    def cpu_changes(self) -> bool:
        return self.cpu_needs_resize and self.recommended_cpu != self.current_cpu

    @property
    def memory_changes(self) -> bool:
        return self.mem_needs_resize and self.recommended_memory_mb != self.current_memory_mb


@dataclass(frozen=True)
class Group:
    """A named batch of resources: those flagged for resize and the rest."""

    name: str
    targeted: Tuple[str, ...] = ()
    excluded: Tuple[str, ...] = ()

    def __post_init__(self):
        overlap = set(self.targeted) & set(self.excluded)
        if overlap:
            raise ValueError(
                f"Group '{self.name}' lists {sorted(overlap)} as both targeted and excluded"
            )


@dataclass(frozen=True)
class JobResult:
    """One report row."""

    resource_name: str
    original_cpu: int
    new_cpu: int
    original_memory_mb: float
    new_memory_mb: float
    status: JobStatus = JobStatus.NO_ACTION
    group: str = ""
    notes: Tuple[str, ...] = ()

    @property
    def cpu_added(self) -> int:
        return max(self.new_cpu - self.original_cpu, 0)

    @property
    def cpu_reclaimed(self) -> int:
        return max(self.original_cpu - self.new_cpu, 0)

    @property
    def memory_added_mb(self) -> float:
        return max(self.new_memory_mb - self.original_memory_mb, 0)

    @property
    def memory_reclaimed_mb(self) -> float:
        return max(self.original_memory_mb - self.new_memory_mb, 0)


@dataclass
class BatchSummary:
    group: str
    submitted: int = 0
    completed: int = 0
    failed: int = 0
    abandoned: List[str] = field(default_factory=list)
    duration_ms: Optional[float] = None


@dataclass
class RunReport:
    """Everything a run produced, in processing order."""

    run_id: str
    read_only: bool
    started_at: datetime
    finished_at: Optional[datetime] = None
    rows: List[JobResult] = field(default_factory=list)
    batches: List[BatchSummary] = field(default_factory=list)
    abandoned: List[str] = field(default_factory=list)
    deadline_reached: bool = False

    @property
    def failed_count(self) -> int:
        return sum(1 for r in self.rows if r.status == JobStatus.FAILED)

    @property
    def cpu_added(self) -> int:
        return sum(r.cpu_added for r in self.rows)

    @property
    def cpu_reclaimed(self) -> int:
        return sum(r.cpu_reclaimed for r in self.rows)

    @property
    def memory_added_mb(self) -> float:
        return sum(r.memory_added_mb for r in self.rows)

    @property
    def memory_reclaimed_mb(self) -> float:
        return sum(r.memory_reclaimed_mb for r in self.rows)

"""
Rightsizer Core -- Domain layer.

Exports the primary classes used across the application.

NOTE: RightsizeOrchestrator and ResourceWorkflow are NOT imported here to
avoid circular imports (they depend on analysis/execution which depend on
core). Import them directly:
    from rightsizer.core.orchestrator import RightsizeOrchestrator
    from rightsizer.core.workflow import ResourceWorkflow
"""

from .models import (
    PowerState,
    ToolsState,
    JobStatus,
    Resource,
    MetricSample,
    SizingDecision,
    Group,
    JobResult,
    BatchSummary,
    RunReport,
)
from .errors import (
    RightsizerError,
    ConfigurationError,
    ProviderConnectionError,
    DataUnavailableError,
    MonitoringError,
    InventoryError,
    ReconfigureError,
    TimeoutExceeded,
    DeadlineExceeded,
    ResizeAborted,
)
from .config import RightsizeConfig
from .aggregation import ReportAggregator
from .pool import Deadline, JobOrchestrator, BatchOutcome
from .logging import get_logger, set_run_id, get_run_id, TimedOperation

__all__ = [
    "PowerState",
    "ToolsState",
    "JobStatus",
    "Resource",
    "MetricSample",
    "SizingDecision",
    "Group",
    "JobResult",
    "BatchSummary",
    "RunReport",
    "RightsizerError",
    "ConfigurationError",
    "ProviderConnectionError",
    "DataUnavailableError",
    "MonitoringError",
    "InventoryError",
    "ReconfigureError",
    "TimeoutExceeded",
    "DeadlineExceeded",
    "ResizeAborted",
    "RightsizeConfig",
    "ReportAggregator",
    "Deadline",
    "JobOrchestrator",
    "BatchOutcome",
    "get_logger",
    "set_run_id",
    "get_run_id",
    "TimedOperation",
]

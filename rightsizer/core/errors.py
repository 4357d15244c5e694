"""
Rightsizer error taxonomy.

Fatal (abort the whole run):
    ProviderConnectionError, ConfigurationError

Per-resource (become a report row, never reach the orchestrator):
    InventoryError, ReconfigureError, MonitoringError, TimeoutExceeded,
    ResizeAborted

Recovered locally:
    DataUnavailableError -> fall back to current allocation
    DeadlineExceeded     -> stop admitting new jobs
"""

from typing import Optional, Sequence


class RightsizerError(Exception):
    """Base class for every error raised by rightsizer."""


class ConfigurationError(RightsizerError):
    """Invalid or incomplete configuration."""


class ProviderConnectionError(RightsizerError):
    """A collaborator could not be reached or authenticated at setup time."""

    def __init__(self, provider: str, message: str):
        super().__init__(f"[{provider}] {message}")
        self.provider = provider


class DataUnavailableError(RightsizerError):
    """No recommendation samples exist for a resource/metric."""


class MonitoringError(RightsizerError):
    """A monitoring API call failed for a reason other than missing data."""


class InventoryError(RightsizerError):
    """An inventory/control API call failed while processing a resource."""


class ReconfigureError(InventoryError):
    """A CPU/memory change was rejected (e.g. the resource is not powered off)."""


class TimeoutExceeded(RightsizerError):
    """A bounded polling wait ran out of time."""

    def __init__(self, what: str, timeout: float):
        super().__init__(f"{what} not reached within {timeout:g}s")
        self.what = what
        self.timeout = timeout


class DeadlineExceeded(RightsizerError):
    """The global run deadline passed; no new jobs are admitted."""


class ResizeAborted(RightsizerError):
    """
    A power-cycle resize stopped part way through.

    Carries the executor state that was reached and whatever was already
    applied so the report row can say exactly how far it got.
    """

    def __init__(
        self,
        state,
        cause: BaseException,
        applied_cpu: Optional[int] = None,
        applied_memory_mb: Optional[int] = None,
        notes: Sequence[str] = (),
    ):
        super().__init__(f"aborted in {state.value}: {cause}")
        self.state = state
        self.cause = cause
        self.applied_cpu = applied_cpu
        self.applied_memory_mb = applied_memory_mb
        self.notes = tuple(notes)

"""
Collaborator contracts the engine depends on.

Concrete implementations live in ``rightsizer.providers``; the tests use
in-memory fakes. Power operations are asynchronous triggers -- callers
poll ``get_power_state`` / ``get_tools_state`` for the outcome.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

from .models import Group, MetricSample, PowerState, Resource, RunReport, ToolsState


class InventoryProvider(ABC):

    @abstractmethod
    async def list_resources(self, filter: Optional[Dict[str, Any]] = None) -> List[Resource]:
        ...

    @abstractmethod
    async def get_power_state(self, resource: Resource) -> PowerState:
        ...

    @abstractmethod
    async def get_tools_state(self, resource: Resource) -> ToolsState:
        ...

    @abstractmethod
    async def shutdown_guest(self, resource: Resource) -> None:
        ...

    @abstractmethod
    async def force_power_off(self, resource: Resource) -> None:
        ...

    @abstractmethod
    async def power_on(self, resource: Resource) -> None:
        ...

    @abstractmethod
    async def set_cpu_count(self, resource: Resource, count: int) -> None:
        """Raise ReconfigureError unless the resource is powered off."""

    @abstractmethod
    async def set_memory_mb(self, resource: Resource, size_mb: int) -> None:
        """Raise ReconfigureError unless the resource is powered off."""


class GroupingProvider(ABC):

    @abstractmethod
    async def list_group_membership(self, criterion: str) -> Dict[str, Group]:
        ...


class MonitoringProvider(ABC):

    @abstractmethod
    async def fetch_metric_samples(
        self,
        resource: Resource,
        keys: Sequence[str],
        begin: datetime,
        end: datetime,
    ) -> List[MetricSample]:
        """Raise DataUnavailableError if the resource is unknown to monitoring."""


class ReportWriter(ABC):

    @abstractmethod
    def write(self, report: RunReport) -> str:
        """Serialize the report and return where it was written."""

"""
Shared fixtures: in-memory inventory / monitoring / grouping fakes and a
manual clock, so the engine can be driven without vCenter or vROps.
"""

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

import pytest

from rightsizer.core.config import CPU_RECOMMENDATION_KEY, MEM_RECOMMENDATION_KEY, RightsizeConfig
from rightsizer.core.errors import DataUnavailableError, ReconfigureError
from rightsizer.core.interfaces import GroupingProvider, InventoryProvider, MonitoringProvider
from rightsizer.core.models import Group, MetricSample, PowerState, Resource, ToolsState

NOW = datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc)


class ManualClock:
    """Monotonic clock that only moves when ``sleep`` is awaited."""

    def __init__(self, start: float = 0.0):
        self.now = start
        self.sleeps: List[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float):
        self.sleeps.append(seconds)
        self.now += seconds
        await asyncio.sleep(0)


class FakeInventory(InventoryProvider):
    """
    VMs keyed by id. ``shutdown_polls`` is how many power-state reads a
    graceful shutdown takes to land (None = never); ``tools_polls`` the
    same for guest tools after power-on.
    """

    def __init__(self, resources: List[Resource], shutdown_polls: Optional[int] = 1,
                 tools_polls: Optional[int] = 1, delay: float = 0.0):
        self.resources = {r.id: r for r in resources}
        self.power = {r.id: r.power_state for r in resources}
        self.tools = {r.id: r.tools_state for r in resources}
        self.shutdown_polls = shutdown_polls
        self.tools_polls = tools_polls
        self.delay = delay
        self.calls: List[tuple] = []
        self.failures: Dict[str, Exception] = {}
        self.applied_cpu: Dict[str, int] = {}
        self.applied_memory: Dict[str, int] = {}
        self._pending_off: Dict[str, Optional[int]] = {}
        self._pending_tools: Dict[str, Optional[int]] = {}
        self.active = 0
        self.max_active = 0

    async def _touch(self, op: str, resource: Resource, *args):
        self.calls.append((op, resource.name) + args)
        if op in self.failures:
            raise self.failures[op]
        if self.delay:
            self.active += 1
            self.max_active = max(self.max_active, self.active)
            try:
                await asyncio.sleep(self.delay)
            finally:
                self.active -= 1

    def ops(self, name: str) -> List[str]:
        return [c[0] for c in self.calls if c[1] == name]

    async def list_resources(self, filter=None):
        return list(self.resources.values())

    async def get_power_state(self, resource):
        await self._touch("get_power_state", resource)
        pending = self._pending_off.get(resource.id)
        if pending is not None:
            if pending <= 1:
                self.power[resource.id] = PowerState.POWERED_OFF
                self.tools[resource.id] = ToolsState.NOT_RUNNING
                del self._pending_off[resource.id]
            else:
                self._pending_off[resource.id] = pending - 1
        return self.power[resource.id]

    async def get_tools_state(self, resource):
        await self._touch("get_tools_state", resource)
        pending = self._pending_tools.get(resource.id)
        if pending is not None:
            if pending <= 1:
                self.tools[resource.id] = ToolsState.RUNNING
                del self._pending_tools[resource.id]
            else:
                self._pending_tools[resource.id] = pending - 1
        return self.tools[resource.id]

    async def shutdown_guest(self, resource):
        await self._touch("shutdown_guest", resource)
        if self.shutdown_polls is not None:
            self._pending_off[resource.id] = self.shutdown_polls

    async def force_power_off(self, resource):
        await self._touch("force_power_off", resource)
        self._pending_off.pop(resource.id, None)
        self.power[resource.id] = PowerState.POWERED_OFF
        self.tools[resource.id] = ToolsState.NOT_RUNNING

    async def power_on(self, resource):
        await self._touch("power_on", resource)
        self.power[resource.id] = PowerState.POWERED_ON
        if self.tools_polls is not None:
            self._pending_tools[resource.id] = self.tools_polls

    async def set_cpu_count(self, resource, count):
        await self._touch("set_cpu_count", resource, count)
        if self.power[resource.id] != PowerState.POWERED_OFF:
            raise ReconfigureError(f"{resource.name} is not powered off")
        self.applied_cpu[resource.name] = count

    async def set_memory_mb(self, resource, size_mb):
        await self._touch("set_memory_mb", resource, size_mb)
        if self.power[resource.id] != PowerState.POWERED_OFF:
            raise ReconfigureError(f"{resource.name} is not powered off")
        self.applied_memory[resource.name] = size_mb


class FakeMonitoring(MonitoringProvider):
    """Samples by resource name; unknown names raise DataUnavailableError."""

    def __init__(self, samples: Optional[Dict[str, List[MetricSample]]] = None):
        self.samples = samples or {}
        self.errors: Dict[str, Exception] = {}
        self.requests: List[tuple] = []

    async def fetch_metric_samples(self, resource, keys, begin, end):
        self.requests.append((resource.name, tuple(keys), begin, end))
        if resource.name in self.errors:
            raise self.errors[resource.name]
        if resource.name not in self.samples:
            raise DataUnavailableError(f"{resource.name} is not known to monitoring")
        return list(self.samples[resource.name])


class FakeGrouping(GroupingProvider):

    def __init__(self, groups: Dict[str, Group]):
        self.groups = groups
        self.criteria: List[str] = []

    async def list_group_membership(self, criterion):
        self.criteria.append(criterion)
        return dict(self.groups)


def make_vm(name: str, cpu: int = 4, memory_mb: float = 8192,
            power: PowerState = PowerState.POWERED_ON,
            tools: ToolsState = ToolsState.RUNNING) -> Resource:
    return Resource(id=f"vm-{name}", name=name, cpu_count=cpu, memory_mb=memory_mb,
                    power_state=power, tools_state=tools)


def recommendation(cpu: Optional[float] = None, memory_kb: Optional[float] = None,
                   at: datetime = NOW - timedelta(hours=1)) -> List[MetricSample]:
    samples = []
    if cpu is not None:
        samples.append(MetricSample(CPU_RECOMMENDATION_KEY, cpu, at))
    if memory_kb is not None:
        samples.append(MetricSample(MEM_RECOMMENDATION_KEY, memory_kb, at))
    return samples


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def config():
    return RightsizeConfig(poll_interval_seconds=1.0, shutdown_timeout_seconds=10,
                           startup_timeout_seconds=10)

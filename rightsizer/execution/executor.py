"""
Resize executor -- power-cycles a VM to apply a SizingDecision.

    Evaluated -> ShuttingDown -> GracefulWait | ForcedOff -> PowerOffConfirmed
              -> Reconfiguring -> PoweringOn -> ToolsWait -> Done

Alternate terminal states: Skipped (nothing to apply) and DegradedDone
(powered back on, but guest tools never reported running; the resize
stays applied). A graceful shutdown that does not complete in time is
escalated to a forced power-off; the VM is never reconfigured while it
may still be running.

Any failure is raised as ResizeAborted, carrying the state reached and
what had already been applied.
"""

import asyncio
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Awaitable, Callable, List, Optional

from ..core.errors import ResizeAborted, TimeoutExceeded
from ..core.interfaces import InventoryProvider
from ..core.logging import get_logger
from ..core.models import PowerState, Resource, SizingDecision, ToolsState
from ..utils.helpers import WaitResult, wait_until

logger = get_logger(__name__)


class ResizeState(str, Enum):
    EVALUATED = "Evaluated"
    SHUTTING_DOWN = "ShuttingDown"
    GRACEFUL_WAIT = "GracefulWait"
    FORCED_OFF = "ForcedOff"
    POWER_OFF_CONFIRMED = "PowerOffConfirmed"
    RECONFIGURING = "Reconfiguring"
    POWERING_ON = "PoweringOn"
    TOOLS_WAIT = "ToolsWait"
    DONE = "Done"
    SKIPPED = "Skipped"
    DEGRADED_DONE = "DegradedDone"


# A failure in these states leaves the VM powered off
_LEFT_OFF_STATES = (
    ResizeState.POWER_OFF_CONFIRMED,
    ResizeState.RECONFIGURING,
    ResizeState.POWERING_ON,
)


@dataclass
class ExecutionOutcome:
    state: ResizeState = ResizeState.EVALUATED
    applied_cpu: Optional[int] = None
    applied_memory_mb: Optional[int] = None
    notes: List[str] = field(default_factory=list)
    history: List[ResizeState] = field(default_factory=lambda: [ResizeState.EVALUATED])

    @property
    def applied(self) -> bool:
        return self.applied_cpu is not None or self.applied_memory_mb is not None


class ResizeExecutor:

    def __init__(
        self,
        inventory: InventoryProvider,
        shutdown_timeout: float = 120,
        startup_timeout: float = 120,
        poll_interval: float = 2.0,
        sleep: Callable[[float], Awaitable] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.inventory = inventory
        self.shutdown_timeout = shutdown_timeout
        self.startup_timeout = startup_timeout
        self.poll_interval = poll_interval
        self._sleep = sleep
        self._clock = clock

    async def execute(self, resource: Resource, decision: SizingDecision) -> ExecutionOutcome:
        outcome = ExecutionOutcome()

        if not decision.needs_resize:
            self._transition(resource, outcome, ResizeState.SKIPPED)
            return outcome
        if not (decision.cpu_changes or decision.memory_changes):
            outcome.notes.append("flagged for resize but buffered target equals current allocation")
            self._transition(resource, outcome, ResizeState.SKIPPED)
            return outcome

        try:
            was_powered_off = await self._power_off(resource, outcome)
            await self._reconfigure(resource, decision, outcome)
            if was_powered_off:
                outcome.notes.append("was powered off before resize, left powered off")
                self._transition(resource, outcome, ResizeState.DONE)
            else:
                await self._power_on(resource, outcome)
        except Exception as e:
            logger.error(
                f"{resource.name}: resize aborted in {outcome.state.value}: {e}",
                extra={"resource": resource.name, "state": outcome.state.value, "error_type": type(e).__name__},
            )
            if outcome.state in _LEFT_OFF_STATES:
                outcome.notes.append("left powered off, power on manually once resolved")
            raise ResizeAborted(
                outcome.state, e, outcome.applied_cpu, outcome.applied_memory_mb, notes=outcome.notes,
            ) from e

        return outcome

    # ─────────────────────────────────────────────────────────
    # Phases
    # ─────────────────────────────────────────────────────────

    async def _power_off(self, resource: Resource, outcome: ExecutionOutcome) -> bool:
        """Bring the VM to PoweredOff. Returns True if it already was."""
        power = await self.inventory.get_power_state(resource)
        if power == PowerState.POWERED_OFF:
            self._transition(resource, outcome, ResizeState.POWER_OFF_CONFIRMED)
            return True

        self._transition(resource, outcome, ResizeState.SHUTTING_DOWN)
        tools = await self.inventory.get_tools_state(resource)

        if power == PowerState.POWERED_ON and tools == ToolsState.RUNNING:
            await self.inventory.shutdown_guest(resource)
            self._transition(resource, outcome, ResizeState.GRACEFUL_WAIT)
            if await self._wait_powered_off(resource) is WaitResult.REACHED:
                self._transition(resource, outcome, ResizeState.POWER_OFF_CONFIRMED)
                return False
            outcome.notes.append(
                f"graceful shutdown timed out after {self.shutdown_timeout:g}s, forced power-off"
            )
        else:
            outcome.notes.append(f"guest tools {tools.value}, forced power-off")

        self._transition(resource, outcome, ResizeState.FORCED_OFF)
        await self.inventory.force_power_off(resource)
        if await self._wait_powered_off(resource) is WaitResult.TIMED_OUT:
            raise TimeoutExceeded("forced power-off", self.shutdown_timeout)
        self._transition(resource, outcome, ResizeState.POWER_OFF_CONFIRMED)
        return False

    async def _reconfigure(self, resource: Resource, decision: SizingDecision, outcome: ExecutionOutcome):
        self._transition(resource, outcome, ResizeState.RECONFIGURING)
        if decision.cpu_changes:
            await self.inventory.set_cpu_count(resource, int(decision.recommended_cpu))
            outcome.applied_cpu = int(decision.recommended_cpu)
        if decision.memory_changes:
            await self.inventory.set_memory_mb(resource, int(decision.recommended_memory_mb))
            outcome.applied_memory_mb = int(decision.recommended_memory_mb)

    async def _power_on(self, resource: Resource, outcome: ExecutionOutcome):
        self._transition(resource, outcome, ResizeState.POWERING_ON)
        await self.inventory.power_on(resource)

        self._transition(resource, outcome, ResizeState.TOOLS_WAIT)

        async def tools_running() -> bool:
            return await self.inventory.get_tools_state(resource) == ToolsState.RUNNING

        result = await wait_until(
            tools_running, self.poll_interval, self.startup_timeout, sleep=self._sleep, clock=self._clock,
        )
        if result is WaitResult.TIMED_OUT:
            outcome.notes.append(
                f"guest tools not running {self.startup_timeout:g}s after power-on; resize was applied"
            )
            self._transition(resource, outcome, ResizeState.DEGRADED_DONE)
        else:
            self._transition(resource, outcome, ResizeState.DONE)

    # ─────────────────────────────────────────────────────────
    # Internals
    # ─────────────────────────────────────────────────────────

    async def _wait_powered_off(self, resource: Resource) -> WaitResult:
        async def powered_off() -> bool:
            return await self.inventory.get_power_state(resource) == PowerState.POWERED_OFF

        return await wait_until(
            powered_off, self.poll_interval, self.shutdown_timeout, sleep=self._sleep, clock=self._clock,
        )

    def _transition(self, resource: Resource, outcome: ExecutionOutcome, state: ResizeState):
        outcome.state = state
        outcome.history.append(state)
        logger.info(f"{resource.name}: {state.value}", extra={"resource": resource.name, "state": state.value})

"""
Rightsizer Execution -- power-cycle resize state machine.
"""

from .executor import ExecutionOutcome, ResizeExecutor, ResizeState

__all__ = [
    "ExecutionOutcome",
    "ResizeExecutor",
    "ResizeState",
]

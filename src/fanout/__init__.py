"""
fanout -- run functions over payloads in isolated worker processes, concurrently, and collect
their results or failures
"""

from fanout.controller.core import AggregationPolicy, RunnerConfig
from fanout.controller.runner import Runner
from fanout.handlers import handler
from fanout.low.core import SerializedTask, TaskState, TaskStatus
from fanout.task import Task
from fanout.version import __version__

__all__ = [
    "AggregationPolicy",
    "Runner",
    "RunnerConfig",
    "SerializedTask",
    "Task",
    "TaskState",
    "TaskStatus",
    "handler",
    "__version__",
]

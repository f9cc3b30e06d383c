"""
Interface for tracing task lifecycle events that can be used for extracting performance information

Currently, the export is handled just by logging, assuming to be parsed later. We log at debug
level since this is assumed to be high level tracing
"""

import logging
import time
from enum import Enum

d: dict[str, str] = {}

logger = logging.getLogger(__name__)


class TaskLifecycle(str, Enum):
    spawned = "task_spawned" # worker process started for the task
    dispatched = "task_dispatched" # request sent to the worker
    started = "task_started" # worker received the request
    computed = "task_computed" # worker finished invoking the callable
    completed = "task_completed" # reply received by the task
    failed = "task_failed" # failure received, or worker lost
    killed = "task_killed"


def _labels(labels: dict) -> str:
    return ";".join(f"{k}={v.value if isinstance(v, Enum) else v}" for k, v in labels.items())


def label(key: str, value: str) -> None:
    """Makes all subsequent marks contain this KV. Carries over to later-forked subprocesses, but
    not to spawned ones"""
    global d
    d[key] = value


def mark(labels: dict) -> None:
    at = time.perf_counter_ns()
    global d
    event = _labels({**d, **labels})
    logger.debug(f"{event};{at=}")

"""
Publish/subscribe of TaskStatus transitions.

Delivery is synchronous and in publish order -- which, for a Runner, is the completion order
of its tasks. There is no backpressure, the number of tasks being bounded
"""

import logging
from datetime import datetime, timezone
from typing import Callable

from fanout.low.core import TaskState, TaskStatus
from fanout.low.func import assert_never

logger = logging.getLogger(__name__)

StatusCallback = Callable[[TaskStatus], None]


class StatusBus():
    def __init__(self) -> None:
        self.status_queue: list[TaskStatus] = []
        self.status_callbacks: list[StatusCallback] = []

    def drain(self) -> list[TaskStatus]:
        rv = self.status_queue
        self.status_queue = []
        return rv

    def any(self) -> bool:
        return bool(self.status_queue)

    def publish(self, status: TaskStatus) -> None:
        self.status_queue.append(status)
        for callback in list(self.status_callbacks):
            callback(status)

    def subscribe(self, callback: StatusCallback) -> Callable[[], None]:
        """Returns the unsubscribe function"""
        self.status_callbacks.append(callback)
        return lambda: self.unsubscribe(callback)

    def unsubscribe(self, callback: StatusCallback) -> None:
        if callback in self.status_callbacks:
            self.status_callbacks.remove(callback)


def _iso(epoch_ms: int|None) -> str:
    if epoch_ms is None:
        return "?"
    return datetime.fromtimestamp(epoch_ms / 1000, tz=timezone.utc).isoformat()


def render(status: TaskStatus) -> str:
    if status.status == TaskState.pending:
        return f"Task {status.id} is pending"
    elif status.status == TaskState.running:
        return f"Task {status.id} is running"
    elif status.status == TaskState.completed:
        return f"Task {status.id} has completed at {_iso(status.end_time)}\nResult: {status.result}"
    elif status.status == TaskState.failed:
        return f"Task {status.id} has failed at {_iso(status.end_time)}\nError: {status.error}"
    else:
        assert_never(status.status)


def log_status(status: TaskStatus) -> None:
    if status.status == TaskState.failed:
        logger.warning(render(status))
    else:
        logger.info(render(status))

"""
Core data structures -- prescribes most of the API
"""

import time
from enum import Enum
from typing import Annotated, Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from fanout.errors import StatusTransitionError
from fanout.low.func import pyd_replace

TaskId = str

# NOTE the wire form keeps bytes as a list of ints, not base64
ByteValue = Annotated[int, Field(ge=0, le=255)]


class SerializedTask(BaseModel):
    """Wire/persisted form of a Task. Flat, immutable"""
    model_config = ConfigDict(frozen=True)

    id: TaskId
    data: list[ByteValue] = Field(description="the encoded payload, as a sequence of byte values")
    func: str = Field(description="function source, as produced by `serde.func_enc`")

    @classmethod
    def from_parts(cls, id: TaskId, encoded_payload: bytes, function_source: str) -> "SerializedTask":
        return cls(id=id, data=list(encoded_payload), func=function_source)

    def encoded_payload(self) -> bytes:
        return bytes(self.data)


class TaskState(str, Enum):
    pending = "pending" # set by runner before dispatch
    running = "running" # set by runner at dispatch
    completed = "completed" # worker replied
    failed = "failed" # worker errored, crashed, was killed or timed out

    def is_terminal(self) -> bool:
        return self in (TaskState.completed, TaskState.failed)


_transitions: dict[TaskState, set[TaskState]] = {
    TaskState.pending: {TaskState.running},
    TaskState.running: {TaskState.completed, TaskState.failed},
    TaskState.completed: set(),
    TaskState.failed: set(),
}


def now_ms() -> int:
    return int(time.time_ns() / 1_000_000)


class TaskStatus(BaseModel):
    """Observed state of a single task within a Runner. Every transition produces a new
    instance, so that published statuses are snapshots"""
    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    id: TaskId
    status: TaskState = TaskState.pending
    start_time: Optional[int] = Field(None, description="epoch ms of dispatch")
    end_time: Optional[int] = Field(None, description="epoch ms of the terminal transition")
    result: Any = Field(None, description="set only when completed")
    error: Optional[BaseException] = Field(None, description="set only when failed")

    def _advance(self, target: TaskState, **kwargs: Any) -> "TaskStatus":
        if target not in _transitions[self.status]:
            raise StatusTransitionError(f"task {self.id} cannot transition from {self.status.value} to {target.value}")
        return pyd_replace(self, status=target, **kwargs)

    def running(self) -> "TaskStatus":
        return self._advance(TaskState.running, start_time=now_ms())

    def completed(self, result: Any) -> "TaskStatus":
        return self._advance(TaskState.completed, end_time=now_ms(), result=result)

    def failed(self, error: BaseException) -> "TaskStatus":
        return self._advance(TaskState.failed, end_time=now_ms(), error=error)

"""
Exceptions raised by fanout. Everything derives from FanoutError; construction errors
additionally derive from the builtin ValueError/TypeError they would naturally be
"""

from typing import Sequence

from fanout.low.func import maybe_head


class FanoutError(Exception):
    pass

## Construction

class InvalidIdError(FanoutError, ValueError):
    pass

class MissingPayloadError(FanoutError, ValueError):
    pass

class InvalidFunctionError(FanoutError, TypeError):
    pass

class MissingFunctionError(FanoutError, TypeError):
    pass

## Encoding

class EncodingError(FanoutError):
    pass

class InvalidSerializedTaskError(FanoutError, ValueError):
    pass

## Worker level -- raised by WorkerHandle, not aware of task ids

class WorkerError(FanoutError):
    pass

class WorkerTerminatedError(WorkerError):
    """The worker was terminated before it replied"""

class WorkerCrashedError(WorkerError):
    """The worker process exited without replying"""

class WorkerTimeoutError(WorkerError):
    pass

## Task level

class ExecutionError(FanoutError):
    def __init__(self, task_id: str, detail: str) -> None:
        super().__init__(f"Failed to execute task {task_id}: {detail}")
        self.task_id = task_id
        self.detail = detail

class TaskTimeoutError(ExecutionError):
    pass

class TaskKilledError(ExecutionError):
    pass

## Lifecycle

class NoHandleError(FanoutError):
    def __init__(self, task_id: str) -> None:
        super().__init__(f"No worker assigned to task {task_id}")
        self.task_id = task_id

class StatusTransitionError(FanoutError):
    pass

## Aggregation

class AggregationError(FanoutError):
    def __init__(self, failures: Sequence[tuple[str, BaseException]]) -> None:
        self.failures = list(failures)
        first = maybe_head(self.failures)
        summary = f"; first: {first[0]}: {first[1]}" if first else ""
        super().__init__(f"{len(self.failures)} task(s) failed{summary}")

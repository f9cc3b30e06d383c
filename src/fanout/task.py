"""
Task -- a payload and a function to apply to it, packaged so that both can cross into a
worker process. A Task drives one WorkerHandle per `run()`.
"""

import asyncio
import copy
import logging
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Callable, Optional

from fanout.errors import (
    ExecutionError,
    InvalidFunctionError,
    InvalidIdError,
    InvalidSerializedTaskError,
    MissingFunctionError,
    MissingPayloadError,
    NoHandleError,
    TaskKilledError,
    TaskTimeoutError,
    WorkerError,
    WorkerTerminatedError,
    WorkerTimeoutError,
)
from fanout.executor.config import settings
from fanout.executor.handle import WorkerHandle
from fanout.executor.msg import TaskFailure, TaskRequest, TaskResult
from fanout.executor.serde import des_output, des_payload, des_task, func_dec, func_enc, ser_payload, ser_task, textual_size
from fanout.low.core import SerializedTask, TaskId
from fanout.low.func import assert_never
from fanout.low.tracing import TaskLifecycle, mark

logger = logging.getLogger(__name__)

_pool_lock = threading.Lock()
_encoding_pool: Optional[ThreadPoolExecutor] = None


def get_encoding_pool() -> ThreadPoolExecutor:
    global _encoding_pool
    if _encoding_pool is None:
        with _pool_lock:
            if _encoding_pool is None:
                _encoding_pool = ThreadPoolExecutor(max_workers=settings.encoding_workers, thread_name_prefix="fanout-encoding")
    return _encoding_pool


class Task:
    def __init__(self, id: TaskId, payload: Any, function: Callable) -> None:
        if not id or not isinstance(id, str):
            raise InvalidIdError("Task ID is required")
        if payload is None:
            raise MissingPayloadError("Task data is required")
        if not callable(function):
            raise InvalidFunctionError("Task function must be a valid function")
        self.id = id
        self._payload = payload
        self._encoded_payload = ser_payload(payload)
        self.function_source = func_enc(function)
        self.handle: Optional[WorkerHandle] = None
        # lazily encoded payload, together with the value it encodes
        self._pending: Optional[tuple[Any, Future[bytes]]] = None

    @classmethod
    def _from_source(cls, id: TaskId, payload: Any, function_source: str) -> "Task":
        task = cls(id, payload, func_dec(function_source))
        # keep the text verbatim -- re-encoding a cloudpickled function need not be byte-identical
        task.function_source = function_source
        return task

    ## Payload

    def _settle(self) -> None:
        """Makes the outcome of a lazy encoding, if any, observable. Raises EncodingError if it
        failed, in which case the previous payload stays in place"""
        if self._pending is None:
            return
        payload, future = self._pending
        self._pending = None
        self._payload, self._encoded_payload = payload, future.result()

    async def _asettle(self) -> None:
        if self._pending is None:
            return
        payload, future = self._pending
        try:
            encoded = await asyncio.wrap_future(future)
        finally:
            self._pending = None
        self._payload, self._encoded_payload = payload, encoded

    @property
    def payload(self) -> Any:
        self._settle()
        return self._payload

    @property
    def encoded_payload(self) -> bytes:
        self._settle()
        return self._encoded_payload

    @staticmethod
    def is_large_payload(value: Any) -> bool:
        return textual_size(value) > settings.large_payload_threshold

    def update_payload(self, new_payload: Any) -> Optional[Future[bytes]]:
        """Re-encodes the payload. Large payloads are encoded on a background thread, in which case
        the future of the encoding is returned -- the new payload becomes observable once it
        resolves. Encoding failures raise EncodingError, either here or from the future"""
        if new_payload is None:
            raise MissingPayloadError("newData is required")
        if self.is_large_payload(new_payload):
            future = get_encoding_pool().submit(ser_payload, new_payload)
            self._pending = (new_payload, future)
            logger.debug(f"encoding large payload of task {self.id} in background")
            return future
        encoded = ser_payload(new_payload)
        self._pending = None
        self._payload, self._encoded_payload = new_payload, encoded
        return None

    def decoded_payload(self) -> Any:
        return des_payload(self.encoded_payload)

    ## Function

    def update_function(self, new_function: Callable) -> None:
        if new_function is None:
            raise MissingFunctionError("newTaskFn is required")
        if not callable(new_function):
            raise MissingFunctionError("newTaskFn function must be a valid function")
        self.function_source = func_enc(new_function)

    def decoded_function(self) -> Callable:
        return func_dec(self.function_source)

    def validate(self) -> bool:
        try:
            des_payload(self.encoded_payload)
        except Exception:
            return False
        try:
            func_dec(self.function_source)
        except Exception:
            return False
        return True

    ## Serde

    def to_serialized(self) -> SerializedTask:
        return SerializedTask.from_parts(self.id, self.encoded_payload, self.function_source)

    @classmethod
    def from_serialized(cls, serialized: SerializedTask) -> "Task":
        try:
            payload = des_payload(serialized.encoded_payload())
            return cls._from_source(serialized.id, payload, serialized.func)
        except (InvalidIdError, MissingPayloadError, InvalidFunctionError):
            raise
        except Exception as e:
            raise InvalidSerializedTaskError(f"Cannot reconstruct task {serialized.id}: {e!r}") from e

    def serialize(self) -> str:
        return ser_task(self.to_serialized())

    @classmethod
    def deserialize(cls, text: str|bytes) -> "Task":
        return cls.from_serialized(des_task(text))

    def clone(self) -> "Task":
        return self._from_source(self.id, copy.deepcopy(self.payload), self.function_source)

    def __str__(self) -> str:
        return f"Task ID: {self.id}, Data: {self.decoded_payload()!r}, Function: {self.function_source}"

    ## Execution

    async def run(self, timeout_sec: Optional[float] = None) -> Any:
        await self._asettle()
        deadline = time.monotonic() + timeout_sec if timeout_sec is not None else None
        if self.handle is not None:
            logger.debug(f"replacing previous worker of task {self.id}")
            await self.handle.aterminate()
        handle = WorkerHandle()
        self.handle = handle
        handle.spawn()
        mark({"task": self.id, "action": TaskLifecycle.spawned})
        try:
            await handle.send(TaskRequest(function_source=self.function_source, payload=self._encoded_payload), deadline)
            mark({"task": self.id, "action": TaskLifecycle.dispatched})
            reply = await handle.recv(deadline)
        except asyncio.CancelledError:
            handle.terminate()
            raise
        except WorkerTimeoutError as e:
            mark({"task": self.id, "action": TaskLifecycle.failed})
            raise TaskTimeoutError(self.id, str(e)) from e
        except WorkerTerminatedError as e:
            raise TaskKilledError(self.id, str(e)) from e
        except WorkerError as e:
            mark({"task": self.id, "action": TaskLifecycle.failed})
            raise ExecutionError(self.id, str(e)) from e

        if isinstance(reply, TaskFailure):
            mark({"task": self.id, "action": TaskLifecycle.failed})
            raise ExecutionError(self.id, reply.detail)
        elif isinstance(reply, TaskResult):
            try:
                result = des_output(reply.value)
            except Exception as e:
                mark({"task": self.id, "action": TaskLifecycle.failed})
                raise ExecutionError(self.id, f"cannot decode result: {e!r}") from e
            mark({"task": self.id, "action": TaskLifecycle.completed})
            return result
        else:
            assert_never(reply)

    def kill(self) -> None:
        if self.handle is None:
            raise NoHandleError(self.id)
        self.handle.terminate()
        self.handle = None
        mark({"task": self.id, "action": TaskLifecycle.killed})

"""
This module defines all messages exchanged between a Task and its worker process
"""

# NOTE plain frozen dataclasses rather than pydantic -- they carry binary data, are never
# rendered to json, and get pickled as a whole by serde.ser_message

from dataclasses import dataclass

BackboneAddress = str # eg zmq address

## Msgs

@dataclass(frozen=True)
class TaskRequest:
    function_source: str
    payload: bytes # shipped as a separate frame, see serde.ser_request

@dataclass(frozen=True)
class TaskResult:
    value: bytes # cloudpickled return value of the callable

@dataclass(frozen=True)
class TaskFailure:
    detail: str

Reply = TaskResult|TaskFailure

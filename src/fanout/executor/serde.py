"""
This module is responsible for Serialization & Deserialization of messages, payloads, functions
and of the persisted task form
"""

import logging
import pickle
from base64 import b64decode, b64encode
from typing import Any, Callable, Sequence, cast

import cloudpickle
import orjson
from pydantic import ValidationError

from fanout import handlers
from fanout.errors import EncodingError, InvalidFunctionError, InvalidSerializedTaskError
from fanout.executor.msg import Reply, TaskFailure, TaskRequest, TaskResult
from fanout.low.core import SerializedTask
from fanout.low.func import resolve_callable

logger = logging.getLogger(__name__)

## Messages

# NOTE for start, we simply pickle the msg classes -- the set of messages is fixed and small,
# and pickle is hard to beat for both small messages and large binary objects

def ser_message(m: Reply) -> bytes:
    return pickle.dumps(m)

def des_message(b: bytes) -> Reply:
    m = pickle.loads(b)
    if not isinstance(m, TaskResult|TaskFailure):
        raise TypeError(f"unexpected message type: {type(m)}")
    return m

def ser_request(m: TaskRequest) -> tuple[bytes, bytes]:
    """Header and payload as separate frames, so that the payload goes out without a memcpy"""
    return pickle.dumps(m.function_source), m.payload

def des_request(bs: Sequence[Any]) -> TaskRequest:
    if len(bs) != 2:
        raise ValueError(f"expected list of len 2, gotten {len(bs)}")
    header, payload = (bytes(b) for b in bs)
    function_source = pickle.loads(header)
    if not isinstance(function_source, str):
        raise TypeError(f"unexpected header type: {type(function_source)}")
    return TaskRequest(function_source=function_source, payload=payload)

## Payloads & outputs

# NOTE we cloudpickle here as that is robust wrt whatever the caller hands over -- nested
# containers, tuples, sets, custom classes. Round trip gives structurally equal values

def ser_payload(v: Any) -> bytes:
    try:
        return cloudpickle.dumps(v)
    except Exception as e:
        raise EncodingError(f"Failed to encode data: {e}") from e

def des_payload(b: bytes) -> Any:
    return cloudpickle.loads(b)

ser_output = ser_payload
des_output = des_payload

def textual_size(v: Any) -> int:
    """Length in characters of a generic textual rendering, used to judge whether a payload is large"""
    try:
        return len(orjson.dumps(v, default=repr, option=orjson.OPT_NON_STR_KEYS).decode("utf-8"))
    except (orjson.JSONEncodeError, TypeError):
        return len(repr(v))

## Functions

HANDLER = "handler"
ENTRYPOINT = "entrypoint"
CLOUDPICKLE = "cloudpickle"

def func_enc(f: Callable) -> str:
    """Registered handlers are addressed by name, anything else is cloudpickled"""
    if not callable(f):
        raise InvalidFunctionError(f"Task function must be a valid function, gotten {type(f)}")
    if (name := handlers.name_of(f)) is not None:
        return f"{HANDLER}:{handlers.module_of(name)}:{name}"
    try:
        return f"{CLOUDPICKLE}:{b64encode(cloudpickle.dumps(f)).decode('ascii')}"
    except Exception as e:
        raise InvalidFunctionError(f"Task function cannot be serialized: {e}") from e

def func_dec(source: str) -> Callable:
    kind, sep, body = source.partition(":")
    if not sep:
        raise ValueError(f"function source without kind prefix: {source[:32]!r}")
    if kind == HANDLER:
        module, _, name = body.rpartition(":")
        f = handlers.resolve(name, module or None)
    elif kind == ENTRYPOINT:
        f = resolve_callable(body)
    elif kind == CLOUDPICKLE:
        f = cloudpickle.loads(b64decode(body, validate=True))
    else:
        raise ValueError(f"unknown function source kind: {kind}")
    if not callable(f):
        raise TypeError(f"function source {kind} does not produce a callable")
    return cast(Callable, f)

## Persisted task

def ser_task(t: SerializedTask) -> str:
    return orjson.dumps(t.model_dump()).decode("utf-8")

def des_task(text: str|bytes) -> SerializedTask:
    try:
        return SerializedTask.model_validate(orjson.loads(text))
    except (orjson.JSONDecodeError, ValidationError) as e:
        raise InvalidSerializedTaskError(f"Invalid serialized task: {e}") from e

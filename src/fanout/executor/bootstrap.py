"""
The program every worker process runs -- a thin wrapper over a single Callable that handles:
 - receiving the one TaskRequest over the PAIR socket
 - reconstructing the callable & decoding the payload
 - invoking the callable and encoding the result
 - replying exactly once, with either the result or the failure

The module is imported once per host process (into the fork server, if used) and reused by
all WorkerHandles, so it should stay light on imports.
"""

import logging
import logging.config
from time import perf_counter_ns
from typing import Any, Callable

import zmq

from fanout.executor.config import logging_config
from fanout.executor.msg import BackboneAddress, Reply, TaskFailure, TaskRequest, TaskResult
from fanout.executor.serde import des_payload, des_request, func_dec, ser_message, ser_output
from fanout.low.func import takes_argument
from fanout.low.tracing import TaskLifecycle, label, mark

logger = logging.getLogger(__name__)


def invoke(func: Callable, value: Any) -> Any:
    if takes_argument(func):
        return func(value)
    return func()


def run(request: TaskRequest) -> Reply:
    start = perf_counter_ns()
    mark({"action": TaskLifecycle.started})
    try:
        func = func_dec(request.function_source)
        value = des_payload(request.payload)
        result = invoke(func, value)
        mark({"action": TaskLifecycle.computed})
        reply: Reply = TaskResult(value=ser_output(result))
    except Exception as e:
        logger.exception("task failure, about to report")
        reply = TaskFailure(detail=repr(e))
    end = perf_counter_ns()
    logger.debug(f"elapsed {(end-start)/1e9: .5f} s")
    return reply


def entrypoint(address: BackboneAddress) -> None:
    logging.config.dictConfig(logging_config)
    label("worker", address)
    context = zmq.Context()
    socket = context.socket(zmq.PAIR)
    # NOTE we set the linger in case the parent dies before consuming the reply -- otherwise
    # this process would hang indefinitely at exit
    socket.set(zmq.LINGER, 1000)
    socket.connect(address)
    try:
        try:
            request = des_request(socket.recv_multipart(copy=False))
        except Exception as e:
            logger.exception("failed to receive request, about to report")
            reply: Reply = TaskFailure(detail=repr(e))
        else:
            reply = run(request)
        socket.send(ser_message(reply))
    finally:
        socket.close()
        context.term()

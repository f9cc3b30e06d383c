"""
Owns one worker process for the lifetime of one task execution.

The worker runs `bootstrap.entrypoint`, connects back to the PAIR socket bound here, receives
exactly one TaskRequest and replies exactly once. Waiting happens on the asyncio loop, in
bounded poll intervals, so that termination, worker crashes and deadlines are noticed.
"""

# NOTE one PAIR socket per handle, bound on loopback at a random port -- there is exactly one
# peer and one request/reply exchange

import asyncio
import atexit
import logging
import multiprocessing
import threading
import time
from multiprocessing.context import BaseContext
from multiprocessing.process import BaseProcess
from typing import Optional

import zmq
import zmq.asyncio

from fanout.errors import WorkerCrashedError, WorkerError, WorkerTerminatedError, WorkerTimeoutError
from fanout.executor.bootstrap import entrypoint
from fanout.executor.config import settings
from fanout.executor.msg import BackboneAddress, Reply, TaskRequest
from fanout.executor.serde import des_message, ser_request

logger = logging.getLogger(__name__)

_context_lock = threading.Lock()
_bootstrap_context: Optional[BaseContext] = None


def get_bootstrap_context() -> BaseContext:
    """The multiprocessing context all workers are started from. Initialised once per process,
    on first use. With forkserver, the bootstrap module gets imported into the server just once
    and every worker is then forked off of it"""
    global _bootstrap_context
    if _bootstrap_context is None:
        with _context_lock:
            if _bootstrap_context is None:
                context = multiprocessing.get_context(settings.start_method)
                if settings.start_method == "forkserver":
                    context.set_forkserver_preload([entrypoint.__module__])
                logger.debug(f"initialised bootstrap context with {settings.start_method=}")
                _bootstrap_context = context
    return _bootstrap_context


# handles with a live process are kept here, so that they are never collected while holding
# work, and are terminated at interpreter exit at the latest
_live: set["WorkerHandle"] = set()


@atexit.register
def _terminate_all() -> None:
    for handle in list(_live):
        handle.terminate()


class WorkerHandle:
    def __init__(self) -> None:
        self.process: Optional[BaseProcess] = None
        self.socket: Optional[zmq.Socket] = None
        self.address: Optional[BackboneAddress] = None
        self.terminated = False
        self._waiting = False

    def spawn(self) -> None:
        if self.process is not None or self.terminated:
            raise ValueError("worker handle can be spawned only once")
        socket = zmq.Context.instance().socket(zmq.PAIR)
        socket.set(zmq.LINGER, 0)
        port = socket.bind_to_random_port("tcp://127.0.0.1")
        self.socket = socket
        self.address = f"tcp://127.0.0.1:{port}"
        self.process = get_bootstrap_context().Process(target=entrypoint, args=(self.address,), daemon=True)
        self.process.start()
        _live.add(self)
        logger.debug(f"started process {self.process.pid} for worker at {self.address}")

    def is_alive(self) -> bool:
        return not self.terminated and self.process is not None and self.process.exitcode is None

    async def _await_ready(self, event: int, deadline: Optional[float]) -> None:
        if self.socket is None or self.process is None:
            raise ValueError("worker handle not spawned")
        poller = zmq.asyncio.Poller()
        poller.register(self.socket, event)
        interval_ms = settings.poll_interval_ms
        self._waiting = True
        try:
            while True:
                if self.terminated:
                    raise WorkerTerminatedError(f"worker at {self.address} was terminated")
                timeout_ms = interval_ms
                if deadline is not None:
                    remaining = deadline - time.monotonic()
                    if remaining <= 0:
                        await self.aterminate()
                        raise WorkerTimeoutError(f"worker at {self.address} exceeded its deadline")
                    timeout_ms = min(interval_ms, int(remaining * 1000) + 1)
                ready = await poller.poll(timeout_ms)
                if self.terminated:
                    # a reply arriving after termination is discarded
                    raise WorkerTerminatedError(f"worker at {self.address} was terminated")
                if ready:
                    return
                if (exitcode := self.process.exitcode) is not None:
                    # the reply may have been flushed just before the exit, give it one more interval
                    if await poller.poll(interval_ms):
                        return
                    raise WorkerCrashedError(f"worker at {self.address} exited with {exitcode} without replying")
        finally:
            self._waiting = False
            if self.terminated:
                self._close()

    async def send(self, request: TaskRequest, deadline: Optional[float] = None) -> None:
        await self._await_ready(zmq.POLLOUT, deadline)
        # NOTE copy=False hands the payload buffer over to zmq instead of copying it
        self.socket.send_multipart(ser_request(request), flags=zmq.NOBLOCK, copy=False) # type: ignore[union-attr]

    async def recv(self, deadline: Optional[float] = None) -> Reply:
        """Awaits the single reply. The socket is closed afterwards, whatever the outcome, while the
        handle itself stays around for a later `terminate`"""
        try:
            await self._await_ready(zmq.POLLIN, deadline)
            raw = self.socket.recv(flags=zmq.NOBLOCK) # type: ignore[union-attr]
        finally:
            self._close()
            _live.discard(self)
        try:
            return des_message(raw)
        except Exception as e:
            raise WorkerError(f"undecodable reply from worker at {self.address}: {e!r}") from e

    def _close(self) -> None:
        if self.socket is not None and not self.socket.closed:
            self.socket.close(linger=0)

    def _stop(self) -> bool:
        """Kills the process without waiting for it. False if already terminated"""
        if self.terminated:
            return False
        self.terminated = True
        if self.process is not None and self.process.exitcode is None:
            self.process.kill()
        # NOTE if a coroutine is polling on the socket, it closes it once it wakes up
        if not self._waiting:
            self._close()
        _live.discard(self)
        logger.debug(f"terminated worker at {self.address}")
        return True

    def _reap(self) -> None:
        if self.process is None:
            return
        self.process.join(settings.terminate_grace_sec)
        if self.process.exitcode is None:
            logger.warning(f"process {self.process.pid} of worker at {self.address} did not exit in time")

    def terminate(self) -> None:
        """Kills the worker and reaps its process, blocking for up to `terminate_grace_sec`.
        Idempotent"""
        if self._stop():
            self._reap()

    async def aterminate(self) -> None:
        """Like `terminate`, but the reaping happens off the event loop"""
        if self._stop():
            await asyncio.to_thread(self._reap)

    def __enter__(self) -> "WorkerHandle":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.terminate()

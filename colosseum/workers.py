"""
Background worker service base.

A worker service has two halves that only talk through queues:

- the worker half runs ``step()`` either on a daemon thread (``start()``)
  or synchronously when the caller drives it, and owns all worker state;
- the client half lives on the simulation thread, posts ``WorkerMessage``
  requests and drains ``WorkerReply`` results with ``dispatch()``.

Stopping is acknowledged: the worker disposes what it holds, answers
pending requests with a terminal status, then posts a ``stopped`` reply.
``stop()`` returns only after that reply has been dispatched.
"""
import logging
import queue
import threading
from abc import ABC, abstractmethod
from typing import Optional

from .exceptions import WorkerStopped
from .messages import WorkerMessage, WorkerReply

logger = logging.getLogger(__name__)

STOP = 'stop'
STOPPED = 'stopped'


class WorkerService(ABC):
    """
    Queue-connected worker with an optional background thread.

    Subclasses implement ``_handle_message`` (one inbox message),
    ``_work`` (one unit of background work, returning whether anything was
    done), ``_shutdown`` (dispose and answer pending requests) and
    ``_on_reply`` (client-side handling of one reply).
    """

    idle_wait_seconds = 0.005

    def __init__(self, name: str):
        self.name = name
        self._inbox: 'queue.Queue[WorkerMessage]' = queue.Queue()
        self._outbox: 'queue.Queue[WorkerReply]' = queue.Queue()
        self._wakeup = threading.Event()
        self._halted = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._stop_requested = False
        self._acknowledged = False

    # ------------------------------------------------------------------
    # Client side
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Run the worker half on a daemon thread."""
        if self._thread is not None:
            return
        if self._stop_requested:
            raise WorkerStopped(f"{self.name} has been stopped")
        self._thread = threading.Thread(
            target=self._run,
            name=f"colosseum-{self.name}",
            daemon=True,
        )
        self._thread.start()
        logger.info(f"Started {self.name} worker thread")

    @property
    def threaded(self) -> bool:
        return self._thread is not None

    @property
    def stopped(self) -> bool:
        """True once the worker acknowledged a stop request."""
        return self._acknowledged

    def post(self, message: WorkerMessage) -> None:
        """
        Send a message to the worker.

        Raises:
            WorkerStopped: If the service is stopping or stopped.
        """
        if self._stop_requested:
            raise WorkerStopped(f"{self.name} has been stopped")
        self._inbox.put(message)
        self._wakeup.set()

    def dispatch(self) -> int:
        """
        Deliver all available replies on the calling thread.

        Returns:
            Number of replies handled.
        """
        handled = 0
        while True:
            try:
                reply = self._outbox.get_nowait()
            except queue.Empty:
                return handled

            handled += 1
            if reply.kind == STOPPED:
                self._acknowledged = True
                logger.info(f"{self.name} worker acknowledged stop")
                continue
            self._on_reply(reply)

    def stop(self, timeout: float = 5.0) -> bool:
        """
        Ask the worker to stop and wait for its acknowledgement.

        Pending requests are answered with a terminal status and their
        callbacks fire before this returns.

        Args:
            timeout: Seconds to wait for a threaded worker.

        Returns:
            True if the worker acknowledged the stop.
        """
        if self._acknowledged:
            return True

        if not self._stop_requested:
            self._inbox.put(WorkerMessage(kind=STOP))
            self._wakeup.set()
            self._stop_requested = True

        if self._thread is not None:
            self._thread.join(timeout)
            if self._thread.is_alive():
                logger.error(f"{self.name} worker did not stop within {timeout}s")
        else:
            while not self._halted.is_set():
                self.step()

        self.dispatch()
        return self._acknowledged

    # ------------------------------------------------------------------
    # Worker side
    # ------------------------------------------------------------------

    def step(self) -> bool:
        """
        Run one worker iteration: handle the inbox, then one unit of work.

        Returns:
            True if anything was done.
        """
        if self._halted.is_set():
            return False

        did_work = False
        while True:
            try:
                message = self._inbox.get_nowait()
            except queue.Empty:
                break

            did_work = True
            if message.kind == STOP:
                self._shutdown()
                self._halted.set()
                self._outbox.put(WorkerReply(kind=STOPPED))
                return True
            self._handle_message(message)

        return self._work() or did_work

    def _run(self) -> None:
        while not self._halted.is_set():
            try:
                did_work = self.step()
            except Exception:
                # Per-request failures are answered inside the subclass;
                # anything reaching here is a bug in the loop itself
                logger.exception(f"{self.name} worker iteration failed")
                did_work = False
            if not did_work:
                self._wakeup.wait(self.idle_wait_seconds)
                self._wakeup.clear()

    def _reply(self, reply: WorkerReply) -> None:
        self._outbox.put(reply)

    @abstractmethod
    def _handle_message(self, message: WorkerMessage) -> None:
        """Apply one inbox message on the worker side."""

    def _work(self) -> bool:
        return False

    def _shutdown(self) -> None:
        pass

    @abstractmethod
    def _on_reply(self, reply: WorkerReply) -> None:
        """Handle one reply on the client side."""

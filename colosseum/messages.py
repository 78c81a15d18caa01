"""
Message envelopes shared by the worker services.

The simulation domain never blocks on a worker. Requests go into the
worker's inbox as ``WorkerMessage`` objects; replies come back through an
outbox as ``WorkerReply`` objects and are matched to the caller's callback
by request id, on the caller's own thread, via ``CallbackTable``.
"""
import itertools
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Optional

from .exceptions import DuplicateCompletion


class ReplyStatus(str, Enum):
    """Terminal status of a worker request."""

    DONE = 'done'
    SUPERSEDED = 'superseded'
    FAILED = 'failed'
    STOPPED = 'stopped'


@dataclass
class WorkerMessage:
    """A request posted to a worker's inbox."""

    kind: str
    request_id: Optional[str] = None
    agent_id: Optional[str] = None
    payload: Any = None


@dataclass
class WorkerReply:
    """A reply posted by a worker to its outbox."""

    kind: str
    request_id: Optional[str] = None
    agent_id: Optional[str] = None
    status: ReplyStatus = ReplyStatus.DONE
    payload: Any = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status == ReplyStatus.DONE


class RequestIds:
    """
    Monotonic, thread-safe request id generator.

    Ids are ``"<prefix>-<n>"`` with ``n`` strictly increasing, so two
    requests issued in the same millisecond can never collide.
    """

    def __init__(self, prefix: str, start: int = 1):
        self.prefix = prefix
        self._counter = itertools.count(start)
        self._lock = threading.Lock()

    def next(self) -> str:
        with self._lock:
            n = next(self._counter)
        return f"{self.prefix}-{n:06d}"


class CallbackTable:
    """
    Pending callbacks keyed by request id.

    Each callback can be resolved exactly once; a second resolution for the
    same id raises ``DuplicateCompletion``.
    """

    def __init__(self, kind: str = 'reply'):
        self.kind = kind
        self._callbacks: Dict[str, Callable[..., Any]] = {}

    def add(self, request_id: str, callback: Callable[..., Any]) -> None:
        if request_id in self._callbacks:
            raise DuplicateCompletion(request_id, kind=f"{self.kind} request")
        self._callbacks[request_id] = callback

    def pop(self, request_id: str) -> Callable[..., Any]:
        """
        Remove and return the callback for a request.

        Raises:
            DuplicateCompletion: If the request is unknown or already resolved.
        """
        try:
            return self._callbacks.pop(request_id)
        except KeyError:
            raise DuplicateCompletion(request_id, kind=self.kind) from None

    def __contains__(self, request_id: str) -> bool:
        return request_id in self._callbacks

    def __len__(self) -> int:
        return len(self._callbacks)

    def clear(self) -> None:
        self._callbacks.clear()

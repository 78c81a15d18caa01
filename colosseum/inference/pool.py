"""
Inference pool: rate-limited policy evaluation off the simulation thread.

The pool keeps one snapshot of each live agent's policy on the worker side
and answers prediction requests through callbacks, never by return value.

- An agent's policy must be registered before its first prediction; the
  policy crosses the boundary in its transferable form.
- Each agent gets at most one inference per throttle interval. A newer
  request replaces the pending one, which is answered ``SUPERSEDED``;
  requests are never queued without bound.
- Snapshots idle longer than the eviction window are disposed and reported
  as evicted, so callers re-register on their next tick.
"""
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from ..exceptions import DuplicateCompletion, ObservationEncodingError, UnknownAgent, WorkerStopped
from ..messages import CallbackTable, ReplyStatus, RequestIds, WorkerMessage, WorkerReply
from ..networks.policy import BasePolicy, policy_from_transferable
from ..workers import WorkerService

logger = logging.getLogger(__name__)


@dataclass
class ModelSnapshot:
    """Worker-side copy of one agent's policy."""
    agent_id: str
    policy: BasePolicy
    last_used: float
    last_dispatch: Optional[float] = None


@dataclass
class InferenceResult:
    """Outcome of one prediction request, delivered to its callback."""
    request_id: str
    agent_id: str
    status: ReplyStatus
    action: Optional[List[float]] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status == ReplyStatus.DONE


InferenceCallback = Callable[[InferenceResult], None]


class InferencePool(WorkerService):
    """
    Bounded-concurrency prediction service.

    Example:
        pool = InferencePool(throttle_ms=100, idle_eviction_ms=25000)
        pool.start()
        pool.register('agent_00001', policy)
        pool.predict('agent_00001', observation, on_action)
        ...
        pool.dispatch()  # on the simulation thread, once per tick
        pool.stop()
    """

    def __init__(
        self,
        throttle_ms: float = 100.0,
        idle_eviction_ms: float = 25_000.0,
        clock: Callable[[], float] = time.monotonic,
        loader: Callable[[Dict[str, Any]], BasePolicy] = policy_from_transferable,
    ):
        """
        Initialize the pool.

        Args:
            throttle_ms: Minimum interval between two inferences of one agent.
            idle_eviction_ms: Idle time after which a snapshot is evicted.
            clock: Time source in seconds.
            loader: Rebuilds a policy from its transferable form.
        """
        super().__init__(name='inference')
        self.throttle = throttle_ms / 1000.0
        self.idle_eviction = idle_eviction_ms / 1000.0
        self.clock = clock
        self.loader = loader

        # Client side (simulation thread)
        self._registered: Dict[str, int] = {}
        self._callbacks = CallbackTable(kind='inference reply')
        self._request_ids = RequestIds('infer')
        self._completed = 0
        self._speed_window_start = clock()

        # Worker side
        self._models: Dict[str, ModelSnapshot] = {}
        self._pending: Dict[str, Tuple[str, List[float]]] = {}
        self.inference_calls = 0

    # ------------------------------------------------------------------
    # Client side
    # ------------------------------------------------------------------

    def register(self, agent_id: str, policy: BasePolicy) -> None:
        """
        Upload an agent's policy to the worker.

        Re-registering replaces the worker's snapshot.
        """
        if self._stop_requested:
            raise WorkerStopped("inference pool has been stopped")

        self.post(WorkerMessage(
            kind='register',
            agent_id=agent_id,
            payload=policy.to_transferable(),
        ))
        self._registered[agent_id] = policy.input_size
        logger.debug(f"Registered policy for {agent_id}")

    def is_registered(self, agent_id: str) -> bool:
        return agent_id in self._registered

    def release(self, agent_id: str) -> None:
        """Drop an agent's snapshot; pending requests are superseded."""
        if self._registered.pop(agent_id, None) is None:
            return
        if not self._stop_requested:
            self.post(WorkerMessage(kind='release', agent_id=agent_id))

    def predict(
        self,
        agent_id: str,
        observation: Sequence[float],
        callback: InferenceCallback,
    ) -> str:
        """
        Request an action for an observation.

        Args:
            agent_id: Registered agent.
            observation: Encoded observation.
            callback: Called with an ``InferenceResult`` during ``dispatch()``.

        Returns:
            The request id.

        Raises:
            WorkerStopped: If the pool has been stopped.
            UnknownAgent: If the agent is not registered.
            ObservationEncodingError: If the observation length is wrong.
        """
        if self._stop_requested:
            raise WorkerStopped("inference pool has been stopped")
        if agent_id not in self._registered:
            raise UnknownAgent(agent_id)

        expected = self._registered[agent_id]
        if len(observation) != expected:
            raise ObservationEncodingError(
                f"Observation for {agent_id} has {len(observation)} values, expected {expected}",
                agent_id=agent_id,
                expected=expected,
                actual=len(observation),
            )

        request_id = self._request_ids.next()
        self._callbacks.add(request_id, callback)
        self.post(WorkerMessage(
            kind='predict',
            request_id=request_id,
            agent_id=agent_id,
            payload=list(observation),
        ))
        return request_id

    def _on_reply(self, reply: WorkerReply) -> None:
        if reply.kind == 'evicted':
            for agent_id in reply.payload:
                self._registered.pop(agent_id, None)
            logger.info(f"Evicted idle models: {reply.payload}")
            return

        if reply.kind == 'registration':
            logger.error(f"Registration failed for {reply.agent_id}: {reply.error}")
            return

        try:
            callback = self._callbacks.pop(reply.request_id)
        except DuplicateCompletion as e:
            logger.warning(f"Ignoring reply: {e}")
            return

        if reply.status == ReplyStatus.DONE:
            self._completed += 1
        elif reply.status == ReplyStatus.FAILED:
            logger.warning(f"Inference {reply.request_id} for {reply.agent_id} failed: {reply.error}")

        callback(InferenceResult(
            request_id=reply.request_id,
            agent_id=reply.agent_id,
            status=reply.status,
            action=reply.payload,
            error=reply.error,
        ))

    @property
    def pending_requests(self) -> int:
        """Requests awaiting a reply on the client side."""
        return len(self._callbacks)

    def inferences_per_second(self) -> float:
        """Completed inferences per second since the previous call."""
        now = self.clock()
        elapsed = now - self._speed_window_start
        speed = self._completed / elapsed if elapsed > 0 else 0.0
        self._completed = 0
        self._speed_window_start = now
        return speed

    def stats(self) -> Dict[str, Any]:
        return {
            'registered': len(self._registered),
            'pending_requests': len(self._callbacks),
            'inference_calls': self.inference_calls,
            'stopped': self.stopped,
        }

    # ------------------------------------------------------------------
    # Worker side
    # ------------------------------------------------------------------

    def _handle_message(self, message: WorkerMessage) -> None:
        if message.kind == 'register':
            self._load_model(message.agent_id, message.payload)
        elif message.kind == 'release':
            self._drop_model(message.agent_id)
        elif message.kind == 'predict':
            previous = self._pending.get(message.agent_id)
            if previous is not None:
                self._answer(previous[0], message.agent_id, ReplyStatus.SUPERSEDED)
            self._pending[message.agent_id] = (message.request_id, message.payload)
        else:
            logger.error(f"Unknown inference message: {message.kind}")

    def _load_model(self, agent_id: str, transferable: Dict[str, Any]) -> None:
        try:
            policy = self.loader(transferable)
        except Exception as e:
            logger.error(f"Could not load policy for {agent_id}: {e}")
            self._reply(WorkerReply(
                kind='registration',
                agent_id=agent_id,
                status=ReplyStatus.FAILED,
                error=str(e),
            ))
            return

        old = self._models.get(agent_id)
        if old is not None:
            old.policy.dispose()
        self._models[agent_id] = ModelSnapshot(
            agent_id=agent_id,
            policy=policy,
            last_used=self.clock(),
        )

    def _drop_model(self, agent_id: str) -> None:
        snapshot = self._models.pop(agent_id, None)
        if snapshot is not None:
            snapshot.policy.dispose()
        pending = self._pending.pop(agent_id, None)
        if pending is not None:
            self._answer(pending[0], agent_id, ReplyStatus.SUPERSEDED)

    def _answer(
        self,
        request_id: str,
        agent_id: str,
        status: ReplyStatus,
        action: Optional[List[float]] = None,
        error: Optional[str] = None,
    ) -> None:
        self._reply(WorkerReply(
            kind='prediction',
            request_id=request_id,
            agent_id=agent_id,
            status=status,
            payload=action,
            error=error,
        ))

    def _next_task(self, now: float) -> Optional[str]:
        """Pick the ready agent that has waited longest since its last inference."""
        best_agent = None
        best_time = None
        for agent_id in self._pending:
            snapshot = self._models.get(agent_id)
            if snapshot is None:
                # Answered as failed by the caller
                return agent_id
            if snapshot.last_dispatch is not None and now - snapshot.last_dispatch < self.throttle:
                continue
            last = snapshot.last_dispatch if snapshot.last_dispatch is not None else float('-inf')
            if best_time is None or last < best_time:
                best_agent = agent_id
                best_time = last
        return best_agent

    def _work(self) -> bool:
        now = self.clock()
        did_work = False

        agent_id = self._next_task(now)
        if agent_id is not None:
            did_work = True
            request_id, observation = self._pending.pop(agent_id)
            snapshot = self._models.get(agent_id)
            if snapshot is None:
                self._answer(request_id, agent_id, ReplyStatus.FAILED, error=f"Unknown agent: {agent_id}")
            else:
                snapshot.last_dispatch = now
                try:
                    action = snapshot.policy.predict(observation)
                except Exception as e:
                    self._answer(request_id, agent_id, ReplyStatus.FAILED, error=str(e))
                else:
                    self.inference_calls += 1
                    snapshot.last_used = now
                    self._answer(request_id, agent_id, ReplyStatus.DONE, action=list(action))

        return self._evict_idle(now) or did_work

    def _evict_idle(self, now: float) -> bool:
        outdated = [
            agent_id for agent_id, snapshot in self._models.items()
            if now - snapshot.last_used > self.idle_eviction
        ]
        if not outdated:
            return False

        for agent_id in outdated:
            self._drop_model(agent_id)
        self._reply(WorkerReply(kind='evicted', payload=outdated))
        return True

    def _shutdown(self) -> None:
        for agent_id, (request_id, _) in list(self._pending.items()):
            self._answer(request_id, agent_id, ReplyStatus.STOPPED)
        self._pending.clear()

        disposed = list(self._models.keys())
        for snapshot in self._models.values():
            snapshot.policy.dispose()
        self._models.clear()
        if disposed:
            self._reply(WorkerReply(kind='evicted', payload=disposed))
        logger.info(f"Inference pool stopped, disposed {len(disposed)} models")

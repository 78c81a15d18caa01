"""
Asynchronous fine-tuning service.

The trainer shares one loop between two duties:

1. background critic improvement from the current replay dataset, and
2. fine-tuning queued fighters against that critic.

Fine-tunes always take priority: a critic step only runs when no fighter
is being refined and none is waiting. Each fine-tune runs a fixed number
of actor steps and is then returned to its caller, keyed by request id,
exactly once.

When training is disabled ``refine`` is a pass-through: the callback
fires immediately with the unmodified policy.
"""
import logging
from collections import deque
from dataclasses import dataclass
from typing import Any, Callable, Deque, Dict, Optional, Tuple

from ..exceptions import DuplicateCompletion, WorkerStopped
from ..messages import CallbackTable, ReplyStatus, RequestIds, WorkerMessage, WorkerReply
from ..networks.policy import BasePolicy, policy_from_transferable
from ..workers import WorkerService
from .actor import ActorLearner
from .critic import CriticLearner
from .replay import ReplayStore

logger = logging.getLogger(__name__)


@dataclass
class RefineResult:
    """Outcome of one fine-tune, delivered to its callback."""
    request_id: str
    policy: BasePolicy
    status: ReplyStatus = ReplyStatus.DONE
    steps: int = 0
    error: Optional[str] = None

    @property
    def refined(self) -> bool:
        """True if the returned policy went through at least one actor step."""
        return self.status == ReplyStatus.DONE and self.steps > 0


RefineCallback = Callable[[RefineResult], None]


@dataclass
class _FineTune:
    request_id: str
    policy: BasePolicy
    learner: ActorLearner
    steps: int = 0


class Trainer(WorkerService):
    """
    Critic training and per-fighter policy refinement.

    Example:
        trainer = Trainer(trainable=True, steps_per_agent=100)
        trainer.start()
        trainer.next_epoch(replay)
        trainer.refine(policy, on_refined)
        ...
        trainer.dispatch()  # on the simulation thread
        trainer.stop()
    """

    def __init__(
        self,
        trainable: bool = False,
        observation_size: int = 240,
        action_size: int = 11,
        hidden_layers: int = 4,
        hidden_units: int = 164,
        batch_size: int = 32,
        steps_per_agent: int = 100,
        critic_tau: float = 0.001,
        discount: float = 0.99,
        actor_learning_rate: float = 1e-4,
        critic_learning_rate: float = 1e-4,
        loader: Callable[[Dict[str, Any]], BasePolicy] = policy_from_transferable,
        seed: Optional[int] = None,
    ):
        """
        Initialize the trainer.

        Args:
            trainable: Gates real training; when False, refine is a pass-through.
            observation_size: State vector length for the critic.
            action_size: Action vector length for the critic.
            hidden_layers: Critic hidden layers.
            hidden_units: Critic hidden width.
            batch_size: Samples per critic or actor step.
            steps_per_agent: Actor steps per fine-tune.
            critic_tau: Target critic blending factor.
            discount: Bootstrap discount for the critic.
            actor_learning_rate: Adam learning rate for fine-tunes.
            critic_learning_rate: Adam learning rate for the critic.
            loader: Rebuilds a policy from its transferable form.
            seed: Seed for replay sampling on the worker side.
        """
        super().__init__(name='trainer')
        self.trainable = trainable
        self.observation_size = observation_size
        self.action_size = action_size
        self.hidden_layers = hidden_layers
        self.hidden_units = hidden_units
        self.batch_size = batch_size
        self.steps_per_agent = steps_per_agent
        self.critic_tau = critic_tau
        self.discount = discount
        self.actor_learning_rate = actor_learning_rate
        self.critic_learning_rate = critic_learning_rate
        self.loader = loader
        self.seed = seed

        # Client side
        self._callbacks = CallbackTable(kind='fine-tune result')
        self._originals: Dict[str, BasePolicy] = {}
        self._request_ids = RequestIds('refine')

        # Worker side
        self._dataset: Optional[ReplayStore] = None
        self._queue: Deque[Tuple[str, Dict[str, Any]]] = deque()
        self._active: Optional[_FineTune] = None
        self._critic: Optional[CriticLearner] = None
        self.finetunes_completed = 0

    @classmethod
    def from_config(cls, config, loader=policy_from_transferable) -> 'Trainer':
        """Build a trainer from a ``ColosseumConfig``."""
        return cls(
            trainable=config.trainable,
            observation_size=config.observation_size,
            action_size=config.action_size,
            hidden_layers=config.hidden_layers,
            hidden_units=config.hidden_units,
            batch_size=config.trainer_batch_size,
            steps_per_agent=config.trainer_steps_per_agent,
            critic_tau=config.critic_tau,
            discount=config.discount_factor,
            actor_learning_rate=config.actor_learning_rate,
            critic_learning_rate=config.critic_learning_rate,
            loader=loader,
            seed=config.seed,
        )

    # ------------------------------------------------------------------
    # Client side
    # ------------------------------------------------------------------

    def refine(
        self,
        policy: BasePolicy,
        callback: RefineCallback,
        request_id: Optional[str] = None,
    ) -> str:
        """
        Fine-tune a policy against the critic.

        The caller keeps ownership of ``policy`` until the result arrives.
        On success the original is disposed and the refined copy is
        returned; on failure the original itself is returned.

        Args:
            policy: Policy to refine.
            callback: Called with a ``RefineResult``.
            request_id: Optional caller-chosen id; generated when omitted.

        Returns:
            The request id.

        Raises:
            WorkerStopped: If training is enabled and the trainer has stopped.
            DuplicateCompletion: If ``request_id`` is already in flight.
        """
        request_id = request_id or self._request_ids.next()

        if not self.trainable:
            callback(RefineResult(request_id=request_id, policy=policy))
            return request_id

        if self._stop_requested:
            raise WorkerStopped("trainer has been stopped")

        self._callbacks.add(request_id, callback)
        self._originals[request_id] = policy
        self.post(WorkerMessage(
            kind='refine',
            request_id=request_id,
            payload=policy.to_transferable(),
        ))
        logger.debug(f"Queued fine-tune {request_id}")
        return request_id

    def next_epoch(self, replay: ReplayStore) -> None:
        """Hand the worker a fresh snapshot of the replay dataset."""
        if not self.trainable:
            return
        self.post(WorkerMessage(kind='dataset', payload=replay.raw()))
        logger.info(f"Shipped {len(replay)} replay samples to trainer")

    @property
    def pending_refines(self) -> int:
        return len(self._callbacks)

    def _on_reply(self, reply: WorkerReply) -> None:
        try:
            callback = self._callbacks.pop(reply.request_id)
        except DuplicateCompletion as e:
            logger.warning(f"Ignoring reply: {e}")
            return

        original = self._originals.pop(reply.request_id)
        steps = 0
        error = reply.error
        policy = original
        status = reply.status

        if reply.status == ReplyStatus.DONE:
            steps = reply.payload['steps']
            try:
                policy = self.loader(reply.payload['policy'])
            except Exception as e:
                logger.error(f"Could not load refined policy {reply.request_id}: {e}")
                policy = original
                status = ReplyStatus.FAILED
                error = str(e)
                steps = 0
            else:
                original.dispose()
        elif reply.status == ReplyStatus.FAILED:
            logger.warning(f"Fine-tune {reply.request_id} failed, keeping unrefined policy: {error}")

        callback(RefineResult(
            request_id=reply.request_id,
            policy=policy,
            status=status,
            steps=steps,
            error=error,
        ))

    def stats(self) -> Dict[str, Any]:
        critic_stats = self._critic.get_stats() if self._critic is not None else {}
        return {
            'trainable': self.trainable,
            'pending_refines': len(self._callbacks),
            'finetunes_completed': self.finetunes_completed,
            'dataset_size': len(self._dataset) if self._dataset is not None else 0,
            'critic_updates': critic_stats.get('updates', 0),
            'critic_loss': critic_stats.get('avg_loss', 0.0),
        }

    # ------------------------------------------------------------------
    # Worker side
    # ------------------------------------------------------------------

    @property
    def critic(self) -> CriticLearner:
        if self._critic is None:
            self._critic = CriticLearner(
                observation_size=self.observation_size,
                action_size=self.action_size,
                hidden_layers=self.hidden_layers,
                hidden_units=self.hidden_units,
                learning_rate=self.critic_learning_rate,
                tau=self.critic_tau,
                discount=self.discount,
            )
        return self._critic

    def _handle_message(self, message: WorkerMessage) -> None:
        if message.kind == 'dataset':
            self._dataset = ReplayStore.from_raw(message.payload, seed=self.seed)
            logger.debug(f"Trainer dataset replaced ({len(self._dataset)} samples)")
        elif message.kind == 'refine':
            self._queue.append((message.request_id, message.payload))
        else:
            logger.error(f"Unknown trainer message: {message.kind}")

    def _has_data(self) -> bool:
        return self._dataset is not None and len(self._dataset) > 0

    def _work(self) -> bool:
        if self._active is not None:
            self._actor_step()
            return True

        if self._queue:
            self._begin_fine_tune(*self._queue.popleft())
            return True

        if self._has_data():
            self._critic_step()
            return True

        return False

    def _begin_fine_tune(self, request_id: str, transferable: Dict[str, Any]) -> None:
        if not self._has_data() or self.steps_per_agent <= 0:
            # Nothing to learn from; hand the policy straight back
            self._finish(request_id, transferable, steps=0)
            return

        try:
            policy = self.loader(transferable)
            learner = ActorLearner(policy, learning_rate=self.actor_learning_rate)
        except Exception as e:
            logger.error(f"Could not start fine-tune {request_id}: {e}")
            self._fail(request_id, str(e))
            return

        self._active = _FineTune(request_id=request_id, policy=policy, learner=learner)

    def _actor_step(self) -> None:
        job = self._active
        try:
            job.learner.fit(self._dataset.sample(self.batch_size), self.critic)
            job.steps += 1
            if job.steps < self.steps_per_agent:
                return
            transferable = job.policy.to_transferable()
        except Exception as e:
            logger.error(f"Fine-tune {job.request_id} failed after {job.steps} steps: {e}")
            self._active = None
            job.policy.dispose()
            self._fail(job.request_id, str(e))
            return

        self._active = None
        job.policy.dispose()
        self._finish(job.request_id, transferable, steps=job.steps)

    def _critic_step(self) -> None:
        try:
            self.critic.fit(self._dataset.sample(self.batch_size))
        except Exception as e:
            # Stop critic work until the next dataset arrives
            logger.error(f"Critic update failed, dropping dataset: {e}")
            self._dataset = None

    def _finish(self, request_id: str, transferable: Dict[str, Any], steps: int) -> None:
        self.finetunes_completed += 1
        self._reply(WorkerReply(
            kind='refined',
            request_id=request_id,
            payload={'policy': transferable, 'steps': steps},
        ))

    def _fail(self, request_id: str, error: str) -> None:
        self._reply(WorkerReply(
            kind='refined',
            request_id=request_id,
            status=ReplyStatus.FAILED,
            error=error,
        ))

    def _shutdown(self) -> None:
        if self._active is not None:
            self._active.policy.dispose()
            self._reply(WorkerReply(
                kind='refined',
                request_id=self._active.request_id,
                status=ReplyStatus.STOPPED,
            ))
            self._active = None

        while self._queue:
            request_id, _ = self._queue.popleft()
            self._reply(WorkerReply(
                kind='refined',
                request_id=request_id,
                status=ReplyStatus.STOPPED,
            ))

        self._dataset = None
        self._critic = None
        logger.info("Trainer stopped")

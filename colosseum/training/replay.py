"""
Replay store for fighter trajectories.

Arenas record one (state, action, score, timestamp) step per agent per
tick under a run id. When a run completes, its steps are converted into
training samples:

- scores become per-step rewards: ``reward[i] = score[i] - score[i-1]``,
  ``reward[0] = 0``
- rewards become discounted returns: ``G[i] = reward[i] + discount * G[i+1]``
- each step is paired with the next one (the last step with itself,
  flagged terminal)

Samples live in a fixed-capacity ring buffer; the oldest are overwritten
once it is full. Raw steps are discarded as soon as their run completes.
"""
import logging
from dataclasses import asdict, dataclass
from typing import Any, Dict, List, Optional, Sequence

import numpy as np

from ..exceptions import InvalidTrajectoryStep

logger = logging.getLogger(__name__)


@dataclass
class TrajectoryStep:
    """One raw step of one agent in one match."""
    run_id: str
    state: Sequence[float]
    action: Sequence[float]
    score: float
    timestamp: float


@dataclass
class TrainingSample:
    """A processed transition, the only unit exposed by the store."""
    state: List[float]
    next_state: List[float]
    action: List[float]
    next_action: List[float]
    reward: float
    terminal: bool


def discounted_returns(rewards: Sequence[float], discount: float) -> List[float]:
    """
    Compute discounted returns with the backward recursion.

    Args:
        rewards: Per-step rewards.
        discount: Decay factor per step.

    Returns:
        ``G`` with ``G[i] = rewards[i] + discount * G[i+1]`` and
        ``G[-1] = rewards[-1]``.
    """
    returns = [0.0] * len(rewards)
    running = 0.0
    for i in range(len(rewards) - 1, -1, -1):
        running = rewards[i] + discount * running
        returns[i] = running
    return returns


class ReplayStore:
    """
    Trajectory accumulator and circular sample buffer.

    Example:
        store = ReplayStore(capacity=10000, discount=0.99)
        store.record('match-1:agent-3', state, action, score=0.0, timestamp=16.0)
        ...
        store.mark_complete('match-1:agent-3')
        batch = store.sample(32)
    """

    def __init__(
        self,
        capacity: int = 10_000,
        discount: float = 0.99,
        seed: Optional[int] = None,
    ):
        """
        Initialize the store.

        Args:
            capacity: Maximum number of training samples kept.
            discount: Discount factor for returns.
            seed: Optional seed for the sampling generator.
        """
        if capacity < 1:
            raise ValueError("capacity must be >= 1")

        self.capacity = capacity
        self.discount = discount
        self._buffer: List[TrainingSample] = []
        self._index = 0
        self._runs: Dict[str, List[TrajectoryStep]] = {}
        self._rng = np.random.default_rng(seed)

        self.completed_runs = 0
        self.discarded_runs = 0

    def record(
        self,
        run_id: str,
        state: Optional[Sequence[float]],
        action: Optional[Sequence[float]],
        score: float,
        timestamp: float,
        done: bool = False,
    ) -> int:
        """
        Append one step to a run's trajectory.

        A ``None`` state or action is only allowed together with ``done``;
        in that case the run's buffered steps are discarded.

        Args:
            run_id: Trajectory identifier.
            state: Observation at this step.
            action: Action applied at this step.
            score: Agent's cumulative score at this step.
            timestamp: Step time, used for ordering.
            done: Complete the run after this step.

        Returns:
            Number of training samples produced (0 unless the run completed).

        Raises:
            InvalidTrajectoryStep: On a missing state or action without ``done``.
        """
        if state is None or action is None:
            if not done:
                raise InvalidTrajectoryStep(
                    f"Run {run_id}: state and action are required for non-terminal steps"
                )
            self.discard(run_id)
            return 0

        steps = self._runs.setdefault(run_id, [])
        steps.append(TrajectoryStep(
            run_id=run_id,
            state=list(state),
            action=list(action),
            score=float(score),
            timestamp=float(timestamp),
        ))

        if done:
            return self.mark_complete(run_id)
        return 0

    def discard(self, run_id: str) -> None:
        """Drop a run's buffered steps without producing samples."""
        if self._runs.pop(run_id, None) is not None:
            self.discarded_runs += 1
            logger.debug(f"Discarded run {run_id}")

    def mark_complete(self, run_id: str, terminal_score: Optional[float] = None) -> int:
        """
        Convert a finished run into training samples.

        Args:
            run_id: Trajectory identifier.
            terminal_score: Optional final score replacing the last step's score.

        Returns:
            Number of samples inserted (one per step).
        """
        steps = self._runs.pop(run_id, None)
        if not steps:
            return 0

        # Stable sort keeps insertion order for equal timestamps
        steps.sort(key=lambda step: step.timestamp)

        scores = [step.score for step in steps]
        if terminal_score is not None:
            scores[-1] = float(terminal_score)

        rewards = [0.0] + [scores[i] - scores[i - 1] for i in range(1, len(scores))]
        returns = discounted_returns(rewards, self.discount)

        last = len(steps) - 1
        for i, step in enumerate(steps):
            following = steps[min(i + 1, last)]
            self._add(TrainingSample(
                state=list(step.state),
                next_state=list(following.state),
                action=list(step.action),
                next_action=list(following.action),
                reward=returns[i],
                terminal=(i == last),
            ))

        self.completed_runs += 1
        return len(steps)

    def _add(self, sample: TrainingSample) -> None:
        if len(self._buffer) < self.capacity:
            self._buffer.append(sample)
            return
        # Replace the oldest sample
        self._buffer[self._index] = sample
        self._index = (self._index + 1) % self.capacity

    def sample(self, n: int) -> Dict[str, np.ndarray]:
        """
        Draw ``n`` samples uniformly at random with replacement.

        Returns:
            Parallel arrays keyed ``state``, ``next_state``, ``action``,
            ``next_action`` (shape ``(n, dim)``), ``reward`` and ``terminal``
            (shape ``(n,)``).

        Raises:
            ValueError: If the store is empty or ``n`` is below 1.
        """
        if n < 1:
            raise ValueError(f"Sample size must be at least 1, got {n}")
        if not self._buffer:
            raise ValueError("Cannot sample from an empty replay store")

        indices = self._rng.integers(0, len(self._buffer), size=n)
        picked = [self._buffer[i] for i in indices]

        return {
            'state': np.asarray([s.state for s in picked], dtype=np.float32),
            'next_state': np.asarray([s.next_state for s in picked], dtype=np.float32),
            'action': np.asarray([s.action for s in picked], dtype=np.float32),
            'next_action': np.asarray([s.next_action for s in picked], dtype=np.float32),
            'reward': np.asarray([s.reward for s in picked], dtype=np.float32),
            'terminal': np.asarray([s.terminal for s in picked], dtype=np.float32),
        }

    def samples(self) -> List[TrainingSample]:
        """Return the buffered samples, oldest first."""
        if len(self._buffer) < self.capacity:
            return list(self._buffer)
        return self._buffer[self._index:] + self._buffer[:self._index]

    def raw(self) -> Dict[str, Any]:
        """
        Return the picklable handoff form for a worker.

        Returns:
            ``{'capacity': int, 'discount': float, 'buffer': [sample dicts]}``
        """
        return {
            'capacity': self.capacity,
            'discount': self.discount,
            'buffer': [asdict(sample) for sample in self.samples()],
        }

    @classmethod
    def from_raw(cls, raw: Dict[str, Any], seed: Optional[int] = None) -> 'ReplayStore':
        """Rebuild a store from ``raw()`` output."""
        store = cls(capacity=raw['capacity'], discount=raw['discount'], seed=seed)
        for item in raw['buffer']:
            store._add(TrainingSample(**item))
        return store

    @property
    def pending_runs(self) -> List[str]:
        """Run ids with buffered, not yet completed steps."""
        return list(self._runs.keys())

    def clear(self) -> None:
        self._buffer = []
        self._index = 0
        self._runs = {}

    def __len__(self) -> int:
        return len(self._buffer)

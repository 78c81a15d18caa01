"""
A single timed match between two agents.

Each tick, for each side:
1. encode an observation through the simulation boundary
2. request the next action from the inference pool (asynchronous)
3. apply the action received for an earlier tick, if any

Actions therefore run one tick behind the observation they answer; the
inference pool replies between ticks.

Scores change only on collisions. When the time limit is reached the
arena finishes exactly once: it records a terminal trajectory step for
each agent, removes both fighters and reports a ``MatchResult``.
"""
import logging
from dataclasses import dataclass
from typing import Callable, List, Optional, Tuple, TYPE_CHECKING

from ..config import ColosseumConfig
from ..exceptions import ObservationEncodingError
from ..inference.pool import InferencePool, InferenceResult
from ..messages import ReplyStatus
from ..training.replay import ReplayStore
from .boundary import CollisionEvent, FighterRef, Simulation
from .results import AgentScore, MatchResult

if TYPE_CHECKING:
    from ..evolution.agent import Agent

logger = logging.getLogger(__name__)


@dataclass
class Corner:
    """Per-agent match state."""
    agent: 'Agent'
    fighter: FighterRef
    score: float = 0.0
    action: Optional[List[float]] = None
    last_state: Optional[List[float]] = None
    last_action: Optional[List[float]] = None
    steps: int = 0


class Arena:
    """
    Runs one match in one slot.

    Example:
        arena = Arena('match-000001', 0, agent_a, agent_b,
                      simulation, pool, replay, config,
                      on_finished=scheduler.on_match_finished)
        arena.on_tick(16.0)
        arena.on_collision(event)
    """

    def __init__(
        self,
        match_id: str,
        slot_index: int,
        agent_a: 'Agent',
        agent_b: 'Agent',
        simulation: Simulation,
        inference: InferencePool,
        replay: ReplayStore,
        config: ColosseumConfig,
        on_finished: Callable[[MatchResult], None],
        on_score_update: Optional[Callable[[int, float, float], None]] = None,
    ):
        self.match_id = match_id
        self.slot_index = slot_index
        self.simulation = simulation
        self.inference = inference
        self.replay = replay
        self.config = config
        self.on_finished = on_finished
        self.on_score_update = on_score_update

        self.elapsed_ms = 0.0
        self.paused = False
        self.result: Optional[MatchResult] = None

        self.corners = [
            Corner(agent=agent_a, fighter=simulation.spawn_fighter(slot_index, 0)),
            Corner(agent=agent_b, fighter=simulation.spawn_fighter(slot_index, 1)),
        ]
        for corner in self.corners:
            self.inference.register(corner.agent.id, corner.agent.policy)

        logger.info(f"{match_id}: {agent_a.id} vs {agent_b.id} in slot {slot_index}")

    @property
    def finished(self) -> bool:
        return self.result is not None

    @property
    def agents(self) -> List['Agent']:
        return [corner.agent for corner in self.corners]

    @property
    def scores(self) -> Tuple[float, float]:
        return self.corners[0].score, self.corners[1].score

    def run_id(self, corner: Corner) -> str:
        """Trajectory id of one agent in this match."""
        return f"{self.match_id}:{corner.agent.id}"

    def pause(self) -> None:
        self.paused = True

    def resume(self) -> None:
        self.paused = False

    # ------------------------------------------------------------------
    # Ticks
    # ------------------------------------------------------------------

    def on_tick(self, delta_ms: float) -> None:
        """
        Advance the match by one frame.

        Raises:
            ObservationEncodingError: On a wrong observation or action length.
            UnknownAgent: If the pool lost an agent's registration.
        """
        if self.finished or self.paused:
            return

        self.elapsed_ms += delta_ms
        if self.elapsed_ms >= self.config.time_limit_ms:
            self.finish()
            return

        for corner in self.corners:
            self._process(corner)

    def _process(self, corner: Corner) -> None:
        agent_id = corner.agent.id

        # Evicted snapshots are forgotten by the pool; upload again
        if not self.inference.is_registered(agent_id):
            logger.debug(f"{self.match_id}: re-registering {agent_id}")
            self.inference.register(agent_id, corner.agent.policy)

        state = list(self.simulation.encode_observation(corner.fighter))
        if len(state) != self.config.observation_size:
            raise ObservationEncodingError(
                f"Observation for {agent_id} has {len(state)} values, "
                f"expected {self.config.observation_size}",
                agent_id=agent_id,
                expected=self.config.observation_size,
                actual=len(state),
            )

        self.inference.predict(agent_id, state, lambda result: self._on_action(corner, result))

        action = corner.action
        if action is None:
            return

        if len(action) != self.config.action_size:
            raise ObservationEncodingError(
                f"Action for {agent_id} has {len(action)} values, "
                f"expected {self.config.action_size}",
                agent_id=agent_id,
                expected=self.config.action_size,
                actual=len(action),
            )

        for part_index, value in enumerate(action):
            force = (value * self.config.max_force, 0.0, 0.0)
            self.simulation.apply_action(corner.fighter, part_index, force)

        self.replay.record(self.run_id(corner), state, action, corner.score, self.elapsed_ms)
        corner.last_state = state
        corner.last_action = action
        corner.steps += 1

    def _on_action(self, corner: Corner, result: InferenceResult) -> None:
        if self.finished:
            return

        if result.ok:
            corner.action = result.action
        elif result.status == ReplyStatus.FAILED:
            self.abort(result.error or 'inference failed', agent_id=corner.agent.id)

    # ------------------------------------------------------------------
    # Collisions
    # ------------------------------------------------------------------

    def _owner(self, body_id) -> Optional[Corner]:
        for corner in self.corners:
            if body_id in corner.fighter.body_ids:
                return corner
        return None

    def on_collision(self, event: CollisionEvent) -> None:
        """
        Score a contact between two bodies.

        Only a strictly faster impactor scores. The hit agent gets a small
        height reward and loses the collision score; the impactor gains it,
        or pays the off-target penalty if it hit a non-agent body.
        """
        if self.finished or self.paused:
            return

        hitter = self._owner(event.body_id)
        hit = self._owner(event.target_id)

        if hitter is None and hit is None:
            return
        if hitter is hit:
            return
        if event.body_speed <= event.target_speed:
            return

        if event.distance is None:
            score = event.relative_speed
        else:
            score = event.relative_speed - event.distance
        score = max(0.0, score)

        if hit is not None:
            hit.score += self.config.height_reward_factor * (event.target_height or 0.0)
            hit.score -= score

        if hitter is not None:
            if hit is not None:
                hitter.score += score
            else:
                hitter.score -= self.config.off_target_penalty_fraction * self.config.collision_penalty

        if self.on_score_update is not None:
            self.on_score_update(self.slot_index, self.corners[0].score, self.corners[1].score)

    # ------------------------------------------------------------------
    # Completion
    # ------------------------------------------------------------------

    def finish(self) -> MatchResult:
        """
        End the match. Idempotent: later calls return the same result.
        """
        if self.result is not None:
            return self.result

        for corner in self.corners:
            self.replay.record(
                self.run_id(corner),
                corner.last_state,
                corner.last_action,
                corner.score,
                self.elapsed_ms,
                done=True,
            )

        return self._complete(failed=False)

    def abort(self, error, agent_id: Optional[str] = None) -> MatchResult:
        """
        End the match after a fatal error.

        The offending agent's score is degraded to 0.0, or both agents'
        scores when the culprit is unknown. Trajectories are discarded.
        """
        if self.result is not None:
            return self.result

        logger.error(f"{self.match_id} aborted ({agent_id or 'both agents'}): {error}")
        for corner in self.corners:
            if agent_id is None or corner.agent.id == agent_id:
                corner.score = 0.0
            self.replay.discard(self.run_id(corner))

        return self._complete(failed=True, error=str(error))

    def _complete(self, failed: bool, error: Optional[str] = None) -> MatchResult:
        a, b = self.corners
        self.result = MatchResult(
            match_id=self.match_id,
            slot_index=self.slot_index,
            agent_a=AgentScore(agent_id=a.agent.id, score=a.score),
            agent_b=AgentScore(agent_id=b.agent.id, score=b.score),
            failed=failed,
            error=error,
            elapsed_ms=self.elapsed_ms,
        )

        for corner in self.corners:
            self.simulation.remove_fighter(corner.fighter)
            self.inference.release(corner.agent.id)

        logger.info(
            f"{self.match_id} finished: {a.agent.id}={a.score:.2f}, {b.agent.id}={b.score:.2f}"
        )
        self.on_finished(self.result)
        return self.result

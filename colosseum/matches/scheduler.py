"""
Match scheduling over a fixed number of arena slots.

Agents wait in a FIFO queue. Whenever a slot is free and at least two
agents are waiting, the first two are paired into a new ``Arena`` in that
slot. Fewer than two waiting agents is a normal state: an odd agent simply
waits for the next submission.

When a match finishes its slot is freed, each agent's completion callback
is called exactly once with that agent's own score, and the queue is
checked again.
"""
import logging
from collections import deque
from dataclasses import dataclass
from typing import Callable, Deque, List, Optional, Set, Tuple, TYPE_CHECKING

from ..config import ColosseumConfig
from ..exceptions import ColosseumError, DuplicateCompletion, InvalidAgent
from ..inference.pool import InferencePool
from ..messages import RequestIds
from ..training.replay import ReplayStore
from .arena import Arena
from .boundary import CollisionEvent, Simulation
from .results import MatchResult

if TYPE_CHECKING:
    from ..evolution.agent import Agent

logger = logging.getLogger(__name__)


@dataclass
class MatchSlot:
    """One arena position; holds at most one running match."""
    index: int
    occupant: Optional[Arena] = None

    @property
    def free(self) -> bool:
        return self.occupant is None


class Colosseum:
    """
    Pairs queued agents into matches across ``total_arenas`` slots.

    Example:
        colosseum = Colosseum(simulation, pool, replay, config)
        colosseum.submit(agent_a)
        colosseum.submit(agent_b)   # starts a match in slot 0
        colosseum.on_tick(16.0)
    """

    def __init__(
        self,
        simulation: Simulation,
        inference: InferencePool,
        replay: ReplayStore,
        config: ColosseumConfig,
        on_result: Optional[Callable[[MatchResult], None]] = None,
        on_score_update: Optional[Callable[[int, float, float], None]] = None,
    ):
        """
        Initialize the scheduler.

        Args:
            simulation: Physics boundary shared by all arenas.
            inference: Prediction service shared by all arenas.
            replay: Trajectory store shared by all arenas.
            config: Run configuration (``total_arenas`` and arena options).
            on_result: Optional listener for every finished match.
            on_score_update: Optional listener for live score changes.
        """
        self.simulation = simulation
        self.inference = inference
        self.replay = replay
        self.config = config
        self.on_result = on_result
        self.on_score_update = on_score_update

        self.slots = [MatchSlot(index=i) for i in range(config.total_arenas)]
        self._queue: Deque['Agent'] = deque()
        self._busy: Set[str] = set()
        self._match_ids = RequestIds('match')
        self.paused = False

        self.matches_started = 0
        self.matches_finished = 0
        self.matches_failed = 0

    # ------------------------------------------------------------------
    # Queue
    # ------------------------------------------------------------------

    def submit(self, agent: 'Agent') -> None:
        """
        Queue an agent for evaluation.

        Raises:
            InvalidAgent: If the agent has no completion callback, or is
                already queued or fighting.
        """
        if agent.callback is None:
            raise InvalidAgent(f"Agent {agent.id} has no completion callback")
        if agent.id in self._busy:
            raise InvalidAgent(f"Agent {agent.id} is already queued or in a match")

        self._queue.append(agent)
        self._busy.add(agent.id)
        logger.debug(f"Queued {agent.id} ({len(self._queue)} waiting)")
        self.try_assign()

    def try_assign(self) -> int:
        """
        Start matches while a slot is free and two agents are waiting.

        Returns:
            Number of matches started.
        """
        started = 0
        while len(self._queue) >= 2:
            slot = self._free_slot()
            if slot is None:
                break

            agent_a = self._queue.popleft()
            agent_b = self._queue.popleft()
            slot.occupant = Arena(
                match_id=self._match_ids.next(),
                slot_index=slot.index,
                agent_a=agent_a,
                agent_b=agent_b,
                simulation=self.simulation,
                inference=self.inference,
                replay=self.replay,
                config=self.config,
                on_finished=self.on_match_finished,
                on_score_update=self.on_score_update,
            )
            if self.paused:
                slot.occupant.pause()
            self.matches_started += 1
            started += 1
        return started

    def _free_slot(self) -> Optional[MatchSlot]:
        for slot in self.slots:
            if slot.free:
                return slot
        return None

    # ------------------------------------------------------------------
    # Completion
    # ------------------------------------------------------------------

    def on_match_finished(self, result: MatchResult) -> bool:
        """
        Free the slot and report both scores.

        Returns:
            False if the result was rejected as a duplicate.
        """
        slot = self.slots[result.slot_index]
        arena = slot.occupant
        if arena is None or arena.match_id != result.match_id:
            logger.warning(str(DuplicateCompletion(result.match_id, kind='match result')))
            return False

        slot.occupant = None
        self.matches_finished += 1
        if result.failed:
            self.matches_failed += 1

        for agent in arena.agents:
            self._busy.discard(agent.id)
        try:
            for agent in arena.agents:
                # A raising callback must not cost the partner its score
                try:
                    agent.callback(agent.id, result.score_for(agent.id))
                except Exception:
                    logger.exception(f"Score callback for {agent.id} failed in {result.match_id}")
            if self.on_result is not None:
                self.on_result(result)
        finally:
            self.try_assign()
        return True

    # ------------------------------------------------------------------
    # Simulation events
    # ------------------------------------------------------------------

    def on_tick(self, delta_ms: float) -> None:
        """
        Deliver inference results and advance every running match.

        A failing match is aborted; the others keep running.
        """
        if self.paused:
            return

        self.inference.dispatch()

        for arena in self.running:
            if arena.finished:
                continue
            try:
                arena.on_tick(delta_ms)
            except ColosseumError as e:
                arena.abort(e, agent_id=getattr(e, 'agent_id', None))
            except Exception as e:
                logger.exception(f"Unexpected error in {arena.match_id}")
                arena.abort(e)

    def on_collision(self, slot_index: int, event: CollisionEvent) -> None:
        if self.paused:
            return
        arena = self.slots[slot_index].occupant
        if arena is not None:
            arena.on_collision(event)

    def pause(self) -> None:
        """Freeze ticks and collisions; queued and in-flight work is kept."""
        self.paused = True
        for arena in self.running:
            arena.pause()

    def resume(self) -> None:
        self.paused = False
        for arena in self.running:
            arena.resume()

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def running(self) -> List[Arena]:
        return [slot.occupant for slot in self.slots if slot.occupant is not None]

    @property
    def occupied_slots(self) -> int:
        return sum(1 for slot in self.slots if not slot.free)

    @property
    def queued(self) -> int:
        return len(self._queue)

    def scores(self) -> List[Optional[Tuple[float, float]]]:
        """Live scores per slot, None for free slots."""
        return [
            slot.occupant.scores if slot.occupant is not None else None
            for slot in self.slots
        ]

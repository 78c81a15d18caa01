"""
Explicit wiring of the colosseum services.

``ColosseumSystem`` builds one of each service from a single config and
hands each component the handles it needs at construction time:

    ReplayStore ──┐
    InferencePool ├─> Colosseum (scheduler) <── PopulationController ──> Trainer
    Simulation ───┘

The simulation layer drives it with ``on_tick`` and ``on_collision``.
"""
import logging
import time
from typing import Callable, List, Optional

from .config import ColosseumConfig
from .evolution.population import PopulationController
from .inference.pool import InferencePool
from .matches.boundary import CollisionEvent, Simulation
from .matches.results import MatchResult
from .matches.scheduler import Colosseum
from .networks.policy import PolicyFactory, policy_from_transferable
from .training.replay import ReplayStore
from .training.trainer import Trainer

logger = logging.getLogger(__name__)


class ColosseumSystem:
    """
    Complete population-based training loop.

    Example:
        system = ColosseumSystem(
            ColosseumConfig(total_arenas=4, population_size=20),
            simulation=my_physics,
            policy_factory=lambda: MLPPolicy.create(),
        )
        system.start()
        while running:
            system.on_tick(16.0)
        system.stop()
    """

    def __init__(
        self,
        config: ColosseumConfig,
        simulation: Simulation,
        policy_factory: PolicyFactory,
        on_score_update: Optional[Callable[[int, float, float], None]] = None,
        on_generation_stats: Optional[Callable[[int, List[float]], None]] = None,
        on_result: Optional[Callable[[MatchResult], None]] = None,
        clock: Callable[[], float] = time.monotonic,
        loader=policy_from_transferable,
    ):
        """
        Initialize and wire every service.

        Args:
            config: Run configuration; validated here.
            simulation: Physics boundary.
            policy_factory: Creates a fresh policy for the first generation.
            on_score_update: Live score listener ``(slot, score_a, score_b)``.
            on_generation_stats: Generation listener ``(epoch, scores)``.
            on_result: Listener for every finished match.
            clock: Time source for the inference pool.
            loader: Rebuilds policies on the worker side.
        """
        config.validate()
        self.config = config

        self.replay = ReplayStore(
            capacity=config.replay_buffer_capacity,
            discount=config.discount_factor,
            seed=config.seed,
        )
        self.inference = InferencePool(
            throttle_ms=config.inference_throttle_ms,
            idle_eviction_ms=config.model_idle_eviction_ms,
            clock=clock,
            loader=loader,
        )
        self.trainer = Trainer.from_config(config, loader=loader)
        self.colosseum = Colosseum(
            simulation=simulation,
            inference=self.inference,
            replay=self.replay,
            config=config,
            on_result=on_result,
            on_score_update=on_score_update,
        )
        self.population = PopulationController(
            config,
            submit=self.colosseum.submit,
            policy_factory=policy_factory,
            trainer=self.trainer,
            replay=self.replay,
            on_generation_stats=on_generation_stats,
        )

        self.threaded = False
        self.running = False

    def start(self, threaded: bool = True) -> None:
        """
        Start the worker services and submit the first generation.

        Args:
            threaded: Run workers on background threads. When False the
                workers are stepped from ``on_tick``.
        """
        if self.running:
            raise RuntimeError("System already started")

        self.threaded = threaded
        if threaded:
            self.inference.start()
            if self.config.trainable:
                self.trainer.start()

        self.running = True
        self.population.start()
        logger.info(
            f"Colosseum started: {self.config.total_arenas} arenas, "
            f"{self.config.population_size} agents per epoch"
        )

    def on_tick(self, delta_ms: float) -> None:
        if not self.running or self.colosseum.paused:
            return

        if not self.threaded:
            # Drain ready predictions; throttled agents stop the loop
            while self.inference.step():
                pass
            if self.config.trainable:
                self.trainer.step()

        self.trainer.dispatch()
        self.colosseum.on_tick(delta_ms)

    def on_collision(self, slot_index: int, event: CollisionEvent) -> None:
        if not self.running:
            return
        self.colosseum.on_collision(slot_index, event)

    def pause(self) -> None:
        self.colosseum.pause()

    def resume(self) -> None:
        self.colosseum.resume()

    @property
    def paused(self) -> bool:
        return self.colosseum.paused

    def stop(self, timeout: float = 5.0) -> bool:
        """
        Stop both workers and dispose the population.

        Returns:
            True if both workers acknowledged the stop.
        """
        if not self.running:
            return True
        self.running = False

        trainer_stopped = self.trainer.stop(timeout)
        inference_stopped = self.inference.stop(timeout)
        self.population.dispose()

        logger.info(f"Colosseum stopped after epoch {self.population.epoch}")
        return trainer_stopped and inference_stopped

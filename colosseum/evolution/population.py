"""
Generational loop over a population of fighters.

The controller owns every agent of the current generation. It submits
each one for evaluation, waits until all of them have been scored (in any
order), and then runs one evolution step:

1. The first generation is created from scratch: fresh policies mutated
   heavily for diversity.
2. Later generations rank agents by ``max(score, previous_score)``; the top
   ``seeds_n`` survive and the rest are disposed.
3. Seeds are resubmitted with their best score folded into
   ``previous_score``.
4. Offspring are bred from every unordered pair of seeds at
   ``crossover_splits`` interpolation fractions, plus an optional noisy
   clone of each seed.
5. The generation is topped up to ``population_size`` with children of
   fitness-proportionally drawn parents, and padded by one duplicate
   offspring if its size is odd.
6. With a trainer configured, every offspring is refined first and the
   refined policy is what gets submitted.
"""
import logging
import random
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Set, TYPE_CHECKING

from ..config import ColosseumConfig
from ..exceptions import DuplicateCompletion
from ..messages import ReplyStatus, RequestIds
from ..networks.policy import BasePolicy, PolicyFactory, policy_from_transferable
from ..training.checkpoints import CheckpointManager
from .agent import Agent
from .crossover import PolicyBreeder, plan_offspring
from .selection import FitnessProportionalSelection, TruncationSelection

if TYPE_CHECKING:
    from ..training.replay import ReplayStore
    from ..training.trainer import RefineResult, Trainer

logger = logging.getLogger(__name__)


@dataclass
class GenerationStats:
    """Statistics for one evaluated generation."""
    epoch: int = 0
    scores: List[float] = field(default_factory=list)
    best: float = 0.0
    mean: float = 0.0
    std: float = 0.0
    min: float = 0.0
    population_size: int = 0
    num_seeds: int = 0
    num_offspring: int = 0


class PopulationController:
    """
    Drives generations of agents through the colosseum.

    Example:
        controller = PopulationController(
            config,
            submit=colosseum.submit,
            policy_factory=lambda: MLPPolicy.create(),
        )
        controller.start()
        # ... matches call back controller.on_agent_scored(agent_id, score)
    """

    def __init__(
        self,
        config: ColosseumConfig,
        submit: Callable[[Agent], None],
        policy_factory: PolicyFactory,
        trainer: Optional['Trainer'] = None,
        replay: Optional['ReplayStore'] = None,
        on_generation_stats: Optional[Callable[[int, List[float]], None]] = None,
        rng: Optional[random.Random] = None,
    ):
        """
        Initialize the controller.

        Args:
            config: Run configuration.
            submit: Hands an agent to the match scheduler.
            policy_factory: Creates a fresh, randomly initialised policy.
            trainer: Optional refinement service for offspring.
            replay: Replay store handed to the trainer at every new epoch.
            on_generation_stats: Called with ``(epoch, sorted scores)``.
            rng: Random source for parent selection.
        """
        self.config = config
        self.submit = submit
        self.policy_factory = policy_factory
        self.trainer = trainer
        self.replay = replay
        self.on_generation_stats = on_generation_stats

        self.selection = TruncationSelection(seeds_n=config.seeds_n)
        self.parent_selection = FitnessProportionalSelection(
            rng=rng or random.Random(config.seed),
        )
        self.breeder = PolicyBreeder(
            mutation_rate=config.mutation_rate,
            mutation_std=config.mutation_std,
            additive_noise_std=config.additive_noise_std,
        )

        # Generation state
        self.agents: Dict[str, Agent] = {}
        self.pending_count = 0
        self.epoch = 0
        self.best_score_this_epoch = float('-inf')
        self.best_score_prev_epoch = float('-inf')
        self._scored: Set[str] = set()
        self._awaiting_refine: Set[str] = set()
        self._num_seeds = 0
        self._num_offspring = 0

        self._agent_ids = RequestIds('agent')
        self._started = False

        # Statistics
        self.stats_history: List[GenerationStats] = []
        self.rejected_scores = 0

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """
        Create and submit the first generation.

        After ``load_checkpoint`` this resumes instead: unscored agents are
        submitted, or the next generation is bred if all were scored.
        """
        if self._started:
            raise RuntimeError("Population controller already started")
        self._started = True

        if not self.agents:
            self._initial_generation()
            return

        unscored = [agent for agent in self.agents.values() if not agent.scored]
        if not unscored:
            self._evolve()
            return
        for agent in unscored:
            agent.callback = self.on_agent_scored
            self.submit(agent)

    @property
    def scored_this_generation(self) -> int:
        return len(self._scored)

    def on_agent_scored(self, agent_id: str, score: float) -> bool:
        """
        Record one agent's score for the current generation.

        Duplicate and unknown reports are rejected and logged.

        Returns:
            True if the score was counted.
        """
        agent = self.agents.get(agent_id)
        if agent is None:
            logger.warning(f"Ignoring score for unknown agent {agent_id}")
            self.rejected_scores += 1
            return False
        if agent_id in self._scored:
            logger.warning(str(DuplicateCompletion(agent_id, kind='score')))
            self.rejected_scores += 1
            return False

        agent.score = float(score)
        self._scored.add(agent_id)
        self.pending_count -= 1
        self.best_score_this_epoch = max(self.best_score_this_epoch, agent.score)

        if self.pending_count == 0:
            self._complete_generation()
        return True

    def _complete_generation(self) -> None:
        stats = self._snapshot()
        self.stats_history.append(stats)
        logger.info(
            f"Epoch {stats.epoch} complete: best={stats.best:.3f}, "
            f"mean={stats.mean:.3f}, min={stats.min:.3f}"
        )
        if self.on_generation_stats is not None:
            self.on_generation_stats(stats.epoch, list(stats.scores))

        self._evolve()

    def _snapshot(self) -> GenerationStats:
        scores = sorted(agent.score for agent in self.agents.values() if agent.scored)
        mean = sum(scores) / len(scores) if scores else 0.0
        return GenerationStats(
            epoch=self.epoch,
            scores=scores,
            best=scores[-1] if scores else 0.0,
            mean=mean,
            std=self._std(scores),
            min=scores[0] if scores else 0.0,
            population_size=len(self.agents),
            num_seeds=self._num_seeds,
            num_offspring=self._num_offspring,
        )

    def _std(self, values: List[float]) -> float:
        """Calculate standard deviation."""
        if len(values) < 2:
            return 0.0
        mean = sum(values) / len(values)
        variance = sum((x - mean) ** 2 for x in values) / len(values)
        return variance ** 0.5

    # ------------------------------------------------------------------
    # Evolution
    # ------------------------------------------------------------------

    def _new_agent(
        self,
        policy: BasePolicy,
        generation: int,
        parent_ids: Optional[List[str]] = None,
        origin: str = 'random',
    ) -> Agent:
        return Agent(
            id=self._agent_ids.next(),
            policy=policy,
            generation=generation,
            callback=self.on_agent_scored,
            parent_ids=parent_ids or [],
            origin=origin,
        )

    def _evolve(self) -> None:
        if not self.agents:
            self._initial_generation()
        else:
            self._next_generation()

    def _initial_generation(self) -> None:
        agents = []
        for _ in range(self.config.population_size):
            policy = self.policy_factory()
            policy.mutate(self.config.initial_mutation_rate, self.config.initial_mutation_std)
            agents.append(self._new_agent(policy, generation=self.epoch))

        self._begin_generation(agents, seeds=[], offspring=agents)
        logger.info(f"Created initial population of {len(agents)} agents")

        for agent in agents:
            self.submit(agent)

    def _next_generation(self) -> None:
        seeds, eliminated = self.selection.select(list(self.agents.values()))
        for agent in eliminated:
            agent.policy.dispose()

        next_epoch = self.epoch + 1
        for seed in seeds:
            seed.previous_score = seed.fitness
            seed.score = None
            seed.generation = next_epoch
            seed.callback = self.on_agent_scored

        offspring = self._breed(seeds, next_epoch)

        if self.trainer is not None and self.replay is not None:
            self.trainer.next_epoch(self.replay)

        self.epoch = next_epoch
        self.best_score_prev_epoch = self.best_score_this_epoch
        self.best_score_this_epoch = float('-inf')
        self._begin_generation(seeds + offspring, seeds=seeds, offspring=offspring)
        logger.info(
            f"Epoch {self.epoch}: {len(seeds)} seeds, {len(offspring)} offspring, "
            f"{len(eliminated)} eliminated"
        )

        for seed in seeds:
            self.submit(seed)
        for child in offspring:
            self._route(child)

    def _breed(self, seeds: List[Agent], generation: int) -> List[Agent]:
        offspring: List[Agent] = []

        for mating in plan_offspring(seeds, self.config.crossover_splits):
            policy = self.breeder.crossover(
                mating.parent_a.policy, mating.parent_b.policy, mating.fraction,
            )
            offspring.append(self._new_agent(
                policy, generation, [mating.parent_a.id, mating.parent_b.id], 'crossover',
            ))

        if self.breeder.noise_enabled:
            for seed in seeds:
                offspring.append(self._new_agent(
                    self.breeder.noise_clone(seed.policy), generation, [seed.id], 'noise',
                ))

        # Top up with fitness-proportional parents
        while len(seeds) + len(offspring) < self.config.population_size:
            parent_a, parent_b = self.parent_selection.select(seeds, 2)
            policy = self.breeder.crossover(parent_a.policy, parent_b.policy, 0.5)
            offspring.append(self._new_agent(
                policy, generation, [parent_a.id, parent_b.id], 'fill',
            ))

        # Matches pair agents two at a time
        if (len(seeds) + len(offspring)) % 2 != 0:
            if offspring:
                source = offspring[-1]
                duplicate = self._new_agent(
                    source.policy.copy(), generation, list(source.parent_ids), 'duplicate',
                )
            else:
                source = seeds[-1]
                duplicate = self._new_agent(
                    self.breeder.mutated_copy(source.policy), generation, [source.id], 'duplicate',
                )
            offspring.append(duplicate)

        return offspring

    def _begin_generation(self, agents: List[Agent], seeds: List[Agent], offspring: List[Agent]) -> None:
        self.agents = {agent.id: agent for agent in agents}
        self.pending_count = len(agents)
        self._scored = set()
        self._num_seeds = len(seeds)
        self._num_offspring = len(offspring)

    def _route(self, agent: Agent) -> None:
        if self.trainer is None:
            self.submit(agent)
            return

        self._awaiting_refine.add(agent.id)
        self.trainer.refine(
            agent.policy,
            lambda result, agent_id=agent.id: self._on_refined(agent_id, result),
        )

    def _on_refined(self, agent_id: str, result: 'RefineResult') -> None:
        agent = self.agents.get(agent_id)

        if agent_id not in self._awaiting_refine:
            logger.warning(str(DuplicateCompletion(agent_id, kind='fine-tune')))
            if agent is None or result.policy is not agent.policy:
                result.policy.dispose()
            return
        self._awaiting_refine.discard(agent_id)

        if agent is None:
            # The generation moved on while the agent was being refined
            result.policy.dispose()
            return

        agent.policy = result.policy
        if result.status == ReplyStatus.STOPPED:
            logger.info(f"Trainer stopped before refining {agent_id}; not submitted")
            return
        if result.refined:
            agent.origin = f"{agent.origin}+refined"
        self.submit(agent)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_best(self) -> Optional[Agent]:
        """Get the agent with the highest fitness, if any."""
        if not self.agents:
            return None
        return max(self.agents.values(), key=lambda agent: agent.fitness)

    def get_top_n(self, n: int) -> List[Agent]:
        """Get the top n agents by fitness."""
        return sorted(self.agents.values(), key=lambda agent: agent.fitness, reverse=True)[:n]

    @property
    def awaiting_refine(self) -> int:
        return len(self._awaiting_refine)

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def save_checkpoint(self, path: str, max_checkpoints: int = 10) -> Path:
        """
        Save the current generation.

        Args:
            path: Checkpoint directory.
            max_checkpoints: Maximum checkpoints kept in that directory.

        Returns:
            Path to the saved checkpoint.
        """
        manager = CheckpointManager(path, max_checkpoints=max_checkpoints)
        state = {
            'config': self.config.to_dict(),
            'agents': [self._serialize(agent) for agent in self.agents.values()],
            'stats_history': [asdict(stats) for stats in self.stats_history],
            'best_score_prev_epoch': self.best_score_prev_epoch,
        }
        return manager.save(state, epoch=self.epoch)

    def _serialize(self, agent: Agent) -> Dict[str, Any]:
        return {
            'id': agent.id,
            'generation': agent.generation,
            'score': agent.score,
            'previous_score': agent.previous_score,
            'parent_ids': list(agent.parent_ids),
            'origin': agent.origin,
            'policy': agent.policy.to_transferable(),
        }

    def load_checkpoint(self, path: str) -> None:
        """
        Replace the current population with a saved one.

        Args:
            path: Checkpoint file, or a directory to load the latest from.

        Raises:
            RuntimeError: If the controller is already running.
            FileNotFoundError: If no checkpoint exists at ``path``.
        """
        if self._started:
            raise RuntimeError("Cannot load a checkpoint into a running population")

        location = Path(path)
        if location.is_dir():
            checkpoint = CheckpointManager(str(location)).load_latest()
        elif location.exists():
            checkpoint = CheckpointManager(str(location.parent)).load(str(location))
        else:
            checkpoint = None
        if checkpoint is None:
            raise FileNotFoundError(f"No checkpoint found at {path}")

        self.dispose()

        agents = []
        highest = 0
        for data in checkpoint['agents']:
            agent = Agent(
                id=data['id'],
                policy=policy_from_transferable(data['policy']),
                generation=data['generation'],
                score=data['score'],
                previous_score=data['previous_score'],
                callback=self.on_agent_scored,
                parent_ids=data.get('parent_ids', []),
                origin=data.get('origin', 'random'),
            )
            agents.append(agent)
            suffix = agent.id.rsplit('-', 1)[-1]
            if suffix.isdigit():
                highest = max(highest, int(suffix))

        self.epoch = checkpoint['epoch']
        self.stats_history = [GenerationStats(**stats) for stats in checkpoint.get('stats_history', [])]
        self.best_score_prev_epoch = checkpoint.get('best_score_prev_epoch', float('-inf'))
        self._agent_ids = RequestIds('agent', start=highest + 1)

        self.agents = {agent.id: agent for agent in agents}
        self._scored = {agent.id for agent in agents if agent.scored}
        self.pending_count = len(agents) - len(self._scored)
        self.best_score_this_epoch = max(
            (agent.score for agent in agents if agent.scored), default=float('-inf'),
        )
        logger.info(f"Loaded {len(agents)} agents at epoch {self.epoch} from {path}")

    def dispose(self) -> None:
        """Dispose every policy owned by the current generation."""
        for agent in self.agents.values():
            if not agent.policy.disposed:
                agent.policy.dispose()
        self.agents = {}
        self.pending_count = 0
        self._scored = set()
        self._awaiting_refine = set()

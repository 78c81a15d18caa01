"""
Configuration for a colosseum run.

A single dataclass carries every option the scheduler, arenas, population
controller, inference pool, replay store and trainer read. Options can be
given in snake_case or with the camelCase names used by the browser
front end (``totalArenas``, ``fightersPerEpoch``, ...).
"""
from dataclasses import dataclass, fields, replace
from typing import Any, Dict, Optional


# camelCase option name -> dataclass field
OPTION_ALIASES = {
    'totalArenas': 'total_arenas',
    'populationSize': 'population_size',
    'fightersPerEpoch': 'population_size',
    'fighters_per_epoch': 'population_size',
    'seedsN': 'seeds_n',
    'timeLimitMs': 'time_limit_ms',
    'timeLimit': 'time_limit_ms',
    'mutationRate': 'mutation_rate',
    'mutationStd': 'mutation_std',
    'additiveNoiseStd': 'additive_noise_std',
    'crossoversSplits': 'crossover_splits',
    'crossoverSplits': 'crossover_splits',
    'discountFactor': 'discount_factor',
    'replayBufferCapacity': 'replay_buffer_capacity',
    'inferenceThrottleMs': 'inference_throttle_ms',
    'modelIdleEvictionMs': 'model_idle_eviction_ms',
    'trainerBatchSize': 'trainer_batch_size',
    'trainerStepsPerAgent': 'trainer_steps_per_agent',
}


@dataclass
class ColosseumConfig:
    """Configuration for a population-based training run."""

    # Scheduling
    total_arenas: int = 2
    time_limit_ms: float = 10_000.0

    # Population
    population_size: int = 10
    seeds_n: int = 3

    # Mutation / crossover
    mutation_rate: float = 0.5
    mutation_std: float = 0.1
    initial_mutation_rate: float = 1.0
    initial_mutation_std: float = 10.0
    additive_noise_std: float = 0.0
    crossover_splits: int = 1

    # Policy shape
    observation_size: int = 240
    action_size: int = 11
    hidden_layers: int = 4
    hidden_units: int = 164

    # Scoring
    max_force: float = 25.0
    collision_penalty: float = 20.0
    off_target_penalty_fraction: float = 1.0
    height_reward_factor: float = 0.01

    # Replay
    discount_factor: float = 0.99
    replay_buffer_capacity: int = 10_000

    # Inference
    inference_throttle_ms: float = 100.0
    model_idle_eviction_ms: float = 25_000.0

    # Training
    trainable: bool = False
    trainer_batch_size: int = 32
    trainer_steps_per_agent: int = 100
    critic_tau: float = 0.001
    actor_learning_rate: float = 1e-4
    critic_learning_rate: float = 1e-4

    # Reproducibility
    seed: Optional[int] = None

    @property
    def fighters_per_epoch(self) -> int:
        return self.population_size

    @classmethod
    def from_dict(cls, options: Dict[str, Any]) -> 'ColosseumConfig':
        """
        Build a config from a dictionary of options.

        Args:
            options: Option names (snake_case or camelCase) to values.

        Returns:
            A validated configuration.

        Raises:
            ValueError: If an option is unknown or a value is invalid.
        """
        known = {f.name for f in fields(cls)}
        kwargs = {}
        for key, value in options.items():
            name = OPTION_ALIASES.get(key, key)
            if name not in known:
                raise ValueError(f"Unknown configuration option: {key}")
            kwargs[name] = value

        config = cls(**kwargs)
        config.validate()
        return config

    def to_dict(self) -> Dict[str, Any]:
        """Return the configuration as a plain dictionary."""
        return {f.name: getattr(self, f.name) for f in fields(self)}

    def with_overrides(self, **overrides: Any) -> 'ColosseumConfig':
        """Return a validated copy with some options replaced."""
        config = replace(self, **overrides)
        config.validate()
        return config

    def validate(self) -> None:
        """
        Check that the options describe a runnable system.

        Raises:
            ValueError: On the first invalid option found.
        """
        if self.total_arenas < 1:
            raise ValueError("total_arenas must be >= 1")
        if self.population_size < 2:
            raise ValueError("population_size must be >= 2")
        # Arenas pair agents two at a time; an odd generation leaves one waiting
        if self.population_size % 2 != 0:
            raise ValueError("population_size must be even")
        if not 1 <= self.seeds_n <= self.population_size:
            raise ValueError("seeds_n must be between 1 and population_size")
        if self.time_limit_ms <= 0:
            raise ValueError("time_limit_ms must be positive")
        if not 0.0 <= self.mutation_rate <= 1.0:
            raise ValueError("mutation_rate must be in [0, 1]")
        if not 0.0 <= self.initial_mutation_rate <= 1.0:
            raise ValueError("initial_mutation_rate must be in [0, 1]")
        if self.mutation_std < 0 or self.initial_mutation_std < 0:
            raise ValueError("mutation std must be >= 0")
        if self.additive_noise_std < 0:
            raise ValueError("additive_noise_std must be >= 0")
        if self.crossover_splits < 1:
            raise ValueError("crossover_splits must be >= 1")
        if self.observation_size < 1 or self.action_size < 1:
            raise ValueError("observation_size and action_size must be >= 1")
        if not 0.0 <= self.discount_factor <= 1.0:
            raise ValueError("discount_factor must be in [0, 1]")
        if self.replay_buffer_capacity < 1:
            raise ValueError("replay_buffer_capacity must be >= 1")
        if self.inference_throttle_ms < 0:
            raise ValueError("inference_throttle_ms must be >= 0")
        if self.model_idle_eviction_ms <= 0:
            raise ValueError("model_idle_eviction_ms must be positive")
        if self.trainer_batch_size < 1:
            raise ValueError("trainer_batch_size must be >= 1")
        if self.trainer_steps_per_agent < 1:
            raise ValueError("trainer_steps_per_agent must be >= 1")
        if not 0.0 < self.critic_tau <= 1.0:
            raise ValueError("critic_tau must be in (0, 1]")
        if not 0.0 <= self.off_target_penalty_fraction <= 1.0:
            raise ValueError("off_target_penalty_fraction must be in [0, 1]")

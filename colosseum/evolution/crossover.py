"""
Offspring creation from surviving seeds.

Offspring come from every unordered pair of seeds. For each pair the
parents are interpolated at ``crossover_splits`` evenly spaced fractions
in (0, 1), e.g. 1/4, 2/4, 3/4 for three splits, and each child is then
mutated with a small standard deviation.

An independent noise path can also clone each seed with additive noise.
"""
from dataclasses import dataclass
from itertools import combinations
from typing import List, Sequence, Tuple

from ..networks.policy import BasePolicy
from .agent import Agent


def interpolation_fractions(splits: int) -> List[float]:
    """Return ``[k / (splits + 1) for k in 1..splits]``."""
    if splits < 1:
        raise ValueError("splits must be >= 1")
    return [k / (splits + 1) for k in range(1, splits + 1)]


def seed_pairs(seeds: Sequence[Agent]) -> List[Tuple[Agent, Agent]]:
    """All unique unordered pairs of distinct seeds."""
    return list(combinations(seeds, 2))


@dataclass
class Mating:
    """One planned crossover."""
    parent_a: Agent
    parent_b: Agent
    fraction: float


def plan_offspring(seeds: Sequence[Agent], splits: int) -> List[Mating]:
    """
    Plan the pairwise offspring of a generation.

    Args:
        seeds: Surviving agents.
        splits: Interpolation fractions per pair.

    Returns:
        ``len(pairs) * splits`` matings.
    """
    fractions = interpolation_fractions(splits)
    return [
        Mating(parent_a=a, parent_b=b, fraction=fraction)
        for a, b in seed_pairs(seeds)
        for fraction in fractions
    ]


class PolicyBreeder:
    """
    Crossover and mutation on opaque policies.

    Example:
        breeder = PolicyBreeder(mutation_rate=0.5, mutation_std=0.1)
        child = breeder.crossover(parent_a.policy, parent_b.policy, 0.5)
    """

    def __init__(
        self,
        mutation_rate: float = 0.5,
        mutation_std: float = 0.1,
        additive_noise_std: float = 0.0,
    ):
        """
        Initialize the breeder.

        Args:
            mutation_rate: Probability of perturbing each parameter of a child.
            mutation_std: Noise standard deviation for children.
            additive_noise_std: Noise for seed clones (0 disables them).
        """
        self.mutation_rate = mutation_rate
        self.mutation_std = mutation_std
        self.additive_noise_std = additive_noise_std

    @property
    def noise_enabled(self) -> bool:
        return self.additive_noise_std > 0

    def crossover(self, parent_a: BasePolicy, parent_b: BasePolicy, fraction: float) -> BasePolicy:
        """Interpolate two parents, then mutate the child."""
        child = parent_a.combine(parent_b, fraction)
        child.mutate(self.mutation_rate, self.mutation_std)
        return child

    def noise_clone(self, parent: BasePolicy) -> BasePolicy:
        """Copy a policy and add noise to every parameter."""
        child = parent.copy()
        child.mutate(1.0, self.additive_noise_std)
        return child

    def mutated_copy(self, parent: BasePolicy) -> BasePolicy:
        child = parent.copy()
        child.mutate(self.mutation_rate, self.mutation_std)
        return child

"""
Selection strategies for the generational loop.

All strategies rank agents by ``fitness = max(score, previous_score)``,
with a missing value counting as -infinity.

- Truncation: the top ``seeds_n`` agents survive, everyone else is dropped
- Fitness-proportional: parents are drawn with probability proportional
  to their (shifted, non-negative) fitness
"""
import random
from typing import List, Optional, Sequence, Tuple

from .agent import Agent


def rank_agents(agents: Sequence[Agent]) -> List[Agent]:
    """Sort agents by fitness, ascending. Ties keep their input order."""
    return sorted(agents, key=lambda agent: agent.fitness)


class TruncationSelection:
    """
    Keep the best ``seeds_n`` agents.

    Example:
        selection = TruncationSelection(seeds_n=3)
        seeds, eliminated = selection.select(population)
    """

    def __init__(self, seeds_n: int):
        if seeds_n < 1:
            raise ValueError("seeds_n must be >= 1")
        self.seeds_n = seeds_n

    def select(self, agents: Sequence[Agent]) -> Tuple[List[Agent], List[Agent]]:
        """
        Split a generation into survivors and eliminated agents.

        Args:
            agents: The evaluated generation.

        Returns:
            ``(seeds, eliminated)``; seeds are in ascending fitness order,
            so the best agent is last.
        """
        ranked = rank_agents(agents)
        cutoff = max(0, len(ranked) - self.seeds_n)
        return ranked[cutoff:], ranked[:cutoff]


class FitnessProportionalSelection:
    """
    Roulette-wheel parent selection.

    Fitness values are shifted so the smallest one is zero when any is
    negative. If every weight is zero the draw is uniform.
    """

    def __init__(self, rng: Optional[random.Random] = None):
        self.rng = rng or random.Random()

    def probabilities(self, agents: Sequence[Agent]) -> List[float]:
        if not agents:
            return []

        finite = [agent.fitness for agent in agents if agent.fitness != float('-inf')]
        floor = min(finite) if finite else 0.0
        values = [
            agent.fitness if agent.fitness != float('-inf') else floor
            for agent in agents
        ]

        low = min(values)
        if low < 0:
            values = [value - low for value in values]

        total = sum(values)
        if total <= 0:
            return [1.0 / len(values)] * len(values)
        return [value / total for value in values]

    def select(self, agents: Sequence[Agent], num_to_select: int) -> List[Agent]:
        """
        Draw parents with replacement.

        Args:
            agents: Candidate parents.
            num_to_select: Number of draws.

        Returns:
            Selected agents (may repeat).
        """
        if not agents:
            return []
        weights = self.probabilities(agents)
        return self.rng.choices(list(agents), weights=weights, k=num_to_select)

"""
Evolvable agents.

An agent wraps one policy together with its score history. Its ``score``
is written once per generation by the match that evaluated it; survivors
carry their best result forward in ``previous_score``.
"""
from dataclasses import dataclass, field
from typing import Callable, List, Optional

from ..networks.policy import BasePolicy


ScoreCallback = Callable[[str, float], None]


def best_of(score: Optional[float], previous_score: Optional[float]) -> float:
    """``max(score, previous_score)`` with missing values treated as -inf."""
    return max(
        score if score is not None else float('-inf'),
        previous_score if previous_score is not None else float('-inf'),
    )


@dataclass
class Agent:
    """
    One policy competing in the colosseum.

    Attributes:
        id: Unique, monotonic agent id.
        policy: The agent's policy; owned by the population controller.
        generation: Epoch in which the agent was created or last resubmitted.
        score: Score of the current generation's match, if evaluated.
        previous_score: Best score carried over from earlier generations.
        callback: Completion callback ``(agent_id, score)``.
        parent_ids: Ids of the agents this one was bred from.
        origin: How the agent was created ('random', 'seed', 'crossover',
            'noise', 'fill' or 'duplicate').
    """
    id: str
    policy: BasePolicy
    generation: int = 0
    score: Optional[float] = None
    previous_score: Optional[float] = None
    callback: Optional[ScoreCallback] = None
    parent_ids: List[str] = field(default_factory=list)
    origin: str = 'random'

    @property
    def fitness(self) -> float:
        return best_of(self.score, self.previous_score)

    @property
    def scored(self) -> bool:
        return self.score is not None

    def __repr__(self) -> str:
        return f"Agent({self.id}, gen={self.generation}, fitness={self.fitness:.3f}, origin={self.origin})"

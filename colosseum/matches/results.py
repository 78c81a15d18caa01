"""Results produced by finished matches."""
from dataclasses import dataclass
from typing import Optional


@dataclass
class AgentScore:
    """Final score of one agent in one match."""
    agent_id: str
    score: float


@dataclass
class MatchResult:
    """Result of a match, produced exactly once per match."""
    match_id: str
    slot_index: int
    agent_a: AgentScore
    agent_b: AgentScore
    failed: bool = False
    error: Optional[str] = None
    elapsed_ms: float = 0.0

    def score_for(self, agent_id: str) -> float:
        if agent_id == self.agent_a.agent_id:
            return self.agent_a.score
        if agent_id == self.agent_b.agent_id:
            return self.agent_b.score
        raise KeyError(agent_id)

    @property
    def winner(self) -> Optional[str]:
        """Id of the higher-scoring agent, or None on a tie."""
        if self.agent_a.score > self.agent_b.score:
            return self.agent_a.agent_id
        if self.agent_b.score > self.agent_a.score:
            return self.agent_b.agent_id
        return None

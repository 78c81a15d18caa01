"""
Test doubles and Factory Boy factories.

- FakePolicy: a one-number policy that counts predictions across every
  copy, including the copies rebuilt on the worker side
- FakeSimulation: records spawned fighters and applied forces
- FakeClock: manually advanced time source
- AgentFactory: agents with fake policies and sequential ids
"""
from typing import Any, Dict, List, Optional, Sequence, Tuple

import factory

from colosseum.evolution.agent import Agent
from colosseum.matches.boundary import FighterRef, Simulation
from colosseum.networks.policy import BasePolicy, register_policy_kind


@register_policy_kind
class FakePolicy(BasePolicy):
    """Policy whose every action component equals ``value``."""

    kind = 'fake'
    predict_calls = 0

    def __init__(
        self,
        value: float = 0.0,
        input_size: int = 4,
        output_size: int = 3,
        fail: bool = False,
    ):
        self.value = value
        self.input_size = input_size
        self.output_size = output_size
        self.fail = fail
        self.mutations: List[Tuple[float, float]] = []
        self._disposed = False

    def predict(self, observation: Sequence[float]) -> List[float]:
        if self._disposed:
            raise RuntimeError("Policy has been disposed")
        FakePolicy.predict_calls += 1
        if self.fail:
            raise RuntimeError("policy exploded")
        return [self.value] * self.output_size

    def mutate(self, rate: float, std: float) -> None:
        self.mutations.append((rate, std))
        self.value += rate * std

    def combine(self, other: 'FakePolicy', factor: float) -> 'FakePolicy':
        return FakePolicy(
            value=factor * self.value + (1 - factor) * other.value,
            input_size=self.input_size,
            output_size=self.output_size,
        )

    def copy(self) -> 'FakePolicy':
        return FakePolicy(self.value, self.input_size, self.output_size, self.fail)

    def dispose(self) -> None:
        self._disposed = True

    @property
    def disposed(self) -> bool:
        return self._disposed

    def to_transferable(self) -> Dict[str, Any]:
        return {
            'kind': self.kind,
            'value': self.value,
            'input_size': self.input_size,
            'output_size': self.output_size,
            'fail': self.fail,
        }

    @classmethod
    def from_transferable(cls, data: Dict[str, Any]) -> 'FakePolicy':
        return cls(
            value=data['value'],
            input_size=data['input_size'],
            output_size=data['output_size'],
            fail=data.get('fail', False),
        )


class FakeSimulation(Simulation):
    """In-memory simulation with ``parts`` bodies per fighter."""

    def __init__(self, observation_size: int = 4, parts: int = 3):
        self.observation_size = observation_size
        self.parts = parts
        self.spawned: List[FighterRef] = []
        self.removed: List[FighterRef] = []
        self.forces: List[Tuple[Any, int, Tuple[float, float, float]]] = []
        self.observation_sizes: Dict[Any, int] = {}

    def spawn_fighter(self, slot_index: int, side: int) -> FighterRef:
        ref = (slot_index, side, len(self.spawned))
        fighter = FighterRef(
            ref=ref,
            body_ids=frozenset(f"{ref}-part{i}" for i in range(self.parts)),
        )
        self.spawned.append(fighter)
        return fighter

    def remove_fighter(self, fighter: FighterRef) -> None:
        self.removed.append(fighter)

    def encode_observation(self, fighter: FighterRef) -> List[float]:
        size = self.observation_sizes.get(fighter.ref, self.observation_size)
        return [0.5] * size

    def apply_action(self, fighter: FighterRef, part_index: int, force) -> None:
        self.forces.append((fighter.ref, part_index, tuple(force)))

    def body(self, fighter: FighterRef, part: int = 0) -> str:
        return f"{fighter.ref}-part{part}"


class FakeClock:
    """Time source advanced by hand, in seconds."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class AgentFactory(factory.Factory):
    """Factory for agents with fake policies."""

    class Meta:
        model = Agent

    id = factory.Sequence(lambda n: f'test-agent-{n:04d}')
    policy = factory.LazyFunction(FakePolicy)
    generation = 0
    callback = None


def recorder(calls: Optional[list] = None):
    """Return ``(calls, callback)`` where callback appends its arguments."""
    calls = [] if calls is None else calls

    def callback(*args):
        calls.append(args if len(args) > 1 else args[0])

    return calls, callback

"""
Pytest fixtures for colosseum tests.

Provides fixtures for:
- A small run configuration
- Fake simulation, clock and policies
- Synchronously stepped inference pool and replay store
- A tiny MLP policy for the torch-backed learners
"""
import pytest

from colosseum.config import ColosseumConfig
from colosseum.inference.pool import InferencePool
from colosseum.networks.policy import MLPPolicy
from colosseum.training.replay import ReplayStore

from .factories import FakeClock, FakePolicy, FakeSimulation


@pytest.fixture(autouse=True)
def reset_predict_calls():
    """Reset the shared prediction counter between tests."""
    FakePolicy.predict_calls = 0
    yield
    FakePolicy.predict_calls = 0


@pytest.fixture
def config() -> ColosseumConfig:
    """Return a small configuration matching the fake policy's shape."""
    return ColosseumConfig(
        total_arenas=2,
        population_size=4,
        seeds_n=1,
        time_limit_ms=100.0,
        observation_size=4,
        action_size=3,
        hidden_layers=1,
        hidden_units=8,
        inference_throttle_ms=0.0,
        model_idle_eviction_ms=25_000.0,
        trainer_batch_size=8,
        trainer_steps_per_agent=3,
        seed=7,
    )


@pytest.fixture
def clock() -> FakeClock:
    """Return a manually advanced clock."""
    return FakeClock()


@pytest.fixture
def simulation() -> FakeSimulation:
    """Return a fake simulation with 4-value observations and 3 parts."""
    return FakeSimulation(observation_size=4, parts=3)


@pytest.fixture
def pool(clock) -> InferencePool:
    """Return an unthrottled inference pool driven through step()."""
    return InferencePool(throttle_ms=0.0, idle_eviction_ms=25_000.0, clock=clock)


@pytest.fixture
def replay() -> ReplayStore:
    """Return an empty replay store."""
    return ReplayStore(capacity=100, discount=0.9, seed=1)


@pytest.fixture
def mlp_policy() -> MLPPolicy:
    """Return a tiny MLP actor (4 inputs, 3 outputs)."""
    return MLPPolicy.create(observation_size=4, action_size=3, hidden_layers=1, hidden_units=8)


@pytest.fixture
def filled_replay() -> ReplayStore:
    """Return a replay store holding two completed 5-step runs."""
    store = ReplayStore(capacity=100, discount=0.9, seed=3)
    for run in ('run-a', 'run-b'):
        for step in range(5):
            store.record(
                run,
                state=[0.1 * step, 0.2, -0.1, 0.0],
                action=[0.5, -0.5, 0.1],
                score=float(step),
                timestamp=float(step),
            )
        store.mark_complete(run)
    return store

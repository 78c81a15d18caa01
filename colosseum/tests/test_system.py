"""
End-to-end tests for the wired system, stepped synchronously.
"""
import pytest

from colosseum.system import ColosseumSystem

from .factories import FakeClock, FakePolicy, FakeSimulation


@pytest.fixture
def generations():
    return []


@pytest.fixture
def system(config, generations):
    return ColosseumSystem(
        config.with_overrides(time_limit_ms=50.0),
        simulation=FakeSimulation(observation_size=4, parts=3),
        policy_factory=FakePolicy,
        on_generation_stats=lambda epoch, scores: generations.append((epoch, scores)),
        clock=FakeClock(),
    )


class TestColosseumSystem:
    """Tests for ColosseumSystem."""

    def test_runs_to_next_epoch(self, system, generations):
        """Test that a full generation is evaluated and evolved."""
        system.start(threaded=False)
        assert system.colosseum.occupied_slots == 2

        for _ in range(20):
            system.on_tick(16.0)
            if system.population.epoch >= 1:
                break

        assert system.population.epoch == 1
        assert generations[0][0] == 0
        assert len(generations[0][1]) == 4
        assert FakePolicy.predict_calls > 0
        assert system.colosseum.matches_finished == 2
        # The next generation is already fighting
        assert system.colosseum.occupied_slots == 2
        assert system.stop() is True

    def test_trajectories_reach_replay(self, system):
        """Test that finished matches feed the replay store."""
        system.start(threaded=False)

        for _ in range(4):
            system.on_tick(16.0)

        assert system.replay.completed_runs == 4
        assert len(system.replay) > 0
        system.stop()

    def test_pause_halts_progress(self, system):
        """Test that nothing advances while paused."""
        system.start(threaded=False)
        system.pause()

        for _ in range(20):
            system.on_tick(16.0)

        assert system.paused
        assert system.colosseum.matches_finished == 0
        assert system.population.epoch == 0

        system.resume()
        for _ in range(4):
            system.on_tick(16.0)
        assert system.colosseum.matches_finished == 2
        system.stop()

    def test_stop_disposes_population(self, system):
        """Test acknowledged stop and cleanup."""
        system.start(threaded=False)
        agents = list(system.population.agents.values())

        assert system.stop() is True

        assert system.inference.stopped
        assert system.population.agents == {}
        assert all(agent.policy.disposed for agent in agents)
        # Ticks after stop are ignored
        system.on_tick(16.0)

    def test_start_twice_raises(self, system):
        """Test that the system starts once."""
        system.start(threaded=False)
        with pytest.raises(RuntimeError):
            system.start(threaded=False)
        system.stop()

    def test_invalid_config_rejected(self, config):
        """Test that construction validates the configuration."""
        config.population_size = 3
        with pytest.raises(ValueError):
            ColosseumSystem(config, simulation=FakeSimulation(), policy_factory=FakePolicy)

"""
Tests for match scheduling.

Tests:
- Submission validation
- FIFO pairing into free slots
- Completion callbacks with each agent's own score
- Duplicate results and failing arenas
"""
import pytest

from colosseum.exceptions import InvalidAgent
from colosseum.matches.boundary import CollisionEvent
from colosseum.matches.scheduler import Colosseum

from .factories import AgentFactory, recorder


@pytest.fixture
def scores():
    return []


@pytest.fixture
def colosseum(simulation, pool, replay, config):
    return Colosseum(simulation, pool, replay, config)


@pytest.fixture
def make_agents(scores):
    """Create agents whose callbacks record (agent_id, score)."""
    _, callback = recorder(scores)

    def make(n):
        return AgentFactory.create_batch(n, callback=callback)
    return make


class TestSubmission:
    """Tests for queueing agents."""

    def test_agent_without_callback_rejected(self, colosseum):
        """Test that an agent must carry a completion callback."""
        with pytest.raises(InvalidAgent):
            colosseum.submit(AgentFactory(callback=None))

    def test_duplicate_submission_rejected(self, colosseum, make_agents):
        """Test that an agent cannot be queued twice."""
        agent, = make_agents(1)
        colosseum.submit(agent)

        with pytest.raises(InvalidAgent):
            colosseum.submit(agent)

    def test_single_agent_waits(self, colosseum, make_agents):
        """Test that one queued agent starts nothing."""
        colosseum.submit(make_agents(1)[0])

        assert colosseum.queued == 1
        assert colosseum.occupied_slots == 0

    def test_pairs_fill_free_slots(self, colosseum, make_agents):
        """Test that 5 agents and 2 arenas leave 1 waiting."""
        agents = make_agents(5)
        for agent in agents:
            colosseum.submit(agent)

        assert colosseum.occupied_slots == 2
        assert colosseum.queued == 1
        assert colosseum.matches_started == 2
        # Pairing is first in, first out
        first = colosseum.slots[0].occupant
        assert [agent.id for agent in first.agents] == [agents[0].id, agents[1].id]

    def test_paused_scheduler_starts_paused_arenas(self, colosseum, make_agents):
        """Test that arenas created while paused stay frozen."""
        colosseum.pause()
        for agent in make_agents(2):
            colosseum.submit(agent)

        assert colosseum.slots[0].occupant.paused


class TestCompletion:
    """Tests for match results."""

    def test_callbacks_receive_own_scores(self, colosseum, make_agents, simulation, scores):
        """Test that each agent is called back once with its own score."""
        agent_a, agent_b = make_agents(2)
        colosseum.submit(agent_a)
        colosseum.submit(agent_b)
        arena = colosseum.slots[0].occupant
        colosseum.on_collision(0, CollisionEvent(
            body_id=simulation.body(arena.corners[0].fighter),
            target_id=simulation.body(arena.corners[1].fighter),
            body_velocity=(4.0, 0.0, 0.0),
            target_velocity=(0.0, 0.0, 0.0),
        ))

        colosseum.on_tick(100.0)

        assert sorted(scores) == sorted([
            (agent_a.id, pytest.approx(4.0)),
            (agent_b.id, pytest.approx(-4.0)),
        ])
        assert colosseum.occupied_slots == 0
        assert colosseum.matches_finished == 1

    def test_finished_match_assigns_next_pair(self, colosseum, make_agents, scores):
        """Test that a freed slot takes the waiting agents."""
        agents = make_agents(6)
        for agent in agents:
            colosseum.submit(agent)
        assert colosseum.queued == 2

        colosseum.on_tick(100.0)

        assert len(scores) == 4
        assert colosseum.queued == 0
        assert colosseum.matches_started == 3
        assert colosseum.slots[0].occupant.agents == agents[4:6]

    def test_agents_can_resubmit_from_callback(self, colosseum, scores):
        """Test that agents are free again when their callback runs."""
        resubmitted = []

        def callback(agent_id, score):
            scores.append((agent_id, score))
            if len(resubmitted) < 2:
                agent = next(a for a in pair if a.id == agent_id)
                resubmitted.append(agent)
                colosseum.submit(agent)

        pair = AgentFactory.create_batch(2, callback=callback)
        for agent in pair:
            colosseum.submit(agent)

        colosseum.on_tick(100.0)

        assert len(resubmitted) == 2
        assert colosseum.occupied_slots == 1

    def test_duplicate_result_rejected(self, colosseum, make_agents, scores):
        """Test that a second result for a match is dropped."""
        for agent in make_agents(2):
            colosseum.submit(agent)
        arena = colosseum.slots[0].occupant
        result = arena.finish()

        assert colosseum.on_match_finished(result) is False
        assert len(scores) == 2

    def test_failing_arena_aborted_others_continue(self, colosseum, make_agents, simulation, scores):
        """Test that an error in one match does not stop the other."""
        agents = make_agents(4)
        for agent in agents:
            colosseum.submit(agent)
        broken, healthy = colosseum.slots[0].occupant, colosseum.slots[1].occupant
        simulation.observation_sizes[broken.corners[0].fighter.ref] = 7

        colosseum.on_tick(16.0)

        assert broken.finished
        assert broken.result.failed
        assert colosseum.matches_failed == 1
        assert not healthy.finished
        assert colosseum.slots[1].occupant is healthy
        assert dict(scores) == {agents[0].id: 0.0, agents[1].id: 0.0}

    def test_pause_holds_ticks_and_collisions(self, colosseum, make_agents, simulation, scores):
        """Test that a paused scheduler does not advance matches."""
        for agent in make_agents(2):
            colosseum.submit(agent)
        arena = colosseum.slots[0].occupant
        colosseum.pause()

        colosseum.on_tick(1000.0)
        colosseum.on_collision(0, CollisionEvent(
            body_id=simulation.body(arena.corners[0].fighter),
            target_id=simulation.body(arena.corners[1].fighter),
            body_velocity=(4.0, 0.0, 0.0),
            target_velocity=(0.0, 0.0, 0.0),
        ))

        assert scores == []
        assert colosseum.scores() == [(0.0, 0.0), None]

        colosseum.resume()
        colosseum.on_tick(1000.0)
        assert len(scores) == 2

    def test_raising_callback_does_not_block_partner(self, simulation, pool, replay, config, scores):
        """Test that one failing callback still scores the partner and frees the slot."""
        results = []
        colosseum = Colosseum(
            simulation, pool, replay, config.with_overrides(total_arenas=1),
            on_result=results.append,
        )
        _, callback = recorder(scores)

        def raising(agent_id, score):
            raise RuntimeError("evolution step failed")

        agents = AgentFactory.create_batch(4, callback=callback)
        agents[0].callback = raising
        for agent in agents:
            colosseum.submit(agent)
        assert colosseum.queued == 2

        colosseum.on_tick(100.0)

        assert [agent_id for agent_id, _ in scores] == [agents[1].id]
        assert len(results) == 1
        assert not results[0].failed
        assert colosseum.queued == 0
        assert colosseum.slots[0].occupant.agents == agents[2:4]

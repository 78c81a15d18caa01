"""
Tests for the evolution layer.

Tests:
- Selection, crossover planning and breeding
- The generational loop of PopulationController
- Routing offspring through the trainer
- Checkpoint save/load
"""
import random

import pytest

from colosseum.evolution.agent import Agent, best_of
from colosseum.evolution.crossover import PolicyBreeder, interpolation_fractions, plan_offspring
from colosseum.evolution.population import PopulationController
from colosseum.evolution.selection import FitnessProportionalSelection, TruncationSelection, rank_agents
from colosseum.training.trainer import Trainer

from .factories import AgentFactory, FakePolicy


def score_all(controller, scores=None):
    """Report a score for every unscored agent; returns the agents scored."""
    agents = [agent for agent in controller.agents.values() if not agent.scored]
    for i, agent in enumerate(agents):
        score = scores[i] if scores is not None else float(i)
        controller.on_agent_scored(agent.id, score)
    return agents


class TestAgent:
    """Tests for agent fitness."""

    def test_fitness_is_best_of_scores(self):
        """Test max(score, previous_score)."""
        agent = AgentFactory(score=1.0, previous_score=3.0)
        assert agent.fitness == 3.0

    def test_missing_scores_count_as_minus_infinity(self):
        """Test that None never wins."""
        assert best_of(None, None) == float('-inf')
        assert best_of(None, -5.0) == -5.0
        assert not AgentFactory().scored


class TestSelection:
    """Tests for selection strategies."""

    def test_rank_is_ascending_and_stable(self):
        """Test sort order, ties keep input order."""
        a = AgentFactory(score=1.0)
        b = AgentFactory(score=0.0)
        c = AgentFactory(score=1.0)

        assert rank_agents([a, b, c]) == [b, a, c]

    def test_truncation_keeps_best(self):
        """Test that the top seeds survive, best last."""
        agents = [AgentFactory(score=float(s)) for s in (3, 1, 4, 2)]

        seeds, eliminated = TruncationSelection(seeds_n=2).select(agents)

        assert [agent.score for agent in seeds] == [3.0, 4.0]
        assert sorted(agent.score for agent in eliminated) == [1.0, 2.0]

    def test_proportional_probabilities_shift_negatives(self):
        """Test the shift so the lowest fitness gets zero weight."""
        agents = [AgentFactory(score=-2.0), AgentFactory(score=0.0), AgentFactory(score=2.0)]

        probabilities = FitnessProportionalSelection().probabilities(agents)

        assert probabilities == pytest.approx([0.0, 1 / 3, 2 / 3])

    def test_proportional_uniform_when_all_zero(self):
        """Test the uniform fallback."""
        agents = [AgentFactory(score=0.0), AgentFactory()]

        probabilities = FitnessProportionalSelection().probabilities(agents)

        assert probabilities == [0.5, 0.5]

    def test_proportional_select_draws_with_replacement(self):
        """Test the number of draws."""
        agents = [AgentFactory(score=1.0), AgentFactory(score=2.0)]
        picked = FitnessProportionalSelection(random.Random(0)).select(agents, 5)
        assert len(picked) == 5
        assert all(agent in agents for agent in picked)


class TestCrossover:
    """Tests for crossover planning and breeding."""

    def test_interpolation_fractions(self):
        """Test evenly spaced fractions in (0, 1)."""
        assert interpolation_fractions(3) == [0.25, 0.5, 0.75]

    def test_plan_covers_every_pair(self):
        """Test pairs x splits matings."""
        seeds = AgentFactory.create_batch(3)
        matings = plan_offspring(seeds, 2)

        assert len(matings) == 6
        pairs = {(m.parent_a.id, m.parent_b.id) for m in matings}
        assert len(pairs) == 3

    def test_single_seed_has_no_pairs(self):
        """Test that one seed plans nothing."""
        assert plan_offspring(AgentFactory.create_batch(1), 1) == []

    def test_crossover_mutates_child(self):
        """Test that a child is combined and then mutated."""
        breeder = PolicyBreeder(mutation_rate=0.5, mutation_std=0.2)
        child = breeder.crossover(FakePolicy(value=1.0), FakePolicy(value=3.0), 0.25)

        assert child.mutations == [(0.5, 0.2)]
        assert child.value == pytest.approx(0.25 * 1.0 + 0.75 * 3.0 + 0.1)

    def test_noise_clone(self):
        """Test additive noise on every parameter of a copy."""
        breeder = PolicyBreeder(additive_noise_std=0.3)
        parent = FakePolicy(value=1.0)

        clone = breeder.noise_clone(parent)

        assert breeder.noise_enabled
        assert clone.mutations == [(1.0, 0.3)]
        assert parent.mutations == []


class TestPopulationController:
    """Tests for the generational loop."""

    @pytest.fixture
    def submitted(self):
        return []

    @pytest.fixture
    def stats(self):
        return []

    @pytest.fixture
    def controller(self, config, submitted, stats):
        return PopulationController(
            config,
            submit=submitted.append,
            policy_factory=FakePolicy,
            on_generation_stats=lambda epoch, scores: stats.append((epoch, scores)),
        )

    def test_start_submits_mutated_population(self, controller, submitted):
        """Test the initial generation."""
        controller.start()

        assert len(submitted) == 4
        assert controller.epoch == 0
        assert controller.pending_count == 4
        for agent in submitted:
            assert agent.policy.mutations == [(1.0, 10.0)]
            assert agent.callback == controller.on_agent_scored

    def test_start_twice_raises(self, controller):
        """Test that a controller runs once."""
        controller.start()
        with pytest.raises(RuntimeError):
            controller.start()

    def test_scores_counted_once(self, controller):
        """Test duplicate and unknown reports."""
        controller.start()
        agent_id = next(iter(controller.agents))

        assert controller.on_agent_scored(agent_id, 1.0) is True
        assert controller.on_agent_scored(agent_id, 2.0) is False
        assert controller.on_agent_scored('agent-999999', 2.0) is False

        assert controller.rejected_scores == 2
        assert controller.agents[agent_id].score == 1.0
        assert controller.pending_count + controller.scored_this_generation == 4

    def test_generation_evolves_when_all_scored(self, controller, submitted, stats):
        """Test one evolution step with one seed and four agents."""
        controller.start()
        first = list(controller.agents.values())

        score_all(controller, [1.0, 2.0, 4.0, 3.0])

        assert controller.epoch == 1
        assert stats == [(0, [1.0, 2.0, 3.0, 4.0])]
        assert len(controller.agents) == 4
        assert len(controller.agents) % 2 == 0

        seed = first[2]
        assert seed.id in controller.agents
        assert seed.previous_score == 4.0
        assert seed.score is None
        assert seed.generation == 1

        # Three eliminated, three bred
        for agent in first:
            if agent is not seed:
                assert agent.policy.disposed
        origins = sorted(agent.origin for agent in controller.agents.values() if agent is not seed)
        assert origins == ['fill', 'fill', 'fill']
        assert len(submitted) == 8

    def test_seed_keeps_best_score_across_generations(self, controller):
        """Test that a seed scoring lower still ranks by its best."""
        controller.start()
        score_all(controller, [1.0, 2.0, 9.0, 3.0])
        seed = controller.get_best()

        score_all(controller, [0.0, 1.0, 2.0, 3.0])

        assert seed.previous_score == 9.0
        assert controller.get_best() is seed

    def test_pairwise_offspring_count(self, config, submitted):
        """Test three seeds, two splits: 3 pairs x 2, plus one for parity."""
        controller = PopulationController(
            config.with_overrides(seeds_n=3, crossover_splits=2),
            submit=submitted.append,
            policy_factory=FakePolicy,
        )
        controller.start()
        score_all(controller)

        origins = [agent.origin for agent in controller.agents.values()]
        assert len(controller.agents) == 10
        assert origins.count('crossover') == 6
        assert origins.count('duplicate') == 1

    @pytest.mark.parametrize('seeds_n,splits,noise', [
        (1, 1, 0.0),
        (2, 1, 0.0),
        (3, 1, 0.0),
        (3, 1, 0.1),
        (4, 3, 0.0),
        (2, 2, 0.5),
    ])
    def test_generation_size_even(self, config, seeds_n, splits, noise):
        """Test that every generation can be paired off."""
        controller = PopulationController(
            config.with_overrides(seeds_n=seeds_n, crossover_splits=splits, additive_noise_std=noise),
            submit=lambda agent: None,
            policy_factory=FakePolicy,
        )
        controller.start()

        for _ in range(3):
            score_all(controller)
            assert len(controller.agents) % 2 == 0
            assert len(controller.agents) >= config.population_size

    def test_offspring_refined_before_submission(self, config, submitted, replay):
        """Test that offspring wait for the trainer."""
        trainer = Trainer(trainable=True, steps_per_agent=3)
        controller = PopulationController(
            config, submit=submitted.append, policy_factory=FakePolicy,
            trainer=trainer, replay=replay,
        )
        controller.start()
        score_all(controller, [1.0, 2.0, 4.0, 3.0])

        # Only the seed went straight back
        assert len(submitted) == 5
        assert controller.awaiting_refine == 3

        while trainer.step():
            pass
        trainer.dispatch()

        assert len(submitted) == 8
        assert controller.awaiting_refine == 0
        for agent in submitted[5:]:
            assert agent.id in controller.agents
            assert not agent.policy.disposed
        trainer.stop()

    def test_trainer_stop_does_not_submit(self, config, submitted, replay):
        """Test that a stopped fine-tune leaves the agent out."""
        trainer = Trainer(trainable=True)
        controller = PopulationController(
            config, submit=submitted.append, policy_factory=FakePolicy,
            trainer=trainer, replay=replay,
        )
        controller.start()
        score_all(controller)

        assert trainer.stop() is True

        assert len(submitted) == 5
        assert controller.awaiting_refine == 0

    def test_get_top_n(self, controller):
        """Test ranking queries."""
        controller.start()
        for i, agent in enumerate(controller.agents.values()):
            agent.score = float(i)

        top = controller.get_top_n(2)

        assert [agent.score for agent in top] == [3.0, 2.0]
        assert controller.get_best() is top[0]

    def test_checkpoint_round_trip(self, config, controller, tmp_path):
        """Test saving a generation and resuming from it."""
        controller.start()
        score_all(controller, [1.0, 2.0, 4.0, 3.0])
        path = controller.save_checkpoint(str(tmp_path))
        saved = {agent.id: agent.policy.value for agent in controller.agents.values()}

        resumed_submitted = []
        resumed = PopulationController(config, submit=resumed_submitted.append, policy_factory=FakePolicy)
        resumed.load_checkpoint(str(path))
        resumed.start()

        assert resumed.epoch == 1
        assert {agent.id: agent.policy.value for agent in resumed.agents.values()} == saved
        assert len(resumed.stats_history) == 1
        assert len(resumed_submitted) == 4

        # New ids continue after the saved ones
        score_all(resumed)
        assert all(agent_id not in saved for agent_id in resumed.agents if resumed.agents[agent_id].generation == 2)
        assert len(set(resumed.agents)) == len(resumed.agents)

    def test_load_missing_checkpoint_raises(self, controller, tmp_path):
        """Test loading from an empty directory."""
        with pytest.raises(FileNotFoundError):
            controller.load_checkpoint(str(tmp_path))

    def test_dispose(self, controller):
        """Test that every policy is released."""
        controller.start()
        agents = list(controller.agents.values())

        controller.dispose()

        assert controller.agents == {}
        assert all(agent.policy.disposed for agent in agents)

"""
Tests for ColosseumConfig.
"""
import pytest

from colosseum.config import ColosseumConfig


class TestColosseumConfig:
    """Tests for configuration parsing and validation."""

    def test_defaults_are_valid(self):
        """Test that the default configuration validates."""
        ColosseumConfig().validate()

    def test_from_dict_accepts_camel_case(self):
        """Test option aliases."""
        config = ColosseumConfig.from_dict({
            'totalArenas': 3,
            'fightersPerEpoch': 12,
            'seedsN': 4,
            'crossoversSplits': 2,
            'timeLimitMs': 5000,
            'hidden_units': 32,
        })

        assert config.total_arenas == 3
        assert config.population_size == 12
        assert config.fighters_per_epoch == 12
        assert config.seeds_n == 4
        assert config.crossover_splits == 2
        assert config.time_limit_ms == 5000
        assert config.hidden_units == 32

    def test_unknown_option_rejected(self):
        """Test that typos are not silently ignored."""
        with pytest.raises(ValueError, match="Unknown configuration option"):
            ColosseumConfig.from_dict({'totalArena': 3})

    @pytest.mark.parametrize('overrides', [
        {'population_size': 5},
        {'population_size': 0},
        {'seeds_n': 0},
        {'seeds_n': 11},
        {'total_arenas': 0},
        {'mutation_rate': 1.5},
        {'crossover_splits': 0},
        {'trainer_steps_per_agent': 0},
        {'critic_tau': 0.0},
        {'discount_factor': 1.2},
    ])
    def test_invalid_values_rejected(self, overrides):
        """Test validation of each constrained option."""
        with pytest.raises(ValueError):
            ColosseumConfig().with_overrides(**overrides)

    def test_with_overrides_copies(self):
        """Test that overrides leave the original untouched."""
        config = ColosseumConfig()
        changed = config.with_overrides(total_arenas=6)

        assert changed.total_arenas == 6
        assert config.total_arenas == 2

    def test_to_dict_round_trip(self):
        """Test the plain dictionary form."""
        config = ColosseumConfig(population_size=6, seed=3)

        assert ColosseumConfig.from_dict(config.to_dict()) == config

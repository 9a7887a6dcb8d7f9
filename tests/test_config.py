"""
Tests for configuration dataclasses, presets and file loading.
"""
import json

import pytest

from neural_npc.config import (
    ARCHITECTURE,
    BrainConfig,
    BrainPresets,
    MemoryConfig,
    OnlineTrainingConfig,
    TrainingConfig,
)


class TestArchitecture:
    def test_derived_sizes(self):
        assert ARCHITECTURE.head_dim == 16
        assert ARCHITECTURE.sequence_length == 34
        assert ARCHITECTURE.experience_input_dim == 75

    def test_frozen(self):
        with pytest.raises(AttributeError):
            ARCHITECTURE.embedding_dim = 32


class TestClamping:
    """Out-of-range values are pulled back into bounds."""

    def test_brain_temperature(self):
        assert BrainConfig(temperature=0.0).temperature == 0.05
        assert BrainConfig(temperature=50.0).temperature == 5.0

    def test_memory(self):
        cfg = MemoryConfig(episodic_capacity=100, replay_capacity=0, decay_rate=-1.0)
        assert cfg.episodic_capacity == 32
        assert cfg.replay_capacity == 1
        assert cfg.decay_rate == 0.0

    def test_training(self):
        cfg = TrainingConfig(epochs=0, batch_size=-3, validation_split=2.0, max_weight_samples=0)
        assert cfg.epochs == 1
        assert cfg.batch_size == 1
        assert cfg.validation_split == 0.9
        assert cfg.max_weight_samples == 1

    def test_online(self):
        cfg = OnlineTrainingConfig(update_interval=0, max_update_time_ms=-5.0)
        assert cfg.update_interval == 1
        assert cfg.max_update_time_ms == 0.0


class TestBrainConfig:
    def test_from_dict_ignores_unknown_keys(self):
        cfg = BrainConfig.from_dict({"temperature": 1.2, "colour": "blue"})
        assert cfg.temperature == 1.2

    def test_nested_dicts(self):
        cfg = BrainConfig.from_dict({
            "memory": {"replay_capacity": 50},
            "online": {"update_interval": 10, "apply_updates": False},
        })
        assert isinstance(cfg.memory, MemoryConfig)
        assert cfg.memory.replay_capacity == 50
        assert cfg.online.update_interval == 10
        assert cfg.online.apply_updates is False

    def test_json_round_trip(self, tmp_path):
        path = tmp_path / "cfg" / "brain.json"
        original = BrainConfig(temperature=0.5, seed=9, memory=MemoryConfig(replay_capacity=64))
        original.save(str(path))

        loaded = BrainConfig.load(str(path))
        assert loaded.to_dict() == original.to_dict()

    def test_yaml(self, tmp_path):
        path = tmp_path / "brain.yaml"
        path.write_text("temperature: 1.5\nseed: 4\nonline:\n  batch_size: 3\n")

        cfg = BrainConfig.load(str(path))
        assert cfg.temperature == 1.5
        assert cfg.seed == 4
        assert cfg.online.batch_size == 3

    def test_missing_file(self, tmp_path):
        assert BrainConfig.load(str(tmp_path / "nope.json")) is None

    def test_invalid_files(self, tmp_path):
        bad_json = tmp_path / "bad.json"
        bad_json.write_text("{oops")
        not_mapping = tmp_path / "list.json"
        not_mapping.write_text(json.dumps([1, 2]))
        bad_yaml = tmp_path / "bad.yaml"
        bad_yaml.write_text("a: [unclosed")

        assert BrainConfig.load(str(bad_json)) is None
        assert BrainConfig.load(str(not_mapping)) is None
        assert BrainConfig.load(str(bad_yaml)) is None


class TestPresets:
    def test_default(self):
        cfg = BrainPresets.default()
        assert cfg.temperature == 0.8
        assert cfg.online.update_interval == 100
        assert cfg.online.apply_updates

    def test_observation_only(self):
        assert BrainPresets.observation_only().online.apply_updates is False

    def test_fast_learner(self):
        cfg = BrainPresets.fast_learner()
        assert cfg.online.update_interval < BrainPresets.default().online.update_interval

    def test_deterministic(self):
        assert BrainPresets.deterministic_test().seed == 42
        assert BrainPresets.deterministic_test(7).seed == 7


if __name__ == "__main__":
    pytest.main([__file__, "-v"])

"""
Tests for the offline trainer.

Finite differences are expensive, so every run here uses a handful of
samples, batch size 1 and two sampled weights per dense layer.
"""
import numpy as np
import pytest

from neural_npc.config import TrainingConfig
from neural_npc.neural.encoders import PerceptionEncoder
from neural_npc.neural.trainer import Trainer, TrainingReport, TrainingSample
from neural_npc.neural.transformer import TransformerBrain
from neural_npc.types import ACTION_TYPES


def make_samples(count: int, seed: int = 0):
    gen = np.random.default_rng(seed)
    return [
        TrainingSample(
            perception_vector=list(gen.random(30)),
            action_label=i % 6,
            needs=list(gen.random(5)),
        )
        for i in range(count)
    ]


@pytest.fixture
def trainer():
    rng = np.random.default_rng(3)
    return Trainer(TransformerBrain(rng=rng), PerceptionEncoder(rng=rng), rng=rng)


def tiny_config(**overrides):
    values = dict(
        epochs=2,
        batch_size=1,
        validation_split=0.34,
        max_weight_samples=2,
        early_stopping_patience=5,
    )
    values.update(overrides)
    return TrainingConfig(**values)


class TestTrainOffline:
    """Report contents and encoder updates."""

    def test_report_fields(self, trainer):
        report = trainer.train_offline(make_samples(3), tiny_config())

        assert isinstance(report, TrainingReport)
        assert report.epochs == 2
        assert len(report.loss_history) == 2
        assert len(report.accuracy_history) == 2
        assert report.loss_history[0]["epoch"] == 0
        assert set(report.accuracy_history[1]) == {"epoch", "train_acc", "val_acc"}
        assert report.final_train_loss > 0.0
        assert report.final_val_loss > 0.0
        assert 0.0 <= report.final_val_accuracy <= 1.0
        assert report.best_val_loss <= report.loss_history[0]["val_loss"]
        assert report.training_time_ms > 0.0
        assert report.convergence_epoch == 1

    def test_total_parameters(self, trainer):
        """Perception encoder (6400) plus decision network (67529)."""
        assert trainer.count_parameters() == 73929
        report = trainer.train_offline(make_samples(3), tiny_config(epochs=1))
        assert report.total_parameters == 73929

    def test_per_action_keys(self, trainer):
        report = trainer.train_offline(make_samples(3), tiny_config(epochs=1))
        assert list(report.per_action_accuracy) == [a.value for a in ACTION_TYPES]

    def test_encoder_weights_change(self, trainer):
        """Only the perception encoder moves; the network is held fixed."""
        enc_before = [layer.bias.data.copy() for layer in trainer.perception_encoder.get_linear_layers()]
        head_before = trainer.network.action_head.weight.data.copy()

        trainer.train_offline(make_samples(3), tiny_config(epochs=1))

        enc_after = [layer.bias.data for layer in trainer.perception_encoder.get_linear_layers()]
        assert any(not np.array_equal(b, a) for b, a in zip(enc_before, enc_after))
        assert np.array_equal(head_before, trainer.network.action_head.weight.data)

    def test_early_stopping(self, trainer):
        """With no validation split the val loss never improves after epoch 0."""
        report = trainer.train_offline(
            make_samples(1),
            tiny_config(epochs=3, validation_split=0.0, early_stopping_patience=1),
        )
        assert report.epochs == 2
        assert report.convergence_epoch == 1
        assert report.best_val_epoch == 0

    def test_to_dict(self, trainer):
        data = trainer.train_offline(make_samples(2), tiny_config(epochs=1, validation_split=0.5)).to_dict()
        assert data["epochs"] == 1
        assert "loss_history" in data


class TestEvaluate:
    def test_empty(self, trainer):
        result = trainer.evaluate([])
        assert result.loss == 0.0
        assert result.accuracy == 0.0
        assert all(v == 0.0 for v in result.per_action_accuracy.values())

    def test_accuracy_matches_argmax(self, trainer):
        """Labelling a sample with the network's own choice scores 100%."""
        sample = make_samples(1)[0]
        probs = trainer._forward_sample(sample).action_probabilities
        sample.action_label = int(np.argmax(probs))

        result = trainer.evaluate([sample])
        assert result.accuracy == 1.0
        assert result.per_action_accuracy[ACTION_TYPES[sample.action_label].value] == 1.0
        assert result.loss > 0.0

    def test_does_not_update(self, trainer):
        before = trainer.perception_encoder.get_linear_layers()[0].weight.data.copy()
        trainer.evaluate(make_samples(2))
        assert np.array_equal(before, trainer.perception_encoder.get_linear_layers()[0].weight.data)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])

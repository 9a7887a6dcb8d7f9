"""
Tests for weight document export, validation and loading.
"""
import json

import numpy as np
import pytest

from neural_npc.neural.encoders import ExperienceEncoder, PerceptionEncoder
from neural_npc.neural.serialization import (
    TrainedOn,
    WeightFormatError,
    WeightSerializer,
    named_parameters,
)
from neural_npc.neural.transformer import TransformerBrain
from neural_npc.persistence import WeightStore


def build_model(seed: int):
    rng = np.random.default_rng(seed)
    return TransformerBrain(rng=rng), PerceptionEncoder(rng=rng), ExperienceEncoder(rng=rng)


def snapshot(model):
    return {key: tensor.data.copy() for key, tensor in named_parameters(*model).items()}


def unchanged(model, before) -> bool:
    after = named_parameters(*model)
    return all(np.array_equal(before[key], after[key].data) for key in before)


def decision(model):
    brain, perception_encoder, _ = model
    embedding = perception_encoder.encode(list(np.linspace(0.0, 1.0, 30)))
    return brain.forward(embedding, [], []).action_probabilities


@pytest.fixture
def serializer():
    return WeightSerializer()


@pytest.fixture
def document(serializer):
    return json.loads(serializer.serialize(*build_model(1)))


class TestExport:
    """Document envelope and contents."""

    def test_envelope(self, document):
        assert document["version"] == "1.0"
        assert document["architecture"] == {
            "embeddingDim": 64,
            "numHeads": 4,
            "numLayers": 2,
            "ffnHiddenDim": 128,
            "numActions": 6,
            "numMemorySlots": 32,
            "perceptionInputDim": 30,
        }
        assert "trainedOn" not in document

    def test_total_parameters(self, document):
        """Network, both encoders, CLS token and positional offset."""
        assert document["totalParameters"] == 85449
        assert sum(len(v) for v in document["weights"].values()) == 85449

    def test_keys(self, document):
        weights = document["weights"]
        assert len(weights["brain.clsToken"]) == 64
        assert len(weights["brain.positionalOffset"]) == 34 * 64
        assert len(weights["perception.linear0.weight"]) == 30 * 64
        assert len(weights["experience.linear0.weight"]) == 75 * 64
        assert "brain.linear13.bias" in weights
        assert "brain.ln3.gamma" in weights

    def test_trained_on(self, serializer):
        trained_on = TrainedOn(samples=120, epochs=7, final_val_accuracy=0.61, timestamp="2024-01-01T00:00:00")
        document = json.loads(serializer.serialize(*build_model(1), trained_on=trained_on))
        assert document["trainedOn"] == {
            "samples": 120,
            "epochs": 7,
            "finalValAccuracy": 0.61,
            "timestamp": "2024-01-01T00:00:00",
        }
        assert serializer.parse(document).trained_on == trained_on

    def test_export_is_indented(self, serializer):
        text = serializer.export_weights(*build_model(1))
        assert text.startswith("{\n  ")
        assert json.loads(text)["version"] == "1.0"


class TestLoad:
    def test_round_trip_reproduces_decisions(self, serializer):
        """A fresh model loaded from a document decides exactly like the source."""
        source = build_model(1)
        target = build_model(2)
        assert decision(source) != decision(target)

        data = serializer.deserialize(serializer.serialize(*source), *target)

        assert data.total_parameters == 85449
        assert data.architecture["embeddingDim"] == 64
        assert decision(source) == decision(target)

    def test_accepts_mapping(self, serializer, document):
        target = build_model(2)
        serializer.deserialize(document, *target)
        assert target[0].cls_token.to_list() == document["weights"]["brain.clsToken"]

    def test_partial_document(self, serializer, document):
        """Only keys present in the document are overwritten."""
        target = build_model(2)
        before = snapshot(target)
        partial = dict(document, weights={"brain.clsToken": document["weights"]["brain.clsToken"]})

        serializer.deserialize(partial, *target)

        assert target[0].cls_token.to_list() == document["weights"]["brain.clsToken"]
        assert np.array_equal(target[0].action_head.weight.data, before["brain.linear12.weight"])

    def test_unknown_keys_ignored(self, serializer, document):
        document["weights"]["brain.somethingElse"] = [1.0, 2.0]
        serializer.deserialize(document, *build_model(2))


class TestRejection:
    """Malformed documents raise and leave every parameter untouched."""

    @pytest.fixture
    def target(self):
        return build_model(2)

    def assert_rejected(self, serializer, payload, target):
        before = snapshot(target)
        with pytest.raises(WeightFormatError):
            serializer.deserialize(payload, *target)
        assert unchanged(target, before)

    def test_not_json(self, serializer, target):
        self.assert_rejected(serializer, "{not json", target)

    def test_not_an_object(self, serializer, target):
        self.assert_rejected(serializer, "[1, 2, 3]", target)

    def test_missing_version(self, serializer, document, target):
        del document["version"]
        self.assert_rejected(serializer, document, target)

    def test_version_mismatch(self, serializer, document, target):
        document["version"] = "2.0"
        self.assert_rejected(serializer, document, target)

    def test_weights_not_object(self, serializer, document, target):
        document["weights"] = [0.0]
        self.assert_rejected(serializer, document, target)

    def test_architecture_mismatch(self, serializer, document, target):
        document["architecture"]["embeddingDim"] = 32
        self.assert_rejected(serializer, document, target)

    def test_wrong_length_after_valid_keys(self, serializer, document, target):
        """A bad array late in the document must not leave earlier keys applied."""
        document["weights"]["brain.positionalOffset"] = [0.0] * 10
        self.assert_rejected(serializer, document, target)

    def test_non_numeric_values(self, serializer, document, target):
        document["weights"]["brain.clsToken"] = ["a"] * 64
        self.assert_rejected(serializer, document, target)

    def test_booleans_rejected(self, serializer, document, target):
        document["weights"]["brain.clsToken"] = [True] * 64
        self.assert_rejected(serializer, document, target)

    @pytest.mark.parametrize("value", ["lots", None, [1], -5, 2.5])
    def test_bad_total_parameters(self, serializer, document, target, value):
        document["totalParameters"] = value
        self.assert_rejected(serializer, document, target)

    @pytest.mark.parametrize("trained_on", [
        {"samples": "many"},
        {"samples": None},
        {"epochs": [3]},
        {"finalValAccuracy": "high"},
        {"timestamp": 20240101},
    ])
    def test_bad_trained_on(self, serializer, document, target, trained_on):
        document["trainedOn"] = trained_on
        self.assert_rejected(serializer, document, target)

    def test_integral_float_count_accepted(self, serializer, document):
        document["totalParameters"] = 85449.0
        document["trainedOn"] = {"samples": 10.0, "epochs": 2}
        data = serializer.parse(document)
        assert data.total_parameters == 85449
        assert data.trained_on.samples == 10


class TestStorage:
    def test_save_and_load(self, tmp_path):
        serializer = WeightSerializer(WeightStore(tmp_path))
        source = build_model(1)
        target = build_model(2)

        assert serializer.save_to_storage(1234, *source)
        assert (tmp_path / "neural_weights_1234.json").exists()
        assert serializer.load_from_storage(1234, *target)
        assert decision(source) == decision(target)

    def test_nothing_stored(self, tmp_path):
        serializer = WeightSerializer(WeightStore(tmp_path))
        assert serializer.load_from_storage(99, *build_model(1)) is False

    def test_no_store(self, serializer):
        model = build_model(1)
        assert serializer.save_to_storage(1, *model) is False
        assert serializer.load_from_storage(1, *model) is False

    def test_rejected_document_leaves_weights(self, tmp_path):
        store = WeightStore(tmp_path)
        store.save(5, {"version": "0.9", "weights": {}})
        target = build_model(2)
        before = snapshot(target)

        assert WeightSerializer(store).load_from_storage(5, *target) is False
        assert unchanged(target, before)

    def test_falls_back_to_backup_that_validates(self, tmp_path):
        store = WeightStore(tmp_path)
        serializer = WeightSerializer(store)
        source = build_model(1)
        assert serializer.save_to_storage(9, *source)
        assert serializer.save_to_storage(9, *source)

        primary = tmp_path / "neural_weights_9.json"
        document = json.loads(primary.read_text())
        document["weights"]["brain.clsToken"] = "garbage"
        primary.write_text(json.dumps(document))

        target = build_model(2)
        assert serializer.load_from_storage(9, *target)
        assert decision(source) == decision(target)

    def test_wrong_length_primary_falls_back(self, tmp_path):
        store = WeightStore(tmp_path)
        serializer = WeightSerializer(store)
        source = build_model(1)
        serializer.save_to_storage(3, *source)
        serializer.save_to_storage(3, *source)

        primary = tmp_path / "neural_weights_3.json"
        document = json.loads(primary.read_text())
        document["weights"]["brain.positionalOffset"] = [0.0] * 10
        primary.write_text(json.dumps(document))

        target = build_model(2)
        assert serializer.load_from_storage(3, *target)
        assert decision(source) == decision(target)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])

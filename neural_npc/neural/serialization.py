"""
Weight document (de)serialization.

Every trainable tensor is exported under a dotted key into a flat map of
float lists, wrapped in an envelope carrying the format version, the
architecture constants and the total parameter count:

    {
      "version": "1.0",
      "architecture": {"embeddingDim": 64, ...},
      "totalParameters": 123456,
      "trainedOn": {"samples": ..., "epochs": ..., "finalValAccuracy": ..., "timestamp": ...},
      "weights": {"perception.linear0.weight": [...], ..., "brain.positionalOffset": [...]}
    }

Loading validates the entire document before writing a single value, so a
rejected document leaves the live parameters exactly as they were.
"""
from __future__ import annotations

import json
import logging
import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Mapping, Optional, Union

from ..config import ARCHITECTURE
from ..persistence import Seed, WeightStore
from .encoders import ExperienceEncoder, PerceptionEncoder
from .tensor import Tensor
from .transformer import TransformerBrain

logger = logging.getLogger(__name__)

WEIGHT_FORMAT_VERSION = "1.0"


class WeightFormatError(ValueError):
    """A weight document is malformed or does not fit this architecture."""


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


def _is_count(value: Any) -> bool:
    return _is_number(value) and value >= 0 and float(value).is_integer()


@dataclass
class TrainedOn:
    samples: int
    epochs: int
    final_val_accuracy: float
    timestamp: str = field(default_factory=lambda: datetime.now().isoformat())

    def to_dict(self) -> Dict[str, Any]:
        return {
            "samples": self.samples,
            "epochs": self.epochs,
            "finalValAccuracy": self.final_val_accuracy,
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "TrainedOn":
        """
        Raises:
            WeightFormatError: If a field has the wrong type
        """
        samples = data.get("samples", 0)
        epochs = data.get("epochs", 0)
        accuracy = data.get("finalValAccuracy", 0.0)
        timestamp = data.get("timestamp", "")
        for name, value in (("samples", samples), ("epochs", epochs)):
            if not _is_count(value):
                raise WeightFormatError(f"trainedOn.{name} must be a non-negative integer, got {value!r}")
        if not _is_number(accuracy):
            raise WeightFormatError(f"trainedOn.finalValAccuracy must be a number, got {accuracy!r}")
        if not isinstance(timestamp, str):
            raise WeightFormatError(f"trainedOn.timestamp must be a string, got {timestamp!r}")
        return cls(
            samples=int(samples),
            epochs=int(epochs),
            final_val_accuracy=float(accuracy),
            timestamp=timestamp,
        )


@dataclass
class WeightData:
    """Parsed weight document."""
    version: str
    architecture: Dict[str, int]
    total_parameters: int
    weights: Dict[str, list]
    trained_on: Optional[TrainedOn] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "version": self.version,
            "architecture": dict(self.architecture),
            "totalParameters": self.total_parameters,
        }
        if self.trained_on is not None:
            data["trainedOn"] = self.trained_on.to_dict()
        data["weights"] = self.weights
        return data


def named_parameters(
    brain: TransformerBrain,
    perception_encoder: PerceptionEncoder,
    experience_encoder: ExperienceEncoder,
) -> Dict[str, Tensor]:
    """Ordered dotted-key view of every persisted tensor (live references)."""
    params: Dict[str, Tensor] = {}
    for prefix, linears, norms in (
        ("perception", perception_encoder.get_linear_layers(), perception_encoder.get_layer_norms()),
        ("experience", experience_encoder.get_linear_layers(), experience_encoder.get_layer_norms()),
        ("brain", brain.get_all_linear_layers(), brain.get_all_layer_norms()),
    ):
        for i, layer in enumerate(linears):
            params[f"{prefix}.linear{i}.weight"] = layer.weight
            params[f"{prefix}.linear{i}.bias"] = layer.bias
        for i, norm in enumerate(norms):
            params[f"{prefix}.ln{i}.gamma"] = norm.gamma
            params[f"{prefix}.ln{i}.beta"] = norm.beta

    params["brain.clsToken"] = brain.cls_token
    params["brain.positionalOffset"] = brain.positional_offset
    return params


class WeightSerializer:
    """
    Converts a brain and its encoders to and from weight documents.

    Args:
        store: Optional keyed store used by save_to_storage/load_from_storage
    """

    def __init__(self, store: Optional[WeightStore] = None):
        self.store = store

    def to_weight_data(
        self,
        brain: TransformerBrain,
        perception_encoder: PerceptionEncoder,
        experience_encoder: ExperienceEncoder,
        trained_on: Optional[TrainedOn] = None,
    ) -> WeightData:
        params = named_parameters(brain, perception_encoder, experience_encoder)
        return WeightData(
            version=WEIGHT_FORMAT_VERSION,
            architecture=ARCHITECTURE.to_dict(),
            total_parameters=sum(t.size for t in params.values()),
            weights={key: tensor.to_list() for key, tensor in params.items()},
            trained_on=trained_on,
        )

    def serialize(
        self,
        brain: TransformerBrain,
        perception_encoder: PerceptionEncoder,
        experience_encoder: ExperienceEncoder,
        trained_on: Optional[TrainedOn] = None,
    ) -> str:
        return json.dumps(self.to_weight_data(brain, perception_encoder, experience_encoder, trained_on).to_dict())

    def export_weights(
        self,
        brain: TransformerBrain,
        perception_encoder: PerceptionEncoder,
        experience_encoder: ExperienceEncoder,
    ) -> str:
        """Pretty-printed document for sharing a baseline."""
        data = self.to_weight_data(brain, perception_encoder, experience_encoder)
        return json.dumps(data.to_dict(), indent=2)

    def parse(self, payload: Union[str, bytes, Mapping[str, Any]]) -> WeightData:
        """
        Validate a document without touching any model.

        Raises:
            WeightFormatError: If the envelope, architecture or any weight
                array is malformed
        """
        if isinstance(payload, (str, bytes)):
            try:
                payload = json.loads(payload)
            except ValueError as e:
                raise WeightFormatError(f"weight document is not valid JSON: {e}") from e

        if not isinstance(payload, Mapping):
            raise WeightFormatError("weight document must be a JSON object")

        version = payload.get("version")
        if not isinstance(version, str) or not version:
            raise WeightFormatError("weight document has no version string")
        if version != WEIGHT_FORMAT_VERSION:
            raise WeightFormatError(f"unsupported weight format version {version!r}")

        weights = payload.get("weights")
        if not isinstance(weights, Mapping):
            raise WeightFormatError("'weights' must be an object")

        expected_arch = ARCHITECTURE.to_dict()
        architecture = payload.get("architecture", expected_arch)
        if not isinstance(architecture, Mapping):
            raise WeightFormatError("'architecture' must be an object")
        for key, expected in expected_arch.items():
            if key in architecture and architecture[key] != expected:
                raise WeightFormatError(
                    f"architecture mismatch: {key}={architecture[key]!r}, expected {expected}"
                )

        total_parameters = payload.get("totalParameters", 0)
        if not _is_count(total_parameters):
            raise WeightFormatError(f"'totalParameters' must be a non-negative integer, got {total_parameters!r}")

        trained_on = payload.get("trainedOn")
        if trained_on is not None and not isinstance(trained_on, Mapping):
            raise WeightFormatError("'trainedOn' must be an object")

        for key, values in weights.items():
            if not isinstance(values, list) or not all(_is_number(v) for v in values):
                raise WeightFormatError(f"weight {key!r} must be a list of finite numbers")

        return WeightData(
            version=version,
            architecture={k: architecture.get(k, v) for k, v in expected_arch.items()},
            total_parameters=int(total_parameters),
            weights=dict(weights),
            trained_on=TrainedOn.from_dict(trained_on) if trained_on is not None else None,
        )

    def validate(
        self,
        payload: Union[str, bytes, Mapping[str, Any]],
        brain: TransformerBrain,
        perception_encoder: PerceptionEncoder,
        experience_encoder: ExperienceEncoder,
    ) -> WeightData:
        """
        Full check of a document against these models, without writing.

        Raises:
            WeightFormatError: If the document is malformed or any array has
                the wrong length
        """
        data = self.parse(payload)
        params = named_parameters(brain, perception_encoder, experience_encoder)
        for key, values in data.weights.items():
            tensor = params.get(key)
            if tensor is not None and len(values) != tensor.size:
                raise WeightFormatError(
                    f"weight {key!r} has {len(values)} values, expected {tensor.size}"
                )
        return data

    def deserialize(
        self,
        payload: Union[str, bytes, Mapping[str, Any]],
        brain: TransformerBrain,
        perception_encoder: PerceptionEncoder,
        experience_encoder: ExperienceEncoder,
    ) -> WeightData:
        """
        Load a document into live parameters.

        Keys absent from the document leave their tensors unchanged; unknown
        keys are ignored.

        Raises:
            WeightFormatError: On any validation failure, before any write
        """
        data = self.validate(payload, brain, perception_encoder, experience_encoder)
        params = named_parameters(brain, perception_encoder, experience_encoder)

        applied = 0
        for key, tensor in params.items():
            values = data.weights.get(key)
            if values is None:
                continue
            tensor.data[:] = values
            applied += 1

        unknown = set(data.weights) - set(params)
        if unknown:
            logger.debug(f"Ignored {len(unknown)} unknown weight keys")
        logger.debug(f"Applied {applied}/{len(params)} weight tensors")
        return data

    def save_to_storage(
        self,
        world_seed: Seed,
        brain: TransformerBrain,
        perception_encoder: PerceptionEncoder,
        experience_encoder: ExperienceEncoder,
        trained_on: Optional[TrainedOn] = None,
    ) -> bool:
        """Returns False when no store is configured or the write fails."""
        if self.store is None:
            return False
        data = self.to_weight_data(brain, perception_encoder, experience_encoder, trained_on)
        return self.store.save(world_seed, data.to_dict())

    def load_from_storage(
        self,
        world_seed: Seed,
        brain: TransformerBrain,
        perception_encoder: PerceptionEncoder,
        experience_encoder: ExperienceEncoder,
    ) -> bool:
        """
        Returns:
            True if a stored document (or the newest backup that passes
            validation) was applied; False if none is usable (live parameters
            are then unchanged)
        """
        if self.store is None:
            return False
        document = self.store.load(
            world_seed,
            validate=lambda doc: self.validate(doc, brain, perception_encoder, experience_encoder),
        )
        if document is None:
            return False
        try:
            self.deserialize(document, brain, perception_encoder, experience_encoder)
        except WeightFormatError as e:
            logger.warning(f"Stored weights for world {world_seed} rejected: {e}")
            return False
        return True

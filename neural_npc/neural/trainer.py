"""
Offline trainer.

Fits the perception encoder against labelled samples with the decision
network held fixed. Encoder gradients are estimated with central finite
differences over a strided subset of weights (plus every bias and norm
element), clipped per tensor, then applied with Adam.

Cost is O(perturbed parameters x batch forward passes), so this path is
meant for small offline datasets, not for the per-tick loop.
"""
from __future__ import annotations

import logging
import time
from dataclasses import asdict, dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np

from ..config import ARCHITECTURE, TrainingConfig
from ..types import ACTION_TYPES
from ..util import argmax, clip_norm_
from .encoders import PerceptionEncoder
from .loss import NeuralNetLoss
from .optimizer import AdamOptimizer
from .tensor import Tensor
from .transformer import BrainOutput, TransformerBrain

logger = logging.getLogger(__name__)


@dataclass
class TrainingSample:
    """
    One labelled example.

    Attributes:
        perception_vector: 30-float sensory vector
        action_label: Index of the target action
        outcome_vector: Observed need deltas (kept for export; no outcome head)
        needs: Absolute needs at decision time, used for valence regularization
    """
    perception_vector: List[float]
    action_label: int
    outcome_vector: List[float] = field(default_factory=lambda: [0.0] * ARCHITECTURE.num_needs)
    needs: List[float] = field(default_factory=lambda: [0.5] * ARCHITECTURE.num_needs)


@dataclass
class EvaluationResult:
    loss: float
    accuracy: float
    per_action_accuracy: Dict[str, float]


@dataclass
class TrainingReport:
    """Summary of an offline training run."""
    epochs: int
    final_train_loss: float
    final_val_loss: float
    final_train_accuracy: float
    final_val_accuracy: float
    best_val_loss: float
    best_val_epoch: int
    loss_history: List[Dict[str, float]]
    accuracy_history: List[Dict[str, float]]
    per_action_accuracy: Dict[str, float]
    training_time_ms: float
    total_parameters: int
    convergence_epoch: int

    def to_dict(self) -> Dict:
        return asdict(self)


class Trainer:
    """
    Offline trainer for a (network, perception encoder) pair.

    Example:
        >>> trainer = Trainer(brain, encoder, rng=np.random.default_rng(0))
        >>> report = trainer.train_offline(samples, TrainingConfig(epochs=5))
        >>> report.best_val_loss
    """

    def __init__(
        self,
        network: TransformerBrain,
        perception_encoder: PerceptionEncoder,
        rng: Optional[np.random.Generator] = None,
    ):
        self.network = network
        self.perception_encoder = perception_encoder
        self.rng = rng if rng is not None else np.random.default_rng()
        self.optimizer = AdamOptimizer()
        self.loss = NeuralNetLoss()

    def train_offline(
        self,
        samples: Sequence[TrainingSample],
        config: Optional[TrainingConfig] = None,
    ) -> TrainingReport:
        """
        Train the perception encoder.

        Returns:
            TrainingReport with per-epoch history. convergence_epoch is the
            epoch early stopping fired on, or the last epoch if it never did.
        """
        cfg = config or TrainingConfig()
        start = time.perf_counter()
        self.optimizer = AdamOptimizer(lr=cfg.learning_rate)

        train_samples, val_samples = self._split(samples, cfg)
        logger.info(
            f"Offline training: {len(train_samples)} train / {len(val_samples)} val samples, "
            f"up to {cfg.epochs} epochs"
        )

        loss_history: List[Dict[str, float]] = []
        accuracy_history: List[Dict[str, float]] = []
        best_val_loss = float("inf")
        best_val_epoch = 0
        patience = 0
        convergence_epoch: Optional[int] = None
        current_lr = cfg.learning_rate

        train_loss = train_acc = 0.0
        val = EvaluationResult(0.0, 0.0, {a.value: 0.0 for a in ACTION_TYPES})
        total_parameters = self.count_parameters()

        for epoch in range(cfg.epochs):
            order = list(range(len(train_samples)))
            if cfg.shuffle_data:
                self.rng.shuffle(order)
            epoch_samples = [train_samples[i] for i in order]

            loss_sum = 0.0
            correct = 0
            for batch_start in range(0, len(epoch_samples), cfg.batch_size):
                batch = epoch_samples[batch_start:batch_start + cfg.batch_size]
                for layer in self.perception_encoder.get_linear_layers():
                    layer.zero_grad()

                for sample in batch:
                    out = self._forward_sample(sample)
                    loss_sum += self._sample_loss(sample, out)
                    if argmax(out.action_probabilities) == sample.action_label:
                        correct += 1

                self.optimizer.lr = current_lr
                self._update_encoder_weights(batch, cfg)

            n_train = max(1, len(train_samples))
            train_loss = loss_sum / n_train
            train_acc = correct / n_train

            val = self.evaluate(val_samples)
            loss_history.append({"epoch": epoch, "train_loss": train_loss, "val_loss": val.loss})
            accuracy_history.append({"epoch": epoch, "train_acc": train_acc, "val_acc": val.accuracy})
            logger.debug(
                f"Epoch {epoch}: train_loss={train_loss:.4f} val_loss={val.loss:.4f} "
                f"val_acc={val.accuracy:.3f}"
            )

            if val.loss < best_val_loss:
                best_val_loss = val.loss
                best_val_epoch = epoch
                patience = 0
            else:
                patience += 1
                if patience >= cfg.early_stopping_patience:
                    convergence_epoch = epoch
                    logger.info(f"Early stopping at epoch {epoch} (best {best_val_epoch})")
                    break

            current_lr *= cfg.learning_rate_decay

        if convergence_epoch is None:
            convergence_epoch = len(loss_history) - 1

        elapsed_ms = (time.perf_counter() - start) * 1000.0
        report = TrainingReport(
            epochs=len(loss_history),
            final_train_loss=train_loss,
            final_val_loss=val.loss,
            final_train_accuracy=train_acc,
            final_val_accuracy=val.accuracy,
            best_val_loss=best_val_loss,
            best_val_epoch=best_val_epoch,
            loss_history=loss_history,
            accuracy_history=accuracy_history,
            per_action_accuracy=val.per_action_accuracy,
            training_time_ms=elapsed_ms,
            total_parameters=total_parameters,
            convergence_epoch=convergence_epoch,
        )
        logger.info(
            f"Training finished: {report.epochs} epochs, val_acc={report.final_val_accuracy:.3f}, "
            f"{elapsed_ms:.0f}ms"
        )
        return report

    def evaluate(self, samples: Sequence[TrainingSample]) -> EvaluationResult:
        """Mean loss, accuracy and per-action accuracy without updating anything."""
        if not samples:
            return EvaluationResult(0.0, 0.0, {a.value: 0.0 for a in ACTION_TYPES})

        total_loss = 0.0
        correct = 0
        action_correct = [0] * len(ACTION_TYPES)
        action_total = [0] * len(ACTION_TYPES)

        for sample in samples:
            out = self._forward_sample(sample)
            total_loss += self._sample_loss(sample, out)
            if argmax(out.action_probabilities) == sample.action_label:
                correct += 1
                action_correct[sample.action_label] += 1
            action_total[sample.action_label] += 1

        per_action = {
            action.value: (action_correct[i] / action_total[i] if action_total[i] else 0.0)
            for i, action in enumerate(ACTION_TYPES)
        }
        return EvaluationResult(
            loss=total_loss / len(samples),
            accuracy=correct / len(samples),
            per_action_accuracy=per_action,
        )

    def count_parameters(self) -> int:
        """Perception encoder plus decision network dense and norm parameters."""
        return self.perception_encoder.num_parameters + self.network.num_parameters

    def _split(
        self, samples: Sequence[TrainingSample], cfg: TrainingConfig
    ) -> Tuple[List[TrainingSample], List[TrainingSample]]:
        indices = list(range(len(samples)))
        if cfg.shuffle_data:
            self.rng.shuffle(indices)
        split = int(len(samples) * (1.0 - cfg.validation_split))
        return [samples[i] for i in indices[:split]], [samples[i] for i in indices[split:]]

    def _forward_sample(self, sample: TrainingSample) -> BrainOutput:
        # No episodic context offline; forward() pads to all-masked slots.
        embedding = self.perception_encoder.encode(sample.perception_vector)
        return self.network.forward(embedding, [], [])

    def _sample_loss(self, sample: TrainingSample, out: BrainOutput) -> float:
        return self.loss.total(
            out.action_probabilities,
            sample.action_label,
            out.emotional_state,
            sample.needs,
        )

    def _batch_loss(self, batch: Sequence[TrainingSample]) -> float:
        return sum(self._sample_loss(s, self._forward_sample(s)) for s in batch) / len(batch)

    def _central_difference(self, tensor: Tensor, index: int, batch: Sequence[TrainingSample], eps: float) -> float:
        original = tensor.data[index]
        tensor.data[index] = original + eps
        loss_plus = self._batch_loss(batch)
        tensor.data[index] = original - eps
        loss_minus = self._batch_loss(batch)
        tensor.data[index] = original
        return (loss_plus - loss_minus) / (2.0 * eps)

    def _update_encoder_weights(self, batch: Sequence[TrainingSample], cfg: TrainingConfig) -> None:
        eps = cfg.gradient_epsilon
        parameters: Dict[str, Tensor] = {}
        gradients: Dict[str, Tensor] = {}

        for i, layer in enumerate(self.perception_encoder.get_linear_layers()):
            w_grad = Tensor.zeros(layer.weight.shape)
            n = layer.weight.size
            stride = max(1, n // min(n, cfg.max_weight_samples))
            for wi in range(0, n, stride):
                w_grad.data[wi] = self._central_difference(layer.weight, wi, batch, eps)

            b_grad = Tensor.zeros(layer.bias.shape)
            for bi in range(layer.bias.size):
                b_grad.data[bi] = self._central_difference(layer.bias, bi, batch, eps)

            clip_norm_(w_grad.data, cfg.max_grad_norm)
            clip_norm_(b_grad.data, cfg.max_grad_norm)
            parameters[f"enc.linear{i}.weight"] = layer.weight
            parameters[f"enc.linear{i}.bias"] = layer.bias
            gradients[f"enc.linear{i}.weight"] = w_grad
            gradients[f"enc.linear{i}.bias"] = b_grad

        for i, norm in enumerate(self.perception_encoder.get_layer_norms()):
            for name, param in norm.params().items():
                grad = Tensor.zeros(param.shape)
                for j in range(param.size):
                    grad.data[j] = self._central_difference(param, j, batch, eps)
                clip_norm_(grad.data, cfg.max_grad_norm)
                parameters[f"enc.ln{i}.{name}"] = param
                gradients[f"enc.ln{i}.{name}"] = grad

        self.optimizer.step(parameters, gradients)

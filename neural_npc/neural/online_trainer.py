"""
Amortized in-simulation learning.

Every ``update_interval`` ticks the agent hands its replay buffer to the
online trainer, which replays a small prioritized batch under a wall-clock
budget. The batch loss is always returned for monitoring. When
``apply_updates`` is enabled, analytic gradients of the two output heads are
accumulated along the way and applied with Adam, so each agent's weights
drift away from the shared baseline as it lives.
"""
from __future__ import annotations

import logging
import time
from typing import Dict, List, Optional

from ..config import OnlineTrainingConfig
from ..util import clip_norm_
from .encoders import Experience
from .loss import EMOTION_WEIGHT, NeuralNetLoss
from .optimizer import AdamOptimizer
from .replay_buffer import ReplayBuffer
from .tensor import Tensor
from .transformer import TransformerBrain

logger = logging.getLogger(__name__)


def delta_as_needs(needs_delta) -> List[float]:
    """
    Map need deltas in [-1, 1] onto the [0, 1] needs scale.

    The resulting valence target equals the mean delta: positive when the
    step left the agent better off.
    """
    return [0.5 + d / 2.0 for d in needs_delta]


class OnlineTrainer:
    """
    Time-boxed replay over the decision network's output heads.

    Attributes:
        update_interval: Ticks between passes
        updates_applied: Number of passes that stepped the optimizer
        last_loss: Mean loss of the most recent pass (None before the first)
    """

    def __init__(self, config: Optional[OnlineTrainingConfig] = None):
        self.config = config or OnlineTrainingConfig()
        self.update_interval = self.config.update_interval
        self.optimizer = AdamOptimizer(lr=self.config.learning_rate)
        self.loss = NeuralNetLoss()
        self.updates_applied = 0
        self.last_loss: Optional[float] = None

    def should_update(self, tick: int) -> bool:
        return tick > 0 and tick % self.update_interval == 0

    def update(self, brain: TransformerBrain, replay_buffer: ReplayBuffer) -> Optional[float]:
        """
        Run one pass.

        Returns:
            Mean loss over the samples processed before the budget ran out,
            or None if the replay buffer holds fewer than ``batch_size``
            experiences.
        """
        if replay_buffer.size < self.config.batch_size:
            return None

        batch = replay_buffer.sample(self.config.batch_size)
        brain.action_head.zero_grad()
        brain.emotion_head.zero_grad()

        start = time.perf_counter()
        total_loss = 0.0
        processed = 0
        for experience in batch:
            if processed and (time.perf_counter() - start) * 1000.0 > self.config.max_update_time_ms:
                break
            total_loss += self._replay(brain, experience)
            processed += 1

        if self.config.apply_updates:
            self._step_heads(brain, processed)

        elapsed_ms = (time.perf_counter() - start) * 1000.0
        self.last_loss = total_loss / processed
        logger.debug(
            f"Online update: {processed}/{len(batch)} samples, loss={self.last_loss:.4f}, "
            f"{elapsed_ms:.2f}ms",
            extra={"subsystem": "online_trainer", "latency_ms": elapsed_ms},
        )
        return self.last_loss

    def _replay(self, brain: TransformerBrain, experience: Experience) -> float:
        # Replayed without episodic context: all memory slots masked.
        out = brain.forward(experience.perception_embedding, [], [])
        needs = delta_as_needs(experience.needs_delta)
        loss = self.loss.total(
            out.action_probabilities,
            experience.action_taken,
            out.emotional_state,
            needs,
        )

        if self.config.apply_updates:
            # d(CE)/d(logits) = p - onehot
            grad_logits = list(out.action_probabilities)
            grad_logits[experience.action_taken] -= 1.0
            brain.action_head.backward(Tensor(grad_logits))

            # d(0.1 * (tanh(z0) - target)^2)/dz0
            valence = out.emotional_state[0]
            target = NeuralNetLoss.valence_target(needs)
            grad_emotion = [0.0] * len(out.emotional_state)
            grad_emotion[0] = EMOTION_WEIGHT * 2.0 * (valence - target) * (1.0 - valence * valence)
            brain.emotion_head.backward(Tensor(grad_emotion))

        return loss

    def _step_heads(self, brain: TransformerBrain, processed: int) -> None:
        parameters: Dict[str, Tensor] = {}
        gradients: Dict[str, Tensor] = {}
        for name, head in (("action_head", brain.action_head), ("emotion_head", brain.emotion_head)):
            w_grad = head.weight_grad.scale(1.0 / processed)
            b_grad = head.bias_grad.scale(1.0 / processed)
            clip_norm_(w_grad.data, self.config.max_grad_norm)
            clip_norm_(b_grad.data, self.config.max_grad_norm)
            parameters[f"{name}.weight"] = head.weight
            parameters[f"{name}.bias"] = head.bias
            gradients[f"{name}.weight"] = w_grad
            gradients[f"{name}.bias"] = b_grad
            head.zero_grad()

        self.optimizer.step(parameters, gradients)
        self.updates_applied += 1

    def reset(self) -> None:
        self.optimizer.reset()
        self.updates_applied = 0
        self.last_loss = None

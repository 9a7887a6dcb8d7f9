"""
Performance benchmarks for the neural decision engine.

Run standalone: python benchmarks/benchmark_decision.py
"""
import os
import sys

# Allow running as standalone script
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from neural_npc.benchmark import benchmark, benchmark_forward
from neural_npc.config import BrainPresets
from neural_npc.neural.agent import NeuralNetBrain
from neural_npc.neural.features import encode_perception
from neural_npc.types import Needs, NPCInfo, ObjectInfo, Perception, TileInfo


def create_perception(tick: int = 0) -> Perception:
    """A busy but typical perception."""
    return Perception(
        needs=Needs(hunger=0.4, energy=0.7, social=0.5, curiosity=0.6, safety=0.8),
        nearby_tiles=[TileInfo(x, y, "grass") for x in range(5) for y in range(5)],
        nearby_objects=[ObjectInfo("bush_1", "berry_bush", 2, 3), ObjectInfo("fire_1", "campfire", 4, 1)],
        nearby_npcs=[NPCInfo("npc_2", 3, 3)],
        current_tick=tick,
        camera_x=2.0,
        camera_y=2.0,
    )


def benchmark_decide():
    """Benchmark full decide() calls on one agent."""
    brain = NeuralNetBrain(BrainPresets.deterministic_test())
    result = benchmark_forward(brain, create_perception(), iterations=500)
    print("decide():")
    print(f"  Mean: {result.mean_ms:.4f}ms  Min: {result.min_ms:.4f}ms  Max: {result.max_ms:.4f}ms")
    print(f"  Throughput: {result.decisions_per_second:.0f} decisions/s")
    return result.mean_ms


def benchmark_transformer_forward():
    """Benchmark the transformer alone with a full memory buffer."""
    brain = NeuralNetBrain(BrainPresets.deterministic_test())
    for tick in range(40):
        brain.decide(create_perception(tick))

    embedding = brain.perception_encoder.encode(encode_perception(create_perception()))
    sequence = brain.memory.get_memory_sequence()
    mask = brain.memory.get_attention_mask()

    mean, min_t, max_t = benchmark(lambda: brain.transformer.forward(embedding, sequence, mask), iterations=500)
    print("TransformerBrain.forward (32 memories):")
    print(f"  Mean: {mean:.4f}ms  Min: {min_t:.4f}ms  Max: {max_t:.4f}ms")
    return mean


def benchmark_many_agents():
    """Benchmark one tick across a population of agents."""
    agents = [NeuralNetBrain(BrainPresets.deterministic_test(seed=i)) for i in range(20)]
    perception = create_perception()

    def run():
        for agent in agents:
            agent.decide(perception)

    mean, min_t, max_t = benchmark(run, iterations=50)
    print("20 agents, one tick:")
    print(f"  Mean: {mean:.4f}ms  Min: {min_t:.4f}ms  Max: {max_t:.4f}ms")
    return mean


if __name__ == "__main__":
    print("=" * 50)
    print("Neural NPC Performance Benchmarks")
    print("=" * 50)
    print()

    benchmark_decide()
    print()
    benchmark_transformer_forward()
    print()
    benchmark_many_agents()

import os
from os.path import join as opj

import pytest
import torch

from torchscribe import ComputationGraph, InMemorySequenceSource

# Deterministic seeding
torch.manual_seed(0)

# Output directories, anchored to tests/
TESTS_DIR = os.path.dirname(os.path.abspath(__file__))
TEST_OUTPUTS_DIR = opj(TESTS_DIR, "test_outputs")

os.makedirs(TEST_OUTPUTS_DIR, exist_ok=True)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def make_linear_graph() -> ComputationGraph:
    """features (2-d) -> scores = W @ features (3-d) -> probs; loss also reads labels (3-d)."""
    graph = ComputationGraph("linear")
    features = graph.add_input("features")
    graph.add_input("labels")
    weights = graph.add_parameter("W", torch.tensor([[1.0, 0.0], [0.0, 1.0], [1.0, 1.0]]))
    scores = graph.add_function("scores", lambda w, x: w @ x, [weights, features])
    graph.add_function("probs", lambda s: torch.softmax(s, dim=0), [scores])
    graph.add_function(
        "loss", lambda s, y: ((s - y) ** 2).sum(dim=0, keepdim=True), [scores, "labels"]
    )
    graph.set_output_nodes(["scores"])
    return graph


def make_sequences():
    features = [
        torch.tensor([[1.0, 2.0], [3.0, 4.0]]),
        torch.tensor([[5.0, 6.0]]),
    ]
    labels = [
        torch.tensor([[0.0, 0.0, 1.0], [0.0, 0.0, 1.0]]),
        torch.tensor([[0.0, 1.0, 0.0]]),
    ]
    return {"features": features, "labels": labels}


# Fixtures


@pytest.fixture
def linear_graph():
    return make_linear_graph()


@pytest.fixture
def sequence_source():
    return InMemorySequenceSource(make_sequences())


@pytest.fixture
def parallel_sequence_source():
    return InMemorySequenceSource(make_sequences(), num_parallel_sequences=2)


@pytest.fixture
def label_mapping_file(tmp_path):
    path = tmp_path / "labels.txt"
    path.write_text("cat\ndog\nbird\n")
    return str(path)

"""Tests for building, evaluating, and summarizing ComputationGraphs."""

import pytest
import torch

from torchscribe import (
    ComputationGraph,
    ConfigurationError,
    DataBindingError,
    NotFoundError,
    SequenceLayout,
)


def _counting_graph():
    """x -> doubled -> plus_one, counting how often each function runs."""
    calls = {"doubled": 0, "plus_one": 0}

    def doubled(x):
        calls["doubled"] += 1
        return x * 2

    def plus_one(x):
        calls["plus_one"] += 1
        return x + 1

    graph = ComputationGraph("counting")
    graph.add_input("x")
    graph.add_function("doubled", doubled, ["x"])
    graph.add_function("plus_one", plus_one, ["doubled"])
    graph.set_output_nodes(["plus_one", "doubled"])
    return graph, calls


# ---------------------------------------------------------------------------
# Building and lookup
# ---------------------------------------------------------------------------


class TestGraphBuilding:
    def test_lookup_by_name_handle_and_node(self, linear_graph):
        node = linear_graph["scores"]
        assert linear_graph[node.handle] is node
        assert linear_graph.get_node(node) is node
        assert linear_graph["SCORES"] is node

    def test_contains(self, linear_graph):
        assert "Features" in linear_graph
        assert 0 in linear_graph
        assert "nope" not in linear_graph

    def test_duplicate_name(self, linear_graph):
        with pytest.raises(ConfigurationError):
            linear_graph.add_input("FEATURES")

    def test_unknown_handle(self, linear_graph):
        with pytest.raises(NotFoundError):
            linear_graph.get_node(100)

    def test_default_outputs(self, linear_graph):
        assert [n.name for n in linear_graph.output_nodes] == ["scores"]
        assert linear_graph["scores"].is_output
        linear_graph.set_output_nodes(["probs"])
        assert not linear_graph["scores"].is_output

    def test_parameter_is_copied(self):
        value = torch.ones(2, 2)
        graph = ComputationGraph()
        graph.add_parameter("p", value)
        value.add_(1)
        assert torch.equal(graph["p"].value, torch.ones(2, 2))

    def test_node_attributes(self, linear_graph):
        scores = linear_graph["scores"]
        assert scores.input_names == ["W", "features"]
        assert linear_graph["W"].is_learnable_parameter
        assert linear_graph["features"].is_input
        assert linear_graph["W"].has_value and not linear_graph["scores"].has_value
        assert "scores (function)" in repr(scores)


# ---------------------------------------------------------------------------
# Forward evaluation
# ---------------------------------------------------------------------------


class TestForward:
    def test_forward_value_and_layout(self, linear_graph):
        layout = SequenceLayout.single_sequence(2)
        linear_graph.allocate_buffers([linear_graph["scores"]])
        linear_graph.bind_input_value(linear_graph["features"], torch.tensor([[1.0, 3.0], [2.0, 4.0]]), layout)
        linear_graph.bump_timestamps([linear_graph["features"]])
        linear_graph.forward("scores")
        assert torch.equal(
            linear_graph["scores"].value, torch.tensor([[1.0, 3.0], [2.0, 4.0], [3.0, 7.0]])
        )
        assert linear_graph["scores"].layout is layout

    def test_memoized_until_inputs_change(self):
        graph, calls = _counting_graph()
        x = graph["x"]
        graph.allocate_buffers(graph.output_nodes)
        graph.bind_input_value(x, torch.ones(1, 2))
        graph.bump_timestamps([x])
        graph.forward("plus_one")
        graph.forward("doubled")
        graph.forward("plus_one")
        assert calls == {"doubled": 1, "plus_one": 1}

        graph.bind_input_value(x, torch.zeros(1, 2))
        graph.bump_timestamps([x])
        graph.forward("plus_one")
        assert calls == {"doubled": 2, "plus_one": 2}
        assert torch.equal(graph["plus_one"].value, torch.ones(1, 2))

    def test_input_buffer_reused_when_shape_matches(self):
        graph, _ = _counting_graph()
        x = graph["x"]
        graph.bind_input_value(x, torch.ones(1, 2))
        data_ptr = x.value.data_ptr()
        graph.bind_input_value(x, torch.zeros(1, 2))
        assert x.value.data_ptr() == data_ptr
        assert torch.equal(x.value, torch.zeros(1, 2))
        graph.bind_input_value(x, torch.zeros(1, 3))
        assert x.value.shape == (1, 3)

    def test_unbound_input(self, linear_graph):
        linear_graph.allocate_buffers([linear_graph["scores"]])
        with pytest.raises(DataBindingError):
            linear_graph.forward("scores")

    def test_bind_to_non_input(self, linear_graph):
        with pytest.raises(DataBindingError):
            linear_graph.bind_input_value(linear_graph["scores"], torch.ones(3, 1))

    def test_no_gradients_when_inferring(self, linear_graph):
        linear_graph.allocate_buffers([linear_graph["scores"]])
        linear_graph.bind_input_value(linear_graph["features"], torch.ones(2, 1))
        linear_graph.bump_timestamps([linear_graph["features"]])
        linear_graph.forward("scores")
        assert not linear_graph["scores"].value.requires_grad


# ---------------------------------------------------------------------------
# Operation mode and backward
# ---------------------------------------------------------------------------


class TestOperationMode:
    def test_mode_restored(self, linear_graph):
        with linear_graph.scoped_operation_mode("training"):
            assert linear_graph.current_operation_mode == "training"
        assert linear_graph.current_operation_mode == "inferring"

    def test_mode_restored_after_error(self, linear_graph):
        with pytest.raises(RuntimeError):
            with linear_graph.scoped_operation_mode("training"):
                raise RuntimeError("boom")
        assert linear_graph.current_operation_mode == "inferring"

    def test_invalid_mode(self, linear_graph):
        with pytest.raises(ValueError):
            with linear_graph.scoped_operation_mode("sleeping"):
                pass


class TestBackward:
    def test_parameter_gradient(self, linear_graph):
        scores = linear_graph["scores"]
        with linear_graph.scoped_operation_mode("training"):
            linear_graph.allocate_buffers([scores], backward_root=scores)
            linear_graph.bind_input_value(linear_graph["features"], torch.tensor([[1.0, 3.0], [2.0, 4.0]]))
            linear_graph.bump_timestamps([linear_graph["features"]])
            linear_graph.forward(scores)
            linear_graph.backward(scores)
        assert torch.equal(linear_graph["W"].grad, torch.tensor([[4.0, 6.0], [4.0, 6.0], [4.0, 6.0]]))
        assert linear_graph["features"].grad is None

    def test_backward_needs_training_mode(self, linear_graph):
        scores = linear_graph["scores"]
        linear_graph.allocate_buffers([scores], backward_root=scores)
        with pytest.raises(ConfigurationError):
            linear_graph.backward(scores)

    def test_backward_needs_backward_root(self, linear_graph):
        with linear_graph.scoped_operation_mode("training"):
            linear_graph.allocate_buffers([linear_graph["scores"]])
            with pytest.raises(ConfigurationError):
                linear_graph.backward("scores")


# ---------------------------------------------------------------------------
# Summaries
# ---------------------------------------------------------------------------


class TestSummaries:
    def test_str(self, linear_graph):
        s = str(linear_graph)
        assert "ComputationGraph linear" in s
        assert "6 nodes" in s
        assert "Default output nodes: scores" in s
        assert "scores [function] <- W, features" in s

    def test_to_pandas(self, linear_graph):
        df = linear_graph.to_pandas()
        assert len(df) == len(linear_graph)
        assert list(df["name"]) == ["features", "labels", "W", "scores", "probs", "loss"]
        assert df.loc[df["name"] == "scores", "is_output"].item()
        assert df.loc[df["name"] == "W", "learning_rate_multiplier"].item() == 1.0

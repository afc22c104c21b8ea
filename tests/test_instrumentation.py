"""Tests for splicing gradient identity nodes into a graph."""

import pytest
import torch

from torchscribe import ConfigurationError
from torchscribe.graph_traversal import determine_input_nodes
from torchscribe.instrumentation import instrument_gradient_nodes


def _instrument(graph, output_names):
    outputs = [graph[name] for name in output_names]
    return instrument_gradient_nodes(graph, outputs, determine_input_nodes(graph, outputs))


class TestInstrumentGradientNodes:
    def test_gradient_node_per_boundary_node(self, linear_graph):
        gradient_nodes = _instrument(linear_graph, ["scores"])
        assert [n.name for n in gradient_nodes] == ["features.grad", "W.grad"]
        for node in gradient_nodes:
            assert node.node_type == "identity"
            assert node.learning_rate_multiplier == 1.0

    def test_consumers_redirected(self, linear_graph):
        _instrument(linear_graph, ["scores"])
        assert linear_graph["scores"].input_names == ["W.grad", "features.grad"]
        assert linear_graph["features.grad"].input_names == ["features"]
        assert linear_graph["W.grad"].input_names == ["W"]
        assert linear_graph.consumers_of(linear_graph["features"]) == [linear_graph["features.grad"]]

    def test_unrelated_edges_untouched(self, linear_graph):
        _instrument(linear_graph, ["scores"])
        assert linear_graph["loss"].input_names == ["scores", "labels"]
        assert linear_graph["probs"].input_names == ["scores"]

    def test_boundary_values_unchanged(self, linear_graph):
        weights = linear_graph["W"].value.clone()
        _instrument(linear_graph, ["scores"])
        assert torch.equal(linear_graph["W"].value, weights)

    def test_forward_values_unchanged(self, linear_graph):
        _instrument(linear_graph, ["scores"])
        features = linear_graph["features"]
        linear_graph.allocate_buffers([linear_graph["scores"]])
        linear_graph.bind_input_value(features, torch.tensor([[1.0], [2.0]]))
        linear_graph.bump_timestamps([features])
        linear_graph.forward("scores")
        assert torch.equal(linear_graph["scores"].value, torch.tensor([[1.0], [2.0], [3.0]]))

    def test_evaluation_order_recomputed(self, linear_graph):
        _instrument(linear_graph, ["scores"])
        position = {h: i for i, h in enumerate(linear_graph.eval_order)}
        assert len(position) == len(linear_graph)
        assert position[linear_graph["features.grad"].handle] < position[linear_graph["scores"].handle]

    def test_no_output_nodes(self, linear_graph):
        with pytest.raises(ConfigurationError, match="got 0"):
            instrument_gradient_nodes(linear_graph, [], [])

    def test_several_output_nodes_warns(self, linear_graph):
        with pytest.warns(UserWarning, match="Using only the first"):
            gradient_nodes = _instrument(linear_graph, ["scores", "loss"])
        assert [n.name for n in gradient_nodes] == ["features.grad", "labels.grad", "W.grad"]

    def test_instrumenting_twice(self, linear_graph):
        _instrument(linear_graph, ["scores"])
        with pytest.raises(ConfigurationError, match="already exists"):
            _instrument(linear_graph, ["scores"])

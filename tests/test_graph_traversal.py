"""Tests for output resolution, input closures, and the evaluation order."""

import pytest
import torch

from torchscribe import ComputationGraph, ConfigurationError, NotFoundError
from torchscribe.graph_traversal import determine_input_nodes, determine_output_nodes


def _names(nodes):
    return [node.name for node in nodes]


def _two_branch_graph():
    """a -> f; b -> g; f, g -> h."""
    graph = ComputationGraph("branches")
    graph.add_input("a")
    graph.add_input("b")
    graph.add_function("f", lambda x: x + 1, ["a"])
    graph.add_function("g", lambda x: x * 2, ["b"])
    graph.add_function("h", lambda x, y: x + y, ["f", "g"])
    return graph


# ---------------------------------------------------------------------------
# Output nodes
# ---------------------------------------------------------------------------


class TestDetermineOutputNodes:
    def test_requested_order(self, linear_graph):
        nodes = determine_output_nodes(linear_graph, ["probs", "scores"])
        assert _names(nodes) == ["probs", "scores"]

    def test_duplicates_dropped(self, linear_graph):
        nodes = determine_output_nodes(linear_graph, ["probs", "PROBS", "scores", "probs"])
        assert _names(nodes) == ["probs", "scores"]

    def test_case_insensitive(self, linear_graph):
        assert _names(determine_output_nodes(linear_graph, ["Scores"])) == ["scores"]

    def test_falls_back_to_default_outputs(self, linear_graph):
        assert _names(determine_output_nodes(linear_graph, [])) == ["scores"]

    def test_verbose_fallback_is_announced(self, linear_graph, capsys):
        determine_output_nodes(linear_graph, [], verbose=True)
        assert "using the default output nodes" in capsys.readouterr().out

    def test_no_default_outputs(self):
        with pytest.raises(ConfigurationError):
            determine_output_nodes(_two_branch_graph(), [])

    def test_unknown_name(self, linear_graph):
        with pytest.raises(NotFoundError, match="Did you mean 'scores'"):
            determine_output_nodes(linear_graph, ["score"])

    def test_not_found_is_a_key_error(self, linear_graph):
        with pytest.raises(KeyError):
            determine_output_nodes(linear_graph, ["nonexistent_node_xyz"])


# ---------------------------------------------------------------------------
# Input closures
# ---------------------------------------------------------------------------


class TestDetermineInputNodes:
    def test_single_output(self, linear_graph):
        assert _names(determine_input_nodes(linear_graph, [linear_graph["scores"]])) == ["features"]

    def test_multiple_inputs(self, linear_graph):
        nodes = determine_input_nodes(linear_graph, [linear_graph["loss"]])
        assert _names(nodes) == ["features", "labels"]

    def test_union_of_closures(self):
        graph = _two_branch_graph()
        f, g = graph["f"], graph["g"]
        joint = determine_input_nodes(graph, [f, g])
        separate = {n.handle for n in determine_input_nodes(graph, [f])} | {
            n.handle for n in determine_input_nodes(graph, [g])
        }
        assert {n.handle for n in joint} == separate
        assert len(joint) == len(separate)

    def test_shared_inputs_not_duplicated(self, linear_graph):
        nodes = determine_input_nodes(linear_graph, [linear_graph["scores"], linear_graph["probs"]])
        assert _names(nodes) == ["features"]

    def test_input_node_is_its_own_closure(self, linear_graph):
        assert _names(determine_input_nodes(linear_graph, [linear_graph["labels"]])) == ["labels"]


class TestLearnableParameters:
    def test_learnable_parameters(self, linear_graph):
        assert _names(linear_graph.learnable_parameter_nodes(linear_graph["probs"])) == ["W"]

    def test_frozen_parameter_excluded(self):
        graph = ComputationGraph()
        graph.add_input("x")
        graph.add_parameter("frozen", torch.ones(1, 1), learning_rate_multiplier=0.0)
        graph.add_parameter("learned", torch.ones(1, 1))
        graph.add_function("y", lambda a, b, x: a * b * x, ["frozen", "learned", "x"])
        assert _names(graph.learnable_parameter_nodes(graph["y"])) == ["learned"]

    def test_consumers(self, linear_graph):
        assert _names(linear_graph.consumers_of(linear_graph["scores"])) == ["probs", "loss"]


# ---------------------------------------------------------------------------
# Evaluation order
# ---------------------------------------------------------------------------


class TestEvaluationOrder:
    def test_every_node_after_its_inputs(self, linear_graph):
        linear_graph.compile()
        position = {h: i for i, h in enumerate(linear_graph.eval_order)}
        assert len(position) == len(linear_graph)
        for node in linear_graph:
            for input_handle in node.input_handles:
                assert position[input_handle] < position[node.handle]

    def test_lowest_handle_first_among_ready_nodes(self):
        graph = _two_branch_graph()
        graph.compile()
        assert [graph.node_for_handle(h).name for h in graph.eval_order] == ["a", "b", "f", "g", "h"]

    def test_cycle(self, linear_graph):
        linear_graph["scores"].set_input(1, linear_graph["probs"])
        with pytest.raises(ConfigurationError, match="cycle"):
            linear_graph.compile()

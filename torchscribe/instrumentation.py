"""Splices identity nodes in front of boundary nodes so their gradients can be written out."""

import warnings
from typing import TYPE_CHECKING, List

from .constants import GRADIENT_NODE_LEARNING_RATE_MULTIPLIER, GRADIENT_NODE_SUFFIX
from .errors import ConfigurationError

if TYPE_CHECKING:
    from .data_classes.graph_node import GraphNode
    from .graph import ComputationGraph


def insert_node(graph: "ComputationGraph", parent: "GraphNode", new_node: "GraphNode"):
    """Makes new_node read parent, and redirects all other consumers of parent to new_node."""
    new_node.set_input(0, parent)
    graph.rewire_consumers(parent, new_node)


def instrument_gradient_nodes(
        graph: "ComputationGraph",
        output_nodes: List["GraphNode"],
        input_nodes: List["GraphNode"],
) -> List["GraphNode"]:
    """Hooks an identity node between every boundary node and its consumers, so that the boundary
    node's gradient shows up as the gradient of an addressable '<name>.grad' node. Boundary nodes are
    the input nodes plus the learnable parameters of the first output node. Forward values don't change.

    Args:
        graph: The graph to instrument; modified in place and recompiled.
        output_nodes: Output nodes; exactly one is expected.
        input_nodes: Input nodes the outputs depend on.

    Returns:
        The new gradient nodes, one per boundary node, in boundary order.
    """
    if len(output_nodes) == 0:
        raise ConfigurationError("Expected exactly 1 output node for unit test, got 0.")
    if len(output_nodes) > 1:
        warnings.warn(
            f"Expected exactly 1 output node for unit test, got {len(output_nodes)}. "
            f"Using only the first."
        )

    boundary_nodes = list(input_nodes) + graph.learnable_parameter_nodes(output_nodes[0])

    gradient_nodes = []
    for boundary_node in boundary_nodes:
        new_node = graph.create_identity_node(boundary_node, boundary_node.name + GRADIENT_NODE_SUFFIX)
        new_node.learning_rate_multiplier = GRADIENT_NODE_LEARNING_RATE_MULTIPLIER
        insert_node(graph, boundary_node, new_node)
        gradient_nodes.append(new_node)

    graph.compile()
    return gradient_nodes

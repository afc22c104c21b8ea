"""Graph traversals: output resolution, input/parameter closures, and the evaluation order."""

from collections import deque
from typing import TYPE_CHECKING, Iterable, List, Set

from .errors import ConfigurationError

if TYPE_CHECKING:
    from .data_classes.graph_node import GraphNode
    from .graph import ComputationGraph


def determine_output_nodes(
        graph: "ComputationGraph", output_node_names: Iterable[str], verbose: bool = False
) -> List["GraphNode"]:
    """Resolves the requested output node names, falling back to the graph's default outputs.

    Args:
        graph: The graph.
        output_node_names: Requested node names; empty to use the graph's default output nodes.
        verbose: Whether to announce the fallback to the default output nodes.

    Returns:
        Output nodes in requested order, without duplicates.
    """
    output_node_names = list(output_node_names)
    if len(output_node_names) == 0:
        if verbose:
            print("Output node names are not specified, using the default output nodes.")
        if len(graph.output_nodes) == 0:
            raise ConfigurationError("There is no default output node specified in the graph.")
        return list(graph.output_nodes)

    output_nodes = []
    seen_handles: Set[int] = set()
    for name in output_node_names:
        node = graph.get_node(name)
        if node.handle in seen_handles:
            continue
        seen_handles.add(node.handle)
        output_nodes.append(node)
    return output_nodes


def determine_input_nodes(
        graph: "ComputationGraph", output_nodes: Iterable["GraphNode"]
) -> List["GraphNode"]:
    """Collects all input nodes that the output nodes depend on.

    Args:
        graph: The graph.
        output_nodes: Nodes to be evaluated.

    Returns:
        Input nodes without duplicates, sorted by handle.
    """
    input_handles: Set[int] = set()
    for output_node in output_nodes:
        for input_node in graph.input_nodes_for(output_node):
            input_handles.add(input_node.handle)
    return [graph.node_for_handle(h) for h in sorted(input_handles)]


def ancestor_handles(self: "ComputationGraph", node: "GraphNode") -> Set[int]:
    """Handles of all nodes upstream of a node, including the node itself."""
    ancestors = {node.handle}
    nodes_to_visit = deque([node])
    while len(nodes_to_visit) > 0:
        current = nodes_to_visit.popleft()
        for parent_handle in current.input_handles:
            if parent_handle in ancestors:
                continue
            ancestors.add(parent_handle)
            nodes_to_visit.append(self.node_for_handle(parent_handle))
    return ancestors


def input_nodes_for(self: "ComputationGraph", node: "GraphNode") -> List["GraphNode"]:
    """Input nodes upstream of a node, sorted by handle."""
    return [
        self.node_for_handle(h)
        for h in sorted(ancestor_handles(self, node))
        if self.node_for_handle(h).is_input
    ]


def learnable_parameter_nodes(self: "ComputationGraph", node: "GraphNode") -> List["GraphNode"]:
    """Parameter nodes with a nonzero learning rate multiplier upstream of a node, sorted by handle."""
    return [
        self.node_for_handle(h)
        for h in sorted(ancestor_handles(self, node))
        if self.node_for_handle(h).is_learnable_parameter
    ]


def consumers_of(self: "ComputationGraph", node: "GraphNode") -> List["GraphNode"]:
    """Nodes that read the given node, in handle order."""
    return [n for n in self.get_all_nodes() if node.handle in n.input_handles]


def evaluation_order(self: "ComputationGraph") -> List[int]:
    """Topological order of all node handles; among ready nodes the lowest handle comes first.

    Returns:
        List of handles, each node after all of its inputs.
    """
    num_pending_inputs = {}
    consumers = {h: [] for h in self._nodes}
    for node in self.get_all_nodes():
        unique_inputs = set(node.input_handles)
        num_pending_inputs[node.handle] = len(unique_inputs)
        for parent_handle in unique_inputs:
            consumers[parent_handle].append(node.handle)

    ready = sorted(h for h, n in num_pending_inputs.items() if n == 0)
    order = []
    while len(ready) > 0:
        handle = ready.pop(0)
        order.append(handle)
        newly_ready = []
        for child_handle in consumers[handle]:
            num_pending_inputs[child_handle] -= 1
            if num_pending_inputs[child_handle] == 0:
                newly_ready.append(child_handle)
        ready = sorted(ready + newly_ready)

    if len(order) != len(self._nodes):
        cycle_nodes = [self.node_for_handle(h).name for h in self._nodes if h not in order]
        raise ConfigurationError(
            f"The graph contains a cycle through nodes {', '.join(cycle_nodes)}; "
            f"it can't be evaluated."
        )
    return order

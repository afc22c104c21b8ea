# This file is for defining the ComputationGraph class, the engine that evaluates node values.
from collections import OrderedDict
from contextlib import contextmanager
from typing import Callable, Dict, Iterable, List, Optional, Union

import torch

from .constants import OPERATION_MODES
from .data_classes.graph_node import GraphNode
from .data_classes.layout import SequenceLayout
from .errors import ConfigurationError, DataBindingError
from .graph_traversal import (
    ancestor_handles,
    consumers_of,
    evaluation_order,
    input_nodes_for,
    learnable_parameter_nodes,
)
from .interface import _give_user_feedback_about_lookup_key, _str_graph, to_pandas

NodeRef = Union[str, int, GraphNode]


class ComputationGraph:
    def __init__(self, graph_name: str = "graph"):
        """Arena of GraphNodes addressed by integer handle. Evaluates node values with
        timestamp-based memoization, and gradients with torch autograd.
        """
        self.graph_name = graph_name
        self._nodes: Dict[int, GraphNode] = OrderedDict()
        self._name_to_handle: Dict[str, int] = {}
        self._next_handle: int = 0
        self.output_node_handles: List[int] = []

        # Evaluation state:
        self.eval_order: List[int] = []
        self._compiled = False
        self.current_operation_mode = "inferring"
        self._eval_timestamp_counter: int = 0
        self.backward_root_handle: Optional[int] = None

    # ********************************************
    # ************ Built-in Methods **************
    # ********************************************

    def __len__(self):
        return len(self._nodes)

    def __getitem__(self, ix) -> GraphNode:
        """Fetches a node by name (case-insensitive) or by handle."""
        return self.get_node(ix)

    def __contains__(self, ix) -> bool:
        if isinstance(ix, int):
            return ix in self._nodes
        return str(ix).lower() in self._name_to_handle

    def __iter__(self):
        """Loops through all nodes in handle order."""
        return iter(list(self._nodes.values()))

    def __str__(self) -> str:
        return _str_graph(self)

    def __repr__(self):
        return self.__str__()

    # ********************************************
    # ************* Building Graphs **************
    # ********************************************

    def _add_node(self, node_type: str, name: str, **kwargs) -> GraphNode:
        if name.lower() in self._name_to_handle:
            raise ConfigurationError(f"A node named '{name}' already exists in graph {self.graph_name}.")
        node = GraphNode(handle=self._next_handle, name=name, node_type=node_type, source_graph=self, **kwargs)
        self._nodes[node.handle] = node
        self._name_to_handle[name.lower()] = node.handle
        self._next_handle += 1
        self._compiled = False
        return node

    def add_input(self, name: str) -> GraphNode:
        """Adds a node whose value is bound from the data source every minibatch."""
        return self._add_node("input", name)

    def add_parameter(
            self, name: str, value: torch.Tensor, learning_rate_multiplier: float = 1.0
    ) -> GraphNode:
        """Adds a learnable parameter; a zero learning rate multiplier freezes it."""
        return self._add_node(
            "parameter",
            name,
            value=value.detach().clone(),
            learning_rate_multiplier=learning_rate_multiplier,
        )

    def add_function(self, name: str, func: Callable, inputs: Iterable[NodeRef]) -> GraphNode:
        """Adds a node computing func(*input_values). Values are (rows, columns) matrices; a 1-d value
        is taken as a single column, so reductions over rows should keep that dimension (keepdim=True).
        """
        input_handles = [self.get_node(ref).handle for ref in inputs]
        return self._add_node("function", name, func=func, input_handles=input_handles)

    def set_output_nodes(self, nodes: Iterable[NodeRef]):
        """Declares the graph's default output nodes."""
        for node in self:
            node.is_output = False
        self.output_node_handles = []
        for ref in nodes:
            node = self.get_node(ref)
            node.is_output = True
            if node.handle not in self.output_node_handles:
                self.output_node_handles.append(node.handle)

    def create_identity_node(self, parent: GraphNode, name: str) -> GraphNode:
        """Adds a pass-through node whose single input is parent."""
        node = self._add_node("identity", name)
        node.set_input(0, parent)
        return node

    def rewire_consumers(self, old_target: GraphNode, new_target: GraphNode):
        """Redirects every edge into old_target to new_target, except new_target's own input edges."""
        for node in self.get_all_nodes():
            if node.handle == new_target.handle:
                continue
            for i, input_handle in enumerate(node.input_handles):
                if input_handle == old_target.handle:
                    node.set_input(i, new_target)
        self._compiled = False

    # ********************************************
    # ***************** Lookup *******************
    # ********************************************

    def node_for_handle(self, handle: int) -> GraphNode:
        return self._nodes[handle]

    def get_node(self, ref: NodeRef) -> GraphNode:
        """Resolves a node from a name (case-insensitive), a handle, or the node itself."""
        if isinstance(ref, GraphNode):
            if self._nodes.get(ref.handle) is not ref:
                raise _give_user_feedback_about_lookup_key(self, ref.name)
            return ref
        if isinstance(ref, int):
            if ref in self._nodes:
                return self._nodes[ref]
            raise _give_user_feedback_about_lookup_key(self, ref)
        key = str(ref).lower()
        if key in self._name_to_handle:
            return self._nodes[self._name_to_handle[key]]
        raise _give_user_feedback_about_lookup_key(self, ref)

    def get_all_nodes(self) -> List[GraphNode]:
        return list(self._nodes.values())

    @property
    def output_nodes(self) -> List[GraphNode]:
        return [self._nodes[h] for h in self.output_node_handles]

    # ********************************************
    # ***************** Evaluation ***************
    # ********************************************

    def compile(self):
        """Recomputes the evaluation order; needed after the graph structure changes."""
        self.eval_order = self._evaluation_order()
        self._compiled = True

    @contextmanager
    def scoped_operation_mode(self, mode: str):
        """Sets the operation mode for the duration of the block, restoring the prior mode on exit."""
        if mode not in OPERATION_MODES:
            raise ValueError(f"Operation mode must be one of {OPERATION_MODES}, not '{mode}'.")
        prior_mode = self.current_operation_mode
        self.current_operation_mode = mode
        try:
            yield self
        finally:
            self.current_operation_mode = prior_mode

    def allocate_buffers(self, output_nodes: Iterable[GraphNode], backward_root: Optional[GraphNode] = None):
        """Prepares evaluation of the output nodes. With a backward root, marks every node on a path
        from a learnable node (parameter or identity with nonzero learning rate) as needing a gradient.
        """
        if not self._compiled:
            self.compile()
        output_nodes = list(output_nodes)
        for node in output_nodes:
            self.get_node(node)
        self.backward_root_handle = backward_root.handle if backward_root is not None else None

        for handle in self.eval_order:
            node = self._nodes[handle]
            node.grad = None
            if node.node_type in ["function", "identity"]:
                node.value = None
                node.eval_timestamp = -1
            if backward_root is None:
                node.needs_gradient = False
            elif node.node_type in ["parameter", "identity"] and node.learning_rate_multiplier != 0:
                node.needs_gradient = True
            else:
                node.needs_gradient = any(parent.needs_gradient for parent in node.inputs)
            if node.node_type == "parameter":
                node.value = node.value.detach().requires_grad_(node.needs_gradient)

    def bump_timestamps(self, nodes: Iterable[GraphNode]):
        """Marks the given nodes as freshly updated so everything downstream recomputes."""
        self._eval_timestamp_counter += 1
        for node in nodes:
            node.eval_timestamp = self._eval_timestamp_counter

    def bind_input_value(self, node: GraphNode, value: torch.Tensor, layout: Optional[SequenceLayout] = None):
        """Copies a minibatch value into an input node, reusing its buffer when the shape matches."""
        if not node.is_input:
            raise DataBindingError(f"Node '{node.name}' is a {node.node_type} node, not an input node.")
        value = value.detach()
        if (
                node.value is not None
                and node.value.shape == value.shape
                and node.value.dtype == value.dtype
                and node.value.device == value.device
        ):
            node.value.copy_(value)
        else:
            node.value = value.clone()
        node.layout = layout

    def forward(self, node: NodeRef):
        """Computes the value of a node, recomputing only the upstream nodes whose inputs changed."""
        node = self.get_node(node)
        if not self._compiled:
            self.compile()
        needed = ancestor_handles(self, node)
        for handle in self.eval_order:
            if handle in needed:
                self._forward_one(self._nodes[handle])

    def _forward_one(self, node: GraphNode):
        if node.is_input:
            if node.value is None:
                raise DataBindingError(f"No value has been bound to input node '{node.name}'.")
            return
        if node.node_type == "parameter":
            return

        parents = node.inputs
        latest_input_timestamp = max([parent.eval_timestamp for parent in parents] + [0])
        if node.value is not None and node.eval_timestamp >= latest_input_timestamp:
            return

        track_grad = self.current_operation_mode == "training" and node.needs_gradient
        with torch.set_grad_enabled(track_grad):
            if node.node_type == "identity":
                parent_value = parents[0].value
                if track_grad and not parent_value.requires_grad:
                    value = parent_value.detach().requires_grad_(True)
                else:
                    value = parent_value.view_as(parent_value)
            else:
                value = node.func(*[parent.value for parent in parents])
        if track_grad and value.requires_grad and value.grad_fn is not None:
            value.retain_grad()

        node.value = value
        node.grad = None
        node.layout = next((parent.layout for parent in parents if parent.layout is not None), None)
        node.eval_timestamp = latest_input_timestamp

    def backward(self, node: NodeRef):
        """Backpropagates from a node, seeding its gradient with ones, and stores the gradient of
        every node that needs one. Nodes off the backward path keep grad None.
        """
        node = self.get_node(node)
        if self.current_operation_mode != "training":
            raise ConfigurationError("Backward propagation is only possible in training mode.")
        if self.backward_root_handle is None:
            raise ConfigurationError("No buffers were allocated for backward propagation.")

        grad_nodes = [self._nodes[h] for h in self.eval_order if self._nodes[h].needs_gradient]
        for grad_node in grad_nodes:
            grad_node.grad = None
            if grad_node.value is not None:
                grad_node.value.grad = None

        if node.value is None or not node.value.requires_grad:
            return
        torch.autograd.backward(node.value, grad_tensors=torch.ones_like(node.value), retain_graph=True)

        for grad_node in grad_nodes:
            if grad_node.value is not None and grad_node.value.grad is not None:
                grad_node.grad = grad_node.value.grad.detach().clone()

    # ********************************************
    # ******** Assign Imported Methods ***********
    # ********************************************

    input_nodes_for = input_nodes_for
    learnable_parameter_nodes = learnable_parameter_nodes
    consumers_of = consumers_of
    _evaluation_order = evaluation_order
    to_pandas = to_pandas

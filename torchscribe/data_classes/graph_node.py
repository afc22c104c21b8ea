from typing import TYPE_CHECKING, Callable, List, Optional

import torch

from ..constants import NODE_TYPES
from ..helper_funcs import get_tensor_memory_amount, human_readable_size
from .layout import SequenceLayout

if TYPE_CHECKING:
    from ..graph import ComputationGraph


class GraphNode:
    """One node of a ComputationGraph. Nodes refer to their inputs by handle; the graph owns them.

    Args:
        handle: stable integer identity of the node within its graph.
        name: unique (case-insensitive) node name.
        node_type: 'input', 'parameter', 'function' or 'identity'.
        func: for function nodes, callable mapping the input values to the node's value.
        input_handles: handles of the nodes this node reads, in argument order.
        value: initial value (the parameter tensor for parameter nodes).
        learning_rate_multiplier: scales the node's update; zero means it needs no gradient.
    """

    def __init__(
            self,
            handle: int,
            name: str,
            node_type: str,
            source_graph: "ComputationGraph",
            func: Optional[Callable] = None,
            input_handles: Optional[List[int]] = None,
            value: Optional[torch.Tensor] = None,
            learning_rate_multiplier: float = 0.0,
    ):
        if node_type not in NODE_TYPES:
            raise ValueError(f"node_type must be one of {NODE_TYPES}, not '{node_type}'.")
        self.handle = handle
        self.name = name
        self.node_type = node_type
        self.func = func
        self.input_handles: List[int] = list(input_handles or [])
        self.source_graph = source_graph

        # Saved tensor info:
        self.value: Optional[torch.Tensor] = value
        self.grad: Optional[torch.Tensor] = None
        self.layout: Optional[SequenceLayout] = None

        # Evaluation bookkeeping:
        self.learning_rate_multiplier = learning_rate_multiplier
        self.eval_timestamp: int = -1
        self.needs_gradient: bool = False
        self.is_output: bool = False

    # ********************************************
    # ************* Graph Structure **************
    # ********************************************

    @property
    def inputs(self) -> List["GraphNode"]:
        return [self.source_graph.node_for_handle(h) for h in self.input_handles]

    @property
    def input_names(self) -> List[str]:
        return [node.name for node in self.inputs]

    def set_input(self, ind: int, node: "GraphNode"):
        if ind == len(self.input_handles):
            self.input_handles.append(node.handle)
        else:
            self.input_handles[ind] = node.handle

    @property
    def is_input(self) -> bool:
        return self.node_type == "input"

    @property
    def is_learnable_parameter(self) -> bool:
        return self.node_type == "parameter" and self.learning_rate_multiplier != 0

    # ********************************************
    # **************** Tensor Info ***************
    # ********************************************

    @property
    def has_value(self) -> bool:
        return self.value is not None

    @property
    def has_grad(self) -> bool:
        return self.grad is not None

    @property
    def value_shape(self):
        return tuple(self.value.shape) if self.value is not None else None

    @property
    def value_dtype(self):
        return self.value.dtype if self.value is not None else None

    @property
    def value_fsize_nice(self) -> str:
        if self.value is None:
            return human_readable_size(0)
        return human_readable_size(get_tensor_memory_amount(self.value))

    def __repr__(self) -> str:
        lines = [
            f"GraphNode {self.handle}: {self.name} ({self.node_type})",
            f"  inputs: {', '.join(self.input_names) if self.input_handles else 'none'}",
            f"  value: {self.value_shape} {self.value_dtype} ({self.value_fsize_nice})",
            f"  has_grad: {self.has_grad}",
        ]
        if self.layout is not None:
            lines.append(f"  layout: {self.layout}")
        if self.node_type in ["parameter", "identity"]:
            lines.append(f"  learning_rate_multiplier: {self.learning_rate_multiplier}")
        return "\n".join(lines)

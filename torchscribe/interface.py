from difflib import get_close_matches
from typing import TYPE_CHECKING

import pandas as pd

from .constants import GRAPH_NODE_FIELD_ORDER
from .errors import NotFoundError

if TYPE_CHECKING:
    from .graph import ComputationGraph


def _give_user_feedback_about_lookup_key(self: "ComputationGraph", key) -> NotFoundError:
    """Builds the error for a node name that doesn't match any node, suggesting close matches.

    Args:
        key: Lookup key used by the user.
    """
    if isinstance(key, int):
        return NotFoundError(
            f"You specified the node with handle {key}, but there is no such node; valid handles "
            f"are {', '.join(str(h) for h in self._nodes)}."
        )
    names = [node.name for node in self.get_all_nodes()]
    close_matches = get_close_matches(str(key), names, n=3)
    msg = f"Node '{key}' not found in graph {self.graph_name}."
    if len(close_matches) > 0:
        msg += f" Did you mean {', '.join(repr(m) for m in close_matches)}?"
    else:
        msg += f" Valid node names are {', '.join(repr(n) for n in names)}."
    return NotFoundError(msg)


def _str_graph(self: "ComputationGraph") -> str:
    """Readable summary of the graph.

    Returns:
        String summarizing the graph.
    """
    s = f"ComputationGraph {self.graph_name}:"
    s += f"\n\tOperation mode: {self.current_operation_mode}"
    s += f"\n\t{len(self)} nodes:"
    s += f"\n\t\t- {len([n for n in self if n.is_input])} input nodes"
    s += f"\n\t\t- {len([n for n in self if n.node_type == 'parameter'])} parameter nodes"
    s += f"\n\t\t- {len([n for n in self if n.node_type == 'function'])} function nodes"
    s += f"\n\t\t- {len([n for n in self if n.node_type == 'identity'])} identity nodes"
    s += f"\n\tDefault output nodes: {', '.join(n.name for n in self.output_nodes) or 'none'}"
    s += "\n\tNodes:"
    for node in self:
        if len(node.input_handles) > 0:
            inputs_str = f" <- {', '.join(node.input_names)}"
        else:
            inputs_str = ""
        s += f"\n\t\t({node.handle}) {node.name} [{node.node_type}]{inputs_str}"
    return s


def to_pandas(self: "ComputationGraph") -> pd.DataFrame:
    """Returns a pandas dataframe with info about each node.

    Returns:
        Pandas dataframe with info about each node, in handle order.
    """
    rows = []
    for node in self:
        row = {}
        for field in GRAPH_NODE_FIELD_ORDER:
            if field == "has_layout":
                row[field] = node.layout is not None
            elif field == "num_parallel_sequences":
                row[field] = node.layout.num_parallel_sequences if node.layout is not None else None
            elif field == "num_time_steps":
                row[field] = node.layout.num_time_steps if node.layout is not None else None
            else:
                row[field] = getattr(node, field)
        rows.append(row)
    model_df = pd.DataFrame(rows, columns=GRAPH_NODE_FIELD_ORDER)
    model_df = model_df.astype(
        {
            "handle": int,
            "name": str,
            "node_type": str,
            "is_output": bool,
            "has_layout": bool,
            "has_grad": bool,
            "learning_rate_multiplier": float,
            "eval_timestamp": int,
        }
    )
    return model_df

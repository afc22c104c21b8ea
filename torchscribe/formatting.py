"""Writes a node's minibatch value as text, one sequence at a time."""

from typing import Dict, Optional, TextIO, Union

import numpy as np
import torch

from .data_classes.formatting_options import (
    CategoryIndexRender,
    CategoryLabelRender,
    FormattingOptions,
    NumericRender,
    argmax_rows,
)
from .data_classes.layout import SequenceLayout, as_matrix
from .errors import DimensionMismatchError
from .helper_funcs import tensor_to_numpy

RenderMode = Union[NumericRender, CategoryIndexRender, CategoryLabelRender]


def write_minibatch_with_formatting(
        f: TextIO,
        value: torch.Tensor,
        node_name: str,
        layout: Optional[SequenceLayout],
        options: FormattingOptions,
        render_mode: RenderMode,
        num_batches_run: int,
        fragments: Optional[Dict[str, str]] = None,
) -> int:
    """Writes every sequence of a minibatch value to a text stream as it goes.

    The sequence separator is written before every sequence except the very first one of the whole
    run: within a minibatch it is skipped before the first sequence, and before that one too when
    num_batches_run is 0. The value itself is never modified.

    Args:
        f: Text stream to write to.
        value: The node's value, viewed as a (rows, columns) matrix with columns t * P + s.
        node_name: Name of the node, substituted for %s in the fragments.
        layout: The value's sequence layout; None writes all columns as one sequence.
        options: Formatting options.
        render_mode: How to turn values into text, as chosen by select_render_mode.
        num_batches_run: Number of minibatches already written to this stream.
        fragments: The options' fragments already processed for this node, if available.

    Returns:
        Number of sequences written.
    """
    values = tensor_to_numpy(as_matrix(value))
    num_rows, num_cols = values.shape
    if layout is None:
        layout = SequenceLayout.single_sequence(num_cols)
    if fragments is None:
        fragments = options.processed(node_name)

    num_parallel = layout.num_parallel_sequences
    num_time_steps = layout.num_time_steps
    if num_cols != num_parallel * num_time_steps:
        msg = (
            f"Node '{node_name}' has {num_cols} columns, but its layout has {num_parallel} parallel "
            f"sequences of {num_time_steps} time steps."
        )
        if value.dim() == 1:
            msg += " A 1-d value is written as a single column; keep the column dimension (keepdim=True)."
        raise DimensionMismatchError(msg)
    if render_mode.is_category:
        render_mode.validate_num_rows(num_rows, node_name)

    # column t * P + s -> [:, t, s]
    steps = values.reshape(num_rows, num_time_steps, num_parallel)

    num_sequences_written = 0
    for seq in layout.sequences:
        if seq.is_gap:
            continue
        if (num_batches_run > 0 or num_sequences_written > 0) and fragments["sequence_separator"] != "":
            f.write(fragments["sequence_separator"])
        f.write(fragments["sequence_prologue"])

        t_begin, t_end = seq.clipped_range(num_time_steps)
        seq_values = steps[:, t_begin:max(t_end, t_begin), seq.s]
        if render_mode.is_category:
            seq_values = argmax_rows(seq_values)[np.newaxis, :]

        # transposed: one line per time step; otherwise one line per row
        lines = seq_values.T if options.transpose else seq_values
        for j, line in enumerate(lines):
            if j > 0:
                f.write(fragments["sample_separator"])
            for i, element in enumerate(line):
                if i > 0:
                    f.write(fragments["element_separator"])
                f.write(render_mode.render(element))

        f.write(fragments["sequence_epilogue"])
        num_sequences_written += 1
    return num_sequences_written

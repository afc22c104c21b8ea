import io
from typing import Dict, List, Optional, Union

import torch

from .constants import REQUEST_ALL_SAMPLES
from .data_classes.formatting_options import FormattingOptions, select_render_mode
from .data_classes.layout import SequenceLayout
from .data_source import DataSource, DataWriter
from .formatting import write_minibatch_with_formatting
from .graph import ComputationGraph
from .helper_funcs import load_label_file, make_var_iterable
from .output_writer import OutputWriter


def _validate_formatting_options(
        formatting_options: Optional[Union[FormattingOptions, Dict]]
) -> FormattingOptions:
    if formatting_options is None:
        return FormattingOptions()
    if isinstance(formatting_options, FormattingOptions):
        return formatting_options
    if isinstance(formatting_options, dict):
        return FormattingOptions.from_config(formatting_options)
    raise ValueError("formatting_options must be either a FormattingOptions object, a dict, or None.")


def _validate_run_args(batch_size: int, num_output_samples: Optional[int]) -> int:
    if type(batch_size) is not int or batch_size < 1:
        raise ValueError("batch_size must be a positive integer.")
    if num_output_samples is None:
        return REQUEST_ALL_SAMPLES
    if type(num_output_samples) is not int or num_output_samples < 1:
        raise ValueError("num_output_samples must be a positive integer, or None to read all samples.")
    return num_output_samples


def write_output(
        graph: ComputationGraph,
        source: DataSource,
        output_path: str,
        output_node_names: Optional[Union[str, List[str]]] = None,
        batch_size: int = 1,
        num_output_samples: Optional[int] = None,
        formatting_options: Optional[Union[FormattingOptions, Dict]] = None,
        node_unit_test: bool = False,
        verbose: bool = False,
        show_progress: bool = True,
) -> int:
    """Evaluates a graph over all minibatches of a data source and writes the values of the output
    nodes as text, one file per node named '<output_path>.<node name>'.

    In node_unit_test mode, identity nodes named '<name>.grad' are spliced in after every input node
    and learnable parameter of the first output node, and their gradients (backpropagated from the
    output) are written alongside. This modifies the graph.

    Args:
        graph: The graph to evaluate.
        source: Data source supplying the graph's input nodes.
        output_path: Base path of the output files, or '-' to write everything to stdout.
        output_node_names: Node name or list of node names to write; None for the graph's default outputs.
        batch_size: Minibatch size hint for the source.
        num_output_samples: Most samples to evaluate; None for all of them.
        formatting_options: FormattingOptions, or a config dict for FormattingOptions.from_config.
        node_unit_test: Whether to write the gradients of the boundary nodes too.
        verbose: Whether to print per-minibatch and summary info.
        show_progress: Whether to show a progress bar.

    Returns:
        Total number of samples evaluated.
    """
    if type(output_path) is not str or output_path == "":
        raise ValueError("output_path must be a non-empty string; use '-' for stdout.")
    formatting_options = _validate_formatting_options(formatting_options)
    num_output_samples = _validate_run_args(batch_size, num_output_samples)

    writer = OutputWriter(graph, verbose=verbose, show_progress=show_progress)
    return writer.write_output(
        source,
        batch_size,
        output_path,
        make_var_iterable(output_node_names),
        formatting_options,
        num_output_samples,
        node_unit_test,
    )


def write_output_to_writer(
        graph: ComputationGraph,
        source: DataSource,
        data_writer: DataWriter,
        output_node_names: Optional[Union[str, List[str]]] = None,
        batch_size: int = 1,
        num_output_samples: Optional[int] = None,
        writer_unit_test: bool = False,
        verbose: bool = False,
        show_progress: bool = True,
) -> int:
    """Evaluates a graph over all minibatches of a data source and hands the output node values of
    each minibatch to a DataWriter.

    Args:
        graph: The graph to evaluate.
        source: Data source supplying the graph's input nodes.
        data_writer: Receives a dict of node name to value for every minibatch.
        output_node_names: Node name or list of node names; None for the graph's default outputs.
        batch_size: Minibatch size hint for the source.
        num_output_samples: Most samples to evaluate; None for all of them.
        writer_unit_test: Whether to hand over the input values instead of the outputs.
        verbose: Whether to print per-minibatch and summary info.
        show_progress: Whether to show a progress bar.

    Returns:
        Total number of samples evaluated.
    """
    num_output_samples = _validate_run_args(batch_size, num_output_samples)
    writer = OutputWriter(graph, verbose=verbose, show_progress=show_progress)
    return writer.write_output_to_writer(
        source,
        batch_size,
        data_writer,
        make_var_iterable(output_node_names),
        num_output_samples,
        writer_unit_test,
    )


def load_label_mapping(path: str) -> List[str]:
    """Loads a label mapping file with one label per line; the line number is the category index."""
    return load_label_file(path)


def format_value(
        value: torch.Tensor,
        layout: Optional[SequenceLayout] = None,
        node_name: str = "",
        formatting_options: Optional[Union[FormattingOptions, Dict]] = None,
        label_mapping: Optional[List[str]] = None,
        num_batches_run: int = 0,
) -> str:
    """Formats a single minibatch value the way write_output would, and returns the text.

    Args:
        value: (rows, columns) value, with column t * P + s for time step t of parallel sequence s.
        layout: Sequence layout of the value; None treats all columns as one sequence.
        node_name: Node name substituted for %s in the formatting fragments.
        formatting_options: FormattingOptions, or a config dict.
        label_mapping: Category labels; loaded from the options' label_mapping_file if not given.
        num_batches_run: Number of minibatches written before this one.

    Returns:
        The formatted text.
    """
    formatting_options = _validate_formatting_options(formatting_options)
    if (
            label_mapping is None
            and formatting_options.is_category_label
            and formatting_options.label_mapping_file is not None
    ):
        label_mapping = load_label_file(formatting_options.label_mapping_file)
    render_mode = select_render_mode(formatting_options, label_mapping)
    f = io.StringIO()
    write_minibatch_with_formatting(
        f, value, node_name, layout, formatting_options, render_mode, num_batches_run
    )
    return f.getvalue()

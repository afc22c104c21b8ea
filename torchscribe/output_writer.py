# This file is for defining the OutputWriter class, which evaluates a graph over a data source and writes
# the values of its output nodes.
import warnings
from typing import Dict, Iterable, List, Optional

import torch
from tqdm import tqdm

from .constants import PROGRESS_EVERY_NUM_MINIBATCHES, REQUEST_ALL_SAMPLES, WRITER_STATES
from .data_classes.formatting_options import FormattingOptions, select_render_mode
from .data_classes.graph_node import GraphNode
from .data_source import DataSource, DataWriter
from .errors import DataBindingError
from .formatting import RenderMode, write_minibatch_with_formatting
from .graph import ComputationGraph
from .graph_traversal import determine_input_nodes, determine_output_nodes
from .helper_funcs import load_label_file, warn_parallel
from .instrumentation import instrument_gradient_nodes
from .output_streams import OutputStreams


class OutputWriter:
    def __init__(
            self,
            graph: ComputationGraph,
            verbose: bool = False,
            show_progress: bool = True,
            progress_every: int = PROGRESS_EVERY_NUM_MINIBATCHES,
    ):
        """Runs a graph over the minibatches of a data source and writes out the values of its output
        nodes, either as formatted text files or to a DataWriter.

        Args:
            graph: The graph to evaluate.
            verbose: Whether to print per-minibatch and summary info.
            show_progress: Whether to show a progress bar over minibatches.
            progress_every: How many minibatches pass between progress bar refreshes.
        """
        self.graph = graph
        self.verbose = verbose
        self.show_progress = show_progress
        self.progress_every = progress_every
        self._set_state("idle")
        self.total_samples_evaluated: int = 0
        self.num_minibatches_run: int = 0

    def __repr__(self):
        return (
            f"OutputWriter({self.graph.graph_name}, state={self.state}, "
            f"{self.num_minibatches_run} minibatches, {self.total_samples_evaluated} samples)"
        )

    # ********************************************
    # *************** Loop Helpers ***************
    # ********************************************

    def _set_state(self, state: str):
        if state not in WRITER_STATES:
            raise ValueError(f"Writer state must be one of {WRITER_STATES}, not '{state}'.")
        self.state = state

    def _start_minibatch_loop(
            self,
            source: DataSource,
            batch_size: int,
            num_output_samples: int,
            supports_multiple_sequences: bool,
    ):
        source.start_minibatch_loop(batch_size, num_output_samples)
        if not supports_multiple_sequences:
            source.set_num_parallel_sequences(1)
        self.total_samples_evaluated = 0
        self.num_minibatches_run = 0
        self._set_state("stream_open")

    def _get_minibatch_into_graph(self, source: DataSource, input_nodes: List[GraphNode]) -> Optional[int]:
        """Binds the next minibatch into the input nodes.

        Returns:
            Number of samples in the minibatch, or None once the source is exhausted.
        """
        minibatch = source.get_minibatch([node.name for node in input_nodes])
        if minibatch is None:
            return None
        for node in input_nodes:
            if node.name not in minibatch:
                raise DataBindingError(f"The minibatch has no data for input node '{node.name}'.")
            value, layout = minibatch[node.name]
            self.graph.bind_input_value(node, value, layout)
        return minibatch.num_samples

    def _make_progress_bar(self) -> tqdm:
        return tqdm(
            desc=f"Evaluating {self.graph.graph_name}",
            unit=" minibatches",
            disable=not self.show_progress,
        )

    def _finish_minibatch(self, source: DataSource, num_samples: int, progress_bar: tqdm):
        self.total_samples_evaluated += num_samples
        self.num_minibatches_run += 1
        if self.verbose:
            print(f"Minibatch[{self.num_minibatches_run}]: actual minibatch size = {num_samples}")
        if self.num_minibatches_run % self.progress_every == 0:
            progress_bar.update(self.progress_every)

        # reader-specific processing if the end of a sentence is reached
        source.data_end()

    def _close_progress_bar(self, progress_bar: tqdm):
        progress_bar.update(self.num_minibatches_run % self.progress_every)
        progress_bar.close()

    # ********************************************
    # ************ User-Facing Methods ***********
    # ********************************************

    def write_output(
            self,
            source: DataSource,
            batch_size: int,
            output_path: str,
            output_node_names: Iterable[str] = (),
            formatting_options: Optional[FormattingOptions] = None,
            num_output_samples: int = REQUEST_ALL_SAMPLES,
            node_unit_test: bool = False,
    ) -> int:
        """Evaluates the output nodes on every minibatch of the source and writes their values as text,
        one file per node.

        Args:
            source: Data source supplying the input nodes.
            batch_size: Minibatch size hint for the source.
            output_path: Base path; node outputs go to '<output_path>.<node name>', or stdout if '-'.
            output_node_names: Nodes to write; empty for the graph's default output nodes.
            formatting_options: How to format the values; defaults to FormattingOptions().
            num_output_samples: Most samples to read from the source.
            node_unit_test: Whether to also write the gradients of the input nodes and learnable
                parameters, backpropagated from the first output node.

        Returns:
            Total number of samples evaluated.
        """
        warn_parallel()
        if formatting_options is None:
            formatting_options = FormattingOptions()

        with self.graph.scoped_operation_mode("inferring"):
            output_nodes = determine_output_nodes(self.graph, output_node_names, self.verbose)
            input_nodes = determine_input_nodes(self.graph, output_nodes)
            gradient_nodes = []

            if node_unit_test:
                # the backward pass needs training mode
                self.graph.current_operation_mode = "training"
                gradient_nodes = instrument_gradient_nodes(self.graph, output_nodes, input_nodes)
                # the output node is treated as a criterion node, so gradients get allocated
                self.graph.allocate_buffers(output_nodes, backward_root=output_nodes[0])
            else:
                self.graph.allocate_buffers(output_nodes)

            label_mapping = None
            if formatting_options.is_category_label and formatting_options.label_mapping_file is not None:
                label_mapping = load_label_file(formatting_options.label_mapping_file)
            render_mode = select_render_mode(formatting_options, label_mapping)

            with OutputStreams(
                    output_path,
                    [node.name for node in output_nodes],
                    [node.name for node in gradient_nodes],
            ) as streams:
                self._start_minibatch_loop(
                    source, batch_size, num_output_samples, streams.supports_multiple_sequences
                )
                streams.write_prologue(formatting_options.prologue)
                fragments = {node.name: formatting_options.processed(node.name) for node in output_nodes}
                fragments.update(
                    {node.name: formatting_options.processed(node.name) for node in gradient_nodes}
                )

                progress_bar = self._make_progress_bar()
                try:
                    while True:
                        num_samples = self._get_minibatch_into_graph(source, input_nodes)
                        if num_samples is None:
                            break
                        self.graph.bump_timestamps(input_nodes)

                        for node in output_nodes:
                            # intermediate values are memoized, so shared upstream nodes are computed once
                            self._set_state("evaluating")
                            self.graph.forward(node)
                            self._set_state("emitting")
                            write_minibatch_with_formatting(
                                streams[node.name],
                                node.value,
                                node.name,
                                node.layout,
                                formatting_options,
                                render_mode,
                                self.num_minibatches_run,
                                fragments[node.name],
                            )
                            if node_unit_test and node is output_nodes[0]:
                                # gradients are backpropagated from the first output only
                                self._set_state("evaluating")
                                self.graph.backward(node)

                        if node_unit_test:
                            self._set_state("emitting")
                            self._write_gradients(
                                streams, gradient_nodes, formatting_options, render_mode, fragments
                            )
                        self._finish_minibatch(source, num_samples, progress_bar)
                finally:
                    self._close_progress_bar(progress_bar)
                self._set_state("drained")

                streams.write_epilogue(formatting_options.epilogue)
                if self.verbose:
                    print(
                        f"Written to {output_path}*\nTotal samples evaluated = {self.total_samples_evaluated}"
                    )
                # flush all files where errors can still be caught, so the handles close cleanly
                streams.flush_all()
            self._set_state("closed")

        return self.total_samples_evaluated

    def _write_gradients(
            self,
            streams: OutputStreams,
            gradient_nodes: List[GraphNode],
            formatting_options: FormattingOptions,
            render_mode: RenderMode,
            fragments: Dict[str, Dict[str, str]],
    ):
        for node in gradient_nodes:
            if node.grad is None:
                warnings.warn(f"Gradient of node '{node.name}' is empty. Not used in backward pass?")
                continue
            write_minibatch_with_formatting(
                streams[node.name],
                node.grad,
                node.name,
                node.layout,
                formatting_options,
                render_mode,
                self.num_minibatches_run,
                fragments[node.name],
            )

    def write_output_to_writer(
            self,
            source: DataSource,
            batch_size: int,
            data_writer: DataWriter,
            output_node_names: Iterable[str] = (),
            num_output_samples: int = REQUEST_ALL_SAMPLES,
            writer_unit_test: bool = False,
    ) -> int:
        """Evaluates the output nodes on every minibatch of the source and hands their values to a
        DataWriter.

        Args:
            source: Data source supplying the input nodes.
            batch_size: Minibatch size hint for the source.
            data_writer: Receives a dict of node name to value for every minibatch.
            output_node_names: Nodes to evaluate; empty for the graph's default output nodes.
            num_output_samples: Most samples to read from the source.
            writer_unit_test: Whether to hand the writer the input values instead of the outputs.

        Returns:
            Total number of samples evaluated.
        """
        warn_parallel()
        with self.graph.scoped_operation_mode("inferring"):
            output_nodes = determine_output_nodes(self.graph, output_node_names, self.verbose)
            input_nodes = determine_input_nodes(self.graph, output_nodes)
            self.graph.allocate_buffers(output_nodes)

            self._start_minibatch_loop(
                source, batch_size, num_output_samples, data_writer.supports_multi_utterances
            )
            progress_bar = self._make_progress_bar()
            try:
                while True:
                    num_samples = self._get_minibatch_into_graph(source, input_nodes)
                    if num_samples is None:
                        break
                    self.graph.bump_timestamps(input_nodes)

                    self._set_state("evaluating")
                    for node in output_nodes:
                        self.graph.forward(node)

                    self._set_state("emitting")
                    if writer_unit_test:
                        records = {node.name: node.value for node in input_nodes}
                    else:
                        records = {node.name: node.value for node in output_nodes}
                    data_writer.save_data(records, num_samples)
                    self._finish_minibatch(source, num_samples, progress_bar)
            finally:
                self._close_progress_bar(progress_bar)
            self._set_state("drained")

            if self.verbose:
                print(f"Total samples evaluated = {self.total_samples_evaluated}")
            self._set_state("closed")
        return self.total_samples_evaluated

    def write_single_pass(self, data_writer: DataWriter, output_node_names: Iterable[str] = ()):
        """Runs a single forward pass on the values already bound to the input nodes and hands the
        output values to a DataWriter.

        Args:
            data_writer: Receives a dict of node name to value.
            output_node_names: Nodes to evaluate; empty for the graph's default output nodes.
        """
        with self.graph.scoped_operation_mode("inferring"):
            output_nodes = determine_output_nodes(self.graph, output_node_names, self.verbose)
            self.graph.allocate_buffers(output_nodes)
            records: Dict[str, torch.Tensor] = {}
            for node in output_nodes:
                self.graph.forward(node)
                records[node.name] = node.value
            data_writer.save_data(records, 1)

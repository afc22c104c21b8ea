""" Top level package: make the user-facing functions top-level, rest accessed as submodules.
"""
from .user_funcs import write_output, write_output_to_writer, load_label_mapping, format_value
from .graph import ComputationGraph
from .output_writer import OutputWriter
from .data_classes import FormattingOptions, GraphNode, SequenceInfo, SequenceLayout
from .data_source import DataSource, DataWriter, InMemorySequenceSource, MemoryDataWriter, Minibatch
from .errors import (
    ConfigurationError,
    DataBindingError,
    DimensionMismatchError,
    NotFoundError,
    OutputWriteError,
    TorchscribeError,
)

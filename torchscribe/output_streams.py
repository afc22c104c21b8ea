import sys
from collections import OrderedDict
from typing import Dict, Iterable, List, TextIO

from .constants import STDOUT_PATH
from .errors import OutputWriteError
from .helper_funcs import make_intermediate_dirs


class NodeOutputStream:
    """Text destination for one node; any OSError surfaces as OutputWriteError."""

    def __init__(self, node_name: str, path: str, f: TextIO, owns_file: bool):
        self.node_name = node_name
        self.path = path
        self._f = f
        self._owns_file = owns_file
        self.num_flushes = 0

    def write(self, s: str):
        try:
            self._f.write(s)
        except OSError as e:
            raise OutputWriteError(f"Failed to write output of node '{self.node_name}' to {self.path}: {e}") from e

    def flush(self):
        try:
            self._f.flush()
        except OSError as e:
            raise OutputWriteError(f"Failed to flush output of node '{self.node_name}' to {self.path}: {e}") from e
        self.num_flushes += 1

    def close(self):
        if self._owns_file and not self._f.closed:
            try:
                self._f.close()
            except OSError as e:
                raise OutputWriteError(f"Failed to close {self.path}: {e}") from e

    def __repr__(self):
        return f"NodeOutputStream({self.node_name} -> {self.path})"


def node_output_path(output_path: str, node_name: str) -> str:
    """Path that a node's output is written to: output_path.node_name, or stdout for '-'."""
    if output_path == STDOUT_PATH:
        return output_path
    return f"{output_path}.{node_name}"


class OutputStreams:
    """One text destination per output node, plus one per gradient node in unit-test mode.

    Args:
        output_path: Base path; each node writes to '<output_path>.<node name>'. '-' writes
            everything to stdout.
        output_node_names: Names of the output nodes.
        gradient_node_names: Names of the gradient nodes, if any.
    """

    supports_multiple_sequences = True

    def __init__(
            self,
            output_path: str,
            output_node_names: Iterable[str],
            gradient_node_names: Iterable[str] = (),
    ):
        self.output_path = output_path
        self.output_streams: Dict[str, NodeOutputStream] = OrderedDict()
        self.gradient_streams: Dict[str, NodeOutputStream] = OrderedDict()
        self._closed = False
        try:
            for name in output_node_names:
                self.output_streams[name] = self._open_stream(name)
            for name in gradient_node_names:
                self.gradient_streams[name] = self._open_stream(name)
        except OutputWriteError:
            self.close()
            raise

    def _open_stream(self, node_name: str) -> NodeOutputStream:
        path = node_output_path(self.output_path, node_name)
        if path == STDOUT_PATH:
            return NodeOutputStream(node_name, "stdout", sys.stdout, owns_file=False)
        try:
            make_intermediate_dirs(path)
            f = open(path, "w", encoding="utf-8")
        except OSError as e:
            raise OutputWriteError(f"Failed to open output file {path} for node '{node_name}': {e}") from e
        return NodeOutputStream(node_name, path, f, owns_file=True)

    @property
    def all_streams(self) -> List[NodeOutputStream]:
        return list(self.output_streams.values()) + list(self.gradient_streams.values())

    def __getitem__(self, node_name: str) -> NodeOutputStream:
        if node_name in self.output_streams:
            return self.output_streams[node_name]
        return self.gradient_streams[node_name]

    def write_prologue(self, prologue: str):
        for stream in self.output_streams.values():
            stream.write(prologue)

    def write_epilogue(self, epilogue: str):
        for stream in self.output_streams.values():
            stream.write(epilogue)

    def flush_all(self):
        """Flushes every destination once, so write errors surface before the handles are closed."""
        for stream in self.all_streams:
            stream.flush()

    def close(self):
        if self._closed:
            return
        self._closed = True
        errors = []
        for stream in self.all_streams:
            try:
                stream.close()
            except OutputWriteError as e:
                errors.append(e)
        if len(errors) > 0:
            raise errors[0]

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_value, tb):
        if exc_type is None:
            self.close()
        else:
            try:
                self.close()
            except OutputWriteError:
                # the exception already propagating takes precedence
                pass
        return False

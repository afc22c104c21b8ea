"""Exception types raised while resolving, evaluating and writing graph outputs."""


class TorchscribeError(Exception):
    """Base class for all torchscribe errors."""


class ConfigurationError(TorchscribeError, ValueError):
    """Raised when the requested outputs or options can't be satisfied by the graph."""


class NotFoundError(TorchscribeError, KeyError):
    """Raised when a node name doesn't exist in the graph."""

    def __str__(self):
        # KeyError quotes its message by default.
        return str(self.args[0]) if self.args else ""


class DimensionMismatchError(TorchscribeError, ValueError):
    """Raised when a tensor's row count doesn't match the label mapping."""


class DataBindingError(TorchscribeError, RuntimeError):
    """Raised when the data source can't supply a required input node."""


class OutputWriteError(TorchscribeError, IOError):
    """Raised when opening, writing or flushing an output destination fails."""

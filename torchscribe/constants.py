import sys

# Operation modes of a ComputationGraph.
OPERATION_MODES = ["inferring", "training"]

# Node types in a ComputationGraph.
NODE_TYPES = ["input", "parameter", "function", "identity"]

# Output path that sends every output node to stdout instead of per-node files.
STDOUT_PATH = "-"

# Suffix of the identity nodes spliced in front of boundary nodes in unit-test mode.
GRADIENT_NODE_SUFFIX = ".grad"

# Learning rate multiplier forced onto gradient nodes so backprop isn't pruned from their path.
GRADIENT_NODE_LEARNING_RATE_MULTIPLIER = 1.0

# Sentinel for "read everything the source has".
REQUEST_ALL_SAMPLES = sys.maxsize

# Sequence id marking padding in a SequenceLayout.
GAP_SEQUENCE_ID = -1

PROGRESS_EVERY_NUM_MINIBATCHES = 100

GRAPH_NODE_FIELD_ORDER = [
    "handle",
    "name",
    "node_type",
    "is_output",
    "input_names",
    "value_shape",
    "value_dtype",
    "has_layout",
    "num_parallel_sequences",
    "num_time_steps",
    "has_grad",
    "learning_rate_multiplier",
    "eval_timestamp",
]

# Config-style keys accepted by FormattingOptions.from_config, mapped to field names.
FORMATTING_CONFIG_KEYS = {
    "labelMappingFile": "label_mapping_file",
    "transpose": "transpose",
    "prologue": "prologue",
    "epilogue": "epilogue",
    "sequenceSeparator": "sequence_separator",
    "sequencePrologue": "sequence_prologue",
    "sequenceEpilogue": "sequence_epilogue",
    "elementSeparator": "element_separator",
    "sampleSeparator": "sample_separator",
    "precisionFormat": "precision_format",
}

# States of an OutputWriter run.
WRITER_STATES = ["idle", "stream_open", "evaluating", "emitting", "drained", "closed"]

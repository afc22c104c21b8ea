from typing import Dict, List, Optional

import numpy as np

from ..constants import FORMATTING_CONFIG_KEYS
from ..errors import ConfigurationError, DimensionMismatchError
from ..helper_funcs import process_fragment


class FormattingOptions:
    """How to write node outputs as text. Immutable once constructed.

    Args:
        is_category_label: if True, each column is replaced by the index of its maximum entry.
        label_mapping_file: optional file mapping category indices to label strings, one per line.
        transpose: True writes one line per sample (time step); False writes one line per row.
        prologue: written once at the start of each output stream.
        epilogue: written once at the end of each output stream.
        sequence_separator: written between sequences (before all sequences but the very first).
        sequence_prologue: written before each sequence, after the separator.
        sequence_epilogue: written after each sequence.
        element_separator: written between the elements of a line.
        sample_separator: written between lines.
        precision_format: printf-style precision for numeric values, e.g. ".2" for two decimals;
            empty to write each value in its shortest round-trip form.
    """

    _fields = [
        "is_category_label",
        "label_mapping_file",
        "transpose",
        "prologue",
        "epilogue",
        "sequence_separator",
        "sequence_prologue",
        "sequence_epilogue",
        "element_separator",
        "sample_separator",
        "precision_format",
    ]

    def __init__(
            self,
            is_category_label: bool = False,
            label_mapping_file: Optional[str] = None,
            transpose: bool = True,
            prologue: str = "",
            epilogue: str = "",
            sequence_separator: str = "",
            sequence_prologue: str = "",
            sequence_epilogue: str = "\n",
            element_separator: str = " ",
            sample_separator: str = "\n",
            precision_format: str = "",
    ):
        try:
            format(0.0, f"{precision_format}f")
        except ValueError:
            raise ConfigurationError(
                f"Invalid precision format '{precision_format}'; specify e.g. '.2' for two decimal places."
            )
        if label_mapping_file == "":
            label_mapping_file = None

        object.__setattr__(self, "is_category_label", bool(is_category_label))
        object.__setattr__(self, "label_mapping_file", label_mapping_file)
        object.__setattr__(self, "transpose", bool(transpose))
        object.__setattr__(self, "prologue", prologue)
        object.__setattr__(self, "epilogue", epilogue)
        object.__setattr__(self, "sequence_separator", sequence_separator)
        object.__setattr__(self, "sequence_prologue", sequence_prologue)
        object.__setattr__(self, "sequence_epilogue", sequence_epilogue)
        object.__setattr__(self, "element_separator", element_separator)
        object.__setattr__(self, "sample_separator", sample_separator)
        object.__setattr__(self, "precision_format", precision_format)

    def __setattr__(self, key, value):
        raise AttributeError("FormattingOptions are immutable; construct a new one instead.")

    @classmethod
    def from_config(cls, config: Dict) -> "FormattingOptions":
        """Builds options from a config dict, accepting either the field names or the config-style
        keys (type='real'/'category', labelMappingFile, sequenceSeparator, precisionFormat, ...).
        """
        kwargs = {}
        for key, value in config.items():
            if key == "type":
                if value not in ["real", "category"]:
                    raise ConfigurationError(
                        f"Output type must be either 'real' or 'category', not '{value}'."
                    )
                kwargs["is_category_label"] = value == "category"
            elif key in FORMATTING_CONFIG_KEYS:
                kwargs[FORMATTING_CONFIG_KEYS[key]] = value
            elif key in cls._fields:
                kwargs[key] = value
            else:
                raise ConfigurationError(
                    f"Unknown formatting option '{key}'; valid options are 'type', "
                    f"{', '.join(repr(k) for k in FORMATTING_CONFIG_KEYS)}."
                )
        return cls(**kwargs)

    def processed(self, node_name: str) -> Dict[str, str]:
        """The per-sequence fragments with escapes and %s resolved for one node."""
        return {
            "sequence_separator": process_fragment(node_name, self.sequence_separator),
            "sequence_prologue": process_fragment(node_name, self.sequence_prologue),
            "sequence_epilogue": process_fragment(node_name, self.sequence_epilogue),
            "element_separator": process_fragment(node_name, self.element_separator),
            "sample_separator": process_fragment(node_name, self.sample_separator),
        }

    def __eq__(self, other):
        if not isinstance(other, FormattingOptions):
            return NotImplemented
        return all(getattr(self, field) == getattr(other, field) for field in self._fields)

    def __repr__(self) -> str:
        lines = ["FormattingOptions:"]
        for field in self._fields:
            lines.append(f"  {field}: {getattr(self, field)!r}")
        return "\n".join(lines)


class NumericRender:
    """Writes values as real numbers."""

    is_category = False

    def __init__(self, precision_format: str = ""):
        self.precision_format = precision_format
        self._format_spec = f"{precision_format}f" if precision_format != "" else None

    def render(self, value) -> str:
        if self._format_spec is None:
            return str(value)
        return format(float(value), self._format_spec)

    def __repr__(self):
        return f"NumericRender(precision_format={self.precision_format!r})"


class CategoryIndexRender:
    """Writes the argmax category of each column as an unsigned integer."""

    is_category = True

    def render(self, value) -> str:
        return str(int(value))

    def validate_num_rows(self, num_rows: int, node_name: str):
        pass

    def __repr__(self):
        return "CategoryIndexRender()"


class CategoryLabelRender:
    """Writes the argmax category of each column as its label from a label mapping."""

    is_category = True

    def __init__(self, label_mapping: List[str], label_mapping_file: Optional[str] = None):
        self.label_mapping = label_mapping
        self.label_mapping_file = label_mapping_file

    def validate_num_rows(self, num_rows: int, node_name: str):
        if num_rows != len(self.label_mapping):
            raise DimensionMismatchError(
                f"Row dimension {num_rows} of node '{node_name}' does not match number of entries "
                f"{len(self.label_mapping)} in label mapping file '{self.label_mapping_file}'."
            )

    def render(self, value) -> str:
        ind = int(value)
        if not 0 <= ind < len(self.label_mapping):
            raise DimensionMismatchError(
                f"Category index {ind} is out of range for a label mapping with "
                f"{len(self.label_mapping)} entries."
            )
        return self.label_mapping[ind]

    def __repr__(self):
        return f"CategoryLabelRender({len(self.label_mapping)} labels)"


def select_render_mode(options: FormattingOptions, label_mapping: Optional[List[str]] = None):
    """Chooses how values are written, once per node per run.

    Args:
        options: Formatting options.
        label_mapping: Loaded label mapping, if any.

    Returns:
        NumericRender, CategoryIndexRender, or CategoryLabelRender.
    """
    if not options.is_category_label:
        return NumericRender(options.precision_format)
    if label_mapping is not None:
        return CategoryLabelRender(label_mapping, options.label_mapping_file)
    return CategoryIndexRender()


def argmax_rows(values: np.ndarray) -> np.ndarray:
    """Row index of the maximum entry of each column; ties go to the lowest row index."""
    if values.shape[0] == 0:
        raise DimensionMismatchError("Can't find the category of a column with no rows.")
    return np.argmax(values, axis=0)

"""Tests for FormattingOptions, config parsing, and render mode selection."""

import pytest

from torchscribe import ConfigurationError, FormattingOptions, load_label_mapping
from torchscribe.data_classes import (
    CategoryIndexRender,
    CategoryLabelRender,
    NumericRender,
    select_render_mode,
)
from torchscribe.helper_funcs import process_fragment


class TestFormattingOptionsDefaults:
    def test_defaults(self):
        options = FormattingOptions()
        assert options.is_category_label is False
        assert options.label_mapping_file is None
        assert options.transpose is True
        assert options.prologue == ""
        assert options.epilogue == ""
        assert options.sequence_separator == ""
        assert options.sequence_prologue == ""
        assert options.sequence_epilogue == "\n"
        assert options.element_separator == " "
        assert options.sample_separator == "\n"
        assert options.precision_format == ""

    def test_immutable(self):
        options = FormattingOptions()
        with pytest.raises(AttributeError):
            options.transpose = False

    def test_empty_label_mapping_file_is_none(self):
        assert FormattingOptions(label_mapping_file="").label_mapping_file is None

    def test_invalid_precision_format(self):
        with pytest.raises(ConfigurationError):
            FormattingOptions(precision_format=".x")

    def test_repr_lists_fields(self):
        r = repr(FormattingOptions(sequence_separator="|"))
        assert "sequence_separator: '|'" in r


class TestFormattingOptionsFromConfig:
    def test_config_style_keys(self):
        options = FormattingOptions.from_config(
            {
                "type": "category",
                "labelMappingFile": "labels.txt",
                "transpose": False,
                "sequenceSeparator": "--",
                "precisionFormat": ".3",
            }
        )
        assert options.is_category_label is True
        assert options.label_mapping_file == "labels.txt"
        assert options.transpose is False
        assert options.sequence_separator == "--"
        assert options.precision_format == ".3"

    def test_field_names(self):
        options = FormattingOptions.from_config({"element_separator": "\t", "is_category_label": True})
        assert options.element_separator == "\t"
        assert options.is_category_label is True

    def test_real_type(self):
        assert FormattingOptions.from_config({"type": "real"}) == FormattingOptions()

    def test_invalid_type(self):
        with pytest.raises(ConfigurationError):
            FormattingOptions.from_config({"type": "sparse"})

    def test_unknown_key(self):
        with pytest.raises(ConfigurationError, match="Unknown formatting option"):
            FormattingOptions.from_config({"seqSeparator": "|"})


class TestRenderModes:
    def test_numeric(self):
        render_mode = select_render_mode(FormattingOptions(precision_format=".1"))
        assert isinstance(render_mode, NumericRender)
        assert render_mode.render(2.25) == "2.2"

    def test_category_index(self):
        render_mode = select_render_mode(FormattingOptions(is_category_label=True))
        assert isinstance(render_mode, CategoryIndexRender)
        assert render_mode.render(3.0) == "3"

    def test_category_label(self):
        render_mode = select_render_mode(FormattingOptions(is_category_label=True), ["no", "yes"])
        assert isinstance(render_mode, CategoryLabelRender)
        assert render_mode.render(1) == "yes"

    def test_label_mapping_ignored_for_real_values(self):
        assert isinstance(select_render_mode(FormattingOptions(), ["no", "yes"]), NumericRender)


class TestFragments:
    def test_escapes(self):
        assert process_fragment("node", "a\\tb\\n") == "a\tb\n"

    def test_node_name(self):
        assert process_fragment("scores", "<%s>%s") == "<scores>scores"

    def test_processed_covers_sequence_fragments(self):
        fragments = FormattingOptions(sequence_prologue="%s: ").processed("out")
        assert fragments["sequence_prologue"] == "out: "
        assert fragments["sequence_epilogue"] == "\n"
        assert set(fragments) == {
            "sequence_separator",
            "sequence_prologue",
            "sequence_epilogue",
            "element_separator",
            "sample_separator",
        }


class TestLabelMappingFile:
    def test_one_label_per_line(self, label_mapping_file):
        assert load_label_mapping(label_mapping_file) == ["cat", "dog", "bird"]

    def test_whitespace_and_blank_lines(self, tmp_path):
        path = tmp_path / "labels.txt"
        path.write_text(" a \r\n\nb\n")
        assert load_label_mapping(str(path)) == ["a", "b"]

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError):
            load_label_mapping(str(tmp_path / "missing.txt"))

from .formatting_options import (
    CategoryIndexRender,
    CategoryLabelRender,
    FormattingOptions,
    NumericRender,
    select_render_mode,
)
from .graph_node import GraphNode
from .layout import SequenceInfo, SequenceLayout

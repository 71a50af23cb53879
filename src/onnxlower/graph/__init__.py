"""Internal computation graph.

This module provides the NHWC dataflow graph that models are lowered into,
its builder API and a reference evaluator.
"""

__docformat__ = "restructuredtext"
__all__ = [
    "NCHW2NHWC",
    "NHWC2NCHW",
    "Function",
    "Node",
    "NodeKind",
    "Visibility",
    "calculate_conv_pool_output_dims",
    "execute",
]

from onnxlower.graph.function import Function
from onnxlower.graph.interpreter import execute
from onnxlower.graph.shapes import NCHW2NHWC, NHWC2NCHW, calculate_conv_pool_output_dims
from onnxlower.graph.types import Node, NodeKind, Visibility

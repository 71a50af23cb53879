"""Stage 3: Operator lowering.

This module translates ONNX nodes into graph nodes, one node at a time, using
a shared cross-format operator table and an ONNX-specific one.
"""

__docformat__ = "restructuredtext"
__all__ = [
    "COMMON_OPERATORS",
    "ONNX_OPERATORS",
    "Handler",
    "LoweringContext",
    "OperatorKind",
    "TensorBindings",
    "get_handler",
    "load_network",
    "load_operator",
    "register_common_operator",
    "register_onnx_operator",
]

from onnxlower.lower._context import LoweringContext, TensorBindings
from onnxlower.lower._dispatcher import load_network, load_operator
from onnxlower.lower._registry import (
    COMMON_OPERATORS,
    ONNX_OPERATORS,
    Handler,
    OperatorKind,
    get_handler,
    register_common_operator,
    register_onnx_operator,
)

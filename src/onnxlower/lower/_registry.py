"""Operator kinds and lowering handler registries.

Type names are mapped to a closed set of :class:`OperatorKind` values before
dispatch. Two registries exist: the shared cross-format table, queried first,
and the ONNX-specific table.
"""

__docformat__ = "restructuredtext"
__all__ = [
    "COMMON_OPERATORS",
    "ONNX_OPERATORS",
    "Handler",
    "OperatorKind",
    "get_handler",
    "register_common_operator",
    "register_onnx_operator",
]

from collections.abc import Callable
from enum import Enum
from typing import TYPE_CHECKING

from onnx import NodeProto

from onnxlower.analyze import AttributeValue

if TYPE_CHECKING:
    from onnxlower.lower._context import LoweringContext


class OperatorKind(Enum):
    """Operator type names the importer knows how to lower."""

    # Shared cross-format operators
    RELU = "Relu"
    SIGMOID = "Sigmoid"
    TANH = "Tanh"
    SOFTMAX = "Softmax"
    ADD = "Add"
    SUB = "Sub"
    MUL = "Mul"
    DIV = "Div"
    SUM = "Sum"
    MATMUL = "MatMul"
    IDENTITY = "Identity"
    RESHAPE = "Reshape"
    FLATTEN = "Flatten"

    # ONNX-specific operators
    CONSTANT = "Constant"
    CONV = "Conv"
    MAX_POOL = "MaxPool"
    AVERAGE_POOL = "AveragePool"
    GLOBAL_AVERAGE_POOL = "GlobalAveragePool"
    SQUEEZE = "Squeeze"
    UNSQUEEZE = "Unsqueeze"
    DROPOUT = "Dropout"
    BATCH_NORMALIZATION = "BatchNormalization"
    CONCAT = "Concat"
    GEMM = "Gemm"
    TRANSPOSE = "Transpose"

    UNKNOWN = ""

    @classmethod
    def from_type_name(cls, type_name: str) -> "OperatorKind":
        """Map an ONNX op_type to its kind, UNKNOWN if it has none."""
        try:
            kind = cls(type_name)
        except ValueError:
            return cls.UNKNOWN
        return kind


# Handler type: lowers one node given the context and its attribute dictionary
Handler = Callable[["LoweringContext", NodeProto, dict[str, AttributeValue]], None]

COMMON_OPERATORS: dict[OperatorKind, Handler] = {}
ONNX_OPERATORS: dict[OperatorKind, Handler] = {}


def register_common_operator(kind: OperatorKind, handler: Handler) -> None:
    """Register a handler in the shared cross-format table."""
    COMMON_OPERATORS[kind] = handler


def register_onnx_operator(kind: OperatorKind, handler: Handler) -> None:
    """Register a handler in the ONNX-specific table."""
    ONNX_OPERATORS[kind] = handler


def get_handler(kind: OperatorKind) -> Handler | None:
    """Get the handler for an operator kind.

    The shared table wins when both tables know the kind.

    :param kind: Operator kind
    :return: Handler or None if not found
    """
    return COMMON_OPERATORS.get(kind) or ONNX_OPERATORS.get(kind)

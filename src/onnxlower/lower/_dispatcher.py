"""Per-node dispatch over a serialized graph."""

__docformat__ = "restructuredtext"
__all__ = ["load_network", "load_operator"]

from onnx import GraphProto, NodeProto

from onnxlower.analyze import load_argument_map
from onnxlower.errors import ImporterError, UnsupportedOperatorError, ValidationError
from onnxlower.lower._common import register_common_operators
from onnxlower.lower._context import LoweringContext
from onnxlower.lower._operators import register_onnx_operators
from onnxlower.lower._registry import (
    COMMON_OPERATORS,
    ONNX_OPERATORS,
    OperatorKind,
    get_handler,
)


def _ensure_registered() -> None:
    if not COMMON_OPERATORS:
        register_common_operators()
    if not ONNX_OPERATORS:
        register_onnx_operators()


def load_operator(ctx: LoweringContext, op: NodeProto) -> None:
    """Lower a single node into the context's function.

    :param ctx: Lowering context
    :param op: ONNX node
    """
    _ensure_registered()
    attrs = load_argument_map(op)
    name = ctx.operator_name(op)
    kind = OperatorKind.from_type_name(op.op_type)

    handler = get_handler(kind)
    if handler is None:
        raise UnsupportedOperatorError(
            f"Unsupported operator {op.op_type!r}", node_name=name, op_type=op.op_type
        )

    try:
        handler(ctx, op, attrs)
    except ImporterError as error:
        error.with_context(name, op.op_type)
        raise
    except ValueError as error:
        # Graph builder rejected the operands
        raise ValidationError(str(error), node_name=name, op_type=op.op_type) from error


def load_network(ctx: LoweringContext, graph: GraphProto) -> None:
    """Lower every node of ``graph`` in serialized order.

    Producers are expected to precede consumers; no reordering is done.

    :param ctx: Lowering context
    :param graph: ONNX graph
    """
    for op in graph.node:
        load_operator(ctx, op)

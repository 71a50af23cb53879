"""Shared cross-format operator lowering.

Elementwise arithmetic, activations and reshapes that every interchange
format expresses the same way. These handlers are queried before the
ONNX-specific table.
"""

__docformat__ = "restructuredtext"
__all__ = ["get_input", "load_transpose", "register_common_operators"]

import math

from onnx import NodeProto

from onnxlower.analyze import AttributeValue, get_shape, load_int
from onnxlower.errors import UnsupportedOperatorError, ValidationError
from onnxlower.graph import Node
from onnxlower.lower._context import LoweringContext
from onnxlower.lower._registry import OperatorKind, register_common_operator
from onnxlower.lower._shapes import broadcast_axis


def get_input(ctx: LoweringContext, op: NodeProto, idx: int) -> Node:
    """Resolve the ``idx``-th input of ``op`` to a graph value.

    :param ctx: Lowering context
    :param op: ONNX node
    :param idx: Input position
    :return: Graph node
    """
    if idx >= len(op.input) or not op.input[idx]:
        raise ValidationError(f"{op.op_type} expects an input at position {idx}")
    return ctx.get_or_create_variable(op.input[idx])


def load_transpose(
    ctx: LoweringContext,
    op: NodeProto,
    attrs: dict[str, AttributeValue],
    perm_arg_name: str,
) -> None:
    """Lower a transpose whose permutation is stored under ``perm_arg_name``.

    Without a permutation the dimensions are reversed.
    """
    data = get_input(ctx, op, 0)
    if perm_arg_name in attrs:
        perm = get_shape(attrs[perm_arg_name])
    else:
        perm = tuple(reversed(range(len(data.dims))))
    node = ctx.function.create_transpose(ctx.operator_name(op), data, perm)
    ctx.add_node_as_output(op, node)


def _load_relu(ctx: LoweringContext, op: NodeProto, attrs: dict[str, AttributeValue]) -> None:
    node = ctx.function.create_relu(ctx.operator_name(op), get_input(ctx, op, 0))
    ctx.add_node_as_output(op, node)


def _load_sigmoid(ctx: LoweringContext, op: NodeProto, attrs: dict[str, AttributeValue]) -> None:
    node = ctx.function.create_sigmoid(ctx.operator_name(op), get_input(ctx, op, 0))
    ctx.add_node_as_output(op, node)


def _load_tanh(ctx: LoweringContext, op: NodeProto, attrs: dict[str, AttributeValue]) -> None:
    node = ctx.function.create_tanh(ctx.operator_name(op), get_input(ctx, op, 0))
    ctx.add_node_as_output(op, node)


def _load_softmax(ctx: LoweringContext, op: NodeProto, attrs: dict[str, AttributeValue]) -> None:
    """Softmax over the input coerced to 2-D at ``axis``.

    Opset 13 dropped the coercion and changed the default axis to -1; both
    agree only when the axis is the last one.
    """
    data = get_input(ctx, op, 0)
    rank = len(data.dims)
    default_axis = 1 if ctx.opset_version < 13 else -1
    axis = load_int(attrs["axis"]) if "axis" in attrs else default_axis
    if ctx.opset_version >= 13 and axis % max(rank, 1) != rank - 1:
        raise UnsupportedOperatorError(f"Softmax over non-last axis {axis} is not supported")
    node = ctx.function.create_softmax(ctx.operator_name(op), data, axis)
    ctx.add_node_as_output(op, node)


def _load_arithmetic(kind: OperatorKind):
    """Create a handler for a binary elementwise operator.

    The right operand is broadcast to the left one when the version-gated
    policy allows it, aligned at ``axis`` or at the rank difference.
    """

    def handler(ctx: LoweringContext, op: NodeProto, attrs: dict[str, AttributeValue]) -> None:
        name = ctx.operator_name(op)
        lhs = get_input(ctx, op, 0)
        rhs = get_input(ctx, op, 1)

        if ctx.get_broadcast(attrs):
            if "axis" in attrs:
                axis = load_int(attrs["axis"])
                if axis < 0:
                    axis += len(lhs.dims)
            else:
                axis = broadcast_axis(lhs.dims, rhs.dims)
            rhs = ctx.function.create_broadcast(name, rhs, lhs.dims, axis)

        create = {
            OperatorKind.ADD: ctx.function.create_add,
            OperatorKind.SUB: ctx.function.create_sub,
            OperatorKind.MUL: ctx.function.create_mul,
            OperatorKind.DIV: ctx.function.create_div,
        }[kind]
        ctx.add_node_as_output(op, create(name, lhs, rhs))

    return handler


def _load_sum(ctx: LoweringContext, op: NodeProto, attrs: dict[str, AttributeValue]) -> None:
    name = ctx.operator_name(op)
    node = get_input(ctx, op, 0)
    for idx in range(1, len(op.input)):
        node = ctx.function.create_add(name, node, get_input(ctx, op, idx))
    ctx.add_node_as_output(op, node)


def _load_matmul(ctx: LoweringContext, op: NodeProto, attrs: dict[str, AttributeValue]) -> None:
    lhs = get_input(ctx, op, 0)
    rhs = get_input(ctx, op, 1)
    if len(lhs.dims) != 2 or len(rhs.dims) != 2:
        raise UnsupportedOperatorError(
            f"Only 2-D MatMul is supported, got {list(lhs.dims)} x {list(rhs.dims)}"
        )
    node = ctx.function.create_matmul(ctx.operator_name(op), lhs, rhs)
    ctx.add_node_as_output(op, node)


def _load_identity(ctx: LoweringContext, op: NodeProto, attrs: dict[str, AttributeValue]) -> None:
    ctx.add_node_as_output(op, get_input(ctx, op, 0))


def _resolve_reshape_dims(input_dims: tuple[int, ...], requested: tuple[int, ...]) -> list[int]:
    """Apply ONNX reshape rules: 0 copies the input dim, -1 is inferred."""
    dims = [input_dims[i] if d == 0 and i < len(input_dims) else d for i, d in enumerate(requested)]
    if dims.count(-1) > 1:
        raise ValidationError(f"Reshape to {list(requested)} has more than one -1")
    if -1 in dims:
        known = math.prod(d for d in dims if d != -1)
        if known == 0 or math.prod(input_dims) % known:
            raise ValidationError(f"Can't infer -1 when reshaping {list(input_dims)}")
        dims[dims.index(-1)] = math.prod(input_dims) // known
    return dims


def _load_reshape(ctx: LoweringContext, op: NodeProto, attrs: dict[str, AttributeValue]) -> None:
    data = get_input(ctx, op, 0)
    if "shape" in attrs:
        requested = get_shape(attrs["shape"])
    elif len(op.input) > 1 and op.input[1]:
        requested = tuple(int(d) for d in ctx.get_constant_tensor(op.input[1]).reshape(-1))
    else:
        raise UnsupportedOperatorError("Reshape needs a constant target shape")
    dims = _resolve_reshape_dims(data.dims, requested)
    node = ctx.function.create_reshape(ctx.operator_name(op), data, dims)
    ctx.add_node_as_output(op, node)


def _load_flatten(ctx: LoweringContext, op: NodeProto, attrs: dict[str, AttributeValue]) -> None:
    data = get_input(ctx, op, 0)
    axis = load_int(attrs["axis"]) if "axis" in attrs else 1
    if axis < 0:
        axis += len(data.dims)
    if not 0 <= axis <= len(data.dims):
        raise ValidationError(f"Flatten axis {axis} is out of range for {list(data.dims)}")
    dims = (math.prod(data.dims[:axis]), math.prod(data.dims[axis:]))
    node = ctx.function.create_reshape(ctx.operator_name(op), data, dims)
    ctx.add_node_as_output(op, node)


def register_common_operators() -> None:
    """Register all shared cross-format handlers."""
    register_common_operator(OperatorKind.RELU, _load_relu)
    register_common_operator(OperatorKind.SIGMOID, _load_sigmoid)
    register_common_operator(OperatorKind.TANH, _load_tanh)
    register_common_operator(OperatorKind.SOFTMAX, _load_softmax)
    for kind in (OperatorKind.ADD, OperatorKind.SUB, OperatorKind.MUL, OperatorKind.DIV):
        register_common_operator(kind, _load_arithmetic(kind))
    register_common_operator(OperatorKind.SUM, _load_sum)
    register_common_operator(OperatorKind.MATMUL, _load_matmul)
    register_common_operator(OperatorKind.IDENTITY, _load_identity)
    register_common_operator(OperatorKind.RESHAPE, _load_reshape)
    register_common_operator(OperatorKind.FLATTEN, _load_flatten)

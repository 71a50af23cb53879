"""ONNX-specific operator lowering.

Spatial operators keep the ONNX NCHW layout at their boundary: the input is
transposed to NHWC on entry and the result transposed back on exit, so every
internal computation runs in the compiler's channel-last layout.
"""

__docformat__ = "restructuredtext"
__all__ = ["register_onnx_operators"]

import warnings

import torch
from onnx import NodeProto

from onnxlower.analyze import (
    AttributeValue,
    get_shape,
    load_float,
    load_int,
    load_tensor,
    load_tensor_attr,
    require,
)
from onnxlower.errors import UnsupportedOperatorError, ValidationError
from onnxlower.graph import NCHW2NHWC, NHWC2NCHW, Node
from onnxlower.lower._common import get_input, load_transpose
from onnxlower.lower._context import LoweringContext
from onnxlower.lower._registry import OperatorKind, register_onnx_operator
from onnxlower.lower._shapes import (
    broadcast_axis,
    get_kernel,
    get_pads,
    get_stride,
    output_dims,
)
from onnxlower.presets import DEFAULT_EPSILON


def _get_spatial_input(ctx: LoweringContext, op: NodeProto) -> Node:
    data = get_input(ctx, op, 0)
    if len(data.dims) != 4:
        raise UnsupportedOperatorError(
            f"Only 2-D images (NCHW) are supported, got input dims {list(data.dims)}"
        )
    return data


def _check_window_attrs(attrs: dict[str, AttributeValue]) -> None:
    """Reject window attributes whose non-default values would change the result."""
    if "dilations" in attrs and any(d != 1 for d in get_shape(attrs["dilations"])):
        raise UnsupportedOperatorError(f"dilations={list(get_shape(attrs['dilations']))}")
    if "ceil_mode" in attrs and load_int(attrs["ceil_mode"]) != 0:
        raise UnsupportedOperatorError("ceil_mode=1 is not supported")


def _load_constant(ctx: LoweringContext, op: NodeProto, attrs: dict[str, AttributeValue]) -> None:
    name = op.output[0]
    # A tensor bound by the caller wins over the embedded value
    if ctx.has_tensor(name):
        return
    value = load_tensor_attr(require(attrs, "value", op.op_type))
    ctx.add_tensor(name, load_tensor(value))


def _load_conv(ctx: LoweringContext, op: NodeProto, attrs: dict[str, AttributeValue]) -> None:
    name = ctx.operator_name(op)
    stride = get_stride(attrs)
    group = load_int(attrs["group"]) if "group" in attrs else 1
    pads = get_pads(attrs)
    _check_window_attrs(attrs)

    data = _get_spatial_input(ctx, op)
    if len(op.input) < 2 or not op.input[1]:
        raise ValidationError("Conv expects a weight input")
    weight = ctx.get_constant_tensor(op.input[1])
    if weight.dim() != 4:
        raise UnsupportedOperatorError(
            f"Only 2-D convolution is supported, got weight dims {list(weight.shape)}"
        )

    # ONNX stores weights as (K, C, R, S), the graph expects (K, R, S, C)
    wtag = weight.permute(*NCHW2NHWC).contiguous()
    depth = wtag.shape[0]
    filter = ctx.function.create_variable(f"{name}.filter", wtag)

    kernel = get_kernel(attrs, wtag.shape)
    if tuple(wtag.shape[1:3]) != (kernel, kernel):
        raise ValidationError(
            f"kernel_shape {kernel} does not match weight dims {list(weight.shape)}"
        )

    bias_tensor = torch.zeros(depth, dtype=wtag.dtype)
    if len(op.input) > 2 and op.input[2]:
        bias_name = op.input[2]
        if ctx.has_tensor(bias_name):
            bias = ctx.get_constant_tensor(bias_name)
            if tuple(bias.shape) != (depth,):
                raise ValidationError(
                    f"Bias dims {list(bias.shape)} do not match {depth} output channels"
                )
            bias_tensor = bias.to(wtag.dtype).clone()
        elif ctx.has_node(bias_name):
            raise UnsupportedOperatorError("Conv bias must be constant")
    bias_node = ctx.function.create_variable(f"{name}.bias", bias_tensor)

    tr = ctx.function.create_transpose(name, data, NCHW2NHWC)
    if tr.dims[3] != wtag.shape[3] * group:
        raise ValidationError(
            f"Weight expects {wtag.shape[3] * group} input channels, input has {tr.dims[3]}"
        )
    out_dims = output_dims(tr.dims, kernel, stride, pads, depth)
    conv = ctx.function.create_conv(
        name, tr, filter, bias_node, out_dims, kernel, stride, pads, group
    )

    node = ctx.function.create_transpose(name, conv, NHWC2NCHW)
    ctx.add_node_as_output(op, node)


def _load_pool(kind: OperatorKind):
    """Create a MaxPool or AveragePool handler."""

    def handler(ctx: LoweringContext, op: NodeProto, attrs: dict[str, AttributeValue]) -> None:
        name = ctx.operator_name(op)
        data = _get_spatial_input(ctx, op)
        stride = get_stride(attrs)
        pads = get_pads(attrs)
        _check_window_attrs(attrs)

        if "global_pooling" in attrs and load_int(attrs["global_pooling"]):
            # Pool over the whole image
            kernel = data.dims[3]
        else:
            require(attrs, "kernel_shape", op.op_type)
            kernel = get_kernel(attrs, ())

        if kind == OperatorKind.AVERAGE_POOL and any(pads):
            count_include_pad = attrs.get("count_include_pad")
            if count_include_pad is None or load_int(count_include_pad) != 1:
                raise UnsupportedOperatorError(
                    "Padded AveragePool must set count_include_pad=1"
                )

        tr = ctx.function.create_transpose(name, data, NCHW2NHWC)
        if kind == OperatorKind.MAX_POOL:
            node = ctx.function.create_pool_max(name, tr, kernel, stride, pads)
        else:
            node = ctx.function.create_pool_avg(name, tr, kernel, stride, pads)
        ctx.add_node_as_output(op, ctx.function.create_transpose(name, node, NHWC2NCHW))

    return handler


def _load_global_average_pool(
    ctx: LoweringContext, op: NodeProto, attrs: dict[str, AttributeValue]
) -> None:
    name = ctx.operator_name(op)
    data = _get_spatial_input(ctx, op)
    stride = get_stride(attrs)
    if data.dims[2] != data.dims[3]:
        raise UnsupportedOperatorError(
            f"GlobalAveragePool requires height == width, got {data.dims[2]}x{data.dims[3]}"
        )
    kernel = data.dims[2]
    pads = get_pads(attrs)

    tr = ctx.function.create_transpose(name, data, NCHW2NHWC)
    node = ctx.function.create_pool_avg(name, tr, kernel, stride, pads)
    ctx.add_node_as_output(op, ctx.function.create_transpose(name, node, NHWC2NCHW))


def _get_axes(
    ctx: LoweringContext, op: NodeProto, attrs: dict[str, AttributeValue]
) -> tuple[int, ...]:
    """Axes from the attribute, or from a constant second input (opset 13)."""
    if "axes" in attrs:
        return get_shape(attrs["axes"])
    if len(op.input) > 1 and op.input[1]:
        return tuple(int(axis) for axis in ctx.get_constant_tensor(op.input[1]).reshape(-1))
    raise ValidationError(f"{op.op_type} requires the 'axes' attribute")


def _load_squeeze(ctx: LoweringContext, op: NodeProto, attrs: dict[str, AttributeValue]) -> None:
    data = get_input(ctx, op, 0)
    axes = _get_axes(ctx, op, attrs)
    node = ctx.function.create_squeeze(ctx.operator_name(op), data, axes)
    ctx.add_node_as_output(op, node)


def _load_unsqueeze(ctx: LoweringContext, op: NodeProto, attrs: dict[str, AttributeValue]) -> None:
    data = get_input(ctx, op, 0)
    axes = _get_axes(ctx, op, attrs)
    node = ctx.function.create_expand_dims(ctx.operator_name(op), data, axes)
    ctx.add_node_as_output(op, node)


def _load_dropout(ctx: LoweringContext, op: NodeProto, attrs: dict[str, AttributeValue]) -> None:
    # Identity at inference time
    data = get_input(ctx, op, 0)
    ctx.bind_output(op.output[0], data)
    if len(op.output) > 1 and op.output[1]:
        warnings.warn(
            f"Dropout {ctx.operator_name(op)}: mask output {op.output[1]!r} is not produced",
            UserWarning,
            stacklevel=2,
        )


def _load_batch_normalization(
    ctx: LoweringContext, op: NodeProto, attrs: dict[str, AttributeValue]
) -> None:
    data = get_input(ctx, op, 0)
    if len(op.input) < 5:
        raise ValidationError(f"BatchNormalization expects 5 inputs, got {len(op.input)}")
    params = [ctx.get_constant_tensor(op.input[idx]) for idx in range(1, 5)]
    epsilon = load_float(attrs["epsilon"]) if "epsilon" in attrs else DEFAULT_EPSILON

    node = ctx.function.create_batch_normalization(ctx.operator_name(op), data, 1, epsilon)

    # Load the weights: (scale, bias, mean, var)
    for variable, tensor in zip(node.inputs[1:], params):
        variable.copy_from(tensor)
    ctx.add_node_as_output(op, node)


def _load_concat(ctx: LoweringContext, op: NodeProto, attrs: dict[str, AttributeValue]) -> None:
    inputs = [get_input(ctx, op, idx) for idx in range(len(op.input))]
    axis = load_int(require(attrs, "axis", op.op_type))
    node = ctx.function.create_concat(ctx.operator_name(op), inputs, axis)
    ctx.add_node_as_output(op, node)


def _load_gemm(ctx: LoweringContext, op: NodeProto, attrs: dict[str, AttributeValue]) -> None:
    name = ctx.operator_name(op)
    for scalar in ("alpha", "beta"):
        if scalar in attrs and load_float(attrs[scalar]) != 1.0:
            raise UnsupportedOperatorError(f"Gemm with {scalar} != 1 is not supported")

    a = get_input(ctx, op, 0)
    b = get_input(ctx, op, 1)
    if len(a.dims) != 2 or len(b.dims) != 2:
        raise UnsupportedOperatorError(
            f"Gemm operands must be 2-D, got {list(a.dims)} and {list(b.dims)}"
        )

    if "transA" in attrs and load_int(attrs["transA"]):
        a = ctx.function.create_transpose(name, a, (1, 0))
    if "transB" in attrs and load_int(attrs["transB"]):
        b = ctx.function.create_transpose(name, b, (1, 0))

    mul = ctx.function.create_matmul(name, a, b)
    if len(op.input) < 3 or not op.input[2]:
        ctx.add_node_as_output(op, mul)
        return

    c = get_input(ctx, op, 2)
    if ctx.get_broadcast(attrs):
        axis = broadcast_axis(mul.dims, c.dims)
        c = ctx.function.create_broadcast(name, c, mul.dims, axis)
    elif c.dims != mul.dims:
        raise UnsupportedOperatorError(
            f"Bias dims {list(c.dims)} differ from result dims {list(mul.dims)} "
            f"and broadcasting is off (opset {ctx.opset_version}, no broadcast=1)"
        )

    ctx.add_node_as_output(op, ctx.function.create_add(name, mul, c))


def _load_transpose(ctx: LoweringContext, op: NodeProto, attrs: dict[str, AttributeValue]) -> None:
    load_transpose(ctx, op, attrs, "perm")


def register_onnx_operators() -> None:
    """Register all ONNX-specific handlers."""
    register_onnx_operator(OperatorKind.CONSTANT, _load_constant)
    register_onnx_operator(OperatorKind.CONV, _load_conv)
    register_onnx_operator(OperatorKind.MAX_POOL, _load_pool(OperatorKind.MAX_POOL))
    register_onnx_operator(OperatorKind.AVERAGE_POOL, _load_pool(OperatorKind.AVERAGE_POOL))
    register_onnx_operator(OperatorKind.GLOBAL_AVERAGE_POOL, _load_global_average_pool)
    register_onnx_operator(OperatorKind.SQUEEZE, _load_squeeze)
    register_onnx_operator(OperatorKind.UNSQUEEZE, _load_unsqueeze)
    register_onnx_operator(OperatorKind.DROPOUT, _load_dropout)
    register_onnx_operator(OperatorKind.BATCH_NORMALIZATION, _load_batch_normalization)
    register_onnx_operator(OperatorKind.CONCAT, _load_concat)
    register_onnx_operator(OperatorKind.GEMM, _load_gemm)
    register_onnx_operator(OperatorKind.TRANSPOSE, _load_transpose)

"""Reference evaluator for lowered functions.

Runs every node of a :class:`Function` in order on torch tensors. It performs
no scheduling or memory planning and exists to check lowered graphs
numerically.
"""

__docformat__ = "restructuredtext"
__all__ = ["EVALUATORS", "execute"]

import math
from collections.abc import Callable, Mapping

import torch
import torch.nn.functional as F

from onnxlower.graph.function import Function
from onnxlower.graph.shapes import NCHW2NHWC, NHWC2NCHW
from onnxlower.graph.types import Node, NodeKind, Visibility

# Evaluator: takes the node and its evaluated operands, returns the result
Evaluator = Callable[[Node, list[torch.Tensor]], torch.Tensor]


def _pad_nchw(x: torch.Tensor, pads: tuple[int, ...], value: float = 0.0) -> torch.Tensor:
    """Pad the spatial axes of an NCHW tensor with (top, left, bottom, right) pads."""
    top, left, bottom, right = pads
    return F.pad(x, (left, right, top, bottom), value=value)


def _eval_convolution(node: Node, args: list[torch.Tensor]) -> torch.Tensor:
    x, filter, bias = args
    x = _pad_nchw(x.permute(*NHWC2NCHW), node.attrs["pads"])
    weight = filter.permute(*NHWC2NCHW)
    y = F.conv2d(x, weight, bias, stride=node.attrs["stride"], groups=node.attrs["group"])
    return y.permute(*NCHW2NHWC)


def _eval_max_pool(node: Node, args: list[torch.Tensor]) -> torch.Tensor:
    x = _pad_nchw(args[0].permute(*NHWC2NCHW), node.attrs["pads"], value=-math.inf)
    y = F.max_pool2d(x, node.attrs["kernel"], node.attrs["stride"])
    return y.permute(*NCHW2NHWC)


def _eval_avg_pool(node: Node, args: list[torch.Tensor]) -> torch.Tensor:
    x = _pad_nchw(args[0].permute(*NHWC2NCHW), node.attrs["pads"])
    y = F.avg_pool2d(x, node.attrs["kernel"], node.attrs["stride"])
    return y.permute(*NCHW2NHWC)


def _eval_batch_normalization(node: Node, args: list[torch.Tensor]) -> torch.Tensor:
    x, scale, bias, mean, var = args
    channel_idx = node.attrs["channel_idx"]
    shape = [1] * x.dim()
    shape[channel_idx] = x.shape[channel_idx]
    inv_std = torch.rsqrt(var + node.attrs["epsilon"])
    return (x - mean.reshape(shape)) * (scale * inv_std).reshape(shape) + bias.reshape(shape)


def _eval_broadcast(node: Node, args: list[torch.Tensor]) -> torch.Tensor:
    x = args[0]
    axis = node.attrs["axis"]
    trailing = len(node.dims) - axis - x.dim()
    aligned = x.reshape([1] * axis + list(x.shape) + [1] * trailing)
    return aligned.expand(node.dims).contiguous()


def _eval_softmax(node: Node, args: list[torch.Tensor]) -> torch.Tensor:
    x = args[0]
    rows = math.prod(x.shape[: node.attrs["axis"]])
    return torch.softmax(x.reshape(rows, -1), dim=1).reshape(x.shape)


EVALUATORS: dict[NodeKind, Evaluator] = {
    NodeKind.TRANSPOSE: lambda n, a: a[0].permute(*n.attrs["shuffle"]).contiguous(),
    NodeKind.CONVOLUTION: _eval_convolution,
    NodeKind.MAX_POOL: _eval_max_pool,
    NodeKind.AVG_POOL: _eval_avg_pool,
    NodeKind.BATCH_NORMALIZATION: _eval_batch_normalization,
    NodeKind.CONCAT: lambda n, a: torch.cat(a, dim=n.attrs["axis"]),
    NodeKind.MATMUL: lambda n, a: torch.matmul(a[0], a[1]),
    NodeKind.ADD: lambda n, a: a[0] + a[1],
    NodeKind.SUB: lambda n, a: a[0] - a[1],
    NodeKind.MUL: lambda n, a: a[0] * a[1],
    NodeKind.DIV: lambda n, a: a[0] / a[1],
    NodeKind.BROADCAST: _eval_broadcast,
    NodeKind.RESHAPE: lambda n, a: a[0].reshape(n.dims),
    NodeKind.SQUEEZE: lambda n, a: a[0].reshape(n.dims),
    NodeKind.EXPAND_DIMS: lambda n, a: a[0].reshape(n.dims),
    NodeKind.RELU: lambda n, a: torch.relu(a[0]),
    NodeKind.SIGMOID: lambda n, a: torch.sigmoid(a[0]),
    NodeKind.TANH: lambda n, a: torch.tanh(a[0]),
    NodeKind.SOFTMAX: _eval_softmax,
    NodeKind.SAVE: lambda n, a: a[0],
}


def _bind_variable(node: Node, inputs: Mapping[str, torch.Tensor]) -> torch.Tensor:
    if node.name not in inputs:
        if node.payload is None:
            raise ValueError(f"Variable {node.name} holds no data and is not bound")
        return node.payload
    if node.visibility != Visibility.PUBLIC:
        raise ValueError(f"Variable {node.name} is private and can't be rebound")
    value = torch.as_tensor(inputs[node.name], dtype=node.dtype)
    if tuple(value.shape) != node.dims:
        raise ValueError(
            f"Input {node.name} has shape {list(value.shape)}, expected {list(node.dims)}"
        )
    return value


def execute(
    function: Function,
    inputs: Mapping[str, torch.Tensor] | None = None,
) -> dict[str, torch.Tensor]:
    """Evaluate a function.

    :param function: Lowered function
    :param inputs: Values for public variables, keyed by variable name
    :return: Value of every Save node, keyed by node name
    """
    inputs = inputs or {}
    unknown = set(inputs) - {node.name for node in function.variables}
    if unknown:
        raise ValueError(f"No variables named {sorted(unknown)}")

    values: dict[int, torch.Tensor] = {}
    results: dict[str, torch.Tensor] = {}
    with torch.no_grad():
        for node in function.nodes:
            if node.kind == NodeKind.VARIABLE:
                values[id(node)] = _bind_variable(node, inputs)
                continue
            args = [values[id(operand)] for operand in node.inputs]
            values[id(node)] = EVALUATORS[node.kind](node, args)
            if node.kind == NodeKind.SAVE:
                results[node.name] = values[id(node)]
    return results

"""Graph builder.

A :class:`Function` owns an ordered list of nodes. Every ``create_*`` method
validates its operands, infers the result type and appends one node, so the
node list is always in a valid evaluation order.
"""

__docformat__ = "restructuredtext"
__all__ = ["Function"]

import math
from collections.abc import Sequence

import torch

from onnxlower.graph.shapes import calculate_conv_pool_output_dims
from onnxlower.graph.types import Node, NodeKind, Visibility


def _normalize_axis(axis: int, rank: int) -> int:
    if not -rank <= axis < rank:
        raise ValueError(f"Axis {axis} is out of range for rank {rank}")
    return axis % rank


class Function:
    """A named computation graph.

    :param name: Function name
    """

    def __init__(self, name: str = "main"):
        self.name = name
        self.nodes: list[Node] = []
        self._names: set[str] = set()

    # ----- Bookkeeping -----

    def _unique_name(self, name: str) -> str:
        name = name or "node"
        if name not in self._names:
            return name
        suffix = 1
        while f"{name}__{suffix}" in self._names:
            suffix += 1
        return f"{name}__{suffix}"

    def _add(self, node: Node) -> Node:
        node.name = self._unique_name(node.name)
        self._names.add(node.name)
        self.nodes.append(node)
        return node

    def mark(self) -> int:
        """Remember the current end of the node list."""
        return len(self.nodes)

    def rollback(self, mark: int) -> None:
        """Drop every node created after ``mark``."""
        for node in self.nodes[mark:]:
            self._names.discard(node.name)
        del self.nodes[mark:]

    def get_node(self, name: str) -> Node | None:
        """Find a node by its unique name."""
        return next((node for node in self.nodes if node.name == name), None)

    @property
    def variables(self) -> list[Node]:
        return [node for node in self.nodes if node.kind == NodeKind.VARIABLE]

    @property
    def saves(self) -> list[Node]:
        return [node for node in self.nodes if node.kind == NodeKind.SAVE]

    # ----- Builders -----

    def create_variable(
        self,
        name: str,
        tensor: torch.Tensor,
        visibility: Visibility = Visibility.PRIVATE,
    ) -> Node:
        """Create a variable holding a copy of ``tensor``."""
        return self._add(
            Node(
                name=name,
                kind=NodeKind.VARIABLE,
                inputs=[],
                dims=tuple(tensor.shape),
                dtype=tensor.dtype,
                payload=tensor.detach().clone(),
                visibility=visibility,
            )
        )

    def create_transpose(self, name: str, input: Node, shuffle: Sequence[int]) -> Node:
        shuffle = tuple(shuffle)
        if sorted(shuffle) != list(range(len(input.dims))):
            raise ValueError(f"{list(shuffle)} is not a permutation of rank {len(input.dims)}")
        dims = tuple(input.dims[i] for i in shuffle)
        return self._add(
            Node(name, NodeKind.TRANSPOSE, [input], dims, input.dtype, {"shuffle": shuffle})
        )

    def create_conv(
        self,
        name: str,
        input: Node,
        filter: Node,
        bias: Node,
        out_dims: Sequence[int],
        kernel: int,
        stride: int,
        pads: Sequence[int],
        group: int,
    ) -> Node:
        """Create an NHWC convolution.

        :param input: Input in (N, H, W, C) layout
        :param filter: Filter in (K, R, S, C / group) layout
        :param bias: Bias of length K
        :param out_dims: Result dims (N, outH, outW, K)
        """
        if len(input.dims) != 4 or len(filter.dims) != 4:
            raise ValueError("Convolution expects rank-4 input and filter")
        n, h, w, c = input.dims
        depth = filter.dims[0]
        if group <= 0 or c % group or depth % group:
            raise ValueError(f"Group {group} does not divide channels {c} and depth {depth}")
        if filter.dims[3] * group != c:
            raise ValueError(
                f"Filter expects {filter.dims[3] * group} input channels, input has {c}"
            )
        if bias.dims != (depth,):
            raise ValueError(f"Bias dims {list(bias.dims)} do not match depth {depth}")
        out_h, out_w = calculate_conv_pool_output_dims(h, w, kernel, stride, tuple(pads))
        if tuple(out_dims) != (n, out_h, out_w, depth):
            raise ValueError(
                f"Output dims {list(out_dims)} do not match expected {[n, out_h, out_w, depth]}"
            )
        attrs = {"kernel": kernel, "stride": stride, "pads": tuple(pads), "group": group}
        return self._add(
            Node(
                name,
                NodeKind.CONVOLUTION,
                [input, filter, bias],
                tuple(out_dims),
                input.dtype,
                attrs,
            )
        )

    def _create_pool(
        self,
        kind: NodeKind,
        name: str,
        input: Node,
        kernel: int,
        stride: int,
        pads: Sequence[int],
    ) -> Node:
        if len(input.dims) != 4:
            raise ValueError("Pooling expects a rank-4 input")
        n, h, w, c = input.dims
        out_h, out_w = calculate_conv_pool_output_dims(h, w, kernel, stride, tuple(pads))
        attrs = {"kernel": kernel, "stride": stride, "pads": tuple(pads)}
        return self._add(Node(name, kind, [input], (n, out_h, out_w, c), input.dtype, attrs))

    def create_pool_max(
        self, name: str, input: Node, kernel: int, stride: int, pads: Sequence[int]
    ) -> Node:
        return self._create_pool(NodeKind.MAX_POOL, name, input, kernel, stride, pads)

    def create_pool_avg(
        self, name: str, input: Node, kernel: int, stride: int, pads: Sequence[int]
    ) -> Node:
        return self._create_pool(NodeKind.AVG_POOL, name, input, kernel, stride, pads)

    def create_batch_normalization(
        self,
        name: str,
        input: Node,
        channel_idx: int,
        epsilon: float,
        momentum: float = 0.9,
    ) -> Node:
        """Create a batch normalization with fresh scale, bias, mean and variance.

        The parameters are private variables (scale and variance set to one,
        bias and mean to zero) that callers overwrite with
        :meth:`Node.copy_from`.

        :return: Node whose inputs are (input, scale, bias, mean, var)
        """
        channel_idx = _normalize_axis(channel_idx, len(input.dims))
        channels = input.dims[channel_idx]
        params = [
            self.create_variable(f"{name}.{param}", init(channels, dtype=input.dtype))
            for param, init in (
                ("scale", torch.ones),
                ("bias", torch.zeros),
                ("mean", torch.zeros),
                ("var", torch.ones),
            )
        ]
        attrs = {"channel_idx": channel_idx, "epsilon": epsilon, "momentum": momentum}
        return self._add(
            Node(
                name,
                NodeKind.BATCH_NORMALIZATION,
                [input, *params],
                input.dims,
                input.dtype,
                attrs,
            )
        )

    def create_concat(self, name: str, inputs: Sequence[Node], axis: int) -> Node:
        if not inputs:
            raise ValueError("Concat needs at least one input")
        first = inputs[0]
        axis = _normalize_axis(axis, len(first.dims))
        for other in inputs[1:]:
            same_rank = len(other.dims) == len(first.dims)
            if not same_rank or any(
                a != b for i, (a, b) in enumerate(zip(first.dims, other.dims)) if i != axis
            ):
                raise ValueError(
                    f"Can't concatenate {list(other.dims)} with {list(first.dims)} on axis {axis}"
                )
        dims = list(first.dims)
        dims[axis] = sum(node.dims[axis] for node in inputs)
        return self._add(
            Node(name, NodeKind.CONCAT, list(inputs), tuple(dims), first.dtype, {"axis": axis})
        )

    def create_matmul(self, name: str, lhs: Node, rhs: Node) -> Node:
        if len(lhs.dims) != 2 or len(rhs.dims) != 2 or lhs.dims[1] != rhs.dims[0]:
            raise ValueError(f"Can't multiply {list(lhs.dims)} by {list(rhs.dims)}")
        dims = (lhs.dims[0], rhs.dims[1])
        return self._add(Node(name, NodeKind.MATMUL, [lhs, rhs], dims, lhs.dtype))

    def _create_arithmetic(self, kind: NodeKind, name: str, lhs: Node, rhs: Node) -> Node:
        if lhs.dims != rhs.dims:
            raise ValueError(
                f"{kind.value} operands must have equal dims, "
                f"got {list(lhs.dims)} and {list(rhs.dims)}"
            )
        return self._add(Node(name, kind, [lhs, rhs], lhs.dims, lhs.dtype))

    def create_add(self, name: str, lhs: Node, rhs: Node) -> Node:
        return self._create_arithmetic(NodeKind.ADD, name, lhs, rhs)

    def create_sub(self, name: str, lhs: Node, rhs: Node) -> Node:
        return self._create_arithmetic(NodeKind.SUB, name, lhs, rhs)

    def create_mul(self, name: str, lhs: Node, rhs: Node) -> Node:
        return self._create_arithmetic(NodeKind.MUL, name, lhs, rhs)

    def create_div(self, name: str, lhs: Node, rhs: Node) -> Node:
        return self._create_arithmetic(NodeKind.DIV, name, lhs, rhs)

    def create_broadcast(
        self, name: str, input: Node, new_shape: Sequence[int], axis: int
    ) -> Node:
        """Broadcast ``input`` to ``new_shape``, aligning its first dim with ``axis``."""
        new_shape = tuple(new_shape)
        if axis < 0 or axis + len(input.dims) > len(new_shape):
            raise ValueError(
                f"Can't place {list(input.dims)} at axis {axis} of {list(new_shape)}"
            )
        for i, dim in enumerate(input.dims):
            if dim not in (1, new_shape[axis + i]):
                raise ValueError(
                    f"Can't broadcast {list(input.dims)} to {list(new_shape)} at axis {axis}"
                )
        return self._add(
            Node(name, NodeKind.BROADCAST, [input], new_shape, input.dtype, {"axis": axis})
        )

    def create_reshape(self, name: str, input: Node, dims: Sequence[int]) -> Node:
        dims = tuple(dims)
        if math.prod(dims) != math.prod(input.dims):
            raise ValueError(f"Can't reshape {list(input.dims)} to {list(dims)}")
        return self._add(Node(name, NodeKind.RESHAPE, [input], dims, input.dtype))

    def create_squeeze(self, name: str, input: Node, axes: Sequence[int]) -> Node:
        axes = sorted({_normalize_axis(axis, len(input.dims)) for axis in axes})
        for axis in axes:
            if input.dims[axis] != 1:
                raise ValueError(f"Can't squeeze axis {axis} of size {input.dims[axis]}")
        dims = tuple(dim for i, dim in enumerate(input.dims) if i not in axes)
        return self._add(
            Node(name, NodeKind.SQUEEZE, [input], dims, input.dtype, {"axes": tuple(axes)})
        )

    def create_expand_dims(self, name: str, input: Node, axes: Sequence[int]) -> Node:
        out_rank = len(input.dims) + len(axes)
        axes = sorted({_normalize_axis(axis, out_rank) for axis in axes})
        if len(axes) != out_rank - len(input.dims):
            raise ValueError(f"Duplicate axes in {list(axes)}")
        remaining = iter(input.dims)
        dims = tuple(1 if i in axes else next(remaining) for i in range(out_rank))
        return self._add(
            Node(name, NodeKind.EXPAND_DIMS, [input], dims, input.dtype, {"axes": tuple(axes)})
        )

    def _create_unary(self, kind: NodeKind, name: str, input: Node) -> Node:
        return self._add(Node(name, kind, [input], input.dims, input.dtype))

    def create_relu(self, name: str, input: Node) -> Node:
        return self._create_unary(NodeKind.RELU, name, input)

    def create_sigmoid(self, name: str, input: Node) -> Node:
        return self._create_unary(NodeKind.SIGMOID, name, input)

    def create_tanh(self, name: str, input: Node) -> Node:
        return self._create_unary(NodeKind.TANH, name, input)

    def create_softmax(self, name: str, input: Node, axis: int = 1) -> Node:
        """Softmax over the input coerced to 2-D at ``axis``."""
        if input.dims:
            axis = _normalize_axis(axis, len(input.dims))
        return self._add(
            Node(name, NodeKind.SOFTMAX, [input], input.dims, input.dtype, {"axis": axis})
        )

    def create_save(self, name: str, input: Node) -> Node:
        """Create a sink that keeps ``input`` as a function output."""
        return self._add(Node(name, NodeKind.SAVE, [input], input.dims, input.dtype))

    def __repr__(self) -> str:
        body = "\n".join(f"  {node!r}" for node in self.nodes)
        return f"Function {self.name} ({len(self.nodes)} nodes)\n{body}"

"""Internal computation graph node types.

Nodes form a typed dataflow graph in channel-last (NHWC) layout. Every node
produces a single result whose dimensions and element type are fixed when the
node is created.
"""

__docformat__ = "restructuredtext"
__all__ = ["Node", "NodeKind", "Visibility"]

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

import torch


class NodeKind(Enum):
    """Operations the graph can represent."""

    VARIABLE = "Variable"
    TRANSPOSE = "Transpose"
    CONVOLUTION = "Convolution"
    MAX_POOL = "PoolMax"
    AVG_POOL = "PoolAvg"
    BATCH_NORMALIZATION = "BatchNormalization"
    CONCAT = "Concat"
    MATMUL = "MatMul"
    ADD = "Add"
    SUB = "Sub"
    MUL = "Mul"
    DIV = "Div"
    BROADCAST = "Broadcast"
    RESHAPE = "Reshape"
    SQUEEZE = "Squeeze"
    EXPAND_DIMS = "ExpandDims"
    RELU = "Relu"
    SIGMOID = "Sigmoid"
    TANH = "Tanh"
    SOFTMAX = "SoftMax"
    SAVE = "Save"


class Visibility(Enum):
    """Whether a variable may be rebound by the caller at run time.

    :cvar PUBLIC: Model input or caller binding
    :cvar PRIVATE: Learnable constant owned by the graph
    """

    PUBLIC = "public"
    PRIVATE = "private"


@dataclass(eq=False)
class Node:
    """A single graph node.

    :param name: Unique name within its function
    :param kind: Operation kind
    :param inputs: Operand nodes, in operation-specific order
    :param dims: Result dimensions
    :param dtype: Result element type
    :param attrs: Operation parameters (kernel, stride, axes, ...)
    :param payload: Owned data of a variable node
    :param visibility: Variable visibility (None for non-variables)
    """

    name: str
    kind: NodeKind
    inputs: list["Node"]
    dims: tuple[int, ...]
    dtype: torch.dtype
    attrs: dict[str, Any] = field(default_factory=dict)
    payload: torch.Tensor | None = None
    visibility: Visibility | None = None

    def copy_from(self, tensor: torch.Tensor) -> None:
        """Replace the data of a variable node with a copy of ``tensor``.

        :param tensor: New data, same shape and element type
        """
        if self.kind != NodeKind.VARIABLE:
            raise ValueError(f"{self.name} is a {self.kind.value} node, not a variable")
        if tuple(tensor.shape) != self.dims or tensor.dtype != self.dtype:
            raise ValueError(
                f"Can't copy a {tensor.dtype} tensor of shape {list(tensor.shape)} into "
                f"variable {self.name} of type {self.dtype} and shape {list(self.dims)}"
            )
        self.payload = tensor.detach().clone()

    def __repr__(self) -> str:
        operands = ", ".join(node.name for node in self.inputs)
        return f"{self.kind.value}({self.name}: {list(self.dims)} <- [{operands}])"

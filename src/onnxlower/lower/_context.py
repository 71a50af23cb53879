"""Symbol tables shared by all lowering handlers.

The named tensor pool maps ONNX names to owned tensors (declared inputs,
initializers, caller bindings and Constant nodes). The named output registry
maps ONNX names to the graph node that currently produces them.
"""

__docformat__ = "restructuredtext"
__all__ = ["LoweringContext", "TensorBindings"]

from collections.abc import Iterable, Mapping

import torch
from onnx import NodeProto

from onnxlower.analyze import AttributeValue
from onnxlower.errors import UnsupportedOperatorError, ValidationError
from onnxlower.graph import Function, Node, Visibility
from onnxlower.normalize import get_broadcast

TensorBindings = Mapping[str, torch.Tensor] | Iterable[tuple[str, torch.Tensor]]


class LoweringContext:
    """State of one lowering pass.

    :param function: Function that receives the lowered nodes
    :param tensors: Caller bindings; these names are never treated as
        learnable constants
    :param opset_version: Active default-namespace opset version
    """

    def __init__(
        self,
        function: Function,
        tensors: TensorBindings | None = None,
        opset_version: int = 0,
    ):
        self.function = function
        self.opset_version = opset_version
        self.tensors: dict[str, torch.Tensor] = {}
        self.placeholders: set[str] = set()
        self.bound: set[str] = set()
        self.node_by_name: dict[str, Node] = {}

        bindings = tensors.items() if isinstance(tensors, Mapping) else (tensors or ())
        for name, tensor in bindings:
            self.tensors[name] = tensor
            self.bound.add(name)

    # ----- Named tensor pool -----

    def add_tensor(self, name: str, tensor: torch.Tensor, placeholder: bool = False) -> bool:
        """Add a tensor to the pool unless the name is already taken.

        :param name: ONNX tensor name
        :param tensor: Owned tensor
        :param placeholder: True for declared inputs that carry no data
        :return: True if the tensor was added
        """
        if name in self.tensors:
            return False
        self.tensors[name] = tensor
        if placeholder:
            self.placeholders.add(name)
        return True

    def has_tensor(self, name: str) -> bool:
        return name in self.tensors

    def get_tensor_by_name(self, name: str) -> torch.Tensor:
        """Get a pooled tensor.

        :param name: ONNX tensor name
        :return: Tensor
        """
        if name not in self.tensors:
            raise ValidationError(f"There is no tensor registered with the name {name!r}")
        return self.tensors[name]

    def get_constant_tensor(self, name: str) -> torch.Tensor:
        """Get a pooled tensor whose data is folded into the graph at load time.

        Declared inputs without data are only placeholders and can't be read.

        :param name: ONNX tensor name
        :return: Tensor
        """
        if name in self.placeholders:
            raise UnsupportedOperatorError(
                f"{name!r} is a graph input without data, expected a constant"
            )
        if name not in self.tensors:
            raise UnsupportedOperatorError(f"{name!r} is not a constant")
        return self.tensors[name]

    # ----- Named output registry -----

    def has_node(self, name: str) -> bool:
        return name in self.node_by_name

    def get_node_by_name(self, name: str) -> Node:
        """Get the node currently registered for an ONNX name."""
        if name not in self.node_by_name:
            raise ValidationError(f"There is no value registered with the name {name!r}")
        return self.node_by_name[name]

    def get_or_create_variable(self, name: str) -> Node:
        """Resolve an ONNX name to a graph value.

        Names produced by earlier nodes resolve to those nodes. Pooled tensors
        become variables on first use: public for declared inputs and caller
        bindings, private for learnable constants.

        :param name: ONNX tensor name
        :return: Graph node
        """
        if name in self.node_by_name:
            return self.node_by_name[name]
        tensor = self.get_tensor_by_name(name)
        public = name in self.placeholders or name in self.bound
        visibility = Visibility.PUBLIC if public else Visibility.PRIVATE
        node = self.function.create_variable(name, torch.as_tensor(tensor), visibility)
        self.node_by_name[name] = node
        return node

    def bind_output(self, name: str, node: Node) -> None:
        """Register ``node`` as the producer of ``name``."""
        self.node_by_name[name] = node

    def add_node_as_output(self, op: NodeProto, node: Node) -> None:
        """Bind the declared outputs of ``op`` to the single result of ``node``.

        :param op: ONNX node being lowered
        :param node: Graph node producing the result
        """
        outputs = [name for name in op.output if name]
        if len(outputs) > 1:
            raise UnsupportedOperatorError(
                f"Only one output is supported, node declares {len(outputs)}"
            )
        for name in outputs:
            self.bind_output(name, node)

    # ----- Per-node helpers -----

    @staticmethod
    def operator_name(op: NodeProto) -> str:
        """Node name, falling back to its first output name."""
        if op.name:
            return str(op.name)
        return str(op.output[0]) if op.output else str(op.op_type)

    def get_broadcast(self, attrs: dict[str, AttributeValue]) -> bool:
        """Version-gated broadcast policy for binary operators."""
        return get_broadcast(self.opset_version, attrs)

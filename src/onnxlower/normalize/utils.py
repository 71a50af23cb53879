"""Utility functions for ONNX model inspection and version resolution."""

__docformat__ = "restructuredtext"
__all__ = [
    "extract_ir_version",
    "extract_onnx_opset_version",
    "get_broadcast",
    "get_onnx_initializers",
    "get_onnx_model_input_names",
    "get_onnx_model_output_names",
    "resolve_versions",
]

from collections.abc import Mapping

from onnx import ModelProto, TensorProto

from onnxlower.analyze.attr_extractor import load_int
from onnxlower.errors import ValidationError
from onnxlower.presets import IMPLICIT_BROADCAST_OPSET, MIN_IR_VERSION


def get_onnx_model_input_names(model: ModelProto) -> list[str]:
    """Get declared graph input names, initializers included.

    :param model: ONNX model
    :return: List of input tensor names
    """
    return [input_info.name for input_info in model.graph.input]


def get_onnx_model_output_names(model: ModelProto) -> list[str]:
    """Get declared graph output names.

    :param model: ONNX model
    :return: List of output tensor names
    """
    return [output_info.name for output_info in model.graph.output]


def get_onnx_initializers(model: ModelProto) -> dict[str, TensorProto]:
    """Get all initializer tensors.

    :param model: ONNX model
    :return: Dictionary mapping initializer tensor names to TensorProto
    """
    return {init.name: init for init in model.graph.initializer}


def extract_ir_version(model: ModelProto) -> int:
    """Extract the structural (IR) version of the model.

    :param model: ONNX model
    :return: IR version
    """
    ir_version = int(model.ir_version)
    if ir_version < MIN_IR_VERSION:
        raise ValidationError(
            f"ONNX model with ir_version {ir_version} is too old to be supported "
            f"(minimum is {MIN_IR_VERSION})"
        )
    return ir_version


def extract_onnx_opset_version(model: ModelProto) -> int:
    """Extract the opset version of the default operator namespace.

    :param model: ONNX model
    :return: Opset version
    """
    for opset in model.opset_import:
        if opset.domain == "" or opset.domain == "ai.onnx":
            if opset.version <= 0:
                raise ValidationError(f"Default opset version {opset.version} is not supported")
            return int(opset.version)

    raise ValidationError("Model has no primary opset (domain='' or 'ai.onnx')")


def resolve_versions(model: ModelProto) -> tuple[int, int]:
    """Resolve and validate both versions of a model.

    :param model: ONNX model
    :return: (ir_version, opset_version)
    """
    return extract_ir_version(model), extract_onnx_opset_version(model)


def get_broadcast(opset_version: int, attrs: Mapping) -> bool:
    """Decide whether a binary operator broadcasts its second operand.

    Opset 7 made broadcasting implicit. Older models opt in per node with
    ``broadcast=1``.

    :param opset_version: Active default-namespace opset version
    :param attrs: Attribute dictionary of the node
    :return: True if the operand must be broadcast
    """
    if opset_version >= IMPLICIT_BROADCAST_OPSET:
        return True
    if "broadcast" not in attrs:
        return False

    return load_int(attrs["broadcast"]) == 1

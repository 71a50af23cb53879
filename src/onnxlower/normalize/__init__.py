"""Stage 1: Deserialization and version resolution.

This module reads ONNX models from bytes, streams or files and resolves the
IR and opset versions that gate operator semantics.
"""

__docformat__ = "restructuredtext"
__all__ = [
    "extract_ir_version",
    "extract_onnx_opset_version",
    "get_broadcast",
    "get_onnx_initializers",
    "get_onnx_model_input_names",
    "get_onnx_model_output_names",
    "load_model_proto",
    "resolve_versions",
]

from onnxlower.normalize.deserialize import load_model_proto
from onnxlower.normalize.utils import (
    extract_ir_version,
    extract_onnx_opset_version,
    get_broadcast,
    get_onnx_initializers,
    get_onnx_model_input_names,
    get_onnx_model_output_names,
    resolve_versions,
)

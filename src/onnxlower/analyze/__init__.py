"""Stage 2: Attribute and tensor materialization.

This module turns serialized attributes and tensors into typed Python values.
"""

__docformat__ = "restructuredtext"
__all__ = [
    "AttributeKind",
    "AttributeValue",
    "get_constant_array_head",
    "get_shape",
    "load_argument_map",
    "load_float",
    "load_int",
    "load_shape",
    "load_str",
    "load_tensor",
    "load_tensor_attr",
    "require",
]

from onnxlower.analyze.attr_extractor import (
    AttributeKind,
    AttributeValue,
    get_constant_array_head,
    get_shape,
    load_argument_map,
    load_float,
    load_int,
    load_str,
    load_tensor_attr,
    require,
)
from onnxlower.analyze.tensor_loader import load_shape, load_tensor

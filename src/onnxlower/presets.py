"""Preset limits and defaults used across the importer.

Values mirror the conventions of the ONNX format where it defines a default,
and the limits of the compiler where it does not.
"""

__docformat__ = "restructuredtext"
__all__ = [
    "DEFAULT_EPSILON",
    "DEFAULT_PADS",
    "DEFAULT_STRIDE",
    "IMPLICIT_BROADCAST_OPSET",
    "MAX_PROTO_SIZE",
    "MIN_IR_VERSION",
]

# Largest serialized model accepted by the deserializer (512 MiB)
MAX_PROTO_SIZE = 512 * 1024 * 1024

# Models older than IR version 3 predate opset imports
MIN_IR_VERSION = 3

# From opset 7 on, binary operators broadcast without a `broadcast` attribute
IMPLICIT_BROADCAST_OPSET = 7

# BatchNormalization epsilon when the attribute is absent
DEFAULT_EPSILON = 1e-5

DEFAULT_STRIDE = 1

# Pads: (top, left, bottom, right)
DEFAULT_PADS = (0, 0, 0, 0)

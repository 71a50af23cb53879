"""ONNX tensor materialization.

Converts serialized TensorProto payloads and declared input types into
torch tensors. Only FLOAT and INT64 are supported; INT64 is the compiler's
index type.
"""

__docformat__ = "restructuredtext"
__all__ = ["load_shape", "load_tensor"]

import math
import warnings

import numpy as np
import torch
from onnx import TensorProto, TypeProto

from onnxlower.errors import UnsupportedFormatError

# ONNX dtype -> (little-endian numpy dtype, torch dtype, packed field name)
_SUPPORTED_DTYPES: dict[int, tuple[np.dtype, torch.dtype, str]] = {
    TensorProto.FLOAT: (np.dtype("<f4"), torch.float32, "float_data"),
    TensorProto.INT64: (np.dtype("<i8"), torch.int64, "int64_data"),
}


def _lookup_dtype(onnx_dtype: int) -> tuple[np.dtype, torch.dtype, str]:
    """Map an ONNX element type to its storage types.

    :param onnx_dtype: TensorProto.DataType value
    :return: (numpy dtype, torch dtype, packed field name)
    """
    if onnx_dtype not in _SUPPORTED_DTYPES:
        try:
            type_name = TensorProto.DataType.Name(onnx_dtype)
        except ValueError:
            type_name = str(onnx_dtype)
        raise UnsupportedFormatError(f"Only FLOAT and INT64 tensors are supported, got {type_name}")
    return _SUPPORTED_DTYPES[onnx_dtype]


def load_tensor(tensor: TensorProto) -> torch.Tensor:
    """Materialize a serialized tensor.

    The packed typed list is used when it is non-empty, otherwise the raw
    payload is read as little-endian packed values.

    :param tensor: ONNX TensorProto
    :return: Tensor with the declared shape and element type
    """
    np_dtype, _, packed_field = _lookup_dtype(tensor.data_type)
    dims = tuple(int(d) for d in tensor.dims)
    size = math.prod(dims)
    name = tensor.name or "<unnamed>"

    packed = getattr(tensor, packed_field)
    if len(packed) > 0:
        array = np.array(packed, dtype=np_dtype)
    elif tensor.HasField("raw_data"):
        if len(tensor.raw_data) % np_dtype.itemsize:
            raise UnsupportedFormatError(
                f"Tensor {name} raw data is {len(tensor.raw_data)} bytes, "
                f"not a multiple of {np_dtype.itemsize}"
            )
        array = np.frombuffer(tensor.raw_data, dtype=np_dtype)
    else:
        raise UnsupportedFormatError(f"Tensor {name} has neither typed values nor raw data")

    if array.size != size:
        raise UnsupportedFormatError(
            f"Tensor {name} holds {array.size} values but its dims {list(dims)} need {size}"
        )

    # Native byte order and an owned buffer (frombuffer arrays are read-only views)
    array = array.astype(np_dtype.newbyteorder("="), copy=True)
    return torch.from_numpy(array).reshape(dims)


def load_shape(type_proto: TypeProto, name: str = "<unnamed>") -> torch.Tensor:
    """Create a zero-initialized tensor with the shape and type of a declared input.

    Symbolic or unknown dimensions become 0.

    :param type_proto: ONNX TypeProto of a graph input
    :param name: Input name, for messages
    :return: Zero tensor with the declared shape and element type
    """
    tensor_type = type_proto.tensor_type
    _, torch_dtype, _ = _lookup_dtype(tensor_type.elem_type)

    dims = []
    for dim in tensor_type.shape.dim:
        if dim.HasField("dim_value"):
            dims.append(int(dim.dim_value))
        else:
            dims.append(0)

    if any(d == 0 for d in dims):
        warnings.warn(
            f"Input {name} has symbolic or unknown dimensions {dims}; bind it before use",
            UserWarning,
            stacklevel=2,
        )

    return torch.zeros(dims, dtype=torch_dtype)

"""Padding, stride, kernel and broadcast-axis helpers for spatial operators."""

__docformat__ = "restructuredtext"
__all__ = [
    "broadcast_axis",
    "get_kernel",
    "get_pads",
    "get_stride",
    "output_dims",
]

from collections.abc import Sequence

from onnxlower.analyze import (
    AttributeKind,
    AttributeValue,
    get_constant_array_head,
    get_shape,
    load_str,
)
from onnxlower.errors import UnsupportedOperatorError, ValidationError
from onnxlower.graph import calculate_conv_pool_output_dims
from onnxlower.presets import DEFAULT_PADS, DEFAULT_STRIDE


def get_pads(attrs: dict[str, AttributeValue]) -> tuple[int, int, int, int]:
    """Resolve padding as (top, left, bottom, right).

    :param attrs: Attribute dictionary
    :return: Four padding values
    """
    if "pads" in attrs:
        pads = get_shape(attrs["pads"])
        if len(pads) != 4:
            raise UnsupportedOperatorError(f"Only 2-D pads are supported, got {list(pads)}")
        return pads  # type: ignore[return-value]
    if "auto_pad" in attrs:
        auto_pad = load_str(attrs["auto_pad"])
        if auto_pad in ("VALID", "NOTSET"):
            return DEFAULT_PADS
        raise UnsupportedOperatorError(f"auto_pad={auto_pad} is not supported, only VALID")
    return DEFAULT_PADS


def _uniform_head(attr: AttributeValue, what: str) -> int:
    """First value of a per-axis attribute that must be equal on both axes."""
    head = get_constant_array_head(attr)
    if attr.kind == AttributeKind.INTS and any(value != head for value in attr.value):
        raise UnsupportedOperatorError(f"Only square {what} are supported, got {list(attr.value)}")
    return head


def get_stride(attrs: dict[str, AttributeValue]) -> int:
    """Stride along both spatial axes, 1 when absent."""
    if "strides" in attrs:
        return _uniform_head(attrs["strides"], "strides")
    return DEFAULT_STRIDE


def get_kernel(attrs: dict[str, AttributeValue], filter_dims: Sequence[int]) -> int:
    """Kernel size from ``kernel_shape`` or from a square NHWC filter.

    :param attrs: Attribute dictionary
    :param filter_dims: Filter dims in (K, R, S, C) layout
    :return: Kernel size
    """
    if "kernel_shape" in attrs:
        return _uniform_head(attrs["kernel_shape"], "kernels")
    if filter_dims[1] != filter_dims[2]:
        raise UnsupportedOperatorError(
            f"Only square kernels are supported, got {filter_dims[1]}x{filter_dims[2]}"
        )
    return filter_dims[1]


def output_dims(
    input_dims: Sequence[int],
    kernel: int,
    stride: int,
    pads: tuple[int, ...],
    depth: int,
) -> tuple[int, int, int, int]:
    """NHWC result dims of a convolution or pooling window.

    :param input_dims: Input dims in (N, H, W, C) layout
    :param kernel: Kernel size
    :param stride: Stride
    :param pads: (top, left, bottom, right)
    :param depth: Output channel count
    :return: (N, outH, outW, depth)
    """
    n, h, w, _ = input_dims
    try:
        out_h, out_w = calculate_conv_pool_output_dims(h, w, kernel, stride, pads)
    except ValueError as error:
        raise ValidationError(str(error)) from error
    return n, out_h, out_w, depth


def broadcast_axis(result_dims: Sequence[int], operand_dims: Sequence[int]) -> int:
    """Axis at which a lower-rank operand is aligned with the result."""
    return len(result_dims) - len(operand_dims)

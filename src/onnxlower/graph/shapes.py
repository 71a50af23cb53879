"""Layout permutations and spatial output-size arithmetic."""

__docformat__ = "restructuredtext"
__all__ = ["NCHW2NHWC", "NHWC2NCHW", "calculate_conv_pool_output_dims"]

NCHW2NHWC = (0, 2, 3, 1)
NHWC2NCHW = (0, 3, 1, 2)


def calculate_conv_pool_output_dims(
    height: int,
    width: int,
    kernel: int,
    stride: int,
    pads: tuple[int, ...],
) -> tuple[int, int]:
    """Compute the spatial output size of a convolution or pooling window.

    :param height: Input height
    :param width: Input width
    :param kernel: Square kernel size
    :param stride: Stride along both axes
    :param pads: (top, left, bottom, right)
    :return: (output height, output width)
    """
    if kernel <= 0 or stride <= 0:
        raise ValueError(f"Kernel {kernel} and stride {stride} must be positive")
    top, left, bottom, right = pads
    out_h = (height + top + bottom - kernel) // stride + 1
    out_w = (width + left + right - kernel) // stride + 1
    if out_h <= 0 or out_w <= 0:
        raise ValueError(
            f"Kernel {kernel} with pads {list(pads)} does not fit a {height}x{width} input"
        )
    return out_h, out_w

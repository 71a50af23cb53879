"""Helpers shared by the onnxlower unit tests."""

import io

import torch

from onnxlower import ONNXModelLoader, execute


def as_stream(model):
    """Serialize a ModelProto into an in-memory binary stream."""
    return io.BytesIO(model.SerializeToString())


def lower_and_run(model, function, inputs=None, tensors=None):
    """Lower a ModelProto in file mode and evaluate the function.

    :param model: ONNX ModelProto
    :param function: Function to lower into
    :param inputs: Values for public variables
    :param tensors: Caller bindings
    :return: (loader, results) where results maps Save node names to tensors
    """
    loader = ONNXModelLoader.from_file(as_stream(model), function, tensors=tensors)
    return loader, execute(function, inputs)


def assert_close(actual, expected, atol=1e-5):
    """Compare two tensors with a float32-friendly tolerance."""
    torch.testing.assert_close(actual, expected, atol=atol, rtol=1e-5)

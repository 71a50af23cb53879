"""Shared pytest configuration and fixtures for onnxlower unit tests.

This module provides model fixtures built with onnx.helper and saved under
the test's temporary directory.
"""

import pytest

from tests.test_units.test_onnxlower.fixtures.synthetic_models import SyntheticONNXModels


@pytest.fixture
def add_constant_model(save_onnx):
    """Saved model computing y = X + B with B from a Constant node."""
    return save_onnx(SyntheticONNXModels.create_add_constant_model(), "add_constant.onnx")


@pytest.fixture
def conv_model(save_onnx):
    """Saved 1x3x4x4 Conv model with a 2x3x3x3 weight and a bias."""
    return save_onnx(SyntheticONNXModels.create_conv_model(), "conv.onnx")


@pytest.fixture
def mlp_model(save_onnx):
    """Saved Gemm/Relu/Gemm/Softmax model."""
    return save_onnx(SyntheticONNXModels.create_mlp_model(), "mlp.onnx")


@pytest.fixture
def small_cnn_model(save_onnx):
    """Saved Conv/BatchNormalization/Relu/MaxPool/GlobalAveragePool/Flatten model."""
    return save_onnx(SyntheticONNXModels.create_small_cnn_model(), "small_cnn.onnx")

"""Pytest configuration and shared fixtures for onnxlower tests."""

import onnx
import pytest

from onnxlower import Function


@pytest.fixture
def function():
    """Fresh, empty function to lower into."""
    return Function("main")


@pytest.fixture
def save_onnx(tmp_path):
    """Save a model under ``tmp_path`` and return its path as str."""

    def _save(model, filename="model.onnx"):
        path = tmp_path / filename
        onnx.save(model, str(path))
        return str(path)

    return _save

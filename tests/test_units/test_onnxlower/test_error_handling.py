"""Error Handling Tests - Load Robustness.

This module tests how failures surface and what a failed load leaves behind:
- Error hierarchy and node context
- Unknown operators and dispatch order
- Rollback of partially lowered graphs

Test Coverage:
- TestErrorTypes: hierarchy, formatting and context filling
- TestDispatch: operator kinds, registries and error conversion
- TestUnsupportedOperator: failing loads leave no trace
"""

import onnx.helper as onnx_helper
import pytest
import torch
from onnx import TensorProto

from onnxlower import (
    Function,
    ImporterError,
    ONNXModelLoader,
    ParseError,
    UnsupportedFormatError,
    UnsupportedOperatorError,
    ValidationError,
)
from onnxlower.lower import (
    COMMON_OPERATORS,
    ONNX_OPERATORS,
    LoweringContext,
    OperatorKind,
    get_handler,
    load_operator,
)
from tests.test_units.test_onnxlower.fixtures.helpers import as_stream
from tests.test_units.test_onnxlower.fixtures.synthetic_models import (
    SyntheticONNXModels,
    float_input,
    make_model,
)


class TestErrorTypes:
    """Test the error hierarchy."""

    @pytest.mark.parametrize(
        "error_type",
        [ParseError, ValidationError, UnsupportedFormatError, UnsupportedOperatorError],
    )
    def test_hierarchy(self, error_type):
        assert issubclass(error_type, ImporterError)
        assert issubclass(error_type, Exception)

    def test_message_without_context(self):
        error = ValidationError("bad model")
        assert str(error) == "bad model"
        assert error.node_name is None
        assert error.op_type is None

    def test_message_with_context(self):
        error = UnsupportedOperatorError("no way", node_name="conv1", op_type="Conv")
        assert str(error) == "[Conv 'conv1'] no way"

    def test_with_context_keeps_existing_fields(self):
        error = ValidationError("oops", node_name="inner")
        assert error.with_context("outer", "Gemm") is error
        assert error.node_name == "inner"
        assert error.op_type == "Gemm"


class TestDispatch:
    """Test per-node dispatch."""

    def test_operator_kind_lookup(self):
        assert OperatorKind.from_type_name("Conv") == OperatorKind.CONV
        assert OperatorKind.from_type_name("Relu") == OperatorKind.RELU
        assert OperatorKind.from_type_name("conv") == OperatorKind.UNKNOWN
        assert OperatorKind.from_type_name("") == OperatorKind.UNKNOWN

    def test_common_table_is_queried_first(self, function, monkeypatch):
        ctx = LoweringContext(function, {"X": torch.zeros(2)}, opset_version=13)
        load_operator(ctx, onnx_helper.make_node("Relu", ["X"], ["Y"]))
        assert OperatorKind.RELU in COMMON_OPERATORS

        calls = []
        monkeypatch.setitem(ONNX_OPERATORS, OperatorKind.RELU, lambda *args: calls.append(args))
        assert get_handler(OperatorKind.RELU) is COMMON_OPERATORS[OperatorKind.RELU]
        load_operator(ctx, onnx_helper.make_node("Relu", ["Y"], ["Z"]))
        assert calls == []

    def test_every_known_kind_has_a_handler(self, function):
        load_operator(
            LoweringContext(function, {"X": torch.zeros(2)}, opset_version=13),
            onnx_helper.make_node("Identity", ["X"], ["Y"]),
        )
        for kind in OperatorKind:
            if kind != OperatorKind.UNKNOWN:
                assert get_handler(kind) is not None, kind
        assert get_handler(OperatorKind.UNKNOWN) is None

    def test_handler_error_gets_context(self, function):
        ctx = LoweringContext(function, opset_version=13)
        op = onnx_helper.make_node("Relu", ["missing"], ["Y"], name="act")
        with pytest.raises(ValidationError) as exc_info:
            load_operator(ctx, op)
        assert exc_info.value.node_name == "act"
        assert exc_info.value.op_type == "Relu"
        assert "[Relu 'act']" in str(exc_info.value)

    def test_builder_error_becomes_validation_error(self, function):
        ctx = LoweringContext(
            function, {"A": torch.zeros(2, 3), "B": torch.zeros(2, 3)}, opset_version=13
        )
        op = onnx_helper.make_node("MatMul", ["A", "B"], ["C"])
        with pytest.raises(ValidationError, match="multiply") as exc_info:
            load_operator(ctx, op)
        assert isinstance(exc_info.value.__cause__, ValueError)
        assert exc_info.value.node_name == "C"

    def test_unsupported_attribute_kind(self, function):
        ctx = LoweringContext(function, {"X": torch.zeros(2, 3)}, opset_version=13)
        op = onnx_helper.make_node("Concat", ["X", "X"], ["Y"], axis=[0])
        with pytest.raises(UnsupportedFormatError, match="axis"):
            load_operator(ctx, op)


class TestUnsupportedOperator:
    """An unknown operator fails the whole load."""

    def test_file_mode(self, function):
        model = SyntheticONNXModels.create_unsupported_model()
        with pytest.raises(UnsupportedOperatorError, match="FancyOp") as exc_info:
            ONNXModelLoader.from_file(as_stream(model), function)
        assert exc_info.value.node_name == "mystery"
        assert exc_info.value.op_type == "FancyOp"
        assert function.nodes == []
        assert function.saves == []

    def test_parse_mode(self, function):
        model = SyntheticONNXModels.create_unsupported_model()
        with pytest.raises(UnsupportedOperatorError):
            ONNXModelLoader.parse(model.SerializeToString(), function)
        assert function.nodes == []

    def test_existing_nodes_survive(self):
        """Rollback removes only what the failed load added."""
        function = Function()
        kept = function.create_variable("kept", torch.ones(2))
        model = SyntheticONNXModels.create_unsupported_model()
        with pytest.raises(UnsupportedOperatorError):
            ONNXModelLoader.from_file(as_stream(model), function)
        assert function.nodes == [kept]
        assert function.create_relu("relu", kept).name == "relu"

    def test_version_failure_adds_nothing(self, function):
        model = SyntheticONNXModels.create_add_constant_model()
        model.ir_version = 1
        with pytest.raises(ValidationError):
            ONNXModelLoader.from_file(as_stream(model), function)
        assert function.nodes == []

    def test_unsupported_dtype_input(self, function):
        node = onnx_helper.make_node("Relu", ["X"], ["Y"])
        model = make_model(
            [node],
            [onnx_helper.make_tensor_value_info("X", TensorProto.DOUBLE, [2])],
            [float_input("Y", [2])],
        )
        with pytest.raises(UnsupportedFormatError, match="DOUBLE"):
            ONNXModelLoader.from_file(as_stream(model), function)

    def test_garbage_file(self, function, tmp_path):
        path = tmp_path / "garbage.onnx"
        path.write_bytes(b"\x00\x01\x02\x03" * 64)
        with pytest.raises(ParseError):
            ONNXModelLoader.from_file(str(path), function)

"""Tests for Stage 2: Attribute and tensor materialization.

Test Coverage:
- TestAttributeMap: attribute kinds and duplicate handling
- TestAttributeAccessors: typed accessors and kind mismatches
- TestLoadTensor: packed lists, raw payloads and malformed tensors
- TestLoadShape: zero-filled placeholders for declared inputs
"""

import numpy as np
import onnx.helper as onnx_helper
import pytest
import torch
from onnx import TensorProto

from onnxlower.analyze import (
    AttributeKind,
    AttributeValue,
    get_constant_array_head,
    get_shape,
    load_argument_map,
    load_float,
    load_int,
    load_shape,
    load_str,
    load_tensor,
    load_tensor_attr,
    require,
)
from onnxlower.errors import UnsupportedFormatError, ValidationError
from tests.test_units.test_onnxlower.fixtures.synthetic_models import float_tensor, int64_tensor


def _raw_tensor(name, data_type, dims, raw_data):
    tensor = TensorProto()
    tensor.name = name
    tensor.data_type = data_type
    tensor.dims.extend(dims)
    tensor.raw_data = raw_data
    return tensor


class TestAttributeMap:
    """Test attribute dictionary construction."""

    def test_kinds(self):
        node = onnx_helper.make_node(
            "Conv",
            inputs=["X", "W"],
            outputs=["Y"],
            group=1,
            alpha=0.5,
            auto_pad="VALID",
            kernel_shape=[3, 3],
            value=float_tensor("v", [1.0]),
        )
        attrs = load_argument_map(node)
        assert attrs["group"] == AttributeValue("group", AttributeKind.INT, 1)
        assert attrs["alpha"].kind == AttributeKind.FLOAT
        assert attrs["alpha"].value == pytest.approx(0.5)
        assert attrs["auto_pad"] == AttributeValue("auto_pad", AttributeKind.STRING, "VALID")
        assert attrs["kernel_shape"] == AttributeValue("kernel_shape", AttributeKind.INTS, (3, 3))
        assert attrs["value"].kind == AttributeKind.TENSOR
        assert attrs["value"].value.name == "v"

    def test_unsupported_kind_is_kept(self):
        """Float lists are carried as UNSUPPORTED so only handlers that read them fail."""
        node = onnx_helper.make_node("Resize", inputs=["X"], outputs=["Y"], scales=[1.0, 2.0])
        attrs = load_argument_map(node)
        assert attrs["scales"].kind == AttributeKind.UNSUPPORTED
        assert attrs["scales"].value is None

    def test_duplicate_name_last_wins(self):
        node = onnx_helper.make_node("Concat", inputs=["a", "b"], outputs=["c"], axis=0)
        node.attribute.append(onnx_helper.make_attribute("axis", 1))
        assert load_int(load_argument_map(node)["axis"]) == 1

    def test_no_attributes(self):
        node = onnx_helper.make_node("Relu", inputs=["X"], outputs=["Y"])
        assert load_argument_map(node) == {}


class TestAttributeAccessors:
    """Test typed accessors."""

    def test_matching_kinds(self):
        tensor = float_tensor("t", [2.0])
        assert load_int(AttributeValue("a", AttributeKind.INT, 3)) == 3
        assert load_float(AttributeValue("a", AttributeKind.FLOAT, 1.5)) == 1.5
        assert load_str(AttributeValue("a", AttributeKind.STRING, "VALID")) == "VALID"
        assert load_tensor_attr(AttributeValue("a", AttributeKind.TENSOR, tensor)) is tensor
        assert get_shape(AttributeValue("a", AttributeKind.INTS, (1, 2))) == (1, 2)

    @pytest.mark.parametrize(
        ("accessor", "kind", "value"),
        [
            (load_int, AttributeKind.FLOAT, 1.0),
            (load_float, AttributeKind.INT, 1),
            (load_str, AttributeKind.INTS, (1,)),
            (load_tensor_attr, AttributeKind.STRING, "x"),
            (get_shape, AttributeKind.INT, 1),
            (load_int, AttributeKind.UNSUPPORTED, None),
        ],
    )
    def test_kind_mismatch(self, accessor, kind, value):
        with pytest.raises(UnsupportedFormatError, match="expected"):
            accessor(AttributeValue("attr", kind, value))

    def test_array_head(self):
        assert get_constant_array_head(AttributeValue("s", AttributeKind.INTS, (2, 2))) == 2
        assert get_constant_array_head(AttributeValue("s", AttributeKind.INT, 3)) == 3

    def test_array_head_empty(self):
        with pytest.raises(UnsupportedFormatError, match="empty"):
            get_constant_array_head(AttributeValue("s", AttributeKind.INTS, ()))

    def test_require(self):
        attrs = {"axis": AttributeValue("axis", AttributeKind.INT, 0)}
        assert require(attrs, "axis", "Concat") is attrs["axis"]
        with pytest.raises(ValidationError, match="Concat requires the 'perm' attribute"):
            require(attrs, "perm", "Concat")


class TestLoadTensor:
    """Test tensor materialization."""

    def test_packed_float(self):
        values = np.arange(6, dtype=np.float32).reshape(2, 3)
        tensor = load_tensor(float_tensor("t", values))
        assert tensor.dtype == torch.float32
        assert tensor.shape == (2, 3)
        assert torch.equal(tensor, torch.from_numpy(values))

    def test_raw_matches_packed_float(self):
        """Both encodings of the same values materialize identically."""
        values = np.random.default_rng(0).standard_normal((2, 3, 4)).astype(np.float32)
        packed = load_tensor(float_tensor("t", values))
        raw = load_tensor(float_tensor("t", values, raw=True))
        assert torch.equal(packed, raw)

    def test_raw_matches_packed_int64(self):
        values = np.array([[-3, 0, 7], [2**40, -(2**33), 1]], dtype=np.int64)
        packed = load_tensor(int64_tensor("i", values))
        raw_bytes = values.astype("<i8").tobytes()
        raw = load_tensor(_raw_tensor("i", TensorProto.INT64, [2, 3], raw_bytes))
        assert packed.dtype == torch.int64
        assert torch.equal(packed, raw)
        assert raw[1, 0].item() == 2**40

    def test_raw_tensor_is_writable(self):
        """Raw payloads are copied, not viewed."""
        tensor = load_tensor(float_tensor("t", [1.0, 2.0], raw=True))
        tensor[0] = 5.0
        assert tensor.tolist() == [5.0, 2.0]

    def test_scalar(self):
        tensor = TensorProto()
        tensor.data_type = TensorProto.FLOAT
        tensor.float_data.append(3.5)
        result = load_tensor(tensor)
        assert result.shape == ()
        assert result.item() == 3.5

    def test_unsupported_dtype(self):
        tensor = onnx_helper.make_tensor("d", TensorProto.DOUBLE, [2], [1.0, 2.0])
        with pytest.raises(UnsupportedFormatError, match="DOUBLE"):
            load_tensor(tensor)

    def test_no_payload(self):
        tensor = TensorProto()
        tensor.name = "empty"
        tensor.data_type = TensorProto.FLOAT
        tensor.dims.append(2)
        with pytest.raises(UnsupportedFormatError, match="neither"):
            load_tensor(tensor)

    def test_packed_count_mismatch(self):
        tensor = TensorProto()
        tensor.name = "short"
        tensor.data_type = TensorProto.FLOAT
        tensor.dims.append(3)
        tensor.float_data.extend([1.0, 2.0])
        with pytest.raises(UnsupportedFormatError, match="holds 2 values"):
            load_tensor(tensor)

    def test_raw_length_not_multiple_of_itemsize(self):
        tensor = _raw_tensor("odd", TensorProto.FLOAT, [2], b"\x00" * 6)
        with pytest.raises(UnsupportedFormatError, match="not a multiple"):
            load_tensor(tensor)

    def test_raw_count_mismatch(self):
        tensor = _raw_tensor("long", TensorProto.FLOAT, [2], b"\x00" * 12)
        with pytest.raises(UnsupportedFormatError, match="holds 3 values"):
            load_tensor(tensor)


class TestLoadShape:
    """Test placeholders for declared inputs."""

    def test_static_shape(self):
        info = onnx_helper.make_tensor_value_info("X", TensorProto.FLOAT, [1, 3, 4, 4])
        tensor = load_shape(info.type, "X")
        assert tensor.shape == (1, 3, 4, 4)
        assert tensor.dtype == torch.float32
        assert not tensor.any()

    def test_int64_input(self):
        info = onnx_helper.make_tensor_value_info("ids", TensorProto.INT64, [4])
        assert load_shape(info.type, "ids").dtype == torch.int64

    def test_symbolic_dims_warn(self):
        info = onnx_helper.make_tensor_value_info("X", TensorProto.FLOAT, ["batch", 3])
        with pytest.warns(UserWarning, match="symbolic or unknown"):
            tensor = load_shape(info.type, "X")
        assert tensor.shape == (0, 3)

    def test_unsupported_input_type(self):
        info = onnx_helper.make_tensor_value_info("X", TensorProto.DOUBLE, [2])
        with pytest.raises(UnsupportedFormatError):
            load_shape(info.type, "X")

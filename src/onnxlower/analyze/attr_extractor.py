"""ONNX node attribute dictionary and typed accessors."""

__docformat__ = "restructuredtext"
__all__ = [
    "AttributeKind",
    "AttributeValue",
    "get_constant_array_head",
    "get_shape",
    "load_argument_map",
    "load_float",
    "load_int",
    "load_str",
    "load_tensor_attr",
    "require",
]

from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any

from onnx import AttributeProto, NodeProto, TensorProto

from onnxlower.errors import UnsupportedFormatError, ValidationError


class AttributeKind(Enum):
    """Kinds of attribute values the importer understands.

    :cvar INT: Single integer
    :cvar FLOAT: Single float
    :cvar STRING: UTF-8 string
    :cvar TENSOR: Embedded TensorProto
    :cvar INTS: Repeated integers
    :cvar UNSUPPORTED: Any other attribute type (graphs, float lists, ...)
    """

    INT = "int"
    FLOAT = "float"
    STRING = "string"
    TENSOR = "tensor"
    INTS = "ints"
    UNSUPPORTED = "unsupported"


@dataclass(frozen=True)
class AttributeValue:
    """Tagged attribute value.

    :param name: Attribute name
    :param kind: Value kind
    :param value: Python value (int, float, str, TensorProto, tuple of int, or None)
    """

    name: str
    kind: AttributeKind
    value: Any


# Attribute type extractors, keyed by AttributeProto.type
EXTRACT_ATTR_MAP: dict[int, tuple[AttributeKind, Callable[[AttributeProto], Any]]] = {
    AttributeProto.FLOAT: (AttributeKind.FLOAT, lambda x: float(x.f)),
    AttributeProto.INT: (AttributeKind.INT, lambda x: int(x.i)),
    AttributeProto.STRING: (AttributeKind.STRING, lambda x: x.s.decode("utf-8")),
    AttributeProto.TENSOR: (AttributeKind.TENSOR, lambda x: x.t),
    AttributeProto.INTS: (AttributeKind.INTS, lambda x: tuple(int(i) for i in x.ints)),
}


def _extract_attr(attr: AttributeProto) -> AttributeValue:
    kind, extract = EXTRACT_ATTR_MAP.get(attr.type, (AttributeKind.UNSUPPORTED, lambda x: None))
    return AttributeValue(name=attr.name, kind=kind, value=extract(attr))


def load_argument_map(node: NodeProto) -> dict[str, AttributeValue]:
    """Index a node's attributes by name.

    Duplicate names are not expected; the last one wins.

    :param node: ONNX node
    :return: Attribute dictionary
    """
    return {attr.name: _extract_attr(attr) for attr in node.attribute}


def _expect(attr: AttributeValue, *kinds: AttributeKind) -> None:
    if attr.kind not in kinds:
        expected = " or ".join(kind.value for kind in kinds)
        raise UnsupportedFormatError(
            f"Attribute '{attr.name}' is of kind {attr.kind.value}, expected {expected}"
        )


def load_int(attr: AttributeValue) -> int:
    """Read an int attribute."""
    _expect(attr, AttributeKind.INT)
    return attr.value  # type: ignore[no-any-return]


def load_float(attr: AttributeValue) -> float:
    """Read a float attribute."""
    _expect(attr, AttributeKind.FLOAT)
    return attr.value  # type: ignore[no-any-return]


def load_str(attr: AttributeValue) -> str:
    """Read a string attribute."""
    _expect(attr, AttributeKind.STRING)
    return attr.value  # type: ignore[no-any-return]


def load_tensor_attr(attr: AttributeValue) -> TensorProto:
    """Read a tensor attribute (still serialized)."""
    _expect(attr, AttributeKind.TENSOR)
    return attr.value  # type: ignore[no-any-return]


def get_shape(attr: AttributeValue) -> tuple[int, ...]:
    """Read a repeated-int attribute."""
    _expect(attr, AttributeKind.INTS)
    return attr.value  # type: ignore[no-any-return]


def get_constant_array_head(attr: AttributeValue) -> int:
    """Read the first element of a repeated-int attribute.

    Some exporters write a single int where the format asks for a list, so a
    plain int is accepted too.

    :param attr: Attribute value
    :return: First element
    """
    _expect(attr, AttributeKind.INTS, AttributeKind.INT)
    if attr.kind == AttributeKind.INT:
        return attr.value  # type: ignore[no-any-return]
    if not attr.value:
        raise UnsupportedFormatError(f"Attribute '{attr.name}' is an empty list")
    return attr.value[0]  # type: ignore[no-any-return]


def require(attrs: dict[str, AttributeValue], name: str, op_type: str) -> AttributeValue:
    """Get a required attribute.

    :param attrs: Attribute dictionary
    :param name: Attribute name
    :param op_type: Operator type for the error message
    :return: The attribute
    """
    if name not in attrs:
        raise ValidationError(f"{op_type} requires the '{name}' attribute")
    return attrs[name]

"""ONNX protobuf deserialization with a size limit."""

__docformat__ = "restructuredtext"
__all__ = ["ModelSource", "load_model_proto"]

import os
from typing import BinaryIO

from google.protobuf.message import DecodeError
from onnx import ModelProto

from onnxlower.errors import ParseError
from onnxlower.presets import MAX_PROTO_SIZE

ModelSource = bytes | bytearray | memoryview | BinaryIO | str | os.PathLike


def _check_size(size: int, max_size: int) -> None:
    """Reject messages larger than the decode limit.

    :param size: Size of the serialized message in bytes
    :param max_size: Largest accepted size in bytes
    """
    if size > max_size:
        raise ParseError(
            f"Serialized model is larger than the {max_size} byte limit"
        )


def _read_stream(stream: BinaryIO, max_size: int) -> bytes:
    """Read at most one byte past the limit so oversized streams are detected.

    :param stream: Binary stream positioned at the start of the model
    :param max_size: Largest accepted size in bytes
    :return: Serialized model bytes
    """
    data = stream.read(max_size + 1)
    if not isinstance(data, (bytes, bytearray)):
        raise ParseError(f"Stream returned {type(data).__name__}, expected bytes")
    _check_size(len(data), max_size)
    return bytes(data)


def _read_file(path: str | os.PathLike, max_size: int) -> bytes:
    """Read a model file, checking its size before loading it.

    :param path: Path to an ONNX file
    :param max_size: Largest accepted size in bytes
    :return: Serialized model bytes
    """
    try:
        _check_size(os.stat(path).st_size, max_size)
        with open(path, "rb") as f:
            return _read_stream(f, max_size)
    except OSError as error:
        raise ParseError(f"Can't read the model file {os.fspath(path)!r}: {error}") from error


def _decode(data: bytes) -> ModelProto:
    """Decode serialized bytes into a ModelProto.

    :param data: Serialized model
    :return: Decoded model
    """
    model = ModelProto()
    try:
        model.ParseFromString(data)
    except (DecodeError, RuntimeError, ValueError) as error:
        raise ParseError(f"Bytes are not a valid ONNX model: {error}") from error
    return model


def load_model_proto(source: ModelSource, max_size: int = MAX_PROTO_SIZE) -> ModelProto:
    """Deserialize an ONNX model from a buffer, a stream or a file path.

    :param source: Bytes-like buffer, binary stream, or filesystem path
    :param max_size: Largest accepted serialized size in bytes
    :return: Decoded model (versions are not checked here)
    """
    if isinstance(source, (bytes, bytearray, memoryview)):
        data = bytes(source)
        _check_size(len(data), max_size)
    elif isinstance(source, (str, os.PathLike)):
        data = _read_file(source, max_size)
    elif hasattr(source, "read"):
        data = _read_stream(source, max_size)
    else:
        raise ParseError(f"Can't read an ONNX model from {type(source).__name__}")

    return _decode(data)

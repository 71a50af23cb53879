__docformat__ = "restructuredtext"
__version__ = "2026.1.0"
__all__ = [
    "Function",
    "ImporterError",
    "ONNXModelLoader",
    "ParseError",
    "UnsupportedFormatError",
    "UnsupportedOperatorError",
    "ValidationError",
    "execute",
]

from onnxlower._onnxlower import ONNXModelLoader
from onnxlower.errors import (
    ImporterError,
    ParseError,
    UnsupportedFormatError,
    UnsupportedOperatorError,
    ValidationError,
)
from onnxlower.graph import Function, execute

"""Error types raised while importing an ONNX model.

Every failure aborts the whole load. Errors raised while lowering a node
carry the node name and operator type so the offending node can be found.
"""

__docformat__ = "restructuredtext"
__all__ = [
    "ImporterError",
    "ParseError",
    "UnsupportedFormatError",
    "UnsupportedOperatorError",
    "ValidationError",
]


class ImporterError(Exception):
    """Base class for all import failures.

    :param message: Description of the failure
    :param node_name: Name of the node being lowered, if any
    :param op_type: ONNX operator type of that node, if any
    """

    def __init__(
        self,
        message: str,
        node_name: str | None = None,
        op_type: str | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.node_name = node_name
        self.op_type = op_type

    def with_context(self, node_name: str, op_type: str) -> "ImporterError":
        """Fill in node context that was not known where the error was raised.

        :param node_name: Name of the node being lowered
        :param op_type: ONNX operator type of that node
        :return: The same error, for re-raising
        """
        if self.node_name is None:
            self.node_name = node_name
        if self.op_type is None:
            self.op_type = op_type
        return self

    def __str__(self) -> str:
        if self.node_name is None and self.op_type is None:
            return self.message
        return f"[{self.op_type} '{self.node_name}'] {self.message}"


class ParseError(ImporterError):
    """Malformed bytes, unreadable file, or size limit exceeded."""


class ValidationError(ImporterError):
    """Unsupported IR/opset version, or a model that is structurally invalid."""


class UnsupportedFormatError(ImporterError):
    """Tensor element type, tensor encoding, or attribute kind not handled."""


class UnsupportedOperatorError(ImporterError):
    """Unknown operator, or an operator variant that cannot be lowered."""

__docformat__ = "restructuredtext"
__all__ = ["ONNXModelLoader"]

from collections.abc import Iterator
from contextlib import contextmanager

from onnx import GraphProto, ModelProto

from onnxlower.analyze import load_shape, load_tensor
from onnxlower.errors import ValidationError
from onnxlower.graph import Function, Node
from onnxlower.lower import LoweringContext, TensorBindings, load_network
from onnxlower.normalize import load_model_proto, resolve_versions
from onnxlower.normalize.deserialize import ModelSource
from onnxlower.presets import MAX_PROTO_SIZE


class ONNXModelLoader:
    """Lower an ONNX model into a :class:`Function`.

    Use :meth:`parse` for in-memory models and :meth:`from_file` for model
    files with caller-supplied tensor bindings.

    :param function: Function that receives the lowered nodes
    :param tensors: Caller bindings (name -> tensor) that pre-populate the
        tensor pool; embedded constants and initializers never replace them
    :param verbose: Print a summary line after each stage
    :param max_size: Largest accepted serialized model size in bytes
    """

    def __init__(
        self,
        function: Function,
        tensors: TensorBindings | None = None,
        verbose: bool = False,
        max_size: int = MAX_PROTO_SIZE,
    ):
        self.function = function
        self.verbose = verbose
        self.max_size = max_size
        self.ctx = LoweringContext(function, tensors)
        self.ir_version = 0
        self.outputs_by_name: dict[str, Node] = {}

    @property
    def opset_version(self) -> int:
        return self.ctx.opset_version

    # ----- Stages -----

    def load_proto(self, source: ModelSource) -> GraphProto:
        """Deserialize a model and resolve its versions.

        :param source: Bytes-like buffer, binary stream, or filesystem path
        :return: The model graph
        """
        model = load_model_proto(source, max_size=self.max_size)
        self.set_version(model)
        if self.verbose:
            print(
                f"Loaded ONNX model: ir_version={self.ir_version}, "
                f"opset={self.opset_version}, {len(model.graph.node)} nodes"
            )
        return model.graph

    def set_version(self, model: ModelProto) -> None:
        self.ir_version, self.ctx.opset_version = resolve_versions(model)

    def load_inputs(self, graph: GraphProto) -> None:
        """Add declared inputs that are not bound yet as zero-filled placeholders."""
        for value_info in graph.input:
            if self.ctx.has_tensor(value_info.name):
                continue
            tensor = load_shape(value_info.type, value_info.name)
            self.ctx.add_tensor(value_info.name, tensor, placeholder=True)

    def load_initializers(self, graph: GraphProto) -> None:
        """Materialize initializers whose names are not bound yet."""
        for initializer in graph.initializer:
            if self.ctx.has_tensor(initializer.name):
                continue
            self.ctx.add_tensor(initializer.name, load_tensor(initializer))

    def load_network(self, graph: GraphProto) -> None:
        load_network(self.ctx, graph)
        if self.verbose:
            print(
                f"Lowered {len(graph.node)} ONNX nodes "
                f"into {len(self.function.nodes)} graph nodes"
            )

    def set_output_nodes(self, graph: GraphProto) -> None:
        """Create a Save sink for every declared graph output."""
        if not graph.output:
            raise ValidationError("Network needs external outputs defined")

        for output_info in graph.output:
            name = output_info.name
            node = self.ctx.get_or_create_variable(name)
            self.outputs_by_name[name] = self.function.create_save(f"save_{name}", node)

    @contextmanager
    def _discard_on_error(self) -> Iterator[None]:
        """Remove every node this load added to the function if a stage fails."""
        mark = self.function.mark()
        try:
            yield
        except Exception:
            self.function.rollback(mark)
            self.outputs_by_name.clear()
            raise

    # ----- Lookups -----

    def get_node_value_by_name(self, name: str) -> Node:
        """Graph value currently bound to an ONNX name."""
        return self.ctx.get_node_by_name(name)

    def get_output_by_name(self, name: str) -> Node:
        """Save sink created for a declared output (file mode only)."""
        if name not in self.outputs_by_name:
            raise ValidationError(f"No output named {name!r}")
        return self.outputs_by_name[name]

    # ----- Entry points -----

    @classmethod
    def parse(
        cls,
        buffer: bytes | bytearray | memoryview,
        function: Function,
        verbose: bool = False,
        max_size: int = MAX_PROTO_SIZE,
    ) -> "ONNXModelLoader":
        """Lower an in-memory model without caller bindings.

        Initializers are materialized; declared inputs without an initializer
        become placeholders. Outputs are not finalized: look them up with
        :meth:`get_node_value_by_name`.

        :param buffer: Serialized model
        :param function: Function that receives the lowered nodes
        :param verbose: Print a summary line after each stage
        :param max_size: Largest accepted serialized model size in bytes
        :return: The loader, holding the symbol tables
        """
        loader = cls(function, verbose=verbose, max_size=max_size)
        with loader._discard_on_error():
            graph = loader.load_proto(buffer)
            loader.load_initializers(graph)
            loader.load_inputs(graph)
            loader.load_network(graph)
        return loader

    @classmethod
    def from_file(
        cls,
        path: ModelSource,
        function: Function,
        tensors: TensorBindings | None = None,
        verbose: bool = False,
        max_size: int = MAX_PROTO_SIZE,
    ) -> "ONNXModelLoader":
        """Lower a model file and finalize its declared outputs.

        :param path: Path to the ONNX file (a binary stream is accepted too)
        :param function: Function that receives the lowered nodes
        :param tensors: Caller bindings (name -> tensor)
        :param verbose: Print a summary line after each stage
        :param max_size: Largest accepted serialized model size in bytes
        :return: The loader; ``outputs_by_name`` maps output names to sinks
        """
        loader = cls(function, tensors=tensors, verbose=verbose, max_size=max_size)
        with loader._discard_on_error():
            graph = loader.load_proto(path)
            loader.load_initializers(graph)
            loader.load_inputs(graph)
            loader.load_network(graph)
            loader.set_output_nodes(graph)
        return loader

"""
Request Marshaller Generator

Emits one module per service model with an ``<Operation>RequestMarshaller``
class per operation. Each class carries its operation binding as a literal
and delegates to the protocol marshaller built by a ProtocolFactory.
"""

from pathlib import Path
from typing import List

from shapewire.protocols.model import ServiceModel
from shapewire_codegen.generator import (
    BaseGenerator,
    GeneratorConfig,
    Target,
    format_literal,
    module_name,
)

PROTOCOL_DISPLAY_NAMES = {
    "json": "JSON",
    "rest-json": "JSON",
    "rest-xml": "XML",
    "query": "Query",
}


class MarshallerGenerator(BaseGenerator):
    """Request marshaller module generator."""

    target = Target.MARSHALLERS

    def __init__(self, model: ServiceModel, config: GeneratorConfig, output_dir: Path):
        super().__init__(config, output_dir)
        self.model = model

    def module_name(self) -> str:
        return module_name(self.model.service_name, "marshallers")

    def generate(self) -> List[Path]:
        """Generate the marshallers module."""
        self._ensure_dir(self.output_dir)
        self._ensure_package()
        path = self.output_dir / f"{self.module_name()}.py"
        return [self._write_file(path, self.render())]

    def render(self) -> str:
        runtime = self.config.runtime_package
        classes = "\n\n".join(self._render_class(name) for name in self.model.operation_names)
        registry = format_literal({})
        if self.model.operation_names:
            entries = "".join(
                f"    {name!r}: {name}RequestMarshaller,\n" for name in self.model.operation_names
            )
            registry = "{\n" + entries + "}"

        return f'''"""
{self.config.package_name}.{self.module_name()}

Request marshallers for {self.model.service_name}. {self.config.header}
"""

from {runtime}.core.exceptions import MarshallingError, ShapewireException
from {runtime}.protocols.shapes import OperationBinding

PROTOCOL = {self.model.protocol!r}


{classes}


MARSHALLERS = {registry}


def create_marshallers(model, factory=None):
    """Instantiate every marshaller against a loaded service model."""
    factory = factory or model.create_protocol_factory()
    return {{name: marshaller(model, factory) for name, marshaller in MARSHALLERS.items()}}
'''

    def _render_class(self, operation: str) -> str:
        binding = self.model.operation_binding(operation)
        input_shape = binding.input_shape.name if binding.input_shape else None
        literal = {
            "request_uri": binding.request_uri,
            "http_method": binding.http_method,
            "has_explicit_payload_member": binding.has_explicit_payload_member,
            "has_payload_members": binding.has_payload_members,
        }
        display = PROTOCOL_DISPLAY_NAMES.get(self.model.protocol, self.model.protocol)

        return f'''class {operation}RequestMarshaller:
    """Marshaller for the {operation} operation."""

    OPERATION_NAME = {operation!r}
    INPUT_SHAPE = {input_shape!r}
    SDK_OPERATION_BINDING = {format_literal(literal, 4)}

    def __init__(self, model, factory=None):
        factory = factory or model.create_protocol_factory()
        input_shape = model.shape(self.INPUT_SHAPE) if self.INPUT_SHAPE else None
        binding = OperationBinding(
            name=self.OPERATION_NAME,
            input_shape=input_shape,
            **self.SDK_OPERATION_BINDING,
        )
        self._protocol_marshaller = factory.create_protocol_marshaller(binding)

    def marshall(self, request):
        if request is None:
            raise MarshallingError("request must not be None", operation=self.OPERATION_NAME)
        try:
            return self._protocol_marshaller.marshall(request)
        except ShapewireException:
            raise
        except Exception as e:
            raise MarshallingError(
                f"Unable to marshall request to {display}: {{e}}",
                operation=self.OPERATION_NAME,
            ) from e'''

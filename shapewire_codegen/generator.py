"""
Code Generator Core

Generates Python modules from a partitions table and service models:
per-service endpoint metadata and per-operation request marshallers.
"""

import logging
import shutil
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional, Type, Union

from shapewire.core.exceptions import ConfigurationError, ShapewireException
from shapewire.core.structured_logging import LogCategory, get_logger
from shapewire.protocols.model import ServiceModel
from shapewire.regions.partitions import Partitions

logger = logging.getLogger(__name__)
structured_logger = get_logger(__name__, {"console": False})


class Target(Enum):
    """Kinds of generated modules."""

    METADATA = "metadata"
    MARSHALLERS = "marshallers"


@dataclass
class GeneratorConfig:
    """Configuration for code generation."""

    package_name: str = "generated"
    runtime_package: str = "shapewire"
    header: str = "Generated by shapewire-codegen. Do not edit."
    clean: bool = False


def module_name(service: str, suffix: str) -> str:
    """``iot-data`` -> ``iot_data_<suffix>``."""
    sanitized = service.replace(".", "_").replace("-", "_").lower()
    return f"{sanitized}_{suffix}"


def format_literal(value, indent: int = 0) -> str:
    """Render a dict/list/scalar as an indented Python literal."""
    pad = " " * (indent + 4)
    closing = " " * indent
    if isinstance(value, dict):
        if not value:
            return "{}"
        items = "".join(f"{pad}{key!r}: {format_literal(item, indent + 4)},\n" for key, item in value.items())
        return "{\n" + items + closing + "}"
    if isinstance(value, (list, tuple)):
        if not value:
            return "[]"
        items = "".join(f"{pad}{format_literal(item, indent + 4)},\n" for item in value)
        return "[\n" + items + closing + "]"
    return repr(value)


class BaseGenerator:
    """Base class for module generators."""

    target: Target = None

    def __init__(self, config: GeneratorConfig, output_dir: Path):
        self.config = config
        self.output_dir = Path(output_dir)

    def generate(self) -> List[Path]:
        """Generate modules and return the written paths."""
        raise NotImplementedError

    def _ensure_dir(self, path: Path) -> None:
        """Ensure directory exists."""
        path.mkdir(parents=True, exist_ok=True)

    def _write_file(self, path: Path, content: str) -> Path:
        """Write content to file."""
        self._ensure_dir(path.parent)
        with open(path, "w") as f:
            f.write(content)
        logger.debug(f"Generated: {path}")
        return path

    def _ensure_package(self) -> None:
        init = self.output_dir / "__init__.py"
        if not init.exists():
            self._write_file(init, f'"""{self.config.header}"""\n')


class CodeGenerator:
    """
    Orchestrates module generation.

    Example:
        generator = CodeGenerator(partitions=Partitions.from_file("endpoints.json"))
        generator.generate_metadata("s3", "./generated")
        generator.generate_all("./generated")
    """

    def __init__(
        self,
        partitions: Optional[Partitions] = None,
        models: Optional[List[ServiceModel]] = None,
        config: Optional[GeneratorConfig] = None,
    ):
        self.partitions = partitions
        self.models = list(models or [])
        self.config = config or GeneratorConfig()
        self._generators: Dict[Target, Type[BaseGenerator]] = {}

        self._register_generators()

    def _register_generators(self) -> None:
        """Register built-in generators."""
        from shapewire_codegen.emitters.marshallers import MarshallerGenerator
        from shapewire_codegen.emitters.metadata import ServiceMetadataGenerator

        self._generators[Target.METADATA] = ServiceMetadataGenerator
        self._generators[Target.MARSHALLERS] = MarshallerGenerator

    def _prepare(self, output_dir: Union[str, Path]) -> Path:
        output_path = Path(output_dir)
        if self.config.clean and output_path.exists():
            shutil.rmtree(output_path)
        return output_path

    def generate_metadata(self, service: str, output_dir: Union[str, Path]) -> Path:
        """Generate the endpoint metadata module for one service."""
        return self._generate_metadata(service, self._prepare(output_dir))

    def _generate_metadata(self, service: str, output_path: Path) -> Path:
        if self.partitions is None:
            raise ConfigurationError("Metadata generation requires a partitions table")

        generator = self._generators[Target.METADATA](
            self.partitions, service, self.config, output_path
        )
        paths = generator.generate()
        structured_logger.info(
            f"Generated metadata for {service}",
            category=LogCategory.CODEGEN,
            operation="generate_metadata",
            metadata={"service": service, "files": [str(p) for p in paths]},
        )
        return paths[-1]

    def generate_marshallers(self, output_dir: Union[str, Path]) -> List[Path]:
        """Generate marshaller modules for every loaded service model."""
        output_path = self._prepare(output_dir)
        paths: List[Path] = []
        for model in self.models:
            generator = self._generators[Target.MARSHALLERS](model, self.config, output_path)
            paths.extend(generator.generate())
            structured_logger.info(
                f"Generated marshallers for {model.service_name}",
                category=LogCategory.CODEGEN,
                operation="generate_marshallers",
                metadata={"service": model.service_name, "operations": len(model.operation_names)},
            )
        return paths

    def generate_all(self, output_dir: Union[str, Path], services: Optional[List[str]] = None) -> Dict[str, bool]:
        """
        Generate metadata for every service, then marshallers.

        Failures are logged per service and generation continues.

        Returns:
            Mapping of service name to success.
        """
        results: Dict[str, bool] = {}
        output_path = self._prepare(output_dir)

        if self.partitions is not None:
            for service in services or self.partitions.service_names():
                try:
                    self._generate_metadata(service, output_path)
                    results[service] = True
                except ShapewireException as e:
                    logger.error(f"Failed to generate metadata for {service}: {e}")
                    results[service] = False

        for model in self.models:
            try:
                generator = self._generators[Target.MARSHALLERS](model, self.config, output_path)
                generator.generate()
                results.setdefault(model.service_name, True)
            except (ShapewireException, OSError) as e:
                logger.error(f"Failed to generate marshallers for {model.service_name}: {e}")
                results[model.service_name] = False

        logger.info(
            f"Generated {sum(results.values())} of {len(results)} services in {output_path}"
        )
        return results

    def register_generator(self, target: Target, generator_class: Type[BaseGenerator]) -> None:
        """Register a custom generator."""
        self._generators[target] = generator_class

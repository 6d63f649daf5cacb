"""
Shapewire Code Generator

Generates Python modules for the Shapewire runtime:
- Per-service endpoint metadata from a partitions table
- Per-operation request marshallers from service models

Usage:
    from shapewire_codegen import CodeGenerator
    from shapewire.regions import Partitions

    generator = CodeGenerator(partitions=Partitions.from_file("endpoints.json"))
    generator.generate_metadata("s3", "./generated")
"""

from shapewire_codegen.generator import (
    CodeGenerator,
    GeneratorConfig,
    Target,
)
from shapewire_codegen.emitters.metadata import ServiceMetadataGenerator
from shapewire_codegen.emitters.marshallers import MarshallerGenerator

__all__ = [
    "CodeGenerator",
    "GeneratorConfig",
    "Target",
    "ServiceMetadataGenerator",
    "MarshallerGenerator",
]

"""
Module emitters for the code generator.
"""

from shapewire_codegen.emitters.metadata import ServiceMetadataGenerator
from shapewire_codegen.emitters.marshallers import MarshallerGenerator

__all__ = [
    "ServiceMetadataGenerator",
    "MarshallerGenerator",
]

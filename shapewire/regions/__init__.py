"""
Regions Module

Partition metadata and per-service endpoint resolution.
"""

from shapewire.regions.partitions import Endpoint, Partition, Partitions
from shapewire.regions.resolver import EndpointResolver, ServiceMetadata

__all__ = [
    "Endpoint",
    "Partition",
    "Partitions",
    "EndpointResolver",
    "ServiceMetadata",
]

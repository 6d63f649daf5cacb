"""
Shapewire - Partition Metadata

Immutable model of an ``endpoints.json``-style partitions table: each
partition groups regions under one DNS suffix and lists, per service, the
endpoints that override the default hostname or signing region.
"""

import json
import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, Iterator, List, Mapping, Optional, Tuple, Union

import yaml

from ..core.exceptions import ConfigurationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Endpoint:
    """Per-region endpoint entry of a service."""

    hostname: Optional[str] = None
    credential_scope_region: Optional[str] = None
    protocols: Tuple[str, ...] = ()

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> "Endpoint":
        data = data or {}
        scope = data.get("credentialScope") or {}
        return cls(
            hostname=data.get("hostname"),
            credential_scope_region=scope.get("region"),
            protocols=tuple(data.get("protocols") or ()),
        )


@dataclass(frozen=True)
class Partition:
    """A group of regions sharing a DNS suffix."""

    name: str
    dns_suffix: str
    region_regex: Optional[str] = None
    regions: Mapping[str, str] = field(default_factory=dict)
    services: Mapping[str, Mapping[str, Endpoint]] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Partition":
        try:
            name = data["partition"]
            dns_suffix = data["dnsSuffix"]
        except KeyError as e:
            raise ConfigurationError(f"Partition is missing required key {e}") from e

        regions = {
            region: (info or {}).get("description", "")
            for region, info in (data.get("regions") or {}).items()
        }
        services = {}
        for service, service_data in (data.get("services") or {}).items():
            endpoints = (service_data or {}).get("endpoints") or {}
            services[service] = MappingProxyType(
                {region: Endpoint.from_dict(info) for region, info in endpoints.items()}
            )

        region_regex = data.get("regionRegex")
        if region_regex:
            try:
                re.compile(region_regex)
            except re.error as e:
                raise ConfigurationError(
                    f"Invalid regionRegex for partition {name}: {e}", config_key="regionRegex"
                ) from e

        return cls(
            name=name,
            dns_suffix=dns_suffix,
            region_regex=region_regex,
            regions=MappingProxyType(regions),
            services=MappingProxyType(services),
        )

    def has_region(self, region: str) -> bool:
        return region in self.regions

    def matches_region(self, region: str) -> bool:
        return bool(self.region_regex and re.match(self.region_regex, region))

    def service_endpoints(self, service: str) -> Optional[Mapping[str, Endpoint]]:
        """Endpoints of ``service``; the name matches case-insensitively."""
        if service in self.services:
            return self.services[service]
        lowered = service.lower()
        for name, endpoints in self.services.items():
            if name.lower() == lowered:
                return endpoints
        return None


class Partitions:
    """The full partitions table."""

    def __init__(self, partitions: List[Partition], version: Optional[int] = None):
        self.partitions: Tuple[Partition, ...] = tuple(partitions)
        self.version = version

    def __iter__(self) -> Iterator[Partition]:
        return iter(self.partitions)

    def __len__(self) -> int:
        return len(self.partitions)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Partitions":
        if not isinstance(data, Mapping):
            raise ConfigurationError("Partitions data must be a mapping")
        partition_list = data.get("partitions")
        if not isinstance(partition_list, list):
            raise ConfigurationError("Partitions data must contain a 'partitions' list")
        return cls([Partition.from_dict(p) for p in partition_list], data.get("version"))

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> "Partitions":
        """Load an ``endpoints.json`` table, or its YAML equivalent."""
        path = Path(path)
        if not path.exists():
            raise ConfigurationError(f"Partitions file not found: {path}")

        try:
            with open(path, "r") as f:
                if path.suffix == ".json":
                    data = json.load(f)
                else:
                    data = yaml.safe_load(f)
        except (json.JSONDecodeError, yaml.YAMLError) as e:
            raise ConfigurationError(f"Invalid partitions file {path}: {e}") from e

        partitions = cls.from_dict(data)
        logger.debug(f"Loaded {len(partitions)} partitions from {path}")
        return partitions

    def partition_for_region(self, region: str) -> Optional[Partition]:
        """Find a region's partition: explicit listing first, then regex."""
        for partition in self.partitions:
            if partition.has_region(region):
                return partition
        for partition in self.partitions:
            if partition.matches_region(region):
                return partition
        return None

    def service_names(self) -> List[str]:
        names = set()
        for partition in self.partitions:
            names.update(partition.services)
        return sorted(names)

    def dns_suffixes(self) -> Dict[str, str]:
        """Region to DNS suffix, for every region named anywhere in the table."""
        suffixes: Dict[str, str] = {}
        for partition in self.partitions:
            for region in partition.regions:
                suffixes.setdefault(region, partition.dns_suffix)
            for endpoints in partition.services.values():
                for region in endpoints:
                    suffixes.setdefault(region, partition.dns_suffix)
        return suffixes

    def region_regex_suffixes(self) -> List[Tuple[str, str]]:
        """Ordered ``(region_regex, dns_suffix)`` pairs for regions not listed by name."""
        return [(p.region_regex, p.dns_suffix) for p in self.partitions if p.region_regex]

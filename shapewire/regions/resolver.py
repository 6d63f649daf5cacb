"""
Shapewire - Endpoint Resolution

ServiceMetadata answers two questions for one service: which endpoint to
call in a region, and which region to sign for. Override tables are built
from a partitions table once and are read-only afterwards, so lookups are
pure and safe to share across threads.
"""

import logging
import re
from types import MappingProxyType
from typing import Dict, Iterable, Mapping, Optional, Sequence, Tuple

from ..core.config import RegionsConfig
from ..core.exceptions import ConfigurationError
from .partitions import Partitions

logger = logging.getLogger(__name__)


def with_scheme(endpoint: str, scheme: str = "https") -> str:
    if "://" in endpoint:
        return endpoint
    return f"{scheme}://{endpoint}"


class ServiceMetadata:
    """Endpoint and signing-region lookups for one service."""

    def __init__(
        self,
        endpoint_prefix: str,
        regions: Iterable[str] = (),
        region_overridden_endpoints: Optional[Mapping[str, str]] = None,
        signing_region_overrides: Optional[Mapping[str, str]] = None,
        dns_suffixes: Optional[Mapping[str, str]] = None,
        region_regex_suffixes: Sequence[Tuple[str, str]] = (),
        config: Optional[RegionsConfig] = None,
    ):
        self.endpoint_prefix = endpoint_prefix
        self.regions: Tuple[str, ...] = tuple(regions)
        self.region_overridden_endpoints = MappingProxyType(dict(region_overridden_endpoints or {}))
        self.signing_region_overrides = MappingProxyType(dict(signing_region_overrides or {}))
        self.dns_suffixes = MappingProxyType(dict(dns_suffixes or {}))
        self.region_regex_suffixes: Tuple[Tuple[str, str], ...] = tuple(
            (regex, suffix) for regex, suffix in region_regex_suffixes
        )
        self.config = config or RegionsConfig()

    def __repr__(self) -> str:
        return f"ServiceMetadata(endpoint_prefix={self.endpoint_prefix!r}, regions={len(self.regions)})"

    def dns_suffix_for(self, region: str) -> str:
        if region in self.dns_suffixes:
            return self.dns_suffixes[region]
        for regex, suffix in self.region_regex_suffixes:
            if re.match(regex, region):
                return suffix
        return self.config.default_dns_suffix

    def endpoint_for(self, region: str) -> str:
        """Endpoint for ``region``: the override hostname exactly, else ``prefix.region.suffix``."""
        hostname = self.region_overridden_endpoints.get(region)
        if hostname is not None:
            return hostname
        return f"{self.endpoint_prefix}.{region}.{self.dns_suffix_for(region)}"

    def endpoint_url(self, region: str) -> str:
        """``endpoint_for`` with the configured scheme, unless it already has one."""
        return with_scheme(self.endpoint_for(region), self.config.endpoint_scheme)

    def signing_region_for(self, region: str) -> str:
        return self.signing_region_overrides.get(region, region)

    @classmethod
    def from_partitions(
        cls,
        partitions: Partitions,
        service: str,
        config: Optional[RegionsConfig] = None,
    ) -> "ServiceMetadata":
        """Collect a service's overrides from every partition.

        Hostname overrides and credential-scope signing regions come from
        the service's endpoint entries; the service name matches
        case-insensitively.
        """
        regions = []
        overridden: Dict[str, str] = {}
        signing: Dict[str, str] = {}
        found = False

        for partition in partitions:
            endpoints = partition.service_endpoints(service)
            if endpoints is None:
                continue
            found = True
            for region, endpoint in endpoints.items():
                regions.append(region)
                if endpoint.hostname is not None:
                    overridden[region] = endpoint.hostname
                if endpoint.credential_scope_region is not None:
                    signing[region] = endpoint.credential_scope_region

        if not found:
            raise ConfigurationError(f"Service '{service}' not found in partitions", config_key=service)

        return cls(
            endpoint_prefix=service,
            regions=regions,
            region_overridden_endpoints=overridden,
            signing_region_overrides=signing,
            dns_suffixes=partitions.dns_suffixes(),
            region_regex_suffixes=partitions.region_regex_suffixes(),
            config=config,
        )


class EndpointResolver:
    """Resolves endpoints and signing regions against an injected table."""

    def __init__(self, partitions: Partitions, config: Optional[RegionsConfig] = None):
        self.partitions = partitions
        self.config = config or RegionsConfig()
        self._metadata: Dict[str, ServiceMetadata] = {}

    @classmethod
    def from_config(cls, config: RegionsConfig) -> "EndpointResolver":
        if not config.partitions_file:
            raise ConfigurationError("No partitions file configured", config_key="regions.partitions_file")
        return cls(Partitions.from_file(config.partitions_file), config)

    def service_metadata(self, service: str) -> ServiceMetadata:
        key = service.lower()
        metadata = self._metadata.get(key)
        if metadata is None:
            metadata = ServiceMetadata.from_partitions(self.partitions, service, self.config)
            self._metadata[key] = metadata
        return metadata

    def endpoint_for(self, service: str, region: str) -> str:
        endpoint = self.service_metadata(service).endpoint_for(region)
        logger.debug(f"Resolved {service} in {region} to {endpoint}")
        return endpoint

    def signing_region_for(self, service: str, region: str) -> str:
        return self.service_metadata(service).signing_region_for(region)

    def endpoint_url(self, service: str, region: str) -> str:
        return self.service_metadata(service).endpoint_url(region)

"""
Service Metadata Generator

Emits one module per service with its endpoint prefix, region list,
override tables and the partition DNS suffix tables as literals, plus a
ready ``<Service>ServiceMetadata`` instance built from them.
"""

from pathlib import Path
from typing import Dict, List

from shapewire.core.exceptions import ConfigurationError
from shapewire.regions.partitions import Partitions
from shapewire_codegen.generator import (
    BaseGenerator,
    GeneratorConfig,
    Target,
    format_literal,
    module_name,
)


class ServiceMetadataGenerator(BaseGenerator):
    """Endpoint metadata module generator."""

    target = Target.METADATA

    def __init__(self, partitions: Partitions, service: str, config: GeneratorConfig, output_dir: Path):
        super().__init__(config, output_dir)
        self.partitions = partitions
        self.service = service

    def class_name(self) -> str:
        """``iot.data`` and ``iot-data`` both give ``IotDataServiceMetadata``."""
        parts = self.service.replace(".", "-").split("-")
        return "".join(part[:1].upper() + part[1:] for part in parts if part) + "ServiceMetadata"

    def module_name(self) -> str:
        return module_name(self.service, "metadata")

    def generate(self) -> List[Path]:
        """Generate the metadata module."""
        self._ensure_dir(self.output_dir)
        self._ensure_package()
        path = self.output_dir / f"{self.module_name()}.py"
        return [self._write_file(path, self.render())]

    def render(self) -> str:
        endpoints = self._service_endpoints()
        if not endpoints:
            raise ConfigurationError(
                f"Service '{self.service}' not found in partitions", config_key=self.service
            )

        runtime = self.config.runtime_package
        return f'''"""
{self.config.package_name}.{self.module_name()}

Endpoint metadata for {self.service}. {self.config.header}
"""

from {runtime}.regions import ServiceMetadata

ENDPOINT_PREFIX = {self.service!r}

REGION_OVERRIDDEN_ENDPOINTS = {format_literal(self._region_overridden_endpoints(endpoints))}

REGIONS = {format_literal(self._regions(endpoints))}

SIGNING_REGION_OVERRIDES = {format_literal(self._signing_region_overrides(endpoints))}

DNS_SUFFIXES = {format_literal(self.partitions.dns_suffixes())}

REGION_REGEX_SUFFIXES = {format_literal(self.partitions.region_regex_suffixes())}

{self.class_name()} = ServiceMetadata(
    endpoint_prefix=ENDPOINT_PREFIX,
    regions=REGIONS,
    region_overridden_endpoints=REGION_OVERRIDDEN_ENDPOINTS,
    signing_region_overrides=SIGNING_REGION_OVERRIDES,
    dns_suffixes=DNS_SUFFIXES,
    region_regex_suffixes=REGION_REGEX_SUFFIXES,
)
'''

    def _service_endpoints(self) -> List[Dict]:
        """Endpoint tables of the service, one per partition that lists it."""
        tables = []
        for partition in self.partitions:
            endpoints = partition.service_endpoints(self.service)
            if endpoints is not None:
                tables.append(endpoints)
        return tables

    @staticmethod
    def _region_overridden_endpoints(tables) -> Dict[str, str]:
        overrides = {}
        for endpoints in tables:
            for region, endpoint in endpoints.items():
                if endpoint.hostname is not None:
                    overrides[region] = endpoint.hostname
        return overrides

    @staticmethod
    def _regions(tables) -> List[str]:
        regions = []
        for endpoints in tables:
            regions.extend(endpoints)
        return regions

    @staticmethod
    def _signing_region_overrides(tables) -> Dict[str, str]:
        overrides = {}
        for endpoints in tables:
            for region, endpoint in endpoints.items():
                if endpoint.credential_scope_region is not None:
                    overrides[region] = endpoint.credential_scope_region
        return overrides

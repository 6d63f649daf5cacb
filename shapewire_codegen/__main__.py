"""
Shapewire Code Generator - Main Entry Point

This module provides the command line entry point for endpoint lookups
and module generation.
"""

import argparse
import logging
import sys
from typing import List, Optional

from shapewire.core.config import Config, get_config, load_config
from shapewire.core.exceptions import ConfigurationError, ShapewireException
from shapewire.core.structured_logging import configure_logging
from shapewire.protocols.model import ServiceModel
from shapewire.regions.partitions import Partitions
from shapewire.regions.resolver import EndpointResolver
from shapewire_codegen.generator import CodeGenerator, GeneratorConfig

logger = logging.getLogger("shapewire_codegen")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="shapewire-codegen",
        description="Shapewire - endpoint resolution and code generation",
    )

    # Logging
    parser.add_argument(
        "--log-level",
        type=str,
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Log level",
    )

    # Configuration
    parser.add_argument("--config", type=str, help="Configuration file path")

    subparsers = parser.add_subparsers(dest="command", required=True)

    endpoint = subparsers.add_parser("endpoint", help="Print a service endpoint and signing region")
    endpoint.add_argument("--partitions", type=str, help="Partitions file (endpoints.json)")
    endpoint.add_argument("--service", type=str, required=True, help="Service endpoint prefix")
    endpoint.add_argument("--region", type=str, required=True, help="Region id")

    metadata = subparsers.add_parser("metadata", help="Generate a service metadata module")
    metadata.add_argument("--partitions", type=str, help="Partitions file (endpoints.json)")
    metadata.add_argument("--service", type=str, required=True, help="Service endpoint prefix")
    metadata.add_argument("--output", type=str, required=True, help="Output directory")
    metadata.add_argument("--package", type=str, default="generated", help="Generated package name")

    marshallers = subparsers.add_parser("marshallers", help="Generate request marshaller modules")
    marshallers.add_argument("--model", type=str, action="append", required=True, help="Service model file")
    marshallers.add_argument("--output", type=str, required=True, help="Output directory")
    marshallers.add_argument("--package", type=str, default="generated", help="Generated package name")

    return parser


def _load_partitions(args: argparse.Namespace, config: Config) -> Partitions:
    path = args.partitions or config.regions.partitions_file
    if not path:
        raise ConfigurationError(
            "No partitions file given; pass --partitions or set regions.partitions_file",
            config_key="regions.partitions_file",
        )
    return Partitions.from_file(path)


def run(args: argparse.Namespace) -> int:
    config = load_config(args.config) if args.config else get_config()

    if args.command == "endpoint":
        resolver = EndpointResolver(_load_partitions(args, config), config.regions)
        print(resolver.endpoint_for(args.service, args.region))
        print(resolver.signing_region_for(args.service, args.region))
    elif args.command == "metadata":
        generator = CodeGenerator(
            partitions=_load_partitions(args, config),
            config=GeneratorConfig(package_name=args.package),
        )
        path = generator.generate_metadata(args.service, args.output)
        logger.info(f"Wrote {path}")
    elif args.command == "marshallers":
        models = [ServiceModel.from_file(path) for path in args.model]
        generator = CodeGenerator(models=models, config=GeneratorConfig(package_name=args.package))
        for path in generator.generate_marshallers(args.output):
            logger.info(f"Wrote {path}")

    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for shapewire-codegen."""
    args = build_parser().parse_args(argv)
    configure_logging(level=args.log_level)

    try:
        return run(args)
    except ShapewireException as e:
        logger.error(f"shapewire-codegen failed: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())

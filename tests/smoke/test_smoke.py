"""
Shapewire - Smoke Tests

Quick validation tests for CI/CD pipelines:
- Basic import validation
- Configuration loading
- One round trip per protocol family
- Event-stream dispatch
- Packaging metadata

These tests should complete quickly (< 10 seconds total).
"""

import ast
import json
import time
from importlib import metadata

import pytest

pytestmark = pytest.mark.smoke


# =============================================================================
# Import Tests
# =============================================================================


class TestImports:
    """Test that all critical modules can be imported."""

    def test_import_shapewire(self):
        """Test shapewire package imports."""
        import shapewire

        assert shapewire.__version__ == "1.0.0"

    def test_import_core_modules(self):
        """Test core module imports."""
        from shapewire.core import config, exceptions, structured_logging

        assert config is not None
        assert exceptions is not None
        assert structured_logging is not None

    def test_import_protocol_modules(self):
        """Test protocol module imports."""
        from shapewire.protocols import (
            EventStreamTaggedUnionUnmarshaller,
            ProtocolFactory,
            ResponseHandler,
            ServiceModel,
        )

        assert ProtocolFactory is not None
        assert ResponseHandler is not None
        assert ServiceModel is not None
        assert EventStreamTaggedUnionUnmarshaller is not None

    def test_import_regions(self):
        """Test region module imports."""
        from shapewire.regions import EndpointResolver, Partitions, ServiceMetadata

        assert EndpointResolver is not None
        assert Partitions is not None
        assert ServiceMetadata is not None

    def test_import_codegen(self):
        """Test code generator imports."""
        from shapewire_codegen import CodeGenerator, MarshallerGenerator, ServiceMetadataGenerator

        assert CodeGenerator is not None
        assert MarshallerGenerator is not None
        assert ServiceMetadataGenerator is not None

    def test_public_api(self):
        """Test that every name in __all__ resolves."""
        import shapewire

        for name in shapewire.__all__:
            assert getattr(shapewire, name) is not None, name


# =============================================================================
# Configuration Tests
# =============================================================================


class TestConfiguration:
    """Test configuration loading and validation."""

    def test_default_config_validates(self):
        """Test the default configuration."""
        from shapewire.core.config import Config

        Config().validate()

    def test_env_config_loads(self):
        """Test environment-driven configuration."""
        from shapewire.core.config import Config

        config = Config.load_from_env()

        assert config.regions.endpoint_scheme in ("http", "https")


# =============================================================================
# Protocol Smoke Tests
# =============================================================================


class TestProtocolSmoke:
    """One request and response per protocol family."""

    @pytest.fixture
    def shapes(self):
        from shapewire.protocols import Location, Member, Shape, ShapeKind

        string = Shape.scalar("String", ShapeKind.STRING)
        integer = Shape.scalar("Integer", ShapeKind.INTEGER)
        request = Shape.structure(
            "PutItemRequest",
            [
                Member("Table", string, location=Location.URI, location_name="Table"),
                Member("Name", string),
            ],
        )
        response = Shape.structure("PutItemResponse", [Member("Count", integer)])
        return request, response

    @pytest.mark.parametrize(
        "protocol,request_uri,response_body",
        [
            ("json", "/", b'{"Count": 2}'),
            ("rest-json", "/{Table}", b'{"Count": 2}'),
            ("rest-xml", "/{Table}", b"<PutItemResponse><Count>2</Count></PutItemResponse>"),
            ("query", "/", b"<PutItemResponse><PutItemResult><Count>2</Count></PutItemResult></PutItemResponse>"),
        ],
    )
    def test_round_trip(self, shapes, protocol, request_uri, response_body):
        """Test marshalling a request and handling its response."""
        from shapewire.core.config import Config
        from shapewire.protocols import HttpResponse, OperationBinding, ProtocolFactory

        request_shape, response_shape = shapes
        factory = ProtocolFactory(
            protocol, config=Config(), target_prefix="Items", api_version="2020-01-01"
        )
        binding = OperationBinding.for_shapes(
            "PutItem", request_shape, response_shape, request_uri=request_uri
        )

        request = factory.create_protocol_marshaller(binding).marshall({"Table": "t", "Name": "n"})
        result = factory.create_response_handler(binding).handle(HttpResponse(200, body=response_body))

        assert request.method == "POST"
        assert request.content
        assert result == {"Count": 2}


# =============================================================================
# Event Stream Smoke Tests
# =============================================================================


class TestAsyncSmoke:
    """Smoke tests for async components."""

    @pytest.mark.asyncio
    async def test_event_stream_async(self):
        """Test async dispatch over a frame source with an unknown event."""
        from shapewire.core.config import Config
        from shapewire.protocols import (
            EventStreamEnvelope,
            EventStreamMessage,
            Member,
            ProtocolFactory,
            Shape,
            ShapeKind,
        )

        integer = Shape.scalar("Integer", ShapeKind.INTEGER)
        tick = Shape.structure("TickEvent", [Member("Count", integer)], event=True)
        union = Shape.structure("Ticks", [Member("Tick", tick)], event_stream=True)
        factory = ProtocolFactory("rest-json", config=Config())

        message = factory.create_event_stream_marshaller(union).marshall(
            EventStreamEnvelope("Tick", {"Count": 1})
        )

        async def frames():
            yield EventStreamMessage.event("Tock", b"{}")
            yield message

        unmarshaller = factory.create_event_stream_unmarshaller(union)
        events = [envelope async for envelope in unmarshaller.aiter_events(frames())]

        assert json.loads(message.payload) == {"Count": 1}
        assert [(e.event_type, e.payload) for e in events] == [("Tick", {"Count": 1})]


# =============================================================================
# Packaging Tests
# =============================================================================


class TestPackaging:
    """Test installed distribution metadata."""

    def test_console_script(self):
        """Test the shapewire-codegen entry point."""
        scripts = [
            ep for ep in metadata.distribution("shapewire").entry_points
            if ep.group == "console_scripts"
        ]

        assert [(ep.name, ep.value) for ep in scripts] == [
            ("shapewire-codegen", "shapewire_codegen.__main__:main")
        ]

    def test_dependencies_declared(self):
        """Test that runtime dependencies are declared."""
        requires = " ".join(metadata.requires("shapewire") or [])

        assert "PyYAML" in requires
        assert "prometheus-client" in requires


# =============================================================================
# Performance Baseline
# =============================================================================


class TestPerformanceBaseline:
    """Basic performance tests to catch regressions."""

    @pytest.mark.slow
    def test_marshall_throughput(self):
        """Test that a thousand JSON requests marshall quickly."""
        from shapewire.core.config import Config
        from shapewire.protocols import Member, OperationBinding, ProtocolFactory, Shape, ShapeKind

        string = Shape.scalar("String", ShapeKind.STRING)
        shape = Shape.structure("Ping", [Member("Name", string)])
        marshaller = ProtocolFactory("json", config=Config()).create_protocol_marshaller(
            OperationBinding.for_shapes("Ping", shape)
        )

        start = time.time()
        for i in range(1000):
            marshaller.marshall({"Name": str(i)})
        duration = time.time() - start

        assert duration < 5.0, f"Marshalling took too long: {duration:.2f}s"


# =============================================================================
# File Structure Tests
# =============================================================================


class TestFileStructure:
    """Test project file structure is correct."""

    def test_required_files_exist(self, project_root):
        """Test required files exist."""
        required_files = [
            "pyproject.toml",
            "shapewire/__init__.py",
            "shapewire/protocols/factory.py",
            "shapewire/regions/resolver.py",
            "shapewire_codegen/__main__.py",
        ]

        for file_path in required_files:
            full_path = project_root / file_path
            assert full_path.is_file(), f"File missing: {file_path}"

    def test_no_syntax_errors(self, project_root):
        """Test Python files have no syntax errors."""
        python_files = list(project_root.glob("shapewire*/**/*.py"))

        for py_file in python_files:
            try:
                ast.parse(py_file.read_text())
            except SyntaxError as e:
                pytest.fail(f"Syntax error in {py_file}: {e}")


# =============================================================================
# Entry Point
# =============================================================================


if __name__ == "__main__":
    pytest.main([__file__, "-v", "--tb=short", "-x"])

"""
Shapewire - Protocol Test Configuration

Shared shapes, bindings, factories and partition tables for the runtime
tests.
"""

import logging
from datetime import datetime, timezone

import pytest

from shapewire.core.config import Config
from shapewire.core.structured_logging import LoggerFactory, StructuredFormatter
from shapewire.protocols.factory import ProtocolFactory
from shapewire.protocols.shapes import Location, Member, OperationBinding, Shape, ShapeKind
from shapewire.regions.partitions import Partitions

STRING = Shape.scalar("String", ShapeKind.STRING)
INTEGER = Shape.scalar("Integer", ShapeKind.INTEGER)
LONG = Shape.scalar("Long", ShapeKind.LONG)
DOUBLE = Shape.scalar("Double", ShapeKind.DOUBLE)
BOOLEAN = Shape.scalar("Boolean", ShapeKind.BOOLEAN)
TIMESTAMP = Shape.scalar("Timestamp", ShapeKind.TIMESTAMP)
BLOB = Shape.scalar("Blob", ShapeKind.BLOB)


@pytest.fixture
def config():
    """Fresh default configuration."""
    return Config()


@pytest.fixture
def nested_containers_shape():
    """List-of-lists and map-of-list-of-lists request shape."""
    list_of_strings = Shape.list_of("ListOfStrings", STRING)
    list_of_list_of_strings = Shape.list_of("ListOfListOfStrings", list_of_strings)
    list_of_list_of_list_of_strings = Shape.list_of(
        "ListOfListOfListOfStrings", list_of_list_of_strings
    )
    map_of_string_to_list_of_list_of_strings = Shape.map_of(
        "MapOfStringToListOfListOfStrings", STRING, list_of_list_of_strings
    )
    return Shape.structure(
        "NestedContainersRequest",
        [
            Member("ListOfListOfStrings", list_of_list_of_strings),
            Member("ListOfListOfListOfStrings", list_of_list_of_list_of_strings),
            Member("MapOfStringToListOfListOfStrings", map_of_string_to_list_of_list_of_strings),
        ],
    )


@pytest.fixture
def nested_containers_binding(nested_containers_shape):
    return OperationBinding.for_shapes(
        "NestedContainers",
        input_shape=nested_containers_shape,
        http_method="POST",
        request_uri="/",
    )


@pytest.fixture
def nested_containers_request():
    return {
        "ListOfListOfStrings": [["a", "b"], ["c"]],
        "ListOfListOfListOfStrings": [[["x"], ["y", "z"]], []],
        "MapOfStringToListOfListOfStrings": {"k1": [["v1", "v2"]], "k2": [[], ["v3"]]},
    }


@pytest.fixture
def all_types_shape():
    """Structure touching every shape kind once."""
    nested = Shape.structure(
        "Nested",
        [Member("Label", STRING), Member("Count", INTEGER)],
    )
    return Shape.structure(
        "AllTypes",
        [
            Member("StringMember", STRING),
            Member("IntegerMember", INTEGER),
            Member("LongMember", LONG),
            Member("DoubleMember", DOUBLE),
            Member("BooleanMember", BOOLEAN),
            Member("TimestampMember", TIMESTAMP),
            Member("BlobMember", BLOB),
            Member("StructMember", nested),
            Member("ListMember", Shape.list_of("IntegerList", INTEGER)),
            Member("MapMember", Shape.map_of("StringMap", STRING, STRING)),
        ],
    )


@pytest.fixture
def all_types_request():
    return {
        "StringMember": "hello",
        "IntegerMember": 42,
        "LongMember": 2 ** 40,
        "DoubleMember": 1.5,
        "BooleanMember": True,
        "TimestampMember": datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc),
        "BlobMember": b"hello",
        "StructMember": {"Label": "inner", "Count": 3},
        "ListMember": [1, 2, 3],
        "MapMember": {"a": "1", "b": "2"},
    }


@pytest.fixture
def json_factory(config):
    return ProtocolFactory(
        "json",
        config=config,
        target_prefix="JsonProtocolTests",
        api_version="2016-03-11",
    )


@pytest.fixture
def rest_json_factory(config):
    return ProtocolFactory("rest-json", config=config)


@pytest.fixture
def rest_xml_factory(config):
    return ProtocolFactory("rest-xml", config=config)


@pytest.fixture
def query_factory(config):
    return ProtocolFactory("query", config=config, api_version="2012-11-05")


@pytest.fixture
def event_stream_shape():
    """Event-stream union with a header event, a blob event and an exception."""
    start = Shape.structure(
        "StartEvent",
        [
            Member("Sequence", INTEGER, location=Location.HEADER, location_name="seq"),
            Member("Message", STRING),
        ],
        event=True,
    )
    data = Shape.structure(
        "DataEvent",
        [Member("Bytes", BLOB, payload=True)],
        event=True,
    )
    failure = Shape.structure(
        "FailureEvent",
        [Member("Reason", STRING)],
        exception=True,
    )
    return Shape.structure(
        "EventStream",
        [
            Member("Start", start),
            Member("Data", data),
            Member("Failure", failure),
        ],
        event_stream=True,
    )


@pytest.fixture
def partitions_data():
    """Minimal endpoints.json-style table with two partitions."""
    return {
        "version": 3,
        "partitions": [
            {
                "partition": "aws",
                "dnsSuffix": "amazonaws.com",
                "regionRegex": "^(us|eu|ap|sa|ca|me|af)\\-\\w+\\-\\d+$",
                "regions": {
                    "us-east-1": {"description": "US East (N. Virginia)"},
                    "eu-west-1": {"description": "EU (Ireland)"},
                },
                "services": {
                    "s3": {
                        "endpoints": {
                            "us-east-1": {"hostname": "s3.amazonaws.com"},
                            "eu-west-1": {},
                            "aws-global": {
                                "hostname": "s3.amazonaws.com",
                                "credentialScope": {"region": "us-east-1"},
                            },
                        }
                    },
                    "iam": {
                        "endpoints": {
                            "aws-global": {
                                "hostname": "iam.amazonaws.com",
                                "credentialScope": {"region": "us-east-1"},
                            }
                        }
                    },
                    "iot-data": {"endpoints": {"us-east-1": {}}},
                },
            },
            {
                "partition": "aws-cn",
                "dnsSuffix": "amazonaws.com.cn",
                "regionRegex": "^cn\\-\\w+\\-\\d+$",
                "regions": {"cn-north-1": {"description": "China (Beijing)"}},
                "services": {"s3": {"endpoints": {"cn-north-1": {}}}},
            },
        ],
    }


@pytest.fixture
def partitions(partitions_data):
    return Partitions.from_dict(partitions_data)


@pytest.fixture
def restore_logging():
    """Undo configure_logging() so later tests keep their log capture."""
    saved = []
    for name in ("shapewire", "shapewire_codegen"):
        logger = logging.getLogger(name)
        saved.append((logger, logger.level, list(logger.handlers), logger.propagate))
    root = logging.getLogger()
    root_level = root.level
    default_config = dict(LoggerFactory._default_config)

    yield

    for logger, level, handlers, propagate in saved:
        logger.setLevel(level)
        logger.handlers[:] = handlers
        logger.propagate = propagate
    for handler in list(root.handlers):
        if isinstance(handler.formatter, StructuredFormatter):
            root.removeHandler(handler)
    root.setLevel(root_level)
    LoggerFactory._default_config.clear()
    LoggerFactory._default_config.update(default_config)

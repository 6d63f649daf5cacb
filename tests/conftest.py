"""
Shapewire - Code Generation Test Configuration

Partitions tables and service models written to disk for the generator
and command line tests.
"""

import importlib.util
import json
import sys

import pytest

from shapewire.core import config as config_module


@pytest.fixture(autouse=True)
def reset_global_config(monkeypatch):
    """Keep the module-level configuration and environment out of the tests."""
    for name in ("SHAPEWIRE_PARTITIONS_FILE", "SHAPEWIRE_ENDPOINT_SCHEME", "SHAPEWIRE_DNS_SUFFIX"):
        monkeypatch.delenv(name, raising=False)
    config_module._config = None
    yield
    config_module._config = None


@pytest.fixture
def partitions_data():
    """Two-partition endpoints table."""
    return {
        "version": 3,
        "partitions": [
            {
                "partition": "aws",
                "dnsSuffix": "amazonaws.com",
                "regionRegex": "^(us|eu|ap|sa|ca)\\-\\w+\\-\\d+$",
                "regions": {"us-east-1": {}, "eu-west-1": {}},
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
                    "iot-data": {"endpoints": {"us-east-1": {}, "eu-west-1": {}}},
                },
            },
            {
                "partition": "aws-cn",
                "dnsSuffix": "amazonaws.com.cn",
                "regionRegex": "^cn\\-\\w+\\-\\d+$",
                "regions": {"cn-north-1": {}},
                "services": {"s3": {"endpoints": {"cn-north-1": {}}}},
            },
        ],
    }


@pytest.fixture
def partitions_file(tmp_path, partitions_data):
    path = tmp_path / "endpoints.json"
    path.write_text(json.dumps(partitions_data))
    return path


@pytest.fixture
def model_data():
    """aws-json service model with one input-less operation."""
    return {
        "metadata": {
            "protocol": "json",
            "apiVersion": "2020-01-01",
            "endpointPrefix": "things",
            "serviceId": "Things",
            "targetPrefix": "Things_20200101",
            "jsonVersion": "1.1",
        },
        "operations": {
            "CreateThing": {
                "http": {"method": "POST", "requestUri": "/"},
                "input": {"shape": "CreateThingInput"},
            },
            "ListThings": {"http": {"method": "POST", "requestUri": "/"}},
        },
        "shapes": {
            "CreateThingInput": {
                "type": "structure",
                "members": {
                    "Name": {"shape": "String"},
                    "Tags": {"shape": "TagList"},
                },
            },
            "TagList": {"type": "list", "member": {"shape": "String"}},
            "String": {"type": "string"},
        },
    }


@pytest.fixture
def model_file(tmp_path, model_data):
    path = tmp_path / "things.json"
    path.write_text(json.dumps(model_data))
    return path


@pytest.fixture
def load_module():
    """Import a generated module from its file path."""
    loaded = []

    def _load(path):
        name = f"_generated_{path.stem}_{len(loaded)}"
        spec = importlib.util.spec_from_file_location(name, path)
        module = importlib.util.module_from_spec(spec)
        spec.loader.exec_module(module)
        loaded.append(name)
        return module

    yield _load

    for name in loaded:
        sys.modules.pop(name, None)

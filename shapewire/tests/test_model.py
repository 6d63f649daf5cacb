"""
Tests for the service model loader.
"""

import json

import pytest
import yaml

from shapewire.core.config import Config
from shapewire.core.exceptions import ConfigurationError
from shapewire.protocols.factory import marshall
from shapewire.protocols.http import HttpResponse
from shapewire.protocols.marshaller import JsonProtocolMarshaller, XmlProtocolMarshaller
from shapewire.protocols.model import ServiceModel
from shapewire.protocols.shapes import Location, ShapeKind


@pytest.fixture
def model_data():
    """A small aws-json model with a recursive shape."""
    return {
        "metadata": {
            "protocol": "json",
            "apiVersion": "2012-08-10",
            "endpointPrefix": "things",
            "jsonVersion": "1.0",
            "serviceId": "Things",
            "targetPrefix": "Things_20120810",
        },
        "operations": {
            "PutNode": {
                "name": "PutNode",
                "http": {"method": "POST", "requestUri": "/"},
                "input": {"shape": "PutNodeInput"},
                "output": {"shape": "PutNodeOutput"},
            },
            "Ping": {"name": "Ping", "http": {"method": "POST", "requestUri": "/"}},
        },
        "shapes": {
            "PutNodeInput": {
                "type": "structure",
                "required": ["Root"],
                "members": {"Root": {"shape": "Node"}},
            },
            "PutNodeOutput": {
                "type": "structure",
                "members": {"Count": {"shape": "Integer"}},
            },
            "Node": {
                "type": "structure",
                "members": {
                    "Name": {"shape": "String"},
                    "Children": {"shape": "NodeList"},
                    "Labels": {"shape": "LabelMap"},
                },
            },
            "NodeList": {"type": "list", "member": {"shape": "Node"}},
            "LabelMap": {"type": "map", "key": {"shape": "String"}, "value": {"shape": "Node"}},
            "String": {"type": "string"},
            "Integer": {"type": "integer"},
        },
    }


@pytest.fixture
def rest_xml_model_data():
    """A REST-XML model with bindings and customizations."""
    return {
        "metadata": {"protocol": "rest-xml", "apiVersion": "2006-03-01", "endpointPrefix": "s3"},
        "operations": {
            "GetBucketLocation": {
                "http": {"method": "GET", "requestUri": "/{Bucket}?location"},
                "input": {"shape": "GetBucketLocationRequest"},
                "output": {"shape": "GetBucketLocationOutput"},
            },
            "GetObject": {
                "http": {"method": "GET", "requestUri": "/{Bucket}/{Key+}"},
                "input": {"shape": "GetObjectRequest"},
                "output": {"shape": "GetObjectOutput"},
            },
        },
        "shapes": {
            "GetBucketLocationRequest": {
                "type": "structure",
                "required": ["Bucket"],
                "members": {"Bucket": {"shape": "BucketName", "location": "uri", "locationName": "Bucket"}},
            },
            "GetBucketLocationOutput": {
                "type": "structure",
                "members": {"LocationConstraint": {"shape": "BucketLocationConstraint"}},
            },
            "GetObjectRequest": {
                "type": "structure",
                "members": {
                    "Bucket": {"shape": "BucketName", "location": "uri", "locationName": "Bucket"},
                    "Key": {"shape": "ObjectKey", "location": "uri", "locationName": "Key"},
                    "Range": {"shape": "Range", "location": "header", "locationName": "Range"},
                },
            },
            "GetObjectOutput": {
                "type": "structure",
                "payload": "Body",
                "members": {
                    "Body": {"shape": "Body"},
                    "ETag": {"shape": "ETag", "location": "header", "locationName": "ETag"},
                },
            },
            "BucketName": {"type": "string"},
            "BucketLocationConstraint": {"type": "string"},
            "ObjectKey": {"type": "string"},
            "Range": {"type": "string"},
            "ETag": {"type": "string"},
            "Body": {"type": "blob", "streaming": True},
        },
        "customizations": {"useRootXmlElementForResult": ["GetBucketLocationOutput"]},
    }


class TestServiceModel:
    """Test cases for ServiceModel loading."""

    def test_metadata(self, model_data):
        """Test metadata accessors."""
        model = ServiceModel.from_dict(model_data)

        assert model.protocol == "json"
        assert model.service_name == "Things"
        assert model.endpoint_prefix == "things"
        assert model.target_prefix == "Things_20120810"
        assert model.api_version == "2012-08-10"
        assert model.json_version == "1.0"
        assert model.operation_names == ["Ping", "PutNode"]

    def test_recursive_shapes(self, model_data):
        """Test that recursive structures resolve to shared instances."""
        model = ServiceModel.from_dict(model_data)
        node = model.shape("Node")

        assert node.member_by_name("Children").shape.member is node
        assert node.member_by_name("Labels").shape.value is node
        assert model.shape("PutNodeInput").members[0].required is True

    def test_operation_binding(self, model_data):
        """Test binding derivation."""
        model = ServiceModel.from_dict(model_data)

        binding = model.operation_binding("PutNode")
        ping = model.operation_binding("Ping")

        assert binding.input_shape is model.shape("PutNodeInput")
        assert binding.has_payload_members is True
        assert ping.input_shape is None
        assert ping.output_shape is None

    def test_marshall_recursive_value(self, model_data):
        """Test marshalling a recursive value end to end."""
        model = ServiceModel.from_dict(model_data)
        factory = model.create_protocol_factory(Config())
        value = {
            "Root": {
                "Name": "a",
                "Children": [{"Name": "b", "Children": [{"Name": "c"}]}],
                "Labels": {"x": {"Name": "d"}},
            }
        }

        request = marshall(value, model.operation_binding("PutNode"), factory)

        assert json.loads(request.body) == value
        assert request.headers["X-Amz-Target"] == "Things_20120810.PutNode"
        assert request.headers["Content-Type"] == "application/x-amz-json-1.0"

    def test_factory_mapping(self, model_data, rest_xml_model_data):
        """Test that metadata.protocol selects the marshaller family."""
        json_model = ServiceModel.from_dict(model_data)
        xml_model = ServiceModel.from_dict(rest_xml_model_data)

        json_marshaller = json_model.create_protocol_factory(Config()).create_protocol_marshaller(
            json_model.operation_binding("PutNode")
        )
        xml_marshaller = xml_model.create_protocol_factory(Config()).create_protocol_marshaller(
            xml_model.operation_binding("GetObject")
        )

        assert isinstance(json_marshaller, JsonProtocolMarshaller)
        assert isinstance(xml_marshaller, XmlProtocolMarshaller)

    def test_rest_xml_bindings(self, rest_xml_model_data):
        """Test HTTP locations, payload and streaming flags."""
        model = ServiceModel.from_dict(rest_xml_model_data)
        binding = model.operation_binding("GetObject")
        output = binding.output_shape

        assert binding.http_method == "GET"
        assert binding.request_uri == "/{Bucket}/{Key+}"
        assert binding.has_payload_members is False
        assert binding.has_streaming_output is True
        assert output.payload_member.name == "Body"
        assert output.member_by_name("ETag").location is Location.HEADER
        assert model.shape("Body").kind is ShapeKind.BLOB

    def test_get_object_end_to_end(self, rest_xml_model_data):
        """Test marshalling a request and reading its streaming response."""
        model = ServiceModel.from_dict(rest_xml_model_data)
        factory = model.create_protocol_factory(Config())
        binding = model.operation_binding("GetObject")

        request = factory.create_protocol_marshaller(binding, endpoint="https://s3.amazonaws.com").marshall(
            {"Bucket": "b", "Key": "photos/cat.jpg", "Range": "bytes=0-9"}
        )
        result = factory.create_response_handler(binding).handle(
            HttpResponse(200, {"ETag": '"e"'}, b"0123456789")
        )

        assert request.url == "https://s3.amazonaws.com/b/photos/cat.jpg"
        assert request.headers["Range"] == "bytes=0-9"
        assert result == {"Body": b"0123456789", "ETag": '"e"'}

    def test_use_root_element_customization(self, rest_xml_model_data):
        """Test the useRootXmlElementForResult customization."""
        model = ServiceModel.from_dict(rest_xml_model_data)
        binding = model.operation_binding("GetBucketLocation")
        factory = model.create_protocol_factory(Config())

        result = factory.create_response_handler(binding).handle(
            HttpResponse(200, body=b"<LocationConstraint>eu-west-1</LocationConstraint>")
        )

        assert binding.use_root_element is True
        assert result == {"LocationConstraint": "eu-west-1"}

    def test_unknown_shape_and_operation(self, model_data):
        """Test lookups of undefined names."""
        model = ServiceModel.from_dict(model_data)

        with pytest.raises(ConfigurationError):
            model.shape("Nope")
        with pytest.raises(ConfigurationError):
            model.operation_binding("Nope")

    @pytest.mark.parametrize(
        "shapes",
        [
            {"A": {"type": "structure", "members": {"B": {"shape": "Missing"}}}},
            {"A": {"type": "union"}},
            {"A": {"type": "list"}},
            {"A": {"type": "structure", "members": {"B": {"shape": "S", "location": "cookie"}}}, "S": {"type": "string"}},
            {"A": {"type": "structure", "payload": "Nope", "members": {}}},
            {"A": {"type": "list", "member": {"shape": "A"}}},
        ],
    )
    def test_invalid_shapes(self, shapes):
        """Test that malformed shape definitions are configuration errors."""
        with pytest.raises(ConfigurationError):
            ServiceModel.from_dict({"metadata": {}, "operations": {}, "shapes": shapes})

    def test_operation_with_unknown_shape(self, model_data):
        """Test an operation referencing an undefined shape."""
        model_data["operations"]["Broken"] = {"input": {"shape": "Nope"}}

        with pytest.raises(ConfigurationError):
            ServiceModel.from_dict(model_data)

    def test_from_files(self, tmp_path, model_data):
        """Test loading JSON and YAML model files."""
        json_path = tmp_path / "things.json"
        json_path.write_text(json.dumps(model_data))
        yaml_path = tmp_path / "things.yaml"
        yaml_path.write_text(yaml.safe_dump(model_data))

        assert ServiceModel.from_file(json_path).operation_names == ["Ping", "PutNode"]
        assert ServiceModel.from_file(yaml_path).service_name == "Things"

    def test_from_file_errors(self, tmp_path):
        """Test missing, invalid and non-mapping model files."""
        with pytest.raises(ConfigurationError):
            ServiceModel.from_file(tmp_path / "missing.json")

        invalid = tmp_path / "invalid.json"
        invalid.write_text("{")
        with pytest.raises(ConfigurationError):
            ServiceModel.from_file(invalid)

        scalar = tmp_path / "scalar.yaml"
        scalar.write_text("just a string\n")
        with pytest.raises(ConfigurationError):
            ServiceModel.from_file(scalar)

    def test_metadata_is_read_only(self, model_data):
        """Test that loaded metadata cannot be mutated."""
        model = ServiceModel.from_dict(model_data)

        with pytest.raises(TypeError):
            model.metadata["protocol"] = "query"

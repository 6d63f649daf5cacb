"""
Tests for configuration loading and validation.
"""

import pytest
import yaml

from shapewire.core import config as config_module
from shapewire.core.config import (
    Config,
    Environment,
    LogLevel,
    get_config,
    load_config,
    set_config,
)
from shapewire.core.exceptions import ConfigurationError


@pytest.fixture(autouse=True)
def reset_global_config():
    """Isolate the module-level configuration between tests."""
    config_module._config = None
    yield
    config_module._config = None


class TestConfig:
    """Test cases for Config."""

    def test_defaults(self):
        """Test default values."""
        config = Config()

        assert config.environment is Environment.DEVELOPMENT
        assert config.protocol.json_version == "1.1"
        assert config.protocol.log_unknown_fields is False
        assert config.protocol.empty_json_body == b"{}"
        assert config.regions.default_dns_suffix == "amazonaws.com"
        assert config.regions.endpoint_scheme == "https"
        assert config.event_stream.log_unknown_events is True
        config.validate()

    def test_load_from_file(self, tmp_path):
        """Test loading a YAML configuration file."""
        path = tmp_path / "shapewire.yaml"
        path.write_text(
            yaml.safe_dump(
                {
                    "environment": "production",
                    "log_level": "warning",
                    "protocol": {"json_version": "1.0", "log_unknown_fields": True, "empty_json_body": ""},
                    "regions": {"partitions_file": "/etc/endpoints.json"},
                    "event_stream": {"log_unknown_events": False},
                }
            )
        )

        config = Config.load_from_file(path)

        assert config.environment is Environment.PRODUCTION
        assert config.log_level is LogLevel.WARNING
        assert config.protocol.json_version == "1.0"
        assert config.protocol.log_unknown_fields is True
        assert config.protocol.empty_json_body == b""
        assert config.regions.partitions_file == "/etc/endpoints.json"
        assert config.regions.endpoint_scheme == "https"
        assert config.event_stream.log_unknown_events is False

    def test_empty_file(self, tmp_path):
        """Test that an empty file yields defaults."""
        path = tmp_path / "empty.yaml"
        path.write_text("")

        assert Config.load_from_file(path).to_dict() == Config().to_dict()

    @pytest.mark.parametrize(
        "content",
        [
            "protocol: [unclosed",
            "- a list\n- not a mapping\n",
            "protocol:\n  unknown_key: 1\n",
            "environment: moon\n",
        ],
    )
    def test_invalid_file(self, tmp_path, content):
        """Test that invalid configuration files are rejected."""
        path = tmp_path / "bad.yaml"
        path.write_text(content)

        with pytest.raises(ConfigurationError):
            Config.load_from_file(path)

    def test_missing_file(self, tmp_path):
        """Test loading a file that does not exist."""
        with pytest.raises(ConfigurationError):
            Config.load_from_file(tmp_path / "missing.yaml")

    def test_load_from_env(self, monkeypatch):
        """Test environment variable overrides."""
        monkeypatch.setenv("SHAPEWIRE_ENVIRONMENT", "testing")
        monkeypatch.setenv("SHAPEWIRE_JSON_VERSION", "1.0")
        monkeypatch.setenv("SHAPEWIRE_LOG_UNKNOWN_FIELDS", "true")
        monkeypatch.setenv("SHAPEWIRE_ENDPOINT_SCHEME", "http")
        monkeypatch.setenv("SHAPEWIRE_PARTITIONS_FILE", "/tmp/endpoints.json")

        config = Config.load_from_env()

        assert config.environment is Environment.TESTING
        assert config.protocol.json_version == "1.0"
        assert config.protocol.log_unknown_fields is True
        assert config.regions.endpoint_scheme == "http"
        assert config.regions.partitions_file == "/tmp/endpoints.json"

    def test_to_dict(self):
        """Test dictionary export."""
        data = Config().to_dict()

        assert data["protocol"]["empty_json_body"] == "{}"
        assert data["regions"]["partitions_file"] is None
        assert data["event_stream"]["default_content_type"] == "application/json"

    @pytest.mark.parametrize(
        "section,field_name,value",
        [
            ("protocol", "json_version", "2.0"),
            ("regions", "default_dns_suffix", ""),
            ("regions", "endpoint_scheme", "ftp"),
            ("event_stream", "default_content_type", ""),
        ],
    )
    def test_validate(self, section, field_name, value):
        """Test validation failures."""
        config = Config()
        setattr(getattr(config, section), field_name, value)

        with pytest.raises(ConfigurationError):
            config.validate()


class TestGlobalConfig:
    """Test cases for the module-level configuration."""

    def test_get_config_from_env(self, monkeypatch):
        """Test lazy creation from the environment."""
        monkeypatch.setenv("SHAPEWIRE_DNS_SUFFIX", "example.net")

        config = get_config()

        assert config.regions.default_dns_suffix == "example.net"
        assert get_config() is config

    def test_set_config_validates(self):
        """Test that invalid configuration is never installed."""
        config = Config()
        config.regions.endpoint_scheme = "gopher"

        with pytest.raises(ConfigurationError):
            set_config(config)
        assert config_module._config is None

    def test_load_config(self, tmp_path):
        """Test loading and installing a configuration file."""
        path = tmp_path / "shapewire.yaml"
        path.write_text("regions:\n  endpoint_scheme: http\n")

        config = load_config(path)

        assert get_config() is config
        assert config.regions.endpoint_scheme == "http"

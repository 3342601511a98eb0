"""
Client Configuration Tests.
"""

import pytest

from market_replay import ClientConfig, ConfigurationError
from market_replay.config import DEFAULT_BASE_URL, DEFAULT_BUFFER_SIZE, DEFAULT_DOWNLOAD_CONCURRENCY


@pytest.fixture
def clean_env(monkeypatch):
    for key in (
        "API_KEY", "BASE_URL", "TIMEOUT", "MAX_RETRIES",
        "RETRY_BACKOFF_BASE", "DOWNLOAD_CONCURRENCY", "BUFFER_SIZE",
    ):
        monkeypatch.delenv(f"REPLAY_{key}", raising=False)
    return monkeypatch


class TestClientConfig:
    """Tests for ClientConfig."""

    def test_defaults(self):
        """Test default values."""
        config = ClientConfig()

        assert config.api_key is None
        assert config.base_url == DEFAULT_BASE_URL
        assert config.download_concurrency == DEFAULT_DOWNLOAD_CONCURRENCY == 20
        assert config.buffer_size == DEFAULT_BUFFER_SIZE == 30

    def test_trailing_slash_stripped(self):
        """Test that the base URL is normalised."""
        assert ClientConfig(base_url="http://localhost:8080/v1/").base_url == "http://localhost:8080/v1"

    @pytest.mark.parametrize("field,value", [
        ("base_url", ""),
        ("timeout", 0),
        ("max_retries", 0),
        ("retry_backoff_base", 0.5),
        ("download_concurrency", 0),
        ("buffer_size", -1),
    ])
    def test_invalid_values(self, field, value):
        """Test that invalid settings are rejected with the offending key."""
        with pytest.raises(ConfigurationError) as exc_info:
            ClientConfig(**{field: value})

        assert exc_info.value.config_key == field

    def test_to_dict_masks_api_key(self):
        """Test that serialisation never leaks the API key."""
        data = ClientConfig(api_key="secret").to_dict()

        assert data["api_key"] == "***"
        assert "secret" not in str(data)


class TestFromEnv:
    """Tests for environment loading."""

    def test_reads_prefixed_variables(self, clean_env):
        """Test that REPLAY_* variables are converted to their field types."""
        clean_env.setenv("REPLAY_API_KEY", "abc")
        clean_env.setenv("REPLAY_TIMEOUT", "2.5")
        clean_env.setenv("REPLAY_BUFFER_SIZE", "4")

        config = ClientConfig.from_env()

        assert config.api_key == "abc"
        assert config.timeout == 2.5
        assert config.buffer_size == 4
        assert config.download_concurrency == DEFAULT_DOWNLOAD_CONCURRENCY

    def test_invalid_variable(self, clean_env):
        """Test that an unparsable variable names its key."""
        clean_env.setenv("REPLAY_MAX_RETRIES", "many")

        with pytest.raises(ConfigurationError) as exc_info:
            ClientConfig.from_env()

        assert exc_info.value.config_key == "max_retries"


class TestFromYaml:
    """Tests for YAML loading."""

    def test_loads_mapping(self, tmp_path):
        """Test loading values from a YAML file."""
        path = tmp_path / "replay.yaml"
        path.write_text(
            "base_url: http://localhost:9000/v1/\n"
            "download_concurrency: 5\n"
            "buffer_size: 2\n"
            "unused: true\n"
        )

        config = ClientConfig.from_yaml(path)

        assert config.base_url == "http://localhost:9000/v1"
        assert config.download_concurrency == 5
        assert config.buffer_size == 2

    def test_empty_file_gives_defaults(self, tmp_path):
        """Test that an empty file means defaults."""
        path = tmp_path / "replay.yaml"
        path.write_text("")

        assert ClientConfig.from_yaml(path) == ClientConfig()

    def test_missing_file(self, tmp_path):
        """Test that a missing file raises ConfigurationError."""
        with pytest.raises(ConfigurationError):
            ClientConfig.from_yaml(tmp_path / "absent.yaml")

    def test_not_a_mapping(self, tmp_path):
        """Test that a YAML list is rejected."""
        path = tmp_path / "replay.yaml"
        path.write_text("- a\n- b\n")

        with pytest.raises(ConfigurationError, match="not a mapping"):
            ClientConfig.from_yaml(path)

    def test_invalid_value(self, tmp_path):
        """Test that a badly typed value names its key."""
        path = tmp_path / "replay.yaml"
        path.write_text("timeout: soon\n")

        with pytest.raises(ConfigurationError) as exc_info:
            ClientConfig.from_yaml(path)

        assert exc_info.value.config_key == "timeout"

"""Tests for settings and config file handling."""

from redis_doctor.config import (
    DEFAULT_THRESHOLDS,
    DoctorConfig,
    Settings,
    find_config_file,
    load_config,
    resolve_connection,
)


class TestSettings:
    """Tests for environment-based settings."""

    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("REDIS_DOCTOR_SAMPLE_SIZE", raising=False)

        settings = Settings()

        assert settings.command_timeout == 5.0
        assert settings.connect_timeout == 10.0
        assert settings.sample_size == 1000
        assert settings.config_filename == ".redis-doctor.yaml"

    def test_env_prefix_override(self, monkeypatch):
        monkeypatch.setenv("REDIS_DOCTOR_COMMAND_TIMEOUT", "2.5")
        monkeypatch.setenv("REDIS_DOCTOR_SAMPLE_SIZE", "5000")

        settings = Settings()

        assert settings.command_timeout == 2.5
        assert settings.sample_size == 5000


class TestThresholds:
    def test_default_values(self):
        assert DEFAULT_THRESHOLDS.memory_usage_critical_percent == 90.0
        assert DEFAULT_THRESHOLDS.pipeline_batch_size == 50
        assert DEFAULT_THRESHOLDS.large_buffer_bytes == 1048576


class TestConfigFile:
    """Tests for .redis-doctor.yaml discovery and loading."""

    def test_find_walks_up_from_start(self, tmp_path):
        config_path = tmp_path / ".redis-doctor.yaml"
        config_path.write_text("connections: {}\n")
        nested = tmp_path / "a" / "b"
        nested.mkdir(parents=True)

        assert find_config_file(".redis-doctor.yaml", start=nested) == config_path.resolve()

    def test_find_returns_none_when_absent(self, tmp_path):
        assert find_config_file("no-such-config-file.yaml", start=tmp_path) is None

    def test_load_valid_config(self, tmp_path):
        path = tmp_path / ".redis-doctor.yaml"
        path.write_text(
            "connections:\n"
            "  prod: rediss://admin@prod:6380\n"
            "defaults:\n"
            "  scan_count: 5000\n"
            "  insecure: true\n"
            "unknown_section: 1\n"
        )

        config = load_config(path)

        assert config.connections == {"prod": "rediss://admin@prod:6380"}
        assert config.defaults.scan_count == 5000
        assert config.defaults.insecure is True
        assert config.defaults.no_scan is False

    def test_unparseable_config_is_treated_as_absent(self, tmp_path, caplog):
        path = tmp_path / ".redis-doctor.yaml"
        path.write_text("connections: [unclosed\n")

        config = load_config(path)

        assert config == DoctorConfig()
        assert "Ignoring config file" in caplog.text

    def test_invalid_schema_is_treated_as_absent(self, tmp_path):
        path = tmp_path / ".redis-doctor.yaml"
        path.write_text("connections: not-a-mapping\n")

        assert load_config(path) == DoctorConfig()

    def test_load_none(self):
        assert load_config(None) == DoctorConfig()


class TestResolveConnection:
    """Tests for URL-or-name resolution."""

    def test_urls_pass_through(self):
        config = DoctorConfig()

        assert resolve_connection("redis://h:1", config) == "redis://h:1"
        assert resolve_connection("rediss://h:2", config) == "rediss://h:2"

    def test_named_connection(self):
        config = DoctorConfig(connections={"local": "redis://localhost:6379"})

        assert resolve_connection("local", config) == "redis://localhost:6379"
        assert resolve_connection("prod", config) is None

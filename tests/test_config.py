"""Tests for Settings, duration parsing and endpoint parsing."""

from __future__ import annotations

from datetime import timedelta
from pathlib import Path

import pytest
from pydantic import ValidationError

from mock_kms_plugin.config import Settings, format_duration, parse_duration, parse_endpoint
from mock_kms_plugin.exceptions import InvalidEndpointError, InvalidLatencyBoundsError


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch, tmp_path: Path):
    """Keep the developer's environment and any .env file out of these tests."""
    monkeypatch.chdir(tmp_path)
    for name in (
        "MOCK_KMS_LISTEN_ADDR",
        "MOCK_KMS_TIMEOUT",
        "MOCK_KMS_ENCRYPTION_LATENCY_MIN",
        "MOCK_KMS_ENCRYPTION_LATENCY_MAX",
        "MOCK_KMS_DECRYPTION_LATENCY_MIN",
        "MOCK_KMS_DECRYPTION_LATENCY_MAX",
        "MOCK_KMS_MAX_WORKERS",
    ):
        monkeypatch.delenv(name, raising=False)


class TestParseDuration:
    @pytest.mark.parametrize(
        ("text", "expected"),
        [
            ("0", timedelta(0)),
            ("5s", timedelta(seconds=5)),
            ("100ms", timedelta(milliseconds=100)),
            ("1m30s", timedelta(seconds=90)),
            ("1.5h", timedelta(minutes=90)),
            ("250us", timedelta(microseconds=250)),
            ("250µs", timedelta(microseconds=250)),
            ("2000ns", timedelta(microseconds=2)),
            (".5s", timedelta(milliseconds=500)),
            ("-1s", timedelta(seconds=-1)),
        ],
    )
    def test_go_durations(self, text: str, expected: timedelta):
        assert parse_duration(text) == expected

    @pytest.mark.parametrize("text", ["", "5", "1d", "ms", "5s5", "abc"])
    def test_invalid_durations(self, text: str):
        with pytest.raises(ValueError):
            parse_duration(text)

    def test_format_duration(self):
        assert format_duration(timedelta(0)) == "0s"
        assert format_duration(timedelta(milliseconds=150)) == "150ms"
        assert format_duration(timedelta(seconds=2.5)) == "2.5s"


class TestParseEndpoint:
    def test_unix_path(self):
        assert parse_endpoint("unix:///tmp/kms.socket") == "/tmp/kms.socket"

    def test_abstract_socket(self):
        assert parse_endpoint("unix:///@kms-plugin") == "@kms-plugin"

    def test_empty_endpoint(self):
        with pytest.raises(InvalidEndpointError, match="empty"):
            parse_endpoint("")

    @pytest.mark.parametrize("endpoint", ["tcp://127.0.0.1:8080", "/tmp/kms.socket", "http://x"])
    def test_unsupported_scheme(self, endpoint: str):
        with pytest.raises(InvalidEndpointError, match="unsupported scheme"):
            parse_endpoint(endpoint)

    def test_missing_path(self):
        with pytest.raises(InvalidEndpointError):
            parse_endpoint("unix://")


class TestSettings:
    def test_defaults(self):
        settings = Settings(_env_file=None)

        assert settings.listen_addr == "unix:///tmp/kms.socket"
        assert settings.timeout == timedelta(seconds=5)
        assert settings.encryption_latency_min == timedelta(0)
        assert settings.decryption_latency_max == timedelta(0)
        assert settings.log_level == "INFO"

    def test_go_duration_strings(self):
        settings = Settings(
            _env_file=None,
            timeout="3s",
            encryption_latency_min="100ms",
            encryption_latency_max="200ms",
            decryption_latency_min="0",
            decryption_latency_max="1m",
        )

        assert settings.timeout == timedelta(seconds=3)
        assert settings.encryption_latency_min == timedelta(milliseconds=100)
        assert settings.encryption_latency_max == timedelta(milliseconds=200)
        assert settings.decryption_latency_max == timedelta(minutes=1)

    def test_numeric_strings_are_seconds(self):
        settings = Settings(_env_file=None, timeout="2.5")
        assert settings.timeout == timedelta(seconds=2.5)

    def test_environment_variables(self, monkeypatch):
        monkeypatch.setenv("MOCK_KMS_LISTEN_ADDR", "unix:///tmp/other.sock")
        monkeypatch.setenv("MOCK_KMS_ENCRYPTION_LATENCY_MAX", "750ms")

        settings = Settings(_env_file=None)

        assert settings.listen_addr == "unix:///tmp/other.sock"
        assert settings.encryption_latency_max == timedelta(milliseconds=750)

    def test_env_file(self, tmp_path: Path):
        env_file = tmp_path / "plugin.env"
        env_file.write_text("MOCK_KMS_DECRYPTION_LATENCY_MAX=1s\n")

        settings = Settings(_env_file=str(env_file))

        assert settings.decryption_latency_max == timedelta(seconds=1)

    def test_negative_duration_rejected(self):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, encryption_latency_min="-5ms")

    def test_garbage_duration_rejected(self):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, timeout="soon")


class TestToServiceConfig:
    def test_builds_service_config(self):
        settings = Settings(
            _env_file=None,
            listen_addr="unix:///tmp/kms-test.sock",
            timeout="2s",
            encryption_latency_min="100ms",
            encryption_latency_max="200ms",
            decryption_latency_min="10ms",
            decryption_latency_max="20ms",
        )

        config = settings.to_service_config()

        assert config.socket_path == "/tmp/kms-test.sock"
        assert config.timeout == timedelta(seconds=2)
        assert config.encrypt.min == timedelta(milliseconds=100)
        assert config.encrypt.max == timedelta(milliseconds=200)
        assert config.decrypt.min == timedelta(milliseconds=10)
        assert config.decrypt.max == timedelta(milliseconds=20)
        assert config.grpc_target == "unix:/tmp/kms-test.sock"
        assert config.shutdown_grace == timedelta(milliseconds=2200)

    def test_inverted_encrypt_bounds(self):
        settings = Settings(
            _env_file=None, encryption_latency_min="2s", encryption_latency_max="1s"
        )

        with pytest.raises(InvalidLatencyBoundsError, match="invalid latency configuration"):
            settings.to_service_config()

    def test_inverted_decrypt_bounds(self):
        settings = Settings(
            _env_file=None, decryption_latency_min="300ms", decryption_latency_max="100ms"
        )

        with pytest.raises(InvalidLatencyBoundsError):
            settings.to_service_config()

    def test_invalid_endpoint(self):
        settings = Settings(_env_file=None, listen_addr="tcp://localhost:1234")

        with pytest.raises(InvalidEndpointError):
            settings.to_service_config()

    def test_abstract_endpoint(self):
        config = Settings(_env_file=None, listen_addr="unix:///@kms").to_service_config()

        assert config.is_abstract
        assert config.grpc_target == "unix-abstract:kms"

"""Shared fixtures for plugin tests."""

from __future__ import annotations

import shutil
import tempfile
import threading
from datetime import timedelta
from pathlib import Path

import pytest

from mock_kms_plugin.client import KMSPluginClient
from mock_kms_plugin.models import LatencyWindow, ServiceConfig
from mock_kms_plugin.service import PluginService


def pytest_configure(config):
    """Set pytest-asyncio mode to auto so async handler tests run without markers."""
    config.option.asyncio_mode = "auto"


class RecordingSleep:
    """Stand-in for ``asyncio.sleep`` that records requested delays."""

    def __init__(self) -> None:
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


class ServiceThread:
    """Runs ``PluginService.start()`` on a background thread and keeps its outcome."""

    def __init__(self, service: PluginService) -> None:
        self.service = service
        self.error: Exception | None = None
        self.thread = threading.Thread(target=self._run, daemon=True)

    def _run(self) -> None:
        try:
            self.service.start()
        except Exception as e:
            self.error = e

    def start(self, timeout: float = 5.0) -> None:
        self.thread.start()
        assert self.service.wait_until_serving(timeout), "service did not start serving"

    def join(self, timeout: float = 5.0) -> None:
        self.thread.join(timeout)
        assert not self.thread.is_alive(), "start() did not return after stop"


@pytest.fixture()
def socket_dir():
    """A short temp directory (AF_UNIX paths are limited to ~108 bytes)."""
    path = Path(tempfile.mkdtemp(prefix="kms-"))
    yield path
    shutil.rmtree(path, ignore_errors=True)


@pytest.fixture()
def socket_path(socket_dir: Path) -> str:
    return str(socket_dir / "kms.sock")


@pytest.fixture()
def make_config(socket_path: str):
    """Factory for a ServiceConfig on the per-test socket, latencies in milliseconds."""

    def _make(
        encrypt_ms: tuple[int, int] = (0, 0),
        decrypt_ms: tuple[int, int] = (0, 0),
        **kwargs,
    ) -> ServiceConfig:
        kwargs.setdefault("timeout", timedelta(seconds=1))
        return ServiceConfig(
            socket_path=socket_path,
            encrypt=LatencyWindow(
                timedelta(milliseconds=encrypt_ms[0]), timedelta(milliseconds=encrypt_ms[1])
            ),
            decrypt=LatencyWindow(
                timedelta(milliseconds=decrypt_ms[0]), timedelta(milliseconds=decrypt_ms[1])
            ),
            **kwargs,
        )

    return _make


@pytest.fixture()
def run_service():
    """Start services on background threads; force-stop whatever is left at teardown."""
    started: list[ServiceThread] = []

    def _run(service: PluginService) -> ServiceThread:
        runner = ServiceThread(service)
        runner.start()
        started.append(runner)
        return runner

    yield _run

    for runner in started:
        runner.service.force_stop()
        runner.thread.join(5)


@pytest.fixture()
def client_for():
    """Connected KMSPluginClient factory; channels are closed at teardown."""
    clients: list[KMSPluginClient] = []

    def _client(service: PluginService, timeout: timedelta = timedelta(seconds=5)) -> KMSPluginClient:
        client = KMSPluginClient(service.address, timeout=timeout)
        client.connect()
        clients.append(client)
        return client

    yield _client

    for client in clients:
        client.close()

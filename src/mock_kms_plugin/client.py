"""Minimal client for a KMS plugin endpoint.

Used by the ``check`` CLI command and by integration tests. ``healthz``
mirrors the orchestrator's plugin health check: a Version call followed
by an Encrypt of the ``ping`` sentinel.
"""

from __future__ import annotations

from datetime import timedelta

import grpc
from loguru import logger

from mock_kms_plugin.api import (
    API_VERSION,
    DecryptRequest,
    EncryptRequest,
    KeyManagementServiceStub,
    VersionRequest,
)
from mock_kms_plugin.config import parse_endpoint
from mock_kms_plugin.latency import PING_SENTINEL
from mock_kms_plugin.models import grpc_target


class KMSPluginClient:
    """Blocking gRPC client for the ``v1beta1`` KMS plugin API."""

    def __init__(self, listen_addr: str, timeout: timedelta = timedelta(seconds=5)) -> None:
        self.target = grpc_target(parse_endpoint(listen_addr))
        self.timeout = timeout.total_seconds()
        self.channel: grpc.Channel | None = None
        self._stub: KeyManagementServiceStub | None = None

    def connect(self) -> None:
        """Open the channel. The connection itself is established lazily."""
        self.channel = grpc.insecure_channel(self.target)
        self._stub = KeyManagementServiceStub(self.channel)

    def close(self) -> None:
        if self.channel:
            self.channel.close()
            self.channel = None
            self._stub = None

    def __enter__(self) -> KMSPluginClient:
        self.connect()
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    @property
    def stub(self) -> KeyManagementServiceStub:
        if self._stub is None:
            raise RuntimeError("Not connected. Call connect() first.")
        return self._stub

    def wait_ready(self, timeout: float | None = None) -> None:
        """Block until the channel is connected.

        Raises:
            grpc.FutureTimeoutError: if the plugin is unreachable within ``timeout``.
        """
        if self.channel is None:
            raise RuntimeError("Not connected. Call connect() first.")
        grpc.channel_ready_future(self.channel).result(
            timeout=self.timeout if timeout is None else timeout
        )

    def version(self):
        return self.stub.Version(VersionRequest(version=API_VERSION), timeout=self.timeout)

    def encrypt(self, plain: bytes) -> bytes:
        response = self.stub.Encrypt(
            EncryptRequest(version=API_VERSION, plain=plain), timeout=self.timeout
        )
        return response.cipher

    def decrypt(self, cipher: bytes) -> bytes:
        response = self.stub.Decrypt(
            DecryptRequest(version=API_VERSION, cipher=cipher), timeout=self.timeout
        )
        return response.plain

    def healthz(self) -> bool:
        """Return True if the plugin answers Version and echoes the ping sentinel."""
        try:
            response = self.version()
            if response.version != API_VERSION:
                logger.warning(
                    "KMS plugin reports unexpected API version | expected={} got={}",
                    API_VERSION,
                    response.version,
                )
                return False
            return self.encrypt(PING_SENTINEL) == PING_SENTINEL
        except grpc.RpcError as e:
            logger.warning("KMS plugin health check failed | target={} error={}", self.target, e)
            return False

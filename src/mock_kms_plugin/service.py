"""KMS plugin gRPC service.

``PluginService`` owns the listening Unix socket and the gRPC server. It
implements the ``v1beta1`` handlers as identity transforms (ciphertext is
the plaintext and vice versa) and delays Encrypt / Decrypt by a latency
sampled from the configured window.

The server is a ``grpc.aio`` server: each RPC is a coroutine, so a delay
only suspends its own call and every accepted call is drained on a
graceful stop.

Lifecycle: ``CREATED -> RUNNING -> STOPPED``. ``start()`` runs its own
event loop and blocks while serving, so callers that need to keep control
run it on a background thread and later call ``graceful_stop()`` or
``force_stop()`` from any thread.
"""

from __future__ import annotations

import asyncio
import os
import socket
import stat
import threading
from contextlib import suppress
from datetime import timedelta

import grpc
from loguru import logger

from mock_kms_plugin.api import (
    API_VERSION,
    RUNTIME_NAME,
    RUNTIME_VERSION,
    DecryptResponse,
    EncryptResponse,
    VersionResponse,
    add_key_management_service_to_server,
)
from mock_kms_plugin.config import format_duration
from mock_kms_plugin.exceptions import BindError, ServeError, ServiceAlreadyRunningError
from mock_kms_plugin.latency import LatencySimulator, is_health_check
from mock_kms_plugin.models import ServiceConfig, ServiceState
from mock_kms_plugin.protocols import Sleeper

# grpc core channel arg bounding the connection handshake on the server side
HANDSHAKE_TIMEOUT_OPTION = "grpc.server_handshake_timeout_ms"


def _is_listening(path: str) -> bool:
    """Return True if something accepts connections on the Unix socket ``path``."""
    with socket.socket(socket.AF_UNIX, socket.SOCK_STREAM) as conn:
        try:
            conn.connect(path)
        except OSError:
            return False
        return True


def _request_stop(stop_requested: asyncio.Future, grace: float | None) -> None:
    if not stop_requested.done():
        stop_requested.set_result(grace)


class _ServingRun:
    """State of one ``start()`` call, shared between the serving thread and stop callers."""

    def __init__(self) -> None:
        self.loop: asyncio.AbstractEventLoop | None = None
        self.server: grpc.aio.Server | None = None
        # Resolved with the grace period (seconds, or None to abort) by a stop call.
        self.stop_requested: asyncio.Future | None = None
        self.finished = threading.Event()


class PluginService:
    """Mock KMS plugin: identity Encrypt/Decrypt with injected latency."""

    def __init__(
        self,
        config: ServiceConfig,
        *,
        latency: LatencySimulator | None = None,
        sleep: Sleeper = asyncio.sleep,
    ) -> None:
        self._config = config
        self._latency = latency if latency is not None else LatencySimulator()
        self._sleep = sleep
        self._log = logger.bind(address=self.address)

        self._lock = threading.Lock()
        self._state = ServiceState.CREATED
        self._run: _ServingRun | None = None
        self._serving = threading.Event()

        self._log.info("KMS plugin configured | timeout={}", format_duration(config.timeout))

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def config(self) -> ServiceConfig:
        return self._config

    @property
    def state(self) -> ServiceState:
        with self._lock:
            return self._state

    @property
    def address(self) -> str:
        return f"unix://{self._config.socket_path}"

    def wait_until_serving(self, timeout: float | None = None) -> bool:
        """Block until ``start()`` has bound the listener. Returns False on timeout."""
        return self._serving.wait(timeout)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Bind the listener and serve until stopped. Blocking.

        Returns normally after ``graceful_stop()`` / ``force_stop()``.

        Raises:
            ServiceAlreadyRunningError: if this instance is already serving.
            BindError: if the socket cannot be bound.
            ServeError: if serving ends without an explicit stop.
        """
        with self._lock:
            if self._run is not None:
                raise ServiceAlreadyRunningError(f"KMS plugin already serving on {self.address}")
            run = self._run = _ServingRun()

        try:
            asyncio.run(self._serve(run))
        finally:
            with self._lock:
                self._run = None
                self._state = ServiceState.STOPPED
                self._serving.clear()
            run.finished.set()

    async def _serve(self, run: _ServingRun) -> None:
        server = self._bind()
        await server.start()

        loop = asyncio.get_running_loop()
        with self._lock:
            run.loop = loop
            run.server = server
            run.stop_requested = loop.create_future()
            self._state = ServiceState.RUNNING
            self._serving.set()
        self._log.info("KMS plugin serving")

        termination = asyncio.ensure_future(server.wait_for_termination())
        await asyncio.wait({termination, run.stop_requested}, return_when=asyncio.FIRST_COMPLETED)

        if run.stop_requested.done():
            await server.stop(run.stop_requested.result())
            await termination
            self._remove_socket()
            return

        self._remove_socket()
        raise ServeError(f"KMS plugin on {self.address} stopped serving unexpectedly")

    def graceful_stop(self) -> None:
        """Stop accepting connections, let in-flight RPCs finish, then close the listener.

        No-op unless the service is running.
        """
        grace = self._config.shutdown_grace
        self._log.debug("KMS plugin graceful shutdown | grace={}", format_duration(grace))
        if self._stop(grace.total_seconds()):
            self._log.info("KMS plugin shutdown complete")

    def force_stop(self) -> None:
        """Close the listener and every connection immediately, abandoning in-flight RPCs.

        No-op unless the service is running.
        """
        self._log.debug("KMS plugin close")
        if self._stop(None):
            self._log.info("KMS plugin closed")

    def _stop(self, grace: float | None) -> bool:
        with self._lock:
            run = self._run
            if self._state is not ServiceState.RUNNING or run is None or run.loop is None:
                self._log.debug("KMS plugin not running, nothing to stop | state={}", self._state.value)
                return False
            self._state = ServiceState.STOPPED
            self._serving.clear()

        try:
            run.loop.call_soon_threadsafe(_request_stop, run.stop_requested, grace)
        except RuntimeError:
            # Loop already closed: serving ended on its own.
            pass
        run.finished.wait()
        return True

    def _bind(self) -> grpc.aio.Server:
        if not self._config.is_abstract:
            self._check_socket_path(self._config.socket_path)

        options = []
        if self._config.timeout > timedelta(0):
            options.append(
                (HANDSHAKE_TIMEOUT_OPTION, int(self._config.timeout / timedelta(milliseconds=1)))
            )
        server = grpc.aio.server(options=options)
        add_key_management_service_to_server(self, server)

        try:
            bound = server.add_insecure_port(self._config.grpc_target)
        except RuntimeError as e:
            raise BindError(f"failed to listen on {self.address}: {e}") from e
        # Older grpcio releases report failure as port 0 instead of raising.
        if bound == 0:
            raise BindError(f"failed to listen on {self.address}")
        return server

    @staticmethod
    def _check_socket_path(path: str) -> None:
        """Refuse to take over a live socket or a regular file; clear stale sockets."""
        try:
            mode = os.stat(path).st_mode
        except FileNotFoundError:
            return
        except OSError as e:
            raise BindError(f"listen unix {path}: {e}") from e

        if not stat.S_ISSOCK(mode):
            raise BindError(f"listen unix {path}: bind: address already in use")
        if _is_listening(path):
            raise BindError(f"listen unix {path}: bind: address already in use")

        logger.warning("Removing stale socket file | path={}", path)
        with suppress(FileNotFoundError):
            os.unlink(path)

    def _remove_socket(self) -> None:
        if self._config.is_abstract:
            return
        with suppress(FileNotFoundError):
            os.unlink(self._config.socket_path)

    # ------------------------------------------------------------------
    # KeyManagementService handlers
    # ------------------------------------------------------------------

    async def Version(self, request, context):
        self._log.debug("Received Version request | version={}", request.version)
        return VersionResponse(
            version=API_VERSION,
            runtime_name=RUNTIME_NAME,
            runtime_version=RUNTIME_VERSION,
        )

    async def Decrypt(self, request, context):
        delay = self._latency.sample_window(self._config.decrypt)
        self._log.info(
            "Received Decrypt request | cipher_bytes={} latency={}",
            len(request.cipher),
            format_duration(delay),
        )
        await self._inject_latency(request.cipher, delay)
        return DecryptResponse(plain=request.cipher)

    async def Encrypt(self, request, context):
        delay = self._latency.sample_window(self._config.encrypt)
        self._log.info(
            "Received Encrypt request | plain_bytes={} latency={}",
            len(request.plain),
            format_duration(delay),
        )
        await self._inject_latency(request.plain, delay)
        return EncryptResponse(cipher=request.plain)

    async def _inject_latency(self, payload: bytes, delay: timedelta) -> None:
        # Health checks send the sentinel and must stay fast.
        if is_health_check(payload):
            return
        await self._sleep(delay.total_seconds())

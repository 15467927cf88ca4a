"""Process bootstrap glue: run a ``PluginService`` until asked to stop.

The service itself knows nothing about signals. ``serve_until`` only
needs a ``threading.Event``; ``install_shutdown_signals`` is the single
place that bridges SIGTERM / SIGINT to that event.
"""

from __future__ import annotations

import signal
import threading

from loguru import logger

from mock_kms_plugin.service import PluginService

SHUTDOWN_SIGNALS = (signal.SIGTERM, signal.SIGINT)


def install_shutdown_signals(stop_event: threading.Event) -> None:
    """Set ``stop_event`` when the process receives SIGTERM or SIGINT.

    Must be called from the main thread. The handler only sets the event;
    it may interrupt a thread holding the logger's lock, so it never logs.
    """

    def _handler(signum, frame):
        stop_event.set()

    for signum in SHUTDOWN_SIGNALS:
        signal.signal(signum, _handler)


def serve_until(service: PluginService, stop_event: threading.Event) -> None:
    """Serve on a background thread until ``stop_event`` is set, then drain gracefully.

    Raises whatever ended serving early (``BindError``, ``ServeError``, ...).
    """
    errors: list[Exception] = []

    def _serve() -> None:
        try:
            service.start()
        except Exception as e:  # re-raised on the calling thread
            errors.append(e)
        finally:
            # Wake the waiter if serving ended on its own.
            stop_event.set()

    logger.info("Starting server | address={}", service.address)
    worker = threading.Thread(target=_serve, name="kms-plugin-serve", daemon=True)
    worker.start()

    stop_event.wait()

    if not errors:
        logger.info("Shutdown requested | address={}", service.address)
        # A stop issued before the listener is bound would be a no-op.
        while worker.is_alive() and not service.wait_until_serving(timeout=0.1):
            pass
        logger.info("Shutting down server")
        service.graceful_stop()
    worker.join()

    if errors:
        raise errors[0]

"""A vsock server that serves metrics to a single connected client at a time."""

from __future__ import annotations

import logging
import select
import socket
import threading
from collections.abc import Callable

from vsmt.config import Cid
from vsmt.message import Message
from vsmt.metrics import Metric, RuntimeMetric, SystemInfo
from vsmt.serializer import serialize
from vsmt.util import get_error_str
from vsmt.vsocket import VSockConnectionError, VSocket, _vsock_socket

log = logging.getLogger(__name__)

_POLL_INTERVAL = 0.1
_BACKLOG = 3
_METRIC_ID = 1


class ServerWorker(threading.Thread):
    """Waits on a listening socket and hands over the first client that connects."""

    def __init__(
        self,
        sock: socket.socket,
        on_client_connected: Callable[[socket.socket], None],
        poll_interval: float = _POLL_INTERVAL,
    ) -> None:
        super().__init__(name="vsock-server-worker", daemon=True)
        self._sock = sock
        self._on_client_connected = on_client_connected
        self._poll_interval = poll_interval
        self._stop_event = threading.Event()

    def stop(self) -> None:
        self._stop_event.set()

    def run(self) -> None:
        log.debug("Started listening")
        while not self._stop_event.is_set():
            try:
                ready, _, _ = select.select([self._sock], [], [], self._poll_interval)
            except (OSError, ValueError):
                return
            if not ready:
                continue
            try:
                conn, _ = self._sock.accept()
            except (BlockingIOError, InterruptedError):
                continue
            except OSError:
                if self._sock.fileno() < 0:
                    return
                continue
            if self._stop_event.is_set():
                conn.close()
                return
            conn.setblocking(True)
            self._on_client_connected(conn)
            return


def _open_listening_socket(port: int) -> socket.socket:
    try:
        sock = _vsock_socket()
    except OSError as exc:
        log.debug("Socket creation failed")
        raise VSockConnectionError(get_error_str()) from exc
    try:
        sock.bind((int(Cid.ANY), port))
        sock.listen(_BACKLOG)
    except OSError as exc:
        log.debug("Socket bind or listen failed")
        message = get_error_str()
        sock.close()
        raise VSockConnectionError(message) from exc
    return sock


class VSockSingletonServer:
    """Listens on a port and serves exactly one client at a time."""

    def __init__(
        self,
        port: int,
        on_client_connected: Callable[[], None] | None = None,
        on_client_disconnected: Callable[[], None] | None = None,
        listen_socket: socket.socket | None = None,
    ) -> None:
        self.on_client_connected = on_client_connected
        self.on_client_disconnected = on_client_disconnected
        self._lock = threading.RLock()
        self._device: VSocket | None = None
        self._worker: ServerWorker | None = None
        self._closed = False
        self._sock = listen_socket if listen_socket is not None else _open_listening_socket(port)
        self._sock.setblocking(False)
        self._start_worker()

    def send(self, metric: Metric) -> None:
        """Send ``metric`` to the connected client."""
        with self._lock:
            device = self._device
            if device is None:
                raise VSockConnectionError("no client connected")
            device.send_message(Message.padded(serialize(metric)))

    def send_runtime_metric(self, metric: RuntimeMetric) -> None:
        self.send(Metric(metric, _METRIC_ID))

    def send_system_info(self, info: SystemInfo) -> None:
        self.send(Metric(info, _METRIC_ID))

    def close(self) -> None:
        """Stop accepting clients, drop the current one and close the port."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            worker, self._worker = self._worker, None
            device, self._device = self._device, None
        if worker is not None:
            worker.stop()
            if worker is not threading.current_thread() and worker.is_alive():
                worker.join()
        if device is not None:
            device.close()
        self._sock.close()

    def __enter__(self) -> VSockSingletonServer:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def _start_worker(self) -> None:
        self._worker = ServerWorker(self._sock, self._on_client_connected)
        self._worker.start()

    def _on_client_connected(self, conn: socket.socket) -> None:
        with self._lock:
            if self._closed:
                conn.close()
                return
            device = VSocket.wrap_socket(conn)
            device.on_disconnect = self._on_client_disconnected
            self._device = device
        handler = self.on_client_connected
        if handler is not None:
            handler()

    def _on_client_disconnected(self) -> None:
        with self._lock:
            device, self._device = self._device, None
            if not self._closed:
                self._start_worker()
        if device is not None:
            device.close()
        log.debug("Client disconnected")
        handler = self.on_client_disconnected
        if handler is not None:
            handler()
"""A vsock stream socket whose incoming messages are read on a background thread."""

from __future__ import annotations

import errno
import logging
import os
import select
import socket
import threading
from collections.abc import Callable

from vsmt.config import Address
from vsmt.message import DISCONNECT_MESSAGE, Message, receive_message
from vsmt.util import get_error_str

log = logging.getLogger(__name__)

MessageHandler = Callable[[Message], None]
DisconnectHandler = Callable[[], None]

_POLL_INTERVAL = 0.1


class VSockConnectionError(Exception):
    """Raised when a vsock connection cannot be made or used."""


def _vsock_socket() -> socket.socket:
    family = getattr(socket, "AF_VSOCK", None)
    if family is None:
        raise OSError(errno.EAFNOSUPPORT, os.strerror(errno.EAFNOSUPPORT))
    return socket.socket(family, socket.SOCK_STREAM)


class VSockListener(threading.Thread):
    """Reads messages from a socket until stopped or the peer disconnects."""

    def __init__(
        self,
        sock: socket.socket,
        on_message: MessageHandler,
        on_disconnect: DisconnectHandler,
        poll_interval: float = _POLL_INTERVAL,
    ) -> None:
        super().__init__(name="vsock-listener", daemon=True)
        self._sock = sock
        self._on_message = on_message
        self._on_disconnect = on_disconnect
        self._poll_interval = poll_interval
        self._stop_event = threading.Event()

    def stop(self) -> None:
        """Ask the thread to finish; it exits within one poll interval."""
        self._stop_event.set()

    def run(self) -> None:
        while not self._stop_event.is_set():
            try:
                ready, _, _ = select.select([self._sock], [], [], self._poll_interval)
                if not ready:
                    continue
                msg = receive_message(self._sock)
            except EOFError:
                self._peer_gone()
                return
            except (OSError, ValueError):
                self._peer_gone()
                return
            if msg is None:
                continue
            if msg.is_disconnect():
                self._peer_gone()
                return
            self._on_message(msg)

    def _peer_gone(self) -> None:
        if not self._stop_event.is_set():
            self._on_disconnect()


class VSocket:
    """A connected stream socket that reports messages and disconnects through callbacks."""

    def __init__(
        self,
        on_message: MessageHandler | None = None,
        on_disconnect: DisconnectHandler | None = None,
        socket_factory: Callable[[], socket.socket] | None = None,
    ) -> None:
        self.on_message = on_message
        self.on_disconnect = on_disconnect
        self._socket_factory = socket_factory or _vsock_socket
        self._sock: socket.socket | None = None
        self._listener: VSockListener | None = None
        self._send_lock = threading.Lock()

    def connect(self, address: Address) -> None:
        """Open a connection to ``address`` and start listening for messages."""
        try:
            sock = self._socket_factory()
        except OSError as exc:
            log.debug("Socket creation failed")
            raise VSockConnectionError(get_error_str()) from exc
        try:
            sock.connect((address.cid, address.port))
        except OSError as exc:
            log.debug("Socket connect failed")
            message = get_error_str()
            sock.close()
            raise VSockConnectionError(message) from exc
        log.debug("Connected")
        self._sock = sock
        self._finalize()

    def send_message(self, msg: Message) -> None:
        if self._sock is None:
            raise VSockConnectionError("socket is not connected")
        with self._send_lock:
            try:
                msg.send(self._sock)
            except OSError as exc:
                raise VSockConnectionError(get_error_str()) from exc

    def disconnect(self) -> None:
        """Stop listening and tell the peer the connection is over."""
        self._stop_listener()
        self.send_message(DISCONNECT_MESSAGE)

    def close(self) -> None:
        """Stop the listener and close the socket; safe to call more than once."""
        listener = self._stop_listener()
        if listener is not None and listener is not threading.current_thread() and listener.is_alive():
            listener.join()
        sock, self._sock = self._sock, None
        if sock is not None:
            sock.close()

    def __enter__(self) -> VSocket:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    @classmethod
    def wrap_socket(cls, sock: socket.socket) -> VSocket:
        """Wrap an already connected socket and start listening on it."""
        device = cls()
        device._sock = sock
        device._finalize()
        return device

    def _finalize(self) -> None:
        assert self._sock is not None
        self._listener = VSockListener(self._sock, self._handle_message, self._handle_disconnect)
        self._listener.start()

    def _stop_listener(self) -> VSockListener | None:
        listener = self._listener
        if listener is not None:
            listener.stop()
        return listener

    def _handle_message(self, msg: Message) -> None:
        handler = self.on_message
        if handler is not None:
            handler(msg)

    def _handle_disconnect(self) -> None:
        self._stop_listener()
        handler = self.on_disconnect
        if handler is not None:
            handler()
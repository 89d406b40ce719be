"""Length-prefixed messages exchanged over a stream socket."""

from __future__ import annotations

import socket
import struct
from dataclasses import dataclass
from typing import ClassVar

_HEADER = struct.Struct(">I")
_CHUNK = 65536


@dataclass(frozen=True)
class Message:
    """A message body sent after a big-endian 32-bit length; an empty body means disconnect."""

    data: bytes = b""

    MAX_SIZE: ClassVar[int] = 1024
    HEADER_SIZE: ClassVar[int] = _HEADER.size

    @classmethod
    def padded(cls, payload: bytes) -> Message:
        """A message carrying ``payload``, zero-filled up to ``MAX_SIZE`` bytes."""
        return cls(bytes(payload).ljust(cls.MAX_SIZE, b"\0"))

    def encode(self) -> bytes:
        """Header and body as they go on the wire."""
        try:
            header = _HEADER.pack(len(self.data))
        except struct.error as exc:
            raise ValueError(f"message too large: {len(self.data)} bytes") from exc
        return header + self.data

    def send(self, sock: socket.socket) -> None:
        """Write the encoded message to ``sock``."""
        sock.sendall(self.encode())

    def is_disconnect(self) -> bool:
        return not self.data


DISCONNECT_MESSAGE = Message()
"""The empty message a peer sends before closing the connection."""


def _recv_exact(sock: socket.socket, size: int) -> bytes:
    """Read up to ``size`` bytes, stopping early only at end of stream."""
    received = bytearray()
    while len(received) < size:
        chunk = sock.recv(min(size - len(received), _CHUNK))
        if not chunk:
            break
        received += chunk
    return bytes(received)


def receive_message(sock: socket.socket) -> Message | None:
    """Read one message from ``sock``.

    Returns None when the header or the body arrives incomplete and raises
    EOFError when the peer closed the stream before sending anything.
    """
    header = _recv_exact(sock, Message.HEADER_SIZE)
    if not header:
        raise EOFError("connection closed by peer")
    if len(header) < Message.HEADER_SIZE:
        return None
    (size,) = _HEADER.unpack(header)
    if size == 0:
        return DISCONNECT_MESSAGE
    body = _recv_exact(sock, size)
    if len(body) != size:
        return None
    return Message(body)
"""A vsock client that turns incoming messages into metrics."""

from __future__ import annotations

import logging
import socket
from collections.abc import Callable

from vsmt.config import Address
from vsmt.message import Message
from vsmt.metrics import Metric
from vsmt.serializer import deserialize
from vsmt.vsocket import VSockConnectionError, VSocket

log = logging.getLogger(__name__)

MetricHandler = Callable[[Metric], None]


class VSockClient:
    """Connects to a guest and reports every valid metric it sends.

    The connection is made on construction; VSockConnectionError is raised
    when it cannot be made.
    """

    def __init__(
        self,
        address: Address,
        on_metric: MetricHandler | None = None,
        on_disconnect: Callable[[], None] | None = None,
        socket_factory: Callable[[], socket.socket] | None = None,
    ) -> None:
        self.on_metric = on_metric
        self._socket = VSocket(
            on_message=self._on_message,
            on_disconnect=on_disconnect,
            socket_factory=socket_factory,
        )
        self._socket.connect(address)

    def manual_disconnect(self) -> None:
        """Tell the peer the connection is over and stop listening."""
        self._socket.disconnect()

    def close(self) -> None:
        """Say goodbye to the peer if still possible, then release the socket."""
        try:
            self._socket.disconnect()
        except VSockConnectionError:
            pass
        self._socket.close()

    def __enter__(self) -> VSockClient:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def _on_message(self, msg: Message) -> None:
        try:
            metric = deserialize(msg.data)
        except ValueError as exc:
            log.debug("Dropping undecodable message: %s", exc)
            return
        handler = self.on_metric
        if metric.valid() and handler is not None:
            handler(metric)
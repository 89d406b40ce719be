"""The guest-side application that streams metrics to the hypervisor tool."""

from __future__ import annotations

import argparse
import logging
import socket
import sys
import threading
from collections.abc import Callable

from vsmt.resourcemonitor import InvalidPlatformError, create_monitor
from vsmt.server import VSockSingletonServer
from vsmt.vsocket import VSockConnectionError

log = logging.getLogger(__name__)

DEFAULT_PORT = 9999
METRIC_INTERVAL = 1.0


class _MetricTimer(threading.Thread):
    """Calls an action at a fixed interval until stopped."""

    def __init__(self, interval: float, action: Callable[[], None]) -> None:
        super().__init__(name="metric-timer", daemon=True)
        self._interval = interval
        self._action = action
        self._stop_event = threading.Event()

    def stop(self) -> None:
        self._stop_event.set()

    def run(self) -> None:
        while not self._stop_event.wait(self._interval):
            try:
                self._action()
            except VSockConnectionError as exc:
                log.debug("Cannot send runtime metric: %s", exc)


class ClientApplication:
    """Serves system info on connect, then a runtime metric every interval."""

    def __init__(
        self,
        port: int = DEFAULT_PORT,
        interval: float = METRIC_INTERVAL,
        monitor=None,
        listen_socket: socket.socket | None = None,
    ) -> None:
        self._monitor = monitor if monitor is not None else create_monitor()
        self._interval = interval
        self._timer_lock = threading.Lock()
        self._timer: _MetricTimer | None = None
        self._finished = threading.Event()
        self._server = VSockSingletonServer(
            port,
            on_client_connected=self._on_connected,
            on_client_disconnected=self._on_disconnected,
            listen_socket=listen_socket,
        )

    def run(self) -> int:
        """Serve until ``stop`` is called or the process is interrupted."""
        try:
            while not self._finished.wait(0.5):
                pass
        except KeyboardInterrupt:
            pass
        finally:
            self.stop()
        return 0

    def stop(self) -> None:
        self._finished.set()
        timer = self._replace_timer(None)
        if timer is not None and timer is not threading.current_thread():
            timer.join()
        self._server.close()

    def send_runtime_metric(self) -> None:
        self._server.send_runtime_metric(self._monitor.gather_runtime_metric())

    def _replace_timer(self, timer: _MetricTimer | None) -> _MetricTimer | None:
        with self._timer_lock:
            previous, self._timer = self._timer, timer
        if previous is not None:
            previous.stop()
        if timer is not None:
            timer.start()
        return previous

    def _on_connected(self) -> None:
        log.info("Hypervisor monitoring tool connected")
        try:
            self._server.send_system_info(self._monitor.gather_sys_info())
        except VSockConnectionError as exc:
            log.debug("Cannot send system info: %s", exc)
            return
        if not self._finished.is_set():
            self._replace_timer(_MetricTimer(self._interval, self.send_runtime_metric))

    def _on_disconnected(self) -> None:
        self._replace_timer(None)
        log.info("Hypervisor monitoring tool disconnected")


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="vsmt-client",
        description="Serve system metrics to the hypervisor monitoring tool over vsock.",
    )
    parser.add_argument("--port", type=int, default=DEFAULT_PORT, help="vsock port to listen on")
    parser.add_argument(
        "--interval", type=float, default=METRIC_INTERVAL, help="seconds between runtime metrics"
    )
    args = parser.parse_args(argv)
    logging.basicConfig(level=logging.INFO)
    try:
        app = ClientApplication(args.port, args.interval)
    except (VSockConnectionError, InvalidPlatformError, OSError) as exc:
        print(f"vsmt-client: {exc}", file=sys.stderr)
        return 1
    return app.run()


if __name__ == "__main__":
    sys.exit(main())
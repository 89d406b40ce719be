"""Dispatchers that deliver metrics of one client, local or in a virtual machine."""

from __future__ import annotations

import abc
import threading
from collections.abc import Callable
from typing import Any

from vsmt.config import Address, ClientConfiguration
from vsmt.metrics import Metric, MetricType, RuntimeMetric, SystemInfo
from vsmt.resourcemonitor import create_monitor
from vsmt.vsockclient import VSockClient

RuntimeMetricHandler = Callable[[int, RuntimeMetric], None]
ConnectedHandler = Callable[[int, SystemInfo], None]
TimeoutHandler = Callable[[], None]
ClientFactory = Callable[[Address, Callable[[Metric], None]], Any]


class ClientDispatcher(abc.ABC):
    """Reports a client's connection and runtime metrics through callbacks."""

    def __init__(
        self,
        config: ClientConfiguration,
        *,
        on_runtime_metric: RuntimeMetricHandler | None = None,
        on_connected: ConnectedHandler | None = None,
        on_timed_out: TimeoutHandler | None = None,
    ) -> None:
        self.config = config
        self.on_runtime_metric = on_runtime_metric
        self.on_connected = on_connected
        self.on_timed_out = on_timed_out

    @property
    def id(self) -> int:
        return self.config.id

    @property
    def name(self) -> str:
        return self.config.name

    @abc.abstractmethod
    def stop(self) -> None:
        """Stop delivering metrics and release resources."""

    def __enter__(self) -> ClientDispatcher:
        return self

    def __exit__(self, *exc_info) -> None:
        self.stop()

    def _emit_runtime_metric(self, metric: RuntimeMetric) -> None:
        if self.on_runtime_metric is not None:
            self.on_runtime_metric(self.id, metric)

    def _emit_connected(self, info: SystemInfo) -> None:
        if self.on_connected is not None:
            self.on_connected(self.id, info)

    def _emit_timed_out(self) -> None:
        if self.on_timed_out is not None:
            self.on_timed_out()


class LocalClientDispatcher(ClientDispatcher):
    """Stands in for a client on the host, gathering metrics with a resource monitor."""

    def __init__(
        self,
        config: ClientConfiguration,
        metric_interval: float = 1.0,
        monitor=None,
        **callbacks,
    ) -> None:
        super().__init__(config, **callbacks)
        self.metric_interval = metric_interval
        self._monitor = monitor if monitor is not None else create_monitor()
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    def start(self) -> None:
        """Report the connection with system info, then a runtime metric every interval."""
        if self._thread is not None:
            raise RuntimeError("dispatcher already started")
        self._thread = threading.Thread(
            target=self._run, name=f"local-dispatcher-{self.id}", daemon=True
        )
        self._thread.start()

    def stop(self) -> None:
        self._stop_event.set()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread() and thread.is_alive():
            thread.join()

    def _run(self) -> None:
        if self._stop_event.is_set():
            return
        self._emit_connected(self._monitor.gather_sys_info())
        while not self._stop_event.wait(self.metric_interval):
            self._emit_runtime_metric(self._monitor.gather_runtime_metric())


class RemoteClientDispatcher(ClientDispatcher):
    """Talks to a client in a virtual machine; reports a timeout when it falls silent."""

    def __init__(
        self,
        config: ClientConfiguration,
        timeout: float = 5.0,
        client_factory: ClientFactory | None = None,
        **callbacks,
    ) -> None:
        super().__init__(config, **callbacks)
        self.timeout = timeout
        self._timer_lock = threading.Lock()
        self._timer: threading.Timer | None = None
        self._stopped = False
        factory = client_factory if client_factory is not None else VSockClient
        self._client = factory(config.address, self.handle_metric)

    def handle_metric(self, metric: Metric) -> None:
        """Deliver a metric from the client and restart the silence timeout."""
        kind = metric.type
        if kind is MetricType.RUNTIME_METRIC_REQUEST:
            self._restart_timer()
            self._emit_runtime_metric(metric.as_runtime_metric())
        elif kind is MetricType.SYSTEM_INFO_REQUEST:
            self._restart_timer()
            self._emit_connected(metric.as_system_info())

    def stop(self) -> None:
        with self._timer_lock:
            self._stopped = True
            timer, self._timer = self._timer, None
        if timer is not None:
            timer.cancel()
        self._client.close()

    def _restart_timer(self) -> None:
        with self._timer_lock:
            if self._stopped:
                return
            if self._timer is not None:
                self._timer.cancel()
            self._timer = threading.Timer(self.timeout, self._emit_timed_out)
            self._timer.daemon = True
            self._timer.start()
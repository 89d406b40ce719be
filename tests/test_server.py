import socket
import threading

import pytest

from vsmt.message import DISCONNECT_MESSAGE, Message, receive_message
from vsmt.metrics import CpuInfo, MemoryInfo, RuntimeMetric, SystemInfo
from vsmt.serializer import deserialize
from vsmt.server import ServerWorker, VSockSingletonServer
from vsmt.vsocket import VSockConnectionError


@pytest.fixture
def listen_socket():
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.bind(("127.0.0.1", 0))
    sock.listen()
    yield sock
    sock.close()


def _connect(listen_socket):
    client = socket.create_connection(listen_socket.getsockname(), timeout=5)
    client.settimeout(5)
    return client


@pytest.fixture
def server(listen_socket):
    connected = threading.Event()
    disconnected = threading.Event()
    srv = VSockSingletonServer(
        0,
        on_client_connected=connected.set,
        on_client_disconnected=disconnected.set,
        listen_socket=listen_socket,
    )
    yield srv, connected, disconnected
    srv.close()


def test_send_without_client_raises(server):
    srv, _, _ = server
    with pytest.raises(VSockConnectionError):
        srv.send_system_info(SystemInfo())


def test_client_receives_system_info(server, listen_socket):
    srv, connected, _ = server
    client = _connect(listen_socket)
    assert connected.wait(5)
    info = SystemInfo(CpuInfo("Test CPU", 4, "2.00GHz"), "linux x86_64", "Test OS")
    srv.send_system_info(info)
    msg = receive_message(client)
    assert len(msg.data) == Message.MAX_SIZE
    metric = deserialize(msg.data)
    assert metric.id == 1
    assert metric.as_system_info() == info
    client.close()


def test_client_receives_runtime_metric(server, listen_socket):
    srv, connected, _ = server
    client = _connect(listen_socket)
    assert connected.wait(5)
    runtime = RuntimeMetric(core_loads=[12.0, 34.0], memory=MemoryInfo(2048, 1024))
    srv.send_runtime_metric(runtime)
    metric = deserialize(receive_message(client).data)
    assert metric.as_runtime_metric() == runtime
    client.close()


def test_disconnect_allows_new_client(server, listen_socket):
    srv, connected, disconnected = server
    first = _connect(listen_socket)
    assert connected.wait(5)
    connected.clear()
    DISCONNECT_MESSAGE.send(first)
    assert disconnected.wait(5)
    with pytest.raises(VSockConnectionError):
        srv.send_system_info(SystemInfo())
    second = _connect(listen_socket)
    assert connected.wait(5)
    info = SystemInfo(platform="linux x86_64")
    srv.send_system_info(info)
    assert deserialize(receive_message(second).data).as_system_info() == info
    first.close()
    second.close()


def test_close_drops_client(server, listen_socket):
    srv, connected, _ = server
    client = _connect(listen_socket)
    assert connected.wait(5)
    srv.close()
    with pytest.raises(VSockConnectionError):
        srv.send_system_info(SystemInfo())
    client.close()


def test_worker_hands_over_first_client(listen_socket):
    accepted = []
    done = threading.Event()

    def on_connected(conn):
        accepted.append(conn)
        done.set()

    worker = ServerWorker(listen_socket, on_connected)
    worker.start()
    client = _connect(listen_socket)
    assert done.wait(5)
    worker.join(5)
    assert not worker.is_alive()
    assert len(accepted) == 1
    accepted[0].close()
    client.close()


def test_worker_stop_without_client(listen_socket):
    accepted = []
    worker = ServerWorker(listen_socket, accepted.append)
    worker.start()
    worker.stop()
    worker.join(5)
    assert not worker.is_alive()
    assert accepted == []
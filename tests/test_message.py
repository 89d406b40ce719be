import socket
import threading

import pytest

from vsmt.message import DISCONNECT_MESSAGE, Message, receive_message


@pytest.fixture
def pair():
    left, right = socket.socketpair()
    left.settimeout(5)
    right.settimeout(5)
    yield left, right
    left.close()
    right.close()


def test_padded_empty_message_header_and_size():
    encoded = Message.padded(b"").encode()
    assert encoded[:4] == b"\x00\x00\x04\x00"
    assert len(encoded) == Message.HEADER_SIZE + Message.MAX_SIZE


def test_disconnect_message_encoding():
    assert DISCONNECT_MESSAGE.encode() == b"\x00\x00\x00\x00"
    assert DISCONNECT_MESSAGE.is_disconnect()


def test_padded_short_payload_is_zero_filled():
    msg = Message.padded(b"abc")
    assert msg.data.startswith(b"abc")
    assert set(msg.data[3:]) == {0}
    assert len(msg.data) == Message.MAX_SIZE
    assert not msg.is_disconnect()


def test_padded_long_payload_is_kept_whole():
    payload = b"x" * (Message.MAX_SIZE * 2)
    assert Message.padded(payload).data == payload


def test_round_trip_over_socket(pair):
    left, right = pair
    Message(b"hello").send(left)
    assert receive_message(right) == Message(b"hello")


def test_receive_disconnect(pair):
    left, right = pair
    DISCONNECT_MESSAGE.send(left)
    assert receive_message(right).is_disconnect()


def test_receive_on_closed_peer_raises_eof(pair):
    left, right = pair
    left.close()
    with pytest.raises(EOFError):
        receive_message(right)


def test_partial_header_yields_none(pair):
    left, right = pair
    left.sendall(b"\x00\x00")
    left.close()
    assert receive_message(right) is None


def test_short_body_yields_none(pair):
    left, right = pair
    left.sendall(Message(b"0123456789").encode()[:7])
    left.close()
    assert receive_message(right) is None


def test_large_message_round_trip(pair):
    left, right = pair
    payload = bytes(range(256)) * 800
    sender = threading.Thread(target=Message(payload).send, args=(left,))
    sender.start()
    received = receive_message(right)
    sender.join(5)
    assert received.data == payload
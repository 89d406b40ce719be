"""Virtual machine system monitoring over vsock: metrics, wire format, guest agent and dispatchers."""

__version__ = "0.1.0"
"""Platform detection, vsock addresses and client configuration."""

from __future__ import annotations

import enum
import sys
from dataclasses import dataclass
from typing import ClassVar

_UINT32_MAX = 0xFFFFFFFF

PORT_ANY = _UINT32_MAX
"""Port value that binds to any port."""


class Platform(enum.IntEnum):
    """Operating systems the monitor knows how to inspect."""

    LINUX = 1
    QNX = 2


def current_platform() -> Platform:
    """The platform this interpreter runs on.

    Raises OSError on a platform that is neither Linux nor QNX.
    """
    name = sys.platform.lower()
    if name.startswith("qnx"):
        return Platform.QNX
    if name.startswith("linux"):
        return Platform.LINUX
    raise OSError(f"Unknown platform: {sys.platform}")


class Cid(enum.IntEnum):
    """Well-known vsock context identifiers."""

    ANY = _UINT32_MAX
    HYPERVISOR = 0
    RESERVED = 1
    HOST = 2


@dataclass(frozen=True)
class Address:
    """A vsock endpoint: context id and port, both unsigned 32-bit."""

    cid: int
    port: int

    def __post_init__(self) -> None:
        for label, value in (("cid", self.cid), ("port", self.port)):
            if not 0 <= int(value) <= _UINT32_MAX:
                raise ValueError(f"{label} out of range: {value}")


@dataclass(frozen=True)
class ClientConfiguration:
    """Identity and address of a monitored client."""

    HOST_ID: ClassVar[int] = 0

    id: int
    name: str
    address: Address

    def is_host(self) -> bool:
        """True for the configuration that describes the host itself."""
        return self.id == self.HOST_ID
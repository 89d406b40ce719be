"""Data describing a monitored system and its runtime state."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Union

from vsmt.util import average, percent_of


@dataclass
class CpuInfo:
    """Processor model, core count and clock speed."""

    model: str = ""
    cores: int = 0
    speed: str = ""


@dataclass
class SystemInfo:
    """Static information about the operating system."""

    cpu_info: CpuInfo = field(default_factory=CpuInfo)
    platform: str = ""
    distribution: str = ""


@dataclass
class MemoryInfo:
    """Memory totals in kilobytes."""

    total: int = 0
    used: int = 0

    def used_percent(self) -> float:
        return percent_of(self.used, self.total)


@dataclass
class StorageInfo:
    """A mounted storage device, sizes in megabytes."""

    name: str = ""
    file_system_type: str = ""
    device: str = ""
    mbytes_total: int = 0
    mbytes_free: int = 0

    def mbytes_used(self) -> int:
        return self.mbytes_total - self.mbytes_free

    def used_percent(self) -> float:
        return percent_of(self.mbytes_used(), self.mbytes_total)


class ProcessStatus(enum.IntEnum):
    RUNNING = 0
    SLEEPING = 1
    WAITING = 2
    ZOMBIE = 3
    STOPPED = 4
    DEAD = 5
    IDLE = 6
    UNKNOWN = 7


_STATUS_LABELS = {
    ProcessStatus.RUNNING: "Running",
    ProcessStatus.SLEEPING: "Sleeping",
    ProcessStatus.WAITING: "Waiting",
    ProcessStatus.ZOMBIE: "Zombie",
    ProcessStatus.STOPPED: "Stopped",
    ProcessStatus.DEAD: "Dead",
    ProcessStatus.IDLE: "Idle",
    ProcessStatus.UNKNOWN: "Unknown",
}

_STATUS_CODES = {
    "R": ProcessStatus.RUNNING,
    "S": ProcessStatus.SLEEPING,
    "D": ProcessStatus.WAITING,
    "Z": ProcessStatus.ZOMBIE,
    "T": ProcessStatus.STOPPED,
    "X": ProcessStatus.DEAD,
    "I": ProcessStatus.IDLE,
}


def parse_status(text: str) -> ProcessStatus:
    """Status from a ps-style state string, judged by its first character."""
    if not text:
        return ProcessStatus.UNKNOWN
    return _STATUS_CODES.get(text[0], ProcessStatus.UNKNOWN)


@dataclass
class ProcessInfo:
    """A single running process."""

    pid: int = 0
    status: ProcessStatus = ProcessStatus.UNKNOWN
    processor_usage: float = 0.0
    memory_percent: float = 0.0
    executable: str = ""
    args: str = ""

    def status_to_str(self) -> str:
        return _STATUS_LABELS[self.status]


@dataclass
class CanBusDeviceInfo:
    """A CAN bus interface plugin."""

    name: str = ""
    plugin: str = ""
    serial_number: str = ""
    channel: int = 0
    is_virtual: bool = False


class InterfaceType(enum.IntEnum):
    UNKNOWN = 0
    LOOPBACK = 1
    VIRTUAL = 2
    ETHERNET = 3
    SLIP = 4
    CAN_BUS = 5
    PPP = 6
    FDDI = 7
    WIFI = 8
    IEEE80211 = 8
    PHONET = 9
    IEEE802154 = 10
    SIX_LOWPAN = 11
    IEEE80216 = 12
    IEEE1394 = 13


_INTERFACE_LABELS = {
    InterfaceType.LOOPBACK: "Loopback",
    InterfaceType.VIRTUAL: "Virtual",
    InterfaceType.ETHERNET: "Ethernet",
    InterfaceType.WIFI: "Wifi",
    InterfaceType.CAN_BUS: "CanBus",
    InterfaceType.FDDI: "Fiber Distributed Data Interface",
    InterfaceType.PPP: "Point-to-Point Protocol",
    InterfaceType.SLIP: "Serial Line Internet Protocol",
    InterfaceType.PHONET: "Linux Phone socket family",
    InterfaceType.IEEE802154: "Personal Area Network interface",
    InterfaceType.IEEE80216: "WiWire",
    InterfaceType.IEEE1394: "FireWire",
}


@dataclass
class NetworkInterfaceInfo:
    """Traffic seen on one network interface since the last sample."""

    name: str = ""
    type: InterfaceType = InterfaceType.UNKNOWN
    rx_bytes: int = 0
    tx_bytes: int = 0

    def type_as_str(self) -> str:
        return _INTERFACE_LABELS.get(self.type, "Unknown")


@dataclass
class RuntimeMetric:
    """State of the operating system at one moment."""

    core_loads: list[float] = field(default_factory=list)
    memory: MemoryInfo = field(default_factory=MemoryInfo)
    processes: list[ProcessInfo] = field(default_factory=list)
    storage_info: list[StorageInfo] = field(default_factory=list)
    can_bus_dev_info: list[CanBusDeviceInfo] = field(default_factory=list)
    network_info: list[NetworkInterfaceInfo] = field(default_factory=list)

    def overall_cpu_load(self) -> float:
        return average(self.core_loads)

    def overall_storage_load(self) -> float:
        total = sum(disk.mbytes_total for disk in self.storage_info)
        used = sum(disk.mbytes_used() for disk in self.storage_info)
        return percent_of(used, total)


class MetricType(enum.IntEnum):
    SYSTEM_INFO_REQUEST = 0
    RUNTIME_METRIC_REQUEST = 1
    CORRUPT = 2


MetricData = Union[RuntimeMetric, SystemInfo, None]


@dataclass
class Metric:
    """A runtime metric or system info tagged with an id; ``None`` data is corrupt."""

    data: MetricData
    id: int = 0

    @property
    def type(self) -> MetricType:
        if isinstance(self.data, RuntimeMetric):
            return MetricType.RUNTIME_METRIC_REQUEST
        if isinstance(self.data, SystemInfo):
            return MetricType.SYSTEM_INFO_REQUEST
        return MetricType.CORRUPT

    def valid(self) -> bool:
        return self.type is not MetricType.CORRUPT

    def as_runtime_metric(self) -> RuntimeMetric:
        if not isinstance(self.data, RuntimeMetric):
            raise TypeError(f"metric holds {self.type.name}, not a runtime metric")
        return self.data

    def as_system_info(self) -> SystemInfo:
        if not isinstance(self.data, SystemInfo):
            raise TypeError(f"metric holds {self.type.name}, not system info")
        return self.data
"""Binary encoding of metrics in a big-endian, length-prefixed wire format."""

from __future__ import annotations

import struct
from collections.abc import Callable, Sequence
from typing import TypeVar

from vsmt.metrics import (
    CanBusDeviceInfo,
    CpuInfo,
    InterfaceType,
    MemoryInfo,
    Metric,
    MetricType,
    NetworkInterfaceInfo,
    ProcessInfo,
    ProcessStatus,
    RuntimeMetric,
    StorageInfo,
    SystemInfo,
)

T = TypeVar("T")

_NULL_STRING = 0xFFFFFFFF
_MAX_LIST = 0xFFFF


class StreamWriter:
    """Accumulates big-endian encoded values."""

    def __init__(self) -> None:
        self._buffer = bytearray()

    def _pack(self, fmt: str, value) -> None:
        try:
            self._buffer += struct.pack(fmt, value)
        except struct.error as exc:
            raise ValueError(f"cannot encode {value!r}: {exc}") from exc

    def write_uint8(self, value: int) -> None:
        self._pack(">B", value)

    def write_uint16(self, value: int) -> None:
        self._pack(">H", value)

    def write_uint32(self, value: int) -> None:
        self._pack(">I", value)

    def write_int32(self, value: int) -> None:
        self._pack(">i", value)

    def write_int64(self, value: int) -> None:
        self._pack(">q", value)

    def write_double(self, value: float) -> None:
        self._pack(">d", value)

    def write_bool(self, value: bool) -> None:
        self._pack(">?", bool(value))

    def write_string(self, value: str) -> None:
        encoded = value.encode("utf-16-be")
        self.write_uint32(len(encoded))
        self._buffer += encoded

    def getvalue(self) -> bytes:
        return bytes(self._buffer)


class StreamReader:
    """Reads big-endian encoded values; raises ValueError on truncated input."""

    def __init__(self, data: bytes) -> None:
        self._data = bytes(data)
        self._offset = 0

    def _take(self, size: int) -> bytes:
        end = self._offset + size
        if end > len(self._data):
            raise ValueError("truncated stream")
        chunk = self._data[self._offset:end]
        self._offset = end
        return chunk

    def _unpack(self, fmt: str):
        return struct.unpack(fmt, self._take(struct.calcsize(fmt)))[0]

    def read_uint8(self) -> int:
        return self._unpack(">B")

    def read_uint16(self) -> int:
        return self._unpack(">H")

    def read_uint32(self) -> int:
        return self._unpack(">I")

    def read_int32(self) -> int:
        return self._unpack(">i")

    def read_int64(self) -> int:
        return self._unpack(">q")

    def read_double(self) -> float:
        return self._unpack(">d")

    def read_bool(self) -> bool:
        return self._unpack(">?")

    def read_string(self) -> str:
        length = self.read_uint32()
        if length == _NULL_STRING:
            return ""
        if length % 2:
            raise ValueError("odd string byte length")
        return self._take(length).decode("utf-16-be")


def _write_list(writer: StreamWriter, items: Sequence[T], write_item: Callable[[StreamWriter, T], None]) -> None:
    if len(items) > _MAX_LIST:
        raise ValueError(f"list too long to encode: {len(items)}")
    writer.write_uint16(len(items))
    for item in items:
        write_item(writer, item)


def _read_list(reader: StreamReader, read_item: Callable[[StreamReader], T]) -> list[T]:
    return [read_item(reader) for _ in range(reader.read_uint16())]


def _write_cpu_info(writer: StreamWriter, info: CpuInfo) -> None:
    writer.write_string(info.model)
    writer.write_uint8(info.cores)
    writer.write_string(info.speed)


def _read_cpu_info(reader: StreamReader) -> CpuInfo:
    model = reader.read_string()
    cores = reader.read_uint8()
    return CpuInfo(model=model, cores=cores, speed=reader.read_string())


def write_system_info(writer: StreamWriter, info: SystemInfo) -> None:
    _write_cpu_info(writer, info.cpu_info)
    writer.write_string(info.platform)
    writer.write_string(info.distribution)


def read_system_info(reader: StreamReader) -> SystemInfo:
    cpu = _read_cpu_info(reader)
    platform = reader.read_string()
    return SystemInfo(cpu_info=cpu, platform=platform, distribution=reader.read_string())


def _write_process(writer: StreamWriter, proc: ProcessInfo) -> None:
    writer.write_uint16(proc.pid)
    writer.write_int32(proc.status)
    writer.write_double(proc.processor_usage)
    writer.write_double(proc.memory_percent)
    writer.write_string(proc.executable)
    writer.write_string(proc.args)


def _read_process(reader: StreamReader) -> ProcessInfo:
    pid = reader.read_uint16()
    raw_status = reader.read_int32()
    status = ProcessStatus(raw_status) if raw_status in ProcessStatus._value2member_map_ else ProcessStatus.UNKNOWN
    return ProcessInfo(
        pid=pid,
        status=status,
        processor_usage=reader.read_double(),
        memory_percent=reader.read_double(),
        executable=reader.read_string(),
        args=reader.read_string(),
    )


def _write_storage(writer: StreamWriter, disk: StorageInfo) -> None:
    writer.write_string(disk.name)
    writer.write_string(disk.file_system_type)
    writer.write_string(disk.device)
    writer.write_int64(disk.mbytes_total)
    writer.write_int64(disk.mbytes_free)


def _read_storage(reader: StreamReader) -> StorageInfo:
    return StorageInfo(
        name=reader.read_string(),
        file_system_type=reader.read_string(),
        device=reader.read_string(),
        mbytes_total=reader.read_int64(),
        mbytes_free=reader.read_int64(),
    )


def _write_can_device(writer: StreamWriter, dev: CanBusDeviceInfo) -> None:
    writer.write_string(dev.name)
    writer.write_string(dev.plugin)
    writer.write_string(dev.serial_number)
    writer.write_int32(dev.channel)
    writer.write_bool(dev.is_virtual)


def _read_can_device(reader: StreamReader) -> CanBusDeviceInfo:
    return CanBusDeviceInfo(
        name=reader.read_string(),
        plugin=reader.read_string(),
        serial_number=reader.read_string(),
        channel=reader.read_int32(),
        is_virtual=reader.read_bool(),
    )


def _write_interface(writer: StreamWriter, iface: NetworkInterfaceInfo) -> None:
    writer.write_string(iface.name)
    writer.write_int32(iface.type)
    writer.write_int64(iface.rx_bytes)
    writer.write_int64(iface.tx_bytes)


def _read_interface(reader: StreamReader) -> NetworkInterfaceInfo:
    name = reader.read_string()
    raw_type = reader.read_int32()
    kind = InterfaceType(raw_type) if raw_type in InterfaceType._value2member_map_ else InterfaceType.UNKNOWN
    return NetworkInterfaceInfo(name=name, type=kind, rx_bytes=reader.read_int64(), tx_bytes=reader.read_int64())


def write_runtime_metric(writer: StreamWriter, metric: RuntimeMetric) -> None:
    _write_list(writer, metric.core_loads, StreamWriter.write_double)
    writer.write_uint32(metric.memory.total)
    writer.write_uint32(metric.memory.used)
    _write_list(writer, metric.processes, _write_process)
    _write_list(writer, metric.storage_info, _write_storage)
    _write_list(writer, metric.can_bus_dev_info, _write_can_device)
    _write_list(writer, metric.network_info, _write_interface)


def read_runtime_metric(reader: StreamReader) -> RuntimeMetric:
    core_loads = _read_list(reader, StreamReader.read_double)
    memory = MemoryInfo(total=reader.read_uint32(), used=reader.read_uint32())
    return RuntimeMetric(
        core_loads=core_loads,
        memory=memory,
        processes=_read_list(reader, _read_process),
        storage_info=_read_list(reader, _read_storage),
        can_bus_dev_info=_read_list(reader, _read_can_device),
        network_info=_read_list(reader, _read_interface),
    )


def serialize(metric: Metric) -> bytes:
    """Encode a metric: id, type tag, then the payload for that type."""
    writer = StreamWriter()
    writer.write_uint8(metric.id)
    writer.write_int32(metric.type)
    if metric.type is MetricType.RUNTIME_METRIC_REQUEST:
        write_runtime_metric(writer, metric.as_runtime_metric())
    elif metric.type is MetricType.SYSTEM_INFO_REQUEST:
        write_system_info(writer, metric.as_system_info())
    return writer.getvalue()


def deserialize(data: bytes) -> Metric:
    """Decode a metric; an unknown type tag yields a corrupt (invalid) metric."""
    reader = StreamReader(data)
    metric_id = reader.read_uint8()
    kind = reader.read_int32()
    if kind == MetricType.RUNTIME_METRIC_REQUEST:
        return Metric(read_runtime_metric(reader), metric_id)
    if kind == MetricType.SYSTEM_INFO_REQUEST:
        return Metric(read_system_info(reader), metric_id)
    return Metric(None, metric_id)
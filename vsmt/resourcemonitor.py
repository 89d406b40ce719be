"""Gathering of system information and runtime metrics from the running OS."""

from __future__ import annotations

import copy
import itertools
import logging
import os
import platform as _platform
import re
import socket
from collections.abc import Callable
from pathlib import Path

from vsmt.config import Platform, current_platform
from vsmt.metrics import (
    CanBusDeviceInfo,
    CpuInfo,
    InterfaceType,
    MemoryInfo,
    NetworkInterfaceInfo,
    ProcessInfo,
    RuntimeMetric,
    StorageInfo,
    SystemInfo,
    parse_status,
)
from vsmt.sysfileparser import SysFileParser
from vsmt.util import byte_to_mb, percent_of

log = logging.getLogger(__name__)

_UINT32_MASK = 0xFFFFFFFF
_INT_RE = re.compile(r"\s*([+-]?\d+)\s*")
_CORE_FIELDS = 9
_PSEUDO_MOUNT_PREFIXES = ("/dev", "/proc", "/sys", "/var/run", "/var/lock")

InterfaceLister = Callable[[], "list[tuple[str, InterfaceType]]"]

_ARPHRD_TYPES = {
    1: InterfaceType.ETHERNET,
    24: InterfaceType.IEEE1394,
    256: InterfaceType.SLIP,
    280: InterfaceType.CAN_BUS,
    512: InterfaceType.PPP,
    768: InterfaceType.VIRTUAL,
    769: InterfaceType.VIRTUAL,
    772: InterfaceType.LOOPBACK,
    774: InterfaceType.FDDI,
    776: InterfaceType.VIRTUAL,
    778: InterfaceType.VIRTUAL,
    801: InterfaceType.IEEE80211,
    804: InterfaceType.IEEE802154,
    820: InterfaceType.PHONET,
    821: InterfaceType.PHONET,
    825: InterfaceType.SIX_LOWPAN,
    0xFFFE: InterfaceType.VIRTUAL,
}


class InvalidPlatformError(Exception):
    """Raised when no resource monitor exists for the requested platform."""


def _to_int(text: str | bytes, *, signed: bool = True) -> int:
    """Whole-string 32-bit integer conversion; 0 when it fails or overflows."""
    if isinstance(text, bytes):
        text = text.decode("ascii", errors="replace")
    match = _INT_RE.fullmatch(text)
    if not match:
        return 0
    value = int(match.group(1))
    low, high = (-(2**31), 2**31 - 1) if signed else (0, _UINT32_MASK)
    return value if low <= value <= high else 0


def _to_double(text: str) -> float:
    if "_" in text:
        return 0.0
    try:
        return float(text)
    except ValueError:
        return 0.0


def _qt_left(text: str, count: int) -> str:
    return text if count < 0 or count >= len(text) else text[:count]


def _qt_right(text: str, count: int) -> str:
    if count < 0 or count >= len(text):
        return text
    return text[len(text) - count:]


def _first(values: list[str] | None, default: str) -> str:
    return values[0] if values else default


def parse_cpu_info(parser: SysFileParser) -> CpuInfo:
    """Model, speed and core count from a /proc/cpuinfo parser."""
    full = " ".join(parser.value_at("model name") or ["Not Available@Not Available"])
    at = full.rfind("@")
    model = _qt_left(full, at - 1)
    speed = _qt_right(full, len(full) - at - 2)
    cores = (_to_int(_first(parser.value_at("processor"), "0")) + 1) & 0xFF
    return CpuInfo(model=model, cores=cores, speed=speed)


def parse_memory_info(parser: SysFileParser) -> MemoryInfo:
    """Total and used memory in kilobytes from a /proc/meminfo parser."""
    total = _to_int(_first(parser.value_at("MemTotal"), "100")) & _UINT32_MASK
    available = _to_int(_first(parser.value_at("MemAvailable"), "0"))
    return MemoryInfo(total=total, used=(total - available) & _UINT32_MASK)


def parse_net_dev(text: str) -> dict[str, tuple[int, int]]:
    """Received and transmitted byte counters per interface from /proc/net/dev."""
    loads: dict[str, tuple[int, int]] = {}
    for raw in text.split("\n")[2:]:
        parts = raw.strip().split(":")
        if len(parts) < 2:
            continue
        values = [value for value in parts[1].strip().split(" ") if value]
        if len(values) < 16:
            continue
        loads[parts[0].strip()] = (_to_int(values[0]), _to_int(values[8]))
    return loads


def parse_ps_row(line: str) -> ProcessInfo:
    """A process from a ``pid state pcpu pmem comm args`` row.

    Only the first word of the argument column is kept.
    """
    parts = [part for part in line.split(" ") if part]
    if len(parts) < 6:
        raise ValueError(f"malformed process row: {line!r}")
    return ProcessInfo(
        pid=_to_int(parts[0], signed=False) & 0xFFFF,
        status=parse_status(parts[1]),
        processor_usage=_to_double(parts[2]),
        memory_percent=_to_double(parts[3]),
        executable=parts[4],
        args=parts[5],
    )


def _system_interfaces() -> list[tuple[str, InterfaceType]]:
    try:
        names = [name for _, name in socket.if_nameindex()]
    except (OSError, AttributeError):
        return []
    found = []
    for name in names:
        try:
            code = int(Path("/sys/class/net", name, "type").read_text().strip())
        except (OSError, ValueError):
            code = -1
        found.append((name, _ARPHRD_TYPES.get(code, InterfaceType.UNKNOWN)))
    return found


class CpuMonitor:
    """Per-core load computed from successive /proc/stat samples."""

    def __init__(self, info: CpuInfo, stat_path: str | os.PathLike[str] = "/proc/stat") -> None:
        self.info = info
        self._stat_path = Path(stat_path)
        self._prev_idle = [0] * info.cores
        self._prev_total = [0] * info.cores

    def gather_core_loads(self) -> list[float]:
        """Load percentage of each core since the previous call."""
        try:
            lines = self._stat_path.read_bytes().split(b"\n")
        except OSError:
            log.debug("cannot open %s", self._stat_path)
            return []
        # The first line holds the sum over all cores.
        core_lines = itertools.chain(lines[1:], itertools.repeat(b""))
        data = [0] * _CORE_FIELDS
        loads = []
        for core, line in zip(range(self.info.cores), core_lines):
            values = [_to_int(part, signed=False) for part in line.split(b" ")[1:]]
            values = values[:_CORE_FIELDS]
            data[: len(values)] = values
            loads.append(self._load_for_core(data, core))
        return loads

    def _load_for_core(self, data: list[int], core: int) -> float:
        idle = (data[3] + data[4]) & _UINT32_MASK
        total = sum(data) & _UINT32_MASK
        idle_delta = (idle - self._prev_idle[core]) & _UINT32_MASK
        total_delta = (total - self._prev_total[core]) & _UINT32_MASK
        self._prev_idle[core] = idle
        self._prev_total[core] = total
        if total_delta == 0:
            return 0.0
        return percent_of((total_delta - idle_delta) & _UINT32_MASK, total_delta)


class NetworkMonitor:
    """Traffic per interface between successive samples of /proc/net/dev."""

    def __init__(
        self,
        net_dev_path: str | os.PathLike[str] = "/proc/net/dev",
        interfaces: InterfaceLister | None = None,
    ) -> None:
        self._net_dev_path = Path(net_dev_path)
        self._interfaces = interfaces or _system_interfaces
        self._current: dict[str, tuple[int, int]] = {}
        self._previous: dict[str, tuple[int, int]] = {}

    def gather_info(self) -> list[NetworkInterfaceInfo]:
        """Bytes received and sent on every interface since the last call."""
        self._update_current_loads()
        infos = []
        for name, kind in self._interfaces():
            prev = self._previous.get(name, (0, 0))
            current = self._current.get(name, prev)
            infos.append(
                NetworkInterfaceInfo(
                    name=name,
                    type=kind,
                    rx_bytes=current[0] - prev[0],
                    tx_bytes=current[1] - prev[1],
                )
            )
        return infos

    def _update_current_loads(self) -> None:
        self._previous = self._current
        self._current = {}
        try:
            text = self._net_dev_path.read_text(encoding="utf-8", errors="replace")
        except OSError:
            log.debug("cannot open %s", self._net_dev_path)
            return
        self._current = parse_net_dev(text)


def _unescape_mount(field: str) -> str:
    return re.sub(r"\\([0-7]{3})", lambda m: chr(int(m.group(1), 8)), field)


def _cpu_architecture() -> str:
    machine = _platform.machine().lower()
    if machine in ("aarch64", "arm64"):
        return "arm64"
    if machine.startswith("arm"):
        return "arm"
    if re.fullmatch(r"i[3-6]86", machine):
        return "i386"
    if machine in ("amd64", "x86_64"):
        return "x86_64"
    return machine


def _pretty_product_name() -> str:
    try:
        return _platform.freedesktop_os_release()["PRETTY_NAME"]
    except (OSError, KeyError, AttributeError):
        return f"{_platform.system()} {_platform.release()}".strip()


class _BaseResourceMonitor:
    """Shared gathering logic; subclasses decide what the platform supports."""

    def __init__(
        self,
        proc_root: str | os.PathLike[str] = "/proc",
        interfaces: InterfaceLister | None = None,
    ) -> None:
        self._proc = Path(proc_root)
        self._sys_info_cache: SystemInfo | None = None
        self._cpu_monitor = CpuMonitor(self._gather_processor_info(), self._proc / "stat")
        self._network_monitor = NetworkMonitor(self._proc / "net" / "dev", interfaces)

    def _collect_sys_info(self) -> SystemInfo:
        if self._sys_info_cache is None:
            self._sys_info_cache = SystemInfo(
                cpu_info=copy.copy(self._cpu_monitor.info),
                platform=f"{_platform.system().lower()} {_cpu_architecture()}",
                distribution=_pretty_product_name(),
            )
        return copy.deepcopy(self._sys_info_cache)

    def _collect_runtime_metric(self) -> RuntimeMetric:
        return RuntimeMetric(
            core_loads=self._cpu_monitor.gather_core_loads(),
            memory=self._gather_memory_info(),
            processes=self._gather_process_info(),
            storage_info=self._gather_storage_info(),
            can_bus_dev_info=self._gather_can_dev_info(),
            network_info=self._network_monitor.gather_info(),
        )

    def _gather_processor_info(self) -> CpuInfo:
        return CpuInfo()

    def _gather_memory_info(self) -> MemoryInfo:
        return MemoryInfo()

    def _gather_process_info(self) -> list[ProcessInfo]:
        return []

    def _include_volume(self, mount_point: str) -> bool:
        return True

    def _gather_can_dev_info(self) -> list[CanBusDeviceInfo]:
        return []

    def _gather_storage_info(self) -> list[StorageInfo]:
        try:
            text = (self._proc / "mounts").read_text(encoding="utf-8", errors="replace")
        except OSError:
            log.debug("cannot read mounted volumes")
            return []
        infos = []
        for line in text.split("\n"):
            fields = line.split()
            if len(fields) < 4:
                continue
            device, mount_point, fs_type = (_unescape_mount(f) for f in fields[:3])
            if fs_type == "rootfs" or mount_point.startswith(_PSEUDO_MOUNT_PREFIXES):
                continue
            if not self._include_volume(mount_point) or "ro" in fields[3].split(","):
                continue
            try:
                stats = os.statvfs(mount_point)
            except OSError:
                continue
            infos.append(
                StorageInfo(
                    name=mount_point,
                    file_system_type=fs_type,
                    device=device,
                    mbytes_total=byte_to_mb(stats.f_blocks * stats.f_frsize),
                    mbytes_free=byte_to_mb(stats.f_bavail * stats.f_frsize),
                )
            )
        return infos


def _sysconf(name: str, fallback: int) -> int:
    try:
        value = os.sysconf(name)
    except (ValueError, OSError, AttributeError):
        return fallback
    return value if value > 0 else fallback


class LinuxResourceMonitor(_BaseResourceMonitor):
    """Resource monitor reading the Linux /proc filesystem."""

    def gather_sys_info(self) -> SystemInfo:
        """Static system description; computed once, returned as a fresh copy."""
        return self._collect_sys_info()

    def gather_runtime_metric(self) -> RuntimeMetric:
        """A snapshot of CPU, memory, processes, storage and network state."""
        return self._collect_runtime_metric()

    def _gather_processor_info(self) -> CpuInfo:
        try:
            return parse_cpu_info(SysFileParser(self._proc / "cpuinfo"))
        except FileNotFoundError as exc:
            log.debug("File not found: %s", exc.filename)
            return CpuInfo()

    def _gather_memory_info(self) -> MemoryInfo:
        try:
            return parse_memory_info(SysFileParser(self._proc / "meminfo"))
        except FileNotFoundError as exc:
            log.debug("File not found: %s", exc.filename)
            return MemoryInfo()

    def _include_volume(self, mount_point: str) -> bool:
        return True

    def _gather_process_info(self) -> list[ProcessInfo]:
        try:
            pids = sorted(int(entry.name) for entry in self._proc.iterdir() if entry.name.isdigit())
        except OSError:
            log.debug("cannot list processes")
            return []
        try:
            uptime = float((self._proc / "uptime").read_text().split()[0])
        except (OSError, ValueError, IndexError):
            uptime = 0.0
        hertz = _sysconf("SC_CLK_TCK", 100)
        page_size = _sysconf("SC_PAGE_SIZE", 4096)
        mem_total = self._gather_memory_info().total
        infos = []
        for pid in pids:
            info = self._read_process(pid, uptime, hertz, page_size, mem_total)
            if info is not None:
                infos.append(info)
        return infos

    def _read_process(
        self, pid: int, uptime: float, hertz: int, page_size: int, mem_total: int
    ) -> ProcessInfo | None:
        pid_dir = self._proc / str(pid)
        try:
            stat = (pid_dir / "stat").read_text(encoding="utf-8", errors="replace")
        except OSError:
            return None
        head, _, tail = stat.rpartition(")")
        comm = head.partition("(")[2]
        fields = tail.split()
        if len(fields) < 22:
            return None
        try:
            cmdline = (pid_dir / "cmdline").read_bytes()
        except OSError:
            cmdline = b""
        argv = [arg.decode("utf-8", errors="replace") for arg in cmdline.split(b"\0") if arg]
        command = " ".join(argv) or f"[{comm}]"
        args = (command.split() or [command])[0]

        cpu_ticks = _to_int(fields[11], signed=False) + _to_int(fields[12], signed=False)
        elapsed = uptime - int(fields[19]) / hertz if fields[19].isdigit() else 0.0
        pcpu = round(cpu_ticks / hertz * 100 / elapsed, 1) if elapsed > 0 else 0.0
        rss_kb = max(_to_int(fields[21]), 0) * page_size / 1024
        pmem = round(rss_kb * 100 / mem_total, 1) if mem_total else 0.0
        return ProcessInfo(
            pid=pid & 0xFFFF,
            status=parse_status(fields[0]),
            processor_usage=pcpu,
            memory_percent=pmem,
            executable=comm,
            args=args,
        )


class QnxResourceMonitor(_BaseResourceMonitor):
    """Resource monitor for QNX: CPU, memory and process details are not gathered."""

    def gather_sys_info(self) -> SystemInfo:
        """Static system description; computed once, returned as a fresh copy."""
        return self._collect_sys_info()

    def gather_runtime_metric(self) -> RuntimeMetric:
        """A snapshot of CPU, memory, processes, storage and network state."""
        return self._collect_runtime_metric()

    def _include_volume(self, mount_point: str) -> bool:
        return mount_point == "/"


def create_monitor(platform: Platform | None = None) -> _BaseResourceMonitor:
    """The resource monitor for ``platform`` (the current one by default)."""
    if platform is None:
        platform = current_platform()
    if platform == Platform.LINUX:
        return LinuxResourceMonitor()
    if platform == Platform.QNX:
        return QnxResourceMonitor()
    raise InvalidPlatformError(f"no resource monitor for platform {platform!r}")
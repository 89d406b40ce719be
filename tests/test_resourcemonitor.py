import pytest

from vsmt.config import Platform
from vsmt.metrics import InterfaceType, MemoryInfo, ProcessStatus
from vsmt.resourcemonitor import (
    CpuMonitor,
    InvalidPlatformError,
    LinuxResourceMonitor,
    NetworkMonitor,
    QnxResourceMonitor,
    create_monitor,
    parse_cpu_info,
    parse_memory_info,
    parse_net_dev,
    parse_ps_row,
)
from vsmt.metrics import CpuInfo
from vsmt.sysfileparser import SysFileParser

CPUINFO = (
    "processor\t: 0\n"
    "model name\t: Intel(R) Core(TM) i7 CPU @ 2.80GHz\n"
    "processor\t: 1\n"
    "processor\t: 2\n"
    "processor\t: 3\n"
)

NET_HEADER = (
    "Inter-|   Receive                                                |  Transmit\n"
    " face |bytes    packets errs drop fifo frame compressed multicast|bytes    packets\n"
)


def _net_line(name, rx, tx):
    fields = [rx, 10, 0, 0, 0, 0, 0, 0, tx, 20, 0, 0, 0, 0, 0, 0]
    return f"  {name}: " + " ".join(str(f) for f in fields) + "\n"


def _escape(path):
    return str(path).replace(" ", "\\040")


def test_parse_cpu_info_model_speed_and_cores():
    info = parse_cpu_info(SysFileParser.from_text(CPUINFO))
    assert info.model == "Intel(R) Core(TM) i7 CPU"
    assert info.speed == "2.80GHz"
    assert info.cores == 4


def test_parse_cpu_info_defaults_to_one_core():
    assert parse_cpu_info(SysFileParser.from_text("")).cores == 1


def test_parse_memory_info_used_is_total_minus_available():
    parser = SysFileParser.from_text("MemTotal: 16000 kB\nMemAvailable: 6000 kB\n")
    info = parse_memory_info(parser)
    assert info.total == 16000
    assert info.used + 6000 == info.total


def test_parse_memory_info_defaults():
    info = parse_memory_info(SysFileParser.from_text(""))
    assert info.total == 100
    assert info.used == info.total


def test_parse_net_dev_skips_headers_and_short_lines():
    text = NET_HEADER + _net_line("eth0", 1000, 2000) + "  bad: 1 2 3\n"
    assert parse_net_dev(text) == {"eth0": (1000, 2000)}


def test_parse_ps_row_keeps_first_argument_word():
    info = parse_ps_row("  123 S  0.5  1.2 bash /bin/bash -l")
    assert info.pid == 123
    assert info.status is ProcessStatus.SLEEPING
    assert info.processor_usage == 0.5
    assert info.memory_percent == 1.2
    assert info.executable == "bash"
    assert info.args == "/bin/bash"


def test_parse_ps_row_rejects_short_rows():
    with pytest.raises(ValueError):
        parse_ps_row("123 S 0.5")


def test_cpu_monitor_loads_between_samples(tmp_path):
    stat = tmp_path / "stat"
    stat.write_text("cpu  10 0 10 80 0 0 0 0 0\ncpu0 10 0 10 80 0 0 0 0 0\n")
    monitor = CpuMonitor(CpuInfo(cores=1), stat)
    first = monitor.gather_core_loads()
    assert first == [20.0]
    stat.write_text("cpu  20 0 20 160 0 0 0 0 0\ncpu0 20 0 20 160 0 0 0 0 0\n")
    assert monitor.gather_core_loads() == first
    assert monitor.gather_core_loads() == [0.0]


def test_cpu_monitor_missing_stat_file(tmp_path):
    monitor = CpuMonitor(CpuInfo(cores=2), tmp_path / "missing")
    assert monitor.gather_core_loads() == []


def test_network_monitor_reports_deltas(tmp_path):
    net_dev = tmp_path / "dev"
    net_dev.write_text(NET_HEADER + _net_line("eth0", 1000, 2000))
    listing = [("eth0", InterfaceType.ETHERNET), ("wlan0", InterfaceType.WIFI)]
    monitor = NetworkMonitor(net_dev, lambda: listing)

    first = monitor.gather_info()
    assert [(i.name, i.type) for i in first] == listing
    assert (first[0].rx_bytes, first[0].tx_bytes) == (1000, 2000)
    assert (first[1].rx_bytes, first[1].tx_bytes) == (0, 0)

    net_dev.write_text(NET_HEADER + _net_line("eth0", 1500, 2600))
    second = monitor.gather_info()
    assert (second[0].rx_bytes, second[0].tx_bytes) == (1500 - 1000, 2600 - 2000)

    net_dev.unlink()
    assert [(i.rx_bytes, i.tx_bytes) for i in monitor.gather_info()] == [(0, 0), (0, 0)]


@pytest.fixture
def fake_proc(tmp_path):
    root = tmp_path / "proc"
    (root / "net").mkdir(parents=True)
    data_dir = tmp_path / "data"
    data_dir.mkdir()
    ro_dir = tmp_path / "ro"
    ro_dir.mkdir()
    (root / "cpuinfo").write_text(CPUINFO)
    core = "cpu0 10 0 10 80 0 0 0 0 0\n"
    (root / "stat").write_text("cpu  40 0 40 320 0 0 0 0 0\n" + core * 4)
    (root / "meminfo").write_text("MemTotal: 16000 kB\nMemAvailable: 6000 kB\n")
    (root / "net" / "dev").write_text(NET_HEADER + _net_line("eth0", 1000, 2000))
    (root / "uptime").write_text("1000.00 500.00\n")
    (root / "mounts").write_text(
        f"/dev/sda1 {_escape(data_dir)} ext4 rw,relatime 0 0\n"
        "proc /proc proc rw 0 0\n"
        f"/dev/sdb1 {_escape(ro_dir)} ext4 ro,relatime 0 0\n"
        "/dev/root / ext4 rw 0 0\n"
    )
    pid_dir = root / "42"
    pid_dir.mkdir()
    stat_fields = ["S", "1", "42", "42", "0", "-1", "0", "0", "0", "0", "0",
                   "50", "50", "0", "0", "20", "0", "1", "0", "0", "1000", "10"]
    (pid_dir / "stat").write_text("42 (my proc) " + " ".join(stat_fields) + "\n")
    (pid_dir / "cmdline").write_bytes(b"/usr/bin/tool\0--flag\0")
    return root, data_dir


def _interfaces():
    return [("eth0", InterfaceType.ETHERNET)]


def test_linux_sys_info_is_cached_copy(fake_proc):
    root, _ = fake_proc
    monitor = LinuxResourceMonitor(root, _interfaces)
    info = monitor.gather_sys_info()
    assert info.cpu_info.model == "Intel(R) Core(TM) i7 CPU"
    info.cpu_info.model = "changed"
    assert monitor.gather_sys_info().cpu_info.model == "Intel(R) Core(TM) i7 CPU"


def test_linux_runtime_metric(fake_proc):
    root, data_dir = fake_proc
    monitor = LinuxResourceMonitor(root, _interfaces)
    metric = monitor.gather_runtime_metric()

    assert len(metric.core_loads) == monitor.gather_sys_info().cpu_info.cores
    assert metric.memory.total == 16000
    assert [disk.name for disk in metric.storage_info] == [str(data_dir), "/"]
    assert all(d.mbytes_free <= d.mbytes_total for d in metric.storage_info)
    assert metric.can_bus_dev_info == []
    assert metric.network_info[0].rx_bytes == 1000

    (proc,) = metric.processes
    assert proc.pid == 42
    assert proc.executable == "my proc"
    assert proc.status is ProcessStatus.SLEEPING
    assert proc.args == "/usr/bin/tool"
    assert proc.processor_usage >= 0.0


def test_qnx_monitor_gathers_only_supported_data(fake_proc):
    root, _ = fake_proc
    monitor = QnxResourceMonitor(root, _interfaces)
    metric = monitor.gather_runtime_metric()
    assert metric.memory == MemoryInfo()
    assert metric.processes == []
    assert metric.core_loads == []
    assert [disk.name for disk in metric.storage_info] == ["/"]
    assert monitor.gather_sys_info().cpu_info == CpuInfo()


def test_create_monitor_by_platform():
    qnx = create_monitor(Platform.QNX)
    assert isinstance(qnx, QnxResourceMonitor)
    assert qnx.gather_runtime_metric().processes == []
    assert isinstance(create_monitor(Platform.LINUX), LinuxResourceMonitor)


def test_create_monitor_rejects_unknown_platform():
    with pytest.raises(InvalidPlatformError):
        create_monitor(3)
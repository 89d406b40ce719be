# vsmt

Monitoring of virtual machines over vsock sockets. An agent runs inside a
guest, gathers system metrics (CPU load per core, memory, processes, mounted
storage, network traffic) and streams them to a monitor on the hypervisor
side. The package also holds the hypervisor-side pieces that connect to such
an agent, or that monitor the host itself.

## Installation

```
pip install .
```

For running the tests:

```
pip install .[test]
pytest
```

## Running the guest agent

Inside a guest virtual machine, start:

```
vsmt-client
```

Options:

- `--port PORT`: the vsock port to listen on (default 9999)
- `--interval SECONDS`: the time between runtime metrics (default 1.0)

The agent accepts one monitoring connection at a time. When a monitor
connects, the agent first sends a system information record (platform,
distribution, CPU model, speed and core count) and then a runtime metric
every interval until the monitor disconnects. After that it waits for the
next connection. It stops on Ctrl-C. If the listening socket cannot be
opened (for example because the kernel has no vsock support), it prints the
error and exits with status 1.

## Library overview

- `vsmt.metrics`: the metric records `CpuInfo`, `SystemInfo`, `MemoryInfo`,
  `StorageInfo`, `ProcessInfo` (with `ProcessStatus` and `parse_status`),
  `CanBusDeviceInfo`, `NetworkInterfaceInfo` (with `InterfaceType`),
  `RuntimeMetric`, and the `Metric` wrapper. A `Metric` holds a runtime
  metric, system info or `None`. `None` makes it corrupt, and then
  `valid()` returns False.
- `vsmt.serializer`: the big-endian binary wire format. It provides
  `serialize(metric)` and `deserialize(data)`, built on `StreamWriter` and
  `StreamReader`. An unknown type tag decodes to a corrupt metric, and
  truncated input raises `ValueError`.
- `vsmt.message`: framing of messages on a stream socket. Each `Message` is
  sent after a 32-bit length, and `receive_message(sock)` reads one back. An
  empty message means disconnect.
- `vsmt.vsocket`: `VSocket`, a vsock stream socket. A `VSockListener`
  thread reads its incoming messages and passes them to the `on_message` and
  `on_disconnect` callbacks. Failures raise `VSockConnectionError`.
- `vsmt.server`: `VSockSingletonServer`, the single-client server the guest
  agent uses (`send`, `send_runtime_metric`, `send_system_info`, `close`).
- `vsmt.client`: `ClientApplication` and `main`, the guest agent itself.
- `vsmt.resourcemonitor`: metric gathering from `/proc`.
  - `LinuxResourceMonitor` reads CPU info, per-core load, memory, processes,
    writable mounted volumes and per-interface traffic.
  - `QnxResourceMonitor` gathers no CPU, memory or process details and
    reports only the root volume.
  - `create_monitor()` picks the monitor for the current platform. It
    raises `InvalidPlatformError` for an unsupported platform.
  - `parse_cpu_info`, `parse_memory_info`, `parse_net_dev` and
    `parse_ps_row` parse the underlying text formats.
- `vsmt.sysfileparser`: `SysFileParser`, a `key : value` parser for files
  such as `/proc/cpuinfo` and `/proc/meminfo`. Use `value_at(key)` to look
  up a key and `SysFileParser.from_text(text)` to parse text you already
  have.
- `vsmt.config`: `Platform`, `current_platform()`, vsock `Address` and
  `Cid`, and `ClientConfiguration`.
- `vsmt.util`: small numeric helpers (`average`, `percent_of`,
  `byte_to_mb`, ...).

### Hypervisor side

- `vsmt.vsockclient.VSockClient` connects to a guest agent when it is
  constructed. It passes every valid metric it receives to `on_metric`.
- `vsmt.dispatcher.RemoteClientDispatcher` wraps such a client for one
  configured guest. It reports system info through
  `on_connected(id, info)` and runtime metrics through
  `on_runtime_metric(id, metric)`. If no metric arrives within `timeout`
  seconds (default 5) of the last one, it calls `on_timed_out()`.
- `vsmt.dispatcher.LocalClientDispatcher` provides the same callbacks for
  the host itself. It uses a resource monitor instead of a socket. Call
  `start()` to begin and `stop()` to end.

### Example

A metric makes a round trip through the wire format:

```python
from vsmt.metrics import CpuInfo, Metric, SystemInfo
from vsmt.serializer import deserialize, serialize

info = SystemInfo(cpu_info=CpuInfo("Example CPU", 4, "2.40GHz"),
                  platform="linux x86_64", distribution="Example Linux")
data = serialize(Metric(info, 1))
assert deserialize(data).as_system_info() == info
```

## What this package does not do

The package has no monitor program for the hypervisor side. It provides no
command or network gateway that keeps track of several guests at once, and
no graphical view of the metrics. The dispatchers and `VSockClient` are the
building blocks for such a program, which you must write yourself.

vsock sockets need a Linux kernel with vsock support. The metric model,
wire format and parsers work without it.
# apptagcap

Building blocks for tagging network flows with the application that owns
their local socket.

The package works on raw Ethernet frames you already have (from a capture
library, a file or a test). It turns them into flow records, keeps those
records in a cache, and looks up the owning socket and process through
Linux procfs.

## Modules

### `apptagcap.packet`

- `packet_direction(device_mac, frame)` returns a `Direction`:
  `OUTBOUND` when the source MAC is the device's, `INBOUND` when the
  destination is the device's or a multicast/broadcast address, and
  `UNKNOWN` otherwise.
- `parse_ip(data, ether_type, direction)` parses an IPv4 or IPv6 header
  and returns `(ip_version, local_ip, proto, header_length)`. The local
  address is the destination for inbound packets and the source otherwise.
- `parse_ports(data, proto, direction)` returns the local port from a TCP,
  UDP or UDP-Lite header.
- `parse_packet(frame, device_mac, timestamp_us)` combines the above into
  a `FlowInfo`. It returns `None` for frames that are neither IPv4 nor
  IPv6 and for frames whose direction is unknown; malformed, truncated or
  unsupported headers raise `PacketError` (a `ValueError`).
- `FlowInfo` holds `local_ip` (bytes), `ip_version`, `proto`,
  `local_port`, `start_time` and `end_time`. Equality ignores the times.
  `ip_address` gives the address as an `ipaddress` object.

### `apptagcap.tree` and `apptagcap.cache`

A decision-tree cache of flows. Flows are keyed by local port, then by
transport protocol, then by local IP address (`TreeLevel`).

- `Entry` is a leaf holding a `flow`, an `app_name`, an `inode_or_pid` and
  a last-update time; `valid()` is true for `VALID_TIME` (3) seconds after
  `update_time()`.
- `Tree` is an inner node whose children share one value at its level.
- `Cache.find(flow)` returns the matching `Entry`, the closest `Tree`
  under the flow's port, or `None`.
- `Cache.insert(entry)` stores an entry, turning a node into a subtree
  when two different flows share a key. Inserting the same flow twice
  logs an error and changes nothing.
- `Cache.save_results(results)` appends a copy of every flow whose
  application is known to `results`, a `dict` of application name to list
  of flows. `Cache.entries()` yields all entries; `describe()` renders
  the cache as text.

### `apptagcap.appid`

`AppResolver(get_id, get_app)` takes a function mapping a flow to a
socket identifier (`NOT_FOUND`, i.e. -1, when there is none; `LOOKUP_ERROR`,
i.e. -2, makes it raise `LookupError`) and a function mapping an
identifier to an application name.

`determine_app(flow, entry, mode)` fills an entry:

- `Mode.FIND` — the entry takes the flow over and gets its socket and
  application.
- `Mode.UPDATE` — if the socket is unchanged only the entry's times are
  refreshed; otherwise the old flow is copied into `resolver.results`
  and the entry gets the new socket and application.

The resolver counts lookups in `all_sockets` and `not_found_sockets`.

### `apptagcap.procfs`

Linux lookups; every root directory is a parameter, so they can be run
against a prepared directory tree.

- `interface_name(device)` strips `netmap:` (up to the first netmap
  separator) and `pfq:` device prefixes.
- `read_device_mac(device, sys_root="/sys")` reads
  `class/net/<interface>/address`.
- `socket_file(proto, ip_version, proc_root="/proc")` returns the path of
  `net/tcp`, `net/udp` or `net/udplite` (with a `6` suffix for IPv6).
- `find_inode(flow, proc_root="/proc")` returns the inode of the socket
  bound to the flow's local port on its address or the wildcard address,
  or `NOT_FOUND`.
- `find_app(inode, proc_root="/proc", own_pid=None)` returns the first
  line of `cmdline` of the process (other than this one) holding the
  socket, or `""` when none does.

Read failures and unexpected contents raise `ProcfsError` (an `OSError`).

### `apptagcap.debug`

A small levelled logger: `LogLevel` (`NONE`, `ERR`, `WARNING`, `INFO`),
`set_log_level`, `get_log_level`, and `log(level, *args)`, which writes
`[EE]`, `[WW]` or `[II]` prefixed lines to standard error. The default
level is `ERR`. `format_array(data)` renders bytes as
`Data (<length>): <hex>`.

## Example

```python
from apptagcap.appid import AppResolver, Mode
from apptagcap.cache import Cache
from apptagcap.packet import parse_packet
from apptagcap.procfs import find_app, find_inode
from apptagcap.tree import Entry

device_mac = bytes.fromhex("020000000001")  # made-up address

ip_header = bytes([0x45, 0, 0, 28, 0, 0, 0, 0, 64, 17, 0, 0,
                   10, 0, 0, 2, 10, 0, 0, 1])
udp_header = (40000).to_bytes(2, "big") + (53).to_bytes(2, "big") + (8).to_bytes(2, "big") + b"\0\0"
frame = device_mac + bytes.fromhex("020000000002") + b"\x08\x00" + ip_header + udp_header

flow = parse_packet(frame, device_mac, 1_000_000)
print(flow)  # 10.0.0.1 proto 17 port 53

cache = Cache()
resolver = AppResolver(find_inode, find_app)
if cache.find(flow) is None:
    entry = Entry()
    resolver.determine_app(flow, entry, Mode.FIND)
    cache.insert(entry)

results = {}
cache.save_results(results)
```

## What it does not do

The package opens no network interfaces and captures no packets itself,
writes no capture files, and has no command-line program; the frames,
the capture loop and any output format are up to the caller. Socket and
process lookups are for Linux procfs only.

## Requirements

Python 3.10 or later. No third-party packages are needed.
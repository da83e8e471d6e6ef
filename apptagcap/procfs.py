"""Finding sockets and their owning applications through Linux procfs and sysfs."""

from __future__ import annotations

import os
from pathlib import Path

from .appid import NOT_FOUND
from .debug import LogLevel, log
from .packet import ETHER_ADDRLEN, PROTO_TCP, PROTO_UDP, PROTO_UDPLITE, FlowInfo

__all__ = [
    "ProcfsError",
    "interface_name",
    "read_device_mac",
    "socket_file",
    "find_inode",
    "find_app",
]

_NETMAP_PREFIX = "netmap:"
_PFQ_PREFIX = "pfq:"
_NETMAP_SEPARATORS = "-*^{}/@"

_SOCKET_FILES = {
    PROTO_UDP: "udp",
    PROTO_UDPLITE: "udplite",
    PROTO_TCP: "tcp",
}

_LOCAL_ADDRESS_FIELD = 1
_INODE_FIELD = 9
_HEX_CHARS = {4: 8, 6: 32}


class ProcfsError(OSError):
    """Raised when procfs or sysfs cannot be read or holds unexpected data."""


def interface_name(device: str) -> str:
    """Return the kernel interface name behind a capture device name.

    ``netmap:`` names are cut at the first netmap separator and the
    ``pfq:`` prefix is dropped; other names are returned unchanged.
    """
    if device.startswith(_NETMAP_PREFIX):
        name = device[len(_NETMAP_PREFIX):]
        for position, char in enumerate(name):
            if char in _NETMAP_SEPARATORS:
                return name[:position]
        return name
    if device.startswith(_PFQ_PREFIX):
        return device[len(_PFQ_PREFIX):]
    return device


def read_device_mac(device: str, sys_root: str | os.PathLike = "/sys") -> bytes:
    """Read the MAC address of ``device`` from ``<sys_root>/class/net``.

    Missing trailing octets are left as zero; more than six octets or a
    non-hexadecimal octet raise :class:`ProcfsError`.
    """
    path = Path(sys_root) / "class" / "net" / interface_name(device) / "address"
    try:
        text = path.read_text()
    except OSError as exc:
        raise ProcfsError(f"Can't read {path}: {exc}") from exc

    line = text.split("\n", 1)[0].strip()
    parts = line.split(":")
    if len(parts) > ETHER_ADDRLEN:
        raise ProcfsError(f"Too many octets in MAC address {line!r}")
    mac = bytearray(ETHER_ADDRLEN)
    for position, part in enumerate(parts):
        try:
            mac[position] = int(part, 16) & 0xFF
        except ValueError as exc:
            raise ProcfsError(f"Invalid MAC address {line!r}") from exc
    return bytes(mac)


def socket_file(
    proto: int, ip_version: int, proc_root: str | os.PathLike = "/proc"
) -> Path:
    """Return the procfs socket table for a transport protocol and IP version."""
    try:
        name = _SOCKET_FILES[proto]
    except KeyError:
        raise ProcfsError(f"Unsupported L4 protocol {proto}") from None
    if ip_version == 6:
        name += "6"
    elif ip_version != 4:
        raise ProcfsError(f"Unsupported IP protocol {ip_version}")
    return Path(proc_root) / "net" / name


def _decode_address(text: str, ip_version: int) -> bytes:
    """Turn a procfs address (32-bit words in host order) into network order."""
    if len(text) != _HEX_CHARS[ip_version]:
        raise ProcfsError(f"Unexpected IPv{ip_version} address in procfs: {text!r}")
    try:
        raw = bytes.fromhex(text)
    except ValueError as exc:
        raise ProcfsError(f"Unexpected hexadecimal character in procfs: {text!r}") from exc
    return b"".join(raw[start:start + 4][::-1] for start in range(0, len(raw), 4))


def find_inode(flow: FlowInfo, proc_root: str | os.PathLike = "/proc") -> int:
    """Return the inode of the socket bound to the local end of ``flow``.

    A socket matches when its local port equals the flow's and its local
    address is the flow's or the wildcard address. Returns
    :data:`~apptagcap.appid.NOT_FOUND` when no socket matches.
    """
    if flow.ip_version not in _HEX_CHARS:
        raise ProcfsError(f"IP protocol {flow.ip_version} is not supported.")
    path = socket_file(flow.proto, flow.ip_version, proc_root)
    try:
        lines = path.read_text().splitlines()
    except OSError as exc:
        raise ProcfsError(f"Can't open file {path}") from exc

    wanted_ip = bytes(flow.local_ip)
    wildcard = bytes(len(wanted_ip))
    for line in lines[1:]:
        fields = line.split()
        if len(fields) <= _LOCAL_ADDRESS_FIELD:
            continue
        address, _, port_text = fields[_LOCAL_ADDRESS_FIELD].rpartition(":")
        try:
            port = int(port_text, 16)
        except ValueError as exc:
            raise ProcfsError(f"Unexpected local port in procfs: {port_text!r}") from exc
        if port != flow.local_port:
            continue
        found_ip = _decode_address(address, flow.ip_version)
        if found_ip not in (wanted_ip, wildcard):
            continue
        if len(fields) <= _INODE_FIELD:
            raise ProcfsError("Inode column not found")
        try:
            return int(fields[_INODE_FIELD])
        except ValueError as exc:
            raise ProcfsError(f"Invalid inode {fields[_INODE_FIELD]!r}") from exc

    log(LogLevel.WARNING, "Inode not found for port <", flow.local_port, ">")
    return NOT_FOUND


def _numeric_entries(directory: Path) -> list[tuple[int, Path]]:
    found = []
    for child in directory.iterdir():
        name = child.name
        if name.isascii() and name.isdigit():
            found.append((int(name), child))
    return sorted(found)


def _socket_inode(link: str) -> int | None:
    """Inode named by a ``socket:[<inode>]`` link, or None for other links."""
    if not link.startswith("s") or len(link) <= 6 or link[6] != ":":
        return None
    close = link.find("]", 7)
    if close == -1:
        raise ProcfsError(f"Right ']' not found in the socket link: {link}")
    digits = link[8:close]
    if not (digits.isascii() and digits.isdigit()):
        raise ProcfsError("Can't convert socket inode to integer")
    return int(digits)


def find_app(
    inode: int,
    proc_root: str | os.PathLike = "/proc",
    own_pid: int | None = None,
) -> str:
    """Return the command line of the process holding socket ``inode``.

    The command line is the first line of ``<pid>/cmdline`` with its NUL
    separators kept. Returns ``""`` if no process holds the socket.
    """
    root = Path(proc_root)
    if own_pid is None:
        own_pid = os.getpid()
    try:
        processes = _numeric_entries(root)
    except OSError as exc:
        raise ProcfsError(f"Can't open {root} directory") from exc

    for pid, process_dir in processes:
        if pid in (0, own_pid):
            continue
        fd_dir = process_dir / "fd"
        try:
            descriptors = _numeric_entries(fd_dir)
        except FileNotFoundError:
            continue
        except OSError as exc:
            raise ProcfsError(f"Can't open {fd_dir}") from exc

        for fd, fd_path in descriptors:
            if fd <= 2:
                continue
            try:
                link = os.readlink(fd_path)
            except OSError as exc:
                log(LogLevel.ERR, "Readlink error: ", fd_path, "\n", exc.strerror)
                continue
            if _socket_inode(link) != inode:
                continue
            cmdline_path = process_dir / "cmdline"
            try:
                content = cmdline_path.read_bytes()
            except OSError:
                return ""
            return content.split(b"\n", 1)[0].decode("utf-8", errors="replace")

    log(LogLevel.ERR, "Application not found for inode ", inode)
    return ""
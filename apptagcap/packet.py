"""Decoding of captured Ethernet frames into local flow information."""

from __future__ import annotations

import enum
import ipaddress
import logging
from dataclasses import dataclass, field

_logger = logging.getLogger(__name__)

ETHER_HDRLEN = 14
ETHER_ADDRLEN = 6
PROTO_IPV4 = 0x0800
PROTO_IPV6 = 0x86DD
PROTO_TCP = 6
PROTO_UDP = 17
PROTO_UDPLITE = 136

IPV4_MIN_HDRLEN = 20
IPV6_HDRLEN = 40
TCP_MIN_HDRLEN = 20
UDP_HDRLEN = 8

MAC_MCAST4_PREFIX = bytes((0x01, 0x00, 0x5E))
MAC_MCAST6_PREFIX = bytes((0x33, 0x33))
MAC_BROADCAST = bytes((0xFF,) * ETHER_ADDRLEN)


class Direction(enum.Enum):
    """Direction of a packet relative to the capturing interface."""

    OUTBOUND = "outbound"
    INBOUND = "inbound"
    UNKNOWN = "unknown"


class PacketError(ValueError):
    """Raised when a packet header is malformed or unsupported."""


@dataclass
class FlowInfo:
    """The local end of a flow: address, transport protocol and port.

    Two flows are equal when their local address, IP version, protocol and
    local port match; the timestamps do not take part in comparison.
    """

    local_ip: bytes
    ip_version: int
    proto: int
    local_port: int = 0
    start_time: int = field(default=0, compare=False)
    end_time: int = field(default=0, compare=False)

    @property
    def ip_address(self) -> ipaddress.IPv4Address | ipaddress.IPv6Address:
        """The local address as an :mod:`ipaddress` object."""
        if self.ip_version == 4:
            return ipaddress.IPv4Address(self.local_ip)
        if self.ip_version == 6:
            return ipaddress.IPv6Address(self.local_ip)
        raise PacketError(f"unsupported IP version {self.ip_version}")

    def __str__(self) -> str:
        return f"{self.ip_address} proto {self.proto} port {self.local_port}"


def _check_mac(device_mac: bytes) -> bytes:
    mac = bytes(device_mac)
    if len(mac) != ETHER_ADDRLEN:
        raise ValueError(f"MAC address must be {ETHER_ADDRLEN} bytes, got {len(mac)}")
    return mac


def packet_direction(device_mac: bytes, frame: bytes) -> Direction:
    """Decide whether a frame leaves or reaches the interface with ``device_mac``.

    Frames sent to a multicast or broadcast address count as inbound.
    """
    mac = _check_mac(device_mac)
    if len(frame) < 2 * ETHER_ADDRLEN:
        raise PacketError("frame too short for an Ethernet header")
    dst = bytes(frame[0:ETHER_ADDRLEN])
    src = bytes(frame[ETHER_ADDRLEN : 2 * ETHER_ADDRLEN])

    if src == mac:
        return Direction.OUTBOUND
    if dst == mac:
        return Direction.INBOUND
    if (
        dst.startswith(MAC_MCAST4_PREFIX)
        or dst.startswith(MAC_MCAST6_PREFIX)
        or dst == MAC_BROADCAST
    ):
        return Direction.INBOUND

    _logger.debug(
        "interface %s vs. src %s vs. dst %s", mac.hex(), src.hex(), dst.hex()
    )
    _logger.error("Can't determine packet direction.")
    return Direction.UNKNOWN


def parse_ip(
    data: bytes, ether_type: int, direction: Direction
) -> tuple[int, bytes, int, int]:
    """Parse an IPv4 or IPv6 header.

    Returns ``(ip_version, local_ip, proto, header_length)`` where the local
    address is the destination for inbound packets and the source otherwise.
    """
    inbound = direction is Direction.INBOUND
    if ether_type == PROTO_IPV4:
        if len(data) < IPV4_MIN_HDRLEN:
            raise PacketError("truncated IPv4 header")
        header_length = (data[0] & 0x0F) * 4
        if header_length < IPV4_MIN_HDRLEN:
            raise PacketError("Incorrect IPv4 header received.")
        local_ip = bytes(data[16:20] if inbound else data[12:16])
        return 4, local_ip, data[9], header_length
    if ether_type == PROTO_IPV6:
        if len(data) < IPV6_HDRLEN:
            raise PacketError("truncated IPv6 header")
        local_ip = bytes(data[24:40] if inbound else data[8:24])
        return 6, local_ip, data[6], IPV6_HDRLEN
    raise PacketError(f"unsupported ether type 0x{ether_type:04x}")


def parse_ports(data: bytes, proto: int, direction: Direction) -> int:
    """Return the local port from a TCP, UDP or UDP-Lite header."""
    inbound = direction is Direction.INBOUND
    if proto == PROTO_TCP:
        if len(data) < TCP_MIN_HDRLEN:
            raise PacketError("truncated TCP header")
        if (data[12] >> 4) * 4 < TCP_MIN_HDRLEN:
            raise PacketError("Incorrect TCP header received.")
    elif proto in (PROTO_UDP, PROTO_UDPLITE):
        if len(data) < UDP_HDRLEN:
            raise PacketError("truncated UDP header")
        udp_size = int.from_bytes(data[4:6], "big")
        if udp_size < UDP_HDRLEN:
            raise PacketError(f"Incorrect UDP packet received with size <{udp_size}>")
    else:
        raise PacketError(f"Unsupported transport layer protocol ({proto})")
    port_bytes = data[2:4] if inbound else data[0:2]
    return int.from_bytes(port_bytes, "big")


def parse_packet(
    frame: bytes, device_mac: bytes, timestamp_us: int
) -> FlowInfo | None:
    """Turn a captured Ethernet frame into a :class:`FlowInfo`.

    Returns ``None`` for frames that carry neither IPv4 nor IPv6 and for
    frames whose direction cannot be determined. Malformed or unsupported
    headers raise :class:`PacketError`.
    """
    if len(frame) < ETHER_HDRLEN:
        raise PacketError("frame too short for an Ethernet header")
    ether_type = int.from_bytes(frame[12:14], "big")
    if ether_type not in (PROTO_IPV4, PROTO_IPV6):
        return None

    direction = packet_direction(device_mac, frame)
    if direction is Direction.UNKNOWN:
        return None

    ip_payload = frame[ETHER_HDRLEN:]
    ip_version, local_ip, proto, header_length = parse_ip(
        ip_payload, ether_type, direction
    )
    local_port = parse_ports(ip_payload[header_length:], proto, direction)
    return FlowInfo(
        local_ip=local_ip,
        ip_version=ip_version,
        proto=proto,
        local_port=local_port,
        start_time=timestamp_us,
        end_time=timestamp_us,
    )
"""Decision tree nodes that index flows by local port, protocol and address."""

from __future__ import annotations

import dataclasses
import enum
import ipaddress
import time
from dataclasses import dataclass, field
from typing import Union

from .debug import LogLevel, log
from .packet import FlowInfo

__all__ = ["VALID_TIME", "TreeLevel", "Entry", "Tree", "Node"]

VALID_TIME = 3
"""Seconds for which an entry stays valid after its last update."""


class TreeLevel(enum.IntEnum):
    """The flow attribute compared at a level of the tree."""

    LOCAL_PORT = 0
    PROTO = 1
    LOCAL_IP = 2

    def next(self) -> TreeLevel:
        """The level below this one, wrapping after :attr:`LOCAL_IP`."""
        value = self.value + 1
        return TreeLevel(0 if value > TreeLevel.LOCAL_IP else value)


def _check_ip_version(version: int) -> None:
    if version not in (4, 6):
        raise ValueError(f"unsupported IP version {version}")


def _compare_at_level(level: TreeLevel, flow: FlowInfo, other: FlowInfo) -> bool:
    if level is TreeLevel.LOCAL_PORT:
        return flow.local_port == other.local_port
    if level is TreeLevel.PROTO:
        return flow.proto == other.proto
    if flow.ip_version != other.ip_version:
        return False
    _check_ip_version(flow.ip_version)
    return bytes(flow.local_ip) == bytes(other.local_ip)


@dataclass(eq=False)
class Entry:
    """A leaf: one flow together with the application that owns its socket."""

    flow: FlowInfo | None = None
    app_name: str = ""
    inode_or_pid: int = 0
    level: TreeLevel = TreeLevel.LOCAL_PORT
    last_update: float = field(default_factory=time.monotonic)

    def update_time(self) -> None:
        """Mark the entry as updated now."""
        self.last_update = time.monotonic()

    def valid(self) -> bool:
        """True while the entry is younger than :data:`VALID_TIME` seconds."""
        return time.monotonic() - self.last_update < VALID_TIME

    def level_compare(self, flow: FlowInfo) -> bool:
        """Compare ``flow`` with this entry's flow on the entry's level."""
        if self.flow is None:
            raise ValueError("entry holds no flow")
        return _compare_at_level(self.level, self.flow, flow)

    def describe(self) -> str:
        """One line describing the entry."""
        return (
            f"{'-' * int(self.level)}>[{int(self.level)}] \"{self.app_name}\" "
            f"(inode/PID:{self.inode_or_pid})\t{self.flow}"
        )


class Tree:
    """An inner node whose children share one value at its level."""

    def __init__(self, level: TreeLevel) -> None:
        self.level = TreeLevel(level)
        self.common_value: int | bytes | None = None
        self.ip_version: int | None = None
        self.children: list[Node] = []

    def set_common_value(self, flow: FlowInfo) -> None:
        """Take the value shared by this subtree from ``flow``."""
        if self.level is TreeLevel.LOCAL_PORT:
            self.common_value = flow.local_port
        elif self.level is TreeLevel.PROTO:
            self.common_value = flow.proto
        else:
            _check_ip_version(flow.ip_version)
            self.ip_version = flow.ip_version
            self.common_value = bytes(flow.local_ip)

    def level_compare(self, flow: FlowInfo) -> bool:
        """Whether ``flow`` has this subtree's value at its level."""
        if self.level is TreeLevel.LOCAL_PORT:
            return self.common_value == flow.local_port
        if self.level is TreeLevel.PROTO:
            return self.common_value == flow.proto
        if flow.ip_version != self.ip_version:
            return False
        _check_ip_version(self.ip_version)
        return self.common_value == bytes(flow.local_ip)

    def find(self, flow: FlowInfo) -> Node:
        """Return the entry holding ``flow`` or the closest matching subtree."""
        for child in self.children:
            if child.level_compare(flow):
                if isinstance(child, Entry):
                    return child if child.flow == flow else self
                return child.find(flow)
        return self

    def insert(self, entry: Entry) -> None:
        """Place ``entry`` in this subtree, splitting a leaf where needed."""
        if entry.flow is None:
            raise ValueError("entry holds no flow")
        for index, child in enumerate(self.children):
            if not child.level_compare(entry.flow):
                continue
            if isinstance(child, Tree):
                child.insert(entry)
                return
            if child.flow == entry.flow:
                log(LogLevel.ERR, "Tree.insert called two times with the same flow.")
                return
            subtree = Tree(child.level)
            subtree.set_common_value(child.flow)
            subtree.insert(child)
            subtree.insert(entry)
            self.children[index] = subtree
            return
        entry.level = self.level.next()
        self.children.append(entry)

    def entries(self):
        """Yield every entry in this subtree, depth first."""
        for child in self.children:
            if isinstance(child, Entry):
                yield child
            else:
                yield from child.entries()

    def save_results(self, results: dict[str, list[FlowInfo]]) -> None:
        """Append copies of flows with a known application to ``results``."""
        for entry in self.entries():
            if entry.app_name and entry.flow is not None:
                results.setdefault(entry.app_name, []).append(
                    dataclasses.replace(entry.flow)
                )

    def _value_text(self) -> str:
        if self.level is TreeLevel.LOCAL_PORT:
            return f"Port: <{self.common_value}"
        if self.level is TreeLevel.PROTO:
            return f"Protocol: <{self.common_value}"
        _check_ip_version(self.ip_version)
        if self.ip_version == 4:
            return f"IPv4: <{ipaddress.IPv4Address(self.common_value)}"
        return f"IPv6: <{ipaddress.IPv6Address(self.common_value)}"

    def describe(self) -> str:
        """Multi-line description of the subtree."""
        lines = [f"{'-' * int(self.level)}>{{{int(self.level)}}} {self._value_text()}>"]
        lines.extend(child.describe() for child in self.children)
        return "\n".join(lines)


Node = Union[Entry, Tree]
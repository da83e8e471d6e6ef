"""Cache of flows keyed by local port, each port holding an entry or a tree."""

from __future__ import annotations

import dataclasses
from collections.abc import Iterator

from .debug import LogLevel, log
from .packet import FlowInfo
from .tree import Entry, Node, Tree, TreeLevel

__all__ = ["Cache"]


class Cache:
    """Maps open local ports to a single entry or a decision tree of entries."""

    def __init__(self) -> None:
        self._ports: dict[int, Node] = {}

    def __len__(self) -> int:
        return len(self._ports)

    def __contains__(self, port: object) -> bool:
        return port in self._ports

    def find(self, flow: FlowInfo) -> Node | None:
        """Look ``flow`` up.

        Returns the entry on an exact match, the closest subtree when the
        port holds a tree, and ``None`` when nothing with the same flow is
        stored under the port.
        """
        node = self._ports.get(flow.local_port)
        if node is None:
            return None
        if isinstance(node, Tree):
            return node.find(flow)
        return node if node.flow == flow else None

    def insert(self, entry: Entry) -> None:
        """Store ``entry``, turning a port's single entry into a tree if needed."""
        if entry.flow is None:
            raise ValueError("entry holds no flow")
        port = entry.flow.local_port
        node = self._ports.get(port)
        if node is None:
            entry.level = TreeLevel.LOCAL_PORT
            self._ports[port] = entry
            return
        if isinstance(node, Tree):
            node.insert(entry)
            return
        if node.flow == entry.flow:
            log(LogLevel.ERR, "Cache.insert called two times with the same flow.")
            return
        tree = Tree(node.level)
        tree.set_common_value(node.flow)
        tree.insert(node)
        tree.insert(entry)
        self._ports[port] = tree

    def entries(self) -> Iterator[Entry]:
        """Yield every stored entry."""
        for node in self._ports.values():
            if isinstance(node, Entry):
                yield node
            else:
                yield from node.entries()

    def save_results(self, results: dict[str, list[FlowInfo]]) -> None:
        """Append copies of flows with a known application to ``results``."""
        for node in self._ports.values():
            if isinstance(node, Tree):
                node.save_results(results)
            elif node.app_name and node.flow is not None:
                results.setdefault(node.app_name, []).append(
                    dataclasses.replace(node.flow)
                )

    def describe(self) -> str:
        """Multi-line description of the whole cache."""
        return "\n".join(node.describe() for node in self._ports.values())
"""Attaching applications to flows through their socket identifiers."""

from __future__ import annotations

import dataclasses
import enum
from collections.abc import Callable

from .packet import FlowInfo
from .tree import Entry

__all__ = ["Mode", "AppResolver", "NOT_FOUND", "LOOKUP_ERROR"]

NOT_FOUND = -1
"""Identifier returned by a lookup when no socket matches the flow."""

LOOKUP_ERROR = -2
"""Identifier returned by a lookup that failed on input or output."""


class Mode(enum.Enum):
    """How :meth:`AppResolver.determine_app` treats the entry."""

    UPDATE = 0
    FIND = 1


class AppResolver:
    """Resolves the application owning a flow's socket and records results.

    ``get_id`` maps a flow to a socket inode or process id (``NOT_FOUND``
    when there is none); ``get_app`` maps such an identifier to the
    application's command line, or ``""`` if no application holds it.
    Either may raise to report an error.
    """

    def __init__(
        self,
        get_id: Callable[[FlowInfo], int],
        get_app: Callable[[int], str],
    ) -> None:
        self.get_id = get_id
        self.get_app = get_app
        self.results: dict[str, list[FlowInfo]] = {}
        self.all_sockets = 0
        self.not_found_sockets = 0

    def determine_app(self, flow: FlowInfo, entry: Entry, mode: Mode) -> None:
        """Fill ``entry`` with the application that owns ``flow``.

        In :attr:`Mode.FIND` the entry takes ``flow`` over. In
        :attr:`Mode.UPDATE` the entry already holds the flow: if its socket
        is unchanged only its times are refreshed, otherwise the old record
        is saved to :attr:`results` and the entry gets the new application.
        """
        mode = Mode(mode)
        socket_id = self.get_id(flow)
        if socket_id == LOOKUP_ERROR:
            raise LookupError(f"socket lookup failed for {flow}")

        if mode is Mode.UPDATE:
            if entry.flow is None:
                raise ValueError("entry to update holds no flow")
            if socket_id == entry.inode_or_pid:
                entry.update_time()
                entry.flow.end_time = flow.end_time
                return
            if entry.app_name:
                self.results.setdefault(entry.app_name, []).append(
                    dataclasses.replace(entry.flow)
                )
                entry.app_name = ""

        self.all_sockets += 1
        entry.inode_or_pid = socket_id
        if socket_id == NOT_FOUND:
            self.not_found_sockets += 1
        else:
            entry.app_name = self.get_app(socket_id)

        if mode is Mode.FIND:
            entry.flow = flow
        else:
            entry.flow.start_time = flow.start_time
            entry.flow.end_time = flow.end_time
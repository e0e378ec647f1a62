# SPDX-FileCopyrightText: 2025 shadowshare contributors
# SPDX-License-Identifier: MIT

"""Peer transports that drive dealer and collector handlers.

Two swarms implement the same small surface: ``join(topic, server=...,
client=...)`` returns a discovery handle with ``flushed()``, and every
connection between a client member and a server member of one topic is
reported to the swarm's handler through ``connection_made``,
``data_received`` and ``connection_lost``. Handlers are always called from a
single loop, one event at a time.

``MemoryHub``
    In-process and deterministic. Events wait in a FIFO queue until
    :meth:`MemoryHub.run_until_idle` pumps them.

``TcpSwarm``
    Plain asyncio TCP for a LAN: a listening socket in server mode and one
    outbound connection per configured peer in client mode. Messages are
    newline framed; both ends open with a ``shadowshare/1 <topic-hex>`` line
    and drop the connection when the topics differ.
"""

from __future__ import annotations

import asyncio
import logging
import secrets
from collections import deque
from dataclasses import dataclass, field
from typing import Callable, Deque, Dict, Iterable, List, Optional, Protocol

from shadowshare.errors import TransportError
from shadowshare.policy import policy

_logger = logging.getLogger(__name__)

HANDSHAKE_PREFIX = b"shadowshare/1 "
STREAM_LIMIT = 1024 * 1024


class Connection(Protocol):
    peer_id: str

    def write(self, data: bytes) -> None: ...


class PeerHandler(Protocol):
    def connection_made(self, conn: Connection) -> None: ...

    def data_received(self, conn: Connection, data: bytes) -> None: ...

    def connection_lost(self, conn: Connection) -> None: ...


# ---------------------------------------------------------------------------
# In-process hub
# ---------------------------------------------------------------------------


class MemoryConnection:
    """One end of an in-process duplex pair."""

    def __init__(self, hub: MemoryHub, owner: MemorySwarm, peer_id: str) -> None:
        self.hub = hub
        self.owner = owner
        self.peer_id = peer_id
        self.remote: MemoryConnection | None = None
        self.closed = False
        self.broken = False

    def write(self, data: bytes) -> None:
        if self.broken:
            raise TransportError(f"Write to {self.peer_id} failed")
        if self.closed or self.remote is None:
            raise TransportError(f"Connection to {self.peer_id} is closed")
        remote = self.remote
        payload = bytes(data)
        self.hub.schedule(lambda: remote.owner.handler.data_received(remote, payload))

    def close(self) -> None:
        if self.closed:
            return
        for end in (self, self.remote):
            if end is None or end.closed:
                continue
            end.closed = True
            self.hub.schedule(lambda end=end: end.owner.handler.connection_lost(end))


@dataclass
class MemoryDiscovery:
    topic: bytes
    server: bool
    client: bool

    def flushed(self) -> bool:
        return True


@dataclass
class _Member:
    swarm: MemorySwarm
    discovery: MemoryDiscovery


class MemorySwarm:
    def __init__(self, hub: MemoryHub, handler: PeerHandler, name: str | None = None) -> None:
        self.hub = hub
        self.handler = handler
        self.name = name or secrets.token_hex(5)
        self.connections: List[MemoryConnection] = []

    def join(self, topic: bytes, *, server: bool = True, client: bool = True) -> MemoryDiscovery:
        discovery = MemoryDiscovery(topic=topic, server=server, client=client)
        self.hub.register(self, discovery)
        return discovery

    def destroy(self) -> None:
        self.hub.unregister(self)
        for conn in list(self.connections):
            conn.close()


class MemoryHub:
    """Rendezvous point and event queue for :class:`MemorySwarm` members."""

    def __init__(self) -> None:
        self._topics: Dict[bytes, List[_Member]] = {}
        self._events: Deque[Callable[[], None]] = deque()

    def swarm(self, handler: PeerHandler, name: str | None = None) -> MemorySwarm:
        return MemorySwarm(self, handler, name)

    def schedule(self, event: Callable[[], None]) -> None:
        self._events.append(event)

    @property
    def pending(self) -> int:
        return len(self._events)

    def register(self, swarm: MemorySwarm, discovery: MemoryDiscovery) -> None:
        members = self._topics.setdefault(discovery.topic, [])
        for member in members:
            if member.swarm is swarm:
                continue
            joiner_dials = discovery.client and member.discovery.server
            member_dials = member.discovery.client and discovery.server
            if joiner_dials or member_dials:
                self._connect(member.swarm, swarm)
        members.append(_Member(swarm, discovery))

    def unregister(self, swarm: MemorySwarm) -> None:
        for topic, members in self._topics.items():
            self._topics[topic] = [m for m in members if m.swarm is not swarm]

    def _connect(self, first: MemorySwarm, second: MemorySwarm) -> None:
        a = MemoryConnection(self, first, peer_id=second.name)
        b = MemoryConnection(self, second, peer_id=first.name)
        a.remote, b.remote = b, a
        first.connections.append(a)
        second.connections.append(b)
        self.schedule(lambda: first.handler.connection_made(a))
        self.schedule(lambda: second.handler.connection_made(b))

    def run_until_idle(self, max_events: int = 100_000) -> int:
        """Dispatch queued events in order until the queue is empty."""

        processed = 0
        while self._events:
            if processed >= max_events:
                raise RuntimeError(f"Event queue did not drain after {max_events} events")
            self._events.popleft()()
            processed += 1
        return processed


# ---------------------------------------------------------------------------
# asyncio TCP
# ---------------------------------------------------------------------------


def parse_address(text: str, default_port: int | None = None) -> tuple[str, int]:
    """Parse ``host:port`` (or bare ``host`` when ``default_port`` is given)."""

    host, sep, port = text.strip().rpartition(":")
    if not sep:
        host, port = port, ""
    if not port:
        if default_port is None:
            raise ValueError(f"Address {text!r} has no port")
        return host or policy.host, default_port
    try:
        return host or policy.host, int(port)
    except ValueError as exc:
        raise ValueError(f"Invalid port in address {text!r}") from exc


class TcpConnection:
    def __init__(self, writer: asyncio.StreamWriter, peer_id: str) -> None:
        self._writer = writer
        self.peer_id = peer_id

    def write(self, data: bytes) -> None:
        if self._writer.is_closing():
            raise TransportError(f"Connection to {self.peer_id} is closed")
        try:
            self._writer.write(bytes(data) + b"\n")
        except (OSError, RuntimeError) as exc:
            raise TransportError(f"Write to {self.peer_id} failed: {exc}") from exc

    def close(self) -> None:
        self._writer.close()


@dataclass
class TcpDiscovery:
    topic: bytes
    tasks: List["asyncio.Future[None]"] = field(default_factory=list)
    connected: int = 0

    async def flushed(self) -> None:
        """Wait until the listener is bound and every dial has finished its handshake."""

        if self.tasks:
            await asyncio.gather(*self.tasks)


class TcpSwarm:
    def __init__(
        self,
        handler: PeerHandler,
        *,
        host: str | None = None,
        port: int | None = None,
        peers: Iterable[tuple[str, int]] = (),
        handshake_timeout: float | None = None,
    ) -> None:
        self.handler = handler
        self.host = host if host is not None else policy.host
        self.port = port if port is not None else policy.port
        self.peers = list(peers)
        self.handshake_timeout = handshake_timeout or policy.handshake_timeout
        self._server: Optional[asyncio.AbstractServer] = None
        self._topic: bytes | None = None
        self._tasks: set[asyncio.Task[None]] = set()
        self._writers: set[asyncio.StreamWriter] = set()

    @property
    def bound_port(self) -> int | None:
        if self._server is None or not self._server.sockets:
            return None
        return self._server.sockets[0].getsockname()[1]

    def join(self, topic: bytes, *, server: bool = True, client: bool = True) -> TcpDiscovery:
        self._topic = topic
        discovery = TcpDiscovery(topic=topic)
        if server:
            discovery.tasks.append(self._spawn(self._listen()))
        if client:
            for host, port in self.peers:
                discovery.tasks.append(self._spawn(self._dial(discovery, host, port)))
        return discovery

    async def destroy(self) -> None:
        if self._server is not None:
            self._server.close()
        for writer in list(self._writers):
            writer.close()
        for task in list(self._tasks):
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        # wait_closed() also waits for accepted connections, so it goes last
        if self._server is not None:
            await self._server.wait_closed()
            self._server = None

    def _spawn(self, coro) -> "asyncio.Task[None]":
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _listen(self) -> None:
        try:
            self._server = await asyncio.start_server(
                self._accept, self.host, self.port, limit=STREAM_LIMIT
            )
        except OSError as exc:
            raise TransportError(f"Cannot listen on {self.host}:{self.port}: {exc}") from exc
        _logger.info("Listening on %s:%s", self.host, self.bound_port)

    async def _accept(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        host, port = writer.get_extra_info("peername")[:2]
        await self._track(self._run(reader, writer, f"{host}:{port}"))

    async def _dial(self, discovery: TcpDiscovery, host: str, port: int) -> None:
        peer_id = f"{host}:{port}"
        try:
            reader, writer = await asyncio.open_connection(host, port, limit=STREAM_LIMIT)
        except OSError as exc:
            _logger.warning("Could not reach peer %s: %s", peer_id, exc)
            return
        self._writers.add(writer)
        try:
            matched = await self._greet(reader, writer, peer_id)
        except BaseException:
            self._close(writer)
            raise
        if not matched:
            self._close(writer)
            return
        discovery.connected += 1
        self._spawn(self._serve(reader, writer, peer_id))

    async def _track(self, coro) -> None:
        task = asyncio.current_task()
        if task is not None:
            self._tasks.add(task)
        try:
            await coro
        finally:
            if task is not None:
                self._tasks.discard(task)

    async def _handshake(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> bool:
        if self._topic is None:
            raise TransportError("join() was not called")
        hello = HANDSHAKE_PREFIX + self._topic.hex().encode("ascii")
        writer.write(hello + b"\n")
        await writer.drain()
        line = await asyncio.wait_for(reader.readline(), self.handshake_timeout)
        return line.rstrip(b"\r\n") == hello

    async def _greet(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter, peer_id: str) -> bool:
        try:
            matched = await self._handshake(reader, writer)
        # readline() reports an oversized line as ValueError
        except (OSError, ValueError, asyncio.TimeoutError, asyncio.IncompleteReadError) as exc:
            _logger.warning("Handshake with %s failed: %s", peer_id, exc)
            return False
        if not matched:
            _logger.info("Dropping %s: different topic", peer_id)
        return matched

    def _close(self, writer: asyncio.StreamWriter) -> None:
        self._writers.discard(writer)
        writer.close()

    async def _run(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter, peer_id: str) -> None:
        self._writers.add(writer)
        try:
            matched = await self._greet(reader, writer, peer_id)
        except BaseException:
            self._close(writer)
            raise
        if not matched:
            self._close(writer)
            return
        await self._serve(reader, writer, peer_id)

    async def _serve(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter, peer_id: str) -> None:
        conn = TcpConnection(writer, peer_id)
        try:
            self.handler.connection_made(conn)
            try:
                while True:
                    line = await reader.readline()
                    if not line:
                        break
                    line = line.rstrip(b"\r\n")
                    if line:
                        self.handler.data_received(conn, line)
            except (OSError, ValueError, asyncio.IncompleteReadError) as exc:
                _logger.warning("Connection to %s lost: %s", peer_id, exc)
            finally:
                self.handler.connection_lost(conn)
        finally:
            self._close(writer)


__all__ = [
    "Connection",
    "MemoryConnection",
    "MemoryDiscovery",
    "MemoryHub",
    "MemorySwarm",
    "PeerHandler",
    "TcpConnection",
    "TcpDiscovery",
    "TcpSwarm",
    "parse_address",
]

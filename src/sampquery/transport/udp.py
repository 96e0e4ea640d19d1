from __future__ import annotations
import asyncio
import ipaddress
import logging
from collections import deque
from dataclasses import dataclass

from sampquery.transport.framing import MalformedResponse, ServerInfo, encode_query, parse_response
from sampquery.transport.opcodes import RECV_BUFSIZE, RECV_TIMEOUT_S

logger = logging.getLogger(__name__)


class InvalidAddress(ValueError):
    pass


class QueryTimeout(TimeoutError):
    pass


@dataclass(frozen=True)
class QueryEndpoint:
    host: str
    port: int


class _QueryProtocol(asyncio.DatagramProtocol):
    """Buffers datagrams and socket errors until the client asks for them."""

    def __init__(self):
        self.transport = None
        self._datagrams: deque[bytes] = deque()
        self._error: Exception | None = None
        self._closed = False
        self._waiter: asyncio.Future | None = None

    def connection_made(self, transport):
        self.transport = transport

    def datagram_received(self, data: bytes, addr):
        self._datagrams.append(data)
        self._wake()

    def error_received(self, exc: Exception):
        # ICMP errors (port unreachable etc.) land here on a connected socket
        self._error = exc
        self._wake()

    def connection_lost(self, exc):
        self._closed = True
        if exc is not None:
            self._error = exc
        self._wake()

    def _wake(self) -> None:
        if self._waiter is not None and not self._waiter.done():
            self._waiter.set_result(None)

    def take_error(self) -> Exception | None:
        exc, self._error = self._error, None
        return exc

    async def next_datagram(self) -> bytes:
        while True:
            if self._datagrams:
                return self._datagrams.popleft()
            exc = self.take_error()
            if exc is not None:
                raise exc
            if self._closed:
                raise ConnectionError("query transport closed")
            self._waiter = asyncio.get_running_loop().create_future()
            try:
                await self._waiter
            finally:
                self._waiter = None


class QueryClient:
    """
    One conversation with one server: open(), send(), recv().
    The transport is connected, so only replies from the queried server are seen.
    """

    def __init__(self, endpoint: QueryEndpoint, transport: asyncio.DatagramTransport, protocol: _QueryProtocol,
                 timeout_s: float = RECV_TIMEOUT_S, encoding: str = "utf-8"):
        self._endpoint = endpoint
        self._transport = transport
        self._protocol = protocol
        self._timeout_s = timeout_s
        self._encoding = encoding

    @classmethod
    async def open(cls, host: str, port: int, *, timeout_s: float = RECV_TIMEOUT_S,
                   connect_timeout_s: float = RECV_TIMEOUT_S, encoding: str = "utf-8") -> QueryClient:
        try:
            addr = ipaddress.IPv4Address(host)
        except ValueError as e:
            raise InvalidAddress(f"not an IPv4 address: {host!r}") from e
        if not (0 < port <= 0xFFFF):
            raise InvalidAddress(f"port out of range: {port}")

        endpoint = QueryEndpoint(str(addr), port)
        loop = asyncio.get_running_loop()
        try:
            transport, protocol = await asyncio.wait_for(
                loop.create_datagram_endpoint(
                    _QueryProtocol,
                    local_addr=("0.0.0.0", 0),
                    remote_addr=(endpoint.host, endpoint.port),
                ),
                connect_timeout_s,
            )
        except asyncio.TimeoutError as e:
            raise QueryTimeout(f"could not open socket to {endpoint.host}:{endpoint.port} "
                               f"within {connect_timeout_s}s") from e

        client = cls(endpoint, transport, protocol, timeout_s=timeout_s, encoding=encoding)
        logger.debug("opened query socket %s -> %s:%d", client.local_address, endpoint.host, endpoint.port)
        return client

    @property
    def endpoint(self) -> QueryEndpoint:
        return self._endpoint

    @property
    def local_address(self) -> tuple[str, int] | None:
        return self._transport.get_extra_info("sockname")

    async def send(self) -> int:
        if self._transport.is_closing():
            raise ConnectionError("query transport closed")

        pkt = encode_query(self._endpoint.host, self._endpoint.port)
        self._transport.sendto(pkt)

        # asyncio reports a failed write through error_received instead of raising
        exc = self._protocol.take_error()
        if exc is not None:
            raise exc

        logger.debug("sent %d byte info query to %s:%d", len(pkt), self._endpoint.host, self._endpoint.port)
        return len(pkt)

    async def recv(self) -> ServerInfo:
        try:
            data = await asyncio.wait_for(self._protocol.next_datagram(), self._timeout_s)
        except asyncio.TimeoutError as e:
            logger.warning("no reply from %s:%d within %.1fs", self._endpoint.host, self._endpoint.port,
                           self._timeout_s)
            raise QueryTimeout(f"no reply from {self._endpoint.host}:{self._endpoint.port} "
                               f"within {self._timeout_s}s") from e

        # receive buffer is one MTU; anything beyond it is lost
        if len(data) > RECV_BUFSIZE:
            logger.debug("truncating %d byte reply to %d bytes", len(data), RECV_BUFSIZE)
            data = data[:RECV_BUFSIZE]

        try:
            info = parse_response(data, encoding=self._encoding)
        except MalformedResponse as e:
            logger.warning("malformed reply from %s:%d: %s", self._endpoint.host, self._endpoint.port, e)
            raise

        logger.debug("received %d byte reply from %s:%d", len(data), self._endpoint.host, self._endpoint.port)
        return info

    async def info(self) -> ServerInfo:
        """Send one info query and wait for its reply."""
        await self.send()
        return await self.recv()

    def close(self) -> None:
        self._transport.close()

    async def __aenter__(self) -> QueryClient:
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.close()

from __future__ import annotations

import ipaddress
import struct
from dataclasses import dataclass

from sampquery.transport.opcodes import HEADER_SIZE, MAGIC, OPCODE_INFO

# header: MAGIC(4), ADDR(4), PORT_LO(1), PORT_HI(1), OPCODE(1) => total 11 bytes
_HDR_FMT = "<4s4sBBc"
_HDR_SIZE = struct.calcsize(_HDR_FMT)

# info payload: PASSWORD(i8), PLAYERS(u16), MAX_PLAYERS(u16), then 3 strings
_INFO_FMT = "<bHH"
_LEN_FMT = "<I"


class FrameError(Exception):
    pass


class MalformedResponse(FrameError):
    pass


@dataclass(frozen=True)
class ServerInfo:
    password: bool
    players: int
    max_players: int
    hostname: str
    gamemode: str
    language: str

    @classmethod
    def empty(cls) -> ServerInfo:
        return cls(password=False, players=0, max_players=0, hostname="", gamemode="", language="")


def encode_query(address: str | ipaddress.IPv4Address, port: int) -> bytes:
    """
    Build the 11 byte info request for a server.
    The port goes out little-endian; anything above 16 bits is masked off.
    """
    octets = ipaddress.IPv4Address(address).packed
    return struct.pack(_HDR_FMT, MAGIC, octets, port & 0xFF, (port >> 8) & 0xFF, OPCODE_INFO)


def decode_query(packet: bytes) -> tuple[str, int]:
    """Parse an info request back into the (address, port) it was addressed to."""
    if len(packet) != _HDR_SIZE:
        raise FrameError(f"bad query length: {len(packet)}")

    magic, octets, port_lo, port_hi, opcode = struct.unpack(_HDR_FMT, packet)
    if magic != MAGIC:
        raise FrameError("bad magic")
    if opcode != OPCODE_INFO:
        raise FrameError(f"unsupported opcode {opcode!r}")

    return str(ipaddress.IPv4Address(octets)), port_lo | (port_hi << 8)


def encode_info(info: ServerInfo, address: str | ipaddress.IPv4Address, port: int, encoding: str = "utf-8") -> bytes:
    """Build a complete reply datagram (echoed header + info payload) for `info`."""
    if not (0 <= info.players <= 0xFFFF and 0 <= info.max_players <= 0xFFFF):
        raise ValueError("player counts must fit in 16 bits")

    body = struct.pack(_INFO_FMT, 1 if info.password else 0, info.players, info.max_players)
    for text in (info.hostname, info.gamemode, info.language):
        raw = text.encode(encoding)
        body += struct.pack(_LEN_FMT, len(raw)) + raw
    return encode_query(address, port) + body


def strip_header(datagram: bytes) -> bytes:
    if len(datagram) < HEADER_SIZE:
        raise MalformedResponse(f"datagram too short: {len(datagram)} bytes, header is {HEADER_SIZE}")
    return datagram[HEADER_SIZE:]


class _Cursor:
    def __init__(self, data: bytes):
        self._data = data
        self._pos = 0

    def take(self, n: int, what: str) -> bytes:
        left = len(self._data) - self._pos
        if n > left:
            raise MalformedResponse(f"truncated {what}: need {n} bytes, {left} left")
        chunk = self._data[self._pos:self._pos + n]
        self._pos += n
        return chunk

    def unpack(self, fmt: str, what: str) -> tuple:
        return struct.unpack(fmt, self.take(struct.calcsize(fmt), what))

    def text(self, what: str, encoding: str) -> str:
        (length,) = self.unpack(_LEN_FMT, f"{what} length")
        raw = self.take(length, what)
        try:
            return raw.decode(encoding)
        except UnicodeDecodeError as e:
            raise MalformedResponse(f"{what} is not valid {encoding}") from e


def decode_info(payload: bytes, encoding: str = "utf-8") -> ServerInfo:
    """
    Decode an info payload (everything after the echoed header).
    Integers are little-endian; each string is a u32 length followed by its bytes.
    Bytes after the language field are ignored.
    """
    cur = _Cursor(payload)
    password, players, max_players = cur.unpack(_INFO_FMT, "info header")
    hostname = cur.text("hostname", encoding)
    gamemode = cur.text("gamemode", encoding)
    language = cur.text("language", encoding)

    return ServerInfo(
        password=password != 0,
        players=players,
        max_players=max_players,
        hostname=hostname,
        gamemode=gamemode,
        language=language,
    )


def parse_response(datagram: bytes, encoding: str = "utf-8") -> ServerInfo:
    return decode_info(strip_header(datagram), encoding=encoding)

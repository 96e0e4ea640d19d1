from __future__ import annotations
import socket
from dataclasses import dataclass, field

from sampquery.transport.framing import ServerInfo, decode_query, encode_info
from .faults import FaultConfig

DEFAULT_INFO = ServerInfo(
    password=False,
    players=0,
    max_players=50,
    hostname="Simulated Server",
    gamemode="Freeroam",
    language="English",
)

@dataclass
class SimModel:
    info: ServerInfo = DEFAULT_INFO
    queries_served: int = 0
    reset_count: int = 0
    faults: FaultConfig = field(default_factory=FaultConfig)

    def reset(self) -> None:
        self.info = DEFAULT_INFO
        self.faults = FaultConfig()
        self.queries_served = 0
        self.reset_count += 1

    def reply(self, request: bytes) -> bytes:
        """
        Build the reply to an info query, echoing its header.
        Raises FrameError for anything that is not a well formed info query.
        """
        address, port = decode_query(request)
        self.queries_served += 1
        return self.faults.apply(encode_info(self.info, address, port))

def send_reply(transport, reply: bytes, addr) -> None:
    if reply:
        transport.sendto(reply, addr)
        return
    # asyncio datagram transports drop empty writes before 3.13; go to the socket directly
    fd = transport.get_extra_info("socket").fileno()
    with socket.fromfd(fd, socket.AF_INET, socket.SOCK_DGRAM) as sock:
        sock.sendto(reply, addr)

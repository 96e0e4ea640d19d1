from __future__ import annotations
from dataclasses import dataclass
import random
import struct

from sampquery.transport.opcodes import HEADER_SIZE

# password(1) + players(2) + max_players(2)
_HOSTNAME_AT = HEADER_SIZE + 5
_BAD_UTF8 = b"\xc3\x28"

@dataclass
class FaultConfig:
    delay_ms: int = 0                 # add delay before responding
    drop_rate: float = 0.0            # 0.0..1.0
    truncate_to: int | None = None    # cut replies to this many bytes
    corrupt_text: bool = False        # swap hostname for invalid utf-8

    def should_drop(self) -> bool:
        return self.drop_rate > 0 and random.random() < self.drop_rate

    def apply(self, reply: bytes) -> bytes:
        if self.corrupt_text:
            reply = corrupt_hostname(reply)
        if self.truncate_to is not None:
            reply = reply[:self.truncate_to]
        return reply


def corrupt_hostname(reply: bytes) -> bytes:
    (length,) = struct.unpack_from("<I", reply, _HOSTNAME_AT)
    rest = reply[_HOSTNAME_AT + 4 + length:]
    return reply[:_HOSTNAME_AT] + struct.pack("<I", len(_BAD_UTF8)) + _BAD_UTF8 + rest

"""
FeliCa packet codec.

Command packet:  length(1) | command code(1) | [IDm(8)] | data(n)
Response packet: length(1) | response code(1) | IDm(8) | data(m)

The length byte counts the whole packet including itself. There is no
checksum; integrity is left to the transport.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional, Union

from .commands import command_name, is_supported
from .data import BLOCK_SIZE, IDm, PMm, SystemCode
from .errors import FrameTooLarge, MalformedPacket, MalformedResponse, UnsupportedCommand
from .utils import get_hex_string

logger = logging.getLogger(__name__)

MAX_PACKET_LENGTH = 0xFF
RESPONSE_HEADER_LENGTH = 10


class CommandPacket:
    """Encoder for a single FeliCa command"""

    def __init__(self, command_code: int, idm: Optional[Union[IDm, bytes]] = None, data: bytes = b""):
        if not is_supported(command_code):
            raise UnsupportedCommand(command_code)
        if idm is not None and not isinstance(idm, IDm):
            idm = IDm(idm)
        data = bytes(data)
        length = 2 + (len(idm) if idm is not None else 0) + len(data)
        if length > MAX_PACKET_LENGTH:
            raise FrameTooLarge(length)

        self.command_code = int(command_code)
        self.idm = idm
        self.data = data
        self.length = length

    @classmethod
    def from_code_and_data(cls, command_code: int, trailing: bytes) -> "CommandPacket":
        """
        Rebuild a packet from its code and everything after it.

        Eight or more trailing bytes are read as IDm + data, anything shorter
        as data only. This is what tells a polling request (4 bytes, no IDm)
        apart from the per-card commands.
        """
        trailing = bytes(trailing)
        if len(trailing) >= 8:
            return cls(command_code, IDm(trailing[:8]), trailing[8:])
        return cls(command_code, None, trailing)

    @classmethod
    def from_bytes(cls, raw: bytes) -> "CommandPacket":
        """Parse an encoded packet: length, code, then IDm/data by length"""
        raw = bytes(raw)
        if len(raw) < 2:
            raise MalformedPacket(f"packet too short: {len(raw)} bytes")
        if raw[0] != len(raw):
            raise MalformedPacket(f"length byte {raw[0]} does not match packet size {len(raw)}")
        return cls.from_code_and_data(raw[1], raw[2:])

    @classmethod
    def from_packet(cls, other: "CommandPacket") -> "CommandPacket":
        return cls.from_bytes(other.to_bytes())

    @property
    def name(self) -> str:
        return command_name(self.command_code)

    def to_bytes(self) -> bytes:
        idm = self.idm.to_bytes() if self.idm is not None else b""
        return bytes([self.length, self.command_code]) + idm + self.data

    def __bytes__(self) -> bytes:
        return self.to_bytes()

    def __len__(self) -> int:
        return self.length

    def __eq__(self, other) -> bool:
        if not isinstance(other, CommandPacket):
            return NotImplemented
        return self.to_bytes() == other.to_bytes()

    def __hash__(self) -> int:
        return hash(self.to_bytes())

    def __repr__(self) -> str:
        return f"CommandPacket({self.name}, {get_hex_string(self.to_bytes())})"

    def describe(self) -> str:
        lines = [
            "FeliCa command packet",
            f" Command: {self.name}",
            f" Length: {self.length:02X}",
            f" Command code: {self.command_code:02X}",
        ]
        if self.idm is not None:
            lines.append(" " + self.idm.describe())
        lines.append(f" Data: {get_hex_string(self.data)}")
        return "\n".join(lines)


class CommandResponse:
    """
    Decoder for a raw reply buffer.

    Decoding is unconditional: neither the response code nor the length
    byte is checked against the buffer or the command that was sent.
    """

    def __init__(self, raw: bytes):
        raw = bytes(raw)
        if len(raw) < RESPONSE_HEADER_LENGTH:
            raise MalformedResponse(
                f"response too short: {len(raw)} bytes (need {RESPONSE_HEADER_LENGTH})")
        self.raw = raw
        self.length = raw[0]
        self.response_code = raw[1]
        self.idm = IDm(raw[2:10])
        self.data = raw[10:]

    @property
    def name(self) -> str:
        return command_name(self.response_code)

    def to_bytes(self) -> bytes:
        return self.raw

    def __bytes__(self) -> bytes:
        return self.raw

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.name}, {get_hex_string(self.raw)})"

    def describe(self) -> str:
        return "\n".join([
            "FeliCa response packet",
            f" Command: {self.name}",
            f" Length: {self.length:02X}",
            f" Response code: {self.response_code:02X}",
            " " + self.idm.describe(),
            f" Data: {get_hex_string(self.data)}",
        ])


class PollingResponse(CommandResponse):
    """Polling reply: IDm, PMm and optional request data (system code)"""

    def __init__(self, raw: Union[bytes, CommandResponse]):
        super().__init__(bytes(raw))
        if len(self.data) < 8:
            raise MalformedResponse(f"polling response carries no PMm: {get_hex_string(self.raw)}")
        self.pmm = PMm(self.data[:8])
        self.request_data = self.data[8:10]

    @property
    def system_code(self) -> Optional[SystemCode]:
        if len(self.request_data) == 2:
            return SystemCode(self.request_data)
        return None


# Status flag 1
STATUSFLAG1_NORMAL = 0x00
STATUSFLAG1_ERROR = 0xFF

# Status flag 2
STATUSFLAG2_NORMAL = 0x00
STATUSFLAG2_ERROR_LENGTH = 0x01
STATUSFLAG2_ERROR_FLOWN = 0x02
STATUSFLAG2_ERROR_MEMORY = 0x70
STATUSFLAG2_ERROR_WRITELIMIT = 0x71

STATUSFLAG2_NAMES = {
    STATUSFLAG2_NORMAL: "normal",
    STATUSFLAG2_ERROR_LENGTH: "length error",
    STATUSFLAG2_ERROR_FLOWN: "purse overflow/underflow",
    STATUSFLAG2_ERROR_MEMORY: "memory error",
    STATUSFLAG2_ERROR_WRITELIMIT: "write count limit exceeded",
}


@dataclass(frozen=True)
class StatusFlags:
    """Card-reported outcome of a read/write. flag1 == 0 is the only success."""
    flag1: int
    flag2: int

    @property
    def ok(self) -> bool:
        return self.flag1 == STATUSFLAG1_NORMAL

    def describe(self) -> str:
        if self.ok:
            return "Status: normal"
        reason = STATUSFLAG2_NAMES.get(self.flag2, "unknown")
        return f"Status1={self.flag1:02X} Status2={self.flag2:02X} ({reason})"


def _status_flags(response: CommandResponse) -> StatusFlags:
    if len(response.data) < 2:
        raise MalformedResponse(f"response carries no status flags: {get_hex_string(response.raw)}")
    return StatusFlags(response.data[0], response.data[1])


class ReadResponse(CommandResponse):
    """Read Without Encryption reply: status flags, block count, block data"""

    def __init__(self, raw: Union[bytes, CommandResponse]):
        super().__init__(bytes(raw))
        self.status = _status_flags(self)
        if self.status.ok:
            self.block_count = self.data[2] if len(self.data) > 2 else 0
            self.block_data: Optional[bytes] = self.data[3:]
        else:
            self.block_count = 0
            self.block_data = None

    @property
    def blocks(self) -> List[bytes]:
        if not self.block_data:
            return []
        data = self.block_data
        return [data[i:i + BLOCK_SIZE] for i in range(0, len(data) - BLOCK_SIZE + 1, BLOCK_SIZE)]


class WriteResponse(CommandResponse):
    """Write Without Encryption reply: status flags only"""

    def __init__(self, raw: Union[bytes, CommandResponse]):
        super().__init__(bytes(raw))
        self.status = _status_flags(self)

"""
FeliCa data fields carried inside command and response packets.

IDm and PMm identify the polled card, system and service codes select an
area of its file system, and blocks / block list elements address the
16-byte storage units inside a service.
"""

from dataclasses import dataclass, field
from typing import Tuple

from .utils import get_hex_string, get_bin_string


def _as_bytes(value, name: str, size: int = None) -> bytes:
    data = bytes(value)
    if size is not None and len(data) != size:
        raise ValueError(f"{name} must be {size} bytes, got {len(data)}")
    return data


@dataclass(frozen=True)
class IDm:
    """Card identifier: 2-byte manufacturer code + 6-byte card identification"""
    raw: bytes

    def __post_init__(self):
        object.__setattr__(self, "raw", _as_bytes(self.raw, "IDm", 8))

    @property
    def manufacture_code(self) -> bytes:
        return self.raw[:2]

    @property
    def card_identification(self) -> bytes:
        return self.raw[2:]

    def to_bytes(self) -> bytes:
        return self.raw

    def __bytes__(self) -> bytes:
        return self.raw

    def __len__(self) -> int:
        return len(self.raw)

    def hex(self) -> str:
        return self.raw.hex().upper()

    def describe(self) -> str:
        ident = self.card_identification
        return "\n".join([
            f"IDm (8byte) : {get_hex_string(self.raw)}",
            f" Manufacturer code: {get_hex_string(self.manufacture_code)}",
            " Card identification:",
            f"   Equipment: {get_hex_string(ident, 0, 2)}",
            f"   Date: {get_hex_string(ident, 2, 2)}",
            f"   Serial: {get_hex_string(ident, 4, 2)}",
        ])

    def __str__(self) -> str:
        return f"IDm({self.hex()})"


@dataclass(frozen=True)
class PMm:
    """Manufacture parameters: 2-byte IC code + 6-byte maximum response time"""
    raw: bytes

    # B3..B8 of the maximum response time parameter
    RESPONSE_TIME_LABELS = (
        "request service", "request response", "authenticate",
        "read", "write", "reserved",
    )

    def __post_init__(self):
        object.__setattr__(self, "raw", _as_bytes(self.raw, "PMm", 8))

    @property
    def ic_code(self) -> bytes:
        return self.raw[:2]

    @property
    def rom_type(self) -> int:
        return self.raw[0]

    @property
    def ic_type(self) -> int:
        return self.raw[1]

    @property
    def maximum_response_time(self) -> bytes:
        return self.raw[2:]

    def to_bytes(self) -> bytes:
        return self.raw

    def __bytes__(self) -> bytes:
        return self.raw

    def __len__(self) -> int:
        return len(self.raw)

    def hex(self) -> str:
        return self.raw.hex().upper()

    def describe(self) -> str:
        lines = [
            "PMm (manufacture parameters)",
            f" IC code (2byte): {get_hex_string(self.ic_code)}",
            f"   ROM type: {self.rom_type:02X}",
            f"   IC type: {self.ic_type:02X}",
            " Maximum response time (6byte)",
        ]
        for i, label in enumerate(self.RESPONSE_TIME_LABELS):
            lines.append(f"  B{i + 3}({label}): {get_bin_string(self.maximum_response_time, i, 1)}")
        return "\n".join(lines)

    def __str__(self) -> str:
        return f"PMm({self.hex()})"


@dataclass(frozen=True)
class SystemCode:
    """System code as sent on the wire (big-endian in polling)"""
    raw: bytes

    def __post_init__(self):
        object.__setattr__(self, "raw", _as_bytes(self.raw, "SystemCode"))

    @classmethod
    def from_int(cls, code: int) -> "SystemCode":
        return cls(code.to_bytes(2, "big"))

    @property
    def value(self) -> int:
        return int.from_bytes(self.raw, "big")

    def to_bytes(self) -> bytes:
        return self.raw

    def __bytes__(self) -> bytes:
        return self.raw

    def describe(self) -> str:
        return f"System code : {get_hex_string(self.raw)}"


@dataclass(frozen=True)
class ServiceCode:
    """Service code as sent on the wire (little-endian)"""
    raw: bytes

    def __post_init__(self):
        object.__setattr__(self, "raw", _as_bytes(self.raw, "ServiceCode"))

    @classmethod
    def from_int(cls, code: int) -> "ServiceCode":
        return cls(code.to_bytes(2, "little"))

    @property
    def value(self) -> int:
        return int.from_bytes(self.raw, "little")

    def to_bytes(self) -> bytes:
        return self.raw

    def __bytes__(self) -> bytes:
        return self.raw

    def describe(self) -> str:
        return f"Service code : {get_hex_string(self.raw)}"


BLOCK_SIZE = 16


@dataclass(frozen=True)
class Block:
    """16-byte storage unit of a service"""
    raw: bytes = field(default=bytes(BLOCK_SIZE))

    def __post_init__(self):
        object.__setattr__(self, "raw", _as_bytes(self.raw, "Block", BLOCK_SIZE))

    def to_bytes(self) -> bytes:
        return self.raw

    def __bytes__(self) -> bytes:
        return self.raw

    def describe(self) -> str:
        return f"Data : {get_hex_string(self.raw)}"


class BlockListElement:
    """
    One entry of a block list (2 or 3 bytes).

    The first byte carries the length bit (0x80 = 2-byte form), the access
    mode (bits 6-4) and the service code list order (bits 3-0). The 2-byte
    form holds a single block number byte, the 3-byte form a 16-bit block
    number in little-endian order.
    """

    LENGTH_2_BYTE = 0x80
    LENGTH_3_BYTE = 0x00
    ACCESS_MODE_DECREMENT = 0x00
    ACCESS_MODE_CACHEBACK = 0x10
    ACCESS_MODE_MASK = 0x70

    __slots__ = ("access_mode", "service_code_list_order", "block_number")

    def __init__(self, access_mode: int, service_code_list_order: int, *block_number: int):
        """
        Args:
            access_mode: ACCESS_MODE_DECREMENT or ACCESS_MODE_CACHEBACK
            service_code_list_order: index into the service code list (0-15)
            block_number: one byte, or two bytes high byte first
        """
        if len(block_number) not in (1, 2):
            raise ValueError("block number must be 1 or 2 bytes")
        if any(not 0 <= b <= 0xFF for b in block_number):
            raise ValueError(f"block number bytes out of range: {block_number}")
        self.access_mode = access_mode & self.ACCESS_MODE_MASK
        self.service_code_list_order = service_code_list_order & 0x0F
        self.block_number: Tuple[int, ...] = tuple(block_number)

    @classmethod
    def for_block(cls, number: int, order: int = 0,
                  access_mode: int = ACCESS_MODE_DECREMENT) -> "BlockListElement":
        """Element for a block number, using the short form when it fits in one byte"""
        if not 0 <= number <= 0xFFFF:
            raise ValueError(f"block number out of range: {number}")
        if number <= 0xFF:
            return cls(access_mode, order, number)
        return cls(access_mode, order, number >> 8, number & 0xFF)

    @classmethod
    def from_bytes(cls, raw) -> "BlockListElement":
        """Parse an encoded element, picking the form from the length bit"""
        raw = bytes(raw)
        if not raw:
            raise ValueError("empty block list element")
        flag = raw[0]
        if flag & cls.LENGTH_2_BYTE:
            if len(raw) != 2:
                raise ValueError(f"2-byte block list element expected, got {len(raw)} bytes")
            return cls(flag, flag, raw[1])
        if len(raw) != 3:
            raise ValueError(f"3-byte block list element expected, got {len(raw)} bytes")
        return cls(flag, flag, raw[2], raw[1])

    @property
    def is_two_byte(self) -> bool:
        return bool(self.flag & self.LENGTH_2_BYTE)

    @property
    def flag(self) -> int:
        length_bit = self.LENGTH_2_BYTE if len(self.block_number) == 1 else self.LENGTH_3_BYTE
        return self.access_mode | length_bit | self.service_code_list_order

    @property
    def number(self) -> int:
        if len(self.block_number) == 1:
            return self.block_number[0]
        return (self.block_number[0] << 8) | self.block_number[1]

    def to_bytes(self) -> bytes:
        if self.is_two_byte:
            return bytes([self.flag, self.block_number[0]])
        # little endian
        return bytes([self.flag, self.block_number[1], self.block_number[0]])

    def __bytes__(self) -> bytes:
        return self.to_bytes()

    def __len__(self) -> int:
        return 2 if self.is_two_byte else 3

    def __eq__(self, other) -> bool:
        if not isinstance(other, BlockListElement):
            return NotImplemented
        return self.to_bytes() == other.to_bytes()

    def __hash__(self) -> int:
        return hash(self.to_bytes())

    def __repr__(self) -> str:
        return (f"BlockListElement(access_mode=0x{self.access_mode:02X}, "
                f"order={self.service_code_list_order}, number=0x{self.number:X})")

    def describe(self) -> str:
        return "\n".join([
            "Block list element",
            f"  Length : {len(self)} byte",
            f"  Access mode : {get_bin_string([self.flag & 0xF0])}",
            f"  Service code list order: {self.service_code_list_order:02X}",
            f"  Block number : {get_hex_string(self.block_number)}",
        ])

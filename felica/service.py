"""
Command payload composition: service code lists, block lists and the fixed
payload layouts used by polling and the unencrypted read/write commands.
"""

from typing import Iterable, List, Sequence, Union

from .data import BLOCK_SIZE, BlockListElement, ServiceCode, SystemCode

# Polling request codes
REQUEST_CODE_NONE = 0x00
REQUEST_CODE_SYSTEM = 0x01
REQUEST_CODE_COMMUNICATION = 0x02

MAX_SERVICES = 16

ServiceCodeLike = Union[int, ServiceCode]


def _service_code(code: ServiceCodeLike) -> ServiceCode:
    if isinstance(code, ServiceCode):
        return code
    return ServiceCode.from_int(code)


class Service:
    """A service code list followed by a block list"""

    def __init__(self, service_codes: Sequence[ServiceCodeLike],
                 block_list_elements: Iterable[BlockListElement] = ()):
        self.service_codes: List[ServiceCode] = [_service_code(c) for c in service_codes]
        self.block_list_elements: List[BlockListElement] = list(block_list_elements)

    def to_bytes(self) -> bytes:
        return (b"".join(bytes(s) for s in self.service_codes)
                + b"".join(bytes(b) for b in self.block_list_elements))

    def __bytes__(self) -> bytes:
        return self.to_bytes()

    def describe(self) -> str:
        parts = [s.describe() for s in self.service_codes]
        parts += [b.describe() for b in self.block_list_elements]
        return "\n".join(parts)


def block_request_payload(service_codes: Sequence[ServiceCodeLike],
                          elements: Sequence[BlockListElement],
                          block_data: bytes = b"") -> bytes:
    """
    Build the body shared by read/write commands:
    [service count][service codes][block count][block list][block data]
    """
    if not 1 <= len(service_codes) <= MAX_SERVICES:
        raise ValueError(f"service count must be 1..{MAX_SERVICES}, got {len(service_codes)}")
    if not elements:
        raise ValueError("block list is empty")
    for element in elements:
        if element.service_code_list_order >= len(service_codes):
            raise ValueError(f"service code list order {element.service_code_list_order} "
                             f"has no matching service code")
    codes = b"".join(bytes(_service_code(c)) for c in service_codes)
    block_list = b"".join(bytes(e) for e in elements)
    return (bytes([len(service_codes)]) + codes
            + bytes([len(elements)]) + block_list + bytes(block_data))


def polling_payload(system_code: Union[int, SystemCode],
                    request_code: int = REQUEST_CODE_SYSTEM,
                    time_slot: int = 0x00) -> bytes:
    """[system code (big endian)][request code][time slot]"""
    if not isinstance(system_code, SystemCode):
        system_code = SystemCode.from_int(system_code)
    return bytes(system_code) + bytes([request_code, time_slot])


def read_payload(service_code: int, block_address: int) -> bytes:
    """Single service, single block, 2-byte block list element"""
    if not 0 <= block_address <= 0xFF:
        raise ValueError(f"block address out of range: {block_address}")
    return bytes([
        0x01,                       # number of services
        service_code & 0xFF,        # service code (little endian)
        (service_code >> 8) & 0xFF,
        0x01,                       # number of blocks
        0x80, block_address & 0xFF,  # block list
    ])


def write_payload(service_code: int, block_address: int, data: bytes) -> bytes:
    """
    Single service write starting at block_address.

    The block count is the number of 16-byte blocks in data, so a one
    block write sends 0x01. Each block gets its own consecutive block list
    element.
    """
    data = bytes(data)
    if not data or len(data) % BLOCK_SIZE:
        raise ValueError(f"write data must be a multiple of {BLOCK_SIZE} bytes, got {len(data)}")
    count = len(data) // BLOCK_SIZE
    if block_address + count - 1 > 0xFF:
        raise ValueError(f"blocks 0x{block_address:02X}+{count} do not fit single byte addressing")
    elements = [BlockListElement(BlockListElement.ACCESS_MODE_DECREMENT, 0, block_address + i)
                for i in range(count)]
    return block_request_payload([service_code], elements, data)

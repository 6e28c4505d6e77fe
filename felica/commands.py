"""
FeliCa command and response codes.
"""

from enum import IntEnum
from types import MappingProxyType


class CommandCode(IntEnum):
    """Known FeliCa command/response codes (command = even, response = command + 1)"""

    POLLING = 0x00
    POLLING_RESPONSE = 0x01
    REQUEST_SERVICE = 0x02
    REQUEST_SERVICE_RESPONSE = 0x03
    REQUEST_RESPONSE = 0x04
    REQUEST_RESPONSE_RESPONSE = 0x05
    READ_WO_ENCRYPTION = 0x06
    READ_WO_ENCRYPTION_RESPONSE = 0x07
    WRITE_WO_ENCRYPTION = 0x08
    WRITE_WO_ENCRYPTION_RESPONSE = 0x09
    SEARCH_SERVICECODE = 0x0A
    SEARCH_SERVICECODE_RESPONSE = 0x0B
    REQUEST_SYSTEMCODE = 0x0C
    REQUEST_SYSTEMCODE_RESPONSE = 0x0D
    AUTHENTICATION1 = 0x10
    AUTHENTICATION1_RESPONSE = 0x11
    AUTHENTICATION2 = 0x12
    AUTHENTICATION2_RESPONSE = 0x13
    READ = 0x14
    READ_RESPONSE = 0x15
    WRITE = 0x16
    WRITE_RESPONSE = 0x17


_COMMANDS = (
    (CommandCode.POLLING, "Polling"),
    (CommandCode.REQUEST_SERVICE, "Request Service"),
    (CommandCode.REQUEST_RESPONSE, "Request Response"),
    (CommandCode.READ_WO_ENCRYPTION, "Read Without Encryption"),
    (CommandCode.WRITE_WO_ENCRYPTION, "Write Without Encryption"),
    (CommandCode.SEARCH_SERVICECODE, "Search Service"),
    (CommandCode.REQUEST_SYSTEMCODE, "Request System Code"),
    (CommandCode.AUTHENTICATION1, "Authentication1"),
    (CommandCode.AUTHENTICATION2, "Authentication2"),
    (CommandCode.READ, "Read"),
    (CommandCode.WRITE, "Write"),
)


def _build_names():
    names = {}
    for code, name in _COMMANDS:
        names[int(code)] = name
        names[int(code) + 1] = f"{name}(response)"
    return MappingProxyType(names)


# code -> display name, for both commands and responses
COMMAND_NAMES = _build_names()


def is_supported(code: int) -> bool:
    """True if code is a registered command or response code"""
    return code in COMMAND_NAMES


def is_response(code: int) -> bool:
    return is_supported(code) and code % 2 == 1


def command_name(code: int) -> str:
    """Display name for code, ``Unknown(XX)`` when unregistered"""
    return COMMAND_NAMES.get(code, f"Unknown({code & 0xFF:02X})")


def response_code_for(command_code: int) -> int:
    """Response code paired with a command code"""
    if not is_supported(command_code) or is_response(command_code):
        raise ValueError(f"0x{command_code & 0xFF:02X} is not a command code")
    return command_code + 1

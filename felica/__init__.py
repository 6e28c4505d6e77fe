"""
FeliCa Card Access Module
=========================
Packet codec and card operations for FeliCa contactless cards.

Supports:
- Polling (card discovery, IDm/PMm)
- Read Without Encryption (single and multi-block)
- Write Without Encryption
- Transports: nfcpy (USB), pyscard (PC/SC transparent command), any callable
"""

from .card import (
    FeliCa,
    SYSTEMCODE_ANY, SYSTEMCODE_COMMON, SYSTEMCODE_CYBERNE,
    SYSTEMCODE_EDY, SYSTEMCODE_SUICA, SYSTEMCODE_PASMO,
    SERVICE_SUICA_INOUT, SERVICE_SUICA_HISTORY,
    WRITE_OK, WRITE_FAILED,
)
from .commands import CommandCode, COMMAND_NAMES, command_name, is_supported
from .data import IDm, PMm, SystemCode, ServiceCode, Block, BlockListElement
from .errors import (
    FeliCaError, UnsupportedCommand, FrameTooLarge, MalformedPacket,
    MalformedResponse, NoSession, TransportError, DiscoveryError,
)
from .packet import (
    CommandPacket, CommandResponse, PollingResponse,
    ReadResponse, WriteResponse, StatusFlags,
)
from .service import Service, block_request_payload
from .transport import Transport, CallableTransport, NfcpyTransport, PcscTransport
from .utils import SMARTCARD_AVAILABLE, NFCPY_AVAILABLE, WEBSOCKETS_AVAILABLE

__version__ = "1.0.0"

__all__ = [
    'FeliCa',
    'SYSTEMCODE_ANY', 'SYSTEMCODE_COMMON', 'SYSTEMCODE_CYBERNE',
    'SYSTEMCODE_EDY', 'SYSTEMCODE_SUICA', 'SYSTEMCODE_PASMO',
    'SERVICE_SUICA_INOUT', 'SERVICE_SUICA_HISTORY',
    'WRITE_OK', 'WRITE_FAILED',
    'CommandCode', 'COMMAND_NAMES', 'command_name', 'is_supported',
    'IDm', 'PMm', 'SystemCode', 'ServiceCode', 'Block', 'BlockListElement',
    'FeliCaError', 'UnsupportedCommand', 'FrameTooLarge', 'MalformedPacket',
    'MalformedResponse', 'NoSession', 'TransportError', 'DiscoveryError',
    'CommandPacket', 'CommandResponse', 'PollingResponse',
    'ReadResponse', 'WriteResponse', 'StatusFlags',
    'Service', 'block_request_payload',
    'Transport', 'CallableTransport', 'NfcpyTransport', 'PcscTransport',
    'SMARTCARD_AVAILABLE', 'NFCPY_AVAILABLE', 'WEBSOCKETS_AVAILABLE',
]

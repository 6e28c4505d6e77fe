"""
FeliCa card operations (polling, read/write without encryption).
Supports Suica, Pasmo, Edy and other FeliCa cards on any Transport.
"""

import logging
import threading
from contextlib import contextmanager
from typing import Callable, Iterator, List, Optional, Sequence, Tuple, Union

from .commands import CommandCode
from .data import Block, BlockListElement, IDm, PMm
from .errors import DiscoveryError, MalformedResponse, NoSession, TransportError
from .packet import CommandPacket, CommandResponse, PollingResponse, ReadResponse, StatusFlags, WriteResponse
from .service import block_request_payload, polling_payload, read_payload, write_payload
from .transport import CallableTransport, Transport
from .utils import get_hex_string

logger = logging.getLogger(__name__)

# System codes
SYSTEMCODE_ANY = 0xFFFF
SYSTEMCODE_COMMON = 0xFE00
SYSTEMCODE_CYBERNE = 0x0003
SYSTEMCODE_EDY = 0xFE00       # common area
SYSTEMCODE_SUICA = 0x0003     # cyberne area
SYSTEMCODE_PASMO = 0x0003     # cyberne area

# Service codes for Suica/Pasmo (little-endian on the wire)
SERVICE_SUICA_INOUT = 0x108F
SERVICE_SUICA_HISTORY = 0x090F

# Most blocks a single read request may name
MAX_READ_BLOCKS = 15

WRITE_OK = 0
WRITE_FAILED = -1


class FeliCa:
    """
    One FeliCa card session on a transport.

    polling() discovers a card and stores its IDm/PMm; the per-card commands
    need that session. Requests are strictly one at a time: every operation
    holds the session lock, and session() keeps it for a whole
    polling -> read/write sequence when the instance is shared.
    """

    def __init__(self, transport: Union[Transport, Callable[[bytes], bytes]]):
        if not isinstance(transport, Transport):
            transport = CallableTransport(transport)
        self.transport = transport
        self.idm: Optional[IDm] = None
        self.pmm: Optional[PMm] = None
        self.last_status: Optional[StatusFlags] = None
        self._lock = threading.RLock()

    @property
    def has_session(self) -> bool:
        return self.idm is not None

    @contextmanager
    def session(self) -> Iterator["FeliCa"]:
        """Hold exclusive use of this card for a sequence of operations"""
        with self._lock:
            yield self

    def execute_raw(self, data: bytes) -> bytes:
        """Send raw packet bytes, return the raw reply"""
        with self._lock:
            logger.debug(f"FeliCa >> {get_hex_string(data)}")
            response = self.transport.transceive(bytes(data))
            if not response:
                raise TransportError("FeliCa: no response from transport")
            logger.debug(f"FeliCa << {get_hex_string(response)}")
            return bytes(response)

    def execute(self, packet: CommandPacket) -> CommandResponse:
        """Send a command packet and decode the reply"""
        return CommandResponse(self.execute_raw(packet.to_bytes()))

    def _require_session(self, operation: str) -> IDm:
        if self.idm is None:
            raise NoSession(f"no IDm available, poll a card before {operation}")
        return self.idm

    def _read_response(self, packet: CommandPacket) -> Optional[ReadResponse]:
        """Decode a read reply into last_status, None when the reply has no status flags"""
        raw = self.execute_raw(packet.to_bytes())
        try:
            response = ReadResponse(raw)
        except MalformedResponse as e:
            logger.warning(f"FeliCa read reply unreadable: {e}")
            self.last_status = None
            return None
        self.last_status = response.status
        return response

    def polling(self, system_code: int = SYSTEMCODE_ANY) -> Tuple[IDm, PMm]:
        """
        Discover a card answering to system_code and make it the session card.

        Raises:
            DiscoveryError if no card answered
            MalformedResponse if the reply has no IDm/PMm
        """
        with self._lock:
            self.idm = None
            self.pmm = None
            self.last_status = None

            packet = CommandPacket(CommandCode.POLLING, None, polling_payload(system_code))
            try:
                raw = self.execute_raw(packet.to_bytes())
            except TransportError as e:
                raise DiscoveryError(f"FeliCa polling failed for system code {system_code:04X}: {e}") from e

            response = PollingResponse(raw)
            self.idm = response.idm
            self.pmm = response.pmm
            logger.info(f"FeliCa IDm: {get_hex_string(self.idm.raw)} PMm: {get_hex_string(self.pmm.raw)}")
            return self.idm, self.pmm

    def read_without_encryption(self, service_code: int, addr: int) -> Optional[bytes]:
        """
        Read one block of an unencrypted service.

        Returns:
            Block data, or None when the card reports an error
            (both status flags are kept in last_status) or the reply
            is too short to carry them (last_status is None)
        """
        with self._lock:
            idm = self._require_session("read")
            packet = CommandPacket(CommandCode.READ_WO_ENCRYPTION, idm, read_payload(service_code, addr))
            response = self._read_response(packet)
            if response is None:
                return None
            if not response.status.ok:
                logger.warning(f"FeliCa read {service_code:04X}/{addr:02X} error: {response.status.describe()}")
                return None
            return response.block_data

    def read_blocks(self, service_code: int, block_numbers: Sequence[int]) -> Optional[List[Block]]:
        """Read several blocks of one unencrypted service in a single request"""
        if not 1 <= len(block_numbers) <= MAX_READ_BLOCKS:
            raise ValueError(f"block count must be 1..{MAX_READ_BLOCKS}, got {len(block_numbers)}")
        elements = [BlockListElement.for_block(n) for n in block_numbers]

        with self._lock:
            idm = self._require_session("read")
            packet = CommandPacket(CommandCode.READ_WO_ENCRYPTION, idm,
                                   block_request_payload([service_code], elements))
            response = self._read_response(packet)
            if response is None:
                return None
            if not response.status.ok:
                logger.warning(f"FeliCa read {service_code:04X} error: {response.status.describe()}")
                return None
            blocks = [Block(b) for b in response.blocks]
            if len(blocks) != len(block_numbers):
                logger.warning(f"FeliCa read returned {len(blocks)} of {len(block_numbers)} blocks")
            return blocks

    def write_without_encryption(self, service_code: int, addr: int, data: bytes) -> int:
        """
        Write 16-byte block(s) to an unencrypted service starting at addr.

        Returns:
            WRITE_OK (0) if the card reported success, WRITE_FAILED (-1) for a
            card-reported error or an unreadable reply
        """
        with self._lock:
            idm = self._require_session("write")
            packet = CommandPacket(CommandCode.WRITE_WO_ENCRYPTION, idm,
                                   write_payload(service_code, addr, data))
            raw = self.execute_raw(packet.to_bytes())
            try:
                response = WriteResponse(raw)
            except MalformedResponse as e:
                logger.warning(f"FeliCa write reply unreadable: {e}")
                self.last_status = None
                return WRITE_FAILED
            self.last_status = response.status

            if not response.status.ok:
                logger.warning(f"FeliCa write {service_code:04X}/{addr:02X} error: {response.status.describe()}")
                return WRITE_FAILED
            return WRITE_OK

"""
Transports that carry encoded FeliCa packets to a card and back.

Implement ``Transport.transceive`` to add a new host stack. A transport
sends exactly one packet and returns exactly one reply; it never retries.
Failures (no card, card moved away, link error) are raised as
``TransportError`` and never returned as an empty reply.
"""

import logging
from abc import ABC, abstractmethod
from typing import Callable, List, Optional

from .errors import TransportError
from .utils import get_hex_string, get_readers, SMARTCARD_AVAILABLE, NFCPY_AVAILABLE

if SMARTCARD_AVAILABLE:
    from smartcard.Exceptions import CardConnectionException, NoCardException

if NFCPY_AVAILABLE:
    import nfc
    import nfc.clf

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 1.0


class Transport(ABC):
    """
    Abstract half-duplex channel to a FeliCa card.

    Example implementation:

        class LoopbackTransport(Transport):
            def transceive(self, data: bytes) -> bytes:
                return my_reader.exchange(data)
    """

    name = "base"

    @abstractmethod
    def transceive(self, data: bytes) -> bytes:
        """
        Send one encoded packet and wait for the reply.

        Args:
            data: Complete packet including its length byte

        Returns:
            Raw reply including its length byte

        Raises:
            TransportError if no usable reply was received
        """
        pass

    def is_available(self) -> bool:
        """Check if the libraries this transport needs are installed"""
        return True

    def close(self):
        """Release the underlying channel"""
        pass

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False


class CallableTransport(Transport):
    """Wraps a plain ``transceive(bytes) -> bytes`` function"""

    name = "callable"

    def __init__(self, func: Callable[[bytes], Optional[bytes]]):
        self.func = func

    def transceive(self, data: bytes) -> bytes:
        try:
            response = self.func(bytes(data))
        except TransportError:
            raise
        except Exception as e:
            raise TransportError(f"transceive failed: {e}") from e
        if not response:
            raise TransportError("execute transceive fail: no response")
        return bytes(response)


class NfcpyTransport(Transport):
    """Direct USB access through an nfcpy ContactlessFrontend"""

    name = "nfcpy"

    # 212 kbps FeliCa, polling with system code FFFF
    TARGET = "212F"
    SENSF_REQ = bytes.fromhex("00FFFF0100")

    def __init__(self, clf, timeout: float = DEFAULT_TIMEOUT):
        self.clf = clf
        self.timeout = timeout

    def is_available(self) -> bool:
        return NFCPY_AVAILABLE

    @classmethod
    def open(cls, path: str = "usb", timeout: float = DEFAULT_TIMEOUT,
             iterations: int = 10, interval: float = 0.2) -> "NfcpyTransport":
        """Open the reader at path and wait for a FeliCa target to come into range"""
        if not NFCPY_AVAILABLE:
            raise TransportError("nfcpy not installed")
        try:
            clf = nfc.ContactlessFrontend(path)
        except IOError as e:
            raise TransportError(f"Cannot access NFC reader {path}: {e}") from e

        target = clf.sense(nfc.clf.RemoteTarget(cls.TARGET, sensf_req=cls.SENSF_REQ),
                           iterations=iterations, interval=interval)
        if target is None:
            clf.close()
            raise TransportError("No FeliCa card detected")
        logger.info(f"nfcpy: FeliCa target found on {path}")
        return cls(clf, timeout)

    def transceive(self, data: bytes) -> bytes:
        logger.debug(f"nfcpy >> {get_hex_string(data)}")
        try:
            response = self.clf.exchange(bytearray(data), self.timeout)
        except Exception as e:
            if NFCPY_AVAILABLE and isinstance(e, nfc.clf.CommunicationError):
                raise TransportError(f"nfcpy exchange failed: {type(e).__name__} {e}") from e
            raise
        if not response:
            raise TransportError("nfcpy exchange returned no data")
        logger.debug(f"nfcpy << {get_hex_string(response)}")
        return bytes(response)

    def close(self):
        if self.clf is not None:
            self.clf.close()
            self.clf = None


class PcscTransport(Transport):
    """
    PC/SC access through pyscard using the transparent FeliCa command
    (FF 00 00 00 Lc <packet>) understood by Sony PaSoRi and similar readers.
    """

    name = "pcsc"

    def __init__(self, connection):
        self.connection = connection

    def is_available(self) -> bool:
        return SMARTCARD_AVAILABLE

    @classmethod
    def open(cls, reader_index: int = 0) -> "PcscTransport":
        """Connect to the card on the reader_index-th PC/SC reader"""
        if not SMARTCARD_AVAILABLE:
            raise TransportError("pyscard not installed")
        reader_list = get_readers()
        if len(reader_list) <= reader_index:
            raise TransportError(f"No PC/SC reader at index {reader_index} ({len(reader_list)} found)")
        reader = reader_list[reader_index]
        connection = reader.createConnection()
        try:
            connection.connect()
        except (NoCardException, CardConnectionException) as e:
            raise TransportError(f"No card on reader {reader}: {e}") from e
        logger.info(f"PC/SC: connected to {reader}")
        return cls(connection)

    @staticmethod
    def wrap(data: bytes) -> List[int]:
        """Build the transparent APDU carrying a FeliCa packet"""
        return [0xFF, 0x00, 0x00, 0x00, len(data)] + list(data)

    def transceive(self, data: bytes) -> bytes:
        apdu = self.wrap(data)
        try:
            response, sw1, sw2 = self.connection.transmit(apdu)
        except Exception as e:
            if SMARTCARD_AVAILABLE and isinstance(e, CardConnectionException):
                raise TransportError(f"PC/SC transmit failed: {e}") from e
            raise
        logger.debug(f"APDU: {get_hex_string(apdu)} -> {get_hex_string(response)} SW={sw1:02X}{sw2:02X}")

        if sw1 == 0x6A and sw2 == 0x81:
            raise TransportError("PC/SC transparent FeliCa commands not supported by this reader")
        if sw1 != 0x90 or not response:
            raise TransportError(f"PC/SC transparent command failed: SW={sw1:02X}{sw2:02X}")

        response = list(response)
        # some readers strip the FeliCa length byte; the reply code is the command code + 1
        expected = data[1] + 1 if len(data) > 1 else None
        full = response[0] == len(response) and len(response) > 1 and response[1] == expected
        if not full and response[0] == expected:
            response = [len(response) + 1] + response
        return bytes(response)

    def close(self):
        if self.connection is not None:
            try:
                self.connection.disconnect()
            finally:
                self.connection = None

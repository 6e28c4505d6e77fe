"""
Exceptions raised by the FeliCa codec, transports and card operations.

Card-reported failures (a non-zero status flag) are not exceptions; they come
back as ``StatusFlags`` results from the response decoders.
"""


class FeliCaError(Exception):
    """Base class for all FeliCa errors"""


class UnsupportedCommand(FeliCaError):
    """Command code is not in the registry"""

    def __init__(self, code: int):
        self.code = code
        super().__init__(f"commandCode : 0x{code & 0xFF:02X} not supported.")


class FrameTooLarge(FeliCaError):
    """Encoded packet would not fit in the single length byte"""

    def __init__(self, length: int):
        self.length = length
        super().__init__(f"packet length {length} exceeds 255 bytes")


class MalformedPacket(FeliCaError):
    """Raw bytes cannot be parsed as a packet"""


class MalformedResponse(MalformedPacket):
    """Response buffer is too short for its fixed layout"""


class NoSession(FeliCaError):
    """Per-card command issued before a successful polling"""


class TransportError(FeliCaError):
    """The transceive call did not return a usable reply"""


class DiscoveryError(TransportError):
    """Polling got no usable reply from any card"""

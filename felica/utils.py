"""
Shared utilities and dependency checks for FeliCa transports.
"""

import logging

logger = logging.getLogger(__name__)

# Check for pyscard
try:
    from smartcard.System import readers
    from smartcard.util import toHexString
    SMARTCARD_AVAILABLE = True
except ImportError:
    SMARTCARD_AVAILABLE = False
    readers = None
    logger.info("pyscard not installed - PC/SC transport disabled")

# Check for nfcpy
try:
    import nfc
    NFCPY_AVAILABLE = True
except ImportError:
    NFCPY_AVAILABLE = False
    nfc = None
    logger.info("nfcpy not installed - USB transport disabled")

# Check for websockets
try:
    import websockets
    WEBSOCKETS_AVAILABLE = True
except ImportError:
    WEBSOCKETS_AVAILABLE = False
    websockets = None


def get_hex_string(data, start: int = 0, length: int = None) -> str:
    """Convert bytes/list to hex string"""
    data = list(data)
    if length is None:
        length = len(data) - start
    data = data[start:start + length]
    if SMARTCARD_AVAILABLE:
        return toHexString(data)
    return ' '.join(f'{b:02X}' for b in data)


def get_bin_string(data, start: int = 0, length: int = None) -> str:
    """Convert bytes/list to space separated 8-bit binary string"""
    data = list(data)
    if length is None:
        length = len(data) - start
    return ' '.join(f'{b:08b}' for b in data[start:start + length])


def get_readers():
    """Get list of available PC/SC readers"""
    if not SMARTCARD_AVAILABLE:
        return []
    try:
        return readers()
    except Exception as e:
        logger.error(f"Error getting readers: {e}")
        return []

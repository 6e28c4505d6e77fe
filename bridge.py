"""
FeliCa Bridge Server - WebSocket Server Implementation
======================================================
WebSocket server exposing FeliCa card operations to web applications.

Messages (JSON, keyed by "type"):
- polling      {"system_code": "FFFF"}
- read         {"service_code": "090F", "block": 0}
- read_blocks  {"service_code": "090F", "blocks": [0, 1, 2]}
- write        {"service_code": "1009", "block": 0, "data": "<32 hex chars>"}
- get_status, ping

Port: localhost:3005
"""

import argparse
import asyncio
import json
import logging
import sys
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime
from enum import Enum
from functools import partial
from typing import Any, Callable, Dict, Optional, Set

try:
    import websockets
except ImportError:
    print("ERROR: websockets not installed")
    print("Run: pip install websockets")
    sys.exit(1)

from felica import (
    FeliCa, FeliCaError, NoSession, Transport, NfcpyTransport, PcscTransport,
    SYSTEMCODE_ANY, WRITE_OK, NFCPY_AVAILABLE, SMARTCARD_AVAILABLE,
)

# Configuration
HOST = "localhost"
PORT = 3005
DEFAULT_DEVICE = "usb"
DEFAULT_TIMEOUT = 10.0
LOG_FILE = "felica_bridge.log"

logger = logging.getLogger(__name__)


class BridgeState(Enum):
    IDLE = "idle"
    BUSY = "busy"


def parse_code(value, name: str) -> int:
    """Accept an int or a hex string ("090F", "0x090f") for a 2-byte code"""
    if isinstance(value, int):
        code = value
    elif isinstance(value, str) and value:
        code = int(value, 16)
    else:
        raise ValueError(f"{name} is required")
    if not 0 <= code <= 0xFFFF:
        raise ValueError(f"{name} out of range: {value}")
    return code


def make_transport_factory(device: str) -> Callable[[], Transport]:
    """
    Build a factory for the configured device:
    "pcsc" / "pcsc:<index>" for PC/SC readers, any other value is an nfcpy path.
    """
    if device == "pcsc" or device.startswith("pcsc:"):
        index = int(device.split(":", 1)[1]) if ":" in device else 0
        return partial(PcscTransport.open, index)
    return partial(NfcpyTransport.open, device)


class FeliCaBridge:
    """FeliCa WebSocket bridge"""

    VERSION = "1.0.0"

    def __init__(self, transport_factory: Callable[[], Transport], timeout: float = DEFAULT_TIMEOUT):
        """
        Args:
            transport_factory: Opens a transport to a card in range.
                               Called again for every polling request.
            timeout: Maximum seconds for one card operation
        """
        self.transport_factory = transport_factory
        self.timeout = timeout
        self.state = BridgeState.IDLE
        self.card: Optional[FeliCa] = None
        self.connected_clients: Set = set()
        # single worker: one outstanding card request at a time
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="felica")
        self._pending = 0
        # bumped on timeout; a polling started before that must not install its card
        self._epoch = 0

    async def run_blocking(self, func, *args, timeout: Optional[float] = None):
        """Run a blocking card operation in the worker thread"""
        timeout = timeout or self.timeout
        loop = asyncio.get_running_loop()
        future = loop.run_in_executor(self._executor, partial(func, *args))
        self._pending += 1
        self.state = BridgeState.BUSY
        future.add_done_callback(self._operation_done)
        try:
            return await asyncio.wait_for(asyncio.shield(future), timeout=timeout)
        except asyncio.TimeoutError:
            logger.error(f"Operation timed out after {timeout}s")
            self._abandon_card()
            return {"success": False, "error": f"Timeout after {timeout}s", "error_type": "Timeout"}

    def _operation_done(self, future):
        self._pending -= 1
        if self._pending == 0:
            self.state = BridgeState.IDLE
        if not future.cancelled() and future.exception() is not None:
            logger.error(f"Card operation failed: {future.exception()}")

    def _abandon_card(self):
        """Drop the session after a timeout; the worker may still be using it"""
        self._epoch += 1
        card, self.card = self.card, None
        if card is not None:
            self._executor.submit(card.transport.close)

    def close(self):
        self._close_card()
        self._executor.shutdown(wait=False)

    def _close_card(self):
        if self.card is not None:
            try:
                self.card.transport.close()
            except Exception as e:
                logger.warning(f"Error closing transport: {e}")
            self.card = None

    def _session_card(self) -> FeliCa:
        if self.card is None:
            raise NoSession("no card polled yet")
        return self.card

    @staticmethod
    def _error(e: Exception) -> Dict[str, Any]:
        return {"success": False, "error": str(e), "error_type": type(e).__name__}

    def do_polling(self, system_code: int, epoch: Optional[int] = None) -> Dict[str, Any]:
        """Open a transport to the card in range and poll it"""
        self._close_card()
        transport = None
        try:
            transport = self.transport_factory()
            card = FeliCa(transport)
            idm, pmm = card.polling(system_code)
        except FeliCaError as e:
            logger.warning(f"Polling failed: {e}")
            if transport is not None:
                transport.close()
            return self._error(e)
        if epoch is not None and epoch != self._epoch:
            logger.warning("Polling finished after its request timed out, card dropped")
            transport.close()
            return {"success": False, "error": "Polling result arrived too late", "error_type": "Timeout"}
        self.card = card
        return {
            "success": True,
            "data": {
                "timestamp": datetime.now().isoformat(),
                "system_code": f"{system_code:04X}",
                "idm": idm.hex(),
                "pmm": pmm.hex(),
                "manufacturer": f"0x{int.from_bytes(idm.manufacture_code, 'big'):04X}",
            }
        }

    @staticmethod
    def _card_error(card: FeliCa) -> Dict[str, Any]:
        status = card.last_status
        if status is None:
            return {"success": False, "error": "Malformed card response", "error_type": "MalformedResponse"}
        return {
            "success": False,
            "error": status.describe(),
            "error_type": "CardReportedError",
            "status_flag1": status.flag1,
            "status_flag2": status.flag2,
        }

    def do_read(self, service_code: int, block: int) -> Dict[str, Any]:
        try:
            card = self._session_card()
            data = card.read_without_encryption(service_code, block)
        except (FeliCaError, ValueError) as e:
            return self._error(e)
        if data is None:
            return self._card_error(card)
        return {"success": True, "data": {"block": block, "hex": data.hex().upper()}}

    def do_read_blocks(self, service_code: int, blocks) -> Dict[str, Any]:
        try:
            card = self._session_card()
            result = card.read_blocks(service_code, blocks)
        except (FeliCaError, ValueError) as e:
            return self._error(e)
        if result is None:
            return self._card_error(card)
        data = {"blocks": [{"block": n, "hex": b.raw.hex().upper()} for n, b in zip(blocks, result)]}
        if len(result) < len(blocks):
            data["missing_blocks"] = list(blocks[len(result):])
            return {
                "success": False,
                "error": f"Card returned {len(result)} of {len(blocks)} blocks",
                "error_type": "IncompleteRead",
                "data": data,
            }
        return {"success": True, "data": data}

    def do_write(self, service_code: int, block: int, data: bytes) -> Dict[str, Any]:
        try:
            card = self._session_card()
            result = card.write_without_encryption(service_code, block, data)
        except (FeliCaError, ValueError) as e:
            return self._error(e)
        if result != WRITE_OK:
            return self._card_error(card)
        return {"success": True, "data": {"block": block}}

    def get_status(self) -> Dict[str, Any]:
        card = self.card
        return {
            "state": self.state.value,
            "session": card is not None and card.has_session,
            "idm": card.idm.hex() if card and card.idm else None,
            "nfcpy_available": NFCPY_AVAILABLE,
            "pcsc_available": SMARTCARD_AVAILABLE,
            "version": self.VERSION,
        }

    async def dispatch(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """Run one request and build its reply"""
        msg_type = data.get("type", "")

        try:
            if msg_type == "polling":
                system_code = parse_code(data.get("system_code", SYSTEMCODE_ANY), "system_code")
                result = await self.run_blocking(self.do_polling, system_code, self._epoch)
            elif msg_type == "read":
                service_code = parse_code(data.get("service_code"), "service_code")
                result = await self.run_blocking(self.do_read, service_code, int(data.get("block", 0)))
            elif msg_type == "read_blocks":
                service_code = parse_code(data.get("service_code"), "service_code")
                blocks = [int(b) for b in data.get("blocks", [])]
                result = await self.run_blocking(self.do_read_blocks, service_code, blocks)
            elif msg_type == "write":
                service_code = parse_code(data.get("service_code"), "service_code")
                payload = bytes.fromhex(data.get("data", ""))
                result = await self.run_blocking(self.do_write, service_code, int(data.get("block", 0)), payload)
            elif msg_type == "get_status":
                return {"type": "status_response", **self.get_status()}
            elif msg_type == "ping":
                return {"type": "pong"}
            else:
                return {"type": "error", "error": f"Unknown message type: {msg_type}"}
        except (ValueError, TypeError) as e:
            result = self._error(e)

        return {"type": f"{msg_type}_result", **result}

    async def handle_message(self, websocket, message: str):
        """Handle incoming WebSocket message"""
        try:
            data = json.loads(message)
            logger.info(f"Message: {data.get('type', '')}")
            reply = await self.dispatch(data)
            if not reply.get("success", True):
                logger.info(f"Request failed: {reply.get('error')}")
            await websocket.send(json.dumps(reply, ensure_ascii=False))
        except json.JSONDecodeError:
            await websocket.send(json.dumps({"type": "error", "error": "Invalid JSON"}))
        except AttributeError:
            await websocket.send(json.dumps({"type": "error", "error": "Message must be a JSON object"}))
        except Exception as e:
            logger.error(f"Error: {e}")
            await websocket.send(json.dumps({"type": "error", "error": str(e)}))

    async def handler(self, websocket):
        """Handle WebSocket connection"""
        self.connected_clients.add(websocket)
        logger.info(f"Client connected. Total: {len(self.connected_clients)}")

        await websocket.send(json.dumps({
            "type": "connected",
            "supported_messages": ["polling", "read", "read_blocks", "write", "get_status", "ping"],
            **self.get_status(),
        }))

        try:
            async for message in websocket:
                await self.handle_message(websocket, message)
        except websockets.exceptions.ConnectionClosed:
            pass
        finally:
            self.connected_clients.discard(websocket)
            logger.info(f"Client disconnected. Total: {len(self.connected_clients)}")


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="FeliCa WebSocket bridge")
    parser.add_argument("--host", default=HOST, help="listen address (default: %(default)s)")
    parser.add_argument("--port", type=int, default=PORT, help="listen port (default: %(default)s)")
    parser.add_argument("--device", default=DEFAULT_DEVICE,
                        help="nfcpy device path, or pcsc[:index] (default: %(default)s)")
    parser.add_argument("--timeout", type=float, default=DEFAULT_TIMEOUT,
                        help="card operation timeout [s] (default: %(default)s)")
    parser.add_argument("--debug", action="store_true", help="log packet dumps")
    return parser.parse_args(argv)


def setup_logging(debug: bool = False):
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format='%(asctime)s - %(levelname)s - %(message)s',
        handlers=[
            logging.StreamHandler(),
            logging.FileHandler(LOG_FILE, encoding='utf-8')
        ]
    )


async def serve(args: argparse.Namespace):
    bridge = FeliCaBridge(make_transport_factory(args.device), timeout=args.timeout)

    print("=" * 60)
    print(f"  FeliCa Bridge Server v{FeliCaBridge.VERSION}")
    print("=" * 60)
    print(f"  URL    : ws://{args.host}:{args.port}")
    print(f"  Device : {args.device}")
    print(f"  nfcpy  : {'available' if NFCPY_AVAILABLE else 'not installed'}")
    print(f"  PC/SC  : {'available' if SMARTCARD_AVAILABLE else 'not installed'}")
    print("=" * 60)
    print()

    try:
        async with websockets.serve(bridge.handler, args.host, args.port):
            await asyncio.Future()
    finally:
        bridge.close()


def main(argv=None):
    args = parse_args(argv)
    setup_logging(args.debug)
    try:
        asyncio.run(serve(args))
    except KeyboardInterrupt:
        print("\nServer stopped.")


if __name__ == "__main__":
    main()

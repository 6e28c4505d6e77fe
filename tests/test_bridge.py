import asyncio
import json
import threading

import pytest

from bridge import FeliCaBridge, make_transport_factory, parse_code
from felica import NfcpyTransport, PcscTransport
from felica.transport import CallableTransport

from conftest import BLOCK, FakeTransport, polling_response, response


class FakeWebSocket:
    def __init__(self):
        self.messages = []

    async def send(self, message):
        self.messages.append(json.loads(message))


def make_bridge(*replies):
    transport = FakeTransport(*replies)
    bridge = FeliCaBridge(lambda: CallableTransport(transport), timeout=5.0)
    return bridge, transport


def send(bridge, *messages):
    ws = FakeWebSocket()

    async def run():
        for message in messages:
            if not isinstance(message, str):
                message = json.dumps(message)
            await bridge.handle_message(ws, message)

    asyncio.run(run())
    return ws.messages


def test_parse_code():
    assert parse_code("090F", "service_code") == 0x090F
    assert parse_code("0xFFFF", "system_code") == 0xFFFF
    assert parse_code(3, "system_code") == 3
    with pytest.raises(ValueError):
        parse_code(None, "service_code")
    with pytest.raises(ValueError):
        parse_code("10000", "service_code")


def test_transport_factory_selection():
    factory = make_transport_factory("pcsc:1")
    assert factory.func == PcscTransport.open and factory.args == (1,)
    assert make_transport_factory("pcsc").args == (0,)
    factory = make_transport_factory("usb:054c:06c3")
    assert factory.func == NfcpyTransport.open and factory.args == ("usb:054c:06c3",)


def test_polling_then_read():
    bridge, transport = make_bridge(polling_response(), response(0x07, b"\x00\x00\x01" + BLOCK))
    replies = send(bridge,
                   {"type": "polling", "system_code": "0003"},
                   {"type": "read", "service_code": "090F", "block": 2})
    polling, read = replies
    assert polling["type"] == "polling_result"
    assert polling["success"] is True
    assert polling["data"]["idm"] == "0116040012345678"
    assert polling["data"]["manufacturer"] == "0x0116"
    assert transport.sent[0] == bytes([0x06, 0x00, 0x00, 0x03, 0x01, 0x00])

    assert read == {"type": "read_result", "success": True, "data": {"block": 2, "hex": BLOCK.hex().upper()}}
    bridge.close()


def test_read_without_polling():
    bridge, transport = make_bridge()
    reply, = send(bridge, {"type": "read", "service_code": "090F", "block": 0})
    assert reply["success"] is False
    assert reply["error_type"] == "NoSession"
    assert transport.sent == []
    bridge.close()


def test_polling_failure():
    bridge, _ = make_bridge(None)
    reply, = send(bridge, {"type": "polling"})
    assert reply["success"] is False
    assert reply["error_type"] == "DiscoveryError"
    assert bridge.card is None
    bridge.close()


def test_read_card_error():
    bridge, _ = make_bridge(polling_response(), response(0x07, b"\xFF\xA1"))
    _, reply = send(bridge,
                    {"type": "polling"},
                    {"type": "read", "service_code": "090F", "block": 0x40})
    assert reply["success"] is False
    assert reply["error_type"] == "CardReportedError"
    assert reply["status_flag1"] == 0xFF
    assert reply["status_flag2"] == 0xA1
    bridge.close()


def test_read_blocks():
    bridge, _ = make_bridge(polling_response(), response(0x07, b"\x00\x00\x02" + BLOCK + bytes(16)))
    _, reply = send(bridge,
                    {"type": "polling"},
                    {"type": "read_blocks", "service_code": "090F", "blocks": [0, 1]})
    assert reply["success"] is True
    assert [b["block"] for b in reply["data"]["blocks"]] == [0, 1]
    assert reply["data"]["blocks"][0]["hex"] == BLOCK.hex().upper()
    bridge.close()


def test_write():
    bridge, transport = make_bridge(polling_response(), response(0x09, b"\x00\x00"))
    _, reply = send(bridge,
                    {"type": "polling"},
                    {"type": "write", "service_code": "1009", "block": 1, "data": BLOCK.hex()})
    assert reply == {"type": "write_result", "success": True, "data": {"block": 1}}
    assert transport.sent[1][-16:] == BLOCK
    bridge.close()


def test_write_bad_data():
    bridge, _ = make_bridge(polling_response())
    _, reply = send(bridge,
                    {"type": "polling"},
                    {"type": "write", "service_code": "1009", "block": 1, "data": "zz"})
    assert reply["success"] is False
    assert reply["error_type"] == "ValueError"
    bridge.close()


def test_status_ping_and_bad_messages():
    bridge, _ = make_bridge()
    status, pong, invalid, unknown = send(bridge,
                                          {"type": "get_status"},
                                          {"type": "ping"},
                                          "{not json",
                                          {"type": "format_card"})
    assert status["type"] == "status_response"
    assert status["session"] is False
    assert status["state"] == "idle"
    assert pong == {"type": "pong"}
    assert invalid == {"type": "error", "error": "Invalid JSON"}
    assert unknown["type"] == "error"
    bridge.close()


def test_handler_greets_and_serves():
    bridge, _ = make_bridge()

    class Connection(FakeWebSocket):
        def __init__(self, incoming):
            super().__init__()
            self.incoming = incoming

        def __aiter__(self):
            return self._iterate()

        async def _iterate(self):
            for message in self.incoming:
                yield message

    ws = Connection([json.dumps({"type": "ping"})])
    asyncio.run(bridge.handler(ws))
    assert ws.messages[0]["type"] == "connected"
    assert "polling" in ws.messages[0]["supported_messages"]
    assert ws.messages[1] == {"type": "pong"}
    assert bridge.connected_clients == set()
    bridge.close()


def test_read_blocks_shortfall_is_reported():
    bridge, _ = make_bridge(polling_response(), response(0x07, b"\x00\x00\x01" + BLOCK))
    _, reply = send(bridge,
                    {"type": "polling"},
                    {"type": "read_blocks", "service_code": "090F", "blocks": [0, 1, 2]})
    assert reply["success"] is False
    assert reply["error_type"] == "IncompleteRead"
    assert [b["block"] for b in reply["data"]["blocks"]] == [0]
    assert reply["data"]["missing_blocks"] == [1, 2]
    bridge.close()


def test_read_reply_without_status_flags():
    bridge, _ = make_bridge(polling_response(), response(0x07, b"\xFF"))
    _, reply = send(bridge,
                    {"type": "polling"},
                    {"type": "read", "service_code": "090F", "block": 0})
    assert reply["success"] is False
    assert reply["error_type"] == "MalformedResponse"
    bridge.close()


def test_polling_timeout_drops_late_card():
    gate = threading.Event()
    closed = []

    class SlowTransport(CallableTransport):
        def close(self):
            closed.append(True)

    def factory():
        gate.wait(5)
        return SlowTransport(FakeTransport(polling_response()))

    bridge = FeliCaBridge(factory, timeout=0.05)
    ws = FakeWebSocket()

    async def run():
        await bridge.handle_message(ws, json.dumps({"type": "polling"}))
        # the worker is still inside the factory
        assert bridge.state.value == "busy"
        gate.set()
        for _ in range(100):
            if bridge.state.value == "idle":
                break
            await asyncio.sleep(0.02)

    asyncio.run(run())
    reply, = ws.messages
    assert reply["error_type"] == "Timeout"
    assert bridge.state.value == "idle"
    assert bridge.card is None
    assert closed == [True]
    bridge.close()

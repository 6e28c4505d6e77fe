import pytest

IDM = bytes.fromhex("0116040012345678")
PMM = bytes.fromhex("03014B024F4993FF")
BLOCK = bytes(range(0x10, 0x20))


def response(code: int, data: bytes = b"", idm: bytes = IDM) -> bytes:
    """Build a raw FeliCa reply with a correct length byte"""
    body = bytes([code]) + idm + data
    return bytes([len(body) + 1]) + body


def polling_response(system_code: bytes = b"\x00\x03") -> bytes:
    return response(0x01, PMM + system_code)


class FakeTransport:
    """Records every request and answers from a queue of canned replies"""

    def __init__(self, *replies):
        self.replies = list(replies)
        self.sent = []

    def __call__(self, data: bytes):
        self.sent.append(bytes(data))
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply


@pytest.fixture
def polled_card():
    """A FeliCa session already polled, with a queue for further replies"""
    from felica import FeliCa

    def make(*replies):
        transport = FakeTransport(polling_response(), *replies)
        card = FeliCa(transport)
        card.polling()
        transport.sent.clear()
        return card, transport

    return make

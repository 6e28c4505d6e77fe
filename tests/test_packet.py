import pytest

from felica.commands import CommandCode
from felica.data import IDm
from felica.errors import FrameTooLarge, MalformedPacket, MalformedResponse, UnsupportedCommand
from felica.packet import (
    CommandPacket, CommandResponse, PollingResponse, ReadResponse, StatusFlags, WriteResponse,
)

from conftest import BLOCK, IDM, PMM, polling_response, response


def test_polling_packet_encoding():
    packet = CommandPacket(CommandCode.POLLING, None, b"\xFF\xFF\x01\x00")
    assert packet.to_bytes() == bytes([0x06, 0x00, 0xFF, 0xFF, 0x01, 0x00])
    assert packet.length == 6
    assert packet.name == "Polling"


def test_packet_with_idm():
    packet = CommandPacket(CommandCode.READ_WO_ENCRYPTION, IDm(IDM), b"\x01\x0F\x09\x01\x80\x00")
    raw = packet.to_bytes()
    assert raw[0] == len(raw) == 16
    assert raw[1] == 0x06
    assert raw[2:10] == IDM
    assert raw[10:] == b"\x01\x0F\x09\x01\x80\x00"


def test_packet_accepts_raw_idm():
    assert CommandPacket(0x06, IDM, b"\x00").idm == IDm(IDM)


def test_unsupported_command_produces_nothing():
    with pytest.raises(UnsupportedCommand) as exc:
        CommandPacket(0x7F, IDM, b"")
    assert exc.value.code == 0x7F


def test_frame_too_large():
    CommandPacket(0x08, IDM, bytes(245))
    with pytest.raises(FrameTooLarge):
        CommandPacket(0x08, IDM, bytes(246))
    with pytest.raises(FrameTooLarge):
        CommandPacket(0x00, None, bytes(254))


@pytest.mark.parametrize("code", [0x02, 0x06, 0x08, 0x0C])
@pytest.mark.parametrize("data", [b"", b"\x01", bytes(range(40))])
def test_round_trip_with_idm(code, data):
    decoded = CommandPacket.from_bytes(CommandPacket(code, IDM, data).to_bytes())
    assert decoded.command_code == code
    assert decoded.idm == IDm(IDM)
    assert decoded.data == data


def test_heuristic_short_trailing_has_no_idm():
    packet = CommandPacket.from_code_and_data(0x00, b"\xFF\xFF\x01\x00")
    assert packet.idm is None
    assert packet.data == b"\xFF\xFF\x01\x00"
    assert packet.length == 6


def test_heuristic_eight_bytes_is_idm():
    packet = CommandPacket.from_code_and_data(0x04, IDM)
    assert packet.idm == IDm(IDM)
    assert packet.data == b""
    assert packet.length == 10


def test_heuristic_treats_long_idm_less_payload_as_idm():
    # no way to tell 8+ bytes of plain data from an IDm
    packet = CommandPacket.from_code_and_data(0x00, bytes(range(9)))
    assert packet.idm == IDm(bytes(range(8)))
    assert packet.data == b"\x08"
    assert packet.to_bytes() == bytes([11, 0x00]) + bytes(range(9))


def test_from_bytes_polling():
    packet = CommandPacket.from_bytes(bytes([0x06, 0x00, 0xFF, 0xFF, 0x01, 0x00]))
    assert packet.command_code == 0x00
    assert packet.idm is None
    assert packet.data == b"\xFF\xFF\x01\x00"


def test_from_bytes_rejects_bad_frames():
    with pytest.raises(MalformedPacket):
        CommandPacket.from_bytes(b"\x01")
    with pytest.raises(MalformedPacket):
        CommandPacket.from_bytes(bytes([0x07, 0x00, 0xFF, 0xFF, 0x01, 0x00]))
    with pytest.raises(UnsupportedCommand):
        CommandPacket.from_bytes(bytes([0x02, 0x7F]))


def test_from_packet_copies():
    original = CommandPacket(0x06, IDM, b"\x01\x0F\x09\x01\x80\x00")
    copy = CommandPacket.from_packet(original)
    assert copy == original
    assert copy is not original


def test_describe_mentions_name_and_idm():
    text = CommandPacket(0x06, IDM, b"\x01").describe()
    assert "Read Without Encryption" in text
    assert "01 16 04 00 12 34 56 78" in text


def test_response_decoding():
    raw = response(0x07, b"\x00\x00\x01" + BLOCK)
    decoded = CommandResponse(raw)
    assert decoded.length == len(raw)
    assert decoded.response_code == 0x07
    assert decoded.idm == IDm(IDM)
    assert decoded.data == b"\x00\x00\x01" + BLOCK
    assert len(decoded.data) == len(raw) - 10
    assert bytes(decoded) == raw


def test_response_decoding_is_unconditional():
    # unknown code and a wrong length byte are both accepted
    raw = bytes([0x63, 0x7F]) + IDM + b"\xAA"
    decoded = CommandResponse(raw)
    assert decoded.length == 0x63
    assert decoded.response_code == 0x7F
    assert decoded.name == "Unknown(7F)"


@pytest.mark.parametrize("size", [0, 1, 9])
def test_short_response(size):
    with pytest.raises(MalformedResponse):
        CommandResponse(bytes(size))


def test_ten_byte_response_has_empty_data():
    assert CommandResponse(response(0x09)).data == b""


def test_polling_response():
    decoded = PollingResponse(polling_response(b"\xFE\x00"))
    assert decoded.idm == IDm(IDM)
    assert decoded.pmm.raw == PMM
    assert decoded.system_code.value == 0xFE00


def test_polling_response_without_request_data():
    decoded = PollingResponse(response(0x01, PMM))
    assert decoded.system_code is None


def test_polling_response_without_pmm():
    with pytest.raises(MalformedResponse):
        PollingResponse(response(0x01, PMM[:4]))


def test_read_response_success():
    decoded = ReadResponse(response(0x07, b"\x00\x00\x02" + BLOCK + bytes(16)))
    assert decoded.status == StatusFlags(0, 0)
    assert decoded.status.ok
    assert decoded.block_count == 2
    assert decoded.blocks == [BLOCK, bytes(16)]


def test_read_response_error_has_no_data():
    decoded = ReadResponse(response(0x07, b"\xFF\xA1"))
    assert not decoded.status.ok
    assert decoded.status.flag2 == 0xA1
    assert decoded.block_data is None
    assert decoded.blocks == []


def test_read_response_without_status():
    with pytest.raises(MalformedResponse):
        ReadResponse(response(0x07, b"\x00"))


def test_write_response():
    assert WriteResponse(response(0x09, b"\x00\x00")).status.ok
    decoded = WriteResponse(response(0x09, b"\x01\x71"))
    assert not decoded.status.ok
    assert "write count limit" in decoded.status.describe()

import pytest

from felica.data import BlockListElement, ServiceCode, SystemCode
from felica.service import (
    Service, block_request_payload, polling_payload, read_payload, write_payload,
)


def test_polling_payload_system_code_big_endian():
    assert polling_payload(0xFFFF) == b"\xFF\xFF\x01\x00"
    assert polling_payload(0x0003) == b"\x00\x03\x01\x00"
    assert polling_payload(SystemCode.from_int(0xFE00)) == b"\xFE\x00\x01\x00"


def test_read_payload_service_code_little_endian():
    assert read_payload(0x090F, 0x02) == bytes([0x01, 0x0F, 0x09, 0x01, 0x80, 0x02])


def test_read_payload_rejects_wide_address():
    with pytest.raises(ValueError):
        read_payload(0x090F, 0x100)


def test_write_payload_single_block_counts_blocks():
    data = bytes(range(16))
    payload = write_payload(0x1009, 0x03, data)
    # block count is 1 for one 16-byte block, not the byte length 16
    assert payload[:6] == bytes([0x01, 0x09, 0x10, 0x01, 0x80, 0x03])
    assert payload[6:] == data
    assert len(payload) == 22


def test_write_payload_two_blocks():
    data = bytes(32)
    payload = write_payload(0x1009, 0x04, data)
    assert payload[3] == 0x02
    assert payload[4:8] == b"\x80\x04\x80\x05"
    assert payload[8:] == data


@pytest.mark.parametrize("size", [0, 15, 17])
def test_write_payload_rejects_partial_blocks(size):
    with pytest.raises(ValueError):
        write_payload(0x1009, 0, bytes(size))


def test_write_payload_rejects_overflowing_addresses():
    with pytest.raises(ValueError):
        write_payload(0x1009, 0xFF, bytes(32))


def test_block_request_payload_multiple_services():
    elements = [
        BlockListElement.for_block(0, order=0),
        BlockListElement.for_block(0x0102, order=1),
    ]
    payload = block_request_payload([0x090F, ServiceCode.from_int(0x108F)], elements)
    assert payload == bytes([
        0x02, 0x0F, 0x09, 0x8F, 0x10,
        0x02, 0x80, 0x00, 0x01, 0x02, 0x01,
    ])


def test_block_request_payload_validation():
    element = BlockListElement.for_block(0)
    with pytest.raises(ValueError):
        block_request_payload([], [element])
    with pytest.raises(ValueError):
        block_request_payload([0x090F] * 17, [element])
    with pytest.raises(ValueError):
        block_request_payload([0x090F], [])
    with pytest.raises(ValueError):
        block_request_payload([0x090F], [BlockListElement.for_block(0, order=1)])


def test_service_concatenates_codes_and_elements():
    service = Service([0x090F], [BlockListElement.for_block(1), BlockListElement.for_block(2)])
    assert bytes(service) == b"\x0F\x09\x80\x01\x80\x02"
    assert "Service code" in service.describe()

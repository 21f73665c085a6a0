"""
Brief: Tests for sourcemaster.wire request encoding and response decoding.

Inputs:
  - None

Outputs:
  - None
"""

import pytest

from sourcemaster.errors import DecodeError, MasterQueryError
from sourcemaster.wire import (
    BEGINNING,
    RESPONSE_HEADER,
    Region,
    WireAddress,
    decode_response,
    encode_request,
    encode_response,
)


def test_encode_request_example_us_west_beginning():
    req = encode_request(Region.USWest, BEGINNING, b"")
    assert req == b"\x31\x01" + b"0.0.0.0:0" + b"\x00"


def test_encode_request_appends_filter_verbatim():
    req = encode_request(Region.Europe, "10.0.0.1:27015", b"\\gamedir\\tf\x00")
    assert req[0] == 0x31
    assert req[1] == 0x03
    assert req[2:].split(b"\x00", 1) == [b"10.0.0.1:27015", b"\\gamedir\\tf\x00"]


def test_encode_request_rest_of_world_region_byte():
    assert encode_request(Region.RestOfWorld, BEGINNING)[1] == 0xFF


def test_decode_example_single_address():
    raw = bytes.fromhex("FFFFFFFF660A") + bytes.fromhex("C0A801016985")
    resp = decode_response(raw)
    assert resp.addresses() == ["192.168.1.1:27013"]
    assert resp.header == RESPONSE_HEADER


def test_decode_header_only_is_empty_page():
    resp = decode_response(RESPONSE_HEADER)
    assert resp.addresses() == []
    assert len(resp) == 0


def test_decode_preserves_order_of_many_records():
    addrs = [f"10.1.{i}.{255 - i}:{27015 + i}" for i in range(50)]
    assert decode_response(encode_response(addrs)).addresses() == addrs


def test_decode_truncated_record_raises():
    raw = encode_response(["1.2.3.4:27015", "5.6.7.8:27016"])[:-1]
    with pytest.raises(DecodeError):
        decode_response(raw)


@pytest.mark.parametrize(
    "raw",
    [
        b"",
        b"\xff\xff\xff",
        b"\xff\xff\xff\xff\x66\x0b",
        b"\x7f\x0a" + bytes(6),
    ],
)
def test_decode_bad_or_short_header_raises(raw):
    with pytest.raises(DecodeError) as ei:
        decode_response(raw)
    assert isinstance(ei.value, MasterQueryError)
    assert isinstance(ei.value, ValueError)


def test_port_is_network_byte_order():
    wa = WireAddress.from_bytes(b"\x01\x02\x03\x04\x69\x87")
    assert wa.port == 0x6987
    assert str(wa) == "1.2.3.4:27015"
    assert wa.to_bytes() == b"\x01\x02\x03\x04\x69\x87"


def test_wire_address_parse_rejects_garbage():
    for bad in ["1.2.3.4", "1.2.3:80", "1.2.3.256:80", "a.b.c.d:1", "1.2.3.4:70000"]:
        with pytest.raises(ValueError):
            WireAddress.parse(bad)


@pytest.mark.parametrize(
    "value,expected",
    [
        (Region.Asia, Region.Asia),
        (1, Region.USWest),
        ("us_west", Region.USWest),
        ("USEast", Region.USEast),
        ("rest-of-world", Region.RestOfWorld),
        ("0xff", Region.RestOfWorld),
        ("3", Region.Europe),
    ],
)
def test_region_parse(value, expected):
    assert Region.parse(value) is expected


@pytest.mark.parametrize("value", ["mars", 9, True, None])
def test_region_parse_invalid(value):
    with pytest.raises(ValueError):
        Region.parse(value)


def test_encode_request_accepts_region_names():
    assert encode_request("europe", BEGINNING)[1] == 0x03


@pytest.mark.parametrize("region", [256, -1, 8, "mars"])
def test_encode_request_rejects_unknown_region(region):
    with pytest.raises(ValueError):
        encode_request(region, BEGINNING)

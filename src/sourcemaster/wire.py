"""Wire format helpers for the master server query protocol.

Brief:
  Requests are a single UDP datagram:

    [0x31][region:1][start address, ASCII]['\\0'][filter token bytes]

  Responses carry a fixed 6-byte header followed by packed address records
  (4 octets + big-endian port) until the datagram ends. There is no count
  field; a header-only response is a valid empty page.

Inputs:
  - Region codes, start addresses and opaque filter tokens (encode)
  - Raw response datagrams (decode)

Outputs:
  - Request bytes and decoded MasterResponse values
"""

from __future__ import annotations

import enum
import struct
from dataclasses import dataclass
from typing import Iterable, Iterator, Tuple, Union

from .errors import DecodeError

QUERY_TYPE = 0x31

RESPONSE_HEADER = b"\xff\xff\xff\xff\x66\x0a"
RESPONSE_HEADER_LENGTH = len(RESPONSE_HEADER)

ADDRESS_RECORD = struct.Struct("!4BH")  # o1, o2, o3, o4, port

# Start address the master treats as both the beginning and the end of a listing.
BEGINNING = "0.0.0.0:0"

# 2 MiB, comfortably above the largest datagram a master sends.
MAX_RESPONSE_SIZE = 2 * 1024 * 1024


class Region(enum.IntEnum):
    """Region byte sent with every query; servers are segregated by region."""

    USEast = 0x00
    USWest = 0x01
    SouthAmerica = 0x02
    Europe = 0x03
    Asia = 0x04
    Australia = 0x05
    MiddleEast = 0x06
    Africa = 0x07
    RestOfWorld = 0xFF

    @classmethod
    def parse(cls, value: Union["Region", int, str]) -> "Region":
        """Brief: Coerce a member, integer code or name into a Region.

        Inputs:
          - value: Region member, int code (0-7, 255) or a name such as
            'us_west', 'USWest' or 'europe' (case and '_'/'-' insensitive).

        Outputs:
          - Region member.

        Raises:
          - ValueError: when the value does not name a region.

        Example:
          >>> Region.parse("us_west") is Region.USWest
          True
        """
        if isinstance(value, cls):
            return value
        if isinstance(value, bool):
            raise ValueError(f"invalid region: {value!r}")
        if isinstance(value, int):
            return cls(value)
        if isinstance(value, str):
            text = value.strip()
            if text.isdigit():
                return cls(int(text))
            if text.lower().startswith("0x"):
                return cls(int(text, 16))
            key = text.replace("_", "").replace("-", "").replace(" ", "").lower()
            for member in cls:
                if member.name.lower() == key:
                    return member
        raise ValueError(f"invalid region: {value!r}")


@dataclass(frozen=True, slots=True)
class WireAddress:
    o1: int
    o2: int
    o3: int
    o4: int
    # Host order here; converted to/from network order at the wire boundary.
    port: int

    def __str__(self) -> str:
        return f"{self.o1}.{self.o2}.{self.o3}.{self.o4}:{self.port}"

    def to_bytes(self) -> bytes:
        return ADDRESS_RECORD.pack(self.o1, self.o2, self.o3, self.o4, self.port)

    @staticmethod
    def from_bytes(raw: bytes) -> "WireAddress":
        if len(raw) != ADDRESS_RECORD.size:
            raise DecodeError(
                f"address record must be {ADDRESS_RECORD.size} bytes, got {len(raw)}"
            )
        return WireAddress(*ADDRESS_RECORD.unpack(raw))

    @staticmethod
    def parse(text: str) -> "WireAddress":
        """Brief: Parse 'a.b.c.d:port' into a WireAddress.

        Raises:
          - ValueError: when the text is not a dotted IPv4 address with port.
        """
        host, sep, port_text = text.rpartition(":")
        if not sep:
            raise ValueError(f"address must be ip:port, got {text!r}")
        parts = host.split(".")
        if len(parts) != 4:
            raise ValueError(f"address must be dotted IPv4, got {text!r}")
        try:
            octets = [int(p) for p in parts]
            port = int(port_text)
        except ValueError as exc:
            raise ValueError(f"invalid address {text!r}") from exc
        if any(o < 0 or o > 255 for o in octets) or not 0 <= port <= 0xFFFF:
            raise ValueError(f"address out of range: {text!r}")
        return WireAddress(octets[0], octets[1], octets[2], octets[3], port)


@dataclass(frozen=True, slots=True)
class MasterResponse:
    header: bytes
    ips: Tuple[WireAddress, ...] = ()

    def addresses(self) -> list[str]:
        return [str(ip) for ip in self.ips]

    def __len__(self) -> int:
        return len(self.ips)


def encode_request(
    region: Union[Region, int, str], start_address: str, filter_token: bytes = b""
) -> bytes:
    """
    Brief: Build a master server query datagram.

    Inputs:
    - region: Region member, code or name (ValueError when not a known region)
    - start_address: 'ip:port' to continue the listing from (BEGINNING to start)
    - filter_token: already encoded filter bytes, appended verbatim

    Outputs:
    - bytes: UDP payload

    Example:
        >>> encode_request(Region.USWest, BEGINNING)
        b'1\\x010.0.0.0:0\\x00'
    """
    packet = bytearray()
    packet.append(QUERY_TYPE)
    packet.append(int(Region.parse(region)))
    packet += start_address.encode("utf-8")
    packet.append(0x00)
    packet += bytes(filter_token)
    return bytes(packet)


def _iter_records(body: bytes) -> Iterator[WireAddress]:
    size = ADDRESS_RECORD.size
    if len(body) % size:
        raise DecodeError(
            f"response ends mid-record: {len(body) % size} trailing byte(s)"
        )
    for (o1, o2, o3, o4, port) in ADDRESS_RECORD.iter_unpack(body):
        yield WireAddress(o1, o2, o3, o4, port)


def decode_response(buffer: bytes) -> MasterResponse:
    """
    Brief: Decode a master server response datagram.

    Inputs:
    - buffer: the full datagram as received

    Outputs:
    - MasterResponse with the header and every address record in order

    Raises:
    - DecodeError: datagram shorter than the header, header magic mismatch,
      or trailing bytes that do not form a whole record
    """
    raw = bytes(buffer)
    if len(raw) < RESPONSE_HEADER_LENGTH:
        raise DecodeError(
            f"response too short for header: {len(raw)} < {RESPONSE_HEADER_LENGTH}"
        )
    header = raw[:RESPONSE_HEADER_LENGTH]
    if header != RESPONSE_HEADER:
        raise DecodeError(f"unexpected response header: {header.hex()}")
    ips = tuple(_iter_records(raw[RESPONSE_HEADER_LENGTH:]))
    return MasterResponse(header=header, ips=ips)


def encode_response(addresses: Iterable[Union[str, WireAddress]]) -> bytes:
    """Brief: Build a well-formed response datagram from addresses.

    Used to fabricate master replies (e.g. local stub servers); the client
    itself never sends responses.
    """
    out = bytearray(RESPONSE_HEADER)
    for addr in addresses:
        wa = addr if isinstance(addr, WireAddress) else WireAddress.parse(addr)
        out += wa.to_bytes()
    return bytes(out)

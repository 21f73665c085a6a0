"""
Brief: Negative-path tests for the UDP transport.

Inputs:
  - None

Outputs:
  - None
"""

import socket

import pytest

from sourcemaster.errors import ResolutionError, TransportError
from sourcemaster.transports.udp import UDPConnection, parse_address, run_once


@pytest.mark.parametrize(
    "address", ["", "27011", ":27011", "host:", "host:port", "host:0", "host:65536"]
)
def test_parse_address_rejects_malformed(address):
    with pytest.raises(ResolutionError):
        parse_address(address)


def test_parse_address_ok():
    assert parse_address(" 208.64.200.117:27011 ") == ("208.64.200.117", 27011)


def test_malformed_address_surfaces_resolution_error():
    with pytest.raises(ResolutionError):
        run_once(UDPConnection("not-an-address"), b"1", timeout=1.0)


def test_unresolvable_host_surfaces_resolution_error(monkeypatch):
    def _fail(*a, **kw):
        raise socket.gaierror(socket.EAI_NONAME, "Name or service not known")

    monkeypatch.setattr(socket, "getaddrinfo", _fail)
    with pytest.raises(ResolutionError):
        run_once(UDPConnection("master.invalid:27011"), b"1", timeout=1.0)


def test_refused_port_surfaces_transport_error():
    # Grab a free port, then close it so the kernel answers port-unreachable.
    probe = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    probe.bind(("127.0.0.1", 0))
    port = probe.getsockname()[1]
    probe.close()

    conn = UDPConnection(f"127.0.0.1:{port}")
    try:
        with pytest.raises(TransportError):
            run_once(conn, b"1", timeout=2.0)
    finally:
        conn.close()


def test_closed_connection_refuses_to_reopen():
    conn = UDPConnection("127.0.0.1:27011")
    conn.close()
    conn.close()
    with pytest.raises(TransportError):
        conn.open()

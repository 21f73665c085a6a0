import logging
import queue
import socket
import threading
from typing import Optional, Tuple

from ..errors import MasterQueryError, QueryTimeoutError, ResolutionError, TransportError
from ..wire import MAX_RESPONSE_SIZE

logger = logging.getLogger(__name__)


def parse_address(address: str) -> Tuple[str, int]:
    """
    Brief: Split a 'host:port' master address.

    Inputs:
    - address: e.g. '208.64.200.117:27011' or 'hl2master.example.net:27011'

    Outputs:
    - (host, port)

    Raises:
    - ResolutionError: missing host, missing port or port out of range
    """
    host, sep, port_text = str(address).strip().rpartition(":")
    if not sep or not host:
        raise ResolutionError(f"master address must be host:port, got {address!r}")
    try:
        port = int(port_text)
    except ValueError:
        raise ResolutionError(f"invalid port in master address {address!r}")
    if not 0 < port <= 0xFFFF:
        raise ResolutionError(f"port out of range in master address {address!r}")
    return host, port


class UDPConnection:
    """
    Brief: Lazily created, connected UDP socket for one master address.

    Inputs:
    - address: 'host:port' of the master server
    - source_ip: optional local address to bind before connecting

    Outputs:
    - UDPConnection instance; the socket is only created on first use

    Notes:
    - One query owns a connection at a time. close() may be called while an
      abandoned exchange is still blocked on the socket; the socket is closed
      regardless and that exchange ends with a TransportError nobody reads.
    """

    def __init__(self, address: str, *, source_ip: Optional[str] = None) -> None:
        self.address = address
        self.source_ip = source_ip
        self.sock: Optional[socket.socket] = None
        self._closed = False
        self._lock = threading.Lock()

    def open(self) -> socket.socket:
        with self._lock:
            if self._closed:
                raise TransportError(f"connection to {self.address} is closed")
            if self.sock is not None:
                return self.sock

        host, port = parse_address(self.address)
        try:
            infos = socket.getaddrinfo(host, port, socket.AF_INET, socket.SOCK_DGRAM)
        except (socket.gaierror, UnicodeError) as e:
            raise ResolutionError(f"cannot resolve {self.address}: {e}")
        if not infos:  # pragma: no cover - getaddrinfo raises instead
            raise ResolutionError(f"cannot resolve {self.address}")
        family, socktype, proto, _, sockaddr = infos[0]

        try:
            s = socket.socket(family, socktype, proto)
        except OSError as e:
            raise TransportError(f"UDP socket error: {e}")
        try:
            if self.source_ip:
                s.bind((self.source_ip, 0))
            s.connect(sockaddr)
        except OSError as e:
            s.close()
            raise TransportError(f"UDP connect to {self.address} failed: {e}")

        with self._lock:
            if self._closed:
                # Invalidated while resolving; do not leak the new socket.
                s.close()
                raise TransportError(f"connection to {self.address} is closed")
            self.sock = s
        logger.debug("Opened UDP socket to %s (%s:%d)", self.address, *sockaddr[:2])
        return s

    def exchange(
        self,
        request: bytes,
        bufsize: int = MAX_RESPONSE_SIZE,
        *,
        timeout: Optional[float] = None,
    ) -> bytes:
        """
        Brief: Write one datagram and read one datagram back.

        Inputs:
        - request: payload to send
        - bufsize: receive buffer size
        - timeout: socket-level timeout so abandoned exchanges terminate

        Outputs:
        - bytes: the response datagram

        Raises:
        - ResolutionError, TransportError, QueryTimeoutError
        """
        s = self.open()
        try:
            s.settimeout(timeout)
            s.send(request)
            return s.recv(bufsize)
        except socket.timeout:
            raise QueryTimeoutError(f"read from {self.address} timed out")
        except OSError as e:
            raise TransportError(f"UDP error talking to {self.address}: {e}")

    def close(self) -> None:
        with self._lock:
            self._closed = True
            s, self.sock = self.sock, None
        if s is None:
            return
        try:
            s.shutdown(socket.SHUT_RDWR)
        except OSError:  # pragma: no cover - not connected / already shut down
            pass
        s.close()

    @property
    def closed(self) -> bool:
        return self._closed

    def __repr__(self) -> str:
        return f"UDPConnection({self.address!r})"


def run_once(
    connection: UDPConnection,
    request: bytes,
    timeout: float,
    *,
    bufsize: int = MAX_RESPONSE_SIZE,
) -> bytes:
    """
    Brief: Perform one bounded-time request/response exchange.

    Inputs:
    - connection: connection handle (opened lazily by the exchange)
    - request: payload to send
    - timeout: seconds to wait before giving up
    - bufsize: receive buffer size

    Outputs:
    - bytes: the response datagram

    Raises:
    - QueryTimeoutError: the timer fired before the exchange finished
    - ResolutionError / TransportError: the exchange failed first

    Notes:
    - The exchange runs on a daemon thread and races a threading.Timer. Both
      post into a single-slot queue; the first message wins and the other is
      dropped. A losing exchange is abandoned, not interrupted.

    Example:
        >>> try:
        ...     run_once(UDPConnection('203.0.113.1:27011'), b'1', timeout=0.01)
        ... except QueryTimeoutError:
        ...     pass
    """
    slot: "queue.Queue[Tuple[str, object]]" = queue.Queue(maxsize=1)

    def _post(kind: str, value: object) -> None:
        try:
            slot.put_nowait((kind, value))
        except queue.Full:
            pass

    def _exchange() -> None:
        try:
            data = connection.exchange(request, bufsize, timeout=timeout)
        except MasterQueryError as e:
            _post("error", e)
            return
        except Exception as e:  # pragma: no cover - unexpected failure in a custom connection
            _post("error", TransportError(f"UDP exchange failed: {e}"))
            return
        _post("ok", data)

    timer = threading.Timer(timeout, _post, args=("timeout", None))
    timer.daemon = True
    worker = threading.Thread(
        target=_exchange, name=f"master-query {connection.address}", daemon=True
    )

    logger.debug("Querying %s (%d bytes, timeout %.3fs)", connection.address, len(request), timeout)
    timer.start()
    worker.start()
    try:
        kind, value = slot.get()
    finally:
        timer.cancel()

    if kind == "timeout":
        raise QueryTimeoutError(
            f"no response from {connection.address} within {timeout:.3f}s"
        )
    if kind == "error":
        raise value  # type: ignore[misc]
    logger.debug("Received %d bytes from %s", len(value), connection.address)  # type: ignore[arg-type]
    return value  # type: ignore[return-value]

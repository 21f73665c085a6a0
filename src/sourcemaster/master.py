"""Master server client with failover across the well-known directory servers.

Brief:
  MasterServer.query() sends one request to the current master and, when that
  master times out, walks the DirectoryServerPool in order until a server
  answers or every entry has been tried once. The pool's preferred index is
  shared by every client built on it, so the next client starts with the
  server that last answered.

Inputs:
  - DirectoryServerPool, region, filter, timeout

Outputs:
  - Lists of 'ip:port' strings. Addresses are NOT guaranteed to be live.
"""

from __future__ import annotations

import logging
import threading
from typing import Callable, Iterator, List, Optional, Sequence, Union

from .errors import QueryTimeoutError, ResolutionError, TransportError
from .filters import Filter, MasterFilter
from .transports.udp import UDPConnection, run_once
from .wire import BEGINNING, MAX_RESPONSE_SIZE, Region, decode_response, encode_request

logger = logging.getLogger(__name__)

# Master servers for all Source engine game servers.
DEFAULT_MASTER_SERVERS = (
    "68.177.101.62:27011",
    "69.28.158.131:27011",
    "208.64.200.117:27011",
    "208.64.200.118:27011",
)
DEFAULT_PREFERRED_INDEX = 2
DEFAULT_TIMEOUT_S = 5.0


class DirectoryServerPool:
    """
    Brief: Ordered, fixed list of master addresses plus a shared preferred index.

    Inputs:
      - servers: sequence of 'host:port' strings (must be non-empty)
      - preferred_index: index new clients start from

    Outputs:
      - DirectoryServerPool instance

    Notes:
      - The preferred index is guarded by a lock, but concurrent clients may
        still overwrite each other's updates. That only changes which master
        is tried first.
    """

    def __init__(self, servers: Sequence[str], preferred_index: int = 0) -> None:
        self.servers = tuple(str(s) for s in servers)
        if not self.servers:
            raise ValueError("a directory server pool needs at least one server")
        self._lock = threading.Lock()
        self._preferred = self._checked(preferred_index)

    def _checked(self, index: int) -> int:
        i = int(index)
        if not 0 <= i < len(self.servers):
            raise ValueError(
                f"server index {index} out of range for pool of {len(self.servers)}"
            )
        return i

    @property
    def preferred(self) -> int:
        with self._lock:
            return self._preferred

    def set_preferred(self, index: int) -> None:
        i = self._checked(index)
        with self._lock:
            self._preferred = i

    def next_index(self, index: int) -> int:
        return (index + 1) % len(self.servers)

    def index_of(self, address: str) -> Optional[int]:
        try:
            return self.servers.index(address)
        except ValueError:
            return None

    def __len__(self) -> int:
        return len(self.servers)

    def __getitem__(self, index: int) -> str:
        return self.servers[index]

    def __iter__(self) -> Iterator[str]:
        return iter(self.servers)

    def __repr__(self) -> str:
        return f"DirectoryServerPool({list(self.servers)!r}, preferred_index={self.preferred})"


_default_pool: Optional[DirectoryServerPool] = None
_default_pool_lock = threading.Lock()


def default_pool() -> DirectoryServerPool:
    """Brief: Process-wide pool over DEFAULT_MASTER_SERVERS, created on first use."""
    global _default_pool
    with _default_pool_lock:
        if _default_pool is None:
            _default_pool = DirectoryServerPool(
                DEFAULT_MASTER_SERVERS, preferred_index=DEFAULT_PREFERRED_INDEX
            )
        return _default_pool


class MasterServer:
    """
    Brief: Client for one logical caller; queries masters with failover.

    Inputs:
      - pool: DirectoryServerPool (defaults to default_pool())
      - region: Region member, code or name (default USWest)
      - filter: object with get_filter_format() (default empty MasterFilter)
      - timeout: seconds per attempt
      - connection_factory: callable building a connection for an address
      - bufsize: receive buffer size

    Outputs:
      - MasterServer instance targeting pool[pool.preferred]

    Example use:
        >>> from sourcemaster.master import MasterServer
        >>> from sourcemaster.filters import MasterFilter
        >>> m = MasterServer(region="europe", filter=MasterFilter().game_dir("tf"))
        >>> servers = m.query()  # doctest: +SKIP
    """

    def __init__(
        self,
        pool: Optional[DirectoryServerPool] = None,
        *,
        region: Union[Region, int, str] = Region.USWest,
        filter: Optional[Filter] = None,
        timeout: float = DEFAULT_TIMEOUT_S,
        connection_factory: Callable[[str], UDPConnection] = UDPConnection,
        bufsize: int = MAX_RESPONSE_SIZE,
    ) -> None:
        self.pool = pool if pool is not None else default_pool()
        self._index = self.pool.preferred
        self._address = self.pool[self._index]
        self._region = Region.parse(region)
        self._filter: Filter = filter if filter is not None else MasterFilter()
        self.timeout = float(timeout)
        self.bufsize = int(bufsize)
        self._connection_factory = connection_factory
        self._connection: Optional[UDPConnection] = None

    @property
    def filter(self) -> Filter:
        return self._filter

    @filter.setter
    def filter(self, value: Filter) -> None:
        self._filter = value

    @property
    def region(self) -> Region:
        return self._region

    @region.setter
    def region(self, value: Union[Region, int, str]) -> None:
        self._region = Region.parse(value)

    @property
    def address(self) -> str:
        return self._address

    @address.setter
    def address(self, value: str) -> None:
        # An address outside the pool keeps the current index; failover then
        # resumes from the pool entry after it.
        self._address = str(value)
        idx = self.pool.index_of(self._address)
        if idx is not None:
            self._index = idx
        self._invalidate()

    @property
    def index(self) -> int:
        return self._index

    def _connect(self) -> UDPConnection:
        if self._connection is None:
            self._connection = self._connection_factory(self._address)
        return self._connection

    def _invalidate(self) -> None:
        conn, self._connection = self._connection, None
        if conn is not None:
            conn.close()

    def close(self) -> None:
        self._invalidate()

    def __enter__(self) -> "MasterServer":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def _request(self, start_address: str) -> bytes:
        return encode_request(
            self._region, start_address, self._filter.get_filter_format()
        )

    def query(self, start_address: str = BEGINNING) -> List[str]:
        """
        Brief: Fetch one page of game server addresses.

        Inputs:
          - start_address: 'ip:port' to continue from; BEGINNING for the first page

        Outputs:
          - list[str]: 'ip:port' strings in the order the master sent them.
            An empty list means the listing has ended.

        Raises:
          - QueryTimeoutError: every pool entry timed out once
          - ResolutionError / TransportError: non-timeout failure, no failover
          - DecodeError: malformed response, no failover
        """
        request = self._request(start_address)
        start_index = self._index

        while True:
            try:
                data = run_once(self._connect(), request, self.timeout, bufsize=self.bufsize)
            except QueryTimeoutError as exc:
                failed = self._address
                self._invalidate()
                self._index = self.pool.next_index(self._index)
                self._address = self.pool[self._index]
                if self._index == start_index:
                    logger.error(
                        "All %d master servers timed out (last tried %s)",
                        len(self.pool),
                        failed,
                    )
                    raise QueryTimeoutError(
                        f"no response from any of {len(self.pool)} master servers"
                    ) from exc
                self.pool.set_preferred(self._index)
                logger.warning(
                    "Master %s timed out after %.3fs; failing over to %s",
                    failed,
                    self.timeout,
                    self._address,
                )
                continue
            except (ResolutionError, TransportError) as exc:
                logger.error("Query to master %s failed: %s", self._address, exc)
                self._invalidate()
                raise
            break

        response = decode_response(data)
        logger.debug(
            "Master %s returned %d addresses after %s", self._address, len(response), start_address
        )
        return response.addresses()

    def iter_pages(
        self, start_address: str = BEGINNING, *, max_pages: Optional[int] = None
    ) -> Iterator[List[str]]:
        """
        Brief: Yield successive non-empty pages of the listing.

        Inputs:
          - start_address: where to begin (BEGINNING for the whole listing)
          - max_pages: stop after this many queries (None for no limit)

        Outputs:
          - iterator of list[str]; the end-of-listing sentinel is never yielded

        Notes:
          - Each page's last address is the start address of the next query.
            Paging stops on an empty page, on a page ending with the sentinel,
            or when the last address stops advancing.
        """
        cursor = start_address
        pages = 0
        while max_pages is None or pages < max_pages:
            page = self.query(cursor)
            pages += 1
            finished = not page or page[-1] == BEGINNING
            page = [a for a in page if a != BEGINNING]
            if page:
                yield page
            if finished or not page or page[-1] == cursor:
                return
            cursor = page[-1]

    def query_all(
        self, start_address: str = BEGINNING, *, max_pages: Optional[int] = None
    ) -> List[str]:
        """Brief: Collect every page into one list; errors propagate with no partial result."""
        out: List[str] = []
        for page in self.iter_pages(start_address, max_pages=max_pages):
            out.extend(page)
        return out

    def __repr__(self) -> str:
        return (
            f"MasterServer(address={self._address!r}, region={self._region.name}, "
            f"filter={self._filter!r})"
        )

"""sourcemaster package

Client for the Source master server (directory server) query protocol.
"""

from .errors import (
    DecodeError,
    MasterQueryError,
    QueryTimeoutError,
    ResolutionError,
    TransportError,
)
from .filters import MasterFilter, RawFilter
from .master import DEFAULT_MASTER_SERVERS, DirectoryServerPool, MasterServer
from .wire import BEGINNING, Region

__all__ = [
    "BEGINNING",
    "DEFAULT_MASTER_SERVERS",
    "DecodeError",
    "DirectoryServerPool",
    "MasterFilter",
    "MasterQueryError",
    "MasterServer",
    "QueryTimeoutError",
    "RawFilter",
    "Region",
    "ResolutionError",
    "TransportError",
]

"""Exception types raised while querying a master server.

Brief:
  Every failure surfaced by the query path derives from MasterQueryError so
  callers can catch the whole family at once, or a single kind when the
  retry policy differs (only QueryTimeoutError triggers failover).
"""

from __future__ import annotations


class MasterQueryError(Exception):
    """Base class for master server query failures."""

    pass


class ResolutionError(MasterQueryError):
    """
    Brief: Master server address could not be parsed or resolved.

    Inputs:
    - message: description

    Outputs:
    - Exception instance
    """

    pass


class TransportError(MasterQueryError):
    """
    Brief: UDP socket write/read failure other than a timeout.

    Inputs:
    - message: description

    Outputs:
    - Exception instance
    """

    pass


class QueryTimeoutError(MasterQueryError, TimeoutError):
    """No response arrived from the master server inside the timeout window."""

    pass


class DecodeError(MasterQueryError, ValueError):
    """Malformed response: truncated header, bad magic, or a partial record."""

    pass

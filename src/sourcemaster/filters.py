"""Filter tokens appended to master server queries.

Brief:
  The query path only needs an object exposing get_filter_format() -> bytes.
  MasterFilter builds the conventional '\\key\\value' clause string; RawFilter
  passes through a token encoded elsewhere.
"""

from __future__ import annotations

from typing import Any, Dict, Mapping, Optional, Protocol, Union, runtime_checkable


@runtime_checkable
class Filter(Protocol):
    def get_filter_format(self) -> bytes: ...


class RawFilter:
    """Opaque, pre-encoded filter token sent verbatim."""

    def __init__(self, token: bytes = b"") -> None:
        self.token = bytes(token)

    def get_filter_format(self) -> bytes:
        return self.token

    def __repr__(self) -> str:
        return f"RawFilter({self.token!r})"


def _clause_text(value: Any) -> str:
    if isinstance(value, bool):
        return "1" if value else "0"
    text = str(value)
    if "\\" in text or "\x00" in text:
        raise ValueError(f"filter value may not contain '\\\\' or NUL: {text!r}")
    try:
        text.encode("ascii")
    except UnicodeEncodeError as exc:
        raise ValueError(f"filter value must be ASCII: {text!r}") from exc
    return text


class MasterFilter:
    """
    Brief: Ordered set of filter clauses encoded as '\\key\\value...\\0'.

    Inputs:
      - clauses: optional mapping of key -> value applied in order

    Outputs:
      - MasterFilter instance

    Example:
        >>> f = MasterFilter().game_dir("tf").secure()
        >>> f.get_filter_format()
        b'\\\\gamedir\\\\tf\\\\secure\\\\1\\x00'
    """

    def __init__(self, clauses: Optional[Mapping[str, Any]] = None) -> None:
        self._clauses: Dict[str, str] = {}
        for key, value in (clauses or {}).items():
            self.set(key, value)

    @classmethod
    def from_mapping(cls, mapping: Optional[Mapping[str, Any]]) -> "MasterFilter":
        return cls(mapping)

    def set(self, key: str, value: Union[str, int, bool]) -> "MasterFilter":
        name = _clause_text(key).strip()
        if not name:
            raise ValueError("filter key must be non-empty")
        self._clauses[name] = _clause_text(value)
        return self

    def remove(self, key: str) -> "MasterFilter":
        self._clauses.pop(key, None)
        return self

    def game_dir(self, name: str) -> "MasterFilter":
        return self.set("gamedir", name)

    def map_name(self, name: str) -> "MasterFilter":
        return self.set("map", name)

    def dedicated(self, on: bool = True) -> "MasterFilter":
        return self.set("dedicated", on)

    def secure(self, on: bool = True) -> "MasterFilter":
        return self.set("secure", on)

    def not_empty(self, on: bool = True) -> "MasterFilter":
        return self.set("empty", on)

    def no_password(self, on: bool = True) -> "MasterFilter":
        return self.set("password", not on)

    def items(self):
        return list(self._clauses.items())

    def get_filter_format(self) -> bytes:
        body = "".join(f"\\{k}\\{v}" for k, v in self._clauses.items())
        return body.encode("ascii") + b"\x00"

    def __len__(self) -> int:
        return len(self._clauses)

    def __repr__(self) -> str:
        return f"MasterFilter({self._clauses!r})"

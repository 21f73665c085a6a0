"""Configuration parsing for the master query client.

Brief:
  Reads a YAML config file, validates it into a typed QueryConfig model and
  builds the DirectoryServerPool / MasterServer it describes.

Inputs:
  - YAML config files or already parsed mappings

Outputs:
  - QueryConfig instances and the objects built from them

Example config:
    servers:
      - 208.64.200.117:27011
      - 208.64.200.118:27011
    preferred_index: 0
    region: europe
    timeout_ms: 3000
    filter:
      gamedir: tf
      secure: 1
    logging:
      level: debug
"""

from __future__ import annotations

import functools
from typing import Any, Dict, List, Mapping, Optional, Union

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from ..errors import ResolutionError
from ..filters import MasterFilter
from ..master import (
    DEFAULT_MASTER_SERVERS,
    DEFAULT_PREFERRED_INDEX,
    DEFAULT_TIMEOUT_S,
    DirectoryServerPool,
    MasterServer,
)
from ..transports.udp import UDPConnection, parse_address
from ..wire import Region


class LoggingConfig(BaseModel):
    """Brief: Options passed through to init_logging()."""

    model_config = ConfigDict(extra="forbid")

    level: str = "info"
    stderr: bool = True
    file: Optional[str] = None
    syslog: Union[bool, Dict[str, Any]] = False


class QueryConfig(BaseModel):
    """Brief: Typed configuration for a master query client.

    Inputs:
      - servers: master addresses ('host:port'), tried in order on timeout
      - preferred_index: pool entry new clients start with
      - region: Region name or code
      - timeout_ms: per-attempt timeout in milliseconds
      - source_ip: local address to bind outgoing query sockets to
      - filter: mapping of filter clause key -> value
      - logging: LoggingConfig options

    Outputs:
      - QueryConfig instance with normalized field types.
    """

    model_config = ConfigDict(extra="forbid")

    servers: List[str] = Field(default_factory=lambda: list(DEFAULT_MASTER_SERVERS))
    preferred_index: int = Field(default=DEFAULT_PREFERRED_INDEX, ge=0)
    region: Region = Region.USWest
    timeout_ms: int = Field(default=int(DEFAULT_TIMEOUT_S * 1000), ge=1)
    source_ip: Optional[str] = None
    filter: Dict[str, Union[bool, int, str]] = Field(default_factory=dict)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @field_validator("region", mode="before")
    @classmethod
    def _parse_region(cls, v):
        return Region.parse(v)

    @field_validator("servers")
    @classmethod
    def _check_servers(cls, v: List[str]) -> List[str]:
        if not v:
            raise ValueError("servers must list at least one master address")
        out = []
        for addr in v:
            try:
                parse_address(addr)
            except ResolutionError as exc:
                raise ValueError(str(exc)) from exc
            out.append(addr.strip())
        return out

    @field_validator("filter")
    @classmethod
    def _check_filter(cls, v: Dict[str, Any]) -> Dict[str, Any]:
        MasterFilter(v)
        return v

    @model_validator(mode="after")
    def _check_preferred_index(self) -> "QueryConfig":
        if self.preferred_index >= len(self.servers):
            if "preferred_index" in self.model_fields_set:
                raise ValueError(
                    f"preferred_index {self.preferred_index} out of range for "
                    f"{len(self.servers)} server(s)"
                )
            # Default index only applies to the default pool size.
            self.preferred_index = 0
        return self

    @property
    def timeout_s(self) -> float:
        return self.timeout_ms / 1000.0


def load_config(data: Optional[Mapping[str, Any]]) -> QueryConfig:
    """Brief: Validate a parsed mapping into a QueryConfig.

    Raises:
      - ValueError: when the mapping does not validate.
    """
    if data is None:
        data = {}
    if not isinstance(data, Mapping):
        raise ValueError("Configuration root must be a mapping")
    try:
        return QueryConfig(**dict(data))
    except ValidationError as exc:
        raise ValueError(f"Invalid configuration: {exc}") from exc


def parse_config_file(config_path: str) -> QueryConfig:
    """Brief: Read and validate a YAML config file.

    Inputs:
      - config_path: Path to the YAML configuration file.

    Outputs:
      - QueryConfig

    Raises:
      - ValueError: malformed YAML or schema violations.
      - OSError: the file cannot be read.
    """
    with open(config_path, "r") as f:
        try:
            raw = yaml.safe_load(f)
        except yaml.YAMLError as exc:
            raise ValueError(f"Invalid YAML in {config_path}: {exc}") from exc
    return load_config(raw)


def build_pool(cfg: QueryConfig) -> DirectoryServerPool:
    return DirectoryServerPool(cfg.servers, preferred_index=cfg.preferred_index)


def build_client(
    cfg: QueryConfig, pool: Optional[DirectoryServerPool] = None, **kwargs: Any
) -> MasterServer:
    """Brief: Build a MasterServer from cfg; kwargs are passed to MasterServer."""
    if cfg.source_ip and "connection_factory" not in kwargs:
        kwargs["connection_factory"] = functools.partial(
            UDPConnection, source_ip=cfg.source_ip
        )
    return MasterServer(
        pool if pool is not None else build_pool(cfg),
        region=cfg.region,
        filter=MasterFilter.from_mapping(cfg.filter),
        timeout=cfg.timeout_s,
        **kwargs,
    )

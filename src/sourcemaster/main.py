from __future__ import annotations

import argparse
import json
import logging
from typing import Any, Dict, List, Optional

from .config.config_parser import QueryConfig, build_client, load_config, parse_config_file
from .config.logging_config import init_logging
from .errors import MasterQueryError, QueryTimeoutError
from .wire import BEGINNING

EXIT_OK = 0
EXIT_CONFIG = 1
EXIT_TIMEOUT = 2
EXIT_QUERY_ERROR = 3


def _parse_filter_args(assignments: Optional[List[str]]) -> Dict[str, str]:
    """
    Brief: Turn repeated --filter KEY=VALUE options into a mapping.

    Inputs:
      - assignments: list of 'KEY=VALUE' strings

    Outputs:
      - dict of key -> value (later duplicates win)

    Raises:
      - ValueError: an entry without '=' or with an empty key
    """
    out: Dict[str, str] = {}
    for item in assignments or []:
        if "=" not in item:
            raise ValueError(f"Invalid --filter value (expected KEY=VALUE), got: {item!r}")
        k, v = item.split("=", 1)
        k = k.strip()
        if not k:
            raise ValueError(f"Invalid --filter value (empty key), got: {item!r}")
        out[k] = v
    return out


def _effective_config(args: argparse.Namespace) -> QueryConfig:
    cfg = parse_config_file(args.config) if args.config else load_config({})
    data: Dict[str, Any] = cfg.model_dump()
    if args.region is not None:
        data["region"] = args.region
    if args.timeout_ms is not None:
        data["timeout_ms"] = args.timeout_ms
    if args.source_ip is not None:
        data["source_ip"] = args.source_ip
    if args.server:
        data["servers"] = list(args.server)
        if "preferred_index" not in cfg.model_fields_set:
            data.pop("preferred_index", None)
    if args.filter:
        data["filter"] = {**data.get("filter", {}), **_parse_filter_args(args.filter)}
    if args.log_level is not None:
        data["logging"] = {**data.get("logging", {}), "level": args.log_level}
    return load_config(data)


def main(argv: List[str] | None = None) -> int:
    """
    Query the master servers and print the game server addresses they return.

    Args:
        argv: Command-line arguments.

    Returns:
        An exit code (0 ok, 1 config error, 2 all masters timed out,
        3 any other query failure).

    Example use:
        CLI:
            sourcemaster --region europe --filter gamedir=tf --all
    """
    parser = argparse.ArgumentParser(
        prog="sourcemaster", description="Query Source master servers for game servers"
    )
    parser.add_argument("--config", default=None, help="Path to YAML config")
    parser.add_argument("--server", action="append", help="Master address host:port (repeatable)")
    parser.add_argument("--region", default=None, help="Region name or code (default us_west)")
    parser.add_argument("--start", default=BEGINNING, help="Start address ip:port")
    parser.add_argument("--timeout-ms", type=int, default=None)
    parser.add_argument("--source-ip", default=None, help="Local address to bind query sockets to")
    parser.add_argument(
        "--filter", action="append", metavar="KEY=VALUE", help="Filter clause (repeatable)"
    )
    parser.add_argument("--all", action="store_true", help="Follow pagination to the end")
    parser.add_argument("--max-pages", type=int, default=None)
    parser.add_argument("--json", action="store_true", help="Print a JSON list")
    parser.add_argument("--log-level", default=None)
    args = parser.parse_args(argv)

    try:
        cfg = _effective_config(args)
    except (OSError, ValueError) as exc:
        print(str(exc))
        return EXIT_CONFIG

    init_logging(cfg.logging.model_dump())
    logger = logging.getLogger("sourcemaster.main")
    logger.debug("Using masters %s (region %s)", cfg.servers, cfg.region.name)

    with build_client(cfg) as client:
        try:
            if args.all:
                addresses = client.query_all(args.start, max_pages=args.max_pages)
            else:
                addresses = client.query(args.start)
        except QueryTimeoutError as exc:
            logger.error("%s", exc)
            return EXIT_TIMEOUT
        except MasterQueryError as exc:
            logger.error("Query failed: %s", exc)
            return EXIT_QUERY_ERROR

    logger.info("Received %d server address(es)", len(addresses))
    if args.json:
        print(json.dumps(addresses, indent=2))
    else:
        for addr in addresses:
            print(addr)
    return EXIT_OK


if __name__ == "__main__":
    raise SystemExit(main())

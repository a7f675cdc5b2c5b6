#!/usr/bin/env python3
"""
memclient Command Line Entry Point

Small command line front end for the cache client, useful for poking at
a server by hand.

Usage:
    memclient get mykey                                 # Default server (127.0.0.1:11211)
    memclient set mykey myvalue --exptime 60            # Store with expiration
    memclient --binary add mykey myvalue                # Binary protocol
    memclient -s cache1:11211 -s cache2:11211 get mykey # Several servers
    memclient --debug get mykey                         # Enable debug logging

Environment Variables:
    MEMCLIENT_HOST      - Default server host
    MEMCLIENT_PORT      - Default server port
    MEMCLIENT_PROTOCOL  - Default protocol (textual/binary)
    MEMCLIENT_DEBUG     - Enable debug mode (true/false)

Exit status is 0 on success, 1 when the key was not found or not stored
and 2 on any error.
"""

import argparse
import logging
import re
import sys
from typing import List, Optional, Tuple

from .cluster.router import CacheClient
from .config.settings import settings
from .protocol.commands import Item, Protocol, ResponseStatus, StoreCommand

_reg_server = re.compile(r"^(?P<host>[A-Za-z0-9\-_.]+|\[[0-9A-Fa-f:.]+\])(?::(?P<port>[0-9]+))?$")

EXIT_CODES = {
    ResponseStatus.OK: 0,
    ResponseStatus.NOT_FOUND: 1,
    ResponseStatus.NOT_STORED: 1,
    ResponseStatus.ERROR: 2,
}


def parse_server(value: str) -> Tuple[str, int]:
    """Parse "host[:port]" into a (host, port) tuple."""
    m = _reg_server.match(value)
    if not m:
        raise argparse.ArgumentTypeError(f"server address is invalid: {value}")
    host = m.group("host").strip("[]")
    port = int(m.group("port")) if m.group("port") else settings.PORT
    return host, port


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="memclient: command line client for memcached-compatible servers",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )

    parser.add_argument(
        "-s", "--server",
        type=parse_server,
        action="append",
        dest="servers",
        help=f"Server address as host[:port] (default {settings.HOST}:{settings.PORT})",
    )

    parser.add_argument(
        "--binary",
        action="store_true",
        default=settings.PROTOCOL == Protocol.BINARY.value,
        help="Use the binary protocol",
    )

    parser.add_argument(
        "--debug",
        action="store_true",
        default=settings.DEBUG,
        help="Enable debug logging",
    )

    commands = parser.add_subparsers(dest="command", required=True)

    get_parser = commands.add_parser("get", help="Print the value of a key")
    get_parser.add_argument("key")

    for command in StoreCommand:
        store_parser = commands.add_parser(command.value, help=f"{command.value} a value")
        store_parser.add_argument("key")
        store_parser.add_argument("value")
        store_parser.add_argument("--exptime", type=int, default=0, help="Expiration in seconds")

    return parser.parse_args(argv)


def setup_logging(debug: bool = False) -> None:
    """Configure logging based on debug flag."""
    level = logging.DEBUG if debug else getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO)

    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.StreamHandler(sys.stderr),
        ]
    )


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the command line client."""
    args = parse_args(argv)
    setup_logging(debug=args.debug)
    logger = logging.getLogger(__name__)

    servers = args.servers or [(settings.HOST, settings.PORT)]
    protocol = Protocol.BINARY if args.binary else Protocol.TEXTUAL

    with CacheClient(protocol) as client:
        for host, port in servers:
            if not client.add_connection(host, port):
                return EXIT_CODES[ResponseStatus.ERROR]

        key = args.key.encode("utf-8")
        if args.command == "get":
            item = Item(key)
            response = client.get(item)
            if response.ok:
                sys.stdout.buffer.write(bytes(item.data) + b"\n")
                sys.stdout.flush()
        else:
            item = Item(key, args.value.encode("utf-8"), exptime=args.exptime)
            response = getattr(client, args.command)(item)
            if response.ok:
                print("STORED")

    if not response.ok:
        logger.info(f"{args.command} {args.key}: {response.status.value} {response.message}")
        print(response.status.value, file=sys.stderr)
    return EXIT_CODES[response.status]


if __name__ == "__main__":
    sys.exit(main())

#!/usr/bin/env python3
"""buss-checker.

Usage:
  buss-checker listen [--host=<addr>] [--port=<n>] [--count=<n>] [--timeout=<seconds>]
                      [--format=<option> --body-format=<option>] [-L <n> | --body-limit=<n>]
  buss-checker decode [<request_hex_string> ...]
                      [--format=<option> --body-format=<option>] [-L <n> | --body-limit=<n>]
  buss-checker encode <recipe_file>
  buss-checker send   <recipe_file> [--host=<addr>] [--port=<n>]

Options:
  -h --help                 Show this screen.
  --version                 Show version.
  --host=<addr>             Address to listen at (0.0.0.0 when omitted) or to send to (127.0.0.1 when omitted).
  --port=<n>                Port to listen at, or to send to [default: 42069].
  --count=<n>               Stop listening after <n> connections. Listens forever when omitted.
  --timeout=<seconds>       Abandon a connection that stalls for longer than <seconds>.
  --format=<option>         Report format [default: box].
                                Options: box, oneline, tree, json.
  --body-format=<option>    Body display formatter [default: text].
                                Options: text, hex, hexdump, ascii.
  -L <n>, --body-limit=<n>  Truncate the displayed body to N bytes [default: 0].
                                Use 0 for unlimited.

"""

__version__ = "0.1.0"

import socket
import sys

from docopt import docopt

import formatters
from byte_source import DecodeError
from encoder import Encoder
from listener import DEFAULT_HOST, DEFAULT_PORT, print_error, print_info, print_warning, run_listener
from recipe_parser import parse, ParseError
from report import REPORT_FORMATS, AnsiColors, get_request_report
from request_decoder import decode_request_hex

SEND_HOST = "127.0.0.1"


def send_request(data: bytes, host: str, port: int) -> None:
    """Write one request and half-close so the checker sees end of stream."""
    with socket.create_connection((host, port)) as sock:
        sock.sendall(data)
        sock.shutdown(socket.SHUT_WR)


def cli_main(argv=None) -> int:
    args = docopt(__doc__, argv=argv, version=f"buss-checker {__version__}")

    ret = 0

    fmt = args["--format"] or "box"
    body_format = args["--body-format"] or "text"
    if fmt not in REPORT_FORMATS:
        print(f"Error: Unknown format '{fmt}'. Options: {', '.join(REPORT_FORMATS)}", file=sys.stderr)
        return 1
    if formatters.get_formatter(body_format) is None:
        print(f"Error: Unknown body format '{body_format}'. Options: {', '.join(formatters.list_formatters())}", file=sys.stderr)
        return 1

    try:
        port = int(args["--port"] or DEFAULT_PORT)
        body_limit = int(args.get("-L") or args.get("--body-limit") or 0)
        count = int(args["--count"]) if args["--count"] is not None else None
        timeout = float(args["--timeout"]) if args["--timeout"] is not None else None
    except ValueError as e:
        print(f"Error: Invalid numeric option: {e}", file=sys.stderr)
        return 1

    if args["listen"]:
        host = args["--host"] or DEFAULT_HOST
        ret = run_listener(host, port, fmt=fmt, body_format=body_format, limit_bytes=body_limit,
                           timeout=timeout, max_connections=count)

    elif args["decode"]:
        requests_input = sys.stdin.read().split() if not args["<request_hex_string>"] else args["<request_hex_string>"]

        for request_hex_string in requests_input:
            try:
                request = decode_request_hex(request_hex_string)
            except ValueError as e:
                print_error(f"Invalid hex string: {e}")
                ret = 1
                continue
            except DecodeError as e:
                print_error(f"Error occured while processing request: {e}")
                ret = 1
                continue

            for warning in request.warnings:
                print_warning(str(warning))
            print(get_request_report(request, fmt, body_format, body_limit))

    elif args["encode"] or args["send"]:
        recipe_file = args["<recipe_file>"]
        try:
            recipe = parse(recipe_file)
            data = Encoder().encode(recipe)
        except ParseError as e:
            print(f"Error: {e}", file=sys.stderr)
            return 1
        except FileNotFoundError:
            print(f"Error: File not found: {recipe_file}", file=sys.stderr)
            return 1
        except (ValueError, OverflowError) as e:
            print(f"Error: {e}", file=sys.stderr)
            return 1

        if args["encode"]:
            print(data.hex())
        else:
            host = args["--host"] or SEND_HOST
            try:
                send_request(data, host, port)
            except OSError as e:
                print_error(f"Failed to send request to {host}:{port}: {e}")
                return 1
            print_info(AnsiColors.OKGREEN + f"Sent {len(data)} bytes to {host}:{port}" + AnsiColors.ENDC)

    sys.stdout.flush()
    return ret


def main():
    sys.exit(cli_main())


if __name__ == "__main__":
    main()

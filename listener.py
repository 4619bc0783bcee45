"""
TCP listener that decodes one Bussin request per connection.

Connections are accepted and decoded strictly one at a time. A failed decode
only affects its own connection.
"""

import socket
import sys
from typing import Callable, Final

from byte_source import ByteSource, DecodeError
from buss_types import DecodedRequest
from report import AnsiColors, get_request_report
from request_decoder import read_request

DEFAULT_HOST: Final[str] = "0.0.0.0"
DEFAULT_PORT: Final[int] = 42069
LISTEN_BACKLOG: Final[int] = 5


def print_info(message: str) -> None:
    print(f"[+] {message}", flush=True)


def print_warning(message: str) -> None:
    print(AnsiColors.WARNING + f"[!] {message}" + AnsiColors.ENDC, file=sys.stderr, flush=True)


def print_error(message: str) -> None:
    print(AnsiColors.FAIL + f"[-] {message}" + AnsiColors.ENDC, file=sys.stderr, flush=True)


class Listener:
    """Accepts connections and decodes each one to completion before the next."""

    def __init__(self, host: str = DEFAULT_HOST, port: int = DEFAULT_PORT, timeout: float | None = None,
                 fmt: str = "box", body_format: str = "text", limit_bytes: int = 0,
                 on_request: Callable[[DecodedRequest], None] = None,
                 on_error: Callable[[Exception], None] = None):
        self.host = host
        self.port = port
        self.timeout = timeout
        self.on_request = on_request or self._print_request
        self.on_error = on_error or self._print_error
        self.fmt = fmt
        self.body_format = body_format
        self.limit_bytes = limit_bytes
        self.sock = None

    def bind(self) -> tuple[str, int]:
        """Bind and start listening; returns the bound address (port 0 picks a free one)."""
        self.sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        self.sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        self.sock.bind((self.host, self.port))
        self.sock.listen(LISTEN_BACKLOG)
        self.host, self.port = self.sock.getsockname()[:2]
        return self.host, self.port

    def close(self) -> None:
        if self.sock is not None:
            self.sock.close()
            self.sock = None

    def handle_connection(self, conn: socket.socket) -> DecodedRequest | None:
        """Decode a single request from conn; the connection is always closed."""
        if self.timeout is not None:
            conn.settimeout(self.timeout)
        try:
            with ByteSource.from_socket(conn) as source:
                request = read_request(source)
        except (DecodeError, OSError) as e:
            self.on_error(e)
            return None
        finally:
            conn.close()
        self.on_request(request)
        return request

    def serve(self, max_connections: int | None = None) -> int:
        """Accept and decode connections until max_connections is reached.

        Returns the number of connections handled. An error from accept()
        stops the loop.
        """
        if self.sock is None:
            self.bind()

        handled = 0
        try:
            while max_connections is None or handled < max_connections:
                try:
                    conn, address = self.sock.accept()
                except OSError as e:
                    print_error(f"Unexpected error encountered: {e}")
                    break
                print_info(f"Received a connection from: {address[0]}:{address[1]}")
                self.handle_connection(conn)
                handled += 1
        except KeyboardInterrupt:
            print_info("Shutting down")
        finally:
            self.close()
        return handled

    def _print_request(self, request: DecodedRequest) -> None:
        for warning in request.warnings:
            print_warning(str(warning))
        print(get_request_report(request, self.fmt, self.body_format, self.limit_bytes), flush=True)

    def _print_error(self, error: Exception) -> None:
        print_error(f"Error occured while processing request: {error}")


def run_listener(host: str = DEFAULT_HOST, port: int = DEFAULT_PORT, fmt: str = "box", body_format: str = "text",
                 limit_bytes: int = 0, timeout: float | None = None, max_connections: int | None = None) -> int:
    listener = Listener(host, port, timeout=timeout, fmt=fmt, body_format=body_format, limit_bytes=limit_bytes)
    try:
        listener.bind()
    except OSError as e:
        print_error(f"Failed to start tcp socket at port {port}: {e}")
        return 1
    print_info(f"Bussin at port {listener.port}")
    listener.serve(max_connections)
    return 0

"""
Blocking byte reader over a connection or an in-memory buffer.

Every decoder read goes through read_exact, skip or read_to_end; these are the
only places a decode can block.
"""

import io
import socket
from typing import BinaryIO

# Upper bound for a single underlying read; declared lengths are never allocated up front
SKIP_CHUNK_SIZE = 64 * 1024


class DecodeError(Exception):
    """Base class for errors that abort decoding of the current request."""
    def __init__(self, message: str, offset: int = None):
        self.offset = offset
        super().__init__(message)

    def __str__(self):
        if self.offset is not None:
            return f"offset {self.offset}: {self.args[0]}"
        return self.args[0]


class TruncatedStream(DecodeError):
    """Fewer bytes were available than a declared length required."""
    def __init__(self, expected: int, available: int, offset: int = None, what: str = None):
        self.expected = expected
        self.available = available
        self.what = what
        target = f" for {what}" if what else ""
        super().__init__(
            f"Truncated stream: expected {expected} bytes{target}, got {available}",
            offset=offset,
        )


class ByteSource:
    """Exact-count reads over a binary stream, tracking the cursor position."""

    def __init__(self, stream: BinaryIO):
        self.stream = stream
        self.position = 0

    @classmethod
    def from_bytes(cls, data: bytes) -> "ByteSource":
        return cls(io.BytesIO(data))

    @classmethod
    def from_hex(cls, hex_str: str) -> "ByteSource":
        """Build a source from a hex string; whitespace is ignored."""
        return cls.from_bytes(bytes.fromhex("".join(hex_str.split())))

    @classmethod
    def from_socket(cls, sock: socket.socket) -> "ByteSource":
        return cls(sock.makefile("rb"))

    def _read(self, size: int, expected: int, got: int, start: int, what: str | None) -> bytes:
        """Single underlying read; a reset or timed out connection counts as a short stream."""
        try:
            chunk = self.stream.read(size)
        except (ConnectionError, socket.timeout) as e:
            raise TruncatedStream(expected, got, offset=start, what=what) from e
        self.position += len(chunk)
        return chunk

    def read_exact(self, n: int, what: str = None) -> bytes:
        """Read exactly n bytes or raise TruncatedStream."""
        start = self.position
        chunks = []
        got = 0
        while got < n:
            chunk = self._read(min(n - got, SKIP_CHUNK_SIZE), n, got, start, what)
            if not chunk:
                raise TruncatedStream(n, got, offset=start, what=what)
            chunks.append(chunk)
            got += len(chunk)
        return b"".join(chunks)

    def skip(self, n: int, what: str = None) -> None:
        """Discard exactly n bytes without holding more than one chunk."""
        start = self.position
        got = 0
        while got < n:
            chunk = self._read(min(n - got, SKIP_CHUNK_SIZE), n, got, start, what)
            if not chunk:
                raise TruncatedStream(n, got, offset=start, what=what)
            got += len(chunk)

    def read_to_end(self, what: str = "body") -> bytes:
        """Read everything left until the peer closes the stream.

        A clean end of stream always succeeds, zero bytes included. A reset or
        timed out connection before that point is reported as TruncatedStream.
        """
        start = self.position
        chunks = []
        got = 0
        while True:
            # expected is unknown here, so report one byte more than arrived
            chunk = self._read(SKIP_CHUNK_SIZE, got + 1, got, start, what)
            if not chunk:
                break
            chunks.append(chunk)
            got += len(chunk)
        return b"".join(chunks)

    def read_u8(self, what: str = None) -> int:
        return self.read_exact(1, what)[0]

    def read_u16(self, what: str = None) -> int:
        return int.from_bytes(self.read_exact(2, what), byteorder="big")

    def read_u32(self, what: str = None) -> int:
        return int.from_bytes(self.read_exact(4, what), byteorder="big")

    def close(self) -> None:
        self.stream.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

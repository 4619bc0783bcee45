"""
Bussin Request Decoder

Decodes a single request from a ByteSource: header validation, request path,
the settings section and the trailing body.
"""

from byte_source import ByteSource, DecodeError
from buss_types import (
    MAGIC_NUMBER, HEADER_SIZE,
    Action, SettingsTag, StringEncoding, Header,
    SettingsEntry, BodyLengthSetting, HostSetting, CustomSetting, UnknownSetting,
    UnrecognizedTag, DecodedRequest,
)


class InvalidMagic(DecodeError):
    """Header magic number does not identify a Bussin request."""
    def __init__(self, found: int, offset: int = 0):
        self.found = found
        super().__init__(
            f"Not a bussin protocol header: magic 0x{found:08X}, expected 0x{MAGIC_NUMBER:08X}",
            offset=offset,
        )


class InvalidText(DecodeError):
    """A strictly decoded text field holds an invalid byte sequence."""
    def __init__(self, reason: str, offset: int = None, what: str = None):
        self.reason = reason
        self.what = what
        target = f" in {what}" if what else ""
        super().__init__(f"Invalid text{target}: {reason}", offset=offset)


def decode_header(data: bytes) -> Header:
    """Decode the fixed 8-byte header.

    Never fails on a full header: fields are returned as found and left for
    the caller to validate. Unknown action codes are kept as integers.
    """
    if len(data) < HEADER_SIZE:
        data = data.ljust(HEADER_SIZE, b"\x00")
    magic = int.from_bytes(data[0:4], byteorder="big")
    action_code = data[6]
    try:
        action = Action(action_code)
    except ValueError:
        action = action_code
    return Header(
        magic=magic,
        version_major=data[4],
        version_minor=data[5],
        action=action,
        flags=data[7],
    )


def decode_string(source: ByteSource, utf16: bool, what: str = "string") -> str:
    """Decode a u32 length-prefixed string, strictly, as UTF-8 or UTF-16BE."""
    length = source.read_u32(what=f"{what} length")
    if length == 0:
        return ""

    start = source.position
    raw = source.read_exact(length, what=what)

    if not utf16:
        try:
            return raw.decode("utf-8")
        except UnicodeDecodeError as e:
            raise InvalidText(f"{e.reason} at byte {e.start}", offset=start, what=what) from None

    if length % 2 != 0:
        raise InvalidText(f"odd UTF-16 byte length {length}", offset=start, what=what)
    try:
        return raw.decode("utf-16-be")
    except UnicodeDecodeError as e:
        raise InvalidText(f"{e.reason} at byte {e.start}", offset=start, what=what) from None


class SettingsDecoder:
    """Decodes the payload that follows one settings tag byte."""

    def __init__(self, source: ByteSource, encoding: StringEncoding):
        self.source = source
        self.encoding = encoding

    def decode_payload(self, index: int, raw_tag: int) -> SettingsEntry:
        """Consume the payload for raw_tag and return the decoded entry.

        Unknown tags consume nothing; the next byte is the next entry's tag.
        """
        tag = SettingsTag.from_byte(raw_tag)

        if tag == SettingsTag.BODY_LENGTH:
            # informational only, never checked against the body
            value = self.source.read_u32(what="BodyLength")
            return BodyLengthSetting(index=index, raw_tag=raw_tag, value=value)

        elif tag == SettingsTag.HOST:
            host = decode_string(self.source, self.encoding == StringEncoding.UTF16_BE, what="Host")
            return HostSetting(index=index, raw_tag=raw_tag, host=host)

        elif tag == SettingsTag.CUSTOM:
            length = self.source.read_u32(what="Custom length")
            self.source.skip(length, what="Custom payload")
            return CustomSetting(index=index, raw_tag=raw_tag, length=length)

        return UnknownSetting(index=index, raw_tag=raw_tag)


class RequestDecoder:
    """Decodes one request body given its already-read header."""

    def __init__(self, source: ByteSource):
        self.source = source

    def decode(self, header: Header) -> DecodedRequest:
        """Decode path, settings and body following header.

        Raises:
            InvalidMagic: header magic mismatch, nothing else is read
            TruncatedStream: a declared length runs past the end of stream
            InvalidText: Host text is not valid in the request's encoding
        """
        start = self.source.position
        if header.magic != MAGIC_NUMBER:
            raise InvalidMagic(header.magic, offset=max(self.source.position - HEADER_SIZE, 0))

        # Path is lossy, unlike Host
        path_length = self.source.read_u32(what="path length")
        path = self.source.read_exact(path_length, what="path").decode("utf-8", errors="replace")

        settings_count = self.source.read_u16(what="settings count")
        request = DecodedRequest(header=header, path=path, settings_count=settings_count)

        settings_decoder = SettingsDecoder(self.source, header.string_encoding)
        for i in range(settings_count):
            tag_offset = self.source.position
            raw_tag = self.source.read_u8(what=f"settings entry {i} tag")
            entry = settings_decoder.decode_payload(i, raw_tag)
            if isinstance(entry, UnknownSetting):
                request.warnings.append(UnrecognizedTag(index=i, raw_tag=raw_tag, offset=tag_offset))
            request.settings.append(entry)

        request.body = self.source.read_to_end(what="body")
        # the header may have been read by the caller, so count it explicitly
        request.size = HEADER_SIZE + self.source.position - start
        return request


def read_request(source: ByteSource) -> DecodedRequest:
    """Read the header from source, then decode the rest of the request."""
    header = decode_header(source.read_exact(HEADER_SIZE, what="header"))
    return RequestDecoder(source).decode(header)


def decode_request(data: bytes) -> DecodedRequest:
    return read_request(ByteSource.from_bytes(data))


def decode_request_hex(hex_str: str) -> DecodedRequest:
    return read_request(ByteSource.from_hex(hex_str))

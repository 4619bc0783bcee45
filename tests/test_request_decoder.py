"""Tests for request decoding: header, path, settings and body."""

import pytest

from byte_source import ByteSource, TruncatedStream
from buss_types import (
    MAGIC_NUMBER, Action, SettingsTag, StringEncoding,
    BodyLengthSetting, HostSetting, CustomSetting, UnknownSetting,
)
from encoder import encode_string, encode_u16, encode_u32
from request_decoder import (
    InvalidMagic, InvalidText,
    RequestDecoder, SettingsDecoder,
    decode_header, decode_string, decode_request, decode_request_hex, read_request,
)
from generate_test_messages import TEST_MESSAGES


def make_header(action=Action.READ, flags=0, magic=MAGIC_NUMBER) -> bytes:
    return encode_u32(magic) + bytes([1, 0, int(action), flags])


def make_request(path=b"", settings=b"", count=0, body=b"", flags=0) -> bytes:
    return make_header(flags=flags) + encode_u32(len(path)) + path + encode_u16(count) + settings + body


class TestDecodeHeader:
    def test_fields(self):
        header = decode_header(bytes.fromhex("0004206902030401"))
        assert header.magic == MAGIC_NUMBER
        assert header.version == "2.3"
        assert header.action == Action.DELETE
        assert header.is_utf16
        assert header.string_encoding == StringEncoding.UTF16_BE

    def test_unknown_action_kept_raw(self):
        header = decode_header(bytes.fromhex("0004206901000900"))
        assert header.action == 9
        assert header.action_name == "UNKNOWN(9)"

    def test_never_fails_on_bad_magic(self):
        header = decode_header(b"\xff" * 8)
        assert header.magic == 0xFFFFFFFF
        assert header.flags == 0xFF


class TestDecodeString:
    def test_empty_reads_only_prefix(self):
        source = ByteSource.from_bytes(encode_u32(0) + b"next")
        assert decode_string(source, utf16=False) == ""
        assert source.position == 4

    @pytest.mark.parametrize("text", ["hello", "héllo wörld", "日本語", "emoji \U0001F600"])
    def test_utf8_and_utf16(self, text):
        for utf16 in (False, True):
            source = ByteSource.from_bytes(encode_string(text, utf16))
            assert decode_string(source, utf16) == text
            assert source.read_to_end() == b""

    def test_utf16_surrogate_pair(self):
        """U+1F600 is sent as the pair D83D DE00."""
        source = ByteSource.from_bytes(encode_u32(4) + bytes.fromhex("D83DDE00"))
        assert decode_string(source, utf16=True) == "\U0001F600"

    def test_utf8_strict(self):
        source = ByteSource.from_bytes(encode_u32(2) + b"\xc3\x28")
        with pytest.raises(InvalidText):
            decode_string(source, utf16=False, what="Host")

    def test_utf16_lone_surrogate(self):
        source = ByteSource.from_bytes(encode_u32(2) + bytes.fromhex("D800"))
        with pytest.raises(InvalidText):
            decode_string(source, utf16=True)

    def test_utf16_odd_length_consumes_field(self):
        source = ByteSource.from_bytes(encode_u32(3) + b"\x00\x41\x00" + b"tail")
        with pytest.raises(InvalidText) as exc:
            decode_string(source, utf16=True)
        assert "odd" in str(exc.value)
        assert source.position == 7

    def test_truncated_payload(self):
        source = ByteSource.from_bytes(encode_u32(10) + b"abc")
        with pytest.raises(TruncatedStream):
            decode_string(source, utf16=False)


class TestSettingsDecoder:
    def test_body_length(self):
        source = ByteSource.from_bytes(encode_u32(123456))
        entry = SettingsDecoder(source, StringEncoding.UTF8).decode_payload(0, SettingsTag.BODY_LENGTH)
        assert isinstance(entry, BodyLengthSetting)
        assert entry.value == 123456

    def test_host_uses_request_encoding(self):
        source = ByteSource.from_bytes(encode_string("é", utf16=True))
        entry = SettingsDecoder(source, StringEncoding.UTF16_BE).decode_payload(3, SettingsTag.HOST)
        assert isinstance(entry, HostSetting)
        assert entry.host == "é"
        assert entry.index == 3

    def test_custom_skipped(self):
        source = ByteSource.from_bytes(encode_u32(5) + b"\x01\x02\x03\x04\x05" + b"\x09")
        entry = SettingsDecoder(source, StringEncoding.UTF8).decode_payload(0, SettingsTag.CUSTOM)
        assert isinstance(entry, CustomSetting)
        assert entry.length == 5
        assert source.read_u8() == 0x09

    def test_custom_truncated(self):
        source = ByteSource.from_bytes(encode_u32(5) + b"\x01\x02")
        with pytest.raises(TruncatedStream):
            SettingsDecoder(source, StringEncoding.UTF8).decode_payload(0, SettingsTag.CUSTOM)

    def test_unknown_consumes_nothing(self):
        source = ByteSource.from_bytes(b"\x01\x02")
        entry = SettingsDecoder(source, StringEncoding.UTF8).decode_payload(0, 0x02)
        assert isinstance(entry, UnknownSetting)
        assert entry.tag is None
        assert source.position == 0


class TestRequestDecoder:
    def test_host_scenario(self):
        """flags=0, path '/x', one Host entry 'hello', body 'OK'."""
        request = decode_request_hex(TEST_MESSAGES["host_utf8"]["valid"])
        assert request.path == "/x"
        assert request.header.action == Action.READ
        assert len(request.settings) == 1
        assert isinstance(request.settings[0], HostSetting)
        assert request.settings[0].host == "hello"
        assert request.body == b"OK"
        assert request.warnings == []

    def test_utf16_host_scenario(self):
        request = decode_request_hex(TEST_MESSAGES["host_utf16"]["valid"])
        assert request.hosts == ["é"]
        assert request.body == b""

    def test_empty_request(self):
        request = decode_request(make_request())
        assert request.path == ""
        assert request.settings == []
        assert request.body == b""
        assert request.size == 14

    def test_custom_skip_keeps_alignment(self):
        request = decode_request_hex(TEST_MESSAGES["custom_then_body_length"]["valid"])
        assert [type(s) for s in request.settings] == [CustomSetting, BodyLengthSetting]
        assert request.settings[0].length == 3
        assert request.settings[1].value == 16
        assert request.body == b"body"

    def test_unknown_tag_is_not_fatal(self):
        request = decode_request_hex(TEST_MESSAGES["unknown_tag"]["valid"])
        assert isinstance(request.settings[0], UnknownSetting)
        assert request.settings[0].raw_tag == 0x02
        assert isinstance(request.settings[1], BodyLengthSetting)
        assert request.settings[1].value == 7
        assert request.body == b"OK"
        assert len(request.warnings) == 1
        assert request.warnings[0].raw_tag == 0x02
        assert request.warnings[0].offset == 14

    def test_duplicate_tags_kept_in_order(self):
        settings = b"\x01" + encode_string("a", False) + b"\x01" + encode_string("b", False)
        request = decode_request(make_request(settings=settings, count=2))
        assert request.hosts == ["a", "b"]

    def test_exact_count_consumed(self):
        """Bytes after the declared entries belong to the body, even if they look like tags."""
        settings = b"\x00" + encode_u32(1)
        request = decode_request(make_request(settings=settings, count=1, body=b"\x00\x00\x00\x00\x02"))
        assert len(request.settings) == 1
        assert request.body == b"\x00\x00\x00\x00\x02"

    def test_path_is_lossy(self):
        request = decode_request(make_request(path=b"/\xff\xfe"))
        assert request.path == "/\ufffd\ufffd"

    def test_host_is_strict(self):
        settings = b"\x01" + encode_u32(1) + b"\xff"
        with pytest.raises(InvalidText):
            decode_request(make_request(settings=settings, count=1))

    def test_bad_magic_reads_nothing_more(self):
        data = bytes.fromhex(TEST_MESSAGES["bad_magic"]["valid"])
        source = ByteSource.from_bytes(data)
        with pytest.raises(InvalidMagic) as exc:
            read_request(source)
        assert exc.value.found == 0xDEADBEEF
        assert source.position == 8

    def test_truncated_path(self):
        with pytest.raises(TruncatedStream) as exc:
            decode_request_hex(TEST_MESSAGES["truncated_path"]["valid"])
        assert exc.value.expected == 16
        assert exc.value.available == 2

    def test_truncated_settings(self):
        """Count declares two entries but the stream ends after one."""
        settings = b"\x00" + encode_u32(1)
        with pytest.raises(TruncatedStream):
            decode_request(make_request(settings=settings, count=2))

    def test_short_header(self):
        with pytest.raises(TruncatedStream):
            decode_request(b"\x00\x04\x20")

    def test_decoder_with_pre_read_header(self):
        header = decode_header(make_header())
        source = ByteSource.from_bytes(encode_u32(1) + b"/" + encode_u16(0) + b"xyz")
        request = RequestDecoder(source).decode(header)
        assert request.path == "/"
        assert request.body == b"xyz"
        assert request.size == 8 + 4 + 1 + 2 + 3

    def test_independent_decodes(self):
        """A failed decode leaves nothing behind for the next one."""
        with pytest.raises(InvalidMagic):
            decode_request_hex(TEST_MESSAGES["bad_magic"]["valid"])
        request = decode_request_hex(TEST_MESSAGES["host_utf8"]["valid"])
        assert request.path == "/x"

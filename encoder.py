"""
Bussin Encoder

Encodes request recipes to wire bytes. Used to build requests for the checker
and to produce golden test messages.
"""

from buss_types import (
    SettingsTag, Header,
    SettingRecipe, RequestRecipe,
)


def encode_u8(value: int) -> bytes:
    return value.to_bytes(1, byteorder="big")


def encode_u16(value: int) -> bytes:
    return value.to_bytes(2, byteorder="big")


def encode_u32(value: int) -> bytes:
    return value.to_bytes(4, byteorder="big")


def encode_string(text: str, utf16: bool) -> bytes:
    """Encode text with its u32 length prefix, the inverse of decode_string."""
    raw = text.encode("utf-16-be" if utf16 else "utf-8")
    return encode_u32(len(raw)) + raw


def encode_header(header: Header) -> bytes:
    return (
        encode_u32(header.magic)
        + encode_u8(header.version_major)
        + encode_u8(header.version_minor)
        + encode_u8(int(header.action))
        + encode_u8(header.flags)
    )


class Encoder:
    """Encodes RequestRecipe objects to bytes."""

    def encode_setting(self, setting: SettingRecipe, utf16: bool) -> bytes:
        """Encode one settings entry: tag byte followed by its payload."""
        tag = SettingsTag.from_byte(setting.raw_tag)
        out = encode_u8(setting.raw_tag)

        if tag == SettingsTag.BODY_LENGTH:
            if not isinstance(setting.value, int):
                raise ValueError(f"BodyLength setting needs an integer, got {setting.value!r}")
            out += encode_u32(setting.value)
        elif tag == SettingsTag.HOST:
            if not isinstance(setting.value, str):
                raise ValueError(f"Host setting needs a string, got {setting.value!r}")
            out += encode_string(setting.value, utf16)
        elif tag == SettingsTag.CUSTOM:
            payload = setting.value or b""
            out += encode_u32(len(payload)) + payload
        else:
            # Unknown tags carry whatever raw bytes the recipe asks for
            out += setting.value or b""

        return out

    def encode(self, recipe: RequestRecipe) -> bytes:
        header = Header(
            magic=recipe.magic,
            version_major=recipe.version_major,
            version_minor=recipe.version_minor,
            action=recipe.action,
            flags=recipe.flags,
        )
        path = recipe.path.encode("utf-8")

        parts = [encode_header(header), encode_u32(len(path)), path, encode_u16(len(recipe.settings))]
        for setting in recipe.settings:
            parts.append(self.encode_setting(setting, recipe.is_utf16))
        parts.append(recipe.body)
        return b"".join(parts)

    def encode_hex(self, recipe: RequestRecipe) -> str:
        return self.encode(recipe).hex()


def encode_request(recipe: RequestRecipe) -> bytes:
    return Encoder().encode(recipe)

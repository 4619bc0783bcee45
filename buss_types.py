"""
Type definitions for the Bussin protocol.

These dataclasses represent a decoded request and the recipes used to build one.
"""

from dataclasses import dataclass, field
from enum import Enum, IntEnum


MAGIC_NUMBER = 0x00042069
HEADER_SIZE = 8

FLAG_UTF16 = 0x01

# Names for flag bits, lowest bit first
FLAG_NAMES = {
    FLAG_UTF16: "UTF16",
}


class Action(IntEnum):
    NOOP = 0
    READ = 1
    WRITE = 2
    MODIFY = 3
    DELETE = 4


class SettingsTag(IntEnum):
    BODY_LENGTH = 0x00
    HOST = 0x01
    CUSTOM = 0xFF

    @classmethod
    def from_byte(cls, value: int) -> "SettingsTag | None":
        """Map a tag byte through the closed tag set, None if unrecognized."""
        try:
            return cls(value)
        except ValueError:
            return None


class StringEncoding(Enum):
    UTF8 = "utf-8"
    UTF16_BE = "utf-16-be"


# === Header ===

@dataclass(frozen=True)
class Header:
    """Fixed 8-byte request header.

    Fields are stored as found on the wire, only the magic number is validated
    (by the request decoder). `action` is an Action member when the code is
    known, otherwise the raw byte.
    """
    magic: int
    version_major: int
    version_minor: int
    action: Action | int
    flags: int

    def has_flag(self, flag: int) -> bool:
        return (self.flags & flag) == flag

    @property
    def is_utf16(self) -> bool:
        return self.has_flag(FLAG_UTF16)

    @property
    def string_encoding(self) -> StringEncoding:
        return StringEncoding.UTF16_BE if self.is_utf16 else StringEncoding.UTF8

    @property
    def action_name(self) -> str:
        if isinstance(self.action, Action):
            return self.action.name
        return f"UNKNOWN({self.action})"

    @property
    def version(self) -> str:
        return f"{self.version_major}.{self.version_minor}"


# === Settings entries ===

@dataclass
class SettingsEntry:
    """Base class for one decoded tag occurrence."""
    index: int
    raw_tag: int

    @property
    def tag(self) -> SettingsTag | None:
        return SettingsTag.from_byte(self.raw_tag)

    @property
    def label(self) -> str:
        return "Unknown"

    def summary(self) -> str:
        return ""


@dataclass
class BodyLengthSetting(SettingsEntry):
    value: int = 0

    @property
    def label(self) -> str:
        return "BodyLength"

    def summary(self) -> str:
        return str(self.value)


@dataclass
class HostSetting(SettingsEntry):
    host: str = ""

    @property
    def label(self) -> str:
        return "Host"

    def summary(self) -> str:
        return self.host


@dataclass
class CustomSetting(SettingsEntry):
    """Opaque payload, only its declared length is kept."""
    length: int = 0

    @property
    def label(self) -> str:
        return "Custom"

    def summary(self) -> str:
        return f"Length {self.length}"


@dataclass
class UnknownSetting(SettingsEntry):
    """Unrecognized tag byte. No payload bytes were consumed for it."""

    def summary(self) -> str:
        return f"tag 0x{self.raw_tag:02X}"


@dataclass
class UnrecognizedTag:
    """Non-fatal observation raised while walking the settings section."""
    index: int
    raw_tag: int
    offset: int

    def __str__(self):
        return f"Unknown settings {self.raw_tag} (entry {self.index}, offset {self.offset})"


# === Decoded request ===

@dataclass
class DecodedRequest:
    """Everything extracted from one request, in stream order."""
    header: Header
    path: str
    settings_count: int
    settings: list[SettingsEntry] = field(default_factory=list)
    body: bytes = b""
    warnings: list[UnrecognizedTag] = field(default_factory=list)
    size: int = 0  # wire size of the request, header included

    @property
    def hosts(self) -> list[str]:
        return [s.host for s in self.settings if isinstance(s, HostSetting)]

    @property
    def body_text(self) -> str:
        return self.body.decode("utf-8", errors="replace")


# === Recipes (encoder input) ===

@dataclass
class SettingRecipe:
    """One settings entry to encode.

    `value` is an int for BodyLength, a str for Host, bytes for Custom and
    unknown tags.
    """
    raw_tag: int
    value: int | str | bytes | None = None


@dataclass
class RequestRecipe:
    """Description of a request to build with the Encoder."""
    magic: int = MAGIC_NUMBER
    version_major: int = 1
    version_minor: int = 0
    action: int = Action.NOOP
    flags: int = 0
    path: str = ""
    settings: list[SettingRecipe] = field(default_factory=list)
    body: bytes = b""

    @property
    def is_utf16(self) -> bool:
        return (self.flags & FLAG_UTF16) == FLAG_UTF16

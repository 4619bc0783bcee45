"""
Bussin Display Formatters

Registry of display formatters for raw field bytes.
Formatters transform a byte payload (usually the request body) into a
human-readable string.

Built-in formatters:
- text: Lossy UTF-8 text
- hex: Hex string with 0x prefix
- hexdump: Offset, hex and ASCII columns, 16 bytes per line
- ascii: Printable ASCII with '.' for everything else
"""

from typing import Callable

from buss_types import FLAG_NAMES

# Type for formatter functions: raw bytes -> formatted string
FormatterFunc = Callable[[bytes], str]

# Registry of formatters
_formatters: dict[str, FormatterFunc] = {}


def register(name: str):
    """Decorator to register a formatter."""
    def decorator(func: FormatterFunc) -> FormatterFunc:
        _formatters[name] = func
        return func
    return decorator


def get_formatter(name: str) -> FormatterFunc | None:
    """Get a formatter by name."""
    return _formatters.get(name)


def format_value(name: str, data: bytes) -> str | None:
    """Format raw bytes using a named formatter.

    Returns:
        Formatted string, or None if formatter not found
    """
    formatter = get_formatter(name)
    if formatter is None:
        return None
    return formatter(data)


def list_formatters() -> list[str]:
    """List all registered formatter names."""
    return list(_formatters.keys())


def format_flags(flags: int) -> str:
    """Format a flag byte as 'UTF16 | 0x80', or 'none' when empty."""
    names = []
    remaining = flags
    for bit, name in FLAG_NAMES.items():
        if flags & bit == bit:
            names.append(name)
            remaining &= ~bit
    if remaining:
        names.append(f"0x{remaining:02X}")
    return " | ".join(names) if names else "none"


# === Built-in Formatters ===

@register("text")
def format_text(data: bytes) -> str:
    return data.decode("utf-8", errors="replace")


@register("hex")
def format_hex(data: bytes) -> str:
    if not data:
        return ""
    return f"0x{data.hex().upper()}"


@register("ascii")
def format_ascii(data: bytes) -> str:
    return "".join(chr(b) if 32 <= b < 127 else "." for b in data)


@register("hexdump")
def format_hexdump(data: bytes) -> str:
    """Classic 16-bytes-per-line dump: '00000000  48 65 6c ...  |Hel...|'."""
    lines = []
    for offset in range(0, len(data), 16):
        chunk = data[offset:offset + 16]
        hex_part = " ".join(f"{b:02x}" for b in chunk)
        lines.append(f"{offset:08x}  {hex_part:<47}  |{format_ascii(chunk)}|")
    return "\n".join(lines)

"""
Request report rendering.

Formats a DecodedRequest for human inspection in one of several layouts:
box (default), oneline, tree and json.
"""

import json

from treelib import Tree

import formatters
from buss_types import (
    DecodedRequest, SettingsEntry,
    BodyLengthSetting, HostSetting, CustomSetting, UnknownSetting,
)


REPORT_FORMATS = ("box", "oneline", "tree", "json")
BOX_RULE = "+-----------------------------------+"


class AnsiColors:
    OKBLUE = '\033[94m'
    OKGREEN = '\033[92m'
    WARNING = '\033[93m'
    FAIL = '\033[91m'
    ENDC = '\033[0m'
    BOLD = '\033[1m'


def truncate_bytes(data: bytes, limit_bytes: int) -> tuple[bytes, int]:
    """Cut data to limit_bytes (0 = unlimited); returns (kept, omitted count)."""
    if limit_bytes <= 0 or len(data) <= limit_bytes:
        return data, 0
    return data[:limit_bytes], len(data) - limit_bytes


def format_body(data: bytes, body_format: str = "text", limit_bytes: int = 0) -> str:
    """Format the body with a registered formatter, adding a '...+NB' suffix when truncated."""
    kept, omitted = truncate_bytes(data, limit_bytes)
    formatted = formatters.format_value(body_format, kept)
    if formatted is None:
        raise ValueError(f"Unknown body format '{body_format}'. Options: {', '.join(formatters.list_formatters())}")
    if omitted:
        formatted += f"...+{omitted}B"
    return formatted


def setting_to_dict(entry: SettingsEntry) -> dict:
    data = {"index": entry.index, "tag": entry.raw_tag, "name": entry.label}
    if isinstance(entry, BodyLengthSetting):
        data["value"] = entry.value
    elif isinstance(entry, HostSetting):
        data["value"] = entry.host
    elif isinstance(entry, CustomSetting):
        data["length"] = entry.length
    return data


def request_line(request: DecodedRequest) -> str:
    header = request.header
    return f"Bussin {header.version} {header.action_name} {request.path}"


def get_request_report_box(request: DecodedRequest, body_format: str = "text", limit_bytes: int = 0) -> str:
    """The classic framed report, one settings entry per line."""
    lines = ["[#] Request Header", BOX_RULE]
    lines.append(f" {request_line(request)}")
    lines.append(f" Flags: {formatters.format_flags(request.header.flags)}")
    lines.append(f" Settings count: {request.settings_count}")
    for entry in request.settings:
        if isinstance(entry, UnknownSetting):
            lines.append(f" {entry.index}>Unknown settings {entry.raw_tag}")
        else:
            lines.append(f" {entry.index}>{entry.label}: {entry.summary()}")
    lines.append(" Body: ")
    lines.append(format_body(request.body, body_format, limit_bytes))
    lines.append(BOX_RULE)
    return "\n".join(lines)


def get_request_report_oneline(request: DecodedRequest, body_format: str = "text", limit_bytes: int = 0) -> str:
    settings = ", ".join(f"{e.label}={e.summary()}" if e.summary() else e.label for e in request.settings)
    body = format_body(request.body, body_format, limit_bytes).replace("\n", "\\n")
    return (
        f"{request_line(request)} flags={formatters.format_flags(request.header.flags)}"
        f" settings=[{settings}] body={len(request.body)}B {body!r}"
    )


def get_request_report_tree(request: DecodedRequest, body_format: str = "text", limit_bytes: int = 0) -> str:
    """Tree layout rendered with treelib."""
    header = request.header
    tree = Tree()
    node_counter = [0]

    def add(tag: str, parent: str) -> str:
        node_counter[0] += 1
        node_id = f"n{node_counter[0]}"
        tree.create_node(tag, node_id, parent=parent)
        return node_id

    tree.create_node(f"request ({request.size} bytes)", "root")

    header_id = add("header", "root")
    add(f"magic: 0x{header.magic:08X}", header_id)
    add(f"version: {header.version}", header_id)
    add(f"action: {header.action_name}", header_id)
    add(f"flags: {formatters.format_flags(header.flags)}", header_id)

    add(f"path: {request.path}", "root")

    settings_id = add(f"settings ({request.settings_count})", "root")
    for entry in request.settings:
        summary = entry.summary()
        add(f"{entry.index}: {entry.label}" + (f" = {summary}" if summary else ""), settings_id)

    body = format_body(request.body, body_format, limit_bytes).replace("\n", "\\n")
    add(f"body ({len(request.body)} bytes): {body}", "root")

    return tree.show(stdout=False, sorting=False).rstrip("\n")


def get_request_report_json(request: DecodedRequest, body_format: str = "text", limit_bytes: int = 0) -> str:
    header = request.header
    data = {
        "header": {
            "magic": header.magic,
            "version_major": header.version_major,
            "version_minor": header.version_minor,
            "action": header.action_name,
            "flags": header.flags,
        },
        "path": request.path,
        "settings_count": request.settings_count,
        "settings": [setting_to_dict(e) for e in request.settings],
        "body": format_body(request.body, body_format, limit_bytes),
        "body_length": len(request.body),
        "warnings": [str(w) for w in request.warnings],
        "size": request.size,
    }
    return json.dumps(data, indent=2, ensure_ascii=False)


_REPORTERS = {
    "box": get_request_report_box,
    "oneline": get_request_report_oneline,
    "tree": get_request_report_tree,
    "json": get_request_report_json,
}


def get_request_report(request: DecodedRequest, fmt: str = "box", body_format: str = "text", limit_bytes: int = 0) -> str:
    """Render request in the given report format.

    Raises:
        ValueError: unknown report or body format
    """
    reporter = _REPORTERS.get(fmt)
    if reporter is None:
        raise ValueError(f"Unknown format '{fmt}'. Options: {', '.join(REPORT_FORMATS)}")
    return reporter(request, body_format, limit_bytes)

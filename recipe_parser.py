"""
Bussin Recipe Parser

Uses Lark to parse request recipe files into RequestRecipe objects.

Example recipe:

    version 1.0
    action READ
    flags UTF16
    path "/x"
    setting host "hello"
    setting body_length 2
    setting custom hex "deadbeef"
    setting tag 0x02
    body "OK"
"""

import json
from pathlib import Path

from lark import Lark, Transformer, Token
from lark.exceptions import UnexpectedToken, UnexpectedCharacters, UnexpectedInput, VisitError

from buss_types import (
    FLAG_NAMES,
    Action, SettingsTag,
    SettingRecipe, RequestRecipe,
)


GRAMMAR = r"""
start: statement*

?statement: magic_stmt
          | version_stmt
          | action_stmt
          | flags_stmt
          | path_stmt
          | setting_stmt
          | body_stmt

magic_stmt: "magic" number
version_stmt: "version" DEC_NUMBER "." DEC_NUMBER
action_stmt: "action" (IDENT | number)
flags_stmt: "flags" flag ("|" flag)*
flag: IDENT | number
path_stmt: "path" STRING

setting_stmt: "setting" "body_length" number      -> body_length_setting
            | "setting" "host" STRING             -> host_setting
            | "setting" "custom" hex_bytes        -> custom_setting
            | "setting" "custom" "size" number    -> custom_size_setting
            | "setting" "tag" number hex_bytes?   -> raw_setting

body_stmt: "body" STRING          -> body_text
         | "body" hex_bytes       -> body_hex

hex_bytes: "hex" STRING
number: HEX_NUMBER | DEC_NUMBER

HEX_NUMBER.2: /0x[0-9a-fA-F]+/
DEC_NUMBER: /\d+/
IDENT: /[A-Za-z_][A-Za-z0-9_]*/
STRING: ESCAPED_STRING
COMMENT: /#[^\n]*/

%import common.ESCAPED_STRING
%import common.WS
%ignore WS
%ignore COMMENT
"""


class ParseError(Exception):
    """Exception raised for recipe parsing errors with line/column info."""
    def __init__(self, message: str, line: int = None, column: int = None, file_path: str = None):
        self.line = line
        self.column = column
        self.file_path = file_path
        super().__init__(message)

    def __str__(self):
        location = ""
        if self.file_path:
            location = f"{self.file_path}:"
        if self.line is not None:
            location += f"{self.line}:"
            if self.column is not None:
                location += f"{self.column}:"
        if location:
            return f"{location} {self.args[0]}"
        return self.args[0]


def get_parser() -> Lark:
    """Create and return the Lark parser."""
    return Lark(GRAMMAR, start="start", parser="lalr", propagate_positions=True)


class RecipeTransformer(Transformer):
    """Transform Lark parse tree into a RequestRecipe."""

    # === Terminals ===

    def IDENT(self, token):
        return str(token)

    def HEX_NUMBER(self, token):
        return int(str(token), 16)

    def DEC_NUMBER(self, token):
        return int(str(token))

    def STRING(self, token):
        # ESCAPED_STRING is JSON compatible, this also resolves escapes
        return json.loads(str(token))

    # === Values ===

    def number(self, items):
        return items[0]

    def hex_bytes(self, items):
        text = "".join(items[0].split())
        try:
            return bytes.fromhex(text)
        except ValueError:
            raise ValueError(f"Invalid hex bytes: {items[0]!r}") from None

    def flag(self, items):
        value = items[0]
        if isinstance(value, int):
            return value
        for bit, name in FLAG_NAMES.items():
            if name == value.upper():
                return bit
        raise ValueError(f"Unknown flag '{value}'")

    # === Statements ===

    def magic_stmt(self, items):
        return ("magic", items[0])

    def version_stmt(self, items):
        major, minor = items
        return ("version", (major, minor))

    def action_stmt(self, items):
        value = items[0]
        if isinstance(value, str):
            try:
                value = Action[value.upper()]
            except KeyError:
                raise ValueError(f"Unknown action '{value}'") from None
        return ("action", value)

    def flags_stmt(self, items):
        flags = 0
        for bit in items:
            flags |= bit
        return ("flags", flags)

    def path_stmt(self, items):
        return ("path", items[0])

    def body_length_setting(self, items):
        return ("setting", SettingRecipe(raw_tag=SettingsTag.BODY_LENGTH, value=items[0]))

    def host_setting(self, items):
        return ("setting", SettingRecipe(raw_tag=SettingsTag.HOST, value=items[0]))

    def custom_setting(self, items):
        return ("setting", SettingRecipe(raw_tag=SettingsTag.CUSTOM, value=items[0]))

    def custom_size_setting(self, items):
        return ("setting", SettingRecipe(raw_tag=SettingsTag.CUSTOM, value=bytes(items[0])))

    def raw_setting(self, items):
        raw_tag = items[0]
        if not 0 <= raw_tag <= 0xFF:
            raise ValueError(f"Tag {raw_tag} does not fit in one byte")
        payload = items[1] if len(items) > 1 else b""
        return ("setting", SettingRecipe(raw_tag=raw_tag, value=payload))

    def body_text(self, items):
        return ("body", items[0].encode("utf-8"))

    def body_hex(self, items):
        return ("body", items[0])

    def start(self, items):
        recipe = RequestRecipe()
        for key, value in items:
            if key == "version":
                recipe.version_major, recipe.version_minor = value
            elif key == "setting":
                recipe.settings.append(value)
            elif key == "body":
                recipe.body += value
            else:
                setattr(recipe, key, value)
        return recipe


# Global parser instance
_parser = None


def parse_string(content: str, file_path: str = None) -> RequestRecipe:
    """Parse recipe text and return the RequestRecipe.

    Raises:
        ParseError: If the text is not a valid recipe
    """
    global _parser
    if _parser is None:
        _parser = get_parser()

    try:
        tree = _parser.parse(content)
    except UnexpectedToken as e:
        token = "EOF" if e.token.type == "$END" else e.token
        msg = f"Unexpected token '{token}'"
        if e.expected:
            expected = ", ".join(sorted(e.expected)[:5])
            msg += f". Expected one of: {expected}"
        raise ParseError(msg, line=e.line, column=e.column, file_path=file_path) from None
    except UnexpectedCharacters as e:
        msg = f"Unexpected character '{content[e.pos_in_stream] if e.pos_in_stream < len(content) else 'EOF'}'"
        raise ParseError(msg, line=e.line, column=e.column, file_path=file_path) from None
    except UnexpectedInput as e:
        raise ParseError(str(e), file_path=file_path) from None

    try:
        return RecipeTransformer().transform(tree)
    except VisitError as e:
        if isinstance(e.obj, Token):
            line = e.obj.line
        else:
            line = getattr(e.obj.meta, "line", None)
        raise ParseError(str(e.orig_exc), line=line, file_path=file_path) from None


def parse(file_path: str | Path) -> RequestRecipe:
    """Parse a recipe file.

    Raises:
        ParseError: If parsing fails
        FileNotFoundError: If the file does not exist
    """
    with open(file_path) as f:
        content = f.read()
    return parse_string(content, file_path=str(file_path))

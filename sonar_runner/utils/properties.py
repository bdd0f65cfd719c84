# sonar_runner/utils/properties.py
"""
Reading and writing Java `.properties` files.

The forked analysis engine loads its settings with `java.util.Properties`,
so files are written the way `Properties.store` writes them: ISO-8859-1,
with anything outside printable ASCII escaped as `\\uXXXX`. The reader
parses the same syntax and is used for project files such as
`sonar-project.properties`.
"""

from __future__ import annotations

import re
from datetime import datetime
from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Optional, Union

from .logging import get_logger

log = get_logger(__name__)

PathLike = Union[str, Path]

_ESCAPES = {"\t": "\\t", "\n": "\\n", "\r": "\\r", "\f": "\\f"}
_UNESCAPES = {"t": "\t", "n": "\n", "r": "\r", "f": "\f"}
_NEWLINES = re.compile(r"\r\n|\r|\n")


def _utf16_units(text: str) -> Iterable[str]:
    # Java strings are UTF-16; characters above the BMP are written as a surrogate pair
    for ch in text:
        code = ord(ch)
        if code > 0xFFFF:
            code -= 0x10000
            yield chr(0xD800 + (code >> 10))
            yield chr(0xDC00 + (code & 0x3FF))
        else:
            yield ch


def escape(text: str, escape_space: bool) -> str:
    """Escapes a key (escape_space=True) or a value (escape_space=False)."""
    out: List[str] = []
    for index, ch in enumerate(_utf16_units(text)):
        code = ord(ch)
        if 61 < code < 127:
            out.append("\\\\" if ch == "\\" else ch)
        elif ch == " ":
            out.append("\\ " if index == 0 or escape_space else " ")
        elif ch in _ESCAPES:
            out.append(_ESCAPES[ch])
        elif ch in "=:#!":
            out.append("\\" + ch)
        elif code < 0x20 or code > 0x7E:
            out.append("\\u%04X" % code)
        else:
            out.append(ch)
    return "".join(out)


def _timestamp() -> str:
    return datetime.now().astimezone().strftime("%a %b %d %H:%M:%S %Z %Y")


def dumps(properties: Mapping[str, str], comment: Optional[str] = None) -> str:
    """Renders properties to text in `Properties.store` layout."""
    lines: List[str] = []
    if comment:
        lines.append("#" + comment)
    lines.append("#" + _timestamp())
    for key, value in properties.items():
        lines.append(escape(str(key), escape_space=True) + "=" + escape(str(value), escape_space=False))
    return "\n".join(lines) + "\n"


def write_properties(path: PathLike, properties: Mapping[str, str], comment: Optional[str] = None) -> Path:
    """
    Writes properties to `path`, replacing its content.

    Args:
        path: Destination file.
        properties: Flat mapping of string keys to string values.
        comment: Optional header comment.

    Returns:
        The path written, as a Path.
    """
    path = Path(path)
    with open(path, "w", encoding="iso-8859-1", newline="\n") as f:
        f.write(dumps(properties, comment))
    log.debug("Wrote %d properties to %s", len(properties), path)
    return path


def _logical_lines(text: str) -> Iterable[str]:
    pending = ""
    for raw in _NEWLINES.split(text):
        line = raw.lstrip(" \t\f")
        if not pending and (not line or line[0] in "#!"):
            continue
        trailing = len(line) - len(line.rstrip("\\"))
        if trailing % 2 == 1:
            pending += line[:-1]
            continue
        yield pending + line
        pending = ""
    if pending:
        yield pending


def _unescape(text: str) -> str:
    out: List[str] = []
    i = 0
    while i < len(text):
        ch = text[i]
        if ch != "\\" or i + 1 >= len(text):
            out.append(ch)
            i += 1
            continue
        nxt = text[i + 1]
        if nxt == "u":
            digits = text[i + 2:i + 6]
            if len(digits) != 4:
                raise ValueError(f"Malformed \\uxxxx encoding in: {text!r}")
            out.append(chr(int(digits, 16)))
            i += 6
        else:
            out.append(_UNESCAPES.get(nxt, nxt))
            i += 2
    # recombine surrogate pairs written for characters above the BMP
    return "".join(out).encode("utf-16", "surrogatepass").decode("utf-16")


def _split(line: str):
    i = 0
    while i < len(line):
        ch = line[i]
        if ch == "\\":
            i += 2
            continue
        if ch in "=: \t\f":
            break
        i += 1
    key = line[:i]
    rest = line[i:].lstrip(" \t\f")
    if rest[:1] in ("=", ":"):
        rest = rest[1:].lstrip(" \t\f")
    return key, rest


def loads(text: str) -> Dict[str, str]:
    """Parses `.properties` text as `Properties.load` does."""
    result: Dict[str, str] = {}
    for line in _logical_lines(text):
        key, value = _split(line)
        result[_unescape(key)] = _unescape(value)
    return result


def load_properties(path: PathLike) -> Dict[str, str]:
    """Loads a `.properties` file written in ISO-8859-1."""
    with open(path, "r", encoding="iso-8859-1") as f:
        return loads(f.read())

"""
Simulation Result Decoder.

Read-only simulation returns one `(bytes, type_tag)` pair per return slot,
BCS-encoded. This module turns them back into display values:

  u8..u256          little-endian integer (int up to 2^53 - 1, decimal string above)
  bool              True / False, any other byte is kept as the raw int
  address           0x + 64 lowercase hex
  vector<T>         ULEB128 length prefix, then the elements
  String            UTF-8 text (std::string and std::ascii)
  Option<T>         None or the inner value

Anything else renders as "<bytes> (<type>)". Decoding never raises.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any

from movecall.constants import ADDRESS_HEX_LENGTH, UNSIGNED_WIDTHS
from movecall.descriptor import parse_type_base, split_type_args
from movecall.encoding import format_display_integer

logger = logging.getLogger(__name__)

_INT_WIDTHS = {f"u{w}": w for w in UNSIGNED_WIDTHS}
_STRING_STRUCTS = {("1", "string", "String"), ("1", "ascii", "String")}
_OPTION_STRUCT = ("1", "option", "Option")


@dataclass(frozen=True)
class ReturnSlot:
    data: tuple[int, ...]
    type_tag: str

    @classmethod
    def from_json(cls, value: Any) -> ReturnSlot:
        """Accept the devInspect `[bytes, type]` pair or a `{"bcs"/"data", "type"}` dict."""
        if isinstance(value, dict):
            raw = value.get("bcs", value.get("data", []))
            tag = value.get("type") or value.get("type_tag") or ""
        else:
            raw, tag = value[0], value[1]
        return cls(data=tuple(int(b) for b in raw), type_tag=str(tag))


class _Unsupported(Exception):
    pass


class _Reader:
    def __init__(self, data: bytes) -> None:
        self.data = data
        self.pos = 0

    def take(self, n: int) -> bytes:
        if self.pos + n > len(self.data):
            raise _Unsupported(f"need {n} bytes at offset {self.pos}, have {len(self.data) - self.pos}")
        out = self.data[self.pos : self.pos + n]
        self.pos += n
        return out

    def uleb128(self) -> int:
        value = 0
        shift = 0
        while True:
            byte = self.take(1)[0]
            value |= (byte & 0x7F) << shift
            if not byte & 0x80:
                return value
            shift += 7
            if shift > 63:
                raise _Unsupported("ULEB128 length overflow")

    @property
    def exhausted(self) -> bool:
        return self.pos == len(self.data)


def _struct_key(tag: str) -> tuple[tuple[str, str, str], list[str]]:
    pkg, mod, name, args = parse_type_base(tag)
    if pkg == "std":
        pkg = "1"
    elif pkg.lower().startswith("0x"):
        pkg = pkg[2:].lstrip("0") or "0"
    return (pkg, mod, name), args


def _read_value(reader: _Reader, tag: str) -> Any:
    t = tag.strip()
    lowered = t.lower()
    if lowered in _INT_WIDTHS:
        width = _INT_WIDTHS[lowered]
        return format_display_integer(int.from_bytes(reader.take(width // 8), "little"))
    if lowered == "bool":
        byte = reader.take(1)[0]
        if byte == 1:
            return True
        if byte == 0:
            return False
        return byte
    if lowered in ("address", "signer"):
        return "0x" + reader.take(ADDRESS_HEX_LENGTH // 2).hex()
    if lowered.startswith("vector<") and lowered.endswith(">"):
        inner = t[len("vector<") : -1]
        count = reader.uleb128()
        return [_read_value(reader, inner) for _ in range(count)]
    if "::" in t:
        key, args = _struct_key(t)
        if key in _STRING_STRUCTS:
            raw = reader.take(reader.uleb128())
            try:
                return raw.decode("utf-8")
            except UnicodeDecodeError as e:
                raise _Unsupported(f"invalid UTF-8 in {t}") from e
        if key == _OPTION_STRUCT and len(args) == 1:
            count = reader.uleb128()
            if count == 0:
                return None
            if count == 1:
                return _read_value(reader, args[0])
            raise _Unsupported(f"option with {count} elements")
    raise _Unsupported(f"no decoder for {t}")


def _top_level(data: bytes, tag: str) -> Any:
    """Top-level scalars tolerate short or long payloads the way the simulator reports them."""
    lowered = tag.strip().lower()
    if lowered in _INT_WIDTHS:
        if not data:
            raise _Unsupported("empty integer payload")
        return format_display_integer(int.from_bytes(data, "little"))
    if lowered == "bool" and len(data) == 1:
        return _read_value(_Reader(data), lowered)
    if lowered == "address" and 0 < len(data) <= ADDRESS_HEX_LENGTH // 2:
        return "0x" + data.hex().rjust(ADDRESS_HEX_LENGTH, "0")

    reader = _Reader(data)
    value = _read_value(reader, tag)
    if not reader.exhausted:
        raise _Unsupported(f"{len(data) - reader.pos} trailing bytes")
    return value


def render_raw(data: Iterable[int], type_tag: str) -> str:
    return f"[{', '.join(str(b) for b in data)}] ({type_tag})"


def decode_return_value(data: Iterable[int] | bytes, type_tag: str) -> Any:
    """Decode one return slot. Unknown or malformed payloads render raw."""
    try:
        raw = bytes(data)
    except (TypeError, ValueError):
        return f"{data!r} ({type_tag})"
    try:
        return _top_level(raw, type_tag)
    except _Unsupported as e:
        logger.debug(f"Rendering {type_tag} raw: {e}")
    except ValueError as e:
        logger.debug(f"Rendering {type_tag} raw after decode failure: {e}")
    return render_raw(raw, type_tag)


def decode_return_values(slots: Iterable[ReturnSlot]) -> list[Any]:
    return [decode_return_value(s.data, s.type_tag) for s in slots]


def parse_byte_list(text: str) -> list[int]:
    """Parse `[1, 0, 0, 0]` or `0x01000000` into byte values (CLI helper)."""
    s = text.strip()
    if s.lower().startswith("0x"):
        body = s[2:]
        if len(body) % 2:
            body = "0" + body
        return list(bytes.fromhex(body))
    inner = s.strip("[]")
    out = []
    for part in split_type_args(inner):
        b = int(part)
        if not 0 <= b <= 255:
            raise ValueError(f"byte out of range: {b}")
        out.append(b)
    return out

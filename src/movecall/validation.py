"""
Validation of raw parameter text against a TypeDescriptor.

Two layers:
- `check_*` functions raise FormatError / RangeError and return the
  normalized Python value. The encoder builds on these.
- `validate_parameter()` wraps them into a `ValidationOutcome` for the
  keystroke path. It is pure: no I/O, object existence is checked by the
  resolver.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from typing import Any

from movecall.constants import (
    ADDRESS_HEX_LENGTH,
    LARGE_U64_WARNING_THRESHOLD,
    MAX_SAFE_INTEGER,
    max_unsigned,
)
from movecall.descriptor import TypeCategory, TypeDescriptor
from movecall.errors import FormatError, MoveCallError, RangeError, RequiredFieldError

logger = logging.getLogger(__name__)

_DIGITS_RE = re.compile(r"^[0-9]+$")
_HEX_RE = re.compile(r"^[0-9a-fA-F]+$")
_OBJECT_ID_RE = re.compile(r"^0x[0-9a-f]{64}$")


@dataclass(frozen=True)
class ValidationOutcome:
    """Result of validating one (parameter, text) pair.

    `valid=False` always carries `error`; `valid=True` never does. A warning may
    accompany a valid outcome.
    """

    valid: bool
    normalized_value: Any = None
    error: str | None = None
    warning: str | None = None
    error_kind: str | None = None

    def __post_init__(self) -> None:
        if not self.valid and not self.error:
            raise ValueError("invalid outcome requires an error message")
        if self.valid and self.error:
            raise ValueError("valid outcome cannot carry an error")

    @classmethod
    def ok(cls, normalized_value: Any = None, warning: str | None = None) -> ValidationOutcome:
        return cls(valid=True, normalized_value=normalized_value, warning=warning)

    @classmethod
    def from_error(cls, err: MoveCallError) -> ValidationOutcome:
        return cls(valid=False, error=err.message, error_kind=err.code)

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"valid": self.valid}
        if self.normalized_value is not None:
            out["normalizedValue"] = self.normalized_value
        if self.error:
            out["error"] = self.error
            out["errorKind"] = self.error_kind
        if self.warning:
            out["warning"] = self.warning
        return out


def _label(param: str | None) -> str:
    return f"'{param}': " if param else ""


# ---------------------------------------------------------------------------
# Scalar checks
# ---------------------------------------------------------------------------


def check_unsigned(text: str, width: int, *, param: str | None = None) -> int:
    """Parse an unsigned integer of `width` bits. ASCII digits only, no sign or whitespace."""
    if isinstance(text, str) and text.startswith("-") and _DIGITS_RE.match(text[1:]) and text[1:].strip("0"):
        raise RangeError(
            f"{_label(param)}value must be at least 0 for u{width}",
            param=param,
            bound=0,
            width=width,
        )
    if not isinstance(text, str) or not _DIGITS_RE.match(text):
        raise FormatError(
            f"{_label(param)}only non-negative integers (digits 0-9) are allowed for u{width}, got {text!r}",
            param=param,
            expected=f"u{width} decimal digits",
        )
    value = int(text)
    upper = max_unsigned(width)
    if value > upper:
        raise RangeError(
            f"{_label(param)}value exceeds maximum of {upper} for u{width}",
            param=param,
            bound=upper,
            width=width,
        )
    return value


def unsigned_warning(value: int, width: int) -> str | None:
    """Advisory text for large but valid integers."""
    if width == 64 and value > LARGE_U64_WARNING_THRESHOLD:
        return "Large value detected. This likely represents a token amount in smallest units (1 SUI = 10^9 MIST)"
    if width >= 64 and value > MAX_SAFE_INTEGER:
        return "Large number, will be passed as string to prevent precision loss"
    return None


def check_bool(text: str, *, param: str | None = None) -> bool:
    lowered = text.lower() if isinstance(text, str) else ""
    if lowered == "true":
        return True
    if lowered == "false":
        return False
    raise FormatError(
        f'{_label(param)}boolean value must be "true" or "false", got {text!r}',
        param=param,
        expected="true | false",
    )


def normalize_address(text: str, *, param: str | None = None, kind: str = "Address") -> str:
    """
    Normalize to `0x` + 64 lowercase hex characters.

    The `0x` prefix is optional and short bodies are left-padded with zeros,
    which tolerates ids copied from explorers that drop leading zero bytes.
    """
    s = text.strip() if isinstance(text, str) else ""
    body = s[2:] if s[:2] in ("0x", "0X") else s
    if not body or not _HEX_RE.match(body):
        raise FormatError(
            f"{_label(param)}{kind} must contain only hexadecimal characters, got {text!r}",
            param=param,
            expected="0x-prefixed hex, up to 64 characters",
        )
    if len(body) > ADDRESS_HEX_LENGTH:
        raise FormatError(
            f"{_label(param)}{kind} cannot be longer than 32 bytes ({ADDRESS_HEX_LENGTH} hex characters)",
            param=param,
            expected="0x-prefixed hex, up to 64 characters",
        )
    return "0x" + body.lower().rjust(ADDRESS_HEX_LENGTH, "0")


def normalize_object_id(text: str, *, param: str | None = None) -> str:
    normalized = normalize_address(text, param=param, kind="Object ID")
    if not _OBJECT_ID_RE.match(normalized):
        raise FormatError(
            f"{_label(param)}Object ID must be 0x followed by 64 hex characters",
            param=param,
            expected="^0x[0-9a-f]{64}$",
        )
    return normalized


def check_string(text: str, *, param: str | None = None) -> str:
    """
    Pass text through verbatim.

    Text carrying quotes or backslashes must be a valid JSON string body: an
    escaped quote passes, a bare quote or a dangling backslash does not.
    """
    if "\\" not in text and '"' not in text:
        return text
    try:
        json.loads('"' + text + '"')
    except json.JSONDecodeError:
        raise FormatError(
            f'{_label(param)}invalid string format: escape quotes and backslashes, e.g. He said \\"hi\\"',
            param=param,
            expected="JSON-escaped string body",
        ) from None
    return text


def check_scalar(text: str, descriptor: TypeDescriptor, *, param: str | None = None) -> Any:
    """Validate one non-vector value and return its normalized Python form."""
    cat = descriptor.category
    if cat is TypeCategory.UNSIGNED_INT:
        return check_unsigned(text, descriptor.width or 64, param=param)
    if cat is TypeCategory.BOOLEAN:
        return check_bool(text, param=param)
    if cat in (TypeCategory.ADDRESS, TypeCategory.SIGNER):
        return normalize_address(text, param=param)
    if cat is TypeCategory.OBJECT_REFERENCE:
        return normalize_object_id(text, param=param)
    if cat is TypeCategory.GENERIC_STRING:
        return check_string(text, param=param)
    raise FormatError(
        f"{_label(param)}nested vectors are not supported as call arguments",
        param=param,
        expected=descriptor.type_tag(),
    )


# ---------------------------------------------------------------------------
# Vectors
# ---------------------------------------------------------------------------


def _element_text(item: Any, index: int, param: str | None) -> str:
    if isinstance(item, bool):
        return "true" if item else "false"
    if isinstance(item, (int, str)):
        return str(item)
    raise FormatError(
        f"{_label(param)}element {index} must be a number, boolean or string, got {json.dumps(item)}",
        param=param,
        expected="scalar element",
    )


def split_vector_literal(text: str, element: TypeDescriptor, *, param: str | None = None) -> list[str]:
    """
    Split a vector literal into per-element texts.

    `b"..."` is accepted for 8-bit elements and yields the ASCII code points;
    everything else must be a JSON array.
    """
    s = text.strip()
    is_bytes = element.category is TypeCategory.UNSIGNED_INT and element.width == 8
    if is_bytes and len(s) >= 3 and s.startswith('b"') and s.endswith('"'):
        body = s[2:-1]
        out = []
        for i, ch in enumerate(body):
            if ord(ch) > 127:
                raise FormatError(
                    f"{_label(param)}byte string element {i} is not ASCII: {ch!r}",
                    param=param,
                    expected='b"ascii text"',
                )
            out.append(str(ord(ch)))
        return out

    try:
        parsed = json.loads(s)
    except json.JSONDecodeError:
        raise FormatError(
            f"{_label(param)}invalid vector format. Use JSON array syntax: [item1, item2, ...]",
            param=param,
            expected="JSON array",
        ) from None
    if not isinstance(parsed, list):
        raise FormatError(f"{_label(param)}vector must be a JSON array", param=param, expected="JSON array")
    return [_element_text(item, i, param) for i, item in enumerate(parsed)]


def _at_index(err: MoveCallError, index: int, param: str | None) -> MoveCallError:
    msg = f"{_label(param)}element {index}: {err.message.removeprefix(_label(param))}"
    if isinstance(err, RangeError):
        out: MoveCallError = RangeError(msg, param=param, bound=err.bound, width=err.width)
    else:
        out = FormatError(msg, param=param, expected=err.data.get("expected"))
    out.data["index"] = index
    return out


def check_vector(text: str, element: TypeDescriptor, *, param: str | None = None) -> list[Any]:
    """Validate every element; the first failure aborts with the offending index."""
    if element.category in (TypeCategory.VECTOR, TypeCategory.OBJECT_REFERENCE):
        raise FormatError(
            f"{_label(param)}vector<{element.core}> cannot be passed as a pure argument",
            param=param,
            expected="vector of integers, booleans, addresses or strings",
        )
    items = split_vector_literal(text, element, param=param)
    if element.category is TypeCategory.GENERIC_STRING:
        # Elements were already decoded from the JSON array.
        return items
    values = []
    for i, item in enumerate(items):
        try:
            values.append(check_scalar(item, element, param=param))
        except MoveCallError as e:
            raise _at_index(e, i, param) from e
    return values


# ---------------------------------------------------------------------------
# Outcome layer
# ---------------------------------------------------------------------------


def validate_unsigned(
    text: str, width: int, *, optional: bool = False, param: str | None = None
) -> ValidationOutcome:
    if text == "":
        if optional:
            return ValidationOutcome.ok()
        return ValidationOutcome.from_error(RequiredFieldError(param))
    try:
        value = check_unsigned(text, width, param=param)
    except MoveCallError as e:
        return ValidationOutcome.from_error(e)
    return ValidationOutcome.ok(str(value), warning=unsigned_warning(value, width))


def validate_parameter(
    descriptor: TypeDescriptor,
    text: str,
    *,
    optional: bool = False,
    param: str | None = None,
) -> ValidationOutcome:
    """
    Synchronous, side-effect-free validation of one parameter value.

    Object references are checked for format only; existence and type are
    verified by `ObjectReferenceResolver`.
    """
    if text is None or text.strip() == "":
        if optional:
            return ValidationOutcome.ok()
        return ValidationOutcome.from_error(RequiredFieldError(param))

    cat = descriptor.category
    if cat is TypeCategory.UNSIGNED_INT:
        return validate_unsigned(text, descriptor.width or 64, optional=optional, param=param)

    try:
        if cat is TypeCategory.VECTOR:
            element = descriptor.element or TypeDescriptor(TypeCategory.GENERIC_STRING, raw="", core="")
            values = check_vector(text, element, param=param)
            return ValidationOutcome.ok(values)
        value = check_scalar(text, descriptor, param=param)
    except MoveCallError as e:
        logger.debug(f"Validation failed for {param or descriptor.raw}: {e.message}")
        return ValidationOutcome.from_error(e)

    warning = None
    if cat is TypeCategory.GENERIC_STRING and descriptor.core != "string" and "::" not in descriptor.core:
        warning = f'Unknown type "{descriptor.raw}", will be passed as a string'
    return ValidationOutcome.ok(value, warning=warning)

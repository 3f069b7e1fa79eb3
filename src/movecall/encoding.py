"""
Scalar encoder and vector codec.

Encoded arguments are a closed union:

  PureArgument(type_tag, value)            u8..u256, bool, address, string
  ObjectArgument(object_id, is_mutable)    by-reference or struct-qualified params
  PureVectorArgument(element_type, values) vector<T> of pure elements

Integer carriage: widths <= 32 are native ints, widths >= 64 are decimal
strings for every value, so a consumer applies one rule per width.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Union

from movecall.constants import MAX_SAFE_INTEGER, NATIVE_INT_MAX_WIDTH
from movecall.descriptor import TypeCategory, TypeDescriptor
from movecall.validation import check_scalar, check_vector

logger = logging.getLogger(__name__)


def wire_integer(value: int, width: int) -> int | str:
    if width <= NATIVE_INT_MAX_WIDTH:
        return value
    return str(value)


def format_display_integer(value: int) -> int | str:
    """Native int when it survives a double round-trip, decimal string otherwise."""
    if 0 <= value <= MAX_SAFE_INTEGER:
        return value
    return str(value)


@dataclass(frozen=True)
class PureArgument:
    type_tag: str
    value: int | str | bool

    def to_ptb_arg(self) -> dict[str, Any]:
        return {self.type_tag: self.value}

    def to_dict(self) -> dict[str, Any]:
        return {"kind": "pure", "type": self.type_tag, "value": self.value}


@dataclass(frozen=True)
class ObjectArgument:
    object_id: str
    is_mutable: bool = False
    type_tag: str | None = None
    # Set once the directory reports a shared owner.
    shared: bool = False

    def to_ptb_arg(self) -> dict[str, Any]:
        if self.shared:
            return {"shared_object": {"id": self.object_id, "mutable": self.is_mutable}}
        return {"imm_or_owned_object": self.object_id}

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"kind": "object", "objectId": self.object_id, "mutable": self.is_mutable}
        if self.type_tag:
            out["type"] = self.type_tag
        if self.shared:
            out["shared"] = True
        return out


@dataclass(frozen=True)
class PureVectorArgument:
    element_type: str
    values: tuple[Any, ...]

    @property
    def element_width(self) -> int | None:
        if self.element_type.startswith("u") and self.element_type[1:].isdigit():
            return int(self.element_type[1:])
        return None

    def to_ptb_arg(self) -> dict[str, Any]:
        return {f"vector_{self.element_type}": list(self.values)}

    def to_dict(self) -> dict[str, Any]:
        return {"kind": "pure_vector", "elementType": self.element_type, "values": list(self.values)}


EncodedArgument = Union[PureArgument, ObjectArgument, PureVectorArgument]


def _wire_value(value: Any, descriptor: TypeDescriptor) -> Any:
    if descriptor.category is TypeCategory.UNSIGNED_INT:
        return wire_integer(value, descriptor.width or 64)
    return value


def encode_scalar(text: str, descriptor: TypeDescriptor, *, param: str | None = None) -> EncodedArgument:
    """
    Encode one non-vector value.

    Raises:
        FormatError, RangeError: when the text does not validate.
    """
    value = check_scalar(text, descriptor, param=param)
    if descriptor.is_object:
        return ObjectArgument(
            object_id=value,
            is_mutable=descriptor.is_mutable,
            type_tag=descriptor.inner_type_tag,
        )
    return PureArgument(type_tag=descriptor.type_tag(), value=_wire_value(value, descriptor))


def encode_vector(text: str, element: TypeDescriptor, *, param: str | None = None) -> PureVectorArgument:
    values = check_vector(text, element, param=param)
    encoded = tuple(_wire_value(v, element) for v in values)
    logger.debug(f"Encoded vector<{element.type_tag()}> with {len(encoded)} elements")
    return PureVectorArgument(element_type=element.type_tag(), values=encoded)


def encode_argument(text: str, descriptor: TypeDescriptor, *, param: str | None = None) -> EncodedArgument:
    if descriptor.category is TypeCategory.VECTOR:
        element = descriptor.element or TypeDescriptor(TypeCategory.GENERIC_STRING, raw="", core="")
        return encode_vector(text, element, param=param)
    return encode_scalar(text, descriptor, param=param)


def to_ptb_call(target: str, args: list[EncodedArgument], type_args: list[str] | None = None) -> dict[str, Any]:
    """Render a single move call in the PTB spec vocabulary consumed by the transaction helper."""
    return {
        "calls": [
            {
                "target": target,
                "type_args": list(type_args or []),
                "args": [a.to_ptb_arg() for a in args],
            }
        ]
    }

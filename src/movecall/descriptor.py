"""
Type descriptors for Move call parameters.

`parse_type()` turns a declared parameter type string (as printed by the
module interface: `&mut 0x2::coin::Coin<0x2::sui::SUI>`, `vector<u64>`,
`address`, ...) into a closed `TypeDescriptor`. Classification is total: a
type string is never rejected here, unknown shapes degrade to
`GENERIC_STRING` and any problem surfaces later, at validation time.

Classification order:
  1. leading `&` / `&mut`   -> OBJECT_REFERENCE (whatever the inner type)
  2. `vector<...>`          -> VECTOR(element)
  3. `u8` .. `u256`         -> UNSIGNED_INT(width)
  4. `bool`                 -> BOOLEAN
  5. `address` / `signer`   -> ADDRESS / SIGNER
  6. contains `::`          -> OBJECT_REFERENCE (struct-qualified, by value)
  7. anything else          -> GENERIC_STRING
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from movecall.constants import TX_CONTEXT_MARKER, UNSIGNED_WIDTHS


class TypeCategory(str, Enum):
    UNSIGNED_INT = "unsigned_int"
    BOOLEAN = "boolean"
    ADDRESS = "address"
    SIGNER = "signer"
    OBJECT_REFERENCE = "object_reference"
    VECTOR = "vector"
    GENERIC_STRING = "generic_string"


_REFERENCE_RE = re.compile(r"^&\s*(mut\b\s*)?", re.IGNORECASE)
_INT_TYPES = {f"u{w}": w for w in UNSIGNED_WIDTHS}

# Struct types the runtime accepts as pure UTF-8/ASCII strings rather than objects.
_PURE_STRING_STRUCTS = frozenset(
    {
        "std::string::string",
        "std::ascii::string",
    }
)


@dataclass(frozen=True)
class TypeDescriptor:
    category: TypeCategory
    raw: str
    core: str
    width: int | None = None
    is_reference: bool = False
    is_mutable: bool = False
    inner_type_tag: str | None = None
    element: TypeDescriptor | None = None

    @property
    def is_object(self) -> bool:
        return self.category is TypeCategory.OBJECT_REFERENCE

    @property
    def is_pure(self) -> bool:
        return not self.is_object

    def type_tag(self) -> str:
        """Canonical short tag used when rendering pure arguments (`u64`, `vector<u8>`, ...)."""
        if self.category is TypeCategory.UNSIGNED_INT:
            return f"u{self.width}"
        if self.category is TypeCategory.BOOLEAN:
            return "bool"
        if self.category in (TypeCategory.ADDRESS, TypeCategory.SIGNER):
            return "address"
        if self.category is TypeCategory.VECTOR and self.element is not None:
            return f"vector<{self.element.type_tag()}>"
        if self.category is TypeCategory.OBJECT_REFERENCE:
            return self.inner_type_tag or self.core
        return "string"


def _is_pure_string_struct(core: str) -> bool:
    parts = core.split("::")
    if len(parts) != 3:
        return False
    addr, mod, name = parts
    if addr.startswith("0x"):
        body = addr[2:].lstrip("0")
        if body != "1":
            return False
        addr = "std"
    return f"{addr}::{mod}::{name}" in _PURE_STRING_STRUCTS


def parse_type(type_string: str) -> TypeDescriptor:
    """Classify a declared parameter type string. Never raises."""
    raw = type_string if isinstance(type_string, str) else str(type_string)
    # Struct names are case-sensitive: classify on the lowered form, keep the
    # original casing for the object type tag.
    cased = raw.strip()

    is_reference = False
    is_mutable = False
    m = _REFERENCE_RE.match(cased)
    while m:
        is_reference = True
        if m.group(1):
            is_mutable = True
        cased = cased[m.end() :].strip()
        m = _REFERENCE_RE.match(cased)
    s = cased.lower()

    if is_reference:
        return TypeDescriptor(
            category=TypeCategory.OBJECT_REFERENCE,
            raw=raw,
            core=s,
            is_reference=True,
            is_mutable=is_mutable,
            inner_type_tag=cased,
        )

    if s.startswith("vector<") or s == "vector":
        element = _parse_vector_element(s)
        return TypeDescriptor(category=TypeCategory.VECTOR, raw=raw, core=s, element=element)

    if s in _INT_TYPES:
        return TypeDescriptor(category=TypeCategory.UNSIGNED_INT, raw=raw, core=s, width=_INT_TYPES[s])

    if s == "bool":
        return TypeDescriptor(category=TypeCategory.BOOLEAN, raw=raw, core=s)

    if s == "address":
        return TypeDescriptor(category=TypeCategory.ADDRESS, raw=raw, core=s)

    if s == "signer":
        return TypeDescriptor(category=TypeCategory.SIGNER, raw=raw, core=s)

    if "::" in s and not _is_pure_string_struct(s):
        return TypeDescriptor(
            category=TypeCategory.OBJECT_REFERENCE,
            raw=raw,
            core=s,
            inner_type_tag=cased,
        )

    return TypeDescriptor(category=TypeCategory.GENERIC_STRING, raw=raw, core=s)


def _parse_vector_element(s: str) -> TypeDescriptor:
    # Malformed brackets still produce a vector; the element degrades to a string.
    if not (s.startswith("vector<") and s.endswith(">")):
        return parse_type("")
    inner = s[len("vector<") : -1].strip()
    if not inner or inner.count("<") != inner.count(">"):
        return parse_type("")
    return parse_type(inner)


# ---------------------------------------------------------------------------
# Type string helpers
# ---------------------------------------------------------------------------


def split_type_args(s: str) -> list[str]:
    """Split type arguments respecting nested angle brackets."""
    result = []
    depth = 0
    current: list[str] = []
    for ch in s:
        if ch == "<":
            depth += 1
        elif ch == ">":
            depth -= 1
        elif ch == "," and depth == 0:
            result.append("".join(current).strip())
            current = []
            continue
        current.append(ch)
    if current:
        result.append("".join(current).strip())
    return [r for r in result if r]


def parse_type_base(type_str: str) -> tuple[str, str, str, list[str]]:
    """Parse a struct type string into (package, module, name, type_args).

    Example: "0x2::coin::Coin<0x2::sui::SUI>"
         -> ("0x2", "coin", "Coin", ["0x2::sui::SUI"])
    """
    base = type_str.strip()
    type_args: list[str] = []
    if "<" in base and base.endswith(">"):
        idx = base.index("<")
        type_args = split_type_args(base[idx + 1 : -1])
        base = base[:idx]

    parts = base.split("::")
    if len(parts) >= 3:
        return parts[0], parts[1], parts[2], type_args
    return "", "", base, type_args


def is_context_parameter(type_string: str) -> bool:
    """True for the runtime-injected execution context (`&TxContext`, `&mut TxContext`)."""
    return TX_CONTEXT_MARKER in type_string.lower().replace(" ", "")


def type_dict_to_string(t: Any) -> str:
    """
    Reconstruct a Move type string from the canonical interface JSON type shape.

      {"kind": "ref", "mutable": true, "to": {"kind": "datatype", ...}} -> "&mut 0x2::m::S"
    """
    if not isinstance(t, dict):
        return str(t)
    kind = t.get("kind", "")
    if kind in ("bool", "u8", "u16", "u32", "u64", "u128", "u256", "address", "signer"):
        return kind
    if kind == "ref":
        inner = type_dict_to_string(t.get("to", {}))
        return f"&mut {inner}" if t.get("mutable") else f"&{inner}"
    if kind == "vector":
        return f"vector<{type_dict_to_string(t.get('type', {}))}>"
    if kind == "datatype":
        addr = t.get("address") or t.get("package") or "0x0"
        base = f"{addr}::{t.get('module', '?')}::{t.get('name', '?')}"
        args = t.get("type_args") or []
        if args:
            return f"{base}<{', '.join(type_dict_to_string(a) for a in args)}>"
        return base
    if kind == "type_param":
        return f"T{t.get('index', '?')}"
    return kind or "unknown"


# ---------------------------------------------------------------------------
# Function descriptors
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ParameterSpec:
    name: str
    type_string: str
    optional: bool = False

    @property
    def descriptor(self) -> TypeDescriptor:
        return parse_type(self.type_string)

    @property
    def is_context(self) -> bool:
        return is_context_parameter(self.type_string)


def strip_context_parameters(params: list[ParameterSpec]) -> list[ParameterSpec]:
    return [p for p in params if not p.is_context]


@dataclass(frozen=True)
class FunctionDescriptor:
    """A callable module function, as produced by the interface extractor."""

    package_id: str
    module: str
    name: str
    parameters: tuple[ParameterSpec, ...] = ()
    is_mutating: bool = False
    return_types: tuple[str, ...] = ()
    type_args: tuple[str, ...] = field(default_factory=tuple)

    @property
    def target(self) -> str:
        return f"{self.package_id}::{self.module}::{self.name}"

    @property
    def user_parameters(self) -> list[ParameterSpec]:
        return strip_context_parameters(list(self.parameters))

    @classmethod
    def from_interface_json(cls, package_id: str, module: str, name: str, fn: dict[str, Any]) -> FunctionDescriptor:
        """
        Build a descriptor from one function entry of the bytecode interface JSON.

        Bytecode carries no parameter names, so parameters are named `param0`, `param1`, ...
        """
        params = fn.get("params") or []
        returns = fn.get("returns") or []
        return cls(
            package_id=package_id,
            module=module,
            name=name,
            parameters=tuple(
                ParameterSpec(name=f"param{i}", type_string=type_dict_to_string(p)) for i, p in enumerate(params)
            ),
            is_mutating=fn.get("is_entry") is True,
            return_types=tuple(type_dict_to_string(r) for r in returns),
        )

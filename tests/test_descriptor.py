"""Tests for type-string classification and function descriptors."""

from __future__ import annotations

import hypothesis.strategies as st
import pytest
from hypothesis import given

from movecall.descriptor import (
    FunctionDescriptor,
    ParameterSpec,
    TypeCategory,
    is_context_parameter,
    parse_type,
    parse_type_base,
    split_type_args,
    strip_context_parameters,
    type_dict_to_string,
)


def test_mutable_reference_is_object_with_inner_tag():
    d = parse_type("&mut 0x2::coin::Coin<0x2::sui::SUI>")
    assert d.category is TypeCategory.OBJECT_REFERENCE
    assert d.is_reference
    assert d.is_mutable
    assert d.inner_type_tag == "0x2::coin::Coin<0x2::sui::SUI>"


def test_immutable_reference_is_not_mutable():
    d = parse_type("&0x2::clock::Clock")
    assert d.is_object
    assert d.is_reference
    assert not d.is_mutable


def test_reference_to_primitive_is_still_object():
    """Reference-ness wins over the inner category."""
    d = parse_type("&u64")
    assert d.category is TypeCategory.OBJECT_REFERENCE
    assert d.inner_type_tag == "u64"


def test_struct_by_value_is_object():
    d = parse_type("0x2::clock::Clock")
    assert d.category is TypeCategory.OBJECT_REFERENCE
    assert not d.is_reference
    assert not d.is_mutable


@pytest.mark.parametrize("width", [8, 16, 32, 64, 128, 256])
def test_unsigned_widths(width: int):
    d = parse_type(f"u{width}")
    assert d.category is TypeCategory.UNSIGNED_INT
    assert d.width == width
    assert d.type_tag() == f"u{width}"


def test_classification_is_case_insensitive():
    assert parse_type("  U64 ").width == 64
    assert parse_type("BOOL").category is TypeCategory.BOOLEAN
    assert parse_type("Address").category is TypeCategory.ADDRESS


def test_object_tag_keeps_struct_casing():
    d = parse_type("&MUT 0x2::Pool::LiquidityPool<T0>")
    assert d.is_mutable
    assert d.core == "0x2::pool::liquiditypool<t0>"
    assert d.type_tag() == "0x2::Pool::LiquidityPool<T0>"
    assert parse_type("0x2::clock::Clock").inner_type_tag == "0x2::clock::Clock"


def test_signer_is_not_an_object():
    d = parse_type("signer")
    assert d.category is TypeCategory.SIGNER
    assert d.is_pure
    assert d.type_tag() == "address"


def test_vector_element_is_parsed_recursively():
    d = parse_type("vector<vector<u8>>")
    assert d.category is TypeCategory.VECTOR
    assert d.element is not None and d.element.category is TypeCategory.VECTOR
    assert d.element.element is not None and d.element.element.width == 8
    assert d.type_tag() == "vector<vector<u8>>"


@pytest.mark.parametrize("raw", ["vector<u8", "vector<>", "vector", "vector<u8<>"])
def test_malformed_vector_degrades_to_string_elements(raw: str):
    d = parse_type(raw)
    assert d.category is TypeCategory.VECTOR
    assert d.element is not None
    assert d.element.category is TypeCategory.GENERIC_STRING


@pytest.mark.parametrize(
    "raw",
    ["0x1::string::String", "std::string::String", "0x1::ascii::String", "0x0000000000000001::string::String"],
)
def test_standard_strings_are_pure(raw: str):
    assert parse_type(raw).category is TypeCategory.GENERIC_STRING


@pytest.mark.parametrize("raw", ["T0", "", "something", "0x2"])
def test_unknown_types_fall_back_to_string(raw: str):
    assert parse_type(raw).category is TypeCategory.GENERIC_STRING


@given(st.text(max_size=80))
def test_parse_type_is_total(raw: str):
    d = parse_type(raw)
    assert isinstance(d.category, TypeCategory)


def test_context_parameter_detection():
    assert is_context_parameter("&mut 0x2::tx_context::TxContext")
    assert is_context_parameter("&TxContext")
    assert not is_context_parameter("&mut 0x2::coin::Coin<0x2::sui::SUI>")


def test_strip_context_parameters_removes_every_context_param():
    params = [
        ParameterSpec("ctx0", "&TxContext"),
        ParameterSpec("amount", "u64"),
        ParameterSpec("ctx", "&mut 0x2::tx_context::TxContext"),
    ]
    assert [p.name for p in strip_context_parameters(params)] == ["amount"]


def test_split_type_args_respects_nesting():
    assert split_type_args("0x2::coin::Coin<0x2::sui::SUI>, u64") == ["0x2::coin::Coin<0x2::sui::SUI>", "u64"]
    assert split_type_args("") == []


def test_parse_type_base():
    assert parse_type_base("0x2::coin::Coin<0x2::sui::SUI>") == ("0x2", "coin", "Coin", ["0x2::sui::SUI"])
    assert parse_type_base("u64") == ("", "", "u64", [])


def test_type_dict_to_string():
    coin = {
        "kind": "datatype",
        "address": "0x2",
        "module": "coin",
        "name": "Coin",
        "type_args": [{"kind": "type_param", "index": 0}],
    }
    assert type_dict_to_string({"kind": "ref", "mutable": True, "to": coin}) == "&mut 0x2::coin::Coin<T0>"
    assert type_dict_to_string({"kind": "vector", "type": {"kind": "u8"}}) == "vector<u8>"
    assert type_dict_to_string("u64") == "u64"


def test_function_descriptor_from_interface_json():
    fn = {
        "is_entry": True,
        "params": [
            {"kind": "u64"},
            {
                "kind": "ref",
                "mutable": True,
                "to": {"kind": "datatype", "address": "0x2", "module": "tx_context", "name": "TxContext"},
            },
        ],
        "returns": [],
    }
    desc = FunctionDescriptor.from_interface_json("0xabc", "shop", "buy", fn)
    assert desc.target == "0xabc::shop::buy"
    assert desc.is_mutating
    assert [p.name for p in desc.parameters] == ["param0", "param1"]
    assert [p.name for p in desc.user_parameters] == ["param0"]
    assert desc.user_parameters[0].descriptor.width == 64


def test_function_descriptor_view_returns():
    fn = {"is_entry": False, "params": [], "returns": [{"kind": "bool"}]}
    desc = FunctionDescriptor.from_interface_json("0x1", "m", "is_open", fn)
    assert not desc.is_mutating
    assert desc.return_types == ("bool",)

"""Property-based tests for address and object-id normalization.

Uses Hypothesis to verify idempotency, length stability and the short-id round trip.
"""

from __future__ import annotations

import hypothesis.strategies as st
from hypothesis import given

from movecall.decoding import decode_return_value
from movecall.descriptor import parse_type
from movecall.encoding import ObjectArgument, PureArgument, encode_argument
from movecall.validation import normalize_address, normalize_object_id, validate_parameter


@st.composite
def sui_address(draw):
    """Generates a string that looks like a Sui address (optional 0x, 1-64 hex chars)."""
    hex_chars = draw(st.text(alphabet="0123456789abcdefABCDEF", min_size=1, max_size=64))
    prefix = draw(st.sampled_from(["0x", "0X", ""]))
    return f"{prefix}{hex_chars}"


@given(sui_address())
def test_normalize_address_is_idempotent(addr: str) -> None:
    """Invariant: normalize(normalize(x)) == normalize(x)"""
    first = normalize_address(addr)
    assert normalize_address(first) == first


@given(sui_address())
def test_normalize_address_length(addr: str) -> None:
    norm = normalize_address(addr)
    assert len(norm) == 66
    assert norm.startswith("0x")
    assert norm == norm.lower()


@given(st.text(alphabet="0123456789abcdefABCDEF", min_size=1, max_size=64))
def test_normalize_address_case_insensitivity(hex_part: str) -> None:
    assert normalize_address(f"0x{hex_part.upper()}") == normalize_address(f"0x{hex_part.lower()}")


@given(sui_address())
def test_object_id_matches_address_normalization(addr: str) -> None:
    assert normalize_object_id(addr) == normalize_address(addr)


@given(sui_address())
def test_address_round_trip_through_decoder(addr: str) -> None:
    """Encode a (possibly short) address, decode its 32 bytes back, re-validate: all agree."""
    encoded = encode_argument(addr, parse_type("address"))
    assert isinstance(encoded, PureArgument)
    padded = encoded.value

    decoded = decode_return_value(bytes.fromhex(padded[2:]), "address")
    assert decoded == padded

    again = validate_parameter(parse_type("address"), decoded)
    assert again.normalized_value == padded


@given(sui_address())
def test_object_id_round_trip(addr: str) -> None:
    encoded = encode_argument(addr, parse_type("&0x2::clock::Clock"))
    assert isinstance(encoded, ObjectArgument)
    assert encoded.object_id == normalize_address(addr)
    assert encode_argument(encoded.object_id, parse_type("&0x2::clock::Clock")).object_id == encoded.object_id

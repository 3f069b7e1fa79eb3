"""
Shared pytest fixtures for movecall tests.

This module provides:
- An asyncio-only anyio backend
- A clean MOVECALL_* environment for every test
- In-memory Object Directory and Signer doubles
"""

from __future__ import annotations

import asyncio
import os
from collections.abc import Sequence
from typing import Any

import pytest

from movecall.encoding import EncodedArgument
from movecall.errors import DirectoryError
from movecall.resolver import ObjectInfo
from movecall.signer import SimulationResult, SubmitResult

OBJECT_ID = "0x" + "ab" * 32
OTHER_OBJECT_ID = "0x" + "cd" * 32
OWNER = "0x" + "11" * 32
SIGNER_ADDRESS = "0x" + "22" * 32
FALLBACK = "0x" + "0" * 63 + "6"


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture(autouse=True)
def clean_movecall_env(monkeypatch: pytest.MonkeyPatch, tmp_path) -> None:
    for key in list(os.environ):
        if key.startswith("MOVECALL_"):
            monkeypatch.delenv(key, raising=False)
    monkeypatch.setenv("MOVECALL_TEMP_DIR", str(tmp_path / "movecall_tmp"))


# ---------------------------------------------------------------------------
# Collaborator doubles
# ---------------------------------------------------------------------------


class FakeDirectory:
    """Object Directory backed by a dict; records every lookup."""

    def __init__(self, objects: dict[str, ObjectInfo] | None = None, *, fail: bool = False) -> None:
        self.objects = dict(objects or {})
        self.fail = fail
        self.calls: list[str] = []
        self.gate: asyncio.Event | None = None

    async def lookup(self, object_id: str) -> ObjectInfo:
        self.calls.append(object_id)
        if self.gate is not None:
            await self.gate.wait()
        if self.fail:
            raise DirectoryError("connection refused", {"objectId": object_id})
        return self.objects.get(object_id) or ObjectInfo(found=False, object_id=object_id)


class FakeSigner:
    """Signer that replays scripted outcomes (results or exceptions) in order."""

    def __init__(
        self,
        address: str | None = None,
        *,
        simulations: Sequence[Any] = (),
        submissions: Sequence[Any] = (),
    ) -> None:
        self._address = address
        self.simulations = list(simulations)
        self.submissions = list(submissions)
        self.simulate_calls: list[tuple[str, list[EncodedArgument], str]] = []
        self.submit_calls: list[tuple[str, list[EncodedArgument]]] = []

    @property
    def address(self) -> str | None:
        return self._address

    async def simulate(
        self, target: str, args: Sequence[EncodedArgument], sender: str, *, type_args: Sequence[str] = ()
    ) -> SimulationResult:
        self.simulate_calls.append((target, list(args), sender))
        await asyncio.sleep(0)
        outcome = self.simulations.pop(0) if self.simulations else SimulationResult()
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    async def submit(
        self, target: str, args: Sequence[EncodedArgument], *, type_args: Sequence[str] = ()
    ) -> SubmitResult:
        self.submit_calls.append((target, list(args)))
        await asyncio.sleep(0)
        outcome = self.submissions.pop(0) if self.submissions else SubmitResult(digest="DIGEST")
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


@pytest.fixture
def coin_object() -> ObjectInfo:
    return ObjectInfo(
        found=True,
        object_id=OBJECT_ID,
        type_tag="0x2::coin::Coin<0x2::sui::SUI>",
        owner={"AddressOwner": OWNER},
        version="7",
        fields={"balance": "1000", "id": {"id": OBJECT_ID}},
    )


@pytest.fixture
def shared_object() -> ObjectInfo:
    return ObjectInfo(
        found=True,
        object_id=OTHER_OBJECT_ID,
        type_tag="0x2::clock::Clock",
        owner={"Shared": {"initial_shared_version": 1}},
        version="3",
        fields={"timestamp_ms": "1700000000000"},
    )

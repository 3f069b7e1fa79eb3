"""
Signer contract and the subprocess helper-backed implementation.

The core never builds transaction bytes or touches keys. It hands the target
and encoded arguments to a Signer, which either submits a signed transaction
(entry functions) or simulates the call for a given sender (view functions).
"""

from __future__ import annotations

import asyncio
import logging
import secrets
import time
from collections.abc import Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Protocol

from movecall.constants import HELPER_TIMEOUT_SECONDS, TRANSIENT_SIMULATION_MARKERS
from movecall.decoding import ReturnSlot
from movecall.encoding import EncodedArgument, to_ptb_call
from movecall.errors import SimulationError, SubmissionError, submission_error_from_message
from movecall.utils import atomic_write_json, call_spec_dir, run_json_helper

logger = logging.getLogger(__name__)


def is_transient_failure(message: str) -> bool:
    return any(marker.lower() in message.lower() for marker in TRANSIENT_SIMULATION_MARKERS)


@dataclass(frozen=True)
class SubmitResult:
    digest: str
    gas_used: str | None = None
    object_changes: list[dict[str, Any]] = field(default_factory=list)
    events: list[dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "digest": self.digest,
            "gasUsed": self.gas_used,
            "objectChanges": self.object_changes,
            "events": self.events,
        }


@dataclass(frozen=True)
class SimulationResult:
    return_slots: list[ReturnSlot] = field(default_factory=list)
    sender: str | None = None


class Signer(Protocol):
    @property
    def address(self) -> str | None: ...

    async def submit(
        self, target: str, args: Sequence[EncodedArgument], *, type_args: Sequence[str] = ()
    ) -> SubmitResult: ...

    async def simulate(
        self, target: str, args: Sequence[EncodedArgument], sender: str, *, type_args: Sequence[str] = ()
    ) -> SimulationResult: ...


def _status_error(effects: Any) -> str | None:
    """Return the failure text from an effects block, or None on success."""
    if not isinstance(effects, dict):
        return None
    status = effects.get("status")
    if isinstance(status, dict) and status.get("status") not in (None, "success"):
        return str(status.get("error") or status.get("status"))
    return None


def parse_simulation_output(data: dict[str, Any], *, sender: str | None = None) -> SimulationResult:
    """
    Extract return slots from helper / devInspect JSON.

    Raises:
        SimulationError: the helper reported an error or a failed status.
    """
    block = data.get("devInspect") if isinstance(data.get("devInspect"), dict) else data
    err = block.get("error") or data.get("error") or _status_error(block.get("effects"))
    if err:
        message = str(err.get("message", err)) if isinstance(err, dict) else str(err)
        raise SimulationError(message, transient=is_transient_failure(message), sender=sender)

    slots: list[ReturnSlot] = []
    for result in block.get("results") or []:
        for value in result.get("returnValues") or []:
            slots.append(ReturnSlot.from_json(value))
    return SimulationResult(return_slots=slots, sender=sender)


def parse_submit_output(data: dict[str, Any]) -> SubmitResult:
    """
    Extract digest, gas and changes from helper / executeTransactionBlock JSON.

    Raises:
        SubmissionError: the helper reported an error or a failed status.
    """
    err = data.get("error") or _status_error(data.get("effects"))
    if err:
        message = str(err.get("message", err)) if isinstance(err, dict) else str(err)
        raise submission_error_from_message(message)

    digest = data.get("digest")
    if not isinstance(digest, str) or not digest:
        raise SubmissionError("Transaction helper returned no digest", {"raw": data})

    effects = data.get("effects") if isinstance(data.get("effects"), dict) else {}
    gas = effects.get("gasUsed") if isinstance(effects.get("gasUsed"), dict) else {}
    computation = gas.get("computationCost")
    return SubmitResult(
        digest=digest,
        gas_used=str(computation) if computation is not None else None,
        object_changes=list(data.get("objectChanges") or []),
        events=list(data.get("events") or []),
    )


class HelperSigner:
    """
    Signer that delegates to an external transaction helper binary.

    The helper receives a PTB spec file (`{"calls": [{target, type_args, args}]}`)
    and prints one JSON object to stdout:

        helper --rpc-url URL --sender ADDR --mode execute|dev-inspect --ptb-spec FILE
    """

    def __init__(
        self,
        helper_bin: Path,
        *,
        rpc_url: str,
        address: str | None = None,
        timeout_s: float = HELPER_TIMEOUT_SECONDS,
        gas_budget: int | None = None,
    ) -> None:
        self.helper_bin = helper_bin
        self.rpc_url = rpc_url
        self._address = address
        self.timeout_s = timeout_s
        self.gas_budget = gas_budget

    @property
    def address(self) -> str | None:
        return self._address

    async def _run(
        self, *, mode: str, sender: str, target: str, args: Sequence[EncodedArgument], type_args: Sequence[str]
    ) -> dict[str, Any]:
        spec = to_ptb_call(target, list(args), list(type_args))
        tmp_path = call_spec_dir() / f"call_spec_{int(time.time() * 1000)}_{secrets.token_hex(4)}.json"
        atomic_write_json(tmp_path, spec)
        try:
            cmd = [
                str(self.helper_bin),
                "--rpc-url",
                self.rpc_url,
                "--sender",
                sender,
                "--mode",
                mode,
                "--ptb-spec",
                str(tmp_path),
            ]
            if self.gas_budget is not None:
                cmd += ["--gas-budget", str(self.gas_budget)]
            return await asyncio.to_thread(run_json_helper, cmd, timeout_s=self.timeout_s, context=f"helper ({mode})")
        finally:
            if tmp_path.exists():
                try:
                    tmp_path.unlink()
                except OSError:
                    pass

    async def submit(
        self, target: str, args: Sequence[EncodedArgument], *, type_args: Sequence[str] = ()
    ) -> SubmitResult:
        if not self._address:
            raise SubmissionError("No signing account configured")
        logger.info(f"Submitting {target} from {self._address}")
        try:
            data = await self._run(mode="execute", sender=self._address, target=target, args=args, type_args=type_args)
        except (RuntimeError, TimeoutError, OSError) as e:
            raise submission_error_from_message(str(e)) from e
        return parse_submit_output(data)

    async def simulate(
        self, target: str, args: Sequence[EncodedArgument], sender: str, *, type_args: Sequence[str] = ()
    ) -> SimulationResult:
        logger.debug(f"Simulating {target} as {sender}")
        try:
            data = await self._run(mode="dev-inspect", sender=sender, target=target, args=args, type_args=type_args)
        except (RuntimeError, TimeoutError, OSError) as e:
            message = str(e)
            raise SimulationError(message, transient=is_transient_failure(message), sender=sender) from e
        return parse_simulation_output(data, sender=sender)

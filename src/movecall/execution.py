"""
Execution State Machine.

One `CallInvocation` per opened call session:

    IDLE -> VALIDATING -> READY -> EXECUTING -> SUCCESS | ERROR

- IDLE while any required input is empty or invalid (or, for entry
  functions, no signing account is available).
- `execute()` only acts from READY and flips to EXECUTING before its first
  await, so a second call while one is in flight is a no-op.
- Editing any input from SUCCESS or ERROR re-validates back to READY / IDLE.
- Every execution produces a new frozen `ExecutionAttempt`.

Entry functions are submitted once. View functions are simulated with a
bounded retry over an ordered list of sender candidates.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable, Mapping, Sequence
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any

from movecall.builder import BuiltCall, build_call, validate_inputs
from movecall.config import CallConfig
from movecall.constants import fallback_sender
from movecall.decoding import decode_return_values
from movecall.descriptor import FunctionDescriptor, ParameterSpec, TypeCategory, parse_type
from movecall.encoding import EncodedArgument, ObjectArgument
from movecall.errors import MoveCallError, SimulationError, SubmissionError
from movecall.history import HistoryStore
from movecall.resolver import ObjectReferenceResolver
from movecall.signer import Signer, SimulationResult, is_transient_failure
from movecall.validation import ValidationOutcome

logger = logging.getLogger(__name__)


class ExecutionState(str, Enum):
    IDLE = "idle"
    VALIDATING = "validating"
    READY = "ready"
    EXECUTING = "executing"
    SUCCESS = "success"
    ERROR = "error"


@dataclass(frozen=True)
class ExecutionAttempt:
    number: int
    kind: str
    target: str
    state: ExecutionState = ExecutionState.EXECUTING
    started_at: float = field(default_factory=time.time)
    finished_at: float | None = None
    result: Any = None
    error: str | None = None
    error_kind: str | None = None
    senders: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "attempt": self.number,
            "kind": self.kind,
            "target": self.target,
            "state": self.state.value,
            "startedAt": self.started_at,
            "finishedAt": self.finished_at,
        }
        if self.senders:
            out["senders"] = list(self.senders)
        if self.error:
            out["error"] = self.error
            out["errorKind"] = self.error_kind
        else:
            out["result"] = self.result.to_dict() if hasattr(self.result, "to_dict") else self.result
        return out


def sender_candidates(primary: str, fallback: str, max_retries: int) -> list[str]:
    """
    Ordered senders for one view simulation.

    The primary sender is used for every attempt but the last retry, which
    uses the fallback: `[primary, primary, fallback]` with two retries.
    """
    if max_retries <= 0:
        return [primary]
    return [primary] * max_retries + [fallback]


async def simulate_with_fallback(
    signer: Signer,
    target: str,
    args: Sequence[EncodedArgument],
    candidates: Sequence[str],
    *,
    type_args: Sequence[str] = (),
    retry_delay_s: float = 0.0,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    tried: list[str] | None = None,
) -> SimulationResult:
    """
    Simulate over the sender candidates; first success wins.

    Only transient failures move on to the next candidate. Any other failure,
    or the last transient one, is raised.
    """
    last_error: SimulationError | None = None
    for i, sender in enumerate(candidates):
        if i and retry_delay_s > 0:
            await sleep(retry_delay_s)
        if tried is not None:
            tried.append(sender)
        try:
            return await signer.simulate(target, args, sender, type_args=type_args)
        except SimulationError as e:
            last_error = e
            if not (e.transient or is_transient_failure(e.message)):
                raise
            if i < len(candidates) - 1:
                logger.warning(
                    f"Transient simulation failure ({i + 1}/{len(candidates)}) as {sender}, "
                    f"retrying as {candidates[i + 1]}: {e.message}"
                )
    if last_error is None:
        raise SimulationError("No sender candidates to simulate with")
    raise last_error


_PRIMITIVE_RETURNS = {
    TypeCategory.UNSIGNED_INT,
    TypeCategory.BOOLEAN,
    TypeCategory.ADDRESS,
    TypeCategory.GENERIC_STRING,
}


def direct_getter_field(function: FunctionDescriptor) -> str | None:
    """
    Field name a simple getter reads, or None.

    A simple getter is a view function named `get_<field>` taking exactly one
    object parameter and returning one primitive value.
    """
    if function.is_mutating or not function.name.startswith("get_"):
        return None
    params = function.user_parameters
    if len(params) != 1 or not params[0].descriptor.is_object:
        return None
    if len(function.return_types) != 1:
        return None
    ret = parse_type(function.return_types[0])
    if ret.category not in _PRIMITIVE_RETURNS or ret.is_reference:
        return None
    return function.name[len("get_") :] or None


class CallInvocation:
    """A single call session for one function: inputs, outcomes, state and attempts."""

    def __init__(
        self,
        function: FunctionDescriptor,
        *,
        signer: Signer | None = None,
        resolver: ObjectReferenceResolver | None = None,
        config: CallConfig | None = None,
        history: HistoryStore | None = None,
        sender: str | None = None,
        use_direct_getters: bool = False,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.function = function
        self.signer = signer
        self.resolver = resolver
        self.config = config or CallConfig()
        self.history = history
        self.sender = sender or self.config.sender
        self.use_direct_getters = use_direct_getters
        self._sleep = sleep

        self.parameters: list[ParameterSpec] = function.user_parameters
        self.raw_inputs: dict[str, str] = {p.name: "" for p in self.parameters}
        self.outcomes: dict[str, ValidationOutcome] = {}
        self.attempts: list[ExecutionAttempt] = []
        self.transitions: list[tuple[ExecutionState, ExecutionState]] = []
        self.state = ExecutionState.IDLE
        self.last_error: str | None = None
        self._revalidate()

    @property
    def target_module(self) -> str:
        return self.function.module

    @property
    def target_function(self) -> str:
        return self.function.name

    @property
    def is_mutating(self) -> bool:
        return self.function.is_mutating

    @property
    def can_execute(self) -> bool:
        return self.state is ExecutionState.READY

    @property
    def last_attempt(self) -> ExecutionAttempt | None:
        return self.attempts[-1] if self.attempts else None

    # ------------------------------------------------------------------
    # Inputs and validation
    # ------------------------------------------------------------------

    def _set_state(self, new: ExecutionState) -> None:
        if new is not self.state:
            self.transitions.append((self.state, new))
            logger.debug(f"{self.function.target}: {self.state.value} -> {new.value}")
            self.state = new

    def set_input(self, name: str, text: str) -> None:
        if name not in self.raw_inputs:
            raise KeyError(f"Unknown parameter {name!r} for {self.function.target}")
        self.raw_inputs[name] = text
        if self.resolver is not None:
            self.resolver.forget(name)
        if self.state is ExecutionState.EXECUTING:
            return
        self._revalidate()
        self._schedule_lookup(name)

    def set_inputs(self, values: Mapping[str, str]) -> None:
        for name, text in values.items():
            self.set_input(name, text)

    def _revalidate(self) -> None:
        self._set_state(ExecutionState.VALIDATING)
        self.outcomes = validate_inputs(self.parameters, self.raw_inputs)
        if self.resolver is not None:
            for name, outcome in list(self.outcomes.items()):
                looked_up = self.resolver.latest(name)
                if outcome.valid and looked_up is not None:
                    self.outcomes[name] = looked_up
        self._set_state(ExecutionState.READY if self._is_ready() else ExecutionState.IDLE)

    def _is_ready(self) -> bool:
        if not all(o.valid for o in self.outcomes.values()):
            return False
        if self.is_mutating:
            return self.signer is not None and bool(self.signer.address)
        return True

    def _object_params(self) -> list[ParameterSpec]:
        return [p for p in self.parameters if p.descriptor.is_object]

    def _schedule_lookup(self, name: str) -> None:
        if self.resolver is None or self.resolver.directory is None:
            return
        spec = next((p for p in self._object_params() if p.name == name), None)
        outcome = self.outcomes.get(name)
        if spec is None or outcome is None or not outcome.valid or outcome.normalized_value is None:
            return
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            return
        self.resolver.schedule(name, self.raw_inputs[name], spec.descriptor, self._on_lookup)

    def _on_lookup(self, name: str, outcome: ValidationOutcome) -> None:
        if self.state is ExecutionState.EXECUTING:
            return
        self._revalidate()

    async def verify_objects(self) -> dict[str, ValidationOutcome]:
        """Look up every object input now, bypassing the debounce. Returns the refreshed outcomes."""
        if self.resolver is None:
            return self.outcomes
        for p in self._object_params():
            if not self.outcomes.get(p.name, ValidationOutcome.ok()).valid:
                continue
            text = self.raw_inputs.get(p.name, "")
            if not text.strip():
                continue
            outcome = await self.resolver.resolve(text, p.descriptor, param=p.name)
            self.resolver.remember(p.name, outcome)
            self.outcomes[p.name] = outcome
        if self.state is not ExecutionState.EXECUTING:
            self._set_state(ExecutionState.READY if self._is_ready() else ExecutionState.IDLE)
        return self.outcomes

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    def _primary_sender(self, built: BuiltCall) -> str:
        if self.sender:
            return self.sender
        if self.signer is not None and self.signer.address:
            return self.signer.address
        for arg in built.arguments:
            if isinstance(arg, ObjectArgument):
                info = built.objects.get(arg.object_id)
                if info is not None and info.owner_address:
                    return info.owner_address
        return self._fallback_sender()

    def _fallback_sender(self) -> str:
        return self.config.fallback_sender or fallback_sender(self.config.network)

    async def execute(self) -> ExecutionAttempt | None:
        """
        Run the call once.

        Returns the finished attempt, or None when the invocation was not READY
        (including while another execution is in flight).
        """
        if self.state is not ExecutionState.READY:
            logger.debug(f"execute() ignored in state {self.state.value} for {self.function.target}")
            return None
        self._set_state(ExecutionState.EXECUTING)
        # Edits made while in flight apply to the next run, not this one.
        inputs = dict(self.raw_inputs)

        attempt = ExecutionAttempt(
            number=len(self.attempts) + 1,
            kind="submit" if self.is_mutating else "simulate",
            target=self.function.target,
        )
        logger.info(f"Executing {attempt.kind} #{attempt.number} for {attempt.target}")
        tried: list[str] = []
        try:
            built = await build_call(self.function, inputs, resolver=self.resolver, network=self.config.network)
            if self.is_mutating:
                result = await self._submit(built)
            else:
                result = await self._simulate(built, tried)
        except asyncio.CancelledError:
            self._finish(attempt, inputs, error="Execution cancelled", error_kind="cancelled", senders=tried)
            raise
        except MoveCallError as e:
            self._finish(attempt, inputs, error=e.message or type(e).__name__, error_kind=e.code, senders=tried)
        except Exception as e:
            logger.exception(f"Unexpected failure executing {attempt.target}")
            self._finish(
                attempt, inputs, error=f"{type(e).__name__}: {e}", error_kind="unexpected", senders=tried
            )
        else:
            self._finish(attempt, inputs, result=result, senders=tried)
        edited = [name for name, text in self.raw_inputs.items() if inputs.get(name) != text]
        if edited:
            self._revalidate()
            for name in edited:
                self._schedule_lookup(name)
        return self.attempts[-1]

    async def _submit(self, built: BuiltCall) -> Any:
        if self.signer is None:
            raise SubmissionError("No signer available to submit the transaction")
        # Never retried: resubmitting a mutating call risks executing it twice.
        return await self.signer.submit(built.target, built.arguments, type_args=built.type_args)

    async def _simulate(self, built: BuiltCall, tried: list[str]) -> list[Any]:
        if self.use_direct_getters:
            values = await self._read_direct_getter(built)
            if values is not None:
                return values
        if self.signer is None:
            raise SimulationError("No simulator available for view calls")

        candidates = sender_candidates(
            self._primary_sender(built), self._fallback_sender(), self.config.simulation_max_retries
        )
        sim = await simulate_with_fallback(
            self.signer,
            built.target,
            built.arguments,
            candidates,
            type_args=built.type_args,
            retry_delay_s=self.config.simulation_retry_delay_s,
            sleep=self._sleep,
            tried=tried,
        )
        return decode_return_values(sim.return_slots)

    async def _read_direct_getter(self, built: BuiltCall) -> list[Any] | None:
        field_name = direct_getter_field(self.function)
        if field_name is None or self.resolver is None or not built.arguments:
            return None
        arg = built.arguments[0]
        if not isinstance(arg, ObjectArgument):
            return None
        info = built.objects.get(arg.object_id) or self.resolver.cached(arg.object_id)
        if info is None or field_name not in info.fields:
            logger.debug(f"Direct read of {field_name!r} unavailable, simulating {built.target}")
            return None
        logger.info(f"Read {field_name!r} directly from {arg.object_id}")
        return [info.fields[field_name]]

    def _finish(
        self,
        attempt: ExecutionAttempt,
        inputs: Mapping[str, str],
        *,
        result: Any = None,
        error: str | None = None,
        error_kind: str | None = None,
        senders: Sequence[str] = (),
    ) -> None:
        state = ExecutionState.ERROR if error else ExecutionState.SUCCESS
        done = replace(
            attempt,
            state=state,
            finished_at=time.time(),
            result=result,
            error=error,
            error_kind=error_kind,
            senders=tuple(senders),
        )
        self.attempts.append(done)
        self.last_error = error
        if error:
            logger.error(f"{done.kind} #{done.number} for {done.target} failed: {error}")
        else:
            logger.info(f"{done.kind} #{done.number} for {done.target} succeeded")
        self._set_state(state)

        if self.history is not None:
            try:
                self.history.record(
                    {"network": self.config.network.value, "inputs": dict(inputs), **done.to_dict()}
                )
            except OSError as e:
                logger.warning(f"Failed to record history for {done.target}: {e}")

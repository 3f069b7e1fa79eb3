"""
Call Argument Builder.

Turns a parameter list plus the raw text inputs into the ordered argument
list for one function target. Fail-fast: the first parameter that does not
validate raises, in declaration order. Context parameters are skipped.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field, replace
from typing import Any

from movecall.constants import Network
from movecall.descriptor import FunctionDescriptor, ParameterSpec
from movecall.encoding import EncodedArgument, ObjectArgument, encode_argument, to_ptb_call
from movecall.errors import RequiredFieldError
from movecall.resolver import ObjectInfo, ObjectReferenceResolver
from movecall.validation import ValidationOutcome, validate_parameter

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BuiltCall:
    target: str
    arguments: tuple[EncodedArgument, ...]
    network: Network
    type_args: tuple[str, ...] = ()
    # Directory records for object arguments, keyed by normalized id.
    objects: dict[str, ObjectInfo] = field(default_factory=dict)

    def to_ptb_spec(self) -> dict[str, Any]:
        return to_ptb_call(self.target, list(self.arguments), list(self.type_args))


def validate_inputs(
    parameters: Sequence[ParameterSpec], raw_inputs: Mapping[str, str]
) -> dict[str, ValidationOutcome]:
    """Synchronous outcome for every user-facing parameter (keystroke path)."""
    outcomes: dict[str, ValidationOutcome] = {}
    for p in parameters:
        if p.is_context:
            continue
        outcomes[p.name] = validate_parameter(
            p.descriptor, raw_inputs.get(p.name, ""), optional=p.optional, param=p.name
        )
    return outcomes


async def build_arguments(
    parameters: Sequence[ParameterSpec],
    raw_inputs: Mapping[str, str],
    *,
    resolver: ObjectReferenceResolver | None = None,
    network: Network = Network.TESTNET,
    objects: dict[str, ObjectInfo] | None = None,
) -> list[EncodedArgument]:
    """
    Encode every parameter in order.

    Object arguments are verified through `resolver` when one is given; the
    directory records it returns are collected into `objects`.

    Raises:
        FormatError, RangeError, RequiredFieldError: first invalid input.
        ReferenceNotFound, DirectoryError: object verification failed.
    """
    args: list[EncodedArgument] = []
    for p in parameters:
        if p.is_context:
            continue
        text = raw_inputs.get(p.name, "")
        if text is None or text.strip() == "":
            if p.optional:
                continue
            raise RequiredFieldError(p.name)

        descriptor = p.descriptor
        arg = encode_argument(text, descriptor, param=p.name)
        if isinstance(arg, ObjectArgument) and resolver is not None:
            object_id, info, warning = await resolver.verify(text, descriptor, param=p.name)
            if warning:
                logger.warning(f"{p.name}: {warning}")
            if info is not None:
                if objects is not None:
                    objects[object_id] = info
                if info.is_shared:
                    arg = replace(arg, shared=True)
        args.append(arg)

    logger.debug(f"Built {len(args)} arguments on {network.value}")
    return args


async def build_call(
    function: FunctionDescriptor,
    raw_inputs: Mapping[str, str],
    *,
    resolver: ObjectReferenceResolver | None = None,
    network: Network = Network.TESTNET,
) -> BuiltCall:
    objects: dict[str, ObjectInfo] = {}
    args = await build_arguments(
        function.parameters, raw_inputs, resolver=resolver, network=network, objects=objects
    )
    return BuiltCall(
        target=function.target,
        arguments=tuple(args),
        network=network,
        type_args=function.type_args,
        objects=objects,
    )

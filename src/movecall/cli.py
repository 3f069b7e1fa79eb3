"""
movecall command line.

  movecall validate --type u64 --value 1000
  movecall encode --type u8 --value 7 --type "vector<u8>" --value 'b"Hi"'
  movecall decode --type u64 --bytes "[1,0,0,0,0,0,0,0]"
  movecall view --function-json fn.json --arg param0=0x6
  movecall call --function-json fn.json --arg amount=10 --sender 0x...
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from dataclasses import replace
from pathlib import Path
from typing import Any

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from movecall.config import CallConfig
from movecall.constants import Network
from movecall.decoding import decode_return_value, parse_byte_list
from movecall.descriptor import FunctionDescriptor, ParameterSpec, parse_type
from movecall.encoding import encode_argument
from movecall.errors import MoveCallError
from movecall.execution import CallInvocation, ExecutionState
from movecall.history import JsonlHistoryStore
from movecall.resolver import ObjectReferenceResolver, RpcObjectDirectory
from movecall.signer import HelperSigner
from movecall.validation import validate_parameter

logger = logging.getLogger(__name__)

console = Console()


def load_function(path: Path) -> FunctionDescriptor:
    """
    Load a function descriptor from JSON.

    Two shapes are accepted: the bytecode interface entry (`params` / `returns`
    type dicts, plus `package_id`, `module`, `name`) or an explicit
    `parameters: [{name, type, optional?}]` list.
    """
    obj = json.loads(path.read_text(encoding="utf-8"))
    if not isinstance(obj, dict):
        raise ValueError(f"{path}: expected a JSON object")
    package_id = str(obj.get("package_id") or obj.get("packageId") or "")
    module = str(obj.get("module") or "")
    name = str(obj.get("name") or obj.get("function") or "")
    if not (package_id and module and name):
        raise ValueError(f"{path}: package_id, module and name are required")

    if "params" in obj:
        return FunctionDescriptor.from_interface_json(package_id, module, name, obj)

    params = tuple(
        ParameterSpec(name=str(p["name"]), type_string=str(p["type"]), optional=bool(p.get("optional", False)))
        for p in obj.get("parameters") or []
    )
    return FunctionDescriptor(
        package_id=package_id,
        module=module,
        name=name,
        parameters=params,
        is_mutating=bool(obj.get("is_mutating", obj.get("is_entry", False))),
        return_types=tuple(str(t) for t in obj.get("return_types") or []),
        type_args=tuple(str(t) for t in obj.get("type_args") or []),
    )


def _parse_arg_pairs(pairs: list[str]) -> dict[str, str]:
    out: dict[str, str] = {}
    for pair in pairs:
        if "=" not in pair:
            raise ValueError(f"--arg expects name=value, got {pair!r}")
        k, v = pair.split("=", 1)
        out[k.strip()] = v
    return out


def cmd_validate(args: argparse.Namespace) -> int:
    descriptor = parse_type(args.type)
    outcome = validate_parameter(descriptor, args.value, optional=args.optional, param=args.name)

    table = Table(title=f"{args.type}", show_header=True)
    table.add_column("Field", style="cyan")
    table.add_column("Value")
    table.add_row("category", descriptor.category.value)
    table.add_row("valid", "[green]yes[/green]" if outcome.valid else "[red]no[/red]")
    if outcome.normalized_value is not None:
        table.add_row("normalized", json.dumps(outcome.normalized_value))
    if outcome.warning:
        table.add_row("warning", f"[yellow]{outcome.warning}[/yellow]")
    if outcome.error:
        table.add_row("error", f"[red]{outcome.error}[/red]")
    console.print(table)
    return 0 if outcome.valid else 1


def cmd_encode(args: argparse.Namespace) -> int:
    types = args.type or []
    values = args.value or []
    if len(types) != len(values):
        console.print("[red]--type and --value must be given the same number of times[/red]")
        return 2

    encoded = []
    for i, (type_string, text) in enumerate(zip(types, values)):
        try:
            encoded.append(encode_argument(text, parse_type(type_string), param=f"arg{i}").to_ptb_arg())
        except MoveCallError as e:
            console.print(f"[red]{e.message}[/red]")
            return 1
    print(json.dumps(encoded, indent=2))
    return 0


def cmd_decode(args: argparse.Namespace) -> int:
    try:
        data = parse_byte_list(args.bytes)
    except ValueError as e:
        console.print(f"[red]Invalid --bytes: {e}[/red]")
        return 2
    print(json.dumps(decode_return_value(data, args.type)))
    return 0


def _config_from_args(args: argparse.Namespace) -> CallConfig:
    config = CallConfig.from_env(dotenv_path=args.dotenv)
    overrides: dict[str, Any] = {}
    if args.network:
        overrides["network"] = Network(args.network)
    if args.rpc_url:
        overrides["rpc_url"] = args.rpc_url
    if args.sender:
        overrides["sender"] = args.sender
    if args.helper_bin:
        overrides["helper_bin"] = args.helper_bin
    if args.history_dir:
        overrides["history_dir"] = args.history_dir
    if not overrides:
        return config
    return replace(config, **overrides)


async def _run_invocation(args: argparse.Namespace, *, mutating: bool) -> int:
    config = _config_from_args(args)
    function = load_function(args.function_json)
    if function.is_mutating != mutating:
        expected = "entry" if mutating else "view"
        console.print(f"[yellow]Note: {function.target} is not marked as an {expected} function[/yellow]")
        function = replace(function, is_mutating=mutating)

    if config.helper_bin is None:
        console.print("[red]No transaction helper configured (--helper-bin or MOVECALL_HELPER_BIN)[/red]")
        return 2

    signer = HelperSigner(
        config.helper_bin,
        rpc_url=config.resolved_rpc_url,
        address=config.sender,
        timeout_s=config.helper_timeout_s,
    )
    history = JsonlHistoryStore(base_dir=config.history_dir) if config.history_dir else None

    directory = RpcObjectDirectory(config.resolved_rpc_url) if args.verify_objects else None
    resolver = ObjectReferenceResolver(directory, debounce_s=0)
    try:
        invocation = CallInvocation(
            function,
            signer=signer,
            resolver=resolver,
            config=config,
            history=history,
            use_direct_getters=args.direct_getters,
        )
        invocation.set_inputs(_parse_arg_pairs(args.arg or []))
        if directory is not None:
            await invocation.verify_objects()

        if invocation.state is not ExecutionState.READY:
            _print_outcomes(invocation)
            return 1

        attempt = await invocation.execute()
    finally:
        if directory is not None:
            await resolver.drain()
            await directory.aclose()

    if attempt is None or attempt.state is ExecutionState.ERROR:
        message = attempt.error if attempt else "execution did not start"
        console.print(Panel.fit(f"[red]{message}[/red]", title="[red]Error[/red]", border_style="red"))
        return 1

    result = attempt.result.to_dict() if hasattr(attempt.result, "to_dict") else attempt.result
    console.print(Panel.fit(json.dumps(result, indent=2), title="[green]Success[/green]", border_style="green"))
    return 0


def _print_outcomes(invocation: CallInvocation) -> None:
    table = Table(title=f"{invocation.function.target}: {invocation.state.value}", show_header=True)
    table.add_column("Parameter", style="cyan")
    table.add_column("Type", style="dim")
    table.add_column("Status")
    for p in invocation.parameters:
        outcome = invocation.outcomes.get(p.name)
        if outcome is None:
            status = ""
        elif outcome.valid:
            status = "[green]ok[/green]" + (f" [yellow]({outcome.warning})[/yellow]" if outcome.warning else "")
        else:
            status = f"[red]{outcome.error}[/red]"
        table.add_row(p.name, p.type_string, status)
    console.print(table)
    if invocation.is_mutating and not (invocation.signer and invocation.signer.address):
        console.print("[yellow]Entry calls need a signing account (--sender or MOVECALL_SENDER)[/yellow]")


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="Validate, encode and execute Move call arguments")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    subparsers = parser.add_subparsers(dest="command", required=True)

    p_val = subparsers.add_parser("validate", help="Validate one value against a parameter type")
    p_val.add_argument("--type", required=True, help='Declared parameter type, e.g. "u64" or "&mut 0x2::coin::Coin"')
    p_val.add_argument("--value", required=True)
    p_val.add_argument("--name", default=None, help="Parameter name used in messages")
    p_val.add_argument("--optional", action="store_true")

    p_enc = subparsers.add_parser("encode", help="Encode (type, value) pairs into PTB args JSON")
    p_enc.add_argument("--type", action="append", help="Repeatable; paired with --value in order")
    p_enc.add_argument("--value", action="append")

    p_dec = subparsers.add_parser("decode", help="Decode simulation return bytes")
    p_dec.add_argument("--type", required=True)
    p_dec.add_argument("--bytes", required=True, help='"[1,0,0,0]" or "0x01000000"')

    for name, help_text in (("view", "Simulate a read-only function"), ("call", "Submit an entry function")):
        p = subparsers.add_parser(name, help=help_text)
        p.add_argument("--function-json", type=Path, required=True)
        p.add_argument("--arg", action="append", help="name=value; repeatable")
        p.add_argument("--network", choices=[n.value for n in Network])
        p.add_argument("--rpc-url", type=str)
        p.add_argument("--sender", type=str)
        p.add_argument("--helper-bin", type=Path)
        p.add_argument("--history-dir", type=Path)
        p.add_argument("--dotenv", type=Path, default=Path(".env"))
        p.add_argument("--verify-objects", action="store_true", help="Look up object arguments before executing")
        if name == "view":
            p.add_argument("--direct-getters", action="store_true", help="Read get_<field> values from object content")

    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    if args.command == "validate":
        code = cmd_validate(args)
    elif args.command == "encode":
        code = cmd_encode(args)
    elif args.command == "decode":
        code = cmd_decode(args)
    else:
        if args.command == "call":
            args.direct_getters = False
        try:
            code = asyncio.run(_run_invocation(args, mutating=args.command == "call"))
        except (OSError, ValueError, KeyError) as e:
            console.print(f"[red]{type(e).__name__}: {e}[/red]")
            code = 2

    if code:
        sys.exit(code)


if __name__ == "__main__":
    main()

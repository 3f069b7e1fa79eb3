"""
Object Reference Resolver.

Normalizes object-id inputs and verifies them against an Object Directory:

- not found                      -> invalid outcome (ReferenceNotFound)
- found, type does not contain   -> valid outcome with a type-mismatch warning
  the expected inner type tag
- found and matching             -> valid outcome

Lookups are cached per normalized id. `schedule()` debounces per parameter
and keeps only the most recent result for each parameter.
"""

from __future__ import annotations

import asyncio
import logging
import re
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, Protocol

import httpx

from movecall.constants import (
    LOOKUP_DEBOUNCE_SECONDS,
    LOOKUP_RETRY_BASE_DELAY,
    LOOKUP_RETRY_MAX_ATTEMPTS,
    RPC_REQUEST_TIMEOUT_SECONDS,
)
from movecall.descriptor import TypeDescriptor
from movecall.errors import DirectoryError, MoveCallError, ReferenceNotFound
from movecall.utils import retry_async
from movecall.validation import ValidationOutcome, normalize_address, normalize_object_id

logger = logging.getLogger(__name__)

_ADDR_IN_TYPE_RE = re.compile(r"0x[0-9a-f]{1,64}(?![0-9a-f])")
_TYPE_PARAM_RE = re.compile(r"(?<![\w:])t\d+(?![\w:])")


@dataclass(frozen=True)
class ObjectInfo:
    found: bool
    object_id: str = ""
    type_tag: str | None = None
    owner: Any = None
    version: str | None = None
    fields: dict[str, Any] = field(default_factory=dict)

    @property
    def owner_address(self) -> str | None:
        """The owning account for address-owned objects, else None."""
        if isinstance(self.owner, dict):
            addr = self.owner.get("AddressOwner")
            if isinstance(addr, str):
                return addr
        return None

    @property
    def is_shared(self) -> bool:
        return isinstance(self.owner, dict) and "Shared" in self.owner

    @property
    def initial_shared_version(self) -> str | None:
        if not self.is_shared:
            return None
        shared = self.owner.get("Shared")
        if isinstance(shared, dict) and shared.get("initial_shared_version") is not None:
            return str(shared["initial_shared_version"])
        return None


class ObjectDirectory(Protocol):
    async def lookup(self, object_id: str) -> ObjectInfo: ...


def object_info_from_rpc(object_id: str, result: dict[str, Any]) -> ObjectInfo:
    """Map a `sui_getObject` result onto ObjectInfo."""
    data = result.get("data")
    if not isinstance(data, dict):
        return ObjectInfo(found=False, object_id=object_id)
    content = data.get("content") if isinstance(data.get("content"), dict) else {}
    fields = content.get("fields") if isinstance(content.get("fields"), dict) else {}
    version = data.get("version")
    return ObjectInfo(
        found=True,
        object_id=data.get("objectId") or object_id,
        type_tag=data.get("type") or content.get("type"),
        owner=data.get("owner"),
        version=str(version) if version is not None else None,
        fields=fields,
    )


class RpcObjectDirectory:
    """Object Directory backed by the fullnode JSON-RPC `sui_getObject` method."""

    def __init__(
        self,
        rpc_url: str,
        *,
        timeout_s: float = RPC_REQUEST_TIMEOUT_SECONDS,
        max_attempts: int = LOOKUP_RETRY_MAX_ATTEMPTS,
        base_delay: float = LOOKUP_RETRY_BASE_DELAY,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.rpc_url = rpc_url
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self._client = client or httpx.AsyncClient(timeout=timeout_s)
        self._owns_client = client is None

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> RpcObjectDirectory:
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.aclose()

    async def _fetch(self, object_id: str) -> dict[str, Any]:
        payload = {
            "jsonrpc": "2.0",
            "id": 1,
            "method": "sui_getObject",
            "params": [object_id, {"showType": True, "showOwner": True, "showContent": True}],
        }
        resp = await self._client.post(self.rpc_url, json=payload)
        if resp.status_code != 200:
            logger.error(f"RPC request failed: status={resp.status_code}, url={self.rpc_url}, object={object_id}")
            raise RuntimeError(f"Sui RPC returned status {resp.status_code} for sui_getObject")
        res = resp.json()
        if "error" in res:
            error_msg = res.get("error", {})
            raise RuntimeError(f"Sui RPC error: {error_msg.get('message', error_msg)}")
        result = res.get("result")
        if not isinstance(result, dict):
            raise RuntimeError("Sui RPC returned no result for sui_getObject")
        return result

    async def lookup(self, object_id: str) -> ObjectInfo:
        try:
            result = await retry_async(
                lambda: self._fetch(object_id),
                attempts=self.max_attempts,
                base_delay=self.base_delay,
                retry_on=(RuntimeError, httpx.RequestError, httpx.TimeoutException),
            )
        except httpx.TimeoutException as e:
            raise DirectoryError(f"Object lookup timed out: {self.rpc_url}", {"objectId": object_id}) from e
        except httpx.RequestError as e:
            raise DirectoryError(f"Failed to connect to Sui RPC {self.rpc_url}: {e}", {"objectId": object_id}) from e
        except (RuntimeError, ValueError) as e:
            raise DirectoryError(f"Object lookup failed: {e}", {"objectId": object_id}) from e

        info = object_info_from_rpc(object_id, result)
        logger.debug(f"Looked up {object_id}: found={info.found} type={info.type_tag}")
        return info


def normalize_type_tag(type_tag: str) -> str:
    """Lowercase, drop whitespace and zero-pad every address so `0x2::` and `0x0..02::` compare equal."""
    s = re.sub(r"\s+", "", type_tag.lower())
    return _ADDR_IN_TYPE_RE.sub(lambda m: normalize_address(m.group(0)), s)


def type_mismatch_warning(expected: str | None, reported: str | None) -> str | None:
    if not expected or not reported or "::" not in expected:
        return None
    want = normalize_type_tag(expected)
    # Generic parameters cannot be matched textually; compare the base struct only.
    if _TYPE_PARAM_RE.search(want):
        want = want.split("<", 1)[0]
    if want in normalize_type_tag(reported):
        return None
    return f"Object type mismatch: expected {expected}, got {reported}"


class ObjectReferenceResolver:
    """Verifies object-id inputs against a directory, with per-id caching and per-parameter debouncing."""

    def __init__(self, directory: ObjectDirectory | None = None, *, debounce_s: float = LOOKUP_DEBOUNCE_SECONDS):
        self.directory = directory
        self.debounce_s = debounce_s
        self._cache: dict[str, ObjectInfo] = {}
        self._pending: dict[str, asyncio.Task[ValidationOutcome]] = {}
        self._generation: dict[str, int] = {}
        self._latest: dict[str, ValidationOutcome] = {}
        self._in_flight: set[asyncio.Task[ValidationOutcome]] = set()

    async def lookup(self, object_id: str) -> ObjectInfo:
        """Directory lookup for an already-normalized id. Hits are cached; misses are not."""
        cached = self._cache.get(object_id)
        if cached is not None:
            return cached
        if self.directory is None:
            raise DirectoryError("No object directory configured", {"objectId": object_id})
        info = await self.directory.lookup(object_id)
        if info.found:
            self._cache[object_id] = info
        return info

    def cached(self, object_id: str) -> ObjectInfo | None:
        return self._cache.get(object_id)

    async def verify(
        self, text: str, descriptor: TypeDescriptor, *, param: str | None = None
    ) -> tuple[str, ObjectInfo | None, str | None]:
        """
        Normalize and look up one object id.

        Returns (normalized_id, info, warning). `info` is None when no
        directory is configured.

        Raises:
            FormatError: malformed id.
            ReferenceNotFound: the directory has no such object.
            DirectoryError: the directory could not be queried.
        """
        object_id = normalize_object_id(text, param=param)
        if self.directory is None:
            return object_id, None, None
        info = await self.lookup(object_id)
        if not info.found:
            raise ReferenceNotFound(object_id, param=param)
        return object_id, info, type_mismatch_warning(descriptor.inner_type_tag, info.type_tag)

    async def resolve(self, text: str, descriptor: TypeDescriptor, *, param: str | None = None) -> ValidationOutcome:
        try:
            object_id, _info, warning = await self.verify(text, descriptor, param=param)
        except DirectoryError as e:
            logger.warning(f"Object verification failed for {param or text}: {e.message}")
            return ValidationOutcome(
                valid=False,
                error=f"Failed to verify object: {e.message}",
                error_kind=e.code,
            )
        except MoveCallError as e:
            return ValidationOutcome.from_error(e)
        return ValidationOutcome.ok(object_id, warning=warning)

    def schedule(
        self,
        param: str,
        text: str,
        descriptor: TypeDescriptor,
        on_result: Callable[[str, ValidationOutcome], None] | None = None,
    ) -> asyncio.Task[ValidationOutcome]:
        """
        Debounced lookup for one parameter.

        A newer call for the same parameter cancels a lookup still waiting out
        its debounce window; one already talking to the directory is left to
        finish but its result is discarded.
        """
        generation = self._generation.get(param, 0) + 1
        self._generation[param] = generation

        prior = self._pending.get(param)
        if prior is not None and not prior.done() and prior not in self._in_flight:
            prior.cancel()

        async def _run() -> ValidationOutcome:
            if self.debounce_s > 0:
                await asyncio.sleep(self.debounce_s)
            current = asyncio.current_task()
            if current is not None:
                self._in_flight.add(current)
            try:
                outcome = await self.resolve(text, descriptor, param=param)
            finally:
                if current is not None:
                    self._in_flight.discard(current)
            if self._generation.get(param) == generation:
                self._latest[param] = outcome
                if on_result is not None:
                    on_result(param, outcome)
            else:
                logger.debug(f"Discarding superseded lookup for {param}")
            return outcome

        task = asyncio.get_running_loop().create_task(_run())
        self._pending[param] = task
        return task

    def latest(self, param: str) -> ValidationOutcome | None:
        return self._latest.get(param)

    def remember(self, param: str, outcome: ValidationOutcome) -> None:
        self._latest[param] = outcome

    def forget(self, param: str) -> None:
        """Drop the recorded lookup result for a parameter, e.g. after its input was edited."""
        self._generation[param] = self._generation.get(param, 0) + 1
        self._latest.pop(param, None)
        prior = self._pending.pop(param, None)
        if prior is not None and not prior.done() and prior not in self._in_flight:
            prior.cancel()

    async def drain(self) -> None:
        """Wait for every scheduled lookup to settle."""
        pending = [t for t in self._pending.values() if not t.done()]
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

"""Error types for argument validation and call execution.

Every error carries a machine-readable code, a human-readable message that
names the parameter and the expected bound or format, and a data dict for
structured rendering.
"""

from __future__ import annotations

from typing import Any


class MoveCallError(Exception):
    """Base class for movecall errors."""

    code = "error"

    def __init__(self, message: str, data: dict[str, Any] | None = None):
        self.message = message
        self.data = data or {}
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "data": self.data,
        }


class FormatError(MoveCallError):
    """Malformed literal: non-hex, non-digit, bad JSON, bad boolean."""

    code = "format_error"

    def __init__(self, message: str, *, param: str | None = None, expected: str | None = None):
        data: dict[str, Any] = {}
        if param is not None:
            data["param"] = param
        if expected is not None:
            data["expected"] = expected
        super().__init__(message, data)
        self.param = param
        self.expected = expected


class RequiredFieldError(FormatError):
    """A required parameter was left empty."""

    code = "required"

    def __init__(self, param: str | None = None):
        label = f"Parameter '{param}'" if param else "This field"
        super().__init__(f"{label} is required", param=param)


class RangeError(MoveCallError):
    """Numeric value outside [0, 2^width - 1]."""

    code = "range_error"

    def __init__(self, message: str, *, param: str | None = None, bound: int, width: int):
        data: dict[str, Any] = {"bound": str(bound), "width": width}
        if param is not None:
            data["param"] = param
        super().__init__(message, data)
        self.param = param
        self.bound = bound
        self.width = width


class ReferenceNotFound(MoveCallError):
    """Object lookup miss; usually a copy-paste mistake."""

    code = "reference_not_found"

    def __init__(self, object_id: str, *, param: str | None = None):
        data: dict[str, Any] = {"objectId": object_id}
        if param is not None:
            data["param"] = param
        super().__init__(f"Object {object_id} not found on chain", data)
        self.object_id = object_id
        self.param = param


class DirectoryError(MoveCallError):
    """The Object Directory could not be reached or returned garbage."""

    code = "directory_error"


class SimulationError(MoveCallError):
    """Read-only simulation failed."""

    code = "simulation_error"

    def __init__(self, message: str, *, transient: bool = False, sender: str | None = None):
        data: dict[str, Any] = {"transient": transient}
        if sender is not None:
            data["sender"] = sender
        super().__init__(message, data)
        self.transient = transient
        self.sender = sender


class SubmissionError(MoveCallError):
    """Signed submission failed. Never retried automatically."""

    code = "submission_error"


_SUBMISSION_HINTS = (
    ("insufficient funds", "Insufficient funds in the signing wallet. Fund the wallet and try again."),
    ("package not found", "Package not found. Make sure the contract is deployed on the selected network."),
    ("function not found", "Function not found in the specified module."),
)


def submission_error_from_message(message: str) -> SubmissionError:
    """Map a raw signer failure onto a SubmissionError with an actionable message."""
    lowered = message.lower()
    for needle, hint in _SUBMISSION_HINTS:
        if needle in lowered:
            return SubmissionError(hint, {"raw": message})
    return SubmissionError(message or "Transaction failed", {"raw": message})

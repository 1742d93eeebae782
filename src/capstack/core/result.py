# Copyright 2024-2025 David Gordon Nix
# SPDX-License-Identifier: Apache-2.0

"""
Engine result envelope.

Every fallible engine entry point returns either an ``EngineSuccess`` (data
plus non-fatal warnings) or an ``EngineFailure`` (machine-readable code,
message and field-level issues). Expected domain conditions such as a
non-convergent IRR or a zero-denominator ratio are ``None`` values inside a
success, never failures.

Internally, engines raise ``EngineError`` and let the entry point convert it
with ``capture``.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Literal, Optional, Sequence, Union

from pydantic import Field, ValidationError
from typing_extensions import Annotated

from .primitives import Model

logger = logging.getLogger(__name__)


class ErrorCode:
    """Error codes returned in ``EngineFailure.error.code``."""

    VALIDATION_ERROR = "VALIDATION_ERROR"
    INVALID_TRANCHE = "INVALID_TRANCHE"
    DEBT_SCHEDULE_INVARIANT = "DEBT_SCHEDULE_INVARIANT"
    INVALID_WATERFALL = "INVALID_WATERFALL"
    INVALID_CORRELATION = "INVALID_CORRELATION"
    HORIZON_MISMATCH = "HORIZON_MISMATCH"
    PIPELINE_ERROR = "PIPELINE_ERROR"


class ValidationIssue(Model):
    """A single field-level problem found while validating input."""

    path: str = Field(..., description="Dotted path to the offending field")
    message: str
    code: Optional[str] = None


class EngineErrorInfo(Model):
    code: str
    message: str
    issues: List[ValidationIssue] = Field(default_factory=list)
    details: Optional[Dict[str, Any]] = None


class EngineSuccess(Model):
    ok: Literal[True] = True
    data: Any
    warnings: List[str] = Field(default_factory=list)


class EngineFailure(Model):
    ok: Literal[False] = False
    error: EngineErrorInfo

    @property
    def warnings(self) -> List[str]:
        return []


EngineResult = Annotated[
    Union[EngineSuccess, EngineFailure], Field(discriminator="ok")
]


class EngineError(ValueError):
    """
    Raised inside engines for structural problems with the input.

    Carries the error code and any field-level issues so the entry point can
    build an ``EngineFailure`` without losing detail.
    """

    def __init__(
        self,
        code: str,
        message: str,
        issues: Optional[Sequence[ValidationIssue]] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.code = code
        self.message = message
        self.issues = list(issues or [])
        self.details = details

    def to_failure(self) -> EngineFailure:
        return failure(self.code, self.message, self.issues, self.details)


def success(data: Any, warnings: Optional[Sequence[str]] = None) -> EngineSuccess:
    return EngineSuccess(data=data, warnings=list(warnings or []))


def failure(
    code: str,
    message: str,
    issues: Optional[Sequence[ValidationIssue]] = None,
    details: Optional[Dict[str, Any]] = None,
) -> EngineFailure:
    return EngineFailure(
        error=EngineErrorInfo(
            code=code, message=message, issues=list(issues or []), details=details
        )
    )


def issues_from_validation_error(exc: ValidationError) -> List[ValidationIssue]:
    """Flatten a pydantic ``ValidationError`` into path/message issues."""
    issues = []
    for err in exc.errors():
        path = ".".join(str(part) for part in err.get("loc", ()))
        issues.append(
            ValidationIssue(path=path, message=err.get("msg", ""), code=err.get("type"))
        )
    return issues


def from_validation_error(
    exc: ValidationError,
    message: str = "Input validation failed",
    code: str = ErrorCode.VALIDATION_ERROR,
) -> EngineFailure:
    return failure(code, message, issues_from_validation_error(exc))


def capture(fn: Callable[..., EngineSuccess], *args: Any, **kwargs: Any):
    """
    Call an engine body and convert expected errors into an ``EngineFailure``.

    ``EngineError`` and pydantic ``ValidationError`` become failures; any
    other exception is a programming error and propagates.
    """
    try:
        return fn(*args, **kwargs)
    except EngineError as exc:
        logger.debug(f"Engine error {exc.code}: {exc.message}")
        return exc.to_failure()
    except ValidationError as exc:
        logger.debug(f"Validation error: {exc}")
        return from_validation_error(exc)

# Copyright 2024-2025 David Gordon Nix
# SPDX-License-Identifier: Apache-2.0

"""
capstack Core Framework

Primitives, the engine result envelope and the shared financial math used by
every other capstack module.
"""

from . import primitives
from .calculations import FinancialCalculations
from .primitives import EngineSettings, Model
from .result import (
    EngineError,
    EngineFailure,
    EngineResult,
    EngineSuccess,
    ErrorCode,
    ValidationIssue,
    capture,
    failure,
    from_validation_error,
    success,
)

__all__ = [
    "primitives",
    "FinancialCalculations",
    "EngineSettings",
    "Model",
    # Results
    "EngineResult",
    "EngineSuccess",
    "EngineFailure",
    "EngineError",
    "ErrorCode",
    "ValidationIssue",
    "capture",
    "success",
    "failure",
    "from_validation_error",
]

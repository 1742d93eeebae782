# Copyright 2024-2025 David Gordon Nix
# SPDX-License-Identifier: Apache-2.0

from .dcf import CashFlowValuation, ProjectValuation

__all__ = [
    "CashFlowValuation",
    "ProjectValuation",
]

# Copyright 2024-2025 David Gordon Nix
# SPDX-License-Identifier: Apache-2.0

"""Summary statistics for simulated KPI distributions."""

from typing import Iterable, Optional

import numpy as np

from ..core.primitives import Model


class KpiStatistics(Model):
    """Mean and P10 / P50 / P90 of one KPI across iterations."""

    count: int = 0
    mean: Optional[float] = None
    p10: Optional[float] = None
    p50: Optional[float] = None
    p90: Optional[float] = None


def percentile(sorted_values: np.ndarray, p: float) -> Optional[float]:
    """
    Linear-interpolated percentile of an ascending array.

    The rank is ``(n - 1) * p / 100``; values between ranks are linearly
    interpolated, so P50 of ``[1, 2, 3, 4]`` is 2.5.
    """
    if sorted_values.size == 0:
        return None
    return float(np.percentile(sorted_values, p, method="linear"))


def summarize(values: Iterable[Optional[float]]) -> KpiStatistics:
    """Summarize the finite values in ``values``; None and NaN are dropped."""
    data = np.array(
        [v for v in values if v is not None and np.isfinite(v)], dtype=float
    )
    if data.size == 0:
        return KpiStatistics()
    data.sort()
    return KpiStatistics(
        count=int(data.size),
        mean=float(data.mean()),
        p10=percentile(data, 10),
        p50=percentile(data, 50),
        p90=percentile(data, 90),
    )

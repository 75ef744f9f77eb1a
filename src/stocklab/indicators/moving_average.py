from __future__ import annotations

from collections import deque
from typing import Deque, Sequence

from stocklab.core.types import IndicatorSeries


def sma(values: Sequence[float], window: int) -> IndicatorSeries:
    """Simple moving average (sliding sum).

    Notes
    -----
    - Defined only once `window` observations have accumulated; earlier indices are None.
    - window <= 0 yields an all-None series.
    """
    n = int(window)
    out: IndicatorSeries = [None] * len(values)
    if n <= 0:
        return out

    q: Deque[float] = deque()
    s = 0.0
    for i, v in enumerate(values):
        v = float(v)
        q.append(v)
        s += v
        if len(q) > n:
            s -= q.popleft()
        if len(q) == n:
            out[i] = s / n
    return out

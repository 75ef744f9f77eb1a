from __future__ import annotations

from collections import deque
from typing import Deque

from stocklab.core.types import IndicatorSeries, PriceSeries


def volume_ratio(bars: PriceSeries, window: int = 20) -> IndicatorSeries:
    """volume[i] / mean(volume[i-window+1 .. i]).

    None while the window is not full, or when the average volume is not positive.
    """
    n = int(window)
    out: IndicatorSeries = [None] * len(bars)
    if n <= 0:
        return out

    q: Deque[float] = deque()
    s = 0.0
    for i, bar in enumerate(bars):
        v = float(bar.volume)
        q.append(v)
        s += v
        if len(q) > n:
            s -= q.popleft()
        if len(q) == n:
            avg = s / n
            out[i] = v / avg if avg > 0 else None
    return out

from __future__ import annotations

from collections import deque
from typing import Deque, Optional

from stocklab.core.types import IndicatorSeries, PriceSeries


def true_range(bars: PriceSeries) -> IndicatorSeries:
    """max(high-low, |high-prev_close|, |low-prev_close|). Bar 0 has no true range."""
    out: IndicatorSeries = [None] * len(bars)
    for i in range(1, len(bars)):
        prev_close = float(bars[i - 1].close)
        high = float(bars[i].high)
        low = float(bars[i].low)
        tr1 = high - low
        tr2 = abs(high - prev_close)
        tr3 = abs(low - prev_close)
        out[i] = max(tr1, tr2, tr3)
    return out


def atr_sma(bars: PriceSeries, period: int = 14) -> IndicatorSeries:
    """ATR(n) as a simple rolling mean of true range.

    Notes
    -----
    - Not Wilder smoothing. Use `atr_wilder` for the textbook variant.
    - The window holds the last `period` per-bar slots. Bar 0 occupies a slot with
      no true range, so the first value (at index period-1) averages period-1
      observations: the denominator is the count of defined values in the window.
    """
    n = int(period)
    out: IndicatorSeries = [None] * len(bars)
    if len(bars) < 2 or n <= 0:
        return out

    trs = true_range(bars)
    q: Deque[Optional[float]] = deque()
    s = 0.0
    for i, v in enumerate(trs):
        q.append(v)
        if v is not None:
            s += v
        if len(q) > n:
            popped = q.popleft()
            if popped is not None:
                s -= popped
        if len(q) == n:
            denom = sum(1 for x in q if x is not None)
            out[i] = s / denom if denom > 0 else None
    return out


def atr_wilder(bars: PriceSeries, period: int = 14) -> IndicatorSeries:
    """ATR(n) with Wilder smoothing.

    First value at index `period` = mean of true ranges 1..period, then
    atr = (atr * (n - 1) + tr) / n.
    """
    n = int(period)
    out: IndicatorSeries = [None] * len(bars)
    if len(bars) <= n or n <= 0:
        return out

    trs = true_range(bars)
    acc = 0.0
    for i in range(1, n + 1):
        acc += trs[i]  # type: ignore[operator]
    atr = acc / n
    out[n] = atr
    for i in range(n + 1, len(bars)):
        atr = (atr * (n - 1) + trs[i]) / n  # type: ignore[operator]
        out[i] = atr
    return out

from __future__ import annotations

from typing import Sequence

from stocklab.core.types import IndicatorSeries


def _rsi_value(avg_gain: float, avg_loss: float) -> float:
    # loss == 0 -> RS is infinite -> 100 (also covers a completely flat window)
    if avg_loss == 0:
        return 100.0
    rs = avg_gain / avg_loss
    return 100.0 - 100.0 / (1.0 + rs)


def _rsi(closes: Sequence[float], period: int, seed_average: bool) -> IndicatorSeries:
    p = int(period)
    out: IndicatorSeries = [None] * len(closes)
    if p <= 0:
        return out

    gains = 0.0
    losses = 0.0
    for i in range(1, len(closes)):
        chg = float(closes[i]) - float(closes[i - 1])
        g = max(0.0, chg)
        l = max(0.0, -chg)

        if i <= p:
            gains += g
            losses += l
            if i == p:
                if seed_average:
                    gains /= p
                    losses /= p
                out[i] = _rsi_value(gains, losses)
        else:
            gains = (gains * (p - 1) + g) / p
            losses = (losses * (p - 1) + l) / p
            out[i] = _rsi_value(gains, losses)
    return out


def rsi(closes: Sequence[float], period: int) -> IndicatorSeries:
    """Relative strength index used by the mean-reversion strategy.

    Indices 1..period accumulate raw gains/losses and the first value is
    emitted at index `period` from those sums. The recursion then runs on
    the same accumulators, which still hold the raw sums:

        gain = (gain * (period - 1) + g) / period

    (same for loss). Undefined (None) before index `period`.
    """
    return _rsi(closes, period, seed_average=False)


def rsi_wilder(closes: Sequence[float], period: int) -> IndicatorSeries:
    """Textbook Wilder RSI: like `rsi` but the recursion is seeded with the
    simple averages of the first `period` gains/losses."""
    return _rsi(closes, period, seed_average=True)

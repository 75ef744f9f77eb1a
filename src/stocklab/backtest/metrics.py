from __future__ import annotations

import math
from typing import Iterable, List, Sequence, Tuple

from stocklab.core.types import BacktestStats

TRADING_DAYS_PER_YEAR = 252

NAN = float("nan")


def _finite(xs: Iterable[float]) -> List[float]:
    return [float(x) for x in xs if math.isfinite(x)]


def mean(xs: Iterable[float]) -> float:
    """Arithmetic mean of the finite values; NaN when there are none."""
    ys = _finite(xs)
    if not ys:
        return NAN
    acc = 0.0
    # left-to-right on purpose; keeps results reproducible
    for y in ys:
        acc += y
    return acc / len(ys)


def sample_std(xs: Iterable[float]) -> float:
    """Sample standard deviation (n - 1) of the finite values; NaN below 2 values."""
    ys = _finite(xs)
    if len(ys) < 2:
        return NAN
    m = mean(ys)
    acc = 0.0
    for y in ys:
        acc += (y - m) * (y - m)
    return math.sqrt(acc / (len(ys) - 1))


def total_return(final_equity: float) -> float:
    return float(final_equity) - 1.0


def cagr(total_ret: float, num_returns: int, periods_per_year: int = TRADING_DAYS_PER_YEAR) -> float:
    """(1 + total_return) ** (periods_per_year / m) - 1.

    A negative base has no real fractional power -> NaN (never a complex number).
    """
    m = int(num_returns) or 1
    base = 1.0 + float(total_ret)
    if math.isnan(base) or base < 0:
        return NAN
    try:
        return base ** (periods_per_year / m) - 1.0
    except OverflowError:
        return math.inf


def sharpe(returns: Sequence[float], periods_per_year: int = TRADING_DAYS_PER_YEAR) -> float:
    """Annualized mean/std ratio. NaN for fewer than 2 returns or zero variance."""
    sd = sample_std(returns)
    if not math.isfinite(sd) or sd == 0:
        return NAN
    return mean(returns) / sd * math.sqrt(periods_per_year)


def max_drawdown(curve: Sequence[Tuple[str, float]]) -> float:
    """Most negative (equity - running_peak) / running_peak; 0 if none or peak <= 0."""
    peak = -math.inf
    mdd = 0.0
    for _, e in curve:
        if e > peak:
            peak = e
        dd = (e - peak) / peak if peak > 0 else 0.0
        if dd < mdd:
            mdd = dd
    return mdd


def compute_stats(
    curve: Sequence[Tuple[str, float]],
    returns: Sequence[float],
    cost_bps: float,
    periods_per_year: int = TRADING_DAYS_PER_YEAR,
) -> BacktestStats:
    final_equity = curve[-1][1] if curve else 1.0
    tr = total_return(final_equity)
    return BacktestStats(
        total_return=tr,
        cagr=cagr(tr, len(returns), periods_per_year),
        sharpe=sharpe(returns, periods_per_year),
        max_drawdown=max_drawdown(curve),
        cost_bps=float(cost_bps),
    )

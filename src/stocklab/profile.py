from __future__ import annotations

import math
from dataclasses import dataclass
from typing import List, Optional

import numpy as np

from stocklab.core.types import PriceSeries
from stocklab.indicators.atr import atr_sma
from stocklab.indicators.moving_average import sma

# |SMA20/SMA60 - 1| above this counts as a trend
TREND_BAND = 0.005


@dataclass(frozen=True)
class AssetProfile:
    trend: str              # "up" | "down" | "side"
    trend_strength: float   # SMA20 / SMA60 - 1
    ret20: float
    ret60: float
    vol20: float            # sample std of the last 20 close-to-close returns
    atr14: float
    dd90: float             # worst close drawdown over the last 90 bars
    liquidity20: float      # mean volume over the last 20 bars
    volume_ratio: float


def _nan() -> float:
    return float("nan")


def _finite(xs: List[float]) -> np.ndarray:
    arr = np.asarray(xs, dtype=float)
    return arr[np.isfinite(arr)]


def compute_asset_profile(bars: PriceSeries) -> Optional[AssetProfile]:
    """Snapshot of the last bar: trend, recent returns, volatility, drawdown, liquidity.

    Values that need more history than is available are NaN.
    """
    if not bars:
        return None

    closes = [float(b.close) for b in bars]
    vols = [float(b.volume) for b in bars]
    last = bars[-1]

    sma20 = sma(closes, 20)[-1]
    sma60 = sma(closes, 60)[-1]
    trend_strength = sma20 / sma60 - 1.0 if (sma20 is not None and sma60 is not None and sma60 != 0) else _nan()

    trend = "side"
    if sma60 is not None and math.isfinite(trend_strength):
        if last.close > sma60 and trend_strength > TREND_BAND:
            trend = "up"
        elif last.close < sma60 and trend_strength < -TREND_BAND:
            trend = "down"

    rets = [closes[i] / closes[i - 1] - 1.0 for i in range(1, len(closes))]
    r20 = _finite(rets[-20:])
    vol20 = float(np.std(r20, ddof=1)) if len(r20) >= 2 else _nan()

    ret20 = last.close / closes[-21] - 1.0 if len(closes) > 20 else _nan()
    ret60 = last.close / closes[-61] - 1.0 if len(closes) > 60 else _nan()

    atr14 = atr_sma(bars, 14)[-1]

    peak = -math.inf
    dd90 = 0.0
    for c in closes[-90:]:
        peak = max(peak, c)
        dd = (c - peak) / peak if peak > 0 else 0.0
        dd90 = min(dd90, dd)

    v20 = _finite(vols[-20:])
    liquidity20 = float(v20.mean()) if len(v20) else _nan()
    vr = last.volume / liquidity20 if (math.isfinite(liquidity20) and liquidity20 > 0) else _nan()

    return AssetProfile(
        trend=trend,
        trend_strength=trend_strength,
        ret20=ret20,
        ret60=ret60,
        vol20=vol20,
        atr14=atr14 if atr14 is not None else _nan(),
        dd90=dd90,
        liquidity20=liquidity20,
        volume_ratio=vr,
    )

from __future__ import annotations

from typing import Optional

import pandas as pd

from stocklab.backtest.engine import BacktestConfig, compute_atr
from stocklab.core.types import IndicatorSeries
from stocklab.data_loader import frame_to_bars
from stocklab.indicators.volume import volume_ratio
from stocklab.strategy.signals import build_signal_rule


def _to_column(values: IndicatorSeries, index: pd.Index) -> pd.Series:
    # nullable Float64 keeps warm-up as <NA> instead of NaN
    return pd.Series(pd.array(values, dtype="Float64"), index=index)


def add_indicators(df: pd.DataFrame, cfg: Optional[BacktestConfig] = None) -> pd.DataFrame:
    """Add the indicator and signal columns used by a backtest run.

    Parameters
    ----------
    df:
        OHLCV with datetime index and columns: open, high, low, close, (volume).
    cfg:
        Backtest configuration; decides ATR period/method, volume window and
        which strategy series are produced.

    Columns
    -------
    - `atr`, `volume_ratio`
    - strategy series (`sma_fast`/`sma_slow` or `rsi`)
    - `signal` (0/1 desired exposure)
    """
    cfg = cfg or BacktestConfig()
    out = df.copy()
    bars = frame_to_bars(out)

    out["atr"] = _to_column(compute_atr(bars, cfg), out.index)
    out["volume_ratio"] = _to_column(volume_ratio(bars, cfg.volume_gate.window), out.index)

    sig = build_signal_rule(cfg.strategy).generate(bars)
    for name, series in sig.series.items():
        out[name] = _to_column(series, out.index)
    out["signal"] = pd.Series(sig.signal, index=out.index, dtype=int)
    return out

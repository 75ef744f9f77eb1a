from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Dict, List

from stocklab.core.types import IndicatorSeries, PriceSeries, Side, StrategyType
from stocklab.indicators.moving_average import sma
from stocklab.indicators.rsi import rsi

if TYPE_CHECKING:
    from stocklab.backtest.engine import StrategyConfig


@dataclass
class SignalOutput:
    """Per-bar desired exposure (0/1) plus the indicator series that produced it."""

    signal: List[int]
    series: Dict[str, IndicatorSeries] = field(default_factory=dict)


def trend_following_signal(bars: PriceSeries, fast_window: int, slow_window: int) -> SignalOutput:
    """signal[i] = 1 iff SMA(fast) > SMA(slow) and close > SMA(slow) at bar i.

    Stateless per bar (no hysteresis). Uses data through bar i only.
    """
    closes = [float(b.close) for b in bars]
    f = sma(closes, fast_window)
    s = sma(closes, slow_window)
    sig = [0] * len(bars)
    for i in range(len(bars)):
        fi = f[i]
        si = s[i]
        if fi is None or si is None:
            continue
        sig[i] = 1 if (fi > si and closes[i] > si) else 0
    return SignalOutput(signal=sig, series={"sma_fast": f, "sma_slow": s})


def rsi_position_signal(
    r: IndicatorSeries,
    entry_threshold: float,
    exit_threshold: float,
) -> List[int]:
    """FLAT/LONG state machine on an RSI series.

    - FLAT -> LONG when RSI is defined and < entry_threshold
    - LONG -> FLAT when RSI is defined and > exit_threshold
    - undefined RSI holds the current state; initial state is FLAT
    """
    sig = [0] * len(r)
    pos = Side.FLAT
    for i, rv in enumerate(r):
        if rv is not None:
            if pos == Side.FLAT and rv < entry_threshold:
                pos = Side.LONG
            elif pos == Side.LONG and rv > exit_threshold:
                pos = Side.FLAT
        sig[i] = int(pos.value)
    return sig


def mean_reversion_signal(
    bars: PriceSeries,
    rsi_period: int,
    entry_threshold: float,
    exit_threshold: float,
) -> SignalOutput:
    closes = [float(b.close) for b in bars]
    r = rsi(closes, rsi_period)
    return SignalOutput(signal=rsi_position_signal(r, entry_threshold, exit_threshold), series={"rsi": r})


class SignalRule:
    def __init__(self, strategy: StrategyType):
        self.strategy = strategy

    def generate(self, bars: PriceSeries) -> SignalOutput:
        """Desired exposure for every bar, decided with data through that bar."""
        raise NotImplementedError


class TrendSmaRule(SignalRule):
    def __init__(self, fast_window: int = 20, slow_window: int = 60):
        super().__init__(StrategyType.TREND_SMA)
        self.fast_window = int(fast_window)
        self.slow_window = int(slow_window)

    def generate(self, bars: PriceSeries) -> SignalOutput:
        return trend_following_signal(bars, self.fast_window, self.slow_window)


class MeanReversionRsiRule(SignalRule):
    def __init__(self, rsi_period: int = 14, entry_threshold: float = 30.0, exit_threshold: float = 50.0):
        super().__init__(StrategyType.MEAN_REVERSION_RSI)
        self.rsi_period = int(rsi_period)
        self.entry_threshold = float(entry_threshold)
        self.exit_threshold = float(exit_threshold)

    def generate(self, bars: PriceSeries) -> SignalOutput:
        return mean_reversion_signal(bars, self.rsi_period, self.entry_threshold, self.exit_threshold)


def build_signal_rule(cfg: "StrategyConfig") -> SignalRule:
    """Factory from a `StrategyConfig`."""
    if cfg.strategy == StrategyType.TREND_SMA:
        return TrendSmaRule(cfg.fast_window, cfg.slow_window)
    if cfg.strategy == StrategyType.MEAN_REVERSION_RSI:
        return MeanReversionRsiRule(cfg.rsi_period, cfg.rsi_entry, cfg.rsi_exit)
    raise ValueError(f"Unknown strategy: {cfg.strategy}")

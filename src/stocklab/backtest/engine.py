from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field, replace
from typing import List, Optional, Sequence, Tuple

from stocklab.core.types import (
    AtrMethod,
    BacktestResult,
    EventCountByDate,
    ExitReason,
    IndicatorSeries,
    PriceBar,
    PriceSeries,
    Side,
    StrategyType,
    TradeRecord,
    TradeState,
)
from stocklab.backtest.metrics import compute_stats
from stocklab.indicators.atr import atr_sma, atr_wilder
from stocklab.indicators.volume import volume_ratio as volume_ratio_series
from stocklab.strategy.signals import build_signal_rule

logger = logging.getLogger(__name__)

MAX_COST_RATE = 0.1


def _clamp(x: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, x))


@dataclass
class VolumeGateConfig:
    # Blocks new entries when volume_ratio[i-1] is undefined or below threshold.
    enabled: bool = False
    window: int = 20
    threshold_ratio: float = 1.2


@dataclass
class EventScalingConfig:
    # Scales exposure (not position state) on dates with many external events.
    enabled: bool = False
    count_threshold: int = 6
    scale_factor: float = 0.5


@dataclass
class StrategyConfig:
    strategy: StrategyType = StrategyType.TREND_SMA
    # TREND_SMA
    fast_window: int = 20
    slow_window: int = 60
    # MEAN_REVERSION_RSI
    rsi_period: int = 14
    rsi_entry: float = 30.0
    rsi_exit: float = 50.0


@dataclass
class BacktestConfig:
    # Costs (basis points, charged per executed transaction)
    fee_bps: float = 5.0
    slippage_bps: float = 2.0

    # Stop-loss: entry_price - k * ATR[entry bar]; k=0 puts the stop at the entry price
    atr_period: int = 14
    atr_stop_multiplier: float = 2.0
    atr_method: AtrMethod = AtrMethod.SMA

    volume_gate: VolumeGateConfig = field(default_factory=VolumeGateConfig)
    event_scaling: EventScalingConfig = field(default_factory=EventScalingConfig)
    strategy: StrategyConfig = field(default_factory=StrategyConfig)

    @property
    def cost_bps(self) -> float:
        return float(self.fee_bps) + float(self.slippage_bps)

    @property
    def cost_rate(self) -> float:
        return _clamp(self.cost_bps / 10000.0, 0.0, MAX_COST_RATE)

    def clamped(self) -> "BacktestConfig":
        """Copy with every user-facing knob forced into its supported range."""
        s = self.strategy
        return replace(
            self,
            fee_bps=_clamp(float(self.fee_bps), 0.0, 200.0),
            slippage_bps=_clamp(float(self.slippage_bps), 0.0, 200.0),
            atr_stop_multiplier=_clamp(float(self.atr_stop_multiplier), 0.0, 10.0),
            volume_gate=replace(
                self.volume_gate,
                threshold_ratio=_clamp(float(self.volume_gate.threshold_ratio), 0.5, 5.0),
            ),
            event_scaling=replace(
                self.event_scaling,
                count_threshold=int(_clamp(int(self.event_scaling.count_threshold), 1, 999)),
                scale_factor=_clamp(float(self.event_scaling.scale_factor), 0.0, 1.0),
            ),
            strategy=replace(
                s,
                fast_window=int(_clamp(int(s.fast_window), 2, 200)),
                slow_window=int(_clamp(int(s.slow_window), 3, 400)),
                rsi_period=int(_clamp(int(s.rsi_period), 2, 100)),
                rsi_entry=_clamp(float(s.rsi_entry), 1.0, 99.0),
                rsi_exit=_clamp(float(s.rsi_exit), 1.0, 99.0),
            ),
        )


@dataclass(frozen=True)
class SimState:
    """Fold accumulator: position state plus equity and trade counters."""

    trade: TradeState = TradeState()
    equity: float = 1.0
    trade_count: int = 0
    win_count: int = 0
    loss_count: int = 0


@dataclass(frozen=True)
class BarContext:
    """Inputs for the step from bar i-1 to bar i."""

    prev: PriceBar
    bar: PriceBar
    desired: int              # signal[i-1]
    atr: Optional[float]      # ATR[i-1]
    volume_ratio: Optional[float]  # volume_ratio[i-1]
    event_count: int = 0      # events on bar i's date


@dataclass(frozen=True)
class BarOutcome:
    date: str
    equity: float
    ret: float
    closed_trade: Optional[TradeRecord] = None


def _exposure(cfg: BacktestConfig, event_count: int) -> float:
    es = cfg.event_scaling
    if not es.enabled:
        return 1.0
    if event_count >= es.count_threshold:
        return _clamp(float(es.scale_factor), 0.0, 1.0)
    return 1.0


def _classify(pnl: float, wins: int, losses: int) -> Tuple[int, int]:
    if pnl >= 0:
        return wins + 1, losses
    return wins, losses + 1


def step(state: SimState, ctx: BarContext, cfg: BacktestConfig) -> Tuple[SimState, BarOutcome]:
    """Advance one bar with next-bar-close execution.

    Order (strict):
      1) desired = signal[i-1]
      2) volume gate (new entries only)
      3) transition filled at close[i-1] (cost charged on equity)
      4) exposure for bar i (event scaling)
      5) stop check against low[i], else close-to-close return
    A position closed by the signal on bar i is never stop-checked on bar i.
    """
    cost = cfg.cost_rate
    trade = state.trade
    equity = state.equity
    trades, wins, losses = state.trade_count, state.win_count, state.loss_count
    closed: Optional[TradeRecord] = None

    prev_close = float(ctx.prev.close)
    desired = 1 if ctx.desired else 0

    if cfg.volume_gate.enabled and trade.position == Side.FLAT and desired == 1:
        vr = ctx.volume_ratio
        if vr is None or not math.isfinite(vr) or vr < cfg.volume_gate.threshold_ratio:
            desired = 0

    if desired == 1 and trade.position == Side.FLAT:
        equity *= 1.0 - cost
        trades += 1
        a = ctx.atr
        stop = None
        if a is not None and math.isfinite(a) and a > 0:
            stop = prev_close - float(cfg.atr_stop_multiplier) * a
        trade = TradeState(position=Side.LONG, entry_price=prev_close, stop_level=stop, entry_date=ctx.prev.date)
    elif desired == 0 and trade.position == Side.LONG:
        equity *= 1.0 - cost
        trades += 1
        pnl = None
        if trade.entry_price is not None and trade.entry_price > 0 and prev_close > 0:
            pnl = prev_close / trade.entry_price - 1.0
            wins, losses = _classify(pnl, wins, losses)
        closed = TradeRecord(
            entry_date=trade.entry_date or ctx.prev.date,
            entry_price=float(trade.entry_price) if trade.entry_price is not None else math.nan,
            exit_date=ctx.prev.date,
            exit_price=prev_close,
            pnl=pnl,
            exit_reason=ExitReason.SIGNAL,
        )
        trade = TradeState()

    expo = _exposure(cfg, ctx.event_count) if trade.position == Side.LONG else 0.0

    r = 0.0
    if trade.position == Side.LONG and expo > 0:
        stop = trade.stop_level
        if stop is not None and float(ctx.bar.low) <= stop and prev_close > 0:
            r = expo * (stop / prev_close - 1.0)
            equity *= 1.0 + r
            equity *= 1.0 - cost
            trades += 1
            pnl = None
            if trade.entry_price is not None and trade.entry_price > 0:
                pnl = stop / trade.entry_price - 1.0
                wins, losses = _classify(pnl, wins, losses)
            closed = TradeRecord(
                entry_date=trade.entry_date or ctx.prev.date,
                entry_price=float(trade.entry_price) if trade.entry_price is not None else math.nan,
                exit_date=ctx.bar.date,
                exit_price=stop,
                pnl=pnl,
                exit_reason=ExitReason.STOP,
            )
            trade = TradeState()
        else:
            rr = float(ctx.bar.close) / prev_close - 1.0 if prev_close > 0 else 0.0
            r = expo * rr
            equity *= 1.0 + r

    new_state = SimState(trade=trade, equity=equity, trade_count=trades, win_count=wins, loss_count=losses)
    return new_state, BarOutcome(date=ctx.bar.date, equity=equity, ret=r, closed_trade=closed)


def _aligned(series: Optional[Sequence[Optional[float]]], n: int, name: str) -> Sequence[Optional[float]]:
    if series is None:
        return [None] * n
    if len(series) != n:
        raise ValueError(f"{name} length {len(series)} does not match bars length {n}")
    return series


def backtest_from_signal(
    bars: PriceSeries,
    signal: Sequence[int],
    atr: Optional[IndicatorSeries] = None,
    volume_ratio: Optional[IndicatorSeries] = None,
    cfg: Optional[BacktestConfig] = None,
    event_counts: Optional[EventCountByDate] = None,
) -> Optional[BacktestResult]:
    """Simulate one long-only pass over `bars` driven by a precomputed signal.

    Returns None when fewer than 2 bars are given (no result, not an error).
    Non-finite statistics are returned as NaN/inf; callers check before display.
    """
    cfg = cfg or BacktestConfig()
    events = event_counts or {}
    n = len(bars)
    if n < 2:
        logger.debug("backtest skipped: %d bar(s), need at least 2", n)
        return None
    if len(signal) != n:
        raise ValueError(f"signal length {len(signal)} does not match bars length {n}")
    atr_s = _aligned(atr, n, "atr")
    vr_s = _aligned(volume_ratio, n, "volume_ratio")

    state = SimState()
    curve: List[Tuple[str, float]] = []
    daily: List[float] = []
    ledger: List[TradeRecord] = []

    for i in range(1, n):
        ctx = BarContext(
            prev=bars[i - 1],
            bar=bars[i],
            desired=int(signal[i - 1]),
            atr=atr_s[i - 1],
            volume_ratio=vr_s[i - 1],
            event_count=int(events.get(bars[i].date, 0) or 0),
        )
        state, out = step(state, ctx, cfg)
        curve.append((out.date, out.equity))
        daily.append(out.ret)
        if out.closed_trade is not None:
            ledger.append(out.closed_trade)

    if state.trade.position == Side.LONG and state.trade.entry_price is not None:
        ledger.append(TradeRecord(entry_date=state.trade.entry_date or "", entry_price=float(state.trade.entry_price)))

    stats = compute_stats(curve, daily, cfg.cost_bps)
    logger.debug(
        "backtest done: bars=%d trades=%d equity=%.6f",
        n,
        state.trade_count,
        state.equity,
    )
    return BacktestResult(
        equity_curve=tuple(curve),
        daily_returns=tuple(daily),
        trade_count=state.trade_count,
        win_count=state.win_count,
        loss_count=state.loss_count,
        stats=stats,
        trades=tuple(ledger),
    )


def compute_atr(bars: PriceSeries, cfg: BacktestConfig) -> IndicatorSeries:
    if cfg.atr_method == AtrMethod.WILDER:
        return atr_wilder(bars, cfg.atr_period)
    return atr_sma(bars, cfg.atr_period)


def run_backtest(
    bars: PriceSeries,
    cfg: Optional[BacktestConfig] = None,
    event_counts: Optional[EventCountByDate] = None,
) -> Optional[BacktestResult]:
    """Build the configured signal and indicators, then simulate."""
    cfg = cfg or BacktestConfig()
    if len(bars) < 2:
        logger.debug("backtest skipped: %d bar(s), need at least 2", len(bars))
        return None
    rule = build_signal_rule(cfg.strategy)
    sig = rule.generate(bars).signal
    atr = compute_atr(bars, cfg)
    vr = volume_ratio_series(bars, cfg.volume_gate.window)
    logger.info(
        "backtest: strategy=%s bars=%d %s..%s cost_bps=%.1f",
        cfg.strategy.strategy.value,
        len(bars),
        bars[0].date,
        bars[-1].date,
        cfg.cost_bps,
    )
    return backtest_from_signal(bars, sig, atr=atr, volume_ratio=vr, cfg=cfg, event_counts=event_counts)

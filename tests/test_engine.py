import math

import pytest

from stocklab.backtest.engine import (
    BacktestConfig,
    EventScalingConfig,
    StrategyConfig,
    VolumeGateConfig,
    backtest_from_signal,
    run_backtest,
)
from stocklab.core.types import ExitReason, PriceBar, StrategyType

from conftest import make_bars


def _frictionless(**kwargs) -> BacktestConfig:
    return BacktestConfig(fee_bps=0.0, slippage_bps=0.0, **kwargs)


class TestScenarios:
    def test_no_frictions(self):
        bars = make_bars([100.0, 105.0, 110.0])
        res = backtest_from_signal(bars, [1, 1, 1], cfg=_frictionless())

        assert res.trade_count == 1
        assert res.win_count == 0 and res.loss_count == 0
        assert [d for d, _ in res.equity_curve] == [bars[1].date, bars[2].date]
        assert res.equity_curve[0][1] == pytest.approx(1.05)
        assert res.equity_curve[1][1] == pytest.approx(1.1)
        assert res.stats.total_return == pytest.approx(0.10)
        assert res.trades[0].entry_price == 100.0
        assert res.trades[0].exit_date is None

    def test_cost_erosion(self):
        bars = make_bars([100.0, 105.0, 110.0])
        cfg = BacktestConfig(fee_bps=50.0, slippage_bps=50.0)
        res = backtest_from_signal(bars, [1, 1, 1], cfg=cfg)

        assert cfg.cost_rate == pytest.approx(0.01)
        # 0.99 after the entry fill, then the +5% bar
        assert res.equity_curve[0][1] == pytest.approx(0.99 * 1.05)
        assert res.equity_curve[1][1] == pytest.approx(0.99 * 1.1)
        assert res.stats.cost_bps == 100.0

    def test_event_scaling(self):
        bars = make_bars([100.0, 105.0, 110.0])
        cfg = _frictionless(event_scaling=EventScalingConfig(enabled=True, count_threshold=3, scale_factor=0.5))
        events = {bars[2].date: 5}
        res = backtest_from_signal(bars, [1, 1, 1], cfg=cfg, event_counts=events)

        assert res.daily_returns[0] == pytest.approx(0.05)
        assert res.daily_returns[1] == pytest.approx(0.5 * (110.0 / 105.0 - 1.0))
        assert res.trade_count == 1

    def test_event_below_threshold_is_unscaled(self):
        bars = make_bars([100.0, 105.0, 110.0])
        cfg = _frictionless(event_scaling=EventScalingConfig(enabled=True, count_threshold=3, scale_factor=0.5))
        res = backtest_from_signal(bars, [1, 1, 1], cfg=cfg, event_counts={bars[2].date: 2})
        assert res.daily_returns[1] == pytest.approx(110.0 / 105.0 - 1.0)


class TestSentinel:
    def test_fewer_than_two_bars(self):
        bars = make_bars([100.0])
        assert backtest_from_signal(bars, [1]) is None
        assert backtest_from_signal([], []) is None
        assert run_backtest([]) is None

    def test_misaligned_signal(self):
        bars = make_bars([100.0, 101.0, 102.0])
        with pytest.raises(ValueError):
            backtest_from_signal(bars, [1, 1])
        with pytest.raises(ValueError):
            backtest_from_signal(bars, [1, 1, 1], atr=[None])


class TestExecution:
    def test_signal_uses_previous_bar(self):
        # signal only on the last bar: never earned
        bars = make_bars([100.0, 110.0, 120.0])
        res = backtest_from_signal(bars, [0, 0, 1], cfg=_frictionless())
        assert res.trade_count == 0
        assert res.equity_curve[-1][1] == 1.0
        assert res.daily_returns == (0.0, 0.0)

    def test_signal_exit_counts_win(self):
        bars = make_bars([100.0, 110.0, 120.0])
        res = backtest_from_signal(bars, [1, 0, 0], cfg=_frictionless())
        assert res.trade_count == 2
        assert (res.win_count, res.loss_count) == (1, 0)
        assert res.equity_curve[-1][1] == pytest.approx(1.1)
        t = res.trades[0]
        assert t.exit_reason == ExitReason.SIGNAL
        assert t.exit_date == bars[1].date
        assert t.pnl == pytest.approx(0.1)


class TestStopLoss:
    def test_zero_multiplier_stops_at_entry(self):
        bars = [
            PriceBar("2024-01-01", 100, 101, 99, 100, 1000),
            PriceBar("2024-01-02", 100, 103, 98, 102, 1000),
        ]
        res = backtest_from_signal(bars, [1, 1], atr=[2.0, 2.0], cfg=_frictionless(atr_stop_multiplier=0.0))
        assert res.trade_count == 2
        assert res.daily_returns[0] == pytest.approx(0.0)
        assert (res.win_count, res.loss_count) == (1, 0)
        assert res.trades[0].exit_reason == ExitReason.STOP
        assert res.trades[0].exit_date == "2024-01-02"
        assert res.trades[0].exit_price == 100.0

    def test_stop_loss_realizes_at_stop_level(self):
        bars = [
            PriceBar("2024-01-01", 100, 101, 99, 100, 1000),
            PriceBar("2024-01-02", 100, 101, 97, 99, 1000),
        ]
        cfg = BacktestConfig(fee_bps=50.0, slippage_bps=50.0, atr_stop_multiplier=1.0)
        res = backtest_from_signal(bars, [1, 1], atr=[2.0, 2.0], cfg=cfg)
        # entry cost, -2% to the stop at 98, exit cost
        assert res.equity_curve[0][1] == pytest.approx(0.99 * 0.98 * 0.99)
        assert res.daily_returns[0] == pytest.approx(-0.02)
        assert (res.win_count, res.loss_count) == (0, 1)

    def test_undefined_atr_disables_stop(self):
        bars = [
            PriceBar("2024-01-01", 100, 101, 99, 100, 1000),
            PriceBar("2024-01-02", 100, 101, 50, 90, 1000),
        ]
        res = backtest_from_signal(bars, [1, 1], atr=[None, None], cfg=_frictionless(atr_stop_multiplier=0.0))
        assert res.trade_count == 1
        assert res.daily_returns[0] == pytest.approx(-0.1)

    def test_signal_exit_skips_stop_check(self):
        bars = [
            PriceBar("2024-01-01", 100, 101, 99, 100, 1000),
            PriceBar("2024-01-02", 105, 106, 104, 105, 1000),
            PriceBar("2024-01-03", 100, 101, 50, 100, 1000),
        ]
        res = backtest_from_signal(bars, [1, 0, 0], atr=[1.0, 1.0, 1.0], cfg=_frictionless(atr_stop_multiplier=1.0))
        assert res.trade_count == 2
        assert res.daily_returns[1] == 0.0
        assert res.equity_curve[-1][1] == pytest.approx(1.05)
        assert [t.exit_reason for t in res.trades] == [ExitReason.SIGNAL]

    def test_zero_exposure_skips_stop_check(self):
        bars = [
            PriceBar("2024-01-01", 100, 101, 99, 100, 1000),
            PriceBar("2024-01-02", 100, 101, 50, 90, 1000),
        ]
        cfg = _frictionless(
            atr_stop_multiplier=0.0,
            event_scaling=EventScalingConfig(enabled=True, count_threshold=1, scale_factor=0.0),
        )
        res = backtest_from_signal(bars, [1, 1], atr=[2.0, 2.0], cfg=cfg, event_counts={"2024-01-02": 1})
        assert res.trade_count == 1
        assert res.daily_returns[0] == 0.0
        assert res.trades[0].exit_date is None


class TestVolumeGate:
    def test_unreachable_threshold_blocks_entries(self, trend_bars):
        cfg = _frictionless(
            strategy=StrategyConfig(strategy=StrategyType.TREND_SMA, fast_window=5, slow_window=10),
            volume_gate=VolumeGateConfig(enabled=True, window=20, threshold_ratio=1e9),
        )
        res = run_backtest(trend_bars, cfg)
        assert res.trade_count == 0
        assert all(e == 1.0 for _, e in res.equity_curve)

    def test_gate_disabled_trades(self, trend_bars):
        cfg = _frictionless(strategy=StrategyConfig(strategy=StrategyType.TREND_SMA, fast_window=5, slow_window=10))
        res = run_backtest(trend_bars, cfg)
        assert res.trade_count == 1
        assert res.stats.total_return > 0

    def test_undefined_ratio_blocks_entry(self):
        bars = make_bars([100.0, 101.0, 102.0])
        cfg = _frictionless(volume_gate=VolumeGateConfig(enabled=True, threshold_ratio=0.5))
        res = backtest_from_signal(bars, [1, 1, 1], volume_ratio=[None, 1.0, 1.0], cfg=cfg)
        # blocked on bar 1, entered on bar 2 at close[1]
        assert res.trade_count == 1
        assert res.daily_returns[0] == 0.0
        assert res.trades[0].entry_price == 101.0

    def test_nan_ratio_blocks_entry(self):
        bars = make_bars([100.0, 101.0, 102.0])
        cfg = _frictionless(volume_gate=VolumeGateConfig(enabled=True, threshold_ratio=1.0))
        nan = float("nan")
        res = backtest_from_signal(bars, [1, 1, 1], volume_ratio=[nan, nan, nan], cfg=cfg)
        assert res.trade_count == 0
        assert res.trades == ()
        assert res.equity_curve[-1][1] == 1.0

    def test_gate_never_forces_exit(self):
        bars = make_bars([100.0, 101.0, 102.0, 103.0])
        cfg = _frictionless(volume_gate=VolumeGateConfig(enabled=True, threshold_ratio=1.0))
        res = backtest_from_signal(bars, [1, 1, 1, 1], volume_ratio=[2.0, 0.1, 0.1, 0.1], cfg=cfg)
        assert res.trade_count == 1
        assert res.equity_curve[-1][1] == pytest.approx(1.03)


class TestProperties:
    @pytest.mark.parametrize("strategy", [StrategyType.TREND_SMA, StrategyType.MEAN_REVERSION_RSI])
    def test_deterministic(self, wave_bars, strategy):
        cfg = BacktestConfig(strategy=StrategyConfig(strategy=strategy, fast_window=5, slow_window=20))
        a = run_backtest(wave_bars, cfg)
        b = run_backtest(wave_bars, cfg)
        assert a.trade_count > 0
        assert a.equity_curve == b.equity_curve
        assert a.daily_returns == b.daily_returns
        assert a.trades == b.trades
        assert a.summary() == b.summary()

    @pytest.mark.parametrize("stop", [0.0, 0.5, 2.0])
    def test_win_loss_bounded_by_trades(self, wave_bars, stop):
        cfg = BacktestConfig(
            atr_stop_multiplier=stop,
            strategy=StrategyConfig(strategy=StrategyType.MEAN_REVERSION_RSI),
        )
        res = run_backtest(wave_bars, cfg)
        assert res.win_count + res.loss_count <= res.trade_count
        assert len(res.daily_returns) == len(wave_bars) - 1
        assert len(res.equity_curve) == len(wave_bars) - 1

    def test_cost_rate_is_capped(self):
        cfg = BacktestConfig(fee_bps=1000.0, slippage_bps=1000.0)
        assert cfg.cost_rate == pytest.approx(0.1)

    def test_clamped(self):
        cfg = BacktestConfig(
            fee_bps=500.0,
            slippage_bps=-3.0,
            event_scaling=EventScalingConfig(scale_factor=2.0, count_threshold=0),
            strategy=StrategyConfig(fast_window=1, rsi_entry=0.0),
        ).clamped()
        assert cfg.fee_bps == 200.0
        assert cfg.slippage_bps == 0.0
        assert cfg.event_scaling.scale_factor == 1.0
        assert cfg.event_scaling.count_threshold == 1
        assert cfg.strategy.fast_window == 2
        assert cfg.strategy.rsi_entry == 1.0

    def test_flat_series_sharpe_is_nan(self):
        bars = make_bars([100.0] * 10)
        res = backtest_from_signal(bars, [0] * 10, cfg=_frictionless())
        assert math.isnan(res.stats.sharpe)
        assert res.stats.total_return == 0.0
        assert res.stats.max_drawdown == 0.0

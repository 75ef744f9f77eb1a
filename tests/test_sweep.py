from stocklab.backtest.engine import BacktestConfig, StrategyConfig
from stocklab.backtest.sweep import recommend_workers, run_sweep
from stocklab.core.types import StrategyType

from conftest import make_bars


def _configs():
    return [
        ("trend", BacktestConfig(strategy=StrategyConfig(strategy=StrategyType.TREND_SMA, fast_window=5, slow_window=20))),
        ("mr", BacktestConfig(strategy=StrategyConfig(strategy=StrategyType.MEAN_REVERSION_RSI))),
        ("wide", BacktestConfig(atr_stop_multiplier=5.0)),
    ]


def test_serial_sweep_keeps_order(wave_bars):
    df = run_sweep(wave_bars, _configs(), workers=1)
    assert df["run_id"].tolist() == ["trend", "mr", "wide"]
    assert (df["status"] == "OK").all()
    assert df.loc[0, "strategy"] == "trend_sma"


def test_parallel_matches_serial(wave_bars):
    serial = run_sweep(wave_bars, _configs(), workers=1)
    parallel = run_sweep(wave_bars, _configs(), workers=2)
    assert serial["total_return"].tolist() == parallel["total_return"].tolist()
    assert serial["num_trades"].tolist() == parallel["num_trades"].tolist()


def test_no_result_rows():
    df = run_sweep(make_bars([100.0]), _configs()[:1], workers=1)
    assert df["status"].tolist() == ["NO_RESULT"]


def test_empty_sweep():
    assert run_sweep(make_bars([1.0, 2.0]), [], workers=1).empty


def test_recommend_workers():
    assert recommend_workers() >= 1

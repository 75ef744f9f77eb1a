"""Backtest layer.

- **engine**: single-asset, long-only simulation (next-bar-close execution, costs,
  ATR stop, volume gate, event exposure scaling).
- **metrics**: total return / CAGR / Sharpe / max drawdown reductions.
- **sweep**: many configurations over one series, parallel per run.
"""

from .engine import (
    BacktestConfig,
    EventScalingConfig,
    StrategyConfig,
    VolumeGateConfig,
    backtest_from_signal,
    run_backtest,
)
from .metrics import compute_stats

__all__ = [
    "BacktestConfig",
    "EventScalingConfig",
    "StrategyConfig",
    "VolumeGateConfig",
    "backtest_from_signal",
    "run_backtest",
    "compute_stats",
]

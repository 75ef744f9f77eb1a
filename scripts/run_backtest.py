#!/usr/bin/env python3
"""Single backtest run from an OHLCV CSV.

Examples
--------
  python scripts/run_backtest.py --csv data/2330.csv
  python scripts/run_backtest.py --csv data/2330.csv --strategy mean_rev_rsi --rsi-entry 25
  python scripts/run_backtest.py --csv data/2330.csv --events data/events.csv --event-scaling
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from dataclasses import replace
from pathlib import Path

# Allow running this script from any working directory.
PROJECT_ROOT = Path(__file__).resolve().parents[1]
SRC_ROOT = PROJECT_ROOT / "src"
if str(SRC_ROOT) not in sys.path:
    sys.path.insert(0, str(SRC_ROOT))

from stocklab.backtest.engine import BacktestConfig, run_backtest
from stocklab.core.types import AtrMethod, StrategyType
from stocklab.data_loader import filter_by_date, frame_to_bars, load_event_counts, load_ohlcv_csv, resample_weekly
from stocklab.profile import compute_asset_profile
from stocklab.reporting.export import fmt_num, fmt_pct, write_run_artifacts
from stocklab.trading.config_io import load_backtest_config


def parse_args() -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Backtest one rule configuration over one OHLCV CSV (date,open,high,low,close,volume).")

    # Data / IO
    p.add_argument("--csv", type=str, required=True, help="Input OHLCV CSV path.")
    p.add_argument("--events", type=str, default=None, help="(Optional) Event CSV: date,count or raw rows with date/seendate.")
    p.add_argument("--config", type=str, default=None, help="(Optional) JSON config; CLI flags override it.")
    p.add_argument("--outdir", type=str, default=None, help="(Optional) Write config/summary/equity/trades here.")
    p.add_argument("--start", type=str, default=None, help="Start date (YYYY-MM-DD)")
    p.add_argument("--end", type=str, default=None, help="End date (YYYY-MM-DD)")
    p.add_argument("--weekly", action="store_true", help="Resample daily bars to ISO weeks before running.")
    p.add_argument("--log-level", type=str, default="WARNING")

    # Strategy
    p.add_argument("--strategy", type=str, default=None, choices=[e.value for e in StrategyType])
    p.add_argument("--fast", type=int, default=None, help="(trend_sma) Fast SMA window. Default 20.")
    p.add_argument("--slow", type=int, default=None, help="(trend_sma) Slow SMA window. Default 60.")
    p.add_argument("--rsi-period", type=int, default=None, help="(mean_rev_rsi) RSI period. Default 14.")
    p.add_argument("--rsi-entry", type=float, default=None, help="(mean_rev_rsi) Enter below this RSI. Default 30.")
    p.add_argument("--rsi-exit", type=float, default=None, help="(mean_rev_rsi) Exit above this RSI. Default 50.")

    # Costs / risk
    p.add_argument("--fee-bps", type=float, default=None, help="Fee per transaction in bps. Default 5.")
    p.add_argument("--slippage-bps", type=float, default=None, help="Slippage per transaction in bps. Default 2.")
    p.add_argument("--atr-period", type=int, default=None, help="ATR period. Default 14.")
    p.add_argument("--atr-stop", type=float, default=None, help="Stop = entry - k * ATR. Default 2.")
    p.add_argument("--atr-method", type=str, default=None, choices=[e.value for e in AtrMethod])

    # Gates
    p.add_argument("--volume-gate", action="store_true", help="Block entries when volume ratio is below threshold.")
    p.add_argument("--volume-gate-thr", type=float, default=None, help="Volume ratio threshold. Default 1.2.")
    p.add_argument("--event-scaling", action="store_true", help="Scale exposure on high-event dates.")
    p.add_argument("--event-count-thr", type=int, default=None, help="Event count threshold. Default 6.")
    p.add_argument("--event-scale", type=float, default=None, help="Exposure on high-event dates. Default 0.5.")
    return p.parse_args()


def _override(obj, **kwargs):
    vals = {k: v for k, v in kwargs.items() if v is not None}
    return replace(obj, **vals) if vals else obj


def build_config(args: argparse.Namespace) -> BacktestConfig:
    cfg = load_backtest_config(args.config) if args.config else BacktestConfig()
    strategy = _override(
        cfg.strategy,
        strategy=StrategyType(args.strategy) if args.strategy else None,
        fast_window=args.fast,
        slow_window=args.slow,
        rsi_period=args.rsi_period,
        rsi_entry=args.rsi_entry,
        rsi_exit=args.rsi_exit,
    )
    volume_gate = _override(
        cfg.volume_gate,
        enabled=True if args.volume_gate else None,
        threshold_ratio=args.volume_gate_thr,
    )
    event_scaling = _override(
        cfg.event_scaling,
        enabled=True if args.event_scaling else None,
        count_threshold=args.event_count_thr,
        scale_factor=args.event_scale,
    )
    cfg = _override(
        cfg,
        fee_bps=args.fee_bps,
        slippage_bps=args.slippage_bps,
        atr_period=args.atr_period,
        atr_stop_multiplier=args.atr_stop,
        atr_method=AtrMethod(args.atr_method) if args.atr_method else None,
    )
    return replace(cfg, strategy=strategy, volume_gate=volume_gate, event_scaling=event_scaling).clamped()


def main() -> int:
    args = parse_args()
    logging.basicConfig(level=getattr(logging, str(args.log_level).upper(), logging.WARNING), format="%(levelname)s %(name)s: %(message)s")

    cfg = build_config(args)
    bars = frame_to_bars(load_ohlcv_csv(args.csv))
    bars = filter_by_date(bars, args.start, args.end)
    if args.weekly:
        bars = resample_weekly(bars)
    events = load_event_counts(args.events) if args.events else {}

    profile = compute_asset_profile(bars)
    if profile is not None:
        print(
            f"[profile] trend={profile.trend} ret20={fmt_pct(profile.ret20)} ret60={fmt_pct(profile.ret60)} "
            f"vol20={fmt_pct(profile.vol20)} atr14={fmt_num(profile.atr14)} dd90={fmt_pct(profile.dd90)} "
            f"volume_ratio={fmt_num(profile.volume_ratio)}"
        )

    res = run_backtest(bars, cfg, events)
    if res is None:
        print(f"[backtest] no result: {len(bars)} bar(s), need at least 2")
        return 1

    s = res.stats
    print(f"[backtest] {res.equity_curve[0][0]} .. {res.equity_curve[-1][0]} strategy={cfg.strategy.strategy.value}")
    print(
        f"  total_return={fmt_pct(s.total_return)} cagr={fmt_pct(s.cagr)} sharpe={fmt_num(s.sharpe)} "
        f"max_dd={fmt_pct(s.max_drawdown)} cost_bps={fmt_num(s.cost_bps, 1)}"
    )
    print(f"  trades={res.trade_count} wins={res.win_count} losses={res.loss_count}")

    if args.outdir:
        run_dir = write_run_artifacts(res, cfg, args.outdir)
        print(f"[saved] {run_dir}")
    else:
        print(json.dumps({k: v for k, v in res.summary().items() if isinstance(v, (int, str))}, indent=2))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())

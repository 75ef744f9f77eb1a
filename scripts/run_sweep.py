#!/usr/bin/env python3
"""Parameter sweep over one OHLCV CSV.

The config table (CSV/XLSX) holds one run per row; see
`stocklab.trading.config_io.load_sweep_configs` for the column layout.
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

# Allow running this script from any working directory.
PROJECT_ROOT = Path(__file__).resolve().parents[1]
SRC_ROOT = PROJECT_ROOT / "src"
if str(SRC_ROOT) not in sys.path:
    sys.path.insert(0, str(SRC_ROOT))

from stocklab.backtest.sweep import recommend_workers, run_sweep
from stocklab.data_loader import filter_by_date, frame_to_bars, load_event_counts, load_ohlcv_csv
from stocklab.trading.config_io import load_sweep_configs


def parse_args() -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Run many backtest configurations over one OHLCV CSV.")
    p.add_argument("--csv", type=str, required=True, help="Input OHLCV CSV path.")
    p.add_argument("--configs", type=str, required=True, help="Sweep table (CSV/XLSX), one run per row.")
    p.add_argument("--sheet", type=str, default=None, help="(XLSX) sheet name.")
    p.add_argument("--events", type=str, default=None, help="(Optional) Event CSV.")
    p.add_argument("--start", type=str, default=None)
    p.add_argument("--end", type=str, default=None)
    p.add_argument("--workers", type=int, default=0, help="Process workers. 0 = ~90%% of logical CPUs.")
    p.add_argument("--out", type=str, default="outputs/sweep_results.csv")
    p.add_argument("--log-level", type=str, default="INFO")
    return p.parse_args()


def main() -> int:
    args = parse_args()
    logging.basicConfig(level=getattr(logging, str(args.log_level).upper(), logging.INFO), format="%(levelname)s %(name)s: %(message)s")

    bars = filter_by_date(frame_to_bars(load_ohlcv_csv(args.csv)), args.start, args.end)
    events = load_event_counts(args.events) if args.events else {}
    configs = [(run_id, cfg.clamped()) for run_id, cfg in load_sweep_configs(args.configs, sheet=args.sheet)]
    if not configs:
        print("[sweep] no enabled configs")
        return 1

    workers = int(args.workers) if int(args.workers) > 0 else recommend_workers()
    df = run_sweep(bars, configs, events, workers=min(workers, len(configs)))

    out = Path(args.out)
    out.parent.mkdir(parents=True, exist_ok=True)
    df.to_csv(out, index=False)

    cols = [c for c in ["run_id", "strategy", "total_return", "cagr", "sharpe", "max_drawdown", "num_trades"] if c in df.columns]
    print(df[cols].to_string(index=False))
    print(f"[saved] {out}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())

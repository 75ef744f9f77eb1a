from __future__ import annotations

import json
import math
from pathlib import Path
from typing import Any, Dict

from stocklab.backtest.engine import BacktestConfig
from stocklab.core.types import BacktestResult
from stocklab.trading.config_io import config_to_dict


def _json_safe(d: Dict[str, Any]) -> Dict[str, Any]:
    # JSON has no NaN/inf; keep them distinguishable from 0 as null / strings
    out: Dict[str, Any] = {}
    for k, v in d.items():
        if isinstance(v, float) and not math.isfinite(v):
            out[k] = None if math.isnan(v) else ("inf" if v > 0 else "-inf")
        else:
            out[k] = v
    return out


def fmt_pct(x: float) -> str:
    if not math.isfinite(x):
        return "-"
    v = x * 100.0
    return f"{'+' if v >= 0 else ''}{v:.2f}%"


def fmt_num(x: float, nd: int = 2) -> str:
    if not math.isfinite(x):
        return "-"
    return f"{x:.{nd}f}"


def write_run_artifacts(result: BacktestResult, cfg: BacktestConfig, out_dir: str | Path) -> Path:
    """Write config.json, summary.json, equity_curve.csv and trades.csv into out_dir."""
    run_dir = Path(out_dir)
    run_dir.mkdir(parents=True, exist_ok=True)

    (run_dir / "config.json").write_text(json.dumps(config_to_dict(cfg), indent=2), encoding="utf-8")
    (run_dir / "summary.json").write_text(json.dumps(_json_safe(result.summary()), indent=2), encoding="utf-8")
    result.equity_frame().reset_index().to_csv(run_dir / "equity_curve.csv", index=False)
    result.trades_frame().to_csv(run_dir / "trades.csv", index=False)
    return run_dir

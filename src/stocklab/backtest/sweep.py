from __future__ import annotations

import logging
import os
from concurrent.futures import ProcessPoolExecutor, as_completed
from typing import Any, Dict, List, Optional, Sequence, Tuple

import pandas as pd

from stocklab.backtest.engine import BacktestConfig, run_backtest
from stocklab.core.types import EventCountByDate, PriceBar

logger = logging.getLogger(__name__)

RunTask = Tuple[int, str, BacktestConfig]


def recommend_workers(target_util: float = 0.90) -> int:
    n = os.cpu_count() or 1
    return max(1, int(n * float(target_util)))


def _run_one(task: RunTask, bars: Sequence[PriceBar], event_counts: Optional[Dict[str, int]]) -> Dict[str, Any]:
    idx, run_id, cfg = task
    row: Dict[str, Any] = {
        "idx": idx,
        "run_id": run_id,
        "strategy": cfg.strategy.strategy.value,
        "fast_window": cfg.strategy.fast_window,
        "slow_window": cfg.strategy.slow_window,
        "rsi_period": cfg.strategy.rsi_period,
        "rsi_entry": cfg.strategy.rsi_entry,
        "rsi_exit": cfg.strategy.rsi_exit,
        "atr_stop_multiplier": cfg.atr_stop_multiplier,
        "volume_gate": cfg.volume_gate.enabled,
        "event_scaling": cfg.event_scaling.enabled,
    }
    res = run_backtest(bars, cfg, event_counts)
    if res is None:
        row["status"] = "NO_RESULT"
        return row
    row.update(res.summary())
    row["status"] = "OK"
    return row


def run_sweep(
    bars: Sequence[PriceBar],
    configs: Sequence[Tuple[str, BacktestConfig]],
    event_counts: Optional[EventCountByDate] = None,
    workers: int = 1,
) -> pd.DataFrame:
    """Evaluate many configurations over one price series.

    Parallelism is per whole run (one process task per config); runs share no state.
    Rows come back in the order of `configs`.
    """
    bars = list(bars)
    events = dict(event_counts) if event_counts is not None else None
    tasks: List[RunTask] = [(i, run_id, cfg) for i, (run_id, cfg) in enumerate(configs)]
    if not tasks:
        return pd.DataFrame()

    rows: List[Dict[str, Any]] = []
    if workers <= 1:
        for t in tasks:
            rows.append(_run_one(t, bars, events))
    else:
        logger.info("sweep: %d run(s) on %d worker(s)", len(tasks), workers)
        with ProcessPoolExecutor(max_workers=workers) as ex:
            futs = [ex.submit(_run_one, t, bars, events) for t in tasks]
            done = 0
            for fut in as_completed(futs):
                rows.append(fut.result())
                done += 1
                if done % 50 == 0 or done == len(futs):
                    logger.info("sweep progress: %d/%d", done, len(futs))

    df = pd.DataFrame(rows).sort_values("idx").drop(columns=["idx"]).reset_index(drop=True)
    return df

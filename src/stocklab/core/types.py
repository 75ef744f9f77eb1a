from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

import pandas as pd


class Side(int, Enum):
    FLAT = 0
    LONG = 1


class StrategyType(str, Enum):
    """Signal generator selector."""

    # SMA(fast) > SMA(slow) and close > SMA(slow)
    TREND_SMA = "trend_sma"
    # RSI below entry -> LONG, RSI above exit -> FLAT
    MEAN_REVERSION_RSI = "mean_rev_rsi"


class ExitReason(str, Enum):
    SIGNAL = "SIGNAL"
    STOP = "STOP"


@dataclass(frozen=True)
class PriceBar:
    """One aggregated bar (one trading day by default).

    `date` is an ISO calendar day (YYYY-MM-DD). Series handed to the engine must be
    ascending and de-duplicated; the engine never re-sorts.
    """

    date: str
    open: float
    high: float
    low: float
    close: float
    volume: float = 0.0


PriceSeries = Sequence[PriceBar]

# None marks warm-up / undefined. NaN is never used for "not available".
IndicatorSeries = List[Optional[float]]

EventCountByDate = Mapping[str, int]


@dataclass(frozen=True)
class TradeState:
    """Position state threaded through one simulation run."""

    position: Side = Side.FLAT
    entry_price: Optional[float] = None
    stop_level: Optional[float] = None
    entry_date: Optional[str] = None


@dataclass(frozen=True)
class TradeRecord:
    """Round-trip trade summary.

    Exit fields stay None when the position is still open at the last bar.
    """

    entry_date: str
    entry_price: float
    exit_date: Optional[str] = None
    exit_price: Optional[float] = None
    pnl: Optional[float] = None
    exit_reason: Optional[ExitReason] = None


@dataclass(frozen=True)
class BacktestStats:
    total_return: float
    cagr: float
    sharpe: float
    max_drawdown: float
    cost_bps: float


@dataclass(frozen=True)
class BacktestResult:
    equity_curve: Tuple[Tuple[str, float], ...]
    daily_returns: Tuple[float, ...]
    trade_count: int
    win_count: int
    loss_count: int
    stats: BacktestStats
    trades: Tuple[TradeRecord, ...] = ()

    @property
    def final_equity(self) -> float:
        return self.equity_curve[-1][1] if self.equity_curve else 1.0

    def equity_frame(self) -> pd.DataFrame:
        df = pd.DataFrame(
            {
                "date": [d for d, _ in self.equity_curve],
                "equity": [e for _, e in self.equity_curve],
                "daily_return": list(self.daily_returns),
            }
        )
        return df.set_index("date")

    def trades_frame(self) -> pd.DataFrame:
        cols = ["entry_date", "entry_price", "exit_date", "exit_price", "pnl", "exit_reason"]
        rows: List[Dict[str, Any]] = []
        for t in self.trades:
            rows.append(
                {
                    "entry_date": t.entry_date,
                    "entry_price": t.entry_price,
                    "exit_date": t.exit_date,
                    "exit_price": t.exit_price,
                    "pnl": t.pnl,
                    "exit_reason": t.exit_reason.value if t.exit_reason is not None else None,
                }
            )
        return pd.DataFrame(rows, columns=cols)

    def summary(self) -> Dict[str, Any]:
        closed = self.win_count + self.loss_count
        return {
            "start_date": self.equity_curve[0][0] if self.equity_curve else None,
            "end_date": self.equity_curve[-1][0] if self.equity_curve else None,
            "num_bars": len(self.daily_returns) + 1,
            "final_equity": float(self.final_equity),
            "total_return": float(self.stats.total_return),
            "cagr": float(self.stats.cagr),
            "sharpe": float(self.stats.sharpe),
            "max_drawdown": float(self.stats.max_drawdown),
            "cost_bps": float(self.stats.cost_bps),
            "num_trades": int(self.trade_count),
            "wins": int(self.win_count),
            "losses": int(self.loss_count),
            # NaN when nothing was closed; callers check finiteness before display
            "win_rate": float(self.win_count) / closed if closed > 0 else float("nan"),
        }


class AtrMethod(str, Enum):
    # simple rolling mean of true range (default)
    SMA = "sma"
    # textbook Wilder smoothing
    WILDER = "wilder"
